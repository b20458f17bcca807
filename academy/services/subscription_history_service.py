import json
import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from academy.models.subscription import UserSubscription
from academy.models.subscription_history import HistoryAction, UserSubscriptionHistory


class SubscriptionHistoryService:
    """
    Writes the subscription ledger.

    The record_* helpers only add rows to the session. They never commit,
    so the entry lands in the same transaction as the status change it
    describes.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def _add(
        self,
        db: Session,
        subscription: UserSubscription,
        action: HistoryAction,
        previous_plan_id: Optional[str] = None,
        new_plan_id: Optional[str] = None,
        payment_method: Optional[str] = None,
        payment_amount: Optional[Decimal] = None,
        payment_currency: Optional[str] = None,
        payment_status: Optional[str] = None,
        billing_cycle: Optional[str] = None,
        transaction_id: Optional[str] = None,
        gateway_reference: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> UserSubscriptionHistory:
        entry = UserSubscriptionHistory(
            id=str(uuid.uuid4()),
            user_id=subscription.user_id,
            subscription_id=subscription.id,
            action_type=action.value,
            previous_plan_id=previous_plan_id,
            new_plan_id=new_plan_id,
            payment_method=payment_method,
            payment_amount=payment_amount,
            payment_currency=payment_currency,
            payment_status=payment_status,
            billing_cycle=billing_cycle,
            transaction_id=transaction_id,
            gateway_reference=gateway_reference,
            details=json.dumps(details) if details else None,
        )
        db.add(entry)
        self.logger.info(f"_add: {action.value} - user: {subscription.user_id}, subscription: {subscription.id}")
        return entry

    def record_payment(
        self,
        db: Session,
        subscription: UserSubscription,
        payment_method: str,
        amount: Optional[Decimal],
        currency: Optional[str] = "USD",
        transaction_id: Optional[str] = None,
        gateway_reference: Optional[str] = None,
        payment_status: str = "completed",
        details: Optional[dict] = None,
    ) -> UserSubscriptionHistory:
        return self._add(
            db, subscription, HistoryAction.PAYMENT,
            new_plan_id=subscription.plan_id,
            payment_method=payment_method,
            payment_amount=amount,
            payment_currency=currency,
            payment_status=payment_status,
            billing_cycle=_cycle_of(subscription),
            transaction_id=transaction_id,
            gateway_reference=gateway_reference,
            details=details,
        )

    def record_renewal(
        self,
        db: Session,
        subscription: UserSubscription,
        payment_method: Optional[str],
        amount: Optional[Decimal],
        currency: Optional[str] = "USD",
        transaction_id: Optional[str] = None,
        gateway_reference: Optional[str] = None,
    ) -> UserSubscriptionHistory:
        return self._add(
            db, subscription, HistoryAction.RENEWAL,
            previous_plan_id=subscription.plan_id,
            new_plan_id=subscription.plan_id,
            payment_method=payment_method,
            payment_amount=amount,
            payment_currency=currency,
            payment_status="completed",
            billing_cycle=_cycle_of(subscription),
            transaction_id=transaction_id,
            gateway_reference=gateway_reference,
        )

    def record_upgrade(
        self,
        db: Session,
        subscription: UserSubscription,
        previous_plan_id: Optional[str],
        payment_method: Optional[str],
        amount: Optional[Decimal],
        currency: Optional[str] = "USD",
        transaction_id: Optional[str] = None,
        gateway_reference: Optional[str] = None,
    ) -> UserSubscriptionHistory:
        return self._add(
            db, subscription, HistoryAction.UPGRADE,
            previous_plan_id=previous_plan_id,
            new_plan_id=subscription.plan_id,
            payment_method=payment_method,
            payment_amount=amount,
            payment_currency=currency,
            payment_status="completed",
            billing_cycle=_cycle_of(subscription),
            transaction_id=transaction_id,
            gateway_reference=gateway_reference,
        )

    def record_downgrade(
        self,
        db: Session,
        subscription: UserSubscription,
        previous_plan_id: str,
        new_plan_id: str,
        reason: str,
    ) -> UserSubscriptionHistory:
        return self._add(
            db, subscription, HistoryAction.DOWNGRADE,
            previous_plan_id=previous_plan_id,
            new_plan_id=new_plan_id,
            details={'reason': reason},
        )

    def record_cancellation(
        self,
        db: Session,
        subscription: UserSubscription,
        reason: Optional[str] = None,
    ) -> UserSubscriptionHistory:
        return self._add(
            db, subscription, HistoryAction.CANCELLATION,
            previous_plan_id=subscription.plan_id,
            details={'reason': reason} if reason else None,
        )

    def get_user_history(self, db: Session, user_id: str) -> list[dict]:
        """Ledger entries for a user, newest first"""
        self.logger.info(f"get_user_history: Entry - user: {user_id}")

        try:
            entries = db.query(UserSubscriptionHistory).filter(
                UserSubscriptionHistory.user_id == user_id
            ).order_by(UserSubscriptionHistory.created_at.desc()).all()

            result = []
            for entry in entries:
                result.append({
                    'id': entry.id,
                    'action_type': entry.action_type,
                    'subscription_id': entry.subscription_id,
                    'previous_plan': entry.previous_plan.name if entry.previous_plan else None,
                    'new_plan': entry.new_plan.name if entry.new_plan else None,
                    'payment_method': entry.payment_method,
                    'payment_amount': float(entry.payment_amount) if entry.payment_amount is not None else None,
                    'payment_currency': entry.payment_currency,
                    'payment_status': entry.payment_status,
                    'gateway_reference': entry.gateway_reference,
                    'created_at': entry.created_at.isoformat() if entry.created_at else None,
                    'details': json.loads(entry.details) if entry.details else None,
                })

            self.logger.info(f"get_user_history: Success - user: {user_id}, count: {len(result)}")
            return result
        except Exception as e:
            self.logger.error(f"get_user_history: Failure - {e}")
            raise


def _cycle_of(subscription: UserSubscription) -> Optional[str]:
    plan = subscription.plan
    if plan is None or plan.billing_cycle is None:
        return None
    return getattr(plan.billing_cycle, 'value', plan.billing_cycle)
