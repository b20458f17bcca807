import json
import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from academy.core.config import settings
from academy.models.audit_log import AuditLog
from academy.models.plan import BillingCycle, SubscriptionPlan
from academy.models.subscription import SubscriptionStatus, UserSubscription
from academy.models.user import User
from academy.services.subscription_history_service import SubscriptionHistoryService
from academy.services.subscription_state import transition

logger = logging.getLogger(__name__)


class PlanResponse(BaseModel):
    """Pydantic model for plan API response"""
    id: str
    name: str
    display_name: str
    description: Optional[str] = None
    price: float
    billing_cycle: str
    features: dict

    class Config:
        from_attributes = True


DEFAULT_PLANS = [
    {
        'name': 'free',
        'display_name': 'Free',
        'description': 'Get started with trading',
        'price': Decimal('0.00'),
        'billing_cycle': BillingCycle.MONTHLY,
        'features': {
            'features': [
                'Basic trading introduction',
                'Limited course access (3 courses)',
                'Community forum access',
                'Email support',
                'Mobile app access',
            ],
            'max_courses': 3,
            'live_sessions_per_month': 0,
            'one_on_one_sessions': 0,
            'priority_support': False,
        },
    },
    {
        'name': 'basic',
        'display_name': 'Basic',
        'description': 'Perfect for beginners',
        'price': Decimal('14.99'),
        'billing_cycle': BillingCycle.MONTHLY,
        'features': {
            'features': [
                'Basic trading strategies',
                'Discord community access',
                'Weekly market updates',
                'Email support',
                'Mobile app access',
            ],
        },
    },
    {
        'name': 'pro',
        'display_name': 'Pro',
        'description': 'For serious traders',
        'price': Decimal('24.99'),
        'billing_cycle': BillingCycle.MONTHLY,
        'features': {
            'features': [
                'All Basic features',
                'Advanced trading strategies',
                'Live trading sessions (3x/week)',
                'Priority Discord support',
                '1-on-1 monthly session',
                'Trading signals & alerts',
            ],
        },
    },
    {
        'name': 'elite',
        'display_name': 'Elite',
        'description': 'Lifetime access',
        'price': Decimal('499.99'),
        'billing_cycle': BillingCycle.LIFETIME,
        'features': {
            'features': [
                'All Pro features',
                'Lifetime access to all content',
                'Exclusive VIP Discord channels',
                'Weekly 1-on-1 sessions',
                'Portfolio review & optimization',
                'Direct access to head trader',
            ],
        },
    },
]


def serialize_plan(plan: SubscriptionPlan) -> dict:
    return PlanResponse(
        id=plan.id,
        name=plan.name,
        display_name=plan.display_name,
        description=plan.description,
        price=float(plan.price),
        billing_cycle=getattr(plan.billing_cycle, 'value', plan.billing_cycle),
        features=plan.features or {},
    ).model_dump()


def serialize_subscription(subscription: UserSubscription) -> dict:
    return {
        'id': subscription.id,
        'user_id': subscription.user_id,
        'status': SubscriptionStatus(subscription.status).value,
        'plan': serialize_plan(subscription.plan) if subscription.plan else None,
        'current_period_start': subscription.current_period_start.isoformat() if subscription.current_period_start else None,
        'current_period_end': subscription.current_period_end.isoformat() if subscription.current_period_end else None,
        'payment_method': subscription.payment_method,
        'payment_reference': subscription.payment_reference,
        'cancel_at_period_end': subscription.cancel_at_period_end,
        'created_at': subscription.created_at.isoformat() if subscription.created_at else None,
    }


class SubscriptionService:
    def __init__(self):
        self.history = SubscriptionHistoryService()
        self.logger = logging.getLogger(__name__)

    # Plan catalog

    def get_all_plans(self, db: Session) -> list[dict]:
        """Get all active subscription plans, cheapest first"""
        self.logger.info("get_all_plans: Entry")

        try:
            self.seed_plans_if_empty(db)

            plans = db.query(SubscriptionPlan).filter(
                SubscriptionPlan.is_active == True
            ).order_by(SubscriptionPlan.price).all()

            result = [serialize_plan(plan) for plan in plans]
            self.logger.info(f"get_all_plans: Success - {len(result)} plans")
            return result
        except Exception as e:
            self.logger.error(f"get_all_plans: Failure - {e}")
            raise

    def seed_plans_if_empty(self, db: Session) -> int:
        """Seed the plan catalog if it is empty; returns the number of plans created"""
        try:
            if db.query(SubscriptionPlan).count() > 0:
                return 0

            self.logger.info("seed_plans_if_empty: Plans table is empty, seeding plans")
            for plan_data in DEFAULT_PLANS:
                db.add(SubscriptionPlan(id=str(uuid.uuid4()), is_active=True, **plan_data))
            db.commit()
            self.logger.info(f"seed_plans_if_empty: Success - seeded {len(DEFAULT_PLANS)} plans")
            return len(DEFAULT_PLANS)
        except Exception as e:
            db.rollback()
            self.logger.error(f"seed_plans_if_empty: Failure - {e}")
            # Listing plans still works against whatever is already stored
            return 0

    def get_plan_by_name(self, db: Session, name: str) -> Optional[SubscriptionPlan]:
        return db.query(SubscriptionPlan).filter(SubscriptionPlan.name == name.lower()).first()

    def ensure_free_plan(self, db: Session) -> tuple[SubscriptionPlan, bool]:
        """Create the free plan if it is missing; returns (plan, created)"""
        self.logger.info("ensure_free_plan: Entry")

        try:
            plan = self.get_plan_by_name(db, 'free')
            if plan:
                self.logger.info("ensure_free_plan: Success - free plan already exists")
                return plan, False

            free_data = next(p for p in DEFAULT_PLANS if p['name'] == 'free')
            plan = SubscriptionPlan(id=str(uuid.uuid4()), is_active=True, **free_data)
            db.add(plan)
            db.commit()
            db.refresh(plan)
            self.logger.info(f"ensure_free_plan: Success - created {plan.id}")
            return plan, True
        except Exception as e:
            db.rollback()
            self.logger.error(f"ensure_free_plan: Failure - {e}")
            raise

    # User subscriptions

    def create_free_subscription(self, db: Session, user_id: str, commit: bool = True) -> UserSubscription:
        """Give a user an active free-plan subscription (used on signup)"""
        self.logger.info(f"create_free_subscription: Entry - user: {user_id}")

        try:
            free_plan, _ = self.ensure_free_plan(db)
            now = datetime.utcnow()
            subscription = UserSubscription(
                id=str(uuid.uuid4()),
                user_id=user_id,
                plan_id=free_plan.id,
                plan=free_plan,
                status=SubscriptionStatus.ACTIVE,
                current_period_start=now,
                current_period_end=now + timedelta(days=settings.free_plan_period_days),
                created_at=now,
                updated_at=now,
            )
            db.add(subscription)
            if commit:
                db.commit()
                db.refresh(subscription)
            self.logger.info(f"create_free_subscription: Success - user: {user_id}, subscription: {subscription.id}")
            return subscription
        except Exception as e:
            db.rollback()
            self.logger.error(f"create_free_subscription: Failure - {e}")
            raise

    def get_active_subscription(self, db: Session, user_id: str) -> Optional[UserSubscription]:
        return db.query(UserSubscription).filter(
            UserSubscription.user_id == user_id,
            UserSubscription.status == SubscriptionStatus.ACTIVE
        ).order_by(UserSubscription.created_at.desc()).first()

    def get_latest_subscription(self, db: Session, user_id: str) -> Optional[UserSubscription]:
        return db.query(UserSubscription).filter(
            UserSubscription.user_id == user_id
        ).order_by(UserSubscription.created_at.desc()).first()

    def get_current_subscription(self, db: Session, user_id: str) -> dict:
        """Get user's current subscription with its plan"""
        self.logger.info(f"get_current_subscription: Entry - user: {user_id}")

        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                raise LookupError("User not found")

            subscription = self.get_active_subscription(db, user_id) or self.get_latest_subscription(db, user_id)
            if not subscription:
                raise LookupError("No subscription found")

            result = serialize_subscription(subscription)
            self.logger.info(f"get_current_subscription: Success - user: {user_id}, status: {result['status']}")
            return result
        except Exception as e:
            self.logger.error(f"get_current_subscription: Failure - {e}")
            raise

    def initiate_checkout(self, db: Session, user_id: str, plan_name: str, payment_method: str) -> UserSubscription:
        """Create a pending subscription for a paid plan"""
        self.logger.info(f"initiate_checkout: Entry - user: {user_id}, plan: {plan_name}, method: {payment_method}")

        try:
            plan = self.get_plan_by_name(db, plan_name)
            if not plan or not plan.is_active:
                raise ValueError(f"Invalid subscription plan: {plan_name}")
            if plan.is_free:
                raise ValueError("The free plan does not require checkout")

            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                raise LookupError("User not found")

            now = datetime.utcnow()
            subscription = UserSubscription(
                id=str(uuid.uuid4()),
                user_id=user_id,
                plan_id=plan.id,
                plan=plan,
                status=SubscriptionStatus.PENDING,
                payment_method=payment_method,
                created_at=now,
                updated_at=now,
            )
            db.add(subscription)
            db.commit()
            db.refresh(subscription)

            self.logger.info(f"initiate_checkout: Success - user: {user_id}, subscription: {subscription.id}")
            return subscription
        except Exception as e:
            db.rollback()
            self.logger.error(f"initiate_checkout: Failure - {e}")
            raise

    def get_subscription(self, db: Session, subscription_id: str) -> Optional[UserSubscription]:
        return db.query(UserSubscription).filter(UserSubscription.id == subscription_id).first()

    def confirm_payment(
        self,
        db: Session,
        subscription_id: str,
        payment_method: str,
        payment_reference: str,
        amount: Optional[Decimal] = None,
        currency: Optional[str] = "USD",
        period_end: Optional[datetime] = None,
    ) -> Optional[UserSubscription]:
        """
        Activate a subscription after the payment provider confirmed the charge.

        In the same transaction every other active subscription of the user is
        cancelled and a ledger entry is written. Returns None when the payment
        had already been applied.
        """
        self.logger.info(f"confirm_payment: Entry - subscription: {subscription_id}, reference: {payment_reference}")

        try:
            subscription = self.get_subscription(db, subscription_id)
            if not subscription:
                raise LookupError(f"Subscription not found: {subscription_id}")

            previous = self.get_active_subscription(db, subscription.user_id)
            was_active = SubscriptionStatus(subscription.status) == SubscriptionStatus.ACTIVE
            now = datetime.utcnow()

            changed = transition(
                subscription,
                SubscriptionStatus.ACTIVE,
                now=now,
                period_end=period_end,
                payment_method=payment_method,
                payment_reference=payment_reference,
            )
            if not changed:
                self.logger.info(f"confirm_payment: Success - already applied, subscription: {subscription_id}")
                return None

            others = db.query(UserSubscription).filter(
                UserSubscription.user_id == subscription.user_id,
                UserSubscription.status == SubscriptionStatus.ACTIVE,
                UserSubscription.id != subscription.id
            ).all()
            for other in others:
                transition(other, SubscriptionStatus.CANCELLED, now=now)

            amount = amount if amount is not None else subscription.plan.price
            if was_active:
                self.history.record_renewal(
                    db, subscription, payment_method, amount, currency,
                    transaction_id=payment_reference, gateway_reference=payment_reference)
            elif previous and previous.id != subscription.id and previous.plan_id != subscription.plan_id:
                self.history.record_upgrade(
                    db, subscription, previous.plan_id, payment_method, amount, currency,
                    transaction_id=payment_reference, gateway_reference=payment_reference)
            else:
                self.history.record_payment(
                    db, subscription, payment_method, amount, currency,
                    transaction_id=payment_reference, gateway_reference=payment_reference)

            db.commit()
            db.refresh(subscription)

            self.logger.info(f"confirm_payment: Success - subscription: {subscription_id}, cancelled others: {len(others)}")
            return subscription
        except Exception as e:
            db.rollback()
            self.logger.error(f"confirm_payment: Failure - {e}")
            raise

    def _set_unpaid_status(
        self,
        db: Session,
        subscription_id: str,
        target: SubscriptionStatus,
        payment_reference: Optional[str] = None,
    ) -> UserSubscription:
        subscription = self.get_subscription(db, subscription_id)
        if not subscription:
            raise LookupError(f"Subscription not found: {subscription_id}")
        try:
            transition(subscription, target, payment_reference=payment_reference)
            db.commit()
            db.refresh(subscription)
            return subscription
        except Exception:
            db.rollback()
            raise

    def reopen_for_payment(self, db: Session, subscription_id: str, payment_method: str) -> UserSubscription:
        """Put a failed, expired or cancelled subscription back to pending before a payment retry"""
        self.logger.info(f"reopen_for_payment: Entry - subscription: {subscription_id}")
        subscription = self._set_unpaid_status(db, subscription_id, SubscriptionStatus.PENDING)
        subscription.payment_method = payment_method
        db.commit()
        db.refresh(subscription)
        self.logger.info(f"reopen_for_payment: Success - subscription: {subscription_id}")
        return subscription

    def mark_payment_failed(self, db: Session, subscription_id: str, payment_reference: Optional[str] = None) -> UserSubscription:
        self.logger.info(f"mark_payment_failed: Entry - subscription: {subscription_id}")
        subscription = self._set_unpaid_status(db, subscription_id, SubscriptionStatus.FAILED, payment_reference)
        self.logger.info(f"mark_payment_failed: Success - subscription: {subscription_id}")
        return subscription

    def mark_payment_cancelled(self, db: Session, subscription_id: str, payment_reference: Optional[str] = None) -> UserSubscription:
        self.logger.info(f"mark_payment_cancelled: Entry - subscription: {subscription_id}")
        subscription = self._set_unpaid_status(db, subscription_id, SubscriptionStatus.CANCELLED, payment_reference)
        self.logger.info(f"mark_payment_cancelled: Success - subscription: {subscription_id}")
        return subscription

    def mark_payment_expired(self, db: Session, subscription_id: str, payment_reference: Optional[str] = None) -> UserSubscription:
        self.logger.info(f"mark_payment_expired: Entry - subscription: {subscription_id}")
        subscription = self._set_unpaid_status(db, subscription_id, SubscriptionStatus.EXPIRED, payment_reference)
        self.logger.info(f"mark_payment_expired: Success - subscription: {subscription_id}")
        return subscription

    def cancel_subscription(self, db: Session, user_id: str) -> UserSubscription:
        """Cancel user's active subscription"""
        self.logger.info(f"cancel_subscription: Entry - user: {user_id}")

        try:
            subscription = self.get_active_subscription(db, user_id)
            if not subscription:
                raise ValueError("No active subscription found")
            if subscription.plan and subscription.plan.is_free:
                raise ValueError("The free plan cannot be cancelled")

            transition(subscription, SubscriptionStatus.CANCELLED)
            self.history.record_cancellation(db, subscription, reason='user_requested')

            db.commit()
            db.refresh(subscription)

            self.logger.info(f"cancel_subscription: Success - user: {user_id}, subscription: {subscription.id}")
            return subscription
        except Exception as e:
            db.rollback()
            self.logger.error(f"cancel_subscription: Failure - {e}")
            raise

    def get_subscription_history(self, db: Session, user_id: str) -> list[dict]:
        return self.history.get_user_history(db, user_id)

    # Admin

    def admin_update_status(self, db: Session, subscription_id: str, status: str, admin_id: str) -> UserSubscription:
        """Override a subscription's status on behalf of an admin"""
        self.logger.info(f"admin_update_status: Entry - subscription: {subscription_id}, status: {status}, admin: {admin_id}")

        try:
            try:
                target = SubscriptionStatus(status)
            except ValueError:
                raise ValueError(f"Invalid status: {status}")

            subscription = self.get_subscription(db, subscription_id)
            if not subscription:
                raise LookupError("Subscription not found")

            previous_status = SubscriptionStatus(subscription.status)
            transition(subscription, target)
            if target == SubscriptionStatus.CANCELLED:
                self.history.record_cancellation(db, subscription, reason='admin_override')

            db.add(AuditLog(
                id=str(uuid.uuid4()),
                user_id=admin_id,
                action='update_subscription_status',
                resource_type='subscription',
                resource_id=subscription.id,
                details=json.dumps({'from': previous_status.value, 'to': target.value}),
            ))

            db.commit()
            db.refresh(subscription)
            self.logger.info(f"admin_update_status: Success - subscription: {subscription_id}")
            return subscription
        except Exception as e:
            db.rollback()
            self.logger.error(f"admin_update_status: Failure - {e}")
            raise

    def get_admin_overview(self, db: Session) -> dict:
        """All subscriptions with revenue and churn statistics"""
        self.logger.info("get_admin_overview: Entry")

        try:
            subscriptions = db.query(UserSubscription).order_by(UserSubscription.created_at.desc()).all()

            total = len(subscriptions)
            active = [s for s in subscriptions if SubscriptionStatus(s.status) == SubscriptionStatus.ACTIVE]
            cancelled = [s for s in subscriptions if SubscriptionStatus(s.status) == SubscriptionStatus.CANCELLED]
            total_revenue = sum((s.plan.price for s in active if s.plan), Decimal('0'))

            plan_distribution: dict[str, int] = {}
            for s in subscriptions:
                name = s.plan.name if s.plan else 'unknown'
                plan_distribution[name] = plan_distribution.get(name, 0) + 1

            items = []
            for s in subscriptions:
                item = serialize_subscription(s)
                item['user'] = {
                    'id': s.user.id,
                    'email': s.user.email,
                    'first_name': s.user.first_name,
                    'last_name': s.user.last_name,
                } if s.user else None
                items.append(item)

            result = {
                'subscriptions': items,
                'stats': {
                    'totalRevenue': float(total_revenue),
                    'activeSubscriptions': len(active),
                    'churnRate': round(len(cancelled) / total * 100, 2) if total else 0,
                    'planDistribution': plan_distribution,
                }
            }
            self.logger.info(f"get_admin_overview: Success - {total} subscriptions")
            return result
        except Exception as e:
            self.logger.error(f"get_admin_overview: Failure - {e}")
            raise
