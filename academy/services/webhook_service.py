import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from academy.core.exceptions import WebhookSignatureError
from academy.services.flutterwave_service import FlutterwaveService
from academy.services.nowpayments_service import (NOWPAYMENTS_EXPIRED_STATUSES, NOWPAYMENTS_FAILED_STATUSES,
                                                  NOWPAYMENTS_SUCCESS_STATUSES, NowPaymentsService)
from academy.services.stripe_service import StripeService
from academy.services.subscription_service import SubscriptionService
from academy.services.subscription_state import InvalidTransitionError


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


class WebhookService:
    """
    Applies asynchronous payment notifications to subscriptions.

    Signature problems raise WebhookSignatureError before anything is read
    from the database. Once a delivery is authentic it is acknowledged even
    when it cannot be applied (unknown subscription, illegal status move), so
    the provider does not keep retrying it.
    """

    def __init__(
        self,
        subscription_service: Optional[SubscriptionService] = None,
        stripe_service: Optional[StripeService] = None,
        flutterwave_service: Optional[FlutterwaveService] = None,
        nowpayments_service: Optional[NowPaymentsService] = None,
    ):
        self.subscriptions = subscription_service or SubscriptionService()
        self.stripe = stripe_service or StripeService()
        self.flutterwave = flutterwave_service or FlutterwaveService()
        self.nowpayments = nowpayments_service or NowPaymentsService()
        self.logger = logging.getLogger(__name__)

    def _apply(self, action: str, fn, *args, **kwargs) -> Dict[str, Any]:
        try:
            fn(*args, **kwargs)
            return {'received': True, 'action': action}
        except LookupError as e:
            self.logger.warning(f"{action}: Ignored - {e}")
            return {'received': True, 'action': 'ignored', 'reason': str(e)}
        except InvalidTransitionError as e:
            self.logger.warning(f"{action}: Ignored - {e}")
            return {'received': True, 'action': 'ignored', 'reason': str(e)}

    # Stripe

    def handle_stripe(self, db: Session, payload: bytes, signature: str) -> Dict[str, Any]:
        self.logger.info("handle_stripe: Entry")

        event = self.stripe.construct_event(payload, signature)
        event_type = event['type']
        obj = event['data']['object']
        metadata = obj.get('metadata') or {}
        subscription_id = metadata.get('subscription_id')
        self.logger.info(f"handle_stripe: Event {event_type} - {obj.get('id')}")

        if event_type == 'payment_intent.succeeded':
            if not subscription_id:
                return {'received': True, 'action': 'ignored', 'reason': 'no subscription_id in metadata'}
            amount = _to_decimal(obj.get('amount_received', obj.get('amount')))
            result = self._apply(
                'handle_stripe',
                self.subscriptions.confirm_payment,
                db, subscription_id,
                payment_method='stripe',
                payment_reference=obj['id'],
                amount=amount / 100 if amount is not None else None,
                currency=(obj.get('currency') or 'usd').upper(),
            )
        elif event_type == 'payment_intent.payment_failed':
            if not subscription_id:
                return {'received': True, 'action': 'ignored', 'reason': 'no subscription_id in metadata'}
            result = self._apply('handle_stripe', self.subscriptions.mark_payment_failed,
                                 db, subscription_id, payment_reference=obj['id'])
        elif event_type == 'payment_intent.canceled':
            if not subscription_id:
                return {'received': True, 'action': 'ignored', 'reason': 'no subscription_id in metadata'}
            result = self._apply('handle_stripe', self.subscriptions.mark_payment_cancelled,
                                 db, subscription_id, payment_reference=obj['id'])
        elif event_type == 'charge.refunded':
            self.logger.info(f"handle_stripe: Charge refunded - {obj.get('id')}, intent: {obj.get('payment_intent')}")
            result = {'received': True, 'action': 'logged'}
        else:
            self.logger.info(f"handle_stripe: Unhandled event type {event_type}")
            result = {'received': True, 'action': 'ignored'}

        self.logger.info(f"handle_stripe: Success - {event_type}, {result['action']}")
        return result

    # NOWPayments

    def handle_nowpayments(self, db: Session, body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        self.logger.info("handle_nowpayments: Entry")

        if not self.nowpayments.verify_ipn_signature(body, signature):
            raise WebhookSignatureError("Invalid NOWPayments signature")

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValueError("Invalid JSON payload")

        payment_id = str(payload.get('payment_id'))
        status = payload.get('payment_status')
        subscription_id = payload.get('order_id')
        self.logger.info(f"handle_nowpayments: payment {payment_id} is {status}, order: {subscription_id}")

        if not subscription_id:
            return {'received': True, 'action': 'ignored', 'reason': 'no order_id'}

        if status in NOWPAYMENTS_SUCCESS_STATUSES:
            result = self._apply(
                'handle_nowpayments',
                self.subscriptions.confirm_payment,
                db, subscription_id,
                payment_method='crypto',
                payment_reference=payment_id,
                amount=_to_decimal(payload.get('price_amount')),
                currency=(payload.get('price_currency') or 'usd').upper(),
            )
        elif status in NOWPAYMENTS_FAILED_STATUSES:
            result = self._apply('handle_nowpayments', self.subscriptions.mark_payment_failed,
                                 db, subscription_id, payment_reference=payment_id)
        elif status in NOWPAYMENTS_EXPIRED_STATUSES:
            result = self._apply('handle_nowpayments', self.subscriptions.mark_payment_expired,
                                 db, subscription_id, payment_reference=payment_id)
        else:
            # waiting, confirming, confirmed, sending, partially_paid, refunded
            result = {'received': True, 'action': 'logged'}

        self.logger.info(f"handle_nowpayments: Success - {status}, {result['action']}")
        return result

    # Flutterwave

    def handle_flutterwave(self, db: Session, body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        self.logger.info("handle_flutterwave: Entry")

        if not self.flutterwave.verify_webhook_signature(body, signature):
            raise WebhookSignatureError("Invalid Flutterwave signature")

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValueError("Invalid JSON payload")

        event = payload.get('event')
        data = payload.get('data') or {}
        meta = data.get('meta') or payload.get('meta_data') or {}
        subscription_id = meta.get('subscription_id')
        reference = data.get('flw_ref') or data.get('tx_ref')

        if not subscription_id:
            return {'received': True, 'action': 'ignored', 'reason': 'no subscription_id in meta'}

        if event == 'charge.completed' and data.get('status') == 'successful':
            result = self._apply(
                'handle_flutterwave',
                self.subscriptions.confirm_payment,
                db, subscription_id,
                payment_method=meta.get('payment_method') or 'mobile_money',
                payment_reference=reference,
                amount=_to_decimal(data.get('amount')),
                currency=data.get('currency'),
            )
        elif event == 'charge.failed' or (event == 'charge.completed' and data.get('status') == 'failed'):
            result = self._apply('handle_flutterwave', self.subscriptions.mark_payment_failed,
                                 db, subscription_id, payment_reference=reference)
        else:
            result = {'received': True, 'action': 'ignored'}

        self.logger.info(f"handle_flutterwave: Success - {event}, {result['action']}")
        return result

    async def verify_flutterwave_payment(self, db: Session, transaction_id: str) -> Dict[str, Any]:
        """Pull-based confirmation for clients returning from the Flutterwave checkout"""
        self.logger.info(f"verify_flutterwave_payment: Entry - transaction: {transaction_id}")

        response = await self.flutterwave.verify_payment(transaction_id)
        data = response.get('data') or {}
        if response.get('status') != 'success' or data.get('status') != 'successful':
            self.logger.warning(f"verify_flutterwave_payment: Not successful - {response.get('message')}")
            raise ValueError("Payment verification failed")

        subscription_id = (data.get('meta') or {}).get('subscription_id')
        if subscription_id:
            self.subscriptions.confirm_payment(
                db, subscription_id,
                payment_method=(data.get('meta') or {}).get('payment_method') or 'mobile_money',
                payment_reference=data.get('flw_ref') or data.get('tx_ref'),
                amount=_to_decimal(data.get('amount')),
                currency=data.get('currency'),
            )

        self.logger.info(f"verify_flutterwave_payment: Success - transaction: {transaction_id}")
        return {
            'transactionId': data.get('flw_ref'),
            'amount': data.get('amount'),
            'currency': data.get('currency'),
            'status': data.get('status'),
        }
