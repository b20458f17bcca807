import json
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import stripe

from academy.core.config import settings
from academy.core.exceptions import PaymentProviderError, WebhookSignatureError


class StripeService:
    """Card payments through Stripe PaymentIntents"""

    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.stripe_secret_key
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def to_minor_units(amount: Decimal | float) -> int:
        """Dollars to cents, rounded half up"""
        return int((Decimal(str(amount)) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    def create_payment_intent(
        self,
        amount: Decimal | float,
        currency: str = "usd",
        metadata: Optional[Dict[str, str]] = None,
        receipt_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        self.logger.info(f"create_payment_intent: Entry - amount: {amount} {currency}, metadata: {metadata}")
        try:
            params = {
                'amount': self.to_minor_units(amount),
                'currency': currency.lower(),
                'metadata': metadata or {},
                'automatic_payment_methods': {'enabled': True},
            }
            if receipt_email:
                params['receipt_email'] = receipt_email
            intent = stripe.PaymentIntent.create(api_key=self.api_key, **params)
            self.logger.info(f"create_payment_intent: Success - intent: {intent['id']}")
            return {
                'id': intent['id'],
                'client_secret': intent['client_secret'],
                'status': intent['status'],
            }
        except stripe.StripeError as e:
            self.logger.error(f"create_payment_intent: Failure - {e}")
            raise PaymentProviderError('stripe', str(e), status_code=getattr(e, 'http_status', None))

    def retrieve_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        self.logger.info(f"retrieve_payment_intent: Entry - intent: {payment_intent_id}")
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.api_key).to_dict()
            self.logger.info(f"retrieve_payment_intent: Success - status: {intent['status']}")
            return {
                'id': intent['id'],
                'status': intent['status'],
                'amount': intent['amount'],
                'currency': intent['currency'],
                'metadata': dict(intent.get('metadata') or {}),
            }
        except stripe.StripeError as e:
            self.logger.error(f"retrieve_payment_intent: Failure - {e}")
            raise PaymentProviderError('stripe', str(e), status_code=getattr(e, 'http_status', None))

    def construct_event(self, payload: bytes, sig_header: str) -> Dict[str, Any]:
        """
        Verify a webhook delivery and return the event as a plain dict.

        Raises:
            WebhookSignatureError: if the signature does not match or no
                webhook secret is configured
        """
        if not self.webhook_secret:
            raise WebhookSignatureError("Stripe webhook secret is not configured")
        try:
            stripe.Webhook.construct_event(payload, sig_header, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(f"Invalid Stripe signature: {e}")
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid Stripe payload: {e}")
        # Current SDKs return a StripeObject without dict methods, so hand back the verified JSON
        return json.loads(payload)
