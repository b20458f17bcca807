import logging
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from academy.core.config import settings
from academy.services.flutterwave_service import FlutterwaveService
from academy.services.nowpayments_service import NowPaymentsService
from academy.services.stripe_service import StripeService


class PaymentMethod(str, Enum):
    CRYPTO = "crypto"
    STRIPE = "stripe"
    CARD_PAYMENT = "card_payment"
    GOOGLE_PAY = "google_pay"
    APPLE_PAY = "apple_pay"
    MOBILE_MONEY = "mobile_money"
    BANK_TRANSFER = "bank_transfer"
    OPAY = "opay"


CARD_METHODS = {
    PaymentMethod.STRIPE,
    PaymentMethod.CARD_PAYMENT,
    PaymentMethod.GOOGLE_PAY,
    PaymentMethod.APPLE_PAY,
}

SUPPORTED_METHODS = {m.value for m in PaymentMethod}


class PaymentOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    PENDING = "pending"
    FAILED = "failed"


class PaymentRequest(BaseModel):
    subscription_id: str
    amount: Decimal
    currency: str = "USD"
    payment_method: str
    email: str
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    pay_currency: Optional[str] = None  # crypto only, e.g. 'btc'
    description: Optional[str] = None


class PaymentResult(BaseModel):
    success: bool
    status: PaymentOutcome
    provider: Optional[str] = None
    reference: Optional[str] = None
    payment_url: Optional[str] = None
    client_secret: Optional[str] = None
    pay_address: Optional[str] = None
    pay_amount: Optional[float] = None
    instructions: Optional[dict] = None
    error: Optional[str] = None


class PaymentService:
    """Routes a checkout to the provider that handles its payment method"""

    def __init__(
        self,
        stripe_service: Optional[StripeService] = None,
        flutterwave_service: Optional[FlutterwaveService] = None,
        nowpayments_service: Optional[NowPaymentsService] = None,
    ):
        self.stripe = stripe_service or StripeService()
        self.flutterwave = flutterwave_service or FlutterwaveService()
        self.nowpayments = nowpayments_service or NowPaymentsService()
        self.logger = logging.getLogger(__name__)

    async def process_payment(self, request: PaymentRequest) -> PaymentResult:
        self.logger.info(f"process_payment: Entry - subscription: {request.subscription_id}, method: {request.payment_method}")

        if request.payment_method not in SUPPORTED_METHODS:
            self.logger.warning(f"process_payment: Unsupported method {request.payment_method}")
            return PaymentResult(
                success=False,
                status=PaymentOutcome.FAILED,
                error=f"Payment method '{request.payment_method}' is not supported"
            )

        method = PaymentMethod(request.payment_method)
        try:
            if method in CARD_METHODS:
                result = self._process_card(request)
            elif method == PaymentMethod.CRYPTO:
                result = await self._process_crypto(request)
            elif method == PaymentMethod.BANK_TRANSFER:
                result = await self._process_bank_transfer(request)
            else:
                result = await self._process_mobile_money(request)

            self.logger.info(f"process_payment: Success - subscription: {request.subscription_id}, "
                             f"status: {result.status.value}, reference: {result.reference}")
            return result
        except Exception as e:
            self.logger.error(f"process_payment: Failure - {e}")
            return PaymentResult(
                success=False,
                status=PaymentOutcome.FAILED,
                error=str(e)
            )

    def _process_card(self, request: PaymentRequest) -> PaymentResult:
        intent = self.stripe.create_payment_intent(
            amount=request.amount,
            currency=request.currency,
            metadata={
                'subscription_id': request.subscription_id,
                'payment_method': request.payment_method,
            },
            receipt_email=request.email,
        )
        return PaymentResult(
            success=True,
            status=PaymentOutcome.SUCCEEDED if intent['status'] == 'succeeded' else PaymentOutcome.PENDING,
            provider='stripe',
            reference=intent['id'],
            client_secret=intent['client_secret'],
        )

    async def _process_crypto(self, request: PaymentRequest) -> PaymentResult:
        payment = await self.nowpayments.create_payment(
            price_amount=float(request.amount),
            price_currency=request.currency,
            pay_currency=request.pay_currency or 'btc',
            order_id=request.subscription_id,
            order_description=request.description,
            customer_email=request.email,
            ipn_callback_url=f"{settings.app_url.rstrip('/')}{settings.api_v1_str}/webhooks/nowpayments",
        )
        return PaymentResult(
            success=True,
            status=PaymentOutcome.PENDING,
            provider='nowpayments',
            reference=str(payment.get('payment_id')),
            pay_address=payment.get('pay_address'),
            pay_amount=payment.get('pay_amount'),
        )

    def _flutterwave_result(self, response: dict) -> PaymentResult:
        data = response.get('data') or {}
        if response.get('status') != 'success':
            return PaymentResult(
                success=False,
                status=PaymentOutcome.FAILED,
                provider='flutterwave',
                reference=data.get('tx_ref'),
                error=response.get('message') or 'Payment initiation failed',
            )
        meta = response.get('meta') or {}
        authorization = meta.get('authorization') or {}
        return PaymentResult(
            success=True,
            status=PaymentOutcome.SUCCEEDED if data.get('status') == 'successful' else PaymentOutcome.PENDING,
            provider='flutterwave',
            reference=data.get('tx_ref') or data.get('flw_ref'),
            payment_url=authorization.get('redirect'),
            instructions=authorization or None,
        )

    async def _process_mobile_money(self, request: PaymentRequest) -> PaymentResult:
        if not request.phone_number:
            return PaymentResult(
                success=False,
                status=PaymentOutcome.FAILED,
                error="Phone number is required for mobile money payments"
            )
        response = await self.flutterwave.initiate_mobile_money(
            tx_ref=self.flutterwave.generate_transaction_ref(),
            amount=float(request.amount),
            currency=request.currency,
            email=request.email,
            phone_number=request.phone_number,
            fullname=request.full_name or request.email,
            redirect_url=f"{settings.app_url.rstrip('/')}/subscription?payment=complete",
            meta={'subscription_id': request.subscription_id, 'payment_method': request.payment_method},
        )
        return self._flutterwave_result(response)

    async def _process_bank_transfer(self, request: PaymentRequest) -> PaymentResult:
        response = await self.flutterwave.initiate_bank_transfer(
            tx_ref=self.flutterwave.generate_transaction_ref(),
            amount=float(request.amount),
            currency=request.currency,
            email=request.email,
            meta={'subscription_id': request.subscription_id, 'payment_method': request.payment_method},
        )
        return self._flutterwave_result(response)
