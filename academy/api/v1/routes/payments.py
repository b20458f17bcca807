import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from academy.core.config import settings
from academy.core.database import get_db
from academy.core.exceptions import PaymentProviderError
from academy.core.middleware import get_current_user
from academy.services.nowpayments_service import NowPaymentsService
from academy.services.stripe_service import StripeService
from academy.services.subscription_service import SubscriptionService
from academy.services.webhook_service import WebhookService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_stripe_service() -> StripeService:
    return StripeService()


def get_nowpayments_service() -> NowPaymentsService:
    return NowPaymentsService()


def get_subscription_service() -> SubscriptionService:
    return SubscriptionService()


def get_webhook_service() -> WebhookService:
    return WebhookService()


class CreatePaymentIntentRequest(BaseModel):
    subscription_id: str
    currency: str = "usd"


class CreateCryptoPaymentRequest(BaseModel):
    subscription_id: str
    pay_currency: str = "btc"


class VerifyPaymentRequest(BaseModel):
    transaction_id: str


def _owned_subscription(db: Session, subscription_service: SubscriptionService, subscription_id: str, user_id: str):
    subscription = subscription_service.get_subscription(db, subscription_id)
    if not subscription or subscription.user_id != user_id:
        raise LookupError("Subscription not found")
    return subscription


def _provider_error(e: PaymentProviderError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=str(e)
    )


@router.post("/stripe/create-payment-intent")
async def create_payment_intent(
    request: CreatePaymentIntentRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    stripe_service: StripeService = Depends(get_stripe_service),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    user_id = current_user['uid']
    logger.info(f"create_payment_intent: Entry - user: {user_id}, subscription: {request.subscription_id}")

    try:
        subscription = _owned_subscription(db, subscription_service, request.subscription_id, user_id)
        intent = stripe_service.create_payment_intent(
            amount=subscription.plan.price,
            currency=request.currency,
            metadata={
                'subscription_id': subscription.id,
                'user_id': user_id,
                'plan': subscription.plan.name,
            },
            receipt_email=current_user.get('email'),
        )
        logger.info(f"create_payment_intent: Success - intent: {intent['id']}")
        return {"clientSecret": intent['client_secret'], "paymentIntentId": intent['id']}
    except LookupError as e:
        logger.error(f"create_payment_intent: LookupError - {e}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except PaymentProviderError as e:
        logger.error(f"create_payment_intent: Provider error - {e}")
        raise _provider_error(e)
    except Exception as e:
        logger.error(f"create_payment_intent: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.get("/nowpayments/currencies")
async def get_crypto_currencies(
    nowpayments_service: NowPaymentsService = Depends(get_nowpayments_service)
):
    """Public endpoint - no authentication required."""
    logger.info("get_crypto_currencies: Entry")

    try:
        currencies = await nowpayments_service.get_available_currencies()
        logger.info(f"get_crypto_currencies: Success - {len(currencies)} currencies")
        return {"currencies": currencies}
    except PaymentProviderError as e:
        logger.error(f"get_crypto_currencies: Provider error - {e}")
        raise _provider_error(e)
    except Exception as e:
        logger.error(f"get_crypto_currencies: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.get("/nowpayments/estimate")
async def get_crypto_estimate(
    amount: float,
    currency_to: str,
    currency_from: str = "usd",
    nowpayments_service: NowPaymentsService = Depends(get_nowpayments_service)
):
    logger.info(f"get_crypto_estimate: Entry - {amount} {currency_from} -> {currency_to}")

    try:
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        estimate = await nowpayments_service.get_estimate(amount, currency_from, currency_to)
        minimum = await nowpayments_service.get_minimum_amount(currency_from, currency_to)
        logger.info(f"get_crypto_estimate: Success - {estimate.get('estimated_amount')}")
        return {"estimate": estimate, "minimum": minimum}
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except PaymentProviderError as e:
        logger.error(f"get_crypto_estimate: Provider error - {e}")
        raise _provider_error(e)
    except Exception as e:
        logger.error(f"get_crypto_estimate: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/nowpayments/create-payment")
async def create_crypto_payment(
    request: CreateCryptoPaymentRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    nowpayments_service: NowPaymentsService = Depends(get_nowpayments_service),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    user_id = current_user['uid']
    logger.info(f"create_crypto_payment: Entry - user: {user_id}, subscription: {request.subscription_id}")

    try:
        subscription = _owned_subscription(db, subscription_service, request.subscription_id, user_id)
        payment = await nowpayments_service.create_payment(
            price_amount=float(subscription.plan.price),
            price_currency="usd",
            pay_currency=request.pay_currency,
            order_id=subscription.id,
            order_description=f"Trading Academy {subscription.plan.display_name} subscription",
            customer_email=current_user.get('email'),
            ipn_callback_url=f"{settings.app_url.rstrip('/')}{settings.api_v1_str}/webhooks/nowpayments",
        )
        logger.info(f"create_crypto_payment: Success - payment: {payment.get('payment_id')}")
        return payment
    except LookupError as e:
        logger.error(f"create_crypto_payment: LookupError - {e}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except PaymentProviderError as e:
        logger.error(f"create_crypto_payment: Provider error - {e}")
        raise _provider_error(e)
    except Exception as e:
        logger.error(f"create_crypto_payment: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.get("/nowpayments/payment-status/{payment_id}")
async def get_crypto_payment_status(
    payment_id: str,
    current_user: dict = Depends(get_current_user),
    nowpayments_service: NowPaymentsService = Depends(get_nowpayments_service)
):
    logger.info(f"get_crypto_payment_status: Entry - payment: {payment_id}")

    try:
        payment = await nowpayments_service.get_payment_status(payment_id)
        logger.info(f"get_crypto_payment_status: Success - {payment.get('payment_status')}")
        return payment
    except PaymentProviderError as e:
        logger.error(f"get_crypto_payment_status: Provider error - {e}")
        raise _provider_error(e)
    except Exception as e:
        logger.error(f"get_crypto_payment_status: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/verify")
async def verify_payment(
    request: VerifyPaymentRequest,
    db: Session = Depends(get_db),
    webhook_service: WebhookService = Depends(get_webhook_service)
):
    """Confirm a Flutterwave payment the client was redirected back from"""
    logger.info(f"verify_payment: Entry - transaction: {request.transaction_id}")

    try:
        result = await webhook_service.verify_flutterwave_payment(db, request.transaction_id)
        logger.info(f"verify_payment: Success - transaction: {request.transaction_id}")
        return {"success": True, **result}
    except (ValueError, PaymentProviderError) as e:
        logger.error(f"verify_payment: Failed - {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment verification failed"
        )
    except LookupError as e:
        logger.error(f"verify_payment: LookupError - {e}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"verify_payment: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
