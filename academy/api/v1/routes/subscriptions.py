import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from academy.core.database import get_db
from academy.core.middleware import get_current_user
from academy.models.subscription import SubscriptionStatus
from academy.services.payment_service import PaymentOutcome, PaymentRequest, PaymentService
from academy.services.subscription_service import SubscriptionService, serialize_subscription

router = APIRouter()
logger = logging.getLogger(__name__)


def get_subscription_service() -> SubscriptionService:
    """Dependency to get subscription service instance"""
    return SubscriptionService()


def get_payment_service() -> PaymentService:
    """Dependency to get payment service instance"""
    return PaymentService()


class CheckoutRequest(BaseModel):
    plan_name: str
    payment_method: str
    phone_number: Optional[str] = None  # mobile money / opay
    pay_currency: Optional[str] = None  # crypto, e.g. 'btc'


class ActivateRequest(BaseModel):
    payment_method: Optional[str] = None
    phone_number: Optional[str] = None
    pay_currency: Optional[str] = None


async def _start_payment(
    db: Session,
    subscription,
    payment_method: str,
    subscription_service: SubscriptionService,
    payment_service: PaymentService,
    phone_number: Optional[str] = None,
    pay_currency: Optional[str] = None,
) -> dict:
    user = subscription.user
    result = await payment_service.process_payment(PaymentRequest(
        subscription_id=subscription.id,
        amount=subscription.plan.price,
        currency="USD",
        payment_method=payment_method,
        email=user.email,
        full_name=user.full_name or None,
        phone_number=phone_number,
        pay_currency=pay_currency,
        description=f"Trading Academy {subscription.plan.display_name} subscription",
    ))

    if result.status == PaymentOutcome.FAILED:
        subscription_service.mark_payment_failed(db, subscription.id, payment_reference=result.reference)
        raise ValueError(result.error or "Payment initiation failed")
    return result.model_dump(mode='json')


@router.get("/plans")
async def get_plans(
    db: Session = Depends(get_db),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    Get all available subscription plans.
    Public endpoint - no authentication required.
    """
    logger.info("get_plans: Entry")

    try:
        plans = subscription_service.get_all_plans(db)
        logger.info(f"get_plans: Success - {len(plans)} plans")
        return {"plans": plans}
    except Exception as e:
        logger.error(f"get_plans: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.get("/current")
async def get_current_subscription(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    Get current user's subscription details.
    Requires authentication.
    """
    user_id = current_user['uid']
    logger.info(f"get_current_subscription: Entry - user: {user_id}")

    try:
        subscription = subscription_service.get_current_subscription(db, user_id)
        logger.info(f"get_current_subscription: Success - user: {user_id}")
        return subscription
    except LookupError as e:
        logger.error(f"get_current_subscription: LookupError - {e}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"get_current_subscription: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/checkout")
async def checkout(
    request: CheckoutRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """
    Start a paid subscription.
    The subscription stays pending until the payment provider confirms it.
    """
    user_id = current_user['uid']
    logger.info(f"checkout: Entry - user: {user_id}, plan: {request.plan_name}, method: {request.payment_method}")

    try:
        subscription = subscription_service.initiate_checkout(db, user_id, request.plan_name, request.payment_method)
        payment = await _start_payment(
            db, subscription, request.payment_method,
            subscription_service, payment_service,
            phone_number=request.phone_number,
            pay_currency=request.pay_currency,
        )
        logger.info(f"checkout: Success - user: {user_id}, subscription: {subscription.id}")
        return {
            "subscription": serialize_subscription(subscription),
            "payment": payment,
        }
    except ValueError as e:
        logger.error(f"checkout: ValueError - {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except LookupError as e:
        logger.error(f"checkout: LookupError - {e}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"checkout: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/activate")
async def activate_subscription(
    request: ActivateRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """
    Retry payment for the user's most recent subscription.
    Activation itself happens when the webhook or verification arrives.
    """
    user_id = current_user['uid']
    logger.info(f"activate_subscription: Entry - user: {user_id}")

    try:
        subscription = subscription_service.get_latest_subscription(db, user_id)
        if not subscription:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Subscription not found"
            )
        if SubscriptionStatus(subscription.status) == SubscriptionStatus.ACTIVE:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Subscription is already active"
            )

        payment_method = request.payment_method or subscription.payment_method
        if not payment_method:
            raise ValueError("A payment method is required")

        if SubscriptionStatus(subscription.status) != SubscriptionStatus.PENDING:
            subscription = subscription_service.reopen_for_payment(db, subscription.id, payment_method)

        payment = await _start_payment(
            db, subscription, payment_method,
            subscription_service, payment_service,
            phone_number=request.phone_number,
            pay_currency=request.pay_currency,
        )
        logger.info(f"activate_subscription: Success - user: {user_id}, subscription: {subscription.id}")
        return {
            "subscription": serialize_subscription(subscription),
            "payment": payment,
        }
    except HTTPException:
        raise
    except ValueError as e:
        logger.error(f"activate_subscription: ValueError - {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"activate_subscription: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/cancel")
async def cancel_subscription(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    Cancel current subscription.
    Requires authentication.
    """
    user_id = current_user['uid']
    logger.info(f"cancel_subscription: Entry - user: {user_id}")

    try:
        subscription = subscription_service.cancel_subscription(db, user_id)
        logger.info(f"cancel_subscription: Success - user: {user_id}, subscription: {subscription.id}")
        return {
            "subscription_id": subscription.id,
            "status": SubscriptionStatus(subscription.status).value,
            "message": "Subscription cancelled"
        }
    except ValueError as e:
        logger.error(f"cancel_subscription: ValueError - {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"cancel_subscription: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.get("/history")
async def get_subscription_history(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    Get subscription history for current user.
    Requires authentication.
    """
    user_id = current_user['uid']
    logger.info(f"get_subscription_history: Entry - user: {user_id}")

    try:
        history = subscription_service.get_subscription_history(db, user_id)
        logger.info(f"get_subscription_history: Success - user: {user_id}, count: {len(history)}")
        return {"history": history}
    except Exception as e:
        logger.error(f"get_subscription_history: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
