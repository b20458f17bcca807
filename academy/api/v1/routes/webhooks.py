import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from academy.core.database import get_db
from academy.core.exceptions import WebhookSignatureError
from academy.services.webhook_service import WebhookService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_webhook_service() -> WebhookService:
    """Dependency to get webhook service instance"""
    return WebhookService()


def _signature_error(provider: str, e: WebhookSignatureError) -> HTTPException:
    logger.warning(f"{provider}_webhook: Rejected - {e}")
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid signature"
    )


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    db: Session = Depends(get_db),
    webhook_service: WebhookService = Depends(get_webhook_service)
):
    logger.info("stripe_webhook: Entry")

    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing stripe-signature header"
        )

    body = await request.body()
    try:
        result = webhook_service.handle_stripe(db, body, stripe_signature)
        logger.info(f"stripe_webhook: Success - {result}")
        return result
    except WebhookSignatureError as e:
        raise _signature_error("stripe", e)
    except Exception as e:
        logger.error(f"stripe_webhook: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/nowpayments")
async def nowpayments_webhook(
    request: Request,
    x_nowpayments_sig: Optional[str] = Header(None, alias="x-nowpayments-sig"),
    db: Session = Depends(get_db),
    webhook_service: WebhookService = Depends(get_webhook_service)
):
    logger.info("nowpayments_webhook: Entry")

    body = await request.body()
    try:
        result = webhook_service.handle_nowpayments(db, body, x_nowpayments_sig)
        logger.info(f"nowpayments_webhook: Success - {result}")
        return result
    except WebhookSignatureError as e:
        raise _signature_error("nowpayments", e)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"nowpayments_webhook: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/flutterwave")
async def flutterwave_webhook(
    request: Request,
    verif_hash: Optional[str] = Header(None, alias="verif-hash"),
    db: Session = Depends(get_db),
    webhook_service: WebhookService = Depends(get_webhook_service)
):
    logger.info("flutterwave_webhook: Entry")

    body = await request.body()
    try:
        result = webhook_service.handle_flutterwave(db, body, verif_hash)
        logger.info(f"flutterwave_webhook: Success - {result}")
        return result
    except WebhookSignatureError as e:
        raise _signature_error("flutterwave", e)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"flutterwave_webhook: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
