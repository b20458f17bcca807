import hmac
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from academy.core.config import settings
from academy.core.database import get_db
from academy.services.scheduler_service import SchedulerService

# Mounted under /cron (external cron hosts) and /scheduler (internal trigger).
# Handlers that run the scan are plain functions so FastAPI runs them in its threadpool.
cron_router = APIRouter()
router = APIRouter()
logger = logging.getLogger(__name__)


def get_scheduler_service() -> SchedulerService:
    """Dependency to get scheduler service instance"""
    return SchedulerService()


def _key_matches(provided: Optional[str], expected: Optional[str]) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided, expected)


def _require_api_key(provided: Optional[str], expected: Optional[str], source: str):
    if not _key_matches(provided, expected):
        logger.warning(f"{source}: Unauthorized - invalid or missing x-api-key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )


def _run(db: Session, scheduler_service: SchedulerService, source: str) -> dict:
    logger.info(f"{source}: Entry")
    try:
        results = scheduler_service.run_scheduled_tasks(db)
        message = (
            "Subscription check skipped, another run is in progress"
            if results['skipped'] else "Subscription check completed"
        )
        logger.info(f"{source}: Success - {results}")
        return {
            "success": True,
            "message": message,
            "timestamp": datetime.utcnow().isoformat(),
            "results": results,
        }
    except Exception as e:
        logger.error(f"{source}: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@cron_router.get("/subscription-check")
def cron_subscription_check(
    user_agent: Optional[str] = Header(None, alias="user-agent"),
    x_cron_secret: Optional[str] = Header(None, alias="x-cron-secret"),
    db: Session = Depends(get_db),
    scheduler_service: SchedulerService = Depends(get_scheduler_service)
):
    """
    Trigger used by hosted cron services.
    Accepted when the user agent identifies a cron runner or the shared
    secret matches. Outside production any caller is accepted.
    """
    from_cron = 'cron' in (user_agent or '').lower()
    if not (from_cron or _key_matches(x_cron_secret, settings.cron_secret)) and settings.is_production:
        logger.warning(f"cron_subscription_check: Unauthorized - user agent: {user_agent}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )
    return _run(db, scheduler_service, "cron_subscription_check")


@cron_router.post("/subscription-check")
def cron_subscription_check_manual(
    x_api_key: Optional[str] = Header(None, alias="x-api-key"),
    db: Session = Depends(get_db),
    scheduler_service: SchedulerService = Depends(get_scheduler_service)
):
    _require_api_key(x_api_key, settings.cron_api_key, "cron_subscription_check_manual")
    return _run(db, scheduler_service, "cron_subscription_check_manual")


@router.get("/run")
async def scheduler_status():
    return {
        "success": True,
        "message": "Subscription scheduler is available. POST with x-api-key to run it.",
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.post("/run")
def run_scheduler(
    x_api_key: Optional[str] = Header(None, alias="x-api-key"),
    db: Session = Depends(get_db),
    scheduler_service: SchedulerService = Depends(get_scheduler_service)
):
    _require_api_key(x_api_key, settings.scheduler_api_key, "run_scheduler")
    return _run(db, scheduler_service, "run_scheduler")
