from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from academy.core.database import get_db
from academy.core.middleware import get_current_admin
from academy.services.forum_service import ForumService, serialize_category
from academy.services.subscription_service import SubscriptionService, serialize_plan, serialize_subscription
from pydantic import BaseModel
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


def get_subscription_service() -> SubscriptionService:
    return SubscriptionService()


def get_forum_service() -> ForumService:
    return ForumService()


class UpdateSubscriptionStatusRequest(BaseModel):
    status: str


class CategoryRequest(BaseModel):
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    sort_order: int = 0
    is_active: bool = True


class CategoryUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


def _http_error(operation: str, e: Exception) -> HTTPException:
    if isinstance(e, LookupError):
        logger.error(f"{operation}: LookupError - {e}")
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ValueError):
        logger.error(f"{operation}: ValueError - {e}")
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    logger.error(f"{operation}: Failure - {e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.get("/subscriptions")
async def list_subscriptions(
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    All subscriptions with revenue, churn and plan distribution.
    Only admins can use this endpoint.
    """
    logger.info(f"list_subscriptions: Entry - admin: {current_admin['uid']}")

    try:
        overview = subscription_service.get_admin_overview(db)
        logger.info(f"list_subscriptions: Success - count: {len(overview['subscriptions'])}")
        return overview
    except Exception as e:
        raise _http_error("list_subscriptions", e)


@router.patch("/subscriptions/{subscription_id}")
async def update_subscription_status(
    subscription_id: str,
    request: UpdateSubscriptionStatusRequest,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    logger.info(f"update_subscription_status: Entry - subscription: {subscription_id}, status: {request.status}")

    try:
        subscription = subscription_service.admin_update_status(
            db, subscription_id, request.status, admin_id=current_admin['uid'])
        logger.info(f"update_subscription_status: Success - subscription: {subscription_id}")
        return serialize_subscription(subscription)
    except Exception as e:
        raise _http_error("update_subscription_status", e)


@router.post("/subscription-plans/free")
async def add_free_plan(
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    logger.info(f"add_free_plan: Entry - admin: {current_admin['uid']}")

    try:
        plan, created = subscription_service.ensure_free_plan(db)
        logger.info(f"add_free_plan: Success - created: {created}")
        return {
            "message": "Free plan created" if created else "Free plan already exists",
            "created": created,
            "plan": serialize_plan(plan),
        }
    except Exception as e:
        raise _http_error("add_free_plan", e)


@router.get("/forum-categories")
async def list_forum_categories(
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin),
    forum_service: ForumService = Depends(get_forum_service)
):
    try:
        return {"categories": forum_service.list_categories(db, active_only=False)}
    except Exception as e:
        raise _http_error("list_forum_categories", e)


@router.post("/forum-categories", status_code=status.HTTP_201_CREATED)
async def create_forum_category(
    request: CategoryRequest,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin),
    forum_service: ForumService = Depends(get_forum_service)
):
    logger.info(f"create_forum_category: Entry - name: {request.name}")

    try:
        category = forum_service.create_category(
            db,
            name=request.name,
            description=request.description,
            color=request.color,
            sort_order=request.sort_order,
            is_active=request.is_active,
        )
        logger.info(f"create_forum_category: Success - {category.id}")
        return serialize_category(category)
    except Exception as e:
        raise _http_error("create_forum_category", e)


@router.put("/forum-categories/{category_id}")
async def update_forum_category(
    category_id: str,
    request: CategoryUpdateRequest,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin),
    forum_service: ForumService = Depends(get_forum_service)
):
    logger.info(f"update_forum_category: Entry - category: {category_id}")

    try:
        category = forum_service.update_category(db, category_id, **request.model_dump(exclude_unset=True))
        logger.info(f"update_forum_category: Success - {category_id}")
        return serialize_category(category)
    except Exception as e:
        raise _http_error("update_forum_category", e)


@router.delete("/forum-categories/{category_id}")
async def delete_forum_category(
    category_id: str,
    db: Session = Depends(get_db),
    current_admin: dict = Depends(get_current_admin),
    forum_service: ForumService = Depends(get_forum_service)
):
    logger.info(f"delete_forum_category: Entry - category: {category_id}")

    try:
        forum_service.delete_category(db, category_id)
        logger.info(f"delete_forum_category: Success - {category_id}")
        return {"message": "Category deleted"}
    except Exception as e:
        raise _http_error("delete_forum_category", e)
