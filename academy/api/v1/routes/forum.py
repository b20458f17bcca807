import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from academy.core.database import get_db
from academy.core.middleware import get_current_user, get_optional_user
from academy.services.forum_service import ForumService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_forum_service() -> ForumService:
    """Dependency to get forum service instance"""
    return ForumService()


class CreatePostRequest(BaseModel):
    category_id: str
    content: str
    title: Optional[str] = None
    parent_id: Optional[str] = None


class VoteRequest(BaseModel):
    vote: str  # 'up' or 'down'


@router.get("/categories")
async def list_categories(
    db: Session = Depends(get_db),
    forum_service: ForumService = Depends(get_forum_service)
):
    logger.info("list_categories: Entry")

    try:
        categories = forum_service.list_categories(db)
        logger.info(f"list_categories: Success - {len(categories)} categories")
        return {"categories": categories}
    except Exception as e:
        logger.error(f"list_categories: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.get("/posts")
async def list_posts(
    category_id: Optional[str] = None,
    parent_id: Optional[str] = None,
    limit: int = 50,
    db: Session = Depends(get_db),
    current_user: Optional[dict] = Depends(get_optional_user),
    forum_service: ForumService = Depends(get_forum_service)
):
    """
    Posts with vote totals, newest first.
    The viewer's own vote is included when a session cookie is present.
    """
    try:
        posts = forum_service.list_posts(
            db,
            category_id=category_id,
            parent_id=parent_id,
            viewer_id=current_user['uid'] if current_user else None,
            limit=min(max(limit, 1), 100),
        )
        return {"posts": posts}
    except Exception as e:
        logger.error(f"list_posts: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/posts", status_code=status.HTTP_201_CREATED)
async def create_post(
    request: CreatePostRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    forum_service: ForumService = Depends(get_forum_service)
):
    user_id = current_user['uid']
    logger.info(f"create_post: Entry - user: {user_id}, category: {request.category_id}")

    try:
        post = forum_service.create_post(
            db,
            user_id=user_id,
            category_id=request.category_id,
            content=request.content,
            title=request.title,
            parent_id=request.parent_id,
        )
        logger.info(f"create_post: Success - {post.id}")
        return {
            "id": post.id,
            "category_id": post.category_id,
            "parent_id": post.parent_id,
            "title": post.title,
            "content": post.content,
            "created_at": post.created_at.isoformat() if post.created_at else None,
        }
    except PermissionError as e:
        logger.warning(f"create_post: Forbidden - {e}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(e)
        )
    except LookupError as e:
        logger.error(f"create_post: LookupError - {e}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except ValueError as e:
        logger.error(f"create_post: ValueError - {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"create_post: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/posts/{post_id}/vote")
async def vote_on_post(
    post_id: str,
    request: VoteRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    forum_service: ForumService = Depends(get_forum_service)
):
    user_id = current_user['uid']
    logger.info(f"vote_on_post: Entry - user: {user_id}, post: {post_id}")

    try:
        result = forum_service.record_vote(db, user_id, post_id, request.vote)
        logger.info(f"vote_on_post: Success - post: {post_id}")
        return result
    except LookupError as e:
        logger.error(f"vote_on_post: LookupError - {e}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except ValueError as e:
        logger.error(f"vote_on_post: ValueError - {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"vote_on_post: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
