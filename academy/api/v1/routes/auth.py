import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from academy.core.config import settings
from academy.core.database import get_db
from academy.core.middleware import AUTH_COOKIE_NAMES, get_current_user
from academy.services.auth_service import AuthService, serialize_user

router = APIRouter()
logger = logging.getLogger(__name__)


def get_auth_service() -> AuthService:
    """Dependency to get auth service instance"""
    return AuthService()


class SignupRequest(BaseModel):
    email: str
    password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class SigninRequest(BaseModel):
    email: str
    password: str


def _set_session_cookie(response: Response, token: str):
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        max_age=settings.jwt_expire_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    request: SignupRequest,
    response: Response,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Create an account on the free plan and start a session.
    Public endpoint - no authentication required.
    """
    logger.info(f"signup: Entry - email: {request.email}")

    try:
        user = auth_service.signup(
            db,
            email=request.email,
            password=request.password,
            first_name=request.first_name,
            last_name=request.last_name,
        )
        _set_session_cookie(response, auth_service.issue_token(user))
        logger.info(f"signup: Success - user: {user.id}")
        return {"user": serialize_user(user)}
    except ValueError as e:
        logger.error(f"signup: ValueError - {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"signup: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/signin")
async def signin(
    request: SigninRequest,
    response: Response,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    logger.info(f"signin: Entry - email: {request.email}")

    try:
        user = auth_service.authenticate(db, request.email, request.password)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials"
            )
        _set_session_cookie(response, auth_service.issue_token(user))
        logger.info(f"signin: Success - user: {user.id}")
        return {"user": serialize_user(user)}
    except HTTPException:
        raise
    except PermissionError as e:
        logger.warning(f"signin: Forbidden - {e}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"signin: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/signout")
async def signout(response: Response):
    for name in AUTH_COOKIE_NAMES:
        response.delete_cookie(key=name, path="/")
    return {"message": "Signed out"}


@router.get("/me")
async def get_me(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service)
):
    user_id = current_user['uid']
    logger.info(f"get_me: Entry - user: {user_id}")

    try:
        user = auth_service.get_user(db, user_id)
        logger.info(f"get_me: Success - user: {user_id}")
        return {"user": serialize_user(user)}
    except LookupError as e:
        logger.error(f"get_me: LookupError - {e}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"get_me: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
