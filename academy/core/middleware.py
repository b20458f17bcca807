from typing import Optional

from fastapi import Request, HTTPException, status, Depends
from academy.core.config import settings
from academy.core.security import verify_access_token
import logging

logger = logging.getLogger(__name__)

# Older clients set the hyphenated cookie name
AUTH_COOKIE_NAMES = (settings.auth_cookie_name, "auth-token")


def extract_token(request: Request) -> Optional[str]:
    """Read the session token from the auth cookies"""
    for name in AUTH_COOKIE_NAMES:
        token = request.cookies.get(name)
        if token:
            return token
    return None


def _user_from_payload(payload: dict) -> dict:
    return {
        'uid': payload['sub'],
        'email': payload.get('email'),
        'is_admin': bool(payload.get('is_admin', False)),
        'token': payload
    }


async def get_current_user(request: Request) -> dict:
    """
    Dependency to get the current authenticated user from the session cookie.
    Protects routes that require authentication.
    """
    logger.info("get_current_user: Entry")

    token = extract_token(request)
    if not token:
        logger.warning("get_current_user: No session cookie")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )

    try:
        payload = verify_access_token(token)
        user = _user_from_payload(payload)
        request.state.user_id = user['uid']
        logger.info(f"get_current_user: Success - {user['uid']}")
        return user
    except Exception as e:
        logger.error(f"get_current_user: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )


async def get_optional_user(request: Request) -> Optional[dict]:
    """Same as get_current_user but returns None for anonymous requests"""
    token = extract_token(request)
    if not token:
        return None
    try:
        return _user_from_payload(verify_access_token(token))
    except Exception as e:
        logger.debug(f"get_optional_user: Ignoring invalid token - {e}")
        return None


async def get_current_admin(current_user: dict = Depends(get_current_user)) -> dict:
    """Dependency that only lets users with the is_admin claim through"""
    if not current_user.get('is_admin'):
        logger.warning(f"get_current_admin: Forbidden - {current_user['uid']}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions"
        )
    return current_user
