from datetime import datetime, timedelta
from typing import Optional

import bcrypt
import jwt

from academy.core.config import settings
import logging

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """Hash a plaintext password with bcrypt"""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode(), salt).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Check a plaintext password against a stored bcrypt hash"""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError as e:
        logger.warning(f"verify_password: Malformed hash - {e}")
        return False


def create_access_token(
    user_id: str,
    email: str,
    is_admin: bool = False,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Sign a session token carrying the user id, email and admin flag"""
    logger.info(f"create_access_token: Entry - user: {user_id}")

    now = datetime.utcnow()
    expire = now + (expires_delta or timedelta(days=settings.jwt_expire_days))
    payload = {
        'sub': user_id,
        'email': email,
        'is_admin': is_admin,
        'iat': now,
        'exp': expire,
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    logger.info(f"create_access_token: Success - user: {user_id}")
    return token


def verify_access_token(token: str) -> dict:
    """
    Decode and validate a session token.

    Raises:
        jwt.InvalidTokenError: if the signature is wrong, the token expired
            or the subject claim is missing
    """
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    if not payload.get('sub'):
        raise jwt.InvalidTokenError("Token has no subject")
    return payload
