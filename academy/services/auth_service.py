import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from academy.core.security import create_access_token, hash_password, verify_password
from academy.models.user import User
from academy.services.subscription_service import SubscriptionService

MIN_PASSWORD_LENGTH = 8


def serialize_user(user: User) -> dict:
    return {
        'id': user.id,
        'email': user.email,
        'first_name': user.first_name,
        'last_name': user.last_name,
        'is_admin': user.is_admin,
        'forum_suspended': user.forum_suspended,
        'created_at': user.created_at.isoformat() if user.created_at else None,
    }


class AuthService:
    def __init__(self, subscription_service: Optional[SubscriptionService] = None):
        self.subscriptions = subscription_service or SubscriptionService()
        self.logger = logging.getLogger(__name__)

    def issue_token(self, user: User) -> str:
        return create_access_token(user.id, user.email, is_admin=bool(user.is_admin))

    def signup(
        self,
        db: Session,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        """Register a user and put them on the free plan in one transaction"""
        email = (email or '').strip().lower()
        self.logger.info(f"signup: Entry - email: {email}")

        try:
            if not email or not password:
                raise ValueError("Email and password are required")
            if len(password) < MIN_PASSWORD_LENGTH:
                raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
            if db.query(User).filter(User.email == email).first():
                raise ValueError("An account with this email already exists")

            # Commits on its own when the plan is missing, so run it before the user is added
            self.subscriptions.ensure_free_plan(db)

            user = User(
                id=str(uuid.uuid4()),
                email=email,
                password_hash=hash_password(password),
                first_name=first_name,
                last_name=last_name,
            )
            db.add(user)
            db.flush()

            self.subscriptions.create_free_subscription(db, user.id, commit=False)
            db.commit()
            db.refresh(user)

            self.logger.info(f"signup: Success - user: {user.id}")
            return user
        except Exception as e:
            db.rollback()
            self.logger.error(f"signup: Failure - {e}")
            raise

    def authenticate(self, db: Session, email: str, password: str) -> Optional[User]:
        """Returns the user for valid credentials, None otherwise"""
        email = (email or '').strip().lower()
        self.logger.info(f"authenticate: Entry - email: {email}")

        user = db.query(User).filter(User.email == email).first()
        if not user or not verify_password(password or '', user.password_hash):
            self.logger.warning(f"authenticate: Invalid credentials - email: {email}")
            return None
        if not user.is_active:
            raise PermissionError("Account deactivated")

        self.logger.info(f"authenticate: Success - user: {user.id}")
        return user

    def get_user(self, db: Session, user_id: str) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise LookupError("User not found")
        return user

    def set_admin(self, db: Session, email: str, is_admin: bool) -> User:
        self.logger.info(f"set_admin: Entry - email: {email}, is_admin: {is_admin}")
        try:
            user = db.query(User).filter(User.email == email.strip().lower()).first()
            if not user:
                raise LookupError(f"User not found: {email}")
            user.is_admin = is_admin
            db.commit()
            db.refresh(user)
            self.logger.info(f"set_admin: Success - user: {user.id}")
            return user
        except Exception as e:
            db.rollback()
            self.logger.error(f"set_admin: Failure - {e}")
            raise
