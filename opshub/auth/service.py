"""Authentication service layer."""

import logging
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from opshub.auth.schemas import Token, UserLogin
from opshub.auth.utils import create_access_token, verify_password
from opshub.db.models import User, UserStatus

logger = logging.getLogger(__name__)


class AuthService:
    """Service class for authentication operations."""

    def __init__(self, db: Session):
        """Initialize auth service.

        Args:
            db: Database session.
        """
        self.db = db

    def login(self, data: UserLogin) -> tuple[User | None, Token | None, str]:
        """Authenticate user and return token.

        Args:
            data: Login credentials.

        Returns:
            tuple: (User or None, Token or None, status message).
        """
        user = self.db.query(User).filter(User.email == data.email.lower()).first()

        if not user or not verify_password(data.password, user.password_hash):
            return None, None, "Invalid email or password."

        if user.status != UserStatus.ACTIVE:
            return None, None, "Your account has been deactivated. Contact your administrator."

        user.last_login = datetime.now(UTC)
        self.db.commit()

        token = Token(access_token=create_access_token(user.id, user.organization_id, user.email))
        logger.info(f"User {user.email} logged in")
        return user, token, "Login successful."


def get_auth_service(db: Session) -> AuthService:
    """Factory function for AuthService.

    Args:
        db: Database session.

    Returns:
        AuthService: Auth service instance.
    """
    return AuthService(db)
