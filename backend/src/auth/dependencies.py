# pyright: reportMissingTypeStubs=false
"""
Authentication dependencies for FastAPI.

Sessions are issued by the external authentication service as bearer JWTs.
These dependencies only establish *who* is calling; whether the caller may
act on a clinic is decided by the scheduling gate.
"""

import logging
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from core.database import get_db
from core.exceptions import UnauthorizedError
from services.jwt_service import jwt_service, TokenPayload
from models import User

logger = logging.getLogger(__name__)


class UserContext:
    """Authenticated user context extracted from JWT token."""

    def __init__(self, user_id: int, email: str, clinic_id: Optional[int] = None):
        self.user_id = user_id
        self.email = email
        self.clinic_id = clinic_id  # Active clinic of the session, if any

    def __repr__(self) -> str:
        return f"UserContext(user_id={self.user_id}, email='{self.email}', clinic_id={self.clinic_id})"


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenPayload]:
    """Extract and validate JWT token payload."""
    if not credentials:
        return None
    return jwt_service.verify_token(credentials.credentials)


def get_current_user(
    payload: Optional[TokenPayload] = Depends(get_token_payload),
    db: Session = Depends(get_db)
) -> UserContext:
    """Get authenticated user context from JWT token."""
    if not payload:
        raise UnauthorizedError()

    try:
        user_id = int(payload.sub)
    except ValueError:
        raise UnauthorizedError("Invalid authentication token")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise UnauthorizedError("User not found")
    if not user.is_active:
        logger.warning(f"Inactive user {user_id} attempted to authenticate")
        raise UnauthorizedError("User account is disabled")

    return UserContext(user_id=user.id, email=user.email, clinic_id=payload.clinic_id)
