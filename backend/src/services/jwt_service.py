"""
JWT Service for access tokens and signed OAuth state.

Sessions are issued by the external authentication service; this module
only verifies the bearer tokens it receives and signs the short-lived
``state`` parameter of the calendar consent flow.
"""

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from pydantic import BaseModel, ValidationError

from core.config import JWT_SECRET_KEY, JWT_ACCESS_TOKEN_EXPIRE_MINUTES

OAUTH_STATE_EXPIRE_MINUTES = 10


class TokenPayload(BaseModel):
    """Payload structure for JWT access tokens."""
    sub: str  # User id
    clinic_id: Optional[int] = None  # Active clinic, when the session has one
    email: Optional[str] = None
    iat: Optional[int] = None  # Set by JWT service
    exp: Optional[int] = None  # Set by JWT service


class JWTService:
    """Service for JWT token operations."""

    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = JWT_ACCESS_TOKEN_EXPIRE_MINUTES

    @classmethod
    def create_access_token(cls, payload: TokenPayload) -> str:
        """Create a JWT access token (used by tests and local tooling)."""
        to_encode = payload.model_dump(exclude_none=True)
        expire = datetime.now(timezone.utc) + timedelta(minutes=cls.ACCESS_TOKEN_EXPIRE_MINUTES)
        to_encode.update({"exp": expire, "iat": datetime.now(timezone.utc)})
        return jwt.encode(to_encode, cls._get_secret_key(), algorithm=cls.ALGORITHM)

    @classmethod
    def verify_token(cls, token: str) -> Optional[TokenPayload]:
        """Verify and decode a JWT token."""
        try:
            payload = jwt.decode(token, cls._get_secret_key(), algorithms=[cls.ALGORITHM])
            return TokenPayload(**payload)
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None
        except ValidationError:
            return None

    @classmethod
    def sign_oauth_state(cls, state_data: Dict[str, Any]) -> str:
        """Sign OAuth state parameter to prevent tampering."""
        payload = {
            **state_data,
            "iat": datetime.now(timezone.utc),
            "exp": datetime.now(timezone.utc) + timedelta(minutes=OAUTH_STATE_EXPIRE_MINUTES)
        }
        return jwt.encode(payload, cls._get_secret_key(), algorithm=cls.ALGORITHM)

    @classmethod
    def verify_oauth_state(cls, signed_state: str) -> Optional[Dict[str, Any]]:
        """Verify and decode signed OAuth state parameter."""
        try:
            payload = jwt.decode(signed_state, cls._get_secret_key(), algorithms=[cls.ALGORITHM])
            # Remove JWT claims, return only the state data
            return {k: v for k, v in payload.items() if k not in ['iat', 'exp']}
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

    @classmethod
    def _get_secret_key(cls) -> str:
        return JWT_SECRET_KEY


# Global instance
jwt_service = JWTService()
