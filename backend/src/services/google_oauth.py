"""
Google OAuth2 client for the calendar consent flow.

Builds the consent URL with a signed state, and performs the authorization
code and refresh token exchanges against Google's token endpoint. Every
request is bounded by the configured timeout.
"""

import logging
import urllib.parse
from typing import Any

import httpx

from core.config import CalendarConfig
from core.constants import GOOGLE_OAUTH_SCOPES
from services.jwt_service import jwt_service

logger = logging.getLogger(__name__)


class GoogleOAuthService:
    """Service for handling Google OAuth2 flow for doctors"""

    AUTH_URL = "https://accounts.google.com/o/oauth2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"

    SCOPES = GOOGLE_OAUTH_SCOPES

    def __init__(self, config: CalendarConfig) -> None:
        self.client_id = config.client_id
        self.client_secret = config.client_secret
        self.redirect_uri = config.redirect_uri
        self.timeout = httpx.Timeout(config.request_timeout_seconds)

    def get_authorization_url(self, user_id: int, clinic_id: int) -> str:
        """Generate Google OAuth2 authorization URL"""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.SCOPES),
            "response_type": "code",
            "access_type": "offline",  # Request refresh token
            "prompt": "consent",  # Force consent screen to get refresh token
            "state": self.generate_state(user_id, clinic_id)
        }
        return f"{self.AUTH_URL}?{urllib.parse.urlencode(params)}"

    async def exchange_code_for_tokens(self, code: str) -> dict[str, Any]:
        """Exchange authorization code for access and refresh tokens"""
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.TOKEN_URL, data=data)
            response.raise_for_status()
            return response.json()

    async def refresh_access_token(self, refresh_token: str) -> dict[str, Any]:
        """Refresh an expired access token"""
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token"
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.TOKEN_URL, data=data)
            response.raise_for_status()
            return response.json()

    def generate_state(self, user_id: int, clinic_id: int) -> str:
        """Generate signed state parameter for OAuth flow"""
        return jwt_service.sign_oauth_state({"user_id": user_id, "clinic_id": clinic_id})

    def parse_state(self, state: str) -> tuple[int, int]:
        """Parse signed state parameter to extract user and clinic IDs"""
        state_data = jwt_service.verify_oauth_state(state)
        if not state_data:
            raise ValueError("Invalid or expired OAuth state")
        user_id = state_data.get("user_id")
        clinic_id = state_data.get("clinic_id")
        if not isinstance(user_id, int) or not isinstance(clinic_id, int):
            raise ValueError("Invalid state data")
        return user_id, clinic_id
