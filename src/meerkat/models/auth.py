"""Models for stored configuration, credentials and auth provider payloads."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, Field

DEFAULT_CURRENCY = "EUR"


class StoredConfig(BaseModel):
    """Non-secret configuration persisted in config.json."""

    server_url: str = Field(..., description="Base URL of the receipt service")
    supabase_url: str = Field(..., description="Auth provider endpoint")
    supabase_anon_key: str = Field(..., description="Auth provider public API key")
    currency: str | None = Field(default=None, description="Display currency code")

    @property
    def display_currency(self) -> str:
        """Currency used when rendering amounts."""
        return self.currency or DEFAULT_CURRENCY

    def to_file_dict(self) -> dict[str, Any]:
        """Serialize for config.json, omitting an unset currency."""
        return self.model_dump(exclude_none=True)


class StoredCredentials(BaseModel):
    """Secret credential record persisted in credentials.json."""

    email: str = Field(..., description="Authenticated user's email")
    access_token: str = Field(..., description="Short-lived bearer token")
    refresh_token: str = Field(..., description="Token for minting new access tokens")
    expires_at: int = Field(..., description="UNIX seconds when access_token expires")

    def seconds_until_expiry(self, now: float | None = None) -> int:
        """Get seconds until the access token expires (may be negative)."""
        current = int(time.time() if now is None else now)
        return self.expires_at - current

    def should_refresh(self, buffer_seconds: int = 300, now: float | None = None) -> bool:
        """Check if token should be refreshed (with buffer before expiry).

        Args:
            buffer_seconds: Refresh if no more than this many seconds remain
            now: Current UNIX time, defaults to the system clock

        Returns:
            True if token should be refreshed
        """
        return self.seconds_until_expiry(now) <= buffer_seconds

    def model_dump_masked(self) -> dict[str, Any]:
        """Return model dict with masked tokens for logging."""
        data = self.model_dump()
        data["access_token"] = f"{self.access_token[:10]}...{self.access_token[-4:]}"
        data["refresh_token"] = f"{self.refresh_token[:4]}..."
        return data


class AuthConfigResponse(BaseModel):
    """Response of the receipt service's auth-config discovery endpoint."""

    supabase_url: str
    supabase_anon_key: str


class TokenUser(BaseModel):
    """User block embedded in a token response."""

    email: str | None = None


class SupabaseTokenResponse(BaseModel):
    """Response model for the auth provider's token endpoint."""

    access_token: str = Field(..., description="Bearer token for API access")
    refresh_token: str = Field(..., description="Token for refreshing access")
    expires_in: int = Field(..., description="Access token expiry in seconds")
    token_type: str = Field(default="bearer", description="Type of token")
    user: TokenUser | None = None

    def to_credentials(self, email: str, now: float | None = None) -> StoredCredentials:
        """Convert response to a credential record with absolute expiry."""
        issued_at = int(time.time() if now is None else now)
        return StoredCredentials(
            email=email,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=issued_at + self.expires_in,
        )
