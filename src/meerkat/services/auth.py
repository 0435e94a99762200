"""Access token lifecycle: expiry checks and transparent refresh."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from meerkat.models import StoredCredentials, SupabaseTokenResponse

if TYPE_CHECKING:
    from collections.abc import Callable

    from meerkat.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)

EXIT_AUTH_REQUIRED = 2
REFRESH_THRESHOLD_SECONDS = 5 * 60

CONFIG_MISSING_MESSAGE = "Configuration missing. Run `meerkat login` first."
REFRESH_FAILED_MESSAGE = "Token refresh failed. Run `meerkat login` to re-authenticate."


class AuthRequiredError(Exception):
    """The user has to (re-)run ``meerkat login``."""

    exit_code = EXIT_AUTH_REQUIRED

    def __init__(
        self, message: str = "Authentication required. Run `meerkat login` first."
    ) -> None:
        super().__init__(message)


def token_endpoint(supabase_url: str, grant_type: str) -> str:
    """Build the auth provider's token URL for a grant type."""
    return f"{supabase_url.rstrip('/')}/auth/v1/token?grant_type={grant_type}"


class TokenManager:
    """Hands out a currently valid access token, refreshing when near expiry."""

    def __init__(
        self,
        store: CredentialStore,
        http_client: httpx.AsyncClient,
        *,
        refresh_buffer: int = REFRESH_THRESHOLD_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize token manager.

        Args:
            store: Where credentials and config are read from and written to
            http_client: Client used to reach the auth provider
            refresh_buffer: Refresh if no more than this many seconds remain
            clock: Source of the current UNIX time
        """
        self.store = store
        self.http_client = http_client
        self.refresh_buffer = refresh_buffer
        self.clock = clock
        self._refresh_lock = asyncio.Lock()

    async def get_valid_token(self) -> str:
        """Get valid access token, refreshing if necessary.

        Returns:
            Valid access token

        Raises:
            AuthRequiredError: If no credentials are stored or refresh fails
        """
        # Concurrent callers wait here and then see the refreshed record.
        async with self._refresh_lock:
            credentials = self.store.load_credentials()
            if credentials is None:
                raise AuthRequiredError

            now = self.clock()
            if not credentials.should_refresh(self.refresh_buffer, now):
                return credentials.access_token

            logger.debug(
                "Access token expires in %ds, refreshing",
                credentials.seconds_until_expiry(now),
            )
            return await self.refresh_token(credentials)

    async def refresh_token(self, credentials: StoredCredentials) -> str:
        """Exchange the refresh token for a new token pair and persist it.

        Args:
            credentials: Current credential record

        Returns:
            New access token

        Raises:
            AuthRequiredError: If config is missing or the provider refuses
        """
        config = self.store.load_config()
        if config is None:
            raise AuthRequiredError(CONFIG_MISSING_MESSAGE)

        url = token_endpoint(config.supabase_url, "refresh_token")
        try:
            response = await self.http_client.post(
                url,
                headers={"apikey": config.supabase_anon_key},
                json={"refresh_token": credentials.refresh_token},
            )
        except httpx.RequestError as e:
            logger.warning("Token refresh request failed: %s", e)
            raise AuthRequiredError(REFRESH_FAILED_MESSAGE) from e

        if not response.is_success:
            logger.warning("Token refresh failed with status %d", response.status_code)
            raise AuthRequiredError(REFRESH_FAILED_MESSAGE)

        try:
            token_response = SupabaseTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning("Failed to parse token response: %s", e)
            raise AuthRequiredError(REFRESH_FAILED_MESSAGE) from e

        updated = token_response.to_credentials(credentials.email, now=self.clock())
        self.store.save_credentials(updated)
        logger.info("Refreshed access token for %s", updated.email)
        return updated.access_token
