"""Login handshake: auth-config discovery followed by a password grant."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from meerkat.models import AuthConfigResponse, StoredConfig, SupabaseTokenResponse
from meerkat.services.api_client import verbose_log
from meerkat.services.auth import token_endpoint

if TYPE_CHECKING:
    from collections.abc import Callable

    from meerkat.core.config import Settings
    from meerkat.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)

AUTH_CONFIG_PATH = "/api/v1/auth/config"


class LoginError(Exception):
    """Login failed; nothing was written."""


@dataclass
class LoginResult:
    """Outcome of a successful login."""

    email: str
    server_url: str
    expires_at: int


class LoginFlow:
    """Performs the two-step login and stores the resulting config and tokens."""

    def __init__(
        self,
        store: CredentialStore,
        http_client: httpx.AsyncClient,
        settings: Settings,
        *,
        verbose: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.http_client = http_client
        self.settings = settings
        self.verbose = verbose
        self.clock = clock

    async def discover_auth_config(self, server_url: str) -> AuthConfigResponse:
        """Ask the receipt service which auth provider to use.

        Falls back to the configured default provider when discovery fails.

        Raises:
            LoginError: If discovery fails and no fallback is configured
        """
        url = f"{server_url.rstrip('/')}{AUTH_CONFIG_PATH}"
        if self.verbose:
            verbose_log(f"GET {url}")

        reason: str
        try:
            response = await self.http_client.get(url)
        except httpx.RequestError as e:
            reason = str(e) or type(e).__name__
        else:
            if response.is_success:
                try:
                    return AuthConfigResponse.model_validate(response.json())
                except (ValueError, ValidationError) as e:
                    reason = f"invalid response ({e.__class__.__name__})"
            else:
                reason = f"HTTP {response.status_code}"

        if not self.settings.has_auth_fallback:
            msg = f"Could not discover auth configuration from {server_url}: {reason}"
            raise LoginError(msg)

        if self.verbose:
            verbose_log(f"Discovery endpoint failed ({reason}), using defaults")
        logger.info("Auth config discovery failed (%s), using fallback provider", reason)
        return AuthConfigResponse(
            supabase_url=self.settings.fallback_supabase_url,
            supabase_anon_key=self.settings.fallback_supabase_anon_key,
        )

    async def password_grant(
        self, auth_config: AuthConfigResponse, email: str, password: str
    ) -> SupabaseTokenResponse:
        """Exchange email and password for a token pair.

        Raises:
            LoginError: If the provider rejects the credentials
        """
        url = token_endpoint(auth_config.supabase_url, "password")
        if self.verbose:
            verbose_log(f"POST {url}")

        try:
            response = await self.http_client.post(
                url,
                headers={"apikey": auth_config.supabase_anon_key},
                json={"email": email, "password": password},
            )
        except httpx.RequestError as e:
            msg = f"Authentication request failed: {e}"
            raise LoginError(msg) from e

        if response.status_code == httpx.codes.BAD_REQUEST:
            msg = "Invalid email or password"
            raise LoginError(msg)
        if not response.is_success:
            msg = f"Authentication failed: HTTP {response.status_code}"
            raise LoginError(msg)

        try:
            return SupabaseTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            msg = f"Failed to parse token response: {e}"
            raise LoginError(msg) from e

    async def login(self, server_url: str, email: str, password: str) -> LoginResult:
        """Authenticate and persist config, then credentials.

        Args:
            server_url: Base URL of the receipt service
            email: Account email
            password: Account password

        Returns:
            Summary of the stored session
        """
        auth_config = await self.discover_auth_config(server_url)
        tokens = await self.password_grant(auth_config, email, password)
        credentials = tokens.to_credentials(email, now=self.clock())

        previous = self.store.load_config()
        self.store.save_config(
            StoredConfig(
                server_url=server_url,
                supabase_url=auth_config.supabase_url,
                supabase_anon_key=auth_config.supabase_anon_key,
                currency=previous.currency if previous else None,
            )
        )
        self.store.save_credentials(credentials)
        logger.info("Logged in as %s", email)

        return LoginResult(
            email=email, server_url=server_url, expires_at=credentials.expires_at
        )
