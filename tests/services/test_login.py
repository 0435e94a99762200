"""Tests for the login flow."""

from __future__ import annotations

import stat

import httpx
import pytest

from meerkat.core.config import Settings
from meerkat.models import AuthConfigResponse, StoredConfig
from meerkat.services.credential_store import CredentialStore
from meerkat.services.login import LoginError, LoginFlow
from tests.fakes import (
    ANON_KEY,
    AUTH_CONFIG_URL,
    PASSWORD_URL,
    SERVER_URL,
    SUPABASE_URL,
    FakeServer,
    token_payload,
)

FALLBACK_PASSWORD_URL = "https://fallback.example.com/auth/v1/token?grant_type=password"


@pytest.fixture
def no_fallback_settings(test_settings: Settings) -> Settings:
    """Settings with the fallback auth provider disabled."""
    return test_settings.model_copy(
        update={"fallback_supabase_url": "", "fallback_supabase_anon_key": ""}
    )


def discovery_ok(server: FakeServer) -> None:
    server.add(
        "GET",
        AUTH_CONFIG_URL,
        json={"supabase_url": SUPABASE_URL, "supabase_anon_key": ANON_KEY},
    )


class TestDiscovery:
    """Tests for auth-config discovery."""

    @pytest.mark.asyncio
    async def test_discovery_success(
        self, store: CredentialStore, test_settings: Settings, server: FakeServer
    ) -> None:
        """Test that the discovered provider is used."""
        discovery_ok(server)

        async with server.client() as http_client:
            flow = LoginFlow(store, http_client, test_settings)
            auth_config = await flow.discover_auth_config(SERVER_URL)

        assert auth_config == AuthConfigResponse(
            supabase_url=SUPABASE_URL, supabase_anon_key=ANON_KEY
        )

    @pytest.mark.asyncio
    async def test_discovery_http_error_uses_fallback(
        self, store: CredentialStore, test_settings: Settings, server: FakeServer
    ) -> None:
        """Test the documented fallback when the endpoint is missing."""
        server.add("GET", AUTH_CONFIG_URL, status_code=404, json={"detail": "Not Found"})

        async with server.client() as http_client:
            flow = LoginFlow(store, http_client, test_settings)
            auth_config = await flow.discover_auth_config(SERVER_URL)

        assert auth_config.supabase_url == "https://fallback.example.com"
        assert auth_config.supabase_anon_key == "fallback-anon-key"

    @pytest.mark.asyncio
    async def test_discovery_unreachable_uses_fallback(
        self, store: CredentialStore, test_settings: Settings, server: FakeServer
    ) -> None:
        """Test the fallback when the server cannot be reached."""
        server.add("GET", AUTH_CONFIG_URL, exc=httpx.ConnectError("no route to host"))

        async with server.client() as http_client:
            flow = LoginFlow(store, http_client, test_settings)
            auth_config = await flow.discover_auth_config(SERVER_URL)

        assert auth_config.supabase_url == "https://fallback.example.com"

    @pytest.mark.asyncio
    async def test_discovery_failure_without_fallback(
        self,
        store: CredentialStore,
        no_fallback_settings: Settings,
        server: FakeServer,
    ) -> None:
        """Test that discovery failure is fatal when no fallback is configured."""
        server.add("GET", AUTH_CONFIG_URL, exc=httpx.ConnectError("no route to host"))

        async with server.client() as http_client:
            flow = LoginFlow(store, http_client, no_fallback_settings)
            with pytest.raises(
                LoginError, match="Could not discover auth configuration"
            ):
                await flow.discover_auth_config(SERVER_URL)

    @pytest.mark.asyncio
    async def test_discovery_malformed_body_without_fallback(
        self,
        store: CredentialStore,
        no_fallback_settings: Settings,
        server: FakeServer,
    ) -> None:
        """Test that a 200 with the wrong shape counts as a discovery failure."""
        server.add("GET", AUTH_CONFIG_URL, json={"unexpected": True})

        async with server.client() as http_client:
            flow = LoginFlow(store, http_client, no_fallback_settings)
            with pytest.raises(LoginError, match="invalid response"):
                await flow.discover_auth_config(SERVER_URL)


class TestPasswordGrant:
    """Tests for the password grant."""

    @pytest.mark.asyncio
    async def test_request_shape(
        self, store: CredentialStore, test_settings: Settings, server: FakeServer
    ) -> None:
        """Test the password-grant request sent to the auth provider."""
        server.add("POST", PASSWORD_URL, json=token_payload())
        auth_config = AuthConfigResponse(supabase_url=SUPABASE_URL, supabase_anon_key=ANON_KEY)

        async with server.client() as http_client:
            flow = LoginFlow(store, http_client, test_settings)
            tokens = await flow.password_grant(auth_config, "test@example.com", "secret")

        assert tokens.access_token == "new-access-token"
        request = server.requests[0]
        assert request.headers["apikey"] == ANON_KEY
        assert FakeServer.json_body(request) == {
            "email": "test@example.com",
            "password": "secret",
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status_code", "message"),
        [
            (400, "^Invalid email or password$"),
            (401, "^Authentication failed: HTTP 401$"),
            (429, "^Authentication failed: HTTP 429$"),
            (500, "^Authentication failed: HTTP 500$"),
        ],
    )
    async def test_rejections(
        self,
        store: CredentialStore,
        test_settings: Settings,
        server: FakeServer,
        status_code: int,
        message: str,
    ) -> None:
        """Test the user-facing messages for refused logins."""
        server.add("POST", PASSWORD_URL, status_code=status_code, json={"error": "x"})
        auth_config = AuthConfigResponse(supabase_url=SUPABASE_URL, supabase_anon_key=ANON_KEY)

        async with server.client() as http_client:
            flow = LoginFlow(store, http_client, test_settings)
            with pytest.raises(LoginError, match=message):
                await flow.password_grant(auth_config, "test@example.com", "wrong")

        assert len(server.requests) == 1


class TestLogin:
    """Tests for the complete login."""

    @pytest.mark.asyncio
    async def test_login_writes_config_and_credentials(
        self, store: CredentialStore, test_settings: Settings, server: FakeServer
    ) -> None:
        """Test that a successful login stores both records."""
        discovery_ok(server)
        server.add("POST", PASSWORD_URL, json=token_payload(expires_in=3600))

        async with server.client() as http_client:
            flow = LoginFlow(store, http_client, test_settings, clock=lambda: 1_700_000_000)
            result = await flow.login(SERVER_URL, "test@example.com", "secret")

        assert result.email == "test@example.com"
        assert result.server_url == SERVER_URL
        assert result.expires_at == 1_700_003_600

        assert store.load_config() == StoredConfig(
            server_url=SERVER_URL, supabase_url=SUPABASE_URL, supabase_anon_key=ANON_KEY
        )
        credentials = store.load_credentials()
        assert credentials is not None
        assert credentials.email == "test@example.com"
        assert credentials.access_token == "new-access-token"
        assert credentials.refresh_token == "new-refresh-token"
        assert credentials.expires_at == 1_700_003_600
        assert stat.S_IMODE(store.credentials_path.stat().st_mode) == 0o600

    @pytest.mark.asyncio
    async def test_login_with_fallback_provider(
        self, store: CredentialStore, test_settings: Settings, server: FakeServer
    ) -> None:
        """Test that the fallback provider is persisted when discovery fails."""
        server.add("GET", AUTH_CONFIG_URL, status_code=404, text="Not Found")
        server.add("POST", FALLBACK_PASSWORD_URL, json=token_payload())

        async with server.client() as http_client:
            flow = LoginFlow(store, http_client, test_settings)
            await flow.login(SERVER_URL, "test@example.com", "secret")

        config = store.load_config()
        assert config is not None
        assert config.supabase_url == "https://fallback.example.com"
        assert config.supabase_anon_key == "fallback-anon-key"

    @pytest.mark.asyncio
    async def test_login_keeps_currency(
        self,
        store: CredentialStore,
        test_settings: Settings,
        sample_config: StoredConfig,
        server: FakeServer,
    ) -> None:
        """Test that re-login preserves the chosen display currency."""
        store.save_config(sample_config.model_copy(update={"currency": "GBP"}))
        discovery_ok(server)
        server.add("POST", PASSWORD_URL, json=token_payload())

        async with server.client() as http_client:
            await LoginFlow(store, http_client, test_settings).login(
                SERVER_URL, "test@example.com", "secret"
            )

        config = store.load_config()
        assert config is not None
        assert config.currency == "GBP"

    @pytest.mark.asyncio
    async def test_invalid_password_writes_nothing(
        self, store: CredentialStore, test_settings: Settings, server: FakeServer
    ) -> None:
        """Test that a refused login leaves no files behind."""
        discovery_ok(server)
        server.add("POST", PASSWORD_URL, status_code=400, json={"error": "invalid_grant"})

        async with server.client() as http_client:
            with pytest.raises(LoginError, match="Invalid email or password"):
                await LoginFlow(store, http_client, test_settings).login(
                    SERVER_URL, "test@example.com", "wrong"
                )

        assert not store.config_path.exists()
        assert not store.credentials_path.exists()

    @pytest.mark.asyncio
    async def test_discovery_failure_writes_nothing(
        self,
        store: CredentialStore,
        no_fallback_settings: Settings,
        server: FakeServer,
    ) -> None:
        """Test that an unreachable server with no fallback aborts cleanly."""
        server.add("GET", AUTH_CONFIG_URL, exc=httpx.ConnectError("no route to host"))

        async with server.client() as http_client:
            with pytest.raises(LoginError, match="Could not discover"):
                await LoginFlow(store, http_client, no_fallback_settings).login(
                    SERVER_URL, "test@example.com", "secret"
                )

        assert not store.config_path.exists()
        assert not store.credentials_path.exists()
        assert len(server.requests) == 1

    @pytest.mark.asyncio
    async def test_verbose_output(
        self,
        store: CredentialStore,
        test_settings: Settings,
        server: FakeServer,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Test verbose diagnostics for both handshake steps."""
        discovery_ok(server)
        server.add("POST", PASSWORD_URL, json=token_payload())

        async with server.client() as http_client:
            await LoginFlow(store, http_client, test_settings, verbose=True).login(
                SERVER_URL, "test@example.com", "secret"
            )

        err = capsys.readouterr().err
        assert f"[verbose] GET {AUTH_CONFIG_URL}" in err
        assert f"[verbose] POST {PASSWORD_URL}" in err
