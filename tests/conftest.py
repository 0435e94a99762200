"""Pytest configuration and fixtures."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import pytest

from meerkat.core.config import Settings
from meerkat.models import StoredConfig, StoredCredentials
from meerkat.services.credential_store import CredentialStore
from tests.fakes import ANON_KEY, SERVER_URL, SUPABASE_URL, FakeServer

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings."""
    return Settings(
        config_dir=tmp_path / "meerkat",
        default_server_url=SERVER_URL,
        fallback_supabase_url="https://fallback.example.com",
        fallback_supabase_anon_key="fallback-anon-key",
        upload_poll_interval=0,
        upload_poll_timeout=5,
    )


@pytest.fixture
def store(test_settings: Settings) -> CredentialStore:
    """Create a credential store in a temporary directory."""
    return CredentialStore.from_settings(test_settings)


@pytest.fixture
def sample_config() -> StoredConfig:
    """Sample config record."""
    return StoredConfig(
        server_url=SERVER_URL,
        supabase_url=SUPABASE_URL,
        supabase_anon_key=ANON_KEY,
    )


@pytest.fixture
def sample_credentials() -> StoredCredentials:
    """Credentials valid for another hour."""
    return StoredCredentials(
        email="test@example.com",
        access_token="test-access-token",
        refresh_token="test-refresh-token",
        expires_at=int(time.time()) + 3600,
    )


@pytest.fixture
def logged_in_store(
    store: CredentialStore,
    sample_config: StoredConfig,
    sample_credentials: StoredCredentials,
) -> CredentialStore:
    """Store holding a config and fresh credentials."""
    store.save_config(sample_config)
    store.save_credentials(sample_credentials)
    return store


@pytest.fixture
def server() -> FakeServer:
    """Fake HTTP backend for the receipt service and the auth provider."""
    return FakeServer()
