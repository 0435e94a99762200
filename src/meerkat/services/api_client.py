"""Authenticated HTTP client for the receipt service API."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from meerkat.models import ApiErrorResponse
from meerkat.services.auth import CONFIG_MISSING_MESSAGE, AuthRequiredError

if TYPE_CHECKING:
    from meerkat.services.auth import TokenManager
    from meerkat.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Failed request against the receipt service."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class FilePart:
    """One file in a multipart upload."""

    field: str
    filename: str
    content: bytes
    mime_type: str


@dataclass
class MultipartForm:
    """Multipart form body; the transport chooses the boundary."""

    parts: list[FilePart] = field(default_factory=list)

    def add_file(
        self, field_name: str, filename: str, content: bytes, mime_type: str
    ) -> None:
        """Append a file part."""
        self.parts.append(FilePart(field_name, filename, content, mime_type))

    def to_httpx_files(self) -> list[tuple[str, tuple[str, bytes, str]]]:
        """Convert to the ``files=`` argument httpx expects."""
        return [(p.field, (p.filename, p.content, p.mime_type)) for p in self.parts]


def verbose_log(message: str) -> None:
    """Write a diagnostic line to stderr."""
    print(f"[verbose] {message}", file=sys.stderr)  # noqa: T201


def error_message(response: httpx.Response) -> str:
    """Extract the service's ``detail`` message, or a generic HTTP message."""
    fallback = f"HTTP {response.status_code}: {response.reason_phrase}"
    try:
        detail = ApiErrorResponse.model_validate(response.json()).detail
    except (ValueError, ValidationError):
        return fallback
    return detail or fallback


class ApiClient:
    """Issues requests to the receipt service with bearer authentication."""

    def __init__(
        self,
        store: CredentialStore,
        token_manager: TokenManager,
        http_client: httpx.AsyncClient,
        *,
        verbose: bool = False,
        server_url: str | None = None,
    ) -> None:
        """Initialize API client.

        Args:
            store: Source of the server URL
            token_manager: Source of access tokens
            http_client: Underlying HTTP client
            verbose: Print request diagnostics to stderr
            server_url: Override for the stored server URL
        """
        self.store = store
        self.token_manager = token_manager
        self.http_client = http_client
        self.verbose = verbose
        self.server_url = server_url

    async def request(
        self,
        path: str,
        *,
        method: str = "GET",
        body: Any = None,  # noqa: ANN401
        headers: dict[str, str] | None = None,
        no_auth: bool = False,
        verbose: bool | None = None,
    ) -> Any:  # noqa: ANN401
        """Make an HTTP request to the receipt service.

        Args:
            path: Path appended to the server URL, including any query string
            method: HTTP method
            body: ``MultipartForm`` or any JSON-serializable value
            headers: Extra request headers
            no_auth: Skip the Authorization header
            verbose: Override the client's verbose setting for this call

        Returns:
            Parsed JSON response

        Raises:
            AuthRequiredError: If not configured or no valid token is available
            ApiError: If the request fails or returns a non-2xx status
        """
        config = self.store.load_config()
        if config is None:
            raise AuthRequiredError(CONFIG_MISSING_MESSAGE)

        server_url = self.server_url or config.server_url
        url = f"{server_url.rstrip('/')}{path}"
        req_headers = dict(headers or {})

        if not no_auth:
            token = await self.token_manager.get_valid_token()
            req_headers["Authorization"] = f"Bearer {token}"

        content: str | None = None
        files: list[tuple[str, tuple[str, bytes, str]]] | None = None
        if isinstance(body, MultipartForm):
            files = body.to_httpx_files()
        elif body is not None:
            req_headers["Content-Type"] = "application/json"
            content = json.dumps(body)

        show = self.verbose if verbose is None else verbose
        if show:
            verbose_log(f"{method} {url}")

        try:
            response = await self.http_client.request(
                method,
                url,
                headers=req_headers,
                content=content,
                files=files,
            )
        except httpx.RequestError as e:
            logger.debug("Request to %s failed: %s", url, e)
            msg = f"Request failed: {e}"
            raise ApiError(msg) from e

        if show:
            verbose_log(f"{response.status_code} {response.reason_phrase}")

        if not response.is_success:
            message = error_message(response)
            logger.debug("%s %s -> %d %s", method, url, response.status_code, message)
            raise ApiError(message, status_code=response.status_code)

        return response.json()

    async def get(self, path: str) -> Any:  # noqa: ANN401
        """Make a GET request."""
        return await self.request(path)

    async def post(self, path: str, body: Any = None) -> Any:  # noqa: ANN401
        """Make a POST request."""
        return await self.request(path, method="POST", body=body)
