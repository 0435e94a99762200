"""Receipt upload: local file validation, upload and processing wait."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from meerkat.models import InboxItem, UploadedItem, UploadResponse
from meerkat.services.api_client import MultipartForm

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from meerkat.services.api_client import ApiClient

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
MAX_FILES = 20
POLL_INTERVAL_SECONDS = 2.0
POLL_TIMEOUT_SECONDS = 120.0

MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".pdf": "application/pdf",
}
ALLOWED_EXTENSIONS = tuple(MIME_TYPES)


class FileValidationError(Exception):
    """File validation error."""


class UploadTimeoutError(Exception):
    """An uploaded item did not finish processing in time."""


@dataclass
class ReceiptFile:
    """A validated file ready for upload."""

    path: Path
    name: str
    content: bytes
    mime_type: str


@dataclass
class UploadResult:
    """Parsed upload response and the payload as received."""

    response: UploadResponse
    raw: Any


@dataclass
class CompletedItem:
    """An inbox item that finished processing, with its raw payload."""

    item: InboxItem
    raw: Any


def validate_files(paths: Sequence[str | Path]) -> list[ReceiptFile]:
    """Check count, extension, existence and size, then read each file.

    Raises:
        FileValidationError: On the first file that fails a check
    """
    if len(paths) > MAX_FILES:
        msg = f"Too many files: max {MAX_FILES}, got {len(paths)}"
        raise FileValidationError(msg)

    validated = []
    for raw_path in paths:
        path = Path(raw_path)
        suffix = path.suffix.lower()
        if suffix not in MIME_TYPES:
            allowed = ", ".join(ALLOWED_EXTENSIONS)
            msg = f'Unsupported file type "{suffix}" for {path.name}. Allowed: {allowed}'
            raise FileValidationError(msg)

        if not path.is_file():
            msg = f"File not found: {raw_path}"
            raise FileValidationError(msg)

        file_size = path.stat().st_size
        if file_size > MAX_FILE_SIZE:
            size_mb = file_size / (1024 * 1024)
            msg = f"File too large: {path.name} ({size_mb:.1f}MB). Max: 10MB"
            raise FileValidationError(msg)

        validated.append(
            ReceiptFile(
                path=path,
                name=path.name,
                content=path.read_bytes(),
                mime_type=MIME_TYPES[suffix],
            )
        )
    return validated


class UploadService:
    """Uploads receipts and optionally waits for server-side processing."""

    def __init__(
        self,
        api_client: ApiClient,
        *,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        poll_timeout: float = POLL_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api_client = api_client
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.sleep = sleep
        self.clock = clock

    async def upload(self, files: Sequence[ReceiptFile]) -> UploadResult:
        """Send all files in one multipart request."""
        form = MultipartForm()
        for receipt_file in files:
            form.add_file(
                "files", receipt_file.name, receipt_file.content, receipt_file.mime_type
            )

        data = await self.api_client.request(
            "/api/v1/inbox/upload", method="POST", body=form
        )
        response = UploadResponse.model_validate(data)
        logger.info("Uploaded %d file(s)", len(response.items))
        return UploadResult(response=response, raw=data)

    async def wait_for_item(self, item_id: str) -> CompletedItem:
        """Poll an inbox item until it leaves the pending/processing states.

        Raises:
            UploadTimeoutError: If the poll timeout elapses first
        """
        start = self.clock()
        while self.clock() - start < self.poll_timeout:
            data = await self.api_client.request(f"/api/v1/inbox/{item_id}")
            item = InboxItem.model_validate(data)
            if not item.is_pending:
                return CompletedItem(item=item, raw=data)
            logger.debug("Item %s is %s, waiting", item_id, item.status)
            await self.sleep(self.poll_interval)

        msg = f"Timed out waiting for item {item_id} to complete"
        raise UploadTimeoutError(msg)

    async def wait_for_all(self, items: Sequence[UploadedItem]) -> list[CompletedItem]:
        """Wait for each item in turn."""
        completed = []
        for item in items:
            completed.append(await self.wait_for_item(item.id))
        return completed
