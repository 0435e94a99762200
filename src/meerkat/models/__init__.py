"""Data models for the Meerkat CLI."""

from .auth import (
    DEFAULT_CURRENCY,
    AuthConfigResponse,
    StoredConfig,
    StoredCredentials,
    SupabaseTokenResponse,
    TokenUser,
)
from .receipt import (
    ApiErrorResponse,
    InboxItem,
    Receipt,
    ReceiptProduct,
    ReceiptsResponse,
    Supermarket,
    SupermarketsResponse,
    UploadedItem,
    UploadResponse,
)

__all__ = [
    "DEFAULT_CURRENCY",
    "ApiErrorResponse",
    "AuthConfigResponse",
    "InboxItem",
    "Receipt",
    "ReceiptProduct",
    "ReceiptsResponse",
    "StoredConfig",
    "StoredCredentials",
    "SupabaseTokenResponse",
    "Supermarket",
    "SupermarketsResponse",
    "TokenUser",
    "UploadResponse",
    "UploadedItem",
]
