"""Meerkat services."""

from .api_client import ApiClient, ApiError, MultipartForm
from .auth import AuthRequiredError, TokenManager
from .credential_store import CredentialStore
from .login import LoginError, LoginFlow
from .receipts import ReceiptService
from .uploads import UploadService

__all__ = [
    "ApiClient",
    "ApiError",
    "AuthRequiredError",
    "CredentialStore",
    "LoginError",
    "LoginFlow",
    "MultipartForm",
    "ReceiptService",
    "TokenManager",
    "UploadService",
]
