"""Receipt listing and detail lookups."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from meerkat.models import (
    DEFAULT_CURRENCY,
    Receipt,
    ReceiptsResponse,
    SupermarketsResponse,
)
from meerkat.services.api_client import ApiError
from meerkat.services.auth import AuthRequiredError

if TYPE_CHECKING:
    from meerkat.services.api_client import ApiClient
    from meerkat.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"EUR": "€", "USD": "$", "GBP": "£"}


def currency_symbol(code: str) -> str:
    """Symbol for a currency code, or the code followed by a space."""
    return CURRENCY_SYMBOLS.get(code, f"{code} ")


def format_currency(amount: float, currency: str = DEFAULT_CURRENCY) -> str:
    """Format an amount with two decimals and its currency symbol."""
    return f"{currency_symbol(currency)}{amount:.2f}"


@dataclass
class ReceiptsView:
    """A receipt page with its raw payload and display context."""

    data: ReceiptsResponse
    raw: Any
    store_names: dict[int, str] = field(default_factory=dict)
    currency: str = DEFAULT_CURRENCY

    def store_name(self, supermarket_id: int) -> str:
        return self.store_names.get(supermarket_id, str(supermarket_id))


@dataclass
class ReceiptView:
    """A single receipt with its raw payload and display context."""

    receipt: Receipt
    raw: Any
    store_names: dict[int, str] = field(default_factory=dict)
    currency: str = DEFAULT_CURRENCY

    @property
    def store_name(self) -> str:
        return self.store_names.get(
            self.receipt.supermarket_id, str(self.receipt.supermarket_id)
        )


class ReceiptService:
    """Fetches receipts together with store names and display currency."""

    def __init__(self, api_client: ApiClient, store: CredentialStore) -> None:
        self.api_client = api_client
        self.store = store

    async def fetch_supermarket_map(self) -> dict[int, str]:
        """Map supermarket ids to names; any failure yields an empty map."""
        try:
            data = await self.api_client.get("/api/v1/supermarkets?limit=100&offset=0")
            supermarkets = SupermarketsResponse.model_validate(data)
        except (ApiError, AuthRequiredError, ValueError) as e:
            logger.info("Supermarket lookup failed, showing ids instead: %s", e)
            return {}
        return {s.id: s.name for s in supermarkets.items}

    async def _display_currency(self) -> str:
        config = await asyncio.to_thread(self.store.load_config)
        return config.display_currency if config else DEFAULT_CURRENCY

    async def _fetch_with_context(self, path: str) -> tuple[Any, dict[int, str], str]:
        # Let every fetch settle before raising so none outlives the HTTP client.
        data, store_names, currency = await asyncio.gather(
            self.api_client.get(path),
            self.fetch_supermarket_map(),
            self._display_currency(),
            return_exceptions=True,
        )
        for result in (data, store_names, currency):
            if isinstance(result, BaseException):
                raise result
        return data, store_names, currency

    async def list_receipts(self, limit: int = 50, offset: int = 0) -> ReceiptsView:
        """Fetch a page of recent receipts."""
        data, store_names, currency = await self._fetch_with_context(
            f"/api/v1/receipts/recent?limit={limit}&offset={offset}"
        )
        return ReceiptsView(
            data=ReceiptsResponse.model_validate(data),
            raw=data,
            store_names=store_names,
            currency=currency,
        )

    async def get_receipt(self, receipt_id: str) -> ReceiptView:
        """Fetch one receipt with its products."""
        data, store_names, currency = await self._fetch_with_context(
            f"/api/v1/receipts/{receipt_id}"
        )
        return ReceiptView(
            receipt=Receipt.model_validate(data),
            raw=data,
            store_names=store_names,
            currency=currency,
        )
