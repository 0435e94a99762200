"""Receipt service response models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class UploadedItem(BaseModel):
    """An inbox entry created by an upload."""

    id: str
    file_name: str
    status: str


class UploadResponse(BaseModel):
    """Response of POST /api/v1/inbox/upload."""

    items: list[UploadedItem] = Field(default_factory=list)


class InboxItem(BaseModel):
    """Processing state of an uploaded file."""

    model_config = ConfigDict(extra="allow")

    id: str
    file_name: str
    status: str
    created_at: str | None = None
    merchant_name: str | None = None
    total_amount: float | None = None
    currency: str | None = None

    @property
    def is_pending(self) -> bool:
        """Whether the server is still working on this item."""
        return self.status in {"pending", "processing"}


class ReceiptProduct(BaseModel):
    """A line on a receipt."""

    id: int
    name: str
    price: float
    quantity: float
    unit_price: float


class Receipt(BaseModel):
    """A processed receipt."""

    model_config = ConfigDict(extra="allow")

    id: int
    supermarket_id: int
    date: str
    total: float
    products: list[ReceiptProduct] | None = None


class ReceiptsResponse(BaseModel):
    """Paginated receipt listing."""

    total: int
    offset: int
    limit: int
    items: list[Receipt] = Field(default_factory=list)


class Supermarket(BaseModel):
    """A store receipts are attributed to."""

    id: int
    name: str
    country_code: str | None = None
    receipt_count: int | None = None


class SupermarketsResponse(BaseModel):
    """Paginated supermarket listing."""

    total: int
    items: list[Supermarket] = Field(default_factory=list)


class ApiErrorResponse(BaseModel):
    """Generic error body of the receipt service."""

    detail: str
