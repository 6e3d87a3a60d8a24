from datetime import datetime
from typing import Any

from stockit.schemas.common import CamelModel


class ItemBase(CamelModel):
    name: str
    category: str | None = None
    quantity: int = 0
    monday_required: int = 0
    tuesday_required: int = 0
    wednesday_required: int = 0
    thursday_required: int = 0
    friday_required: int = 0
    saturday_required: int = 0
    sunday_required: int = 0


class ItemCreate(ItemBase):
    store_id: int
    organization_id: int | None = None  # overwritten from the token


class ItemUpdate(CamelModel):
    """Partial update. STORE-role callers may only change `quantity`."""
    name: str | None = None
    category: str | None = None
    quantity: int | None = None
    monday_required: int | None = None
    tuesday_required: int | None = None
    wednesday_required: int | None = None
    thursday_required: int | None = None
    friday_required: int | None = None
    saturday_required: int | None = None
    sunday_required: int | None = None
    updated_by: str | None = None
    # Any JSON value; the item update guard owns all breakdown validation
    # so malformed input surfaces as INVALID_BREAKDOWN, not a schema error
    day_breakdown: Any = None


class ItemOut(ItemBase):
    id: int
    category: str
    store_id: int
    organization_id: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ItemHistoryOut(CamelModel):
    id: int
    item_id: int
    quantity: int
    updated_by: str
    day_breakdown: list[dict] | None = None
    updated_at: datetime
    item: ItemOut | None = None

