"""Item updates with per-weekday caps and audit history.

An update may carry a day breakdown that splits the new quantity across
weekdays:

    {"quantity": 8, "dayBreakdown": [{"dayIdx": 1, "qty": 5}, {"dayIdx": 2, "qty": 3}]}

Rules, checked entry by entry and then as a whole:
  - dayIdx is a whole number 0..6 (0 = Sunday)
  - qty is a finite non-negative number
  - qty does not exceed the item's required value for that weekday, as
    stored before this update
  - the qtys sum to the new quantity

Numbers may arrive as JSON numbers or numeric strings ("5", 5 and 5.0 are
all accepted). Nothing is written unless every rule holds.
"""

import logging
import math

from sqlalchemy.ext.asyncio import AsyncSession

from stockit.models.item import WEEKDAY_REQUIRED_FIELDS, Item, ItemHistory
from stockit.middleware.exceptions import (
    BreakdownExceedsRequiredError,
    BreakdownMismatchError,
    ForbiddenError,
    InvalidBreakdownError,
)
from stockit.schemas.auth import SessionClaims
from stockit.schemas.item import ItemUpdate
from stockit.services.notifications import ItemUpdateEvent, UpdateNotificationBatcher

logger = logging.getLogger(__name__)

FULL_EDIT_FIELDS = ("name", "category", *WEEKDAY_REQUIRED_FIELDS)


def required_for_day(item: Item, day_idx: int) -> int:
    return getattr(item, WEEKDAY_REQUIRED_FIELDS[day_idx]) or 0


def _as_number(value) -> int | float | None:
    """Numeric value of an int, float or numeric string; None otherwise.

    Integral values come back as int, so 1, 1.0 and "1" are the same day.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, float) or not math.isfinite(value):
        return None
    return int(value) if value.is_integer() else value


def validate_day_breakdown(item: Item, quantity: int, breakdown) -> list[dict]:
    """Check a breakdown against the item's current caps; return it normalised."""
    if not isinstance(breakdown, list):
        raise InvalidBreakdownError("must be a list")

    entries = []
    total = 0
    for entry in breakdown:
        if not isinstance(entry, dict):
            raise InvalidBreakdownError("entries must be objects")

        day_idx = _as_number(entry.get("dayIdx"))
        if not isinstance(day_idx, int) or not 0 <= day_idx <= 6:
            raise InvalidBreakdownError("dayIdx must be 0-6")

        qty = _as_number(entry.get("qty"))
        if qty is None or qty < 0:
            raise InvalidBreakdownError("qty must be non-negative number")

        cap = required_for_day(item, day_idx)
        if qty > cap:
            raise BreakdownExceedsRequiredError(day_idx, qty, cap)

        total += qty
        entries.append({"dayIdx": day_idx, "qty": qty})

    if total != quantity:
        raise BreakdownMismatchError(total, quantity)
    return entries


class ItemUpdateGuard:
    def __init__(self, db: AsyncSession, batcher: UpdateNotificationBatcher):
        self.db = db
        self.batcher = batcher

    async def apply(
        self,
        item: Item,
        update: ItemUpdate,
        claims: SessionClaims,
        mode: str | None,
    ) -> Item:
        """Validate, persist the item and one history row, then notify.

        `mode` comes from `item_write_mode`: "full" applies every supplied
        field, "quantity" applies the quantity and ignores the rest.
        """
        if mode not in ("full", "quantity"):
            raise ForbiddenError("Forbidden: insufficient permissions to update item")

        new_quantity = update.quantity if update.quantity is not None else item.quantity

        breakdown = None
        if update.day_breakdown is not None:
            breakdown = validate_day_breakdown(item, new_quantity, update.day_breakdown)

        previous_quantity = item.quantity
        item.quantity = new_quantity
        if mode == "full":
            for field in FULL_EDIT_FIELDS:
                value = getattr(update, field)
                if value is not None:
                    setattr(item, field, value)

        self.db.add(
            ItemHistory(
                item_id=item.id,
                quantity=new_quantity,
                updated_by=update.updated_by or claims.email or "Unknown",
                day_breakdown=breakdown,
            )
        )
        await self.db.flush()
        await self.db.refresh(item)

        if previous_quantity != new_quantity:
            self._notify(item, previous_quantity, breakdown)
        return item

    def _notify(self, item: Item, previous_quantity: int, breakdown: list[dict] | None) -> None:
        try:
            self.batcher.queue(
                ItemUpdateEvent(
                    organization_id=item.organization_id,
                    store_id=item.store_id,
                    item_id=item.id,
                    name=item.name,
                    category=item.category,
                    quantity=item.quantity,
                    previous_quantity=previous_quantity,
                    day_breakdown=breakdown,
                )
            )
        except Exception:
            logger.exception("Could not queue update notification for item %s", item.id)
