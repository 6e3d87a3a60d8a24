"""Item and ItemHistory.

ItemHistory is an append-only audit log: one row per successful item
update, carrying the quantity set, who set it, and an optional
per-weekday breakdown of that quantity:

    [{"dayIdx": 1, "qty": 5}, {"dayIdx": 2, "qty": 3}]   # 0 = Sunday
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockit.database import Base

# Index == dayIdx used by day breakdowns (0 = Sunday ... 6 = Saturday)
WEEKDAY_REQUIRED_FIELDS = (
    "sunday_required",
    "monday_required",
    "tuesday_required",
    "wednesday_required",
    "thursday_required",
    "friday_required",
    "saturday_required",
)

DAY_ABBREVIATIONS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


class Item(Base):
    __tablename__ = "items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), default="Other")
    quantity: Mapped[int] = mapped_column(Integer, default=0)

    # ── Target stock level per weekday ───────────────────────
    monday_required: Mapped[int] = mapped_column(Integer, default=0)
    tuesday_required: Mapped[int] = mapped_column(Integer, default=0)
    wednesday_required: Mapped[int] = mapped_column(Integer, default=0)
    thursday_required: Mapped[int] = mapped_column(Integer, default=0)
    friday_required: Mapped[int] = mapped_column(Integer, default=0)
    saturday_required: Mapped[int] = mapped_column(Integer, default=0)
    sunday_required: Mapped[int] = mapped_column(Integer, default=0)

    store_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("stores.id"), nullable=False, index=True
    )
    # Denormalised from the store; must always equal store.organization_id
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    store = relationship("Store", back_populates="items")
    history = relationship(
        "ItemHistory",
        back_populates="item",
        cascade="all, delete-orphan",
    )


class ItemHistory(Base):
    __tablename__ = "item_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_by: Mapped[str] = mapped_column(String(255), nullable=False)
    day_breakdown: Mapped[list | None] = mapped_column(JSON)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )

    item = relationship("Item", back_populates="history")
