import enum
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockit.database import Base


class StoreRole(str, enum.Enum):
    STORE = "STORE"      # quantity-only edits
    MANAGER = "MANAGER"  # full item edits


class Store(Base):
    __tablename__ = "stores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500))
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    organization = relationship("Organization", back_populates="stores")
    items = relationship("Item", back_populates="store")


class UserStoreAccess(Base):
    """DB-backed store assignment for a user.

    Authoritative over the `staff`/`managers` maps of the permissions
    document: when a user has any rows here, the config maps are ignored
    for that user (see `stockit.auth.permissions.resolve_access`).
    """

    __tablename__ = "user_store_access"
    __table_args__ = (
        UniqueConstraint("user_id", "store_id", name="uq_user_store_access"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    store_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("organizations.id")
    )
    store_role: Mapped[StoreRole] = mapped_column(
        SAEnum(StoreRole), default=StoreRole.STORE, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="store_access")
