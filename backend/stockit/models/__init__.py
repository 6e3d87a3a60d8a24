"""Aggregate model imports so metadata.create_all sees every table."""

from stockit.models.organization import Organization  # noqa: F401
from stockit.models.user import User, UserRole  # noqa: F401
from stockit.models.store import Store, StoreRole, UserStoreAccess  # noqa: F401
from stockit.models.item import Item, ItemHistory  # noqa: F401
