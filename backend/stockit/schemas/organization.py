from datetime import datetime

from stockit.schemas.common import CamelModel
from stockit.schemas.item import ItemBase
from stockit.schemas.store import StoreOut


class OrganizationCreate(CamelModel):
    name: str
    industry: str | None = None
    address: str | None = None
    phone: str | None = None
    timezone: str | None = None


class OrganizationOut(CamelModel):
    id: int
    name: str
    industry: str
    address: str | None = None
    phone: str | None = None
    timezone: str
    admin_email: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    logo_url: str | None = None
    default_categories: list[str] = []
    created_at: datetime | None = None


# ── Onboarding ───────────────────────────────────────────────

class OrganizationSettings(CamelModel):
    industry: str | None = None
    timezone: str | None = None
    address: str | None = None
    phone: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    logo_url: str | None = None


class SetupStore(CamelModel):
    name: str | None = None
    address: str | None = None


class SetupItem(ItemBase):
    pass


class OrganizationSetupRequest(CamelModel):
    org_settings: OrganizationSettings = OrganizationSettings()
    store: SetupStore = SetupStore()
    items: list[SetupItem] = []
    default_categories: list[str] | None = None


class OrganizationSetupResponse(CamelModel):
    message: str
    organization: OrganizationOut
    stores: list[StoreOut]
    organization_id: int
    store_id: int


class CategoryCreate(CamelModel):
    category: str


class CategoriesOut(CamelModel):
    categories: list[str]
    message: str | None = None
