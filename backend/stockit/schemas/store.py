from datetime import datetime

from stockit.schemas.common import CamelModel


class StoreCreate(CamelModel):
    name: str
    address: str | None = None
    organization_id: int | None = None  # overwritten from the token


class StoreOut(CamelModel):
    id: int
    name: str
    address: str | None = None
    organization_id: int
    created_at: datetime | None = None


class UserListOut(CamelModel):
    id: int
    email: str
    role: str
    organization_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
