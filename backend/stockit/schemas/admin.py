from pydantic import EmailStr, ValidationError, ValidatorFunctionWrapHandler, field_validator

from stockit.schemas.common import CamelModel


class PermissionsDocument(CamelModel):
    """Shape of the permissions JSON file.

    Each key is read on its own: a missing or wrongly shaped key becomes
    empty, and within a list or map only the bad entries are dropped, so
    one broken key never hides the rest of the document.
    """
    full_access_store_ids: list[int] = []
    full_access_users: list[str] = []
    notify_emails: list[str] = []
    staff: dict[str, list[int]] = {}
    managers: dict[str, list[int]] = {}

    @field_validator("full_access_store_ids", "full_access_users", "notify_emails", mode="wrap")
    @classmethod
    def _keep_valid_items(cls, value, handler: ValidatorFunctionWrapHandler):
        if not isinstance(value, list):
            return []
        try:
            return handler(value)
        except ValidationError:
            pass
        kept = []
        for entry in value:
            try:
                kept.extend(handler([entry]))
            except ValidationError:
                continue
        return kept

    @field_validator("staff", "managers", mode="wrap")
    @classmethod
    def _keep_valid_entries(cls, value, handler: ValidatorFunctionWrapHandler):
        if not isinstance(value, dict):
            return {}
        try:
            return handler(value)
        except ValidationError:
            pass
        kept = {}
        for email, store_ids in value.items():
            try:
                kept.update(handler({email: store_ids}))
            except ValidationError:
                continue
        return kept


class StoreIdsRequest(CamelModel):
    store_ids: list[int]


class StoreAssignmentRequest(CamelModel):
    email: EmailStr
    store_ids: list[int]


class EmailsRequest(CamelModel):
    emails: list[str]


class InviteRequest(CamelModel):
    email: EmailStr
    role: str = "STORE"
    store_role: str | None = None
    store_ids: list[int] = []
    organization_id: int | None = None
    invite_url_base: str | None = None


class InviteResponse(CamelModel):
    success: bool = True
    invite_link: str
    token: str
