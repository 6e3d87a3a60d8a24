"""Permissions document repository.

The document holds the coarse-grained, admin-editable access lists:

    {
      "fullAccessStoreIds": [1, 2],
      "fullAccessUsers": ["owner@acme.com"],
      "notifyEmails": ["ops@acme.com"],
      "staff": {"clerk@acme.com": [3]},
      "managers": {"lead@acme.com": [3, 4]}
    }

`PermissionsRepository` defines the read/write contract plus the lookups
and mutations every caller uses; `FilePermissionsRepository` stores the
document as a JSON file.

Reads never fail: a missing, unreadable or unparseable file degrades to an
empty document, and a key with the wrong shape is emptied on its own
without touching the others.

Writes go to a temp file in the same directory and are moved over the
target with `os.replace`, so readers see either the old or the new
document, never a partial one. Concurrent writers are last-writer-wins.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from stockit.config import settings
from stockit.schemas.admin import PermissionsDocument

logger = logging.getLogger(__name__)


def normalise_email(email: str) -> str:
    return email.strip().lower()


class PermissionsRepository:
    """Read/write contract for the permissions document."""

    def read(self) -> PermissionsDocument:
        raise NotImplementedError

    def write(self, document: PermissionsDocument) -> None:
        raise NotImplementedError

    # ── Lookups ──────────────────────────────────────────────

    def full_access_store_ids(self) -> list[int]:
        return self.read().full_access_store_ids

    def full_access_users(self) -> list[str]:
        return self.read().full_access_users

    def notify_emails(self) -> list[str]:
        return self.read().notify_emails

    def staff_store_ids(self, email: str) -> list[int]:
        return self.read().staff.get(normalise_email(email), [])

    def manager_store_ids(self, email: str) -> list[int]:
        return self.read().managers.get(normalise_email(email), [])

    # ── Mutations (read-modify-write) ────────────────────────

    def set_full_access_store_ids(self, store_ids: list[int]) -> list[int]:
        doc = self.read()
        doc.full_access_store_ids = [int(s) for s in store_ids]
        self.write(doc)
        return doc.full_access_store_ids

    def set_notify_emails(self, emails: list[str]) -> list[str]:
        doc = self.read()
        doc.notify_emails = list(emails)
        self.write(doc)
        return doc.notify_emails

    def set_full_access_users(self, emails: list[str]) -> list[str]:
        doc = self.read()
        doc.full_access_users = [normalise_email(e) for e in emails]
        self.write(doc)
        return doc.full_access_users

    def add_full_access_user(self, email: str) -> list[str]:
        doc = self.read()
        email = normalise_email(email)
        if email not in doc.full_access_users:
            doc.full_access_users.append(email)
            self.write(doc)
        return doc.full_access_users

    def assign_staff(self, email: str, store_ids: list[int]) -> list[int]:
        """Replace the staff store list for one email; other entries untouched."""
        doc = self.read()
        ids = [int(s) for s in store_ids]
        doc.staff[normalise_email(email)] = ids
        self.write(doc)
        return ids

    def assign_managers(self, email: str, store_ids: list[int]) -> list[int]:
        """Replace the manager store list for one email; other entries untouched."""
        doc = self.read()
        ids = [int(s) for s in store_ids]
        doc.managers[normalise_email(email)] = ids
        self.write(doc)
        return ids


class FilePermissionsRepository(PermissionsRepository):
    """Permissions document stored as a JSON file."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def read(self) -> PermissionsDocument:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return PermissionsDocument()
        except OSError as e:
            logger.warning("Could not read permissions file %s: %s", self.path, e)
            return PermissionsDocument()

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("top-level value is not an object")
            return PermissionsDocument.model_validate(data)
        except (ValueError, ValidationError) as e:
            logger.warning("Ignoring malformed permissions file %s: %s", self.path, e)
            return PermissionsDocument()

    def write(self, document: PermissionsDocument) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(document.model_dump(by_alias=True), indent=2)

        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise


# ── Dependency ──────────────────────────────────────────────

_repository: PermissionsRepository | None = None


def get_permissions_repository() -> PermissionsRepository:
    """Process-wide repository for the configured permissions file."""
    global _repository
    if _repository is None:
        _repository = FilePermissionsRepository(settings.permissions_file)
    return _repository
