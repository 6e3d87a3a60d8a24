"""Item update notifications.

Quantity changes are not mailed one by one. `UpdateNotificationBatcher`
collects them per (organization, store) and sends one summary email when
the batch window closes:

    queue(event)   first event for a key opens a batch and arms a timer;
                   later events upsert into it (by item id, else name).
                   The timer is never reset.
    timer fires    flush(): the batch is removed, recipients are read
                   from the permissions document and one summary email
                   is sent. Delivery failures are logged, not retried.

The next event for the same key opens a fresh batch.

Everything runs on the event loop. `queue` has no await points and
`flush` detaches its batch before its first await, so the two never
interleave on the same batch.
"""

import asyncio
import html
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from stockit.config import settings
from stockit.models.item import DAY_ABBREVIATIONS
from stockit.services.email import EmailSender, get_email_sender
from stockit.services.permissions_store import (
    PermissionsRepository,
    get_permissions_repository,
)

logger = logging.getLogger("stockit.notifications")

# (delay_seconds, callback) -> handle with .cancel()
Scheduler = Callable[[float, Callable[[], None]], Any]
StoreNameResolver = Callable[[int], Awaitable[str | None]]

_CELL = "padding:8px;border:1px solid #ddd;"
_HEAD_CELL = _CELL + "text-align:left;"


@dataclass
class ItemUpdateEvent:
    organization_id: int | None
    store_id: int
    name: str
    quantity: int
    item_id: int | None = None
    category: str | None = None
    previous_quantity: int | None = None
    day_breakdown: list[dict] | None = None

    @property
    def dedupe_key(self) -> str:
        return str(self.item_id) if self.item_id is not None else f"name:{self.name}"


@dataclass
class _Batch:
    organization_id: int | None
    store_id: int
    items: dict[str, ItemUpdateEvent] = field(default_factory=dict)
    handle: Any = None


def _default_scheduler(delay: float, callback: Callable[[], None]):
    return asyncio.get_running_loop().call_later(delay, callback)


# ── Rendering ───────────────────────────────────────────────

def format_day_breakdown(breakdown: list[dict] | None) -> str:
    """`[{"dayIdx": 1, "qty": 5}]` -> `"5 Mon"`; malformed entries are skipped."""
    parts = []
    for entry in breakdown or []:
        if not isinstance(entry, dict):
            continue
        day_idx = entry.get("dayIdx")
        qty = entry.get("qty")
        if isinstance(day_idx, bool) or not isinstance(day_idx, int):
            continue
        if isinstance(qty, bool) or not isinstance(qty, (int, float)):
            continue
        if 0 <= day_idx < len(DAY_ABBREVIATIONS):
            parts.append(f"{qty:g} {DAY_ABBREVIATIONS[day_idx]}")
    return ", ".join(parts)


def render_summary(
    store_name: str, items: list[ItemUpdateEvent]
) -> tuple[str, str, str]:
    """Return (subject, html_body, text_body) for a batch of updates."""
    count = len(items)
    subject = (
        f"StockIT: Items updated ({store_name}) - "
        f"{count} change{'s' if count != 1 else ''}"
    )

    lines = []
    for it in items:
        breakdown = format_day_breakdown(it.day_breakdown)
        suffix = f" ({breakdown})" if breakdown else ""
        lines.append(f"- {it.name} - Qty: {it.quantity}{suffix}")
    copy_block = "\n".join(lines)

    rows = "\n".join(
        "<tr>"
        f'<td style="{_CELL}">{html.escape(it.name)}</td>'
        f'<td style="{_CELL}">{html.escape(it.category or "Other")}</td>'
        f'<td style="{_CELL}">{it.quantity}</td>'
        f'<td style="{_CELL}">{html.escape(format_day_breakdown(it.day_breakdown) or "-")}</td>'
        "</tr>"
        for it in items
    )

    html_body = f"""
    <div style="font-family:Arial,sans-serif;">
      <h3>Items Update Summary</h3>
      <p><strong>Store:</strong> {html.escape(store_name)}</p>
      <div style="background:#fff8e1;border:1px dashed #e0c200;padding:12px;border-radius:4px;margin:15px 0;">
        <div style="font-weight:bold;margin-bottom:8px;">Copy &amp; Paste Summary:</div>
        <pre style="white-space:pre-wrap;font-family:Consolas,'Courier New',monospace;font-size:13px;margin:0;">{html.escape(copy_block)}</pre>
      </div>
      <table style="border-collapse:collapse;width:100%;">
        <thead>
          <tr style="background:#f2f2f2;">
            <th style="{_HEAD_CELL}">Item</th>
            <th style="{_HEAD_CELL}">Category</th>
            <th style="{_HEAD_CELL}">Quantity</th>
            <th style="{_HEAD_CELL}">Day Breakdown</th>
          </tr>
        </thead>
        <tbody>
{rows}
        </tbody>
      </table>
      <p style="color:#555;margin-top:12px;">Tip: Copy the summary block above to share quickly.</p>
    </div>
    """
    text_body = f"Items Update Summary\nStore: {store_name}\n\n{copy_block}\n"
    return subject, html_body, text_body


async def lookup_store_name(store_id: int) -> str | None:
    """Store name from the database, in a session of its own."""
    from stockit.database import async_session
    from stockit.models.store import Store

    async with async_session() as db:
        store = await db.get(Store, store_id)
        return store.name if store else None


# ── Batcher ─────────────────────────────────────────────────

class UpdateNotificationBatcher:
    def __init__(
        self,
        permissions: PermissionsRepository,
        sender: EmailSender,
        window_seconds: float = 120.0,
        enabled: bool = True,
        store_name_resolver: StoreNameResolver = lookup_store_name,
        scheduler: Scheduler = _default_scheduler,
    ):
        self.permissions = permissions
        self.sender = sender
        self.window_seconds = window_seconds
        self.enabled = enabled
        self.store_name_resolver = store_name_resolver
        self.scheduler = scheduler
        self._batches: dict[tuple[int | None, int], _Batch] = {}
        self._flush_tasks: set[asyncio.Task] = set()

    def queue(self, event: ItemUpdateEvent) -> None:
        if not self.enabled:
            logger.debug(
                "Update batching disabled; dropping event for item %s", event.name
            )
            return

        key = (event.organization_id, event.store_id)
        batch = self._batches.get(key)
        if batch is None:
            batch = _Batch(event.organization_id, event.store_id)
            self._batches[key] = batch
            batch.handle = self.scheduler(
                self.window_seconds, lambda: self._on_timer(key)
            )
            logger.debug("Opened update batch for org=%s store=%s", *key)

        # Re-queued items keep their first-appearance position
        batch.items[event.dedupe_key] = replace(event)

    def _on_timer(self, key: tuple[int | None, int]) -> None:
        task = asyncio.ensure_future(self.flush(*key))
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    def pending(self, organization_id: int | None, store_id: int) -> list[ItemUpdateEvent]:
        batch = self._batches.get((organization_id, store_id))
        return list(batch.items.values()) if batch else []

    async def flush(self, organization_id: int | None, store_id: int) -> None:
        batch = self._batches.pop((organization_id, store_id), None)
        if batch is None:
            return
        if batch.handle is not None:
            batch.handle.cancel()

        items = list(batch.items.values())
        if not items:
            return

        recipients = self.permissions.notify_emails()
        if not recipients:
            logger.debug(
                "No notify recipients; dropping %d update(s) for store %s",
                len(items),
                store_id,
            )
            return

        store_name = await self._store_name(store_id)
        subject, html_body, text_body = render_summary(store_name, items)
        try:
            await self.sender.send(recipients, subject, html_body, text_body)
        except Exception:
            logger.exception(
                "Update summary email failed for org=%s store=%s",
                organization_id,
                store_id,
            )

    async def _store_name(self, store_id: int) -> str:
        try:
            name = await self.store_name_resolver(store_id)
        except Exception:
            logger.exception("Store name lookup failed for store %s", store_id)
            name = None
        return name or f"Store {store_id}"

    async def flush_all(self) -> None:
        for key in list(self._batches):
            await self.flush(*key)

    async def aclose(self) -> None:
        """Flush everything pending and wait for in-flight timer flushes."""
        await self.flush_all()
        if self._flush_tasks:
            await asyncio.gather(*self._flush_tasks, return_exceptions=True)


_batcher: UpdateNotificationBatcher | None = None


def get_update_batcher() -> UpdateNotificationBatcher:
    global _batcher
    if _batcher is None:
        _batcher = UpdateNotificationBatcher(
            permissions=get_permissions_repository(),
            sender=get_email_sender(),
            window_seconds=settings.email_batch_window_seconds,
            enabled=settings.email_batch_enabled,
        )
    return _batcher


async def close_update_batcher() -> None:
    """Flush pending batches (call on app shutdown)."""
    if _batcher is not None:
        await _batcher.aclose()


# ── Item creation ───────────────────────────────────────────

async def send_item_created_email(
    sender: EmailSender,
    recipients: list[str],
    item,
    actor: str | None,
) -> None:
    """One-off email for a newly created item. Failures are logged."""
    if not recipients:
        return

    subject = f"StockIT: New item created - {item.name} (Store {item.store_id})"
    created = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    html_body = f"""
    <div style="font-family:Arial,sans-serif;">
      <h3>New Item Created</h3>
      <ul>
        <li><strong>Name:</strong> {html.escape(item.name)}</li>
        <li><strong>Category:</strong> {html.escape(item.category or "Other")}</li>
        <li><strong>Quantity:</strong> {item.quantity}</li>
        <li><strong>Store ID:</strong> {item.store_id}</li>
        <li><strong>Organization ID:</strong> {item.organization_id}</li>
        <li><strong>By:</strong> {html.escape(actor or "Unknown")}</li>
      </ul>
      <p>Time: {created}</p>
    </div>
    """
    try:
        await sender.send(recipients, subject, html_body)
    except Exception:
        logger.exception("New item email failed for item %s", item.id)
