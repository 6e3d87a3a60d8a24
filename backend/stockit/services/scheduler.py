"""Background task scheduler: daily low-stock check for every store.

Uses FastAPI's lifespan context to start/stop an asyncio background loop
that fires once per day at the configured hour. No external scheduler.

Configuration:
    LOW_STOCK_CHECK_ENABLED=true
    LOW_STOCK_CHECK_HOUR=7   (run at 07:00 UTC daily, via .env)

The lifespan also creates missing tables on startup and, on shutdown,
flushes any item-update batches still waiting for their window.
"""

import asyncio
import html
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone

from fastapi import FastAPI
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from stockit.config import settings
from stockit.database import async_session, create_tables
from stockit.models.item import Item
from stockit.models.store import Store
from stockit.services.email import EmailSender, get_email_sender
from stockit.services.item_update import required_for_day
from stockit.services.notifications import close_update_batcher
from stockit.services.permissions_store import (
    PermissionsRepository,
    get_permissions_repository,
)
from stockit.utils.redis_pool import close_redis

logger = logging.getLogger("stockit.scheduler")

URGENT_RATIO = 0.2  # below 20% of the day's requirement


def day_index(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def find_low_stock(items: list[Item], day_idx: int) -> list[dict]:
    low = []
    for item in items:
        required = required_for_day(item, day_idx)
        if item.quantity < required:
            low.append({
                "id": item.id,
                "name": item.name,
                "quantity": item.quantity,
                "required": required,
                "shortage": required - item.quantity,
            })
    return low


def is_urgent(low_items: list[dict]) -> bool:
    return any(
        it["quantity"] <= 0 or it["quantity"] < it["required"] * URGENT_RATIO
        for it in low_items
    )


def render_low_stock_alert(
    store_name: str, low_items: list[dict], urgent: bool
) -> tuple[str, str, str]:
    subject = "URGENT: Low Stock Alert" if urgent else "Low Stock Alert"
    subject = f"StockIT: {subject} ({store_name})"

    rows = "\n".join(
        "<tr>"
        f'<td style="padding:8px;border:1px solid #ddd;">{html.escape(it["name"])}</td>'
        f'<td style="padding:8px;border:1px solid #ddd;">{it["quantity"]}</td>'
        f'<td style="padding:8px;border:1px solid #ddd;">{it["required"]}</td>'
        f'<td style="padding:8px;border:1px solid #ddd;">{it["shortage"]}</td>'
        "</tr>"
        for it in low_items
    )
    html_body = f"""
    <div style="font-family:Arial,sans-serif;">
      <h3>{"URGENT: " if urgent else ""}Low Stock Alert</h3>
      <p><strong>Store:</strong> {html.escape(store_name)}</p>
      <table style="border-collapse:collapse;width:100%;">
        <thead>
          <tr style="background:#f2f2f2;">
            <th style="padding:8px;border:1px solid #ddd;text-align:left;">Item</th>
            <th style="padding:8px;border:1px solid #ddd;text-align:left;">Quantity</th>
            <th style="padding:8px;border:1px solid #ddd;text-align:left;">Required</th>
            <th style="padding:8px;border:1px solid #ddd;text-align:left;">Shortage</th>
          </tr>
        </thead>
        <tbody>
{rows}
        </tbody>
      </table>
    </div>
    """
    text_body = "\n".join(
        [f"Low stock at {store_name}:"]
        + [
            f"- {it['name']}: {it['quantity']} of {it['required']} (short {it['shortage']})"
            for it in low_items
        ]
    )
    return subject, html_body, text_body


async def _check_store(
    store: Store,
    items: list[Item],
    day_idx: int,
    recipients: list[str],
    sender: EmailSender,
) -> bool:
    """Alert for one store. Returns True when an alert was sent."""
    low_items = find_low_stock(items, day_idx)
    if not low_items:
        logger.debug("All items in %s have sufficient stock", store.name)
        return False

    urgent = is_urgent(low_items)
    logger.info(
        "Found %d low stock items in %s (urgent=%s)", len(low_items), store.name, urgent
    )
    subject, html_body, text_body = render_low_stock_alert(store.name, low_items, urgent)
    await sender.send(recipients, subject, html_body, text_body)
    return True


async def run_low_stock_check(
    session_factory: async_sessionmaker = async_session,
    repository: PermissionsRepository | None = None,
    sender: EmailSender | None = None,
    today: date | None = None,
) -> dict:
    """Check every store once; a failing store does not stop the run."""
    repository = repository or get_permissions_repository()
    sender = sender or get_email_sender()
    day_idx = day_index(today or datetime.now(timezone.utc).date())

    recipients = repository.notify_emails()
    summary = {"stores": 0, "alerts": 0, "failed": 0}
    if not recipients:
        logger.info("No notify recipients configured; skipping low stock check")
        return summary

    logger.info("Starting low stock check (dayIdx=%d)", day_idx)
    async with session_factory() as db:
        stores = (await db.execute(select(Store).order_by(Store.id))).scalars().all()
        for store in stores:
            summary["stores"] += 1
            try:
                items = (
                    await db.execute(select(Item).where(Item.store_id == store.id))
                ).scalars().all()
                if await _check_store(store, list(items), day_idx, recipients, sender):
                    summary["alerts"] += 1
            except Exception:
                summary["failed"] += 1
                logger.exception("Low stock check failed for store %s", store.id)

    logger.info(
        "Low stock check complete: %d stores, %d alerts, %d failed",
        summary["stores"],
        summary["alerts"],
        summary["failed"],
    )
    return summary


def seconds_until(hour: int, now: datetime) -> float:
    next_run = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def _scheduler_loop() -> None:
    """Sleep loop that fires the low stock check once per day."""
    while True:
        wait_seconds = seconds_until(
            settings.low_stock_check_hour, datetime.now(timezone.utc)
        )
        logger.info("Next low stock check in %.0f seconds", wait_seconds)

        await asyncio.sleep(wait_seconds)

        try:
            await run_low_stock_check()
        except Exception:
            logger.exception("Unhandled error in low stock check")

        # Small buffer to avoid running twice in the same minute
        await asyncio.sleep(60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and start the scheduler; flush and stop on shutdown."""
    await create_tables()

    task = None
    if settings.low_stock_check_enabled:
        task = asyncio.create_task(_scheduler_loop())
        logger.info("Low stock scheduler started")
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Low stock scheduler stopped")
        await close_update_batcher()
        await close_redis()
