"""Notification bundling: one digest per recipient per time window.

``record`` is called inside the transaction that produced an event. It writes
one notification row per recipient and makes sure each recipient has a
pending bundle; the first notification opens the window and schedules its
delivery at ``window_end``. Later notifications are not attached to the
bundle: ``deliver`` collects everything undelivered that falls inside the
window when it runs.

``deliver`` may be invoked by the scheduled callback, the catch-all sweep, or
by hand, possibly more than once. Only the caller that moves the bundle from
``pending`` to ``processing`` does any work; every other call is a no-op.

Failed deliveries return to ``pending`` with an exponential backoff recorded
in ``next_attempt_at``; only the catch-all sweep retries them.
"""
from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import event, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session

from cardflow.config import settings
from cardflow.core.context import RequestContext
from cardflow.core.metrics import notification_bundles_total, notifications_delivered_total
from cardflow.models.base import utcnow
from cardflow.models.event import Event
from cardflow.models.notification import BundleStatus, Notification, NotificationBundle
from cardflow.services import notification_service
from cardflow.services.email_service import DigestItem, NotificationDeliverer, get_default_deliverer
from cardflow.services.scheduler import TaskScheduler

logger = logging.getLogger(__name__)


class DeliveryOutcome(str, enum.Enum):
    SKIPPED = "skipped"
    DELIVERED = "delivered"
    FAILED = "failed"


def bundle_window() -> timedelta:
    return timedelta(minutes=settings.NOTIFICATION_BUNDLE_WINDOW_MINUTES)


def retry_delay(attempts: int) -> timedelta:
    """Backoff after the ``attempts``-th failed delivery: base * 2^(n-1), capped."""
    exponent = max(attempts - 1, 0)
    seconds = settings.NOTIFICATION_RETRY_BASE_SECONDS * (2 ** min(exponent, 20))
    return timedelta(seconds=min(seconds, settings.NOTIFICATION_RETRY_MAX_SECONDS))


def _default_scheduler() -> TaskScheduler:
    from cardflow.services.scheduler import scheduler

    return scheduler


_DELIVERIES_KEY = "cardflow.bundle_deliveries"


def _schedule_after_commit(
    db: AsyncSession, bundle: NotificationBundle, scheduler: TaskScheduler | None
) -> None:
    """Queue the delivery callback until the bundle row is committed."""
    db.info.setdefault(_DELIVERIES_KEY, []).append(
        (scheduler or _default_scheduler(), bundle.window_end, bundle.id)
    )


@event.listens_for(Session, "after_commit")
def _on_commit(session: Session) -> None:
    if session.in_nested_transaction():
        return
    from cardflow.services.background import deliver_bundle_job

    for sched, when, bundle_id in session.info.pop(_DELIVERIES_KEY, []):
        sched.run_at(when, deliver_bundle_job, bundle_id)


@event.listens_for(Session, "after_transaction_end")
def _on_transaction_end(session: Session, transaction) -> None:
    # Rolled back or closed without commit; the bundle never existed
    if transaction.parent is None:
        session.info.pop(_DELIVERIES_KEY, None)


async def pending_bundle(
    db: AsyncSession, tenant_id: uuid.UUID, recipient_id: uuid.UUID
) -> NotificationBundle | None:
    result = await db.execute(
        select(NotificationBundle).where(
            NotificationBundle.tenant_id == tenant_id,
            NotificationBundle.recipient_id == recipient_id,
            NotificationBundle.status == BundleStatus.PENDING.value,
        )
    )
    return result.scalar_one_or_none()


async def open_bundle(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    recipient_id: uuid.UUID,
    window_start: datetime,
    *,
    scheduler: TaskScheduler | None = None,
) -> NotificationBundle | None:
    """Create a pending bundle unless one exists. Returns the new bundle or None."""
    if await pending_bundle(db, tenant_id, recipient_id) is not None:
        return None

    bundle = NotificationBundle(
        tenant_id=tenant_id,
        recipient_id=recipient_id,
        window_start=window_start,
        window_end=window_start + bundle_window(),
        status=BundleStatus.PENDING.value,
        attempts=0,
    )
    try:
        async with db.begin_nested():
            db.add(bundle)
            await db.flush()
    except IntegrityError:
        # A concurrent writer opened the pending bundle first
        logger.debug("Pending bundle for %s already exists", recipient_id)
        return None

    _schedule_after_commit(db, bundle, scheduler)
    return bundle


async def record(
    db: AsyncSession,
    ctx: RequestContext,
    event: Event,
    recipient_ids: list[uuid.UUID],
    *,
    now: datetime | None = None,
    scheduler: TaskScheduler | None = None,
) -> list[Notification]:
    """Queue ``event`` for each recipient's next digest."""
    now = now or utcnow()
    notifications = await notification_service.create_notifications(
        db, ctx, event, recipient_ids, now=now
    )
    for notif in notifications:
        await open_bundle(db, ctx.tenant_id, notif.recipient_id, now, scheduler=scheduler)
    return notifications


async def _collect(db: AsyncSession, bundle: NotificationBundle) -> list[tuple[Notification, Event | None]]:
    result = await db.execute(
        select(Notification, Event)
        .outerjoin(Event, Event.id == Notification.event_id)
        .where(
            Notification.tenant_id == bundle.tenant_id,
            Notification.recipient_id == bundle.recipient_id,
            Notification.delivered_at.is_(None),
            Notification.created_at >= bundle.window_start,
            Notification.created_at <= bundle.window_end,
        )
        .order_by(Notification.created_at, Notification.id)
    )
    return [(row[0], row[1]) for row in result.all()]


def _digest_item(notif: Notification, event: Event | None) -> DigestItem:
    return DigestItem(
        notification_id=notif.id,
        action=event.action if event else None,
        source_type=notif.source_type,
        source_id=notif.source_id,
        actor_id=event.actor_id if event else None,
        created_at=notif.created_at,
        payload=(event.payload or {}) if event else {},
    )


async def _release(db: AsyncSession, bundle: NotificationBundle, now: datetime, error: str) -> None:
    """Put a failed or abandoned bundle back in line for the sweep.

    If the recipient already got a new pending bundle meanwhile, that one
    absorbs this bundle's window instead, keeping a single pending bundle.
    """
    other = await pending_bundle(db, bundle.tenant_id, bundle.recipient_id)
    if other is not None and other.id != bundle.id:
        other.window_start = min(other.window_start, bundle.window_start)
        bundle.status = BundleStatus.DELIVERED.value
        bundle.last_error = f"{error}; merged into bundle {other.id}"
    else:
        bundle.status = BundleStatus.PENDING.value
        bundle.next_attempt_at = now + retry_delay(bundle.attempts)
        bundle.last_error = error
    bundle.claimed_at = None
    await db.flush()


async def _open_for_leftovers(
    db: AsyncSession,
    bundle: NotificationBundle,
    scheduler: TaskScheduler | None,
) -> NotificationBundle | None:
    """Open a follow-up bundle for notifications the window did not cover."""
    earliest = (
        await db.execute(
            select(func.min(Notification.created_at)).where(
                Notification.tenant_id == bundle.tenant_id,
                Notification.recipient_id == bundle.recipient_id,
                Notification.delivered_at.is_(None),
            )
        )
    ).scalar()
    if earliest is None:
        return None
    return await open_bundle(
        db, bundle.tenant_id, bundle.recipient_id, earliest, scheduler=scheduler
    )


async def deliver(
    db: AsyncSession,
    bundle_id: uuid.UUID,
    deliverer: NotificationDeliverer | None = None,
    *,
    now: datetime | None = None,
    scheduler: TaskScheduler | None = None,
) -> DeliveryOutcome:
    """Deliver a pending bundle. Safe to call any number of times."""
    now = now or utcnow()
    claimed = await db.execute(
        update(NotificationBundle)
        .where(
            NotificationBundle.id == bundle_id,
            NotificationBundle.status == BundleStatus.PENDING.value,
        )
        .values(
            status=BundleStatus.PROCESSING.value,
            claimed_at=now,
            attempts=NotificationBundle.attempts + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        return DeliveryOutcome.SKIPPED
    await db.commit()

    bundle = await db.get(NotificationBundle, bundle_id, populate_existing=True)
    rows = await _collect(db, bundle)
    items = [_digest_item(notif, event) for notif, event in rows]
    log_extra = {"bundle_id": str(bundle.id), "recipient_id": str(bundle.recipient_id)}

    if items:
        try:
            await (deliverer or get_default_deliverer()).deliver(bundle.recipient_id, items)
        except Exception as exc:
            logger.exception(
                "Delivery of bundle %s failed (attempt %d)", bundle.id, bundle.attempts,
                extra=log_extra,
            )
            await _release(db, bundle, now, f"{type(exc).__name__}: {exc}")
            await db.commit()
            notification_bundles_total.labels(outcome="failed").inc()
            return DeliveryOutcome.FAILED

    for notif, _event in rows:
        notif.delivered_at = now
        notif.bundle_id = bundle.id
    bundle.status = BundleStatus.DELIVERED.value
    bundle.delivered_at = now
    bundle.next_attempt_at = None
    bundle.last_error = None
    await db.flush()
    await _open_for_leftovers(db, bundle, scheduler)
    await db.commit()

    notification_bundles_total.labels(outcome="delivered" if items else "empty").inc()
    notifications_delivered_total.inc(len(items))
    logger.info(
        "Delivered bundle %s with %d notification(s)", bundle.id, len(items), extra=log_extra
    )
    return DeliveryOutcome.DELIVERED


@dataclass
class BundleSweepReport:
    due: int = 0
    delivered: int = 0
    failed: int = 0
    skipped: int = 0
    reclaimed: int = 0
    errors: list[str] = field(default_factory=list)


async def _reclaim_stale(db: AsyncSession, now: datetime) -> int:
    cutoff = now - timedelta(minutes=settings.NOTIFICATION_PROCESSING_TIMEOUT_MINUTES)
    result = await db.execute(
        select(NotificationBundle).where(
            NotificationBundle.status == BundleStatus.PROCESSING.value,
            NotificationBundle.claimed_at < cutoff,
        )
    )
    stale = list(result.scalars().all())
    for bundle in stale:
        await _release(db, bundle, now, "processing timed out")
    await db.commit()
    return len(stale)


async def sweep_due_bundles(
    session_factory: async_sessionmaker[AsyncSession],
    deliverer: NotificationDeliverer | None = None,
    *,
    now: datetime | None = None,
    scheduler: TaskScheduler | None = None,
) -> BundleSweepReport:
    """Force-deliver pending bundles whose window has closed.

    Covers scheduled callbacks that were lost or never ran, and retries
    failed deliveries once their backoff has elapsed.
    """
    now = now or utcnow()
    report = BundleSweepReport()

    async with session_factory() as db:
        report.reclaimed = await _reclaim_stale(db, now)
        result = await db.execute(
            select(NotificationBundle.id)
            .where(
                NotificationBundle.status == BundleStatus.PENDING.value,
                NotificationBundle.window_end <= now,
                (NotificationBundle.next_attempt_at.is_(None))
                | (NotificationBundle.next_attempt_at <= now),
            )
            .order_by(NotificationBundle.window_end)
        )
        due_ids = list(result.scalars().all())

    report.due = len(due_ids)
    for bundle_id in due_ids:
        async with session_factory() as db:
            try:
                outcome = await deliver(db, bundle_id, deliverer, now=now, scheduler=scheduler)
            except Exception as exc:
                await db.rollback()
                logger.exception("Bundle sweep could not process %s", bundle_id)
                report.errors.append(f"{bundle_id}: {exc}")
                report.failed += 1
                continue
        if outcome == DeliveryOutcome.DELIVERED:
            report.delivered += 1
        elif outcome == DeliveryOutcome.FAILED:
            report.failed += 1
        else:
            report.skipped += 1

    if report.due or report.reclaimed:
        logger.info(
            "Bundle sweep: %d due, %d delivered, %d failed, %d reclaimed",
            report.due, report.delivered, report.failed, report.reclaimed,
        )
    return report
