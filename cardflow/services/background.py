"""Handlers run by the task scheduler.

Each opens its own database session; none of them takes a request context
because they act on behalf of the system.
"""
from __future__ import annotations

import logging
import uuid

from cardflow.config import settings
from cardflow.services.scheduler import TaskScheduler

logger = logging.getLogger(__name__)


async def run_entropy_sweep() -> None:
    from cardflow.database import async_session
    from cardflow.services.entropy_scheduler import sweep

    report = await sweep(async_session)
    if report.failed:
        logger.warning("Entropy sweep finished with %d failed card(s)", report.failed)


async def run_bundle_sweep() -> None:
    from cardflow.database import async_session
    from cardflow.services.notification_bundler import sweep_due_bundles

    await sweep_due_bundles(async_session)


async def deliver_bundle_job(bundle_id: uuid.UUID) -> None:
    from cardflow.database import async_session
    from cardflow.services.notification_bundler import deliver

    async with async_session() as db:
        await deliver(db, bundle_id)


def register_background_jobs(scheduler: TaskScheduler) -> None:
    scheduler.register_interval(
        settings.ENTROPY_SWEEP_INTERVAL_SECONDS, run_entropy_sweep, name="entropy_sweep"
    )
    scheduler.register_interval(
        settings.NOTIFICATION_SWEEP_INTERVAL_SECONDS, run_bundle_sweep, name="bundle_sweep"
    )
