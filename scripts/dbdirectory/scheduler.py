"""APScheduler interval jobs for periodic reconciliation."""

from __future__ import annotations

import logging
from typing import Iterable

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.background import BackgroundScheduler

from scripts.dbdirectory.config import SchedulerSettings
from scripts.dbdirectory.reconcile import Reconciler

logger = logging.getLogger("dbdirectory.scheduler")


def _reconcile_realm(reconciler: Reconciler, realm_id: str) -> None:
    result = reconciler.sync(realm_id)
    if result.failed:
        logger.warning(
            "Reconciliation of realm %s failed",
            realm_id,
            extra={"instance_id": reconciler.instance_id, "realm": realm_id},
        )


def _on_job_error(event) -> None:
    logger.error("Job %s raised an exception: %s", event.job_id, event.exception)


def build_scheduler(
    reconciler: Reconciler,
    realm_ids: Iterable[str],
    settings: SchedulerSettings,
) -> BackgroundScheduler:
    """Create (but do not start) a scheduler with one job per realm.

    The host embedding the directory starts it and supplies ``settings``.
    """
    scheduler = BackgroundScheduler()
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)

    for realm_id in realm_ids:
        scheduler.add_job(
            _reconcile_realm,
            "interval",
            minutes=settings.reconcile_interval_min,
            args=[reconciler, realm_id],
            id=f"reconcile:{reconciler.instance_id}:{realm_id}",
            max_instances=1,
            misfire_grace_time=settings.misfire_grace_time,
        )

    logger.info("Scheduled reconciliation jobs: %s", [j.id for j in scheduler.get_jobs()])
    return scheduler
