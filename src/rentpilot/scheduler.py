"""APScheduler setup for periodic tasks."""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from rentpilot.config import settings

logger = logging.getLogger(__name__)


def run_scheduled_preflight() -> None:
    """Scan the whole catalog and publish the outcome; never raises into the scheduler."""
    from sqlalchemy.exc import SQLAlchemyError

    from rentpilot.database import get_session
    from rentpilot.events import Event, EventType, event_bus
    from rentpilot.modules.migration.scan import (
        preflight_config_from_settings,
        run_preflight_scan,
        tier_chunk_size_from_settings,
    )
    from rentpilot.modules.migration.storage import ScanFilters

    session = get_session()
    try:
        result = run_preflight_scan(
            session,
            ScanFilters(),
            preflight_config_from_settings(),
            chunk_size=tier_chunk_size_from_settings(),
        )
    except SQLAlchemyError:
        logger.exception("Scheduled preflight failed")
        return
    finally:
        session.close()

    report = result.report
    if result.has_blockers:
        logger.warning(
            "Scheduled preflight: %d of %d products have blockers",
            report.products_with_blockers,
            report.products_scanned,
        )
    else:
        logger.info("Scheduled preflight: %d products ready", report.products_ready)

    event_bus.publish(Event(
        event_type=EventType.PREFLIGHT_COMPLETED,
        data={
            "products_scanned": report.products_scanned,
            "blocker_count": report.blocker_count,
            "warning_count": report.warning_count,
        },
    ))


def create_scheduler() -> BackgroundScheduler:
    """Create and configure the background scheduler."""
    scheduler = BackgroundScheduler()
    sched_config = settings.get("scheduler") or {}

    # Catalog preflight (daily by default)
    if sched_config.get("preflight_enabled", True):
        scheduler.add_job(
            run_scheduled_preflight,
            "interval",
            hours=sched_config.get("preflight_interval_hours", 24),
            id="pricing_preflight",
            name="Pricing Preflight",
        )

    logger.info("Scheduler configured with %d jobs", len(scheduler.get_jobs()))
    return scheduler
