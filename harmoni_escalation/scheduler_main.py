"""
Scheduler Entry Point — runs the overdue sweep as a standalone process.

Usage:
    python -m harmoni_escalation.scheduler_main
"""

import asyncio
import signal

import structlog

from harmoni_escalation.config import settings
from harmoni_escalation.db.engine import close_db, get_session_factory, init_db
from harmoni_escalation.db.queries import SqlHistorySink, SqlIncidentQuery
from harmoni_escalation.logging_config import configure_logging
from harmoni_escalation.registry import build_escalation_services
from harmoni_escalation.scheduler import EscalationScheduler

logger = structlog.get_logger(__name__)


async def main():
    """Initialize and run the scheduler."""
    configure_logging()
    logger.info("scheduler_starting", version=settings.app_version)

    await init_db()
    session_factory = get_session_factory()

    services = build_escalation_services(
        settings,
        incidents=SqlIncidentQuery(session_factory),
        history_sink=SqlHistorySink(session_factory),
    )
    await services.event_bus.start()

    scheduler = EscalationScheduler(
        services.scanner,
        interval_minutes=settings.overdue_scan_interval_minutes,
        rules=services.rules,
    )

    logger.info("running_initial_scan")
    await scheduler.run_overdue_scan()

    scheduler.start()

    # Graceful shutdown handling
    stop_event = asyncio.Event()

    def _handle_signal(signum, frame):
        logger.info("shutdown_signal_received", signal=signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    logger.info("scheduler_running", interval_minutes=settings.overdue_scan_interval_minutes)

    await stop_event.wait()

    scheduler.stop()
    await services.event_bus.stop()
    await close_db()
    logger.info("scheduler_shutdown_complete")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
