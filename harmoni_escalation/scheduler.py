"""
Escalation Scheduler — periodic overdue sweep.

Jobs:
1. Overdue scan (every OVERDUE_SCAN_INTERVAL_MINUTES, default hourly)
2. Rule file reload (only when a rule file is configured)
"""

from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from harmoni_escalation.escalation.overdue import OverdueScanner
from harmoni_escalation.escalation.rules import FileRuleSetProvider, RuleSetProvider
from harmoni_escalation.exceptions import RuleSetValidationError

logger = structlog.get_logger(__name__)


class EscalationScheduler:
    """Background scheduler for the overdue scanner."""

    def __init__(
        self,
        scanner: OverdueScanner,
        interval_minutes: int = 60,
        rules: Optional[RuleSetProvider] = None,
        rule_reload_minutes: int = 5,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.scanner = scanner
        self.interval_minutes = interval_minutes
        self.rules = rules
        self.rule_reload_minutes = rule_reload_minutes
        self.scheduler = scheduler or AsyncIOScheduler()

    def start(self):
        """Register and start all scheduled jobs."""
        self.scheduler.add_job(
            self.run_overdue_scan,
            IntervalTrigger(minutes=self.interval_minutes),
            id="overdue_scan",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if isinstance(self.rules, FileRuleSetProvider):
            self.scheduler.add_job(
                self.reload_rules,
                IntervalTrigger(minutes=self.rule_reload_minutes),
                id="rule_reload",
                max_instances=1,
                replace_existing=True,
            )
        self.scheduler.start()
        logger.info("escalation_scheduler_started", interval_minutes=self.interval_minutes)

    def stop(self):
        """Gracefully stop the scheduler."""
        self.scheduler.shutdown(wait=True)
        logger.info("escalation_scheduler_stopped")

    async def run_overdue_scan(self) -> int:
        logger.info("overdue_scan_started")
        try:
            return await self.scanner.scan_overdue()
        except Exception as e:
            logger.error("overdue_scan_failed", error=str(e))
            return 0

    async def reload_rules(self) -> None:
        """Re-read the rule file; a bad file keeps the current rules."""
        if not isinstance(self.rules, FileRuleSetProvider):
            return
        try:
            rule_set = self.rules.reload()
        except RuleSetValidationError as e:
            logger.error("rule_reload_failed", error=e.message, problems=e.problems)
            return
        logger.info("rules_reloaded", rules=len(rule_set))
