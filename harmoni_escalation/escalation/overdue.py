"""
Overdue Scanner — periodic sweep for incidents past response thresholds.

Two independent checks per scan:
1. Open / in-progress incidents with no response for 24 hours
2. Critical / emergency open incidents with no response for 2 hours

Every incident found is escalated manually once per matching reason, so an
incident in both sets is escalated twice. An optional cooldown suppresses a
repeat of the same (incident, reason) pair across scans; only an escalation
that reached every management target starts the window.
"""

from datetime import datetime, timedelta
from typing import Optional

import structlog

from harmoni_escalation.escalation.orchestrator import EscalationOrchestrator
from harmoni_escalation.escalation.ports import Clock, IncidentQuery
from harmoni_escalation.escalation.schemas import (
    IncidentSeverity,
    IncidentStatus,
    utc_now,
)

logger = structlog.get_logger(__name__)

STALE_REASON = "24-hour response threshold exceeded"
CRITICAL_REASON = "Critical incident requires immediate attention"
SCANNER_ACTOR = "system"


class OverdueCooldown:
    """
    Remembers when each (incident, reason) pair was last escalated.

    In-memory only; a restart forgets every window.
    """

    def __init__(self, window: timedelta, clock: Optional[Clock] = None):
        self._window = window
        self._clock = clock or utc_now
        # (incident_id, reason) → last escalation time
        self._last_escalated: dict[tuple[str, str], datetime] = {}

    @property
    def window(self) -> timedelta:
        return self._window

    def should_suppress(self, incident_id: str, reason: str) -> bool:
        last = self._last_escalated.get((incident_id, reason))
        if last is None:
            return False
        return self._clock() - last < self._window

    def mark(self, incident_id: str, reason: str) -> None:
        self._last_escalated[(incident_id, reason)] = self._clock()

    def prune(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._clock()
        expired = [k for k, t in self._last_escalated.items() if now - t >= self._window]
        for key in expired:
            del self._last_escalated[key]
        return len(expired)


class OverdueScanner:
    """Finds overdue incidents and hands each to trigger_manual."""

    def __init__(
        self,
        incidents: IncidentQuery,
        orchestrator: EscalationOrchestrator,
        stale_threshold: timedelta = timedelta(hours=24),
        critical_threshold: timedelta = timedelta(hours=2),
        cooldown: Optional[OverdueCooldown] = None,
    ):
        self._incidents = incidents
        self._orchestrator = orchestrator
        self._stale_threshold = stale_threshold
        self._critical_threshold = critical_threshold
        self._cooldown = cooldown

    async def scan_overdue(self) -> int:
        """
        Run one scan. Never raises.

        Returns:
            Number of manual escalations triggered
        """
        triggered = 0

        try:
            stale = await self._incidents.find_overdue(
                self._stale_threshold,
                statuses=[IncidentStatus.OPEN, IncidentStatus.IN_PROGRESS],
            )
        except Exception as e:
            logger.error("overdue_query_failed", check="stale", error=str(e))
            stale = []

        for incident in stale:
            triggered += await self._escalate(incident.incident_id, STALE_REASON)

        try:
            critical = await self._incidents.find_overdue(
                self._critical_threshold,
                severities=[IncidentSeverity.CRITICAL, IncidentSeverity.EMERGENCY],
                statuses=[IncidentStatus.OPEN],
            )
        except Exception as e:
            logger.error("overdue_query_failed", check="critical", error=str(e))
            critical = []

        for incident in critical:
            triggered += await self._escalate(incident.incident_id, CRITICAL_REASON)

        if self._cooldown is not None:
            self._cooldown.prune()

        logger.info(
            "overdue_scan_complete",
            stale=len(stale),
            critical=len(critical),
            escalations=triggered,
        )
        return triggered

    async def _escalate(self, incident_id: str, reason: str) -> int:
        if self._cooldown is not None and self._cooldown.should_suppress(incident_id, reason):
            logger.debug("overdue_escalation_suppressed", incident_id=incident_id, reason=reason)
            return 0

        delivered = await self._orchestrator.trigger_manual(incident_id, reason, SCANNER_ACTOR)
        if delivered and self._cooldown is not None:
            self._cooldown.mark(incident_id, reason)
        return 1
