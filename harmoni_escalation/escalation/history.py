"""
Escalation History Recorder — append-only audit of every action attempt.

Records are immutable once written. Persistence failures are logged and
swallowed here so audit logging can never break an escalation in flight.
"""

from typing import Optional

import structlog

from harmoni_escalation.escalation.ports import Clock, HistorySink
from harmoni_escalation.escalation.schemas import EscalationHistoryEntry, utc_now

logger = structlog.get_logger(__name__)


class HistoryRecorder:
    """Builds history entries and appends them to the configured sink."""

    def __init__(self, sink: HistorySink, clock: Optional[Clock] = None):
        self._sink = sink
        self._clock = clock or utc_now

    async def record(self, entry: EscalationHistoryEntry) -> None:
        try:
            await self._sink.append(entry)
        except Exception as e:
            logger.error(
                "escalation_history_write_failed",
                incident_id=entry.incident_id,
                rule_name=entry.rule_name,
                action_type=str(entry.action_type),
                error=str(e),
            )
            return

        logger.info(
            "escalation_history_recorded",
            incident_id=entry.incident_id,
            rule_name=entry.rule_name,
            action_type=str(entry.action_type),
            action_target=entry.action_target,
            success=entry.is_successful,
        )

    async def record_attempt(
        self,
        incident_id: str,
        rule_id: Optional[str],
        rule_name: str,
        action_type: str,
        action_target: str,
        details: str,
        is_successful: bool,
        executed_by: str = "system",
    ) -> EscalationHistoryEntry:
        """Build an entry stamped with the recorder's clock and record it."""
        entry = EscalationHistoryEntry(
            incident_id=incident_id,
            rule_id=rule_id,
            rule_name=rule_name,
            action_type=str(action_type),
            action_target=action_target,
            details=details,
            is_successful=is_successful,
            executed_by=executed_by,
            executed_at=self._clock(),
        )
        await self.record(entry)
        return entry
