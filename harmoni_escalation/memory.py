"""
In-memory incident store and history sink for development and tests.
"""

from datetime import timedelta
from typing import Iterable, Optional

from harmoni_escalation.escalation.ports import Clock
from harmoni_escalation.escalation.schemas import (
    EscalationHistoryEntry,
    IncidentSeverity,
    IncidentSnapshot,
    IncidentStatus,
    utc_now,
)


class InMemoryIncidentStore:
    """Dict-backed incident query; insertion order is preserved."""

    def __init__(
        self,
        incidents: Optional[Iterable[IncidentSnapshot]] = None,
        clock: Optional[Clock] = None,
    ):
        self._incidents: dict[str, IncidentSnapshot] = {}
        self._clock = clock or utc_now
        for incident in incidents or []:
            self.put(incident)

    def put(self, incident: IncidentSnapshot) -> None:
        self._incidents[incident.incident_id] = incident

    def remove(self, incident_id: str) -> None:
        self._incidents.pop(incident_id, None)

    async def get_incident(self, incident_id: str) -> Optional[IncidentSnapshot]:
        return self._incidents.get(incident_id)

    async def find_overdue(
        self,
        threshold: timedelta,
        severities: Optional[Iterable[IncidentSeverity]] = None,
        statuses: Optional[Iterable[IncidentStatus]] = None,
    ) -> list[IncidentSnapshot]:
        now = self._clock()
        severities = set(severities or ())
        statuses = set(statuses or ())
        return [
            i for i in self._incidents.values()
            if i.time_since_response(now) >= threshold
            and (not severities or i.severity in severities)
            and (not statuses or i.status in statuses)
        ]


class InMemoryHistorySink:
    """Append-only list of history entries."""

    def __init__(self):
        self.entries: list[EscalationHistoryEntry] = []

    async def append(self, entry: EscalationHistoryEntry) -> None:
        self.entries.append(entry)

    def for_incident(self, incident_id: str) -> list[EscalationHistoryEntry]:
        return [e for e in self.entries if e.incident_id == incident_id]
