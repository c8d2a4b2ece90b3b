"""
Collaborator protocols consumed by the escalation engine.

Implementations live outside the engine core: SQL / in-memory incident
stores, the static directory, the template catalog, the multi-channel
notifier and the event bus.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional, Protocol

from harmoni_escalation.escalation.schemas import (
    DomainEvent,
    EscalationHistoryEntry,
    IncidentSeverity,
    IncidentSnapshot,
    IncidentStatus,
    NotificationChannel,
    NotificationPriority,
    NotificationResult,
    RenderedNotification,
)

Clock = Callable[[], datetime]


class IncidentQuery(Protocol):
    async def get_incident(self, incident_id: str) -> Optional[IncidentSnapshot]:
        ...

    async def find_overdue(
        self,
        threshold: timedelta,
        severities: Optional[Iterable[IncidentSeverity]] = None,
        statuses: Optional[Iterable[IncidentStatus]] = None,
    ) -> list[IncidentSnapshot]:
        """Incidents with no response for at least ``threshold``."""
        ...


class DirectoryLookup(Protocol):
    async def users_in_role(self, role_name: str) -> list[str]:
        ...

    async def users_in_department(self, department: str) -> list[str]:
        ...

    async def management_targets(self, incident: IncidentSnapshot) -> list[str]:
        ...

    async def emergency_contacts(self) -> list[str]:
        ...

    async def regulatory_team(self) -> list[str]:
        ...


class NotificationDispatch(Protocol):
    async def send_multi_channel(
        self,
        user_id: str,
        subject: str,
        body: str,
        channels: list[NotificationChannel],
        priority: NotificationPriority,
    ) -> NotificationResult:
        """Must report per-channel outcome instead of raising on partial failure."""
        ...


class TemplateRenderer(Protocol):
    def render(self, template_id: str, data: dict[str, Any]) -> RenderedNotification:
        ...


class EventPublisher(Protocol):
    def publish(self, event: DomainEvent) -> None:
        """Fire-and-forget."""
        ...


class HistorySink(Protocol):
    async def append(self, entry: EscalationHistoryEntry) -> None:
        ...
