"""
SQL collaborators for the escalation engine.

SqlIncidentQuery reads incident snapshots; SqlHistorySink appends audit
rows. Both open a short-lived session per call from the given factory.
"""

from datetime import timedelta
from typing import Iterable, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from harmoni_escalation.db.models import EscalationHistoryRecord, IncidentRecord
from harmoni_escalation.escalation.ports import Clock
from harmoni_escalation.escalation.schemas import (
    EscalationHistoryEntry,
    IncidentSeverity,
    IncidentSnapshot,
    IncidentStatus,
    utc_now,
)

logger = structlog.get_logger(__name__)


def to_snapshot(record: IncidentRecord) -> IncidentSnapshot:
    return IncidentSnapshot(
        incident_id=record.id,
        severity=IncidentSeverity(record.severity),
        status=IncidentStatus(record.status),
        created_at=record.created_at,
        last_response_at=record.last_response_at,
        department=record.department,
        location=record.location,
        title=record.title,
        description=record.description,
        reporter_name=record.reporter_name,
    )


class SqlIncidentQuery:
    """Incident query backed by the ``incidents`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or utc_now

    async def get_incident(self, incident_id: str) -> Optional[IncidentSnapshot]:
        async with self._session_factory() as session:
            record = await session.get(IncidentRecord, incident_id)
            return to_snapshot(record) if record is not None else None

    async def find_overdue(
        self,
        threshold: timedelta,
        severities: Optional[Iterable[IncidentSeverity]] = None,
        statuses: Optional[Iterable[IncidentStatus]] = None,
    ) -> list[IncidentSnapshot]:
        cutoff = self._clock() - threshold
        last_activity = func.coalesce(IncidentRecord.last_response_at, IncidentRecord.created_at)

        stmt = select(IncidentRecord).where(last_activity <= cutoff)
        if severities:
            stmt = stmt.where(IncidentRecord.severity.in_([s.value for s in severities]))
        if statuses:
            stmt = stmt.where(IncidentRecord.status.in_([s.value for s in statuses]))
        stmt = stmt.order_by(IncidentRecord.created_at, IncidentRecord.id)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            records = result.scalars().all()

        logger.debug(
            "overdue_incidents_queried",
            threshold_hours=threshold.total_seconds() / 3600,
            found=len(records),
        )
        return [to_snapshot(r) for r in records]


class SqlHistorySink:
    """Append-only writer for the ``escalation_history`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(self, entry: EscalationHistoryEntry) -> None:
        async with self._session_factory() as session:
            session.add(
                EscalationHistoryRecord(
                    id=entry.entry_id,
                    incident_id=entry.incident_id,
                    rule_id=entry.rule_id,
                    rule_name=entry.rule_name,
                    action_type=entry.action_type,
                    action_target=entry.action_target,
                    details=entry.details,
                    is_successful=entry.is_successful,
                    executed_by=entry.executed_by,
                    executed_at=entry.executed_at,
                )
            )
            await session.commit()
