"""
Escalation SQLAlchemy Models.

- incidents: read by the engine (written by the incident service)
- escalation_history: append-only audit log, no UPDATE and no DELETE
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from harmoni_escalation.db.compat import UTCDateTime
from harmoni_escalation.db.engine import Base
from harmoni_escalation.escalation.schemas import utc_now


class IncidentRecord(Base):
    """HSE incident as stored by the incident service."""

    __tablename__ = "incidents"
    __table_args__ = (
        Index("ix_incidents_status", "status"),
        Index("ix_incidents_severity", "severity"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    department: Mapped[Optional[str]] = mapped_column(String(100))
    location: Mapped[Optional[str]] = mapped_column(String(255))
    reporter_name: Mapped[Optional[str]] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    last_response_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())


class EscalationHistoryRecord(Base):
    """
    Immutable audit row for one escalation action attempt.

    rule_id is NULL for manual escalations.
    """

    __tablename__ = "escalation_history"
    __table_args__ = (
        Index("ix_escalation_history_incident", "incident_id"),
        Index("ix_escalation_history_executed_at", "executed_at"),
    )

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    incident_id: Mapped[str] = mapped_column(String(64), nullable=False)
    rule_id: Mapped[Optional[str]] = mapped_column(String(100))
    rule_name: Mapped[str] = mapped_column(String(200), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    action_target: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_successful: Mapped[bool] = mapped_column(Boolean, nullable=False)
    executed_by: Mapped[str] = mapped_column(String(100), nullable=False, default="system")
    executed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
