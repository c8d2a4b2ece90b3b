"""
Escalation Schemas.

Defines the incident snapshot consumed by the engine, escalation rules and
actions, history entries, notification results and domain events.
"""

import uuid
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ──────────────────────────────────────────────────────────────


class IncidentSeverity(StrEnum):
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"
    EMERGENCY = "emergency"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other):
        if isinstance(other, IncidentSeverity):
            return self.rank < other.rank
        return NotImplemented

    def __le__(self, other):
        if isinstance(other, IncidentSeverity):
            return self.rank <= other.rank
        return NotImplemented

    def __gt__(self, other):
        if isinstance(other, IncidentSeverity):
            return self.rank > other.rank
        return NotImplemented

    def __ge__(self, other):
        if isinstance(other, IncidentSeverity):
            return self.rank >= other.rank
        return NotImplemented


_SEVERITY_RANK = {
    IncidentSeverity.MINOR: 0,
    IncidentSeverity.MAJOR: 1,
    IncidentSeverity.CRITICAL: 2,
    IncidentSeverity.EMERGENCY: 3,
}


class IncidentStatus(StrEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PENDING_REVIEW = "pending_review"
    RESOLVED = "resolved"
    CLOSED = "closed"


class EscalationActionType(StrEnum):
    NOTIFY_USER = "notify_user"
    NOTIFY_ROLE = "notify_role"
    NOTIFY_DEPARTMENT = "notify_department"
    ESCALATE_TO_MANAGER = "escalate_to_manager"
    SEND_EMERGENCY_ALERT = "send_emergency_alert"
    SEND_REGULATORY = "send_regulatory"


class NotificationChannel(StrEnum):
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"
    PUSH = "push"


class NotificationPriority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class TemplateId(StrEnum):
    INCIDENT_CREATED = "incident_created"
    INCIDENT_CRITICAL = "incident_critical"
    ESCALATION_OVERDUE = "escalation_overdue"
    EMERGENCY_ALERT = "emergency_alert"
    INCIDENT_REGULATORY = "incident_regulatory"


# ── Incident Snapshot ──────────────────────────────────────────────────


class IncidentSnapshot(BaseModel):
    """
    Read-only view of an incident.

    Owned by the incident store; the engine never mutates it.
    """
    model_config = ConfigDict(frozen=True)

    incident_id: str
    severity: IncidentSeverity
    status: IncidentStatus
    created_at: datetime
    last_response_at: Optional[datetime] = None
    department: Optional[str] = None
    location: Optional[str] = None

    # Notification context only
    title: str = ""
    description: str = ""
    reporter_name: Optional[str] = None

    @field_validator("created_at", "last_response_at")
    @classmethod
    def normalize_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Naive values are taken to be UTC; aware values are converted to UTC."""
        if v is None:
            return v
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    def time_since_response(self, now: datetime) -> timedelta:
        """Elapsed time since the last response, or since creation if none."""
        return now - (self.last_response_at or self.created_at)


# ── Rules & Actions ────────────────────────────────────────────────────


class EscalationAction(BaseModel):
    """
    A single notification-producing step of a rule.

    ``type`` accepts unknown strings so externally authored rule files with
    newer action types still load; the executor logs and skips those.
    """
    model_config = ConfigDict(frozen=True)

    type: Union[EscalationActionType, str]
    target: str
    template_id: Optional[str] = None
    channels: list[NotificationChannel] = Field(min_length=1)
    parameters: dict[str, str] = Field(default_factory=dict)
    delay: Optional[timedelta] = None

    @field_validator("type", mode="before")
    @classmethod
    def coerce_known_type(cls, v):
        """Known values become enum members; anything else stays a plain string."""
        try:
            return EscalationActionType(v)
        except ValueError:
            return v


class EscalationRule(BaseModel):
    """
    A named, prioritized trigger predicate + ordered action list.

    Empty trigger collections mean "any". Lower priority runs first.
    """
    model_config = ConfigDict(frozen=True)

    rule_id: str
    name: str
    description: str = ""
    priority: int = 100
    is_active: bool = True
    catch_all: bool = False

    # Trigger dimensions
    trigger_severities: frozenset[IncidentSeverity] = frozenset()
    trigger_statuses: frozenset[IncidentStatus] = frozenset()
    trigger_after_duration: Optional[timedelta] = None
    trigger_departments: frozenset[str] = frozenset()
    trigger_locations: tuple[str, ...] = ()

    actions: tuple[EscalationAction, ...] = ()

    @property
    def has_triggers(self) -> bool:
        return bool(
            self.trigger_severities
            or self.trigger_statuses
            or self.trigger_after_duration is not None
            or self.trigger_departments
            or self.trigger_locations
        )


# ── History ────────────────────────────────────────────────────────────


class EscalationHistoryEntry(BaseModel):
    """
    Immutable audit record of one action attempt.

    ``rule_id`` is None for manually triggered escalations.
    """
    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(default_factory=lambda: f"esc_{uuid.uuid4().hex[:16]}")
    incident_id: str
    rule_id: Optional[str] = None
    rule_name: str
    action_type: str
    action_target: str
    details: str = ""
    is_successful: bool
    executed_by: str = "system"
    executed_at: datetime = Field(default_factory=utc_now)


# ── Notifications ──────────────────────────────────────────────────────


class RenderedNotification(BaseModel):
    subject: str
    body: str


class ChannelOutcome(BaseModel):
    success: bool
    detail: str = ""


class NotificationResult(BaseModel):
    """Per-channel outcome of one multi-channel send."""
    user_id: str
    channel_results: dict[NotificationChannel, ChannelOutcome] = Field(default_factory=dict)

    @computed_field
    @property
    def success(self) -> bool:
        return bool(self.channel_results) and all(
            r.success for r in self.channel_results.values()
        )

    @property
    def failed_channels(self) -> list[NotificationChannel]:
        return [c for c, r in self.channel_results.items() if not r.success]

    def summary(self) -> str:
        delivered = [c.value for c, r in self.channel_results.items() if r.success]
        failed = [
            f"{c.value} ({r.detail})" for c, r in self.channel_results.items() if not r.success
        ]
        parts = []
        if delivered:
            parts.append("delivered via " + ", ".join(delivered))
        if failed:
            parts.append("failed: " + ", ".join(failed))
        return "; ".join(parts) or "no channels attempted"


# ── Domain Events ──────────────────────────────────────────────────────


class DomainEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: f"evt_{uuid.uuid4().hex[:16]}")
    occurred_at: datetime = Field(default_factory=utc_now)
    incident_id: str


class EscalationTriggered(DomainEvent):
    event_type: Literal["escalation_triggered"] = "escalation_triggered"
    rule_id: Optional[str] = None       # None = manual escalation
    reason: str
    targets: list[str] = Field(default_factory=list)

    @property
    def is_manual(self) -> bool:
        return self.rule_id is None


class EmergencyAlertTriggered(DomainEvent):
    event_type: Literal["emergency_alert_triggered"] = "emergency_alert_triggered"
    severity: IncidentSeverity
    location: str = "Unknown"
    notified_groups: list[str] = Field(
        default_factory=lambda: ["emergency_team", "site_safety_officer", "management"]
    )


class RegulatoryReportRequired(DomainEvent):
    event_type: Literal["regulatory_report_required"] = "regulatory_report_required"
    authority: str = "BPJS_Ketenagakerjaan"
    deadline: datetime
    authorities: list[str] = Field(
        default_factory=lambda: ["BPJS_Ketenagakerjaan", "Disnaker", "Local_Authority"]
    )
