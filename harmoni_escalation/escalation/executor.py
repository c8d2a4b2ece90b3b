"""
Action Executor — runs one escalation action against the notification gateway.

Dispatch by action type:
- notify_user: render template, send to the target user
- notify_role / notify_department: resolve users, notify each independently
- escalate_to_manager: resolve management targets, notify each
- send_emergency_alert: publish EmergencyAlertTriggered, notify emergency
  contacts over email + SMS + push regardless of configured channels
- send_regulatory: publish RegulatoryReportRequired (48h deadline), notify
  the regulatory team by email

Every concrete user notification attempt writes exactly one history entry.
Failures that prevent any attempt (directory lookup errors, nobody to
notify) raise ActionExecutionError for the orchestrator to record.
Unknown action types are logged and skipped.
"""

from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

import structlog
from pydantic import BaseModel, Field

from harmoni_escalation.escalation.history import HistoryRecorder
from harmoni_escalation.escalation.ports import (
    Clock,
    DirectoryLookup,
    EventPublisher,
    NotificationDispatch,
    TemplateRenderer,
)
from harmoni_escalation.escalation.schemas import (
    EmergencyAlertTriggered,
    EscalationAction,
    EscalationActionType,
    EscalationHistoryEntry,
    EscalationRule,
    IncidentSnapshot,
    NotificationChannel,
    NotificationPriority,
    RegulatoryReportRequired,
    TemplateId,
    utc_now,
)
from harmoni_escalation.exceptions import ActionExecutionError

logger = structlog.get_logger(__name__)

EMERGENCY_CHANNELS: tuple[NotificationChannel, ...] = (
    NotificationChannel.EMAIL,
    NotificationChannel.SMS,
    NotificationChannel.PUSH,
)
REGULATORY_CHANNELS: tuple[NotificationChannel, ...] = (NotificationChannel.EMAIL,)

DEFAULT_REGULATORY_DEADLINE = timedelta(hours=48)


class ActionResult(BaseModel):
    """Outcome of one action: the per-user attempts it produced."""
    action_type: str
    target: str
    attempts: list[EscalationHistoryEntry] = Field(default_factory=list)
    skipped: bool = False

    @property
    def success(self) -> bool:
        return not self.skipped and all(a.is_successful for a in self.attempts)


def build_notification_data(
    incident: IncidentSnapshot,
    base_url: str,
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Template context for an incident, with ``extra`` merged on top."""
    data: dict[str, Any] = {
        "incident_id": incident.incident_id,
        "incident_title": incident.title,
        "incident_description": incident.description,
        "incident_severity": incident.severity.value,
        "incident_status": incident.status.value,
        "incident_location": incident.location or "Not specified",
        "incident_department": incident.department or "Not specified",
        "incident_created_at": incident.created_at.strftime("%Y-%m-%d %H:%M:%S UTC"),
        "reporter_name": incident.reporter_name or "Anonymous",
        "url": f"{base_url.rstrip('/')}/{incident.incident_id}",
    }
    if extra:
        data.update(extra)
    return data


class ActionExecutor:
    """Executes escalation actions; one instance is shared across incidents."""

    def __init__(
        self,
        directory: DirectoryLookup,
        notifier: NotificationDispatch,
        templates: TemplateRenderer,
        history: HistoryRecorder,
        events: EventPublisher,
        incident_base_url: str = "https://harmoni360.com/incidents",
        regulatory_deadline: timedelta = DEFAULT_REGULATORY_DEADLINE,
        clock: Optional[Clock] = None,
    ):
        self._directory = directory
        self._notifier = notifier
        self._templates = templates
        self._history = history
        self._events = events
        self._base_url = incident_base_url
        self._regulatory_deadline = regulatory_deadline
        self._clock = clock or utc_now

        self._handlers: dict[
            EscalationActionType,
            Callable[[IncidentSnapshot, EscalationRule, EscalationAction], Awaitable[list[EscalationHistoryEntry]]],
        ] = {
            EscalationActionType.NOTIFY_USER: self._notify_user_action,
            EscalationActionType.NOTIFY_ROLE: self._notify_role,
            EscalationActionType.NOTIFY_DEPARTMENT: self._notify_department,
            EscalationActionType.ESCALATE_TO_MANAGER: self._escalate_to_manager,
            EscalationActionType.SEND_EMERGENCY_ALERT: self._send_emergency_alert,
            EscalationActionType.SEND_REGULATORY: self._send_regulatory,
        }

    async def execute(
        self,
        incident: IncidentSnapshot,
        rule: EscalationRule,
        action: EscalationAction,
    ) -> ActionResult:
        """
        Execute one action for an incident under a rule.

        Raises:
            ActionExecutionError: if the action could not attempt any notification
        """
        handler = self._handlers.get(action.type)
        if handler is None:
            logger.warning(
                "unsupported_action_type",
                action_type=str(action.type),
                rule_id=rule.rule_id,
                incident_id=incident.incident_id,
            )
            return ActionResult(action_type=str(action.type), target=action.target, skipped=True)

        logger.info(
            "executing_escalation_action",
            action_type=str(action.type),
            target=action.target,
            rule_id=rule.rule_id,
            incident_id=incident.incident_id,
        )
        attempts = await handler(incident, rule, action)
        return ActionResult(action_type=str(action.type), target=action.target, attempts=attempts)

    # ── Action handlers ─────────────────────────────────────────────

    async def _notify_user_action(self, incident, rule, action) -> list[EscalationHistoryEntry]:
        entry = await self.notify_user(
            incident,
            rule,
            user_id=action.target,
            template_id=action.template_id or TemplateId.INCIDENT_CREATED,
            channels=action.channels,
            parameters=action.parameters,
        )
        return [entry]

    async def _notify_role(self, incident, rule, action) -> list[EscalationHistoryEntry]:
        users = await self._resolve(action, self._directory.users_in_role(action.target))
        return await self._fan_out(
            incident, rule, action, users,
            template_id=action.template_id or TemplateId.INCIDENT_CREATED,
            channels=action.channels,
            parameters=action.parameters,
        )

    async def _notify_department(self, incident, rule, action) -> list[EscalationHistoryEntry]:
        users = await self._resolve(action, self._directory.users_in_department(action.target))
        return await self._fan_out(
            incident, rule, action, users,
            template_id=action.template_id or TemplateId.INCIDENT_CREATED,
            channels=action.channels,
            parameters=action.parameters,
        )

    async def _escalate_to_manager(self, incident, rule, action) -> list[EscalationHistoryEntry]:
        managers = await self._resolve(action, self._directory.management_targets(incident))
        return await self._fan_out(
            incident, rule, action, managers,
            template_id=action.template_id or TemplateId.ESCALATION_OVERDUE,
            channels=action.channels,
            parameters=action.parameters,
        )

    async def _send_emergency_alert(self, incident, rule, action) -> list[EscalationHistoryEntry]:
        self._events.publish(
            EmergencyAlertTriggered(
                incident_id=incident.incident_id,
                severity=incident.severity,
                location=incident.location or "Unknown",
                occurred_at=self._clock(),
            )
        )
        contacts = await self._resolve(action, self._directory.emergency_contacts())
        return await self._fan_out(
            incident, rule, action, contacts,
            template_id=TemplateId.EMERGENCY_ALERT,
            channels=list(EMERGENCY_CHANNELS),
        )

    async def _send_regulatory(self, incident, rule, action) -> list[EscalationHistoryEntry]:
        now = self._clock()
        self._events.publish(
            RegulatoryReportRequired(
                incident_id=incident.incident_id,
                deadline=now + self._regulatory_deadline,
                occurred_at=now,
            )
        )
        team = await self._resolve(action, self._directory.regulatory_team())
        return await self._fan_out(
            incident, rule, action, team,
            template_id=TemplateId.INCIDENT_REGULATORY,
            channels=list(REGULATORY_CHANNELS),
        )

    # ── Helpers ─────────────────────────────────────────────────────

    async def _resolve(self, action: EscalationAction, lookup: Awaitable[list[str]]) -> list[str]:
        try:
            users = await lookup
        except Exception as e:
            raise ActionExecutionError(
                f"Recipient lookup failed for {action.type} '{action.target}': {e}",
                action_type=str(action.type),
                target=action.target,
            ) from e
        if not users:
            raise ActionExecutionError(
                f"No recipients resolved for {action.type} '{action.target}'",
                action_type=str(action.type),
                target=action.target,
            )
        return users

    async def _fan_out(
        self,
        incident: IncidentSnapshot,
        rule: EscalationRule,
        action: EscalationAction,
        user_ids: list[str],
        template_id: str,
        channels: list[NotificationChannel],
        parameters: Optional[dict[str, str]] = None,
    ) -> list[EscalationHistoryEntry]:
        """Notify each user in turn; one user's failure never blocks the next."""
        attempts = []
        for user_id in user_ids:
            attempts.append(
                await self.notify_user(
                    incident, rule,
                    user_id=user_id,
                    template_id=template_id,
                    channels=channels,
                    parameters=parameters,
                )
            )
        failed = sum(1 for a in attempts if not a.is_successful)
        if failed:
            logger.warning(
                "escalation_fan_out_partial_failure",
                action_type=str(action.type),
                target=action.target,
                incident_id=incident.incident_id,
                failed=failed,
                total=len(attempts),
            )
        return attempts

    async def notify_user(
        self,
        incident: IncidentSnapshot,
        rule: EscalationRule,
        user_id: str,
        template_id: str,
        channels: list[NotificationChannel],
        parameters: Optional[dict[str, str]] = None,
    ) -> EscalationHistoryEntry:
        """Render and send one notification, recording the attempt."""
        success, details = await self.deliver(
            incident, user_id, template_id, channels, parameters
        )
        return await self._history.record_attempt(
            incident_id=incident.incident_id,
            rule_id=rule.rule_id,
            rule_name=rule.name,
            action_type=EscalationActionType.NOTIFY_USER,
            action_target=user_id,
            details=details,
            is_successful=success,
        )

    async def deliver(
        self,
        incident: IncidentSnapshot,
        user_id: str,
        template_id: str,
        channels: list[NotificationChannel],
        parameters: Optional[dict[str, Any]] = None,
    ) -> tuple[bool, str]:
        """
        Render and send without recording history.

        Returns:
            (success, details) where details is the per-channel summary or
            the error message
        """
        try:
            data = build_notification_data(incident, self._base_url, parameters)
            content = self._templates.render(str(template_id), data)
            result = await self._notifier.send_multi_channel(
                user_id=user_id,
                subject=content.subject,
                body=content.body,
                channels=list(channels),
                priority=NotificationPriority.HIGH,
            )
        except Exception as e:
            logger.error(
                "escalation_notification_failed",
                user_id=user_id,
                incident_id=incident.incident_id,
                template_id=str(template_id),
                error=str(e),
            )
            return False, str(e)

        if not result.success:
            logger.warning(
                "escalation_notification_partial_failure",
                user_id=user_id,
                incident_id=incident.incident_id,
                failed_channels=[c.value for c in result.failed_channels],
            )
        return result.success, result.summary()
