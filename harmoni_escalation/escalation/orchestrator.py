"""
Escalation Orchestrator — runs matched rules for an incident.

Flow per process_rules call:
1. Load one incident snapshot (missing incident → warning, no effect)
2. Take one rule-set snapshot, keep active rules that match
3. Sort ascending by priority (stable: ties keep rule-set order)
4. For each rule: run its actions sequentially in declared order, honoring
   per-action delays, then publish EscalationTriggered
5. Any action or rule failure is recorded in history and processing moves on

trigger_manual bypasses matching: management targets are notified directly
and a single history entry is written.

Cancellation of the calling task aborts the current action and everything
not yet started; entries already recorded stay recorded.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, Optional

import structlog

from harmoni_escalation.escalation.executor import ActionExecutor
from harmoni_escalation.escalation.history import HistoryRecorder
from harmoni_escalation.escalation.matcher import RuleMatcher
from harmoni_escalation.escalation.ports import (
    DirectoryLookup,
    EventPublisher,
    IncidentQuery,
)
from harmoni_escalation.escalation.rules import RuleSetProvider
from harmoni_escalation.escalation.schemas import (
    EscalationActionType,
    EscalationRule,
    EscalationTriggered,
    IncidentSnapshot,
    NotificationChannel,
    TemplateId,
)
from harmoni_escalation.exceptions import (
    ActionExecutionError,
    IncidentNotFoundError,
    RuleProcessingError,
)

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]

MANUAL_RULE_NAME = "Manual Escalation"
MANUAL_CHANNELS = [NotificationChannel.EMAIL, NotificationChannel.PUSH]
RULE_FAILURE_TARGET = "System"


class EscalationOrchestrator:
    """Entry point for rule-driven and manual escalations."""

    def __init__(
        self,
        incidents: IncidentQuery,
        rules: RuleSetProvider,
        executor: ActionExecutor,
        directory: DirectoryLookup,
        history: HistoryRecorder,
        events: EventPublisher,
        matcher: Optional[RuleMatcher] = None,
        sleep: Optional[Sleep] = None,
    ):
        self._incidents = incidents
        self._rules = rules
        self._executor = executor
        self._directory = directory
        self._history = history
        self._events = events
        self._matcher = matcher or RuleMatcher()
        self._sleep = sleep or asyncio.sleep

    def get_active_rules(self) -> list[EscalationRule]:
        return self._rules.get_rules().active()

    # ── Rule-driven escalation ──────────────────────────────────────

    async def process_rules(self, incident_id: str) -> None:
        """Evaluate and execute every applicable rule. Never raises."""
        try:
            incident = await self._load(incident_id)
        except IncidentNotFoundError as e:
            logger.warning("escalation_incident_not_found", incident_id=incident_id, error=e.message)
            return False
        except Exception as e:
            logger.error("escalation_incident_load_failed", incident_id=incident_id, error=str(e))
            return

        try:
            rule_set = self._rules.get_rules()
            matched = sorted(
                self._matcher.select(rule_set.active(), incident),
                key=lambda r: r.priority,
            )
        except Exception as e:
            logger.error("escalation_rule_selection_failed", incident_id=incident_id, error=str(e))
            return

        logger.info(
            "processing_escalation_rules",
            incident_id=incident_id,
            severity=incident.severity.value,
            rules=[r.rule_id for r in matched],
        )

        for rule in matched:
            await self._run_rule(incident, rule)

    async def process_many(self, incident_ids: Iterable[str]) -> None:
        """One concurrent task per incident; each stays sequential inside."""
        await asyncio.gather(*(self.process_rules(i) for i in incident_ids))

    async def _run_rule(self, incident: IncidentSnapshot, rule: EscalationRule) -> None:
        try:
            for action in rule.actions:
                if action.delay is not None and action.delay.total_seconds() > 0:
                    logger.info(
                        "escalation_action_delayed",
                        incident_id=incident.incident_id,
                        rule_id=rule.rule_id,
                        action_type=str(action.type),
                        delay_seconds=action.delay.total_seconds(),
                    )
                    await self._sleep(action.delay.total_seconds())

                try:
                    await self._executor.execute(incident, rule, action)
                except ActionExecutionError as e:
                    await self._record_action_failure(incident, rule, e)
                except Exception as e:
                    await self._record_action_failure(
                        incident,
                        rule,
                        ActionExecutionError(str(e), action_type=str(action.type), target=action.target),
                    )

            self._events.publish(
                EscalationTriggered(
                    incident_id=incident.incident_id,
                    rule_id=rule.rule_id,
                    reason=rule.description,
                    targets=[a.target for a in rule.actions],
                )
            )
            logger.info(
                "escalation_rule_executed",
                incident_id=incident.incident_id,
                rule_id=rule.rule_id,
                actions=len(rule.actions),
            )
        except Exception as e:
            error = RuleProcessingError(rule.rule_id, f"Error processing rule: {e}")
            logger.error(
                "escalation_rule_failed",
                incident_id=incident.incident_id,
                code=error.code.value,
                **error.details,
                error=str(e),
            )
            await self._history.record_attempt(
                incident_id=incident.incident_id,
                rule_id=rule.rule_id,
                rule_name=rule.name,
                action_type=EscalationActionType.NOTIFY_USER,
                action_target=RULE_FAILURE_TARGET,
                details=error.message,
                is_successful=False,
            )

    async def _record_action_failure(
        self,
        incident: IncidentSnapshot,
        rule: EscalationRule,
        error: ActionExecutionError,
    ) -> None:
        logger.error(
            "escalation_action_failed",
            incident_id=incident.incident_id,
            rule_id=rule.rule_id,
            action_type=error.action_type,
            target=error.target,
            error=error.message,
        )
        await self._history.record_attempt(
            incident_id=incident.incident_id,
            rule_id=rule.rule_id,
            rule_name=rule.name,
            action_type=error.action_type,
            action_target=error.target,
            details=error.message,
            is_successful=False,
        )

    # ── Manual escalation ───────────────────────────────────────────

    async def trigger_manual(self, incident_id: str, reason: str, escalated_by: str) -> bool:
        """
        Notify management directly, bypassing rule matching. Never raises.

        Returns:
            True when every management target was notified
        """
        try:
            incident = await self._load(incident_id)
        except IncidentNotFoundError as e:
            logger.warning("manual_escalation_incident_not_found", incident_id=incident_id, error=e.message)
            return False
        except Exception as e:
            logger.error("manual_escalation_load_failed", incident_id=incident_id, error=str(e))
            return False

        try:
            return await self._escalate_manually(incident, reason, escalated_by)
        except Exception as e:
            logger.error(
                "manual_escalation_failed",
                incident_id=incident_id,
                escalated_by=escalated_by,
                error=str(e),
            )
            await self._history.record_attempt(
                incident_id=incident_id,
                rule_id=None,
                rule_name=MANUAL_RULE_NAME,
                action_type=EscalationActionType.ESCALATE_TO_MANAGER,
                action_target=RULE_FAILURE_TARGET,
                details=f"{reason} (failed: {e})",
                is_successful=False,
                executed_by=escalated_by,
            )
            return False

    async def _escalate_manually(
        self,
        incident: IncidentSnapshot,
        reason: str,
        escalated_by: str,
    ) -> bool:
        targets = await self._directory.management_targets(incident)
        extra = {"escalation_reason": reason, "escalated_by": escalated_by}

        failures = []
        for user_id in targets:
            success, details = await self._executor.deliver(
                incident,
                user_id,
                TemplateId.ESCALATION_OVERDUE,
                MANUAL_CHANNELS,
                extra,
            )
            if not success:
                failures.append(f"{user_id}: {details}")

        delivered = bool(targets) and not failures
        details = reason
        if failures:
            details = f"{reason} (failed: {'; '.join(failures)})"

        await self._history.record_attempt(
            incident_id=incident.incident_id,
            rule_id=None,
            rule_name=MANUAL_RULE_NAME,
            action_type=EscalationActionType.ESCALATE_TO_MANAGER,
            action_target=", ".join(targets),
            details=details,
            is_successful=delivered,
            executed_by=escalated_by,
        )

        self._events.publish(
            EscalationTriggered(
                incident_id=incident.incident_id,
                rule_id=None,
                reason=reason,
                targets=list(targets),
            )
        )
        logger.info(
            "manual_escalation_triggered",
            incident_id=incident.incident_id,
            escalated_by=escalated_by,
            reason=reason,
            targets=len(targets),
            failed=len(failures),
        )
        return delivered

    async def _load(self, incident_id: str) -> IncidentSnapshot:
        incident = await self._incidents.get_incident(incident_id)
        if incident is None:
            raise IncidentNotFoundError(incident_id)
        return incident
