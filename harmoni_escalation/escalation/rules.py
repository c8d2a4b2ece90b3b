"""
Rule Set Provider — supplies the escalation rules for an evaluation pass.

A rule set is loaded once, validated, and referenced read-only by every
evaluation. Reloading builds a new snapshot and swaps it in wholesale; a
snapshot is never mutated in place.

Default rules mirror the built-in HSE policy:
1. Critical / emergency incidents → HSE managers + emergency alert
2. No response within 24 hours → management escalation
3. Major and above → regulatory reporting (after a 2-hour assessment window)
"""

import json
from collections import Counter
from datetime import timedelta
from pathlib import Path
from typing import Iterable, Optional, Protocol

import structlog
from pydantic import TypeAdapter, ValidationError

from harmoni_escalation.escalation.schemas import (
    EscalationAction,
    EscalationActionType,
    EscalationRule,
    IncidentSeverity,
    NotificationChannel,
    TemplateId,
)
from harmoni_escalation.exceptions import RuleSetValidationError

logger = structlog.get_logger(__name__)

_RULE_LIST = TypeAdapter(list[EscalationRule])


class RuleSet:
    """Immutable, validated snapshot of escalation rules in declared order."""

    __slots__ = ("_rules",)

    def __init__(self, rules: Iterable[EscalationRule]):
        rules = tuple(rules)
        validate_rules(rules)
        self._rules = rules

    @property
    def rules(self) -> tuple[EscalationRule, ...]:
        return self._rules

    def active(self) -> list[EscalationRule]:
        return [r for r in self._rules if r.is_active]

    def __iter__(self):
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)


def validate_rules(rules: Iterable[EscalationRule]) -> None:
    """
    Reject rule sets with duplicate ids or accidental catch-all rules.

    Raises:
        RuleSetValidationError: listing every problem found
    """
    rules = list(rules)
    problems: list[str] = []

    counts = Counter(r.rule_id for r in rules)
    for rule_id, count in counts.items():
        if count > 1:
            problems.append(f"Duplicate rule id '{rule_id}' ({count} occurrences)")

    for rule in rules:
        if not rule.has_triggers and not rule.catch_all:
            problems.append(
                f"Rule '{rule.rule_id}' has no trigger conditions and would match "
                f"every incident; set catch_all=true if intended"
            )
        if not rule.actions:
            logger.warning("rule_has_no_actions", rule_id=rule.rule_id)

    if problems:
        raise RuleSetValidationError(
            f"Invalid escalation rule set: {len(problems)} problem(s)",
            problems=problems,
        )


class RuleSetProvider(Protocol):
    def get_rules(self) -> RuleSet:
        ...


# ── Default rules ─────────────────────────────────────────────────────


def default_rules() -> list[EscalationRule]:
    return [
        EscalationRule(
            rule_id="critical_immediate",
            name="Critical Incident Immediate Escalation",
            description="Immediately escalate critical and emergency incidents",
            priority=1,
            trigger_severities=frozenset(
                {IncidentSeverity.CRITICAL, IncidentSeverity.EMERGENCY}
            ),
            actions=(
                EscalationAction(
                    type=EscalationActionType.NOTIFY_ROLE,
                    target="HSE_Manager",
                    template_id=TemplateId.INCIDENT_CRITICAL,
                    channels=[
                        NotificationChannel.EMAIL,
                        NotificationChannel.SMS,
                        NotificationChannel.WHATSAPP,
                    ],
                ),
                EscalationAction(
                    type=EscalationActionType.SEND_EMERGENCY_ALERT,
                    target="emergency_team",
                    template_id=TemplateId.EMERGENCY_ALERT,
                    channels=[
                        NotificationChannel.EMAIL,
                        NotificationChannel.SMS,
                        NotificationChannel.PUSH,
                    ],
                ),
            ),
        ),
        EscalationRule(
            rule_id="response_overdue_24h",
            name="24-Hour Response Escalation",
            description="Escalate incidents without response within 24 hours",
            priority=50,
            trigger_after_duration=timedelta(hours=24),
            actions=(
                EscalationAction(
                    type=EscalationActionType.ESCALATE_TO_MANAGER,
                    target="department_manager",
                    template_id=TemplateId.ESCALATION_OVERDUE,
                    channels=[NotificationChannel.EMAIL, NotificationChannel.PUSH],
                ),
            ),
        ),
        EscalationRule(
            rule_id="regulatory_reporting",
            name="Regulatory Reporting",
            description="Trigger regulatory reporting for specific incident types",
            priority=75,
            trigger_severities=frozenset({
                IncidentSeverity.MAJOR,
                IncidentSeverity.CRITICAL,
                IncidentSeverity.EMERGENCY,
            }),
            actions=(
                EscalationAction(
                    type=EscalationActionType.SEND_REGULATORY,
                    target="regulatory_team",
                    template_id=TemplateId.INCIDENT_REGULATORY,
                    channels=[NotificationChannel.EMAIL],
                    # Initial assessment window
                    delay=timedelta(hours=2),
                ),
            ),
        ),
    ]


# ── Providers ─────────────────────────────────────────────────────────


class StaticRuleSetProvider:
    """Serves an in-process rule set; ``replace`` swaps it wholesale."""

    def __init__(self, rules: Optional[Iterable[EscalationRule]] = None):
        self._rule_set = RuleSet(default_rules() if rules is None else rules)

    def get_rules(self) -> RuleSet:
        return self._rule_set

    def replace(self, rules: Iterable[EscalationRule]) -> RuleSet:
        new_set = RuleSet(rules)
        self._rule_set = new_set
        logger.info("rule_set_replaced", rules=len(new_set))
        return new_set


class FileRuleSetProvider:
    """
    Loads rules from a JSON file (a list of rule objects).

    ``reload`` re-reads the file; on failure the previous snapshot stays in
    place and the error propagates to the caller.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._rule_set = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def get_rules(self) -> RuleSet:
        return self._rule_set

    def reload(self) -> RuleSet:
        new_set = self._load()
        self._rule_set = new_set
        return new_set

    def _load(self) -> RuleSet:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            rules = _RULE_LIST.validate_python(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error("rule_file_load_failed", path=str(self._path), error=str(e))
            raise RuleSetValidationError(
                f"Cannot load escalation rules from {self._path}",
                problems=[str(e)],
            ) from e

        rule_set = RuleSet(rules)
        logger.info("rule_file_loaded", path=str(self._path), rules=len(rule_set))
        return rule_set


def build_rule_provider(rules_file: str = "") -> RuleSetProvider:
    """File-backed provider when a path is configured, built-in rules otherwise."""
    if rules_file:
        return FileRuleSetProvider(rules_file)
    return StaticRuleSetProvider()
