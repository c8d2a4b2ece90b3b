"""
Rule Matcher — decides whether an escalation rule applies to an incident.

Every configured trigger dimension must pass (logical AND); an empty
dimension passes vacuously. Pure apart from the injected clock used by the
duration dimension.
"""

from typing import Iterable, Optional

import structlog

from harmoni_escalation.escalation.ports import Clock
from harmoni_escalation.escalation.schemas import (
    EscalationRule,
    IncidentSnapshot,
    utc_now,
)

logger = structlog.get_logger(__name__)


class RuleMatcher:
    """Evaluate rule trigger predicates against incident snapshots."""

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or utc_now

    def is_applicable(self, rule: EscalationRule, incident: IncidentSnapshot) -> bool:
        return (
            self._severity_matches(rule, incident)
            and self._status_matches(rule, incident)
            and self._duration_matches(rule, incident)
            and self._department_matches(rule, incident)
            and self._location_matches(rule, incident)
        )

    def select(
        self,
        rules: Iterable[EscalationRule],
        incident: IncidentSnapshot,
    ) -> list[EscalationRule]:
        """Applicable rules, in the order given."""
        matched = [r for r in rules if self.is_applicable(r, incident)]
        logger.debug(
            "rules_matched",
            incident_id=incident.incident_id,
            matched=[r.rule_id for r in matched],
        )
        return matched

    # ── Dimensions ──────────────────────────────────────────────────

    @staticmethod
    def _severity_matches(rule: EscalationRule, incident: IncidentSnapshot) -> bool:
        return not rule.trigger_severities or incident.severity in rule.trigger_severities

    @staticmethod
    def _status_matches(rule: EscalationRule, incident: IncidentSnapshot) -> bool:
        return not rule.trigger_statuses or incident.status in rule.trigger_statuses

    def _duration_matches(self, rule: EscalationRule, incident: IncidentSnapshot) -> bool:
        if rule.trigger_after_duration is None:
            return True
        elapsed = incident.time_since_response(self._clock())
        return elapsed >= rule.trigger_after_duration

    @staticmethod
    def _department_matches(rule: EscalationRule, incident: IncidentSnapshot) -> bool:
        # An incident without a department cannot violate the filter
        if not rule.trigger_departments or not incident.department:
            return True
        return incident.department in rule.trigger_departments

    @staticmethod
    def _location_matches(rule: EscalationRule, incident: IncidentSnapshot) -> bool:
        # An incident without a location cannot violate the filter
        if not rule.trigger_locations or not incident.location:
            return True
        location = incident.location.casefold()
        return any(loc.casefold() in location for loc in rule.trigger_locations)
