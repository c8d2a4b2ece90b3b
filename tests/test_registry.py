"""
Tests for service wiring.
"""

import pytest

from harmoni_escalation.config import Settings
from harmoni_escalation.escalation.orchestrator import MANUAL_RULE_NAME
from harmoni_escalation.escalation.rules import StaticRuleSetProvider, default_rules
from harmoni_escalation.memory import InMemoryHistorySink, InMemoryIncidentStore
from harmoni_escalation.registry import build_escalation_services

from conftest import FakeNotifier, fixed_clock


def _build(settings=None, **kwargs):
    settings = settings or Settings()
    return build_escalation_services(
        settings,
        incidents=kwargs.pop("incidents", InMemoryIncidentStore(clock=fixed_clock)),
        history_sink=kwargs.pop("history_sink", InMemoryHistorySink()),
        notifier=kwargs.pop("notifier", FakeNotifier()),
        clock=fixed_clock,
        **kwargs,
    )


class TestBuildEscalationServices:
    def test_defaults_to_builtin_rules(self):
        services = _build()
        assert isinstance(services.rules, StaticRuleSetProvider)
        assert len(services.rules.get_rules()) == len(default_rules())

    def test_cooldown_disabled_by_default(self):
        services = _build(Settings(OVERDUE_COOLDOWN_MINUTES=0))
        assert services.scanner._cooldown is None

    def test_cooldown_enabled_from_settings(self):
        services = _build(Settings(OVERDUE_COOLDOWN_MINUTES=30))
        assert services.scanner._cooldown is not None
        assert services.scanner._cooldown.window.total_seconds() == 30 * 60

    @pytest.mark.asyncio
    async def test_manual_escalation_end_to_end(self, make_incident):
        incidents = InMemoryIncidentStore([make_incident(incident_id="INC-42")], clock=fixed_clock)
        sink = InMemoryHistorySink()
        notifier = FakeNotifier()
        services = _build(incidents=incidents, history_sink=sink, notifier=notifier)

        await services.orchestrator.trigger_manual("INC-42", "Supervisor request", "jdoe")

        assert notifier.recipients == ["site_manager", "hse_manager", "operations_manager"]
        assert len(sink.entries) == 1
        assert sink.entries[0].rule_name == MANUAL_RULE_NAME
        assert sink.entries[0].executed_by == "jdoe"
        assert services.event_bus.pending == 1
