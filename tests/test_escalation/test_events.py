"""
Tests for the Event Bus.

Covers:
- Typed and wildcard subscriptions
- Handler failure isolation
- Drain on stop
- Queue overflow drops without raising
"""

import pytest

from harmoni_escalation.escalation.events import ALL_EVENTS, EventBus
from harmoni_escalation.escalation.schemas import (
    EmergencyAlertTriggered,
    EscalationTriggered,
    IncidentSeverity,
)


def _make_event(incident_id: str = "INC-1") -> EscalationTriggered:
    return EscalationTriggered(incident_id=incident_id, rule_id="r1", reason="test", targets=["a"])


class TestEventBus:
    @pytest.mark.asyncio
    async def test_typed_and_wildcard_handlers(self):
        bus = EventBus()
        typed, wildcard = [], []

        async def on_escalation(event):
            typed.append(event.event_id)

        async def on_any(event):
            wildcard.append(event.event_type)

        bus.subscribe("escalation_triggered", on_escalation)
        bus.subscribe(ALL_EVENTS, on_any)

        await bus.start()
        escalation = _make_event()
        bus.publish(escalation)
        bus.publish(EmergencyAlertTriggered(incident_id="INC-1", severity=IncidentSeverity.EMERGENCY))
        await bus.stop()

        assert typed == [escalation.event_id]
        assert wildcard == ["escalation_triggered", "emergency_alert_triggered"]
        assert not bus.running

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self):
        bus = EventBus()
        received = []

        async def broken(event):
            raise ValueError("handler bug")

        async def healthy(event):
            received.append(event.incident_id)

        bus.subscribe("escalation_triggered", broken)
        bus.subscribe("escalation_triggered", healthy)

        await bus.deliver(_make_event("INC-7"))
        assert received == ["INC-7"]

    @pytest.mark.asyncio
    async def test_publish_before_start_is_queued(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event.incident_id)

        bus.subscribe(ALL_EVENTS, handler)
        bus.publish(_make_event("INC-1"))
        bus.publish(_make_event("INC-2"))
        assert bus.pending == 2

        await bus.start()
        await bus.stop()
        assert received == ["INC-1", "INC-2"]
        assert bus.pending == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_event(self):
        bus = EventBus(max_queue_size=1)
        bus.publish(_make_event("INC-1"))
        bus.publish(_make_event("INC-2"))
        assert bus.pending == 1
