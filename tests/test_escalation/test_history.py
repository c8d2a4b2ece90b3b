"""
Tests for the History Recorder.
"""

import pytest

from harmoni_escalation.escalation.history import HistoryRecorder
from harmoni_escalation.escalation.schemas import EscalationActionType
from harmoni_escalation.memory import InMemoryHistorySink

from conftest import FIXED_NOW, fixed_clock


class _BrokenSink:
    async def append(self, entry):
        raise OSError("connection reset")


class TestHistoryRecorder:
    @pytest.mark.asyncio
    async def test_record_attempt_appends_entry(self):
        sink = InMemoryHistorySink()
        recorder = HistoryRecorder(sink, clock=fixed_clock)

        entry = await recorder.record_attempt(
            incident_id="INC-9",
            rule_id="critical_immediate",
            rule_name="Critical Incident Immediate Escalation",
            action_type=EscalationActionType.NOTIFY_USER,
            action_target="hse_manager_1",
            details="delivered via email",
            is_successful=True,
        )

        assert sink.entries == [entry]
        assert entry.entry_id.startswith("esc_")
        assert entry.executed_at == FIXED_NOW
        assert entry.executed_by == "system"
        assert entry.action_type == "notify_user"

    @pytest.mark.asyncio
    async def test_sink_failure_is_swallowed(self):
        recorder = HistoryRecorder(_BrokenSink(), clock=fixed_clock)
        entry = await recorder.record_attempt(
            incident_id="INC-9",
            rule_id=None,
            rule_name="Manual Escalation",
            action_type=EscalationActionType.ESCALATE_TO_MANAGER,
            action_target="site_manager",
            details="manual",
            is_successful=True,
            executed_by="jdoe",
        )
        assert entry.executed_by == "jdoe"

    @pytest.mark.asyncio
    async def test_entries_are_immutable(self):
        sink = InMemoryHistorySink()
        entry = await HistoryRecorder(sink).record_attempt(
            "INC-1", "r", "Rule", "notify_user", "u", "", True,
        )
        with pytest.raises(Exception):
            entry.is_successful = False

    @pytest.mark.asyncio
    async def test_for_incident_filters(self):
        sink = InMemoryHistorySink()
        recorder = HistoryRecorder(sink)
        await recorder.record_attempt("INC-1", "r", "Rule", "notify_user", "u1", "", True)
        await recorder.record_attempt("INC-2", "r", "Rule", "notify_user", "u2", "", True)
        assert [e.action_target for e in sink.for_incident("INC-2")] == ["u2"]
