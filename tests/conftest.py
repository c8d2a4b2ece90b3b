"""
Test fixtures for the escalation engine.

Provides:
- Fixed clock and incident factory
- Recording fakes for notification dispatch, event publication and sleep
- An engine factory wiring the real orchestrator to in-memory collaborators
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from harmoni_escalation.directory import StaticDirectory
from harmoni_escalation.escalation.executor import ActionExecutor
from harmoni_escalation.escalation.history import HistoryRecorder
from harmoni_escalation.escalation.matcher import RuleMatcher
from harmoni_escalation.escalation.orchestrator import EscalationOrchestrator
from harmoni_escalation.escalation.rules import StaticRuleSetProvider
from harmoni_escalation.escalation.schemas import (
    ChannelOutcome,
    IncidentSeverity,
    IncidentSnapshot,
    IncidentStatus,
    NotificationResult,
)
from harmoni_escalation.memory import InMemoryHistorySink, InMemoryIncidentStore
from harmoni_escalation.notifications.templates import TemplateCatalog

FIXED_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


# ── Fakes ─────────────────────────────────────────────────────────────


class FakeNotifier:
    """Records every send; selected users fail or raise."""

    def __init__(self, fail_users=(), raise_users=(), failing_channels=()):
        self.fail_users = set(fail_users)
        self.raise_users = set(raise_users)
        self.failing_channels = set(failing_channels)
        self.sent: list[dict] = []

    @property
    def recipients(self) -> list[str]:
        return [s["user_id"] for s in self.sent]

    async def send_multi_channel(self, user_id, subject, body, channels, priority):
        self.sent.append({
            "user_id": user_id,
            "subject": subject,
            "body": body,
            "channels": list(channels),
            "priority": priority,
        })
        if user_id in self.raise_users:
            raise RuntimeError(f"gateway down for {user_id}")
        results = {}
        for channel in channels:
            ok = user_id not in self.fail_users and channel not in self.failing_channels
            results[channel] = ChannelOutcome(success=ok, detail="ok" if ok else "rejected")
        return NotificationResult(user_id=user_id, channel_results=results)


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def publish(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list:
        return [e for e in self.events if e.event_type == event_type]


class SleepRecorder:
    """Async sleep replacement that records requested durations."""

    def __init__(self, on_sleep=None):
        self.calls: list[float] = []
        self._on_sleep = on_sleep

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._on_sleep is not None:
            await self._on_sleep(seconds)


@dataclass
class Engine:
    store: InMemoryIncidentStore
    sink: InMemoryHistorySink
    notifier: FakeNotifier
    publisher: RecordingPublisher
    sleeper: SleepRecorder
    directory: StaticDirectory
    rules: StaticRuleSetProvider
    history: HistoryRecorder
    executor: ActionExecutor
    orchestrator: EscalationOrchestrator


def build_engine(
    rules=None,
    incidents=(),
    notifier: Optional[FakeNotifier] = None,
    directory=None,
    sink=None,
    sleeper: Optional[SleepRecorder] = None,
) -> Engine:
    store = InMemoryIncidentStore(incidents, clock=fixed_clock)
    sink = sink or InMemoryHistorySink()
    notifier = notifier or FakeNotifier()
    publisher = RecordingPublisher()
    sleeper = sleeper or SleepRecorder()
    directory = directory or StaticDirectory()
    provider = StaticRuleSetProvider(rules)
    history = HistoryRecorder(sink, clock=fixed_clock)
    executor = ActionExecutor(
        directory=directory,
        notifier=notifier,
        templates=TemplateCatalog(),
        history=history,
        events=publisher,
        clock=fixed_clock,
    )
    orchestrator = EscalationOrchestrator(
        incidents=store,
        rules=provider,
        executor=executor,
        directory=directory,
        history=history,
        events=publisher,
        matcher=RuleMatcher(clock=fixed_clock),
        sleep=sleeper,
    )
    return Engine(
        store=store,
        sink=sink,
        notifier=notifier,
        publisher=publisher,
        sleeper=sleeper,
        directory=directory,
        rules=provider,
        history=history,
        executor=executor,
        orchestrator=orchestrator,
    )


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock():
    return fixed_clock


@pytest.fixture
def make_incident():
    def _make(
        incident_id: str = "INC-001",
        severity: IncidentSeverity = IncidentSeverity.CRITICAL,
        status: IncidentStatus = IncidentStatus.OPEN,
        created_ago: timedelta = timedelta(hours=1),
        response_ago: Optional[timedelta] = None,
        **kwargs,
    ) -> IncidentSnapshot:
        return IncidentSnapshot(
            incident_id=incident_id,
            severity=severity,
            status=status,
            created_at=FIXED_NOW - created_ago,
            last_response_at=FIXED_NOW - response_ago if response_ago is not None else None,
            title=kwargs.pop("title", "Chemical spill in warehouse B"),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_engine():
    return build_engine
