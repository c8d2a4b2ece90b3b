"""
Escalation Service Registry — wires the engine to its collaborators.

Usage:
    services = build_escalation_services(
        settings,
        incidents=SqlIncidentQuery(session_factory),
        history_sink=SqlHistorySink(session_factory),
    )
    await services.event_bus.start()
    await services.orchestrator.process_rules(incident_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import structlog

from harmoni_escalation.config import Settings
from harmoni_escalation.directory import ContactBook, StaticDirectory
from harmoni_escalation.escalation.events import EventBus
from harmoni_escalation.escalation.executor import ActionExecutor
from harmoni_escalation.escalation.history import HistoryRecorder
from harmoni_escalation.escalation.matcher import RuleMatcher
from harmoni_escalation.escalation.orchestrator import EscalationOrchestrator, Sleep
from harmoni_escalation.escalation.overdue import OverdueCooldown, OverdueScanner
from harmoni_escalation.escalation.ports import (
    Clock,
    DirectoryLookup,
    HistorySink,
    IncidentQuery,
    NotificationDispatch,
    TemplateRenderer,
)
from harmoni_escalation.escalation.rules import RuleSetProvider, build_rule_provider
from harmoni_escalation.notifications.channels import build_notifier
from harmoni_escalation.notifications.templates import TemplateCatalog

logger = structlog.get_logger(__name__)


@dataclass
class EscalationServices:
    """Every engine component, built once and shared."""

    rules: RuleSetProvider
    event_bus: EventBus
    history: HistoryRecorder
    executor: ActionExecutor
    orchestrator: EscalationOrchestrator
    scanner: OverdueScanner


def build_escalation_services(
    settings: Settings,
    incidents: IncidentQuery,
    history_sink: HistorySink,
    directory: Optional[DirectoryLookup] = None,
    notifier: Optional[NotificationDispatch] = None,
    templates: Optional[TemplateRenderer] = None,
    rules: Optional[RuleSetProvider] = None,
    clock: Optional[Clock] = None,
    sleep: Optional[Sleep] = None,
) -> EscalationServices:
    """
    Build the engine. Collaborators not supplied come from settings.

    Raises:
        RuleSetValidationError: if the configured rule file is invalid
    """
    if rules is None:
        rules = build_rule_provider(settings.escalation_rules_file)
    if directory is None:
        directory = StaticDirectory()
    if templates is None:
        templates = TemplateCatalog()
    if notifier is None:
        contacts = (
            ContactBook.from_file(settings.contacts_file)
            if settings.contacts_file
            else ContactBook()
        )
        notifier = build_notifier(settings, contacts)

    event_bus = EventBus(max_queue_size=settings.event_queue_size)
    history = HistoryRecorder(history_sink, clock=clock)
    executor = ActionExecutor(
        directory=directory,
        notifier=notifier,
        templates=templates,
        history=history,
        events=event_bus,
        incident_base_url=settings.incident_base_url,
        regulatory_deadline=timedelta(hours=settings.regulatory_deadline_hours),
        clock=clock,
    )
    orchestrator = EscalationOrchestrator(
        incidents=incidents,
        rules=rules,
        executor=executor,
        directory=directory,
        history=history,
        events=event_bus,
        matcher=RuleMatcher(clock=clock),
        sleep=sleep,
    )

    cooldown = None
    if settings.overdue_cooldown_minutes > 0:
        cooldown = OverdueCooldown(
            timedelta(minutes=settings.overdue_cooldown_minutes), clock=clock,
        )
    scanner = OverdueScanner(
        incidents=incidents,
        orchestrator=orchestrator,
        stale_threshold=timedelta(hours=settings.overdue_threshold_hours),
        critical_threshold=timedelta(hours=settings.critical_overdue_threshold_hours),
        cooldown=cooldown,
    )

    logger.info(
        "escalation_services_built",
        rules=len(rules.get_rules()),
        overdue_cooldown_minutes=settings.overdue_cooldown_minutes,
    )
    return EscalationServices(
        rules=rules,
        event_bus=event_bus,
        history=history,
        executor=executor,
        orchestrator=orchestrator,
        scanner=scanner,
    )
