"""
Harmoni Escalation Engine.

Components:
- schemas: Incident snapshot, rules, actions, history entries, events
- ports: Collaborator protocols (incident query, directory, notifier, ...)
- rules: Rule set snapshots, default rules, static / file providers
- matcher: Rule trigger evaluation
- executor: Per-action dispatch and notification fan-out
- orchestrator: Priority-ordered rule execution and manual escalation
- overdue: Periodic overdue incident sweep
- history: Append-only escalation audit
- events: Fire-and-forget domain event bus
"""
