"""
Harmoni Escalation — incident escalation rule engine.

Architecture:
    harmoni_escalation/
    ├── escalation/      # Rules, matcher, executor, orchestrator, overdue scan, history, events
    ├── notifications/   # Template catalog + multi-channel dispatch (email, SMS, WhatsApp, push)
    ├── db/              # SQLAlchemy models, engine, incident query + history sink
    ├── directory.py     # Role / department / management / contact lookup
    ├── memory.py        # In-memory incident store and history sink
    ├── registry.py      # Wiring of all collaborators into one service bundle
    └── scheduler.py     # Periodic overdue scan (APScheduler)

Data Flow:
    Overdue scan / caller → Orchestrator → Matcher filters rule set
    → rules in priority order → Action Executor (delays honored)
    → Notification Dispatch + History Recorder → Event Publisher

Version: 1.0.0
"""

__version__ = "1.0.0"
