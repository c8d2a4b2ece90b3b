"""
SQL persistence for the escalation engine.

Components:
- engine: Async engine, session factory, declarative base
- compat: Cross-dialect column types
- models: incidents + escalation_history tables
- queries: SqlIncidentQuery and SqlHistorySink
"""
