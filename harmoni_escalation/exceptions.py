"""
Escalation Exceptions Module.

Centralized exception definitions with error codes. Within the engine these
are caught, logged and turned into history entries; they never escape the
public entry points (process_rules, trigger_manual, scan_overdue).
"""

from enum import Enum
from typing import Any, Dict, Optional


# ============================================================================
# ERROR CODES
# ============================================================================


class ErrorCode(str, Enum):
    """Escalation error codes."""

    # General errors (1xxx)
    INTERNAL_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    NOT_FOUND = "E1002"

    # Rule errors (2xxx)
    RULE_SET_INVALID = "E2000"
    RULE_PROCESSING_FAILED = "E2001"

    # Action errors (3xxx)
    ACTION_FAILED = "E3000"
    TEMPLATE_NOT_FOUND = "E3001"

    # Transport errors (4xxx)
    TRANSPORT_FAILED = "E4000"


# ============================================================================
# BASE EXCEPTION
# ============================================================================


class EscalationError(Exception):
    """Base exception for the escalation engine."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


# ============================================================================
# SPECIFIC EXCEPTIONS
# ============================================================================


class IncidentNotFoundError(EscalationError):
    """Incident missing from the incident store."""

    def __init__(self, incident_id: str):
        super().__init__(
            message=f"Incident not found: {incident_id}",
            code=ErrorCode.NOT_FOUND,
            details={"incident_id": incident_id},
        )


class ActionExecutionError(EscalationError):
    """A single escalation action failed."""

    def __init__(
        self,
        message: str,
        action_type: str,
        target: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.ACTION_FAILED,
            details={"action_type": action_type, "target": target, **(details or {})},
        )
        self.action_type = action_type
        self.target = target


class RuleProcessingError(EscalationError):
    """Unexpected failure spanning a whole rule."""

    def __init__(self, rule_id: str, message: str):
        super().__init__(
            message=message,
            code=ErrorCode.RULE_PROCESSING_FAILED,
            details={"rule_id": rule_id},
        )
        self.rule_id = rule_id


class TransportError(EscalationError):
    """Notification channel failure."""

    def __init__(self, channel: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.TRANSPORT_FAILED,
            details={"channel": channel, **(details or {})},
        )
        self.channel = channel


class TemplateNotFoundError(EscalationError):
    """Unknown notification template id."""

    def __init__(self, template_id: str):
        super().__init__(
            message=f"Notification template not found: {template_id}",
            code=ErrorCode.TEMPLATE_NOT_FOUND,
            details={"template_id": template_id},
        )
        self.template_id = template_id


class RuleSetValidationError(EscalationError):
    """Rule set rejected at load time."""

    def __init__(self, message: str, problems: Optional[list[str]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.RULE_SET_INVALID,
            details={"problems": problems or []},
        )
        self.problems = problems or []
