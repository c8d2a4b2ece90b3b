"""
Notification Template Catalog.

Built-in escalation templates with ``{{placeholder}}`` substitution.
Lookups are keyed by (template_id, language) and fall back to English.
Placeholders missing from the data render as empty strings.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from harmoni_escalation.escalation.schemas import RenderedNotification, TemplateId
from harmoni_escalation.exceptions import TemplateNotFoundError

logger = structlog.get_logger(__name__)

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")

DEFAULT_LANGUAGE = "en"


@dataclass(frozen=True)
class NotificationTemplate:
    template_id: str
    name: str
    subject: str
    body: str
    language: str = DEFAULT_LANGUAGE


_DETAIL_LINES = (
    "Incident ID: {{incident_id}}\n"
    "Title: {{incident_title}}\n"
    "Severity: {{incident_severity}}\n"
)

BUILTIN_TEMPLATES: tuple[NotificationTemplate, ...] = (
    NotificationTemplate(
        template_id=TemplateId.INCIDENT_CREATED,
        name="Incident Created",
        subject="New Incident Reported: {{incident_title}}",
        body=(
            "A new incident has been reported:\n\n"
            + _DETAIL_LINES
            + "Location: {{incident_location}}\n"
            "Reported by: {{reporter_name}}\n"
            "Created: {{incident_created_at}}\n\n"
            "Description:\n{{incident_description}}\n\n"
            "View details: {{url}}"
        ),
    ),
    NotificationTemplate(
        template_id=TemplateId.INCIDENT_CREATED,
        name="Insiden Dibuat",
        language="id",
        subject="Insiden Baru Dilaporkan: {{incident_title}}",
        body=(
            "Insiden baru telah dilaporkan:\n\n"
            "ID Insiden: {{incident_id}}\n"
            "Judul: {{incident_title}}\n"
            "Tingkat Keparahan: {{incident_severity}}\n"
            "Lokasi: {{incident_location}}\n"
            "Dilaporkan oleh: {{reporter_name}}\n"
            "Dibuat: {{incident_created_at}}\n\n"
            "Deskripsi:\n{{incident_description}}\n\n"
            "Lihat detail: {{url}}"
        ),
    ),
    NotificationTemplate(
        template_id=TemplateId.INCIDENT_CRITICAL,
        name="Critical Incident Alert",
        subject="🚨 CRITICAL INCIDENT ALERT: {{incident_title}}",
        body=(
            "🚨 CRITICAL INCIDENT REQUIRES IMMEDIATE ATTENTION 🚨\n\n"
            + _DETAIL_LINES
            + "Location: {{incident_location}}\n"
            "Reported by: {{reporter_name}}\n"
            "Created: {{incident_created_at}}\n\n"
            "Description:\n{{incident_description}}\n\n"
            "⚠️ THIS INCIDENT REQUIRES IMMEDIATE RESPONSE\n\n"
            "View details: {{url}}"
        ),
    ),
    NotificationTemplate(
        template_id=TemplateId.ESCALATION_OVERDUE,
        name="Incident Escalation",
        subject="Incident Escalated: {{incident_title}}",
        body=(
            "An incident has been escalated and requires your attention:\n\n"
            + _DETAIL_LINES
            + "Status: {{incident_status}}\n"
            "Location: {{incident_location}}\n"
            "Created: {{incident_created_at}}\n\n"
            "Escalation Reason: {{escalation_reason}}\n"
            "Escalated by: {{escalated_by}}\n\n"
            "Description:\n{{incident_description}}\n\n"
            "Please review and take appropriate action.\n\n"
            "View details: {{url}}"
        ),
    ),
    NotificationTemplate(
        template_id=TemplateId.EMERGENCY_ALERT,
        name="Emergency Alert",
        subject="🚨 EMERGENCY ALERT: {{incident_title}}",
        body=(
            "🚨 EMERGENCY SITUATION 🚨\n\n"
            "INCIDENT DETAILS:\n"
            "ID: {{incident_id}}\n"
            "Title: {{incident_title}}\n"
            "Severity: {{incident_severity}}\n"
            "Location: {{incident_location}}\n"
            "Time: {{incident_created_at}}\n\n"
            "Description:\n{{incident_description}}\n\n"
            "🚨 ACTIVATE EMERGENCY RESPONSE PROCEDURES 🚨\n\n"
            "View details: {{url}}"
        ),
    ),
    NotificationTemplate(
        template_id=TemplateId.INCIDENT_REGULATORY,
        name="Regulatory Reporting Required",
        subject="Regulatory Reporting Required: {{incident_title}}",
        body=(
            "A reportable incident has occurred that requires regulatory notification:\n\n"
            + _DETAIL_LINES
            + "Location: {{incident_location}}\n"
            "Created: {{incident_created_at}}\n\n"
            "Description:\n{{incident_description}}\n\n"
            "Regulatory Requirements:\n"
            "- BPJS Ketenagakerjaan: 2x24 hours\n"
            "- Disnaker: As required\n"
            "- Local Authority: As required\n\n"
            "Please prepare and submit the required regulatory reports.\n\n"
            "View details: {{url}}"
        ),
    ),
)


def render_text(text: str, data: dict[str, Any]) -> str:
    """Substitute ``{{key}}`` placeholders; unknown keys become ''."""

    def _sub(match: re.Match) -> str:
        value = data.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_sub, text)


class TemplateCatalog:
    """In-memory template store implementing the renderer protocol."""

    def __init__(self, templates: Optional[list[NotificationTemplate]] = None):
        self._templates: dict[tuple[str, str], NotificationTemplate] = {}
        for template in BUILTIN_TEMPLATES if templates is None else templates:
            self.register(template)

    def register(self, template: NotificationTemplate) -> None:
        self._templates[(str(template.template_id), template.language)] = template

    def get(self, template_id: str, language: str = DEFAULT_LANGUAGE) -> NotificationTemplate:
        template = self._templates.get((template_id, language))
        if template is not None:
            return template

        if language != DEFAULT_LANGUAGE:
            template = self._templates.get((template_id, DEFAULT_LANGUAGE))
            if template is not None:
                logger.warning(
                    "template_language_fallback",
                    template_id=template_id,
                    language=language,
                )
                return template

        raise TemplateNotFoundError(template_id)

    def render(
        self,
        template_id: str,
        data: dict[str, Any],
        language: str = DEFAULT_LANGUAGE,
    ) -> RenderedNotification:
        template = self.get(str(template_id), language)
        missing = sorted(
            {k for k in _PLACEHOLDER.findall(template.subject + template.body) if k not in data}
        )
        if missing:
            logger.debug("template_placeholders_missing", template_id=template_id, missing=missing)

        return RenderedNotification(
            subject=render_text(template.subject, data),
            body=render_text(template.body, data),
        )
