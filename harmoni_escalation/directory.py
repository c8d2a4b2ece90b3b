"""
Static directory — recipient resolution and contact details.

StaticDirectory answers the engine's directory lookups from in-process
maps seeded with the standard Harmoni360 site roster. ContactBook maps user
ids to the addresses each notification channel needs.
"""

import json
from pathlib import Path
from typing import Optional

import structlog
from pydantic import BaseModel, TypeAdapter

from harmoni_escalation.escalation.schemas import IncidentSnapshot

logger = structlog.get_logger(__name__)


DEFAULT_ROLES: dict[str, list[str]] = {
    "HSE_Manager": ["hse_manager_1", "hse_manager_2"],
    "Safety_Officer": ["safety_officer_1", "safety_officer_2", "safety_officer_3"],
    "Department_Manager": ["dept_manager_1", "dept_manager_2"],
}
DEFAULT_MANAGEMENT = ["site_manager", "hse_manager", "operations_manager"]
DEFAULT_EMERGENCY_CONTACTS = ["emergency_coordinator", "site_safety_officer", "medical_officer"]
DEFAULT_REGULATORY_TEAM = ["regulatory_officer", "compliance_manager", "legal_counsel"]


class StaticDirectory:
    """
    In-memory directory lookup.

    Departments not listed explicitly resolve to their manager and
    supervisor accounts (``<dept>_manager``, ``<dept>_supervisor``).
    """

    def __init__(
        self,
        roles: Optional[dict[str, list[str]]] = None,
        departments: Optional[dict[str, list[str]]] = None,
        management: Optional[list[str]] = None,
        emergency_contacts: Optional[list[str]] = None,
        regulatory_team: Optional[list[str]] = None,
    ):
        self._roles = dict(DEFAULT_ROLES if roles is None else roles)
        self._departments = dict(departments or {})
        self._management = list(DEFAULT_MANAGEMENT if management is None else management)
        self._emergency = list(
            DEFAULT_EMERGENCY_CONTACTS if emergency_contacts is None else emergency_contacts
        )
        self._regulatory = list(
            DEFAULT_REGULATORY_TEAM if regulatory_team is None else regulatory_team
        )

    async def users_in_role(self, role_name: str) -> list[str]:
        users = list(self._roles.get(role_name, []))
        if not users:
            logger.warning("directory_role_empty", role=role_name)
        return users

    async def users_in_department(self, department: str) -> list[str]:
        if department in self._departments:
            return list(self._departments[department])
        return [f"{department}_manager", f"{department}_supervisor"]

    async def management_targets(self, incident: IncidentSnapshot) -> list[str]:
        return list(self._management)

    async def emergency_contacts(self) -> list[str]:
        return list(self._emergency)

    async def regulatory_team(self) -> list[str]:
        return list(self._regulatory)


# ── Contact book ──────────────────────────────────────────────────────


class Contact(BaseModel):
    user_id: str
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None          # E.164, e.g. +6281234567890
    push_token: Optional[str] = None


_CONTACT_LIST = TypeAdapter(list[Contact])


class ContactBook:
    """user_id → Contact."""

    def __init__(self, contacts: Optional[list[Contact]] = None):
        self._contacts: dict[str, Contact] = {c.user_id: c for c in contacts or []}

    @classmethod
    def from_file(cls, path: str | Path) -> "ContactBook":
        """Load a JSON list of contact objects."""
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        book = cls(_CONTACT_LIST.validate_python(raw))
        logger.info("contact_book_loaded", path=str(path), contacts=len(book))
        return book

    def add(self, contact: Contact) -> None:
        self._contacts[contact.user_id] = contact

    def get(self, user_id: str) -> Optional[Contact]:
        return self._contacts.get(user_id)

    def __len__(self) -> int:
        return len(self._contacts)
