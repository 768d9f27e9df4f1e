"""
Identity domain constants, entities and errors.

Why:
- Centralize roles and the role → table mapping so the provisioner, the stores
  and the web layer cannot drift apart.
- Keep the error taxonomy in one place; adapters translate their driver
  errors into these types and the web adapter maps them to HTTP.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"student", "faculty", "admin"})

# Roles the provisioning routine may assign, mapped to their domain table.
RECORD_TABLES = {
    "student": "students",
    "faculty": "faculties",
}
PROVISIONABLE_ROLES = frozenset(RECORD_TABLES)


def table_for(role: str) -> str:
    """Return the domain record table for a provisionable role."""
    try:
        return RECORD_TABLES[role]
    except KeyError:
        raise MalformedRequestError(f"Invalid role: {role}") from None


def mask_email(email: str) -> str:
    """Mask email for logs to reduce PII exposure."""
    local, sep, domain = (email or "").partition("@")
    if not sep:
        return "***"
    return f"{local[:2]}***@{domain}"


@dataclass(frozen=True)
class Identity:
    identity_id: str
    email: str
    display_name: str = ""
    confirmed: bool = False
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class RoleAssignment:
    identity_id: str
    role: str


@dataclass(frozen=True)
class DomainRecord:
    record_id: str
    full_name: str = ""
    email: str = ""
    status: str = "active"
    identity_id: Optional[str] = None
    created_at: Optional[str] = None


# --- Errors ---------------------------------------------------------------------


class DirectoryError(Exception):
    """Identity lookup or creation failed."""


class IdentityConflictError(DirectoryError):
    """The directory rejected a create because the email already exists."""


class RoleStoreError(Exception):
    """Role assignment lookup or insert failed."""


class RoleConflictError(RoleStoreError):
    """The (identity_id, role) pair already exists."""


class RecordStoreError(Exception):
    """Domain record update or listing failed."""


class MalformedRequestError(ValueError):
    """The request body is missing fields or carries unsupported values."""


__all__ = [
    "ALLOWED_ROLES",
    "PROVISIONABLE_ROLES",
    "RECORD_TABLES",
    "table_for",
    "mask_email",
    "Identity",
    "RoleAssignment",
    "DomainRecord",
    "DirectoryError",
    "IdentityConflictError",
    "RoleStoreError",
    "RoleConflictError",
    "RecordStoreError",
    "MalformedRequestError",
]
