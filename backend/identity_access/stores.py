"""
In-memory stores for development and tests.

Why: Run the provisioning flow without Supabase while honoring the same
uniqueness constraints the database enforces (unique email, unique
(identity_id, role) pair). Production wiring uses the DB/PostgREST stores.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
import uuid

from .domain import (
    DirectoryError,
    DomainRecord,
    Identity,
    IdentityConflictError,
    RECORD_TABLES,
    RecordStoreError,
    RoleAssignment,
    RoleConflictError,
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryIdentityDirectory:
    def __init__(self, *, min_password_length: int = 6) -> None:
        self._by_email: Dict[str, Identity] = {}
        self._passwords: Dict[str, str] = {}
        self.min_password_length = min_password_length

    def find_by_email(self, email: str) -> Optional[Identity]:
        return self._by_email.get(email)

    def create(self, email: str, password: str, metadata: dict) -> Identity:
        if email in self._by_email:
            raise IdentityConflictError("A user with this email address has already been registered")
        if len(password or "") < self.min_password_length:
            raise DirectoryError(f"Password should be at least {self.min_password_length} characters.")
        ident = Identity(
            identity_id=str(uuid.uuid4()),
            email=email,
            display_name=str((metadata or {}).get("full_name") or ""),
            confirmed=True,
            metadata=dict(metadata or {}),
        )
        self._by_email[email] = ident
        self._passwords[ident.identity_id] = password
        return ident

    def password_of(self, identity_id: str) -> Optional[str]:
        return self._passwords.get(identity_id)

    def all(self) -> List[Identity]:
        return list(self._by_email.values())


class InMemoryRoleAssignmentStore:
    def __init__(self) -> None:
        self._rows: List[RoleAssignment] = []

    def find(self, identity_id: str, role: str) -> Optional[RoleAssignment]:
        for row in self._rows:
            if row.identity_id == identity_id and row.role == role:
                return row
        return None

    def insert(self, identity_id: str, role: str) -> RoleAssignment:
        if self.find(identity_id, role) is not None:
            raise RoleConflictError(
                'duplicate key value violates unique constraint "user_roles_user_id_role_key"'
            )
        row = RoleAssignment(identity_id=identity_id, role=role)
        self._rows.append(row)
        return row

    def all(self) -> List[RoleAssignment]:
        return list(self._rows)


class InMemoryDomainRecordStore:
    """Domain records keyed by (table, record_id)."""

    def __init__(self, records: Iterable[Tuple[str, DomainRecord]] = ()) -> None:
        self._rows: Dict[Tuple[str, str], DomainRecord] = {}
        for table, rec in records:
            self.add(table, rec)

    def add(self, table: str, rec: DomainRecord) -> DomainRecord:
        if table not in RECORD_TABLES.values():
            raise RecordStoreError(f"Unknown table: {table}")
        if rec.created_at is None:
            rec = replace(rec, created_at=_now_iso())
        self._rows[(table, rec.record_id)] = rec
        return rec

    def get(self, table: str, record_id: str) -> Optional[DomainRecord]:
        return self._rows.get((table, record_id))

    def update(self, table: str, record_id: str, values: dict) -> None:
        rec = self._rows.get((table, record_id))
        if rec is None:
            raise RecordStoreError(f"{table} record not found: {record_id}")
        self._rows[(table, record_id)] = replace(rec, identity_id=values.get("identity_id"))

    def list_records(self, table: str) -> List[DomainRecord]:
        rows = [rec for (tbl, _), rec in self._rows.items() if tbl == table]
        return sorted(rows, key=lambda r: r.created_at or "", reverse=True)


__all__ = ["InMemoryIdentityDirectory", "InMemoryRoleAssignmentStore", "InMemoryDomainRecordStore"]
