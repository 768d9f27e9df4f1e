"""
Supabase (PostgREST) backed role and domain record stores.

These stores are used when no direct `DATABASE_URL` is configured. They are
intentionally duck-typed to avoid a hard dependency during testing. The client
is expected to expose `.table(name)` returning a query builder offering:

- select(columns).eq(col, value).limit(n).execute() -> response with `.data`
- insert(values).execute()
- update(values).eq(col, value).execute() -> updated rows in `.data`
- select(columns).order(col, desc=True).execute()

Security:
- The caller must ensure the client is initialized with the Service Role key.
"""
from __future__ import annotations

from typing import Any, List, Optional

from .domain import (
    DomainRecord,
    RECORD_TABLES,
    RecordStoreError,
    RoleAssignment,
    RoleConflictError,
    RoleStoreError,
)


def _rows(res: Any) -> list:
    data = getattr(res, "data", None)
    if data is None and isinstance(res, dict):
        data = res.get("data")
    if isinstance(data, dict):
        return [data]
    return list(data or [])


def _message(exc: BaseException) -> str:
    # postgrest.APIError carries `message`; fall back to str() for other errors
    msg = getattr(exc, "message", None)
    return str(msg) if msg else str(exc)


def _is_unique_violation(exc: BaseException) -> bool:
    return str(getattr(exc, "code", "") or "") == "23505"


class SupabaseRoleAssignmentStore:
    def __init__(self, client: Any, table: str = "user_roles") -> None:
        # Duck-typed supabase client, e.g., from `supabase import create_client(...)`.
        self._client = client
        self._table = table

    def find(self, identity_id: str, role: str) -> Optional[RoleAssignment]:
        try:
            res = (
                self._client.table(self._table)
                .select("user_id, role")
                .eq("user_id", identity_id)
                .eq("role", role)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            raise RoleStoreError(_message(exc)) from exc
        rows = _rows(res)
        if not rows:
            return None
        return RoleAssignment(identity_id=str(rows[0].get("user_id")), role=str(rows[0].get("role")))

    def insert(self, identity_id: str, role: str) -> RoleAssignment:
        try:
            self._client.table(self._table).insert({"user_id": identity_id, "role": role}).execute()
        except Exception as exc:
            if _is_unique_violation(exc):
                raise RoleConflictError(_message(exc)) from exc
            raise RoleStoreError(_message(exc)) from exc
        return RoleAssignment(identity_id=identity_id, role=role)


class SupabaseDomainRecordStore:
    def __init__(self, client: Any) -> None:
        self._client = client

    @staticmethod
    def _check_table(table: str) -> None:
        if table not in RECORD_TABLES.values():
            raise RecordStoreError(f"Unknown table: {table}")

    def update(self, table: str, record_id: str, values: dict) -> None:
        self._check_table(table)
        try:
            res = (
                self._client.table(table)
                .update({"user_id": values.get("identity_id")})
                .eq("id", record_id)
                .execute()
            )
        except Exception as exc:
            raise RecordStoreError(_message(exc)) from exc
        # PostgREST reports a no-match update as success with no rows.
        if not _rows(res):
            raise RecordStoreError(f"{table} record not found: {record_id}")

    def list_records(self, table: str) -> List[DomainRecord]:
        self._check_table(table)
        try:
            res = (
                self._client.table(table)
                .select("id, full_name, email, status, user_id, created_at")
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as exc:
            raise RecordStoreError(_message(exc)) from exc
        return [
            DomainRecord(
                record_id=str(r.get("id")),
                full_name=r.get("full_name") or "",
                email=r.get("email") or "",
                status=r.get("status") or "",
                identity_id=r.get("user_id"),
                created_at=r.get("created_at"),
            )
            for r in _rows(res)
        ]


__all__ = ["SupabaseRoleAssignmentStore", "SupabaseDomainRecordStore"]
