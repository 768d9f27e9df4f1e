"""
Database-backed role and domain record stores (Postgres/Supabase).

Why: Role assignments and the student/faculty back-reference live in the
application's Postgres database. These stores keep SQL in one place and
translate driver errors into the identity domain errors.

Security:
- Intended to be used with a service-role connection string; RLS on
  `user_roles`, `students` and `faculties` is bypassed by that role.
- Identifiers are composed via `psycopg.sql`; values are always parameters.

Note: This module uses psycopg3. It is imported only when `DATABASE_URL` is
configured. Tests can continue to use the in-memory stores.
"""
from __future__ import annotations

from typing import List, Optional
import re

try:
    import psycopg
    from psycopg import sql
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional dependency in dev
    psycopg = None  # type: ignore
    sql = None  # type: ignore
    HAVE_PSYCOPG = False
else:  # pragma: no cover - import errors handled above
    try:
        from psycopg.errors import UniqueViolation  # type: ignore
    except Exception:  # pragma: no cover - fallback when errors module unavailable
        UniqueViolation = None  # type: ignore

from .domain import (
    DomainRecord,
    RECORD_TABLES,
    RecordStoreError,
    RoleAssignment,
    RoleConflictError,
    RoleStoreError,
)

_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


def _is_unique_violation(exc: BaseException) -> bool:
    sqlstate = getattr(exc, "sqlstate", None) or getattr(exc, "pgcode", None)
    return bool(UniqueViolation and isinstance(exc, UniqueViolation)) or sqlstate == "23505"


def _message(exc: BaseException) -> str:
    """Driver message without the trailing DETAIL/CONTEXT lines."""
    text = str(exc).strip()
    return text.splitlines()[0] if text else exc.__class__.__name__


class _DBStore:
    def __init__(self, dsn: str, schema: str = "public", *, connect_timeout: int = 10) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for database-backed stores")
        if not dsn:
            raise RuntimeError("No database DSN provided")
        # Schema is interpolated as an identifier
        if not _IDENT.match(schema or ""):
            raise ValueError("Invalid schema name")
        self._dsn = dsn
        self._schema = schema
        self._connect_timeout = connect_timeout

    def _connect(self):
        return psycopg.connect(self._dsn, autocommit=True, connect_timeout=self._connect_timeout)

    def _table(self, name: str):
        return sql.Identifier(self._schema, name)


class DBRoleAssignmentStore(_DBStore):
    """Role assignments in `<schema>.user_roles (user_id, role)`."""

    def find(self, identity_id: str, role: str) -> Optional[RoleAssignment]:
        stmt = sql.SQL("select user_id::text, role::text from {} where user_id = %s and role = %s limit 1").format(
            self._table("user_roles")
        )
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(stmt, (identity_id, role))
                    row = cur.fetchone()
        except psycopg.Error as exc:
            raise RoleStoreError(_message(exc)) from exc
        if not row:
            return None
        return RoleAssignment(identity_id=row[0], role=row[1])

    def insert(self, identity_id: str, role: str) -> RoleAssignment:
        stmt = sql.SQL("insert into {} (user_id, role) values (%s, %s)").format(self._table("user_roles"))
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(stmt, (identity_id, role))
        except psycopg.Error as exc:
            if _is_unique_violation(exc):
                raise RoleConflictError(_message(exc)) from exc
            raise RoleStoreError(_message(exc)) from exc
        return RoleAssignment(identity_id=identity_id, role=role)


class DBDomainRecordStore(_DBStore):
    """Student/faculty rows with their `user_id` back-reference."""

    def _check_table(self, table: str) -> None:
        if table not in RECORD_TABLES.values():
            raise RecordStoreError(f"Unknown table: {table}")

    def update(self, table: str, record_id: str, values: dict) -> None:
        self._check_table(table)
        stmt = sql.SQL("update {} set user_id = %s where id::text = %s returning id::text").format(
            self._table(table)
        )
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(stmt, (values.get("identity_id"), record_id))
                    row = cur.fetchone()
        except psycopg.Error as exc:
            raise RecordStoreError(_message(exc)) from exc
        if not row:
            raise RecordStoreError(f"{table} record not found: {record_id}")

    def list_records(self, table: str) -> List[DomainRecord]:
        self._check_table(table)
        stmt = sql.SQL(
            "select id::text, full_name, email, status, user_id::text, "
            "to_char(created_at at time zone 'utc', 'YYYY-MM-DD\"T\"HH24:MI:SS\"+00:00\"') "
            "from {} order by created_at desc"
        ).format(self._table(table))
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(stmt)
                    rows = cur.fetchall()
        except psycopg.Error as exc:
            raise RecordStoreError(_message(exc)) from exc
        return [
            DomainRecord(
                record_id=r[0],
                full_name=r[1] or "",
                email=r[2] or "",
                status=r[3] or "",
                identity_id=r[4],
                created_at=r[5],
            )
            for r in rows
        ]


__all__ = ["DBRoleAssignmentStore", "DBDomainRecordStore", "HAVE_PSYCOPG"]
