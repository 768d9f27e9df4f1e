"""
Account provisioning: create or link a login identity for a student/faculty record.

Intent:
    Give administrators a single, idempotent operation that ensures an identity
    exists for an email, holds the requested role exactly once, and is
    referenced by the target domain record.

Behavior:
    Steps run sequentially and every step is idempotent on its own. The first
    failure aborts the remaining steps; nothing is rolled back. Re-running the
    same request after a partial failure short-circuits the completed steps.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, Tuple, Type, TypeVar
import logging

from .domain import (
    DomainRecord,
    Identity,
    IdentityConflictError,
    PROVISIONABLE_ROLES,
    MalformedRequestError,
    RoleAssignment,
    RoleConflictError,
    mask_email,
    table_for,
)

logger = logging.getLogger("campus.identity_access.provisioning")

T = TypeVar("T")

CREATED_NEW = "created_new"
LINKED_EXISTING = "linked_existing"


class IdentityDirectoryProtocol(Protocol):
    def find_by_email(self, email: str) -> Optional[Identity]:
        ...

    def create(self, email: str, password: str, metadata: dict) -> Identity:
        ...


class RoleAssignmentStoreProtocol(Protocol):
    def find(self, identity_id: str, role: str) -> Optional[RoleAssignment]:
        ...

    def insert(self, identity_id: str, role: str) -> RoleAssignment:
        ...


class DomainRecordStoreProtocol(Protocol):
    def update(self, table: str, record_id: str, values: dict) -> None:
        ...

    def list_records(self, table: str) -> list[DomainRecord]:
        ...


class ProvisioningState(str, Enum):
    START = "start"
    IDENTITY_RESOLVED = "identity_resolved"
    ROLE_RESOLVED = "role_resolved"
    RECORD_LINKED = "record_linked"
    DONE = "done"
    FAILED = "failed"


class ProvisioningError(Exception):
    """A provisioning step failed; `str(exc)` is the cause's message verbatim.

    `failed_at` is the last state reached before the failure, i.e. the steps
    up to and including it have been committed.
    """

    def __init__(self, cause: BaseException, failed_at: ProvisioningState):
        super().__init__(str(cause))
        self.cause = cause
        self.failed_at = failed_at
        self.state = ProvisioningState.FAILED


@dataclass(frozen=True)
class ProvisioningResult:
    identity_id: str
    status: str
    role_created: bool = False
    state: ProvisioningState = ProvisioningState.DONE

    @property
    def message(self) -> str:
        if self.status == CREATED_NEW:
            return "Created new user account"
        return "Linked to existing user account"


def find_or_create(
    lookup: Callable[[], Optional[T]],
    create: Callable[[], T],
    *,
    conflict: Type[BaseException],
) -> Tuple[T, bool]:
    """Return `(entity, created)` for an existing or newly created entity.

    A uniqueness conflict raised by `create` means a concurrent caller won the
    race: the lookup runs once more and a hit counts as found. When the
    re-lookup also misses, the original conflict propagates.
    """
    found = lookup()
    if found is not None:
        return found, False
    try:
        return create(), True
    except conflict:
        found = lookup()
        if found is None:
            raise
        return found, False


class AccountProvisioner:
    def __init__(
        self,
        directory: IdentityDirectoryProtocol,
        roles: RoleAssignmentStoreProtocol,
        records: DomainRecordStoreProtocol,
    ) -> None:
        self._directory = directory
        self._roles = roles
        self._records = records

    def provision(
        self,
        *,
        email: str,
        password: str,
        display_name: str,
        role: str,
        domain_record_id: str,
    ) -> ProvisioningResult:
        """Ensure an identity for `email` holds `role` and is linked to the record.

        Parameters:
            email: Lookup key; format is validated upstream.
            password: Used only when a new identity is created.
            display_name: Stored as `full_name` metadata on a new identity.
            role: `student` or `faculty`; selects the domain record table.
            domain_record_id: Pre-existing student/faculty row to link.

        Raises:
            MalformedRequestError: unsupported role (before any store access).
            ProvisioningError: a step failed; wraps the directory/store error.
        """
        if role not in PROVISIONABLE_ROLES:
            raise MalformedRequestError(f"Invalid role: {role}")
        table = table_for(role)
        state = ProvisioningState.START
        masked = mask_email(email)
        try:
            identity, created = find_or_create(
                lambda: self._directory.find_by_email(email),
                lambda: self._directory.create(email, password, {"full_name": display_name}),
                conflict=IdentityConflictError,
            )
            identity_id = identity.identity_id
            status = CREATED_NEW if created else LINKED_EXISTING
            state = ProvisioningState.IDENTITY_RESOLVED
            logger.info("Identity %s for %s: %s", status, masked, identity_id)

            _, role_created = find_or_create(
                lambda: self._roles.find(identity_id, role),
                lambda: self._roles.insert(identity_id, role),
                conflict=RoleConflictError,
            )
            state = ProvisioningState.ROLE_RESOLVED
            if role_created:
                logger.info("Assigned %s role to %s", role, identity_id)
            else:
                logger.info("Identity %s already has %s role", identity_id, role)

            self._records.update(table, domain_record_id, {"identity_id": identity_id})
            state = ProvisioningState.RECORD_LINKED
            logger.info("Linked %s record %s to %s", table, domain_record_id, identity_id)
        except MalformedRequestError:
            raise
        except Exception as exc:
            logger.warning(
                "Provisioning failed for %s after %s: %s: %s",
                masked,
                state.value,
                exc.__class__.__name__,
                exc,
            )
            raise ProvisioningError(exc, state) from exc
        return ProvisioningResult(identity_id=identity_id, status=status, role_created=role_created)

    def list_accounts(self, role: str) -> list[DomainRecord]:
        """Return the domain records for `role` with their identity linkage."""
        return self._records.list_records(table_for(role))


__all__ = [
    "AccountProvisioner",
    "ProvisioningError",
    "ProvisioningResult",
    "ProvisioningState",
    "find_or_create",
    "CREATED_NEW",
    "LINKED_EXISTING",
]
