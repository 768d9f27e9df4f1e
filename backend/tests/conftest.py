"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors), and
reset process-wide wiring so tests never reach a real Supabase project.
"""
import sys
from pathlib import Path

import pytest

# Ensure the repository root is importable so `backend.*` resolves in tests
REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from backend.identity_access.domain import DomainRecord  # noqa: E402
from backend.identity_access.provisioning import AccountProvisioner  # noqa: E402
from backend.identity_access.stores import (  # noqa: E402
    InMemoryDomainRecordStore,
    InMemoryIdentityDirectory,
    InMemoryRoleAssignmentStore,
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Keep environment-driven behavior deterministic per test.

    Why:
        A developer shell may export Supabase credentials or a JWT secret.
        Tests opt into those explicitly; everything else runs in dev mode
        against in-memory stores.
    """
    for var in (
        "CAMPUS_ENV",
        "SUPABASE_URL",
        "SUPABASE_SERVICE_ROLE_KEY",
        "SUPABASE_JWT_SECRET",
        "DATABASE_URL",
        "PROVISIONING_HTTP_TIMEOUT",
        "PROVISIONING_DIRECTORY_PAGE_SIZE",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_provisioner():
    """Reset the lazily wired provisioner between tests.

    Why:
        API tests inject in-memory provisioners via `set_provisioner`; a
        leftover instance would leak identities into unrelated tests.
    """
    from backend.web import provisioning_wiring

    provisioning_wiring.set_provisioner(None)
    yield
    provisioning_wiring.set_provisioner(None)


def _record(record_id: str, name: str, email: str, day: str) -> DomainRecord:
    return DomainRecord(record_id=record_id, full_name=name, email=email, created_at=f"{day}T08:00:00+00:00")


class Stores:
    """In-memory collaborators plus the provisioner bound to them."""

    def __init__(self) -> None:
        self.directory = InMemoryIdentityDirectory()
        self.roles = InMemoryRoleAssignmentStore()
        self.records = InMemoryDomainRecordStore(
            [
                ("students", _record("rec-1", "A One", "a@x.com", "2024-01-01")),
                ("students", _record("rec-2", "B Two", "b@x.com", "2024-02-01")),
                ("faculties", _record("fac-1", "F One", "f@x.com", "2024-01-15")),
            ]
        )
        self.provisioner = AccountProvisioner(self.directory, self.roles, self.records)


@pytest.fixture
def stores() -> Stores:
    return Stores()
