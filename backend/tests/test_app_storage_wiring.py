"""
App wiring — provisioner construction from configuration.

Why:
    Production selects the role/record stores from configuration: psycopg when
    DATABASE_URL is set, PostgREST through the `supabase` client otherwise.
    These tests replace `supabase.create_client` with a fake so wiring never
    reaches a real project, and assert adapter types only.
"""
from __future__ import annotations

import pytest

from backend.identity_access.config import ProvisioningConfig
from backend.identity_access.directory import SupabaseIdentityDirectory
from backend.web import provisioning_wiring

CFG = ProvisioningConfig(supabase_url="https://proj.supabase.co", service_role_key="service-key")


def test_build_without_database_url_uses_postgrest(monkeypatch: pytest.MonkeyPatch):
    supabase = pytest.importorskip("supabase")
    from backend.identity_access.stores_supabase import SupabaseDomainRecordStore, SupabaseRoleAssignmentStore

    captured = {}

    def fake_create_client(url, key):
        captured["args"] = (url, key)
        return object()

    monkeypatch.setattr(supabase, "create_client", fake_create_client)

    p = provisioning_wiring.build_provisioner(CFG)

    assert captured["args"] == ("https://proj.supabase.co", "service-key")
    assert isinstance(p._directory, SupabaseIdentityDirectory)
    assert isinstance(p._roles, SupabaseRoleAssignmentStore)
    assert isinstance(p._records, SupabaseDomainRecordStore)


def test_build_with_database_url_uses_psycopg():
    pytest.importorskip("psycopg")
    from backend.identity_access.stores_db import DBDomainRecordStore, DBRoleAssignmentStore

    cfg = ProvisioningConfig(
        supabase_url=CFG.supabase_url,
        service_role_key=CFG.service_role_key,
        database_url="postgresql://svc:pw@db.example.com:5432/postgres",
    )

    p = provisioning_wiring.build_provisioner(cfg)

    assert isinstance(p._roles, DBRoleAssignmentStore)
    assert isinstance(p._records, DBDomainRecordStore)


def test_get_provisioner_is_lazy_and_cached(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SUPABASE_URL", "https://proj.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")
    built = []
    monkeypatch.setattr(provisioning_wiring, "build_provisioner", lambda cfg: built.append(cfg) or object())

    first = provisioning_wiring.get_provisioner()
    second = provisioning_wiring.get_provisioner()

    assert first is second
    assert len(built) == 1
    assert built[0].supabase_url == "https://proj.supabase.co"


def test_get_provisioner_missing_config_raises_and_retries(monkeypatch: pytest.MonkeyPatch):
    with pytest.raises(ValueError):
        provisioning_wiring.get_provisioner()

    monkeypatch.setenv("SUPABASE_URL", "https://proj.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")
    monkeypatch.setattr(provisioning_wiring, "build_provisioner", lambda cfg: "wired")

    assert provisioning_wiring.get_provisioner() == "wired"
