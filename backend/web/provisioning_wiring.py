"""
Shared helper for wiring the Account Provisioner to Supabase.

Why:
    App startup may occur before Supabase is reachable locally. The provisioner
    is therefore built lazily on the first request that needs it and cached for
    the process lifetime. Tests inject their own instance via `set_provisioner`.

Security:
    Requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY environment variables.
    Only server-side adapters are wired; no secrets are exposed to clients.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional

from backend.identity_access.config import ProvisioningConfig, load_provisioning_config
from backend.identity_access.directory import SupabaseIdentityDirectory
from backend.identity_access.provisioning import AccountProvisioner

logger = logging.getLogger("campus.web")

_PROVISIONER: Optional[AccountProvisioner] = None
_LOCK = threading.Lock()


def build_provisioner(cfg: ProvisioningConfig) -> AccountProvisioner:
    """Build a provisioner for `cfg`.

    Behavior:
        - Identity Directory: GoTrue Admin API.
        - Role and record stores: psycopg when `database_url` is set, otherwise
          PostgREST through the official `supabase` client.
    """
    directory = SupabaseIdentityDirectory(cfg)
    if cfg.database_url:
        # Lazy import keeps psycopg out of the PostgREST path.
        from backend.identity_access.stores_db import DBDomainRecordStore, DBRoleAssignmentStore

        roles = DBRoleAssignmentStore(cfg.database_url)
        records = DBDomainRecordStore(cfg.database_url)
        backend = "postgres"
    else:
        from supabase import create_client

        from backend.identity_access.stores_supabase import (
            SupabaseDomainRecordStore,
            SupabaseRoleAssignmentStore,
        )

        client = create_client(cfg.supabase_url, cfg.service_role_key)
        roles = SupabaseRoleAssignmentStore(client)
        records = SupabaseDomainRecordStore(client)
        backend = "supabase"
    logger.info("Provisioning stores wired: %s", backend)
    return AccountProvisioner(directory, roles, records)


def get_provisioner() -> AccountProvisioner:
    """Return the process-wide provisioner, building it from env on first use.

    Raises ValueError/RuntimeError when configuration is missing or invalid;
    a later call retries the wiring.
    """
    global _PROVISIONER
    if _PROVISIONER is not None:
        return _PROVISIONER
    with _LOCK:
        if _PROVISIONER is None:
            _PROVISIONER = build_provisioner(load_provisioning_config())
        return _PROVISIONER


def set_provisioner(provisioner: Optional[AccountProvisioner]) -> None:
    """Inject a provisioner (tests) or reset to lazy env wiring with None."""
    global _PROVISIONER
    _PROVISIONER = provisioner


__all__ = ["build_provisioner", "get_provisioner", "set_provisioner"]
