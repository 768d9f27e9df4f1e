"""
Provisioning configuration parsing and validation.

Intent:
    Read the Supabase endpoint, service credentials and HTTP limits once at
    process start and hand them to adapters as an immutable object.

Why:
    Adapters receive their configuration at construction time instead of
    reading the environment per request, so tests can build them with plain
    values and production reads are centralized and validated in one place.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse
import os


@dataclass(frozen=True)
class ProvisioningConfig:
    supabase_url: str
    service_role_key: str
    database_url: Optional[str] = None
    jwt_secret: Optional[str] = None
    http_timeout_seconds: float = 10.0
    directory_page_size: int = 200

    @property
    def auth_admin_url(self) -> str:
        return f"{self.supabase_url}/auth/v1/admin"


def _int_env(name: str, default: int, *, lo: int, hi: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}")
    if value < lo or value > hi:
        raise ValueError(f"{name} out of range ({lo}..{hi}), got: {value}")
    return value


def _validate_supabase_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("SUPABASE_URL must be an absolute http:// or https:// URL")


def load_provisioning_config() -> ProvisioningConfig:
    """
    Parse provisioning configuration from environment variables.

    Behavior:
        - `SUPABASE_URL` and `SUPABASE_SERVICE_ROLE_KEY` are required.
        - `DATABASE_URL` (optional) selects the psycopg stores; without it the
          PostgREST stores are used.
        - `SUPABASE_JWT_SECRET` (optional) enables bearer-token checks.
        - `PROVISIONING_HTTP_TIMEOUT` in 1..120 seconds (default 10).
        - `PROVISIONING_DIRECTORY_PAGE_SIZE` in 1..1000 (default 200).
    """
    url = (os.getenv("SUPABASE_URL") or "").strip().rstrip("/")
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
    _validate_supabase_url(url)
    return ProvisioningConfig(
        supabase_url=url,
        service_role_key=key,
        database_url=(os.getenv("DATABASE_URL") or "").strip() or None,
        jwt_secret=(os.getenv("SUPABASE_JWT_SECRET") or "").strip() or None,
        http_timeout_seconds=float(_int_env("PROVISIONING_HTTP_TIMEOUT", 10, lo=1, hi=120)),
        directory_page_size=_int_env("PROVISIONING_DIRECTORY_PAGE_SIZE", 200, lo=1, hi=1000),
    )


__all__ = ["ProvisioningConfig", "load_provisioning_config"]
