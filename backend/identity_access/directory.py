"""
Identity Directory adapter (Supabase Auth / GoTrue Admin API).

Why:
    Provisioning must look up login identities by email and create them on
    behalf of administrators. This adapter wraps the two Admin API calls
    behind `find_by_email` and `create`, returning `Identity` DTOs.

Security:
    - Uses the service-role key; intended for server-side use only.
    - Do not log credentials, passwords or tokens.
"""
from __future__ import annotations

from typing import Dict, Optional
import logging
import re

import requests

from .config import ProvisioningConfig
from .domain import DirectoryError, Identity, IdentityConflictError, mask_email

logger = logging.getLogger("campus.identity_access.directory")

_CONFLICT_CODES = frozenset({"email_exists", "user_already_exists"})
_CONFLICT_MSG = re.compile(r"already (been )?registered|already exists", re.IGNORECASE)

_splitter = re.compile(r"[^A-Za-z0-9]+")


def humanize_identifier(s: str) -> str:
    """Turn an email/username into a human display name.

    Rules:
    - For emails, use the part before '@'.
    - Split on non-alphanumeric separators (._- etc.).
    - Title-case each token and join with a single space.
    """
    if not s:
        return ""
    s = str(s)
    if "@" in s:
        s = s.split("@", 1)[0]
    parts = [p for p in _splitter.split(s) if p]
    if not parts:
        return ""
    return " ".join(p[:1].upper() + p[1:].lower() for p in parts)


def _to_identity(u: dict) -> Identity:
    meta = u.get("user_metadata") or {}
    email = str(u.get("email") or "")
    name = str(meta.get("full_name") or "").strip() or humanize_identifier(email)
    return Identity(
        identity_id=str(u.get("id")),
        email=email,
        display_name=name,
        confirmed=bool(u.get("email_confirmed_at") or u.get("confirmed_at")),
        metadata=dict(meta),
    )


def _error_message(resp) -> str:
    """Extract the human-readable message GoTrue attaches to an error."""
    try:
        body = resp.json() or {}
    except ValueError:
        body = {}
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            val = body.get(key)
            if isinstance(val, str) and val.strip():
                return val.strip()
    return f"Identity directory request failed (HTTP {resp.status_code})"


def _is_conflict(resp, message: str) -> bool:
    if resp.status_code == 409:
        return True
    try:
        body = resp.json() or {}
    except ValueError:
        body = {}
    code = body.get("error_code") if isinstance(body, dict) else None
    if code in _CONFLICT_CODES:
        return True
    return resp.status_code == 422 and bool(_CONFLICT_MSG.search(message))


class SupabaseIdentityDirectory:
    """Identity Directory backed by the GoTrue Admin REST API.

    Parameters
    ----------
    cfg:
        Provisioning configuration (Supabase URL, service-role key, timeouts).
    session:
        Optional `requests.Session` (tests may pass a fake).
    """

    def __init__(self, cfg: ProvisioningConfig, *, session: Optional[requests.Session] = None) -> None:
        self.cfg = cfg
        self._http = session or requests.Session()

    def _hdr(self) -> Dict[str, str]:
        key = self.cfg.service_role_key
        return {"apikey": key, "Authorization": f"Bearer {key}", "Content-Type": "application/json"}

    def find_by_email(self, email: str) -> Optional[Identity]:
        """Page over directory users and return the exact (case-sensitive) match."""
        url = f"{self.cfg.auth_admin_url}/users"
        per_page = self.cfg.directory_page_size
        page = 1
        while True:
            try:
                r = self._http.get(
                    url,
                    headers=self._hdr(),
                    params={"page": page, "per_page": per_page},
                    timeout=self.cfg.http_timeout_seconds,
                )
            except requests.RequestException as exc:
                raise DirectoryError(str(exc)) from exc
            if r.status_code != 200:
                raise DirectoryError(_error_message(r))
            body = r.json() or {}
            users = body.get("users") if isinstance(body, dict) else body
            users = users or []
            for u in users:
                if u.get("email") == email:
                    return _to_identity(u)
            if len(users) < per_page:
                return None
            page += 1

    def create(self, email: str, password: str, metadata: dict) -> Identity:
        """Create a confirmed identity; administrative provisioning skips email verification."""
        url = f"{self.cfg.auth_admin_url}/users"
        payload = {
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": dict(metadata or {}),
        }
        try:
            r = self._http.post(url, headers=self._hdr(), json=payload, timeout=self.cfg.http_timeout_seconds)
        except requests.RequestException as exc:
            raise DirectoryError(str(exc)) from exc
        if r.status_code not in (200, 201):
            message = _error_message(r)
            if _is_conflict(r, message):
                logger.info("Identity create conflict for %s", mask_email(email))
                raise IdentityConflictError(message)
            raise DirectoryError(message)
        body = r.json() or {}
        # Older GoTrue versions wrap the user object.
        user = body.get("user") if isinstance(body.get("user"), dict) else body
        if not user.get("id"):
            raise DirectoryError("Identity directory returned no user id")
        return _to_identity(user)


__all__ = ["SupabaseIdentityDirectory", "humanize_identifier"]
