"""
Accounts API routes — provision login identities for student/faculty records.

Why:
    Administrators create a student or faculty row first and give it a login
    afterwards. The provisioning endpoint keeps the request/response contract
    of the hosted function the admin UI already invokes (`create-user`), so
    the UI can call either deployment.

Contract:
    POST /functions/v1/create-user (alias POST /api/accounts/provision)
        200 { success, userId, message } | 400 { error }
    GET /api/accounts/{role}
        200 [ { id, fullName, email, status, userId, linked } ] | 400 { error }
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from backend.identity_access.domain import MalformedRequestError, PROVISIONABLE_ROLES, mask_email
from backend.identity_access.provisioning import ProvisioningError
from backend.web.provisioning_wiring import get_provisioner

logger = logging.getLogger("campus.web.accounts")

accounts_router = APIRouter(tags=["Accounts"])

MISSING_FIELDS = "Missing required fields"


class ProvisionPayload(BaseModel):
    # Accept missing/empty values and validate in the handler to return 400
    model_config = ConfigDict(populate_by_name=True)

    email: str | None = None
    password: str | None = None
    full_name: str | None = Field(default=None, alias="fullName")
    role: str | None = None
    record_id: str | None = Field(default=None, alias="recordId")


def _json_private(body: Any, *, status_code: int = 200) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _error(message: str) -> JSONResponse:
    return _json_private({"error": message}, status_code=400)


def parse_provision_payload(raw: Any) -> ProvisionPayload:
    """Validate the request body shape; raise MalformedRequestError on any gap."""
    if not isinstance(raw, dict):
        raise MalformedRequestError("Request body must be a JSON object")
    try:
        payload = ProvisionPayload.model_validate(raw)
    except ValidationError as exc:
        first = (exc.errors() or [{}])[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "body"
        raise MalformedRequestError(f"{field}: {first.get('msg', 'invalid value')}") from exc
    if not all((payload.email, payload.password, payload.full_name, payload.role, payload.record_id)):
        raise MalformedRequestError(MISSING_FIELDS)
    if payload.role not in PROVISIONABLE_ROLES:
        raise MalformedRequestError(f"Invalid role: {payload.role}")
    return payload


async def _provision(request: Request) -> JSONResponse:
    try:
        raw = await request.json()
    except ValueError as exc:
        return _error(str(exc) or "Invalid JSON body")
    try:
        payload = parse_provision_payload(raw)
    except MalformedRequestError as exc:
        return _error(str(exc))

    try:
        provisioner = get_provisioner()
    except (RuntimeError, ValueError) as exc:
        logger.warning("Provisioner unavailable: %s: %s", exc.__class__.__name__, exc)
        return _error(str(exc))

    logger.info("Provisioning %s account for %s", payload.role, mask_email(payload.email or ""))
    try:
        result = await asyncio.to_thread(
            provisioner.provision,
            email=payload.email,
            password=payload.password,
            display_name=payload.full_name,
            role=payload.role,
            domain_record_id=payload.record_id,
        )
    except (ProvisioningError, MalformedRequestError) as exc:
        return _error(str(exc))
    return _json_private({"success": True, "userId": result.identity_id, "message": result.message})


@accounts_router.post("/functions/v1/create-user")
async def create_user(request: Request):
    """Create or link a login for a student/faculty record.

    Behavior:
        - 200 with `{success, userId, message}`; `message` tells whether a new
          identity was created or an existing one was linked.
        - 400 with `{error}` carrying the failing step's message verbatim.

    Permissions:
        Bearer token required only when `SUPABASE_JWT_SECRET` is configured
        (enforced by middleware).
    """
    return await _provision(request)


@accounts_router.post("/api/accounts/provision")
async def provision_account(request: Request):
    """Alias of `/functions/v1/create-user` under the app's API prefix."""
    return await _provision(request)


def _serialize_record(rec) -> dict:
    return {
        "id": rec.record_id,
        "fullName": rec.full_name,
        "email": rec.email,
        "status": rec.status,
        "userId": rec.identity_id,
        "linked": bool(rec.identity_id),
    }


@accounts_router.get("/api/accounts/{role}")
async def list_accounts(request: Request, role: str):
    """List student or faculty records with their login linkage, newest first."""
    if role not in PROVISIONABLE_ROLES:
        return _error(f"Invalid role: {role}")
    try:
        provisioner = get_provisioner()
        records = await asyncio.to_thread(provisioner.list_accounts, role)
    except Exception as exc:
        logger.warning("list_accounts failed role=%s err=%s", role, exc.__class__.__name__)
        return _error(str(exc))
    return _json_private([_serialize_record(r) for r in records])


__all__ = ["accounts_router", "parse_provision_payload", "ProvisionPayload"]
