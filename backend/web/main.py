"CAMPUS accounts"
from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from backend.identity_access.tokens import AccessTokenVerificationError, bearer_token, verify_access_token
from backend.web import config as _cfg
from backend.web.routes.accounts import accounts_router


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via CAMPUS_ENABLE_DOTENV (default true outside pytest).
    """
    import sys
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("CAMPUS_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    from dotenv import load_dotenv

    load_dotenv()

# Minimal production safety checks (fail-fast on insecure config)
_cfg.ensure_secure_config_on_startup()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("campus.web")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

app = FastAPI(title="CAMPUS accounts", description="Account provisioning for college administration", version="0.1.0")
app.include_router(accounts_router)


@app.get("/health")
async def health():
    return {"status": "ok"}


def _is_protected_path(path: str) -> bool:
    return path.startswith(("/functions/", "/api/"))


# --- Auth Middleware ------------------------------------------------------------


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    """Require a valid Supabase bearer token when a JWT secret is configured."""
    secret = (os.getenv("SUPABASE_JWT_SECRET") or "").strip()
    if not secret or request.method == "OPTIONS" or not _is_protected_path(request.url.path):
        return await call_next(request)
    try:
        token = bearer_token(request.headers.get("authorization"))
    except AccessTokenVerificationError:
        return JSONResponse({"error": "unauthenticated"}, status_code=401, headers={"Cache-Control": "private, no-store"})
    try:
        claims = verify_access_token(token=token, secret=secret)
    except AccessTokenVerificationError as exc:
        logger.warning("Access token verification failed: %s", exc.code)
        return JSONResponse({"error": "invalid_token"}, status_code=401, headers={"Cache-Control": "private, no-store"})
    # Expose minimal, read-only caller context for downstream handlers.
    request.state.user = {"sub": claims.get("sub"), "role": claims.get("role")}
    return await call_next(request)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    # JSON-only API: never sniffed, framed or referred.
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    if _cfg.current_environment() in {"prod", "production"}:
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


# --- CORS Middleware ------------------------------------------------------------
# Registered last so it runs first: pre-flight requests never reach auth or storage.


@app.middleware("http")
async def cors(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    response = await call_next(request)
    for key, value in CORS_HEADERS.items():
        response.headers[key] = value
    return response
