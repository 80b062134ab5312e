from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from backend.storage.errors import StorageUnavailable
from backend.web import config as _cfg
from backend.web.guard import Outcome, evaluate, is_public_path
from backend.web.wiring import build_context


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out/opt-in via HARIAN_ENABLE_DOTENV (default true
      outside pytest).
    """
    import sys
    # Under pytest, do not load .env – tests provide their own env.
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("HARIAN_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


try:
    from dotenv import load_dotenv
    if _should_load_dotenv():
        load_dotenv()
except ImportError:
    pass

# Minimal production safety checks (fail-fast on insecure config)
_cfg.ensure_secure_config_on_startup()

# --- App & Settings Setup -------------------------------------------------------

class AuthSettings:
    def __init__(self) -> None:
        self._env_override: str | None = None

    @property
    def environment(self) -> str:
        if self._env_override is not None:
            return self._env_override
        return os.getenv("HARIAN_ENV", "dev").lower()

    def override_environment(self, env: str | None) -> None:
        """Override environment for tests (e.g., "prod"), or reset with None."""
        self._env_override = env


logger = logging.getLogger("harian.web")
SETTINGS = AuthSettings()
SESSION_COOKIE_NAME = "harian_session"
_PRIVATE = {"Cache-Control": "private, no-store"}

app = FastAPI(title="Harian", description="Jurnal kegiatan harian siswa", version="0.1.0")
app.state.ctx = build_context()

from backend.web.routes.directory import directory_router
from backend.web.routes.journal import journal_router
from backend.web.routes.me import me_router
from backend.web.routes.pages import pages_router
from backend.web.routes.students import students_router

# --- Route Guard Middleware -----------------------------------------------------

@app.middleware("http")
async def route_guard(request: Request, call_next):
    """Resolve the actor and apply the route guard before any handler runs.

    Storage failures while resolving the actor surface as 500; they are never
    turned into a redirect or a 403.
    """
    path = request.url.path
    if is_public_path(path):
        return await call_next(request)

    ctx = request.app.state.ctx
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    actor = None
    try:
        rec = ctx.sessions.get(sid) if sid else None
        if rec:
            actor = ctx.directory.resolve(rec.sub)
    except StorageUnavailable as exc:
        logger.warning("actor resolution failed: %s", exc.cause_name or exc.code)
        return JSONResponse({"error": exc.code}, status_code=500, headers=_PRIVATE)

    outcome = evaluate(
        path,
        actor,
        authenticated=rec is not None,
        htmx="HX-Request" in request.headers,
        query=request.url.query,
    )
    if outcome.outcome is Outcome.REJECT:
        if outcome.hx_redirect:
            # Security: prevent intermediaries from caching unauthenticated HTMX responses
            return Response(
                status_code=outcome.status,
                headers={"HX-Redirect": outcome.hx_redirect, "Vary": "HX-Request", **_PRIVATE},
            )
        if outcome.status == 403:
            logger.info("guard rejected api request: %s", outcome.error)
        return JSONResponse({"error": outcome.error}, status_code=outcome.status, headers=_PRIVATE)
    if outcome.outcome is Outcome.REDIRECT:
        if actor is not None and actor.is_known and path != "/":
            logger.info("guard redirected page request to %s", outcome.location)
        return RedirectResponse(url=outcome.location, status_code=302, headers=_PRIVATE)

    request.state.actor = actor
    return await call_next(request)

# --- Security Headers Middleware ----------------------------------------------

@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("Content-Security-Policy", "default-src 'self'")
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    if SETTINGS.environment == "prod":
        response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


@app.exception_handler(StorageUnavailable)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    logger.warning("storage unavailable during %s %s", request.method, request.url.path)
    return JSONResponse({"error": exc.code}, status_code=500, headers=_PRIVATE)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    # Log the class only; messages may carry row data or DSNs.
    logger.error("unexpected error during %s %s: %s", request.method, request.url.path, type(exc).__name__)
    return JSONResponse({"error": "internal_error"}, status_code=500, headers=_PRIVATE)


app.include_router(me_router)
app.include_router(journal_router)
app.include_router(students_router)
app.include_router(directory_router)
app.include_router(pages_router)


@app.get("/health")
async def health_check():
    # Minimal health endpoint used by orchestrators and tests.
    # Security: include no-store to avoid caching any runtime status.
    return JSONResponse({"status": "healthy"}, headers=_PRIVATE)
