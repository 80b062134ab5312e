"""Shared helpers for the JSON routes (private responses, actor access, CSRF)."""
from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from backend.identity_access.domain import Actor
from .security import _is_same_origin


def _json_private(payload, *, status_code: int = 200) -> JSONResponse:
    """Return a JSONResponse with cache disabled for shared caches and browsers.

    Every API response here is actor-scoped; respond with "private, no-store".
    """
    return JSONResponse(content=payload, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _private_error(error: str, *, status_code: int, **extra) -> JSONResponse:
    body = {"error": error}
    body.update({k: v for k, v in extra.items() if v is not None})
    return _json_private(body, status_code=status_code)


def _ctx(request: Request):
    return request.app.state.ctx


def _actor(request: Request) -> Actor | None:
    return getattr(request.state, "actor", None)


def _csrf_guard(request: Request) -> JSONResponse | None:
    """Reject cross-origin writes; requests without Origin/Referer pass."""
    if not _is_same_origin(request):
        return _private_error("csrf_violation", status_code=403)
    return None


def _map_domain_error(exc: Exception) -> JSONResponse:
    """Map built-in domain exceptions onto the error contract."""
    if isinstance(exc, PermissionError):
        return _private_error(str(exc) or "forbidden", status_code=403)
    if isinstance(exc, LookupError):
        return _private_error("not_found", status_code=404, detail=str(exc) or None)
    return _private_error("bad_request", status_code=400, detail=str(exc) or None)
