"""
Route guard: the per-request allow / redirect / reject decision.

Why:
    Keep the request-entry decision a pure function of (path, actor, request
    shape) so it can be tested exhaustively without HTTP. The FastAPI
    middleware in `main.py` resolves the actor and maps the outcome onto a
    response.

States:
    - Unauthenticated: public routes pass; API routes get 401; HTMX requests
      get 401 with `HX-Redirect`; pages redirect to the login page.
    - Resolved UNKNOWN: quarantine page only (it allows itself); API gets 403.
    - Resolved known role: route requirement checked via `can_enter`; pages
      redirect to the actor's own landing route on denial, API gets 403.

Route prefixes match on segment boundaries: `/guru` never matches
`/guruwali` or `/gurux`.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import quote

from backend.identity_access.domain import Actor, Role
from backend.scoping.policy import RouteRequirement, can_enter

LOGIN_PATH = "/login"
QUARANTINE_PATH = "/unknown"

PUBLIC_PREFIXES: tuple[str, ...] = ("/login", "/auth", "/health", "/static", "/favicon.ico", "/tos", "/error")

_STAFF = RouteRequirement(roles=frozenset({Role.ADMIN, Role.TEACHER}), supervision=True)

# Page routes. Order is irrelevant because matching is boundary-exact.
PAGE_ROUTES: tuple[tuple[str, RouteRequirement], ...] = (
    ("/dashboard", RouteRequirement(roles=frozenset({Role.ADMIN, Role.TEACHER}))),
    ("/guru", RouteRequirement(roles=frozenset({Role.TEACHER}), supervision=True)),
    ("/guruwali", RouteRequirement(supervision=True)),
    ("/siswa", RouteRequirement(roles=frozenset({Role.STUDENT}))),
    ("/orangtua", RouteRequirement(roles=frozenset({Role.PARENT}))),
)

# API routes with a role requirement beyond "known actor". Everything else
# under /api is checked per resource by the handlers.
API_ROUTES: tuple[tuple[str, RouteRequirement], ...] = (
    ("/api/admin", RouteRequirement(roles=frozenset({Role.ADMIN}))),
    ("/api/reports", _STAFF),
    ("/api/parent", RouteRequirement(roles=frozenset({Role.PARENT}))),
)

_BLOCKED_REDIRECT_PREFIXES = ("/api", "/auth", "/login", "/signup")


class Outcome(str, Enum):
    ALLOW = "allow"
    REDIRECT = "redirect"
    REJECT = "reject"


@dataclass(frozen=True)
class GuardOutcome:
    outcome: Outcome
    location: Optional[str] = None
    status: Optional[int] = None
    error: Optional[str] = None
    hx_redirect: Optional[str] = None

    @classmethod
    def allow(cls) -> "GuardOutcome":
        return cls(Outcome.ALLOW)

    @classmethod
    def redirect(cls, location: str) -> "GuardOutcome":
        return cls(Outcome.REDIRECT, location=location, status=302)

    @classmethod
    def reject(cls, status: int, error: str, *, hx_redirect: Optional[str] = None) -> "GuardOutcome":
        return cls(Outcome.REJECT, status=status, error=error, hx_redirect=hx_redirect)


def matches_prefix(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def is_public_path(path: str) -> bool:
    return any(matches_prefix(path, p) for p in PUBLIC_PREFIXES)


def is_api_path(path: str) -> bool:
    return matches_prefix(path, "/api")


def requirement_for(path: str) -> Optional[RouteRequirement]:
    table = API_ROUTES if is_api_path(path) else PAGE_ROUTES
    for prefix, requirement in table:
        if matches_prefix(path, prefix):
            return requirement
    return None


def landing_for(actor: Actor) -> str:
    """Deterministic landing route; supervision outranks plain teaching."""
    if actor.role is Role.ADMIN:
        return "/dashboard"
    if actor.role is Role.STUDENT:
        return "/siswa"
    if actor.can_supervise:
        return "/guruwali"
    if actor.role is Role.TEACHER:
        return "/guru"
    if actor.role is Role.PARENT:
        return "/orangtua"
    return QUARANTINE_PATH


def sanitize_redirect_path(value: object) -> Optional[str]:
    """Return a safe same-site path for post-login redirects, else None."""
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate.startswith("/") or candidate.startswith("//") or "\\" in candidate:
        return None
    path_only = candidate.split("?", 1)[0].split("#", 1)[0]
    if any(matches_prefix(path_only, p) for p in _BLOCKED_REDIRECT_PREFIXES):
        return None
    return candidate


def login_location(path: str, query: str = "") -> str:
    if path == "/":
        return LOGIN_PATH
    origin = sanitize_redirect_path(f"{path}?{query}" if query else path)
    if not origin:
        return LOGIN_PATH
    return f"{LOGIN_PATH}?origin={quote(origin, safe='')}"


def evaluate(
    path: str,
    actor: Optional[Actor],
    *,
    authenticated: bool,
    api: Optional[bool] = None,
    htmx: bool = False,
    query: str = "",
) -> GuardOutcome:
    api = is_api_path(path) if api is None else api
    if is_public_path(path):
        return GuardOutcome.allow()

    if not authenticated or actor is None:
        if api:
            return GuardOutcome.reject(401, "unauthenticated")
        location = login_location(path, query)
        if htmx:
            return GuardOutcome.reject(401, "unauthenticated", hx_redirect=location)
        return GuardOutcome.redirect(location)

    if not actor.is_known:
        if api:
            return GuardOutcome.reject(403, "profile_unresolved")
        if matches_prefix(path, QUARANTINE_PATH):
            return GuardOutcome.allow()
        return GuardOutcome.redirect(QUARANTINE_PATH)

    if not api and (path == "/" or matches_prefix(path, QUARANTINE_PATH)):
        return GuardOutcome.redirect(landing_for(actor))

    requirement = requirement_for(path)
    if requirement is None or can_enter(actor, requirement):
        return GuardOutcome.allow()
    if api:
        return GuardOutcome.reject(403, "forbidden")
    return GuardOutcome.redirect(landing_for(actor))


__all__ = [
    "LOGIN_PATH",
    "QUARANTINE_PATH",
    "PUBLIC_PREFIXES",
    "PAGE_ROUTES",
    "API_ROUTES",
    "Outcome",
    "GuardOutcome",
    "matches_prefix",
    "is_public_path",
    "is_api_path",
    "requirement_for",
    "landing_for",
    "sanitize_redirect_path",
    "login_location",
    "evaluate",
]
