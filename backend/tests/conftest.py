"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors).
Every test gets a fresh in-memory application context so sessions, records,
the submission window and the actor cache never leak between cases.
"""
import sys
from pathlib import Path
import pytest

# Ensure the repository root is importable so `backend.*` resolves
REPO_ROOT = Path(__file__).resolve().parents[2]
TESTS_DIR = REPO_ROOT / "backend" / "tests"
for p in (str(REPO_ROOT), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)


_HARIAN_TOGGLES = (
    "HARIAN_ENV",
    "HARIAN_STORE_BACKEND",
    "HARIAN_ALIASES_FILE",
    "HARIAN_UTC_OFFSET",
    "HARIAN_TRUST_PROXY",
    "HARIAN_ACTOR_CACHE_TTL_SECONDS",
    "HARIAN_AUTO_BOOTSTRAP_SCHEMA",
    "HARIAN_DIRECTORY_DSN",
    "HARIAN_DATABASE_URL",
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_harian_toggles(monkeypatch: pytest.MonkeyPatch):
    """Start every test from the development defaults.

    Why:
        Startup checks and wiring read HARIAN_* variables. A developer shell
        with e.g. HARIAN_ENV=prod exported must not change test outcomes.
    """
    for name in _HARIAN_TOGGLES:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_app_context():
    """Swap a fresh in-memory context into the app for each test.

    Behavior:
        - Imports `backend.web.main` lazily (pure unit tests never need it
          loaded, but it is cheap once cached).
        - Restores the previous context afterwards so module state stays sane.
    """
    from backend.web import main
    from backend.web.wiring import build_memory_context

    previous = main.app.state.ctx
    main.app.state.ctx = build_memory_context(cache_ttl_seconds=0)
    try:
        yield main.app.state.ctx
    finally:
        main.app.state.ctx = previous


@pytest.fixture
def app_ctx(_reset_app_context):
    """The in-memory context installed for the current test."""
    return _reset_app_context


@pytest.fixture
def login(app_ctx):
    """Create a session for `user_id` and return the cookie mapping."""
    from backend.web.main import SESSION_COOKIE_NAME

    def _login(user_id: str) -> dict[str, str]:
        rec = app_ctx.sessions.create(sub=user_id)
        return {SESSION_COOKIE_NAME: rec.session_id}

    return _login

