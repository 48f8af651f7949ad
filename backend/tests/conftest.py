"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors).
"""
import sys
from pathlib import Path
import pytest

# Ensure the repo root (for `backend.*`) and the tests dir (for `utils.*`) are importable
REPO_ROOT = Path(__file__).resolve().parents[2]
TESTS_DIR = REPO_ROOT / "backend" / "tests"
for p in (str(REPO_ROOT), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)

TEST_JWT_SECRET = "test-only-secret-0123456789abcdef0123456789"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Keep env-driven behavior deterministic per test.

    Why:
        Config guard tests opt into prod semantics; a leftover LESSONS_ENV or
        storage toggle would leak into unrelated tests in a full run.
    """
    for var in ("LESSONS_ENV", "LESSONS_STORAGE", "LESSONS_JWT_ISSUER", "LESSONS_JWT_AUDIENCE"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("LESSONS_JWT_SECRET", TEST_JWT_SECRET)
    yield


@pytest.fixture(autouse=True)
def _reset_app_state(monkeypatch: pytest.MonkeyPatch):
    """Give every test a fresh in-memory repository and the test token config.

    Why:
        API tests share `main.app`; without a reset, lessons and grants leak
        across tests. Tests needing another repo assign it explicitly.
    """
    from backend.web import main  # type: ignore
    from backend.identity_access.tokens import TokenConfig
    from backend.scheduling.repo_memory import InMemoryLessonRepo

    monkeypatch.setattr(main, "TOKEN_CFG", TokenConfig(secret=TEST_JWT_SECRET), raising=False)
    main.app.state.lessons_repo = InMemoryLessonRepo()
    yield
    main.app.state.lessons_repo = None
