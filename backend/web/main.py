from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.identity_access.tokens import (
    AuthenticationError,
    bearer_token_from_header,
    load_token_config,
    verify_access_token,
)
from backend.scheduling.db import Database
from backend.scheduling.repo_db import DBLessonRepo
from backend.scheduling.repo_memory import InMemoryLessonRepo
from backend.web import config as _cfg
from backend.web.routes.lessons import lessons_router


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via LESSONS_ENABLE_DOTENV (default true outside pytest).
    """
    import sys
    # Under pytest, do not load .env – tests provide their own env.
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("LESSONS_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    from dotenv import load_dotenv

    load_dotenv()

logger = logging.getLogger("lessons.identity_access")
TOKEN_CFG = load_token_config()


# --- Lifespan: storage handle ---------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the storage handle at startup and close it at shutdown.

    The repository lives on ``app.state`` and is passed to every use case by
    reference; nothing reaches for a module-level connection.
    """
    # Minimal production safety checks (fail-fast on insecure config)
    _cfg.ensure_secure_config_on_startup()
    db: Database | None = None
    if getattr(app.state, "lessons_repo", None) is None:
        if _cfg.storage_backend() == "memory":
            logger.warning("Using in-memory lessons repository (LESSONS_STORAGE=memory)")
            app.state.lessons_repo = InMemoryLessonRepo()
        else:
            db = Database().open()
            app.state.lessons_repo = DBLessonRepo(db)
    try:
        yield
    finally:
        if db is not None:
            db.close()
            app.state.lessons_repo = None


app = FastAPI(title="Lessons", description="Lesson scheduling backend", version="0.1.0", lifespan=lifespan)
app.state.lessons_repo = None
app.include_router(lessons_router)


# --- Auth Middleware ----------------------------------------------------------------

_PUBLIC_PATHS = frozenset({"/health", "/openapi.json", "/docs", "/docs/oauth2-redirect", "/redoc"})


def _is_public_path(path: str) -> bool:
    return path in _PUBLIC_PATHS


def _unauthenticated_response(code: str) -> JSONResponse:
    headers = {"Cache-Control": "private, no-store", "WWW-Authenticate": "Bearer"}
    return JSONResponse({"error": "unauthenticated", "detail": code}, status_code=401, headers=headers)


@app.middleware("http")
async def bearer_authentication(request: Request, call_next):
    """Verify the bearer token before any handler runs.

    Behavior:
        - Public paths pass through untouched.
        - Success: attach the frozen ``Principal`` to ``request.state`` and
          forward the same request.
        - Failure: 401 without invoking the next stage.
        - Revoked tokens are not detected (no revocation list yet).
    """
    if _is_public_path(request.url.path):
        return await call_next(request)
    try:
        token = bearer_token_from_header(request.headers.get("authorization"))
        principal = verify_access_token(token=token, cfg=TOKEN_CFG)
    except AuthenticationError as exc:
        logger.info("Rejected unauthenticated request: %s", exc.code)
        return _unauthenticated_response(exc.code)
    request.state.principal = principal
    return await call_next(request)


# --- Security Headers Middleware ----------------------------------------------

@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    # Baseline defensive headers for a JSON API
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


# --- Health & identity ----------------------------------------------------------

@app.get("/health")
async def health():
    return {"status": "healthy"}


@app.get("/api/me")
async def get_me(request: Request):
    """Return the verified caller (account id only; never the raw token)."""
    principal = request.state.principal
    return JSONResponse({"account_id": principal.account_id}, headers={"Cache-Control": "private, no-store"})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "backend.web.main:app",
        host=os.getenv("LESSONS_HOST", "127.0.0.1"),
        port=int(os.getenv("LESSONS_PORT", "8000")),
        reload=_cfg.current_environment() == "dev",
    )
