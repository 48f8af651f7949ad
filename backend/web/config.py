"""
Configuration and startup security checks for the lessons backend.

Why: Prevent accidental insecure deployments. This module provides a single
guard that enforces minimal production safety constraints without burdening
local development.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os

MIN_SECRET_LENGTH = 32


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def current_environment() -> str:
    return (os.getenv("LESSONS_ENV", "dev") or "dev").strip().lower()


def storage_backend() -> str:
    """Return ``db`` (default) or ``memory`` from LESSONS_STORAGE."""
    value = (os.getenv("LESSONS_STORAGE", "db") or "db").strip().lower()
    return value if value in {"db", "memory"} else "db"


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Intent: Abort process startup when obviously insecure settings are detected
    in production/staging. Development remains permissive for convenience.

    Checks:
    - LESSONS_JWT_SECRET must be set, not the development default, and long
      enough for HS256.
    - Database DSNs must not explicitly disable TLS.
    - The in-memory storage backend is not allowed.
    """
    from backend.identity_access.tokens import DEFAULT_DEV_SECRET

    if not _is_prod_like(current_environment()):
        return  # dev/test remain permissive

    # 1) Token signing secret
    secret = (os.getenv("LESSONS_JWT_SECRET", "") or "").strip()
    if not secret or secret == DEFAULT_DEV_SECRET:
        raise SystemExit(
            "Refusing to start: LESSONS_JWT_SECRET is unset or the development default in production."
        )
    if len(secret) < MIN_SECRET_LENGTH:
        raise SystemExit(
            f"Refusing to start: LESSONS_JWT_SECRET must be at least {MIN_SECRET_LENGTH} characters in production."
        )

    # 2) Postgres TLS: basic guard to avoid explicit disable
    for key in ("DATABASE_URL", "LESSONS_DATABASE_URL"):
        dsn = os.getenv(key, "")
        if "sslmode=disable" in dsn:
            raise SystemExit(
                f"Refusing to start: {key} contains sslmode=disable in production. Use sslmode=require or verify TLS."
            )

    # 3) Durable storage only
    if storage_backend() == "memory":
        raise SystemExit("Refusing to start: LESSONS_STORAGE=memory is not allowed in production/staging.")
