"""
Bearer token verification for the identity_access bounded context.

Why: Keep cryptographic validation of access tokens outside the web adapter so
we can unit test it independently and swap the signing scheme later on.

Security: Validates the signature with the configured shared secret, enforces
an algorithm whitelist (no ``none``, no algorithm taken from the token),
respects issuer/audience when configured and checks temporal claims with a
small clock skew. Revocation lists are not consulted.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple
import os
import time

from jose import jwt
from jose.exceptions import JOSEError

from .domain import Principal


class AuthenticationError(Exception):
    """Raised when a bearer credential is missing or fails verification."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


DEFAULT_DEV_SECRET = "dev-only-insecure-secret-change-me"
ALLOWED_ALGORITHMS: Tuple[str, ...] = ("HS256",)
MAX_CLOCK_SKEW_SECONDS = 5  # Allow minimal skew between servers


@dataclass(frozen=True)
class TokenConfig:
    secret: str
    issuer: Optional[str] = None
    audience: Optional[str] = None
    algorithms: Tuple[str, ...] = ALLOWED_ALGORITHMS
    account_claim: str = "account_id"


def load_token_config() -> TokenConfig:
    """Read token settings from the environment (LESSONS_JWT_*)."""
    return TokenConfig(
        secret=os.getenv("LESSONS_JWT_SECRET") or DEFAULT_DEV_SECRET,
        issuer=(os.getenv("LESSONS_JWT_ISSUER") or "").strip() or None,
        audience=(os.getenv("LESSONS_JWT_AUDIENCE") or "").strip() or None,
    )


def bearer_token_from_header(value: Optional[str]) -> str:
    """Extract the raw token from an ``Authorization: Bearer <token>`` header."""
    if not value:
        raise AuthenticationError("missing_token")
    scheme, _, token = value.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("missing_token")
    return token.strip()


def verify_access_token(*, token: str, cfg: TokenConfig) -> Principal:
    """Validate an access token and return the authenticated principal.

    Parameters
    ----------
    token:
        The raw JWT string from the Authorization header.
    cfg:
        Secret, optional issuer/audience and the accepted algorithms.

    Raises
    ------
    AuthenticationError:
        When the token is invalid (signature, algorithm, issuer, audience,
        expiry) or carries no account id.
    """
    try:
        header = jwt.get_unverified_header(token)
    except JOSEError as exc:
        raise AuthenticationError("invalid_token") from exc
    if header.get("alg") not in cfg.algorithms:
        raise AuthenticationError("invalid_token")

    try:
        claims = jwt.decode(
            token,
            cfg.secret,
            algorithms=list(cfg.algorithms),
            audience=cfg.audience,
            issuer=cfg.issuer,
            options={
                "verify_signature": True,
                "verify_aud": cfg.audience is not None,
                "verify_iss": cfg.issuer is not None,
                "verify_exp": False,
                "verify_iat": False,
                "verify_nbf": False,
            },
        )
    except JOSEError as exc:
        raise AuthenticationError("invalid_token") from exc

    _validate_temporal_claims(claims)

    account_id = claims.get(cfg.account_claim) or claims.get("sub")
    if not isinstance(account_id, str) or not account_id.strip():
        raise AuthenticationError("missing_account_id")
    return Principal(account_id=account_id, claims=claims)


def issue_access_token(
    account_id: str,
    cfg: TokenConfig,
    *,
    ttl_seconds: int = 3600,
    extra_claims: Mapping[str, object] | None = None,
) -> str:
    """Sign a token for ``account_id`` (development tooling and tests)."""
    now = int(time.time())
    claims: Dict[str, object] = dict(extra_claims or {})
    claims.update({cfg.account_claim: account_id, "iat": now, "exp": now + ttl_seconds})
    if cfg.issuer:
        claims["iss"] = cfg.issuer
    if cfg.audience:
        claims["aud"] = cfg.audience
    return jwt.encode(claims, cfg.secret, algorithm=cfg.algorithms[0])


def _validate_temporal_claims(claims: Dict[str, object]) -> None:
    now = time.time()
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        raise AuthenticationError("invalid_token")
    if exp + MAX_CLOCK_SKEW_SECONDS < now:
        raise AuthenticationError("token_expired")

    iat = claims.get("iat")
    if isinstance(iat, (int, float)):
        if iat - MAX_CLOCK_SKEW_SECONDS > now:
            raise AuthenticationError("invalid_token")

    nbf = claims.get("nbf")
    if isinstance(nbf, (int, float)) and nbf - MAX_CLOCK_SKEW_SECONDS > now:
        raise AuthenticationError("invalid_token")
