"""
Identity domain types.

Why:
- The authenticated caller is built once per request by the middleware and
  then only read. A frozen dataclass with a read-only claims mapping keeps it
  immutable while it travels through handlers and services.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class Principal:
    """Verified caller: the account id plus the full verified claim payload."""

    account_id: str
    claims: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "claims", MappingProxyType(dict(self.claims)))


__all__ = ["Principal"]
