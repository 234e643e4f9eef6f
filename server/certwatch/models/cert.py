"""
Certificate Event Models

Transient values that flow through the match pipeline.
All models are frozen dataclasses with __post_init__ validation.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CertificateEvent:
    """
    Domains covered by one newly-issued certificate.

    Domains are kept verbatim and in feed order (no lower-casing,
    no wildcard stripping).
    """

    domains: tuple[str, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.domains, tuple):
            raise TypeError("domains must be a tuple")


@dataclass(frozen=True)
class MatchResult:
    """A domain paired with the source text of every pattern it matched."""

    domain: str
    patterns: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.patterns:
            raise ValueError("MatchResult requires at least one pattern")

    @property
    def summary(self) -> str:
        """Human-readable one-liner: ``domain -> p1, p2``."""
        return f"{self.domain} -> {', '.join(self.patterns)}"

    def to_dict(self) -> dict[str, Any]:
        return {"domain": self.domain, "patterns": list(self.patterns)}
