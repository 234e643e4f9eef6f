"""
certwatch Data Models

Frozen dataclasses passed between pipeline stages.
"""
from certwatch.models.cert import CertificateEvent, MatchResult

__all__ = [
    "CertificateEvent",
    "MatchResult",
]
