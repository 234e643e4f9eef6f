"""
certwatch Core Utilities

Exceptions and reconnection state shared by every component.
"""
from certwatch.core.types import (
    CertWatchError,
    CompileError,
    ConfigurationError,
    DeliveryError,
    ExtractError,
    FeedConnectionError,
    OutputError,
    PatternFileError,
    ReconnectionState,
    SessionClosed,
)

__all__ = [
    "CertWatchError",
    "CompileError",
    "ConfigurationError",
    "DeliveryError",
    "ExtractError",
    "FeedConnectionError",
    "OutputError",
    "PatternFileError",
    "ReconnectionState",
    "SessionClosed",
]
