"""
Core Type Definitions and Exceptions

Service-wide exceptions, the session termination value and the reconnection
backoff state.
Setup errors abort before the feed loop starts; per-message and delivery
errors are logged where they happen and never tear down a session.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any, Optional


class CertWatchError(Exception):
    """Base exception for all certwatch errors."""

    def __init__(
        self,
        message: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class ConfigurationError(CertWatchError):
    """Raised when required configuration is missing or invalid."""


class PatternFileError(CertWatchError):
    """Raised when the pattern file cannot be read or holds no patterns."""

    def __init__(
        self,
        message: str,
        path: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        ctx["path"] = path
        super().__init__(message, ctx)
        self.path = path


class CompileError(CertWatchError):
    """Raised when a pattern is not a valid regular expression."""

    def __init__(
        self,
        message: str,
        pattern: str,
        line_number: int,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        ctx["pattern"] = repr(pattern)
        ctx["line"] = line_number
        super().__init__(message, ctx)
        self.pattern = pattern
        self.line_number = line_number


class ExtractError(CertWatchError):
    """Raised when a feed message does not have the expected structure."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        if field:
            ctx["field"] = field
        if value is not None:
            ctx["value"] = repr(value)[:100]  # Truncate long values
        super().__init__(message, ctx)
        self.field = field
        self.value = value


class FeedConnectionError(CertWatchError):
    """Raised when the upstream feed connection cannot be established."""

    def __init__(
        self,
        message: str,
        url: str,
        retry_count: int = 0,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        ctx["url"] = url
        ctx["retry_count"] = retry_count
        super().__init__(message, ctx)
        self.url = url
        self.retry_count = retry_count


class DeliveryError(CertWatchError):
    """Raised by a sink when a notification could not be delivered."""

    def __init__(
        self,
        message: str,
        sink: str,
        status: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        ctx["sink"] = sink
        if status is not None:
            ctx["status"] = status
        super().__init__(message, ctx)
        self.sink = sink
        self.status = status


class OutputError(CertWatchError):
    """Raised when standard output can no longer be written to.

    stdout is the operator's monitoring channel, so this is fatal.
    """


@dataclass(frozen=True)
class SessionClosed:
    """Describes how a feed session ended. A result value, not an error."""

    message: str
    code: Optional[int] = None
    reason: str = ""
    clean: bool = False

    def __str__(self) -> str:
        details = []
        if self.code is not None:
            details.append(f"code={self.code}")
        if self.reason:
            details.append(f"reason={self.reason}")
        if details:
            return f"{self.message} [{', '.join(details)}]"
        return self.message


@dataclass
class ReconnectionState:
    """Tracks reconnection attempts for exponential backoff."""

    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    multiplier: float = 2.0
    jitter_factor: float = 0.1
    current_delay: float = field(default=1.0, init=False)
    attempt_count: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        self.current_delay = self.initial_delay_seconds

    def next_delay(self) -> float:
        """Calculate next delay with exponential backoff and jitter."""
        delay = self.current_delay

        # Apply jitter (+/- jitter_factor)
        jitter = delay * self.jitter_factor
        delay = delay + random.uniform(-jitter, jitter)

        # Update for next attempt
        self.current_delay = min(
            self.current_delay * self.multiplier,
            self.max_delay_seconds,
        )
        self.attempt_count += 1

        return max(0.1, delay)  # Minimum 100ms

    def reset(self) -> None:
        """Reset state after successful connection."""
        self.current_delay = self.initial_delay_seconds
        self.attempt_count = 0
