"""
Sink Protocol Definitions

Every notification sink satisfies MatchSink. The Notifier and the stream
session depend only on this protocol.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from certwatch.models.cert import MatchResult


@runtime_checkable
class MatchSink(Protocol):
    """Delivers match notifications to one destination."""

    name: str

    async def send(self, result: MatchResult) -> None:
        """
        Deliver one MatchResult.

        Raises DeliveryError for a recoverable failure, OutputError when the
        destination is permanently broken.
        """
        ...

    async def close(self) -> None:
        """Release any resources held by the sink."""
        ...
