"""
Feed Stream Session

Owns one live feed connection. Every inbound frame becomes an independent
task running extract -> match -> notify. A shared semaphore caps the number
of tasks in flight; once the cap is reached, receipt of the next frame
waits for a permit.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, AsyncIterator, Optional, Protocol

from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from certwatch.core.types import ExtractError, OutputError, SessionClosed
from certwatch.feed.extractor import extract
from certwatch.models.cert import MatchResult
from certwatch.notify.notifier import Notifier
from certwatch.patterns.matcher import evaluate
from certwatch.patterns.pattern_set import PatternSet

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """The subset of a websockets client connection used by a session."""

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        ...

    async def close(self) -> None:
        ...


@dataclass
class SessionStats:
    """Statistics for one session."""

    messages_received: int = 0
    messages_skipped: int = 0
    extract_errors: int = 0
    processing_errors: int = 0
    matches: int = 0
    delivery_failures: int = 0
    peak_in_flight: int = 0


class StreamSession:
    """
    One connection's worth of message processing.

    A session is single use: run() may be called once.

    Args:
        transport: Open connection yielding raw frames
        patterns: Compiled patterns, shared read-only
        notifier: Delivers match results
        concurrency_limit: Max tasks in flight; 0 starts a task per
            message with no bound
    """

    def __init__(
        self,
        transport: Transport,
        patterns: PatternSet,
        notifier: Notifier,
        concurrency_limit: int,
    ) -> None:
        if concurrency_limit < 0:
            raise ValueError("concurrency_limit must be >= 0")

        self._transport = transport
        self._patterns = patterns
        self._notifier = notifier
        self._concurrency_limit = concurrency_limit
        self._semaphore: Optional[asyncio.Semaphore] = (
            asyncio.Semaphore(concurrency_limit) if concurrency_limit > 0 else None
        )

        self._in_flight: set[asyncio.Task[None]] = set()
        self._fatal: Optional[OutputError] = None
        self._started = False
        self._stats = SessionStats()

    @property
    def stats(self) -> SessionStats:
        return self._stats

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def run(self) -> SessionClosed:
        """
        Consume the transport until it closes or fails.

        In-flight tasks are awaited before returning, so every started
        notification completes.

        Returns:
            How the connection ended. This is the normal termination.

        Raises:
            OutputError: If stdout broke while delivering a match.
        """
        if self._started:
            raise RuntimeError("StreamSession cannot be reused")
        self._started = True

        try:
            closed = await self._receive_loop()
        except asyncio.CancelledError:
            pending = list(self._in_flight)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            raise

        await self._drain()

        if self._fatal is not None:
            raise self._fatal
        return closed

    async def _receive_loop(self) -> SessionClosed:
        try:
            async for message in self._transport:
                self._stats.messages_received += 1
                await self._dispatch(message)
                if self._fatal is not None:
                    return SessionClosed("Session stopped after output failure")

        except ConnectionClosedError as e:
            code, reason = _close_details(e)
            logger.warning(f"Connection closed: code={code}, reason={reason}")
            return SessionClosed("Connection closed with error", code=code, reason=reason)

        except ConnectionClosed as e:
            code, reason = _close_details(e)
            logger.info(f"Connection closed: code={code}, reason={reason}")
            return SessionClosed("Connection closed", code=code, reason=reason, clean=True)

        except OSError as e:
            logger.warning(
                "Transport failed",
                extra={"error": str(e)},
            )
            return SessionClosed(f"Transport failed: {e}")

        return SessionClosed("Feed stream ended", clean=True)

    async def _dispatch(self, message: str | bytes) -> None:
        if self._semaphore is not None:
            await self._semaphore.acquire()

        task = asyncio.create_task(self._process(message))
        self._in_flight.add(task)
        task.add_done_callback(self._on_task_done)

        if len(self._in_flight) > self._stats.peak_in_flight:
            self._stats.peak_in_flight = len(self._in_flight)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._in_flight.discard(task)
        if self._semaphore is not None:
            self._semaphore.release()

    async def _drain(self) -> None:
        if self._in_flight:
            logger.debug(f"Waiting for {len(self._in_flight)} in-flight messages")
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def _process(self, message: str | bytes) -> None:
        """Extract, match and notify for one frame. Never raises."""
        try:
            event = extract(message)
            results = evaluate(event, self._patterns) if event is not None else None

        except ExtractError as e:
            self._stats.extract_errors += 1
            logger.warning(
                f"Skipping malformed message: {e}",
                extra={"message_preview": str(message)[:200]},
            )
            return

        except Exception as e:
            self._stats.processing_errors += 1
            logger.error(
                "Unexpected error processing message",
                extra={"error": str(e)},
                exc_info=True,
            )
            return

        if results is None:
            self._stats.messages_skipped += 1
            logger.debug("Ignoring non-certificate message")
            return

        for result in results:
            self._stats.matches += 1
            if not await self._deliver(result):
                break

    async def _deliver(self, result: MatchResult) -> bool:
        """Notify for one match. Returns False once output is broken."""
        try:
            failures = await self._notifier.deliver(result)

        except OutputError as e:
            if self._fatal is None:
                self._fatal = e
                logger.error(f"Output failed, stopping session: {e}")
                await self._close_transport()
            return False

        except Exception as e:
            self._stats.processing_errors += 1
            logger.error(
                "Unexpected error delivering match",
                extra={"domain": result.domain, "error": str(e)},
                exc_info=True,
            )
            return True

        for failure in failures:
            self._stats.delivery_failures += 1
            logger.warning(
                f"Notification failed: {failure}",
                extra={"domain": result.domain, "sink": failure.sink},
            )
        return True

    async def _close_transport(self) -> None:
        try:
            await self._transport.close()
        except Exception as e:
            logger.warning(
                "Error closing transport",
                extra={"error": str(e)},
            )

    def get_stats(self) -> dict[str, Any]:
        stats = asdict(self._stats)
        stats["in_flight"] = len(self._in_flight)
        return stats


def _close_details(e: ConnectionClosed) -> tuple[Optional[int], str]:
    frame = e.rcvd or e.sent
    if frame is None:
        return None, ""
    return frame.code, frame.reason
