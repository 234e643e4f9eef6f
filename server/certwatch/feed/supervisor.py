"""
Feed Supervisor

Keeps a StreamSession running against the certstream WebSocket forever.
When a session ends the supervisor reconnects immediately. Failed connection
attempts, including the very first one, are retried with exponential
backoff.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlsplit

import websockets
from websockets.exceptions import InvalidURI, WebSocketException

from certwatch.core.types import (
    ConfigurationError,
    FeedConnectionError,
    ReconnectionState,
)
from certwatch.feed.session import StreamSession, Transport
from certwatch.notify.notifier import Notifier
from certwatch.patterns.pattern_set import PatternSet

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Transport]]


def mask_credentials(url: str) -> str:
    """Mask user:password in a WebSocket URL for logging."""
    parts = urlsplit(url)
    if "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[-1]
    return parts._replace(netloc=f"***:***@{host}").geturl()


class Supervisor:
    """
    Owns the connect -> run session -> reconnect loop.

    Args:
        url: certstream WebSocket URL
        patterns: Compiled patterns handed to every session
        notifier: Shared notifier handed to every session
        concurrency_limit: Per-session bound on in-flight messages
        reconnection: Backoff state for failed connection attempts
        max_retries: Consecutive failed attempts allowed before giving up
            (0 = retry forever)
        connector: Opens a transport for a URL; defaults to websockets.connect
    """

    def __init__(
        self,
        url: str,
        patterns: PatternSet,
        notifier: Notifier,
        concurrency_limit: int,
        *,
        reconnection: Optional[ReconnectionState] = None,
        max_retries: int = 0,
        connector: Optional[Connector] = None,
        ping_interval: float = 20.0,
        ping_timeout: float = 20.0,
        close_timeout: float = 5.0,
    ) -> None:
        self._url = url
        self._patterns = patterns
        self._notifier = notifier
        self._concurrency_limit = concurrency_limit
        self._reconnection = reconnection or ReconnectionState()
        self._max_retries = max_retries
        self._connect = connector or self._websocket_connect
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._close_timeout = close_timeout

        self._running = False
        self._stop_event = asyncio.Event()
        self._transport: Optional[Transport] = None
        self._session: Optional[StreamSession] = None

        # Stats
        self._sessions_started = 0
        self._connect_failures = 0
        self._messages_received = 0
        self._matches = 0

    @property
    def safe_url(self) -> str:
        return mask_credentials(self._url)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def sessions_started(self) -> int:
        return self._sessions_started

    async def supervise(self) -> None:
        """
        Run sessions until stop() is called.

        Raises:
            ConfigurationError: If the URL is not a valid WebSocket URL.
            FeedConnectionError: If max_retries is set and exhausted.
            OutputError: If stdout broke while delivering a match.
        """
        self._running = True
        self._stop_event.clear()
        logger.info(
            "Starting feed supervisor",
            extra={
                "url": self.safe_url,
                "patterns": len(self._patterns),
                "concurrency_limit": self._concurrency_limit,
            },
        )

        while self._running:
            transport = await self._connect_with_retry()
            if transport is None:
                break

            self._transport = transport
            session = StreamSession(
                transport,
                self._patterns,
                self._notifier,
                self._concurrency_limit,
            )
            self._session = session
            self._sessions_started += 1

            try:
                closed = await session.run()
            finally:
                self._messages_received += session.stats.messages_received
                self._matches += session.stats.matches
                self._session = None
                self._transport = None
                await self._close_transport(transport)

            if self._running:
                logger.warning(
                    f"Feed session ended, reconnecting: {closed}",
                    extra=session.get_stats(),
                )

        logger.info("Feed supervisor stopped", extra=self.get_stats())

    async def _connect_with_retry(self) -> Optional[Transport]:
        """Connect with exponential backoff retry. Returns None once stopped."""
        while self._running:
            try:
                transport = await self._establish_connection()
            except FeedConnectionError as e:
                if not self._running:
                    return None

                self._connect_failures += 1
                if self._max_retries and self._reconnection.attempt_count >= self._max_retries:
                    logger.error(
                        "Giving up on feed connection",
                        extra={"attempts": self._reconnection.attempt_count + 1},
                    )
                    raise

                delay = self._reconnection.next_delay()
                logger.warning(
                    "Connection failed, retrying",
                    extra={
                        "attempt": self._reconnection.attempt_count,
                        "delay_seconds": delay,
                        "error": str(e),
                    },
                )
                await self._wait_before_retry(delay)
                continue

            # Success - reset reconnection state
            self._reconnection.reset()
            if self._sessions_started > 0:
                logger.info("Reconnected to feed", extra={"url": self.safe_url})
            return transport

        return None

    async def _wait_before_retry(self, delay: float) -> None:
        """Sleep for the backoff delay, waking early if stop() is called."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _establish_connection(self) -> Transport:
        """Single connection attempt."""
        logger.info("Connecting to feed", extra={"url": self.safe_url})

        try:
            transport = await self._connect(self._url)
        except InvalidURI as e:
            raise ConfigurationError(
                f"Invalid feed URL: {self.safe_url}",
            ) from e
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise FeedConnectionError(
                f"Failed to connect: {e}",
                url=self.safe_url,
                retry_count=self._reconnection.attempt_count,
            ) from e

        logger.info("Connected to feed", extra={"url": self.safe_url})
        return transport

    async def _websocket_connect(self, url: str) -> Transport:
        return await websockets.connect(
            url,
            ping_interval=self._ping_interval,
            ping_timeout=self._ping_timeout,
            close_timeout=self._close_timeout,
        )

    async def _close_transport(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as e:
            logger.warning(
                "Error closing WebSocket",
                extra={"error": str(e)},
            )

    async def stop(self) -> None:
        """Stop reconnecting and close the current connection."""
        logger.info("Stopping feed supervisor")
        self._running = False
        self._stop_event.set()
        if self._transport is not None:
            await self._close_transport(self._transport)

    def get_stats(self) -> dict[str, Any]:
        """Get supervisor statistics."""
        session_stats = self._session.get_stats() if self._session else None
        return {
            "running": self._running,
            "sessions_started": self._sessions_started,
            "connect_failures": self._connect_failures,
            "messages_received": self._messages_received
            + (session_stats["messages_received"] if session_stats else 0),
            "matches": self._matches + (session_stats["matches"] if session_stats else 0),
            "reconnect_attempts": self._reconnection.attempt_count,
            "session": session_stats,
        }
