"""
Notifier

Fans each MatchResult out to every configured sink. Sinks are independent:
a failing sink never stops the others from running.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from certwatch.core.types import DeliveryError, OutputError
from certwatch.models.cert import MatchResult
from certwatch.notify.interface import MatchSink

logger = logging.getLogger(__name__)


@dataclass
class NotifierStats:
    """Statistics for the notifier."""

    results_delivered: int = 0
    delivery_failures: int = 0


class Notifier:
    """Delivers match results to all sinks."""

    def __init__(self, sinks: Iterable[MatchSink]) -> None:
        self._sinks = list(sinks)
        if not self._sinks:
            raise ValueError("Notifier needs at least one sink")
        self._stats = NotifierStats()

    @property
    def sinks(self) -> list[MatchSink]:
        return list(self._sinks)

    @property
    def stats(self) -> NotifierStats:
        return self._stats

    async def deliver(self, result: MatchResult) -> list[DeliveryError]:
        """
        Send one MatchResult to every sink.

        Returns:
            Recoverable failures, one per failed sink (empty on success).

        Raises:
            OutputError: After all sinks have run, if a sink reported its
                destination as permanently broken.
        """
        failures: list[DeliveryError] = []
        fatal: Optional[OutputError] = None

        for sink in self._sinks:
            try:
                await sink.send(result)
            except DeliveryError as e:
                failures.append(e)
            except OutputError as e:
                fatal = e
            except Exception as e:
                logger.error(
                    "Sink raised unexpectedly",
                    extra={"sink": sink.name, "error": str(e)},
                    exc_info=True,
                )
                failures.append(
                    DeliveryError(f"Sink raised unexpectedly: {e!r}", sink=sink.name)
                )

        self._stats.results_delivered += 1
        self._stats.delivery_failures += len(failures)

        if fatal is not None:
            raise fatal
        return failures

    async def close(self) -> None:
        for sink in self._sinks:
            try:
                await sink.close()
            except Exception as e:
                logger.warning(
                    "Error closing sink",
                    extra={"sink": sink.name, "error": str(e)},
                )
