"""
Standard Output Sink

Writes match lines to stdout, the operator's monitoring channel.
Lines are flushed as soon as they are written so `tail -f` style
consumers see matches immediately.
"""
from __future__ import annotations

import json
import sys
from typing import Optional, TextIO

from certwatch.core.types import OutputError
from certwatch.models.cert import MatchResult

OUTPUT_MODES = ("pattern", "domain", "json")


def format_lines(result: MatchResult, mode: str) -> list[str]:
    """
    Render a MatchResult as output lines.

    Modes:
        pattern: one ``<pattern> -> <domain>`` line per matched pattern
        domain:  one ``<domain> -> <p1>, <p2>`` line
        json:    one ``{"domain": ..., "patterns": [...]}`` line
    """
    if mode == "pattern":
        return [f"{pattern} -> {result.domain}" for pattern in result.patterns]
    if mode == "domain":
        return [result.summary]
    if mode == "json":
        return [json.dumps(result.to_dict())]
    raise ValueError(f"Unsupported output mode: {mode}")


class StdoutSink:
    """Sink that prints matches. A failed write is fatal."""

    name = "stdout"

    def __init__(self, mode: str = "pattern", stream: Optional[TextIO] = None) -> None:
        if mode not in OUTPUT_MODES:
            raise ValueError(f"Unsupported output mode: {mode}")
        self._mode = mode
        self._stream = stream

    @property
    def mode(self) -> str:
        return self._mode

    async def send(self, result: MatchResult) -> None:
        # Resolved per call so pytest's capsys and redirected stdout are honoured.
        stream = self._stream if self._stream is not None else sys.stdout
        text = "".join(f"{line}\n" for line in format_lines(result, self._mode))
        try:
            stream.write(text)
            stream.flush()
        except (OSError, ValueError) as e:
            raise OutputError(f"Cannot write to stdout: {e}") from e

    async def close(self) -> None:
        return None
