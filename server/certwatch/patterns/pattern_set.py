"""
Pattern Set

Compiles the pattern file into an immutable, ordered set of regular
expressions. The set is built once at startup and shared read-only by every
concurrent match task.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Union

from certwatch.core.types import CompileError, PatternFileError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pattern:
    """One compiled pattern. ``index`` is its position in the set."""

    index: int
    source: str
    regex: re.Pattern[str]

    def matches(self, domain: str) -> bool:
        # Unanchored search: the pattern text decides any anchoring.
        return self.regex.search(domain) is not None


class PatternSet:
    """
    Ordered, immutable collection of compiled patterns.

    Construct with PatternSet.compile() or load_patterns(). match_all() is
    side-effect free and needs no locking.
    """

    __slots__ = ("_patterns",)

    def __init__(self, patterns: Iterable[Pattern]) -> None:
        self._patterns: tuple[Pattern, ...] = tuple(patterns)

    @classmethod
    def compile(cls, lines: Iterable[str]) -> PatternSet:
        """
        Compile every line into a pattern.

        Fails atomically: the first invalid line raises CompileError and no
        partial set is returned.

        Raises:
            CompileError: If any line is not a valid regular expression.
        """
        compiled: list[Pattern] = []
        for index, line in enumerate(lines):
            try:
                regex = re.compile(line)
            except re.error as e:
                raise CompileError(
                    f"Invalid pattern: {e.msg}",
                    pattern=line,
                    line_number=index + 1,
                ) from e
            compiled.append(Pattern(index=index, source=line, regex=regex))
        return cls(compiled)

    def match_all(self, domain: str) -> tuple[str, ...]:
        """Return the source text of every pattern matching ``domain``, in declaration order."""
        return tuple(p.source for p in self._patterns if p.matches(domain))

    @property
    def sources(self) -> tuple[str, ...]:
        return tuple(p.source for p in self._patterns)

    def __len__(self) -> int:
        return len(self._patterns)

    def __iter__(self) -> Iterator[Pattern]:
        return iter(self._patterns)

    def __repr__(self) -> str:
        return f"PatternSet({len(self._patterns)} patterns)"


def read_pattern_lines(text: str) -> list[str]:
    """Split pattern file text into pattern lines, dropping blank lines."""
    return [line for line in text.splitlines() if line.strip()]


def load_patterns(path: Union[str, Path]) -> PatternSet:
    """
    Read and compile the pattern file.

    Args:
        path: UTF-8 text file with one pattern per line.

    Raises:
        PatternFileError: If the file cannot be read or holds no patterns.
        CompileError: If any line is not a valid regular expression.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise PatternFileError(
            f"Cannot read pattern file: {e}",
            path=str(path),
        ) from e

    lines = read_pattern_lines(text)
    if not lines:
        raise PatternFileError("Pattern file contains no patterns", path=str(path))

    patterns = PatternSet.compile(lines)
    logger.info(
        f"Loaded {len(patterns)} patterns",
        extra={"path": str(path)},
    )
    return patterns
