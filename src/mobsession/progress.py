"""Progress and result reporting for a session start.

A sink receives fractional progress while the run advances and exactly one
result at the end. How that is shown is up to the host.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, TextIO, Tuple

from .observability import log_debug, log_info, log_warning


class ProgressSink(Protocol):
    def report_progress(self, fraction: float) -> None: ...

    def report_result(self, success: bool, title: str, messages: Sequence[str]) -> None: ...


class LoggingProgressSink:
    """Sends progress and results to the mobsession logger."""

    def report_progress(self, fraction: float) -> None:
        log_debug("[PROGRESS] Start progress", fraction=round(fraction, 2))

    def report_result(self, success: bool, title: str, messages: Sequence[str]) -> None:
        if success:
            log_info(title, messages=list(messages))
        else:
            log_warning(title, messages=list(messages))


class ConsoleProgressSink:
    """Prints the final notification for the CLI."""

    def __init__(self, stream: Optional[TextIO] = None, show_progress: bool = False):
        self.stream = stream or sys.stdout
        self.show_progress = show_progress

    def report_progress(self, fraction: float) -> None:
        if self.show_progress:
            print(f"[{int(round(fraction * 100)):3d}%]", file=self.stream)

    def report_result(self, success: bool, title: str, messages: Sequence[str]) -> None:
        marker = "✅" if success else "❌"
        print(f"{marker} {title}", file=self.stream)
        for message in messages:
            print(f"  {message}", file=self.stream)


@dataclass
class RecordingProgressSink:
    """Keeps everything it is told. Useful for embedding hosts and tests."""

    fractions: List[float] = field(default_factory=list)
    results: List[Tuple[bool, str, Tuple[str, ...]]] = field(default_factory=list)

    def report_progress(self, fraction: float) -> None:
        self.fractions.append(fraction)

    def report_result(self, success: bool, title: str, messages: Sequence[str]) -> None:
        self.results.append((success, title, tuple(messages)))

    @property
    def last_fraction(self) -> float:
        return self.fractions[-1] if self.fractions else 0.0
