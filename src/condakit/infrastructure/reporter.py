"""Attempt reporter - timestamped progress lines for the retry loop"""

import logging
from datetime import datetime
from typing import Callable, Optional, Sequence, TextIO

import click

from condakit.domain.models.attempt import AttemptRecord

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now().astimezone()


class AttemptReporter:
    """Writes one diagnostic line per retry-loop event.

    Lines go to ``stream`` (stderr when None) prefixed with an ISO-8601
    timestamp. Reporting is best-effort: a failing stream is logged and
    ignored so it can never abort the retry loop.
    """

    def __init__(
        self,
        prefix: str = "condakit",
        action: Optional[str] = None,
        target: Optional[str] = None,
        stream: Optional[TextIO] = None,
        clock: Callable[[], datetime] = _now,
    ):
        """Initialize reporter

        Args:
            prefix: Name shown in failure/outcome lines
            action: Verb shown after the tool in attempt banners (e.g. "install")
            target: Optional description of where the command acts
                (e.g. the active conda env), shown in attempt banners
            stream: Output stream (stderr if None)
            clock: Timestamp source
        """
        self.prefix = prefix
        self.action = action
        self.target = target
        self.stream = stream
        self.clock = clock

    def _emit(self, message: str) -> None:
        line = f"[{self.clock().isoformat(timespec='seconds')}] {message}"
        try:
            click.echo(line, file=self.stream, err=self.stream is None)
        except Exception as e:
            logger.warning(f"Failed to write progress line: {e}")

    def attempt_started(self, index: int, max_attempts: int, tool: str, operands: Sequence[str]) -> None:
        budget = f"/{max_attempts}" if max_attempts else ""
        where = f' into env "{self.target}"' if self.target else ""
        first = operands[0] if operands else ""
        more = " ..." if len(operands) > 1 else ""
        label = f"{tool} {self.action}" if self.action else tool
        self._emit(f"{label} attempt {index}{budget}{where}: {first}{more}")

    def attempt_failed(self, record: AttemptRecord) -> None:
        self._emit(
            f"{self.prefix}: attempt {record.index} failed for [{record.command_line}] "
            f"({record.outcome.describe()})"
        )

    def sleeping(self, seconds: float) -> None:
        self._emit(f"Retrying in {seconds:.3f}s...")

    def succeeded(self, attempts_taken: int) -> None:
        self._emit(f"{self.prefix}: success after {attempts_taken} attempt(s)")

    def exhausted(self, attempts_taken: int, last_exit_code: Optional[int]) -> None:
        self._emit(f"{self.prefix}: giving up after {attempts_taken} attempts (exit {last_exit_code})")

    def interrupted(self, attempts_taken: int, sleeping: bool = False) -> None:
        if sleeping:
            self._emit(
                f"{self.prefix}: interrupted while sleeping before attempt {attempts_taken + 1}, not retrying"
            )
        else:
            self._emit(f"{self.prefix}: interrupted during attempt {attempts_taken}, not retrying")
