"""Attempt models - per-run state and outcomes of the retry loop"""

import signal as signal_module
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from condakit.domain.config.retry import RetryPolicy

# Shell convention for a child killed by signal N
SIGNAL_EXIT_BASE = 128


@dataclass(frozen=True)
class ExitOutcome:
    """Exit status of one child process.

    ``returncode`` follows subprocess conventions: negative values mean the
    child was killed by that signal.
    """

    returncode: int

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    @property
    def signal(self) -> Optional[int]:
        """Signal number that killed the child, if any"""
        return -self.returncode if self.returncode < 0 else None

    @property
    def exit_code(self) -> int:
        """Exit status suitable for returning from a process"""
        if self.signal is not None:
            return SIGNAL_EXIT_BASE + self.signal
        return self.returncode

    def describe(self) -> str:
        if self.signal is not None:
            try:
                name = signal_module.Signals(self.signal).name
            except ValueError:
                name = f"signal {self.signal}"
            return f"killed by {name}"
        return f"exit {self.returncode}"


@dataclass
class AttemptState:
    """Mutable state owned by a single orchestrator run"""

    attempt_index: int
    current_delay: float
    last_exit_code: Optional[int] = None
    pending_sleep: Optional[float] = None
    sleeping: bool = False

    @classmethod
    def start(cls, policy: RetryPolicy) -> "AttemptState":
        return cls(attempt_index=1, current_delay=policy.initial_delay)


@dataclass(frozen=True)
class AttemptRecord:
    """What happened in one attempt; handed to the reporter and dropped"""

    index: int
    timestamp: datetime
    command_line: str
    outcome: ExitOutcome


class RunStatus(str, Enum):
    """Terminal state of a run"""

    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RunResult:
    """Result of running a command with retries"""

    status: RunStatus
    attempts_taken: int
    last_exit_code: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    @property
    def exit_code(self) -> int:
        """0 on success, the child's last exit code on exhaustion"""
        if self.succeeded:
            return 0
        return self.last_exit_code if self.last_exit_code is not None else 1
