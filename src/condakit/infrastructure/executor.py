"""Executors run one attempt of a command and report its exit status"""

import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from condakit.domain.models.attempt import ExitOutcome

logger = logging.getLogger(__name__)

# Shell convention for "found but not executable"
EXIT_CANNOT_EXECUTE = 126


class Executor(ABC):
    """Abstract base class for running a command once"""

    @abstractmethod
    def run(self, argv: Sequence[str]) -> ExitOutcome:
        """Run the command to completion

        Args:
            argv: Full argument vector, executable first

        Returns:
            Exit status of the command

        Raises:
            KeyboardInterrupt: If interrupted; the child must not outlive the call
        """
        pass


class SubprocessExecutor(Executor):
    """Runs commands as child processes sharing the caller's stdio"""

    def __init__(self, terminate_timeout: float = 10.0):
        """Initialize executor

        Args:
            terminate_timeout: Seconds to wait after SIGTERM before SIGKILL
                when an interrupted child does not exit
        """
        self.terminate_timeout = terminate_timeout

    def run(self, argv: Sequence[str]) -> ExitOutcome:
        logger.debug(f"Executing: {list(argv)}")
        try:
            process = subprocess.Popen(list(argv))
        except OSError as e:
            logger.error(f"Cannot execute {argv[0]}: {e}")
            return ExitOutcome(EXIT_CANNOT_EXECUTE)
        try:
            returncode = process.wait()
        except BaseException:
            self._stop(process)
            raise
        return ExitOutcome(returncode)

    def _stop(self, process: subprocess.Popen) -> None:
        """Terminate an in-flight child, escalating to kill"""
        if process.poll() is not None:
            return
        logger.debug(f"Terminating child process {process.pid}")
        process.terminate()
        try:
            process.wait(timeout=self.terminate_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Child process {process.pid} ignored SIGTERM, killing it")
            process.kill()
            process.wait()


@dataclass(frozen=True)
class CapturedOutput:
    """Captured output of one command"""

    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CapturingExecutor:
    """Runs a command to completion, capturing stdout and stderr together.

    Used by report generators; no retries, no interrupt handling beyond what
    subprocess.run provides.
    """

    def run(self, argv: Sequence[str], stdin: Optional[str] = None) -> CapturedOutput:
        logger.debug(f"Capturing: {list(argv)}")
        try:
            completed = subprocess.run(
                list(argv),
                input=stdin,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except OSError as e:
            return CapturedOutput(returncode=EXIT_CANNOT_EXECUTE, output=f"{argv[0]}: {e}\n")
        return CapturedOutput(returncode=completed.returncode, output=completed.stdout or "")
