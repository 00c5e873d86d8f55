"""CPU quota launcher - run a command under a CPU cap via systemd-run (cgroups v2)"""

import logging
import os
import re
import shutil
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import click

from condakit.domain.errors import ToolNotFoundError, UsageError
from condakit.infrastructure.executor import Executor, SubprocessExecutor

logger = logging.getLogger(__name__)

SYSTEMD_RUN = "systemd-run"
_PERCENT_RE = re.compile(r"^[0-9]+(\.[0-9]+)?$")


def parse_percent(value: str) -> float:
    """Parse "50", "12.5" or "70%" into a number

    Raises:
        UsageError: If the value is not a non-negative number
    """
    text = value.strip()
    if text.endswith("%"):
        text = text[:-1]
    if not _PERCENT_RE.match(text):
        raise UsageError(f"PERCENT must be a number, got {value!r}")
    return float(text)


def compute_quota(percent: float, per_cpu: bool, cores: int) -> int:
    """CPUQuota value: percent of one CPU, or of the whole machine"""
    factor = 1 if per_cpu else max(1, cores)
    return int(round(percent * factor))


@dataclass
class CpuQuotaRequest:
    """One cpuquota invocation"""

    percent: float
    command: List[str]
    per_cpu: bool = False
    background: bool = False
    unit: Optional[str] = None
    period: Optional[str] = None


class CpuQuotaLauncher:
    """Launches a command in a transient systemd scope or service with a CPU cap.

    The user manager is tried first, then the system manager, then the system
    manager through sudo.
    """

    def __init__(
        self,
        executor: Optional[Executor] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
        cpu_count: Callable[[], Optional[int]] = os.cpu_count,
        clock_ns: Callable[[], int] = time.time_ns,
    ):
        self.executor = executor or SubprocessExecutor()
        self.which = which
        self.cpu_count = cpu_count
        self.clock_ns = clock_ns

    def properties(self, request: CpuQuotaRequest) -> List[str]:
        quota = compute_quota(request.percent, request.per_cpu, self.cpu_count() or 1)
        props = ["-p", "CPUAccounting=yes", "-p", f"CPUQuota={quota}%"]
        if request.period:
            props += ["-p", f"CPUQuotaPeriodSec={request.period}"]
        return props

    def unit_args(self, request: CpuQuotaRequest) -> List[str]:
        """Unit selection flags; assigns an automatic unit name in background mode"""
        if request.background:
            if not request.unit:
                request.unit = f"cpuquota-{self.clock_ns()}"
            return [f"--unit={request.unit}", "--collect"]
        args = [f"--unit={request.unit}"] if request.unit else []
        return args + ["--scope"]

    def candidates(self, request: CpuQuotaRequest) -> List[List[str]]:
        """systemd-run command lines in the order they are tried"""
        base = self.unit_args(request)
        tail = [*self.properties(request), "--", *request.command]
        system = [SYSTEMD_RUN, *base, *tail]
        return [
            [SYSTEMD_RUN, "--user", *base, *tail],
            system,
            ["sudo", *system],
        ]

    def launch(self, request: CpuQuotaRequest) -> int:
        """Start the command under the quota

        Returns:
            0 when a manager accepted the unit, 1 when all failed

        Raises:
            UsageError: If no command is given
            ToolNotFoundError: If systemd-run is not installed
        """
        if not request.command:
            raise UsageError("need PERCENT and COMMAND")
        if not self.which(SYSTEMD_RUN):
            raise ToolNotFoundError(f"{SYSTEMD_RUN} not found", candidates=(SYSTEMD_RUN,))

        attempts = self.candidates(request)
        for position, argv in enumerate(attempts):
            if argv[0] == "sudo":
                click.echo("cpuquota: elevating with sudo for system manager...", err=True)
            logger.debug(f"Trying: {' '.join(argv)}")
            if self.executor.run(argv).succeeded:
                if request.background:
                    click.echo(f"cpuquota: started unit {request.unit}. See: systemctl status {request.unit}")
                return 0
            logger.info(f"{SYSTEMD_RUN} attempt {position + 1}/{len(attempts)} failed")

        click.echo(
            "cpuquota: failed to start unit (CPU controller may be unavailable for user.slice; "
            "try with sudo or check cgroup v2 settings)",
            err=True,
        )
        return 1
