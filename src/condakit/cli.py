"""CLI interface for condakit"""

import logging
from pathlib import Path
from typing import Optional

import click

from condakit.application.audit_service import EnvAuditService, default_output_dir
from condakit.application.cpuquota_service import CpuQuotaLauncher, CpuQuotaRequest, parse_percent
from condakit.application.retry_orchestrator import RetryOrchestrator
from condakit.domain.config.retry import RetryPolicy
from condakit.domain.errors import AuditError, ConfigurationError, ToolNotFoundError, UsageError
from condakit.domain.models.attempt import RunResult
from condakit.domain.models.command import Command, ToolRequest
from condakit.infrastructure.config.config_manager import ConfigManager
from condakit.infrastructure.reporter import AttemptReporter

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130

INSTALL_ARGS = ["install", "--yes"]
QUIET_FLAG = "--quiet"


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    logging.getLogger().setLevel(level)
    for logger_name in logging.Logger.manager.loggerDict:
        logging.getLogger(logger_name).setLevel(level)


def _die(message: str, verbose: bool = False, exc: Optional[Exception] = None) -> None:
    """Exit with a user-friendly error message"""
    if exc is not None:
        logger.error(message, exc_info=verbose)
    else:
        logger.error(message)
    raise click.ClickException(message)


def _load_config(ctx: click.Context) -> ConfigManager:
    try:
        return ConfigManager(config_path=ctx.obj.get("config_path"))
    except ConfigurationError as e:
        _die(str(e), verbose=ctx.obj.get("verbose", False), exc=e)


def _resolve_policy(ctx: click.Context, config_manager: ConfigManager, **overrides) -> RetryPolicy:
    try:
        return config_manager.with_retry_overrides(**overrides)
    except ConfigurationError as e:
        _die(str(e), verbose=ctx.obj.get("verbose", False), exc=e)


def _run_with_retries(
    ctx: click.Context, policy: RetryPolicy, command: Command, reporter: AttemptReporter
) -> int:
    """Run the orchestrator and map its outcome to a process exit code"""
    try:
        result: RunResult = RetryOrchestrator(policy, reporter=reporter).run(command)
    except ToolNotFoundError as e:
        click.echo(f"{reporter.prefix}: {e}", err=True)
        return e.exit_code
    except UsageError as e:
        raise click.UsageError(str(e), ctx=ctx) from e
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    return result.exit_code


_RETRY_OPTIONS = [
    click.option("--delay", type=float, help="Initial delay between retries in seconds (default: 10)"),
    click.option("--max-attempts", type=int, help="Max attempts, 0 = try forever (default: 0)"),
    click.option("--backoff", type=float, help="Backoff multiplier (default: 1.5)"),
    click.option("--max-delay", type=float, help="Max delay cap in seconds (default: 120)"),
    click.option("--jitter", type=float, help="Jitter fraction in [0,1] for +/- jitter (default: 0.2)"),
]


def retry_options(func):
    """Options overriding the configured retry policy"""
    for option in reversed(_RETRY_OPTIONS):
        func = option(func)
    return func


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to .condakit.yml config file",
)
@click.pass_context
def cli(ctx, verbose: bool, config: Path):
    """condakit - resilient conda installs and environment tooling"""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


@cli.command()
@click.argument("packages", nargs=-1, required=True)
@retry_options
@click.option("--quiet/--no-quiet", default=None, help="Pass --quiet to the installer (default: on)")
@click.option(
    "--installer",
    type=str,
    help="conda, mamba, auto (prefer mamba if found) or a path. Overrides config.",
)
@click.pass_context
def install(
    ctx,
    packages: tuple,
    delay: Optional[float],
    max_attempts: Optional[int],
    backoff: Optional[float],
    max_delay: Optional[float],
    jitter: Optional[float],
    quiet: Optional[bool],
    installer: Optional[str],
):
    """Install packages into the CURRENT conda env, retrying on failure.

    PACKAGES: One or more package specs (e.g. numpy "scipy>=1.11")
    """
    config_manager = _load_config(ctx)
    policy = _resolve_policy(
        ctx,
        config_manager,
        initial_delay=delay,
        max_attempts=max_attempts,
        backoff_multiplier=backoff,
        max_delay=max_delay,
        jitter=jitter,
        quiet=quiet,
    )

    leading = list(INSTALL_ARGS)
    if policy.quiet:
        leading.append(QUIET_FLAG)
    command = Command(
        tool=config_manager.installer_request(installer),
        operands=list(packages),
        leading_args=leading,
    )
    reporter = AttemptReporter(
        prefix="condakit install",
        action="install",
        target=config_manager.active_env_name(),
    )
    ctx.exit(_run_with_retries(ctx, policy, command, reporter))


@cli.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@retry_options
@click.argument("program")
@click.argument("args", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def run(
    ctx,
    delay: Optional[float],
    max_attempts: Optional[int],
    backoff: Optional[float],
    max_delay: Optional[float],
    jitter: Optional[float],
    program: str,
    args: tuple,
):
    """Run any command, retrying with backoff until it exits 0.

    PROGRAM: Executable to run (must be on PATH or a path)
    ARGS: Arguments passed to PROGRAM (at least one)
    """
    config_manager = _load_config(ctx)
    policy = _resolve_policy(
        ctx,
        config_manager,
        initial_delay=delay,
        max_attempts=max_attempts,
        backoff_multiplier=backoff,
        max_delay=max_delay,
        jitter=jitter,
    )
    command = Command(tool=ToolRequest.explicit(program), operands=list(args))
    reporter = AttemptReporter(prefix="condakit run")
    ctx.exit(_run_with_retries(ctx, policy, command, reporter))


@cli.command()
@click.option("--output-dir", "-o", type=click.Path(path_type=Path), help="Output directory")
@click.option("--python", "-p", "python", type=str, help="Python binary to audit (default: detected python)")
@click.pass_context
def audit(ctx, output_dir: Optional[Path], python: Optional[str]):
    """Write a read-only snapshot of a mixed conda/pip environment."""
    config_manager = _load_config(ctx)
    audit_config = config_manager.get_audit_config()
    target_dir = output_dir or (Path(audit_config.output_dir) if audit_config.output_dir else default_output_dir())

    try:
        service = EnvAuditService(
            output_dir=target_dir,
            python=python or audit_config.python,
            env=config_manager.env,
            preview_lines=audit_config.preview_lines,
        )
        service.run()
    except AuditError as e:
        _die(f"fatal: {e}", verbose=ctx.obj.get("verbose", False), exc=e)


@cli.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.option("--per-cpu", "-c", is_flag=True, help="Interpret PERCENT as % of a single CPU")
@click.option("--background", "-b", is_flag=True, help="Run as a transient background service")
@click.option("--unit", "-n", type=str, help="Unit name (auto-generated with -b if omitted)")
@click.option("--period", "-P", type=str, help="CPUQuotaPeriodSec, e.g. 500ms or 1s")
@click.argument("percent")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def cpuquota(
    ctx,
    per_cpu: bool,
    background: bool,
    unit: Optional[str],
    period: Optional[str],
    percent: str,
    command: tuple,
):
    """Run COMMAND with a CPU cap via systemd (cgroups v2).

    PERCENT is of the whole machine (cores * 100) unless -c is given.
    """
    try:
        request = CpuQuotaRequest(
            percent=parse_percent(percent),
            command=list(command),
            per_cpu=per_cpu,
            background=background,
            unit=unit,
            period=period,
        )
        code = CpuQuotaLauncher().launch(request)
    except UsageError as e:
        raise click.UsageError(str(e), ctx=ctx) from e
    except ToolNotFoundError as e:
        click.echo(f"cpuquota: {e}", err=True)
        code = e.exit_code
    ctx.exit(code)


def main():
    """Main entry point"""
    cli(obj={})


if __name__ == "__main__":
    main()
