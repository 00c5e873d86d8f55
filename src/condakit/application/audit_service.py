"""Environment audit - read-only snapshot of a mixed conda/pip environment"""

import json
import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import click

from condakit.domain.errors import AuditError
from condakit.infrastructure.executor import CapturedOutput, CapturingExecutor

logger = logging.getLogger(__name__)

# Run inside the audited interpreter, which may not be the one running condakit
IMPORT_PATHS_SCRIPT = """\
import importlib.metadata as m
import importlib.util

def where(modname):
    try:
        spec = importlib.util.find_spec(modname)
    except Exception:
        return None
    if spec is None:
        return None
    return getattr(spec, "origin", None) or str(getattr(spec, "loader", ""))

names = sorted({d.metadata.get("Name") for d in m.distributions() if d.metadata.get("Name")})
for name in names:
    loc = where(name.replace("-", "_"))
    if loc:
        print(f"{name:30s} -> {loc}")
"""

DUPLICATES_SCRIPT = """\
import importlib.metadata as m
import os
from collections import defaultdict

paths = defaultdict(set)
for d in m.distributions():
    name = (d.metadata.get("Name") or "").lower()
    if name:
        paths[name].add(os.path.dirname(str(d.locate_file(""))))
dupes = {name: locs for name, locs in sorted(paths.items()) if len(locs) > 1}
for name, locs in dupes.items():
    print(f"{name}:")
    for loc in sorted(locs):
        print(f"  - {loc}")
if not dupes:
    print("(none)")
"""

NONE_MARKER = "(none)"


def default_output_dir(now: Optional[datetime] = None) -> Path:
    return Path(f"env_audit_{(now or datetime.now()):%Y%m%d_%H%M%S}")


def conda_pypi_entries(conda_packages: Sequence[dict]) -> List[str]:
    """Conda list entries that pip installed (channel == "pypi")"""
    return [
        f"{p.get('name', ''):<30} {p.get('version', '')}"
        for p in conda_packages
        if p.get("channel") == "pypi"
    ]


def package_overlaps(conda_packages: Sequence[dict], pip_packages: Sequence[dict]) -> List[str]:
    """Lowercased names present in both the conda and the pip package lists"""
    conda_names = {(p.get("name") or "").lower() for p in conda_packages}
    pip_names = {(p.get("name") or "").lower() for p in pip_packages}
    return sorted(n for n in conda_names & pip_names if n)


def _parse_json_list(text: str) -> List[dict]:
    try:
        data = json.loads(text)
    except ValueError:
        return []
    return data if isinstance(data, list) else []


class EnvAuditService:
    """Writes numbered audit artifacts for one Python environment.

    Every step is best-effort: a failing command leaves its output plus an
    ``[exit N]`` marker in the artifact and the audit carries on.
    """

    def __init__(
        self,
        output_dir: Path,
        python: Optional[str] = None,
        runner: Optional[CapturingExecutor] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
        env: Optional[Mapping[str, str]] = None,
        preview_lines: int = 12,
        echo: Callable[[str], None] = click.echo,
    ):
        """Initialize audit service

        Args:
            output_dir: Directory receiving the artifacts (created if missing)
            python: Interpreter to audit (detected "python" on PATH if None)
            runner: Executor used to capture command output
            which: PATH lookup
            env: Environment shown in the snapshot section
            preview_lines: Lines of each artifact echoed to the console
            echo: Console output function

        Raises:
            AuditError: If no Python interpreter can be found
        """
        self.output_dir = Path(output_dir)
        self.which = which
        self.python = python or which("python")
        if not self.python:
            raise AuditError("No python found (use --python or export PYTHON=/path/to/python)")
        self.runner = runner or CapturingExecutor()
        self.env = dict(env or {})
        self.preview_lines = preview_lines
        self.echo = echo
        self.conda_env = self.env.get("CONDA_DEFAULT_ENV")
        self._captured: Dict[str, str] = {}

    def run(self) -> List[Path]:
        """Run every audit section

        Returns:
            Sorted list of artifact paths
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        has_conda = self.which("conda") is not None
        logger.info(f"Auditing {self.python} into {self.output_dir} (conda: {has_conda})")

        self._environment_section(has_conda)
        conda_packages = self._conda_sections(has_conda)
        pip_packages = self._pip_sections()
        if has_conda:
            self._conda_pypi_section(conda_packages)
        overlaps = self._overlap_section(conda_packages, pip_packages)
        self._interpreter_sections()
        self._pip_check_section()
        self._export_sections(has_conda)
        self._bundle_section(has_conda, overlaps)

        self._section("Done")
        self.echo(f"Artifacts written to: {self.output_dir}")
        artifacts = sorted(self.output_dir.iterdir())
        for path in artifacts:
            self.echo(f"  - {path.name}")
        return artifacts

    # helpers

    def _path(self, name: str) -> Path:
        return self.output_dir / name

    def _section(self, title: str) -> None:
        self.echo(f"\n=== {title} ===")

    def _write(self, name: str, text: str) -> Path:
        path = self._path(name)
        path.write_text(text, encoding="utf-8")
        return path

    def _save_cmd(self, name: str, argv: Sequence[str], stdin: Optional[str] = None) -> CapturedOutput:
        result = self.runner.run(list(argv), stdin=stdin)
        text = result.output
        if not result.ok:
            if text and not text.endswith("\n"):
                text += "\n"
            text += f"[exit {result.returncode}]\n"
        self._write(name, text)
        self._captured[name] = result.output
        return result

    def _preview(self, name: str, lines: Optional[int] = None) -> None:
        path = self._path(name)
        text = path.read_text(encoding="utf-8")
        head = text.splitlines()[: lines or self.preview_lines]
        for line in head:
            self.echo(line)
        if text:
            self.echo(f"... (full: {path})")

    def _show(self, name: str) -> None:
        self.echo(self._path(name).read_text(encoding="utf-8").rstrip("\n"))

    def _conda_env_args(self) -> List[str]:
        return ["-n", self.conda_env] if self.conda_env else []

    # sections

    def _environment_section(self, has_conda: bool) -> None:
        self._section("Environment")
        version = self.runner.run([self.python, "-V"])
        pip_version = self.runner.run([self.python, "-m", "pip", "-V"])
        lines = [
            f"python: {version.output.strip() if version.ok else 'n/a'}",
            f"python exe: {self.python}",
            f"which pip: {self.which('pip') or '(missing)'}",
            pip_version.output.strip() if pip_version.ok else "pip: (unavailable)",
        ]
        for var in ("CONDA_PREFIX", "CONDA_DEFAULT_ENV", "CUPY_ACCELERATORS"):
            lines.append(f"{var}: {self.env.get(var) or '(unset)'}")
        lines.append("")
        if has_conda:
            envs = self.runner.run(["conda", "info", "--envs"])
            lines.append("[conda envs]")
            lines.append(envs.output.rstrip("\n") if envs.ok else "(conda info failed)")
        else:
            lines.append("conda: (not found in PATH)")
        path = self._write("00_env.txt", "\n".join(lines) + "\n")
        self.echo(f"snapshot → {path}")

    def _conda_sections(self, has_conda: bool) -> List[dict]:
        if not has_conda:
            self._write("_conda_list.json", "[]\n")
            self._section("Conda not found, skipping conda sections")
            return []

        self._section("Conda packages (channels)")
        self._save_cmd("10_conda_list.txt", ["conda", "list", "--show-channel-urls"])
        self._preview("10_conda_list.txt")

        self._section("Conda revisions (history)")
        self._save_cmd("11_conda_revisions.txt", ["conda", "list", "--revisions"])
        self._preview("11_conda_revisions.txt")

        result = self._save_cmd("_conda_list.json", ["conda", "list", "--json"])
        return _parse_json_list(result.output) if result.ok else []

    def _pip_sections(self) -> List[dict]:
        self._section("Pip packages")
        self._save_cmd("20_pip_list.txt", [self.python, "-m", "pip", "list", "--format=columns"])
        self._preview("20_pip_list.txt", lines=20)

        self._save_cmd("21_pip_freeze.txt", [self.python, "-m", "pip", "freeze"])
        self.echo(f"freeze → {self._path('21_pip_freeze.txt')}")

        listing = self.runner.run([self.python, "-m", "pip", "list", "--format=json"])
        return _parse_json_list(listing.output) if listing.ok else []

    def _conda_pypi_section(self, conda_packages: List[dict]) -> None:
        self._section("Conda entries with channel=pypi")
        rows = conda_pypi_entries(conda_packages)
        self._write("30_conda_pypi_entries.txt", "\n".join(rows or [NONE_MARKER]) + "\n")
        self._preview("30_conda_pypi_entries.txt")

    def _overlap_section(self, conda_packages: List[dict], pip_packages: List[dict]) -> List[str]:
        self._section("Overlaps (present in BOTH conda and pip)")
        overlaps = package_overlaps(conda_packages, pip_packages)
        self._write("40_overlaps.txt", "\n".join(overlaps or [NONE_MARKER]) + "\n")
        self._show("40_overlaps.txt")
        return overlaps

    def _interpreter_sections(self) -> None:
        self._section("Import locations (module → file)")
        self._save_cmd("50_import_paths.txt", [self.python, "-"], stdin=IMPORT_PATHS_SCRIPT)
        self._preview("50_import_paths.txt", lines=15)

        self._section("Duplicate install locations")
        self._save_cmd("60_duplicates.txt", [self.python, "-"], stdin=DUPLICATES_SCRIPT)
        self._show("60_duplicates.txt")

    def _pip_check_section(self) -> None:
        self._section("pip check")
        self._save_cmd("70_pip_check.txt", [self.python, "-m", "pip", "check"])
        self._show("70_pip_check.txt")

    def _export_sections(self, has_conda: bool) -> None:
        if has_conda:
            self._section("conda env export (full)")
            self._save_cmd("80_conda_env_full.yml", ["conda", "env", "export", *self._conda_env_args()])
            self._section("conda env export (from-history)")
            self._save_cmd(
                "81_conda_env_from_history.yml",
                ["conda", "env", "export", "--from-history", *self._conda_env_args()],
            )
        else:
            notice = "conda not found, skipping exports\n"
            self._write("80_conda_env_full.yml", notice)
            self._write("81_conda_env_from_history.yml", notice)
        self._save_cmd("82_requirements-pip.txt", [self.python, "-m", "pip", "freeze"])

    def _bundle_section(self, has_conda: bool, overlaps: List[str]) -> None:
        self._section("pkg_audit.txt (combined snapshot)")
        parts = [
            f"python: {self.python}",
            "",
            "[conda list --show-channel-urls]",
            self._captured.get("10_conda_list.txt", "") if has_conda else "(conda not found)",
            "",
            "[pip list]",
            self._captured.get("20_pip_list.txt", ""),
            "",
            "[overlaps conda ∩ pip]",
            "\n".join(overlaps) or NONE_MARKER,
        ]
        path = self._write("90_pkg_audit.txt", "\n".join(parts) + "\n")
        self.echo(f"bundle → {path}")
