"""Command model - what to run and which executable should run it"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple


class SelectionMode(str, Enum):
    """How the executable for a command is chosen"""

    EXPLICIT = "explicit"  # exactly the named tool
    AUTO = "auto"  # first present candidate in preference order
    FIXED_DEFAULT = "fixed-default"  # the configured default tool


class SelectionStrategy(str, Enum):
    """Which rule produced a ToolChoice"""

    EXPLICIT = "explicit"
    PREFERRED = "preferred"
    FALLBACK = "fallback"
    FIXED_DEFAULT = "fixed-default"


@dataclass(frozen=True)
class ToolRequest:
    """Logical tool role: candidate executables plus the selection mode"""

    candidates: Tuple[str, ...]
    mode: SelectionMode = SelectionMode.EXPLICIT

    def __post_init__(self):
        if not self.candidates:
            raise ValueError("ToolRequest needs at least one candidate")

    @classmethod
    def explicit(cls, name: str) -> "ToolRequest":
        return cls(candidates=(name,), mode=SelectionMode.EXPLICIT)


@dataclass(frozen=True)
class ToolChoice:
    """Executable resolved for one invocation"""

    executable: str  # name as requested
    path: str  # location found on PATH (or the name itself if given as a path)
    strategy: SelectionStrategy


@dataclass
class Command:
    """A command to run with retries.

    The executed argv is ``[tool, *leading_args, *operands]``. Operands are the
    user-supplied part (package names, program arguments) and are required.
    """

    tool: ToolRequest
    operands: List[str] = field(default_factory=list)
    leading_args: List[str] = field(default_factory=list)

    def argv(self, choice: ToolChoice) -> List[str]:
        """Full argument vector for the resolved executable"""
        return [choice.path, *self.leading_args, *self.operands]

    def display(self, choice: ToolChoice) -> str:
        """Command line as shown in diagnostics (tool name, not full path)"""
        return " ".join([choice.executable, *self.leading_args, *self.operands])
