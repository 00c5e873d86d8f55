"""Executable selection with preference order and existence probing"""

import logging
import os
import shutil
from typing import Callable, Optional, Sequence

from condakit.domain.errors import ToolNotFoundError
from condakit.domain.models.command import SelectionMode, SelectionStrategy, ToolChoice, ToolRequest

logger = logging.getLogger(__name__)

Which = Callable[[str], Optional[str]]


def resolve_tool(
    preferences: Sequence[str],
    mode: SelectionMode,
    which: Which = shutil.which,
) -> ToolChoice:
    """Resolve which executable to run.

    Presence is checked with ``which`` only; candidates are never invoked.

    Args:
        preferences: Candidate executables. In explicit and fixed-default mode
            only the first entry is considered
        mode: Selection mode
        which: PATH lookup function (injectable for tests)

    Returns:
        ToolChoice for the selected executable

    Raises:
        ToolNotFoundError: If no candidate is present
    """
    if not preferences:
        raise ToolNotFoundError("no tool candidates given")

    mode = SelectionMode(mode)
    if mode == SelectionMode.AUTO:
        for position, name in enumerate(preferences):
            path = which(name)
            logger.debug(f"Probing {name}: {path or 'not found'}")
            if path:
                strategy = SelectionStrategy.PREFERRED if position == 0 else SelectionStrategy.FALLBACK
                return ToolChoice(executable=name, path=path, strategy=strategy)
        raise ToolNotFoundError(
            f"none of {', '.join(repr(p) for p in preferences)} found in PATH",
            candidates=tuple(preferences),
        )

    name = preferences[0]
    path = which(name)
    if not path:
        raise ToolNotFoundError(f"'{name}' not found in PATH", candidates=(name,))
    strategy = SelectionStrategy.EXPLICIT if mode == SelectionMode.EXPLICIT else SelectionStrategy.FIXED_DEFAULT
    return ToolChoice(executable=os.path.basename(name) or name, path=path, strategy=strategy)


def resolve_request(request: ToolRequest, which: Which = shutil.which) -> ToolChoice:
    """Resolve a ToolRequest (see resolve_tool)"""
    return resolve_tool(request.candidates, request.mode, which=which)
