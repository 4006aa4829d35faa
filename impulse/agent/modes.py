"""
Operating modes and the policy they impose.

WORK and DEBUG may write anywhere; EXPLORE is read-only; PLAN may only
write planning artifacts (``docs/`` or ``PRD.md``). The planning-only
modes also restrict delegation to the read-only subagent.

No built-in tool writes files. A tool that does should call
``validate_write_path`` with the current mode and refuse with the returned
message when it is not None.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import FrozenSet, Optional, Union

from impulse.bus import Bus, ModeEvents


class Mode(Enum):
    WORK = "WORK"
    EXPLORE = "EXPLORE"
    PLAN = "PLAN"
    DEBUG = "DEBUG"


ALL_SUBAGENTS: FrozenSet[str] = frozenset({"explore", "general"})
READ_ONLY_SUBAGENTS: FrozenSet[str] = frozenset({"explore"})


def allowed_subagent_kinds(mode: Mode) -> FrozenSet[str]:
    if mode in (Mode.PLAN, Mode.EXPLORE):
        return READ_ONLY_SUBAGENTS
    return ALL_SUBAGENTS


def can_write_files(mode: Mode) -> bool:
    return mode in (Mode.WORK, Mode.DEBUG)


def validate_write_path(mode: Mode, file_path: str, cwd: Optional[Path] = None) -> Optional[str]:
    """Error message if ``mode`` forbids writing ``file_path``, else None."""
    if can_write_files(mode):
        return None
    if mode is Mode.EXPLORE:
        return "EXPLORE mode is read-only. Switch to WORK mode to write files."

    normalized = file_path.replace("\\", "/").lower()
    root = str(cwd or Path.cwd()).replace("\\", "/").lower()
    relative = normalized[len(root):].lstrip("/") if normalized.startswith(root) else normalized
    if relative.startswith("docs/") or relative == "prd.md" or relative.endswith("/prd.md"):
        return None
    return (
        f"PLAN mode can only write to docs/ or PRD.md. Requested path: {file_path}. "
        "Switch to WORK mode to write elsewhere."
    )


class ModeState:
    """The current mode, shared by the tools that need to respect it."""

    def __init__(self, bus: Optional[Bus] = None, mode: Mode = Mode.WORK):
        self._bus = bus
        self._mode = mode

    @property
    def mode(self) -> Mode:
        return self._mode

    def set_mode(self, mode: Union[Mode, str], reason: Optional[str] = None) -> Mode:
        """Switch modes and announce it on the bus."""
        self._mode = Mode(mode)
        if self._bus is not None:
            self._bus.publish(ModeEvents.Changed, {"mode": self._mode.value, "reason": reason})
        return self._mode

    def allows_subagent(self, kind: str) -> bool:
        return kind in allowed_subagent_kinds(self._mode)
