"""
Permission prompts for destructive tool actions.

Three levels of approval:
- once: allow this specific action only
- session: auto-approve matching patterns for the rest of the session
- always: persist to the project (``.impulse/permissions.yaml``)

In express mode every request is approved without asking.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Set

import yaml

from impulse.bus import Bus, PermissionEvents
from impulse.interaction.gate import DEFAULT_TIMEOUT, HumanSyncGate
from impulse.tools.registry import PermissionChecker

logger = logging.getLogger(__name__)

PermissionResponse = Literal["once", "session", "always", "reject"]

PERMISSIONS_FILE = Path(".impulse") / "permissions.yaml"

PERMISSION_TYPES = {
    "edit": "Edit file",
    "write": "Create file",
    "bash": "Execute command",
    "task": "Launch subagent",
}

WILDCARD = "*"


class PermissionDeniedError(Exception):
    """Raised in the asking coroutine when the user rejects a request."""


def get_permission_label(permission: str) -> str:
    return PERMISSION_TYPES.get(permission, permission)


class PermissionManager:
    """Tracks approvals and routes unapproved requests through a gate."""

    def __init__(
        self,
        bus: Bus,
        timeout: float = DEFAULT_TIMEOUT,
        express: bool = False,
        project_root: Optional[Path] = None,
    ):
        self._bus = bus
        self._gate = HumanSyncGate(
            bus,
            PermissionEvents.Asked,
            timeout=timeout,
            label="permission request",
            id_prefix="perm",
        )
        self._path = (project_root or Path.cwd()) / PERMISSIONS_FILE
        self._session_approvals: Dict[str, Dict[str, Set[str]]] = {}
        self._project_approvals: Optional[Dict[str, Set[str]]] = None
        self._express = express
        self._express_acknowledged = False

    @property
    def gate(self) -> HumanSyncGate:
        return self._gate

    # ── Express mode ──────────────────────────────────────────────────────

    @property
    def express(self) -> bool:
        return self._express

    @property
    def express_acknowledged(self) -> bool:
        return self._express_acknowledged

    def enable_express(self) -> bool:
        """Turn express mode on. Returns True if the warning has not been shown yet."""
        self._express = True
        return not self._express_acknowledged

    def acknowledge_express(self) -> None:
        self._express_acknowledged = True

    def disable_express(self) -> None:
        self._express = False

    def toggle_express(self) -> Dict[str, bool]:
        if self._express:
            self.disable_express()
            return {"enabled": False, "needs_warning": False}
        return {"enabled": True, "needs_warning": self.enable_express()}

    # ── Asking ────────────────────────────────────────────────────────────

    async def ask(
        self,
        session_id: str,
        permission: str,
        patterns: List[str],
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Return once the action is allowed.

        Raises ``PermissionDeniedError`` on rejection and the gate's errors
        when another prompt is open or nobody answers in time.
        """
        if self._express:
            return

        unapproved = [p for p in patterns if not self.is_approved(session_id, permission, p)]
        if not unapproved:
            return

        await self._gate.ask(
            {
                "session_id": session_id,
                "permission": permission,
                "patterns": unapproved,
                "message": message,
                "metadata": metadata or {},
            }
        )

    def checker(self, session_id: str) -> PermissionChecker:
        """Adapter for ``ToolRegistry.set_permission_checker``."""

        async def check(tool_name: str, permission: str, patterns: List[str], message: str) -> None:
            await self.ask(session_id, permission, patterns, message, {"tool": tool_name})

        return check

    def respond(
        self,
        request_id: str,
        response: PermissionResponse,
        message: Optional[str] = None,
        wildcard: bool = False,
    ) -> bool:
        """
        Answer the pending request with ``request_id``.

        ``wildcard`` with a ``session`` response approves every action of
        the permission type for the session. Returns False if no such
        request is pending.
        """
        pending = self._gate.pending
        if pending is None or pending.id != request_id:
            logger.warning("Permission %s not found", request_id)
            return False

        request = pending.payload
        session_id = request["session_id"]
        permission = request["permission"]

        self._bus.publish(
            PermissionEvents.Replied,
            {
                "session_id": session_id,
                "permission_id": request_id,
                "response": response,
                "message": message,
            },
        )

        if response == "reject":
            reason = f"Permission denied: {message}" if message else "Permission denied by user"
            return self._gate.reject(PermissionDeniedError(reason), request_id=request_id)

        if response == "session":
            for pattern in [WILDCARD] if wildcard else request["patterns"]:
                self._add_session_approval(session_id, permission, pattern)
        elif response == "always":
            for pattern in request["patterns"]:
                self.add_project_approval(permission, pattern)
        return self._gate.resolve(response, request_id=request_id)

    def list_pending(self) -> List[Dict[str, Any]]:
        pending = self._gate.pending
        return [dict(pending.payload)] if pending is not None else []

    # ── Approvals ─────────────────────────────────────────────────────────

    def is_approved(self, session_id: str, permission: str, pattern: str) -> bool:
        approved = self._load_project_approvals().get(permission, set())
        if pattern in approved or WILDCARD in approved:
            return True
        approved = self._session_approvals.get(session_id, {}).get(permission, set())
        return pattern in approved or WILDCARD in approved

    def _add_session_approval(self, session_id: str, permission: str, pattern: str) -> None:
        self._session_approvals.setdefault(session_id, {}).setdefault(permission, set()).add(pattern)

    def clear_session_approvals(self, session_id: str) -> None:
        self._session_approvals.pop(session_id, None)

    def add_project_approval(self, permission: str, pattern: str) -> None:
        self._load_project_approvals().setdefault(permission, set()).add(pattern)
        self._save_project_approvals()

    def remove_project_approval(self, permission: str, pattern: str) -> None:
        approvals = self._load_project_approvals()
        patterns = approvals.get(permission)
        if patterns is None:
            return
        patterns.discard(pattern)
        if not patterns:
            del approvals[permission]
        self._save_project_approvals()

    def clear_project_approvals(self) -> None:
        self._project_approvals = {}
        self._save_project_approvals()

    def get_project_permissions(self) -> Dict[str, List[str]]:
        return {k: sorted(v) for k, v in self._load_project_approvals().items()}

    def _load_project_approvals(self) -> Dict[str, Set[str]]:
        if self._project_approvals is not None:
            return self._project_approvals

        self._project_approvals = {}
        if not self._path.exists():
            return self._project_approvals

        try:
            with open(self._path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Failed to load project permissions from %s: %s", self._path, e)
            return self._project_approvals

        if not isinstance(data, dict):
            logger.warning("Ignoring malformed project permissions in %s", self._path)
            return self._project_approvals
        for permission, patterns in data.items():
            if isinstance(patterns, list):
                self._project_approvals[str(permission)] = {str(p) for p in patterns}
        return self._project_approvals

    def _save_project_approvals(self) -> None:
        if self._project_approvals is None:
            return
        data = {k: sorted(v) for k, v in self._project_approvals.items()}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=True)
