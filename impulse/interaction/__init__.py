"""Blocking hand-offs to the human: questions and permission prompts."""

from impulse.interaction.gate import (
    GateBusyError,
    GateCancelledError,
    GateTimeoutError,
    HumanSyncError,
    HumanSyncGate,
    PendingRequest,
)
from impulse.interaction.permission import (
    PermissionDeniedError,
    PermissionManager,
    get_permission_label,
)

__all__ = [
    "GateBusyError",
    "GateCancelledError",
    "GateTimeoutError",
    "HumanSyncError",
    "HumanSyncGate",
    "PendingRequest",
    "PermissionDeniedError",
    "PermissionManager",
    "get_permission_label",
]
