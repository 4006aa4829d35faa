"""
Impulse tools.

The registry lives here; the built-in tools register themselves through
their ``register_*`` functions, called by ``impulse.runtime``.
"""

from impulse.tools.registry import (
    PermissionChecker,
    Tool,
    ToolRegistry,
    ToolResult,
    identifying_argument,
    strip_null_values,
)

__all__ = [
    "PermissionChecker",
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "identifying_argument",
    "strip_null_values",
]
