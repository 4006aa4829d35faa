"""Event bus: typed publish/subscribe between the core and the UI."""

from impulse.bus.bus import Bus, BusEvent, BusMessage, define
from impulse.bus.events import (
    McpEvents,
    ModeEvents,
    PermissionEvents,
    QuestionEvents,
    process_output_topic,
)

__all__ = [
    "Bus",
    "BusEvent",
    "BusMessage",
    "define",
    "McpEvents",
    "ModeEvents",
    "PermissionEvents",
    "QuestionEvents",
    "process_output_topic",
]
