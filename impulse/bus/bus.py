"""Typed publish/subscribe hub used to notify the UI layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Type, Union

from pydantic import BaseModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BusEvent:
    """A named event with the pydantic model its payload must satisfy."""

    name: str
    schema: Type[BaseModel]


@dataclass(frozen=True)
class BusMessage:
    """What listeners receive: the event name and its payload."""

    type: str
    properties: Dict[str, Any]


Listener = Callable[[BusMessage], None]


def define(name: str, schema: Type[BaseModel]) -> BusEvent:
    """Declare an event. Call at import time and keep the result."""
    return BusEvent(name=name, schema=schema)


class Bus:
    """
    Synchronous in-process event hub.

    ``publish`` validates against the event schema and raises
    ``pydantic.ValidationError`` on a bad payload; that is a bug in the
    publisher, not something to recover from. ``emit`` is the unvalidated
    path for dynamically named topics.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and return a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: BusEvent, properties: Union[BaseModel, Mapping[str, Any]]) -> None:
        if isinstance(properties, BaseModel):
            properties = properties.model_dump()
        payload = event.schema.model_validate(properties)
        self._dispatch(BusMessage(type=event.name, properties=payload.model_dump()))

    def emit(self, name: str, properties: Mapping[str, Any]) -> None:
        self._dispatch(BusMessage(type=name, properties=dict(properties)))

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _dispatch(self, message: BusMessage) -> None:
        # Snapshot so listeners may unsubscribe while being notified.
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Bus listener failed while handling %s", message.type)
