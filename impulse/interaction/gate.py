"""Single-slot gate that suspends a tool call until a human answers."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from impulse.bus import Bus, BusEvent

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600.0  # seconds


class HumanSyncError(Exception):
    """Base class for gate failures."""


class GateBusyError(HumanSyncError):
    """Another request is already waiting for an answer."""


class GateTimeoutError(HumanSyncError):
    """Nobody answered before the deadline."""


class GateCancelledError(HumanSyncError):
    """The responder dismissed the request."""


@dataclass
class PendingRequest:
    id: str
    payload: Dict[str, Any]
    future: "asyncio.Future[Any]" = field(repr=False)
    deadline: float


class HumanSyncGate:
    """
    At most one outstanding request; the UI answers it out-of-band.

    ``ask`` publishes the payload (with a fresh ``id``) on the bus and waits
    for ``resolve`` or ``reject``. A second ``ask`` while one is waiting
    fails at once with ``GateBusyError`` and leaves the first alone.
    """

    def __init__(
        self,
        bus: Bus,
        event: BusEvent,
        timeout: float = DEFAULT_TIMEOUT,
        label: str = "request",
        id_prefix: str = "req",
    ):
        self._bus = bus
        self._event = event
        self.timeout = timeout
        self.label = label
        self._id_prefix = id_prefix
        self._pending: Optional[PendingRequest] = None

    @property
    def pending(self) -> Optional[PendingRequest]:
        return self._pending

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    @property
    def pending_id(self) -> Optional[str]:
        return self._pending.id if self._pending is not None else None

    async def ask(self, payload: Mapping[str, Any]) -> Any:
        if self._pending is not None:
            raise GateBusyError(f"Another {self.label} is already pending ({self._pending.id})")

        loop = asyncio.get_running_loop()
        request_id = f"{self._id_prefix}_{uuid.uuid4().hex[:12]}"
        request = PendingRequest(
            id=request_id,
            payload={**payload, "id": request_id},
            future=loop.create_future(),
            deadline=loop.time() + self.timeout,
        )
        self._pending = request

        try:
            self._bus.publish(self._event, request.payload)
            return await asyncio.wait_for(request.future, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.info("%s %s timed out after %ss", self.label, request_id, self.timeout)
            raise GateTimeoutError(f"No answer to {self.label} within {self.timeout:g}s") from None
        finally:
            if self._pending is request:
                self._pending = None

    def resolve(self, response: Any, request_id: Optional[str] = None) -> bool:
        """Answer the pending request. Returns False if there was none to answer."""
        request = self._take(request_id)
        if request is None:
            return False
        request.future.set_result(response)
        return True

    def reject(self, error: Optional[BaseException] = None, request_id: Optional[str] = None) -> bool:
        """Fail the pending request, by default with ``GateCancelledError``."""
        request = self._take(request_id)
        if request is None:
            return False
        request.future.set_exception(error or GateCancelledError(f"{self.label.capitalize()} cancelled by user"))
        return True

    def _take(self, request_id: Optional[str]) -> Optional[PendingRequest]:
        request = self._pending
        if request is None or request.future.done():
            return None
        if request_id is not None and request.id != request_id:
            logger.warning("Ignoring answer for %s; pending %s is %s", request_id, self.label, request.id)
            return None
        # Free the slot now so a follow-up ask does not race the waiter's cleanup.
        self._pending = None
        return request
