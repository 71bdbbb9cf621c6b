"""
Failure notification for entity services.

Services report read and write failures to an optional observer through
``notify(event_name, error)``. ``NotificationService`` is the stock observer:
it fans each event out to the listeners subscribed to its name.
"""

import logging
from collections import defaultdict
from typing import Callable, Dict, List, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

EXCEPTION_EVENT = "exception"

Listener = Callable[[str, BaseException], None]


@runtime_checkable
class Observer(Protocol):
    """Receives failure notifications."""

    def notify(self, event_name: str, error: BaseException) -> None:
        ...


class NotificationService:
    """Dispatches failure events to subscribed listeners."""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    def subscribe(self, event_name: str, listener: Listener) -> None:
        """
        Subscribe a listener to an event.

        Args:
            event_name: Event name, e.g. ``"exception"``
            listener: Callable receiving the event name and the error
        """
        self._listeners[event_name].append(listener)

    def unsubscribe(self, event_name: str, listener: Listener) -> None:
        if listener in self._listeners.get(event_name, []):
            self._listeners[event_name].remove(listener)

    def has_listeners(self, event_name: str) -> bool:
        return bool(self._listeners.get(event_name))

    def notify(self, event_name: str, error: BaseException) -> None:
        """
        Dispatch an event to its listeners, in subscription order.

        A listener that raises is logged; the remaining listeners still run.
        """
        for listener in list(self._listeners.get(event_name, [])):
            try:
                listener(event_name, error)
            except Exception as e:
                logger.error(f"Listener for {event_name} event failed: {str(e)}", exc_info=True)
