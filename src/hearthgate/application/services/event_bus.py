from collections import defaultdict
import logging
import threading
from typing import Callable, DefaultDict, List, Type


Handler = Callable[[object], None]


class EventBus:
    """Synchronous publish/subscribe hub.

    Handlers run on the publishing thread after the state they describe has
    been committed. A failing handler is logged and isolated; it never undoes
    the commit or stops later handlers.
    """

    def __init__(self) -> None:
        self._subscribers: DefaultDict[Type[object], List[tuple[int, int, Handler]]] = defaultdict(list)
        self._next_order = 0
        self._lock = threading.Lock()
        self._local = threading.local()
        self._logger = logging.getLogger(__name__)

    def subscribe(self, event_type: Type[object], handler: Handler, *, priority: int = 100) -> None:
        with self._lock:
            rows = list(self._subscribers[event_type])
            rows.append((int(priority), self._next_order, handler))
            rows.sort(key=lambda row: (row[0], row[1]))
            self._subscribers[event_type] = rows
            self._next_order += 1

    def publish(self, event: object) -> List[Exception]:
        event_type = type(event)
        with self._lock:
            handlers = list(self._subscribers.get(event_type, ()))
        errors: List[Exception] = []
        for priority, _, handler in handlers:
            try:
                handler(event)
            except Exception as exc:
                errors.append(exc)
                handler_name = getattr(handler, "__qualname__", getattr(handler, "__name__", repr(handler)))
                self._logger.exception(
                    "Event handler failed and was isolated",
                    extra={
                        "event_type": event_type.__name__,
                        "handler": handler_name,
                        "priority": priority,
                    },
                )
        self._local.last_errors = errors
        return list(errors)

    def last_publish_errors(self) -> List[Exception]:
        return list(getattr(self._local, "last_errors", []))
