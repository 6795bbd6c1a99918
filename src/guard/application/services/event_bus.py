from collections import defaultdict
import logging
from typing import Callable, DefaultDict, List, Type

logger = logging.getLogger(__name__)

Handler = Callable[[object], None]


class EventBus:
    """Synchronous publish/subscribe keyed by event class.

    Handlers run in (priority, subscription order). A failing handler is
    logged and recorded; the remaining handlers still run.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[Type[object], List[tuple[int, int, Handler]]] = defaultdict(list)
        self._sequence = 0
        self._errors: List[Exception] = []

    def subscribe(self, event_type: Type[object], handler: Handler, *, priority: int = 100) -> Callable[[], None]:
        entry = (int(priority), self._sequence, handler)
        self._sequence += 1
        rows = self._handlers[event_type]
        rows.append(entry)
        rows.sort(key=lambda row: (row[0], row[1]))

        def unsubscribe() -> None:
            if entry in self._handlers[event_type]:
                self._handlers[event_type].remove(entry)

        return unsubscribe

    def publish(self, event: object) -> None:
        errors: List[Exception] = []
        event_type = type(event)
        for priority, _, handler in list(self._handlers.get(event_type, ())):
            try:
                handler(event)
            except Exception as exc:
                errors.append(exc)
                logger.exception(
                    "Guard event handler failed and was isolated",
                    extra={
                        "event_type": event_type.__name__,
                        "handler": getattr(handler, "__qualname__", repr(handler)),
                        "priority": priority,
                    },
                )
        self._errors = errors

    def subscriber_count(self, event_type: Type[object]) -> int:
        return len(self._handlers.get(event_type, ()))

    def last_publish_errors(self) -> List[Exception]:
        return list(self._errors)
