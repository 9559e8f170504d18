# notifier.py
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

# kinds published on the stream
LOG = "log"
PROGRESS = "progress"
SCREENSHOT = "screenshot"
FINISHED = "finished"


@dataclass
class Notification:
    kind: str
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)


class Notifier:
    """
    Fire-and-forget notification stream (log lines, progress, terminal event).

    Subscribers may be plain functions or coroutine functions. A failing
    subscriber is logged and never interrupts the publisher.
    """

    def __init__(self):
        self._subscribers: List[Callable[[Notification], Any]] = []

    def subscribe(self, callback: Callable[[Notification], Any]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    async def publish(self, note: Notification) -> None:
        for cb in list(self._subscribers):
            try:
                res = cb(note)
                if inspect.isawaitable(res):
                    await res
            except Exception:
                logger.exception("[notify] subscriber failed on %s notification", note.kind)

    async def log(self, message: str, level: int = logging.INFO, source: logging.Logger = logger) -> None:
        """Log ``message`` and publish it as a log line."""
        source.log(level, message)
        await self.publish(Notification(LOG, message, {"level": logging.getLevelName(level)}))
