import functools
import logging
from typing import Callable, List

from ..events import BaseEvent
from ..privacy.redaction import RedactionPolicy
from .page import Page, Unsubscribe

logger = logging.getLogger(__name__)

EventSink = Callable[[BaseEvent], None]


def guarded(fn):
    """Log and swallow errors raised by an observation callback."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except Exception:
            logger.exception("capture callback %s failed", getattr(fn, "__qualname__", fn))
            return None
    return wrapper


class Channel:
    """Base for capture channels: owns subscriptions, emits through ``sink``."""

    name = "channel"

    def __init__(self, page: Page, sink: EventSink, policy: RedactionPolicy):
        self.page = page
        self.sink = sink
        self.policy = policy
        self.active = False
        self._subscriptions: List[Unsubscribe] = []

    def start(self) -> None:
        if self.active:
            return
        self.active = True
        self._start()

    def stop(self) -> None:
        if not self.active:
            return
        self.active = False
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()
        self._stop()

    def _start(self) -> None:
        raise NotImplementedError

    def _stop(self) -> None:
        pass

    def _listen(self, event_type: str, handler) -> None:
        self._subscriptions.append(self.page.listen(event_type, guarded(handler)))
