"""
Page capability interface and an in-process page.

Capture channels never touch globals: everything they need from the
browser (document, pointer/keyboard signals, history, storage, clock and
timers) comes through a ``Page``. ``SimulatedPage`` implements it on top of
the small DOM in ``dom.py`` and a scheduler, which makes capture fully
deterministic when driven with ``ManualScheduler``.
"""
from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, MutableMapping, Optional, Protocol, Tuple

from ..errors import FeatureUnavailable
from .dom import Document, Element, MutationObserver, MutationRecord


Unsubscribe = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


@dataclass
class DomEvent:
    type: str
    target: Optional[Element] = None
    client_x: float = 0
    client_y: float = 0
    page_x: float = 0
    page_y: float = 0
    button: int = 0


class Page(Protocol):
    document: Document
    user_agent: str
    language: str
    timezone: str
    device_pixel_ratio: float
    visibility_state: str
    local_storage: MutableMapping[str, str]
    session_storage: MutableMapping[str, str]

    @property
    def location(self) -> str: ...
    @property
    def title(self) -> str: ...
    @property
    def referrer(self) -> str: ...
    @property
    def screen(self) -> Tuple[int, int]: ...
    @property
    def viewport(self) -> Tuple[int, int]: ...
    @property
    def scroll_position(self) -> Tuple[float, float]: ...
    def document_size(self) -> Tuple[int, int]: ...
    def navigation_timing(self) -> Optional[Dict[str, Any]]: ...
    def observe_mutations(self, callback: Callable[[List[MutationRecord]], None],
                          skip: Optional[Callable[[MutationRecord], bool]] = None) -> Unsubscribe: ...
    def listen(self, event_type: str, handler: Callable[[DomEvent], None]) -> Unsubscribe: ...
    def track_history(self, on_change: Callable[[str], None]) -> "TrackedHistory": ...
    def now(self) -> int: ...
    def call_later(self, delay_ms: float, fn: Callable[[], None]) -> TimerHandle: ...


# ---------- schedulers ----------

class _ManualTimer:
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual clock; timers fire only when ``advance`` moves time past them."""

    def __init__(self, start_ms: int = 0):
        self._now = start_ms
        self._timers: List[Tuple[float, int, _ManualTimer, Callable[[], None]]] = []
        self._seq = itertools.count()

    def now(self) -> int:
        return int(self._now)

    def call_later(self, delay_ms: float, fn: Callable[[], None]) -> _ManualTimer:
        handle = _ManualTimer()
        heapq.heappush(self._timers, (self._now + max(delay_ms, 0), next(self._seq), handle, fn))
        return handle

    def advance(self, ms: float = 0) -> None:
        target = self._now + ms
        while self._timers and self._timers[0][0] <= target:
            due, _, handle, fn = heapq.heappop(self._timers)
            self._now = max(self._now, due)
            if not handle.cancelled:
                fn()
        self._now = target

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if not t[2].cancelled)


class LoopScheduler:
    """Wall clock and timers of the running asyncio loop."""

    def now(self) -> int:
        return int(time.time() * 1000)

    def call_later(self, delay_ms: float, fn: Callable[[], None]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(max(delay_ms, 0) / 1000.0, fn)


# ---------- history ----------

class History:
    """Session history of a SimulatedPage."""

    def __init__(self, page: "SimulatedPage"):
        self._page = page
        self.entries: List[Tuple[Any, str]] = [(None, page.location)]
        self.state: Any = None

    def push_state(self, state: Any, title: str, url: Optional[str] = None) -> None:
        if url is not None:
            self._page._set_location(url)
        self.state = state
        self.entries.append((state, self._page.location))

    def replace_state(self, state: Any, title: str, url: Optional[str] = None) -> None:
        if url is not None:
            self._page._set_location(url)
        self.state = state
        self.entries[-1] = (state, self._page.location)


class TrackedHistory:
    """
    History wrapper handed to the host application.

    Routes push/replace through the real history and reports each call to
    ``on_change`` until ``restore`` is called; afterwards it is a plain
    pass-through. Nothing global is replaced.
    """

    def __init__(self, history: History, on_change: Callable[[str], None]):
        self._history = history
        self._on_change: Optional[Callable[[str], None]] = on_change

    @property
    def active(self) -> bool:
        return self._on_change is not None

    def push_state(self, state: Any, title: str = "", url: Optional[str] = None) -> None:
        self._history.push_state(state, title, url)
        if self._on_change is not None:
            self._on_change("pushState")

    def replace_state(self, state: Any, title: str = "", url: Optional[str] = None) -> None:
        self._history.replace_state(state, title, url)
        if self._on_change is not None:
            self._on_change("replaceState")

    def restore(self) -> History:
        self._on_change = None
        return self._history


# ---------- simulated page ----------

class SimulatedPage:
    def __init__(
        self,
        url: str = "http://localhost/",
        title: str = "",
        referrer: str = "",
        user_agent: str = "webvisor-simulated/1.0",
        language: str = "en-US",
        timezone: str = "UTC",
        screen: Tuple[int, int] = (1920, 1080),
        viewport: Tuple[int, int] = (1280, 720),
        device_pixel_ratio: float = 1.0,
        scheduler=None,
        local_storage: Optional[MutableMapping[str, str]] = None,
        timing: Optional[Dict[str, Any]] = None,
        unsupported: Tuple[str, ...] = (),
    ):
        self.document = Document(title=title)
        self._url = url
        self._referrer = referrer
        self.user_agent = user_agent
        self.language = language
        self.timezone = timezone
        self._screen = screen
        self._viewport = viewport
        self.device_pixel_ratio = device_pixel_ratio
        self.visibility_state = "visible"
        self.scheduler = scheduler or ManualScheduler()
        self.local_storage: MutableMapping[str, str] = local_storage if local_storage is not None else {}
        self.session_storage: MutableMapping[str, str] = {}
        self.timing = timing
        self.unsupported = set(unsupported)
        self.history = History(self)
        self._scroll = (0.0, 0.0)
        self._doc_size = (viewport[0], viewport[1] * 3)
        self._listeners: Dict[str, List[Callable[[DomEvent], None]]] = {}
        self.document.on_records_queued = self._schedule_delivery

    # ---- read-only page state ----
    @property
    def location(self) -> str:
        return self._url

    @property
    def title(self) -> str:
        return self.document.title

    @property
    def referrer(self) -> str:
        return self._referrer

    @property
    def screen(self) -> Tuple[int, int]:
        return self._screen

    @property
    def viewport(self) -> Tuple[int, int]:
        return self._viewport

    @property
    def scroll_position(self) -> Tuple[float, float]:
        return self._scroll

    def document_size(self) -> Tuple[int, int]:
        return self._doc_size

    def navigation_timing(self) -> Optional[Dict[str, Any]]:
        return dict(self.timing) if self.timing is not None else None

    # ---- capabilities ----
    def _require(self, feature: str) -> None:
        if feature in self.unsupported:
            raise FeatureUnavailable(feature)

    def observe_mutations(self, callback: Callable[[List[MutationRecord]], None],
                          skip: Optional[Callable[[MutationRecord], bool]] = None) -> Unsubscribe:
        self._require("mutations")
        observer = MutationObserver(callback, skip)
        observer.observe(self.document.document_element)
        return observer.disconnect

    def listen(self, event_type: str, handler: Callable[[DomEvent], None]) -> Unsubscribe:
        self._require(event_type)
        handlers = self._listeners.setdefault(event_type, [])
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)
        return unsubscribe

    def track_history(self, on_change: Callable[[str], None]) -> TrackedHistory:
        self._require("history")
        return TrackedHistory(self.history, on_change)

    def now(self) -> int:
        return self.scheduler.now()

    def call_later(self, delay_ms: float, fn: Callable[[], None]) -> TimerHandle:
        return self.scheduler.call_later(delay_ms, fn)

    def listener_count(self, event_type: Optional[str] = None) -> int:
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return sum(len(h) for h in self._listeners.values())

    def _schedule_delivery(self) -> None:
        self.scheduler.call_later(0, self.document.deliver_mutations)

    def _set_location(self, url: str) -> None:
        self._url = url

    # ---- driving the page ----
    def dispatch(self, event_type: str, event: Optional[DomEvent] = None) -> None:
        event = event or DomEvent(event_type)
        for handler in list(self._listeners.get(event_type, [])):
            handler(event)

    def flush_mutations(self) -> None:
        self.document.deliver_mutations()

    def advance(self, ms: float = 0) -> None:
        self.scheduler.advance(ms)

    def move_pointer(self, x: float, y: float) -> None:
        sx, sy = self._scroll
        self.dispatch("mousemove", DomEvent("mousemove", None, x, y, x + sx, y + sy))

    def click(self, target: Element, x: float = 0, y: float = 0, button: int = 0) -> None:
        sx, sy = self._scroll
        self.dispatch("click", DomEvent("click", target, x, y, x + sx, y + sy, button))

    def scroll_to(self, x: float, y: float) -> None:
        self._scroll = (x, y)
        self.dispatch("scroll")

    def resize(self, width: int, height: int) -> None:
        self._viewport = (width, height)
        self.dispatch("resize")

    def focus(self, target: Element) -> None:
        self.dispatch("focus", DomEvent("focus", target))

    def blur(self, target: Element) -> None:
        self.dispatch("blur", DomEvent("blur", target))

    def type_text(self, target: Element, text: str) -> None:
        target.value = target.value + text
        self.dispatch("input", DomEvent("input", target))

    def set_checked(self, target: Element, checked: bool) -> None:
        target.checked = checked
        self.dispatch("change", DomEvent("change", target))

    def select_option(self, target: Element, index: int) -> None:
        target.selected_index = index
        self.dispatch("change", DomEvent("change", target))

    def go_to_hash(self, fragment: str) -> None:
        self._url = self._url.split("#", 1)[0] + "#" + fragment.lstrip("#")
        self.dispatch("hashchange")

    def pop_state(self, url: str) -> None:
        self._url = url
        self.dispatch("popstate")

    def hide(self) -> None:
        self.visibility_state = "hidden"
        self.dispatch("visibilitychange")

    def show(self) -> None:
        self.visibility_state = "visible"
        self.dispatch("visibilitychange")

    def unload(self) -> None:
        self.dispatch("beforeunload")
