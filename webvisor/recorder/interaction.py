from ..events import (
    ClickData,
    MouseClickEvent,
    MouseMoveEvent,
    PointerData,
    ResizeData,
    ResizeEvent,
    ScrollData,
    ScrollEvent,
)
from .channel import Channel, guarded
from .config import RESIZE_THROTTLE_MS
from .page import DomEvent
from .selectors import selector_of
from .throttle import Throttle

TEXT_PREVIEW_LEN = 50


class InteractionWatcher(Channel):
    """Pointer moves and clicks, scroll position and viewport size."""

    name = "interaction"

    def __init__(self, page, sink, policy, mouse_throttle: int = 50, scroll_throttle: int = 100,
                 resize_throttle: int = RESIZE_THROTTLE_MS):
        super().__init__(page, sink, policy)
        self.mouse_throttle = mouse_throttle
        self.scroll_throttle = scroll_throttle
        self.resize_throttle = resize_throttle
        self._throttles = []

    def _throttled(self, fn, interval_ms):
        throttle = Throttle(guarded(fn), interval_ms, self.page.now, self.page.call_later)
        self._throttles.append(throttle)
        return throttle

    def _start(self) -> None:
        self._listen("mousemove", self._throttled(self.on_mouse_move, self.mouse_throttle))
        self._listen("click", self.on_click)
        self._listen("scroll", self._throttled(self.on_scroll, self.scroll_throttle))
        self._listen("resize", self._throttled(self.on_resize, self.resize_throttle))

    def _stop(self) -> None:
        for throttle in self._throttles:
            throttle.cancel()
        self._throttles.clear()

    def on_mouse_move(self, event: DomEvent) -> None:
        self.sink(MouseMoveEvent(
            timestamp=self.page.now(),
            data=PointerData(x=event.client_x, y=event.client_y, page_x=event.page_x, page_y=event.page_y),
        ))

    def on_click(self, event: DomEvent) -> None:
        target = event.target
        if target is None or self.policy.is_excluded(target):
            return
        self.sink(MouseClickEvent(
            timestamp=self.page.now(),
            data=ClickData(
                x=event.client_x,
                y=event.client_y,
                page_x=event.page_x,
                page_y=event.page_y,
                button=event.button,
                selector=selector_of(target),
                tag_name=target.tag_name,
                text_content=target.text_content[:TEXT_PREVIEW_LEN],
            ),
        ))

    def on_scroll(self, event: DomEvent) -> None:
        x, y = self.page.scroll_position
        doc_w, doc_h = self.page.document_size()
        view_w, view_h = self.page.viewport
        self.sink(ScrollEvent(
            timestamp=self.page.now(),
            data=ScrollData(x=x, y=y, max_x=max(doc_w - view_w, 0), max_y=max(doc_h - view_h, 0)),
        ))

    def on_resize(self, event: DomEvent) -> None:
        width, height = self.page.viewport
        self.sink(ResizeEvent(
            timestamp=self.page.now(),
            data=ResizeData(width=width, height=height, device_pixel_ratio=self.page.device_pixel_ratio),
        ))
