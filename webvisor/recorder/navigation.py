import logging
from typing import Optional

from ..events import (
    NavigationTiming,
    PageLoadData,
    PageLoadEvent,
    PageTransitionData,
    PageTransitionEvent,
    SessionEndData,
    SessionEndEvent,
)
from .channel import Channel, guarded
from .page import DomEvent, TrackedHistory

logger = logging.getLogger(__name__)


class NavigationWatcher(Channel):
    """
    Page load, SPA route changes, unload and visibility loss.

    Route changes made through ``history`` (the wrapper returned by the
    page) are reported as page transitions; popstate and hashchange come
    from the page's own signals.
    """

    name = "navigation"

    def __init__(self, page, sink, policy):
        super().__init__(page, sink, policy)
        self.current_url = ""
        self.history: Optional[TrackedHistory] = None

    def _start(self) -> None:
        self.record_page_load()
        self._listen("popstate", lambda e: self.record_transition("popstate"))
        self._listen("hashchange", lambda e: self.record_transition("hashchange"))
        self._listen("beforeunload", self.on_unload)
        self._listen("visibilitychange", self.on_visibility_change)
        self.history = self.page.track_history(guarded(self.record_transition))

    def _stop(self) -> None:
        if self.history is not None:
            self.history.restore()

    def record_page_load(self) -> None:
        self.current_url = self.page.location
        if self.policy.is_page_excluded(self.current_url):
            return
        timing = self.page.navigation_timing()
        self.sink(PageLoadEvent(
            timestamp=self.page.now(),
            data=PageLoadData(
                url=self.current_url,
                title=self.page.title,
                referrer=self.page.referrer,
                timing=NavigationTiming.model_validate(timing) if timing else None,
            ),
        ))

    def record_transition(self, trigger: str) -> None:
        new_url = self.page.location
        if new_url == self.current_url:
            return
        previous, self.current_url = self.current_url, new_url
        if self.policy.is_page_excluded(new_url):
            logger.debug("transition to excluded page not recorded")
            return
        self.sink(PageTransitionEvent(
            timestamp=self.page.now(),
            data=PageTransitionData(trigger=trigger, from_url=previous, to=new_url, title=self.page.title),
        ))

    def on_unload(self, event: DomEvent) -> None:
        self.sink(SessionEndEvent(
            timestamp=self.page.now(),
            data=SessionEndData(url=self.page.location, reason="beforeunload"),
        ))

    def on_visibility_change(self, event: DomEvent) -> None:
        if self.page.visibility_state != "hidden":
            return
        self.sink(PageTransitionEvent(
            timestamp=self.page.now(),
            data=PageTransitionData(action="hidden", url=self.page.location),
        ))
