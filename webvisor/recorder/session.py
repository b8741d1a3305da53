from __future__ import annotations

import logging
import random
import string
from enum import Enum
from typing import Any, Dict, List, Optional

from ..delivery.pipeline import BatchPipeline
from ..delivery.transport import HttpTransport, Transport
from ..errors import FeatureUnavailable
from ..events import BaseEvent, SessionEndData, SessionEndEvent, SessionStartData, SessionStartEvent
from ..privacy.fingerprint import client_fingerprint
from ..privacy.redaction import RedactionPolicy
from .channel import Channel, guarded
from .config import SAMPLING_KEY, SESSION_KEY, RecorderConfig
from .identity import NodeRegistry
from .inputs import InputWatcher
from .interaction import InteractionWatcher
from .mutations import MutationWatcher
from .navigation import NavigationWatcher
from .page import DomEvent, Page, TrackedHistory, Unsubscribe
from .serializer import NodeSerializer

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


class RecorderState(Enum):
    IDLE = "idle"
    EXCLUDED = "excluded"
    UNSAMPLED = "unsampled"
    RECORDING = "recording"
    STOPPED = "stopped"


def _base36(n: int) -> str:
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
        if n == 0:
            return out


def generate_session_id(now_ms: int, rng: random.Random) -> str:
    suffix = "".join(rng.choice(_BASE36) for _ in range(8))
    return f"wv_{_base36(now_ms)}_{suffix}"


class Recorder:
    """
    Session controller.

    idle -> excluded | unsampled    (terminal, nothing is captured)
    idle -> recording -> stopped    (terminal)

    Owns the session id, the capture channels and the outbound pipeline.
    """

    def __init__(self, page: Page, config: Optional[RecorderConfig] = None,
                 transport: Optional[Transport] = None, rng: Optional[random.Random] = None):
        self.page = page
        self.config = config or RecorderConfig()
        self.policy = RedactionPolicy.from_config(self.config.privacy)
        self.transport = transport or HttpTransport(self.config.endpoint)
        self.rng = rng or random.Random()
        self.state = RecorderState.IDLE
        self.session_id: Optional[str] = None
        self.registry = NodeRegistry()
        self.serializer = NodeSerializer(self.registry, self.policy)
        self.channels: List[Channel] = []
        self.pipeline: Optional[BatchPipeline] = None
        self.event_count = 0
        self._timer = None
        self._subscriptions: List[Unsubscribe] = []
        self._navigation: Optional[NavigationWatcher] = None

    @property
    def recording(self) -> bool:
        return self.state is RecorderState.RECORDING

    @property
    def history(self) -> Optional[TrackedHistory]:
        """History wrapper the host app should navigate through while recording."""
        return self._navigation.history if self._navigation is not None else None

    def should_sample(self) -> bool:
        """Per-visitor decision, rolled once and kept in page storage."""
        stored = self.page.local_storage.get(SAMPLING_KEY)
        if stored is not None:
            return stored == "true"
        sampled = self.rng.random() * 100 < self.config.sampling_rate
        self.page.local_storage[SAMPLING_KEY] = "true" if sampled else "false"
        return sampled

    def start(self) -> bool:
        if self.state is RecorderState.RECORDING:
            logger.warning("already recording session %s", self.session_id)
            return False
        if self.state is not RecorderState.IDLE:
            return False
        if self.policy.is_page_excluded(self.page.location):
            logger.info("page excluded from recording")
            self.state = RecorderState.EXCLUDED
            return False
        if not self.should_sample():
            logger.info("visitor not sampled")
            self.state = RecorderState.UNSAMPLED
            return False

        page = self.page
        self.session_id = page.session_storage.get(SESSION_KEY) or generate_session_id(page.now(), self.rng)
        page.session_storage[SESSION_KEY] = self.session_id
        self.pipeline = BatchPipeline(self.session_id, self.transport, self.config.batch_size,
                                      meta=self.metadata, clock=page.now)
        self.state = RecorderState.RECORDING

        self.handle_event(SessionStartEvent(
            timestamp=page.now(),
            data=SessionStartData(url=page.location, title=page.title, referrer=page.referrer),
        ))
        self._navigation = NavigationWatcher(page, self.handle_event, self.policy)
        self.channels = [
            MutationWatcher(page, self.handle_event, self.policy, self.serializer),
            InteractionWatcher(page, self.handle_event, self.policy,
                               mouse_throttle=self.config.mouse_throttle,
                               scroll_throttle=self.config.scroll_throttle),
            InputWatcher(page, self.handle_event, self.policy),
            self._navigation,
        ]
        for channel in self.channels:
            self._start_channel(channel)

        # after the channels, so unload/hidden events are queued before the flush
        self._listen("beforeunload", self._flush_now)
        self._listen("visibilitychange", self._on_visibility_change)
        self._arm_batch_timer()

        logger.info("recording started - session %s", self.session_id)
        return True

    async def stop(self) -> bool:
        if self.state is not RecorderState.RECORDING:
            return False

        self.handle_event(SessionEndEvent(
            timestamp=self.page.now(),
            data=SessionEndData(url=self.page.location, events_recorded=self.event_count),
        ))
        self.state = RecorderState.STOPPED

        for channel in self.channels:
            channel.stop()
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        await self.pipeline.wait_idle()
        if not await self.pipeline.drain():
            logger.warning("%d events left undelivered for %s", len(self.pipeline), self.session_id)
        logger.info("recording stopped - %d events recorded", self.event_count)
        return True

    def handle_event(self, event: BaseEvent) -> None:
        if not self.recording:
            return
        event.session_id = self.session_id
        self.event_count += 1
        self.pipeline.enqueue(event)

    def metadata(self) -> Dict[str, Any]:
        page = self.page
        width, height = page.screen
        vw, vh = page.viewport
        return {
            "userAgent": page.user_agent,
            "language": page.language,
            "screen": {"width": width, "height": height},
            "viewport": {"width": vw, "height": vh},
            "url": page.location,
            "title": page.title,
            "referrer": page.referrer,
            "timezone": page.timezone,
            "fingerprint": client_fingerprint(page.screen, page.timezone, page.language, page.user_agent),
        }

    def _start_channel(self, channel: Channel) -> None:
        try:
            channel.start()
        except FeatureUnavailable as e:
            logger.info("%s capture unavailable: %s", channel.name, e)
            channel.stop()

    def _listen(self, event_type: str, handler) -> None:
        try:
            self._subscriptions.append(self.page.listen(event_type, guarded(handler)))
        except FeatureUnavailable:
            logger.info("%s signal unavailable; no flush on it", event_type)

    def _flush_now(self, event: Optional[DomEvent] = None) -> None:
        self.pipeline.schedule_flush()

    def _on_visibility_change(self, event: DomEvent) -> None:
        if self.page.visibility_state == "hidden":
            self.pipeline.schedule_flush()

    def _arm_batch_timer(self) -> None:
        self._timer = self.page.call_later(self.config.batch_interval, self._on_batch_timer)

    def _on_batch_timer(self) -> None:
        if not self.recording:
            return
        self._arm_batch_timer()
        self.pipeline.schedule_flush()
