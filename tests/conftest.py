import random

import fakeredis
import pytest

from webvisor.privacy.redaction import RedactionPolicy
from webvisor.recorder.config import RecorderConfig
from webvisor.recorder.identity import NodeRegistry
from webvisor.recorder.page import ManualScheduler, SimulatedPage
from webvisor.recorder.serializer import NodeSerializer
from webvisor.recorder.session import Recorder
from webvisor.storage.session_store import RedisSessionStore

START_MS = 1_700_000_000_000


class RecordingTransport:
    """Collects posted payloads; raises ``fail_with`` instead while it is set."""

    def __init__(self):
        self.payloads = []
        self.attempts = 0
        self.fail_with = None

    async def send(self, payload):
        self.attempts += 1
        if self.fail_with is not None:
            raise self.fail_with
        self.payloads.append(payload)

    @property
    def events(self):
        return [e for p in self.payloads for e in p["events"]]


class Clock:
    def __init__(self, now=START_MS):
        self.now = now

    def __call__(self):
        return self.now


def build_page(**kwargs):
    kwargs.setdefault("url", "https://shop.example/catalog")
    kwargs.setdefault("title", "Catalog")
    kwargs.setdefault("scheduler", ManualScheduler(START_MS))
    page = SimulatedPage(**kwargs)
    doc = page.document
    doc.body.append(
        doc.create_element("h1", {"id": "title"}, "Catalog"),
        doc.create_element("ul", {"class": "items"},
                           doc.create_element("li", {}, "one"),
                           doc.create_element("li", {}, "two")),
        doc.create_element("form", {"id": "checkout"},
                           doc.create_element("input", {"name": "email", "type": "email"}),
                           doc.create_element("input", {"name": "nickname"}),
                           doc.create_element("input", {"type": "password", "name": "pw"}),
                           doc.create_element("input", {"type": "checkbox", "name": "terms"}),
                           doc.create_element("select", {"name": "size"},
                                              doc.create_element("option", {"value": "s"}, "Small"),
                                              doc.create_element("option", {"value": "l"}, "Large"))),
        doc.create_element("div", {"data-ym-disable": "", "class": "private"},
                           doc.create_element("p", {}, "hidden text"),
                           doc.create_element("input", {"name": "secret-note"})),
    )
    return page


@pytest.fixture
def page():
    return build_page()


@pytest.fixture
def make_page():
    return build_page


@pytest.fixture
def policy():
    return RedactionPolicy()


@pytest.fixture
def serializer(policy):
    return NodeSerializer(NodeRegistry(), policy)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def make_recorder(transport):
    def make(page, **options):
        config = RecorderConfig(**options)
        return Recorder(page, config=config, transport=transport, rng=random.Random(7))
    return make


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def store(redis_client, clock):
    return RedisSessionStore(redis_client, prefix="test", clock=clock)
