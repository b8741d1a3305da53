import asyncio
import http.client
import json

import httpx
import pytest

from webvisor.delivery.pipeline import BatchPipeline
from webvisor.delivery.transport import HttpTransport
from webvisor.errors import DeliveryError
from webvisor.events import MouseMoveEvent, PointerData


def _moves(start, count):
    return [MouseMoveEvent(timestamp=t, data=PointerData(x=t, y=0, page_x=t, page_y=0))
            for t in range(start, start + count)]


def _timestamps(payload):
    return [e["timestamp"] for e in payload["events"]]


class TestBatchPipeline:
    def test_flush_takes_batches_from_the_head_in_order(self, transport):
        async def scenario():
            pipeline = BatchPipeline("wv_s", transport, batch_size=3, meta=lambda: {"url": "u"})
            for event in _moves(0, 2):
                pipeline.enqueue(event)
            assert await pipeline.flush()
            return pipeline

        pipeline = asyncio.run(scenario())
        [payload] = transport.payloads
        assert payload["sessionId"] == "wv_s"
        assert payload["meta"] == {"url": "u"}
        assert _timestamps(payload) == [0, 1]
        assert len(pipeline) == 0 and pipeline.delivered == 2

    def test_full_batch_flushes_without_a_timer(self, transport):
        async def scenario():
            pipeline = BatchPipeline("wv_s", transport, batch_size=3)
            for event in _moves(0, 7):
                pipeline.enqueue(event)
            await pipeline.wait_idle()
            return pipeline

        pipeline = asyncio.run(scenario())
        assert [_timestamps(p) for p in transport.payloads] == [[0, 1, 2], [3, 4, 5]]
        assert [e.timestamp for e in pipeline.pending] == [6]

    def test_failed_batch_goes_back_ahead_of_newer_events(self, transport):
        async def scenario():
            pipeline = BatchPipeline("wv_s", transport, batch_size=10)
            for event in _moves(0, 3):
                pipeline.enqueue(event)
            transport.fail_with = DeliveryError(500)
            assert not await pipeline.flush()
            for event in _moves(3, 2):
                pipeline.enqueue(event)
            assert [e.timestamp for e in pipeline.pending] == [0, 1, 2, 3, 4]
            transport.fail_with = None
            assert await pipeline.flush()
            return pipeline

        pipeline = asyncio.run(scenario())
        [payload] = transport.payloads
        assert _timestamps(payload) == [0, 1, 2, 3, 4]
        assert pipeline.failures == 1

    def test_network_errors_requeue_too(self, transport):
        async def scenario():
            pipeline = BatchPipeline("wv_s", transport, batch_size=2)
            pipeline._queue.extend(_moves(0, 4))
            transport.fail_with = ConnectionRefusedError()
            assert not await pipeline.drain()
            return pipeline

        pipeline = asyncio.run(scenario())
        assert transport.attempts == 1
        assert len(pipeline) == 4

    def test_unexpected_transport_failure_keeps_the_batch(self, transport):
        async def scenario():
            pipeline = BatchPipeline("wv_s", transport, batch_size=10)
            for event in _moves(0, 3):
                pipeline.enqueue(event)
            transport.fail_with = http.client.BadStatusLine("garbage")
            assert not await pipeline.flush()
            return pipeline

        pipeline = asyncio.run(scenario())
        assert [e.timestamp for e in pipeline.pending] == [0, 1, 2]
        assert pipeline.failures == 1 and pipeline.delivered == 0

    def test_flush_on_empty_queue_sends_nothing(self, transport):
        assert asyncio.run(BatchPipeline("wv_s", transport).flush())
        assert transport.attempts == 0

    def test_schedule_without_a_loop_keeps_events(self, transport):
        pipeline = BatchPipeline("wv_s", transport, batch_size=1)
        pipeline.enqueue(_moves(0, 1)[0])
        assert pipeline.schedule_flush() is None
        assert len(pipeline) == 1


class TestHttpTransport:
    def _transport(self, handler, endpoint="http://collector.invalid/api/webvisor/events"):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return HttpTransport(endpoint, client=client)

    def test_error_status_raises_delivery_error(self):
        transport = self._transport(lambda request: httpx.Response(500, json={"error": "Internal server error"}))
        with pytest.raises(DeliveryError) as err:
            asyncio.run(transport.send({"sessionId": "wv_s", "events": []}))
        assert err.value.status == 500

    def test_posts_json(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["type"] = request.headers["content-type"]
            return httpx.Response(200, json={"success": True, "eventsReceived": 0})

        asyncio.run(self._transport(handler, "http://collector.invalid/e").send({"sessionId": "wv_s", "events": []}))
        assert seen == {"method": "POST", "url": "http://collector.invalid/e",
                        "body": {"sessionId": "wv_s", "events": []}, "type": "application/json"}

    def test_connection_failure_is_a_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(httpx.TransportError):
            asyncio.run(self._transport(handler).send({"sessionId": "wv_s", "events": []}))

    def test_unreachable_collector_requeues_through_the_pipeline(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async def scenario():
            pipeline = BatchPipeline("wv_s", self._transport(handler), batch_size=5)
            pipeline._queue.extend(_moves(0, 2))
            assert not await pipeline.flush()
            return pipeline

        pipeline = asyncio.run(scenario())
        assert [e.timestamp for e in pipeline.pending] == [0, 1]
