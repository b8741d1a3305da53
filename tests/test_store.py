import pandas as pd

from webvisor.storage.session_store import DAY_MS, horizon_for
from webvisor.workers import events_writer
from webvisor.workers.retention import sweep

META = {
    "userAgent": "UA/1.0",
    "language": "ru-RU",
    "screen": {"width": 1440, "height": 900},
    "url": "https://shop.example/",
    "title": "Shop",
    "timezone": "Europe/Moscow",
}


def _events(*timestamps, kind=2):
    return [{"type": kind, "timestamp": t, "data": {"x": i}} for i, t in enumerate(timestamps)]


class TestAppendEvents:
    def test_two_batches_make_one_session(self, store, clock):
        assert store.append_events("wv_a", _events(1, 2, 3), META, "10.0.0.1") == 3
        clock.now += 500
        assert store.append_events("wv_a", _events(4, 5), dict(META, url="https://shop.example/cart")) == 2
        session = store.get_session("wv_a")
        assert session["eventCount"] == 5
        assert [e["timestamp"] for e in session["events"]] == [1, 2, 3, 4, 5]
        assert session["updatedAt"] - session["createdAt"] == 500
        # metadata comes from the first batch only
        assert session["url"] == "https://shop.example/"
        assert session["screen"] == {"width": 1440, "height": 900}

    def test_events_sorted_by_timestamp_keep_append_order_on_ties(self, store):
        store.append_events("wv_a", [
            {"type": 2, "timestamp": 20, "data": {"n": "late"}},
            {"type": 3, "timestamp": 10, "data": {"n": "first"}},
            {"type": 4, "timestamp": 10, "data": {"n": "second"}},
        ], META)
        events = store.get_session("wv_a")["events"]
        assert [e["data"]["n"] for e in events] == ["first", "second", "late"]

    def test_empty_batch_still_creates_the_session(self, store):
        assert store.append_events("wv_empty", [], META) == 0
        assert store.get_session("wv_empty")["eventCount"] == 0

    def test_visitor_is_upserted_per_batch(self, store, clock):
        store.append_events("wv_a", _events(1), META, "10.0.0.1")
        clock.now += 10
        store.append_events("wv_b", _events(2), META, "10.0.0.1")
        [visitor] = store.list_visitors()
        assert visitor["visitCount"] == 2
        assert visitor["lastSeen"] - visitor["firstSeen"] == 10
        assert store.get_session("wv_a")["visitorId"] == store.get_session("wv_b")["visitorId"]
        assert store.get_session("wv_a")["visitor"]["userAgent"] == "UA/1.0"

    def test_different_addresses_are_different_visitors(self, store):
        store.append_events("wv_a", _events(1), META, "10.0.0.1")
        store.append_events("wv_b", _events(1), META, "10.0.0.2")
        assert len(store.list_visitors()) == 2


class TestReads:
    def test_unknown_session(self, store):
        assert store.get_session("nope") is None

    def test_list_orders_by_last_update(self, store, clock):
        for session_id in ("wv_a", "wv_b", "wv_c"):
            clock.now += 1000
            store.append_events(session_id, _events(1), META)
        clock.now += 1000
        store.append_events("wv_a", _events(2), META)

        rows, total = store.list_sessions(limit=2)
        assert total == 3
        assert [r["sessionId"] for r in rows] == ["wv_a", "wv_c"]
        assert rows[0]["visitCount"] == 4
        rows, _ = store.list_sessions(limit=2, offset=2)
        assert [r["sessionId"] for r in rows] == ["wv_b"]

    def test_delete(self, store):
        store.append_events("wv_a", _events(1, 2), META)
        assert store.delete_session("wv_a")
        assert store.get_session("wv_a") is None
        assert list(store.iter_events("wv_a")) == []
        assert not store.delete_session("wv_a")
        assert store.list_sessions() == ([], 0)


class TestRetention:
    def test_horizon(self):
        assert horizon_for(15, now=20 * DAY_MS) == 5 * DAY_MS

    def test_sweep_removes_only_expired_sessions(self, store, clock):
        now = clock.now
        clock.now = now - 16 * DAY_MS
        store.append_events("wv_old", _events(1), META)
        clock.now = now - DAY_MS
        store.append_events("wv_recent", _events(1), META)
        clock.now = now

        assert sweep(store, retention_days=15) == 1
        assert store.get_session("wv_old") is None
        assert list(store.iter_events("wv_old")) == []
        assert store.get_session("wv_recent") is not None
        assert sweep(store, retention_days=15) == 0

    def test_activity_extends_the_session(self, store, clock):
        now = clock.now
        clock.now = now - 16 * DAY_MS
        store.append_events("wv_a", _events(1), META)
        clock.now = now - DAY_MS
        store.append_events("wv_a", _events(2), META)
        clock.now = now
        assert store.sweep_expired(horizon_for(15, now)) == 0


class TestExport:
    def test_parquet_rows(self, store, tmp_path):
        store.append_events("wv_a", _events(5, 1), META)
        store.append_events("wv_b", _events(3, kind=99), META)
        path = events_writer.export(store, outdir=tmp_path)
        df = pd.read_parquet(path)
        assert list(df.columns) == events_writer.COLUMNS
        assert df[df.sessionId == "wv_a"].timestamp.tolist() == [1, 5]
        assert df[df.sessionId == "wv_b"].kind.tolist() == ["UNKNOWN"]
        assert set(df[df.sessionId == "wv_a"].kind) == {"MOUSE_MOVE"}

    def test_nothing_to_export(self, store, tmp_path):
        assert events_writer.export(store, outdir=tmp_path) is None
