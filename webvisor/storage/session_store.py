"""
Redis-backed session store.

Keys (all under ``prefix``):
    <p>:session:<id>     hash   sessionId, visitorId, fingerprint, meta (json),
                                createdAt, updatedAt, eventCount
    <p>:events:<id>      list   one json event per entry, append order
    <p>:sessions         zset   session id scored by updatedAt
    <p>:visitor:<fp>     hash   visitorId, firstSeen, lastSeen, visitCount, ...
    <p>:visitors         zset   visitor id scored by lastSeen

Every write touching more than one key runs in a single MULTI/EXEC with
WATCH on the key whose state it reads; redis-py retries on WatchError.
"""
import json
import logging
import time
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import redis

from ..privacy.fingerprint import derive_fingerprint

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


def horizon_for(retention_days: int, now: Optional[int] = None) -> int:
    """Sessions last updated before this epoch-ms value are expired."""
    return (now if now is not None else now_ms()) - retention_days * DAY_MS


class RedisSessionStore:
    def __init__(self, client: redis.Redis, prefix: str = "webvisor",
                 clock: Callable[[], int] = now_ms):
        # client must be created with decode_responses=True
        self.redis = client
        self.prefix = prefix
        self.clock = clock

    @classmethod
    def from_url(cls, url: str, prefix: str = "webvisor") -> "RedisSessionStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), prefix=prefix)

    def _key(self, *parts: str) -> str:
        return ":".join((self.prefix,) + parts)

    @property
    def _sessions_key(self) -> str:
        return self._key("sessions")

    @property
    def _visitors_key(self) -> str:
        return self._key("visitors")

    def ping(self) -> bool:
        return bool(self.redis.ping())

    # ---------- writes ----------

    def append_events(
        self,
        session_id: str,
        events: Sequence[Mapping[str, Any]],
        meta: Optional[Mapping[str, Any]] = None,
        client_address: Optional[str] = None,
    ) -> int:
        """Create-or-update the session, upsert its visitor and append events."""
        meta = dict(meta or {})
        fingerprint = derive_fingerprint(meta, client_address)
        now = self.clock()
        session_key = self._key("session", session_id)
        events_key = self._key("events", session_id)
        visitor_key = self._key("visitor", fingerprint)
        encoded = [json.dumps(dict(e), separators=(",", ":")) for e in events]

        def apply(pipe: redis.client.Pipeline) -> None:
            exists = pipe.exists(session_key)
            pipe.multi()
            if not exists:
                pipe.hset(session_key, mapping={
                    "sessionId": session_id,
                    "visitorId": fingerprint,
                    "fingerprint": fingerprint,
                    "meta": json.dumps(meta),
                    "createdAt": now,
                    "eventCount": 0,
                })
            pipe.hset(visitor_key, mapping={
                "visitorId": fingerprint,
                "lastSeen": now,
                "userAgent": meta.get("userAgent") or "",
                "language": meta.get("language") or "",
            })
            pipe.hsetnx(visitor_key, "firstSeen", now)
            pipe.hincrby(visitor_key, "visitCount", 1)
            pipe.zadd(self._visitors_key, {fingerprint: now})
            if encoded:
                pipe.rpush(events_key, *encoded)
            pipe.hincrby(session_key, "eventCount", len(encoded))
            pipe.hset(session_key, "updatedAt", now)
            pipe.zadd(self._sessions_key, {session_id: now})

        self.redis.transaction(apply, session_key)
        logger.debug("appended %d events to %s", len(encoded), session_id)
        return len(encoded)

    def delete_session(self, session_id: str) -> bool:
        session_key = self._key("session", session_id)

        def apply(pipe: redis.client.Pipeline) -> bool:
            if not pipe.exists(session_key):
                return False
            pipe.multi()
            self._queue_delete(pipe, session_id)
            return True

        return self.redis.transaction(apply, session_key, value_from_callable=True)

    def sweep_expired(self, horizon_ms: int) -> int:
        """Drop every session last updated before ``horizon_ms``; returns how many."""

        def apply(pipe: redis.client.Pipeline) -> int:
            expired = pipe.zrangebyscore(self._sessions_key, "-inf", f"({horizon_ms}")
            pipe.multi()
            for session_id in expired:
                self._queue_delete(pipe, session_id)
            return len(expired)

        removed = self.redis.transaction(apply, self._sessions_key, value_from_callable=True)
        if removed:
            logger.info("retention sweep removed %d sessions", removed)
        return removed

    def _queue_delete(self, pipe: redis.client.Pipeline, session_id: str) -> None:
        pipe.delete(self._key("session", session_id), self._key("events", session_id))
        pipe.zrem(self._sessions_key, session_id)

    # ---------- reads ----------

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        raw = self.redis.hgetall(self._key("session", session_id))
        if not raw:
            return None
        session = self._session_view(raw)
        visitor = self.redis.hgetall(self._key("visitor", session["visitorId"]))
        session["visitor"] = self._visitor_view(visitor) if visitor else None
        # sort is stable: equal timestamps keep append order
        session["events"] = sorted(self.iter_events(session_id), key=lambda e: e.get("timestamp", 0))
        return session

    def iter_events(self, session_id: str) -> Iterator[Dict[str, Any]]:
        for raw in self.redis.lrange(self._key("events", session_id), 0, -1):
            yield json.loads(raw)

    def list_sessions(self, limit: int = 50, offset: int = 0) -> Tuple[List[Dict[str, Any]], int]:
        """Most recently updated first."""
        ids = self.redis.zrevrange(self._sessions_key, offset, offset + limit - 1)
        total = self.redis.zcard(self._sessions_key)
        pipe = self.redis.pipeline(transaction=False)
        for session_id in ids:
            pipe.hgetall(self._key("session", session_id))
        rows = []
        for raw in pipe.execute():
            if not raw:
                continue  # removed between the two reads
            session = self._session_view(raw)
            session["visitCount"] = int(
                self.redis.hget(self._key("visitor", session["visitorId"]), "visitCount") or 0
            )
            rows.append(session)
        return rows, total

    def list_visitors(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recently seen first."""
        ids = self.redis.zrevrange(self._visitors_key, 0, limit - 1)
        pipe = self.redis.pipeline(transaction=False)
        for visitor_id in ids:
            pipe.hgetall(self._key("visitor", visitor_id))
        return [self._visitor_view(raw) for raw in pipe.execute() if raw]

    def session_ids(self) -> List[str]:
        return self.redis.zrevrange(self._sessions_key, 0, -1)

    @staticmethod
    def _session_view(raw: Mapping[str, str]) -> Dict[str, Any]:
        meta = json.loads(raw.get("meta") or "{}")
        return {
            "sessionId": raw["sessionId"],
            "visitorId": raw.get("visitorId"),
            "fingerprint": raw.get("fingerprint"),
            "url": meta.get("url", ""),
            "title": meta.get("title", ""),
            "referrer": meta.get("referrer", ""),
            "userAgent": meta.get("userAgent", ""),
            "screen": meta.get("screen"),
            "viewport": meta.get("viewport"),
            "meta": meta,
            "createdAt": int(raw.get("createdAt", 0)),
            "updatedAt": int(raw.get("updatedAt", 0)),
            "eventCount": int(raw.get("eventCount", 0)),
        }

    @staticmethod
    def _visitor_view(raw: Mapping[str, str]) -> Dict[str, Any]:
        return {
            "visitorId": raw.get("visitorId"),
            "userAgent": raw.get("userAgent", ""),
            "language": raw.get("language", ""),
            "firstSeen": int(raw.get("firstSeen", 0)),
            "lastSeen": int(raw.get("lastSeen", 0)),
            "visitCount": int(raw.get("visitCount", 0)),
        }
