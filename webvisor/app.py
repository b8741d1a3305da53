import logging
from typing import Optional

import redis
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import settings
from .events import EventBatch
from .replay import SessionReplayer
from .storage.session_store import RedisSessionStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Webvisor Collector", version="0.1.0")

# recorder scripts post from whatever origin embeds them
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

_store: Optional[RedisSessionStore] = None


def get_store() -> RedisSessionStore:
    global _store
    if _store is None:
        _store = RedisSessionStore.from_url(settings.REDIS_URL, prefix=settings.KEY_PREFIX)
    return _store


def client_address(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


@app.exception_handler(RequestValidationError)
async def invalid_body(request: Request, exc: RequestValidationError):
    logger.info("rejected request to %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


@app.exception_handler(redis.RedisError)
async def storage_failure(request: Request, exc: redis.RedisError):
    logger.error("storage error on %s: %r", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health")
def health(store: RedisSessionStore = Depends(get_store)):
    redis_ok = False
    try:
        redis_ok = store.ping()
    except redis.RedisError as e:
        logger.warning("health check: redis unreachable: %r", e)
    return {"ok": True, "service": "webvisor-collector", "redis": redis_ok}


@app.post(settings.API_PREFIX + "/events")
def ingest(batch: EventBatch, request: Request, store: RedisSessionStore = Depends(get_store)):
    """
    Accept one batch from a recorder. The whole batch lands in one
    transaction: session created on first sight, visitor upserted, events
    appended.
    """
    events = [e.to_wire() for e in batch.events]
    count = store.append_events(
        batch.session_id,
        events,
        meta=batch.meta.to_wire(),
        client_address=client_address(request),
    )
    return {"success": True, "eventsReceived": count}


@app.get(settings.API_PREFIX + "/sessions")
def list_sessions(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    store: RedisSessionStore = Depends(get_store),
):
    sessions, total = store.list_sessions(limit=limit, offset=offset)
    return {"sessions": sessions, "total": total, "limit": limit, "offset": offset}


@app.get(settings.API_PREFIX + "/sessions/{session_id}")
def get_session(session_id: str, store: RedisSessionStore = Depends(get_store)):
    session = store.get_session(session_id)
    if session is None:
        return JSONResponse(status_code=404, content={"error": "Session not found"})
    return session


@app.delete(settings.API_PREFIX + "/sessions/{session_id}")
def delete_session(session_id: str, store: RedisSessionStore = Depends(get_store)):
    if not store.delete_session(session_id):
        return JSONResponse(status_code=404, content={"error": "Session not found"})
    return {"success": True}


@app.get(settings.API_PREFIX + "/visitors")
def list_visitors(
    limit: int = Query(50, ge=1, le=500),
    store: RedisSessionStore = Depends(get_store),
):
    return {"visitors": store.list_visitors(limit=limit)}


@app.get(settings.API_PREFIX + "/sessions/{session_id}/replay")
def replay_session(session_id: str, store: RedisSessionStore = Depends(get_store)):
    """Last frame of a recorded session: rebuilt page tree plus pointer, scroll and viewport."""
    session = store.get_session(session_id)
    if session is None:
        return JSONResponse(status_code=404, content={"error": "Session not found"})
    replayer = SessionReplayer.from_events(session["events"])
    tree = replayer.describe()
    return {
        "sessionId": session_id,
        "url": replayer.url,
        "title": replayer.title,
        "viewport": {"width": replayer.viewport[0], "height": replayer.viewport[1]},
        "scroll": {"x": replayer.scroll[0], "y": replayer.scroll[1]},
        "pointer": {"x": replayer.pointer[0], "y": replayer.pointer[1]} if replayer.pointer else None,
        "clicks": replayer.clicks,
        "skipped": replayer.skipped,
        "tree": tree.to_wire() if tree is not None else None,
    }
