from .. import settings
from ..storage.session_store import RedisSessionStore, horizon_for


def sweep(store: RedisSessionStore, retention_days: int = settings.RETENTION_DAYS) -> int:
    horizon = horizon_for(retention_days, store.clock())
    return store.sweep_expired(horizon)


def main():
    store = RedisSessionStore.from_url(settings.REDIS_URL, prefix=settings.KEY_PREFIX)
    removed = sweep(store)
    if not removed:
        print(f"[retention] nothing older than {settings.RETENTION_DAYS} days.")
        return
    print(f"[retention] removed {removed} sessions older than {settings.RETENTION_DAYS} days")


if __name__ == "__main__":
    main()
