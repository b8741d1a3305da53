"""
Export stored session events to parquet, one file per run.

Each row is one event; the payload stays a JSON string so sessions with
different event mixes share one schema.
"""
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .. import settings
from ..events import EventKind
from ..storage.session_store import RedisSessionStore

COLUMNS = ["sessionId", "seq", "timestamp", "type", "kind", "data"]


def _kind_name(kind) -> str:
    try:
        return EventKind(kind).name
    except ValueError:
        return "UNKNOWN"


def event_rows(session_id: str, events: Iterable[Dict]) -> List[Dict]:
    rows = []
    for seq, ev in enumerate(events):
        kind = ev.get("type")
        rows.append({
            "sessionId": session_id,
            "seq": seq,
            "timestamp": ev.get("timestamp"),
            "type": kind,
            "kind": _kind_name(kind),
            "data": json.dumps(ev.get("data") or {}, separators=(",", ":")),
        })
    return rows


def write_batch(rows: List[Dict], outdir: Path) -> Optional[Path]:
    if not rows:
        return None
    outdir.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(rows, columns=COLUMNS)
    df = df.sort_values(["sessionId", "timestamp", "seq"], kind="mergesort").reset_index(drop=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    path = outdir / f"events_{stamp}.parquet"
    df.to_parquet(path, engine="pyarrow", index=False)
    print(f"[writer] wrote {len(df)} → {path}")
    return path


def export(store: RedisSessionStore, outdir: Path = settings.EXPORT_DIR,
           session_ids: Optional[Iterable[str]] = None) -> Optional[Path]:
    rows: List[Dict] = []
    for session_id in session_ids if session_ids is not None else store.session_ids():
        rows.extend(event_rows(session_id, store.iter_events(session_id)))
    return write_batch(rows, outdir)


def main():
    store = RedisSessionStore.from_url(settings.REDIS_URL, prefix=settings.KEY_PREFIX)
    print(f"[writer] exporting sessions under '{settings.KEY_PREFIX}'…")
    if export(store) is None:
        print("[writer] no events stored, nothing to write.")


if __name__ == "__main__":
    main()
