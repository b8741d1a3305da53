import os
from pathlib import Path

# .../webvisor/settings.py -> repo root is 2 levels up
REPO_ROOT = Path(__file__).resolve().parents[1]

REDIS_URL = os.environ.get("WEBVISOR_REDIS_URL", "redis://localhost:6379/0")
KEY_PREFIX = os.environ.get("WEBVISOR_KEY_PREFIX", "webvisor")
RETENTION_DAYS = int(os.environ.get("WEBVISOR_RETENTION_DAYS", "15"))
EXPORT_DIR = Path(os.environ.get("WEBVISOR_EXPORT_DIR", REPO_ROOT / "data" / "parquet"))

API_PREFIX = "/api/webvisor"
