"""
Gateway configuration, read from the environment at import time.
"""

import os
from pathlib import Path

# ============== BACKEND CONFIG ==============
BACKEND_URL = os.environ.get("BACKEND_URL", "http://localhost:8000")
KIOSK_TOKEN = os.environ.get("KIOSK_TOKEN", "")
REQUEST_TIMEOUT_SECONDS = float(os.environ.get("REQUEST_TIMEOUT_SECONDS", "30"))
# =============================================

# ============== KIOSK CONFIG ==============
ASSET_ORIGIN = os.environ.get("ASSET_ORIGIN", "http://localhost:8080")
STATIC_ASSETS = ("./", "./index.html", "./logo.svg")  # Precached at install
CLIENT_VERSION = os.environ.get("CLIENT_VERSION", "33")
CACHE_PREFIX = os.environ.get("CACHE_PREFIX", "deleon-signin")
GATEWAY_PORT = int(os.environ.get("GATEWAY_PORT", "3000"))
# ===========================================

# ============== SYNC CONFIG ==============
QUEUE_DB_PATH = Path(os.environ.get(
    "QUEUE_DB_PATH", Path.home() / ".signin_gateway" / "gateway.db"
))
PING_INTERVAL_SECONDS = float(os.environ.get("PING_INTERVAL_SECONDS", "30"))
SYNC_WORKER_INTERVAL_SECONDS = float(os.environ.get("SYNC_WORKER_INTERVAL_SECONDS", "60"))
# ==========================================
