"""Server startup for Dream Weaver.

Usage:
    python start.py            # serve on $HOST:$PORT (default 0.0.0.0:8000)
    RELOAD=true python start.py
"""
import os
import sys
from pathlib import Path

import uvicorn

# Modules import each other without the src prefix
SRC_DIR = Path(__file__).parent / "src"
sys.path.insert(0, str(SRC_DIR))

host = os.environ.get("HOST", "0.0.0.0")
port = int(os.environ.get("PORT", "8000"))
reload = os.environ.get("RELOAD", "false").lower() == "true"

print(f"[start.py] Starting Dream Weaver on {host}:{port}", flush=True)
uvicorn.run(
    "api.server:app",
    host=host,
    port=port,
    reload=reload,
    reload_dirs=[str(SRC_DIR)] if reload else None,
    log_level=os.environ.get("LOG_LEVEL", "info").lower(),
)
