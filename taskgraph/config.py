"""Configuration loading and defaults.

Reads from config.toml at the project root, with environment variable overrides.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv

# Look for .env in the package's parent directory (project root)
_project_root = Path(__file__).resolve().parent.parent
load_dotenv(_project_root / ".env")
load_dotenv()  # also check cwd

# ---------------------------------------------------------------------------
# Load config.toml
# ---------------------------------------------------------------------------

_toml_path = Path(os.getenv("TASKGRAPH_CONFIG", str(_project_root / "config.toml")))
_cfg: dict = {}
if _toml_path.exists():
    with open(_toml_path, "rb") as f:
        _cfg = tomllib.load(f)

_engine = _cfg.get("engine", {})
_server = _cfg.get("server", {})
_logging = _cfg.get("logging", {})

# ---------------------------------------------------------------------------
# Engine defaults
# ---------------------------------------------------------------------------

DEFAULT_MAX_RETRIES = int(os.getenv("TASKGRAPH_MAX_RETRIES", _engine.get("max_retries", 3)))
DEFAULT_PRIORITY = int(os.getenv("TASKGRAPH_DEFAULT_PRIORITY", _engine.get("default_priority", 5)))
DEFAULT_MAX_PARALLEL = int(os.getenv("TASKGRAPH_MAX_PARALLEL", _engine.get("max_parallel", 3)))

# How many newly ready nodes a completion response previews
NEXT_NODES_PREVIEW = int(os.getenv("TASKGRAPH_NEXT_PREVIEW", _engine.get("next_preview", 3)))

# Events are kept in memory; set a path to also append them as JSONL
_event_log = os.getenv("TASKGRAPH_EVENT_LOG", _engine.get("event_log", ""))
EVENT_LOG_FILE = Path(_event_log) if _event_log else None

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

SERVER_HOST = os.getenv("TASKGRAPH_HOST", _server.get("host", "127.0.0.1"))
SERVER_PORT = int(os.getenv("TASKGRAPH_PORT", _server.get("port", 8000)))
MCP_SERVER_NAME = os.getenv("TASKGRAPH_MCP_NAME", _server.get("mcp_name", "TaskGraph"))

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_LEVEL = os.getenv("TASKGRAPH_LOG_LEVEL", _logging.get("level", "INFO")).upper()
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
