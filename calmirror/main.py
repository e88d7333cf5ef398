from __future__ import annotations

import logging
import os
import sys

import uvicorn

from calmirror.config_manager import ConfigManager
from calmirror.state_store import StateStore
from calmirror.sync_engine import SyncEngine


def _setup_logging() -> None:
    level = os.getenv("CALMIRROR_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    _setup_logging()
    host = os.getenv("CALMIRROR_HOST", "0.0.0.0")
    port = int(os.getenv("CALMIRROR_PORT", "8080"))
    uvicorn.run("calmirror.web_admin:create_app", factory=True, host=host, port=port, reload=False)


def sync_once() -> int:
    """Run one synchronization from a cron job or timer; non-zero exit on error."""
    _setup_logging()
    config_manager = ConfigManager(os.getenv("CALMIRROR_CONFIG_PATH", "config.yaml"))
    state_store = StateStore(os.getenv("CALMIRROR_STATE_PATH", "data/state.db"))
    result = SyncEngine(config_manager, state_store).run_once(trigger="cli")
    logging.getLogger(__name__).info("%s: %s", result.status, result.message)
    return 1 if result.status == "error" else 0


if __name__ == "__main__":
    if "--once" in sys.argv[1:]:
        sys.exit(sync_once())
    main()
