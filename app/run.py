"""Programmatic uvicorn entry point for EventDesk.

Reads host and port from the loaded config (127.0.0.1:8080 by default) and
starts uvicorn with hardened connection defaults:

  --limit-concurrency 100  Max concurrent connections; HTTP 503 when exceeded
  --backlog 50             OS connection queue depth
  --timeout-keep-alive 5   Short keep-alive to limit idle connection hoarding

Usage:
    python -m app.run          # reads .eventdesk/config.yaml
    eventdesk                  # via pyproject.toml [project.scripts]
"""

from __future__ import annotations

import uvicorn

from app.config import load_config

UVICORN_LIMIT_CONCURRENCY: int = 100

UVICORN_BACKLOG: int = 50

UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the EventDesk server.

    Raises:
        SystemExit: Propagated from load_config() on config parse errors.
    """
    config = load_config()

    uvicorn.run(
        "app.main:app",
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
    )


if __name__ == "__main__":
    main()
