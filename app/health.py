"""Health endpoint for EventDesk.

Implements:
  GET /health — 503 before ``app.state.ready`` is set, 200 afterwards

The store is checked with a trivial query; a failing check reports
``"degraded"`` but still answers 200 so the process is not restarted for a
transient database hiccup.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from app.config import Config

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check endpoint.

    Response body (200):
        {
          "status": "ok" | "degraded",
          "store": "ok" | "error",
          "environment": "development" | "production",
          "rate_limiting": true | false,
          "rate_limit_entries": 0
        }

    Response body (503):
        {"status": "starting", "message": "EventDesk is starting up..."}
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "starting",
                "message": "EventDesk is starting up...",
            },
        )

    config: Config = request.app.state.config
    store_ok = await request.app.state.store.health_check()
    rate_limiter = request.app.state.rate_limiter

    return {
        "status": "ok" if store_ok else "degraded",
        "store": "ok" if store_ok else "error",
        "environment": config.environment.value,
        "rate_limiting": rate_limiter.enabled,
        "rate_limit_entries": len(rate_limiter),
    }
