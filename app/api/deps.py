"""FastAPI dependencies shared by the EventDesk API router."""

from __future__ import annotations

from fastapi import HTTPException, Request

from app.events.service import EventService
from app.geo.timezone import TimezoneService
from app.keys.manager import KeyLifecycleManager
from app.security.guard import RequestContext
from app.utils.client_ip import resolve_client_id


async def require_ready(request: Request) -> None:
    """Raise HTTP 503 until the lifespan has set ``app.state.ready``."""
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "starting",
                "message": "EventDesk is starting up. Please retry shortly.",
            },
        )


def get_request_context(request: Request) -> RequestContext:
    """Headers for the Origin Guard and a client identifier for the Rate Limiter."""
    peer_host = request.client.host if request.client else None
    config = getattr(request.app.state, "config", None)
    trust_proxy = config.server.trust_proxy_headers if config is not None else False
    return RequestContext(
        headers=dict(request.headers),
        client_id=resolve_client_id(request.headers, peer_host, trust_proxy),
    )


def get_key_manager(request: Request) -> KeyLifecycleManager:
    return request.app.state.key_manager


def get_event_service(request: Request) -> EventService:
    return request.app.state.event_service


def get_timezone_service(request: Request) -> TimezoneService:
    return request.app.state.timezone_service
