"""EventDesk HTTP API.

Provides (all under /api):
  GET    /events                    — list events, newest first
  POST   /events                    — create an event (optional logo + sponsor logos)
  GET    /events/{event_id}         — fetch one event
  DELETE /events/{event_id}         — delete an event and its keys
  GET    /events/{event_id}/keys    — list the event's keys, newest first
  POST   /events/{event_id}/keys    — generate a batch of keys
  GET    /events/{event_id}/keys/export — CSV export of the event's keys
  POST   /keys/{key_id}/revoke      — key status → REVOKED
  POST   /keys/{key_id}/restore     — key status → AVAILABLE
  DELETE /keys/{key_id}             — permanently delete a key
  GET    /timezone?lat=&lng=        — IANA timezone id for a venue's coordinates

Every handler delegates to KeyLifecycleManager or EventService and converts
the returned Ok/Err into the uniform envelope:

  success: {"success": true, ...}
  failure: {"success": false, "error": "<message>"[, "reset_at": <epoch>]}
"""

from __future__ import annotations

import math
import time
from datetime import datetime
from typing import Any, Callable, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from app.api.deps import (
    get_event_service,
    get_key_manager,
    get_request_context,
    get_timezone_service,
    require_ready,
)
from app.events.service import EventInput, EventService
from app.geo.timezone import TimezoneService
from app.keys.manager import KeyLifecycleManager
from app.models.event import SportCategory
from app.models.result import Err, ErrorKind, Result
from app.security.guard import RequestContext
from app.security.sanitizer import sanitize_identifier_for_path
from app.storage.logos import LogoUpload

router = APIRouter(tags=["eventdesk"], dependencies=[Depends(require_ready)])

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.RATE_LIMITED: 429,
    # Indistinguishable from a generic failure on purpose
    ErrorKind.ORIGIN_REJECTED: 400,
    ErrorKind.STORE_FAILURE: 400,
}


# ─── Request Models ───────────────────────────────────────────────────────────


class GenerateKeysRequest(BaseModel):
    """Request body for POST /api/events/{event_id}/keys."""

    sport_id: str
    sport_name: str
    sport_emoji: str = ""
    quantity: int


class SportModel(BaseModel):
    id: str
    label: str
    emoji: str = ""


class LogoModel(BaseModel):
    filename: str
    data: str
    """Base64 payload, optionally with a ``data:image/...;base64,`` prefix."""


class CreateEventRequest(BaseModel):
    """Request body for POST /api/events."""

    name: str
    type: str = "multi"
    sports: list[SportModel]
    location_city: str
    location_timezone: str = "UTC"
    location_venue: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_participants: int
    total_keys: int = 0
    visibility: str = "public"
    logo: Optional[LogoModel] = None
    sponsor_logos: list[LogoModel] = Field(default_factory=list)


# ─── Result → Response ────────────────────────────────────────────────────────


def error_response(err: Err) -> JSONResponse:
    headers: dict[str, str] = {}
    if err.kind is ErrorKind.RATE_LIMITED and err.reset_at is not None:
        headers["Retry-After"] = str(max(0, math.ceil(err.reset_at - time.time())))
    return JSONResponse(
        status_code=STATUS_BY_KIND[err.kind],
        content=err.to_dict(),
        headers=headers or None,
    )


def respond(result: Result[Any], render: Callable[[Any], dict[str, Any]]) -> Any:
    if isinstance(result, Err):
        return error_response(result)
    return {"success": True, **render(result.value)}


# ─── Events ───────────────────────────────────────────────────────────────────


@router.get("/events")
async def list_events(service: EventService = Depends(get_event_service)) -> Any:
    result = await service.list_events()
    return respond(result, lambda events: {"events": [e.to_dict() for e in events]})


@router.post("/events", status_code=201)
async def create_event(
    body: CreateEventRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: EventService = Depends(get_event_service),
) -> Any:
    data = EventInput(
        name=body.name,
        type=body.type,
        sports=[SportCategory(s.id, s.label, s.emoji) for s in body.sports],
        location_city=body.location_city,
        location_timezone=body.location_timezone,
        location_venue=body.location_venue,
        start_date=body.start_date,
        end_date=body.end_date,
        max_participants=body.max_participants,
        total_keys=body.total_keys,
        visibility=body.visibility,
        logo=LogoUpload(body.logo.filename, body.logo.data) if body.logo else None,
        sponsor_logos=[LogoUpload(logo.filename, logo.data) for logo in body.sponsor_logos],
    )
    result = await service.create_event(ctx, data)
    return respond(result, lambda created: created.to_dict())


@router.get("/events/{event_id}")
async def get_event(
    event_id: str,
    service: EventService = Depends(get_event_service),
) -> Any:
    result = await service.get_event(event_id)
    return respond(result, lambda event: {"event": event.to_dict()})


@router.delete("/events/{event_id}")
async def delete_event(
    event_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: EventService = Depends(get_event_service),
) -> Any:
    result = await service.delete_event(ctx, event_id)
    return respond(result, lambda deleted_id: {"event_id": deleted_id})


# ─── Keys ─────────────────────────────────────────────────────────────────────


def _render_keys(keys: list) -> dict[str, Any]:
    return {"keys": [key.to_dict() for key in keys]}


@router.get("/events/{event_id}/keys")
async def list_keys(
    event_id: str,
    manager: KeyLifecycleManager = Depends(get_key_manager),
) -> Any:
    result = await manager.list_by_event(event_id)
    return respond(result, _render_keys)


@router.post("/events/{event_id}/keys", status_code=201)
async def generate_keys(
    event_id: str,
    body: GenerateKeysRequest,
    ctx: RequestContext = Depends(get_request_context),
    manager: KeyLifecycleManager = Depends(get_key_manager),
) -> Any:
    result = await manager.generate(
        ctx,
        event_id=event_id,
        sport_id=body.sport_id,
        sport_name=body.sport_name,
        sport_emoji=body.sport_emoji,
        quantity=body.quantity,
    )
    return respond(result, _render_keys)


@router.get("/events/{event_id}/keys/export")
async def export_keys(
    event_id: str,
    ctx: RequestContext = Depends(get_request_context),
    manager: KeyLifecycleManager = Depends(get_key_manager),
) -> Response:
    result = await manager.export_csv(ctx, event_id)
    if isinstance(result, Err):
        return error_response(result)
    filename = f"keys-{sanitize_identifier_for_path(event_id) or 'event'}.csv"
    return Response(
        content=result.value,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/keys/{key_id}/revoke")
async def revoke_key(
    key_id: str,
    ctx: RequestContext = Depends(get_request_context),
    manager: KeyLifecycleManager = Depends(get_key_manager),
) -> Any:
    result = await manager.revoke(ctx, key_id)
    return respond(result, lambda key: {"key": key.to_dict()})


@router.post("/keys/{key_id}/restore")
async def restore_key(
    key_id: str,
    ctx: RequestContext = Depends(get_request_context),
    manager: KeyLifecycleManager = Depends(get_key_manager),
) -> Any:
    result = await manager.restore(ctx, key_id)
    return respond(result, lambda key: {"key": key.to_dict()})


@router.delete("/keys/{key_id}")
async def delete_key(
    key_id: str,
    ctx: RequestContext = Depends(get_request_context),
    manager: KeyLifecycleManager = Depends(get_key_manager),
) -> Any:
    result = await manager.delete(ctx, key_id)
    return respond(result, lambda deleted_id: {"key_id": deleted_id})


# ─── Timezone ─────────────────────────────────────────────────────────────────


@router.get("/timezone")
async def lookup_timezone(
    lat: float,
    lng: float,
    ctx: RequestContext = Depends(get_request_context),
    service: TimezoneService = Depends(get_timezone_service),
) -> Any:
    result = await service.lookup(ctx, lat, lng)
    return respond(result, lambda timezone_id: {"timezone": timezone_id})
