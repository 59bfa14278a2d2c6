"""API routes for controlling and observing the session."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from benodoro.session.manager import SessionManager
from benodoro.session.state import DEFAULT_DURATION, SessionState, to_epoch
from benodoro.widget.timeline import build_timeline

router = APIRouter(tags=["api"])

REFRESH_EVENTS = {
    "foreground": "app entered foreground",
    "account-changed": "account changed",
    "remote-change": "remote change notification",
}


class StartRequest(BaseModel):
    """Start a focus or break session."""
    is_break: bool = Field(default=False, alias="isBreak")
    duration_seconds: float = Field(
        default=DEFAULT_DURATION.total_seconds(), alias="durationSeconds", gt=0
    )


class StateResponse(BaseModel):
    """Current session state."""
    active: bool
    is_break: bool
    start_time: float
    duration_seconds: float
    time_remaining_seconds: float
    time_remaining: str
    updated_at: float


class TimelineEntryResponse(BaseModel):
    date: float
    end_time: float
    is_break: bool
    label: str
    countdown: str


class TimelineResponse(BaseModel):
    entries: list[TimelineEntryResponse]
    refresh: str
    reload_at: float


def get_manager(request: Request) -> SessionManager:
    """Session manager attached to the running app."""
    return request.app.state.manager


def _state_response(manager: SessionManager, state: SessionState) -> StateResponse:
    now = manager.clock()
    return StateResponse(
        active=state.is_active,
        is_break=state.is_break,
        start_time=to_epoch(state.start_time),
        duration_seconds=state.duration.total_seconds(),
        time_remaining_seconds=state.time_remaining(now).total_seconds(),
        time_remaining=state.remaining_display(now),
        updated_at=to_epoch(state.updated_at),
    )


@router.get("/health")
async def health_check(manager: SessionManager = Depends(get_manager)) -> dict[str, Any]:
    """Health check, also used by companions to probe reachability."""
    return {
        "status": "ok",
        "active": manager.state.is_active,
        "cloud": manager.cloud.status if manager.cloud else None,
    }


@router.get("/state", response_model=StateResponse)
async def get_state(manager: SessionManager = Depends(get_manager)) -> StateResponse:
    return _state_response(manager, manager.state)


@router.post("/session/start", response_model=StateResponse)
async def start_session(
    body: StartRequest,
    manager: SessionManager = Depends(get_manager),
) -> StateResponse:
    state = await manager.start(
        is_break=body.is_break,
        duration=timedelta(seconds=body.duration_seconds),
    )
    return _state_response(manager, state)


@router.post("/session/stop", response_model=StateResponse)
async def stop_session(manager: SessionManager = Depends(get_manager)) -> StateResponse:
    state = await manager.stop()
    return _state_response(manager, state)


@router.post("/companion/message")
async def companion_message(
    payload: dict[str, Any],
    manager: SessionManager = Depends(get_manager),
) -> dict[str, Any]:
    """Immediate message from the paired device."""
    applied = await manager.apply_companion_payload(payload)
    return {"applied": applied}


@router.post("/companion/context")
async def companion_context(
    payload: dict[str, Any],
    manager: SessionManager = Depends(get_manager),
) -> dict[str, Any]:
    """Application context delivered once this device became reachable."""
    applied = await manager.apply_companion_payload(payload)
    return {"applied": applied}


@router.post("/events/{event}")
async def lifecycle_event(
    event: str,
    manager: SessionManager = Depends(get_manager),
) -> dict[str, Any]:
    """App foreground, account change or remote push: re-fetch from the cloud."""
    reason = REFRESH_EVENTS.get(event)
    if reason is None:
        raise HTTPException(status_code=404, detail=f"Unknown event: {event}")

    result = await manager.refresh(reason)
    return {"event": event, "fetch": result.status.value}


@router.get("/widget/timeline", response_model=TimelineResponse)
async def widget_timeline(
    request: Request,
    manager: SessionManager = Depends(get_manager),
) -> TimelineResponse:
    interval = timedelta(seconds=request.app.state.widget_interval_seconds)
    timeline = build_timeline(manager.state, manager.clock(), interval)
    return TimelineResponse(
        entries=[
            TimelineEntryResponse(
                date=entry.date.timestamp(),
                end_time=entry.end_time.timestamp(),
                is_break=entry.is_break,
                label=entry.label,
                countdown=entry.countdown(),
            )
            for entry in timeline.entries
        ],
        refresh=timeline.policy.kind.value,
        reload_at=timeline.policy.reload_at.timestamp(),
    )
