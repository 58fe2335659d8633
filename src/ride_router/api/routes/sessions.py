"""Route session endpoints."""

from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import NoReturn

from fastapi import APIRouter, File, HTTPException, Response, UploadFile, status

from ...data.roster_repository import read_roster
from ...errors import BuildInProgressError, GatewayFailure, PendingDecisionError, RouteError, SupersededError
from ...models.domain import Address, Stop
from ...persistence import sessions as session_store
from ...schemas.sessions import (
    CapacityWarningModel,
    CategoryFilterRequest,
    DecisionRequest,
    DeepLinkResponse,
    DirectionsResponse,
    InsertStopRequest,
    MoveStopRequest,
    RiderCountRequest,
    SessionResponse,
)
from ...services.outputs.routing_formatter import snapshot_to_csv, snapshot_to_json
from ...services.routing.models import RouteSnapshot
from ...services.routing.service import session_deep_link, session_directions
from ...services.routing.session import RouteSession

router = APIRouter(prefix="/sessions", tags=["sessions"])
logger = logging.getLogger(__name__)


def _to_response(snapshot: RouteSnapshot) -> SessionResponse:
    return SessionResponse(**snapshot_to_json(snapshot))


def _get_session(session_id: str) -> RouteSession:
    try:
        return session_store.store.get(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.args[0]) from exc


def _raise_http(exc: Exception, action: str) -> NoReturn:
    if isinstance(exc, (BuildInProgressError, PendingDecisionError, SupersededError)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, RouteError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if isinstance(exc, GatewayFailure):
        logger.warning(f"Provider failure while trying to {action}: {exc}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    logger.exception(f"Error trying to {action}: {exc}")
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {str(exc)}",
    ) from exc


async def _read_upload(file: UploadFile) -> bytes:
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Filename is required.")
    if Path(file.filename).suffix.lower() != ".csv":
        raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail="Only .csv files are supported.")
    return await file.read()


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(file: UploadFile = File(...)) -> SessionResponse:
    """Start a session from a roster CSV upload."""
    contents = await _read_upload(file)
    session = session_store.store.create()
    try:
        snapshot = await session.load(read_roster(contents))
    except Exception as exc:
        session_store.store.delete(session.id)
        _raise_http(exc, "load roster")
    return _to_response(snapshot)


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(session_id: str) -> SessionResponse:
    return _to_response(_get_session(session_id).snapshot())


@router.delete("/{session_id}", status_code=status.HTTP_200_OK)
def delete_session(session_id: str) -> dict:
    if not session_store.store.delete(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session '{session_id}' not found")
    return {"success": True, "message": f"Session {session_id} closed"}


@router.post("/{session_id}/roster", response_model=SessionResponse)
async def replace_roster(session_id: str, file: UploadFile = File(...)) -> SessionResponse:
    """Load a new roster into an existing session, superseding any running build."""
    session = _get_session(session_id)
    contents = await _read_upload(file)
    try:
        return _to_response(await session.load(read_roster(contents)))
    except Exception as exc:
        _raise_http(exc, "load roster")


@router.post("/{session_id}/decision", response_model=SessionResponse)
async def decide(session_id: str, payload: DecisionRequest) -> SessionResponse:
    session = _get_session(session_id)
    try:
        return _to_response(await session.decide(payload.proceed))
    except Exception as exc:
        _raise_http(exc, "apply validation decision")


@router.post("/{session_id}/stops", response_model=SessionResponse)
async def insert_stop(session_id: str, payload: InsertStopRequest) -> SessionResponse:
    session = _get_session(session_id)
    stop = Stop(
        id="",
        name=payload.name,
        address=Address(street=payload.street, city=payload.city, state=payload.state, zip=payload.zip),
        phone=payload.phone,
        notes=payload.notes,
        category=payload.category,
        rider_count=payload.rider_count,
    )
    try:
        return _to_response(await session.insert(stop, payload.policy))
    except Exception as exc:
        _raise_http(exc, "add stop")


@router.delete("/{session_id}/stops/{index}", response_model=SessionResponse)
def delete_stop(session_id: str, index: int) -> SessionResponse:
    session = _get_session(session_id)
    try:
        return _to_response(session.delete(index))
    except Exception as exc:
        _raise_http(exc, "delete stop")


@router.post("/{session_id}/stops/move", response_model=SessionResponse)
def move_stop(session_id: str, payload: MoveStopRequest) -> SessionResponse:
    session = _get_session(session_id)
    try:
        return _to_response(session.move(payload.from_index, payload.to_index))
    except Exception as exc:
        _raise_http(exc, "move stop")


@router.patch("/{session_id}/stops/{index}/riders", response_model=SessionResponse)
def change_rider_count(session_id: str, index: int, payload: RiderCountRequest) -> SessionResponse:
    session = _get_session(session_id)
    try:
        return _to_response(session.set_rider_count(index, payload.delta))
    except Exception as exc:
        _raise_http(exc, "update rider count")


@router.post("/{session_id}/filter", response_model=SessionResponse)
async def filter_by_category(session_id: str, payload: CategoryFilterRequest) -> SessionResponse:
    session = _get_session(session_id)
    try:
        return _to_response(await session.filter_by_category(payload.category))
    except Exception as exc:
        _raise_http(exc, "filter by category")


@router.post("/{session_id}/reoptimize", response_model=SessionResponse)
async def reoptimize(session_id: str) -> SessionResponse:
    session = _get_session(session_id)
    try:
        return _to_response(await session.reoptimize())
    except Exception as exc:
        _raise_http(exc, "reoptimize route")


@router.delete("/{session_id}/warnings", response_model=SessionResponse)
def dismiss_warnings(session_id: str) -> SessionResponse:
    return _to_response(_get_session(session_id).clear_warnings())


@router.get("/{session_id}/directions", response_model=DirectionsResponse)
async def get_directions(session_id: str) -> DirectionsResponse:
    session = _get_session(session_id)
    try:
        result = await session_directions(session)
    except Exception as exc:
        _raise_http(exc, "render directions")
    return DirectionsResponse(
        source=result.source,
        path=result.path,
        rendered_stop_ids=result.rendered_stop_ids,
        distance_m=result.distance_m,
        duration_s=result.duration_s,
        warnings=[CapacityWarningModel(**asdict(warning)) for warning in result.warnings],
    )


@router.get("/{session_id}/deep-link", response_model=DeepLinkResponse)
def get_deep_link(session_id: str) -> DeepLinkResponse:
    session = _get_session(session_id)
    try:
        link = session_deep_link(session)
    except Exception as exc:
        _raise_http(exc, "build directions link")
    return DeepLinkResponse(
        url=link.url,
        warnings=[CapacityWarningModel(**asdict(warning)) for warning in link.warnings],
    )


@router.get("/{session_id}/export.csv")
def export_route(session_id: str) -> Response:
    snapshot = _get_session(session_id).snapshot()
    return Response(
        content=snapshot_to_csv(snapshot),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="route_{session_id}.csv"'},
    )
