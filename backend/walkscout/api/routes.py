import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from walkscout.exceptions import (
    AddressNotFoundError,
    DatasetUnavailableError,
    GeocodingError,
    InvalidLocationError,
    InvalidSelectionError,
    UnknownSessionError,
)
from walkscout.schemas.poi import Coordinate
from walkscout.schemas.search import (
    FilterRequest,
    SearchRequest,
    SearchSnapshot,
    SelectRequest,
    SessionResponse,
)
from walkscout.services.search import SearchOrchestrator
from walkscout.services.sessions import SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> SearchOrchestrator:
    try:
        return registry.get(session_id)
    except UnknownSessionError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/health")
async def health(request: Request):
    return {"ok": True, "sessions": len(request.app.state.sessions)}


@router.post("/sessions", response_model=SessionResponse)
async def create_session(registry: SessionRegistry = Depends(get_registry)):
    session_id, _ = await registry.create()
    return SessionResponse(session_id=session_id)


@router.get("/sessions/{session_id}", response_model=SearchSnapshot)
async def get_snapshot(session: SearchOrchestrator = Depends(get_session)):
    return session.snapshot()


@router.post("/sessions/{session_id}/search", response_model=SearchSnapshot)
async def search(req: SearchRequest, session: SearchOrchestrator = Depends(get_session)):
    try:
        if req.lat is not None and req.lng is not None:
            result = await session.search_coordinates(
                Coordinate(lat=req.lat, lng=req.lng),
                display_name=req.display_name or req.address or "Current Location",
            )
        else:
            result = await session.search_address(req.address)
    except InvalidLocationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AddressNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (GeocodingError, DatasetUnavailableError) as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.exception("Search failed")
        raise HTTPException(status_code=500, detail=str(e))

    if result is None:
        raise HTTPException(status_code=409, detail="Search superseded by a newer search")
    return result


@router.post("/sessions/{session_id}/select", response_model=SearchSnapshot)
async def select(req: SelectRequest, session: SearchOrchestrator = Depends(get_session)):
    try:
        return session.select(req.category, req.index)
    except InvalidSelectionError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/sessions/{session_id}/filters", response_model=SearchSnapshot)
async def update_filters(req: FilterRequest, session: SearchOrchestrator = Depends(get_session)):
    return await session.set_school_filter(
        sectors=set(req.sectors) if req.sectors is not None else None,
        levels=set(req.levels) if req.levels is not None else None,
    )
