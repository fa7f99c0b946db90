"""Room router for inventory and override operations."""

import logging

from fastapi import APIRouter, Request

from ..core.dependencies import Actor, Engine
from ..core.exceptions import raise_for_result
from ..domain.models import RoomStatus
from ..schemas.common import PROBLEM_RESPONSES
from ..schemas.room import (
    BlockRoomRequest,
    CalendarEntry,
    ListRoomsRequest,
    ProvisionRoomRequest,
    Room,
    RoomCalendar,
    RoomCalendarRequest,
    RoomIdRequest,
    RoomList,
    SearchRoomsRequest,
)
from ..services.reservation_engine import ReservationEngine, RoomSpec

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/room", tags=["room"], responses=PROBLEM_RESPONSES)


def _to_schema(result, request: Request) -> Room:
    return Room.model_validate(raise_for_result(result, instance=request.url.path))


@router.post("/provision", response_model=Room, status_code=201)
async def provision_room(
    body: ProvisionRoomRequest,
    request: Request,
    engine: ReservationEngine = Engine,
    actor: str = Actor,
) -> Room:
    """Add a room to the inventory."""
    spec = RoomSpec(**body.model_dump())
    room = _to_schema(await engine.provision_room(spec, actor=actor), request)

    logger.info(
        "Room provisioned",
        extra={"room_id": str(room.id), "number": room.number, "actor": actor}
    )
    return room


@router.post("/get", response_model=Room)
async def get_room(
    body: RoomIdRequest,
    request: Request,
    engine: ReservationEngine = Engine,
) -> Room:
    """Get a room by ID."""
    return _to_schema(await engine.get_room(body.room_id), request)


@router.post("/list", response_model=RoomList)
async def list_rooms(
    body: ListRoomsRequest,
    request: Request,
    engine: ReservationEngine = Engine,
) -> RoomList:
    """List rooms ordered by building, floor and number."""
    result = await engine.list_rooms(
        building=body.building,
        floor=body.floor,
        status=body.status,
        min_capacity=body.min_capacity,
    )
    rooms = raise_for_result(result, instance=request.url.path)
    return RoomList(items=[Room.model_validate(room) for room in rooms])


@router.post("/search", response_model=RoomList)
async def search_available_rooms(
    body: SearchRoomsRequest,
    request: Request,
    engine: ReservationEngine = Engine,
) -> RoomList:
    """Find rooms free for a stay and party size."""
    result = await engine.search_available_rooms(body.check_in, body.check_out, body.guests, building=body.building)
    rooms = raise_for_result(result, instance=request.url.path)
    return RoomList(items=[Room.model_validate(room) for room in rooms])


@router.post("/calendar", response_model=RoomCalendar)
async def room_calendar(
    body: RoomCalendarRequest,
    request: Request,
    engine: ReservationEngine = Engine,
) -> RoomCalendar:
    """Intervals currently claimed on a room."""
    result = await engine.room_calendar(body.room_id, body.date_from, body.date_to)
    claims = raise_for_result(result, instance=request.url.path)
    return RoomCalendar(
        room_id=body.room_id,
        entries=[
            CalendarEntry(
                booking_id=claim.booking_id,
                check_in=claim.interval.start,
                check_out=claim.interval.end,
            )
            for claim in claims
        ],
    )


@router.post("/block", response_model=Room)
async def block_room(
    body: BlockRoomRequest,
    request: Request,
    engine: ReservationEngine = Engine,
    actor: str = Actor,
) -> Room:
    """Take a room out of service as blocked, maintenance or reserved."""
    result = await engine.block_room(body.room_id, body.reason, RoomStatus(body.kind), actor=actor)
    return _to_schema(result, request)


@router.post("/unblock", response_model=Room)
async def unblock_room(
    body: RoomIdRequest,
    request: Request,
    engine: ReservationEngine = Engine,
    actor: str = Actor,
) -> Room:
    """Clear a room's override."""
    return _to_schema(await engine.unblock_room(body.room_id, actor=actor), request)


@router.post("/decommission", response_model=Room)
async def decommission_room(
    body: RoomIdRequest,
    request: Request,
    engine: ReservationEngine = Engine,
    actor: str = Actor,
) -> Room:
    """Remove a room that never held a booking. Returns the room as it was."""
    return _to_schema(await engine.decommission_room(body.room_id, actor=actor), request)
