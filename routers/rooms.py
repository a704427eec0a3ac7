from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Request

from backend import RoomStore, get_room_store
from constants import ROOM_CODE_PATTERN
from schemas.rooms import (PositionRequest, PositionResponse, RoleRequest, RolesResponse,
                           GameStateRequest, GameStateResponse, GameStateWriteResponse,
                           JoinRequest, JoinResponse, RoomStatusResponse, ReadyRequest,
                           ReadyResponse, ReadyStatusResponse, SuccessResponse)
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/api", tags=["rooms"])

RoomCode = Annotated[str, Path(pattern=ROOM_CODE_PATTERN, description="4-digit room code")]


def _client(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@rooms_router.post("/position/{room_code}", response_model=SuccessResponse)
async def update_position(position: PositionRequest, request: Request, room_code: RoomCode,
                          store: RoomStore = Depends(get_room_store)):
    logger.debug(f"Position update for room {room_code} from {_client(request)}: ({position.x}, {position.y})")
    try:
        store.set_position(room_code, position.x, position.y)
    except Exception as e:
        logger.error(f"Error updating position for room {room_code}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update position")
    return SuccessResponse()


@rooms_router.get("/position/{room_code}", response_model=PositionResponse)
async def get_position(room_code: RoomCode, store: RoomStore = Depends(get_room_store)):
    position = store.get_position(room_code)
    if not position:
        raise HTTPException(status_code=404, detail="Position not found")
    return PositionResponse(**position)


@rooms_router.post("/role/{room_code}", response_model=RolesResponse)
async def set_role(role_request: RoleRequest, request: Request, room_code: RoomCode,
                   store: RoomStore = Depends(get_room_store)):
    """
    Assign ``role`` to ``playerId`` and the complementary role to the other slot.

    The last call wins for both slots, so only the room creator is expected to call this.
    """
    logger.info(f"Role request for room {room_code} from {_client(request)}: "
                f"{role_request.player_id.value} -> {role_request.role.value}")
    try:
        roles = store.set_role(room_code, role_request.role, role_request.player_id)
    except Exception as e:
        logger.error(f"Error setting role for room {room_code}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to set role")
    return RolesResponse(roles=roles)


@rooms_router.get("/role/{room_code}", response_model=RolesResponse)
async def get_roles(room_code: RoomCode, store: RoomStore = Depends(get_room_store)):
    return RolesResponse(roles=store.get_roles(room_code))


@rooms_router.post("/switch-roles/{room_code}", response_model=RolesResponse)
async def switch_roles(request: Request, room_code: RoomCode, store: RoomStore = Depends(get_room_store)):
    logger.info(f"Switch roles request for room {room_code} from {_client(request)}")
    roles = store.switch_roles(room_code)
    if roles is None:
        raise HTTPException(status_code=404, detail="No roles assigned in this room")
    return RolesResponse(roles=roles)


@rooms_router.post("/game-state/{room_code}", response_model=GameStateWriteResponse)
async def update_game_state(game_state: GameStateRequest, request: Request, room_code: RoomCode,
                            store: RoomStore = Depends(get_room_store)):
    logger.info(f"Game state update for room {room_code} from {_client(request)}: "
                f"{game_state.phase.value}, level {game_state.current_level}")
    try:
        applied = store.set_game_state(room_code, game_state.phase, game_state.current_level)
    except Exception as e:
        logger.error(f"Error updating game state for room {room_code}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update game state")
    return GameStateWriteResponse(applied=applied)


@rooms_router.get("/game-state/{room_code}", response_model=GameStateResponse)
async def get_game_state(room_code: RoomCode, store: RoomStore = Depends(get_room_store)):
    game_state = store.get_game_state(room_code)
    if not game_state:
        # defaults, flagged so pollers do not mistake them for a started level
        return GameStateResponse(initialized=False)
    return GameStateResponse(phase=game_state["phase"], current_level=game_state["currentLevel"], initialized=True)


@rooms_router.post("/join/{room_code}", response_model=JoinResponse)
async def join_room(join_request: JoinRequest, request: Request, room_code: RoomCode,
                    store: RoomStore = Depends(get_room_store)):
    logger.info(f"Join request for room {room_code} from {_client(request)} as {join_request.player_id.value}")
    try:
        result = store.join(room_code, join_request.player_id)
    except Exception as e:
        logger.error(f"Error joining room {room_code}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to join room")
    return JoinResponse(both_players_joined=result["both_joined"], players=result["players"])


@rooms_router.get("/room-status/{room_code}", response_model=RoomStatusResponse)
async def get_room_status(room_code: RoomCode, store: RoomStore = Depends(get_room_store)):
    status = store.room_status(room_code)
    return RoomStatusResponse(exists=status["exists"], both_players_joined=status["both_joined"],
                              players=status["players"])


@rooms_router.post("/player-ready/{room_code}", response_model=ReadyResponse)
async def player_ready(ready_request: ReadyRequest, request: Request, room_code: RoomCode,
                       store: RoomStore = Depends(get_room_store)):
    """Mark a slot ready. When this makes both slots ready the room starts level 1."""
    logger.info(f"Ready request for room {room_code} from {_client(request)} as {ready_request.player_id.value}")
    try:
        result = store.mark_ready(room_code, ready_request.player_id)
    except Exception as e:
        logger.error(f"Error marking {ready_request.player_id.value} ready in room {room_code}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to mark player ready")
    return ReadyResponse(both_players_ready=result["both_ready"], players_ready=result["players_ready"])


@rooms_router.get("/player-ready/{room_code}", response_model=ReadyStatusResponse)
async def get_ready_status(room_code: RoomCode, store: RoomStore = Depends(get_room_store)):
    status = store.ready_status(room_code)
    return ReadyStatusResponse(both_players_ready=status["both_ready"], players_ready=status["players_ready"])
