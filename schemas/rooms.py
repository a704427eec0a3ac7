from enum import Enum
from typing import Dict, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    NAVIGATOR = "navigator"
    GUIDE = "guide"

    def complement(self) -> "Role":
        return Role.GUIDE if self is Role.NAVIGATOR else Role.NAVIGATOR


class PlayerSlot(str, Enum):
    PLAYER1 = "player1"
    PLAYER2 = "player2"

    def other(self) -> "PlayerSlot":
        return PlayerSlot.PLAYER2 if self is PlayerSlot.PLAYER1 else PlayerSlot.PLAYER1


class RoomPhase(str, Enum):
    PLAYING = "playing"
    LEVEL_COMPLETE = "level-complete"
    ENDED = "ended"


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PositionRequest(WireModel):
    x: Union[StrictInt, StrictFloat]
    y: Union[StrictInt, StrictFloat]

class PositionResponse(WireModel):
    x: Union[int, float]
    y: Union[int, float]
    timestamp: int

class RoleRequest(WireModel):
    role: Role
    player_id: PlayerSlot

class RolesResponse(WireModel):
    roles: Dict[str, Role] = Field(default_factory=dict)

class GameStateRequest(WireModel):
    phase: RoomPhase
    current_level: StrictInt = Field(ge=1)

class GameStateResponse(WireModel):
    phase: RoomPhase = RoomPhase.PLAYING
    current_level: int = 1
    # False when nothing was ever written and the values above are defaults
    initialized: bool = False

class JoinRequest(WireModel):
    player_id: PlayerSlot

class PlayerPresence(WireModel):
    joined: bool = True
    timestamp: int

class PlayerReadiness(WireModel):
    ready: bool = True
    timestamp: int

class JoinResponse(WireModel):
    success: bool = True
    both_players_joined: bool
    players: Dict[str, PlayerPresence]

class RoomStatusResponse(WireModel):
    exists: bool
    both_players_joined: bool
    players: Dict[str, PlayerPresence] = Field(default_factory=dict)

class ReadyRequest(WireModel):
    player_id: PlayerSlot

class ReadyStatusResponse(WireModel):
    both_players_ready: bool
    players_ready: Dict[str, PlayerReadiness] = Field(default_factory=dict)

class ReadyResponse(ReadyStatusResponse):
    success: bool = True

class SuccessResponse(WireModel):
    success: bool = True

class GameStateWriteResponse(WireModel):
    success: bool = True
    applied: bool = True
