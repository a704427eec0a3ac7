"""
Client-local session state machine.

One ``Session`` per player. User intents and room observations both arrive as
method calls; each transition checks the current phase and returns ``False``
when it does not apply, so a late or duplicate observation never pushes the
session into an invalid phase.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from game.maze import DIRECTIONS, Maze, Position, build_level
from schemas.rooms import PlayerSlot, Role
from logging_config import get_logger

logger = get_logger(__name__)


class SessionPhase(str, Enum):
    READY = "ready"
    ROOM_SETUP = "room-setup"
    ROLE_SELECT = "role-select"
    PLAYING = "playing"
    LEVEL_COMPLETE = "level-complete"
    ENDED = "ended"


PhaseListener = Callable[[SessionPhase, SessionPhase], None]


@dataclass(frozen=True)
class SessionSnapshot:
    phase: SessionPhase
    player_slot: Optional[PlayerSlot]
    role: Optional[Role]
    room_code: Optional[str]
    current_level: int
    position: Optional[Position]
    partner_joined: bool

    @property
    def is_creator(self) -> bool:
        return self.player_slot is PlayerSlot.PLAYER1


class Session:
    def __init__(self):
        self._listeners: List[PhaseListener] = []
        self._reset()

    def _reset(self):
        self.phase = SessionPhase.READY
        self.player_slot: Optional[PlayerSlot] = None
        self.role: Optional[Role] = None
        self.room_code: Optional[str] = None
        self.current_level = 1
        self.maze_seed: Optional[int] = None
        self.maze: Optional[Maze] = None
        self.position: Optional[Position] = None
        self.partner_joined = False
        # set when this client's own move reached the exit
        self.reached_exit = False

    @property
    def solo(self) -> bool:
        return self.room_code is None

    @property
    def is_creator(self) -> bool:
        return self.player_slot is PlayerSlot.PLAYER1

    @property
    def can_choose_role(self) -> bool:
        """Only the creator picks roles in a room; the room gives the partner the other one."""
        return self.phase in (SessionPhase.ROLE_SELECT, SessionPhase.LEVEL_COMPLETE) and (self.solo or self.is_creator)

    def subscribe(self, listener: PhaseListener):
        self._listeners.append(listener)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            phase=self.phase,
            player_slot=self.player_slot,
            role=self.role,
            room_code=self.room_code,
            current_level=self.current_level,
            position=self.position,
            partner_joined=self.partner_joined,
        )

    def _set_phase(self, phase: SessionPhase):
        old = self.phase
        self.phase = phase
        logger.info(f"Session {self.room_code or 'solo'} ({self.player_slot.value if self.player_slot else '-'}): "
                    f"{old.value} -> {phase.value}")
        for listener in list(self._listeners):
            listener(old, phase)

    def _ignored(self, action: str) -> bool:
        logger.debug(f"Ignoring {action} in phase {self.phase.value}")
        return False

    # room setup

    def create_room(self, room_code: str) -> bool:
        return self._enter_room(room_code, PlayerSlot.PLAYER1)

    def join_room(self, room_code: str) -> bool:
        return self._enter_room(room_code, PlayerSlot.PLAYER2)

    def _enter_room(self, room_code: str, slot: PlayerSlot) -> bool:
        if self.phase is not SessionPhase.READY:
            return self._ignored(f"enter room {room_code}")
        self.room_code = room_code
        self.player_slot = slot
        self.current_level = 1
        self._set_phase(SessionPhase.ROOM_SETUP)
        return True

    def start_solo(self) -> bool:
        """Single-player mode: no room, role picked locally."""
        if self.phase is not SessionPhase.READY:
            return self._ignored("start solo")
        self._set_phase(SessionPhase.ROLE_SELECT)
        return True

    def mark_partner_joined(self) -> bool:
        """Returns True only the first time, so the caller notifies once."""
        if self.partner_joined or self.solo:
            return False
        self.partner_joined = True
        return True

    def enter_role_select(self) -> bool:
        if self.phase is not SessionPhase.ROOM_SETUP or not self.partner_joined:
            return self._ignored("role select")
        self._set_phase(SessionPhase.ROLE_SELECT)
        return True

    # roles

    def adopt_role(self, role: Role) -> bool:
        """Take ``role`` as this player's role. Returns True if it changed."""
        role = Role(role)
        if self.phase not in (SessionPhase.ROOM_SETUP, SessionPhase.ROLE_SELECT, SessionPhase.LEVEL_COMPLETE):
            return self._ignored(f"role {role.value}")
        if role is self.role:
            return False
        logger.info(f"Session {self.room_code or 'solo'}: role {self.role.value if self.role else None} -> {role.value}")
        self.role = role
        return True

    # play

    def _load_level(self, level: int):
        self.current_level = level
        # solo play gets a fresh random seed per level
        self.maze = build_level(self.room_code, level)
        self.maze_seed = self.maze.seed
        self.position = self.maze.start
        self.reached_exit = False
        logger.info(f"Level {level}: {self.maze.width}x{self.maze.height} maze, seed {self.maze_seed}")

    def start_playing(self, level: int = 1) -> bool:
        if self.phase is not SessionPhase.ROLE_SELECT:
            return self._ignored("start playing")
        if self.role is None:
            return self._ignored("start playing without a role")
        self._load_level(level)
        self._set_phase(SessionPhase.PLAYING)
        return True

    def move(self, direction: str) -> Optional[Position]:
        """Navigator move. Returns the new position, or None if the move was not made."""
        if self.phase is not SessionPhase.PLAYING or self.role is not Role.NAVIGATOR:
            self._ignored(f"move {direction}")
            return None
        if not self.maze.can_move(self.position, direction):
            return None
        x, y = self.position
        dx, dy, _, _ = DIRECTIONS[direction]
        self.position = (x + dx, y + dy)
        if self.position == self.maze.end:
            self.reached_exit = True
            self._set_phase(SessionPhase.ENDED if self.solo else SessionPhase.LEVEL_COMPLETE)
        return self.position

    def snap_token(self, x: int, y: int) -> bool:
        """Guide side: adopt the navigator's reported position."""
        if self.phase is not SessionPhase.PLAYING:
            return self._ignored(f"snap to ({x}, {y})")
        position = (int(x), int(y))
        if position == self.position:
            return False
        self.position = position
        if position == self.maze.end:
            self._set_phase(SessionPhase.LEVEL_COMPLETE)
        return True

    def observe_level_complete(self, level: int) -> bool:
        if self.phase is not SessionPhase.PLAYING or level != self.current_level:
            return self._ignored(f"level {level} complete")
        self._set_phase(SessionPhase.LEVEL_COMPLETE)
        return True

    def next_level(self, level: Optional[int] = None) -> bool:
        allowed = (SessionPhase.LEVEL_COMPLETE,) if not self.solo else (SessionPhase.LEVEL_COMPLETE, SessionPhase.ENDED)
        if self.phase not in allowed or self.role is None:
            return self._ignored("next level")
        level = self.current_level + 1 if level is None else level
        if level <= self.current_level:
            return self._ignored(f"next level {level} (already at {self.current_level})")
        self._load_level(level)
        self._set_phase(SessionPhase.PLAYING)
        return True

    def restart(self):
        """Back to the start screen; room, role and level are forgotten."""
        logger.info(f"Session {self.room_code or 'solo'}: restart")
        old = self.phase
        self._reset()
        if old is not SessionPhase.READY:
            for listener in list(self._listeners):
                listener(old, SessionPhase.READY)
