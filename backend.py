import copy
import json
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, TypeVar

import redis

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, ROOM_STORE_BACKEND, ROOM_TTL_SECONDS
from redis_keys import (REDIS_ROOM_KEY, POSITION_FIELD, ROLES_FIELD, GAME_STATE_FIELD,
                        PLAYERS_FIELD, PLAYERS_READY_FIELD)
from schemas.rooms import PlayerSlot, Role, RoomPhase
from logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SLOTS = (PlayerSlot.PLAYER1.value, PlayerSlot.PLAYER2.value)


def now_ms() -> int:
    return int(time.time() * 1000)


def _all_slots(flags: dict) -> bool:
    return all(slot in flags for slot in SLOTS)


class RoomStore(ABC):
    """Per-room shared state behind the /api endpoints.

    Subclasses only provide an atomic read and an atomic read-modify-write of
    one room record (a plain dict); every protocol rule lives here so all
    backends behave the same. Rooms are created lazily by the first write.
    """

    @abstractmethod
    def _read(self, room_code: str) -> Dict[str, Any]:
        """Return a private copy of the room record, ``{}`` if it was never written."""

    @abstractmethod
    def _update(self, room_code: str, mutate: Callable[[Dict[str, Any]], T]) -> T:
        """Run ``mutate`` on the room record under the room's mutual exclusion and persist it."""

    def set_position(self, room_code: str, x, y) -> dict:
        position = {"x": x, "y": y, "timestamp": now_ms()}

        def apply(room):
            room[POSITION_FIELD] = dict(position)
            return dict(position)

        result = self._update(room_code, apply)
        logger.debug(f"Room {room_code}: position set to ({x}, {y})")
        return result

    def get_position(self, room_code: str) -> Optional[dict]:
        return self._read(room_code).get(POSITION_FIELD)

    def set_role(self, room_code: str, role: Role, slot: PlayerSlot) -> Dict[str, str]:
        role = Role(role)
        slot = PlayerSlot(slot)
        # the other slot's previous role is discarded, last writer wins for both
        roles = {slot.value: role.value, slot.other().value: role.complement().value}

        def apply(room):
            room[ROLES_FIELD] = dict(roles)
            return dict(roles)

        result = self._update(room_code, apply)
        logger.info(f"Room {room_code}: {slot.value} set role {role.value}, roles now {result}")
        return result

    def get_roles(self, room_code: str) -> Dict[str, str]:
        return self._read(room_code).get(ROLES_FIELD, {})

    def switch_roles(self, room_code: str) -> Optional[Dict[str, str]]:
        def apply(room):
            roles = room.get(ROLES_FIELD)
            if not roles:
                return None
            p1, p2 = SLOTS
            swapped = {p1: roles.get(p2), p2: roles.get(p1)}
            room[ROLES_FIELD] = swapped
            return dict(swapped)

        result = self._update(room_code, apply)
        if result is None:
            logger.warning(f"Room {room_code}: switch roles requested but no roles are set")
        else:
            logger.info(f"Room {room_code}: roles switched to {result}")
        return result

    def set_game_state(self, room_code: str, phase: RoomPhase, level: int) -> bool:
        """Overwrite the game state; a write for a lower level than stored is stale and ignored."""
        phase = RoomPhase(phase)

        applied = self._update(room_code, lambda room: self._write_game_state(room, phase, level))
        if applied:
            logger.info(f"Room {room_code}: game state -> {phase.value}, level {level}")
        else:
            logger.warning(f"Room {room_code}: ignored stale game state {phase.value} for level {level}")
        return applied

    def get_game_state(self, room_code: str) -> Optional[dict]:
        return self._read(room_code).get(GAME_STATE_FIELD)

    def join(self, room_code: str, slot: PlayerSlot) -> dict:
        slot = PlayerSlot(slot)

        def apply(room):
            players = room.setdefault(PLAYERS_FIELD, {})
            players[slot.value] = {"joined": True, "timestamp": now_ms()}
            return {"players": copy.deepcopy(players), "both_joined": _all_slots(players)}

        result = self._update(room_code, apply)
        logger.info(f"Room {room_code}: {slot.value} joined, both joined: {result['both_joined']}")
        return result

    def room_status(self, room_code: str) -> dict:
        room = self._read(room_code)
        players = room.get(PLAYERS_FIELD, {})
        return {"exists": bool(room), "players": players, "both_joined": _all_slots(players)}

    def mark_ready(self, room_code: str, slot: PlayerSlot) -> dict:
        slot = PlayerSlot(slot)

        def apply(room):
            ready = room.setdefault(PLAYERS_READY_FIELD, {})
            was_both_ready = _all_slots(ready)
            ready[slot.value] = {"ready": True, "timestamp": now_ms()}
            both_ready = _all_slots(ready)
            started = both_ready and not was_both_ready
            if started:
                self._write_game_state(room, RoomPhase.PLAYING, 1)
            return {"players_ready": copy.deepcopy(ready), "both_ready": both_ready, "started": started}

        result = self._update(room_code, apply)
        logger.info(f"Room {room_code}: {slot.value} ready, both ready: {result['both_ready']}")
        if result.pop("started"):
            logger.info(f"Room {room_code}: both players ready, level 1 started")
        return result

    def ready_status(self, room_code: str) -> dict:
        ready = self._read(room_code).get(PLAYERS_READY_FIELD, {})
        return {"players_ready": ready, "both_ready": _all_slots(ready)}

    @staticmethod
    def _write_game_state(room: dict, phase: RoomPhase, level: int) -> bool:
        current = room.get(GAME_STATE_FIELD)
        if current and level < current["currentLevel"]:
            return False
        if current and level > current["currentLevel"]:
            # the previous level's exit position must not leak into the new maze
            room.pop(POSITION_FIELD, None)
        room[GAME_STATE_FIELD] = {"phase": phase.value, "currentLevel": level}
        return True


class InMemoryRoomStore(RoomStore):
    """Process-local rooms, one lock per room code. Rooms live until restart."""

    def __init__(self):
        self._rooms: Dict[str, Dict[str, Any]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        logger.info("Initializing in-memory room store")

    def _lock_for(self, room_code: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(room_code)
            if lock is None:
                lock = self._locks[room_code] = threading.Lock()
            return lock

    def _read(self, room_code):
        with self._lock_for(room_code):
            return copy.deepcopy(self._rooms.get(room_code, {}))

    def _update(self, room_code, mutate):
        with self._lock_for(room_code):
            room = self._rooms.get(room_code, {})
            result = mutate(room)
            if room:
                self._rooms[room_code] = room
            return result


class RedisRoomStore(RoomStore):
    """Rooms as Redis hashes; each update is a WATCH/MULTI transaction on the room key."""

    def __init__(self, redis_client: Optional[redis.Redis] = None, ttl: int = ROOM_TTL_SECONDS):
        self.ttl = ttl
        if redis_client is not None:
            self.redis_client = redis_client
            return
        logger.info(f"Initializing RedisRoomStore with connection to {REDIS_HOST}:{REDIS_PORT}")
        try:
            self.redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
            self.redis_client.ping()
            logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
        except Exception as e:
            logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
            raise

    @staticmethod
    def _decode(raw: dict) -> Dict[str, Any]:
        return {k: json.loads(v) for k, v in raw.items()}

    def _read(self, room_code):
        key = REDIS_ROOM_KEY.format(code=room_code)
        return self._decode(self.redis_client.hgetall(key))

    def _update(self, room_code, mutate):
        key = REDIS_ROOM_KEY.format(code=room_code)

        def transaction(pipe):
            room = self._decode(pipe.hgetall(key))
            fields_before = set(room)
            result = mutate(room)
            pipe.multi()
            removed = fields_before - set(room)
            if removed:
                pipe.hdel(key, *removed)
            if room:
                pipe.hset(key, mapping={k: json.dumps(v) for k, v in room.items()})
                if self.ttl:
                    pipe.expire(key, self.ttl)
            return result

        return self.redis_client.transaction(transaction, key, value_from_callable=True)


_room_store: Optional[RoomStore] = None


def get_room_store() -> RoomStore:
    """Build the configured store on first use and share it afterwards."""
    global _room_store
    if _room_store is None:
        if ROOM_STORE_BACKEND == "redis":
            _room_store = RedisRoomStore()
        elif ROOM_STORE_BACKEND == "memory":
            _room_store = InMemoryRoomStore()
        else:
            raise ValueError(f"Unknown ROOM_STORE_BACKEND: {ROOM_STORE_BACKEND}")
    return _room_store
