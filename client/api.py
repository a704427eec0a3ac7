import asyncio
from typing import Dict, Optional

import aiohttp

from constants import API_BASE_URL, REQUEST_TIMEOUT
from schemas.rooms import (PlayerSlot, Role, RoomPhase, PositionResponse, RolesResponse,
                           GameStateResponse, GameStateWriteResponse, JoinResponse,
                           RoomStatusResponse, ReadyResponse, ReadyStatusResponse)
from logging_config import get_logger

logger = get_logger(__name__)


class RoomApiError(Exception):
    pass


class TransientSyncError(RoomApiError):
    """Network failure, timeout or server error. Retried on the next poll tick."""


class RoomApiRejected(RoomApiError):
    """The server refused a request as malformed. A client bug, never retried."""

    def __init__(self, status: int, detail: str):
        super().__init__(f"HTTP {status}: {detail}")
        self.status = status
        self.detail = detail


class RoomApiClient:
    """Thin async wrapper over the /api room endpoints."""

    def __init__(self, base_url: str = API_BASE_URL, timeout: float = REQUEST_TIMEOUT,
                 session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def _request(self, method: str, path: str, payload: Optional[dict] = None,
                       allow_missing: bool = False) -> Optional[dict]:
        url = f"{self.base_url}{path}"
        try:
            async with self._http().request(method, url, json=payload) as resp:
                if resp.status == 404 and allow_missing:
                    return None
                if resp.status >= 500:
                    raise TransientSyncError(f"{method} {path} -> HTTP {resp.status}")
                if resp.status >= 400:
                    detail = await resp.text()
                    logger.error(f"{method} {path} rejected with {resp.status}: {detail}")
                    raise RoomApiRejected(resp.status, detail)
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientSyncError(f"{method} {path} failed: {e!r}") from e

    async def set_position(self, room_code: str, x: int, y: int):
        await self._request("POST", f"/api/position/{room_code}", {"x": x, "y": y})

    async def get_position(self, room_code: str) -> Optional[PositionResponse]:
        data = await self._request("GET", f"/api/position/{room_code}", allow_missing=True)
        return PositionResponse.model_validate(data) if data is not None else None

    async def set_role(self, room_code: str, role: Role, slot: PlayerSlot) -> Dict[str, Role]:
        data = await self._request("POST", f"/api/role/{room_code}",
                                   {"role": Role(role).value, "playerId": PlayerSlot(slot).value})
        return RolesResponse.model_validate(data).roles

    async def get_roles(self, room_code: str) -> Dict[str, Role]:
        data = await self._request("GET", f"/api/role/{room_code}")
        return RolesResponse.model_validate(data).roles

    async def switch_roles(self, room_code: str) -> Optional[Dict[str, Role]]:
        data = await self._request("POST", f"/api/switch-roles/{room_code}", allow_missing=True)
        return RolesResponse.model_validate(data).roles if data is not None else None

    async def set_game_state(self, room_code: str, phase: RoomPhase, level: int) -> bool:
        data = await self._request("POST", f"/api/game-state/{room_code}",
                                   {"phase": RoomPhase(phase).value, "currentLevel": level})
        return GameStateWriteResponse.model_validate(data).applied

    async def get_game_state(self, room_code: str) -> GameStateResponse:
        data = await self._request("GET", f"/api/game-state/{room_code}")
        return GameStateResponse.model_validate(data)

    async def join(self, room_code: str, slot: PlayerSlot) -> JoinResponse:
        data = await self._request("POST", f"/api/join/{room_code}", {"playerId": PlayerSlot(slot).value})
        return JoinResponse.model_validate(data)

    async def room_status(self, room_code: str) -> RoomStatusResponse:
        data = await self._request("GET", f"/api/room-status/{room_code}")
        return RoomStatusResponse.model_validate(data)

    async def mark_ready(self, room_code: str, slot: PlayerSlot) -> ReadyResponse:
        data = await self._request("POST", f"/api/player-ready/{room_code}", {"playerId": PlayerSlot(slot).value})
        return ReadyResponse.model_validate(data)

    async def ready_status(self, room_code: str) -> ReadyStatusResponse:
        data = await self._request("GET", f"/api/player-ready/{room_code}")
        return ReadyStatusResponse.model_validate(data)
