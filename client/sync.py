"""
Synchronization client.

Bridges a local ``Session`` to the room server. There is no push channel, so
every piece of partner-driven state (partner joined, role assigned, level
started or finished, token moved) is discovered by polling. Which polls run is
a pure function of the session phase and role: each phase change enters a new
scheduler scope, cancelling the polls of the phase being left.
"""
from typing import Callable, Dict, Optional

from client.api import RoomApiClient, TransientSyncError
from client.room_codes import build_share_link, generate_room_code, room_code_from_link
from client.scheduler import CancellationToken, PollScheduler
from constants import (API_BASE_URL, POSITION_POLL_INTERVAL, REQUEST_TIMEOUT, ROLE_POLL_INTERVAL,
                       ROOM_POLL_INTERVAL)
from game.maze import Position
from game.session import Session, SessionPhase, SessionSnapshot
from schemas.rooms import Role, RoomPhase
from logging_config import get_logger

logger = get_logger(__name__)

Notifier = Callable[[str, dict], None]


class SyncClient:
    def __init__(self, api: RoomApiClient, session: Optional[Session] = None,
                 room_poll_interval: float = ROOM_POLL_INTERVAL,
                 role_poll_interval: float = ROLE_POLL_INTERVAL,
                 position_poll_interval: float = POSITION_POLL_INTERVAL,
                 request_timeout: float = REQUEST_TIMEOUT,
                 on_notify: Optional[Notifier] = None):
        self.api = api
        self.session = session or Session()
        self.room_poll_interval = room_poll_interval
        self.role_poll_interval = role_poll_interval
        self.position_poll_interval = position_poll_interval
        self.on_notify = on_notify
        self.scheduler = PollScheduler(self.session.snapshot, request_timeout=request_timeout)
        self._reset_progress()
        self.session.subscribe(self._on_phase_change)

    def _reset_progress(self):
        self._ready_sent = False
        self._last_pushed: Optional[Position] = None
        self._exit_position_sent = False
        self._exit_announced = False

    def _notify(self, event: str, **payload):
        logger.info(f"Room {self.session.room_code}: {event} {payload or ''}")
        if self.on_notify:
            self.on_notify(event, payload)

    def share_link(self, base_url: str = API_BASE_URL) -> Optional[str]:
        if self.session.room_code is None:
            return None
        return build_share_link(base_url, self.session.room_code)

    # phase -> polls

    def _on_phase_change(self, old: SessionPhase, new: SessionPhase):
        self.scheduler.enter_scope(new.value)
        if new is SessionPhase.READY:
            self._reset_progress()
            return
        if new is SessionPhase.LEVEL_COMPLETE:
            self._exit_position_sent = False
            self._exit_announced = False
        if self.session.solo:
            return
        self._start_polls(new)

    def _start_polls(self, phase: SessionPhase):
        session = self.session
        if phase is SessionPhase.ROOM_SETUP:
            self.scheduler.every("room-presence", self.room_poll_interval, self._poll_room_presence)
        elif phase is SessionPhase.ROLE_SELECT:
            self.scheduler.every("role-ready", self.role_poll_interval, self._poll_role_ready)
        elif phase is SessionPhase.PLAYING:
            if session.role is Role.GUIDE:
                self.scheduler.every("position", self.position_poll_interval, self._poll_position)
            else:
                self.scheduler.every("position-push", self.position_poll_interval, self._push_position)
            self.scheduler.every("phase-watch", self.role_poll_interval, self._poll_phase)
        elif phase is SessionPhase.LEVEL_COMPLETE:
            if session.reached_exit:
                self.scheduler.every("announce-exit", self.position_poll_interval, self._announce_exit)
            if not session.is_creator:
                self.scheduler.every("level-role", self.role_poll_interval, self._poll_level_and_role)

    # polls; each gets the session snapshot taken when its tick started

    async def _poll_room_presence(self, snap: SessionSnapshot, token: CancellationToken):
        status = await self.api.room_status(snap.room_code)
        if token.cancelled:
            return True
        if snap.player_slot.value not in status.players:
            # our own join write was lost
            await self.api.join(snap.room_code, snap.player_slot)
            return False
        if status.both_players_joined and self.session.mark_partner_joined():
            self._notify("partner-joined")
        if not self.session.partner_joined:
            return False
        if snap.is_creator:
            return self.session.enter_role_select()
        # the joiner waits until the creator has assigned roles
        roles = await self.api.get_roles(snap.room_code)
        if token.cancelled:
            return True
        if roles:
            return self.session.enter_role_select()
        return False

    async def _poll_role_ready(self, snap: SessionSnapshot, token: CancellationToken):
        roles = await self.api.get_roles(snap.room_code)
        if token.cancelled:
            return True
        self._adopt_role_from(roles, snap)
        if self.session.role is None:
            return False
        if not self._ready_sent:
            await self.api.mark_ready(snap.room_code, snap.player_slot)
            self._ready_sent = True
            if token.cancelled:
                return True
        if snap.is_creator:
            return self.session.start_playing(1)
        state = await self.api.get_game_state(snap.room_code)
        if token.cancelled:
            return True
        # an uninitialized state carries default values, not a started level
        if state.initialized and state.phase is RoomPhase.PLAYING:
            if self.session.start_playing(state.current_level):
                self._notify("level-started", level=state.current_level)
                return True
        return False

    async def _poll_position(self, snap: SessionSnapshot, token: CancellationToken):
        position = await self.api.get_position(snap.room_code)
        if token.cancelled or position is None:
            return False
        if (position.x, position.y) != snap.position and self.session.snap_token(position.x, position.y):
            if self.session.phase is SessionPhase.LEVEL_COMPLETE:
                self._notify("level-complete", level=snap.current_level)
                return True
        return False

    async def _push_position(self, snap: SessionSnapshot, token: CancellationToken):
        if snap.position is None or snap.position == self._last_pushed:
            return False
        await self.api.set_position(snap.room_code, *snap.position)
        self._last_pushed = snap.position
        return False

    async def _poll_phase(self, snap: SessionSnapshot, token: CancellationToken):
        state = await self.api.get_game_state(snap.room_code)
        if token.cancelled:
            return True
        if not state.initialized:
            return False
        if state.phase is RoomPhase.LEVEL_COMPLETE and state.current_level == snap.current_level:
            if self.session.observe_level_complete(state.current_level):
                self._notify("level-complete", level=state.current_level)
                return True
        elif state.phase is RoomPhase.PLAYING and state.current_level > snap.current_level:
            # the partner finished and advanced before we saw level-complete
            roles = await self.api.get_roles(snap.room_code)
            if token.cancelled:
                return True
            if self.session.observe_level_complete(snap.current_level):
                self._notify("level-complete", level=snap.current_level)
            self._adopt_role_from(roles, snap)
            if self.session.next_level(state.current_level):
                self._notify("level-started", level=state.current_level)
            return True
        return False

    async def _send_exit(self, room_code: str, position: Position, level: int):
        if not self._exit_position_sent:
            await self.api.set_position(room_code, *position)
            self._exit_position_sent = True
            self._last_pushed = position
        await self.api.set_game_state(room_code, RoomPhase.LEVEL_COMPLETE, level)
        self._exit_announced = True

    async def _announce_exit(self, snap: SessionSnapshot, token: CancellationToken):
        await self._send_exit(snap.room_code, snap.position, snap.current_level)
        return True

    async def _poll_level_and_role(self, snap: SessionSnapshot, token: CancellationToken):
        # state before roles: roles are final once the next level is written
        state = await self.api.get_game_state(snap.room_code)
        if token.cancelled:
            return True
        roles = await self.api.get_roles(snap.room_code)
        if token.cancelled:
            return True
        self._adopt_role_from(roles, snap)
        if (state.initialized and state.phase is RoomPhase.PLAYING
                and state.current_level > snap.current_level):
            if self.session.next_level(state.current_level):
                self._notify("level-started", level=state.current_level)
                return True
        return False

    def _adopt_role_from(self, roles: Dict[str, Role], snap: SessionSnapshot):
        mine = roles.get(snap.player_slot.value)
        if mine is not None and self.session.adopt_role(mine):
            self._notify("role-assigned", role=mine.value)

    # intents

    async def create_room(self, room_code: Optional[str] = None) -> Optional[str]:
        room_code = room_code or generate_room_code()
        if not self.session.create_room(room_code):
            return None
        await self._send_join()
        return room_code

    async def join_room(self, room_code: str) -> bool:
        if not self.session.join_room(room_code):
            return False
        await self._send_join()
        return True

    async def join_link(self, url: str) -> bool:
        room_code = room_code_from_link(url)
        if room_code is None:
            logger.warning(f"No room code in link {url}")
            return False
        return await self.join_room(room_code)

    async def _send_join(self):
        try:
            await self.api.join(self.session.room_code, self.session.player_slot)
        except TransientSyncError as e:
            # the presence poll re-sends the join
            logger.warning(f"Join for room {self.session.room_code} failed, will retry: {e}")

    async def choose_role(self, role: Role) -> bool:
        session = self.session
        role = Role(role)
        if not session.can_choose_role:
            logger.warning(f"Role choice {role.value} not allowed in phase {session.phase.value}")
            return False
        if session.solo:
            session.adopt_role(role)
            if session.phase is SessionPhase.ROLE_SELECT:
                session.start_playing(1)
            return True

        try:
            roles = await self.api.set_role(session.room_code, role, session.player_slot)
        except TransientSyncError as e:
            logger.warning(f"Role choice {role.value} for room {session.room_code} failed: {e}")
            return False
        if session.adopt_role(roles[session.player_slot.value]):
            self._notify("role-assigned", role=session.role.value)
        if session.phase is SessionPhase.ROLE_SELECT:
            try:
                await self.api.mark_ready(session.room_code, session.player_slot)
            except TransientSyncError as e:
                # the role-ready poll sends it and starts the level
                logger.warning(f"Ready for room {session.room_code} failed, will retry: {e}")
                return True
            self._ready_sent = True
            session.start_playing(1)
        return True

    async def switch_roles(self) -> bool:
        session = self.session
        if session.solo or not session.can_choose_role:
            return False
        try:
            roles = await self.api.switch_roles(session.room_code)
        except TransientSyncError as e:
            logger.warning(f"Switching roles in room {session.room_code} failed: {e}")
            return False
        if roles is None:
            return False
        if session.adopt_role(roles[session.player_slot.value]):
            self._notify("role-assigned", role=session.role.value)
        return True

    def move(self, direction: str) -> Optional[Position]:
        """Local move; the navigator's push loop reports it to the room."""
        position = self.session.move(direction)
        if position is not None and self.session.reached_exit:
            self._notify("level-complete", level=self.session.current_level)
        return position

    async def next_level(self) -> bool:
        session = self.session
        if session.solo:
            return session.next_level()
        if not session.is_creator or session.phase is not SessionPhase.LEVEL_COMPLETE:
            logger.warning(f"Next level ignored: creator={session.is_creator}, phase={session.phase.value}")
            return False
        level = session.current_level + 1
        if session.reached_exit and not self._exit_announced:
            # draining would drop a pending announce and the partner would never see the exit
            try:
                await self._send_exit(session.room_code, session.position, session.current_level)
            except TransientSyncError as e:
                logger.warning(f"Announcing exit of level {session.current_level} in room {session.room_code} failed: {e}")
                return False
            if session.phase is not SessionPhase.LEVEL_COMPLETE:
                return False
        await self.scheduler.drain()
        try:
            await self.api.set_game_state(session.room_code, RoomPhase.PLAYING, level)
        except TransientSyncError as e:
            logger.warning(f"Starting level {level} in room {session.room_code} failed: {e}")
            # still in level-complete; bring its polls back
            self.scheduler.enter_scope(session.phase.value)
            self._start_polls(session.phase)
            return False
        if session.next_level(level):
            self._notify("level-started", level=level)
            return True
        return False

    def restart(self):
        self.session.restart()

    async def close(self):
        await self.scheduler.drain()
