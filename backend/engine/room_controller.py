"""
Room Controller — the single owner of one room's state.

Every inbound message is handled to completion under the room lock:

  decode → mutate a draft copy → persist the draft → commit → deliver

Handlers never touch the live state or the sockets directly. They record what
should be sent in an Outbox, which is only flushed after the draft has been
written, so a failed write leaves the previous state live and nothing is sent.

Message types handled here:
  host_connect   — claim (or reclaim) the host seat
  join_game      — new player in the lobby, or reconnect via existingPlayerId
  start_game     — host: deal roles, enter night 1
  kick_player    — host, lobby only: remove a player and close their socket
  night_action   — mafia kill / detective investigate / angel protect
  day_vote       — village elimination vote
  reveal_role    — private reminder of the sender's role
  new_game       — host: reset roles and revive everyone, keep the roster
"""
import asyncio
import json
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from config import Settings, settings as default_settings
from engine import view_projector as views
from engine.day_voting import record_day_vote, resolve_day_vote, voting_complete
from engine.errors import AuthorizationError, GameError, GameStateError, PhaseError, ProtocolError, StorageError
from engine.host_authority import can_claim_host, resolve_host_authority
from engine.night_consensus import night_ready, open_voting, record_night_action, resolve_night
from engine.role_assigner import RoleAssigner, role_assigner
from models.game import GameSettings, Phase, PlayerState, RoomState
from models.messages import (
    KNOWN_MESSAGE_TYPES, UNBOUND_MESSAGE_TYPES,
    DayVote, HostConnect, JoinGame, KickPlayer, NewGame, NightAction, RevealRole, StartGame,
    inbound_adapter,
)
from services.session_registry import Connection, Session, SessionRegistry
from services.storage_service import GAME_STATE_KEY, RoomStorage, dump_room_state, load_room_state

logger = logging.getLogger(__name__)

KICKED_CLOSE_CODE = 4000
IDLE_CLOSE_CODE = 4001


class Outbox:
    """Deliveries and session bindings queued by a handler until the state is committed."""

    def __init__(self):
        self.commits: List[Callable[[], None]] = []
        self.effects: List[Tuple[Any, ...]] = []

    def on_commit(self, fn: Callable, *args) -> None:
        self.commits.append(lambda: fn(*args))

    def send(self, session_id: Optional[str], message: Dict) -> None:
        if session_id:
            self.effects.append(("send", session_id, message))

    def to_all(self, message: Dict) -> None:
        self.effects.append(("all", message))

    def state(self) -> None:
        """Per-viewer game_state_update rendered from the committed state."""
        self.effects.append(("state",))

    def close(self, session_id: Optional[str], reason: str) -> None:
        if session_id:
            self.effects.append(("close", session_id, reason))


class RoomController:
    def __init__(
        self,
        room_id: str,
        storage: RoomStorage,
        assigner: Optional[RoleAssigner] = None,
        config: Optional[Settings] = None,
    ):
        self.room_id = room_id
        self.storage = storage
        self.assigner = assigner or role_assigner
        self.config = config or default_settings
        self.sessions = SessionRegistry(room_id)
        self.state: Optional[RoomState] = None
        self.last_activity = time.monotonic()
        self._lock = asyncio.Lock()
        self._day_timer: Optional[asyncio.Task] = None
        self._day_timer_day: Optional[int] = None

    # ── State lifecycle ────────────────────────────────────────────────────────

    async def load(self) -> RoomState:
        """Live state, restored from storage (or created and saved) on first use."""
        if self.state is None:
            try:
                blob = await self.storage.get(GAME_STATE_KEY)
            except Exception as exc:
                logger.exception("[%s] Could not read room state", self.room_id)
                raise StorageError("Could not load the game state") from exc
            if blob:
                self.state = load_room_state(blob)
                logger.info(f"[{self.room_id}] Restored room state (phase={self.state.phase.value})")
            else:
                fresh = RoomState(room_id=self.room_id)
                await self._persist(fresh)
                self.state = fresh
        return self.state

    async def initialize(self, host_name: str) -> RoomState:
        """Create the room record for a freshly minted room id."""
        async with self._lock:
            state = await self.load()
            draft = state.model_copy(deep=True)
            draft.host_name = host_name
            await self._persist(draft)
            self.state = draft
            logger.info(f"[{self.room_id}] Room created by {host_name}")
            return draft

    async def snapshot(self) -> RoomState:
        async with self._lock:
            return (await self.load()).model_copy(deep=True)

    async def _persist(self, state: RoomState) -> None:
        try:
            await self.storage.put(GAME_STATE_KEY, dump_room_state(state))
        except Exception as exc:
            logger.exception("[%s] Could not persist room state", self.room_id)
            raise StorageError("Could not save the game state") from exc

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    def idle_seconds(self) -> float:
        return time.monotonic() - self.last_activity

    # ── Connections ────────────────────────────────────────────────────────────

    async def connect(self, connection: Connection) -> Session:
        self.touch()
        async with self._lock:
            state = await self.load()
            session = self.sessions.register(connection)
            await self.sessions.send_to(session.id, views.game_state_message(state, session))
            return session

    async def disconnect(self, session_id: str) -> None:
        # The bound player stays in the room so they can reconnect
        session = self.sessions.remove(session_id)
        if session:
            logger.info(
                f"[{self.room_id}] session {session_id} disconnected "
                f"(player={session.player_id}, host={session.is_host})"
            )

    async def close(self) -> None:
        """Tear the room down: timers, sockets, persisted blob."""
        self._cancel_day_timer()
        await self.sessions.close_all(code=IDLE_CLOSE_CODE, reason="Room closed due to inactivity")
        try:
            await self.storage.delete_all()
        except Exception:
            logger.warning("[%s] Could not delete room storage", self.room_id, exc_info=True)
        self.state = None

    # ── Inbound ────────────────────────────────────────────────────────────────

    async def handle_raw(self, session_id: str, raw: str) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            await self.sessions.send_to(session_id, ProtocolError(
                "Invalid message format", code="PARSE_ERROR",
            ).to_message())
            return
        await self.handle_message(session_id, data)

    async def handle_message(self, session_id: str, data: Any) -> None:
        self.touch()
        async with self._lock:
            session = self.sessions.get(session_id)
            if not session:
                return
            outbox = Outbox()
            try:
                message = self._parse(session, data)
                state = await self.load()
                draft = state.model_copy(deep=True)
                self._dispatch(session, message, draft, outbox)
                if draft != state:
                    await self._persist(draft)
                self.state = draft
            except GameError as exc:
                logger.warning(f"[{self.room_id}] Rejected {_type_of(data)} from {session_id}: {exc.message}")
                await self.sessions.send_to(session_id, exc.to_message())
                return
            except Exception:
                logger.exception("[%s] Unhandled error handling %s", self.room_id, _type_of(data))
                await self.sessions.send_to(session_id, {
                    "type": "error", "message": "Internal server error", "code": "SERVER_ERROR",
                })
                return

            await self._deliver(outbox)
            self._schedule_day_timer()

    def _parse(self, session: Session, data: Any):
        if not isinstance(data, dict):
            raise ProtocolError("Invalid message format", code="INVALID_PAYLOAD")
        msg_type = data.get("type")
        if msg_type not in KNOWN_MESSAGE_TYPES:
            raise ProtocolError("Unknown message type", code="UNKNOWN_TYPE")
        if not session.is_bound and msg_type not in UNBOUND_MESSAGE_TYPES:
            raise ProtocolError("Join the game before sending this message", code="NOT_JOINED")
        try:
            return inbound_adapter.validate_python(data)
        except ValidationError as exc:
            raise ProtocolError(
                f"Invalid '{msg_type}' message: {exc.errors()[0].get('msg', 'bad payload')}",
                code="INVALID_PAYLOAD",
            ) from exc

    def _dispatch(self, session: Session, message, state: RoomState, outbox: Outbox) -> None:
        if isinstance(message, HostConnect):
            self._on_host_connect(session, message, state, outbox)
        elif isinstance(message, JoinGame):
            self._on_join_game(session, message, state, outbox)
        elif isinstance(message, StartGame):
            self._on_start_game(session, message, state, outbox)
        elif isinstance(message, KickPlayer):
            self._on_kick_player(session, message, state, outbox)
        elif isinstance(message, NightAction):
            self._on_night_action(session, message, state, outbox)
        elif isinstance(message, DayVote):
            self._on_day_vote(session, message, state, outbox)
        elif isinstance(message, RevealRole):
            self._on_reveal_role(session, state, outbox)
        elif isinstance(message, NewGame):
            self._on_new_game(session, state, outbox)
        else:
            raise ProtocolError("Unknown message type", code="UNKNOWN_TYPE")

    # ── Handlers ───────────────────────────────────────────────────────────────

    def _on_host_connect(self, session: Session, msg: HostConnect, state: RoomState, outbox: Outbox) -> None:
        if not can_claim_host(session, state, self.sessions):
            raise AuthorizationError("This room already has a host", code="HOST_TAKEN")
        host_name = msg.host_name.strip() or "Host"
        if state.host_id and state.host_id != session.id:
            logger.info(f"[{self.room_id}] Host seat reclaimed by {session.id} ({host_name})")
        state.host_id = session.id
        state.host_name = host_name
        outbox.on_commit(self.sessions.bind_host, session.id, host_name)
        outbox.state()

    def _on_join_game(self, session: Session, msg: JoinGame, state: RoomState, outbox: Outbox) -> None:
        name = msg.player_name.strip()

        existing = state.players.get(msg.existing_player_id) if msg.existing_player_id else None
        if existing and existing.name == name:
            self._rebind_player(session, existing, state, outbox)
            return

        if state.phase != Phase.LOBBY:
            raise PhaseError("Game already in progress")
        if not name:
            raise GameStateError("Player name is required", code="INVALID_NAME")
        if session.player_id and session.player_id in state.players:
            raise GameStateError("This connection has already joined the game", code="ALREADY_JOINED")
        if state.find_by_name(name):
            raise GameStateError(f"The name '{name}' is already taken", code="NAME_TAKEN")

        player = PlayerState(id=str(uuid.uuid4()), name=name, session_id=session.id)
        state.players[player.id] = player
        logger.info(f"[{self.room_id}] {name} joined ({len(state.players)} players)")

        outbox.on_commit(self.sessions.bind_player, session.id, player.id, player.name)
        outbox.send(session.id, {
            "type": "player_joined",
            "playerId": player.id,
            "playerName": player.name,
            "reconnected": False,
        })
        outbox.state()

    def _rebind_player(self, session: Session, player: PlayerState, state: RoomState, outbox: Outbox) -> None:
        previous = state.players.get(session.player_id) if session.player_id else None
        if previous and previous.id != player.id and previous.session_id == session.id:
            previous.session_id = None
        player.session_id = session.id
        logger.info(f"[{self.room_id}] {player.name} reconnected on session {session.id}")

        outbox.on_commit(self.sessions.unbind_player, player.id, session.id)
        outbox.on_commit(self.sessions.bind_player, session.id, player.id, player.name)
        outbox.send(session.id, {
            "type": "player_joined",
            "playerId": player.id,
            "playerName": player.name,
            "reconnected": True,
        })
        outbox.state()
        if player.role:
            outbox.send(session.id, views.role_assigned_message(state, player))
            night_view = views.night_action_message(state, player)
            if night_view:
                outbox.send(session.id, night_view)

    def _on_start_game(self, session: Session, msg: StartGame, state: RoomState, outbox: Outbox) -> None:
        self._require_host(session, state, "start the game")
        if state.phase != Phase.LOBBY:
            raise PhaseError("The game has already started")
        if len(state.players) < self.config.min_players:
            raise GameStateError(
                f"Need at least {self.config.min_players} players to start",
                code="NOT_ENOUGH_PLAYERS",
            )

        state.settings = msg.game_settings or GameSettings()
        for player in state.players.values():
            player.role = None
            player.alive = True
        self.assigner.assign_roles(state)

        state.phase = Phase.NIGHT
        state.day = 1
        state.winner = None
        state.night_ballots.clear()
        state.day_ballots.clear()
        state.log(f"Game started with {len(state.players)} players")
        logger.info(f"[{self.room_id}] Game started with {len(state.players)} players")

        outbox.state()
        for player in state.players.values():
            outbox.send(player.session_id, views.role_assigned_message(state, player))
        self._queue_night_updates(state, outbox)

    def _on_kick_player(self, session: Session, msg: KickPlayer, state: RoomState, outbox: Outbox) -> None:
        self._require_host(session, state, "kick players")
        if state.phase != Phase.LOBBY:
            raise PhaseError("Cannot kick players during an active game")
        target = state.players.get(msg.player_id)
        if not target:
            raise GameStateError("Player not found", code="PLAYER_NOT_FOUND")

        del state.players[target.id]
        state.log(f"{target.name} was kicked from the game")
        logger.info(f"[{self.room_id}] {target.name} kicked by {session.id}")

        outbox.on_commit(self.sessions.unbind_player, target.id)
        outbox.send(target.session_id, {
            "type": "error",
            "message": "You have been kicked from the game",
            "code": "KICKED",
        })
        outbox.close(target.session_id, "Kicked by host")
        outbox.state()

    def _on_night_action(self, session: Session, msg: NightAction, state: RoomState, outbox: Outbox) -> None:
        player = self._player_for(session, state)
        record_night_action(state, player, msg.action.type, msg.action.target)
        self._queue_night_updates(state, outbox)

        if not night_ready(state):
            return
        outcome = resolve_night(state, skip_day_pause=self._day_delay(state) <= 0)
        if outcome.investigation:
            result = outcome.investigation.to_message()
            for detective_id in outcome.investigation.detective_ids:
                outbox.send(state.players[detective_id].session_id, result)
        outbox.state()

    def _on_day_vote(self, session: Session, msg: DayVote, state: RoomState, outbox: Outbox) -> None:
        player = self._player_for(session, state)
        record_day_vote(state, player, msg.vote.target)

        if voting_complete(state):
            resolve_day_vote(state)
            outbox.state()
            self._queue_night_updates(state, outbox)
        else:
            outbox.state()

    def _on_reveal_role(self, session: Session, state: RoomState, outbox: Outbox) -> None:
        player = self._player_for(session, state)
        outbox.send(session.id, views.role_reveal_message(state, player))

    def _on_new_game(self, session: Session, state: RoomState, outbox: Outbox) -> None:
        self._require_host(session, state, "start a new game")
        for player in state.players.values():
            player.role = None
            player.alive = True
        state.phase = Phase.LOBBY
        state.day = 0
        state.winner = None
        state.night_ballots.clear()
        state.day_ballots.clear()
        state.game_log = ["New game started! Players from previous game have been kept."]
        logger.info(f"[{self.room_id}] New game, {len(state.players)} players kept")

        outbox.to_all({
            "type": "new_game_started",
            "message": "Host started a new game! You can leave or stay to play again.",
        })
        outbox.state()

    # ── Helpers ────────────────────────────────────────────────────────────────

    def _require_host(self, session: Session, state: RoomState, action: str) -> None:
        if not resolve_host_authority(session, state, self.sessions):
            raise AuthorizationError(f"Only the host can {action}")

    def _player_for(self, session: Session, state: RoomState) -> PlayerState:
        player = state.players.get(session.player_id) if session.player_id else None
        if not player:
            raise GameStateError("You are not a player in this game", code="PLAYER_NOT_FOUND")
        return player

    def _queue_night_updates(self, state: RoomState, outbox: Outbox) -> None:
        for player in state.players.values():
            view = views.night_action_message(state, player)
            if view:
                outbox.send(player.session_id, view)

    def _day_delay(self, state: RoomState) -> float:
        # dayDuration 0 or unset means "no custom length", not "skip the day"
        if state.settings.day_duration and state.settings.day_duration > 0:
            return state.settings.day_duration
        return self.config.day_advance_delay_sec

    async def _deliver(self, outbox: Outbox) -> None:
        for commit in outbox.commits:
            commit()
        for effect in outbox.effects:
            kind = effect[0]
            if kind == "send":
                await self.sessions.send_to(effect[1], effect[2])
            elif kind == "all":
                await self.sessions.broadcast(effect[1])
            elif kind == "state":
                await self._broadcast_state()
            elif kind == "close":
                await self.sessions.close(effect[1], code=KICKED_CLOSE_CODE, reason=effect[2])

    async def _broadcast_state(self) -> None:
        for session in self.sessions:
            await self.sessions.send_to(session.id, views.game_state_message(self.state, session))

    # ── Day → voting timer ─────────────────────────────────────────────────────

    def _schedule_day_timer(self) -> None:
        state = self.state
        if state is None or state.phase != Phase.DAY:
            return
        if self._day_timer and not self._day_timer.done() and self._day_timer_day == state.day:
            return
        # A timer left over from an earlier day would no-op when it wakes
        self._cancel_day_timer()
        self._day_timer_day = state.day
        self._day_timer = asyncio.create_task(
            self._advance_after(self._day_delay(state), state.day),
            name=f"day-timer-{self.room_id}-{state.day}",
        )

    def _cancel_day_timer(self) -> None:
        if self._day_timer and not self._day_timer.done():
            self._day_timer.cancel()
        self._day_timer = None
        self._day_timer_day = None

    async def _advance_after(self, delay: float, day: int) -> None:
        try:
            await asyncio.sleep(delay)
            await self.advance_to_voting(day)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[%s] Day timer for day %d failed", self.room_id, day)

    async def advance_to_voting(self, day: int) -> bool:
        """Move day `day` into voting. No-op if the room already left that day."""
        async with self._lock:
            state = self.state
            if state is None or state.phase != Phase.DAY or state.day != day:
                logger.debug(f"[{self.room_id}] Day timer for day {day} found nothing to advance")
                return False
            draft = state.model_copy(deep=True)
            open_voting(draft)
            try:
                await self._persist(draft)
            except StorageError:
                logger.error(f"[{self.room_id}] Day {day} could not open voting: state not saved, room stays in day")
                return False
            self.state = draft
            logger.info(f"[{self.room_id}] Day {day} → voting")
            await self._broadcast_state()
            return True


def _type_of(data: Any) -> str:
    if isinstance(data, dict):
        return str(data.get("type"))
    return type(data).__name__
