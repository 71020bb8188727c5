import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import logging
from threading import Lock
from typing import Callable
from uuid import uuid4

from chessrooms.core.errors import (
    InvalidProtocolState,
    MalformedMessage,
    NotYourTurn,
    RoomNotFound,
    SeatTaken,
)
from chessrooms.services.rules_oracle import AppliedMove, ChessRulesOracle, GameResult, RulesOracle

logger = logging.getLogger(__name__)

SEAT_COLORS = ("w", "b")
COLOR_ALIASES = {"w": "w", "white": "w", "b": "b", "black": "b"}
DEFAULT_IDLE_TIMEOUT_SECONDS = 600.0
DEFAULT_ROOM_ID_LENGTH = 8


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_color(value: str) -> str:
    color = COLOR_ALIASES.get(value.strip().lower()) if isinstance(value, str) else None
    if color is None:
        raise MalformedMessage("Invalid seat color")
    return color


def opponent_of(color: str) -> str:
    return "b" if color == "w" else "w"


def default_nickname(conn_id: str) -> str:
    return f"Guest-{conn_id[-4:]}"


@dataclass
class PlayerInfo:
    nickname: str
    spectator: bool = False


@dataclass(frozen=True)
class LastMove:
    from_square: str
    to_square: str


class RestartOutcome(str, Enum):
    RESET = "reset"
    VOTE_RECORDED = "vote_recorded"


@dataclass
class Room:
    id: str
    oracle: RulesOracle
    seats: dict[str, str | None] = field(default_factory=lambda: {color: None for color in SEAT_COLORS})
    members: set[str] = field(default_factory=set)
    players: dict[str, PlayerInfo] = field(default_factory=dict)
    last_move: LastMove | None = None
    draw_offer: str | None = None
    restart_votes: set[str] = field(default_factory=set)
    result: GameResult | None = None
    created_at: datetime = field(default_factory=_utc_now)
    last_activity_at: datetime = field(default_factory=_utc_now)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.result is not None

    def color_of(self, conn_id: str) -> str | None:
        for color in SEAT_COLORS:
            if self.seats[color] == conn_id:
                return color
        return None

    def touch(self) -> None:
        self.last_activity_at = _utc_now()

    def _require_seat(self, conn_id: str) -> str:
        color = self.color_of(conn_id)
        if color is None:
            raise InvalidProtocolState("You are not seated")
        return color

    def _require_active_game(self) -> None:
        if self.is_terminal:
            raise InvalidProtocolState("Game is over")

    def _vacate_seats(self, conn_id: str) -> bool:
        vacated = False
        for color in SEAT_COLORS:
            if self.seats[color] != conn_id:
                continue
            self.seats[color] = None
            if self.draw_offer == color:
                self.draw_offer = None
            vacated = True
        self.restart_votes.discard(conn_id)
        return vacated

    def join(self, conn_id: str, spectate: bool = False, nickname: str | None = None) -> None:
        self.members.add(conn_id)
        player = self.players.get(conn_id)
        if player is None:
            player = PlayerInfo(nickname=default_nickname(conn_id))
            self.players[conn_id] = player
        if nickname and nickname.strip():
            player.nickname = nickname.strip()
        player.spectator = bool(spectate) and self.color_of(conn_id) is None
        self.touch()

    def leave(self, conn_id: str) -> bool:
        self.members.discard(conn_id)
        self.players.pop(conn_id, None)
        self._vacate_seats(conn_id)
        self.touch()
        return len(self.members) == 0

    def take_seat(self, conn_id: str, color: str) -> bool:
        color = normalize_color(color)
        if conn_id not in self.members:
            raise InvalidProtocolState("Join the room first")
        holder = self.seats[color]
        if holder == conn_id:
            return False
        if holder is not None:
            raise SeatTaken()
        self._vacate_seats(conn_id)
        self.seats[color] = conn_id
        self.players[conn_id].spectator = False
        self.touch()
        return True

    def leave_seat(self, conn_id: str) -> bool:
        vacated = self._vacate_seats(conn_id)
        self.touch()
        return vacated

    def apply_move(
        self,
        conn_id: str,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> AppliedMove:
        self._require_active_game()
        if self.seats[self.oracle.turn()] != conn_id:
            raise NotYourTurn()

        # The oracle leaves the position untouched when it raises.
        applied = self.oracle.apply_move(from_square, to_square, promotion)

        self.last_move = LastMove(from_square=applied.from_square, to_square=applied.to_square)
        self.draw_offer = None
        self.result = self.oracle.outcome()
        self.touch()
        return applied

    def resign(self, conn_id: str) -> GameResult:
        color = self._require_seat(conn_id)
        self._require_active_game()
        self.result = GameResult(status="resign", winner=opponent_of(color))
        self.draw_offer = None
        self.touch()
        return self.result

    def offer_draw(self, conn_id: str) -> None:
        color = self._require_seat(conn_id)
        self._require_active_game()
        if self.draw_offer is not None:
            raise InvalidProtocolState("A draw offer is already pending")
        self.draw_offer = color
        self.touch()

    def respond_draw(self, conn_id: str, accept: bool) -> bool:
        color = self._require_seat(conn_id)
        if self.draw_offer is None:
            return False
        if self.draw_offer == color:
            raise InvalidProtocolState("You cannot respond to your own draw offer")
        if accept and not self.is_terminal:
            self.result = GameResult(status="draw", reason="agreement")
        self.draw_offer = None
        self.touch()
        return True

    def restart(self, conn_id: str) -> RestartOutcome:
        occupied = [color for color in SEAT_COLORS if self.seats[color] is not None]
        if len(occupied) == 0:
            self.reset()
            return RestartOutcome.RESET
        if len(occupied) == 1:
            raise InvalidProtocolState("Restart needs both seats filled or both empty")

        self._require_seat(conn_id)
        self.restart_votes.add(conn_id)
        self.touch()
        if all(self.seats[color] in self.restart_votes for color in SEAT_COLORS):
            self.reset()
            return RestartOutcome.RESET
        return RestartOutcome.VOTE_RECORDED

    def reset(self) -> None:
        self.oracle.reset()
        self.last_move = None
        self.draw_offer = None
        self.result = None
        self.restart_votes.clear()
        self.touch()


class RoomRegistry:
    def __init__(
        self,
        idle_timeout_seconds: float = DEFAULT_IDLE_TIMEOUT_SECONDS,
        room_id_length: int = DEFAULT_ROOM_ID_LENGTH,
        oracle_factory: Callable[[], RulesOracle] = ChessRulesOracle,
    ) -> None:
        self.idle_timeout_seconds = idle_timeout_seconds
        self._room_id_length = room_id_length
        self._oracle_factory = oracle_factory
        self._rooms: dict[str, Room] = {}
        self._deletion_tasks: dict[str, asyncio.Task] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    def _new_room_id(self) -> str:
        while True:
            room_id = uuid4().hex[: self._room_id_length]
            if room_id not in self._rooms:
                return room_id

    def create_room(self) -> Room:
        with self._lock:
            room = Room(id=self._new_room_id(), oracle=self._oracle_factory())
            self._rooms[room.id] = room
        logger.info("room %s created", room.id)
        # A room nobody joins is reclaimed like one everybody left.
        self.schedule_deletion(room)
        return room

    def find_room(self, room_id: str | None) -> Room | None:
        if not room_id:
            return None
        with self._lock:
            return self._rooms.get(room_id)

    def get_room(self, room_id: str | None) -> Room:
        room = self.find_room(room_id)
        if room is None:
            raise RoomNotFound()
        return room

    def is_deletion_pending(self, room_id: str) -> bool:
        task = self._deletion_tasks.get(room_id)
        return task is not None and not task.done()

    def join(
        self,
        room: Room,
        conn_id: str,
        spectate: bool = False,
        nickname: str | None = None,
    ) -> None:
        room.join(conn_id, spectate=spectate, nickname=nickname)
        self.cancel_deletion(room.id)

    def leave(self, room: Room, conn_id: str) -> bool:
        is_empty = room.leave(conn_id)
        if is_empty:
            self.schedule_deletion(room)
        return is_empty

    def schedule_deletion(self, room: Room) -> asyncio.Task:
        self.cancel_deletion(room.id)
        task = asyncio.get_running_loop().create_task(
            self._delete_when_idle(room, self.idle_timeout_seconds),
            name=f"room-gc:{room.id}",
        )
        self._deletion_tasks[room.id] = task
        logger.debug("room %s empty, deletion in %.0fs", room.id, self.idle_timeout_seconds)
        return task

    def cancel_deletion(self, room_id: str) -> bool:
        task = self._deletion_tasks.pop(room_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("room %s deletion cancelled", room_id)
        return True

    async def _delete_when_idle(self, room: Room, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._deletion_tasks.get(room.id) is asyncio.current_task():
            self._deletion_tasks.pop(room.id, None)
        with self._lock:
            if self._rooms.get(room.id) is not room or room.members:
                return
            self._rooms.pop(room.id, None)
        logger.info("room %s deleted due to inactivity", room.id)

    def close(self) -> None:
        for room_id in list(self._deletion_tasks):
            self.cancel_deletion(room_id)
        with self._lock:
            self._rooms.clear()
