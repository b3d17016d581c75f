from __future__ import annotations
import asyncio
import logging
from typing import Any, Callable, List, Optional, Sequence

from pydantic import ValidationError

from .connections import Connection, ConnectionRegistry, HostConnection, PlayerConnection
from .models import Phase, Player, Question
from .schemas import (
    AnswerCountOut,
    AnswerIn,
    Envelope,
    ErrorOut,
    JoinedOut,
    JoinIn,
    LeaderboardOut,
    LobbyOut,
    PublicSessionOut,
    QuestionOut,
    ResultOut,
    ResultsOut,
    RosterOut,
    TimerOut,
)
from .scoring import answer_distribution, award, rank_players
from .timer import Countdown
from .utils import generate_pin, next_player_id

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 20
LEADERBOARD_PREVIEW_SIZE = 5

QuestionLoader = Callable[[], Sequence[Question]]


class QuizSession:
    """The one live quiz: join code, phase, question cursor and players.

    Every public coroutine is an event (client message, countdown tick,
    connection close) and runs under a single lock, so each reaction
    completes before the next one starts even though sends are awaited.
    """

    def __init__(
        self,
        load_questions: QuestionLoader,
        *,
        questions: Optional[Sequence[Question]] = None,
        tick_seconds: float = 1.0,
    ):
        self._load_questions = load_questions
        self._lock = asyncio.Lock()
        self.registry = ConnectionRegistry()
        self.countdown = Countdown(self.tick, interval=tick_seconds)

        self.pin: Optional[str] = None
        self.phase: Phase = "idle"
        self.questions: List[Question] = list(questions if questions is not None else load_questions())
        self.question_index = -1
        self.remaining = 0
        self.answer_count = 0

    @property
    def players(self) -> List[Player]:
        return self.registry.players

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.question_index < len(self.questions):
            return self.questions[self.question_index]
        return None

    def public_state(self) -> PublicSessionOut:
        return PublicSessionOut(
            phase=self.phase,
            players=self.registry.names(),
            question_index=self.question_index,
            total_questions=len(self.questions),
            host_connected=self.registry.host is not None,
        )

    # ---- events ----

    async def host_connected(self, conn: HostConnection) -> None:
        async with self._lock:
            # Players of the game being replaced learn that their host is gone
            await self.registry.send_to_players("host-disconnected")
            self.registry.host = conn
            logger.info("Host connected")
            await self._reset()

    async def handle_host_message(self, conn: HostConnection, raw: Any) -> None:
        msg = _parse(raw)
        if msg is None:
            return
        async with self._lock:
            if not self.registry.is_host(conn):
                return
            if msg.type == "start" and self.phase == "lobby":
                await self._start(conn)
            elif msg.type == "next" and self.phase == "reveal":
                await self._start_question()
            elif msg.type == "reset":
                await self._reset()

    async def handle_player_message(self, conn: PlayerConnection, raw: Any) -> None:
        msg = _parse(raw)
        if msg is None:
            return
        async with self._lock:
            if msg.type == "join":
                await self._join(conn, msg.data)
            elif msg.type == "answer":
                await self._answer(conn, msg.data)

    async def connection_closed(self, conn: Connection) -> None:
        async with self._lock:
            if isinstance(conn, HostConnection):
                if self.registry.is_host(conn):
                    self.registry.host = None
                    logger.info("Host disconnected")
                    await self.registry.send_to_players("host-disconnected")
                return

            seat = self.registry.seat_for(conn)
            # Outside the lobby a player keeps their seat and score
            if seat is None or self.phase != "lobby":
                return
            self.registry.remove_player(seat.player.id)
            names = self.registry.names()
            await self.registry.send_to_host(
                "player-left",
                RosterOut(name=seat.player.name, count=len(names), players=names),
            )
            logger.info("Player left: %s (%d total)", seat.player.name, len(names))

    async def tick(self) -> None:
        async with self._lock:
            await self._tick()

    async def reset(self) -> None:
        async with self._lock:
            await self._reset()

    async def questions_reloaded(self, questions: Sequence[Question]) -> None:
        async with self._lock:
            if self.phase in ("idle", "lobby"):
                self.questions = list(questions)

    def close(self) -> None:
        self.countdown.cancel()

    # ---- transitions ----

    async def _reset(self) -> None:
        self.countdown.cancel()
        self.questions = list(self._load_questions())
        self.pin = generate_pin()
        self.phase = "lobby"
        self.registry.clear_players()
        self.question_index = -1
        self.remaining = 0
        self.answer_count = 0
        logger.info("New game created, PIN: %s", self.pin)
        await self.registry.send_to_host("lobby", LobbyOut(pin=self.pin, players=[]))

    async def _join(self, conn: PlayerConnection, data: dict[str, Any]) -> None:
        if self.registry.seat_for(conn) is not None:
            await conn.send("error", ErrorOut(message="Already joined"))
            return
        try:
            req = JoinIn.model_validate(data)
        except ValidationError:
            req = JoinIn()

        if not req.pin or not req.name:
            await conn.send("error", ErrorOut(message="PIN and name required"))
            return
        if req.pin != self.pin:
            await conn.send("error", ErrorOut(message="Invalid PIN"))
            return
        if self.phase != "lobby":
            await conn.send("error", ErrorOut(message="Game already in progress"))
            return
        name = req.name.strip()[:MAX_NAME_LENGTH]
        if not name:
            await conn.send("error", ErrorOut(message="Name cannot be empty"))
            return
        if any(p.name.casefold() == name.casefold() for p in self.players):
            await conn.send("error", ErrorOut(message="Name already taken"))
            return

        self.registry.add_player(conn, Player(id=next_player_id(), name=name))
        names = self.registry.names()
        await conn.send("joined", JoinedOut(name=name))
        await self.registry.send_to_host(
            "player-joined",
            RosterOut(name=name, count=len(names), players=names),
        )
        logger.info("Player joined: %s (%d total)", name, len(names))

    async def _start(self, conn: HostConnection) -> None:
        if not self.registry.seats:
            await conn.send("error", ErrorOut(message="Need at least 1 player"))
            return
        await self._start_question()

    async def _start_question(self) -> None:
        self.question_index += 1
        if self.question_index >= len(self.questions):
            await self._end_game()
            return

        q = self.questions[self.question_index]
        self.phase = "question"
        self.answer_count = 0
        self.remaining = q.time_limit
        for p in self.players:
            p.clear_answer()

        logger.info("Question %d/%d started", self.question_index + 1, len(self.questions))
        await self.registry.broadcast(
            "question",
            QuestionOut(
                index=self.question_index,
                total=len(self.questions),
                question=q.text,
                type=q.kind,
                options=q.options,
                time_limit=q.time_limit,
            ),
        )
        self.countdown.start()

    async def _answer(self, conn: PlayerConnection, data: dict[str, Any]) -> None:
        if self.phase != "question":
            return
        seat = self.registry.seat_for(conn)
        if seat is None or seat.player.answer is not None:
            return
        try:
            index = AnswerIn.model_validate(data).answer
        except ValidationError:
            return
        q = self.current_question
        if q is None or index is None or not 1 <= index <= len(q.options):
            return

        seat.player.answer = index
        seat.player.answer_remaining = self.remaining
        self.answer_count += 1

        await conn.send("answer-received")
        await self.registry.send_to_host(
            "answer-count",
            AnswerCountOut(count=self.answer_count, total=len(self.registry.seats)),
        )

        if self.answer_count >= len(self.registry.seats):
            await self._reveal()

    async def _tick(self) -> None:
        if self.phase != "question":
            return
        self.remaining -= 1
        await self.registry.broadcast("timer", TimerOut(remaining=self.remaining))
        if self.remaining <= 0:
            await self._reveal()

    async def _reveal(self) -> None:
        # Both the countdown and the all-answered check land here; only the first counts
        if self.phase != "question":
            return
        self.countdown.cancel()
        self.phase = "reveal"

        q = self.questions[self.question_index]
        players = self.players
        distribution = answer_distribution(players, q)
        for p in players:
            p.last_points = award(p, q)
            p.score += p.last_points

        is_last = self.question_index >= len(self.questions) - 1
        logger.info("Revealed question %d/%d", self.question_index + 1, len(self.questions))

        await self.registry.send_to_host(
            "results",
            ResultsOut(
                correct=q.correct_index,
                distribution=distribution,
                options=q.options,
                leaderboard=rank_players(players)[:LEADERBOARD_PREVIEW_SIZE],
                is_last=is_last,
            ),
        )
        for seat in list(self.registry.seats.values()):
            p = seat.player
            await seat.connection.send(
                "result",
                ResultOut(
                    correct=q.correct_index,
                    your_answer=p.answer,
                    points=p.last_points,
                    total_score=p.score,
                    is_last=is_last,
                ),
            )

    async def _end_game(self) -> None:
        self.countdown.cancel()
        self.phase = "leaderboard"
        logger.info("Game over")
        await self.registry.broadcast("leaderboard", LeaderboardOut(leaderboard=rank_players(self.players)))


def _parse(raw: Any) -> Optional[Envelope]:
    try:
        if isinstance(raw, (str, bytes, bytearray)):
            return Envelope.model_validate_json(raw)
        return Envelope.model_validate(raw)
    except ValidationError as exc:
        logger.debug("Dropping malformed message (%d validation errors)", exc.error_count())
        return None


def new_session(questions: Sequence[Question], tick_seconds: float = 1.0) -> QuizSession:
    """A session whose every reset reuses the same fixed question bank."""

    bank = list(questions)
    return QuizSession(lambda: bank, questions=bank, tick_seconds=tick_seconds)
