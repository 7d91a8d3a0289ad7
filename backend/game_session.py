from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
import asyncio
import logging
import math
import time

import config
from quiz_store import Quiz, sanitize_text
from scoring import compute_points

logger = logging.getLogger(__name__)

LOBBY = "LOBBY"
QUESTION_ACTIVE = "QUESTION_ACTIVE"
FINISHED = "FINISHED"

# send(client_id, message) -> None; must not block
Sender = Callable[[str, dict], None]


# ---------------------------------------------------------------------------
# Operation outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Ignored:
    """Nothing happened. Not an error."""
    reason: str


@dataclass(frozen=True)
class Rejected:
    """Refused; the reason is reported to the caller only."""
    reason: str


@dataclass(frozen=True)
class Joined:
    roster: List[dict]


@dataclass(frozen=True)
class QuestionStarted:
    question_index: int
    text: str
    options: List[str]


@dataclass(frozen=True)
class GameFinished:
    ranking: List[dict]


@dataclass(frozen=True)
class Scored:
    correct: bool
    points_gained: int
    correct_index: int
    new_score: int


@dataclass(frozen=True)
class Left:
    name: Optional[str]  # None when the admin left
    was_admin: bool


@dataclass
class Player:
    client_id: str
    name: str
    score: int = 0
    answer: Optional[int] = None  # marker for the current question only


class Session:
    """One live game: question cursor, roster, scores.

    Every operation runs under ``self.lock`` and never awaits while holding it;
    outbound messages are handed to ``send`` which only enqueues.
    """

    def __init__(self, pin: str, quiz: Quiz, admin_id: str, send: Sender,
                 on_finished: Optional[Callable[[str], None]] = None):
        self.pin = pin
        self.quiz = quiz
        self.admin_id: Optional[str] = admin_id
        self.send = send
        self.on_finished = on_finished
        self.current_question_index = -1
        self.players: Dict[str, Player] = {}  # client_id -> Player
        self.join_order: List[str] = []  # client_ids, oldest first
        self.closed = False
        self.lock = asyncio.Lock()
        self.created_at = time.time()
        self.last_activity = self.created_at

    @property
    def total_questions(self) -> int:
        return len(self.quiz.questions)

    @property
    def state(self) -> str:
        if self.current_question_index < 0:
            return LOBBY
        if self.current_question_index >= self.total_questions:
            return FINISHED
        return QUESTION_ACTIVE

    @property
    def is_orphaned(self) -> bool:
        return self.admin_id is None and not self.closed

    def touch(self):
        """Update last activity timestamp."""
        self.last_activity = time.time()

    def is_expired(self, ttl_seconds: int) -> bool:
        return ttl_seconds > 0 and time.time() - self.last_activity > ttl_seconds

    # -----------------------------------------------------------------------
    # Roster and delivery
    # -----------------------------------------------------------------------

    def ordered_players(self) -> List[Player]:
        return [self.players[cid] for cid in self.join_order]

    def get_roster(self) -> List[dict]:
        return [{"name": p.name, "score": p.score} for p in self.ordered_players()]

    def get_leaderboard(self) -> List[dict]:
        # sorted() is stable, so equal scores keep join order
        ranked = sorted(self.ordered_players(), key=lambda p: p.score, reverse=True)
        return [{"name": p.name, "score": p.score} for p in ranked]

    def room_members(self) -> List[str]:
        members = list(self.join_order)
        if self.admin_id is not None:
            members.insert(0, self.admin_id)
        return members

    def broadcast(self, message: dict):
        for client_id in self.room_members():
            self.send(client_id, message)

    def send_to_admin(self, message: dict):
        if self.admin_id is not None:
            self.send(self.admin_id, message)

    def _broadcast_roster(self):
        self.broadcast({
            "type": "ROSTER_UPDATED",
            "pin": self.pin,
            "players": self.get_roster(),
        })

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------

    async def join(self, client_id: str, name: str):
        async with self.lock:
            if self.closed or self.state == FINISHED:
                return Rejected("invalid_pin")
            if client_id == self.admin_id:
                return Ignored("admin_cannot_join")
            if client_id in self.players:
                return Ignored("already_joined")

            name = sanitize_text(name) if isinstance(name, str) else ""
            if not name or len(name) > config.MAX_NICKNAME_LENGTH:
                return Rejected("invalid_name")
            if any(p.name == name for p in self.players.values()):
                return Rejected("name_taken")
            if len(self.players) >= config.MAX_PLAYERS_PER_SESSION:
                return Rejected("session_full")

            self.players[client_id] = Player(client_id=client_id, name=name)
            self.join_order.append(client_id)
            self.touch()
            logger.info("Player '%s' joined session %s (%s)", name, self.pin, self.state)

            self.send(client_id, {"type": "JOIN_ACCEPTED", "pin": self.pin, "name": name})
            self._broadcast_roster()
            return Joined(self.get_roster())

    async def advance(self, client_id: str):
        async with self.lock:
            if client_id != self.admin_id:
                logger.debug("Ignored advance from non-admin %s in session %s", client_id, self.pin)
                return Ignored("not_admin")
            if self.closed or self.state == FINISHED:
                return Ignored("session_finished")

            self.current_question_index += 1
            self.touch()

            if self.current_question_index >= self.total_questions:
                return self._finish()

            for player in self.players.values():
                player.answer = None

            question = self.quiz.questions[self.current_question_index]
            self.broadcast({
                "type": "QUESTION_STARTED",
                "pin": self.pin,
                "question_index": self.current_question_index,
                "total_questions": self.total_questions,
                "text": question.text,
                "options": list(question.options),
            })
            logger.info("Question %d/%d started in session %s",
                        self.current_question_index + 1, self.total_questions, self.pin)
            return QuestionStarted(self.current_question_index, question.text, list(question.options))

    def _finish(self) -> GameFinished:
        ranking = self.get_leaderboard()
        self.broadcast({"type": "GAME_FINISHED", "pin": self.pin, "ranking": ranking})
        self.closed = True
        logger.info("Session %s finished with %d players", self.pin, len(self.players))
        if self.on_finished:
            self.on_finished(self.pin)
        return GameFinished(ranking)

    async def submit_answer(self, client_id: str, option_index, elapsed_ms,
                            question_index: Optional[int] = None):
        async with self.lock:
            if self.closed or self.state != QUESTION_ACTIVE:
                return Ignored("no_active_question")
            player = self.players.get(client_id)
            if player is None:
                return Ignored("not_a_player")
            if question_index is not None and question_index != self.current_question_index:
                return Ignored("stale_question")
            if player.answer is not None:
                return Ignored("already_answered")
            question = self.quiz.questions[self.current_question_index]
            if isinstance(option_index, bool) or not isinstance(option_index, int) \
                    or not (0 <= option_index < len(question.options)):
                return Ignored("invalid_option")
            if isinstance(elapsed_ms, bool) or not isinstance(elapsed_ms, (int, float)) \
                    or (isinstance(elapsed_ms, float) and not math.isfinite(elapsed_ms)):
                return Ignored("invalid_elapsed")

            player.answer = option_index
            correct = option_index == question.correct_index
            points = compute_points(correct, elapsed_ms)
            player.score += points
            self.touch()

            self.send(client_id, {
                "type": "ANSWER_SCORED",
                "pin": self.pin,
                "correct": correct,
                "points_gained": points,
                "correct_index": question.correct_index,
                "new_score": player.score,
            })

            answered = sum(1 for p in self.players.values() if p.answer is not None)
            self.send_to_admin({
                "type": "ANSWER_COUNT",
                "pin": self.pin,
                "answered": answered,
                "total": len(self.players),
            })
            if answered == len(self.players):
                self.broadcast({
                    "type": "LEADERBOARD_SNAPSHOT",
                    "pin": self.pin,
                    "leaderboard": self.get_leaderboard(),
                })

            return Scored(correct, points, question.correct_index, player.score)

    async def leave(self, client_id: str):
        async with self.lock:
            if client_id == self.admin_id:
                self.admin_id = None
                self.touch()
                logger.warning("Admin left session %s; session is orphaned", self.pin)
                if not self.closed:
                    self.broadcast({"type": "ADMIN_LEFT", "pin": self.pin})
                return Left(None, was_admin=True)

            player = self.players.pop(client_id, None)
            if player is None:
                return Ignored("not_in_session")
            self.join_order.remove(client_id)
            self.touch()
            logger.info("Player '%s' left session %s", player.name, self.pin)
            if not self.closed:
                self._broadcast_roster()
            return Left(player.name, was_admin=False)

    async def close(self, reason: str = "expired") -> bool:
        """Shut the session down without a final ranking. False if already closed."""
        async with self.lock:
            if self.closed:
                return False
            self.broadcast({"type": "SESSION_EXPIRED", "pin": self.pin, "reason": reason})
            self.closed = True
            logger.info("Session %s closed (%s)", self.pin, reason)
            return True
