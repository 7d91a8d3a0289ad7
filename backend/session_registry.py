from typing import Dict, Optional
import asyncio
import logging
import random

import config
from game_session import Sender, Session

logger = logging.getLogger(__name__)


class SessionCreationError(Exception):
    reason = "creation_failed"


class QuizNotFound(SessionCreationError):
    reason = "quiz_not_found"


class QuizSourceUnavailable(SessionCreationError):
    reason = "quiz_source_unavailable"


class PinSpaceExhausted(SessionCreationError):
    reason = "pin_space_exhausted"


class TooManySessions(SessionCreationError):
    reason = "too_many_sessions"


class SessionRegistry:
    """Owns the PIN -> Session mapping for one process."""

    def __init__(self, quiz_source, rng: Optional[random.Random] = None):
        self.quiz_source = quiz_source
        self.sessions: Dict[str, Session] = {}
        self.rng = rng or random.SystemRandom()
        self._create_lock = asyncio.Lock()
        self._cleanup_task: Optional[asyncio.Task] = None

    def start_cleanup_loop(self):
        """Start the background session expiry task."""
        if self._cleanup_task is None and config.SESSION_TTL_SECONDS > 0:
            self._cleanup_task = asyncio.create_task(self._cleanup_expired_sessions())

    def stop_cleanup_loop(self):
        if self._cleanup_task:
            self._cleanup_task.cancel()
            self._cleanup_task = None

    async def _cleanup_expired_sessions(self):
        """Periodically close sessions with no recent activity."""
        while True:
            try:
                await asyncio.sleep(config.CLEANUP_INTERVAL_SECONDS)
                await self.expire_idle_sessions()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Error in session cleanup loop")

    async def expire_idle_sessions(self, ttl_seconds: Optional[int] = None) -> int:
        ttl = config.SESSION_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        expired = [s for s in self.sessions.values() if s.is_expired(ttl)]
        count = 0
        for session in expired:
            closed_now = await session.close("expired")
            # The PIN may have been reissued while close waited on the lock
            if self.sessions.get(session.pin) is session:
                self.retire(session.pin)
            if closed_now:
                count += 1
                logger.info("Cleaned up expired session %s", session.pin)
        return count

    def _generate_pin(self) -> str:
        upper = 10 ** config.PIN_LENGTH
        for _ in range(config.MAX_PIN_ATTEMPTS):
            pin = str(self.rng.randrange(upper)).zfill(config.PIN_LENGTH)
            if pin not in self.sessions:
                return pin
        raise PinSpaceExhausted(f"No free PIN after {config.MAX_PIN_ATTEMPTS} attempts")

    async def create(self, quiz_id: str, admin_id: str, send: Sender) -> Session:
        # Quiz lookup happens before any lock is taken
        try:
            quiz = await self.quiz_source.get_quiz_by_id(quiz_id)
        except Exception as exc:
            logger.exception("Quiz source failed while resolving quiz %s", quiz_id)
            raise QuizSourceUnavailable(str(exc)) from exc
        if quiz is None:
            raise QuizNotFound(f"Quiz {quiz_id} not found")

        async with self._create_lock:
            if len(self.sessions) >= config.MAX_SESSIONS:
                raise TooManySessions(f"{len(self.sessions)} sessions already active")
            try:
                pin = self._generate_pin()
            except PinSpaceExhausted:
                logger.warning("PIN space exhausted (%d live sessions)", len(self.sessions))
                raise
            session = Session(pin, quiz, admin_id, send, on_finished=self.retire)
            self.sessions[pin] = session

        logger.info("Session created: PIN %s for quiz '%s'", pin, quiz.title)
        return session

    def lookup(self, pin: str) -> Optional[Session]:
        return self.sessions.get(pin)

    def retire(self, pin: str):
        if self.sessions.pop(pin, None) is not None:
            logger.info("Session %s retired", pin)

    def clear(self):
        self.sessions.clear()
