from fastapi import WebSocket, WebSocketDisconnect
from typing import Dict, List, Optional, Set
import json
import time
import uuid
import asyncio
import logging

import config
from game_session import Rejected
from session_registry import SessionCreationError, SessionRegistry

logger = logging.getLogger(__name__)

# Messages after which the session no longer exists for its members
SESSION_ENDED = ("GAME_FINISHED", "SESSION_EXPIRED")


class Connection:
    """One accepted WebSocket and the sessions it belongs to."""

    def __init__(self, client_id: str, websocket: WebSocket):
        self.client_id = client_id
        self.websocket = websocket
        self.outbox: asyncio.Queue = asyncio.Queue()
        self.pins: Set[str] = set()
        self.msg_timestamps: List[float] = []
        self.writer_task: Optional[asyncio.Task] = None

    async def drain_outbox(self):
        """Deliver queued messages in order. Failed sends are dropped."""
        while True:
            message = await self.outbox.get()
            try:
                await self.websocket.send_json(message)
            except Exception:
                logger.debug("Dropped %s for client %s (send failed)",
                             message.get("type"), self.client_id)

    def is_rate_limited(self) -> bool:
        now = time.time()
        self.msg_timestamps[:] = [t for t in self.msg_timestamps if now - t < 1.0]
        if len(self.msg_timestamps) >= config.WS_RATE_LIMIT_PER_SEC:
            return True
        self.msg_timestamps.append(now)
        return False


class SocketManager:
    def __init__(self, registry: SessionRegistry):
        self.registry = registry
        self.connections: Dict[str, Connection] = {}
        self.allowed_origins: List[str] = []

    def send(self, client_id: str, message: dict):
        """Queue a message for one connection; never blocks."""
        conn = self.connections.get(client_id)
        if conn is None:
            logger.debug("Dropped %s for unknown client %s", message.get("type"), client_id)
            return
        if message.get("type") in SESSION_ENDED:
            conn.pins.discard(message.get("pin"))
        conn.outbox.put_nowait(message)

    async def connect(self, websocket: WebSocket):
        # Validate WebSocket origin
        origin = websocket.headers.get("origin", "")
        if self.allowed_origins and origin not in self.allowed_origins:
            logger.warning("Rejected WebSocket from unauthorized origin: %s", origin)
            await websocket.close(code=1008)
            return

        await websocket.accept()
        client_id = uuid.uuid4().hex
        conn = Connection(client_id, websocket)
        self.connections[client_id] = conn
        conn.writer_task = asyncio.create_task(conn.drain_outbox())
        self.send(client_id, {"type": "CONNECTED", "client_id": client_id})
        logger.info("Client %s connected", client_id)

        try:
            while True:
                data = await websocket.receive_text()

                # Enforce message size limit
                if len(data) > config.MAX_WS_MESSAGE_SIZE:
                    self.send(client_id, {"type": "ERROR", "message": "Message too large"})
                    continue

                if conn.is_rate_limited():
                    self.send(client_id, {"type": "ERROR", "message": "Too many messages"})
                    continue

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning("Malformed JSON from client %s: %s", client_id, data[:100])
                    self.send(client_id, {"type": "ERROR", "message": "Invalid message format"})
                    continue
                if not isinstance(message, dict):
                    self.send(client_id, {"type": "ERROR", "message": "Invalid message format"})
                    continue

                await self.handle_message(conn, message)
        except WebSocketDisconnect:
            logger.info("Client %s disconnected", client_id)
        except Exception:
            logger.exception("WebSocket error for client %s", client_id)
        finally:
            await self.disconnect(conn)

    async def disconnect(self, conn: Connection):
        """Leave every session the connection belongs to, then forget it."""
        for pin in list(conn.pins):
            await self._leave(conn, pin)
        self.connections.pop(conn.client_id, None)
        if conn.writer_task:
            conn.writer_task.cancel()
            conn.writer_task = None

    async def handle_message(self, conn: Connection, message: dict):
        msg_type = message.get("type")
        pin = str(message.get("pin", ""))

        if msg_type == "CREATE_SESSION":
            await self._create(conn, message.get("quiz_id"))

        elif msg_type == "JOIN_SESSION":
            await self._join(conn, pin, message.get("name", ""))

        elif msg_type == "ADVANCE_QUESTION":
            session = self.registry.lookup(pin)
            if session is None:
                conn.pins.discard(pin)
                logger.debug("Ignored advance for unknown PIN %s", pin)
                return
            outcome = await session.advance(conn.client_id)
            logger.debug("Advance in %s by %s -> %s", pin, conn.client_id, outcome)

        elif msg_type == "SUBMIT_ANSWER":
            session = self.registry.lookup(pin)
            if session is None:
                conn.pins.discard(pin)
                logger.debug("Ignored answer for unknown PIN %s", pin)
                return
            outcome = await session.submit_answer(
                conn.client_id,
                message.get("option_index"),
                message.get("elapsed_ms"),
                question_index=message.get("question_index"),
            )
            logger.debug("Answer in %s by %s -> %s", pin, conn.client_id, outcome)

        elif msg_type == "LEAVE_SESSION":
            await self._leave(conn, pin)

        else:
            self.send(conn.client_id, {"type": "ERROR", "message": "Unknown message type"})

    async def _create(self, conn: Connection, quiz_id):
        if not isinstance(quiz_id, str) or not quiz_id:
            self.send(conn.client_id, {"type": "CREATION_FAILED", "reason": "invalid_request"})
            return
        try:
            session = await self.registry.create(quiz_id, conn.client_id, self.send)
        except SessionCreationError as exc:
            logger.info("Session creation for quiz %s failed: %s", quiz_id, exc.reason)
            self.send(conn.client_id, {"type": "CREATION_FAILED", "reason": exc.reason})
            return
        conn.pins.add(session.pin)
        self.send(conn.client_id, {
            "type": "SESSION_CREATED",
            "pin": session.pin,
            "quiz_title": session.quiz.title,
            "total_questions": session.total_questions,
        })

    async def _join(self, conn: Connection, pin: str, name):
        session = self.registry.lookup(pin)
        if session is None:
            self.send(conn.client_id, {"type": "JOIN_REJECTED", "pin": pin, "reason": "invalid_pin"})
            return
        outcome = await session.join(conn.client_id, name)
        if isinstance(outcome, Rejected):
            self.send(conn.client_id, {"type": "JOIN_REJECTED", "pin": pin, "reason": outcome.reason})
            return
        conn.pins.add(pin)

    async def _leave(self, conn: Connection, pin: str):
        conn.pins.discard(pin)
        session = self.registry.lookup(pin)
        if session is None:
            return
        await session.leave(conn.client_id)
