from fastapi import FastAPI, WebSocket, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
import logging

import config
config.setup_logging()

from quiz_store import QuizCreate, QuizStore
from session_registry import SessionRegistry
from socket_manager import SocketManager

logger = logging.getLogger(__name__)

quiz_store = QuizStore()
session_registry = SessionRegistry(quiz_store)
socket_manager = SocketManager(session_registry)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting live quiz backend")
    session_registry.start_cleanup_loop()
    yield
    session_registry.stop_cleanup_loop()
    logger.info("Shutting down live quiz backend")


app = FastAPI(title="Live Quiz Session Backend", lifespan=lifespan)


# --- Quiz CRUD ---

@app.post("/api/quizzes", status_code=201)
async def create_quiz(request: QuizCreate):
    quiz = quiz_store.add_quiz(request)
    return quiz.model_dump()


@app.get("/api/quizzes")
async def list_quizzes():
    return quiz_store.list_quiz_summaries()


@app.get("/api/quizzes/{quiz_id}")
async def get_quiz(quiz_id: str):
    quiz = await quiz_store.get_quiz_by_id(quiz_id)
    if quiz is None:
        raise HTTPException(status_code=404, detail="Quiz not found")
    return quiz.model_dump()


# --- Live sessions ---

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await socket_manager.connect(websocket)


# Configure CORS
if config.ALLOWED_ORIGINS.strip():
    origins = [o.strip() for o in config.ALLOWED_ORIGINS.split(",")]
    socket_manager.allowed_origins = origins
else:
    origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)


@app.get("/")
async def root():
    return {"message": "Live Quiz API is running"}


@app.get("/health")
async def health():
    return {"status": "healthy", "active_sessions": len(session_registry.sessions)}


if __name__ == "__main__":
    uvicorn.run("main:app", host=config.HOST, port=config.PORT, reload=True)
