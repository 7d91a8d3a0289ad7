"""Read-mostly quiz storage consumed by the session engine.

Quizzes are validated once, on insert, and handed out as frozen models.
Sessions only ever read them.
"""
import re
import time
import uuid
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

import config

logger = logging.getLogger(__name__)

OPTIONS_PER_QUESTION = 4


def sanitize_text(text: str) -> str:
    """Strip HTML tags and control characters."""
    text = re.sub(r'<[^>]+>', '', text)
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)
    return text.strip()


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    options: List[str]
    correct_index: int

    @field_validator('text')
    @classmethod
    def validate_text(cls, v: str) -> str:
        v = sanitize_text(v)[:config.MAX_QUESTION_TEXT_LENGTH]
        if not v:
            raise ValueError('Question text must not be empty')
        return v

    @field_validator('options')
    @classmethod
    def validate_options(cls, v: List[str]) -> List[str]:
        if len(v) != OPTIONS_PER_QUESTION:
            raise ValueError(f'Question must have exactly {OPTIONS_PER_QUESTION} options')
        return [sanitize_text(opt)[:config.MAX_OPTION_LENGTH] for opt in v]

    @field_validator('correct_index')
    @classmethod
    def validate_correct_index(cls, v: int) -> int:
        if not (0 <= v < OPTIONS_PER_QUESTION):
            raise ValueError(f'correct_index must be between 0 and {OPTIONS_PER_QUESTION - 1}')
        return v


class QuizCreate(BaseModel):
    title: str
    description: str = ""
    questions: List[Question]

    @field_validator('title')
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = sanitize_text(v)[:config.MAX_QUIZ_TITLE_LENGTH]
        if not v:
            raise ValueError('Quiz title must not be empty')
        return v

    @field_validator('description')
    @classmethod
    def validate_description(cls, v: str) -> str:
        return sanitize_text(v)

    @field_validator('questions')
    @classmethod
    def validate_questions(cls, v: List[Question]) -> List[Question]:
        if len(v) == 0:
            raise ValueError('Quiz must have at least 1 question')
        return v


class Quiz(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    questions: List[Question]
    created_at: float = Field(default_factory=time.time)

    def summary(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "question_count": len(self.questions),
            "created_at": self.created_at,
        }


class QuizStore:
    """In-memory quiz source keyed by quiz id."""

    def __init__(self):
        self.quizzes: Dict[str, Quiz] = {}

    def add_quiz(self, request: QuizCreate) -> Quiz:
        # Evict the oldest quiz once the store is full
        while len(self.quizzes) >= config.MAX_QUIZZES:
            oldest_id = min(self.quizzes, key=lambda qid: self.quizzes[qid].created_at)
            self.quizzes.pop(oldest_id)
            logger.info("Quiz %s evicted (store full)", oldest_id)
        quiz = Quiz(
            id=uuid.uuid4().hex,
            title=request.title,
            description=request.description,
            questions=request.questions,
        )
        self.quizzes[quiz.id] = quiz
        logger.info("Quiz created: %s ('%s'), %d questions", quiz.id, quiz.title, len(quiz.questions))
        return quiz

    async def get_quiz_by_id(self, quiz_id: str) -> Optional[Quiz]:
        return self.quizzes.get(quiz_id)

    def list_quiz_summaries(self) -> List[dict]:
        ordered = sorted(self.quizzes.values(), key=lambda q: q.created_at, reverse=True)
        return [quiz.summary() for quiz in ordered]

    def clear(self):
        self.quizzes.clear()
