"""
Persisted study sessions, one model per feature.

Each session carries its feature payload plus a few derived fields. Derived
fields are never edited directly: ``refreshed()`` recomputes them from the
payload and the session store calls it after every mutation.
"""
import time
import threading
from typing import Optional

from pydantic import BaseModel, Field

from models.schemas import (
    Message,
    QuizConfig,
    QuizQuestion,
    Checklist,
    Flashcard,
    FlashcardConfig,
)
from services import quiz_service, checklist_service, flashcard_service

DEFAULT_CHAT_TITLE = "محادثة جديدة"

_id_lock = threading.Lock()
_last_id = 0


def now_ms() -> int:
    return int(time.time() * 1000)


def new_session_id() -> str:
    """Time-based id, strictly increasing within the process."""
    global _last_id
    with _id_lock:
        candidate = now_ms()
        if candidate <= _last_id:
            candidate = _last_id + 1
        _last_id = candidate
        return str(candidate)


class StudySession(BaseModel):
    """
    Base for the per-feature session models; not stored on its own.

    Subclasses override ``refreshed()`` when they carry derived fields, and
    ``cleared()`` when their store must always keep one session (SessionStore
    refuses ``keep_one`` otherwise).
    """
    id: str = Field(default_factory=new_session_id)
    title: str = ""
    created_at: int = Field(default_factory=now_ms)
    last_updated: int = Field(default_factory=now_ms)

    def refreshed(self):
        return self

    def cleared(self):
        raise NotImplementedError(f"{type(self).__name__} cannot be cleared")


class ChatSession(StudySession):
    title: str = DEFAULT_CHAT_TITLE
    messages: list[Message] = Field(default_factory=list)

    def cleared(self) -> "ChatSession":
        return self.model_copy(update={"messages": [], "title": DEFAULT_CHAT_TITLE})


class QuizSession(StudySession):
    config: QuizConfig
    questions: list[QuizQuestion] = Field(default_factory=list)
    user_answers: dict[int, list[int]] = Field(default_factory=dict)
    current_question_index: int = 0
    is_finished: bool = False
    score: int = 0
    percentage: int = 0
    score_out_of_20: int = 0

    def refreshed(self) -> "QuizSession":
        score = quiz_service.grade(self.questions, self.user_answers)
        total = len(self.questions)
        return self.model_copy(update={
            "score": score,
            "percentage": quiz_service.percentage(score, total),
            "score_out_of_20": quiz_service.out_of_20(score, total),
        })


class ChecklistSession(StudySession):
    checklist: Checklist
    progress: int = 0
    is_finished: bool = False

    def refreshed(self) -> "ChecklistSession":
        progress = checklist_service.calculate_progress(self.checklist.items)
        return self.model_copy(update={"progress": progress, "is_finished": progress == 100})


class FlashcardSession(StudySession):
    config: FlashcardConfig
    cards: list[Flashcard] = Field(default_factory=list)
    current_index: int = 0
    viewed: list[int] = Field(default_factory=lambda: [0])
    progress: int = 0

    def refreshed(self) -> "FlashcardSession":
        return self.model_copy(update={"progress": flashcard_service.calculate_progress(self)})


class MindMapSession(StudySession):
    markdown: str = ""
    topic: Optional[str] = None
