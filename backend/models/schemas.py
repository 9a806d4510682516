from __future__ import annotations

from typing import Optional, Literal, List
from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    markdown_content: str
    raw_text: str
    filename: str
    page_count: int
    source_id: Optional[str] = None


class Source(BaseModel):
    """A course text or user upload that can accompany a generation request."""
    id: str
    name: str
    type: str = "text/plain"
    content: Optional[str] = None
    data: Optional[str] = None  # base64 payload for binary attachments
    size: int = 0
    category: Optional[str] = None

    @property
    def is_binary(self) -> bool:
        return bool(self.data)

    def ref(self) -> "SourceRef":
        return SourceRef(id=self.id, name=self.name, type=self.type, size=self.size)


class SourceRef(BaseModel):
    """What a session keeps about a source: never the content itself."""
    id: str
    name: str
    type: str = "text/plain"
    size: int = 0


class OutlineNode(BaseModel):
    label: str
    children: list[OutlineNode] = Field(default_factory=list)


# ── Chat ─────────────────────────────────────────────────────────────────────

class Message(BaseModel):
    id: str
    role: Literal["user", "model"]
    content: str
    timestamp: int
    is_error: bool = False
    attachments: list[str] = Field(default_factory=list)


class ChatRequest(BaseModel):
    prompt: str = Field(..., min_length=1, max_length=8000)
    attachments: list[Source] = Field(default_factory=list, max_length=10)


class RenameRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


# ── Quiz ─────────────────────────────────────────────────────────────────────

class QuizConfig(BaseModel):
    source_type: Literal["subject", "file"] = "subject"
    subject: Optional[str] = Field(None, max_length=200)
    file: Optional[SourceRef] = None
    difficulty: Literal["Easy", "Medium", "Hard"] = "Medium"
    question_count: int = Field(5, ge=1, le=50)
    quiz_type: Literal["single", "multiple"] = "single"


class QuizRequest(BaseModel):
    config: QuizConfig
    file: Optional[Source] = None  # full content for file-based quizzes, never stored


class QuizQuestion(BaseModel):
    id: int
    question: str
    options: List[str]
    correct_answers: List[int]
    explanation: str = ""


class AnswerRequest(BaseModel):
    question_id: int
    option_index: int = Field(..., ge=0)


class NavigateRequest(BaseModel):
    index: int = Field(..., ge=0)


# ── Flashcards ───────────────────────────────────────────────────────────────

class Flashcard(BaseModel):
    id: str
    front: str
    back: str
    explanation: Optional[str] = None


class FlashcardConfig(BaseModel):
    source_type: Literal["subject", "file"] = "subject"
    subject: Optional[str] = Field(None, max_length=200)
    file: Optional[SourceRef] = None
    count: int = Field(10, ge=1, le=50)
    customization: Optional[str] = Field(None, max_length=1000)
    theme: Optional[str] = None


class FlashcardsRequest(BaseModel):
    config: FlashcardConfig
    file: Optional[Source] = None


# ── Checklist ────────────────────────────────────────────────────────────────

class ChecklistItem(BaseModel):
    id: str = ""
    title: str
    description: Optional[str] = None
    is_completed: bool = False
    children: list[ChecklistItem] = Field(default_factory=list)


class Checklist(BaseModel):
    title: str
    summary: str = ""
    items: list[ChecklistItem] = Field(default_factory=list)
    estimated_time: Optional[str] = None
    tips: list[str] = Field(default_factory=list)


class ChecklistRequest(BaseModel):
    course_id: Optional[str] = None
    content: Optional[str] = Field(None, max_length=500000)
    filename: Optional[str] = None


class ToggleRequest(BaseModel):
    item_id: str


# ── Mnemonics ────────────────────────────────────────────────────────────────

class MnemonicRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=500)
    language: Literal["ar", "fr"] = "fr"
    context: Optional[str] = Field(None, max_length=5000)


class MnemonicPart(BaseModel):
    char: str
    meaning: str


class MnemonicResponse(BaseModel):
    mnemonic: str
    breakdown: list[MnemonicPart] = Field(default_factory=list)
    explanation: str = ""
    fun_fact: Optional[str] = None


# ── Mind maps ────────────────────────────────────────────────────────────────

class MindMapRequest(BaseModel):
    topic: Optional[str] = Field(None, max_length=500)
    course_id: Optional[str] = None
    text: Optional[str] = Field(None, max_length=500000)


class OutlineRequest(BaseModel):
    markdown: str = Field(..., max_length=200000)


# ── Courses / access ─────────────────────────────────────────────────────────

class CourseRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=300)
    content: str = Field(..., max_length=500000)
    category: Optional[str] = None


class AccessResponse(BaseModel):
    email: Optional[str] = None
    is_admin: bool
    is_supervisor: bool
    has_admin_panel: bool
