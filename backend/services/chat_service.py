import uuid

from models.schemas import Message
from models.sessions import now_ms, DEFAULT_CHAT_TITLE

TITLE_LENGTH = 30
HISTORY_LIMIT = 6


def make_message(role: str, content: str, is_error: bool = False, attachments: list[str] | None = None) -> Message:
    return Message(
        id=uuid.uuid4().hex,
        role=role,
        content=content,
        timestamp=now_ms(),
        is_error=is_error,
        attachments=attachments or [],
    )


def derive_title(content: str) -> str:
    text = " ".join(content.split())
    if len(text) > TITLE_LENGTH:
        return text[:TITLE_LENGTH] + "..."
    return text or DEFAULT_CHAT_TITLE


def append_message(session, message: Message):
    """Adds a message; the first user message also names an untitled chat."""
    update = {"messages": [*session.messages, message]}
    if message.role == "user" and session.title == DEFAULT_CHAT_TITLE and not any(
        m.role == "user" for m in session.messages
    ):
        update["title"] = derive_title(message.content)
    return session.model_copy(update=update)


def rename(session, title: str):
    return session.model_copy(update={"title": title.strip() or DEFAULT_CHAT_TITLE})


def recent_history(messages: list[Message], limit: int = HISTORY_LIMIT) -> list[Message]:
    """The tail of the conversation sent back to Gemini. Error bubbles are left out."""
    return [m for m in messages if not m.is_error][-limit:]
