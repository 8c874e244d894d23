"""Chat message models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _gen_id() -> str:
    return str(uuid.uuid4())[:8]


class MessageRole(Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class Message:
    session_id: str
    role: MessageRole
    content: str
    # Model that produced an assistant reply; None for user/system turns.
    model: str | None = None
    id: str = field(default_factory=_gen_id)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "role": self.role.value,
            "content": self.content,
            "model": self.model,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        timestamp = data.get("timestamp")
        return cls(
            session_id=data["session_id"],
            role=MessageRole(data["role"]),
            content=data.get("content", ""),
            model=data.get("model"),
            id=data.get("id") or _gen_id(),
            timestamp=(
                datetime.fromisoformat(timestamp) if timestamp else _utcnow()
            ),
        )
