from typing import Dict, List, Any, Optional, Protocol
from dataclasses import dataclass, field
from datetime import datetime
import uuid


class MessageSink(Protocol):
    """Where the request layer records user and assistant messages."""

    def persist(
        self,
        thread_id: str,
        role: str,
        content: str,
        model: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> None:
        ...


@dataclass
class StoredMessage:
    """One persisted chat message."""
    thread_id: str
    role: str
    content: str
    model: Optional[str] = None
    provider: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "thread_id": self.thread_id,
            "role": self.role,
            "content": self.content,
            "model": self.model,
            "provider": self.provider,
            "created_at": self.created_at.isoformat(),
        }


class MessageStore:
    """
    In-memory message sink, keyed by thread.

    The request layer persists the user message and the final assistant
    answer; the orchestration core never writes here.
    In production, this would be backed by a database.
    """

    def __init__(self):
        self._threads: Dict[str, List[StoredMessage]] = {}

    def persist(
        self,
        thread_id: str,
        role: str,
        content: str,
        model: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> None:
        """Append a message to a thread, creating the thread if needed."""
        self._threads.setdefault(thread_id, []).append(
            StoredMessage(
                thread_id=thread_id,
                role=role,
                content=content,
                model=model,
                provider=provider,
            )
        )

    def get_messages(self, thread_id: str, limit: Optional[int] = None) -> List[StoredMessage]:
        """Get messages, optionally limited to most recent."""
        messages = self._threads.get(thread_id, [])
        if limit:
            return messages[-limit:]
        return list(messages)

    def history(self, thread_id: str) -> List[Dict[str, str]]:
        """Thread as a role/content list ready to send to the agents."""
        return [
            {"role": m.role, "content": m.content}
            for m in self._threads.get(thread_id, [])
        ]

    def has_thread(self, thread_id: str) -> bool:
        return thread_id in self._threads

    def clear(self) -> None:
        """Clear all stored data."""
        self._threads.clear()


# Global message store instance
message_store = MessageStore()
