"""
Conversation Memory Module

Per-user conversation history for multi-turn support chats.
Implements a sliding window approach to manage context length.

- ConversationManager lazily creates one ConversationMemory per user
- load_memory_variables() returns an immutable HistoryView snapshot
- save_context() appends one completed turn (user input + answer)

Turns from the same user are not serialized: two concurrent turns may
both read the history before either saves.

Usage:
    manager = ConversationManager()
    memory = manager.get_memory("user_123")
    history = await memory.load_memory_variables()
    await memory.save_context({"input": "Hi"}, {"output": "Hello!"})
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Message:
    """
    Represents a single message in the conversation.

    Attributes:
        role: "user" or "assistant"
        content: The message text
        timestamp: When the message was created
        metadata: Additional info
    """
    role: str
    content: str
    timestamp: datetime = field(default_factory=_utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }

    def __str__(self) -> str:
        return f"{self.role}: {self.content}"


@dataclass(frozen=True)
class HistoryView:
    """Read-only snapshot of a conversation's messages."""

    messages: Tuple[Message, ...] = ()

    def is_empty(self) -> bool:
        return not self.messages

    def as_text(self) -> str:
        """Format as "Role: content" lines."""
        return "\n".join(f"{m.role.capitalize()}: {m.content}" for m in self.messages)

    def as_chat_messages(self) -> List[Dict[str, str]]:
        """Format as OpenAI-style chat messages."""
        return [{"role": m.role, "content": m.content} for m in self.messages]

    def __len__(self) -> int:
        return len(self.messages)


class ConversationMemory:
    """
    Manages conversation history for a single user.

    Features:
    - Sliding window to limit context size
    - Automatic truncation of old messages by approximate token count
    - Thread-safe snapshot and append
    """

    def __init__(
        self,
        max_turns: int = 10,
        max_tokens: int = 2000,
        conversation_id: str = ANONYMOUS_USER,
    ):
        """
        Args:
            max_turns: Maximum number of conversation turns to keep
            max_tokens: Approximate max tokens for history (uses char estimate)
            conversation_id: Owner of this memory (the user id)
        """
        self.max_turns = max_turns
        self.max_tokens = max_tokens
        self.conversation_id = conversation_id

        # Use deque for efficient FIFO operations
        self._messages: deque[Message] = deque(maxlen=max_turns * 2)
        self._lock = threading.Lock()

        logger.debug(f"ConversationMemory created: id={self.conversation_id}")

    def add_user_message(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Add a user message to the conversation."""
        with self._lock:
            self._append(Message(role="user", content=content, metadata=metadata or {}))

    def add_assistant_message(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Add an assistant message to the conversation."""
        with self._lock:
            self._append(Message(role="assistant", content=content, metadata=metadata or {}))

    def _append(self, message: Message) -> None:
        self._messages.append(message)
        self._trim_to_token_limit()

    @staticmethod
    def _estimate_tokens(text: str) -> int:
        """Estimate token count (1 token ~ 4 characters)."""
        return len(text) // 4

    def _trim_to_token_limit(self) -> None:
        """Trim old messages to stay within token limit."""
        total_tokens = sum(self._estimate_tokens(m.content) for m in self._messages)

        # Always keep the latest exchange
        while total_tokens > self.max_tokens and len(self._messages) > 2:
            removed = self._messages.popleft()
            total_tokens -= self._estimate_tokens(removed.content)

    def get_messages(self) -> List[Message]:
        """Get all messages in the conversation."""
        with self._lock:
            return list(self._messages)

    async def load_memory_variables(self) -> HistoryView:
        """Snapshot the current history. Never mutates it."""
        with self._lock:
            return HistoryView(messages=tuple(self._messages))

    async def save_context(self, inputs: Dict[str, str], outputs: Dict[str, str]) -> None:
        """
        Record one completed turn.

        Args:
            inputs: {"input": <user message>}
            outputs: {"output": <assistant answer>}
        """
        user_text = inputs["input"]
        answer = outputs["output"]

        with self._lock:
            self._append(Message(role="user", content=user_text))
            self._append(Message(role="assistant", content=answer))

        logger.debug(f"Saved turn to memory {self.conversation_id}")

    @property
    def last_activity(self) -> Optional[datetime]:
        """Timestamp of the newest message, if any."""
        with self._lock:
            return self._messages[-1].timestamp if self._messages else None

    def clear(self) -> None:
        """Clear all messages from memory."""
        with self._lock:
            self._messages.clear()
        logger.debug(f"Cleared memory for {self.conversation_id}")

    def __len__(self) -> int:
        """Return number of messages."""
        return len(self._messages)


class ConversationManager:
    """
    Manages per-user conversation memories.

    Example:
        manager = ConversationManager()
        memory = manager.get_memory("user_123")

        # Clean up idle conversations
        manager.cleanup_old_conversations(max_age_hours=24)
    """

    def __init__(self, default_max_turns: int = 10, default_max_tokens: int = 2000):
        """
        Args:
            default_max_turns: Max turns for new memories
            default_max_tokens: Approximate token budget for new memories
        """
        self._memories: Dict[str, ConversationMemory] = {}
        self._lock = threading.Lock()
        self.default_max_turns = default_max_turns
        self.default_max_tokens = default_max_tokens

        logger.info("ConversationManager initialized")

    def get_memory(
        self,
        user_id: Optional[str],
        create_if_missing: bool = True,
    ) -> Optional[ConversationMemory]:
        """
        Get memory for a user, creating it on first contact.

        Args:
            user_id: User identifier (None maps to the anonymous conversation)
            create_if_missing: Create new memory if not found

        Returns:
            ConversationMemory instance or None
        """
        user_id = user_id or ANONYMOUS_USER

        with self._lock:
            if user_id not in self._memories:
                if not create_if_missing:
                    return None
                self._memories[user_id] = ConversationMemory(
                    max_turns=self.default_max_turns,
                    max_tokens=self.default_max_tokens,
                    conversation_id=user_id,
                )
                logger.debug(f"Created new memory for {user_id}")

            return self._memories[user_id]

    def delete_memory(self, user_id: str) -> bool:
        """Delete a user's memory. Returns True if it existed."""
        with self._lock:
            if user_id in self._memories:
                del self._memories[user_id]
                logger.debug(f"Deleted memory for {user_id}")
                return True
            return False

    def clear_all(self) -> int:
        """Clear all memories. Returns the number cleared."""
        with self._lock:
            count = len(self._memories)
            self._memories.clear()
        logger.info(f"Cleared {count} conversation memories")
        return count

    def cleanup_old_conversations(self, max_age_hours: float = 24) -> int:
        """
        Remove conversations with no recent activity.

        Args:
            max_age_hours: Max hours since last message

        Returns:
            Number of conversations removed
        """
        cutoff = _utcnow() - timedelta(hours=max_age_hours)

        with self._lock:
            to_remove = [
                user_id for user_id, memory in self._memories.items()
                if memory.last_activity is None or memory.last_activity < cutoff
            ]
            for user_id in to_remove:
                del self._memories[user_id]

        if to_remove:
            logger.info(f"Cleaned up {len(to_remove)} old conversations")

        return len(to_remove)

    def get_all_conversation_ids(self) -> List[str]:
        """Get all active user ids."""
        with self._lock:
            return list(self._memories.keys())

    def __len__(self) -> int:
        """Return number of active conversations."""
        return len(self._memories)
