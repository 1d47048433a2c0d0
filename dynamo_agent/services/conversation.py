"""Persistent multi-turn conversation history."""

from collections.abc import Iterable

from dynamo_agent.models.llm import Message
from dynamo_agent.utils.logging import get_logger

logger = get_logger(__name__)


class ConversationOrderError(ValueError):
    """Raised when a message would break role alternation or tool-use pairing."""


def check_follows(previous: Message | None, message: Message) -> None:
    """Validate that ``message`` may directly follow ``previous``.

    Raises:
        ConversationOrderError: If roles do not alternate, the history does not start
            with a user message, or tool results do not answer the preceding tool uses.
    """
    if previous is None:
        if message.role != "user":
            raise ConversationOrderError("Conversation must start with a user message")
    elif previous.role == message.role:
        raise ConversationOrderError(f"Two consecutive {message.role!r} messages")

    results = message.tool_results()
    if not results:
        return

    if message.role != "user":
        raise ConversationOrderError("Tool results must be carried by a user message")

    expected = [block.id for block in previous.tool_uses()] if previous else []
    answered = [block.tool_use_id for block in results]
    if sorted(expected) != sorted(answered):
        raise ConversationOrderError(f"Tool results {answered} do not match preceding tool uses {expected}")


class Conversation:
    """Ordered, append-only sequence of messages.

    Mutated only by the orchestrator that owns it; not safe for concurrent turns.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def append(self, message: Message) -> None:
        check_follows(self._messages[-1] if self._messages else None, message)
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        """Append several messages, validating all of them before any is stored."""
        batch = list(messages)
        previous = self._messages[-1] if self._messages else None
        for message in batch:
            check_follows(previous, message)
            previous = message
        self._messages.extend(batch)

    def messages(self) -> list[Message]:
        """Return a copy of the history."""
        return list(self._messages)

    def clear(self) -> None:
        logger.debug(f"Clearing conversation with {len(self._messages)} messages")
        self._messages = []

    def __len__(self) -> int:
        return len(self._messages)
