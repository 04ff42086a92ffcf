"""Conversation assembly for agent invocation.

Joins recent history with the new user message and trims the oldest history
so the estimated token count stays inside the budget.
"""

from dataclasses import dataclass, field

import structlog

from consultant.api.schemas import ChatMessage
from consultant.core.memory import extract_text_content

logger = structlog.get_logger(__name__)

# flat estimate for an attached image
IMAGE_TOKENS = 256


@dataclass
class ConversationBundle:
    """Messages ready for an adapter.

    Attributes:
        messages: History followed by the new user message, oldest first.
        history_used: How many history messages survived trimming.
        history_dropped: How many were dropped to fit the budget.
        estimated_tokens: Estimate for the final message list.
    """
    messages: list[ChatMessage] = field(default_factory=list)
    history_used: int = 0
    history_dropped: int = 0
    estimated_tokens: int = 0


def _estimate_tokens(text: str) -> int:
    """Rough token estimate: ~4 chars per token."""
    return len(text) // 4


def estimate_message_tokens(message: ChatMessage) -> int:
    tokens = _estimate_tokens(extract_text_content(message.content))
    if not isinstance(message.content, str):
        tokens += IMAGE_TOKENS * sum(1 for b in message.content if b.type == "image")
    return tokens


def build_conversation(
    history: list[ChatMessage],
    new_message: ChatMessage,
    token_budget: int = 6000,
) -> ConversationBundle:
    """Assemble history + new message under a token budget.

    The new message is always kept. History is dropped oldest-first until the
    total fits, then any leading assistant messages are dropped so the
    conversation opens with a user turn.

    Args:
        history: Prior messages, oldest first.
        new_message: The user's current message.
        token_budget: Upper bound on the estimated token count.

    Returns:
        ConversationBundle with the messages to send.
    """
    kept = list(history)
    costs = [estimate_message_tokens(m) for m in kept]
    total = sum(costs) + estimate_message_tokens(new_message)

    while kept and total > token_budget:
        kept.pop(0)
        total -= costs.pop(0)

    while kept and kept[0].role == "assistant":
        kept.pop(0)
        total -= costs.pop(0)

    dropped = len(history) - len(kept)
    if dropped:
        logger.info("context.history_trimmed", dropped=dropped, kept=len(kept), budget=token_budget)

    return ConversationBundle(
        messages=[*kept, new_message],
        history_used=len(kept),
        history_dropped=dropped,
        estimated_tokens=total,
    )
