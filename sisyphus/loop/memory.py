"""
Persistent Memory Extraction

Finds the memory the model wants to carry across a context reset. The model
is asked to end every response with a ``MESSAGE:`` line; the newest such line
wins. When the model never wrote one, the tail of the conversation is kept
instead so the next cycle still gets something.
"""

import logging
from typing import Iterable, Optional

from .models import Role, Turn
from .prompts import MESSAGE_MARKER

logger = logging.getLogger(__name__)

# Rough token -> character conversion used for the fallback slice
CHARS_PER_TOKEN = 4


def char_budget(token_budget: int) -> int:
    """Approximate character length of ``token_budget`` tokens."""
    return max(0, token_budget) * CHARS_PER_TOKEN


def find_marker_message(text: str) -> Optional[str]:
    """
    Return the newest ``MESSAGE:`` payload in a single response, if any.

    Lines are scanned last to first. A bare marker line takes the text of the
    lines after it.
    """
    lines = text.split("\n")
    for index in range(len(lines) - 1, -1, -1):
        stripped = lines[index].strip()
        if not stripped.startswith(MESSAGE_MARKER):
            continue
        message = stripped[len(MESSAGE_MARKER):].strip()
        if not message:
            message = "\n".join(lines[index + 1:]).strip()
        if message:
            return message
    return None


def extract_persistent_memory(turns: Iterable[Turn], token_budget: int) -> str:
    """
    Derive the string that survives a reset from a cycle's turns.

    Args:
        turns: The cycle's turns, oldest first
        token_budget: Target size of the memory in tokens

    Returns:
        The newest marker payload from an assistant turn, or the trailing
        ``token_budget * 4`` characters of the whole conversation. Empty only
        when the conversation is empty.
    """
    turns = list(turns)

    for turn in reversed(turns):
        if turn.role != Role.ASSISTANT:
            continue
        message = find_marker_message(turn.content)
        if message:
            return message

    full_conversation = "\n".join(turn.content for turn in turns)
    budget = char_budget(token_budget)
    if not full_conversation or budget == 0:
        return full_conversation

    logger.info(f"No {MESSAGE_MARKER} line found, keeping last {budget} characters")
    return full_conversation[-budget:]
