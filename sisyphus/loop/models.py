"""
Loop Models

Pydantic models for conversation turns and the events pushed to viewers.
Events form a closed union discriminated by ``type``; they are turned into
camelCase JSON only at the broadcast boundary.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Turn(BaseModel):
    """One message of the conversation sent upstream."""
    role: Role
    content: str

    def to_message(self) -> dict:
        return {"role": self.role.value, "content": self.content}


class SavedMessage(BaseModel):
    """A persistent memory string, tagged with the cycle that wrote it."""
    cycle: int
    message: str


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


# === Viewer Events ===

class EventType(str, Enum):
    """Event types on the viewer stream."""
    METADATA = "metadata"
    CONTENT = "content"
    COMPLETE = "complete"
    DONE = "done"
    TIMER = "timer"
    ERROR = "error"
    SAVED_MESSAGES = "savedMessages"


class ViewerEventBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_broadcast(self) -> dict:
        """Convert to the JSON-ready dict sent to viewers."""
        return self.model_dump(mode="json", by_alias=True)


class MetadataEvent(ViewerEventBase):
    """Sent before the paced text of each response."""
    type: Literal["metadata"] = "metadata"
    cycle: int
    is_continuation: bool = Field(default=False, alias="isContinuation")
    start_time: int = Field(alias="startTime")  # ms since epoch


class ContentEvent(ViewerEventBase):
    """One paced slice of response text."""
    type: Literal["content"] = "content"
    text: str
    current_tokens: Optional[int] = Field(default=None, alias="currentTokens")


class CompleteEvent(ViewerEventBase):
    """Sent once a response has been fully paced out."""
    type: Literal["complete"] = "complete"
    total_tokens: int = Field(alias="totalTokens")
    conversation_tokens: Optional[int] = Field(default=None, alias="conversationTokens")
    usage: TokenUsage = Field(default_factory=TokenUsage)


class DoneEvent(ViewerEventBase):
    """End of an exchange; carries the new memory when a reset happened."""
    type: Literal["done"] = "done"
    should_reset: bool = Field(alias="shouldReset")
    persistent_context: Optional[str] = Field(default=None, alias="persistentContext")
    previous_context: Optional[str] = Field(default=None, alias="previousContext")
    saved_messages: Optional[list[SavedMessage]] = Field(default=None, alias="savedMessages")


class TimerEvent(ViewerEventBase):
    type: Literal["timer"] = "timer"
    streaming_time: int = Field(alias="streamingTime")  # whole seconds


class ErrorEvent(ViewerEventBase):
    type: Literal["error"] = "error"
    message: str


class SavedMessagesEvent(ViewerEventBase):
    """Snapshot of saved memories, sent to a viewer right after replay."""
    type: Literal["savedMessages"] = "savedMessages"
    saved_messages: list[SavedMessage] = Field(default_factory=list, alias="savedMessages")


ViewerEvent = Annotated[
    Union[
        MetadataEvent,
        ContentEvent,
        CompleteEvent,
        DoneEvent,
        TimerEvent,
        ErrorEvent,
        SavedMessagesEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter = TypeAdapter(ViewerEvent)

_KNOWN_TYPES = {t.value for t in EventType}


def parse_event(data: Any) -> Optional[ViewerEventBase]:
    """
    Parse a viewer event from a dict or JSON string.

    Returns None for events of an unknown type, or that fail validation,
    so consumers can skip them.
    """
    try:
        if isinstance(data, (str, bytes)):
            return _event_adapter.validate_json(data)
        if not isinstance(data, dict) or data.get("type") not in _KNOWN_TYPES:
            return None
        return _event_adapter.validate_python(data)
    except ValidationError:
        return None
