"""
Loop Module - The Eternal Task

A model talks to itself forever. Its output is paced out to every connected
viewer like a typewriter, and whenever the conversation grows past a token
threshold the context is wiped, except for one short MESSAGE: the model
wrote for its next self.

Components:
- models: Pydantic types for turns and viewer events
- config: Environment-driven configuration
- prompts: The four prompt templates and their interpolation
- providers: Upstream model clients (Anthropic, OpenAI-compatible, mock)
- memory: Persistent memory extraction at reset time
- state: The single session record
- broadcaster: Viewer channels, replay log and timer ticker
- pacer: Typewriter emitter
- generator: The generation loop state machine
- clock: Injectable time source
- runtime: One wired-up session for the web app
"""

from .models import (
    Role,
    Turn,
    SavedMessage,
    TokenUsage,
    EventType,
    MetadataEvent,
    ContentEvent,
    CompleteEvent,
    DoneEvent,
    TimerEvent,
    ErrorEvent,
    SavedMessagesEvent,
    parse_event,
)
from .clock import Clock
from .config import LoopConfig, get_config, reload_config
from .prompts import PromptFields, PromptSet, PromptTemplate, TemplateError, MESSAGE_MARKER
from .memory import extract_persistent_memory, find_marker_message
from .state import SessionState, StatsSnapshot, Exchange
from .broadcaster import BroadcastHub, ViewerChannel
from .pacer import Pacer, interpolate_tokens
from .generator import GenerationLoop
from .runtime import Runtime
from .providers import ModelProvider, UpstreamError, MockProvider

__all__ = [
    # Models
    "Role",
    "Turn",
    "SavedMessage",
    "TokenUsage",
    "EventType",
    "MetadataEvent",
    "ContentEvent",
    "CompleteEvent",
    "DoneEvent",
    "TimerEvent",
    "ErrorEvent",
    "SavedMessagesEvent",
    "parse_event",
    # Config
    "LoopConfig",
    "get_config",
    "reload_config",
    # Prompts
    "PromptFields",
    "PromptSet",
    "PromptTemplate",
    "TemplateError",
    "MESSAGE_MARKER",
    # Core components
    "SessionState",
    "StatsSnapshot",
    "Exchange",
    "BroadcastHub",
    "ViewerChannel",
    "Pacer",
    "GenerationLoop",
    "Runtime",
    "Clock",
    # Functions
    "extract_persistent_memory",
    "find_marker_message",
    "interpolate_tokens",
    # Providers
    "ModelProvider",
    "UpstreamError",
    "MockProvider",
]
