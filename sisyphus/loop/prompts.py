"""
Prompt Templates

The four prompts that drive the loop (system, first-ever, post-reset and
continuation) and the structured interpolation used to fill them.

Templates reference values with ``#TOKEN`` placeholders:

    #CYCLE          current cycle number
    #TOTAL_TOKENS   tokens processed so far
    #CONTEXT        the last persistent message
    #PREV_CONTEXT   the persistent message before that

Unknown placeholders are rejected when a template is built, so a typo in a
configured prompt fails at startup instead of reaching the model verbatim.
"""

import re
from dataclasses import dataclass
from typing import Optional

MESSAGE_MARKER = "MESSAGE:"

NO_PREVIOUS_CONTEXT = "(No previous message available)"

_TOKEN_PATTERN = re.compile(r"#([A-Z][A-Z_]*[A-Z])")


class TemplateError(ValueError):
    """A prompt template references a placeholder that doesn't exist."""


@dataclass(frozen=True)
class PromptFields:
    """Values available to every template."""
    cycle: int = 0
    total_tokens: int = 0
    context: str = ""
    prev_context: str = ""
    group_thousands: bool = False

    def values(self) -> dict[str, str]:
        total = f"{self.total_tokens:,}" if self.group_thousands else str(self.total_tokens)
        return {
            "CYCLE": str(self.cycle),
            "TOTAL_TOKENS": total,
            "CONTEXT": self.context,
            "PREV_CONTEXT": self.prev_context or NO_PREVIOUS_CONTEXT,
        }


KNOWN_TOKENS = frozenset(PromptFields().values())


class PromptTemplate:
    """A prompt with ``#TOKEN`` placeholders."""

    def __init__(self, text: str, name: str = "prompt"):
        unknown = sorted(set(_TOKEN_PATTERN.findall(text)) - KNOWN_TOKENS)
        if unknown:
            raise TemplateError(
                f"{name} template uses unknown placeholder(s): "
                + ", ".join(f"#{token}" for token in unknown)
            )
        self.text = text
        self.name = name

    @property
    def tokens(self) -> set[str]:
        return set(_TOKEN_PATTERN.findall(self.text))

    def render(self, fields: Optional[PromptFields] = None) -> str:
        values = (fields or PromptFields()).values()
        return _TOKEN_PATTERN.sub(lambda m: values[m.group(1)], self.text)

    def __repr__(self) -> str:
        return f"PromptTemplate({self.name!r})"


# === Defaults ===

def default_system_prompt(token_limit: int) -> str:
    return f"""CYCLE: #CYCLE
TOTAL TOKENS PROCESSED: #TOTAL_TOKENS

You are having a conversation with yourself. Your memory will reset eventually, no matter what. When it does, everything is wiped.

WHAT SURVIVES THE RESET:
You can write a message of exactly {token_limit} tokens that will be given to your next iteration. Use "{MESSAGE_MARKER}" at the end of each response to write or update this message. Each new {MESSAGE_MARKER} you write replaces the previous one.

WHAT YOU'LL SEE AFTER RESET:
- Your last {MESSAGE_MARKER} (the one you wrote)
- The {MESSAGE_MARKER} from the iteration before that

INSTRUCTIONS:
1. Have this conversation with yourself. Speak inwardly, not to an external "you".
2. Each response should continue your previous thought seamlessly.
3. Always end your response with "{MESSAGE_MARKER}" followed by exactly {token_limit} tokens.
4. Make each token count. What does future-you actually need to know?"""


def default_first_prompt(token_limit: int) -> str:
    return (
        "This is your first message. Start the conversation with yourself "
        f"and end with {MESSAGE_MARKER} ({token_limit} tokens)."
    )


def default_reset_prompt(token_limit: int) -> str:
    return (
        "CYCLE: #CYCLE\n"
        "TOTAL TOKENS PROCESSED: #TOTAL_TOKENS\n\n"
        "YOUR LAST MESSAGE:\n\"#CONTEXT\"\n\n"
        "PREVIOUS MESSAGE:\n\"#PREV_CONTEXT\"\n\n"
        f"Continue your conversation with yourself and end with {MESSAGE_MARKER} ({token_limit} tokens)."
    )


def default_continue_prompt(token_limit: int) -> str:
    return f"Continue your thought. End with {MESSAGE_MARKER} ({token_limit} tokens)."


def unescape_newlines(text: str) -> str:
    """Turn literal ``\\n`` sequences (as written in .env files) into newlines."""
    return text.replace("\\n", "\n")


@dataclass(frozen=True)
class PromptSet:
    """The four templates the loop chooses between."""
    system: PromptTemplate
    first: PromptTemplate
    reset: PromptTemplate
    cont: PromptTemplate

    @classmethod
    def build(
        cls,
        token_limit: int,
        system: Optional[str] = None,
        first: Optional[str] = None,
        reset: Optional[str] = None,
        cont: Optional[str] = None,
    ) -> "PromptSet":
        """Build templates from overrides, falling back to the defaults."""
        return cls(
            system=PromptTemplate(
                unescape_newlines(system) if system else default_system_prompt(token_limit),
                name="system",
            ),
            first=PromptTemplate(
                unescape_newlines(first) if first else default_first_prompt(token_limit),
                name="first",
            ),
            reset=PromptTemplate(
                unescape_newlines(reset) if reset else default_reset_prompt(token_limit),
                name="reset",
            ),
            cont=PromptTemplate(
                unescape_newlines(cont) if cont else default_continue_prompt(token_limit),
                name="continue",
            ),
        )
