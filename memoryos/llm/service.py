"""Response generation over memory context, with local fallbacks.

Architectural role:
    Provides the chat-answer entrypoint used by `memoryos.core.engine`. Bridges
    prompt construction (`memoryos.prompting`) and transport (`memoryos.llm.client`)
    and guarantees that the caller always receives conversational text.

State model:
    - `DISABLED`: no client (demo mode or missing credentials). Answers come from
      local canned logic; the provider is never contacted.
    - `READY`: each call is one-shot `REQUEST_SENT -> SUCCESS | DEGRADED | FAILED`:
        SUCCESS   cleaned model text, `usable=True`
        DEGRADED  provider quota exhausted (402), apology, `usable=False`
        FAILED    any other failure, local template echoing the user, `usable=False`

Token behavior:
    Only the last `RECENT_TURNS` messages are forwarded; output is bounded by
    `MAX_TOKENS`.

Secondary helpers:
    `generate_tags` (model-suggested tags with a keyword-frequency fallback) and
    `summarize` (short preview stored with each memory).
"""

import json
import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Union

from memoryos.llm.client import (
    CompletionClient,
    CompletionError,
    CompletionRequest,
    QuotaExceededError,
)
from memoryos.llm.provider_config import (
    MAX_TOKENS,
    TAG_MAX_TOKENS,
    TAG_TEMPERATURE,
    TEMPERATURE,
)
from memoryos.memory.models import ChatMessage
from memoryos.prompting.prompt_builder import (
    build_system_instruction,
    build_tag_instruction,
    build_tag_prompt,
)


logger = logging.getLogger(__name__)


DISABLED = "disabled"
READY = "ready"

RECENT_TURNS = 2

NOTE_NOT_CONFIGURED = "AI service not configured"
NOTE_UNAVAILABLE = "AI service temporarily unavailable"
NOTE_QUOTA = "AI service credit exhausted"

EMPTY_REPLY = "I apologize, but I couldn't generate a response."

QUOTA_MESSAGE = (
    "I'm currently experiencing high demand and my API credits are running low. "
    "I can still help you search through your memories and provide basic assistance. "
    "For full AI responses, the account may need more credit, or try again later."
)

GREETING_MESSAGE = (
    "Hello! I'm your MemoryOS AI assistant. I can help you find and organize your "
    "memories. Try asking me about specific topics or add some memories to get started!"
)

HELP_MESSAGE = (
    "I can help you:\n"
    "• Find specific information from your stored memories\n"
    "• Search across your notes, ideas, and learnings\n"
    "• Suggest related content based on your queries\n"
    "• Help organize and categorize your thoughts\n\n"
    "Try adding some memories first, then ask me questions about them!"
)

NO_CONTEXT_MESSAGE = (
    "I'm here to help you with your memories! AI responses are not enabled right now, "
    "but I can still search through your stored memories. Try adding some memories "
    "first, then ask me about them."
)

GREETING_WORDS = {"hello", "hi", "hey"}
HELP_PHRASES = ("help", "what can you do")

STOP_WORDS = {
    "this", "that", "with", "from", "they", "them", "have", "been", "will",
    "said", "each", "which", "their", "time", "would", "there", "could", "other",
}
KEYWORD_MIN_LENGTH = 4
KEYWORD_LIMIT = 4
MAX_TAGS = 5

SUMMARY_LIMIT = 100


@dataclass
class ChatResult:
    """Outcome of one response-generation call.

    Attributes:
        text: Non-empty reply shown to the user.
        usable: `False` when the reply is a degradation notice instead of a
            model answer.
        note: Short machine-readable hint for the UI, when degraded or local.
    """

    text: str
    usable: bool = True
    note: Optional[str] = None


MessageLike = Union[ChatMessage, Mapping[str, Any]]


def _as_turn(message: MessageLike) -> dict:
    if isinstance(message, ChatMessage):
        return {"role": message.role, "content": message.content}
    return {"role": str(message.get("role", "user")), "content": str(message.get("content", ""))}


def last_user_message(conversation: Sequence[MessageLike]) -> str:
    for message in reversed(conversation):
        turn = _as_turn(message)
        if turn["role"] == "user":
            return turn["content"]
    return ""


# =========================================================
# RESPONSE CLEANUP
# =========================================================

_BOLD = re.compile(r"\*\*([^*]+)\*\*")
_ITALIC = re.compile(r"\*([^*]+)\*")
_HEADING = re.compile(r"#+\s")
_DASH_BULLET = re.compile(r"\n\s*-\s")
_BLANK_RUN = re.compile(r"\n{3,}")


def clean_response(text: str) -> str:
    """Strip markdown emphasis and headings, normalize bullets and blank lines."""
    text = _BOLD.sub(r"\1", text)
    text = _ITALIC.sub(r"\1", text)
    text = _HEADING.sub("", text)
    text = _DASH_BULLET.sub("\n• ", text)
    text = _BLANK_RUN.sub("\n\n", text)
    return text.strip()


# =========================================================
# LOCAL ANSWERS
# =========================================================

def local_response(user_message: str, context: str) -> str:
    """Canned answer used while the completion service is disabled."""
    query = user_message.lower()
    words = set(re.findall(r"\w+", query))

    if words & GREETING_WORDS:
        return GREETING_MESSAGE

    if any(phrase in query for phrase in HELP_PHRASES):
        return HELP_MESSAGE

    if context:
        return (
            "I found some relevant memories for you:\n\n"
            f"{context}\n\n"
            "AI responses are not enabled, so I'm showing the stored memories directly. "
            "With the AI service configured, I would answer in my own words based on them."
        )

    return NO_CONTEXT_MESSAGE


def failure_response(user_message: str) -> str:
    return (
        f'I received your message: "{user_message}". I\'m experiencing some technical '
        "difficulties with my AI service right now, but I can still help you search "
        "through your memories."
    )


# =========================================================
# GENERATOR
# =========================================================

class ResponseGenerator:
    """Answers a conversation from memory context.

    Args:
        client: Completion client; `None` puts the generator in `DISABLED` state.
        max_tokens: Output bound for chat answers.
        temperature: Sampling temperature for chat answers.
    """

    def __init__(
        self,
        client: Optional[CompletionClient] = None,
        max_tokens: int = MAX_TOKENS,
        temperature: float = TEMPERATURE,
    ):
        self.client = client
        self.max_tokens = max_tokens
        self.temperature = temperature

    @property
    def state(self) -> str:
        return READY if self.client is not None else DISABLED

    def generate_response(self, conversation: Sequence[MessageLike], context: str) -> ChatResult:
        """Produce a reply for the conversation.

        Args:
            conversation: Full message history; only the tail is forwarded.
            context: Output of `build_context` (may be empty).

        Returns:
            `ChatResult` with non-empty text. Provider failures never raise.
        """
        user_message = last_user_message(conversation)

        if self.client is None:
            return ChatResult(
                text=local_response(user_message, context),
                usable=True,
                note=NOTE_NOT_CONFIGURED,
            )

        request = CompletionRequest(
            system_instruction=build_system_instruction(context),
            recent_turns=[_as_turn(message) for message in conversation[-RECENT_TURNS:]],
            max_output_tokens=self.max_tokens,
            temperature=self.temperature,
        )

        try:
            raw = self.client.complete(request)
        except QuotaExceededError:
            logger.warning("Completion provider reported exhausted quota")
            return ChatResult(text=QUOTA_MESSAGE, usable=False, note=NOTE_QUOTA)
        except CompletionError:
            logger.exception("Completion request failed")
            return ChatResult(
                text=failure_response(user_message),
                usable=False,
                note=NOTE_UNAVAILABLE,
            )

        text = clean_response(raw) or EMPTY_REPLY
        return ChatResult(text=text, usable=True)

    def generate_tags(self, content: str, title: str, memory_type: str) -> List[str]:
        """Suggest tags for a memory.

        Uses the completion service when ready; any failure, or an empty
        suggestion, falls back to `extract_keywords(content)`.
        """
        if self.client is None:
            return extract_keywords(content)

        request = CompletionRequest(
            system_instruction=build_tag_instruction(memory_type),
            recent_turns=[{"role": "user", "content": build_tag_prompt(content, title, memory_type)}],
            max_output_tokens=TAG_MAX_TOKENS,
            temperature=TAG_TEMPERATURE,
            json_output=True,
        )

        try:
            raw = self.client.complete(request)
            tags = parse_tags(raw)
        except (CompletionError, ValueError) as err:
            logger.warning("Tag generation failed (%s); using keyword extraction", err)
            return extract_keywords(content)

        return tags or extract_keywords(content)


def parse_tags(raw: str) -> List[str]:
    """Parse `{"tags": [...]}` (or a bare list) into clean lowercase tags.

    Raises:
        ValueError: When `raw` is not valid JSON.
    """
    data = json.loads(raw)
    if isinstance(data, dict):
        data = data.get("tags", [])
    if not isinstance(data, list):
        return []

    tags: List[str] = []
    for item in data:
        tag = str(item).strip().lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags[:MAX_TAGS]


def extract_keywords(content: str) -> List[str]:
    """Return the most frequent meaningful words of `content`.

    Words are lowercased with punctuation removed; words of three characters or
    fewer and common stop words are skipped. Ties keep first-appearance order.
    """
    words = re.sub(r"[^\w\s]", " ", content.lower()).split()
    candidates = [
        word for word in words
        if len(word) >= KEYWORD_MIN_LENGTH and word not in STOP_WORDS
    ]
    return [word for word, _ in Counter(candidates).most_common(KEYWORD_LIMIT)]


def summarize(content: str) -> str:
    if len(content) > SUMMARY_LIMIT:
        return content[:SUMMARY_LIMIT - 3] + "..."
    return content
