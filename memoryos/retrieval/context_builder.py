"""Prompt context assembly from ranked memories.

Architectural role:
    Converts the ranker's output into the plain-text block injected into the
    system instruction by `memoryos.prompting.prompt_builder`.

Format:
    Memory: <title>
    Type: <type>
    Content: <content, at most 300 chars + "...">

    Blocks are separated by a `---` line. Tags and bracketed type markers are
    never rendered, so the assistant has nothing internal to echo back.

Edge cases:
    An empty memory list yields `""`, which downstream code treats as
    general-knowledge mode.
"""

from typing import Iterable, Union

from memoryos.memory.models import Memory, ScoredMemory


MAX_CONTENT_CHARS = 300
ELLIPSIS = "..."
BLOCK_SEPARATOR = "\n\n---\n\n"


def truncate_content(content: str, limit: int = MAX_CONTENT_CHARS) -> str:
    if len(content) > limit:
        return content[:limit] + ELLIPSIS
    return content


def format_memory(memory: Memory) -> str:
    return (
        f"Memory: {memory.title}\n"
        f"Type: {memory.type}\n"
        f"Content: {truncate_content(memory.content)}"
    )


def build_context(memories: Iterable[Union[Memory, ScoredMemory]]) -> str:
    """Render ranked memories as one context string.

    Args:
        memories: Plain or scored memories, in ranked order.

    Returns:
        Joined memory blocks, or `""` when there are none.
    """
    blocks = []

    for item in memories:
        memory = item.memory if isinstance(item, ScoredMemory) else item
        blocks.append(format_memory(memory))

    return BLOCK_SEPARATOR.join(blocks)
