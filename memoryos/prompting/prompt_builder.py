"""Prompt assembly helpers used by the response generator.

This module is intentionally narrow: it only builds instruction strings from
already ranked and formatted inputs. Retrieval, truncation, and model invocation
happen outside this module.

Design constraints:
    - Deterministic construction for identical inputs.
    - Fixed ordering of prompt components.
    - No hidden side effects (no I/O, no global state mutation).

Prompt safety model:
    Memory context is interpolated as raw text. Grounding is instruction-led: the
    model is told to answer only from the injected memories.
"""


# =========================================================
# SYSTEM IDENTITY (GLOBAL)
# =========================================================
# Shared prefix of every system instruction.

SYSTEM_IDENTITY = (
    "You are an AI assistant for MemoryOS, a personal knowledge management system. "
    "You help users find and organize their stored memories, thoughts, ideas, and learnings."
)


# =========================================================
# GROUNDED INSTRUCTION
# =========================================================
# Used when the ranker found memories.
# Component order:
#   1) `SYSTEM_IDENTITY`
#   2) Grounding constraint
#   3) Injected memory block
#   4) Behavior rules and response format

GROUNDED_RULES = (
    "CRITICAL RULES:\n"
    "- Respond ONLY based on the memories above\n"
    "- DO NOT hallucinate or make up information\n"
    "- DO NOT copy the raw memory format or repeat the Memory/Type/Content labels\n"
    "- Reference memory titles naturally in conversation\n"
    "- Give natural, conversational responses\n\n"
    "RESPONSE FORMAT:\n"
    "- Give a natural response based on the memories\n"
    "- Encourage creating a new memory when something is missing\n"
    "- Keep it friendly and helpful"
)


def build_grounded_instruction(context: str) -> str:
    """Build the system instruction for a memory-backed answer.

    Args:
        context: Output of `memoryos.retrieval.context_builder.build_context`.

    Returns:
        Instruction string with the context embedded verbatim.
    """
    return (
        SYSTEM_IDENTITY + "\n\n"
        "IMPORTANT: You can ONLY use information from the user's stored memories below. "
        "DO NOT use any external knowledge or make up information.\n\n"
        "User's stored memories:\n"
        + context.strip() +
        "\n\n" + GROUNDED_RULES
    )


# =========================================================
# GENERAL INSTRUCTION
# =========================================================
# Used when no memory cleared the noise floor.

GENERAL_INSTRUCTION = (
    SYSTEM_IDENTITY + " "
    "No relevant memories were found for this query. Provide helpful general "
    "information, state clearly that it does not come from the user's memories, "
    "and encourage the user to save important information as a memory."
)


def build_system_instruction(context: str) -> str:
    """Select the grounded or general instruction based on `context`."""
    if context and context.strip():
        return build_grounded_instruction(context)
    return GENERAL_INSTRUCTION


# =========================================================
# TAG PROMPT
# =========================================================

TAG_CONTENT_LIMIT = 500


def build_tag_instruction(memory_type: str) -> str:
    return (
        f"Create 3-5 relevant tags for this {memory_type}. Use lowercase, be specific, "
        'avoid generic words. Return a JSON object of the form {"tags": ["..."]}.'
    )


def build_tag_prompt(content: str, title: str, memory_type: str) -> str:
    """Build the user message asking for tags; content is cut to 500 chars."""
    return (
        f"Title: {title}\n"
        f"Type: {memory_type}\n"
        f"Content: {content[:TAG_CONTENT_LIMIT]}"
    )
