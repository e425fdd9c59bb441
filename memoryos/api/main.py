"""
Minimal interactive terminal chat over the MemoryOS engine.

Architectural role:
- Provides a terminal-only interface to the same chat pipeline the HTTP API uses.
- Displays memory counts and AI mode at startup for operator visibility.
- Delegates answering to `memoryos.core.engine.MemoryEngine.chat`.

Request lifecycle (per user turn):
1. Read a single line from stdin.
2. Handle local control commands (`exit`/`quit`, `clear chat`/`empty chat`).
3. Append the line to the local conversation and forward it to the engine.
4. Print the answer and the titles of referenced memories.

Input validation behavior:
- Empty input is ignored and does not call the engine.

Error handling strategy:
- Handles EOF and keyboard interrupts without traceback output.
- Storage misconfiguration aborts startup with the configuration message.
"""

import asyncio
import logging
import sys

from memoryos.core.engine import MemoryEngine, build_engine
from memoryos.memory.models import ChatMessage, utcnow
from memoryos.memory.storage import ConfigurationError


logger = logging.getLogger(__name__)


# =========================================================
# UTF-8 SAFE STDOUT
# =========================================================

if hasattr(sys.stdout, "reconfigure"):
    try:
        sys.stdout.reconfigure(encoding="utf-8", errors="ignore")
    except (AttributeError, ValueError):
        logger.debug("stdout does not support reconfiguration")


def render_reply(reply) -> str:
    lines = [reply.message]
    if reply.relevant_memories:
        lines.append("")
        lines.append("Referenced memories:")
        lines.extend(f"  - {memory.title}" for memory in reply.relevant_memories)
    if reply.note:
        lines.append(f"({reply.note})")
    return "\n".join(lines)


async def chat_loop(engine: MemoryEngine, read=input, write=print):
    """Run the read-answer loop until EOF or an exit command."""
    conversation = []

    while True:
        try:
            question = read("You: ").strip()
        except EOFError:
            write("")
            break
        except KeyboardInterrupt:
            write("\nInterrupted.")
            break

        if not question:
            continue

        if question.lower() in ("exit", "quit"):
            write("Shutting down.")
            break

        if question.lower() in ("empty chat", "clear chat"):
            conversation.clear()
            write("Chat cleared.")
            continue

        conversation.append(ChatMessage(role="user", content=question, timestamp=utcnow().isoformat()))
        reply = await engine.chat(conversation)
        conversation.append(ChatMessage(role="assistant", content=reply.message, timestamp=utcnow().isoformat()))

        write("\nAssistant:\n" + render_reply(reply))
        write("\n" + "-" * 60 + "\n")


def main():
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    try:
        engine = build_engine()
    except ConfigurationError as err:
        print(f"Configuration error: {err}")
        sys.exit(1)

    memories = asyncio.run(engine.list_memories())

    print("MemoryOS assistant started. (Type 'exit' to quit)\n")
    print("-" * 60)
    print(f"Memories loaded: {len(memories)}")
    print(f"AI mode: {engine.generator.state}")
    print("-" * 60)

    asyncio.run(chat_loop(engine))


if __name__ == "__main__":
    main()
