"""Core request orchestration for memory CRUD, search, and chat.

Architectural role:
    Provides the execution pipeline used by the HTTP and terminal adapters. Owns the
    rule that a memory's embedding is recomputed whenever its title or content
    changes, and assembles chat answers from ranked memories.

Chat control flow:
    1. Validate the conversation (non-empty, last turn from the user).
    2. Embed the last user message.
    3. Rank the user's memories (semantic + keyword) and keep the top 5.
    4. Build the bounded context block.
    5. Generate the answer (or a local fallback) off the event loop.
    6. Attach the highly relevant memories as references.

Concurrency:
    Storage calls and the completion request are blocking; both run through
    `asyncio.to_thread` so one request's wait does not stall another. Embedding and
    scoring are CPU-bound and run inline.

Error handling strategy:
    Invalid caller input raises `InvalidRequestError`. Provider problems are
    absorbed by `ResponseGenerator`; the chat path always returns text.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from memoryos.llm.client import build_client
from memoryos.llm.provider_config import DEMO_MODE
from memoryos.llm.service import ChatResult, ResponseGenerator, summarize
from memoryos.memory.embedding_model import HashingEmbedder, get_model
from memoryos.memory.models import (
    MEMORY_TYPES,
    SHARED_USER_ID,
    ChatMessage,
    ChatSession,
    Memory,
    MemoryCreate,
    MemoryUpdate,
    Search,
    User,
    utcnow,
)
from memoryos.memory.storage import MemoryStorage, build_storage
from memoryos.retrieval.context_builder import build_context
from memoryos.retrieval.retriever import MemoryRetriever, RankingConfig


logger = logging.getLogger(__name__)

CHAT_MEMORY_LIMIT = 5
SEARCH_LIMIT = 10
RECENT_SEARCH_LIMIT = 5


class InvalidRequestError(ValueError):
    """Caller input cannot be processed."""


@dataclass
class ChatReply:
    """Chat answer plus the memories that justified it."""

    message: str
    relevant_memories: List[Memory] = field(default_factory=list)
    success: bool = True
    note: Optional[str] = None

    def to_api(self) -> dict:
        payload = {
            "message": self.message,
            "relevantMemories": [memory.to_api() for memory in self.relevant_memories],
            "success": self.success,
        }
        if self.note:
            payload["note"] = self.note
        return payload


class MemoryEngine:
    """Application service shared by all adapters.

    Args:
        storage: Storage backend.
        generator: Response generator (local-only when it has no client).
        embedder: Text embedder; the shared singleton when omitted.
        ranking: Ranking parameters; read from the environment when omitted.
        user_id: Owner used for every operation (single shared user).
    """

    def __init__(
        self,
        storage: MemoryStorage,
        generator: Optional[ResponseGenerator] = None,
        embedder: Optional[HashingEmbedder] = None,
        ranking: Optional[RankingConfig] = None,
        user_id: str = SHARED_USER_ID,
    ):
        self.storage = storage
        self.generator = generator or ResponseGenerator()
        self.embedder = embedder or get_model()
        self.retriever = MemoryRetriever(storage, ranking)
        self.user_id = user_id

    def embed(self, text: str) -> List[float]:
        return self.embedder.encode(text)

    # -----------------------------------------------------
    # Users
    # -----------------------------------------------------

    async def ensure_user(self) -> User:
        user = await asyncio.to_thread(self.storage.get_user, self.user_id)
        if user is not None:
            return user

        user = await asyncio.to_thread(self.storage.upsert_user, User(
            id=self.user_id,
            email="user@memoryos.app",
            first_name="MemoryOS",
            last_name="User",
        ))
        logger.info("Created shared user %s", user.id)
        return user

    # -----------------------------------------------------
    # Memories
    # -----------------------------------------------------

    async def list_memories(self) -> List[Memory]:
        return await asyncio.to_thread(self.storage.get_memories_by_user_id, self.user_id)

    async def get_memory(self, memory_id: str) -> Optional[Memory]:
        memory = await asyncio.to_thread(self.storage.get_memory_by_id, memory_id)
        if memory is None or memory.user_id != self.user_id:
            return None
        return memory

    async def create_memory(self, data: MemoryCreate) -> Memory:
        """Persist a new memory together with its embedding.

        Tags are suggested when none are supplied; a summary is derived from the
        content unless one is given.
        """
        tags = [tag.strip() for tag in (data.tags or []) if tag.strip()]
        if not tags:
            tags = await asyncio.to_thread(
                self.generator.generate_tags, data.content, data.title, data.type
            )

        memory = Memory(
            user_id=self.user_id,
            title=data.title,
            content=data.content,
            type=data.type,
            tags=tags,
            embedding=self.embed(f"{data.title} {data.content}"),
            priority=data.priority or "medium",
            status=data.status or "active",
            source=data.source,
            summary=data.summary or summarize(data.content),
            linked_memories=data.linked_memories or [],
        )

        created = await asyncio.to_thread(self.storage.create_memory, memory)
        logger.info("Created %s memory %s", created.type, created.id)
        return created

    async def update_memory(self, memory_id: str, data: MemoryUpdate) -> Optional[Memory]:
        """Apply a partial update, re-embedding when title or content change.

        Returns:
            The updated memory, or `None` when it does not exist for this user.
        """
        existing = await self.get_memory(memory_id)
        if existing is None:
            return None

        updates = data.model_dump(exclude_unset=True)
        title = updates.get("title")
        content = updates.get("content")

        if title is not None or content is not None:
            title = title if title is not None else existing.title
            content = content if content is not None else existing.content
            updates["embedding"] = self.embed(f"{title} {content}")
            if updates.get("content") is not None and "summary" not in updates:
                updates["summary"] = summarize(content)

        return await asyncio.to_thread(self.storage.update_memory, memory_id, updates)

    async def delete_memory(self, memory_id: str) -> bool:
        return await asyncio.to_thread(self.storage.delete_memory, memory_id, self.user_id)

    async def stats(self) -> Dict[str, int]:
        memories = await self.list_memories()
        counts = {memory_type: 0 for memory_type in MEMORY_TYPES}
        for memory in memories:
            counts[memory.type] = counts.get(memory.type, 0) + 1
        return {
            "total": len(memories),
            "ideas": counts["idea"],
            "notes": counts["note"],
            "learnings": counts["learning"],
            "tasks": counts["task"],
        }

    # -----------------------------------------------------
    # Search
    # -----------------------------------------------------

    async def search(
        self,
        query: str,
        memory_type: Optional[str] = None,
        limit: int = SEARCH_LIMIT,
    ) -> List[Memory]:
        """Rank memories for `query`, optionally filter by type, record history."""
        if not query or not query.strip():
            raise InvalidRequestError("query must not be empty")

        query_embedding = self.embed(query)
        results = await asyncio.to_thread(
            self.retriever.rank, self.user_id, query_embedding, query, limit
        )

        if memory_type and memory_type != "all":
            results = [memory for memory in results if memory.type == memory_type]

        await asyncio.to_thread(self.storage.create_search, self.user_id, query, results)
        return results

    async def recent_searches(self, limit: int = RECENT_SEARCH_LIMIT) -> List[Search]:
        return await asyncio.to_thread(self.storage.get_recent_searches, self.user_id, limit)

    # -----------------------------------------------------
    # Chat
    # -----------------------------------------------------

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        session_id: Optional[str] = None,
    ) -> ChatReply:
        """Answer the last user message from the user's memories.

        Args:
            messages: Full conversation; the last message must come from the user.
            session_id: Optional chat session that receives the new turns.

        Raises:
            InvalidRequestError: Empty conversation, last turn not from the user, or
                unknown session.
        """
        if not messages:
            raise InvalidRequestError("Messages array is required")

        last = messages[-1]
        if last.role != "user":
            raise InvalidRequestError("Last message must be from user")

        session = None
        if session_id:
            session = await asyncio.to_thread(self.storage.get_chat_session_by_id, session_id)
            if session is None or session.user_id != self.user_id:
                raise InvalidRequestError("Unknown chat session")

        query_embedding = self.embed(last.content)
        scored = await asyncio.to_thread(
            self.retriever.rank_scored,
            self.user_id,
            query_embedding,
            last.content,
            CHAT_MEMORY_LIMIT,
        )

        for position, item in enumerate(scored, start=1):
            logger.debug(
                "%d. [%s] %s (score %.3f)",
                position, item.memory.type, item.memory.title, item.combined_score,
            )

        context = build_context(scored)
        result: ChatResult = await asyncio.to_thread(
            self.generator.generate_response, list(messages), context
        )

        if session is not None:
            await self._append_to_session(session, last, result.text)

        return ChatReply(
            message=result.text,
            relevant_memories=self.retriever.referenced(scored),
            success=result.usable,
            note=result.note,
        )

    async def create_chat_session(self) -> ChatSession:
        return await asyncio.to_thread(self.storage.create_chat_session, self.user_id)

    async def get_chat_session(self, session_id: str) -> Optional[ChatSession]:
        session = await asyncio.to_thread(self.storage.get_chat_session_by_id, session_id)
        if session is None or session.user_id != self.user_id:
            return None
        return session

    async def _append_to_session(self, session: ChatSession, question: ChatMessage, answer: str):
        now = utcnow().isoformat()
        turns = [
            question.model_copy(update={"timestamp": question.timestamp or now}),
            ChatMessage(role="assistant", content=answer, timestamp=now),
        ]
        await asyncio.to_thread(self.storage.append_chat_messages, session.id, turns)


def build_engine(storage: Optional[MemoryStorage] = None) -> MemoryEngine:
    """Create an engine from environment configuration.

    Raises:
        ConfigurationError: Storage configuration is unusable (fail fast at startup).
    """
    storage = storage if storage is not None else build_storage()
    client = None if DEMO_MODE else build_client()

    if client is None:
        logger.info("AI responses disabled; answering from local templates")

    return MemoryEngine(storage=storage, generator=ResponseGenerator(client))
