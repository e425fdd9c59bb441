"""Tests for the orchestration layer."""

import asyncio
import time

import pytest

from conftest import FakeCompletionClient
from memoryos.core.engine import InvalidRequestError, MemoryEngine
from memoryos.llm.service import NOTE_NOT_CONFIGURED, NOTE_UNAVAILABLE, ResponseGenerator
from memoryos.memory.models import ChatMessage, MemoryCreate, MemoryUpdate


def run(coro):
    return asyncio.run(coro)


def create(engine, title, content, type="note", **kwargs):
    return run(engine.create_memory(MemoryCreate(title=title, content=content, type=type, **kwargs)))


def ask(*texts):
    return [ChatMessage(role="user", content=text) for text in texts]


class SlowCompletionClient(FakeCompletionClient):
    """Holds each request long enough for concurrent chats to overlap."""

    def __init__(self, delay=0.1):
        super().__init__(reply="answer")
        self.delay = delay

    def complete(self, request):
        time.sleep(self.delay)
        return super().complete(request)


class TestMemoryLifecycle:

    def test_create_embeds_title_and_content(self, engine, embedder):
        memory = create(engine, "Japan trip", "Visit Kyoto", type="idea", tags=["travel"])

        assert memory.embedding == embedder.encode("Japan trip Visit Kyoto")
        assert memory.user_id == "shared-user"
        assert memory.tags == ["travel"]
        assert memory.summary == "Visit Kyoto"

    def test_create_suggests_tags(self, engine):
        memory = create(engine, "Garden", "tomatoes tomatoes basil")
        assert memory.tags == ["tomatoes", "basil"]

    def test_long_content_summary(self, engine):
        memory = create(engine, "Long", "w" * 120)
        assert memory.summary == "w" * 97 + "..."

    def test_title_change_reembeds(self, engine, embedder):
        memory = create(engine, "Old", "Body text", tags=["x"])

        updated = run(engine.update_memory(memory.id, MemoryUpdate(title="New title")))

        assert updated.title == "New title"
        assert updated.embedding == embedder.encode("New title Body text")
        assert updated.summary == memory.summary

    def test_content_change_refreshes_summary(self, engine):
        memory = create(engine, "Title", "first", tags=["x"])

        updated = run(engine.update_memory(memory.id, MemoryUpdate(content="second version")))

        assert updated.summary == "second version"

    def test_metadata_change_keeps_embedding(self, engine):
        memory = create(engine, "Title", "Body", tags=["x"])

        updated = run(engine.update_memory(memory.id, MemoryUpdate(priority="high")))

        assert updated.priority == "high"
        assert updated.embedding == memory.embedding

    def test_explicit_null_clears_source(self, engine, embedder):
        memory = create(engine, "Title", "Body", tags=["x"], source="web")

        updated = run(engine.update_memory(memory.id, MemoryUpdate.model_validate({"source": None})))

        assert updated.source is None
        assert updated.embedding == memory.embedding

    def test_null_title_is_ignored(self, engine):
        memory = create(engine, "Title", "Body", tags=["x"])

        updated = run(engine.update_memory(memory.id, MemoryUpdate.model_validate({"title": None})))

        assert updated.title == "Title"
        assert updated.embedding == memory.embedding

    def test_update_missing(self, engine):
        assert run(engine.update_memory("missing", MemoryUpdate(title="x"))) is None

    def test_delete(self, engine):
        memory = create(engine, "Title", "Body", tags=["x"])

        assert run(engine.delete_memory(memory.id)) is True
        assert run(engine.get_memory(memory.id)) is None
        assert run(engine.delete_memory(memory.id)) is False

    def test_other_users_memories_hidden(self, engine, storage, make_memory):
        foreign = storage.create_memory(make_memory("Private", "x", user_id="someone-else"))

        assert run(engine.get_memory(foreign.id)) is None
        assert run(engine.list_memories()) == []

    def test_stats(self, engine):
        create(engine, "A", "a", type="idea", tags=["x"])
        create(engine, "B", "b", type="idea", tags=["x"])
        create(engine, "C", "c", type="task", tags=["x"])

        assert run(engine.stats()) == {"total": 3, "ideas": 2, "notes": 0, "learnings": 0, "tasks": 1}

    def test_ensure_user_is_idempotent(self, engine):
        first = run(engine.ensure_user())
        second = run(engine.ensure_user())

        assert first.id == second.id == "shared-user"
        assert second.created_at == first.created_at


class TestSearch:

    def test_empty_query_rejected(self, engine):
        with pytest.raises(InvalidRequestError):
            run(engine.search("   "))

    def test_type_filter_and_history(self, engine):
        create(engine, "Japan trip", "Tokyo and Kyoto", type="idea", tags=["travel"])
        create(engine, "Japan notes", "Kyoto temples", type="note", tags=["travel"])

        results = run(engine.search("japan", memory_type="idea"))

        assert [memory.title for memory in results] == ["Japan trip"]
        recent = run(engine.recent_searches())
        assert recent[0].query == "japan"
        assert [memory.title for memory in recent[0].results] == ["Japan trip"]

    def test_all_type_keeps_everything(self, engine):
        create(engine, "Japan trip", "Tokyo", type="idea", tags=["travel"])
        create(engine, "Japan notes", "Kyoto", type="note", tags=["travel"])

        assert len(run(engine.search("japan", memory_type="all"))) == 2


class TestChat:

    def test_grounded_reply_with_references(self, engine):
        create(
            engine,
            "LinkedIn Post Insights",
            "Posts with vulnerable stories get far more comments and engagement",
            type="learning",
            tags=["social media"],
        )

        reply = run(engine.chat(ask("What drives engagement on social posts?")))

        assert reply.success is True
        assert reply.note == NOTE_NOT_CONFIGURED
        assert "Memory: LinkedIn Post Insights" in reply.message
        assert [memory.title for memory in reply.relevant_memories] == ["LinkedIn Post Insights"]

    def test_no_memories(self, engine):
        reply = run(engine.chat(ask("anything?")))

        assert reply.relevant_memories == []
        assert "Try adding some memories" in reply.message

    def test_empty_conversation_rejected(self, engine):
        with pytest.raises(InvalidRequestError):
            run(engine.chat([]))

    def test_last_turn_must_be_user(self, engine):
        messages = [ChatMessage(role="user", content="hi"), ChatMessage(role="assistant", content="hello")]
        with pytest.raises(InvalidRequestError):
            run(engine.chat(messages))

    def test_unknown_session_rejected(self, engine):
        with pytest.raises(InvalidRequestError):
            run(engine.chat(ask("hi"), session_id="missing"))

    def test_provider_failure_degrades(self, storage, embedder, ranking, failing_client):
        engine = MemoryEngine(storage, ResponseGenerator(failing_client), embedder, ranking)

        reply = run(engine.chat(ask("plan my week")))

        assert reply.success is False
        assert reply.note == NOTE_UNAVAILABLE
        assert "plan my week" in reply.message

    def test_context_forwarded_to_client(self, storage, embedder, ranking):
        client = FakeCompletionClient(reply="You planned a Kyoto visit.")
        engine = MemoryEngine(storage, ResponseGenerator(client), embedder, ranking)
        create(engine, "Japan trip", "Visit Kyoto temples", type="idea", tags=["travel"])

        reply = run(engine.chat(ask("Tell me about my japan trip")))

        assert reply.message == "You planned a Kyoto visit."
        assert "Memory: Japan trip" in client.requests[-1].system_instruction

    def test_session_records_turns(self, engine):
        session = run(engine.create_chat_session())

        reply = run(engine.chat(ask("hello"), session_id=session.id))

        stored = run(engine.get_chat_session(session.id))
        assert [message.role for message in stored.messages] == ["user", "assistant"]
        assert stored.messages[0].content == "hello"
        assert stored.messages[1].content == reply.message
        assert stored.messages[0].timestamp is not None

    def test_concurrent_chats_keep_every_turn(self, storage, embedder, ranking):
        engine = MemoryEngine(storage, ResponseGenerator(SlowCompletionClient()), embedder, ranking)
        session = run(engine.create_chat_session())

        async def both():
            await asyncio.gather(
                engine.chat(ask("first"), session_id=session.id),
                engine.chat(ask("second"), session_id=session.id),
            )

        run(both())

        stored = run(engine.get_chat_session(session.id))
        contents = [message.content for message in stored.messages]
        assert len(contents) == 4
        assert sorted(contents[0::2]) == ["first", "second"]
        assert contents[1::2] == ["answer", "answer"]

    def test_reply_serialization(self, engine):
        payload = run(engine.chat(ask("hi"))).to_api()

        assert set(payload) == {"message", "relevantMemories", "success", "note"}
        assert payload["relevantMemories"] == []
