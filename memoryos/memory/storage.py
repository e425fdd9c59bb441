"""Storage capability for memories, chat sessions, and search history.

Architectural role:
    Defines the `MemoryStorage` protocol consumed by `memoryos.core.engine` and
    by the relevance ranker, plus two interchangeable backends:
    - `InMemoryStorage`: process-local dictionaries (demo mode, tests).
    - `JsonFileStorage`: the same dictionaries mirrored to one JSON document with
      atomic replace-on-write.

Consistency model:
    Each backend guards its state with a re-entrant lock. Reads return copies, so a
    ranking pass never observes a half-applied update; a rank call may or may not
    see a concurrently committed edit.

Embeddings:
    Storage persists whatever embedding the caller provides together with the
    record in the same write. Keeping embeddings in sync with title/content is the
    caller's job (`memoryos.core.engine`).
"""

import json
import logging
import os
import threading
from typing import Any, Dict, List, Mapping, Optional, Protocol

from memoryos.memory.models import (
    NULLABLE_MEMORY_FIELDS,
    ChatMessage,
    ChatSession,
    Memory,
    Search,
    User,
    utcnow,
)


logger = logging.getLogger(__name__)


STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory")
DATA_FILE = os.getenv("MEMORYOS_DATA_FILE")


class ConfigurationError(RuntimeError):
    """Raised at startup when no usable persistence target is configured."""


class MemoryStorage(Protocol):
    """Capability interface shared by all storage backends."""

    def get_user(self, user_id: str) -> Optional[User]: ...

    def upsert_user(self, user: User) -> User: ...

    def create_memory(self, memory: Memory) -> Memory: ...

    def get_memories_by_user_id(self, user_id: str) -> List[Memory]: ...

    def get_memory_by_id(self, memory_id: str) -> Optional[Memory]: ...

    def update_memory(self, memory_id: str, updates: Mapping[str, Any]) -> Optional[Memory]: ...

    def delete_memory(self, memory_id: str, user_id: Optional[str] = None) -> bool: ...

    def create_chat_session(self, user_id: str) -> ChatSession: ...

    def get_chat_session_by_id(self, session_id: str) -> Optional[ChatSession]: ...

    def update_chat_session(
        self, session_id: str, messages: List[ChatMessage]
    ) -> Optional[ChatSession]: ...

    def append_chat_messages(
        self, session_id: str, messages: List[ChatMessage]
    ) -> Optional[ChatSession]: ...

    def create_search(self, user_id: str, query: str, results: List[Memory]) -> Search: ...

    def get_recent_searches(self, user_id: str, limit: int = 10) -> List[Search]: ...


_MISSING = object()


class InMemoryStorage:
    """Dictionary-backed storage. State is lost when the process exits.

    Every mutation goes through `_store`/`_discard`, which undo the in-memory
    change when `_commit` raises, so reads never serve unpersisted records.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.users: Dict[str, User] = {}
        self.memories: Dict[str, Memory] = {}
        self.chat_sessions: Dict[str, ChatSession] = {}
        self.searches: Dict[str, Search] = {}

    # Subclasses persist after every mutation.
    def _commit(self) -> None:
        pass

    def _store(self, table: Dict[str, Any], key: str, record) -> None:
        previous = table.get(key, _MISSING)
        table[key] = record
        try:
            self._commit()
        except Exception:
            self._restore(table, key, previous)
            raise

    def _discard(self, table: Dict[str, Any], key: str) -> None:
        previous = table.pop(key)
        try:
            self._commit()
        except Exception:
            self._restore(table, key, previous)
            raise

    @staticmethod
    def _restore(table, key, previous) -> None:
        if previous is _MISSING:
            table.pop(key, None)
        else:
            table[key] = previous

    # -----------------------------------------------------
    # Users
    # -----------------------------------------------------

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self.users.get(user_id)
            return user.model_copy(deep=True) if user else None

    def upsert_user(self, user: User) -> User:
        with self._lock:
            existing = self.users.get(user.id)
            stored = user.model_copy(update={"updated_at": utcnow()}, deep=True)
            if existing is not None:
                stored.created_at = existing.created_at
            self._store(self.users, user.id, stored)
            return stored.model_copy(deep=True)

    # -----------------------------------------------------
    # Memories
    # -----------------------------------------------------

    def create_memory(self, memory: Memory) -> Memory:
        with self._lock:
            stored = memory.model_copy(deep=True)
            self._store(self.memories, stored.id, stored)
            return stored.model_copy(deep=True)

    def get_memories_by_user_id(self, user_id: str) -> List[Memory]:
        with self._lock:
            owned = [
                memory.model_copy(deep=True)
                for memory in self.memories.values()
                if memory.user_id == user_id
            ]
        owned.sort(key=lambda memory: memory.created_at, reverse=True)
        return owned

    def get_memory_by_id(self, memory_id: str) -> Optional[Memory]:
        with self._lock:
            memory = self.memories.get(memory_id)
            return memory.model_copy(deep=True) if memory else None

    def update_memory(self, memory_id: str, updates: Mapping[str, Any]) -> Optional[Memory]:
        """Apply a partial update.

        `None` clears the optional fields in `NULLABLE_MEMORY_FIELDS`; for any
        other field it is ignored. `id` and `user_id` are never changed.
        """
        with self._lock:
            memory = self.memories.get(memory_id)
            if memory is None:
                return None

            changes = {
                key: value for key, value in updates.items()
                if value is not None or key in NULLABLE_MEMORY_FIELDS
            }
            changes.pop("id", None)
            changes.pop("user_id", None)
            changes["updated_at"] = utcnow()

            updated = Memory.model_validate({**memory.model_dump(), **changes})
            self._store(self.memories, memory_id, updated)
            return updated.model_copy(deep=True)

    def delete_memory(self, memory_id: str, user_id: Optional[str] = None) -> bool:
        with self._lock:
            memory = self.memories.get(memory_id)
            if memory is None:
                return False
            if user_id is not None and memory.user_id != user_id:
                return False
            self._discard(self.memories, memory_id)
            return True

    # -----------------------------------------------------
    # Chat sessions
    # -----------------------------------------------------

    def create_chat_session(self, user_id: str) -> ChatSession:
        with self._lock:
            session = ChatSession(user_id=user_id)
            self._store(self.chat_sessions, session.id, session)
            return session.model_copy(deep=True)

    def get_chat_session_by_id(self, session_id: str) -> Optional[ChatSession]:
        with self._lock:
            session = self.chat_sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    def update_chat_session(
        self, session_id: str, messages: List[ChatMessage]
    ) -> Optional[ChatSession]:
        """Replace the whole message list of a session."""
        with self._lock:
            session = self.chat_sessions.get(session_id)
            if session is None:
                return None
            updated = session.model_copy(update={"messages": list(messages)}, deep=True)
            self._store(self.chat_sessions, session_id, updated)
            return updated.model_copy(deep=True)

    def append_chat_messages(
        self, session_id: str, messages: List[ChatMessage]
    ) -> Optional[ChatSession]:
        """Append turns to a session; concurrent appends never overwrite each other."""
        with self._lock:
            session = self.chat_sessions.get(session_id)
            if session is None:
                return None
            history = [*session.messages, *messages]
            updated = session.model_copy(update={"messages": history}, deep=True)
            self._store(self.chat_sessions, session_id, updated)
            return updated.model_copy(deep=True)

    # -----------------------------------------------------
    # Search history
    # -----------------------------------------------------

    def create_search(self, user_id: str, query: str, results: List[Memory]) -> Search:
        """Record a search. Result snapshots are stored without embeddings."""
        with self._lock:
            snapshots = [memory.model_copy(update={"embedding": None}) for memory in results]
            search = Search(user_id=user_id, query=query, results=snapshots)
            self._store(self.searches, search.id, search)
            return search.model_copy(deep=True)

    def get_recent_searches(self, user_id: str, limit: int = 10) -> List[Search]:
        with self._lock:
            owned = [
                search.model_copy(deep=True)
                for search in self.searches.values()
                if search.user_id == user_id
            ]
        owned.sort(key=lambda search: search.created_at, reverse=True)
        return owned[:max(limit, 0)]


def atomic_json_save(path, data):
    """Persist JSON data atomically via temporary file replacement.

    Args:
        path: Destination JSON path.
        data: JSON-serializable payload.

    Side effects:
        Writes `<path>.tmp` and atomically replaces `path`.
    """
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    os.replace(tmp, path)


def load_json(path):
    """Load a JSON object from disk.

    Returns:
        Parsed dict, or an empty dict when the file is missing or unreadable.
    """
    if os.path.exists(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                return data
            logger.warning("Ignoring non-object JSON document at %s", path)
        except Exception:
            logger.exception("Failed to load storage JSON from %s", path)
    return {}


class JsonFileStorage(InMemoryStorage):
    """Persistent storage mirrored to a single JSON document.

    Args:
        path: JSON file location. Parent directories are created on demand.
    """

    def __init__(self, path: str):
        super().__init__()
        self.path = path

        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)

        data = load_json(path)
        self.users = _load_records(data.get("users"), User)
        self.memories = _load_records(data.get("memories"), Memory)
        self.chat_sessions = _load_records(data.get("chat_sessions"), ChatSession)
        self.searches = _load_records(data.get("searches"), Search)

        logger.info(
            "Loaded %d memories from %s", len(self.memories), self.path
        )

    def _commit(self) -> None:
        atomic_json_save(self.path, {
            "users": _dump_records(self.users),
            "memories": _dump_records(self.memories),
            "chat_sessions": _dump_records(self.chat_sessions),
            "searches": _dump_records(self.searches),
        })


def _load_records(raw, model):
    records = {}
    for item in raw or []:
        try:
            record = model.model_validate(item)
        except Exception:
            logger.exception("Skipping unreadable %s record", model.__name__)
            continue
        records[record.id] = record
    return records


def _dump_records(records):
    return [record.model_dump(mode="json") for record in records.values()]


def build_storage(backend=None, data_file=None, demo_mode=None) -> MemoryStorage:
    """Create the storage backend selected by configuration.

    Args:
        backend: `"memory"` or `"json"`; defaults to `STORAGE_BACKEND`.
        data_file: JSON path for the `"json"` backend; defaults to `DATA_FILE`.
        demo_mode: Whether the in-memory fallback is acceptable when no data file
            is configured; defaults to the `DEMO_MODE` environment flag.

    Raises:
        ConfigurationError: Unknown backend, or `"json"` without a data file while
            demo mode is off.
    """
    backend = (backend or STORAGE_BACKEND).lower()
    data_file = data_file if data_file is not None else DATA_FILE
    if demo_mode is None:
        demo_mode = os.getenv("DEMO_MODE", "false").lower() == "true"

    if backend == "memory":
        logger.info("Using in-memory storage")
        return InMemoryStorage()

    if backend == "json":
        if data_file:
            return JsonFileStorage(data_file)
        if demo_mode:
            logger.warning("MEMORYOS_DATA_FILE not set; DEMO_MODE falls back to in-memory storage")
            return InMemoryStorage()
        raise ConfigurationError(
            "MEMORYOS_DATA_FILE must be set for STORAGE_BACKEND=json, "
            "or set DEMO_MODE=true to run with in-memory storage."
        )

    raise ConfigurationError(f"Unknown STORAGE_BACKEND: {backend}")
