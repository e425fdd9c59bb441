"""Record schemas shared by storage, retrieval, and API layers.

Architectural role:
    Defines the persisted records (`Memory`, `Search`, `ChatSession`, `User`), the
    write-side payloads accepted from callers (`MemoryCreate`, `MemoryUpdate`), and
    the transient ranking record (`ScoredMemory`).

Serialization:
    Field names are snake_case in Python and camelCase on the wire
    (`user_id` <-> `userId`). Both spellings are accepted on input.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


MemoryType = Literal["idea", "note", "learning", "task"]
Priority = Literal["low", "medium", "high", "urgent"]
Status = Literal["active", "archived", "completed"]
Role = Literal["user", "assistant"]

MEMORY_TYPES = ("idea", "note", "learning", "task")

# Optional memory fields a partial update may clear with an explicit null.
NULLABLE_MEMORY_FIELDS = ("source", "summary")

SHARED_USER_ID = "shared-user"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Record(BaseModel):
    """Base schema with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_api(self, **kwargs) -> dict:
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class User(Record):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class MemoryCreate(Record):
    """Caller-supplied fields for a new memory."""

    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    type: MemoryType
    tags: Optional[List[str]] = None
    priority: Optional[Priority] = "medium"
    status: Optional[Status] = "active"
    source: Optional[str] = None
    summary: Optional[str] = None
    linked_memories: Optional[List[str]] = None


class MemoryUpdate(Record):
    """Partial update; unset fields are left untouched."""

    title: Optional[str] = Field(default=None, min_length=1)
    content: Optional[str] = Field(default=None, min_length=1)
    type: Optional[MemoryType] = None
    tags: Optional[List[str]] = None
    priority: Optional[Priority] = None
    status: Optional[Status] = None
    source: Optional[str] = None
    summary: Optional[str] = None
    linked_memories: Optional[List[str]] = None


class Memory(Record):
    id: str = Field(default_factory=new_id)
    user_id: str
    title: str
    content: str
    type: MemoryType
    tags: List[str] = Field(default_factory=list)
    embedding: Optional[List[float]] = None
    priority: Optional[Priority] = "medium"
    status: Optional[Status] = "active"
    source: Optional[str] = None
    summary: Optional[str] = None
    linked_memories: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def embedding_text(self) -> str:
        return f"{self.title} {self.content}"

    def to_api(self, **kwargs) -> dict:
        # Vectors are internal to ranking and never leave the service.
        return super().to_api(exclude={"embedding"}, **kwargs)


class ChatMessage(Record):
    role: Role
    content: str
    timestamp: Optional[str] = None


class ChatSession(Record):
    id: str = Field(default_factory=new_id)
    user_id: str
    messages: List[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class Search(Record):
    id: str = Field(default_factory=new_id)
    user_id: str
    query: str
    results: List[Memory] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    def to_api(self, **kwargs) -> dict:
        payload = super().to_api(exclude={"results"}, **kwargs)
        payload["results"] = [memory.to_api() for memory in self.results]
        return payload


@dataclass
class ScoredMemory:
    """A memory with the per-request scores computed by the ranker.

    Attributes:
        memory: The stored record.
        semantic_similarity: Cosine similarity against the query embedding.
        keyword_similarity: Length-normalized keyword/synonym score.
        combined_score: Value used for filtering and ordering.
    """

    memory: Memory
    semantic_similarity: float = 0.0
    keyword_similarity: float = 0.0
    combined_score: float = 0.0
