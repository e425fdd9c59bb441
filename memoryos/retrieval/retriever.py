"""Relevance ranking over a user's stored memories.

Architectural role:
    Turns `(user_id, query_embedding, raw_query)` into an ordered list of memories
    for `memoryos.core.engine` (chat and search) and
    `memoryos.retrieval.context_builder`.

Ranking model:
    For every memory owned by the user:
        semantic = cosine(query_embedding, memory.embedding)   (0 when missing)
        keyword  = keyword_score(raw_query, memory)            (0 when no query)
        combined = max(semantic, keyword * keyword_weight)
    Memories with `combined <= noise_floor` are dropped. The rest are sorted by
    `combined` descending with a stable sort, so ties keep storage order, then cut
    to `limit`.

    Keyword matching is a recall safety net scaled below semantic confidence; it
    never lowers a strong semantic hit.

Tunables:
    `keyword_weight`, `noise_floor`, `highly_relevant`, and `max_referenced` are
    empirically chosen. They live in `RankingConfig` and can be overridden through
    `RANK_*` environment variables.

Side effects:
    Read-only. One full scan of the user's memories per call.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence

from memoryos.memory.models import Memory, ScoredMemory
from memoryos.memory.storage import MemoryStorage
from memoryos.retrieval.similarity import SYNONYMS, cosine_similarity, keyword_score


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankingConfig:
    """Score combination and filtering parameters.

    Attributes:
        keyword_weight: Multiplier applied to the keyword score before merging.
        noise_floor: Combined scores at or below this value are discarded.
        highly_relevant: Threshold for memories shown as chat references.
        max_referenced: Maximum number of chat references.
    """

    keyword_weight: float = 0.7
    noise_floor: float = 0.01
    highly_relevant: float = 0.1
    max_referenced: int = 2

    @classmethod
    def from_env(cls) -> "RankingConfig":
        return cls(
            keyword_weight=float(os.getenv("RANK_KEYWORD_WEIGHT", cls.keyword_weight)),
            noise_floor=float(os.getenv("RANK_NOISE_FLOOR", cls.noise_floor)),
            highly_relevant=float(os.getenv("RANK_HIGHLY_RELEVANT", cls.highly_relevant)),
            max_referenced=int(os.getenv("RANK_MAX_REFERENCED", cls.max_referenced)),
        )


class MemoryRetriever:
    """Scores and orders a user's memories against a query.

    Args:
        storage: Any `MemoryStorage` backend.
        config: Ranking parameters; read from the environment when omitted.
        synonyms: Synonym table forwarded to `keyword_score`.
    """

    def __init__(
        self,
        storage: MemoryStorage,
        config: Optional[RankingConfig] = None,
        synonyms: Mapping[str, Sequence[str]] = SYNONYMS,
    ):
        self.storage = storage
        self.config = config or RankingConfig.from_env()
        self.synonyms = synonyms

    def score(
        self,
        memory: Memory,
        query_embedding: Sequence[float],
        query: Optional[str] = None,
    ) -> ScoredMemory:
        semantic = 0.0
        if memory.embedding:
            semantic = cosine_similarity(query_embedding, memory.embedding)

        keyword = 0.0
        if query:
            keyword = keyword_score(query, memory, self.synonyms)

        return ScoredMemory(
            memory=memory,
            semantic_similarity=semantic,
            keyword_similarity=keyword,
            combined_score=max(semantic, keyword * self.config.keyword_weight),
        )

    def rank_scored(
        self,
        user_id: str,
        query_embedding: Sequence[float],
        query: Optional[str] = None,
        limit: int = 10,
    ) -> List[ScoredMemory]:
        """Rank memories and keep their scores.

        Returns:
            At most `limit` scored memories, best first, all above the noise floor.
        """
        if limit <= 0:
            return []

        memories = self.storage.get_memories_by_user_id(user_id)

        scored = [self.score(memory, query_embedding, query) for memory in memories]
        kept = [item for item in scored if item.combined_score > self.config.noise_floor]
        kept.sort(key=lambda item: item.combined_score, reverse=True)

        logger.debug(
            "Ranked %d of %d memories for user %s", len(kept), len(memories), user_id
        )

        return kept[:limit]

    def rank(
        self,
        user_id: str,
        query_embedding: Sequence[float],
        query: Optional[str] = None,
        limit: int = 10,
    ) -> List[Memory]:
        """Rank memories and return the plain records without scores."""
        return [
            item.memory
            for item in self.rank_scored(user_id, query_embedding, query, limit)
        ]

    def referenced(self, scored: Sequence[ScoredMemory]) -> List[Memory]:
        """Pick the memories strong enough to cite next to a chat answer."""
        strong = [
            item.memory
            for item in scored
            if item.combined_score > self.config.highly_relevant
        ]
        return strong[:self.config.max_referenced]
