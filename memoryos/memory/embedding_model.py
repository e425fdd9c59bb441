"""Embedding model bootstrap for the memory subsystem.

Architectural role:
    Provides a single shared `HashingEmbedder` used by the memory CRUD path (to
    embed `title + content`) and by the chat/search path (to embed queries). The
    embedder is deterministic, dependency-light, and performs no external calls.

Vector construction (dimension 384):
    1. Character pass: every character of every token contributes
       `sin((char + variant) * 0.01) * 0.1` at a position/character/variant
       dependent index, for three variants.
    2. Concept pass: tokens listed in `SEMANTIC_FEATURES` add `0.15` at fixed
       indices, so related words ("trip", "travel") land near each other.
    3. Bigram pass: for multi-token text, 2-character windows over the joined
       tokens add `0.1` at a rolling-hash index.
    4. L2 normalization (zero vectors stay zero).

Caching:
    Vectors are memoized per lowercased/trimmed text in a bounded FIFO cache that
    is shared across requests and guarded by a lock.
"""

import math
import os
import re
import threading
from collections import OrderedDict
from typing import List, Mapping, Optional, Sequence

import numpy as np


EMBEDDING_DIMENSION = 384
EMBEDDING_CACHE_SIZE = int(os.getenv("EMBEDDING_CACHE_SIZE", "1000"))

CHAR_VARIANTS = 3
VARIANT_STRIDE = 127
CHAR_WEIGHT = 0.1
CONCEPT_WEIGHT = 0.15
BIGRAM_WEIGHT = 0.1

# Words sharing a feature id collide on purpose.
SEMANTIC_FEATURES: Mapping[str, Sequence[int]] = {
    "japan": (100, 200, 300),
    "japanese": (100, 200, 300),
    "tokyo": (100, 200, 300, 150),
    "trip": (400, 500),
    "tour": (400, 500),
    "travel": (400, 500),
    "journey": (400, 500),
    "visit": (400, 500),
    "dream": (600, 700),
    "plan": (600, 700),
    "birthday": (800, 900),
    "friend": (1000, 1100),
    "friendship": (1000, 1100),
    "habit": (1200, 1300),
    "habits": (1200, 1300),
    "routine": (1200, 1300),
    "morning": (1400, 1500),
    "productivity": (1200, 1600),
    "learning": (1700, 1800),
    "education": (1700, 1800),
    "ai": (1900, 2000),
    "artificial": (1900, 2000),
    "intelligence": (1900, 2000),
}

_NON_WORD = re.compile(r"[^\w\s]")


def tokenize(text: str) -> List[str]:
    """Lowercase, drop punctuation, and keep tokens longer than one character."""
    cleaned = _NON_WORD.sub(" ", text.lower())
    return [token for token in cleaned.split() if len(token) > 1]


def bigram_hash(bigram: str) -> int:
    """32-bit wrapping polynomial hash, returned as a signed integer."""
    value = 0
    for char in bigram:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


class EmbeddingCache:
    """Fixed-capacity map that evicts in insertion order.

    Re-inserting an existing key keeps its original position; reads never
    reorder entries.
    """

    def __init__(self, capacity: int = EMBEDDING_CACHE_SIZE):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: "OrderedDict[str, tuple]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[List[float]]:
        with self._lock:
            vector = self._entries.get(key)
        return list(vector) if vector is not None else None

    def put(self, key: str, vector: Sequence[float]) -> None:
        with self._lock:
            if key in self._entries:
                return
            self._entries[key] = tuple(vector)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries


class HashingEmbedder:
    """Deterministic text-to-vector encoder.

    Args:
        dimension: Output vector length.
        semantic_features: Word -> feature ids used by the concept pass.
        cache: Optional shared cache; a private one is created when omitted.
    """

    def __init__(
        self,
        dimension: int = EMBEDDING_DIMENSION,
        semantic_features: Optional[Mapping[str, Sequence[int]]] = None,
        cache: Optional[EmbeddingCache] = None,
    ):
        self.dimension = dimension
        self.semantic_features = (
            SEMANTIC_FEATURES if semantic_features is None else semantic_features
        )
        self.cache = cache if cache is not None else EmbeddingCache()

    def get_sentence_embedding_dimension(self) -> int:
        return self.dimension

    def encode(self, text: str) -> List[float]:
        """Embed one text into a unit-length vector.

        Args:
            text: Arbitrary text. Empty or punctuation-only text yields the zero
                vector.

        Returns:
            List of `dimension` floats.

        Raises:
            TypeError: When `text` is not a string.
        """
        if not isinstance(text, str):
            raise TypeError(f"embedding input must be str, got {type(text).__name__}")

        key = text.lower().strip()
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        vector = self._compute(key)
        self.cache.put(key, vector)
        return list(vector)

    def _compute(self, text: str) -> List[float]:
        size = self.dimension
        vector = np.zeros(size, dtype=np.float64)
        tokens = tokenize(text)

        for position, token in enumerate(tokens):
            for variant in range(CHAR_VARIANTS):
                for offset, char in enumerate(token):
                    code = ord(char)
                    index = (code + position + offset + variant * VARIANT_STRIDE) % size
                    vector[index] += math.sin((code + variant) * 0.01) * CHAR_WEIGHT

            for feature in self.semantic_features.get(token, ()):
                vector[abs(feature) % size] += CONCEPT_WEIGHT

        if len(tokens) > 1:
            phrase = "".join(tokens)
            for start in range(len(phrase) - 1):
                index = abs(bigram_hash(phrase[start:start + 2])) % size
                vector[index] += BIGRAM_WEIGHT

        magnitude = float(np.linalg.norm(vector))
        if magnitude > 0:
            vector /= magnitude

        return vector.tolist()


_model: Optional[HashingEmbedder] = None
_model_lock = threading.Lock()


def get_model() -> HashingEmbedder:
    """Return the process-wide embedder, creating it on first use."""
    global _model

    if _model is not None:
        return _model

    with _model_lock:
        if _model is None:
            _model = HashingEmbedder()

    return _model


def embed(text: str) -> List[float]:
    """Embed `text` with the shared embedder."""
    return get_model().encode(text)
