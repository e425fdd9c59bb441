"""Scoring primitives used by the relevance ranker.

Two independent signals are computed per memory:
    - `cosine_similarity`: vector similarity between query and memory embeddings.
    - `keyword_score`: literal substring hits plus curated synonym hits.

Both return plain floats and never raise on degenerate input; incomparable or
empty inputs score `0.0`.
"""

from typing import List, Mapping, Sequence

import numpy as np

from memoryos.memory.models import Memory


MIN_KEYWORD_LENGTH = 3
EXACT_MATCH_WEIGHT = 1.0
SYNONYM_MATCH_WEIGHT = 0.7

SYNONYMS: Mapping[str, Sequence[str]] = {
    "japan": ("japanese", "tokyo", "kyoto", "osaka"),
    "trip": ("tour", "travel", "journey", "visit", "vacation"),
    "tour": ("trip", "travel", "journey", "visit"),
    "travel": ("trip", "tour", "journey", "visit"),
    "birthday": ("celebration", "party", "anniversary"),
    "friend": ("friendship", "buddy", "pal"),
    "habit": ("habits", "routine", "practice"),
    "routine": ("habit", "schedule", "daily"),
    "morning": ("early", "dawn", "sunrise"),
    "ai": ("artificial intelligence", "machine learning", "neural"),
    "learning": ("education", "study", "knowledge"),
    "uber": ("driver", "ride", "transportation", "car"),
    "driver": ("uber", "lyft", "transportation", "car"),
    "insights": ("learnings", "observations", "findings", "discoveries"),
    "learnings": ("insights", "observations", "findings", "discoveries"),
}


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine of the angle between two vectors.

    Vectors of different length, or with zero magnitude, have no comparable
    signal and score `0.0`.
    """
    if a is None or b is None or len(a) != len(b) or len(a) == 0:
        return 0.0

    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)

    magnitude_a = float(np.linalg.norm(vec_a))
    magnitude_b = float(np.linalg.norm(vec_b))
    if magnitude_a == 0.0 or magnitude_b == 0.0:
        return 0.0

    score = float(np.dot(vec_a, vec_b)) / (magnitude_a * magnitude_b)
    return max(-1.0, min(1.0, score))


def searchable_text(memory: Memory) -> str:
    """Lowercased title, content, and tags joined by spaces."""
    tags = " ".join(memory.tags or [])
    return f"{memory.title} {memory.content} {tags}".lower()


def query_terms(query: str) -> List[str]:
    """Lowercased whitespace-split terms of at least `MIN_KEYWORD_LENGTH` chars."""
    return [word for word in query.lower().split() if len(word) >= MIN_KEYWORD_LENGTH]


def keyword_score(query: str, memory: Memory, synonyms: Mapping[str, Sequence[str]] = SYNONYMS) -> float:
    """Score literal and synonym overlap between a query and a memory.

    Args:
        query: Raw query text.
        memory: Candidate memory.
        synonyms: Word -> related terms table.

    Returns:
        Sum of per-term hits divided by the number of query terms. Each term adds
        `1.0` when found in the memory text and `0.7` per synonym found. Can exceed
        `1.0`; `0.0` when the query has no usable terms.
    """
    if not query:
        return 0.0

    terms = query_terms(query)
    if not terms:
        return 0.0

    text = searchable_text(memory)
    score = 0.0

    for term in terms:
        if term in text:
            score += EXACT_MATCH_WEIGHT

        for related in synonyms.get(term, ()):
            if related in text:
                score += SYNONYM_MATCH_WEIGHT

    return score / len(terms)
