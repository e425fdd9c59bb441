"""Retrieval package.

Architectural role:
    Ranks a user's memories against a query and turns the winners into prompt
    context for the chat pipeline.

Scope:
    - `similarity`: cosine and keyword/synonym scoring primitives.
    - `retriever`: relevance ranker over the storage interface.
    - `context_builder`: bounded plain-text context assembly.
"""
