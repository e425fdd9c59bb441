"""Memory subsystem package.

Architectural role:
    Groups the stateful memory components used by the application:
    - `models`: record schemas for memories, searches, and chat sessions.
    - `embedding_model`: shared embedder bootstrap/singleton and its FIFO cache.
    - `storage`: storage capability interface and its in-memory/JSON backends.

Retrieval and API layers depend only on the `storage.MemoryStorage` interface,
never on which backend is active.
"""
