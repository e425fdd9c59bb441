"""Core orchestration package.

Architectural role:
    Exposes the request-orchestration layer that sits between API/terminal
    entrypoints and lower-level subsystems (storage, retrieval, prompting, LLM).

Composition:
    - `engine`: `MemoryEngine` with memory CRUD, search, stats, and chat flows.

Determinism and side effects:
    Package import itself is deterministic and side-effect free. Runtime side
    effects are performed by `engine` during request processing.
"""
