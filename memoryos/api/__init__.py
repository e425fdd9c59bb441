"""MemoryOS API adapter package.

Architectural role:
- Defines the external interaction boundary for HTTP and terminal interfaces.
- Performs transport-level validation and response shaping.
- Delegates memory, search, and chat work to the core layer.
"""
