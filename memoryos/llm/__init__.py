"""LLM access package.

Architectural role:
    Provides provider configuration, transport, and the response generator used
    by the orchestration layer to answer chat messages from memory context.

Module split:
    - `provider_config`: environment-driven provider and model configuration.
    - `client`: OpenAI-compatible HTTP transport with typed failures.
    - `service`: response state machine, cleanup, local fallbacks, tag helpers.
"""
