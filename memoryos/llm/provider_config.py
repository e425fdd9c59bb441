"""Provider/runtime configuration for the LLM layer.

Architectural role:
    Centralizes model/provider selection and credential lookup for
    `memoryos.llm.client` and `memoryos.llm.service`.

Determinism:
    Deterministic for a fixed process environment and key files. Values are
    resolved at import time (plus runtime key-file reads in `load_key`).

Failure behavior:
    Missing key material is represented as `None`. The service layer treats a
    missing key like demo mode and answers locally.
"""

import os
from dotenv import load_dotenv

load_dotenv()


def env_flag(name, default="false"):
    return os.getenv(name, default).strip().lower() in ("true", "1", "yes")


# No external completion calls are made when set.
DEMO_MODE = env_flag("DEMO_MODE")

# Primary model routing controls.
PROVIDER = os.getenv("PROVIDER", "openrouter")
MODEL_NAME = os.getenv("MODEL_NAME", "openai/gpt-4o")

# Generation defaults for chat answers.
MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "300"))
TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
TIMEOUT = float(os.getenv("LLM_TIMEOUT", "60"))

# Generation defaults for tag suggestions.
TAG_MAX_TOKENS = 100
TAG_TEMPERATURE = 0.3

# OpenAI-compatible chat-completion endpoints.
PROVIDERS = {

    "local": {
        "url": "http://127.0.0.1:8080/v1/chat/completions",
        "key_file": None
    },

    "openrouter": {
        "url": "https://openrouter.ai/api/v1/chat/completions",
        "key_file": "config/openrouter.key",
        "headers": {
            "HTTP-Referer": os.getenv("APP_URL", "http://localhost:8000"),
            "X-Title": "MemoryOS",
        }
    },

    "openai": {
        "url": "https://api.openai.com/v1/chat/completions",
        "key_file": "config/openai.key"
    },

    "groq": {
        "url": "https://api.groq.com/openai/v1/chat/completions",
        "key_file": "config/groq.key"
    },

    "together": {
        "url": "https://api.together.xyz/v1/chat/completions",
        "key_file": "config/together.key"
    },

}


def key_env_name(path):
    """`config/openrouter.key` -> `OPENROUTER_API_KEY`."""
    stem = os.path.splitext(os.path.basename(path))[0]
    return f"{stem.upper()}_API_KEY"


def load_key(path):
    """Resolve the API key for a provider.

    The environment variable named by `key_env_name(path)` wins; otherwise the
    stripped contents of the key file are used.

    Returns:
        Key string, or `None` when neither source provides one.
    """
    if not path:
        return None

    env_value = os.getenv(key_env_name(path), "").strip()
    if env_value:
        return env_value

    if not os.path.isfile(path):
        return None

    with open(path, "r", encoding="utf-8") as f:
        return f.read().strip() or None
