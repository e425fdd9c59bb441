"""Transport client for OpenAI-compatible chat-completion providers.

Architectural role:
    Executes one HTTP request against the configured provider and returns the
    generated text. Failures surface as typed exceptions so the service layer can
    tell an exhausted account apart from any other outage.

Model invocation flow:
    `service.ResponseGenerator` -> `CompletionClient.complete(request)` ->
    `requests.post(...)` -> `choices[0].message.content`.

Retry behavior:
    No retry loop is implemented. Each HTTP call is attempted once with the
    configured timeout.

Failure handling model:
    - HTTP 402, or an error body carrying code 402 -> `QuotaExceededError`.
    - Any other transport/HTTP/parse failure -> `CompletionError`.
    Raw provider payloads are never included in exception messages.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests

from memoryos.llm.provider_config import (
    MODEL_NAME,
    PROVIDER,
    PROVIDERS,
    TIMEOUT,
    load_key,
)


logger = logging.getLogger(__name__)

QUOTA_EXCEEDED_STATUS = 402


class CompletionError(Exception):
    """The completion service could not produce an answer."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class QuotaExceededError(CompletionError):
    """The provider account has run out of credit or quota."""


@dataclass
class CompletionRequest:
    """Provider-agnostic completion request.

    Attributes:
        system_instruction: System message placed first.
        recent_turns: Trailing conversation turns as `{"role", "content"}` dicts.
        max_output_tokens: Upper bound on generated tokens.
        temperature: Sampling temperature.
        json_output: Ask the provider for a JSON object response.
    """

    system_instruction: str
    recent_turns: List[Dict[str, str]] = field(default_factory=list)
    max_output_tokens: int = 300
    temperature: float = 0.7
    json_output: bool = False

    def to_payload(self, model: str) -> dict:
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": self.system_instruction},
                *self.recent_turns,
            ],
            "max_tokens": self.max_output_tokens,
            "temperature": self.temperature,
        }
        if self.json_output:
            payload["response_format"] = {"type": "json_object"}
        return payload


def _error_code(response) -> Optional[int]:
    """Extract `error.code` from a provider error body, if any."""
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict):
        code = error.get("code")
        if isinstance(code, int):
            return code
        if isinstance(code, str) and code.isdigit():
            return int(code)
    return None


class CompletionClient:
    """HTTP client for one OpenAI-compatible endpoint.

    Args:
        url: Chat-completions endpoint.
        model: Model identifier sent in every payload.
        api_key: Bearer token, or `None` for unauthenticated local servers.
        headers: Extra provider-specific headers.
        timeout: Request timeout in seconds.
        session: Optional `requests.Session` (tests inject fakes here).
    """

    def __init__(
        self,
        url: str,
        model: str = MODEL_NAME,
        api_key: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = TIMEOUT,
        session=None,
    ):
        self.url = url
        self.model = model
        self.api_key = api_key
        self.extra_headers = dict(headers or {})
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", **self.extra_headers}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def complete(self, request: CompletionRequest) -> str:
        """Send one completion request and return the generated text.

        Raises:
            QuotaExceededError: Provider signalled exhausted credit (402).
            CompletionError: Any other failure.
        """
        payload = request.to_payload(self.model)

        try:
            response = self.session.post(
                self.url,
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as err:
            raise CompletionError(f"{type(err).__name__} contacting provider") from err

        status = response.status_code
        if status == QUOTA_EXCEEDED_STATUS or _error_code(response) == QUOTA_EXCEEDED_STATUS:
            raise QuotaExceededError("provider quota exceeded", status_code=QUOTA_EXCEEDED_STATUS)

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as err:
            raise CompletionError(f"provider HTTP error ({status})", status_code=status) from err

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as err:
            raise CompletionError("malformed provider response", status_code=status) from err

        return (content or "").strip()


def build_client(provider: str = PROVIDER) -> Optional[CompletionClient]:
    """Create the client for `provider`, or `None` when it cannot be used.

    A provider with a key file but no resolvable key is treated as not
    configured, which puts the response generator in its local mode.
    """
    config = PROVIDERS.get(provider)
    if config is None:
        logger.error("Unknown LLM provider %r; AI responses disabled", provider)
        return None

    api_key = None
    if config.get("key_file"):
        api_key = load_key(config["key_file"])
        if not api_key:
            logger.warning("No API key for provider %s; AI responses disabled", provider)
            return None

    return CompletionClient(
        url=config["url"],
        api_key=api_key,
        headers=config.get("headers"),
    )
