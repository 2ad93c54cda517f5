"""Language model access for content generation.

Wraps the ``anthropic`` SDK behind a small message/response interface so
the flows never touch SDK types. The SDK is imported lazily so the API
can start without it; the import fails only when a model is built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from ..config import Settings
from ..errors import AIGenerationError


@dataclass
class ModelMessage:
    """A message in a conversation."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class ModelResponse:
    """Complete response from a model."""

    content: str
    usage: dict[str, int] = field(default_factory=dict)
    stop_reason: Optional[str] = None
    model_id: Optional[str] = None


class ContentModel(Protocol):
    """Anything that can turn messages into a completion."""

    def generate(
        self,
        messages: list[ModelMessage],
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ModelResponse: ...


class AIModelError(AIGenerationError):
    """Raised when the provider SDK reports an error."""

    def __init__(self, error_class: str, message: str) -> None:
        super().__init__(message)
        self.error_class = error_class


class AnthropicModel:
    """ContentModel backed by the Anthropic messages API.

    Usage::

        model = AnthropicModel(api_key="...")
        response = model.generate([ModelMessage(role="user", content="Hello")])
    """

    def __init__(
        self,
        model_id: str = "claude-sonnet-4-5-20250929",
        *,
        api_key: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> None:
        try:
            import anthropic  # noqa: F811
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for AI content generation. "
                "Install it with: pip install anthropic"
            ) from None

        if not api_key:
            raise AIModelError("auth", "ANTHROPIC_API_KEY is not configured")

        self._model_id = model_id
        self._max_tokens = max_tokens
        self._client = anthropic.Anthropic(api_key=api_key)

    @property
    def model_id(self) -> str:
        return self._model_id

    def generate(
        self,
        messages: list[ModelMessage],
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ModelResponse:
        """Generate a complete response via the Anthropic messages API."""
        api_messages, extracted_system = self._prepare_messages(messages, system)
        kwargs: dict[str, Any] = {
            "model": self._model_id,
            "messages": api_messages,
            "max_tokens": max_tokens or self._max_tokens,
        }
        if extracted_system:
            kwargs["system"] = extracted_system
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            response = self._client.messages.create(**kwargs)
        except Exception as exc:
            raise self._classify_error(exc, "Anthropic API error") from exc

        return self._parse_response(response)

    @staticmethod
    def _prepare_messages(
        messages: list[ModelMessage], system: Optional[str]
    ) -> tuple[list[dict[str, Any]], Optional[str]]:
        """Split out system messages; Anthropic takes them as a top-level param."""
        extracted_system = system
        api_messages: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == "system":
                extracted_system = (
                    f"{extracted_system}\n\n{msg.content}" if extracted_system else msg.content
                )
                continue
            api_messages.append({"role": msg.role, "content": msg.content})
        return api_messages, extracted_system

    @staticmethod
    def _classify_error(exc: Exception, prefix: str) -> AIModelError:
        import anthropic as _anthropic

        _checks: list[tuple[str, str, str]] = [
            ("RateLimitError", "rate_limit", "rate limited"),
            ("AuthenticationError", "auth", "auth failed"),
            ("APITimeoutError", "timeout", "timeout"),
        ]
        for attr, cls, label in _checks:
            exc_type = getattr(_anthropic, attr, None)
            if exc_type is not None and isinstance(exc, exc_type):
                return AIModelError(cls, f"{prefix}: {label}: {exc}")

        api_status = getattr(_anthropic, "APIStatusError", None)
        if api_status is not None and isinstance(exc, api_status):
            code = getattr(exc, "status_code", "?")
            return AIModelError("server", f"{prefix}: API error ({code}): {exc}")

        return AIModelError("unknown", f"{prefix}: {exc}")

    @staticmethod
    def _parse_response(response: Any) -> ModelResponse:
        text = "".join(block.text for block in response.content if block.type == "text")
        usage = {}
        if response.usage:
            usage = {
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            }
        return ModelResponse(
            content=text,
            usage=usage,
            stop_reason=response.stop_reason,
            model_id=response.model,
        )


def get_content_model(settings: Settings) -> ContentModel:
    """Build the configured content model."""
    return AnthropicModel(
        settings.ai_model_id,
        api_key=settings.anthropic_api_key,
        max_tokens=settings.ai_max_tokens,
    )
