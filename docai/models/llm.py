"""Data models for chat-completion requests and responses."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from ..errors import ValidationError

VALID_ROLES = ("system", "user", "assistant")

# camelCase spellings accepted when a request arrives as a plain mapping
_REQUEST_ALIASES = {
    "maxTokens": "max_tokens",
    "topP": "top_p",
    "frequencyPenalty": "frequency_penalty",
    "presencePenalty": "presence_penalty",
    "bypassConcurrency": "bypass_concurrency",
}


@dataclass(frozen=True)
class Message:
    """A single chat message."""

    role: str
    content: str

    def validate(self) -> None:
        """Raise ValidationError unless role and content are usable."""
        if not self.role or not self.content:
            raise ValidationError("Each message must have role and content properties")
        if self.role not in VALID_ROLES:
            raise ValidationError("Message role must be system, user, or assistant")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire representation."""
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        """Create from dictionary."""
        return cls(role=data.get("role"), content=data.get("content"))


@dataclass(frozen=True)
class LLMRequest:
    """Parameters of one chat-completion call.

    ``model`` may be left as None, in which case the client substitutes its
    configured default model.
    """

    messages: Tuple[Message, ...]
    model: Optional[str] = None
    max_tokens: int = 500
    temperature: float = 0.1
    top_p: float = 1.0
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    stop: Optional[Union[str, Sequence[str]]] = None
    stream: bool = False
    bypass_concurrency: bool = False

    def has_messages(self) -> bool:
        return len(self.messages) > 0

    def validate(self) -> None:
        """Check the full request shape.

        Raises:
            ValidationError: If messages are missing or any message is malformed
        """
        if not self.has_messages():
            raise ValidationError("Messages array is required and must not be empty")
        for message in self.messages:
            message.validate()

    def last_user_content(self) -> str:
        """Return the content of the last user message, or an empty string."""
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content or ""
        return ""

    def with_model(self, model: str) -> "LLMRequest":
        return replace(self, model=model)

    def to_payload(self, default_model: str) -> Dict[str, Any]:
        """Build the JSON body sent to ``/chat/completions``."""
        payload: Dict[str, Any] = {
            "model": self.model or default_model,
            "messages": [message.to_dict() for message in self.messages],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
            "stream": self.stream,
        }
        if self.stop:
            payload["stop"] = self.stop if isinstance(self.stop, str) else list(self.stop)
        return payload

    @classmethod
    def coerce(cls, request: Union["LLMRequest", Mapping[str, Any]]) -> "LLMRequest":
        """Normalize a request given either as an LLMRequest or a mapping.

        Mappings may use snake_case or camelCase parameter names. Only the
        structure is checked here; call :meth:`validate` for message content.

        Raises:
            ValidationError: If the request is neither form, or a message is
                not a mapping/Message
        """
        if isinstance(request, LLMRequest):
            return request
        if not isinstance(request, Mapping):
            raise ValidationError(
                f"Request must be an LLMRequest or a mapping, got {type(request).__name__}"
            )

        params: Dict[str, Any] = {}
        for key, value in request.items():
            name = _REQUEST_ALIASES.get(key, key)
            if name in _FIELD_NAMES and name != "messages":
                params[name] = value

        raw_messages = request.get("messages")
        messages: Tuple[Message, ...] = ()
        if isinstance(raw_messages, (list, tuple)):
            converted = []
            for raw in raw_messages:
                if isinstance(raw, Message):
                    converted.append(raw)
                elif isinstance(raw, Mapping):
                    converted.append(Message.from_dict(raw))
                else:
                    raise ValidationError("Each message must be a mapping with role and content")
            messages = tuple(converted)

        return cls(messages=messages, **params)


_FIELD_NAMES = frozenset(LLMRequest.__dataclass_fields__)


@dataclass
class Usage:
    """Token accounting reported by the provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> Dict[str, int]:
        """Convert to dictionary for JSON serialization."""
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Usage":
        """Create from dictionary, tolerating missing fields."""
        data = data or {}
        return cls(
            prompt_tokens=int(data.get("prompt_tokens") or 0),
            completion_tokens=int(data.get("completion_tokens") or 0),
            total_tokens=int(data.get("total_tokens") or 0),
        )


@dataclass
class LLMResponse:
    """Provider-independent view of a completion."""

    content: str
    role: str = "assistant"
    finish_reason: Optional[str] = None
    usage: Usage = field(default_factory=Usage)
    model: Optional[str] = None
    id: Optional[str] = None
    created: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "content": self.content,
            "role": self.role,
            "finish_reason": self.finish_reason,
            "usage": self.usage.to_dict(),
            "model": self.model,
            "id": self.id,
            "created": self.created,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LLMResponse":
        """Create from dictionary."""
        return cls(
            content=data.get("content", ""),
            role=data.get("role", "assistant"),
            finish_reason=data.get("finish_reason"),
            usage=Usage.from_dict(data.get("usage")),
            model=data.get("model"),
            id=data.get("id"),
            created=data.get("created"),
        )

    @classmethod
    def from_completion(cls, body: Mapping[str, Any]) -> "LLMResponse":
        """Map a raw ``/chat/completions`` body onto a response.

        Raises:
            ValueError: If the body carries no choices
        """
        choices = body.get("choices") if isinstance(body, Mapping) else None
        if not choices:
            raise ValueError("Invalid API response: no choices found")

        choice = choices[0] or {}
        message = choice.get("message") or {}
        return cls(
            content=message.get("content") or "",
            role=message.get("role") or "assistant",
            finish_reason=choice.get("finish_reason"),
            usage=Usage.from_dict(body.get("usage")),
            model=body.get("model"),
            id=body.get("id"),
            created=body.get("created"),
        )
