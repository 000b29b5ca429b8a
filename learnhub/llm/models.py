"""
LLM Gateway Models

Request and response types exchanged with the chat-completion provider, and
the per-purpose model settings.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


class Purpose(str, enum.Enum):
    """Why a completion is requested; selects model, temperature and token budget."""
    ASSESSMENT = "assessment"
    EVALUATION = "evaluation"
    CONVERSATION = "conversation"
    ANALYSIS = "analysis"


@dataclass(frozen=True)
class PurposeConfig:
    """Model settings for one purpose."""
    model: str
    temperature: float
    max_tokens: int


def default_purposes(
    primary_model: str = "gpt-4o",
    light_model: str = "gpt-4o-mini"
) -> Dict[Purpose, PurposeConfig]:
    """
    Build the purpose table.

    Question generation and grading use the primary model; chat and
    performance analysis use the lighter one.
    """
    return {
        Purpose.ASSESSMENT: PurposeConfig(primary_model, 0.5, 2000),
        Purpose.EVALUATION: PurposeConfig(primary_model, 0.2, 1000),
        Purpose.CONVERSATION: PurposeConfig(light_model, 0.7, 500),
        Purpose.ANALYSIS: PurposeConfig(light_model, 0.4, 800),
    }


@dataclass
class ChatMessage:
    """One chat message."""
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def coerce(cls, message: Union["ChatMessage", Dict[str, Any]]) -> "ChatMessage":
        """Accept either a ChatMessage or a ``{"role", "content"}`` mapping."""
        if isinstance(message, ChatMessage):
            return message
        return cls(role=message["role"], content=message.get("content") or "")


@dataclass
class TokenUsage:
    """Token accounting reported by the provider."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatResponse:
    """
    Normalized chat completion.

    Attributes:
        content: Text of the first choice
        role: Role of the first choice's message
        finish_reason: Why generation stopped
        usage: Token usage
        model: Model that actually served the call (differs on fallback)
        id: Provider's completion id
        logprobs: Per-token log-probabilities when they were requested
    """
    content: str
    role: str = "assistant"
    finish_reason: Optional[str] = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str = ""
    id: Optional[str] = None
    logprobs: Optional[List[float]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "role": self.role,
            "finish_reason": self.finish_reason,
            "usage": {
                "prompt_tokens": self.usage.prompt_tokens,
                "completion_tokens": self.usage.completion_tokens,
                "total_tokens": self.usage.total_tokens,
            },
            "model": self.model,
            "id": self.id,
            "logprobs": self.logprobs,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatResponse":
        return cls(
            content=data.get("content") or "",
            role=data.get("role") or "assistant",
            finish_reason=data.get("finish_reason"),
            usage=TokenUsage(**(data.get("usage") or {})),
            model=data.get("model") or "",
            id=data.get("id"),
            logprobs=data.get("logprobs"),
        )
