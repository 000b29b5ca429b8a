"""
LLM Gateway Package

The single outbound integration point for chat-completion calls.
"""

from learnhub.llm.models import ChatMessage, ChatResponse, Purpose, PurposeConfig, TokenUsage
from learnhub.llm.gateway import LLMGateway, count_tokens, estimate_tokens, trim_messages

__all__ = [
    "ChatMessage",
    "ChatResponse",
    "Purpose",
    "PurposeConfig",
    "TokenUsage",
    "LLMGateway",
    "count_tokens",
    "estimate_tokens",
    "trim_messages",
]
