"""
LLM Gateway

This module wraps every outbound chat-completion call. It selects the model,
temperature and token budget for the caller's purpose, trims the conversation
to a soft token ceiling, retries transient failures with exponential backoff,
falls back once to a cheaper model, and maps provider exceptions onto the
``UpstreamError`` taxonomy.
"""

import asyncio
import json
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import openai
from openai import AsyncOpenAI

from learnhub.common.cache import CacheBackend, build_cache_key
from learnhub.common.exceptions import (
    ConfigurationError,
    MalformedResponseError,
    UpstreamConnectionError,
    UpstreamError,
    UpstreamRateLimitError,
    UpstreamServerError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from learnhub.common.logger import app_logger
from learnhub.common.utils import strip_code_fences
from learnhub.llm.models import (
    ChatMessage,
    ChatResponse,
    Purpose,
    PurposeConfig,
    TokenUsage,
    default_purposes,
)

logger = app_logger.getChild("llm.gateway")

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

MessageLike = Union[ChatMessage, Dict[str, Any]]


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return math.ceil(len(text or "") / 4)


def count_tokens(messages: Sequence[ChatMessage]) -> int:
    """Estimated token count of a message list."""
    return sum(estimate_tokens(message.content) for message in messages)


def trim_messages(messages: Sequence[ChatMessage], max_tokens: int) -> List[ChatMessage]:
    """
    Drop the oldest non-system messages until the conversation fits ``max_tokens``.

    System messages are always kept, as is the most recent message.

    Args:
        messages: Conversation in chronological order
        max_tokens: Soft token ceiling

    Returns:
        System messages followed by the surviving messages in their original order
    """
    system = [m for m in messages if m.role == "system"]
    others = [m for m in messages if m.role != "system"]

    budget = max_tokens - count_tokens(system)
    kept: List[ChatMessage] = []
    for message in reversed(others):
        cost = estimate_tokens(message.content)
        if kept and cost > budget:
            break
        kept.append(message)
        budget -= cost

    kept.reverse()
    return system + kept


def classify_error(exc: Exception, model: str) -> UpstreamError:
    """
    Map a provider exception onto the gateway's error taxonomy.

    Args:
        exc: Exception raised by the OpenAI client
        model: Model the failed call was addressed to

    Returns:
        The matching UpstreamError subclass instance
    """
    if isinstance(exc, openai.APITimeoutError):
        return UpstreamTimeoutError(f"Request to {model} timed out", model=model, cause=exc)
    if isinstance(exc, openai.APIConnectionError):
        return UpstreamConnectionError(f"Could not reach provider for {model}", model=model, cause=exc)
    if isinstance(exc, openai.RateLimitError):
        return UpstreamRateLimitError(
            f"Rate limited by provider for {model}", model=model, status_code=429, cause=exc
        )
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        error_class = UpstreamServerError if status in RETRYABLE_STATUS_CODES else UpstreamError
        return error_class(
            f"Provider returned HTTP {status} for {model}", model=model, status_code=status, cause=exc
        )
    if isinstance(exc, openai.APIResponseValidationError):
        return MalformedResponseError(f"Unparseable provider response for {model}", model=model, cause=exc)
    return UpstreamError(f"Provider call for {model} failed: {exc}", model=model, cause=exc)


class LLMGateway:
    """
    Chat-completion gateway.

    One instance is built at start-up and shared by reference. It never makes
    more than one round trip per attempt; the only extra traffic is the retry
    loop and the single fallback chain.
    """

    def __init__(
        self,
        client: Any,
        purposes: Optional[Dict[Purpose, PurposeConfig]] = None,
        fallback_model: str = "gpt-4o-mini",
        max_retries: int = 3,
        max_context_tokens: int = 3500,
        cache: Optional[CacheBackend] = None,
        cache_ttl: int = 300,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Initialize the gateway.

        Args:
            client: An ``AsyncOpenAI`` client (or anything with ``chat.completions.create``)
            purposes: Model settings per purpose
            fallback_model: Model tried once after the primary model fails
            max_retries: Retries per model for transient failures
            max_context_tokens: Soft ceiling used when trimming conversations
            cache: Optional response cache for calls marked cacheable
            cache_ttl: TTL in seconds for cached responses
            sleep: Coroutine used for backoff delays
        """
        self._client = client
        self._purposes = purposes or default_purposes()
        self._fallback_model = fallback_model
        self._max_retries = max_retries
        self._max_context_tokens = max_context_tokens
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._sleep = sleep

    def purpose_config(self, purpose: Union[Purpose, str]) -> PurposeConfig:
        return self._purposes[Purpose(purpose)]

    async def complete(
        self,
        messages: Sequence[MessageLike],
        purpose: Union[Purpose, str] = Purpose.CONVERSATION,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        logprobs: bool = False,
        top_logprobs: Optional[int] = None,
        json_response: bool = False,
        cacheable: bool = False
    ) -> ChatResponse:
        """
        Request one chat completion.

        Args:
            messages: Conversation, oldest first
            purpose: Selects default model, temperature and max tokens
            model: Override for the purpose's model
            temperature: Override for the purpose's temperature
            max_tokens: Override for the purpose's max tokens
            logprobs: Ask for per-token log-probabilities
            top_logprobs: Number of alternatives per token when ``logprobs`` is set
            json_response: Ask the model for a JSON object
            cacheable: Serve and store the response through the injected cache

        Returns:
            The normalized response

        Raises:
            UpstreamUnavailableError: retries and the fallback model are exhausted
            UpstreamError: a non-transient failure with no fallback left
        """
        config = self.purpose_config(purpose)
        chat = [ChatMessage.coerce(m) for m in messages]
        trimmed = trim_messages(chat, self._max_context_tokens)
        if len(trimmed) < len(chat):
            logger.debug(
                f"Trimmed {len(chat) - len(trimmed)} messages to fit {self._max_context_tokens} tokens"
            )

        request: Dict[str, Any] = {
            "model": model or config.model,
            "messages": [m.to_dict() for m in trimmed],
            "temperature": config.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or config.max_tokens,
        }
        if logprobs:
            request["logprobs"] = True
            if top_logprobs:
                request["top_logprobs"] = top_logprobs
        if json_response:
            request["response_format"] = {"type": "json_object"}

        cache_key = None
        if cacheable and self._cache is not None:
            cache_key = build_cache_key("llm", request)
            cached = await self._cache.get(cache_key)
            if cached.hit:
                logger.debug(f"LLM cache hit for {request['model']}")
                return ChatResponse.from_dict(cached.value)

        response = await self._complete_with_fallback(request, Purpose(purpose))

        if cache_key is not None:
            await self._cache.set(cache_key, response.to_dict(), ttl=self._cache_ttl)
        return response

    async def generate_json(
        self,
        messages: Sequence[MessageLike],
        purpose: Union[Purpose, str] = Purpose.ANALYSIS,
        **kwargs: Any
    ) -> Dict[str, Any]:
        """
        Request a completion and decode it as a JSON object.

        Raises:
            MalformedResponseError: the content is not a JSON object
        """
        response = await self.complete(messages, purpose, json_response=True, **kwargs)
        try:
            payload = json.loads(strip_code_fences(response.content))
        except json.JSONDecodeError as e:
            raise MalformedResponseError(
                f"Model {response.model} did not return valid JSON", model=response.model, cause=e
            )
        if not isinstance(payload, dict):
            raise MalformedResponseError(
                f"Model {response.model} returned JSON that is not an object", model=response.model
            )
        return payload

    async def _complete_with_fallback(self, request: Dict[str, Any], purpose: Purpose) -> ChatResponse:
        primary_model = request["model"]
        try:
            return await self._call_with_retries(request, purpose)
        except UpstreamError as primary_error:
            if primary_model == self._fallback_model:
                raise UpstreamUnavailableError(
                    f"{primary_model} unavailable after {self._max_retries} retries", primary_error
                )

            logger.warning(
                f"Primary model {primary_model} failed ({primary_error.code.value}), "
                f"falling back to {self._fallback_model}"
            )

        try:
            return await self._call_with_retries(dict(request, model=self._fallback_model), purpose)
        except UpstreamError as fallback_error:
            raise UpstreamUnavailableError(
                f"{primary_model} and fallback {self._fallback_model} both failed", fallback_error
            )

    async def _call_with_retries(self, request: Dict[str, Any], purpose: Purpose) -> ChatResponse:
        model = request["model"]
        attempt = 0
        while True:
            try:
                completion = await self._client.chat.completions.create(**request)
            except openai.OpenAIError as e:
                error = classify_error(e, model)
                if not error.retryable or attempt >= self._max_retries:
                    raise error from e
                delay = 2 ** attempt
                attempt += 1
                logger.warning(
                    f"Retry {attempt}/{self._max_retries} for {model} after {delay}s "
                    f"due to {error.code.value}"
                )
                await self._sleep(delay)
                continue

            response = self._to_response(completion, model)
            logger.info(
                f"LLM usage: model={response.model} purpose={purpose.value} "
                f"prompt_tokens={response.usage.prompt_tokens} "
                f"completion_tokens={response.usage.completion_tokens}",
                extra={"data": {
                    "model": response.model,
                    "purpose": purpose.value,
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                }}
            )
            return response

    @staticmethod
    def _to_response(completion: Any, model: str) -> ChatResponse:
        choices = getattr(completion, "choices", None) or []
        if not choices:
            raise MalformedResponseError(f"Provider returned no choices for {model}", model=model)

        choice = choices[0]
        message = getattr(choice, "message", None)
        if message is None:
            raise MalformedResponseError(f"Provider returned a choice without a message for {model}", model=model)

        usage = getattr(completion, "usage", None)
        token_usage = TokenUsage(
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(usage, "total_tokens", 0) or 0,
        )

        logprob_values = None
        choice_logprobs = getattr(choice, "logprobs", None)
        if choice_logprobs is not None and getattr(choice_logprobs, "content", None):
            logprob_values = [token.logprob for token in choice_logprobs.content]

        return ChatResponse(
            content=message.content or "",
            role=getattr(message, "role", None) or "assistant",
            finish_reason=getattr(choice, "finish_reason", None),
            usage=token_usage,
            model=getattr(completion, "model", None) or model,
            id=getattr(completion, "id", None),
            logprobs=logprob_values,
        )


def build_openai_client(
    api_key: Optional[str],
    base_url: Optional[str] = None,
    timeout_seconds: float = 60.0
) -> AsyncOpenAI:
    """
    Create the provider client with the SDK's own retries disabled.

    Raises:
        ConfigurationError: no API key is configured
    """
    if not api_key:
        raise ConfigurationError("OpenAI API key is not configured", config_key="OPENAI_API_KEY")
    return AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout_seconds, max_retries=0)


REFUSAL_PATTERNS = (
    "i apologize, but i cannot",
    "i'm not able to help",
    "i don't have access to",
    "as an ai language model",
)


def validate_response(response: Optional[ChatResponse], min_length: int = 10) -> bool:
    """
    Check that a completion is worth showing to a learner.

    A usable response finished normally, has some substance and is not a
    canned refusal.
    """
    if response is None or not response.content:
        return False
    lowered = response.content.lower()
    if any(pattern in lowered for pattern in REFUSAL_PATTERNS):
        return False
    return len(response.content.strip()) >= min_length and response.finish_reason == "stop"
