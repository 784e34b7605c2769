"""
LiteLLM-powered chat completion helper used by the story drafting client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, MutableMapping, Sequence

from litellm import completion
from litellm.exceptions import (
    APIConnectionError,
    APIError,
    AuthenticationError,
    BadRequestError,
    RateLimitError,
    ServiceUnavailableError,
    Timeout,
)

from .errors import InvalidResponseError, ProviderError

logger = logging.getLogger(__name__)

ChatMessage = Mapping[str, Any]

_PROVIDER_EXCEPTIONS = (
    APIConnectionError,
    APIError,
    AuthenticationError,
    BadRequestError,
    RateLimitError,
    ServiceUnavailableError,
    Timeout,
)


@dataclass
class ChatResult:
    """
    Text of the first choice plus the untouched provider response.
    """

    text: str
    raw: Any


CompletionCallable = Callable[..., ChatResult]


def call_chat_completion(
    *,
    model: str,
    messages: Sequence[ChatMessage],
    temperature: float | None = None,
    max_tokens: int | None = None,
    api_key: str | None = None,
    **extra_kwargs: Any,
) -> ChatResult:
    """
    Send one chat request through LiteLLM and return the first choice's text.

    Raises
    ------
    ProviderError
        LiteLLM reported a provider failure; ``status_code`` is copied when known.
    InvalidResponseError
        The call succeeded but carried no message content.
    """
    request: MutableMapping[str, Any] = {"model": model, "messages": list(messages)}
    optional = {"temperature": temperature, "max_tokens": max_tokens, "api_key": api_key}
    request.update({key: value for key, value in optional.items() if value is not None})
    request.update(extra_kwargs)

    try:
        response = completion(**request)
    except _PROVIDER_EXCEPTIONS as exc:
        status_code = getattr(exc, "status_code", None)
        logger.error("Chat completion with %s failed (%s)", model, status_code)
        raise ProviderError(status_code, str(exc)) from exc

    content = _first_message_content(response)
    if content is None:
        raise InvalidResponseError("No content returned from the language model.")

    usage = _lookup(response, "usage")
    if usage is not None:
        logger.debug("Chat completion usage for %s: %s", model, usage)

    return ChatResult(text=str(content).strip(), raw=response)


def _first_message_content(response: Any) -> Any:
    choices = _lookup(response, "choices")
    if not choices:
        raise InvalidResponseError("Language model response has no choices.")
    message = _lookup(choices[0], "message")
    if message is None:
        raise InvalidResponseError("Language model response has no message.")
    return _lookup(message, "content")


def _lookup(container: Any, key: str) -> Any:
    # LiteLLM responses support both item and attribute access; plain dicts only the former.
    if isinstance(container, Mapping):
        return container.get(key)
    return getattr(container, key, None)
