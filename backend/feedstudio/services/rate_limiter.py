"""Tokens-per-minute limiter shared by all semantic analysis calls."""

import asyncio
import logging
import time
from typing import Awaitable, Callable

import tiktoken

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60
MESSAGE_OVERHEAD_TOKENS = 4


class TokenBucketRateLimiter:
    """
    Fixed one-minute window over estimated LLM token usage.

    Callers reserve their estimate with acquire() before the request and
    correct it with report_actual_usage() once the response reports usage.
    """

    def __init__(
        self,
        tpm_limit: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.tpm_limit = tpm_limit
        self.tokens_used = 0
        self._clock = clock
        self._sleep = sleep
        self.window_start = clock()
        self.lock = asyncio.Lock()

    async def acquire(self, estimated_tokens: int) -> None:
        """Wait until estimated_tokens fit into the current window, then reserve them."""
        async with self.lock:
            elapsed = self._clock() - self.window_start

            if elapsed >= WINDOW_SECONDS:
                self._reset_window()
                elapsed = 0

            if self.tokens_used and self.tokens_used + estimated_tokens > self.tpm_limit:
                wait = WINDOW_SECONDS - elapsed
                logger.info(
                    f"Analysis rate limit: {self.tokens_used}/{self.tpm_limit} tokens used, "
                    f"waiting {wait:.1f}s for the next window"
                )
                await self._sleep(wait)
                self._reset_window()

            self.tokens_used += estimated_tokens
            logger.debug(
                f"Reserved {estimated_tokens} tokens "
                f"({self.tokens_used}/{self.tpm_limit} this window)"
            )

    def report_actual_usage(self, actual_tokens: int, estimated_tokens: int) -> None:
        difference = actual_tokens - estimated_tokens
        self.tokens_used = max(0, self.tokens_used + difference)

        if abs(difference) > 100:
            logger.debug(
                f"Token estimate off by {difference} "
                f"(estimated {estimated_tokens}, actual {actual_tokens})"
            )

    def _reset_window(self) -> None:
        self.tokens_used = 0
        self.window_start = self._clock()


def _encoding_for(model: str):
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        return tiktoken.get_encoding("cl100k_base")


def estimate_tokens(text: str, model: str = "gpt-4o-mini") -> int:
    if not text:
        return 0
    return len(_encoding_for(model).encode(text))


def truncate_to_tokens(text: str, max_tokens: int, model: str = "gpt-4o-mini") -> str:
    """Cut text down to at most max_tokens tokens, appending an ellipsis when cut."""
    if not text or max_tokens <= 0:
        return ""

    encoding = _encoding_for(model)
    tokens = encoding.encode(text)
    if len(tokens) <= max_tokens:
        return text
    return encoding.decode(tokens[:max_tokens]) + "..."


def estimate_request_tokens(
    system_prompt: str,
    user_prompt: str,
    model: str = "gpt-4o-mini",
    response_buffer: int = 500,
) -> int:
    """
    Estimate total tokens for a chat completion request.

    Args:
        system_prompt: The system prompt
        user_prompt: The user prompt
        model: The model name
        response_buffer: Tokens reserved for the completion

    Returns:
        Prompt tokens plus per-message overhead plus the response buffer
    """
    prompt_tokens = estimate_tokens(system_prompt, model) + estimate_tokens(
        user_prompt, model
    )
    return prompt_tokens + 2 * MESSAGE_OVERHEAD_TOKENS + response_buffer
