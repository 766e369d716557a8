"""Request and token throttling for model calls."""

import asyncio
import time
from collections.abc import Sequence

import tiktoken
from langchain_core.messages import BaseMessage
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from clark.utils.logging import get_logger

logger = get_logger(__name__)


def _content_text(content: str | list) -> str:
    if isinstance(content, str):
        return content
    text = ""
    for block in content:
        if isinstance(block, str):
            text += block
        elif isinstance(block, dict):
            text += str(block.get("text") or block.get("thinking") or block.get("input") or "")
    return text


class TokenEstimator:
    """Rough token counts for throttling decisions."""

    def __init__(self):
        try:
            # Close approximation for Claude
            self.tokenizer: tiktoken.Encoding | None = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            self.tokenizer = None

    def estimate(self, text: str) -> int:
        try:
            return len(self.tokenizer.encode(text)) if self.tokenizer else len(text) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(text) // 4

    def estimate_messages(self, messages: Sequence[BaseMessage]) -> int:
        return sum(self.estimate(_content_text(message.content)) for message in messages)


class ModelRateLimiter:
    """Moving-window limiter over requests and estimated tokens per minute."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 400_000):
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")
        self.estimator = TokenEstimator()

    async def acquire(self, messages: Sequence[BaseMessage], identifier: str = "model") -> int:
        """Wait until a model call over ``messages`` fits within both limits.

        Returns:
            The estimated token count charged for the call
        """
        estimated_tokens = max(1, self.estimator.estimate_messages(messages))
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        await self._hit(self.request_limit, identifier, 1, "Request")
        await self._hit(self.token_limit, f"{identifier}_tokens", estimated_tokens, "Token")
        return estimated_tokens

    async def _hit(self, limit, identifier: str, cost: int, label: str) -> None:
        if self.limiter.hit(limit, identifier, cost=cost):
            return

        window_stats = self.limiter.get_window_stats(limit, identifier)
        wait_time = max(0.0, window_stats.reset_time - time.time())
        if wait_time > 0:
            logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)
