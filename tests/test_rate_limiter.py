"""Tests for model call throttling."""

from unittest.mock import AsyncMock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from clark.clients.rate_limiter import ModelRateLimiter, TokenEstimator


class TestTokenEstimator:
    """Tests for token estimation."""

    def test_estimate_messages(self):
        """Test text and content blocks are counted."""
        estimator = TokenEstimator()
        messages = [
            HumanMessage(content="Build a todo app with sign-in"),
            AIMessage(content=[{"type": "text", "text": "Sure, creating a sandbox first."}]),
        ]

        assert estimator.estimate_messages(messages) > 0

    def test_fallback_without_tokenizer(self):
        """Test the character-based fallback."""
        estimator = TokenEstimator()
        estimator.tokenizer = None

        assert estimator.estimate("a" * 40) == 10


class TestModelRateLimiter:
    """Tests for ModelRateLimiter."""

    @pytest.mark.asyncio
    async def test_within_limits_does_not_wait(self):
        """Test calls under both limits proceed immediately."""
        limiter = ModelRateLimiter(requests_per_minute=5, tokens_per_minute=10_000)

        with patch("clark.clients.rate_limiter.asyncio.sleep", new=AsyncMock()) as sleep:
            tokens = await limiter.acquire([HumanMessage(content="hello")])

        assert tokens >= 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_request_limit_waits(self):
        """Test exceeding the request limit waits for the window to reset."""
        limiter = ModelRateLimiter(requests_per_minute=1, tokens_per_minute=10_000)

        with patch("clark.clients.rate_limiter.asyncio.sleep", new=AsyncMock()) as sleep:
            await limiter.acquire([HumanMessage(content="one")])
            await limiter.acquire([HumanMessage(content="two")])

        sleep.assert_awaited_once()
        assert 0 < sleep.await_args.args[0] <= 60
