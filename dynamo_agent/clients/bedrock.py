"""Claude-on-Bedrock client with rate limiting."""

import asyncio
import os
import time
from dataclasses import dataclass, field
from typing import Any

import tiktoken
from anthropic import AsyncAnthropicBedrock
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from dynamo_agent.models.llm import ContentBlock, Message, ModelResponse, TextBlock, ToolResultBlock, ToolUseBlock
from dynamo_agent.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MODEL_ID = "anthropic.claude-3-sonnet-20240229-v1:0"

# Seconds to sleep before re-checking a window that reports no time left
MIN_RATE_LIMIT_WAIT = 0.1


@dataclass
class ModelConfig:
    """Configuration for model invocations.

    Sampling defaults favor determinism over creativity.
    """

    model_id: str = field(default_factory=lambda: os.getenv("BEDROCK_MODEL_ID", DEFAULT_MODEL_ID))
    inference_profile_id: str | None = field(default_factory=lambda: os.getenv("INFERENCE_PROFILE_ID") or None)
    aws_region: str | None = field(default_factory=lambda: os.getenv("AWS_REGION"))

    max_tokens: int = 2000
    follow_up_max_tokens: int = 1000
    temperature: float = 0.1
    top_k: int | None = 250
    top_p: float | None = 0.999

    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000

    @property
    def target(self) -> str:
        """Invocation target: the inference profile when configured, else the model id."""
        return self.inference_profile_id or self.model_id


class ModelRateLimiter:
    """Moving-window limiter for request count and estimated tokens."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def _wait(self, limit, identifier: str, cost: int = 1) -> None:
        # A cost above the window size could never be admitted
        cost = min(cost, limit.amount)
        while not self.limiter.hit(limit, identifier, cost=cost):
            window_stats = self.limiter.get_window_stats(limit, identifier)
            wait_time = max(MIN_RATE_LIMIT_WAIT, window_stats.reset_time - time.time())
            logger.warning(f"Rate limit {limit} exceeded for {identifier}, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "bedrock") -> None:
        """Wait until the request fits within both limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")
        await self._wait(self.request_limit, identifier)
        await self._wait(self.token_limit, f"{identifier}_tokens", cost=max(1, estimated_tokens))


class ModelClient:
    """Invokes Claude through Bedrock with tool definitions attached.

    Failures are raised to the caller and never retried here.
    """

    tokenizer: tiktoken.Encoding | None = None

    def __init__(self, config: ModelConfig | None = None, client: AsyncAnthropicBedrock | None = None):
        """Initialize the model client.

        Args:
            config: Model configuration (defaults read from the environment)
            client: Preconfigured SDK client, mainly for tests
        """
        self.config = config or ModelConfig()

        if client is None:
            if not self.config.aws_region:
                raise ValueError("AWS_REGION environment variable is required")
            client = AsyncAnthropicBedrock(aws_region=self.config.aws_region, max_retries=0)
        self.client = client

        self.rate_limiter = ModelRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)

        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            self.tokenizer = None

    def build_request(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        follow_up: bool = False,
    ) -> dict[str, Any]:
        """Build the keyword arguments for a messages call.

        Follow-up invocations get the smaller token budget.
        """
        request: dict[str, Any] = {
            "model": self.config.target,
            "max_tokens": self.config.follow_up_max_tokens if follow_up else self.config.max_tokens,
            "temperature": self.config.temperature,
            "stop_sequences": [],
            "messages": [message.model_dump() for message in messages],
        }
        if self.config.top_k is not None:
            request["top_k"] = self.config.top_k
        if self.config.top_p is not None:
            request["top_p"] = self.config.top_p
        if tools:
            request["tools"] = tools
        return request

    async def create_message(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        follow_up: bool = False,
    ) -> ModelResponse:
        """Invoke the model once.

        Args:
            messages: Conversation to submit
            tools: Sanitized tool catalog
            follow_up: Whether this call answers tool results

        Returns:
            Structured model response
        """
        request = self.build_request(messages, tools, follow_up)

        await self.rate_limiter.check_rate_limit(self._estimate_tokens(messages))

        logger.debug(
            f"Invoking {request['model']} with {len(messages)} messages, {len(tools) if tools else 0} tools"
        )
        response = await self.client.messages.create(**request)

        logger.debug(
            f"Response received - Stop reason: {response.stop_reason}, Content blocks: {len(response.content)}"
        )

        return ModelResponse(
            content=self._convert_content_blocks(response.content),
            stop_reason=response.stop_reason,
            model=getattr(response, "model", None),
        )

    def _convert_content_blocks(self, provider_content: list[Any]) -> list[ContentBlock]:
        """Convert SDK content blocks to our ContentBlock types."""
        converted_blocks: list[ContentBlock] = []
        for block in provider_content:
            try:
                if hasattr(block, "model_dump"):
                    block_dict = block.model_dump()
                elif isinstance(block, dict):
                    block_dict = block
                else:
                    block_dict = dict(block.__dict__)

                if block_dict.get("type") == "text":
                    converted_blocks.append(TextBlock.model_validate(block_dict))
                elif block_dict.get("type") == "tool_use":
                    converted_blocks.append(ToolUseBlock.model_validate(block_dict))
                else:
                    logger.warning(f"Unknown content block type: {block_dict.get('type')}")

            except Exception as e:
                # Skip malformed blocks rather than failing the entire response
                logger.error(f"Failed to convert content block: {e}, block: {block}")
                continue

        return converted_blocks

    def _estimate_tokens(self, messages: list[Message]) -> int:
        """Estimate the token count of the text carried by ``messages``."""
        text_content = ""
        for message in messages:
            for block in message.content:
                if isinstance(block, TextBlock):
                    text_content += block.text
                elif isinstance(block, ToolResultBlock):
                    text_content += block.content

        try:
            return len(self.tokenizer.encode(text_content)) if self.tokenizer else len(text_content) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(text_content) // 4
