"""
AI Service

Provides LLM access through litellm (OpenAI Chat Completions) with
structured outputs via instructor.

Features:
- Plain text and structured (Pydantic) generations
- Automatic fallback to a second model on failure
- Vision requests for image analysis
- Token usage and cost estimation per call
"""

import os
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Type, TypeVar

import instructor
import litellm
import structlog
from pydantic import BaseModel

from app.config import settings

logger = structlog.get_logger()

# Type variable for structured outputs
T = TypeVar("T", bound=BaseModel)

# Configure litellm
litellm.drop_params = True  # Drop unsupported params gracefully

# litellm reads provider keys from the environment
if settings.openai_api_key:
    os.environ["OPENAI_API_KEY"] = settings.openai_api_key


class AIServiceError(Exception):
    """Base exception for AI service errors."""

    def __init__(self, message: str, provider: Optional[str] = None, details: dict = None):
        self.message = message
        self.provider = provider
        self.details = details or {}
        super().__init__(message)


class AIRateLimitError(AIServiceError):
    """Rate limit exceeded error."""

    def __init__(self, message: str, provider: str, retry_after: Optional[int] = None):
        super().__init__(message, provider, {"retry_after": retry_after})
        self.retry_after = retry_after


class AIProviderError(AIServiceError):
    """Provider-specific error."""
    pass


class GenerationResult(BaseModel):
    """Result of an AI generation."""

    content: Any  # The generated content (can be structured)
    model: str  # Model used for generation
    provider: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    estimated_cost: float  # USD
    generation_time_ms: int
    fallback_used: bool = False


# Pricing per 1M tokens (approximate, update as needed)
MODEL_PRICING = {
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4-turbo": {"input": 10.00, "output": 30.00},
    "gpt-3.5-turbo": {"input": 0.50, "output": 1.50},
}


def estimate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """
    Estimate the cost of a generation.

    Returns:
        Estimated cost in USD
    """
    pricing = MODEL_PRICING.get(model, {"input": 1.00, "output": 2.00})
    input_cost = (prompt_tokens / 1_000_000) * pricing["input"]
    output_cost = (completion_tokens / 1_000_000) * pricing["output"]
    return round(input_cost + output_cost, 6)


def get_provider_from_model(model: str) -> str:
    """Determine provider from model name."""
    if model.startswith("gpt-") or model.startswith("o1") or model.startswith("o3"):
        return "openai"
    return "unknown"


class AIService:
    """
    AI Service for generating content using LLMs.

    Provides structured output generation with automatic fallback
    and usage tracking.
    """

    def __init__(self):
        self.default_model = settings.ai_default_model
        self.fallback_model = settings.ai_fallback_model
        self.vision_model = settings.ai_vision_model
        self.max_tokens = settings.ai_max_tokens
        self.temperature = settings.ai_temperature
        self.timeout = settings.ai_timeout_seconds
        self.max_retries = settings.ai_max_retries

        # Async instructor client over litellm for structured outputs
        self.client = instructor.from_litellm(litellm.acompletion)

    @property
    def is_configured(self) -> bool:
        return settings.ai_configured

    async def _with_fallback(
        self,
        call: Callable[[str], Awaitable[Any]],
        model: str,
        use_fallback: bool,
    ) -> tuple[Any, str, bool]:
        """
        Run `call(model)`, retrying once with the fallback model.

        Returns:
            Tuple of (call result, model used, fallback used)
        """
        try:
            return await call(model), model, False
        except Exception as e:
            if not (use_fallback and self.fallback_model and model != self.fallback_model):
                raise self._handle_error(e, model)

            logger.warning(
                "ai_primary_failed_using_fallback",
                primary_model=model,
                fallback_model=self.fallback_model,
                error=str(e),
            )
            try:
                return await call(self.fallback_model), self.fallback_model, True
            except Exception as fallback_error:
                logger.error("ai_fallback_also_failed", error=str(fallback_error))
                raise AIProviderError(
                    message="Both primary and fallback AI models failed",
                    provider="openai",
                    details={
                        "primary_error": str(e),
                        "fallback_error": str(fallback_error),
                    },
                )

    def _build_result(
        self,
        content: Any,
        completion: Any,
        model: str,
        start_time: datetime,
        fallback_used: bool,
    ) -> GenerationResult:
        usage = getattr(completion, "usage", None)
        prompt_tokens = usage.prompt_tokens if usage else 0
        completion_tokens = usage.completion_tokens if usage else 0
        total_tokens = usage.total_tokens if usage else 0
        elapsed = datetime.now(timezone.utc) - start_time

        return GenerationResult(
            content=content,
            model=model,
            provider=get_provider_from_model(model),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            estimated_cost=estimate_cost(model, prompt_tokens, completion_tokens),
            generation_time_ms=int(elapsed.total_seconds() * 1000),
            fallback_used=fallback_used,
        )

    async def generate(
        self,
        messages: list[dict],
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        use_fallback: bool = True,
    ) -> GenerationResult:
        """
        Generate a plain text completion.

        Args:
            messages: List of message dicts (role, content)
            model: Model to use (defaults to configured default)
            max_tokens: Max tokens for response
            temperature: Temperature for randomness
            use_fallback: Whether to try fallback on failure
        """
        max_tokens = max_tokens or self.max_tokens
        temperature = temperature if temperature is not None else self.temperature
        start_time = datetime.now(timezone.utc)

        async def call(selected_model: str):
            return await litellm.acompletion(
                model=selected_model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
                timeout=self.timeout,
                num_retries=self.max_retries,
            )

        response, model, fallback_used = await self._with_fallback(
            call, model or self.default_model, use_fallback
        )
        content = response.choices[0].message.content
        return self._build_result(content, response, model, start_time, fallback_used)

    async def generate_structured(
        self,
        messages: list[dict],
        response_model: Type[T],
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        use_fallback: bool = True,
    ) -> tuple[T, GenerationResult]:
        """
        Generate a structured output matching a Pydantic model.

        Returns:
            Tuple of (structured response, GenerationResult metadata)
        """
        max_tokens = max_tokens or self.max_tokens
        temperature = temperature if temperature is not None else self.temperature
        start_time = datetime.now(timezone.utc)

        async def call(selected_model: str):
            return await self.client.chat.completions.create_with_completion(
                model=selected_model,
                messages=messages,
                response_model=response_model,
                max_tokens=max_tokens,
                temperature=temperature,
                timeout=self.timeout,
                max_retries=self.max_retries,
            )

        (response, completion), model, fallback_used = await self._with_fallback(
            call, model or self.default_model, use_fallback
        )
        result = self._build_result(
            response.model_dump(), completion, model, start_time, fallback_used
        )
        return response, result

    async def analyze_image(
        self,
        prompt: str,
        image_url: str,
        response_model: Type[T],
        system_prompt: Optional[str] = None,
    ) -> tuple[T, GenerationResult]:
        """Structured analysis of an image with the vision model."""
        messages: list[dict] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": image_url}},
            ],
        })
        return await self.generate_structured(
            messages=messages,
            response_model=response_model,
            model=self.vision_model,
            temperature=0.3,
            use_fallback=False,
        )

    def _handle_error(self, error: Exception, model: str) -> AIServiceError:
        """Convert provider errors to AIServiceError."""
        if isinstance(error, AIServiceError):
            return error

        provider = get_provider_from_model(model)
        error_str = str(error).lower()

        if "rate limit" in error_str or "rate_limit" in error_str:
            return AIRateLimitError(
                message="AI rate limit exceeded",
                provider=provider,
                retry_after=60,
            )

        if "authentication" in error_str or "api key" in error_str:
            return AIProviderError(
                message="AI authentication failed",
                provider=provider,
                details={"error": str(error)},
            )

        return AIProviderError(
            message=f"AI provider error: {str(error)}",
            provider=provider,
            details={"error": str(error)},
        )


# Global AI service instance
ai_service = AIService()
