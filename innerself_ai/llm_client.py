"""Generation client abstraction for innerself-ai.

This module provides:
- GenerationClientProtocol: Interface for any generation backend
- OpenAIGenerationClient: Implementation over the OpenAI Responses API
- create_generation_client(): Factory building a client from settings

Architecture:
    The pipeline depends only on generate() returning a raw reply envelope
    (a dict). Output strategies differ only in the format hint sent:

    ReadingPipeline → GenerationClientProtocol.generate() → envelope dict
                                ↓
              ┌─────────────────┼─────────────────┐
              │                 │                 │
          free_text        json_object       json_schema
        (no format)     (any JSON object)  (strict schema)

Failure:
    Any transport error, quota error, timeout or abort is raised as
    GenerationServiceError. Nothing is retried here; the SDK's own retries
    are disabled so a request makes exactly one outbound call.
"""

import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from openai import AsyncOpenAI

from .errors import GenerationServiceError

logger = logging.getLogger(__name__)


class OutputStrategy(str, Enum):
    """Output-formatting strategies, from least to most constrained."""
    FREE_TEXT = "free_text"
    JSON_OBJECT = "json_object"
    JSON_SCHEMA = "json_schema"


# Name attached to the schema in strict-schema mode
SCHEMA_FORMAT_NAME = "three_card_reading"


def build_text_format(
    strategy: OutputStrategy,
    response_schema: Optional[dict] = None,
) -> Optional[dict]:
    """Build the Responses API `text` parameter for a strategy.

    Returns:
        The `text` parameter, or None when no format hint is sent
    """
    if strategy == OutputStrategy.FREE_TEXT:
        return None
    if strategy == OutputStrategy.JSON_OBJECT:
        return {"format": {"type": "json_object"}}
    if response_schema is None:
        raise ValueError("json_schema strategy requires a response_schema")
    return {
        "format": {
            "type": "json_schema",
            "name": SCHEMA_FORMAT_NAME,
            "schema": response_schema,
            "strict": True,
        }
    }


# =============================================================================
# Generation Client Protocol (Abstract Interface)
# =============================================================================

@runtime_checkable
class GenerationClientProtocol(Protocol):
    """Protocol defining the interface for generation clients."""

    async def generate(
        self,
        prompt: str,
        strategy: OutputStrategy,
        max_output_tokens: int,
        response_schema: Optional[dict] = None,
    ) -> dict:
        """Send one prompt and return the raw reply envelope.

        Args:
            prompt: Rendered instruction
            strategy: Output-formatting strategy
            max_output_tokens: Upper bound on generated length
            response_schema: JSON schema, required for the json_schema strategy

        Returns:
            Raw reply envelope as a dict

        Raises:
            GenerationServiceError: If the call fails for any reason
        """
        ...

    def get_client_type(self) -> str:
        """Return identifier for this client type."""
        ...


class BaseGenerationClient(ABC):
    """Base class for generation client implementations."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        strategy: OutputStrategy,
        max_output_tokens: int,
        response_schema: Optional[dict] = None,
    ) -> dict:
        """Generate - must be implemented by subclasses."""
        pass

    @abstractmethod
    def get_client_type(self) -> str:
        """Return client type identifier."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None


# =============================================================================
# OpenAI Responses API Client
# =============================================================================

class OpenAIGenerationClient(BaseGenerationClient):
    """Generation client using the OpenAI Responses API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "o4-mini",
        base_url: Optional[str] = None,
        timeout_seconds: float = 60.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        """Initialize the client.

        Args:
            api_key: OpenAI API key (falls back to OPENAI_API_KEY in the SDK)
            model: Model identifier
            base_url: Optional custom endpoint
            timeout_seconds: Per-call timeout enforced by the SDK
            client: Pre-built SDK client (mainly for tests)
        """
        self.model = model
        self._api_key = api_key
        self._base_url = base_url
        self._timeout_seconds = timeout_seconds
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        """Lazy-build the SDK client.

        The SDK raises at construction when no API key is configured; building
        it inside generate() turns that into a GENERATION_SERVICE_FAILED.
        """
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self._timeout_seconds,
                max_retries=0,
            )
        return self._client

    def get_client_type(self) -> str:
        """Return client type identifier."""
        return "openai-responses"

    async def generate(
        self,
        prompt: str,
        strategy: OutputStrategy,
        max_output_tokens: int,
        response_schema: Optional[dict] = None,
    ) -> dict:
        """Call responses.create once and return the reply envelope."""
        request_kwargs: dict[str, Any] = {
            "model": self.model,
            "input": prompt,
            "max_output_tokens": max_output_tokens,
        }
        text_format = build_text_format(strategy, response_schema)
        if text_format is not None:
            request_kwargs["text"] = text_format

        logger.info(
            f"Calling generation service: model={self.model}, strategy={strategy.value}, "
            f"max_output_tokens={max_output_tokens}"
        )
        start_time = time.time()

        try:
            response = await self._get_client().responses.create(**request_kwargs)
        except Exception as e:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.warning(f"Generation service failed after {latency_ms}ms: {e}")
            raise GenerationServiceError(
                f"generation service call failed: {type(e).__name__}",
                details=str(e),
            ) from e

        latency_ms = int((time.time() - start_time) * 1000)
        envelope = response.model_dump()
        # output_text is an SDK property, not a serialized field
        envelope["output_text"] = getattr(response, "output_text", "") or ""

        logger.info(
            f"Generation service responded: latency_ms={latency_ms}, "
            f"status={envelope.get('status')}, output_text_chars={len(envelope['output_text'])}"
        )
        return envelope

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()


# =============================================================================
# Client Factory
# =============================================================================

def create_generation_client(settings=None) -> OpenAIGenerationClient:
    """Factory function to create the generation client from settings.

    Args:
        settings: Settings instance (defaults to the global settings)

    Returns:
        Configured OpenAIGenerationClient
    """
    if settings is None:
        from .config import settings

    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; generation calls will fail and fall back")

    client = OpenAIGenerationClient(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        base_url=settings.openai_base_url,
        timeout_seconds=settings.generation_timeout_seconds,
    )
    logger.info(f"Created OpenAIGenerationClient (model={settings.openai_model})")
    return client
