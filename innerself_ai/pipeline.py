"""Reading pipeline: the single entry point from request to envelope.

Architecture:
    ReadingRequest → build_prompt() → GenerationClient.generate() → envelope →
    extract_payload() → parse_model_json() → validate_envelope() → reading

    Any failure after prompt rendering is a PipelineError. The failure policy
    decides what happens next:
    - fallback:  answer with build_fallback() (default, favors availability)
    - propagate: raise the typed error to the boundary (diagnostic mode)

Exactly one generation call is made per request. There is no retry loop; the
fallback reading exists because retries are not attempted.
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .errors import (
    DEFAULT_PREVIEW_CHARS,
    ErrorCode,
    GenerationServiceError,
    PipelineError,
    SchemaValidationError,
)
from .fallback import build_fallback
from .json_parser import parse_model_json
from .llm_client import GenerationClientProtocol, OutputStrategy
from .models import ReadingRequest, Variant
from .prompts import build_prompt
from .response_extractor import extract_payload
from .response_schema import build_json_schema, check_prose_lengths, validate_envelope

logger = logging.getLogger(__name__)


class FailurePolicy(str, Enum):
    """What to do when a pipeline stage fails."""
    FALLBACK = "fallback"
    PROPAGATE = "propagate"


class Outcome(str, Enum):
    """How the returned envelope was produced."""
    SUCCESS = "success"
    FALLBACK = "fallback"


@dataclass
class PipelineResult:
    """Result of one pipeline run."""
    envelope: dict
    outcome: Outcome
    variant: Variant
    request_id: str
    error_code: Optional[ErrorCode] = None
    stage: Optional[str] = None
    latency_ms: int = 0
    prose_warnings: list[str] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return self.outcome == Outcome.FALLBACK

    def to_log_dict(self) -> dict:
        """Convert to dictionary for structured logging."""
        return {
            "request_id": self.request_id,
            "variant": self.variant.value,
            "outcome": self.outcome.value,
            "error_code": self.error_code.value if self.error_code else None,
            "stage": self.stage,
            "latency_ms": self.latency_ms,
            "prose_warnings": len(self.prose_warnings),
        }


def generate_request_id() -> str:
    return str(uuid.uuid4())[:8]


class ReadingPipeline:
    """Sequences prompt, generation, extraction, parsing and validation.

    The generation client is injected so tests can substitute a fake that
    returns canned envelopes.
    """

    def __init__(
        self,
        client: GenerationClientProtocol,
        strategy: OutputStrategy = OutputStrategy.JSON_OBJECT,
        failure_policy: FailurePolicy = FailurePolicy.FALLBACK,
        max_output_tokens: int = 500,
        enforce_prose_length: bool = False,
        preview_chars: int = DEFAULT_PREVIEW_CHARS,
        log_raw_response_chars: int = 4000,
    ):
        self.client = client
        self.strategy = OutputStrategy(strategy)
        self.failure_policy = FailurePolicy(failure_policy)
        self.max_output_tokens = max_output_tokens
        self.enforce_prose_length = enforce_prose_length
        self.preview_chars = preview_chars
        self.log_raw_response_chars = log_raw_response_chars

    @classmethod
    def from_settings(cls, client: GenerationClientProtocol, settings=None) -> "ReadingPipeline":
        """Build a pipeline configured from settings."""
        if settings is None:
            from .config import settings
        return cls(
            client=client,
            strategy=OutputStrategy(settings.output_strategy),
            failure_policy=FailurePolicy(settings.failure_policy),
            max_output_tokens=settings.max_output_tokens,
            enforce_prose_length=settings.enforce_prose_length,
            preview_chars=settings.preview_chars,
            log_raw_response_chars=settings.log_raw_response_chars,
        )

    async def run(
        self,
        request: ReadingRequest,
        variant: Variant,
        policy: Optional[FailurePolicy] = None,
    ) -> PipelineResult:
        """Produce a reading for one request.

        Args:
            request: Reading request (already checked at the boundary)
            variant: Reading variant
            policy: Override for the configured failure policy

        Returns:
            PipelineResult with the validated or fallback envelope

        Raises:
            PipelineError: Only when the effective policy is propagate
        """
        policy = FailurePolicy(policy) if policy else self.failure_policy
        request_id = generate_request_id()
        start_time = time.time()

        logger.info(
            f"Pipeline processing: request_id={request_id}, variant={variant.value}, "
            f"client={self.client.get_client_type()}, "
            f"strategy={self.strategy.value}, policy={policy.value}"
        )

        try:
            envelope, stage, prose_warnings = await self._generate_and_normalize(
                request, variant, request_id
            )
        except PipelineError as e:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.warning(
                f"Pipeline failed: request_id={request_id}, variant={variant.value}, "
                f"code={e.code.value}, message={e.message}"
                + (f", preview={e.preview!r}" if e.preview else "")
            )
            if policy == FailurePolicy.PROPAGATE:
                e.request_id = request_id
                raise

            result = PipelineResult(
                envelope=build_fallback(request, variant),
                outcome=Outcome.FALLBACK,
                variant=variant,
                request_id=request_id,
                error_code=e.code,
                stage=e.stage,
                latency_ms=latency_ms,
            )
            logger.info(f"Fallback used: {result.to_log_dict()}")
            return result

        result = PipelineResult(
            envelope=envelope,
            outcome=Outcome.SUCCESS,
            variant=variant,
            request_id=request_id,
            stage=stage,
            latency_ms=int((time.time() - start_time) * 1000),
            prose_warnings=prose_warnings,
        )
        logger.info(f"Pipeline success: {result.to_log_dict()}")
        return result

    async def _generate_and_normalize(
        self,
        request: ReadingRequest,
        variant: Variant,
        request_id: str,
    ) -> tuple[dict, str, list[str]]:
        """Run every stage after prompt rendering; raises PipelineError."""
        prompt = build_prompt(request, variant)
        response_schema = (
            build_json_schema(variant) if self.strategy == OutputStrategy.JSON_SCHEMA else None
        )

        stage = "generation"
        try:
            raw = await self._call_client(prompt, response_schema)
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    f"Raw reply (truncated): request_id={request_id}, "
                    f"{json.dumps(raw, ensure_ascii=False, default=str)[:self.log_raw_response_chars]}"
                )

            stage = "extraction"
            payload = extract_payload(raw)

            if isinstance(payload, dict):
                stage = "validation"
                parsed = payload
            else:
                logger.info(f"Extracted reply text: request_id={request_id}, chars={len(payload.strip())}")
                stage = "parse"
                parsed = parse_model_json(payload, preview_chars=self.preview_chars)
                stage = "validation"

            envelope = validate_envelope(parsed, variant, request)
            prose_warnings = self._check_prose(envelope, variant, request_id)
            stage = "validated"
        except PipelineError as e:
            e.stage = stage
            raise
        except Exception as e:
            # Unexpected reply shapes past generation are treated as invalid replies
            logger.exception(f"Unexpected error during {stage}: request_id={request_id}")
            error = SchemaValidationError(f"unexpected {type(e).__name__} during {stage}")
            error.details = str(e)
            error.stage = stage
            raise error from e

        return envelope, stage, prose_warnings

    async def _call_client(self, prompt: str, response_schema: Optional[dict]) -> dict:
        """Single generation call; any client failure becomes GENERATION_SERVICE_FAILED."""
        try:
            return await self.client.generate(
                prompt,
                self.strategy,
                self.max_output_tokens,
                response_schema=response_schema,
            )
        except PipelineError:
            raise
        except Exception as e:
            raise GenerationServiceError(
                f"generation client raised {type(e).__name__}",
                details=str(e),
            ) from e

    def _check_prose(self, envelope: dict, variant: Variant, request_id: str) -> list[str]:
        """Apply the prose length limits: advisory by default, a gate when enforced."""
        violations = check_prose_lengths(envelope, variant)
        if not violations:
            return []

        if self.enforce_prose_length:
            first = violations[0]
            raise SchemaValidationError(
                f"prose length {first.length:g} outside {first.limit}", path=first.path
            )

        for violation in violations:
            logger.warning(f"Prose length outside limits: request_id={request_id}, {violation}")
        return [str(v) for v in violations]
