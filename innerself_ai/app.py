"""HTTP boundary for the three-card reading service.

Routes:
- POST /ai/three-card/basic      three directions
- POST /ai/three-card/clear      three directions with three branches each
  (also served as /ai/three-card/detailed)
- GET  /health

Request bodies are checked here; the pipeline only ever sees well-formed
requests. Successful and fallback readings are both returned as 200. In
diagnostic mode (failure_policy=propagate) pipeline errors become a 502 with
a stable error tag and a bounded preview.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import Settings, settings as default_settings
from .errors import PipelineError
from .llm_client import GenerationClientProtocol, create_generation_client
from .models import BRANCH_CARD_COUNT, MAIN_CARD_COUNT, ReadingRequest, Variant
from .pipeline import ReadingPipeline

logger = logging.getLogger(__name__)

INVALID_BODY = "Invalid request body"


# Pydantic models
class BasicReadingBody(BaseModel):
    """Body for a basic reading. Shape is checked by check_reading_body()."""
    model_config = ConfigDict(populate_by_name=True)

    question: Optional[str] = None
    context: Optional[str] = None
    main_cards: Optional[list[Any]] = Field(default=None, alias="mainCards")


class DetailedReadingBody(BasicReadingBody):
    """Body for a detailed (clear) reading."""
    branch_cards: Optional[list[Any]] = Field(default=None, alias="branchCards")


class BadRequest(Exception):
    """Raised when a request body fails boundary checks."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _check_cards(cards: Optional[list[Any]], name: str, count: int) -> None:
    if not isinstance(cards, list) or len(cards) != count:
        raise BadRequest(f"{name} must be length {count}")
    if not all(isinstance(card, str) for card in cards):
        raise BadRequest(f"{name} must contain only strings")


def check_reading_body(body: BasicReadingBody, variant: Variant) -> ReadingRequest:
    """Check a body and convert it to a ReadingRequest.

    Raises:
        BadRequest: With a descriptive message for the client
    """
    if not body.question or not body.question.strip():
        raise BadRequest("missing question")

    _check_cards(body.main_cards, "mainCards", MAIN_CARD_COUNT)
    if variant == Variant.DETAILED:
        _check_cards(getattr(body, "branch_cards", None), "branchCards", BRANCH_CARD_COUNT)

    payload = body.model_dump(by_alias=True)
    if variant != Variant.DETAILED:
        payload.pop("branchCards", None)
    return ReadingRequest.from_payload(payload)


def create_app(
    generation_client: Optional[GenerationClientProtocol] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        generation_client: Client to inject (tests pass a fake). When omitted,
                           an OpenAI client is built from settings at startup.
        settings: Settings instance (defaults to the global settings)
    """
    if settings is None:
        settings = default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup/shutdown."""
        owned_client = None
        if getattr(app.state, "pipeline", None) is None:
            owned_client = create_generation_client(settings)
            app.state.pipeline = ReadingPipeline.from_settings(owned_client, settings)
            logger.info(
                f"Reading pipeline initialized: strategy={settings.output_strategy}, "
                f"policy={settings.failure_policy}"
            )

        yield  # App is running

        # Shutdown
        if owned_client is not None:
            await owned_client.close()
            logger.info("Generation client closed")

    app = FastAPI(
        title="innerself-ai",
        description="Three-card reading service for the innerSelf app",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.pipeline = (
        ReadingPipeline.from_settings(generation_client, settings)
        if generation_client is not None
        else None
    )

    @app.exception_handler(BadRequest)
    async def bad_request_handler(request: Request, exc: BadRequest):
        logger.info(f"Rejected request to {request.url.path}: {exc.message}")
        return JSONResponse(status_code=400, content={"error": INVALID_BODY, "message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
            message = f"{location}: {errors[0].get('msg')}" if location else errors[0].get("msg")
        else:
            message = "malformed body"
        return JSONResponse(status_code=400, content={"error": INVALID_BODY, "message": message})

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError):
        return JSONResponse(status_code=502, content=exc.to_dict())

    async def _read(request: Request, body: BasicReadingBody, variant: Variant):
        reading_request = check_reading_body(body, variant)
        pipeline: Optional[ReadingPipeline] = request.app.state.pipeline
        if pipeline is None:
            return JSONResponse(status_code=503, content={"error": "System not initialized"})

        result = await pipeline.run(reading_request, variant)
        return result.envelope

    @app.post("/ai/three-card/basic")
    async def basic_reading(request: Request, body: BasicReadingBody):
        """Basic reading: three directions."""
        return await _read(request, body, Variant.BASIC)

    @app.post("/ai/three-card/clear")
    @app.post("/ai/three-card/detailed")
    async def detailed_reading(request: Request, body: DetailedReadingBody):
        """Detailed reading: three directions with three branches each."""
        return await _read(request, body, Variant.DETAILED)

    @app.get("/health")
    async def health():
        """Health check endpoint for service monitoring."""
        return {
            "ok": True,
            "service": settings.service_name,
            "time": datetime.now(timezone.utc).isoformat(),
        }

    return app


app = create_app()
