"""Command-line interface for the innerself-ai reading service."""

import asyncio
import json
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from .config import settings
from .errors import PipelineError
from .fallback import build_fallback
from .llm_client import create_generation_client
from .models import BRANCH_CARD_COUNT, MAIN_CARD_COUNT, ReadingRequest, Variant
from .pipeline import FailurePolicy, ReadingPipeline
from .prompts import build_prompt

# Set up logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# CLI app
app = typer.Typer(
    name="innerself",
    help="innerself-ai: Three-card reading service for the innerSelf app",
    add_completion=False,
)
console = Console()


def _build_request(
    question: str,
    cards: list[str],
    context: Optional[str],
    branches: Optional[list[str]],
    variant: Variant,
) -> ReadingRequest:
    if len(cards) != MAIN_CARD_COUNT:
        console.print(f"[red]Exactly {MAIN_CARD_COUNT} --card values are required (got {len(cards)})[/red]")
        raise typer.Exit(1)
    branches = branches or []
    if variant == Variant.DETAILED and len(branches) != BRANCH_CARD_COUNT:
        console.print(
            f"[red]Detailed readings need exactly {BRANCH_CARD_COUNT} --branch values "
            f"(got {len(branches)})[/red]"
        )
        raise typer.Exit(1)
    return ReadingRequest(
        question=question,
        context=context,
        main_cards=tuple(cards),
        branch_cards=tuple(branches) if variant == Variant.DETAILED else (),
    )


def _print_envelope(envelope: dict, title: str) -> None:
    rendered = json.dumps(envelope, ensure_ascii=False, indent=2)
    console.print(Panel(Syntax(rendered, "json", word_wrap=True), title=title, border_style="green"))


# Shared options
QUESTION = typer.Argument(..., help="Question to ask")
CARDS = typer.Option(..., "--card", "-c", help="Main card label (repeat 3 times, in A, B, C order)")
CONTEXT = typer.Option(None, "--context", help="Prior context or already-chosen path")
BRANCHES = typer.Option(None, "--branch", "-b", help="Branch card label (repeat 9 times for detailed readings)")
VARIANT = typer.Option(Variant.BASIC, "--variant", "-v", help="Reading variant")


@app.command()
def config():
    """Show current configuration (for debugging)."""
    console.print(Panel("Current Configuration", style="bold blue"))

    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Status", style="yellow")

    api_key_status = "OK" if settings.openai_api_key else "[red]MISSING[/red]"
    api_key_display = f"{settings.openai_api_key[:10]}..." if settings.openai_api_key else "[red]Not set[/red]"
    table.add_row("OPENAI_API_KEY", api_key_display, api_key_status)
    if settings.openai_base_url:
        table.add_row("OPENAI_BASE_URL", settings.openai_base_url, "Custom endpoint")
    table.add_row("OPENAI_MODEL", settings.openai_model, "OK")
    table.add_row("MAX_OUTPUT_TOKENS", str(settings.max_output_tokens), "OK")
    table.add_row("GENERATION_TIMEOUT_SECONDS", str(settings.generation_timeout_seconds), "OK")
    table.add_row("OUTPUT_STRATEGY", settings.output_strategy, "OK")

    policy_status = "OK" if settings.failure_policy == "fallback" else "[yellow]Diagnostic[/yellow]"
    table.add_row("FAILURE_POLICY", settings.failure_policy, policy_status)
    table.add_row("ENFORCE_PROSE_LENGTH", str(settings.enforce_prose_length), "OK")
    table.add_row("PORT", str(settings.port), "OK")

    console.print(table)

    if not settings.openai_api_key:
        console.print("\n[yellow]OPENAI_API_KEY is not set: every reading will use the fallback.[/yellow]")
    else:
        console.print("\n[green]Configuration is valid![/green]")


@app.command()
def prompt(
    question: str = QUESTION,
    cards: list[str] = CARDS,
    context: Optional[str] = CONTEXT,
    branches: Optional[list[str]] = BRANCHES,
    variant: Variant = VARIANT,
):
    """Print the prompt that would be sent for a reading."""
    request = _build_request(question, cards, context, branches, variant)
    console.print(Panel(build_prompt(request, variant), title=f"Prompt ({variant.value})", border_style="blue"))


@app.command()
def fallback(
    question: str = QUESTION,
    cards: list[str] = CARDS,
    context: Optional[str] = CONTEXT,
    branches: Optional[list[str]] = BRANCHES,
    variant: Variant = VARIANT,
):
    """Print the fallback reading for a request."""
    request = _build_request(question, cards, context, branches, variant)
    _print_envelope(build_fallback(request, variant), f"Fallback ({variant.value})")


@app.command()
def read(
    question: str = QUESTION,
    cards: list[str] = CARDS,
    context: Optional[str] = CONTEXT,
    branches: Optional[list[str]] = BRANCHES,
    variant: Variant = VARIANT,
    diagnostic: bool = typer.Option(
        False, "--diagnostic", "-d", help="Report pipeline errors instead of falling back"
    ),
):
    """Run one reading against the configured generation service."""
    request = _build_request(question, cards, context, branches, variant)
    policy = FailurePolicy.PROPAGATE if diagnostic else None

    async def _run():
        client = create_generation_client(settings)
        try:
            pipeline = ReadingPipeline.from_settings(client, settings)
            return await pipeline.run(request, variant, policy=policy)
        finally:
            await client.close()

    try:
        with console.status("Generating reading..."):
            result = asyncio.run(_run())
    except PipelineError as e:
        console.print(Panel(
            json.dumps(e.to_dict(), ensure_ascii=False, indent=2),
            title=f"[red]{e.code.value}[/red]",
            border_style="red",
        ))
        if e.details:
            console.print(f"[dim]{e.details}[/dim]")
        raise typer.Exit(1)

    _print_envelope(result.envelope, f"Reading ({variant.value})")

    outcome_style = "green" if not result.used_fallback else "yellow"
    console.print(
        f"[{outcome_style}]outcome={result.outcome.value}[/{outcome_style}] "
        f"request_id={result.request_id} latency_ms={result.latency_ms}"
        + (f" error_code={result.error_code.value}" if result.error_code else "")
    )
    for warning in result.prose_warnings:
        console.print(f"  [yellow]• {warning}[/yellow]")


@app.command()
def serve(
    host: str = typer.Option(settings.host, "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to bind to"),
):
    """Start the HTTP service."""
    console.print(Panel(
        "innerself-ai reading service\n"
        f"Listening on http://{host}:{port}",
        style="bold cyan"
    ))

    try:
        import uvicorn
        from .app import app as http_app

        console.print("[dim]Press Ctrl+C to stop[/dim]\n")
        uvicorn.run(http_app, host=host, port=port, log_level=settings.log_level.lower())

    except ImportError as e:
        console.print(f"[red]Import error: {e}[/red]")
        console.print("[yellow]Make sure uvicorn is installed: pip install uvicorn[/yellow]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
