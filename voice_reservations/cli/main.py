"""
CLI interface for Voice Reservations.

Provides command-line access to the batch pipeline, live sessions and the
local reservation store.
"""

import asyncio
import sqlite3
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from voice_reservations.config.loader import load_pricing_table
from voice_reservations.config.logging import configure_logging
from voice_reservations.config.settings import Settings
from voice_reservations.core.errors import ReservationError
from voice_reservations.core.models import (
    PartialReservation,
    Provider,
    TranscriptionResult,
    apply_edits,
)
from voice_reservations.core.pipeline import BatchPipeline
from voice_reservations.core.pricing import PRICING_TABLE, PricingTable
from voice_reservations.core.session import LiveSession
from voice_reservations.sdk.audio import PcmFileSource, guess_audio_mime, wav_duration_ms
from voice_reservations.sdk.gemini_client import GeminiClient
from voice_reservations.sdk.gemini_live import (
    GeminiLiveConnector,
    HttpCredentialProvider,
    StaticCredentialProvider,
)
from voice_reservations.sdk.openai_client import OpenAIBatchClient
from voice_reservations.storage.models import Reservation
from voice_reservations.storage.repository import ReservationRepository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

BATCH_PROVIDERS = [p.value for p in Provider if not p.is_live]


def _settings() -> Settings:
    return Settings.from_env()


def _pricing(settings: Settings) -> PricingTable:
    if settings.pricing_path:
        return load_pricing_table(settings.pricing_path)
    return PRICING_TABLE


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Voice Reservations CLI."""
    try:
        settings = _settings()
        configure_logging(settings.log_level, settings.log_format)
    except ValueError as e:
        console.print(f"[red]Error in configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    if ctx.invoked_subcommand is None:
        console.print("Voice Reservations - Use --help to see available commands")


@app.command()
def init():
    """Initialize the local reservation store."""
    settings = _settings()
    try:
        initialize_schema(settings.db_path)
        console.print(f"[green]✓[/] Reservation store initialized at {settings.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status():
    """Show which providers are configured."""
    settings = _settings()
    table = Table(title="Configuration")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("OPENAI_API_KEY", _configured(settings.openai_api_key))
    table.add_row("GOOGLE_AI_API_KEY", _configured(settings.google_api_key))
    table.add_row("Credential endpoint", settings.credential_url or "-")
    table.add_row("Database", settings.db_path)
    table.add_row("Pricing file", settings.pricing_path or "built-in")
    console.print(table)


def _configured(value: Optional[str]) -> str:
    return "[green]configured[/]" if value else "[yellow]missing[/]"


@app.command()
def pricing():
    """Show the pricing table used for cost estimates."""
    try:
        table_data = _pricing(_settings())
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading pricing:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Pricing (USD)")
    table.add_column("Provider")
    table.add_column("Model")
    table.add_column("Billing")
    table.add_column("Input / 1M tok", justify="right")
    table.add_column("Output / 1M tok", justify="right")
    table.add_column("Per minute", justify="right")

    for provider, entry in table_data.providers.items():
        audio = entry.audio
        per_minute = "-"
        if audio.transcription_per_minute:
            per_minute = f"{audio.transcription_per_minute} (transcription)"
        elif audio.input_per_minute or audio.output_per_minute:
            per_minute = f"{audio.input_per_minute} in / {audio.output_per_minute} out"
        for model, rates in entry.models.items():
            label = f"{model} (default)" if model == entry.default_model else model
            table.add_row(
                provider.value, label, entry.billing_mode.value,
                str(rates.input_per_m), str(rates.output_per_m), per_minute,
            )
    console.print(table)


@app.command()
def transcribe(
    audio_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Recording to process"),
    provider: str = typer.Option(
        "openai",
        "--provider",
        "-p",
        help=f"Batch provider ({', '.join(BATCH_PROVIDERS)})"
    ),
    model: Optional[str] = typer.Option(
        None,
        "--model",
        "-m",
        help="Extraction model (defaults to the provider's default)"
    ),
    save: bool = typer.Option(
        False,
        "--save",
        "-s",
        help="Save the extracted reservation"
    ),
    name: Optional[str] = typer.Option(None, "--name", help="Override the client name"),
    date: Optional[str] = typer.Option(None, "--date", help="Override the date (YYYY-MM-DD)"),
    time: Optional[str] = typer.Option(None, "--time", help="Override the time (HH:MM)"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Override the notes")
):
    """Transcribe a recording and extract the reservation from it.

    Overrides are applied to the extracted fields before display and save.
    """
    if provider not in BATCH_PROVIDERS:
        console.print(f"[red]Error:[/] Unsupported batch provider: {provider}")
        sys.exit(EXIT_CODE_FAIL)
    selected = Provider(provider)
    settings = _settings()

    try:
        pipeline = _build_pipeline(settings, selected)
        result = asyncio.run(pipeline.transcribe_and_extract(
            audio_path.read_bytes(),
            selected,
            model=model,
            mime_type=guess_audio_mime(str(audio_path)),
            audio_duration_ms=wav_duration_ms(str(audio_path)),
        ))
    except (ReservationError, OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if any(value is not None for value in (name, date, time, notes)):
        edited = apply_edits(
            result.reservation or PartialReservation(),
            selected,
            client_name=name, date=date, time=time, notes=notes,
        )
        result = replace(result, reservation=edited)

    _display_result(result)
    if save:
        _save(settings, result)
    sys.exit(EXIT_CODE_PASS)


def _build_pipeline(settings: Settings, provider: Provider) -> BatchPipeline:
    pricing_table = _pricing(settings)
    if provider is Provider.OPENAI:
        return BatchPipeline(
            openai_client=OpenAIBatchClient(settings.require_openai_key()),
            pricing=pricing_table,
        )
    return BatchPipeline(
        gemini_client=GeminiClient(settings.require_google_key()),
        pricing=pricing_table,
    )


@app.command()
def live(
    audio_path: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="16 kHz mono 16-bit PCM or WAV recording"
    ),
    model: Optional[str] = typer.Option(
        None,
        "--model",
        "-m",
        help="Gemini Live model"
    ),
    stop_after: float = typer.Option(
        30.0,
        "--stop-after",
        help="Stop the session after this many seconds"
    ),
    normalize_names: bool = typer.Option(
        False,
        "--normalize-names",
        help="Convert inflected client names to the nominative"
    ),
    save: bool = typer.Option(
        False,
        "--save",
        "-s",
        help="Save the extracted reservation"
    )
):
    """Stream a recording through a Gemini Live session."""
    settings = _settings()
    if settings.credential_url:
        credentials = HttpCredentialProvider(settings.credential_url)
    else:
        credentials = StaticCredentialProvider(settings.google_api_key)

    try:
        pricing_table = _pricing(settings)
        session = LiveSession(
            GeminiLiveConnector(credentials, model=model),
            PcmFileSource(str(audio_path)),
            pricing=pricing_table,
            normalize_names=normalize_names,
        )
        result = asyncio.run(_run_live(session, stop_after))
    except (ReservationError, OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if result is None:
        console.print("[red]Live session failed[/]")
        sys.exit(EXIT_CODE_FAIL)

    _display_result(result)
    if save:
        _save(settings, result)
    sys.exit(EXIT_CODE_PASS)


async def _run_live(session: LiveSession, stop_after: float) -> Optional[TranscriptionResult]:
    task = asyncio.ensure_future(session.run())
    done, _ = await asyncio.wait({task}, timeout=stop_after)
    if not done:
        await session.stop()
    return await task


@app.command(name="list")
def list_reservations():
    """List saved reservations, newest first."""
    settings = _settings()
    reservations = ReservationRepository(settings.db_path).load()
    if not reservations:
        console.print("\n[dim]No saved reservations.[/]")
        return

    table = Table(title="Reservations")
    table.add_column("ID")
    table.add_column("Client")
    table.add_column("Date")
    table.add_column("Time")
    table.add_column("Provider")
    table.add_column("Cost", justify="right")
    for reservation in reservations:
        metrics = reservation.metrics
        cost = "-"
        if metrics is not None and metrics.estimated_cost_usd is not None:
            cost = _format_currency(metrics.estimated_cost_usd)
        table.add_row(
            reservation.id, reservation.client_name, reservation.date,
            reservation.time or "-", reservation.provider.value, cost,
        )
    console.print(table)


@app.command()
def delete(reservation_id: str = typer.Argument(..., help="Reservation id")):
    """Delete a saved reservation."""
    settings = _settings()
    if ReservationRepository(settings.db_path).delete(reservation_id):
        console.print(f"[green]✓[/] Deleted {reservation_id}")
        sys.exit(EXIT_CODE_PASS)
    console.print(f"[red]Error:[/] No reservation with id {reservation_id}")
    sys.exit(EXIT_CODE_FAIL)


def _format_currency(amount: float) -> str:
    """Format a small USD amount with six decimals."""
    return f"${amount:,.6f}"


def _display_result(result: TranscriptionResult):
    """Display the transcription, extracted fields and usage."""
    console.print("\n[bold]Transcription[/bold]")
    console.print("-" * 40)
    console.print(result.text or "[dim](empty)[/]")

    reservation = result.reservation or PartialReservation()
    console.print("\n[bold]Reservation[/bold]")
    console.print(f"Client: {reservation.client_name or '-'}")
    console.print(f"Date: {reservation.date or '-'}")
    console.print(f"Time: {reservation.time or '-'}")
    if reservation.notes:
        console.print(f"Notes: {reservation.notes}")

    metrics = result.metrics
    console.print(f"\n[bold]Usage[/bold] ({result.provider.value}, {result.model})")
    console.print(f"Duration: {metrics.duration_ms} ms")
    console.print(f"Tokens: {metrics.tokens_input or 0} in / {metrics.tokens_output or 0} out")
    if metrics.estimated_cost_usd is not None:
        console.print(f"Estimated cost: {_format_currency(metrics.estimated_cost_usd)}")


def _save(settings: Settings, result: TranscriptionResult):
    try:
        reservation = Reservation.create(result.reservation, result.provider, result.metrics)
        ReservationRepository(settings.db_path).add(reservation)
    except (sqlite3.Error, ValueError) as e:
        console.print(f"[red]Error saving reservation:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"\n[green]✓[/] Saved reservation {reservation.id}")


if __name__ == "__main__":
    app()
