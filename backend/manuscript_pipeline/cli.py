"""Command-line interface for the manuscript pipeline.

Commands:
- `chunk`: split a text file and report chunk sizes, validation issues and
  the processing estimate. No provider calls.
- `process`: ingest a text file into an in-memory store, run one processing
  job through the provider fallback chain and print status and results.
"""

from __future__ import annotations

import asyncio
import mimetypes
from pathlib import Path
from typing import Annotated, NoReturn

import typer

from manuscript_pipeline.core.config import get_settings
from manuscript_pipeline.core.exceptions import ManuscriptPipelineError
from manuscript_pipeline.core.logging import configure_logging
from manuscript_pipeline.jobs.reporting import StatusReport, build_status_report, collect_results
from manuscript_pipeline.jobs.tracker import JobTracker
from manuscript_pipeline.llm.fallback import FallbackOrchestrator
from manuscript_pipeline.llm.providers import build_providers
from manuscript_pipeline.observability.tracing import TracingConfig
from manuscript_pipeline.processing.chunking import ChunkOptions, ManuscriptChunker
from manuscript_pipeline.services.ingestion import ManuscriptIngestionService, decode_manuscript
from manuscript_pipeline.storage.base import JobStatus
from manuscript_pipeline.storage.memory import InMemoryChunkStore
from manuscript_pipeline.workers.supervisor import JobSupervisor

app = typer.Typer(
    name="manuscript-pipeline",
    no_args_is_help=True,
    help="Chunk manuscripts and process them through a provider fallback chain.",
)


def _exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def _read_manuscript(path: Path) -> tuple[str, str]:
    """Return (text, mime_type) for a manuscript file."""

    mime_type = mimetypes.guess_type(path.name)[0] or "text/plain"
    return decode_manuscript(path.read_bytes()), mime_type


def _echo_status(report: StatusReport) -> None:
    job = report.job
    typer.echo(f"Manuscript: {report.manuscript.filename} ({report.manuscript.status.value})")
    if job is not None:
        typer.echo(
            f"Job {job.id}: {job.status.value} "
            f"completed={job.completed_chunks} failed={job.failed_chunks} total={job.total_chunks}"
        )
        if job.error_message:
            typer.echo(f"Job error: {job.error_message}")
    typer.echo(f"Progress: {report.progress:.1f}%")
    for slot, count in report.provider_stats.success_by_provider.items():
        failed = report.provider_stats.failures_by_provider.get(slot, 0)
        typer.echo(f"Provider {slot.value}: success={count} failed={failed}")
    typer.echo(f"Total attempts: {report.total_attempts}")
    for chunk in report.chunks:
        if chunk.error_message:
            typer.echo(f"Chunk {chunk.index} failed: {chunk.error_message}")


@app.command("chunk")
def chunk_command(
    path: Annotated[Path, typer.Argument(help="Path to a .txt or .md manuscript.")],
    max_chunk_size: Annotated[
        int | None, typer.Option("--max-chunk-size", help="Maximum characters per chunk.")
    ] = None,
    overlap_size: Annotated[
        int | None, typer.Option("--overlap-size", help="Characters re-included from the previous chunk.")
    ] = None,
    preserve_paragraphs: Annotated[
        bool,
        typer.Option(
            "--preserve-paragraphs/--no-preserve-paragraphs",
            help="Prefer paragraph breaks over sentence breaks.",
        ),
    ] = True,
) -> None:
    """Split a manuscript into chunks and print a per-chunk table."""

    settings = get_settings()
    configure_logging(settings)

    try:
        options = ChunkOptions(
            max_chunk_size=max_chunk_size if max_chunk_size is not None else settings.chunk_max_size,
            overlap_size=overlap_size if overlap_size is not None else settings.chunk_overlap_size,
            preserve_paragraphs=preserve_paragraphs,
        )
        text, _ = _read_manuscript(path)
    except (OSError, ValueError) as exc:
        _exit_with_command_error("chunk", exc)

    chunker = ManuscriptChunker(options)
    chunks = chunker.chunk(text)

    typer.echo(f"Chunks: {len(chunks)}")
    for chunk in chunks:
        validation = chunker.validate_chunk(chunk)
        status = "ok" if validation.valid else "; ".join(validation.issues)
        typer.echo(
            f"{chunk.id}: chars={chunk.char_count} words={chunk.word_count} "
            f"overlap={chunk.overlap_chars} [{status}]"
        )
    estimate = ManuscriptChunker.estimate_processing_time(len(chunks))
    typer.echo(f"Estimated processing time: {estimate.minutes}m {estimate.seconds:02d}s")


@app.command("process")
def process_command(
    path: Annotated[Path, typer.Argument(help="Path to a .txt or .md manuscript.")],
    system_prompt: Annotated[
        str | None, typer.Option("--system-prompt", help="System prompt sent with every chunk.")
    ] = None,
    user_prompt: Annotated[
        str | None, typer.Option("--user-prompt", help="Instruction placed before each chunk.")
    ] = None,
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", min=1, help="Chunks processed concurrently per batch."),
    ] = None,
) -> None:
    """Process a manuscript through the provider fallback chain."""

    settings = get_settings()
    configure_logging(settings)
    TracingConfig.init(settings)

    async def _run() -> JobStatus:
        store        = InMemoryChunkStore()
        orchestrator = FallbackOrchestrator.from_settings(settings, providers=build_providers(settings))
        supervisor   = JobSupervisor(
            JobTracker(store, orchestrator),
            concurrency=concurrency if concurrency is not None else settings.processing_concurrency,
        )

        text, mime_type = _read_manuscript(path)
        ingested = await ManuscriptIngestionService(
            store, ChunkOptions.from_settings(settings),
        ).ingest_text(path.name, text, mime_type)
        typer.echo(f"Ingested {ingested.total_chunks} chunks from {path.name}")

        job = await supervisor.start(
            ingested.manuscript.id, system_prompt=system_prompt, user_prompt=user_prompt,
        )
        try:
            job = await supervisor.wait(job.id)
        finally:
            await supervisor.shutdown()

        _echo_status(await build_status_report(store, ingested.manuscript.id))
        results = await collect_results(store, ingested.manuscript.id)
        if results.combined:
            typer.echo("")
            typer.echo(results.combined)
        return job.status

    try:
        status = asyncio.run(_run())
    except (OSError, ManuscriptPipelineError) as exc:
        _exit_with_command_error("process", exc)

    if status == JobStatus.FAILED:
        raise typer.Exit(code=1)


def main() -> None:
    """CLI entrypoint for console scripts."""

    app()


if __name__ == "__main__":
    main()
