"""
Worker Service - Main entry point.
Runs the evaluation and matcher worker pools, and submits or inspects jobs.
"""

import asyncio
import json
import mimetypes
import sys
from pathlib import Path
from typing import Optional

import click
import pydantic
import yaml
from loguru import logger

from shared.config import get_settings
from shared.errors import PipelineError, ValidationError
from shared.models import JobDescription, JobType

from .app import WorkerApp


def setup_logging():
    """Configure loguru logging."""
    settings = get_settings()
    logger.remove()

    if settings.log_format == "json":
        logger.add(
            sys.stderr,
            format="{message}",
            level=settings.log_level,
            serialize=True,
        )
    else:
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
            level=settings.log_level,
        )


async def run_daemon() -> None:
    """Process jobs until interrupted, polling the store for new submissions."""
    settings = get_settings()
    app = WorkerApp(settings)
    await app.initialize()

    try:
        app.start()
        await app.service.recover(app.orchestrator.stale_before())
        logger.info(f"Polling for new jobs every {settings.poll_interval_seconds}s")

        while True:
            await asyncio.sleep(settings.poll_interval_seconds)
            await app.service.recover(app.orchestrator.stale_before())
            logger.debug(f"Queue status: {app.service.counts()}")
    finally:
        await app.cleanup()


async def _add_document(app: WorkerApp, path: Path):
    mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return await app.documents.add_document(str(path.resolve()), mime_type)


async def submit_job(
    job_type: JobType,
    cv_path: Path,
    job_description_id: Optional[str],
    wait: bool,
    project_path: Optional[Path] = None,
) -> dict:
    settings = get_settings()
    app = WorkerApp(settings)
    await app.initialize()

    try:
        document = await _add_document(app, cv_path)

        input_refs = {"cv_document_id": document.id}
        if job_type == JobType.EVALUATION:
            input_refs["job_description_id"] = job_description_id
            if project_path is not None:
                input_refs["project_document_id"] = (await _add_document(app, project_path)).id

        # The in-memory store only lives as long as this process
        if wait or settings.store_backend == "memory":
            app.start()
            job_id = await app.service.submit(job_type, input_refs)
            await app.join()
        else:
            job_id = await app.service.submit(job_type, input_refs, enqueue=False)
            logger.info(f"Job {job_id} stored, a running worker will pick it up")

        return await app.service.poll(job_id)
    finally:
        await app.cleanup()


async def job_status(job_id: str, show_error: bool) -> dict:
    app = WorkerApp()
    await app.initialize()
    try:
        view = await app.service.poll(job_id)
        if show_error:
            view["error"] = await app.service.error_for(job_id)
        return view
    finally:
        await app.cleanup()


async def save_job_description(path: Path) -> dict:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    try:
        job = JobDescription.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid job description in {path.name}: {e.error_count()} errors") from e

    settings = get_settings()
    if settings.store_backend == "memory":
        logger.warning("In-memory store: the job description is discarded when this command exits")
    app = WorkerApp(settings)
    await app.initialize()
    try:
        saved = await app.documents.add_job_description(job)
        return saved.model_dump(mode="json")
    finally:
        await app.cleanup()


def _echo(data: dict) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
def cli():
    """Candidate analysis pipeline worker."""
    setup_logging()


@cli.command()
def run():
    """Run both worker pools as a daemon."""
    try:
        asyncio.run(run_daemon())
    except KeyboardInterrupt:
        logger.info("Worker stopped")


@cli.group()
def submit():
    """Submit a CV for analysis."""


@submit.command()
@click.argument("cv", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--job-description", "-j", help="Job description id or slug (default: built-in)")
@click.option(
    "--project",
    "-p",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Project report to evaluate alongside the CV",
)
@click.option("--wait", "-w", is_flag=True, help="Process in this process and print the result")
def evaluation(cv: Path, job_description: Optional[str], project: Optional[Path], wait: bool):
    """Evaluate a CV (and optionally a project report) against a job description."""
    try:
        _echo(asyncio.run(submit_job(JobType.EVALUATION, cv, job_description, wait, project)))
    except PipelineError as e:
        raise click.ClickException(e.public_message) from e


@submit.command()
@click.argument("cv", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--wait", "-w", is_flag=True, help="Process in this process and print the result")
def matcher(cv: Path, wait: bool):
    """Match a CV against job listings."""
    try:
        _echo(asyncio.run(submit_job(JobType.MATCHER, cv, None, wait)))
    except PipelineError as e:
        raise click.ClickException(e.public_message) from e


@cli.command("add-job-description")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def add_job_description(path: Path):
    """Store a job description from a YAML file (replaces one with the same slug)."""
    try:
        _echo(asyncio.run(save_job_description(path)))
    except PipelineError as e:
        raise click.ClickException(e.public_message) from e


@cli.command()
@click.argument("job_id")
@click.option("--show-error", is_flag=True, help="Include the error of a failed job")
def status(job_id: str, show_error: bool):
    """Show the status (and result) of a job."""
    try:
        _echo(asyncio.run(job_status(job_id, show_error)))
    except PipelineError as e:
        raise click.ClickException(e.public_message) from e


if __name__ == "__main__":
    cli()
