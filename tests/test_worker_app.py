"""
Worker wiring and CLI, run offline against the in-memory backend.
"""

import asyncio
import json
import sys

import pytest
from click.testing import CliRunner
from loguru import logger

from shared.config import Settings, get_settings
from shared.models import JobType
from worker.app import WorkerApp
from worker.main import cli

CV = "Jane Doe\njane@example.com\n\nBackend engineer working with Python and MongoDB.\n"


@pytest.fixture
def cv_file(tmp_path):
    path = tmp_path / "jane-doe.txt"
    path.write_text(CV, encoding="utf-8")
    return path


@pytest.fixture
def offline_env(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("APIFY_API_TOKEN", "")
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    logger.remove()
    logger.add(sys.stderr)


def test_worker_app_runs_offline_evaluation(cv_file):
    settings = Settings(_env_file=None, store_backend="memory", openai_api_key="", apify_api_token="")

    async def scenario():
        app = WorkerApp(settings)
        await app.initialize()
        try:
            app.start()
            document = await app.documents.add_document(str(cv_file), "text/plain")
            job_id = await app.service.submit(JobType.EVALUATION, {"cv_document_id": document.id})
            await app.join()
            return await app.service.poll(job_id), app.service.counts()
        finally:
            await app.cleanup()

    view, counts = asyncio.run(scenario())

    assert view["status"] == "completed"
    assert view["result"]["candidate_name"] == "Jane Doe"
    assert view["result"]["cv_match_rate"] == 50.0
    assert view["result"]["recommendation"] == "CONDITIONAL"
    assert counts["evaluation"]["completed"] == 1
    assert counts["matcher"]["completed"] == 0


def test_cli_submit_matcher_waits_for_result(offline_env, cv_file):
    result = CliRunner().invoke(cli, ["submit", "matcher", str(cv_file), "--wait"])

    assert result.exit_code == 0, result.output
    view = json.loads(result.stdout)
    assert view["status"] == "completed"
    assert view["result"]["user_profile"]["name"] == "Jane Doe"
    assert view["result"]["suggested_roles"] == ["Software Engineer"]
    assert len(view["result"]["jobs"]) == 5


def test_cli_status_of_unknown_job(offline_env):
    result = CliRunner().invoke(cli, ["status", "missing-job"])

    assert result.exit_code == 1
    assert "Job not found" in result.output


def test_cli_add_job_description(offline_env, tmp_path):
    path = tmp_path / "data-engineer.yaml"
    path.write_text(
        "slug: data-engineer\n"
        "title: Data Engineer\n"
        "company: Acme\n"
        "requirements:\n"
        "  technical: [Python, Spark]\n",
        encoding="utf-8",
    )

    result = CliRunner().invoke(cli, ["add-job-description", str(path)])

    assert result.exit_code == 0, result.output
    saved = json.loads(result.stdout)
    assert saved["slug"] == "data-engineer"
    assert saved["requirements"]["technical"] == ["Python", "Spark"]


def test_cli_add_job_description_rejects_invalid_file(offline_env, tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("title: No slug or company\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["add-job-description", str(path)])

    assert result.exit_code == 1
    assert "Invalid job description in broken.yaml" in result.output


def test_worker_app_evaluates_project_report_offline(cv_file, tmp_path):
    settings = Settings(_env_file=None, store_backend="memory", openai_api_key="", apify_api_token="")
    report = tmp_path / "project.txt"
    report.write_text("Order service with retries and a README.\n", encoding="utf-8")

    async def scenario():
        app = WorkerApp(settings)
        await app.initialize()
        try:
            app.start()
            cv = await app.documents.add_document(str(cv_file), "text/plain")
            project = await app.documents.add_document(str(report), "text/plain")
            job_id = await app.service.submit(
                JobType.EVALUATION,
                {"cv_document_id": cv.id, "project_document_id": project.id},
            )
            await app.join()
            return await app.store.require(job_id)
        finally:
            await app.cleanup()

    job = asyncio.run(scenario())

    assert job.status.value == "completed"
    # Rubric entries are seeded at start-up
    assert job.partial["evaluate_project"]["rubric_source"] == "vector_store"
    assert job.result["project_score"] == 60.0
    assert job.result["project_feedback"] == "Unable to evaluate"
