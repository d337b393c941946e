import asyncio
from datetime import timedelta

import pytest
from typer.testing import CliRunner

from enrichflow.cli import app
from enrichflow.jobs import EnrichmentJob, FailureHandler, SQLJobStore
from enrichflow.persistence import SQLiteWorkflowRepository
from enrichflow.utils.timeutils import utcnow
from enrichflow.workflow.models import WorkflowInstance, WorkflowStatus


@pytest.fixture
def env(tmp_path, monkeypatch):
    wf_path = tmp_path / "wf.db"
    jobs_url = f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}"
    monkeypatch.setenv("ENRICHFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("ENRICHFLOW_DATABASE_URL", f"sqlite://{wf_path}")
    monkeypatch.setenv("ENRICHFLOW_JOBS_DATABASE_URL", jobs_url)
    return {"wf_path": wf_path, "jobs_url": jobs_url}


def _seed_jobs(jobs_url: str) -> dict:
    async def inner():
        store = SQLJobStore(jobs_url)
        await store.init_db()
        failed = await store.create_job(EnrichmentJob(subscriber_id="s1"))
        await FailureHandler(store).mark_failed(failed.id, "terminal: Insufficient credits")
        old = await store.create_job(
            EnrichmentJob(subscriber_id="s2", created_at=utcnow() - timedelta(hours=48))
        )
        pending = await store.create_job(EnrichmentJob(subscriber_id="s3"))
        await store.close()
        return {"failed": failed.id, "old": old.id, "pending": pending.id}

    return asyncio.run(inner())


def test_workflow_list_and_show(env):
    repo = SQLiteWorkflowRepository(env["wf_path"])
    done = WorkflowInstance(workflow_id="wf-done", workflow_name="wf", status=WorkflowStatus.COMPLETED)
    done.record("step1", {"ok": True})
    failed = WorkflowInstance(
        workflow_id="wf-failed",
        workflow_name="wf",
        status=WorkflowStatus.FAILED,
        error="Workflow timeout waiting for event: enrichment-complete (86400s)",
        error_kind="timeout",
    )
    asyncio.run(repo.save_instance(done))
    asyncio.run(repo.save_instance(failed))
    asyncio.run(repo.register_correlation("enr-1", "wf-done"))

    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0, result.output
    assert "wf-done\tcompleted" in result.output
    assert "wf-failed\tfailed" in result.output

    result = runner.invoke(app, ["workflow", "show", "wf-failed"])
    assert result.exit_code == 0, result.output
    assert "timeout" in result.output

    result = runner.invoke(app, ["workflow", "show", "wf-done"])
    assert "- step1" in result.output

    missing = runner.invoke(app, ["workflow", "show", "missing-id"])
    assert missing.exit_code == 1
    assert "Workflow not found" in missing.output

    result = runner.invoke(app, ["correlations", "list"])
    assert "enr-1\twf-done" in result.output


def test_jobs_commands(env):
    ids = _seed_jobs(env["jobs_url"])
    runner = CliRunner()

    result = runner.invoke(app, ["jobs", "sweep-stale", "--hours", "24"])
    assert result.exit_code == 0, result.output
    assert "Marked 1 job(s) stale" in result.output

    result = runner.invoke(app, ["jobs", "stats"])
    assert "Failed: 1" in result.output
    assert "Stale: 1" in result.output
    assert "terminal: Insufficient credits" in result.output

    result = runner.invoke(app, ["jobs", "list", "--status", "stale"])
    assert ids["old"] in result.output
    assert ids["pending"] not in result.output

    result = runner.invoke(app, ["jobs", "retry", ids["failed"]])
    assert result.exit_code == 0, result.output
    assert "pending again" in result.output

    result = runner.invoke(app, ["jobs", "retry", ids["pending"]])
    assert result.exit_code == 1
