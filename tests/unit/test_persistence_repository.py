import uuid

import pytest

from enrichflow.persistence import (
    InMemoryWorkflowRepository,
    SQLiteWorkflowRepository,
    get_repository,
)
from enrichflow.utils.timeutils import utcnow
from enrichflow.workflow.models import WorkflowInstance, WorkflowStatus


def _instance(name: str = "wf") -> WorkflowInstance:
    return WorkflowInstance(
        workflow_id=f"{name}-{uuid.uuid4().hex}", workflow_name=name, input={"foo": "bar"}
    )


@pytest.mark.asyncio
async def test_sqlite_repository_crud(tmp_path):
    repo = SQLiteWorkflowRepository(tmp_path / "wf.db")
    instance = _instance()

    await repo.save_instance(instance)
    instance.status = WorkflowStatus.RUNNING
    instance.record("step1", {"x": 1})
    await repo.save_instance(instance)
    instance.status = WorkflowStatus.COMPLETED
    instance.completed_at = utcnow()
    await repo.save_instance(instance)

    loaded = await repo.get_instance(instance.workflow_id)
    assert loaded is not None
    assert loaded.status == WorkflowStatus.COMPLETED
    assert loaded.input == {"foo": "bar"}
    assert loaded.result("step1") == {"x": 1}

    completed = await repo.list_instances(status="completed")
    assert [i.workflow_id for i in completed] == [instance.workflow_id]
    assert await repo.list_instances(status="failed") == []


@pytest.mark.asyncio
async def test_sqlite_repository_survives_reopen(tmp_path):
    path = tmp_path / "wf.db"
    repo = SQLiteWorkflowRepository(path)
    instance = _instance()
    await repo.save_instance(instance)
    await repo.register_correlation("enr-1", instance.workflow_id)

    reopened = SQLiteWorkflowRepository(path)
    assert (await reopened.get_instance(instance.workflow_id)).workflow_name == "wf"
    assert await reopened.lookup_correlation("enr-1") == instance.workflow_id


@pytest.mark.asyncio
async def test_inmemory_repository_returns_copies():
    repo = InMemoryWorkflowRepository()
    instance = _instance()
    await repo.save_instance(instance)

    loaded = await repo.get_instance(instance.workflow_id)
    loaded.record("late", 1)
    again = await repo.get_instance(instance.workflow_id)
    assert not again.has("late")
    assert await repo.get_instance("missing") is None


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    monkeypatch.delenv("ENRICHFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("ENRICHFLOW_CONFIG", str(tmp_path / "missing.yaml"))

    assert isinstance(get_repository(), InMemoryWorkflowRepository)
    assert isinstance(get_repository(f"sqlite://{tmp_path / 'x.db'}"), SQLiteWorkflowRepository)
    assert get_repository() is not get_repository()
    with pytest.raises(ValueError):
        get_repository("mysql://nope")
