"""Workflow definitions and runtime records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from ..utils.retry import RetryPolicy
from ..utils.timeutils import Duration, parse_duration, utcnow

_MISSING = object()


class WorkflowStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepOutput(BaseModel):
    """Result produced by one completed step."""

    name: str
    output: Any = None
    completed_at: datetime = Field(default_factory=utcnow)


class WorkflowInstance(BaseModel):
    """State of one workflow execution.

    Step outputs are kept in execution order; later steps read earlier
    results through :meth:`result` or :meth:`get`.
    """

    workflow_id: str
    workflow_name: str
    input: Any = None
    steps: List[StepOutput] = Field(default_factory=list)
    status: WorkflowStatus = WorkflowStatus.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    def record(self, name: str, output: Any) -> None:
        """Store ``output`` as the result of step ``name``."""
        self.steps.append(StepOutput(name=name, output=output))

    def result(self, name: str) -> Any:
        """Return the output of step ``name``; raise ``KeyError`` if absent."""
        value = self.get(name, _MISSING)
        if value is _MISSING:
            raise KeyError(name)
        return value

    def get(self, name: str, default: Any = None) -> Any:
        for step in self.steps:
            if step.name == name:
                return step.output
        return default

    def has(self, name: str) -> bool:
        return any(step.name == name for step in self.steps)

    @property
    def previous_output(self) -> Any:
        return self.steps[-1].output if self.steps else None

    @property
    def is_finished(self) -> bool:
        return self.status in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED)


class WorkflowEvent(BaseModel):
    """An out-of-band signal addressed to one workflow instance."""

    type: str
    workflow_id: str
    data: Any = None
    timestamp: datetime = Field(default_factory=utcnow)


class TriggerResult(BaseModel):
    workflow_id: str
    status: WorkflowStatus


StepAction = Callable[[WorkflowInstance], Union[Any, Awaitable[Any]]]
ErrorHook = Callable[[WorkflowInstance, BaseException], Awaitable[None]]
SkipPredicate = Callable[[WorkflowInstance], bool]


@dataclass(frozen=True)
class WorkflowStep:
    """One unit of work in a workflow.

    Exactly one of ``action`` or ``wait_for`` is set. Steps built with
    :meth:`wait_for_event` suspend until a matching event arrives.
    """

    name: str
    action: Optional[StepAction] = None
    retry: Optional[RetryPolicy] = None
    timeout: Optional[Duration] = None
    on_error: Optional[ErrorHook] = None
    skip_if: Optional[SkipPredicate] = None
    wait_for: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Step name is required")
        if (self.action is None) == (self.wait_for is None):
            raise ValueError(f"Step {self.name} needs exactly one of action or wait_for")
        if self.wait_for is not None and self.timeout is None:
            raise ValueError(f"Wait-for-event step {self.name} requires a timeout")
        if self.timeout is not None:
            object.__setattr__(self, "timeout", parse_duration(self.timeout))

    @classmethod
    def wait_for_event(
        cls,
        name: str,
        event_type: str,
        timeout: Duration,
        on_error: Optional[ErrorHook] = None,
        skip_if: Optional[SkipPredicate] = None,
    ) -> "WorkflowStep":
        """Build a step that resolves with the first ``event_type`` event."""
        return cls(
            name=name,
            wait_for=event_type,
            timeout=timeout,
            on_error=on_error,
            skip_if=skip_if,
        )

    @property
    def is_wait(self) -> bool:
        return self.wait_for is not None


@dataclass(frozen=True)
class WorkflowDefinition:
    """Named, ordered sequence of steps."""

    name: str
    steps: Tuple[WorkflowStep, ...] = field(default_factory=tuple)
    on_error: Optional[ErrorHook] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        names = [step.name for step in self.steps]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate step names in {self.name}: {sorted(duplicates)}")

    def step(self, name: str) -> WorkflowStep:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(name)
