"""Workflow engine: step sequences with retries, timeouts and events."""

from __future__ import annotations

from .engine import WorkflowEngine
from .models import (
    StepOutput,
    TriggerResult,
    WorkflowDefinition,
    WorkflowEvent,
    WorkflowInstance,
    WorkflowStatus,
    WorkflowStep,
)

__all__ = [
    "WorkflowEngine",
    "WorkflowDefinition",
    "WorkflowStep",
    "WorkflowInstance",
    "WorkflowEvent",
    "WorkflowStatus",
    "StepOutput",
    "TriggerResult",
]
