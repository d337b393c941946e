"""Workflow execution engine for enrichflow."""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections import defaultdict, deque
from typing import Any, Deque, Dict, Optional, Tuple

from ..exceptions import (
    EventTimeoutError,
    StepTimeoutError,
    WorkflowCancelledError,
    WorkflowNotFoundError,
    error_kind,
)
from ..persistence.inmemory import InMemoryWorkflowRepository
from ..persistence.repository import WorkflowRepository
from ..utils.retry import Sleep, schedule_retry
from ..utils.timeutils import utcnow
from .models import (
    ErrorHook,
    TriggerResult,
    WorkflowDefinition,
    WorkflowEvent,
    WorkflowInstance,
    WorkflowStatus,
    WorkflowStep,
)

logger = logging.getLogger(__name__)


class _Mailbox:
    """Event waiters and undelivered events for one live instance."""

    def __init__(self) -> None:
        self.waiters: Dict[str, asyncio.Future] = {}
        self.pending: Dict[str, Deque[WorkflowEvent]] = defaultdict(deque)

    def take(self, event_type: str) -> Optional[WorkflowEvent]:
        queue = self.pending.get(event_type)
        if queue:
            return queue.popleft()
        return None


class WorkflowEngine:
    """Runs workflow definitions as independent asyncio tasks.

    Each triggered instance executes its steps strictly in order. Instance
    records and correlation entries live in the injected repository; the
    engine itself only keeps the in-process primitives needed to suspend and
    resume running instances.
    """

    def __init__(
        self,
        repository: WorkflowRepository | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._repository = repository or InMemoryWorkflowRepository()
        self._sleep = sleep
        self._mailboxes: Dict[str, _Mailbox] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._live: Dict[str, Tuple[WorkflowDefinition, WorkflowInstance]] = {}

    @property
    def repository(self) -> WorkflowRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Public API
    async def trigger(self, definition: WorkflowDefinition, input: Any = None) -> TriggerResult:
        """Create an instance of ``definition`` and start it in the background."""
        workflow_id = f"{definition.name}-{uuid.uuid4().hex}"
        instance = WorkflowInstance(
            workflow_id=workflow_id,
            workflow_name=definition.name,
            input=input,
        )
        await self._repository.save_instance(instance)
        self._mailboxes[workflow_id] = _Mailbox()
        self._live[workflow_id] = (definition, instance)

        task = asyncio.create_task(self._execute(definition, instance), name=workflow_id)
        self._tasks[workflow_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(workflow_id, None))

        logger.info(f"Triggered workflow {definition.name} as workflow_id={workflow_id}")
        return TriggerResult(workflow_id=workflow_id, status=WorkflowStatus.RUNNING)

    async def get(self, workflow_id: str) -> WorkflowInstance | None:
        """Return the latest persisted record for ``workflow_id``."""
        return await self._repository.get_instance(workflow_id)

    async def wait(self, workflow_id: str, timeout: Optional[float] = None) -> WorkflowInstance:
        """Wait for an in-process instance to finish and return its record."""
        task = self._tasks.get(workflow_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        instance = await self.get(workflow_id)
        if instance is None:
            raise WorkflowNotFoundError(workflow_id)
        return instance

    def emit_event(self, workflow_id: str, event_type: str, data: Any = None) -> bool:
        """Deliver an event to the instance ``workflow_id``.

        The event resolves the step currently waiting for ``event_type`` or is
        kept for the next such wait. Events for unknown or finished instances
        are dropped and ``False`` is returned.
        """
        mailbox = self._mailboxes.get(workflow_id)
        if mailbox is None:
            logger.info(
                f"Dropping event {event_type} for workflow_id={workflow_id}: no running instance"
            )
            return False

        event = WorkflowEvent(type=event_type, workflow_id=workflow_id, data=data)
        waiter = mailbox.waiters.pop(event_type, None)
        if waiter is not None and not waiter.done():
            waiter.set_result(event)
            logger.debug(f"Delivered event {event_type} to workflow_id={workflow_id}")
        else:
            mailbox.pending[event_type].append(event)
            logger.debug(f"Queued event {event_type} for workflow_id={workflow_id}")
        return True

    async def wait_for_event(
        self,
        workflow_id: str,
        event_type: str,
        timeout: float,
        step_name: str = "wait-for-event",
    ) -> WorkflowEvent:
        """Suspend until ``event_type`` arrives for ``workflow_id``.

        Raises:
            EventTimeoutError: If no event arrives within ``timeout`` seconds.
        """
        mailbox = self._mailboxes.get(workflow_id)
        if mailbox is None:
            raise WorkflowNotFoundError(workflow_id)

        queued = mailbox.take(event_type)
        if queued is not None:
            return queued

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        mailbox.waiters[event_type] = future
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise EventTimeoutError(step_name, event_type, workflow_id, timeout) from None
        finally:
            if mailbox.waiters.get(event_type) is future:
                del mailbox.waiters[event_type]

    async def shutdown(self) -> None:
        """Cancel every in-flight instance.

        Cancelled instances are recorded as failed with ``error_kind``
        ``"cancelled"`` and their workflow error hook runs before this
        returns.
        """
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        # Tasks cancelled before their first step never reached _execute.
        for definition, instance in list(self._live.values()):
            await self._cancel(definition, instance, None)

    # ------------------------------------------------------------------
    # Execution
    async def _execute(self, definition: WorkflowDefinition, instance: WorkflowInstance) -> None:
        current: Optional[str] = None
        try:
            instance.status = WorkflowStatus.RUNNING
            await self._repository.save_instance(instance)

            for step in definition.steps:
                current = step.name
                try:
                    if step.skip_if is not None and step.skip_if(instance):
                        logger.info(f"Skipping step {step.name} for workflow_id={instance.workflow_id}")
                        result = None
                    else:
                        result = await self._run_step(step, instance)
                except Exception as exc:
                    await self._fail(definition, step, instance, exc)
                    return

                instance.record(step.name, result)
                await self._repository.save_instance(instance)
                logger.info(f"Completed step {step.name} for workflow_id={instance.workflow_id}")

            instance.status = WorkflowStatus.COMPLETED
            instance.completed_at = utcnow()
            await self._repository.save_instance(instance)
            logger.info(f"Workflow completed for workflow_id={instance.workflow_id}")
        except asyncio.CancelledError:
            await asyncio.shield(self._cancel(definition, instance, current))
            raise
        except Exception:
            logger.exception(f"Workflow {instance.workflow_id} crashed while persisting state")
        finally:
            self._mailboxes.pop(instance.workflow_id, None)
            self._live.pop(instance.workflow_id, None)

    async def _cancel(
        self,
        definition: WorkflowDefinition,
        instance: WorkflowInstance,
        step_name: Optional[str],
    ) -> None:
        # The mailbox goes first so late events are dropped, not queued.
        self._mailboxes.pop(instance.workflow_id, None)
        self._live.pop(instance.workflow_id, None)
        if instance.is_finished:
            return
        exc = WorkflowCancelledError(instance.workflow_id, step_name)
        logger.warning(str(exc))

        instance.status = WorkflowStatus.FAILED
        instance.error = str(exc)
        instance.error_kind = error_kind(exc)
        instance.completed_at = utcnow()
        try:
            await self._repository.save_instance(instance)
        except Exception:
            logger.exception(f"Could not persist cancelled workflow_id={instance.workflow_id}")

        await self._run_hook(definition.on_error, instance, exc, f"workflow {definition.name}")

    async def _run_step(self, step: WorkflowStep, instance: WorkflowInstance) -> Any:
        if step.is_wait:
            return await self.wait_for_event(
                instance.workflow_id, step.wait_for, step.timeout, step_name=step.name
            )
        if step.timeout is None:
            return await self._run_with_retry(step, instance)
        try:
            return await asyncio.wait_for(self._run_with_retry(step, instance), step.timeout)
        except asyncio.TimeoutError:
            raise StepTimeoutError(step.name, step.timeout) from None

    async def _run_with_retry(self, step: WorkflowStep, instance: WorkflowInstance) -> Any:
        attempt = 1
        while True:
            try:
                result = step.action(instance)
                if inspect.isawaitable(result):
                    result = await result
                return result
            except Exception as exc:
                policy = step.retry
                if policy is None or attempt >= policy.max_attempts or not policy.allows(exc):
                    raise
                logger.warning(
                    f"Step {step.name} attempt {attempt}/{policy.max_attempts} failed for "
                    f"workflow_id={instance.workflow_id}: {exc}"
                )
                delay = await schedule_retry(attempt, policy, self._sleep)
                logger.debug(f"Retrying step {step.name} after {delay:g}s")
                attempt += 1

    async def _fail(
        self,
        definition: WorkflowDefinition,
        step: WorkflowStep,
        instance: WorkflowInstance,
        exc: BaseException,
    ) -> None:
        logger.error(f"Step {step.name} failed for workflow_id={instance.workflow_id}: {exc}")
        await self._run_hook(step.on_error, instance, exc, f"step {step.name}")

        instance.status = WorkflowStatus.FAILED
        instance.error = str(exc)
        instance.error_kind = error_kind(exc)
        instance.completed_at = utcnow()
        await self._repository.save_instance(instance)

        await self._run_hook(definition.on_error, instance, exc, f"workflow {definition.name}")

    async def _run_hook(
        self,
        hook: Optional[ErrorHook],
        instance: WorkflowInstance,
        exc: BaseException,
        owner: str,
    ) -> None:
        if hook is None:
            return
        try:
            await hook(instance, exc)
        except Exception:
            logger.exception(
                f"Error hook of {owner} raised for workflow_id={instance.workflow_id}"
            )
