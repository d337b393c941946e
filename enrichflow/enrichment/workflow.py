"""The subscriber enrichment workflow: batch, submit, wait, process."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set

from pydantic import BaseModel

from ..exceptions import error_kind
from ..jobs.batching import MAX_BATCH_SIZE, submit_batch
from ..jobs.failures import FailureHandler
from ..jobs.store import JobStore
from ..provider.client import RETRYABLE_STATUS_CODES, ProviderClient
from ..provider.schemas import EnrichmentCallback
from ..registry import CorrelationRegistry
from ..utils.retry import BackoffStrategy, RetryPolicy
from ..utils.timeutils import Duration
from ..workflow.models import WorkflowDefinition, WorkflowEvent, WorkflowInstance, WorkflowStep
from .results import ProcessStepOutput, Scorer, process_callback

logger = logging.getLogger(__name__)

WORKFLOW_NAME = "subscriber-enrichment"
BATCH_STEP = "batch-pending-jobs"
SUBMIT_STEP = "submit-to-provider"
WAIT_STEP = "wait-for-webhook"
PROCESS_STEP = "process-results"
ENRICHMENT_COMPLETE = "enrichment-complete"

DEFAULT_CALLBACK_TIMEOUT = "24h"

BATCH_RETRY = RetryPolicy(
    max_attempts=3, backoff=BackoffStrategy.EXPONENTIAL, initial_delay=1.0, max_delay=10.0
)
SUBMIT_RETRY = RetryPolicy(
    max_attempts=5,
    backoff=BackoffStrategy.EXPONENTIAL,
    initial_delay=1.0,
    max_delay=60.0,
    retry_on=RETRYABLE_STATUS_CODES,
)
PROCESS_RETRY = RetryPolicy(
    max_attempts=3, backoff=BackoffStrategy.EXPONENTIAL, initial_delay=1.0, max_delay=10.0
)


class EnrichmentWorkflowInput(BaseModel):
    trigger_type: str = "scheduled-batch"
    subscriber_id: Optional[str] = None
    email: Optional[str] = None


class BatchedJob(BaseModel):
    job_id: str
    subscriber_id: str


class BatchStepOutput(BaseModel):
    jobs: List[BatchedJob] = []
    batch_count: int = 0

    @property
    def job_ids(self) -> List[str]:
        return [job.job_id for job in self.jobs]


class SubmitStepOutput(BaseModel):
    correlation_id: str
    job_ids: List[str]


def _batch(instance: WorkflowInstance) -> BatchStepOutput:
    return BatchStepOutput.model_validate(instance.get(BATCH_STEP) or {})


def _nothing_to_do(instance: WorkflowInstance) -> bool:
    return not _batch(instance).jobs


class EnrichmentSteps:
    """Step actions and error handling shared by every enrichment instance.

    Job ids picked by a running instance stay reserved until their
    correlation id is stored, so instances triggered close together never
    batch the same pending job.
    """

    def __init__(
        self,
        store: JobStore,
        provider: ProviderClient,
        registry: CorrelationRegistry,
        failures: FailureHandler,
        webhook_url: str,
        batch_size: int = MAX_BATCH_SIZE,
        scorer: Optional[Scorer] = None,
    ) -> None:
        if not 0 < batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")
        self.store = store
        self.provider = provider
        self.registry = registry
        self.failures = failures
        self.webhook_url = webhook_url
        self.batch_size = batch_size
        self.scorer = scorer
        self._reserved: Set[str] = set()
        self._claims: Dict[str, Set[str]] = {}

    def _release(self, workflow_id: str) -> None:
        self._reserved -= self._claims.pop(workflow_id, set())

    # ------------------------------------------------------------------
    async def batch_pending_jobs(self, instance: WorkflowInstance) -> BatchStepOutput:
        pending = await self.store.query_pending(self.batch_size + len(self._reserved))
        selected = [job for job in pending if job.id not in self._reserved][: self.batch_size]
        if selected:
            claimed = {job.id for job in selected}
            self._reserved |= claimed
            self._claims[instance.workflow_id] = claimed
            logger.info(
                f"Batched {len(selected)} pending job(s) for workflow_id={instance.workflow_id}"
            )
        else:
            logger.info(f"No pending jobs for workflow_id={instance.workflow_id}")
        return BatchStepOutput(
            jobs=[BatchedJob(job_id=j.id, subscriber_id=j.subscriber_id) for j in selected],
            batch_count=1 if selected else 0,
        )

    async def submit_to_provider(self, instance: WorkflowInstance) -> SubmitStepOutput:
        batch = _batch(instance)
        jobs = [job for job in [await self.store.get_job(i) for i in batch.job_ids] if job]
        correlation_id = await submit_batch(self.store, self.provider, jobs, self.webhook_url)

        await self.store.store_correlation_id(batch.job_ids, correlation_id)
        self._release(instance.workflow_id)
        await self.registry.register(correlation_id, instance.workflow_id)
        return SubmitStepOutput(correlation_id=correlation_id, job_ids=batch.job_ids)

    async def process_results(self, instance: WorkflowInstance) -> ProcessStepOutput:
        submitted = SubmitStepOutput.model_validate(instance.result(SUBMIT_STEP))
        event = WorkflowEvent.model_validate(instance.result(WAIT_STEP))
        callback = EnrichmentCallback.model_validate(event.data)
        if callback.correlation_id != submitted.correlation_id:
            raise ValueError(
                f"Callback for {callback.correlation_id} delivered to batch {submitted.correlation_id}"
            )

        output = await process_callback(self.store, self.failures, callback, self.scorer)
        await self.registry.unregister(submitted.correlation_id)
        return output

    async def on_error(self, instance: WorkflowInstance, error: BaseException) -> None:
        """Fail the still-pending jobs of the batch and drop its correlation."""
        reason = f"{error_kind(error)}: {error}"
        logger.error(f"Enrichment workflow {instance.workflow_id} failed: {reason}")
        try:
            job_ids = _batch(instance).job_ids
            if job_ids:
                failed = await self.failures.fail_batch(job_ids, reason)
                logger.info(f"Marked {failed} job(s) failed for workflow_id={instance.workflow_id}")

            submitted = instance.get(SUBMIT_STEP)
            if submitted:
                correlation_id = SubmitStepOutput.model_validate(submitted).correlation_id
                await self.registry.unregister(correlation_id)
        finally:
            self._release(instance.workflow_id)

    # ------------------------------------------------------------------
    def definition(self, callback_timeout: Duration = DEFAULT_CALLBACK_TIMEOUT) -> WorkflowDefinition:
        return WorkflowDefinition(
            name=WORKFLOW_NAME,
            steps=(
                WorkflowStep(name=BATCH_STEP, action=self.batch_pending_jobs, retry=BATCH_RETRY),
                WorkflowStep(
                    name=SUBMIT_STEP,
                    action=self.submit_to_provider,
                    retry=SUBMIT_RETRY,
                    skip_if=_nothing_to_do,
                ),
                WorkflowStep.wait_for_event(
                    WAIT_STEP,
                    ENRICHMENT_COMPLETE,
                    timeout=callback_timeout,
                    skip_if=_nothing_to_do,
                ),
                WorkflowStep(
                    name=PROCESS_STEP,
                    action=self.process_results,
                    retry=PROCESS_RETRY,
                    skip_if=_nothing_to_do,
                ),
            ),
            on_error=self.on_error,
        )


def build_enrichment_workflow(
    store: JobStore,
    provider: ProviderClient,
    registry: CorrelationRegistry,
    failures: FailureHandler,
    webhook_url: str,
    batch_size: int = MAX_BATCH_SIZE,
    callback_timeout: Duration = DEFAULT_CALLBACK_TIMEOUT,
    scorer: Optional[Scorer] = None,
) -> WorkflowDefinition:
    """Build the four-step enrichment workflow around the given collaborators."""
    steps = EnrichmentSteps(
        store, provider, registry, failures, webhook_url, batch_size=batch_size, scorer=scorer
    )
    return steps.definition(callback_timeout)
