"""Exception hierarchy for enrichflow.

Hierarchy::

    EnrichflowError
      ├── WorkflowError
      │     ├── WorkflowNotFoundError
      │     ├── StepTimeoutError
      │     │     └── EventTimeoutError
      │     ├── WorkflowCancelledError
      │     └── CorrelationConflictError
      ├── ProviderError
      │     ├── ProviderAPIError
      │     ├── ProviderRateLimitError
      │     ├── ProviderCreditsExhaustedError
      │     ├── ProviderValidationError
      │     ├── ProviderResponseError
      │     └── ProviderNetworkError
      ├── JobError
      │     ├── JobNotFoundError
      │     ├── SubscriberNotFoundError
      │     ├── InvalidJobStateError
      │     └── NotEnrichableError
      └── WebhookError
            ├── SignatureVerificationError
            └── WebhookPayloadError
"""

from __future__ import annotations

from typing import Any, Optional


class EnrichflowError(Exception):
    """Base exception for enrichflow errors."""


class WorkflowError(EnrichflowError):
    """Base exception for workflow engine errors."""


class WorkflowNotFoundError(WorkflowError):
    """Raised when an operation targets an unknown workflow instance."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class StepTimeoutError(WorkflowError):
    """Raised when a step does not finish within its timeout."""

    def __init__(self, step_name: str, timeout: float, message: Optional[str] = None):
        self.step_name = step_name
        self.timeout = timeout
        super().__init__(message or f"Step timeout: {step_name} ({timeout:g}s)")


class EventTimeoutError(StepTimeoutError):
    """Raised when a wait-for-event step never receives its event."""

    def __init__(self, step_name: str, event_type: str, workflow_id: str, timeout: float):
        self.event_type = event_type
        self.workflow_id = workflow_id
        super().__init__(
            step_name,
            timeout,
            f"Workflow timeout waiting for event: {event_type} ({timeout:g}s)",
        )


class WorkflowCancelledError(WorkflowError):
    """Passed to error hooks when a running instance is cancelled."""

    def __init__(self, workflow_id: str, step_name: Optional[str] = None):
        self.workflow_id = workflow_id
        self.step_name = step_name
        where = f" during step {step_name}" if step_name else ""
        super().__init__(f"Workflow cancelled{where}: {workflow_id}")


class CorrelationConflictError(WorkflowError):
    """Raised when a correlation id is already mapped to another workflow."""

    def __init__(self, correlation_id: str, existing: str, requested: str):
        self.correlation_id = correlation_id
        self.existing = existing
        self.requested = requested
        super().__init__(
            f"Correlation id {correlation_id} already registered to {existing}, "
            f"cannot register {requested}"
        )


class ProviderError(EnrichflowError):
    """Base exception for enrichment provider failures."""

    terminal = False

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        response: Any = None,
        terminal: Optional[bool] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after
        self.response = response
        if terminal is not None:
            self.terminal = terminal
        super().__init__(message)


class ProviderAPIError(ProviderError):
    """Raised when the provider answers with an error status."""


class ProviderRateLimitError(ProviderError):
    """Raised when rate limiting persists after all retries."""


class ProviderCreditsExhaustedError(ProviderError):
    """Raised when the provider account has no credits left."""

    terminal = True


class ProviderValidationError(ProviderError):
    """Raised when a request is rejected before it is sent."""

    terminal = True


class ProviderResponseError(ProviderError):
    """Raised when a provider response violates the contract."""

    terminal = True


class ProviderNetworkError(ProviderError):
    """Raised when the provider cannot be reached."""


class JobError(EnrichflowError):
    """Base exception for enrichment job errors."""


class JobNotFoundError(JobError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class SubscriberNotFoundError(JobError):
    def __init__(self, subscriber_id: str):
        self.subscriber_id = subscriber_id
        super().__init__(f"Subscriber not found: {subscriber_id}")


class InvalidJobStateError(JobError):
    def __init__(self, job_id: str, status: str, message: Optional[str] = None):
        self.job_id = job_id
        self.status = status
        super().__init__(message or f"Job {job_id} is not in failed or stale status: {status}")


class NotEnrichableError(JobError):
    """Raised when a subscriber's email type cannot be enriched."""

    def __init__(self, email: str, email_type: str):
        self.email = email
        self.email_type = email_type
        super().__init__(f"Cannot create enrichment job for {email_type} email: {email}")


class WebhookError(EnrichflowError):
    """Base exception for inbound webhook errors."""


class SignatureVerificationError(WebhookError):
    """Raised when a webhook body cannot be authenticated."""


class WebhookPayloadError(WebhookError):
    """Raised when a webhook body cannot be parsed."""


def error_kind(error: BaseException) -> str:
    """Classify ``error`` for failure reasons and workflow records."""
    if isinstance(error, WorkflowCancelledError):
        return "cancelled"
    if isinstance(error, StepTimeoutError):
        return "timeout"
    if isinstance(error, ProviderError):
        return "terminal" if error.terminal else "transient"
    return "error"
