"""Enrichflow: durable async workflows for subscriber email enrichment."""

from .config import EnrichflowConfig, load_config
from .enrichment import build_enrichment_workflow
from .jobs import FailureHandler, get_job_store
from .persistence import get_repository
from .provider import ProviderClient
from .registry import CorrelationRegistry
from .utils.retry import BackoffStrategy, RetryPolicy, compute_backoff
from .workflow import WorkflowDefinition, WorkflowEngine, WorkflowStep

__version__ = "0.1.0"
__all__ = [
    "EnrichflowConfig",
    "load_config",
    "WorkflowEngine",
    "WorkflowDefinition",
    "WorkflowStep",
    "RetryPolicy",
    "BackoffStrategy",
    "compute_backoff",
    "CorrelationRegistry",
    "ProviderClient",
    "FailureHandler",
    "get_repository",
    "get_job_store",
    "build_enrichment_workflow",
]
