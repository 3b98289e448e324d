"""
Pipeline workers - Run capability steps on a small thread pool.

Drafts and analyses block on the capability for a long time. Submitting
them here lets a caller keep working (or abandon them) while the stores
stay available to other threads: the pipeline only takes the store lock
around its short reads and writes.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field

import structlog

from ..articles.models import DiffRecord
from ..skills.models import Skill
from .pipeline import EvolutionPipeline
from .state import EvolutionCycle

logger = structlog.get_logger()

__all__ = ["PipelineJob", "PipelineWorkers"]


@dataclass
class PipelineJob:
    """A submitted step: its future and the event that abandons it."""

    kind: str
    future: Future
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def result(self, timeout: float | None = None):
        """Wait for the step. Re-raises whatever the step raised."""
        return self.future.result(timeout=timeout)


class PipelineWorkers:
    """Thread pool front for an EvolutionPipeline."""

    def __init__(self, pipeline: EvolutionPipeline, max_workers: int | None = None):
        self.pipeline = pipeline
        self.max_workers = max_workers or pipeline.config.pipeline.workers
        self._pool = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="savor-pipeline",
        )
        self.log = logger.bind(component="pipeline_workers")

    def submit_draft(
        self,
        cycle: EvolutionCycle | None,
        skill_id: int,
        topic: str,
    ) -> PipelineJob:
        """Queue ``request_draft``. The job's result is the advanced cycle."""
        cancel = threading.Event()
        future: Future[EvolutionCycle] = self._pool.submit(
            self.pipeline.request_draft, cycle, skill_id, topic, cancel
        )
        self.log.debug("workers.submitted", kind="draft", skill_id=skill_id)
        return PipelineJob("draft", future, cancel)

    def submit_analysis(self, cycle: EvolutionCycle) -> PipelineJob:
        """Queue ``request_analysis``. The job's result is the DiffRecord."""
        cancel = threading.Event()
        future: Future[DiffRecord] = self._pool.submit(
            self.pipeline.request_analysis, cycle, cancel
        )
        self.log.debug("workers.submitted", kind="analysis", article_id=cycle.article_id)
        return PipelineJob("analysis", future, cancel)

    def submit_bootstrap(
        self,
        name: str,
        category: str | None,
        description: str | None,
        samples_text: str,
    ) -> PipelineJob:
        """Queue ``create_skill_from_samples``. The job's result is the Skill."""
        cancel = threading.Event()
        future: Future[Skill] = self._pool.submit(
            self.pipeline.create_skill_from_samples,
            name, category, description, samples_text, cancel,
        )
        self.log.debug("workers.submitted", kind="bootstrap", name=name)
        return PipelineJob("bootstrap", future, cancel)

    def cancel(self, job: PipelineJob) -> bool:
        """Abandon a job.

        A job that has not started is dropped from the queue. A running one
        finishes its capability call, then discards the result without
        touching the stores and raises CycleCancelledError.

        Returns:
            True if the job was dropped before it started.
        """
        job.cancel_event.set()
        dropped = job.future.cancel()
        self.log.info("workers.cancelled", kind=job.kind, dropped=dropped)
        return dropped

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> "PipelineWorkers":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
