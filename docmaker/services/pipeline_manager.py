"""
In-memory singleton that tracks the background end-to-end pipeline per
document (research -> proposal -> foundation -> batches -> finalize).

Usage
-----
    from docmaker.services.pipeline_manager import pipeline_manager, PipelineStatus

    status = PipelineStatus(document_id=doc_id)
    pipeline_manager.start(doc_id, run_document_pipeline(doc_id, status), status)
    # ... later ...
    current = pipeline_manager.get_status(doc_id)
"""
from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import time
from typing import Any, Coroutine, Dict, List, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pipeline phase enum
# ---------------------------------------------------------------------------

class PipelinePhase(str, enum.Enum):
    QUEUED = "queued"
    RESEARCH = "research"
    PROPOSAL = "proposal"
    FOUNDATION = "foundation"
    BATCHES = "batches"
    FINALIZE = "finalize"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Pipeline status (mutable dataclass shared between task and poller)
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class PipelineStatus:
    document_id: str
    phase: PipelinePhase = PipelinePhase.QUEUED
    current_step: Optional[str] = None
    total_batches: int = 0
    batches_completed: int = 0
    errors: List[str] = dataclasses.field(default_factory=list)
    started_at: float = dataclasses.field(default_factory=time.monotonic)
    completed_at: Optional[float] = None

    @property
    def elapsed_seconds(self) -> float:
        end = self.completed_at if self.completed_at else time.monotonic()
        return round(end - self.started_at, 2)


# ---------------------------------------------------------------------------
# Pipeline manager (class-level state, acts as a singleton)
# ---------------------------------------------------------------------------

class PipelineManager:
    """Manages background pipeline asyncio.Tasks per document."""

    _tasks: Dict[str, asyncio.Task] = {}
    _status: Dict[str, PipelineStatus] = {}

    @classmethod
    def is_running(cls, document_id: str) -> bool:
        task = cls._tasks.get(document_id)
        return task is not None and not task.done()

    @classmethod
    def get_status(cls, document_id: str) -> Optional[PipelineStatus]:
        return cls._status.get(document_id)

    @classmethod
    def start(
        cls,
        document_id: str,
        coro: Coroutine[Any, Any, Any],
        status: Optional[PipelineStatus] = None,
    ) -> PipelineStatus:
        """
        Launch a background pipeline task for *document_id*.

        *status* may be pre-created by the caller so the coroutine can update
        it; otherwise a fresh PipelineStatus is registered.

        Raises:
            RuntimeError: a pipeline is already running for this document.
        """
        if cls.is_running(document_id):
            coro.close()
            raise RuntimeError(f"Pipeline already running for document {document_id}")

        if status is None:
            status = PipelineStatus(document_id=document_id)
        cls._status[document_id] = status

        async def _wrapper() -> None:
            try:
                await coro
            except Exception as exc:
                logger.error(
                    "Pipeline task failed for document %s: %s", document_id, exc, exc_info=True
                )
                status.phase = PipelinePhase.FAILED
                status.errors.append(f"pipeline crash: {str(exc)[:200]}")
            finally:
                status.completed_at = time.monotonic()
                if status.phase not in (PipelinePhase.COMPLETED, PipelinePhase.FAILED):
                    status.phase = PipelinePhase.FAILED

        task = asyncio.create_task(_wrapper())
        cls._tasks[document_id] = task
        task.add_done_callback(lambda _t: cls._cleanup(document_id))

        logger.info("Pipeline task started for document %s", document_id)
        return status

    @classmethod
    def _cleanup(cls, document_id: str) -> None:
        """Remove the task reference (status is kept for polling)."""
        cls._tasks.pop(document_id, None)


# Module-level singleton instance
pipeline_manager = PipelineManager
