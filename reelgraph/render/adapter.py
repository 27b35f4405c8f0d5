"""
Render adapters: asynchronous execution of compiled renders.

An adapter accepts a CompiledRender, hands back a JobHandle immediately and
reports JobStatus on request. Job state only moves forward:

    queued -> processing -> completed | failed
    queued -> failed            (rejected before encoding)
    queued | processing -> cancelled

Failed jobs are never retried automatically.
"""

import logging
import os
import threading
import time
import uuid
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from reelgraph.config import get_settings
from reelgraph.exceptions import (
    EncodingFailureError,
    InvalidJobTransitionError,
    JobNotFoundError,
    ReelGraphError,
    RenderCancelledError,
    RenderTargetBusyError,
)
from reelgraph.render.engine import FFmpegEngine, RenderEngine
from reelgraph.render.graph import CompiledRender

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED})

_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.QUEUED: frozenset({JobState.PROCESSING, JobState.FAILED, JobState.CANCELLED}),
    JobState.PROCESSING: frozenset({JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED}),
    JobState.COMPLETED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class JobHandle:
    job_id: str
    target: str | None = None


@dataclass
class JobStatus:
    """Point-in-time view of a render job."""

    job_id: str
    state: JobState
    progress: int = 0
    stage: str | None = None
    artifact: str | None = None
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.state.value,
            "progress": self.progress,
            "stage": self.stage,
            "artifact": self.artifact,
            "error": self.error,
            "error_code": self.error_code,
        }


def raise_for_status(status: JobStatus) -> JobStatus:
    """Return completed statuses; raise the matching error otherwise."""
    if status.state == JobState.FAILED:
        raise EncodingFailureError(status.error, job_id=status.job_id)
    if status.state == JobState.CANCELLED:
        raise RenderCancelledError(status.job_id)
    return status


@dataclass
class JobRecord:
    """Mutable bookkeeping for one local job. Guarded by the adapter lock."""

    job_id: str
    compiled: CompiledRender
    target: str
    caller: str | None = None
    state: JobState = JobState.QUEUED
    progress: int = 0
    stage: str | None = None
    artifact: str | None = None
    error: str | None = None
    error_code: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cancel_event: threading.Event = field(default_factory=threading.Event)
    done: threading.Event = field(default_factory=threading.Event)

    def transition(self, state: JobState, **changes: Any) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise InvalidJobTransitionError(self.job_id, self.state.value, state.value)
        self.state = state
        for name, value in changes.items():
            setattr(self, name, value)
        if state == JobState.COMPLETED:
            self.progress = 100
        self.updated_at = datetime.now(timezone.utc)
        if state.is_terminal:
            self.done.set()

    def status(self) -> JobStatus:
        return JobStatus(
            job_id=self.job_id,
            state=self.state,
            progress=self.progress,
            stage=self.stage,
            artifact=self.artifact,
            error=self.error,
            error_code=self.error_code,
        )


class RenderAdapter(ABC):
    """Submits compiled renders to an encoding engine."""

    @abstractmethod
    def submit(
        self,
        compiled: CompiledRender,
        *,
        caller: str | None = None,
        target: str | None = None,
    ) -> JobHandle:
        """Queue a render and return immediately."""

    @abstractmethod
    def poll(self, handle: JobHandle) -> JobStatus:
        """Current job status. Never blocks on the render itself."""

    @abstractmethod
    def cancel(self, handle: JobHandle) -> JobStatus:
        """Request cancellation. A job that already completed stays completed."""

    def wait(self, handle: JobHandle, timeout: float | None = None) -> JobStatus:
        """Block until the job is terminal.

        Raises:
            EncodingFailureError: The job failed
            RenderCancelledError: The job was cancelled
            TimeoutError: ``timeout`` elapsed first
        """
        interval = get_settings().job_poll_interval_s
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            status = self.poll(handle)
            if status.state.is_terminal:
                return raise_for_status(status)
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError(f"Render job {handle.job_id} still {status.state.value}")
            time.sleep(interval if deadline is None else max(0.0, min(interval, deadline - time.monotonic())))


class LocalRenderAdapter(RenderAdapter):
    """Runs renders on a local thread pool.

    Only the newest ``history_limit`` finished jobs stay pollable; older
    finished records are dropped and then report as not found.
    """

    def __init__(
        self,
        engine: RenderEngine | None = None,
        max_workers: int | None = None,
        output_dir: str | None = None,
        history_limit: int | None = None,
    ):
        settings = get_settings()
        self.engine = engine or FFmpegEngine()
        self.output_dir = output_dir or settings.render_work_dir
        self.history_limit = history_limit if history_limit is not None else settings.render_job_history
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.render_max_workers,
            thread_name_prefix="render",
        )
        self._lock = threading.Lock()
        self._jobs: dict[str, JobRecord] = {}
        # artifact target -> job id of the in-flight job writing it
        self._targets: dict[str, str] = {}

    def submit(
        self,
        compiled: CompiledRender,
        *,
        caller: str | None = None,
        target: str | None = None,
    ) -> JobHandle:
        job_id = uuid.uuid4().hex
        target = target or os.path.join(self.output_dir, f"{job_id}.mp4")

        with self._lock:
            busy_id = self._targets.get(target)
            if busy_id is not None:
                raise RenderTargetBusyError(target, busy_id)
            record = JobRecord(job_id=job_id, compiled=compiled, target=target, caller=caller)
            self._jobs[job_id] = record

            problem = self._prevalidate(compiled)
            if problem:
                logger.warning(f"[RENDER] Job {job_id} rejected: {problem}")
                record.transition(JobState.FAILED, error=problem, error_code=EncodingFailureError.code)
                self._retire(record)
                return JobHandle(job_id, target)
            self._targets[target] = job_id

        logger.info(f"[RENDER] Job {job_id} queued for {caller or 'anonymous'} -> {target}")
        self._executor.submit(self._run, record)
        return JobHandle(job_id, target)

    @staticmethod
    def _prevalidate(compiled: CompiledRender) -> str | None:
        if compiled.graph.video_sink is None:
            return "Render graph has no video output"
        if compiled.profile.duration_seconds <= 0:
            return "Render duration must be positive"
        return None

    def _run(self, record: JobRecord) -> None:
        with self._lock:
            if record.state != JobState.QUEUED:
                return
            record.transition(JobState.PROCESSING, stage="Starting")

        try:
            artifact = self.engine.render(
                record.compiled,
                record.target,
                job_id=record.job_id,
                progress=lambda pct, stage: self._on_progress(record, pct, stage),
                cancel_event=record.cancel_event,
            )
        except RenderCancelledError:
            self._finish(record, JobState.CANCELLED, stage="Cancelled")
        except EncodingFailureError as e:
            self._finish(
                record,
                JobState.FAILED,
                stage="Failed",
                error=e.engine_message or e.message,
                error_code=e.code,
            )
        except ReelGraphError as e:
            self._finish(record, JobState.FAILED, stage="Failed", error=e.message, error_code=e.code)
        except Exception as e:
            logger.exception(f"[RENDER] Job {record.job_id} crashed")
            self._finish(record, JobState.FAILED, stage="Failed", error=str(e), error_code="INTERNAL_ERROR")
        else:
            # A late cancel loses to a finished artifact
            self._finish(record, JobState.COMPLETED, stage="Complete", artifact=artifact)

    def _on_progress(self, record: JobRecord, pct: int, stage: str) -> None:
        with self._lock:
            if record.state == JobState.PROCESSING:
                record.progress = max(record.progress, min(pct, 99))
                record.stage = stage

    def _finish(self, record: JobRecord, state: JobState, **changes: Any) -> None:
        with self._lock:
            record.transition(state, **changes)
            if self._targets.get(record.target) == record.job_id:
                del self._targets[record.target]
            self._retire(record)
        logger.info(f"[RENDER] Job {record.job_id} {state.value}")

    def _retire(self, record: JobRecord) -> None:
        """Requeue a finished record at the back, then drop the oldest finished
        records past the history limit. Caller holds the lock.
        """
        self._jobs[record.job_id] = self._jobs.pop(record.job_id)
        finished = [job_id for job_id, other in self._jobs.items() if other.state.is_terminal]
        for job_id in finished[: max(len(finished) - self.history_limit, 0)]:
            del self._jobs[job_id]

    def _get(self, job_id: str) -> JobRecord:
        record = self._jobs.get(job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        return record

    def poll(self, handle: JobHandle) -> JobStatus:
        with self._lock:
            return self._get(handle.job_id).status()

    def cancel(self, handle: JobHandle) -> JobStatus:
        with self._lock:
            record = self._get(handle.job_id)
            if record.state.is_terminal:
                return record.status()
            record.cancel_event.set()
            if record.state == JobState.QUEUED:
                record.transition(JobState.CANCELLED, stage="Cancelled")
                if self._targets.get(record.target) == record.job_id:
                    del self._targets[record.target]
                self._retire(record)
                logger.info(f"[RENDER] Job {record.job_id} cancelled before start")
            return record.status()

    def wait(self, handle: JobHandle, timeout: float | None = None) -> JobStatus:
        with self._lock:
            record = self._get(handle.job_id)
        if not record.done.wait(timeout):
            raise TimeoutError(f"Render job {handle.job_id} still {record.state.value}")
        with self._lock:
            status = record.status()
        return raise_for_status(status)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            for record in self._jobs.values():
                if not record.state.is_terminal:
                    record.cancel_event.set()
        self._executor.shutdown(wait=wait)
