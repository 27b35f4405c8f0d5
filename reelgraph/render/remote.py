"""Remote render adapters: a Celery worker pool and an HTTP job queue."""

import logging
import threading
import uuid
from typing import Any

import httpx
from celery.result import AsyncResult

from reelgraph.celery_app import celery_app
from reelgraph.config import get_settings
from reelgraph.exceptions import EngineUnavailableError, JobNotFoundError, RenderTargetBusyError
from reelgraph.render.adapter import JobHandle, JobState, JobStatus, RenderAdapter
from reelgraph.render.graph import CompiledRender
from reelgraph.tasks.render_task import render_graph_task

logger = logging.getLogger(__name__)


class CeleryRenderAdapter(RenderAdapter):
    """Dispatches renders to ``render_graph_task`` workers.

    Celery cannot tell an unknown task id from a queued one, so unknown ids
    report ``queued``. The one-job-per-target rule is enforced for jobs
    submitted through this adapter instance; a target is released once a
    poll sees its job in a terminal state.
    """

    _STATE_MAP = {
        "PENDING": JobState.QUEUED,
        "RECEIVED": JobState.QUEUED,
        "RETRY": JobState.QUEUED,
        "STARTED": JobState.PROCESSING,
        "PROGRESS": JobState.PROCESSING,
        "FAILURE": JobState.FAILED,
        "REVOKED": JobState.CANCELLED,
    }

    def __init__(self, output_dir: str | None = None, app=None, task=None):
        self.app = app or celery_app
        self.task = task or render_graph_task
        self.output_dir = output_dir or get_settings().render_work_dir
        self._lock = threading.RLock()
        self._targets: dict[str, str] = {}

    def submit(
        self,
        compiled: CompiledRender,
        *,
        caller: str | None = None,
        target: str | None = None,
    ) -> JobHandle:
        with self._lock:
            if target is not None:
                busy_id = self._targets.get(target)
                if busy_id is not None and not self.poll(JobHandle(busy_id, target)).state.is_terminal:
                    raise RenderTargetBusyError(target, busy_id)

            task_kwargs: dict[str, Any] = {}
            if target is None:
                # Name the artifact after the task id
                task_kwargs["task_id"] = uuid.uuid4().hex
                target = f"{self.output_dir}/{task_kwargs['task_id']}.mp4"

            result = self.task.apply_async(args=[compiled.to_dict(), target], **task_kwargs)
            self._targets[target] = result.id

        logger.info(f"[RENDER] Celery job {result.id} queued for {caller or 'anonymous'} -> {target}")
        return JobHandle(result.id, target)

    def _release(self, job_id: str) -> None:
        with self._lock:
            for target in [t for t, owner in self._targets.items() if owner == job_id]:
                del self._targets[target]

    def poll(self, handle: JobHandle) -> JobStatus:
        status = self._read_state(handle)
        if status.state.is_terminal:
            self._release(handle.job_id)
        return status

    def _read_state(self, handle: JobHandle) -> JobStatus:
        result = AsyncResult(handle.job_id, app=self.app)
        state = result.state

        if state == "SUCCESS":
            payload = result.result or {}
            if payload.get("status") == "completed":
                return JobStatus(
                    job_id=handle.job_id,
                    state=JobState.COMPLETED,
                    progress=100,
                    stage="Complete",
                    artifact=payload.get("output_path"),
                )
            return JobStatus(
                job_id=handle.job_id,
                state=JobState.FAILED,
                stage="Failed",
                error=payload.get("error"),
                error_code=payload.get("error_code"),
            )

        job_state = self._STATE_MAP.get(state, JobState.PROCESSING)
        status = JobStatus(job_id=handle.job_id, state=job_state)
        if state == "PROGRESS" and isinstance(result.info, dict):
            status.progress = int(result.info.get("progress", 0))
            status.stage = result.info.get("stage")
        elif state == "FAILURE":
            status.error = str(result.result)
            status.error_code = "ENCODING_FAILURE"
        return status

    def cancel(self, handle: JobHandle) -> JobStatus:
        status = self.poll(handle)
        if status.state.is_terminal:
            return status
        AsyncResult(handle.job_id, app=self.app).revoke(terminate=True)

        # The worker may have stored its result before the revoke landed
        after = self.poll(handle)
        if after.state in (JobState.COMPLETED, JobState.FAILED):
            logger.info(f"[RENDER] Celery job {handle.job_id} finished before revoke: {after.state.value}")
            return after

        logger.info(f"[RENDER] Celery job {handle.job_id} revoked")
        return JobStatus(job_id=handle.job_id, state=JobState.CANCELLED, progress=status.progress, stage="Cancelled")


class HttpJobQueueAdapter(RenderAdapter):
    """Client for an HTTP render queue.

    Endpoints: ``POST /jobs``, ``GET /jobs/{id}``, ``DELETE /jobs/{id}``.
    """

    _STATE_MAP = {
        "queued": JobState.QUEUED,
        "pending": JobState.QUEUED,
        "processing": JobState.PROCESSING,
        "running": JobState.PROCESSING,
        "completed": JobState.COMPLETED,
        "succeeded": JobState.COMPLETED,
        "failed": JobState.FAILED,
        "cancelled": JobState.CANCELLED,
        "canceled": JobState.CANCELLED,
    }

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        client: httpx.Client | None = None,
    ):
        settings = get_settings()
        headers = {"Content-Type": "application/json"}
        api_key = api_key if api_key is not None else settings.job_queue_api_key
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = client or httpx.Client(
            base_url=base_url or settings.job_queue_url,
            headers=headers,
            timeout=settings.job_queue_timeout_s,
        )

    def _request(self, method: str, path: str, job_id: str | None = None, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self.client.request(method, path, **kwargs)
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise EngineUnavailableError(f"Render queue unreachable: {e}") from e

        if response.status_code == 404 and job_id is not None:
            raise JobNotFoundError(job_id)
        if response.status_code == 409:
            body = response.json() if response.content else {}
            raise RenderTargetBusyError(kwargs.get("json", {}).get("target"), body.get("job_id"))
        if response.status_code >= 500:
            raise EngineUnavailableError(f"Render queue returned {response.status_code}")
        response.raise_for_status()
        return response.json() if response.content else {}

    def _to_status(self, job_id: str, data: dict[str, Any]) -> JobStatus:
        raw_state = str(data.get("status", "queued")).lower()
        error = data.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        return JobStatus(
            job_id=job_id,
            state=self._STATE_MAP.get(raw_state, JobState.PROCESSING),
            progress=int(data.get("progress") or 0),
            stage=data.get("stage"),
            artifact=data.get("artifact_url"),
            error=error,
            error_code=data.get("error_code"),
        )

    def submit(
        self,
        compiled: CompiledRender,
        *,
        caller: str | None = None,
        target: str | None = None,
    ) -> JobHandle:
        payload = {
            "graph": compiled.to_dict(),
            "profile": compiled.profile.to_dict(),
            "caller": caller,
            "target": target,
        }
        data = self._request("POST", "/jobs", json=payload)
        job_id = data["job_id"]
        logger.info(f"[RENDER] Remote job {job_id} queued for {caller or 'anonymous'}")
        return JobHandle(job_id, target)

    def poll(self, handle: JobHandle) -> JobStatus:
        return self._to_status(handle.job_id, self._request("GET", f"/jobs/{handle.job_id}", handle.job_id))

    def cancel(self, handle: JobHandle) -> JobStatus:
        data = self._request("DELETE", f"/jobs/{handle.job_id}", handle.job_id)
        if not data:
            return self.poll(handle)
        return self._to_status(handle.job_id, data)

    def close(self) -> None:
        self.client.close()
