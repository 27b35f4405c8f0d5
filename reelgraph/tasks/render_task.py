"""Celery task for rendering a compiled graph."""

import logging
import os

from reelgraph.celery_app import celery_app
from reelgraph.exceptions import EncodingFailureError, ReelGraphError
from reelgraph.render.engine import FFmpegEngine
from reelgraph.render.graph import CompiledRender

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=0)
def render_graph_task(self, compiled_data: dict, output_path: str) -> dict:
    """
    Execute a compiled render as a Celery task.

    Encoding failures are reported in the result rather than retried; the
    caller decides whether to resubmit.

    Args:
        compiled_data: CompiledRender.to_dict() output
        output_path: Where the artifact is written

    Returns:
        dict with status and output information
    """
    job_id = self.request.id
    compiled = CompiledRender.from_dict(compiled_data)
    self.update_state(state="PROGRESS", meta={"progress": 0, "stage": "Starting"})

    def progress_callback(progress: int, stage: str) -> None:
        self.update_state(state="PROGRESS", meta={"progress": progress, "stage": stage})

    try:
        FFmpegEngine().render(compiled, output_path, job_id=job_id, progress=progress_callback)
    except EncodingFailureError as e:
        return {"status": "failed", "error": e.engine_message or e.message, "error_code": e.code}
    except ReelGraphError as e:
        logger.warning(f"[RENDER] Task {job_id} failed: {e.message}")
        return {"status": "failed", "error": e.message, "error_code": e.code}

    return {
        "status": "completed",
        "output_path": output_path,
        "output_size": os.path.getsize(output_path),
    }
