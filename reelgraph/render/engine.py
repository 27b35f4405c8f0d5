"""Encoding engine: runs the ffmpeg command for a compiled render."""

import logging
import os
import shutil
import subprocess
import tempfile
import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable

from reelgraph.config import get_settings
from reelgraph.exceptions import EncodingFailureError, EngineUnavailableError, RenderCancelledError
from reelgraph.render.ffmpeg import FFmpegCommand, FilterGraphBuilder
from reelgraph.render.graph import CompiledRender

logger = logging.getLogger(__name__)

# (progress 0-100, stage)
ProgressCallback = Callable[[int, str], None]

STDERR_TAIL_LINES = 40


def parse_progress_line(line: str, duration_s: float) -> int | None:
    """Percentage from an ``out_time_us=`` line of ``-progress`` output.

    Capped at 99; 100 is only reported once the process exits cleanly.
    """
    if not line.startswith("out_time_us=") or duration_s <= 0:
        return None
    try:
        time_us = int(line.split("=", 1)[1])
    except ValueError:
        return None
    return max(0, min(99, int(time_us / 1_000_000 / duration_s * 100)))


class RenderEngine(ABC):
    """Produces the artifact for a compiled render."""

    @abstractmethod
    def render(
        self,
        compiled: CompiledRender,
        output_path: str,
        *,
        job_id: str | None = None,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> str:
        """Render to ``output_path`` and return it.

        Raises:
            EncodingFailureError: The engine failed
            RenderCancelledError: ``cancel_event`` was set mid-render
        """


class FFmpegEngine(RenderEngine):
    """Local ffmpeg subprocess with ``-progress pipe:1`` reporting."""

    def __init__(self, work_dir: str | None = None):
        self.settings = get_settings()
        self.work_dir = work_dir or self.settings.render_work_dir

    def render(
        self,
        compiled: CompiledRender,
        output_path: str,
        *,
        job_id: str | None = None,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> str:
        os.makedirs(self.work_dir, exist_ok=True)
        job_dir = tempfile.mkdtemp(prefix="render_", dir=self.work_dir)
        try:
            command = FilterGraphBuilder(compiled, job_dir).build(output_path)
            for path, content in command.text_files.items():
                with open(path, "w", encoding="utf-8") as f:
                    f.write(content)
            output_dir = os.path.dirname(output_path)
            if output_dir:
                os.makedirs(output_dir, exist_ok=True)

            if progress:
                progress(0, "Encoding")
            self._run(command, job_dir, job_id, progress, cancel_event)
            if progress:
                progress(100, "Complete")
            return output_path
        finally:
            shutil.rmtree(job_dir, ignore_errors=True)

    def _run(
        self,
        command: FFmpegCommand,
        job_dir: str,
        job_id: str | None,
        progress: ProgressCallback | None,
        cancel_event: threading.Event | None,
    ) -> None:
        cmd = command.args.copy()
        # -progress must come before the output path
        cmd.insert(-1, "-progress")
        cmd.insert(-1, "pipe:1")
        cmd.insert(-1, "-nostats")

        logger.info(f"[RENDER] Starting ffmpeg for job {job_id} ({command.duration_seconds:.3f}s)")
        stderr_path = os.path.join(job_dir, "ffmpeg.stderr")
        with open(stderr_path, "w+", encoding="utf-8", errors="replace") as stderr_file:
            try:
                proc = subprocess.Popen(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=stderr_file,
                    text=True,
                    errors="replace",
                )
            except FileNotFoundError:
                raise EngineUnavailableError(f"ffmpeg not found at {cmd[0]}") from None

            # ffmpeg can stall without writing progress, so cancellation is
            # also watched off the read loop
            finished = threading.Event()
            if cancel_event is not None:
                threading.Thread(
                    target=_kill_on_cancel,
                    args=(proc, cancel_event, finished),
                    name=f"render-cancel-{job_id}",
                    daemon=True,
                ).start()

            last_reported = -1
            cancelled = False
            try:
                for raw_line in proc.stdout:
                    if cancel_event is not None and cancel_event.is_set():
                        cancelled = True
                        proc.kill()
                        break
                    pct = parse_progress_line(raw_line.strip(), command.duration_seconds)
                    if pct is not None and pct >= last_reported + 5:
                        last_reported = pct
                        if progress:
                            progress(pct, f"Encoding ({pct}%)")
                    elif raw_line.startswith("progress=end"):
                        break

                proc.stdout.close()
                returncode = proc.wait()
            finally:
                finished.set()

            if cancelled or (cancel_event is not None and cancel_event.is_set() and returncode != 0):
                logger.info(f"[RENDER] Job {job_id} cancelled")
                _remove_partial(command.output_path)
                raise RenderCancelledError(job_id)

            if returncode != 0:
                stderr_file.seek(0)
                tail = "".join(deque(stderr_file, maxlen=STDERR_TAIL_LINES)).strip()
                logger.error(f"[RENDER] ffmpeg exited with {returncode} for job {job_id}: {tail}")
                _remove_partial(command.output_path)
                raise EncodingFailureError(tail or f"ffmpeg exited with code {returncode}", job_id=job_id)

        logger.info(f"[RENDER] Job {job_id} wrote {command.output_path}")


def _remove_partial(path: str) -> None:
    if os.path.exists(path):
        os.remove(path)


def _kill_on_cancel(proc: subprocess.Popen, cancel_event: threading.Event, finished: threading.Event) -> None:
    while not finished.is_set():
        if cancel_event.wait(0.2):
            if not finished.is_set():
                proc.kill()
            return
