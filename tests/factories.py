"""Builders for timeline elements and a scripted render engine used across the tests."""

import threading

from reelgraph.exceptions import EncodingFailureError, RenderCancelledError
from reelgraph.render.engine import RenderEngine
from reelgraph.schemas.timeline import MediaClip, TextElement


def make_video(duration: float, *, start_time: float = 0.0, source_duration: float | None = None, **kwargs) -> MediaClip:
    """Video clip whose source window matches its timeline length at 1x."""
    kwargs.setdefault("source_id", "video-src")
    return MediaClip(
        media_type="video",
        position_start=0.0,
        position_end=duration,
        start_time=start_time,
        end_time=start_time + duration,
        source_duration=source_duration,
        **kwargs,
    )


def make_audio(start: float, end: float, **kwargs) -> MediaClip:
    kwargs.setdefault("source_id", "audio-src")
    return MediaClip(
        media_type="audio",
        position_start=start,
        position_end=end,
        start_time=0.0,
        end_time=end - start,
        **kwargs,
    )


def make_image(start: float, end: float, **kwargs) -> MediaClip:
    kwargs.setdefault("source_id", "image-src")
    return MediaClip(
        media_type="image",
        position_start=start,
        position_end=end,
        start_time=0.0,
        end_time=end - start,
        **kwargs,
    )


def make_text(start: float, end: float, text: str = "Hello", **kwargs) -> TextElement:
    return TextElement(position_start=start, position_end=end, text=text, **kwargs)


class FakeEngine(RenderEngine):
    """Stands in for ffmpeg: blocks on ``gate`` mid-render, then succeeds or fails."""

    def __init__(self, fail_with: str | None = None, honour_cancel: bool = True, timeout: float = 5.0):
        self.fail_with = fail_with
        self.honour_cancel = honour_cancel
        self.timeout = timeout
        self.gate = threading.Event()
        self.started = threading.Event()
        self.rendered: list[str] = []

    def render(self, compiled, output_path, *, job_id=None, progress=None, cancel_event=None):
        if progress:
            progress(0, "Encoding")
        self.started.set()
        self.gate.wait(self.timeout)
        if progress:
            progress(50, "Encoding (50%)")
        if self.honour_cancel and cancel_event is not None and cancel_event.is_set():
            raise RenderCancelledError(job_id)
        if self.fail_with:
            raise EncodingFailureError(self.fail_with, job_id=job_id)
        self.rendered.append(output_path)
        return output_path
