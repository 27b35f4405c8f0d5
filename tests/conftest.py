"""
Pytest fixtures for reelgraph tests.

Tests that shell out to a real ffmpeg binary are marked with
@pytest.mark.requires_ffmpeg and skipped when it is not on PATH.
"""

import tempfile
from pathlib import Path

import pytest

from reelgraph.render.compiler import RenderGraphCompiler
from reelgraph.render.sources import MappingSourceResolver
from reelgraph.timeline.model import Timeline

from factories import make_text, make_video


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring an ffmpeg binary on PATH"
    )


@pytest.fixture
def temp_output_dir():
    """Temporary directory for test outputs."""
    with tempfile.TemporaryDirectory(prefix="reelgraph_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def timeline() -> Timeline:
    """Empty 30 fps portrait timeline."""
    return Timeline(fps=30)


@pytest.fixture
def resolver() -> MappingSourceResolver:
    return MappingSourceResolver(
        {
            "video-src": "/media/video.mp4",
            "video-src-2": "/media/video2.mp4",
            "audio-src": "/media/music.mp3",
            "image-src": "/media/still.png",
        }
    )


@pytest.fixture
def compiled_render(resolver):
    """A small compiled render: one 5 s video clip and a title."""
    timeline = Timeline(fps=30)
    timeline.add_media(make_video(5.0, source_duration=10.0))
    timeline.add_text(make_text(0.0, 2.0, "Title", x=540, y=200))
    return RenderGraphCompiler(resolver).compile(timeline.snapshot())
