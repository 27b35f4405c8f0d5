"""Tests for source resolution and media probing."""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from reelgraph.exceptions import MissingSourceError
from reelgraph.render.sources import DirectorySourceResolver, MappingSourceResolver
from reelgraph.utils.media_info import has_audio_track


class TestMappingSourceResolver:
    def test_locate(self):
        resolver = MappingSourceResolver({"a": "/media/a.mp4"})

        assert resolver.locate("a") == "/media/a.mp4"
        assert resolver.locate("b") is None

    def test_silent_sources(self):
        resolver = MappingSourceResolver({"a": "/media/a.mp4", "b": "/media/b.mp4"}, silent={"b"})

        assert resolver.has_audio("a")
        assert not resolver.has_audio("b")

    def test_fetch_local_file(self, temp_output_dir):
        path = temp_output_dir / "clip.mp4"
        path.write_bytes(b"\x00\x01video")
        resolver = MappingSourceResolver({"clip": str(path)})

        assert resolver.fetch_source("clip") == b"\x00\x01video"

    def test_fetch_missing_file(self, temp_output_dir):
        resolver = MappingSourceResolver({"clip": str(temp_output_dir / "gone.mp4")})

        with pytest.raises(MissingSourceError) as exc_info:
            resolver.fetch_source("clip")
        assert exc_info.value.source_id == "clip"

    def test_fetch_unknown_id(self):
        with pytest.raises(MissingSourceError):
            MappingSourceResolver({}).fetch_source("nope")

    def test_fetch_url(self):
        response = MagicMock(status_code=200, content=b"remote-bytes")
        resolver = MappingSourceResolver({"clip": "https://cdn.test/clip.mp4"})

        with patch("reelgraph.render.sources.httpx.get", return_value=response) as get:
            assert resolver.fetch_source("clip") == b"remote-bytes"
        assert get.call_args.args[0] == "https://cdn.test/clip.mp4"
        response.raise_for_status.assert_called_once()

    def test_fetch_url_not_found(self):
        resolver = MappingSourceResolver({"clip": "https://cdn.test/clip.mp4"})

        with patch("reelgraph.render.sources.httpx.get", return_value=MagicMock(status_code=404)):
            with pytest.raises(MissingSourceError):
                resolver.fetch_source("clip")


class TestDirectorySourceResolver:
    def test_exact_name_wins(self, temp_output_dir):
        (temp_output_dir / "intro").write_bytes(b"x")
        (temp_output_dir / "intro.mp4").write_bytes(b"y")

        assert DirectorySourceResolver(temp_output_dir).locate("intro") == str(temp_output_dir / "intro")

    def test_any_extension(self, temp_output_dir):
        (temp_output_dir / "music.mp3").write_bytes(b"x")

        assert DirectorySourceResolver(temp_output_dir).locate("music") == str(temp_output_dir / "music.mp3")

    def test_unknown(self, temp_output_dir):
        resolver = DirectorySourceResolver(temp_output_dir)

        assert resolver.locate("missing") is None
        assert not resolver.has_audio("missing")

    def test_has_audio_probes_file(self, temp_output_dir):
        (temp_output_dir / "clip.mp4").write_bytes(b"x")

        with patch("reelgraph.render.sources.has_audio_track", return_value=True) as probe:
            assert DirectorySourceResolver(temp_output_dir).has_audio("clip")
        probe.assert_called_once_with(str(temp_output_dir / "clip.mp4"))


class TestHasAudioTrack:
    def test_audio_stream_present(self):
        completed = subprocess.CompletedProcess(
            args=[], returncode=0, stdout=json.dumps({"streams": [{"codec_type": "audio"}]}), stderr=""
        )
        with patch("reelgraph.utils.media_info.subprocess.run", return_value=completed):
            assert has_audio_track("/media/video.mp4")

    def test_no_audio_stream(self):
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout='{"streams": []}', stderr="")
        with patch("reelgraph.utils.media_info.subprocess.run", return_value=completed):
            assert not has_audio_track("/media/still.png")

    def test_unreadable_file(self):
        completed = subprocess.CompletedProcess(args=[], returncode=1, stdout="", stderr="Invalid data")
        with patch("reelgraph.utils.media_info.subprocess.run", return_value=completed):
            assert not has_audio_track("/media/broken.mp4")
