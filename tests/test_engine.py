"""
Tests for the ffmpeg engine.

The subprocess is faked so progress parsing, failure reporting and
cancellation can be checked without an ffmpeg binary.
"""

import io
import shutil
import threading
from unittest.mock import patch

import pytest

from reelgraph.exceptions import EncodingFailureError, EngineUnavailableError, RenderCancelledError
from reelgraph.render.engine import FFmpegEngine, parse_progress_line


class FakeProcess:
    def __init__(self, stdout_lines, returncode, stderr_file, stderr_text=""):
        self.stdout = io.StringIO("".join(stdout_lines))
        self.returncode = returncode
        self.killed = False
        stderr_file.write(stderr_text)
        stderr_file.flush()

    def kill(self):
        self.killed = True
        self.returncode = -9

    def wait(self):
        return self.returncode


class StalledStdout:
    """Pipe that produces no output until the process is killed."""

    def __init__(self, killed: threading.Event):
        self.killed = killed

    def __iter__(self):
        self.killed.wait(5.0)
        return iter(())

    def close(self):
        pass


class StalledProcess(FakeProcess):
    def __init__(self, stderr_file):
        super().__init__([], None, stderr_file)
        self.kill_event = threading.Event()
        self.stdout = StalledStdout(self.kill_event)

    def kill(self):
        super().kill()
        self.kill_event.set()


def fake_popen(stdout_lines, returncode=0, stderr_text="", calls=None):
    def _popen(cmd, stdout=None, stderr=None, **kwargs):
        proc = FakeProcess(stdout_lines, returncode, stderr, stderr_text)
        if calls is not None:
            calls.append((cmd, proc))
        return proc
    return _popen


class TestProgressParsing:
    def test_out_time(self):
        assert parse_progress_line("out_time_us=2500000", 5.0) == 50

    def test_capped_below_complete(self):
        assert parse_progress_line("out_time_us=9000000", 5.0) == 99

    def test_other_lines(self):
        assert parse_progress_line("frame=10", 5.0) is None
        assert parse_progress_line("out_time_us=N/A", 5.0) is None
        assert parse_progress_line("out_time_us=100", 0) is None


class TestFFmpegEngine:
    def test_successful_render_reports_progress(self, compiled_render, temp_output_dir):
        progress = []
        calls = []
        lines = ["frame=1\n", "out_time_us=2500000\n", "out_time_us=2600000\n", "progress=end\n"]
        output = str(temp_output_dir / "out" / "video.mp4")

        with patch("reelgraph.render.engine.subprocess.Popen", side_effect=fake_popen(lines, calls=calls)):
            result = FFmpegEngine(work_dir=str(temp_output_dir)).render(
                compiled_render,
                output,
                job_id="job-1",
                progress=lambda pct, stage: progress.append(pct),
            )

        assert result == output
        assert progress == [0, 50, 100]
        cmd = calls[0][0]
        assert cmd[-4:] == ["-progress", "pipe:1", "-nostats", output]

    def test_text_files_are_written_then_cleaned_up(self, compiled_render, temp_output_dir):
        seen = {}

        def _popen(cmd, stdout=None, stderr=None, **kwargs):
            fc = cmd[cmd.index("-filter_complex") + 1]
            path = fc.split("textfile='")[1].split("'")[0]
            with open(path, encoding="utf-8") as f:
                seen["text"] = f.read()
            return FakeProcess(["progress=end\n"], 0, stderr)

        with patch("reelgraph.render.engine.subprocess.Popen", side_effect=_popen):
            FFmpegEngine(work_dir=str(temp_output_dir)).render(compiled_render, str(temp_output_dir / "o.mp4"))

        assert seen["text"] == "Title"
        assert not list(temp_output_dir.glob("render_*"))

    def test_nonzero_exit_surfaces_stderr(self, compiled_render, temp_output_dir):
        popen = fake_popen([], returncode=1, stderr_text="Error opening input\nInvalid data found\n")
        with patch("reelgraph.render.engine.subprocess.Popen", side_effect=popen):
            with pytest.raises(EncodingFailureError) as exc_info:
                FFmpegEngine(work_dir=str(temp_output_dir)).render(
                    compiled_render, str(temp_output_dir / "o.mp4"), job_id="job-2"
                )

        error = exc_info.value
        assert error.engine_message == "Error opening input\nInvalid data found"
        assert error.location.job_id == "job-2"
        assert not error.retryable

    def test_cancel_kills_process(self, compiled_render, temp_output_dir):
        calls = []
        cancel = threading.Event()
        cancel.set()
        popen = fake_popen(["out_time_us=1000000\n", "progress=end\n"], calls=calls)

        with patch("reelgraph.render.engine.subprocess.Popen", side_effect=popen):
            with pytest.raises(RenderCancelledError):
                FFmpegEngine(work_dir=str(temp_output_dir)).render(
                    compiled_render, str(temp_output_dir / "o.mp4"), cancel_event=cancel
                )

        assert calls[0][1].killed

    def test_cancel_reaches_stalled_process(self, compiled_render, temp_output_dir):
        """Test that a cancel lands even when ffmpeg writes no progress at all."""
        procs = []
        cancel = threading.Event()

        def popen(cmd, stdout=None, stderr=None, **kwargs):
            procs.append(StalledProcess(stderr))
            return procs[-1]

        timer = threading.Timer(0.1, cancel.set)
        timer.start()
        try:
            with patch("reelgraph.render.engine.subprocess.Popen", side_effect=popen):
                with pytest.raises(RenderCancelledError):
                    FFmpegEngine(work_dir=str(temp_output_dir)).render(
                        compiled_render, str(temp_output_dir / "o.mp4"), cancel_event=cancel
                    )
        finally:
            timer.cancel()

        assert procs[0].killed

    def test_missing_binary(self, compiled_render, temp_output_dir):
        with patch("reelgraph.render.engine.subprocess.Popen", side_effect=FileNotFoundError()):
            with pytest.raises(EngineUnavailableError):
                FFmpegEngine(work_dir=str(temp_output_dir)).render(compiled_render, str(temp_output_dir / "o.mp4"))

    @pytest.mark.requires_ffmpeg
    @pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not available")
    def test_real_render_of_text_only_timeline(self, resolver, temp_output_dir):
        """Render a short text-only timeline with the real binary."""
        from reelgraph.render.compiler import RenderGraphCompiler
        from reelgraph.render.profile import build_output_profile
        from reelgraph.timeline.model import Timeline
        from factories import make_text

        timeline = Timeline(fps=30)
        timeline.add_text(make_text(0.0, 1.0, "Hi"))
        profile = build_output_profile(resolution="480p", speed="fastest")
        compiled = RenderGraphCompiler(resolver).compile(timeline.snapshot(), profile)

        output = temp_output_dir / "text.mp4"
        try:
            FFmpegEngine(work_dir=str(temp_output_dir)).render(compiled, str(output))
        except EncodingFailureError as e:
            # Fonts differ between machines
            pytest.skip(f"ffmpeg could not render text here: {e.engine_message}")
        assert output.exists()
        assert output.stat().st_size > 0
