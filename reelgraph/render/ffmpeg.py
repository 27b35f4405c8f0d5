"""
FFmpeg command builder.

Translates a CompiledRender into an ffmpeg argument list with a single
``-filter_complex``. Each graph node becomes one filter chain whose output
pad is labelled with the node id, so the filter graph mirrors the render
graph one to one.

Text is passed through ``textfile=`` rather than inline ``text=`` to avoid
escaping issues; the builder only decides the file names and contents, the
engine writes them.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any

from reelgraph.config import get_settings
from reelgraph.render.graph import CompiledRender, RenderNode

logger = logging.getLogger(__name__)

VIDEO_CODECS = {"h264": "libx264"}
AUDIO_CODECS = {"aac": "aac"}


def _ffmpeg_color(color: str, opacity: int | float = 100) -> str:
    """Convert ``#RRGGBB`` to ffmpeg's ``0xRRGGBB`` and append the alpha.

    Colors that already carry an ``@alpha`` suffix are left alone.
    """
    if color.startswith("#"):
        color = "0x" + color[1:]
    if "@" in color:
        return color
    return f"{color}@{opacity / 100:.2f}"


def _build_enable_expr(start_s: float, end_s: float) -> str:
    return f"between(t,{start_s:.6f},{end_s:.6f})"


def _build_atempo_chain(speed: float) -> list[str]:
    """atempo only accepts 0.5-2.0 per stage, so larger factors are chained."""
    parts: list[str] = []
    while speed >= 2.0:
        parts.append("atempo=2.0")
        speed /= 2.0
    while speed <= 0.5:
        parts.append("atempo=0.5")
        speed /= 0.5
    if abs(speed - 1.0) > 1e-9:
        parts.append(f"atempo={speed:.6g}")
    return parts


@dataclass
class FFmpegCommand:
    """A ready-to-run ffmpeg invocation."""

    args: list[str]
    filter_complex: str
    output_path: str
    duration_seconds: float
    # path -> content of the drawtext text files
    text_files: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "args": list(self.args),
            "filter_complex": self.filter_complex,
            "output_path": self.output_path,
            "duration_seconds": self.duration_seconds,
            "text_files": dict(self.text_files),
        }


class FilterGraphBuilder:
    """Builds the ffmpeg command for one compiled render."""

    def __init__(self, compiled: CompiledRender, work_dir: str | None = None):
        self.settings = get_settings()
        self.compiled = compiled
        self.work_dir = work_dir or self.settings.render_work_dir
        self._text_files: dict[str, str] = {}

    def build(self, output_path: str) -> FFmpegCommand:
        compiled = self.compiled
        profile = compiled.profile
        graph = compiled.graph
        if graph.video_sink is None:
            raise ValueError("Render graph has no video output")

        self._text_files = {}
        chains = [self._node_filter(node) for node in graph.nodes]
        filter_complex = ";".join(chains)

        cmd = [self.settings.ffmpeg_path, "-y", "-hide_banner"]
        for source in compiled.sources:
            if source.loop_seconds is not None:
                cmd.extend(["-loop", "1", "-t", f"{source.loop_seconds:.6f}"])
            cmd.extend(["-i", source.location])

        cmd.extend(["-filter_complex", filter_complex, "-map", f"[{graph.video_sink}]"])
        if graph.audio_sink is not None:
            cmd.extend(["-map", f"[{graph.audio_sink}]"])

        cmd.extend(
            [
                "-c:v", VIDEO_CODECS.get(profile.video_codec_class, "libx264"),
                "-preset", profile.quality_preset,
                "-crf", str(profile.crf),
                "-maxrate", profile.video_bitrate,
                "-bufsize", profile.video_bitrate,
                "-pix_fmt", "yuv420p",
                "-r", str(profile.fps),
            ]
        )
        if graph.audio_sink is not None:
            cmd.extend(
                [
                    "-c:a", AUDIO_CODECS.get(profile.audio_codec_class, "aac"),
                    "-b:a", profile.audio_bitrate,
                    "-ar", str(profile.audio_sample_rate),
                ]
            )
        cmd.extend(
            [
                "-threads", str(self.settings.render_ffmpeg_threads),
                "-movflags", "+faststart",
                "-t", f"{profile.duration_seconds:.6f}",
                output_path,
            ]
        )

        logger.debug(f"[FFMPEG] filter_complex: {filter_complex}")
        return FFmpegCommand(
            args=cmd,
            filter_complex=filter_complex,
            output_path=output_path,
            duration_seconds=profile.duration_seconds,
            text_files=dict(self._text_files),
        )

    # =========================================================================
    # Per-node filters
    # =========================================================================

    def _node_filter(self, node: RenderNode) -> str:
        handler = getattr(self, f"_filter_{node.kind.value}")
        inputs = "".join(f"[{i}]" for i in node.inputs)
        return f"{inputs}{handler(node.params)}[{node.id}]"

    @staticmethod
    def _filter_canvas(p: dict[str, Any]) -> str:
        return f"color=c={p['color']}:s={p['width']}x{p['height']}:d={p['duration']:.6f}:r={p['fps']}"

    @staticmethod
    def _filter_trim(p: dict[str, Any]) -> str:
        setpts = "setpts=PTS-STARTPTS"
        if p["speed"] != 1.0:
            setpts = f"setpts=(PTS-STARTPTS)/{p['speed']:.6f}"
        return f"trim=start={p['start']:.6f}:duration={p['duration']:.6f},{setpts}"

    @staticmethod
    def _filter_letterbox(p: dict[str, Any]) -> str:
        w, h = p["width"], p["height"]
        return (
            f"scale={w}:{h}:force_original_aspect_ratio=decrease:force_divisible_by=2,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2:black"
        )

    @staticmethod
    def _filter_crop_fill(p: dict[str, Any]) -> str:
        w, h = p["width"], p["height"]
        return (
            f"scale={w}:{h}:force_original_aspect_ratio=increase:force_divisible_by=2,"
            f"crop={w}:{h}:(iw-{w})/2:(ih-{h})/2"
        )

    @staticmethod
    def _filter_time_shift(p: dict[str, Any]) -> str:
        return f"setpts=PTS+{p['offset']:.6f}/TB"

    @staticmethod
    def _filter_opacity(p: dict[str, Any]) -> str:
        return f"format=yuva420p,colorchannelmixer=aa={p['alpha']:.4f}"

    @staticmethod
    def _filter_overlay(p: dict[str, Any]) -> str:
        enable = _build_enable_expr(p["start"], p["end"])
        return f"overlay=x={p['x']}:y={p['y']}:enable='{enable}'"

    def _filter_draw_text(self, p: dict[str, Any]) -> str:
        path = os.path.join(self.work_dir, f"text_{len(self._text_files)}.txt")
        self._text_files[path] = p["text"]

        fontfile = os.path.join(self.settings.font_dir, f"{p['font']}.ttf")
        opts = [
            f"fontfile='{fontfile}'",
            f"textfile='{path}'",
            f"fontsize={p['font_size']}",
            f"fontcolor={_ffmpeg_color(p['color'], p['opacity'])}",
        ]

        if p.get("anchor") == "bottom_right":
            opts.append(f"x=w-text_w-{p['margin_x']}")
            opts.append(f"y=h-text_h-{p['margin_y']}")
        else:
            align = p.get("align", "center")
            if align == "center":
                opts.append(f"x={p['x']}-text_w/2")
            elif align == "right":
                opts.append(f"x={p['x']}-text_w")
            else:
                opts.append(f"x={p['x']}")
            opts.append(f"y={p['y']}")

        if p.get("background_color"):
            opts.append("box=1")
            opts.append(f"boxcolor={_ffmpeg_color(p['background_color'], p['opacity'])}")
        if p.get("shadow_color"):
            opts.append(f"shadowcolor={_ffmpeg_color(p['shadow_color'], p['shadow_opacity'])}")
            opts.append(f"shadowx={p['shadow_offset']}")
            opts.append(f"shadowy={p['shadow_offset']}")
        if "start" in p and "end" in p:
            opts.append(f"enable='{_build_enable_expr(p['start'], p['end'])}'")

        return "drawtext=" + ":".join(opts)

    @staticmethod
    def _filter_audio_trim(p: dict[str, Any]) -> str:
        parts = [
            f"atrim=start={p['start']:.6f}:duration={p['duration']:.6f}",
            "asetpts=PTS-STARTPTS",
        ]
        parts.extend(_build_atempo_chain(p["speed"]))
        return ",".join(parts)

    @staticmethod
    def _filter_audio_delay(p: dict[str, Any]) -> str:
        return f"adelay={p['delay_ms']}:all=1"

    @staticmethod
    def _filter_gain(p: dict[str, Any]) -> str:
        return f"volume={p['linear']:.6f}"

    @staticmethod
    def _filter_mix(p: dict[str, Any]) -> str:
        normalize = 1 if p.get("normalize") else 0
        return f"amix=inputs={p['count']}:duration=longest:dropout_transition=0:normalize={normalize}"


def build_ffmpeg_command(compiled: CompiledRender, output_path: str, work_dir: str | None = None) -> FFmpegCommand:
    return FilterGraphBuilder(compiled, work_dir).build(output_path)
