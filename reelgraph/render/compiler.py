"""
Render-graph compiler.

Turns an immutable timeline snapshot into a CompiledRender: the ordered
source inputs, a node graph, and the output profile. The graph is built in
a fixed order:

1. Base canvas
2. Visual clips by z-index: trim, fit transform, time shift, opacity, overlay
3. Text lines
4. Watermark label and icon (when required)
5. Per-clip audio trim, delay and gain, then a single non-normalising mix

Compilation only reads the snapshot. All precondition checks happen before
any node is emitted, so a failed compile never yields a partial graph.
"""

import logging
import re

from reelgraph.config import get_settings
from reelgraph.exceptions import (
    ConstraintViolationError,
    EmptyTimelineError,
    IncompleteTimelineError,
    InvalidTimelineError,
    MissingSourceError,
)
from reelgraph.render.graph import CompiledRender, NodeKind, RenderGraph, RenderNode, SourceInput
from reelgraph.render.profile import OutputProfile, build_output_profile
from reelgraph.render.sources import SourceResolver
from reelgraph.schemas.timeline import MediaClip, TextElement, TimelineSnapshot
from reelgraph.timeline.model import Timeline
from reelgraph.utils.gain import volume_to_db, volume_to_linear
from reelgraph.utils.geometry import AspectFit, Rect, Size, calculate_fit, make_even
from reelgraph.utils.timecode import seconds_to_ms

logger = logging.getLogger(__name__)

# Watermark layout, as fractions of the output size
WATERMARK_FONT_RATIO = 0.052
WATERMARK_ICON_RATIO = 0.85
WATERMARK_PAD_X_RATIO = 0.04
WATERMARK_PAD_Y_RATIO = 0.032
WATERMARK_SHADOW_RATIO = 0.07
WATERMARK_ICON_GAP_RATIO = 0.35
WATERMARK_FONT = "Inter"

_TEXT_REPLACEMENTS = [
    (re.compile("[‘’‚‛`´]"), "'"),
    (re.compile("[“”„‟]"), '"'),
    (re.compile("[–—−]"), "-"),
    (re.compile("…"), "..."),
    # Anything outside printable ASCII and Latin-1
    (re.compile("[^\x20-\x7e\xa0-\xff]"), ""),
]


def normalize_text_line(line: str) -> str:
    """Map typographic punctuation to ASCII and drop undrawable characters."""
    for pattern, replacement in _TEXT_REPLACEMENTS:
        line = pattern.sub(replacement, line)
    return line


def clip_rect(clip: MediaClip, canvas: Size) -> Rect:
    """Canvas placement of a visual clip.

    Explicit geometry wins; otherwise it is derived from the fit mode.
    """
    if clip.width and clip.height:
        return Rect(clip.x, clip.y, clip.width, clip.height)
    return calculate_fit(clip.original_size, canvas, clip.aspect_fit, clip.zoom)


class _GraphBuilder:
    """Appends nodes with ids derived from kind and emission order."""

    def __init__(self) -> None:
        self.nodes: list[RenderNode] = []
        self._counters: dict[NodeKind, int] = {}

    def add(self, kind: NodeKind, inputs: tuple[str, ...] = (), **params) -> str:
        index = self._counters.get(kind, 0)
        self._counters[kind] = index + 1
        node_id = f"{kind.value}{index}"
        self.nodes.append(RenderNode(id=node_id, kind=kind, inputs=inputs, params=params))
        return node_id


class RenderGraphCompiler:
    """Compiles timeline snapshots against a source resolver."""

    def __init__(self, resolver: SourceResolver):
        self.resolver = resolver
        self.settings = get_settings()

    def compile(
        self,
        snapshot: TimelineSnapshot,
        profile: OutputProfile | None = None,
        *,
        watermark: bool = False,
    ) -> CompiledRender:
        """
        Compile a snapshot into a render graph.

        Args:
            snapshot: Timeline snapshot to render
            profile: Output profile; defaults to the 1080p/medium/balanced preset
            watermark: Draw the watermark (unlicensed exports)

        Returns:
            CompiledRender with sources, graph and profile

        Raises:
            EmptyTimelineError: No media and no text
            InvalidTimelineError: The snapshot breaks a timeline invariant
            IncompleteTimelineError: A placeholder clip remains
            MissingSourceError: A clip's source cannot be resolved
        """
        locations = self._check_preconditions(snapshot)
        duration = snapshot.duration
        profile = (profile or build_output_profile(fps=snapshot.fps)).with_duration(duration)

        canvas = snapshot.canvas
        sx = profile.width / canvas.width
        sy = profile.height / canvas.height

        builder = _GraphBuilder()
        sources: list[SourceInput] = []
        current = builder.add(
            NodeKind.CANVAS,
            color="black",
            width=profile.width,
            height=profile.height,
            duration=duration,
            fps=profile.fps,
        )

        media = snapshot.media_clips
        visual = sorted((c for c in media if c.is_visual), key=lambda c: c.z_index)
        audio_only = [c for c in media if c.media_type == "audio"]

        audio_clips: list[tuple[MediaClip, SourceInput]] = []
        for clip in visual:
            source = self._add_source(sources, clip, locations[clip.id])
            current = self._emit_visual(builder, clip, source, current, canvas, sx, sy)
            if clip.has_audio:
                audio_clips.append((clip, source))
        for clip in audio_only:
            audio_clips.append((clip, self._add_source(sources, clip, locations[clip.id])))

        texts = sorted(snapshot.text_elements, key=lambda t: (t.z_index, t.position_start))
        for text in texts:
            current = self._emit_text(builder, text, current, sx, sy)

        if watermark:
            current = self._emit_watermark(builder, current, profile)

        audio_sink = self._emit_audio(builder, audio_clips)

        graph = RenderGraph(nodes=builder.nodes, video_sink=current, audio_sink=audio_sink)
        logger.info(
            f"[COMPILE] Snapshot v{snapshot.version}: {len(graph.nodes)} nodes, "
            f"{len(sources)} sources, {duration:.3f}s at {profile.width}x{profile.height}"
        )
        return CompiledRender(
            sources=sources,
            graph=graph,
            profile=profile,
            watermark=watermark,
            snapshot_version=snapshot.version,
        )

    # =========================================================================
    # Preconditions
    # =========================================================================

    def _check_preconditions(self, snapshot: TimelineSnapshot) -> dict[str, str]:
        media = snapshot.media_clips
        if not media and not snapshot.text_elements:
            raise EmptyTimelineError()

        try:
            Timeline.check_snapshot(snapshot)
        except ConstraintViolationError as e:
            element_id = e.location.element_id if e.location else None
            raise InvalidTimelineError(e.message, invariant=e.invariant, element_id=element_id) from e

        placeholders = [c.id for c in media if c.is_placeholder]
        if placeholders:
            raise IncompleteTimelineError(placeholders)

        locations: dict[str, str] = {}
        for clip in media:
            location = self.resolver.locate(clip.source_id) if clip.source_id else None
            if location is None:
                raise MissingSourceError(clip.source_id, element_id=clip.id)
            locations[clip.id] = location
        return locations

    # =========================================================================
    # Node emission
    # =========================================================================

    @staticmethod
    def _add_source(sources: list[SourceInput], clip: MediaClip, location: str) -> SourceInput:
        source = SourceInput(
            index=len(sources),
            source_id=clip.source_id,
            location=location,
            media_type=clip.media_type,
            loop_seconds=clip.duration if clip.media_type == "image" else None,
        )
        sources.append(source)
        return source

    @staticmethod
    def _emit_visual(
        builder: _GraphBuilder,
        clip: MediaClip,
        source: SourceInput,
        base: str,
        canvas: Size,
        sx: float,
        sy: float,
    ) -> str:
        if clip.media_type == "image":
            node = builder.add(NodeKind.TRIM, (source.video_stream,), start=0.0, duration=clip.duration, speed=1.0)
        else:
            node = builder.add(
                NodeKind.TRIM,
                (source.video_stream,),
                start=clip.start_time,
                duration=clip.source_span,
                speed=clip.playback_speed,
            )

        rect = clip_rect(clip, canvas).scaled(sx, sy)
        width, height = max(2, make_even(rect.width)), max(2, make_even(rect.height))
        fill = clip.aspect_fit in (AspectFit.COVER, AspectFit.SQUARE)
        node = builder.add(
            NodeKind.CROP_FILL if fill else NodeKind.LETTERBOX,
            (node,),
            width=width,
            height=height,
        )
        node = builder.add(NodeKind.TIME_SHIFT, (node,), offset=clip.position_start)
        if clip.opacity != 100:
            node = builder.add(NodeKind.OPACITY, (node,), alpha=clip.opacity / 100)

        return builder.add(
            NodeKind.OVERLAY,
            (base, node),
            x=int(round(rect.x)),
            y=int(round(rect.y)),
            start=clip.position_start,
            end=clip.position_end,
        )

    def _emit_text(self, builder: _GraphBuilder, text: TextElement, base: str, sx: float, sy: float) -> str:
        font = text.font
        if font not in self.settings.available_fonts:
            logger.warning(f"[COMPILE] Font {font!r} unavailable for {text.id}, using {self.settings.default_font}")
            font = self.settings.default_font

        font_size = max(1, int(round(text.font_size * sy)))
        line_height = int(round(font_size * self.settings.line_height_ratio))
        x = int(round(text.x * sx))
        y = int(round(text.y * sy))

        for index, line in enumerate(text.lines):
            if index > 0 and not line.strip():
                continue
            base = builder.add(
                NodeKind.DRAW_TEXT,
                (base,),
                role="text",
                text=normalize_text_line(line),
                font=font,
                font_size=font_size,
                color=text.color,
                opacity=text.opacity,
                background_color=text.background_color,
                align=text.align,
                x=x,
                y=y + index * line_height,
                start=text.position_start,
                end=text.position_end,
            )
        return base

    def _emit_watermark(self, builder: _GraphBuilder, base: str, profile: OutputProfile) -> str:
        font_size = int(round(profile.width * WATERMARK_FONT_RATIO))
        icon_size = int(round(font_size * WATERMARK_ICON_RATIO))
        pad_x = int(round(profile.width * WATERMARK_PAD_X_RATIO))
        pad_y = int(round(profile.height * WATERMARK_PAD_Y_RATIO))
        shadow = max(2, int(round(font_size * WATERMARK_SHADOW_RATIO)))
        icon_gap = int(round(font_size * WATERMARK_ICON_GAP_RATIO))
        font = WATERMARK_FONT if WATERMARK_FONT in self.settings.available_fonts else self.settings.default_font

        base = builder.add(
            NodeKind.DRAW_TEXT,
            (base,),
            role="watermark_label",
            text=self.settings.watermark_text,
            font=font,
            font_size=font_size,
            color="#FFFFFF",
            opacity=90,
            anchor="bottom_right",
            margin_x=pad_x,
            margin_y=pad_y,
            shadow_color="#000000",
            shadow_opacity=65,
            shadow_offset=shadow,
        )
        return builder.add(
            NodeKind.DRAW_TEXT,
            (base,),
            role="watermark_icon",
            text=self.settings.watermark_icon,
            font=font,
            font_size=icon_size,
            color="#FFD700",
            opacity=95,
            anchor="bottom_right",
            margin_x=pad_x + icon_gap,
            margin_y=pad_y,
            shadow_color="#000000",
            shadow_opacity=50,
            shadow_offset=shadow,
        )

    def _emit_audio(self, builder: _GraphBuilder, clips: list[tuple[MediaClip, SourceInput]]) -> str | None:
        outputs: list[str] = []
        for clip, source in clips:
            if not self.resolver.has_audio(clip.source_id):
                logger.debug(f"[COMPILE] {clip.id} has no audio stream, not mixed")
                continue
            node = builder.add(
                NodeKind.AUDIO_TRIM,
                (source.audio_stream,),
                start=clip.start_time,
                duration=clip.source_span,
                speed=clip.playback_speed,
            )
            node = builder.add(NodeKind.AUDIO_DELAY, (node,), delay_ms=seconds_to_ms(clip.position_start))
            node = builder.add(
                NodeKind.GAIN,
                (node,),
                linear=volume_to_linear(clip.volume),
                db=volume_to_db(clip.volume),
            )
            outputs.append(node)

        if not outputs:
            return None
        return builder.add(NodeKind.MIX, tuple(outputs), count=len(outputs), normalize=False)
