"""
Tests for the render-graph compiler.

Graphs are checked structurally: node order, parameters and sinks.
"""

import pytest

from reelgraph.exceptions import (
    EmptyTimelineError,
    IncompleteTimelineError,
    InvalidTimelineError,
    MissingSourceError,
)
from reelgraph.render.compiler import RenderGraphCompiler, normalize_text_line
from reelgraph.render.graph import CompiledRender, NodeKind
from reelgraph.render.profile import build_output_profile
from reelgraph.render.sources import MappingSourceResolver
from reelgraph.schemas.timeline import TimelineSnapshot
from reelgraph.timeline.model import Timeline
from reelgraph.utils.geometry import AspectFit

from factories import make_audio, make_image, make_text, make_video


@pytest.fixture
def compiler(resolver) -> RenderGraphCompiler:
    return RenderGraphCompiler(resolver)


def kinds(compiled: CompiledRender) -> list[NodeKind]:
    return [node.kind for node in compiled.graph.nodes]


class TestPreconditions:
    def test_empty_timeline(self, compiler, timeline):
        with pytest.raises(EmptyTimelineError):
            compiler.compile(timeline.snapshot())

    def test_overlapping_video_clips_are_rejected(self, compiler):
        """Test that a snapshot whose video track overlaps never reaches the graph."""
        first = make_video(4.0)
        second = make_video(3.0, source_id="video-src-2").model_copy(update={"position_start": 2.0, "position_end": 5.0})
        snapshot = TimelineSnapshot(elements=(first, second))

        with pytest.raises(InvalidTimelineError) as exc_info:
            compiler.compile(snapshot)
        assert exc_info.value.invariant == "video-contiguity"
        assert exc_info.value.location.element_id == second.id

    def test_video_track_gap_is_rejected(self, compiler):
        clip = make_video(2.0).model_copy(update={"position_start": 1.0, "position_end": 3.0})

        with pytest.raises(InvalidTimelineError):
            compiler.compile(TimelineSnapshot(elements=(clip,)))

    def test_source_ratio_mismatch_is_rejected(self, compiler):
        clip = make_audio(0.0, 2.0).model_copy(update={"end_time": 5.0})

        with pytest.raises(InvalidTimelineError) as exc_info:
            compiler.compile(TimelineSnapshot(elements=(clip,)))
        assert exc_info.value.invariant == "source-ratio"

    def test_placeholder_reported_before_missing_source(self, compiler, timeline):
        timeline.add_media(make_video(2.0, source_id="unknown"))
        placeholder = timeline.add_media(make_video(2.0, source_id=None, is_placeholder=True))
        with pytest.raises(IncompleteTimelineError) as exc_info:
            compiler.compile(timeline.snapshot())
        assert exc_info.value.placeholder_ids == [placeholder.id]

    def test_missing_source(self, compiler, timeline):
        clip = timeline.add_media(make_video(2.0, source_id="unknown"))
        with pytest.raises(MissingSourceError) as exc_info:
            compiler.compile(timeline.snapshot())
        assert exc_info.value.location.element_id == clip.id

    def test_text_only_timeline_compiles(self, compiler, timeline):
        timeline.add_text(make_text(0, 3, "Only text"))
        compiled = compiler.compile(timeline.snapshot())
        assert kinds(compiled) == [NodeKind.CANVAS, NodeKind.DRAW_TEXT]
        assert compiled.graph.audio_sink is None
        assert compiled.profile.duration_seconds == pytest.approx(3.0)


class TestGraphStructure:
    def test_build_order(self, compiler, timeline):
        timeline.add_media(make_video(5.0))
        timeline.add_media(make_image(1.0, 3.0, z_index=1))
        timeline.add_media(make_audio(0.0, 4.0))
        timeline.add_text(make_text(0.0, 2.0))

        compiled = compiler.compile(timeline.snapshot())

        assert kinds(compiled) == [
            NodeKind.CANVAS,
            # video clip
            NodeKind.TRIM, NodeKind.LETTERBOX, NodeKind.TIME_SHIFT, NodeKind.OVERLAY,
            # image on top
            NodeKind.TRIM, NodeKind.LETTERBOX, NodeKind.TIME_SHIFT, NodeKind.OVERLAY,
            NodeKind.DRAW_TEXT,
            # video audio, then the music clip
            NodeKind.AUDIO_TRIM, NodeKind.AUDIO_DELAY, NodeKind.GAIN,
            NodeKind.AUDIO_TRIM, NodeKind.AUDIO_DELAY, NodeKind.GAIN,
            NodeKind.MIX,
        ]
        graph = compiled.graph
        assert graph.video_sink == "draw_text0"
        assert graph.audio_sink == "mix0"
        assert graph.node("mix0").inputs == ("gain0", "gain1")
        assert graph.node("mix0").params["normalize"] is False
        assert [s.source_id for s in compiled.sources] == ["video-src", "image-src", "audio-src"]

    def test_nodes_only_reference_earlier_nodes(self, compiler, timeline):
        timeline.add_media(make_video(5.0))
        timeline.add_media(make_audio(1.0, 2.0))
        timeline.add_text(make_text(0.0, 2.0, "a\nb"))
        compiled = compiler.compile(timeline.snapshot())

        seen = set()
        for node in compiled.graph.nodes:
            for ref in node.inputs:
                assert ref in seen or ref.endswith((":v", ":a"))
            seen.add(node.id)

    def test_compilation_is_deterministic(self, compiler, timeline):
        timeline.add_media(make_video(5.0))
        timeline.add_media(make_video(2.0, source_id="video-src-2"))
        timeline.add_text(make_text(0.0, 2.0))
        snapshot = timeline.snapshot()
        assert compiler.compile(snapshot).to_dict() == compiler.compile(snapshot).to_dict()

    def test_compiling_does_not_touch_timeline(self, compiler, timeline):
        timeline.add_media(make_video(5.0))
        before = timeline.snapshot()
        compiler.compile(before, watermark=True)
        assert timeline.snapshot() == before

    def test_video_trim_and_timing(self, compiler, timeline):
        timeline.add_media(make_video(2.0))
        clip = timeline.add_media(make_video(3.0, start_time=4.0))
        compiled = compiler.compile(timeline.snapshot())
        graph = compiled.graph

        trim = graph.nodes_of(NodeKind.TRIM)[1]
        assert trim.inputs == ("1:v",)
        assert trim.params == {"start": 4.0, "duration": 3.0, "speed": 1.0}
        assert graph.nodes_of(NodeKind.TIME_SHIFT)[1].params["offset"] == clip.position_start
        overlay = graph.nodes_of(NodeKind.OVERLAY)[1]
        assert (overlay.params["start"], overlay.params["end"]) == (2.0, 5.0)

    def test_z_index_orders_overlays(self, compiler, timeline):
        timeline.add_media(make_image(0.0, 2.0, z_index=5, source_id="image-src"))
        timeline.add_media(make_video(2.0))
        compiled = compiler.compile(timeline.snapshot())
        assert [s.media_type for s in compiled.sources] == ["video", "image"]

    def test_cover_uses_crop_fill(self, compiler, timeline):
        timeline.add_media(make_video(2.0, aspect_fit=AspectFit.COVER))
        compiled = compiler.compile(timeline.snapshot())
        node = compiled.graph.nodes_of(NodeKind.CROP_FILL)[0]
        assert (node.params["width"], node.params["height"]) == (1080, 1920)
        assert not compiled.graph.nodes_of(NodeKind.LETTERBOX)

    def test_opacity_node_only_when_translucent(self, compiler, timeline):
        timeline.add_media(make_video(2.0))
        timeline.add_media(make_image(0.0, 2.0, opacity=40))
        compiled = compiler.compile(timeline.snapshot())
        opacity = compiled.graph.nodes_of(NodeKind.OPACITY)
        assert len(opacity) == 1
        assert opacity[0].params["alpha"] == pytest.approx(0.4)

    def test_image_is_looped_for_its_duration(self, compiler, timeline):
        timeline.add_media(make_image(1.0, 4.5))
        compiled = compiler.compile(timeline.snapshot())
        assert compiled.sources[0].loop_seconds == pytest.approx(3.5)
        assert compiled.graph.audio_sink is None

    def test_geometry_scales_to_output_profile(self, compiler, timeline):
        timeline.add_media(make_video(2.0, x=100, y=200, width=540, height=960))
        profile = build_output_profile(resolution="720p")
        compiled = compiler.compile(timeline.snapshot(), profile)

        scale = 720 / 1080
        letterbox = compiled.graph.nodes_of(NodeKind.LETTERBOX)[0]
        assert (letterbox.params["width"], letterbox.params["height"]) == (360, 640)
        overlay = compiled.graph.nodes_of(NodeKind.OVERLAY)[0]
        assert overlay.params["x"] == round(100 * scale)
        assert compiled.graph.node("canvas0").params["width"] == 720


class TestText:
    def test_one_node_per_line_and_blank_lines_skipped(self, compiler, timeline):
        timeline.add_text(make_text(0.0, 2.0, "Hello\n\nWorld", y=100, font_size=40))
        compiled = compiler.compile(timeline.snapshot())
        nodes = compiled.graph.nodes_of(NodeKind.DRAW_TEXT)

        assert [n.params["text"] for n in nodes] == ["Hello", "World"]
        # The skipped blank line still takes up its row
        assert nodes[1].params["y"] == 100 + 2 * round(40 * 1.2)

    def test_texts_ordered_by_z_then_start(self, compiler, timeline):
        timeline.add_text(make_text(3.0, 4.0, "late", z_index=0))
        timeline.add_text(make_text(0.0, 1.0, "top", z_index=1))
        timeline.add_text(make_text(1.0, 2.0, "early", z_index=0))
        compiled = compiler.compile(timeline.snapshot())
        texts = [n.params["text"] for n in compiled.graph.nodes_of(NodeKind.DRAW_TEXT)]
        assert texts == ["early", "late", "top"]

    def test_unknown_font_falls_back(self, compiler, timeline):
        timeline.add_text(make_text(0.0, 1.0, font="Comic Sans"))
        node = compiler.compile(timeline.snapshot()).graph.nodes_of(NodeKind.DRAW_TEXT)[0]
        assert node.params["font"] == "Arial"

    def test_typographic_punctuation_is_normalised(self):
        assert normalize_text_line("“Hi” — it’s…") == "\"Hi\" - it's..."

    def test_undrawable_characters_are_dropped(self):
        assert normalize_text_line("café \U0001F600!") == "café !"


class TestWatermark:
    def test_watermark_is_terminal(self, compiler, timeline):
        timeline.add_media(make_video(2.0))
        timeline.add_text(make_text(0.0, 1.0))
        compiled = compiler.compile(timeline.snapshot(), watermark=True)
        graph = compiled.graph

        label, icon = graph.nodes[-6], graph.nodes[-5]
        assert label.params["role"] == "watermark_label"
        assert icon.params["role"] == "watermark_icon"
        assert graph.video_sink == icon.id
        assert icon.params["margin_x"] > label.params["margin_x"]
        assert "start" not in label.params

    def test_no_watermark_by_default(self, compiler, timeline):
        timeline.add_media(make_video(2.0))
        compiled = compiler.compile(timeline.snapshot())
        roles = {n.params.get("role") for n in compiled.graph.nodes_of(NodeKind.DRAW_TEXT)}
        assert "watermark_label" not in roles


class TestAudio:
    def test_gain_and_delay(self, compiler, timeline):
        timeline.add_media(make_audio(2.5, 4.0, volume=75))
        compiled = compiler.compile(timeline.snapshot())
        graph = compiled.graph

        assert graph.node("audio_delay0").params["delay_ms"] == 2500
        gain = graph.node("gain0").params
        assert gain["db"] == pytest.approx(6.0)
        assert gain["linear"] == pytest.approx(10 ** (6 / 20))

    def test_sources_without_audio_stream_are_not_mixed(self, timeline):
        resolver = MappingSourceResolver({"video-src": "/media/silent.mp4"}, silent={"video-src"})
        timeline.add_media(make_video(2.0))
        compiled = RenderGraphCompiler(resolver).compile(timeline.snapshot())
        assert compiled.graph.audio_sink is None
        assert not compiled.graph.nodes_of(NodeKind.MIX)

    def test_playback_speed_reaches_audio_trim(self, compiler, timeline):
        clip = make_audio(0.0, 2.0).model_copy(update={"end_time": 4.0, "playback_speed": 2.0})
        timeline.add_media(clip)
        trim = compiler.compile(timeline.snapshot()).graph.node("audio_trim0")
        assert trim.params == {"start": 0.0, "duration": 4.0, "speed": 2.0}


class TestCompiledRender:
    def test_dict_round_trip(self, compiled_render):
        """The worker queue rebuilds the exact same render from JSON data."""
        rebuilt = CompiledRender.from_dict(compiled_render.to_dict())
        assert rebuilt.to_dict() == compiled_render.to_dict()
        assert isinstance(rebuilt.graph.nodes[0].kind, NodeKind)

    def test_snapshot_metadata(self, compiled_render):
        assert compiled_render.snapshot_version == 2
        assert compiled_render.profile.duration_seconds == pytest.approx(5.0)
        assert compiled_render.watermark is False
