"""Render graph: the engine-neutral description of a composition.

Nodes are listed in construction order and only reference earlier nodes or
source streams, so the list is already topologically sorted. Node ids come
from compile order alone; compiling the same snapshot twice gives identical
graphs.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from reelgraph.render.profile import OutputProfile


class NodeKind(str, Enum):
    """Operations the encoding engine has to support."""

    CANVAS = "canvas"
    TRIM = "trim"
    LETTERBOX = "letterbox"
    CROP_FILL = "crop_fill"
    TIME_SHIFT = "time_shift"
    OPACITY = "opacity"
    OVERLAY = "overlay"
    DRAW_TEXT = "draw_text"
    AUDIO_TRIM = "audio_trim"
    AUDIO_DELAY = "audio_delay"
    GAIN = "gain"
    MIX = "mix"


VISUAL_KINDS = frozenset(
    {
        NodeKind.CANVAS,
        NodeKind.TRIM,
        NodeKind.LETTERBOX,
        NodeKind.CROP_FILL,
        NodeKind.TIME_SHIFT,
        NodeKind.OPACITY,
        NodeKind.OVERLAY,
        NodeKind.DRAW_TEXT,
    }
)


@dataclass(frozen=True)
class SourceInput:
    """One input file of the render, referenced as ``{index}:v`` / ``{index}:a``."""

    index: int
    source_id: str
    location: str
    media_type: str
    # Images are looped for this many seconds
    loop_seconds: float | None = None

    @property
    def video_stream(self) -> str:
        return f"{self.index}:v"

    @property
    def audio_stream(self) -> str:
        return f"{self.index}:a"

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "source_id": self.source_id,
            "location": self.location,
            "media_type": self.media_type,
            "loop_seconds": self.loop_seconds,
        }


@dataclass(frozen=True)
class RenderNode:
    id: str
    kind: NodeKind
    inputs: tuple[str, ...] = ()
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def is_visual(self) -> bool:
        return self.kind in VISUAL_KINDS

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "inputs": list(self.inputs),
            "params": dict(self.params),
        }


@dataclass
class RenderGraph:
    nodes: list[RenderNode] = field(default_factory=list)
    video_sink: str | None = None
    audio_sink: str | None = None

    def node(self, node_id: str) -> RenderNode:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise KeyError(node_id)

    def nodes_of(self, kind: NodeKind) -> list[RenderNode]:
        return [n for n in self.nodes if n.kind == kind]

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "video_sink": self.video_sink,
            "audio_sink": self.audio_sink,
        }


@dataclass
class CompiledRender:
    """Compiler output handed to a render adapter. Treated as immutable."""

    sources: list[SourceInput]
    graph: RenderGraph
    profile: OutputProfile
    watermark: bool = False
    snapshot_version: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "sources": [s.to_dict() for s in self.sources],
            "graph": self.graph.to_dict(),
            "profile": self.profile.to_dict(),
            "watermark": self.watermark,
            "snapshot_version": self.snapshot_version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompiledRender":
        """Rebuild from ``to_dict`` output (used across the worker queue)."""
        graph = data["graph"]
        return cls(
            sources=[SourceInput(**s) for s in data["sources"]],
            graph=RenderGraph(
                nodes=[
                    RenderNode(
                        id=n["id"],
                        kind=NodeKind(n["kind"]),
                        inputs=tuple(n["inputs"]),
                        params=dict(n["params"]),
                    )
                    for n in graph["nodes"]
                ],
                video_sink=graph.get("video_sink"),
                audio_sink=graph.get("audio_sink"),
            ),
            profile=OutputProfile(**data["profile"]),
            watermark=data.get("watermark", False),
            snapshot_version=data.get("snapshot_version", 0),
        )
