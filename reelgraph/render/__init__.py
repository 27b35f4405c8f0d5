from reelgraph.render.adapter import JobHandle, JobState, JobStatus, LocalRenderAdapter, RenderAdapter
from reelgraph.render.compiler import RenderGraphCompiler
from reelgraph.render.engine import FFmpegEngine
from reelgraph.render.ffmpeg import FFmpegCommand, FilterGraphBuilder
from reelgraph.render.graph import CompiledRender, NodeKind, RenderGraph, RenderNode, SourceInput
from reelgraph.render.profile import OutputProfile, build_output_profile

__all__ = [
    "RenderGraphCompiler",
    "CompiledRender",
    "RenderGraph",
    "RenderNode",
    "SourceInput",
    "NodeKind",
    "OutputProfile",
    "build_output_profile",
    "FilterGraphBuilder",
    "FFmpegCommand",
    "FFmpegEngine",
    "RenderAdapter",
    "LocalRenderAdapter",
    "JobHandle",
    "JobState",
    "JobStatus",
]
