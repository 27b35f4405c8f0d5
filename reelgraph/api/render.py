"""Render API endpoints: compile a timeline, start, poll and cancel render jobs."""

import logging

from fastapi import APIRouter, status

from reelgraph.api.deps import Adapter
from reelgraph.config import get_settings
from reelgraph.render.adapter import JobHandle, JobStatus
from reelgraph.render.compiler import RenderGraphCompiler
from reelgraph.render.graph import CompiledRender
from reelgraph.render.profile import build_output_profile
from reelgraph.render.sources import DirectorySourceResolver, MappingSourceResolver, SourceResolver
from reelgraph.schemas.render import CompileResponse, RenderJobResponse, RenderRequest, RenderStartResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def _resolver_for(request: RenderRequest) -> SourceResolver:
    if request.sources is not None:
        return MappingSourceResolver(request.sources, silent=set(request.silent_sources))
    return DirectorySourceResolver(get_settings().source_dir)


def _compile(request: RenderRequest) -> CompiledRender:
    export = request.export
    profile = build_output_profile(
        resolution=export.resolution,
        quality=export.quality,
        speed=export.speed,
        fps=export.fps or request.timeline.fps,
    )
    compiler = RenderGraphCompiler(_resolver_for(request))
    return compiler.compile(request.timeline, profile, watermark=request.watermark)


def _job_response(job: JobStatus) -> RenderJobResponse:
    return RenderJobResponse(
        job_id=job.job_id,
        status=job.state.value,
        progress=job.progress,
        stage=job.stage,
        artifact_url=job.artifact,
        error=job.error,
        error_code=job.error_code,
    )


@router.post("/render/compile", response_model=CompileResponse)
def compile_render(request: RenderRequest) -> CompileResponse:
    """Compile a timeline snapshot into a render graph without encoding it."""
    compiled = _compile(request)
    data = compiled.to_dict()
    return CompileResponse(
        snapshot_version=compiled.snapshot_version,
        duration_seconds=compiled.profile.duration_seconds,
        profile=data["profile"],
        sources=data["sources"],
        graph=data["graph"],
    )


@router.post(
    "/render/start",
    response_model=RenderStartResponse,
    status_code=status.HTTP_201_CREATED,
)
def start_render(request: RenderRequest, adapter: Adapter) -> RenderStartResponse:
    """
    Compile a timeline and queue it for rendering.

    Returns immediately; poll the job for progress.
    """
    compiled = _compile(request)
    handle = adapter.submit(compiled, caller=request.caller, target=request.target)
    logger.info(f"[RENDER] Started job {handle.job_id} for snapshot v{compiled.snapshot_version}")
    return RenderStartResponse(job_id=handle.job_id, status="queued")


@router.get("/render/{job_id}", response_model=RenderJobResponse)
def get_render_status(job_id: str, adapter: Adapter) -> RenderJobResponse:
    """Get the status of a render job."""
    return _job_response(adapter.poll(JobHandle(job_id)))


@router.delete("/render/{job_id}", response_model=RenderJobResponse)
def cancel_render(job_id: str, adapter: Adapter) -> RenderJobResponse:
    """Cancel a render job. A job that already completed stays completed."""
    return _job_response(adapter.cancel(JobHandle(job_id)))
