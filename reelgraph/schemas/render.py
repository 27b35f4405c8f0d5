from typing import Any

from pydantic import BaseModel, Field

from reelgraph.render.profile import Quality, Resolution, Speed
from reelgraph.schemas.timeline import TimelineSnapshot


class ExportSettings(BaseModel):
    resolution: Resolution = "1080p"
    quality: Quality = "medium"
    speed: Speed = "balanced"
    fps: int | None = Field(default=None, ge=1, le=120)  # Defaults to the timeline fps


class RenderRequest(BaseModel):
    timeline: TimelineSnapshot
    export: ExportSettings = Field(default_factory=ExportSettings)
    watermark: bool = False  # Drawn for exports without a premium licence
    # source id -> path or URL; falls back to the configured source directory
    sources: dict[str, str] | None = None
    silent_sources: list[str] = Field(default_factory=list)  # Sources without an audio stream
    target: str | None = None  # Artifact path
    caller: str | None = None


class CompileResponse(BaseModel):
    snapshot_version: int
    duration_seconds: float
    profile: dict[str, Any]
    sources: list[dict[str, Any]]
    graph: dict[str, Any]


class RenderStartResponse(BaseModel):
    job_id: str
    status: str


class RenderJobResponse(BaseModel):
    job_id: str
    status: str
    progress: int
    stage: str | None = None
    artifact_url: str | None = None
    error: str | None = None
    error_code: str | None = None
