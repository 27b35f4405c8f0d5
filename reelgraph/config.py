from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "ReelGraph API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Timeline editing
    default_fps: int = 30
    canvas_width: int = 1080
    canvas_height: int = 1920
    # Attraction radius for snapping to other element edges
    snap_threshold_s: float = 0.05
    # A split never produces a half shorter than this
    split_edge_margin_s: float = 0.01
    min_clip_duration_s: float = 0.5
    # Coalescing rate for drag/resize gesture updates
    gesture_update_hz: float = 20.0
    undo_history_limit: int = 50

    # Text rendering
    available_fonts_raw: str = "Arial,Inter,Lato,OpenSans,Roboto"
    default_font: str = "Arial"
    font_dir: str = "/usr/share/fonts/truetype"
    line_height_ratio: float = 1.2

    # Watermark drawn on exports without a premium licence
    watermark_text: str = "ReelGraph"
    watermark_icon: str = "⚡"

    @computed_field
    @property
    def available_fonts(self) -> list[str]:
        """Parse the comma-separated font list."""
        return [f.strip() for f in self.available_fonts_raw.split(",") if f.strip()]

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Render settings
    render_backend: Literal["local", "celery", "http"] = "local"
    source_dir: str = "/tmp/reelgraph-sources"
    render_work_dir: str = "/tmp/reelgraph-renders"
    render_max_workers: int = 2
    render_audio_sample_rate: int = 48000
    # Maximum threads for FFmpeg (limits per-thread buffer memory)
    render_ffmpeg_threads: int = 2
    # Finished local jobs kept for polling before the oldest are dropped
    render_job_history: int = 500

    # Remote render queues
    redis_url: str = "redis://localhost:6379/0"
    job_queue_url: str = "http://localhost:8080"
    job_queue_api_key: str = ""
    job_queue_timeout_s: float = 30.0
    job_poll_interval_s: float = 2.0
    render_queue: str = "render"
    render_task_time_limit_s: int = 3600
    # Finished Celery results stay in Redis this long
    render_result_expires_s: int = 86400


@lru_cache
def get_settings() -> Settings:
    return Settings()
