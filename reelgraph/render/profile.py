"""Output profiles: export presets resolved to concrete encoder settings."""

from dataclasses import asdict, dataclass, replace
from typing import Any, Literal

from reelgraph.config import get_settings

Resolution = Literal["480p", "720p", "1080p", "2K", "4K"]
Quality = Literal["low", "medium", "high", "ultra"]
Speed = Literal["fastest", "fast", "balanced", "slow", "slowest"]

# Portrait output sizes
RESOLUTIONS: dict[str, tuple[int, int]] = {
    "480p": (480, 854),
    "720p": (720, 1280),
    "1080p": (1080, 1920),
    "2K": (1440, 2560),
    "4K": (2160, 3840),
}

# quality -> (crf, video bitrate, audio bitrate)
QUALITIES: dict[str, tuple[int, str, str]] = {
    "low": (28, "2M", "128k"),
    "medium": (23, "4M", "192k"),
    "high": (18, "8M", "256k"),
    "ultra": (14, "16M", "320k"),
}

# speed -> x264 preset
SPEED_PRESETS: dict[str, str] = {
    "fastest": "ultrafast",
    "fast": "veryfast",
    "balanced": "medium",
    "slow": "slow",
    "slowest": "veryslow",
}


@dataclass(frozen=True)
class OutputProfile:
    """Everything the encoding engine needs besides the graph itself."""

    width: int = 1080
    height: int = 1920
    fps: int = 30
    duration_seconds: float = 0.0
    video_codec_class: str = "h264"
    audio_codec_class: str = "aac"
    quality_preset: str = "medium"
    crf: int = 23
    video_bitrate: str = "4M"
    audio_bitrate: str = "192k"
    audio_sample_rate: int = 48000

    def with_duration(self, duration_seconds: float) -> "OutputProfile":
        return replace(self, duration_seconds=duration_seconds)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_output_profile(
    resolution: str = "1080p",
    quality: str = "medium",
    speed: str = "balanced",
    fps: int | None = None,
) -> OutputProfile:
    """Resolve export settings to an OutputProfile.

    Unknown preset names fall back to the defaults (1080p, medium,
    balanced).
    """
    settings = get_settings()
    width, height = RESOLUTIONS.get(resolution, RESOLUTIONS["1080p"])
    crf, video_bitrate, audio_bitrate = QUALITIES.get(quality, QUALITIES["medium"])
    return OutputProfile(
        width=width,
        height=height,
        fps=fps or settings.default_fps,
        quality_preset=SPEED_PRESETS.get(speed, "medium"),
        crf=crf,
        video_bitrate=video_bitrate,
        audio_bitrate=audio_bitrate,
        audio_sample_rate=settings.render_audio_sample_rate,
    )
