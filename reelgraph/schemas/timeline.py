from typing import Annotated, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from reelgraph.utils.geometry import AspectFit, Size
from reelgraph.utils.timecode import TIME_EPSILON

MediaType = Literal["video", "audio", "image"]
TextAlign = Literal["left", "center", "right"]


def new_element_id() -> str:
    return uuid4().hex


# =============================================================================
# Timeline elements
# =============================================================================


class ElementBase(BaseModel):
    """Fields shared by every element placed on the timeline.

    Elements are immutable; edits produce a replacement via ``model_copy``.
    An element is visible at ``t`` when ``position_start <= t < position_end``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_element_id)
    position_start: float = Field(ge=0, description="Timeline start in seconds")
    position_end: float = Field(description="Timeline end in seconds (exclusive)")
    z_index: int = 0
    opacity: float = Field(default=100, ge=0, le=100)

    @model_validator(mode="after")
    def check_timing(self):
        if self.position_end - self.position_start <= TIME_EPSILON:
            raise ValueError(
                f"position_end ({self.position_end}) must be after position_start ({self.position_start})"
            )
        return self

    @property
    def duration(self) -> float:
        return self.position_end - self.position_start

    def is_active_at(self, time: float) -> bool:
        return self.position_start <= time < self.position_end

    def with_new_id(self):
        return self.model_copy(update={"id": new_element_id()})


class MediaClip(ElementBase):
    """Video, audio or image placed on the timeline.

    ``start_time``/``end_time`` select the window of the source that is
    played; with ``playback_speed`` they always satisfy
    ``end_time - start_time == duration * playback_speed``.
    """

    kind: Literal["media"] = "media"
    media_type: MediaType
    source_id: str | None = None
    start_time: float = Field(default=0, ge=0, description="Source window start (source seconds)")
    end_time: float = Field(description="Source window end (source seconds)")
    source_duration: float | None = Field(default=None, gt=0)
    volume: float = Field(default=50, ge=0, le=100)
    playback_speed: float = Field(default=1.0, gt=0)

    # Placement on the canvas
    aspect_fit: AspectFit = AspectFit.ORIGINAL
    zoom: float = Field(default=1.0, gt=0)
    x: float = 0
    y: float = 0
    width: float | None = None
    height: float | None = None
    original_width: int | None = None
    original_height: int | None = None

    is_placeholder: bool = False

    @model_validator(mode="after")
    def check_source_window(self) -> "MediaClip":
        """Reject source windows that are empty or run past the source."""
        if self.end_time - self.start_time <= TIME_EPSILON:
            raise ValueError(f"end_time ({self.end_time}) must be after start_time ({self.start_time})")
        if self.source_duration is not None and self.end_time > self.source_duration + TIME_EPSILON:
            raise ValueError(f"end_time ({self.end_time}) exceeds source_duration ({self.source_duration})")
        return self

    @property
    def source_span(self) -> float:
        return self.end_time - self.start_time

    @property
    def is_video(self) -> bool:
        return self.media_type == "video"

    @property
    def is_visual(self) -> bool:
        return self.media_type in ("video", "image")

    @property
    def has_audio(self) -> bool:
        return self.media_type in ("video", "audio")

    @property
    def original_size(self) -> Size | None:
        if self.original_width and self.original_height:
            return Size(self.original_width, self.original_height)
        return None


class TextElement(ElementBase):
    """Text overlay. Each line break starts an independent line."""

    kind: Literal["text"] = "text"
    text: str
    x: float = 0
    y: float = 0
    font: str = "Arial"
    font_size: int = Field(default=24, gt=0)
    color: str = "white"
    background_color: str | None = None
    align: TextAlign = "center"

    @property
    def lines(self) -> list[str]:
        return self.text.split("\n")


TimelineElement = Annotated[MediaClip | TextElement, Field(discriminator="kind")]


def total_duration(elements) -> float:
    """Timeline length: the latest end of any element.

    With no video clip on the timeline the audio track alone carries the
    duration.
    """
    return max((e.position_end for e in elements), default=0.0)


# =============================================================================
# Snapshot
# =============================================================================


class TimelineSnapshot(BaseModel):
    """Immutable copy of a timeline handed to the compiler and undo history."""

    model_config = ConfigDict(frozen=True)

    version: int = 0
    fps: int = 30
    canvas_width: int = 1080
    canvas_height: int = 1920
    elements: tuple[TimelineElement, ...] = ()

    @property
    def canvas(self) -> Size:
        return Size(self.canvas_width, self.canvas_height)

    @property
    def media_clips(self) -> list[MediaClip]:
        return [e for e in self.elements if isinstance(e, MediaClip)]

    @property
    def text_elements(self) -> list[TextElement]:
        return [e for e in self.elements if isinstance(e, TextElement)]

    @property
    def duration(self) -> float:
        return total_duration(self.elements)
