"""Timeline model: the owned, versioned store of timeline elements.

The timeline keeps an id-keyed arena plus the insertion order (which breaks
z-index ties). All mutations go through a transaction that validates the
timeline invariants afterwards and rolls back on failure, so callers never
observe a half-applied edit.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from reelgraph.config import get_settings
from reelgraph.exceptions import ConstraintViolationError, ElementNotFoundError
from reelgraph.schemas.timeline import (
    MediaClip,
    MediaType,
    TextElement,
    TimelineElement,
    TimelineSnapshot,
    total_duration,
)
from reelgraph.utils.geometry import Size
from reelgraph.utils.timecode import TIME_EPSILON

logger = logging.getLogger(__name__)

# Invariant names reported by ConstraintViolationError
POSITIVE_DURATION = "positive-duration"
VIDEO_CONTIGUITY = "video-contiguity"
SOURCE_WINDOW = "source-window"
SOURCE_RATIO = "source-ratio"
SOURCE_BOUND = "source-bound"
SOURCE_DURATION_IMMUTABLE = "source-duration-immutable"


class Timeline:
    """Mutable timeline owned by a single editing session."""

    def __init__(
        self,
        fps: int | None = None,
        canvas: Size | None = None,
        elements: list[TimelineElement] | None = None,
    ):
        settings = get_settings()
        self.fps = fps or settings.default_fps
        self.canvas = canvas or Size(settings.canvas_width, settings.canvas_height)
        self.version = 0
        self._elements: dict[str, TimelineElement] = {}
        self._order: list[str] = []
        self._tx_depth = 0
        for element in elements or []:
            self._put(element)
        if self._elements:
            # Loaded video clips snap together like inserted ones
            self.pack_videos(self.video_clips())
            self.check_invariants()

    # =========================================================================
    # Construction helpers
    # =========================================================================

    @classmethod
    def from_snapshot(cls, snapshot: TimelineSnapshot) -> "Timeline":
        timeline = cls(
            fps=snapshot.fps,
            canvas=snapshot.canvas,
            elements=list(snapshot.elements),
        )
        timeline.version = snapshot.version
        return timeline

    @classmethod
    def check_snapshot(cls, snapshot: TimelineSnapshot) -> None:
        """Check a snapshot's invariants exactly as given.

        Unlike ``from_snapshot`` the video track is not repacked first, so a
        gap or overlap is reported instead of silently closed.
        """
        timeline = cls(fps=snapshot.fps, canvas=snapshot.canvas)
        for element in snapshot.elements:
            timeline._put(element)
        timeline.check_invariants()

    def snapshot(self) -> TimelineSnapshot:
        return TimelineSnapshot(
            version=self.version,
            fps=self.fps,
            canvas_width=self.canvas.width,
            canvas_height=self.canvas.height,
            elements=tuple(self._elements[i] for i in self._order),
        )

    def restore(self, snapshot: TimelineSnapshot) -> None:
        """Replace the whole content with a snapshot (used by undo/redo)."""
        with self.transaction():
            self._elements = {e.id: e for e in snapshot.elements}
            self._order = [e.id for e in snapshot.elements]

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator["Timeline"]:
        """Group mutations; invariants are checked when the outermost exits.

        On any exception the timeline is restored to its state at entry and
        the exception propagates.
        """
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield self
            finally:
                self._tx_depth -= 1
            return

        saved_elements = dict(self._elements)
        saved_order = list(self._order)
        self._tx_depth = 1
        try:
            yield self
            self.check_invariants()
        except BaseException:
            self._elements = saved_elements
            self._order = saved_order
            raise
        finally:
            self._tx_depth = 0
        self.version += 1

    # =========================================================================
    # Mutation primitives
    # =========================================================================

    def _put(self, element: TimelineElement, index: int | None = None) -> None:
        if element.id in self._elements:
            raise ConstraintViolationError(
                f"Duplicate element id: {element.id}",
                invariant="unique-id",
                element_id=element.id,
            )
        self._elements[element.id] = element
        if index is None:
            self._order.append(element.id)
        else:
            self._order.insert(index, element.id)

    def add_media(self, clip: MediaClip, index: int | None = None) -> MediaClip:
        """Insert a media clip.

        Video clips join the video track at ``index`` (appended by default)
        and the track is repacked; their requested position is ignored.
        Audio and image clips keep their requested position.
        """
        with self.transaction():
            self._put(clip)
            if clip.is_video:
                videos = [c for c in self.video_clips() if c.id != clip.id]
                rank = len(videos) if index is None else max(0, min(index, len(videos)))
                videos.insert(rank, clip)
                self.pack_videos(videos)
        logger.info(f"[EDIT] Added {clip.media_type} clip {clip.id}")
        return self.get(clip.id)

    def add_text(self, element: TextElement) -> TextElement:
        with self.transaction():
            self._put(element)
        logger.info(f"[EDIT] Added text element {element.id}")
        return element

    def insert_after(self, anchor_id: str, element: TimelineElement) -> None:
        """Insert right after another element in insertion order."""
        self._put(element, self.index_of(anchor_id) + 1)

    def update(self, element: TimelineElement) -> None:
        """Replace the element with the same id."""
        current = self.get(element.id)
        if (
            isinstance(current, MediaClip)
            and isinstance(element, MediaClip)
            and current.source_duration is not None
            and element.source_duration != current.source_duration
        ):
            raise ConstraintViolationError(
                invariant=SOURCE_DURATION_IMMUTABLE, element_id=element.id
            )
        self._elements[element.id] = element

    def replace(self, element_id: str, *elements: TimelineElement) -> None:
        """Swap one element for others at the same insertion index."""
        index = self.index_of(element_id)
        del self._elements[element_id]
        self._order.pop(index)
        for offset, element in enumerate(elements):
            self._put(element, index + offset)

    def remove(self, element_id: str) -> TimelineElement:
        element = self.get(element_id)
        with self.transaction():
            del self._elements[element_id]
            self._order.remove(element_id)
        return element

    def pack_videos(self, ordered: list[MediaClip]) -> None:
        """Lay video clips end to end from t=0 in the given order."""
        cursor = 0.0
        for clip in ordered:
            clip = self._elements[clip.id]
            duration = clip.duration
            if abs(clip.position_start - cursor) > TIME_EPSILON:
                self._elements[clip.id] = clip.model_copy(
                    update={"position_start": cursor, "position_end": cursor + duration}
                )
            cursor += duration

    # =========================================================================
    # Queries
    # =========================================================================

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, element_id: object) -> bool:
        return element_id in self._elements

    def __iter__(self) -> Iterator[TimelineElement]:
        return iter(self.elements)

    @property
    def elements(self) -> list[TimelineElement]:
        return [self._elements[i] for i in self._order]

    def get(self, element_id: str) -> TimelineElement:
        try:
            return self._elements[element_id]
        except KeyError:
            raise ElementNotFoundError(element_id) from None

    def index_of(self, element_id: str) -> int:
        if element_id not in self._elements:
            raise ElementNotFoundError(element_id)
        return self._order.index(element_id)

    def media_clips(self, media_type: MediaType | None = None) -> list[MediaClip]:
        return [
            e
            for e in self.elements
            if isinstance(e, MediaClip) and (media_type is None or e.media_type == media_type)
        ]

    def text_elements(self) -> list[TextElement]:
        return [e for e in self.elements if isinstance(e, TextElement)]

    def video_clips(self) -> list[MediaClip]:
        """Video clips in track order."""
        clips = self.media_clips("video")
        return sorted(clips, key=lambda c: (c.position_start, self._order.index(c.id)))

    def active_elements(self, time: float) -> list[TimelineElement]:
        """Elements visible at ``time``, bottom-most first."""
        active = [(e, i) for i, e in enumerate(self.elements) if e.is_active_at(time)]
        active.sort(key=lambda pair: (pair[0].z_index, pair[1]))
        return [e for e, _ in active]

    def element_at(self, time: float) -> TimelineElement | None:
        """Top-most element visible at ``time``."""
        active = self.active_elements(time)
        return active[-1] if active else None

    def total_duration(self) -> float:
        return total_duration(self._elements.values())

    # =========================================================================
    # Invariants
    # =========================================================================

    def check_invariants(self) -> None:
        """Raise ConstraintViolationError for the first broken invariant."""
        for element in self.elements:
            if element.position_end - element.position_start <= TIME_EPSILON:
                raise ConstraintViolationError(
                    f"Element {element.id} has non-positive duration",
                    invariant=POSITIVE_DURATION,
                    element_id=element.id,
                )
            if isinstance(element, MediaClip):
                self._check_source_window(element)

        cursor = 0.0
        for clip in self.video_clips():
            if abs(clip.position_start - cursor) > TIME_EPSILON:
                raise ConstraintViolationError(
                    f"Video clip {clip.id} starts at {clip.position_start:.6f}, expected {cursor:.6f}",
                    invariant=VIDEO_CONTIGUITY,
                    element_id=clip.id,
                )
            cursor = clip.position_end

    @staticmethod
    def _check_source_window(clip: MediaClip) -> None:
        if clip.start_time < -TIME_EPSILON or clip.end_time - clip.start_time <= TIME_EPSILON:
            raise ConstraintViolationError(
                f"Clip {clip.id} has an invalid source window "
                f"[{clip.start_time:.6f}, {clip.end_time:.6f})",
                invariant=SOURCE_WINDOW,
                element_id=clip.id,
            )
        expected_span = clip.duration * clip.playback_speed
        if abs(clip.source_span - expected_span) > TIME_EPSILON:
            raise ConstraintViolationError(
                f"Clip {clip.id} source span {clip.source_span:.6f} does not match "
                f"timeline span {expected_span:.6f}",
                invariant=SOURCE_RATIO,
                element_id=clip.id,
            )
        if clip.source_duration is not None and clip.end_time > clip.source_duration + TIME_EPSILON:
            raise ConstraintViolationError(
                f"Clip {clip.id} ends at {clip.end_time:.6f}, past its source "
                f"duration {clip.source_duration:.6f}",
                invariant=SOURCE_BOUND,
                element_id=clip.id,
            )
