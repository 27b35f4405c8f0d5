"""Edit operations on a Timeline.

Each operation validates its inputs, resolves snapping, and applies the
result inside one timeline transaction. Failures raise a ReelGraphError and
leave the timeline untouched.
"""

import logging
from typing import Literal

from reelgraph.config import get_settings
from reelgraph.exceptions import ConstraintViolationError, OutOfBoundsError
from reelgraph.schemas.timeline import MediaClip, TextElement, TimelineElement
from reelgraph.timeline.model import (
    POSITIVE_DURATION,
    SOURCE_BOUND,
    SOURCE_WINDOW,
    VIDEO_CONTIGUITY,
    Timeline,
)
from reelgraph.timeline.snapping import edge_targets, snap_time
from reelgraph.utils.geometry import AspectFit, calculate_fit
from reelgraph.utils.timecode import TIME_EPSILON, ceil_frames, floor_frames

logger = logging.getLogger(__name__)

ResizeEdge = Literal["start", "end"]


def _require_media(timeline: Timeline, element_id: str) -> MediaClip:
    element = timeline.get(element_id)
    if not isinstance(element, MediaClip):
        raise ConstraintViolationError(
            f"Element {element_id} is not a media clip",
            invariant="element-kind",
            element_id=element_id,
        )
    return element


def _require_video(timeline: Timeline, element_id: str) -> MediaClip:
    clip = _require_media(timeline, element_id)
    if not clip.is_video:
        raise ConstraintViolationError(
            f"Clip {element_id} is not on the video track",
            invariant="element-kind",
            element_id=element_id,
        )
    return clip


def _snap_pool(timeline: Timeline, element: TimelineElement) -> list[TimelineElement]:
    """Elements an edit of ``element`` may snap against."""
    if isinstance(element, MediaClip) and element.media_type == "audio":
        return [m for m in timeline.media_clips() if m.has_audio]
    return timeline.elements


# =============================================================================
# Split
# =============================================================================


def split(timeline: Timeline, element_id: str, cut_time: float) -> tuple[TimelineElement, TimelineElement]:
    """Cut an element in two at ``cut_time``.

    The cut is snapped, then kept at least the split margin away from both
    edges. For media the source window is divided at the same ratio. Both
    halves get fresh ids and take the original's place.

    Returns:
        (left, right) halves
    """
    settings = get_settings()
    element = timeline.get(element_id)
    start, end = element.position_start, element.position_end
    if not start < cut_time < end:
        raise OutOfBoundsError(
            field="cut_time",
            value=cut_time,
            min_value=start,
            max_value=end,
            element_id=element_id,
        )

    snapped = snap_time(cut_time, timeline.fps, edge_targets(element, timeline.elements))
    margin = settings.split_edge_margin_s
    cut = max(start + margin, min(end - margin, snapped))

    left_update: dict = {"position_end": cut}
    right_update: dict = {"position_start": cut}
    if isinstance(element, MediaClip):
        ratio = (cut - start) / (end - start)
        source_cut = element.start_time + ratio * element.source_span
        left_update["end_time"] = source_cut
        right_update["start_time"] = source_cut

    left = element.with_new_id().model_copy(update=left_update)
    right = element.with_new_id().model_copy(update=right_update)
    with timeline.transaction():
        timeline.replace(element_id, left, right)

    logger.info(f"[EDIT] Split {element_id} at {cut:.3f}s -> {left.id}, {right.id}")
    return left, right


# =============================================================================
# Resize (trim)
# =============================================================================


def quantize_duration(proposed: float, fps: int) -> float:
    """Whole frames, never below the minimum clip duration."""
    min_frames = ceil_frames(get_settings().min_clip_duration_s, fps)
    return max(min_frames, floor_frames(proposed, fps)) / fps


def resize(
    timeline: Timeline,
    element_id: str,
    proposed_duration: float,
    edge: ResizeEdge = "end",
) -> TimelineElement:
    """Change an element's duration by dragging one of its edges.

    Video clips only resize from the end; growing past the source is
    clamped so the clip ends exactly at the end of its source, and later
    video clips ripple by the change. Audio end edges snap to media edges
    and to video clip ends.
    """
    element = timeline.get(element_id)
    duration = quantize_duration(proposed_duration, timeline.fps)

    if edge == "start":
        result = _resize_start(timeline, element, duration)
    elif isinstance(element, TextElement):
        result = element.model_copy(update={"position_end": element.position_start + duration})
        with timeline.transaction():
            timeline.update(result)
    else:
        result = _resize_media_end(timeline, element, duration)

    logger.info(f"[EDIT] Resized {element_id} ({edge}) to {result.duration:.3f}s")
    return timeline.get(element_id)


def _resize_media_end(timeline: Timeline, clip: MediaClip, duration: float) -> MediaClip:
    new_end = clip.position_start + duration
    if clip.media_type == "audio":
        targets = edge_targets(clip, _snap_pool(timeline, clip), include_video_ends=True)
        new_end = snap_time(new_end, timeline.fps, targets)

    new_span = new_end - clip.position_start
    if new_span <= TIME_EPSILON:
        raise ConstraintViolationError(invariant=POSITIVE_DURATION, element_id=clip.id)

    new_end_time = clip.start_time + new_span * clip.playback_speed
    if clip.source_duration is not None and new_end_time > clip.source_duration + TIME_EPSILON:
        if not clip.is_video:
            raise ConstraintViolationError(
                f"Clip {clip.id} cannot extend past its source ({clip.source_duration:.3f}s)",
                invariant=SOURCE_BOUND,
                element_id=clip.id,
            )
        # Video requests past the source clamp to the source end
        new_span = (clip.source_duration - clip.start_time) / clip.playback_speed
        new_end_time = clip.source_duration
        logger.warning(f"[EDIT] Clamped resize of {clip.id} to source duration {clip.source_duration:.3f}s")

    resized = clip.model_copy(
        update={"position_end": clip.position_start + new_span, "end_time": new_end_time}
    )
    with timeline.transaction():
        order = timeline.video_clips()
        timeline.update(resized)
        if clip.is_video:
            timeline.pack_videos(order)
    return resized


def _resize_start(timeline: Timeline, element: TimelineElement, duration: float) -> TimelineElement:
    if isinstance(element, MediaClip) and element.is_video:
        raise ConstraintViolationError(
            "Video clips are trimmed from their end edge only",
            invariant=VIDEO_CONTIGUITY,
            element_id=element.id,
        )

    new_start = element.position_end - duration
    if isinstance(element, MediaClip):
        targets = edge_targets(element, _snap_pool(timeline, element), include_video_ends=element.media_type == "audio")
        new_start = snap_time(new_start, timeline.fps, targets)
    if new_start < -TIME_EPSILON:
        raise OutOfBoundsError(
            field="position_start",
            value=round(new_start, 6),
            min_value=0,
            max_value=element.position_end,
            element_id=element.id,
        )
    new_start = max(0.0, new_start)

    update: dict = {"position_start": new_start}
    if isinstance(element, MediaClip):
        new_start_time = element.start_time + (new_start - element.position_start) * element.playback_speed
        if new_start_time < -TIME_EPSILON:
            raise ConstraintViolationError(
                f"Clip {element.id} cannot start before its source",
                invariant=SOURCE_WINDOW,
                element_id=element.id,
            )
        update["start_time"] = max(0.0, new_start_time)

    resized = element.model_copy(update=update)
    with timeline.transaction():
        timeline.update(resized)
    return resized


# =============================================================================
# Video track ordering
# =============================================================================


def reorder_video(timeline: Timeline, clip_id: str, proposed_start: float) -> MediaClip:
    """Drag a video clip to a new rank.

    The rank is the number of other clips whose midpoint lies before the
    proposed start; the track is then repacked from t=0.
    """
    _require_video(timeline, clip_id)
    proposed_start = max(0.0, proposed_start)
    rank = sum(
        1
        for other in timeline.video_clips()
        if other.id != clip_id and (other.position_start + other.position_end) / 2 < proposed_start
    )
    return move_video_to_index(timeline, clip_id, rank)


def move_video_to_index(timeline: Timeline, clip_id: str, index: int) -> MediaClip:
    clip = _require_video(timeline, clip_id)
    videos = [c for c in timeline.video_clips() if c.id != clip_id]
    videos.insert(max(0, min(index, len(videos))), clip)
    with timeline.transaction():
        timeline.pack_videos(videos)
    logger.debug(f"[EDIT] Video clip {clip_id} moved to rank {index}")
    return timeline.get(clip_id)


def repack_video_track(timeline: Timeline) -> list[MediaClip]:
    """Close any gaps on the video track. Calling it twice changes nothing."""
    with timeline.transaction():
        timeline.pack_videos(timeline.video_clips())
    return timeline.video_clips()


# =============================================================================
# Delete / duplicate / move
# =============================================================================


def delete(timeline: Timeline, element_id: str) -> TimelineElement:
    """Remove an element; removing a video clip ripples the track closed."""
    element = timeline.get(element_id)
    with timeline.transaction():
        remaining = [c for c in timeline.video_clips() if c.id != element_id]
        timeline.replace(element_id)
        if isinstance(element, MediaClip) and element.is_video:
            timeline.pack_videos(remaining)
    logger.info(f"[EDIT] Deleted {element_id}")
    return element


def duplicate(timeline: Timeline, element_id: str) -> TimelineElement:
    """Copy an element right after the original.

    A duplicated video clip plays right after the original and pushes the
    rest of the track back.
    """
    element = timeline.get(element_id)
    copy = element.with_new_id()
    with timeline.transaction():
        timeline.insert_after(element_id, copy)
        if isinstance(element, MediaClip) and element.is_video:
            videos = [c for c in timeline.video_clips() if c.id != copy.id]
            videos.insert([c.id for c in videos].index(element_id) + 1, copy)
            timeline.pack_videos(videos)
    logger.info(f"[EDIT] Duplicated {element_id} -> {copy.id}")
    return timeline.get(copy.id)


def move(timeline: Timeline, element_id: str, proposed_start: float) -> TimelineElement:
    """Drag an audio, image or text element to a new start, keeping its length."""
    element = timeline.get(element_id)
    if isinstance(element, MediaClip) and element.is_video:
        raise ConstraintViolationError(
            "Video clips are moved by reordering the video track",
            invariant=VIDEO_CONTIGUITY,
            element_id=element_id,
        )

    include_video_ends = isinstance(element, MediaClip) and element.media_type == "audio"
    targets = edge_targets(element, _snap_pool(timeline, element), include_video_ends=include_video_ends)
    start = max(0.0, snap_time(max(0.0, proposed_start), timeline.fps, targets))

    moved = element.model_copy(
        update={"position_start": start, "position_end": start + element.duration}
    )
    with timeline.transaction():
        timeline.update(moved)
    return moved


# =============================================================================
# Property edits
# =============================================================================


def apply_aspect_fit(
    timeline: Timeline,
    clip_id: str,
    aspect_fit: AspectFit | str,
    zoom: float | None = None,
) -> MediaClip:
    """Recompute a visual clip's canvas placement from a fit mode and zoom."""
    clip = _require_media(timeline, clip_id)
    zoom = clip.zoom if zoom is None else zoom
    if zoom <= 0:
        raise OutOfBoundsError(field="zoom", value=zoom, element_id=clip_id)

    aspect_fit = AspectFit(aspect_fit)
    rect = calculate_fit(clip.original_size, timeline.canvas, aspect_fit, zoom)
    updated = clip.model_copy(
        update={
            "aspect_fit": aspect_fit,
            "zoom": zoom,
            "x": rect.x,
            "y": rect.y,
            "width": rect.width,
            "height": rect.height,
        }
    )
    with timeline.transaction():
        timeline.update(updated)
    return updated


def set_volume(timeline: Timeline, clip_id: str, volume: float) -> MediaClip:
    clip = _require_media(timeline, clip_id)
    if not 0 <= volume <= 100:
        raise OutOfBoundsError(field="volume", value=volume, min_value=0, max_value=100, element_id=clip_id)
    updated = clip.model_copy(update={"volume": volume})
    with timeline.transaction():
        timeline.update(updated)
    return updated


def set_opacity(timeline: Timeline, element_id: str, opacity: float) -> TimelineElement:
    element = timeline.get(element_id)
    if not 0 <= opacity <= 100:
        raise OutOfBoundsError(field="opacity", value=opacity, min_value=0, max_value=100, element_id=element_id)
    updated = element.model_copy(update={"opacity": opacity})
    with timeline.transaction():
        timeline.update(updated)
    return updated


def set_playback_speed(timeline: Timeline, clip_id: str, speed: float) -> MediaClip:
    """Change speed keeping the source window; the timeline span follows."""
    clip = _require_media(timeline, clip_id)
    if speed <= 0:
        raise OutOfBoundsError(field="playback_speed", value=speed, element_id=clip_id)
    updated = clip.model_copy(
        update={
            "playback_speed": speed,
            "position_end": clip.position_start + clip.source_span / speed,
        }
    )
    with timeline.transaction():
        order = timeline.video_clips()
        timeline.update(updated)
        if clip.is_video:
            timeline.pack_videos(order)
    return timeline.get(clip_id)
