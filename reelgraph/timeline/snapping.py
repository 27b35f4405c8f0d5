"""Snap resolution for proposed edit times.

A proposed time first lands on the nearest frame boundary. An edge of
another element within the snap threshold wins instead when it is closer
than that frame boundary.
"""

from typing import Iterable

from reelgraph.config import get_settings
from reelgraph.schemas.timeline import MediaClip, TimelineElement
from reelgraph.utils.timecode import quantize_to_frame


def snap_time(
    time: float,
    fps: float,
    targets: Iterable[float] = (),
    threshold: float | None = None,
) -> float:
    if threshold is None:
        threshold = get_settings().snap_threshold_s

    closest = quantize_to_frame(time, fps)
    min_distance = abs(time - closest)
    for point in targets:
        distance = abs(time - point)
        if distance < min_distance and distance < threshold:
            min_distance = distance
            closest = point
    return closest


def edge_targets(
    element: TimelineElement,
    elements: Iterable[TimelineElement],
    include_video_ends: bool = False,
) -> list[float]:
    """Start/end of every other element of the same family.

    Media snaps to media and text snaps to text. With
    ``include_video_ends`` the end of every video clip is added again so
    audio resizes favour lining up with the picture.
    """
    elements = list(elements)
    is_media = isinstance(element, MediaClip)
    targets: list[float] = []
    for other in elements:
        if other.id == element.id or isinstance(other, MediaClip) != is_media:
            continue
        targets.append(other.position_start)
        targets.append(other.position_end)

    if include_video_ends:
        targets.extend(
            other.position_end
            for other in elements
            if isinstance(other, MediaClip) and other.is_video and other.id != element.id
        )
    return targets
