"""Frame-quantised time helpers.

All timeline positions are float seconds; these helpers snap them onto the
frame grid of the editing frame rate.
"""

import math

# Tolerance used when comparing two timeline instants
TIME_EPSILON = 1e-6


def frame_duration(fps: float) -> float:
    return 1.0 / fps


def seconds_to_frames(seconds: float, fps: float) -> int:
    """Nearest whole frame for a time in seconds."""
    return int(round(seconds * fps))


def frames_to_seconds(frames: int, fps: float) -> float:
    return frames / fps


def quantize_to_frame(seconds: float, fps: float) -> float:
    """Move a time onto the nearest frame boundary."""
    return round(seconds * fps) / fps


def floor_frames(seconds: float, fps: float) -> int:
    """Whole frames contained in a duration.

    A small tolerance keeps exact multiples (e.g. 0.1 * 30) from losing a
    frame to float error.
    """
    return int(math.floor(seconds * fps + TIME_EPSILON))


def ceil_frames(seconds: float, fps: float) -> int:
    return int(math.ceil(seconds * fps - TIME_EPSILON))


def times_equal(a: float, b: float, tolerance: float = TIME_EPSILON) -> bool:
    return abs(a - b) <= tolerance


def seconds_to_ms(seconds: float) -> int:
    return int(round(seconds * 1000))
