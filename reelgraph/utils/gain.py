"""Volume ⇄ decibel ⇄ linear gain mapping.

The user-facing volume is 0-100 with 50 as unity gain. The lower half
spans -60 dB to 0 dB and the upper half spans 0 dB to +12 dB, each
linearly in dB.
"""

MIN_DB = -60.0
MAX_DB = 12.0
UNITY_VOLUME = 50.0


def volume_to_db(volume: float) -> float:
    if volume <= 0:
        return MIN_DB
    if volume >= 100:
        return MAX_DB
    if volume <= UNITY_VOLUME:
        return (volume / UNITY_VOLUME) * -MIN_DB + MIN_DB
    return ((volume - UNITY_VOLUME) / UNITY_VOLUME) * MAX_DB


def db_to_volume(db: float) -> float:
    if db <= MIN_DB:
        return 0.0
    if db >= MAX_DB:
        return 100.0
    if db <= 0:
        return ((db - MIN_DB) / -MIN_DB) * UNITY_VOLUME
    return UNITY_VOLUME + (db / MAX_DB) * UNITY_VOLUME


def volume_to_linear(volume: float | None) -> float:
    """Amplitude multiplier for a volume; missing volume means unity."""
    if volume is None:
        return 1.0
    return 10 ** (volume_to_db(volume) / 20)
