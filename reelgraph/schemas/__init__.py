from reelgraph.schemas.envelope import ErrorEnvelope, ErrorInfo, ErrorLocation, ResponseMeta
from reelgraph.schemas.timeline import (
    MediaClip,
    TextElement,
    TimelineElement,
    TimelineSnapshot,
)

__all__ = [
    "ErrorEnvelope",
    "ErrorInfo",
    "ErrorLocation",
    "ResponseMeta",
    "MediaClip",
    "TextElement",
    "TimelineElement",
    "TimelineSnapshot",
]
