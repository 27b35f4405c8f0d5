from reelgraph.timeline.editor import EditOutcome, GestureSession, TimelineEditor
from reelgraph.timeline.lanes import assign_lanes
from reelgraph.timeline.model import Timeline
from reelgraph.timeline.snapping import snap_time

__all__ = [
    "Timeline",
    "TimelineEditor",
    "EditOutcome",
    "GestureSession",
    "assign_lanes",
    "snap_time",
]
