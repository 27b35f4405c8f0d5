"""Editing session: the single writer of a timeline.

Callers (UI, API, scripts) submit edit intents instead of mutating the
timeline directly. The editor serialises every mutation behind one lock,
records undo history, publishes change events, and arbitrates drag/resize
gestures so only one gesture owns the timeline at a time.

Intents never raise for edit failures; the returned EditOutcome carries the
typed error instead.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union
from uuid import uuid4

from reelgraph.config import get_settings
from reelgraph.exceptions import GestureConflictError, ReelGraphError
from reelgraph.schemas.timeline import MediaClip, TextElement, TimelineElement, TimelineSnapshot
from reelgraph.timeline import operations
from reelgraph.timeline.lanes import assign_lanes
from reelgraph.timeline.model import Timeline
from reelgraph.utils.geometry import AspectFit

logger = logging.getLogger(__name__)


# ============================================================================
# Intents
# ============================================================================


@dataclass(frozen=True)
class AddMedia:
    clip: MediaClip
    index: int | None = None


@dataclass(frozen=True)
class AddText:
    element: TextElement


@dataclass(frozen=True)
class ProposeSplit:
    element_id: str
    time: float


@dataclass(frozen=True)
class ProposeResize:
    element_id: str
    duration: float
    edge: str = "end"


@dataclass(frozen=True)
class ProposeMove:
    """Drag an element to a new start; video clips are reordered instead."""

    element_id: str
    start: float


@dataclass(frozen=True)
class ProposeReorder:
    element_id: str
    index: int


@dataclass(frozen=True)
class ProposeDelete:
    element_id: str


@dataclass(frozen=True)
class ProposeDuplicate:
    element_id: str


@dataclass(frozen=True)
class ProposeAspectFit:
    element_id: str
    aspect_fit: AspectFit
    zoom: float | None = None


@dataclass(frozen=True)
class ProposeVolume:
    element_id: str
    volume: float


@dataclass(frozen=True)
class ProposeOpacity:
    element_id: str
    opacity: float


@dataclass(frozen=True)
class ProposePlaybackSpeed:
    element_id: str
    speed: float


EditIntent = Union[
    AddMedia,
    AddText,
    ProposeSplit,
    ProposeResize,
    ProposeMove,
    ProposeReorder,
    ProposeDelete,
    ProposeDuplicate,
    ProposeAspectFit,
    ProposeVolume,
    ProposeOpacity,
    ProposePlaybackSpeed,
]


def _apply_move(timeline: Timeline, intent: ProposeMove) -> list[TimelineElement]:
    element = timeline.get(intent.element_id)
    if isinstance(element, MediaClip) and element.is_video:
        return [operations.reorder_video(timeline, intent.element_id, intent.start)]
    return [operations.move(timeline, intent.element_id, intent.start)]


_HANDLERS: dict[type, Callable[[Timeline, Any], list[TimelineElement]]] = {
    AddMedia: lambda t, i: [t.add_media(i.clip, i.index)],
    AddText: lambda t, i: [t.add_text(i.element)],
    ProposeSplit: lambda t, i: list(operations.split(t, i.element_id, i.time)),
    ProposeResize: lambda t, i: [operations.resize(t, i.element_id, i.duration, i.edge)],
    ProposeMove: _apply_move,
    ProposeReorder: lambda t, i: [operations.move_video_to_index(t, i.element_id, i.index)],
    ProposeDelete: lambda t, i: [operations.delete(t, i.element_id)],
    ProposeDuplicate: lambda t, i: [operations.duplicate(t, i.element_id)],
    ProposeAspectFit: lambda t, i: [operations.apply_aspect_fit(t, i.element_id, i.aspect_fit, i.zoom)],
    ProposeVolume: lambda t, i: [operations.set_volume(t, i.element_id, i.volume)],
    ProposeOpacity: lambda t, i: [operations.set_opacity(t, i.element_id, i.opacity)],
    ProposePlaybackSpeed: lambda t, i: [operations.set_playback_speed(t, i.element_id, i.speed)],
}


def describe(intent: EditIntent) -> str:
    return type(intent).__name__


# ============================================================================
# Results & events
# ============================================================================


@dataclass
class EditOutcome:
    """Result of applying one intent."""

    ok: bool
    intent: Optional[EditIntent] = None
    elements: list[TimelineElement] = field(default_factory=list)
    error: Optional[ReelGraphError] = None
    version: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "intent": describe(self.intent) if self.intent is not None else None,
            "elements": [e.model_dump(mode="json") for e in self.elements],
            "error": self.error.to_error_info().model_dump(exclude_none=True) if self.error else None,
            "version": self.version,
        }


@dataclass
class TimelineEvent:
    """Change notification published after every successful mutation."""

    event_type: str  # "edit_applied", "undo", "redo", "gesture_cancelled"
    version: int
    description: str | None = None
    element_ids: list[str] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


# ============================================================================
# Undo Manager
# ============================================================================


@dataclass
class HistoryEntry:
    """One undoable step: the timeline before and after it."""

    description: str
    before: TimelineSnapshot
    after: TimelineSnapshot
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class UndoManager:
    """Manages undo/redo history for timeline editing."""

    def __init__(self, max_history: int = 50):
        self.max_history = max_history
        self._undo_stack: deque[HistoryEntry] = deque(maxlen=max_history)
        self._redo_stack: list[HistoryEntry] = []

    def record(self, entry: HistoryEntry) -> None:
        """Add a completed step; any redo history is discarded."""
        self._undo_stack.append(entry)
        self._redo_stack.clear()

    def undo(self) -> Optional[HistoryEntry]:
        if not self._undo_stack:
            return None
        entry = self._undo_stack.pop()
        self._redo_stack.append(entry)
        return entry

    def redo(self) -> Optional[HistoryEntry]:
        if not self._redo_stack:
            return None
        entry = self._redo_stack.pop()
        self._undo_stack.append(entry)
        return entry

    def can_undo(self) -> bool:
        return len(self._undo_stack) > 0

    def can_redo(self) -> bool:
        return len(self._redo_stack) > 0

    def get_undo_description(self) -> Optional[str]:
        if not self._undo_stack:
            return None
        return self._undo_stack[-1].description

    def get_redo_description(self) -> Optional[str]:
        if not self._redo_stack:
            return None
        return self._redo_stack[-1].description

    def clear(self) -> None:
        self._undo_stack.clear()
        self._redo_stack.clear()


# ============================================================================
# Gestures
# ============================================================================


class GestureSession:
    """Exclusive, rate-limited stream of intents from one drag or resize.

    Updates arriving faster than the configured rate are coalesced: only the
    latest pending intent survives and is applied on the next allowed update,
    on ``flush()``, or on ``end()``. The whole gesture is one undo step.
    """

    def __init__(self, editor: "TimelineEditor", kind: str, element_id: str, min_interval: float):
        self.id = uuid4().hex
        self.kind = kind
        self.element_id = element_id
        self.min_interval = min_interval
        self.active = True
        self._editor = editor
        self._pending: Optional[EditIntent] = None
        self._last_applied_at: float | None = None
        self._before = editor.timeline.snapshot()
        self.applied_count = 0

    def _check_active(self) -> None:
        if not self.active:
            raise GestureConflictError(self.id)

    def update(self, intent: EditIntent) -> Optional[EditOutcome]:
        """Offer an intermediate intent.

        Returns the outcome when it was applied now, or None when it was
        held back by the rate limit.
        """
        self._check_active()
        now = self._editor.clock()
        if self._last_applied_at is not None and now - self._last_applied_at < self.min_interval:
            self._pending = intent
            return None
        return self._apply(intent, now)

    def flush(self) -> Optional[EditOutcome]:
        """Apply the held-back intent, if any, regardless of the rate limit."""
        self._check_active()
        if self._pending is None:
            return None
        return self._apply(self._pending, self._editor.clock())

    def end(self, final_intent: Optional[EditIntent] = None) -> Optional[EditOutcome]:
        """Apply the final intent synchronously and release ownership."""
        self._check_active()
        intent = final_intent or self._pending
        outcome = None
        try:
            if intent is not None:
                outcome = self._apply(intent, self._editor.clock())
        finally:
            self.active = False
            self._editor._finish_gesture(self, self._before)
        return outcome

    def cancel(self) -> None:
        """Drop the gesture and put the timeline back as it was at its start."""
        self._check_active()
        self.active = False
        self._pending = None
        self._editor._finish_gesture(self, self._before, revert=True)

    def _apply(self, intent: EditIntent, now: float) -> EditOutcome:
        self._pending = None
        self._last_applied_at = now
        self.applied_count += 1
        return self._editor._apply(intent, record=False, gesture=self)


# ============================================================================
# Editor
# ============================================================================


class TimelineEditor:
    """Single writer for a Timeline."""

    def __init__(
        self,
        timeline: Timeline | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings()
        self.timeline = timeline or Timeline()
        self.clock = clock
        self.history = UndoManager(max_history=settings.undo_history_limit)
        self.gesture_interval = 1.0 / settings.gesture_update_hz
        self._lock = threading.RLock()
        self._gesture: GestureSession | None = None
        self._subscribers: list[Callable[[TimelineEvent], None]] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, callback: Callable[[TimelineEvent], None]) -> Callable[[], None]:
        """Register for change events. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, event: TimelineEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(f"[EDIT] Subscriber failed handling {event.event_type}")

    def snapshot(self) -> TimelineSnapshot:
        with self._lock:
            return self.timeline.snapshot()

    def lanes(self) -> dict[str, int]:
        with self._lock:
            return assign_lanes(self.timeline.text_elements())

    @property
    def active_gesture(self) -> GestureSession | None:
        return self._gesture

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def apply(self, intent: EditIntent) -> EditOutcome:
        """Apply a one-shot intent as its own undo step."""
        with self._lock:
            if self._gesture is not None:
                error = GestureConflictError(self._gesture.id)
                return EditOutcome(ok=False, intent=intent, error=error, version=self.timeline.version)
            return self._apply(intent, record=True)

    def _apply(
        self,
        intent: EditIntent,
        record: bool,
        gesture: GestureSession | None = None,
    ) -> EditOutcome:
        handler = _HANDLERS.get(type(intent))
        if handler is None:
            raise TypeError(f"Unsupported intent: {type(intent).__name__}")

        with self._lock:
            if gesture is not None and gesture is not self._gesture:
                error = GestureConflictError(self._gesture.id if self._gesture else None)
                return EditOutcome(ok=False, intent=intent, error=error, version=self.timeline.version)

            before = self.timeline.snapshot()
            try:
                elements = handler(self.timeline, intent)
            except ReelGraphError as e:
                logger.info(f"[EDIT] {describe(intent)} rejected: {e.code} {e.message}")
                return EditOutcome(ok=False, intent=intent, error=e, version=self.timeline.version)

            if record:
                self.history.record(
                    HistoryEntry(description=describe(intent), before=before, after=self.timeline.snapshot())
                )
            outcome = EditOutcome(
                ok=True,
                intent=intent,
                elements=elements,
                version=self.timeline.version,
            )

        self._publish(
            TimelineEvent(
                event_type="edit_applied",
                version=outcome.version,
                description=describe(intent),
                element_ids=[e.id for e in elements],
            )
        )
        return outcome

    # ------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------

    def begin_gesture(self, element_id: str, kind: str = "drag") -> GestureSession:
        """Take exclusive ownership of the timeline for a drag or resize.

        Raises:
            GestureConflictError: another gesture is still in progress
            ElementNotFoundError: the element does not exist
        """
        with self._lock:
            if self._gesture is not None:
                raise GestureConflictError(self._gesture.id)
            self.timeline.get(element_id)
            self._gesture = GestureSession(self, kind, element_id, self.gesture_interval)
            logger.debug(f"[EDIT] Gesture {self._gesture.id} ({kind}) started on {element_id}")
            return self._gesture

    def _finish_gesture(
        self,
        gesture: GestureSession,
        before: TimelineSnapshot,
        revert: bool = False,
    ) -> None:
        with self._lock:
            if self._gesture is not gesture:
                return
            self._gesture = None
            if revert:
                self.timeline.restore(before)
            elif self.timeline.version != before.version:
                self.history.record(
                    HistoryEntry(
                        description=f"{gesture.kind} gesture",
                        before=before,
                        after=self.timeline.snapshot(),
                    )
                )
            version = self.timeline.version

        if revert:
            self._publish(TimelineEvent(event_type="gesture_cancelled", version=version))
        logger.debug(f"[EDIT] Gesture {gesture.id} finished after {gesture.applied_count} updates")

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def undo(self) -> bool:
        return self._step_history("undo")

    def redo(self) -> bool:
        return self._step_history("redo")

    def _step_history(self, direction: str) -> bool:
        with self._lock:
            if self._gesture is not None:
                raise GestureConflictError(self._gesture.id)
            if direction == "undo":
                entry = self.history.undo()
                target = entry.before if entry else None
            else:
                entry = self.history.redo()
                target = entry.after if entry else None
            if entry is None or target is None:
                return False
            self.timeline.restore(target)
            version = self.timeline.version

        logger.info(f"[EDIT] {direction} {entry.description}")
        self._publish(TimelineEvent(event_type=direction, version=version, description=entry.description))
        return True
