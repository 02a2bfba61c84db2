"""
Gesture handling for the interactive crop viewport (Qt-free).

Pointer, wheel and touch input are modelled as small event values and folded
into a :class:`GestureState` by the pure :func:`transition` function.
:class:`ViewportController` is a thin mutable holder around it for the widget;
redrawing after an event is the caller's job.

Interaction modes::

    IDLE --pointer down on background--> PANNING
    IDLE --pointer down on handle-------> RESIZING
    IDLE --two touch points-------------> PINCH_ZOOMING
    any  --pointer up / touch end-------> IDLE
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum

from portrait_studio.config import (
    DEFAULT_ROTATION, DEFAULT_SCALE, FILL_SCALE, FIT_SCALE,
    RESIZE_SENSITIVITY, ROTATION_STEP, SLIDER_SCALE_MAX, WHEEL_ZOOM_IN, WHEEL_ZOOM_OUT,
)
from portrait_studio.models import TransformState, ViewportLayout


class Mode(Enum):
    IDLE = "idle"
    PANNING = "panning"
    RESIZING = "resizing"
    PINCH_ZOOMING = "pinch_zooming"


# =============================================================================
# Events
# =============================================================================
@dataclass(frozen=True)
class PointerDown:
    x: float
    y: float


@dataclass(frozen=True)
class PointerMove:
    x: float
    y: float


@dataclass(frozen=True)
class PointerUp:
    pass


@dataclass(frozen=True)
class Wheel:
    """Wheel notch; negative ``delta_y`` is scrolling up (zoom in)."""
    delta_y: float


@dataclass(frozen=True)
class TouchStart:
    points: tuple[tuple[float, float], ...]


@dataclass(frozen=True)
class TouchMove:
    points: tuple[tuple[float, float], ...]


@dataclass(frozen=True)
class TouchEnd:
    pass


@dataclass(frozen=True)
class SetScale:
    """Zoom slider value."""
    value: float


@dataclass(frozen=True)
class SetRotation:
    """Rotation slider value in degrees."""
    value: float


@dataclass(frozen=True)
class StepRotation:
    steps: int


@dataclass(frozen=True)
class Fit:
    pass


@dataclass(frozen=True)
class Fill:
    pass


@dataclass(frozen=True)
class ResetTransform:
    pass


# =============================================================================
# State
# =============================================================================
@dataclass(frozen=True)
class GestureState:
    mode: Mode = Mode.IDLE
    transform: TransformState = field(default_factory=TransformState)
    # Pointer position and transform captured at drag start; moves are
    # measured against these, never accumulated frame to frame.
    drag_origin: tuple[float, float] = (0.0, 0.0)
    drag_transform: TransformState = field(default_factory=TransformState)
    last_touch_distance: float | None = None


def touch_distance(points) -> float:
    (x1, y1), (x2, y2) = points[0], points[1]
    return math.hypot(x1 - x2, y1 - y2)


def snap_rotation(value: float) -> float:
    return round(value / ROTATION_STEP) * ROTATION_STEP


def _start_drag(state: GestureState, x: float, y: float, layout: ViewportLayout | None) -> GestureState:
    mode = Mode.RESIZING if layout is not None and layout.hits_handle(x, y) else Mode.PANNING
    return replace(state, mode=mode, drag_origin=(x, y), drag_transform=state.transform)


def _drag_to(state: GestureState, x: float, y: float) -> GestureState:
    dx = x - state.drag_origin[0]
    dy = y - state.drag_origin[1]
    start = state.drag_transform

    if state.mode == Mode.PANNING:
        return replace(state, transform=state.transform.with_offset(start.offset_x + dx, start.offset_y + dy))

    if state.mode == Mode.RESIZING:
        # Dragging the corner handle out/down shrinks the image.
        move_magnitude = (dx + dy) / 2
        scale = start.scale - move_magnitude * RESIZE_SENSITIVITY
        return replace(state, transform=state.transform.with_scale(scale))

    return state


def transition(state: GestureState, event, layout: ViewportLayout | None = None) -> GestureState:
    """Return the state after applying ``event``.

    ``layout`` is only consulted for hit testing the resize handle; without a
    settled layout every pointer-down pans.
    """
    t = state.transform

    if isinstance(event, PointerDown):
        return _start_drag(state, event.x, event.y, layout)

    if isinstance(event, PointerMove):
        return _drag_to(state, event.x, event.y)

    if isinstance(event, (PointerUp, TouchEnd)):
        return replace(state, mode=Mode.IDLE, last_touch_distance=None)

    if isinstance(event, Wheel):
        factor = WHEEL_ZOOM_IN if -event.delta_y > 0 else WHEEL_ZOOM_OUT
        return replace(state, transform=t.with_scale(t.scale * factor))

    if isinstance(event, TouchStart):
        if len(event.points) == 2:
            return replace(state, mode=Mode.PINCH_ZOOMING,
                           last_touch_distance=touch_distance(event.points))
        if event.points:
            x, y = event.points[0]
            return _start_drag(state, x, y, layout)
        return state

    if isinstance(event, TouchMove):
        if len(event.points) == 2:
            dist = touch_distance(event.points)
            # Ratio against the previous tick, so N ticks compound.
            if state.last_touch_distance:
                t = t.with_scale(t.scale * dist / state.last_touch_distance)
            return replace(state, mode=Mode.PINCH_ZOOMING, transform=t, last_touch_distance=dist)
        if event.points:
            x, y = event.points[0]
            return _drag_to(state, x, y)
        return state

    if isinstance(event, SetScale):
        return replace(state, transform=t.with_scale(event.value, max_scale=SLIDER_SCALE_MAX))

    if isinstance(event, SetRotation):
        return replace(state, transform=t.with_rotation(snap_rotation(event.value)))

    if isinstance(event, StepRotation):
        return replace(state, transform=t.with_rotation(snap_rotation(t.rotation) + event.steps * ROTATION_STEP))

    if isinstance(event, Fit):
        return replace(state, transform=TransformState(FIT_SCALE, 0.0, 0.0, t.rotation))

    if isinstance(event, Fill):
        return replace(state, transform=TransformState(FILL_SCALE, 0.0, 0.0, t.rotation))

    if isinstance(event, ResetTransform):
        return replace(state, transform=TransformState(DEFAULT_SCALE, 0.0, 0.0, DEFAULT_ROTATION))

    raise TypeError(f"Unsupported viewport event: {event!r}")


# =============================================================================
# Controller
# =============================================================================
class ViewportController:
    """Mutable holder for a GestureState plus the latest measured layout."""

    def __init__(self, transform: TransformState | None = None, layout: ViewportLayout | None = None):
        self._state = GestureState(transform=transform or TransformState())
        self.layout = layout or ViewportLayout()

    @property
    def state(self) -> GestureState:
        return self._state

    @property
    def transform(self) -> TransformState:
        return self._state.transform

    @property
    def mode(self) -> Mode:
        return self._state.mode

    def handle(self, event) -> bool:
        """Apply ``event``; return True if the transform changed."""
        before = self._state.transform
        self._state = transition(self._state, event, self.layout)
        return self._state.transform != before

    def reset(self, transform: TransformState | None = None):
        """Start over with ``transform`` (defaults if None) and no gesture in progress."""
        self._state = GestureState(transform=transform or TransformState())
