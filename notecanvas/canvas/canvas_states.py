# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Canvas Interaction States

Pointer gestures are modelled as small state machines that know nothing
about the input-event API of the host.  The host translates its own
press / move / release events into controller calls with world-space
points:

    ConnectionDrawController   Idle <-> Drawing   (output port -> input port)
    ResizeController           Idle <-> Resizing  (edge handles e/w/s/n)

Each controller owns exactly one current state and switches through
``set_state`` so ``on_exit`` / ``on_enter`` always run in pairs.

FrameCoalescer keeps only the newest value of a high-frequency stream
(drag positions) and applies it at most once per frame.
"""

from abc import ABC
from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, QTimer, Signal

from notecanvas.canvas.graph_store import GraphStore
from notecanvas.node.node_types import PortName, Position, Size

from notecanvas.logger import get_logger
log = get_logger("Interaction")

CURVE_MIN_OFFSET = 50.0
CURVE_OFFSET_RATIO = 0.5
FRAME_INTERVAL_MS = 16


def bezier_path(start: Position, end: Position) -> str:
    """SVG path of the horizontal-tangent cubic used for connection lines."""
    offset = max(CURVE_MIN_OFFSET, abs(end.x - start.x) * CURVE_OFFSET_RATIO)
    return (
        f"M {start.x:g} {start.y:g} "
        f"C {start.x + offset:g} {start.y:g} {end.x - offset:g} {end.y:g} {end.x:g} {end.y:g}"
    )


# =============================================================================
# STATE BASE
# =============================================================================

class CanvasInteractionState(ABC):
    """Base class for interaction states."""

    name = "base"

    def __init__(self, controller):
        self.controller = controller

    def on_enter(self):
        """Called when entering this state."""
        pass

    def on_exit(self):
        """Called when exiting this state."""
        pass


class _StateMachine(QObject):
    """Holds the current state and emits ``state_changed(name)`` on transitions."""

    state_changed = Signal(str)

    def __init__(self, store: GraphStore):
        super().__init__()
        self.store = store
        self._current_state: Optional[CanvasInteractionState] = None

    @property
    def state(self) -> CanvasInteractionState:
        return self._current_state

    def set_state(self, state: CanvasInteractionState) -> None:
        """Transition to a new interaction state."""
        if self._current_state is not None:
            self._current_state.on_exit()

        self._current_state = state
        self._current_state.on_enter()
        self.state_changed.emit(state.name)


# =============================================================================
# CONNECTION DRAWING
# =============================================================================

class IdleDrawState(CanvasInteractionState):
    name = "idle"


class DrawingState(CanvasInteractionState):
    """Rubber-band line from an output port towards the pointer."""

    name = "drawing"

    def __init__(self, controller, from_node_id: str, from_port: str, anchor: Position):
        super().__init__(controller)
        self.from_node_id = from_node_id
        self.from_port = from_port
        self.start_point = anchor
        self.current_point = anchor

    def on_enter(self):
        log.debug(f"Connection draw started at {self.from_node_id}:{self.from_port}")

    def on_exit(self):
        self.controller.path_changed.emit("")


class ConnectionDrawController(_StateMachine):
    """
    Drives a connection gesture against a GraphStore.

    A gesture only ever starts from a port the source node exposes as an
    output and only completes on a different node exposing the target port
    as an input.  Anything else ends silently in Idle.

    Signals:
        state_changed(str)  -- "idle" or "drawing"
        path_changed(str)   -- SVG path of the rubber-band line, "" when idle
    """

    path_changed = Signal(str)

    def __init__(self, store: GraphStore):
        super().__init__(store)
        self.set_state(IdleDrawState(self))

    @property
    def is_drawing(self) -> bool:
        return isinstance(self._current_state, DrawingState)

    def start(self, node_id: str, port: str = PortName.OUTPUT.value,
              anchor: Optional[Position] = None) -> bool:
        """Begin drawing from *node_id*:*port*.  A gesture in progress is cancelled first."""
        if self.is_drawing:
            self.cancel()

        node = self.store.get_node(node_id)
        if node is None or not node.has_output(port):
            log.debug(f"Connection draw refused from {node_id}:{port}")
            return False

        self.set_state(DrawingState(self, node_id, port, anchor or Position()))
        self.path_changed.emit(self.temp_path())
        return True

    def move(self, point: Position) -> None:
        state = self._current_state
        if not isinstance(state, DrawingState):
            return
        state.current_point = point
        self.path_changed.emit(self.temp_path())

    def finish(self, to_node_id: str, to_port: str = PortName.INPUT.value) -> Optional[str]:
        """
        Release over *to_node_id*:*to_port*.

        Returns:
            The new connection id, or None when the drop was not a valid
            input of another node (the gesture is discarded either way).
        """
        state = self._current_state
        if not isinstance(state, DrawingState):
            return None

        from_node_id, from_port = state.from_node_id, state.from_port
        self.set_state(IdleDrawState(self))

        target = self.store.get_node(to_node_id)
        if target is None or to_node_id == from_node_id or not target.has_input(to_port):
            log.debug(f"Connection drop discarded on {to_node_id}:{to_port}")
            return None

        return self.store.add_connection(from_node_id, to_node_id, from_port, to_port)

    def cancel(self) -> None:
        if self.is_drawing:
            self.set_state(IdleDrawState(self))

    def temp_path(self) -> str:
        state = self._current_state
        if not isinstance(state, DrawingState):
            return ""
        return bezier_path(state.start_point, state.current_point)


# =============================================================================
# RESIZING
# =============================================================================

class IdleResizeState(CanvasInteractionState):
    name = "idle"


class ResizingState(CanvasInteractionState):
    name = "resizing"

    def __init__(self, controller, node_id: str, direction: str,
                 start_point: Position, start_size: Size):
        super().__init__(controller)
        self.node_id = node_id
        self.direction = direction
        self.start_point = start_point
        self.start_size = start_size


class ResizeController(_StateMachine):
    """
    Edge/corner resize gesture.

    *direction* is any combination of the letters ``n``, ``s``, ``e``, ``w``
    (``"se"`` for the bottom-right handle).  Sizes are computed from the
    size captured at ``start`` plus the pointer delta, so the result does
    not drift when the clamp kicks in mid-gesture.
    """

    VALID_DIRECTIONS = frozenset("nsew")

    def __init__(self, store: GraphStore):
        super().__init__(store)
        self.set_state(IdleResizeState(self))

    @property
    def is_resizing(self) -> bool:
        return isinstance(self._current_state, ResizingState)

    def start(self, node_id: str, direction: str, point: Position) -> bool:
        if self.is_resizing:
            self.cancel()

        node = self.store.get_node(node_id)
        if node is None or not direction or not set(direction) <= self.VALID_DIRECTIONS:
            log.debug(f"Resize refused for {node_id} ({direction!r})")
            return False

        self.set_state(ResizingState(self, node_id, direction, point, node.size))
        return True

    def move(self, point: Position) -> Optional[Size]:
        state = self._current_state
        if not isinstance(state, ResizingState):
            return None

        node = self.store.get_node(state.node_id)
        if node is None:
            # Node vanished mid-gesture.
            self.set_state(IdleResizeState(self))
            return None

        dx = point.x - state.start_point.x
        dy = point.y - state.start_point.y
        width, height = state.start_size.width, state.start_size.height
        if "e" in state.direction:
            width += dx
        if "w" in state.direction:
            width -= dx
        if "s" in state.direction:
            height += dy
        if "n" in state.direction:
            height -= dy

        size = node.size_limits.clamp(Size(width, height))
        self.store.resize_node(state.node_id, size)
        return size

    def finish(self) -> None:
        if self.is_resizing:
            self.set_state(IdleResizeState(self))

    def cancel(self) -> None:
        self.finish()


# =============================================================================
# FRAME COALESCING
# =============================================================================

class FrameCoalescer:
    """
    Collapse a burst of values into one application per frame.

    ``push`` only records the newest value; ``flush`` hands it to *apply*
    once.  With ``use_timer=True`` a single-shot QTimer calls ``flush``
    after FRAME_INTERVAL_MS (needs a running Qt event loop).
    """

    def __init__(self, apply: Callable[[Any], None], use_timer: bool = False,
                 interval_ms: int = FRAME_INTERVAL_MS):
        self._apply = apply
        self._pending: Any = None
        self._has_pending = False
        self._timer: Optional[QTimer] = None
        if use_timer:
            self._timer = QTimer()
            self._timer.setSingleShot(True)
            self._timer.setInterval(interval_ms)
            self._timer.timeout.connect(self.flush)

    @property
    def has_pending(self) -> bool:
        return self._has_pending

    def push(self, value: Any) -> None:
        self._pending = value
        self._has_pending = True
        if self._timer is not None and not self._timer.isActive():
            self._timer.start()

    def flush(self) -> bool:
        """Apply the pending value, if any.  Returns True when something was applied."""
        if not self._has_pending:
            return False
        value = self._pending
        self._pending = None
        self._has_pending = False
        self._apply(value)
        return True

    def discard(self) -> None:
        self._pending = None
        self._has_pending = False
        if self._timer is not None:
            self._timer.stop()
