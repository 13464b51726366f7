# -*- coding: utf-8 -*-
"""
NoteCanvas: A PySide6 graph engine for wiring notes, text and
AI chat panels together on a pannable, zoomable canvas.
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: Apache-2.0

Viewport Transform

The viewport is the affine map ``screen = world * zoom + (x, y)``.
All functions here are pure: they take a Viewport and return a new one.
Zoom is always clamped to [ZOOM_MIN, ZOOM_MAX].
"""

from dataclasses import dataclass, replace
from typing import Iterable, Optional

from PySide6.QtCore import QPointF, QRectF
from PySide6.QtGui import QTransform

from notecanvas.node.node_types import CanvasNode, Position, Size

ZOOM_MIN = 0.1
ZOOM_MAX = 3.0
ZOOM_STEP = 1.2
FIT_PADDING = 100.0


@dataclass(frozen=True)
class Viewport:
    """Pan offset (screen pixels) and zoom factor."""
    x: float = 0.0
    y: float = 0.0
    zoom: float = 1.0

    @property
    def pan(self) -> Position:
        return Position(self.x, self.y)

    def to_transform(self) -> QTransform:
        """World -> screen transform for Qt painters and views."""
        return QTransform(self.zoom, 0.0, 0.0, self.zoom, self.x, self.y)


def clamp_zoom(zoom: float) -> float:
    return max(ZOOM_MIN, min(ZOOM_MAX, zoom))


# ==============================================================================
# COORDINATE MAPPING
# ==============================================================================

def screen_to_world(point: Position, viewport: Viewport) -> Position:
    """Map a screen point to world coordinates."""
    return Position(
        (point.x - viewport.x) / viewport.zoom,
        (point.y - viewport.y) / viewport.zoom,
    )


def world_to_screen(point: Position, viewport: Viewport) -> Position:
    """Map a world point to screen coordinates."""
    mapped = viewport.to_transform().map(QPointF(point.x, point.y))
    return Position.from_qpointf(mapped)


# ==============================================================================
# PAN / ZOOM
# ==============================================================================

def pan_by(delta: Position, viewport: Viewport) -> Viewport:
    return replace(viewport, x=viewport.x + delta.x, y=viewport.y + delta.y)


def zoom_at(anchor: Position, factor: float, viewport: Viewport) -> Viewport:
    """
    Scale by *factor* keeping the world point under *anchor* fixed.

    Args:
        anchor:   Screen point that must not move.
        factor:   Multiplicative zoom change (> 0).
        viewport: Current viewport.

    Returns:
        The new viewport.  When the clamp absorbs the whole change the
        input viewport is returned as-is.
    """
    new_zoom = clamp_zoom(viewport.zoom * factor)
    if new_zoom == viewport.zoom:
        return viewport

    ratio = new_zoom / viewport.zoom
    return Viewport(
        x=anchor.x - (anchor.x - viewport.x) * ratio,
        y=anchor.y - (anchor.y - viewport.y) * ratio,
        zoom=new_zoom,
    )


def zoom_in(viewport: Viewport, anchor: Optional[Position] = None) -> Viewport:
    return zoom_at(anchor or Position(), ZOOM_STEP, viewport)


def zoom_out(viewport: Viewport, anchor: Optional[Position] = None) -> Viewport:
    return zoom_at(anchor or Position(), 1.0 / ZOOM_STEP, viewport)


def reset_zoom() -> Viewport:
    return Viewport()


# ==============================================================================
# FIT
# ==============================================================================

def content_bounds(nodes: Iterable[CanvasNode]) -> Optional[QRectF]:
    """Union of all node rectangles, None for an empty iterable."""
    bounds: Optional[QRectF] = None
    for node in nodes:
        # QRectF.united() drops empty rects; accumulate edges explicitly.
        r = node.rect
        if bounds is None:
            bounds = QRectF(r)
            continue
        left = min(bounds.left(), r.left())
        top = min(bounds.top(), r.top())
        right = max(bounds.right(), r.right())
        bottom = max(bounds.bottom(), r.bottom())
        bounds = QRectF(left, top, right - left, bottom - top)
    return bounds


def fit_to_content(
    nodes: Iterable[CanvasNode],
    viewport_size: Size,
    viewport: Viewport,
    padding: float = FIT_PADDING,
) -> Viewport:
    """
    Frame all nodes inside a screen area of *viewport_size*.

    Never zooms in past 1.0.  Empty content, a zero-area bounding box or
    a screen area no larger than *padding* leave *viewport* unchanged.
    """
    bounds = content_bounds(nodes)
    if bounds is None or bounds.width() <= 0 or bounds.height() <= 0:
        return viewport

    avail_w = viewport_size.width - padding
    avail_h = viewport_size.height - padding
    if avail_w <= 0 or avail_h <= 0:
        return viewport

    zoom = clamp_zoom(min(1.0, avail_w / bounds.width(), avail_h / bounds.height()))
    center = bounds.center()
    return Viewport(
        x=viewport_size.width / 2 - center.x() * zoom,
        y=viewport_size.height / 2 - center.y() * zoom,
        zoom=zoom,
    )
