from __future__ import annotations

from collections.abc import Iterable
from typing import NamedTuple

HUE_PERIOD = 360.0


class Anchor(NamedTuple):
    """Control point on the hue circle."""

    hue: float
    value: float


def lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation; `t` is not clamped."""
    return a + (b - a) * t


def lerp_anchors(anchors: Iterable[Anchor | tuple[float, float]], hue: float) -> float:
    """Piecewise-linear lookup over anchors placed on the circular hue axis.

    Anchors are sorted by hue. The segment after the last anchor wraps around
    to the first one (shifted by a full period), so a query below the first
    anchor's hue lands on that wrap segment.
    """

    ordered = sorted((Anchor(*anchor) for anchor in anchors), key=lambda anchor: anchor.hue)
    if not ordered:
        raise ValueError("lerp_anchors requires at least one anchor")

    last = len(ordered) - 1
    for i, curr in enumerate(ordered):
        nxt = ordered[(i + 1) % len(ordered)]
        next_hue = nxt.hue
        if next_hue <= curr.hue:
            next_hue += HUE_PERIOD

        h = hue
        if h < curr.hue and i == last:
            h += HUE_PERIOD

        if curr.hue <= h < next_hue:
            t = (h - curr.hue) / (next_hue - curr.hue)
            return lerp(curr.value, nxt.value, t)

    # Unreachable when the anchors cover the circle; kept as a safe default.
    return ordered[0].value
