"""
Viewport / zoom state machine.

The visible part of a chart is an inclusive index range into the raw sample
series, or ``None`` meaning "show everything".  All state lives in one
immutable ``ZoomState`` record and every operation is a pure function
returning a new record; ``ViewportManager`` (see ``animation``) wraps them
for callers that want a mutable object.

States:
    uninitialized ──initialize()──► initialized   (exactly once)

Operations:
  - zoom_in:      shrink the range by 25% around its midpoint (min width 10)
  - zoom_out:     grow the range by 33% around its midpoint; reaching the
                  full series collapses the domain to ``None``
  - apply_brush:  store a dragged range (rescaled from candle index space
                  when an aggregated chart is displayed) and report the
                  closest lookback preset for the dragged time span
  - on_series_length:  auto-follow new samples when the view ends at "now"
  - select_lookback / jump_to_now / reset_zoom

Brush rescaling assumes candles of uniform width; with sparse or irregular
samples the mapped raw indices drift slightly from the exact ones.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from src.metrics_lib.core.config import DEFAULT_LOOKBACK_HOURS, LOOKBACK_PRESETS_HOURS
from src.metrics_lib.core.samples import MS_PER_HOUR, to_epoch_ms

logger = logging.getLogger("metrics.zoom")

MS_PER_MINUTE = 60 * 1000

ZOOM_IN_FACTOR = 0.75
ZOOM_OUT_FACTOR = 1.33
MIN_ZOOM_WIDTH = 10
FOLLOW_TOLERANCE = 2  # view counts as "at now" within this many indices


@dataclass(frozen=True)
class ZoomDomain:
    start_index: int
    end_index: int

    @property
    def width(self) -> int:
        return self.end_index - self.start_index


@dataclass(frozen=True)
class ZoomState:
    domain: Optional[ZoomDomain] = None
    initialized: bool = False
    prev_length: int = 0
    lookback_hours: int = DEFAULT_LOOKBACK_HOURS
    # Set when apply_brush changed the lookback preset; the next
    # select_lookback clears it instead of re-applying the preset's domain
    brush_guard: bool = False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _current(state: ZoomState, length: int) -> tuple[int, int]:
    if state.domain is None:
        return 0, length - 1
    return state.domain.start_index, state.domain.end_index


def _place(center: int, width: int, length: int) -> ZoomDomain:
    # Keep the requested width when the window runs into the right edge
    start = max(0, min(center - width // 2, length - 1 - width))
    return ZoomDomain(start, min(length - 1, start + width))


def _fit(domain: ZoomDomain, length: int) -> Optional[ZoomDomain]:
    """Shift ``domain`` left into a series of ``length``; ``None`` when it spans it all."""
    if domain.end_index <= length - 1:
        return domain
    if domain.width >= length - 1:
        return None
    end = length - 1
    return ZoomDomain(end - domain.width, end)


def closest_lookback_preset(
    hours: float, presets: Sequence[int] = LOOKBACK_PRESETS_HOURS
) -> int:
    """Nearest preset to ``hours``; the earlier preset wins ties."""
    best = presets[0]
    best_diff = abs(hours - best)
    for option in presets:
        diff = abs(hours - option)
        if diff < best_diff:
            best, best_diff = option, diff
    return best


def calculate_initial_domain(
    timestamps_ms: Sequence[int],
    lookback_hours: float,
    now_ms: int,
) -> Optional[ZoomDomain]:
    """Range from the first sample inside the lookback window to the newest.

    Timestamps are expected in ascending order.  Returns ``None`` (show
    everything) when fewer than two samples fall inside the window.
    """
    n = len(timestamps_ms)
    if n < 2 or not lookback_hours:
        return None

    cutoff = now_ms - lookback_hours * MS_PER_HOUR
    start = n
    for i in range(n - 1, -1, -1):
        if timestamps_ms[i] >= cutoff:
            start = i
        else:
            break

    end = n - 1
    if start >= end:
        return None
    return ZoomDomain(start, end)


def zoom_percentage(domain: Optional[ZoomDomain], length: int) -> int:
    """Visible share of the series in percent (100 when fully zoomed out)."""
    if domain is None or length <= 0:
        return 100
    return round_half_up((domain.end_index - domain.start_index + 1) / length * 100)


def visible_value_range(
    points: Sequence,
    timestamps_ms: Sequence[int],
    domain: Optional[ZoomDomain],
) -> Optional[tuple[float, float]]:
    """``(min, max)`` over the points inside the visible time span.

    ``points`` may be chart points (``value``) or candles (``low``/``high``).
    Candles count when their bucket overlaps the span.  Returns ``None`` when
    nothing is visible.
    """
    if not points:
        return None

    if domain is None or len(timestamps_ms) == 0:
        lo_t, hi_t = -math.inf, math.inf
    else:
        start = max(0, min(domain.start_index, len(timestamps_ms) - 1))
        end = max(0, min(domain.end_index, len(timestamps_ms) - 1))
        lo_t, hi_t = timestamps_ms[start], timestamps_ms[end]

    lows, highs = [], []
    for p in points:
        t = to_epoch_ms(p.timestamp)
        if hasattr(p, "low"):
            bucket_end = t + max(p.period_minutes, 0) * MS_PER_MINUTE
            if t > hi_t or max(bucket_end - 1, t) < lo_t:
                continue
            lows.append(p.low)
            highs.append(p.high)
        elif lo_t <= t <= hi_t:
            lows.append(p.value)
            highs.append(p.value)

    if not lows:
        return None
    return float(min(lows)), float(max(highs))


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def initialize(state: ZoomState, initial_domain: Optional[ZoomDomain]) -> ZoomState:
    """Apply the initial domain once; later calls are no-ops."""
    if state.initialized:
        return state
    return replace(state, domain=initial_domain, initialized=True)


def zoom_in(state: ZoomState, length: int) -> ZoomState:
    if length < 2:
        return state
    start, end = _current(state, length)
    width = min(length - 1, max(MIN_ZOOM_WIDTH, math.floor((end - start) * ZOOM_IN_FACTOR)))
    center = (start + end) // 2
    return replace(state, domain=_place(center, width, length))


def zoom_out(state: ZoomState, length: int) -> ZoomState:
    if length < 2:
        return state
    start, end = _current(state, length)
    current = end - start
    # Always grow by at least one index so repeated calls reach the full view
    width = min(length - 1, max(current + 1, math.floor(current * ZOOM_OUT_FACTOR)))
    domain = _place((start + end) // 2, width, length)
    if domain.start_index == 0 and domain.end_index == length - 1:
        return replace(state, domain=None)
    return replace(state, domain=domain)


def reset_zoom(state: ZoomState) -> ZoomState:
    return replace(state, domain=None)


def jump_to_now(state: ZoomState, initial_domain: Optional[ZoomDomain]) -> ZoomState:
    """Return to the lookback window ending at the newest sample."""
    return replace(state, domain=initial_domain)


def select_lookback(
    state: ZoomState,
    hours: int,
    initial_domain: Optional[ZoomDomain],
) -> ZoomState:
    """Handle a lookback preset change from the window selector.

    A preset change that ``apply_brush`` itself produced only clears the
    guard; re-applying the preset's domain would undo the drag.
    """
    if state.brush_guard:
        return replace(state, lookback_hours=hours, brush_guard=False)
    if not state.initialized:
        return replace(state, lookback_hours=hours)
    return replace(state, lookback_hours=hours, domain=initial_domain)


def apply_brush(
    state: ZoomState,
    domain: ZoomDomain,
    timestamps_ms: Sequence[int],
    display_length: Optional[int] = None,
) -> tuple[ZoomState, Optional[int]]:
    """Store a dragged range.

    Args:
        state: Current state; brushes before initialization are ignored.
        domain: Range in the index space of the rendered series.
        timestamps_ms: Ascending raw sample timestamps.
        display_length: Length of the rendered series when it is an
            aggregated (candlestick / Heiken-Ashi) one; ``None`` for raw.

    Returns:
        ``(new_state, preset)`` where ``preset`` is the lookback preset
        closest to the dragged span when it differs from the current one,
        else ``None``.
    """
    raw_length = len(timestamps_ms)
    if not state.initialized or domain is None or raw_length == 0:
        return state, None

    start, end = domain.start_index, domain.end_index
    if start > end:
        start, end = end, start

    if display_length:
        ratio = raw_length / display_length
        start = math.floor(start * ratio)
        end = math.ceil(end * ratio)

    start = max(0, min(start, raw_length - 1))
    end = max(0, min(end, raw_length - 1))
    if start == end:
        # A click or a clamped-away drag still needs a non-empty range
        if raw_length < 2:
            return state, None
        if end < raw_length - 1:
            end += 1
        else:
            start -= 1
    new_state = replace(state, domain=ZoomDomain(start, end))

    hours = (timestamps_ms[end] - timestamps_ms[start]) / MS_PER_HOUR
    preset = closest_lookback_preset(hours)
    if preset == state.lookback_hours:
        return new_state, None

    logger.debug("brush span %.2fh -> lookback preset %dh", hours, preset)
    return replace(new_state, lookback_hours=preset, brush_guard=True), preset


def on_series_length(state: ZoomState, length: int) -> ZoomState:
    """Track the series length; follow new samples when viewing "now".

    A shrinking series pulls the domain back inside ``[0, length - 1]``,
    keeping its width where possible; a domain that no longer fits collapses
    to ``None``.
    """
    prev = state.prev_length
    state = replace(state, prev_length=length)
    if state.domain is None:
        return state

    if length < prev:
        return replace(state, domain=_fit(state.domain, length))
    if length == prev:
        return state

    if state.domain.end_index >= prev - FOLLOW_TOLERANCE:
        width = state.domain.width
        end = length - 1
        return replace(state, domain=ZoomDomain(max(0, end - width), end))
    return state
