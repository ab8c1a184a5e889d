"""
metrics_lib.viewport — zoom state machine and eased domain transitions.
"""

from src.metrics_lib.viewport.zoom import (
    ZoomDomain,
    ZoomState,
    apply_brush,
    calculate_initial_domain,
    closest_lookback_preset,
    initialize,
    jump_to_now,
    on_series_length,
    reset_zoom,
    select_lookback,
    visible_value_range,
    zoom_in,
    zoom_out,
    zoom_percentage,
)
from src.metrics_lib.viewport.animation import (
    DomainAnimator,
    FrameScheduler,
    ManualFrameScheduler,
    ViewportManager,
    ease_out_cubic,
    interpolate_domains,
)

__all__ = [
    # zoom
    "ZoomDomain",
    "ZoomState",
    "apply_brush",
    "calculate_initial_domain",
    "closest_lookback_preset",
    "initialize",
    "jump_to_now",
    "on_series_length",
    "reset_zoom",
    "select_lookback",
    "visible_value_range",
    "zoom_in",
    "zoom_out",
    "zoom_percentage",
    # animation
    "DomainAnimator",
    "FrameScheduler",
    "ManualFrameScheduler",
    "ViewportManager",
    "ease_out_cubic",
    "interpolate_domains",
]
