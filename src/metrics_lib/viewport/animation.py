"""
Eased zoom transitions and the stateful viewport manager.

A change of the target domain is animated from the currently displayed
domain over ``duration_ms`` with an ease-out cubic curve, rounding the
interpolated indices on every frame.  Changes of fewer than two indices on
both edges are applied at once to avoid jitter.  Setting a new target
cancels the animation in flight.

Frames are driven by a ``FrameScheduler`` ("run this callback on the next
frame").  ``ManualFrameScheduler`` advances a virtual clock explicitly and
is what headless callers and the tests use.

Usage:
    from src.metrics_lib.viewport.animation import ManualFrameScheduler, ViewportManager

    scheduler = ManualFrameScheduler()
    viewport = ViewportManager(scheduler=scheduler)
    viewport.update_series(timestamps_ms)
    viewport.zoom_in()
    scheduler.run_until_idle()
    print(viewport.active_domain)
"""

import logging
import time
from typing import Callable, Iterator, Optional, Protocol, Sequence

from src.metrics_lib.core.config import DEFAULT_ANIMATION_MS, DEFAULT_LOOKBACK_HOURS
from src.metrics_lib.viewport import zoom
from src.metrics_lib.viewport.zoom import ZoomDomain, ZoomState, round_half_up

logger = logging.getLogger("metrics.animation")

DEFAULT_FRAME_MS = 1000.0 / 60
ANIMATION_MIN_DELTA = 2

FrameCallback = Callable[[float], None]


def ease_out_cubic(progress: float) -> float:
    return 1 - (1 - progress) ** 3


def _lerp_domain(start: ZoomDomain, target: ZoomDomain, eased: float) -> ZoomDomain:
    return ZoomDomain(
        round_half_up(start.start_index + (target.start_index - start.start_index) * eased),
        round_half_up(start.end_index + (target.end_index - start.end_index) * eased),
    )


def needs_animation(current: Optional[ZoomDomain], target: Optional[ZoomDomain]) -> bool:
    """True when the change is large enough to animate."""
    if current is None or target is None:
        return False
    return (
        abs(target.start_index - current.start_index) >= ANIMATION_MIN_DELTA
        or abs(target.end_index - current.end_index) >= ANIMATION_MIN_DELTA
    )


def interpolate_domains(
    start: ZoomDomain,
    target: ZoomDomain,
    duration_ms: float = DEFAULT_ANIMATION_MS,
    frame_ms: float = DEFAULT_FRAME_MS,
) -> Iterator[ZoomDomain]:
    """Yield the eased frames from ``start`` to ``target``.

    The last frame is always exactly ``target``.
    """
    if duration_ms <= 0 or frame_ms <= 0:
        yield target
        return

    elapsed = 0.0
    while True:
        elapsed += frame_ms
        progress = min(elapsed / duration_ms, 1.0)
        yield _lerp_domain(start, target, ease_out_cubic(progress))
        if progress >= 1.0:
            return


# ---------------------------------------------------------------------------
# Frame scheduling
# ---------------------------------------------------------------------------


class FrameScheduler(Protocol):
    def now(self) -> float:
        """Current time in milliseconds."""
        ...

    def request_frame(self, callback: FrameCallback) -> int:
        """Run ``callback(frame_time_ms)`` on the next frame; return a handle."""
        ...

    def cancel_frame(self, handle: int) -> None:
        ...


class ManualFrameScheduler:
    """Deterministic scheduler on a virtual millisecond clock.

    Nothing runs until ``advance`` or ``run_until_idle`` is called.
    """

    def __init__(self, frame_ms: float = DEFAULT_FRAME_MS, start_ms: float = 0.0):
        self.frame_ms = frame_ms
        self._now = start_ms
        self._next_handle = 1
        self._pending: dict[int, FrameCallback] = {}

    def now(self) -> float:
        return self._now

    def request_frame(self, callback: FrameCallback) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._pending[handle] = callback
        return handle

    def cancel_frame(self, handle: int) -> None:
        self._pending.pop(handle, None)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def advance(self, ms: Optional[float] = None) -> int:
        """Move the clock one frame (or ``ms``) and run the due callbacks.

        Callbacks requested while running are deferred to the next frame.
        Returns the number of callbacks run.
        """
        self._now += self.frame_ms if ms is None else ms
        due = self._pending
        self._pending = {}
        for callback in due.values():
            callback(self._now)
        return len(due)

    def run_until_idle(self, max_frames: int = 10_000) -> int:
        """Advance frame by frame until nothing is pending; returns frames run."""
        frames = 0
        while self._pending and frames < max_frames:
            self.advance()
            frames += 1
        return frames


# ---------------------------------------------------------------------------
# Animator
# ---------------------------------------------------------------------------


class DomainAnimator:
    """Animates the displayed domain towards the latest target.

    ``current`` is what the renderer should show right now.
    """

    def __init__(
        self,
        scheduler: FrameScheduler,
        duration_ms: float = DEFAULT_ANIMATION_MS,
        on_frame: Optional[Callable[[Optional[ZoomDomain]], None]] = None,
    ):
        self.scheduler = scheduler
        self.duration_ms = duration_ms
        self.on_frame = on_frame
        self.current: Optional[ZoomDomain] = None
        self._handle: Optional[int] = None

    @property
    def is_animating(self) -> bool:
        return self._handle is not None

    def cancel(self) -> None:
        if self._handle is not None:
            self.scheduler.cancel_frame(self._handle)
            self._handle = None

    def _emit(self, domain: Optional[ZoomDomain]) -> None:
        self.current = domain
        if self.on_frame is not None:
            self.on_frame(domain)

    def set_target(self, target: Optional[ZoomDomain]) -> None:
        self.cancel()

        if not needs_animation(self.current, target) or self.duration_ms <= 0:
            self._emit(target)
            return

        start = self.current
        started_at = self.scheduler.now()

        def tick(frame_time: float) -> None:
            progress = min((frame_time - started_at) / self.duration_ms, 1.0)
            self._emit(_lerp_domain(start, target, ease_out_cubic(max(progress, 0.0))))
            if progress < 1.0:
                self._handle = self.scheduler.request_frame(tick)
            else:
                self._handle = None

        self._handle = self.scheduler.request_frame(tick)


# ---------------------------------------------------------------------------
# Viewport manager
# ---------------------------------------------------------------------------


class ViewportManager:
    """Zoom state plus animation for one chart.

    Args:
        scheduler: Frame scheduler driving transitions; defaults to a
            ``ManualFrameScheduler``.
        lookback_hours: Initial lookback preset.
        duration_ms: Transition duration.
        now_fn: Returns "now" in epoch milliseconds (injectable for tests).
        on_lookback_change: Called with the preset a brush drag selected.
    """

    def __init__(
        self,
        scheduler: Optional[FrameScheduler] = None,
        lookback_hours: int = DEFAULT_LOOKBACK_HOURS,
        duration_ms: float = DEFAULT_ANIMATION_MS,
        now_fn: Optional[Callable[[], int]] = None,
        on_lookback_change: Optional[Callable[[int], None]] = None,
    ):
        self.scheduler = scheduler if scheduler is not None else ManualFrameScheduler()
        self.animator = DomainAnimator(self.scheduler, duration_ms)
        self.state = ZoomState(lookback_hours=lookback_hours)
        self.timestamps: list[int] = []
        self._now_fn = now_fn or (lambda: int(time.time() * 1000))
        self.on_lookback_change = on_lookback_change

    # -- read side ---------------------------------------------------------

    @property
    def length(self) -> int:
        return len(self.timestamps)

    @property
    def domain(self) -> Optional[ZoomDomain]:
        """Target domain (``None`` = everything)."""
        return self.state.domain

    @property
    def active_domain(self) -> Optional[ZoomDomain]:
        """What is on screen: the animated domain, else the target."""
        return self.animator.current or self.state.domain

    @property
    def zoom_percentage(self) -> int:
        return zoom.zoom_percentage(self.active_domain, self.length)

    def initial_domain(self) -> Optional[ZoomDomain]:
        return zoom.calculate_initial_domain(
            self.timestamps, self.state.lookback_hours, self._now_fn()
        )

    # -- transitions -------------------------------------------------------

    def _set_state(self, state: ZoomState) -> None:
        changed = state.domain != self.state.domain
        self.state = state
        if changed:
            self.animator.set_target(state.domain)

    def update_series(self, timestamps_ms: Sequence[int]) -> None:
        """Feed the current raw timestamps (ascending epoch ms)."""
        self.timestamps = [int(t) for t in timestamps_ms]
        state = zoom.on_series_length(self.state, self.length)
        if not state.initialized and self.length > 0:
            state = zoom.initialize(
                state,
                zoom.calculate_initial_domain(
                    self.timestamps, state.lookback_hours, self._now_fn()
                ),
            )
        self._set_state(state)

    def zoom_in(self) -> None:
        self._set_state(zoom.zoom_in(self.state, self.length))

    def zoom_out(self) -> None:
        self._set_state(zoom.zoom_out(self.state, self.length))

    def reset_zoom(self) -> None:
        self._set_state(zoom.reset_zoom(self.state))

    def jump_to_now(self) -> None:
        if self.length == 0:
            return
        self._set_state(zoom.jump_to_now(self.state, self.initial_domain()))

    def select_lookback(self, hours: int) -> None:
        if self.state.brush_guard:
            self._set_state(zoom.select_lookback(self.state, hours, None))
            return
        target = zoom.calculate_initial_domain(self.timestamps, hours, self._now_fn())
        self._set_state(zoom.select_lookback(self.state, hours, target))

    def apply_brush(
        self, domain: ZoomDomain, display_length: Optional[int] = None
    ) -> Optional[int]:
        """Apply a dragged range; returns the newly selected preset, if any."""
        state, preset = zoom.apply_brush(self.state, domain, self.timestamps, display_length)
        self._set_state(state)
        if preset is None:
            return None

        if self.on_lookback_change is not None:
            self.on_lookback_change(preset)
        if self.state.brush_guard:
            # Nobody fed the preset back through select_lookback
            self.state = zoom.select_lookback(self.state, preset, None)
        return preset
