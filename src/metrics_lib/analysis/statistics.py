"""
Statistical analysis of a metric series.

Computes the descriptive statistics the chart overlays are drawn from:
  - mean, population standard deviation, min / max / range
  - ±1σ, ±2σ, ±3σ deviation bands
  - rate of change (least-squares slope, units per hour)
  - trend classification (increasing / decreasing / stable)

Two averaging modes:
  - simple:  one global mean; σ of every value around it
  - moving:  a centered moving average per index; σ of every value around
             its own moving average (an index-local residual)

Two band modes:
  - fixed:   bands use the single σ above
  - dynamic: (moving mode only) a rolling σ over the same centered window
             replaces the global σ at each index — true Bollinger semantics

Window convention (centered, clamped to the array):
    window_i = values[max(0, i - w // 2) : min(n, i + ceil(w / 2))]

Usage:
    from src.metrics_lib.analysis.statistics import calculate_stats

    stats = calculate_stats(samples, averaging_mode="moving", window_size=20,
                            band_mode="dynamic")
    if stats is not None:
        print(stats.mean, stats.std_dev, stats.trend)
"""

import logging
import math
from dataclasses import dataclass
from typing import Literal, Optional

import numpy as np

from src.metrics_lib.core.samples import MS_PER_HOUR, Sample, sample_arrays

logger = logging.getLogger("metrics.statistics")

AveragingMode = Literal["simple", "moving"]
BandMode = Literal["fixed", "dynamic"]
Trend = Literal["increasing", "decreasing", "stable"]

# Trend is "stable" unless |slope| exceeds this fraction of σ
TREND_SIGMA_FRACTION = 0.1

MIN_SAMPLES = 2


@dataclass
class StatisticalAnalysis:
    """Result of ``calculate_stats``.

    ``moving_averages`` / ``rolling_std_devs`` are index-aligned with the
    analysed samples when present; use ``baseline_at`` / ``sigma_at`` rather
    than reading them directly.
    """

    mean: float
    std_dev: float
    min: float
    max: float
    range: float
    band1_upper: float
    band1_lower: float
    band2_upper: float
    band2_lower: float
    band3_upper: float
    band3_lower: float
    rate_of_change: float  # units per hour
    trend: Trend
    moving_averages: Optional[np.ndarray] = None
    rolling_std_devs: Optional[np.ndarray] = None

    def baseline_at(self, index: int) -> float:
        """Moving average at ``index`` when available, else the global mean."""
        if self.moving_averages is not None and index < len(self.moving_averages):
            return float(self.moving_averages[index])
        return self.mean

    def sigma_at(self, index: int) -> float:
        """Rolling σ at ``index`` in dynamic band mode, else the global σ."""
        if self.rolling_std_devs is not None and index < len(self.rolling_std_devs):
            return float(self.rolling_std_devs[index])
        return self.std_dev

    def bands_at(self, index: int) -> dict[str, float]:
        """Band values around the local baseline at ``index``."""
        if self.moving_averages is None:
            return {
                "band1_upper": self.band1_upper,
                "band1_lower": self.band1_lower,
                "band2_upper": self.band2_upper,
                "band2_lower": self.band2_lower,
                "band3_upper": self.band3_upper,
                "band3_lower": self.band3_lower,
            }
        baseline = self.baseline_at(index)
        sigma = self.sigma_at(index)
        return {
            "band1_upper": baseline + sigma,
            "band1_lower": baseline - sigma,
            "band2_upper": baseline + 2 * sigma,
            "band2_lower": baseline - 2 * sigma,
            "band3_upper": baseline + 3 * sigma,
            "band3_lower": baseline - 3 * sigma,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _shifted_mean(values: np.ndarray) -> float:
    # Anchoring on the first element keeps a constant window's mean exact
    base = values[0]
    return float(base + np.mean(values - base))


def _window_bounds(n: int, index: int, window_size: int) -> tuple[int, int]:
    start = max(0, index - window_size // 2)
    end = min(n, index + math.ceil(window_size / 2))
    return start, end


def calculate_moving_average(values, window_size: int) -> np.ndarray:
    """Centered moving average, clamped to the array bounds."""
    arr = np.asarray(values, dtype=float)
    n = len(arr)
    if n == 0 or window_size < 1:
        return np.array([], dtype=float)

    out = np.empty(n)
    for i in range(n):
        start, end = _window_bounds(n, i, window_size)
        out[i] = _shifted_mean(arr[start:end])
    return out


def calculate_rolling_std(values, moving_averages, window_size: int) -> np.ndarray:
    """Population σ of each centered window around its moving average."""
    arr = np.asarray(values, dtype=float)
    means = np.asarray(moving_averages, dtype=float)
    n = len(arr)
    if n == 0 or window_size < 1 or len(means) != n:
        return np.array([], dtype=float)

    out = np.empty(n)
    for i in range(n):
        start, end = _window_bounds(n, i, window_size)
        window = arr[start:end]
        out[i] = math.sqrt(float(np.mean((window - means[i]) ** 2)))
    return out


def calculate_rate_of_change(times_ms: np.ndarray, values: np.ndarray) -> float:
    """Least-squares slope of value against hours since the first sample.

    Returns 0.0 for fewer than two samples or when every timestamp is the
    same (the regression is undefined).
    """
    if len(values) < 2:
        return 0.0

    hours = (times_ms - times_ms[0]) / MS_PER_HOUR
    # Slope is shift-invariant; anchoring on values[0] keeps a flat series at 0
    y = values - values[0]

    x_centered = hours - hours.mean()
    denom = float(np.sum(x_centered**2))
    if denom == 0.0:
        return 0.0
    return float(np.sum(x_centered * (y - y.mean())) / denom)


def classify_trend(rate_of_change: float, std_dev: float) -> Trend:
    if abs(rate_of_change) > std_dev * TREND_SIGMA_FRACTION:
        return "increasing" if rate_of_change > 0 else "decreasing"
    return "stable"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def calculate_stats(
    samples: list[Sample],
    averaging_mode: AveragingMode = "simple",
    window_size: int = 20,
    band_mode: BandMode = "fixed",
) -> Optional[StatisticalAnalysis]:
    """Compute the statistical analysis for a validated sample list.

    Args:
        samples: Validated, time-ordered samples.
        averaging_mode: ``"simple"`` (global mean) or ``"moving"``
            (centered moving average of ``window_size``).
        window_size: Moving-average window; ignored in simple mode.
        band_mode: ``"fixed"`` or ``"dynamic"``; dynamic only takes effect
            together with moving averaging.

    Returns:
        ``StatisticalAnalysis`` or ``None`` when fewer than two samples are
        supplied.
    """
    if not samples or len(samples) < MIN_SAMPLES:
        return None

    window_size = max(1, int(window_size))
    times, values = sample_arrays(samples)

    moving_averages: Optional[np.ndarray] = None
    rolling_std_devs: Optional[np.ndarray] = None

    if averaging_mode == "moving":
        moving_averages = calculate_moving_average(values, window_size)
        # Scalar mean is only for display; residuals use each point's own MA
        mean = _shifted_mean(moving_averages)
        baseline = moving_averages
    else:
        mean = _shifted_mean(values)
        baseline = np.full(len(values), mean)

    std_dev = math.sqrt(float(np.mean((values - baseline) ** 2)))

    if band_mode == "dynamic" and moving_averages is not None:
        rolling_std_devs = calculate_rolling_std(values, moving_averages, window_size)

    v_min = float(np.min(values))
    v_max = float(np.max(values))

    rate = calculate_rate_of_change(times, values)
    trend = classify_trend(rate, std_dev)

    logger.debug(
        "stats: n=%d mode=%s/%s mean=%.4f sigma=%.4f slope=%.4f",
        len(values),
        averaging_mode,
        band_mode,
        mean,
        std_dev,
        rate,
    )

    return StatisticalAnalysis(
        mean=mean,
        std_dev=std_dev,
        min=v_min,
        max=v_max,
        range=v_max - v_min,
        band1_upper=mean + std_dev,
        band1_lower=mean - std_dev,
        band2_upper=mean + 2 * std_dev,
        band2_lower=mean - 2 * std_dev,
        band3_upper=mean + 3 * std_dev,
        band3_lower=mean - 3 * std_dev,
        rate_of_change=rate,
        trend=trend,
        moving_averages=moving_averages,
        rolling_std_devs=rolling_std_devs,
    )


def format_rate_of_change(rate: float, unit: str) -> str:
    """Human label for a rate of change, e.g. ``"↑ 0.25 %/hr"``."""
    abs_rate = abs(rate)
    direction = "↑" if rate > 0 else "↓" if rate < 0 else "→"

    if abs_rate < 0.01:
        return f"{direction} Stable"
    if abs_rate < 1:
        return f"{direction} {abs_rate:.2f} {unit}/hr"
    return f"{direction} {abs_rate:.1f} {unit}/hr"
