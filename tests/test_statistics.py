"""
Unit tests for the statistical analyzer.

Tests cover:
  - calculate_stats(): simple / moving averaging, fixed / dynamic bands,
    min/max/range, degenerate input
  - calculate_moving_average() / calculate_rolling_std(): centered windows
  - calculate_rate_of_change() / classify_trend(): slope in units per hour
  - format_rate_of_change(): labels
  - Flat series: σ = 0, collapsed bands, stable trend
"""

import math

import numpy as np
import pytest
from conftest import _flat_samples, _make_timestamps, _to_samples, _trending_samples

from src.metrics_lib.analysis.statistics import (
    StatisticalAnalysis,
    calculate_moving_average,
    calculate_rate_of_change,
    calculate_rolling_std,
    calculate_stats,
    classify_trend,
    format_rate_of_change,
)
from src.metrics_lib.core.samples import validate_samples

# ═══════════════════════════════════════════════════════════════════════════
# Simple mode
# ═══════════════════════════════════════════════════════════════════════════


class TestSimpleStats:
    def test_returns_analysis(self, walk_samples):
        stats = calculate_stats(walk_samples)
        assert isinstance(stats, StatisticalAnalysis)
        assert stats.moving_averages is None
        assert stats.rolling_std_devs is None

    def test_mean_and_population_std(self):
        values = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]
        stats = calculate_stats(_to_samples(values, _make_timestamps(len(values))))
        assert stats.mean == pytest.approx(5.0)
        assert stats.std_dev == pytest.approx(2.0)

    def test_min_max_range(self):
        values = [3.0, -1.0, 8.0, 2.0]
        stats = calculate_stats(_to_samples(values, _make_timestamps(4)))
        assert stats.min == -1.0
        assert stats.max == 8.0
        assert stats.range == 9.0

    def test_bands(self):
        values = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]
        stats = calculate_stats(_to_samples(values, _make_timestamps(len(values))))
        assert stats.band1_upper == pytest.approx(7.0)
        assert stats.band1_lower == pytest.approx(3.0)
        assert stats.band2_upper == pytest.approx(9.0)
        assert stats.band3_lower == pytest.approx(-1.0)

    def test_order_of_samples_does_not_change_mean(self, walk_samples):
        forward = calculate_stats(walk_samples)
        backward = calculate_stats(list(reversed(walk_samples)))
        assert forward.mean == pytest.approx(backward.mean)
        assert forward.std_dev == pytest.approx(backward.std_dev)

    @pytest.mark.parametrize("n", [0, 1])
    def test_fewer_than_two_samples_is_none(self, n):
        assert calculate_stats(_flat_samples(n=n)) is None

    def test_none_input(self):
        assert calculate_stats(None) is None


# ═══════════════════════════════════════════════════════════════════════════
# Flat series
# ═══════════════════════════════════════════════════════════════════════════


class TestFlatSeries:
    @pytest.mark.parametrize("mode", ["simple", "moving"])
    @pytest.mark.parametrize("band_mode", ["fixed", "dynamic"])
    def test_flat_collapses(self, mode, band_mode):
        c = 0.1  # not exactly representable in binary
        stats = calculate_stats(
            _flat_samples(n=60, value=c), averaging_mode=mode, band_mode=band_mode
        )
        assert stats.mean == c
        assert stats.std_dev == 0.0
        for name in ("band1_upper", "band1_lower", "band2_upper", "band3_lower"):
            assert getattr(stats, name) == c
        assert stats.rate_of_change == 0.0
        assert stats.trend == "stable"

    def test_flat_per_index_bands(self):
        stats = calculate_stats(
            _flat_samples(n=30, value=73.3), averaging_mode="moving", band_mode="dynamic"
        )
        for i in range(30):
            bands = stats.bands_at(i)
            assert bands["band3_upper"] == 73.3
            assert bands["band3_lower"] == 73.3


# ═══════════════════════════════════════════════════════════════════════════
# Moving mode
# ═══════════════════════════════════════════════════════════════════════════


class TestMovingAverage:
    def test_centered_window(self):
        values = np.arange(10, dtype=float)
        ma = calculate_moving_average(values, 4)
        # index 5: window [3, 7) → mean(3,4,5,6)
        assert ma[5] == pytest.approx(4.5)
        # index 0: window [0, 2) → clamped
        assert ma[0] == pytest.approx(0.5)
        # index 9: window [7, 10) → clamped
        assert ma[9] == pytest.approx(8.0)

    def test_odd_window(self):
        values = np.array([1.0, 2.0, 3.0, 4.0, 5.0])
        ma = calculate_moving_average(values, 3)
        # index 2: window [1, 4)
        assert ma[2] == pytest.approx(3.0)

    def test_window_one_is_identity(self):
        values = np.array([5.0, 1.0, 9.0])
        np.testing.assert_allclose(calculate_moving_average(values, 1), values)

    def test_empty(self):
        assert len(calculate_moving_average([], 5)) == 0

    def test_rolling_std_matches_window(self):
        values = np.array([1.0, 3.0, 1.0, 3.0, 1.0, 3.0])
        ma = calculate_moving_average(values, 2)
        rs = calculate_rolling_std(values, ma, 2)
        # index 3: window [2, 4) = (1, 3), mean 2 → σ 1
        assert rs[3] == pytest.approx(1.0)

    def test_moving_stats_residual_std(self, trending_samples):
        simple = calculate_stats(trending_samples, averaging_mode="simple")
        moving = calculate_stats(trending_samples, averaging_mode="moving", window_size=10)
        # Residuals around a local MA are far smaller than around the global mean
        assert moving.std_dev < simple.std_dev / 5
        assert len(moving.moving_averages) == len(trending_samples)

    def test_dynamic_requires_moving(self, walk_samples):
        stats = calculate_stats(walk_samples, averaging_mode="simple", band_mode="dynamic")
        assert stats.rolling_std_devs is None

    def test_dynamic_bands_use_rolling_sigma(self, walk_samples):
        stats = calculate_stats(
            walk_samples, averaging_mode="moving", window_size=20, band_mode="dynamic"
        )
        assert stats.rolling_std_devs is not None
        i = 150
        bands = stats.bands_at(i)
        assert bands["band2_upper"] == pytest.approx(
            stats.moving_averages[i] + 2 * stats.rolling_std_devs[i]
        )
        assert stats.sigma_at(i) == pytest.approx(stats.rolling_std_devs[i])

    def test_fixed_moving_bands_use_global_sigma(self, walk_samples):
        stats = calculate_stats(walk_samples, averaging_mode="moving", band_mode="fixed")
        bands = stats.bands_at(10)
        assert bands["band1_upper"] == pytest.approx(stats.moving_averages[10] + stats.std_dev)


# ═══════════════════════════════════════════════════════════════════════════
# Rate of change and trend
# ═══════════════════════════════════════════════════════════════════════════


class TestRateOfChange:
    def test_slope_per_hour(self):
        # +1 per minute → +60 per hour
        times = _make_timestamps(30)
        values = np.arange(30, dtype=float)
        assert calculate_rate_of_change(times, values) == pytest.approx(60.0)

    def test_identical_timestamps_yield_zero(self):
        times = np.full(5, 1_000, dtype=np.int64)
        assert calculate_rate_of_change(times, np.arange(5.0)) == 0.0

    def test_single_point(self):
        assert calculate_rate_of_change(np.array([1]), np.array([1.0])) == 0.0

    def test_trending_is_increasing(self, trending_samples):
        assert calculate_stats(trending_samples).trend == "increasing"

    def test_decreasing(self):
        samples = _trending_samples(slope_per_sample=-0.5)
        assert calculate_stats(samples).trend == "decreasing"

    def test_classify_trend_threshold(self):
        assert classify_trend(0.1, 1.0) == "stable"
        assert classify_trend(0.11, 1.0) == "increasing"
        assert classify_trend(-0.11, 1.0) == "decreasing"


class TestFormatRateOfChange:
    @pytest.mark.parametrize(
        "rate,expected",
        [
            (0.0, "→ Stable"),
            (0.005, "↑ Stable"),
            (0.25, "↑ 0.25 %/hr"),
            (-0.5, "↓ 0.50 %/hr"),
            (12.34, "↑ 12.3 %/hr"),
        ],
    )
    def test_labels(self, rate, expected):
        assert format_rate_of_change(rate, "%") == expected


# ═══════════════════════════════════════════════════════════════════════════
# End-to-end: validator → analyzer
# ═══════════════════════════════════════════════════════════════════════════


class TestValidatedPercentageSeries:
    def test_thirty_samples_with_invalid_values(self):
        good = [10.0 + i for i in range(22)]
        values = good[:11] + [101.0, 150.0, -1.0, 250.0, -20.0, 100.01, 999.0, -0.5] + good[11:]
        samples = _to_samples(values, _make_timestamps(len(values)))
        assert len(samples) == 30

        valid = validate_samples(samples, "%")
        assert len(valid) == 22

        stats = calculate_stats(valid, averaging_mode="simple")
        assert stats.mean == pytest.approx(float(np.mean(good)))
        assert stats.std_dev == pytest.approx(float(np.std(good)))
        assert stats.max == 31.0
        assert not math.isnan(stats.rate_of_change)
