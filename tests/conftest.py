"""
Shared pytest fixtures for the metrics analytics test suite.

Provides synthetic metric series that mirror real monitoring data shapes
(CPU %, latency, queue depth) so every test module can exercise statistics,
indicators, candles and the viewport without a data source.
"""

import numpy as np
import pandas as pd
import pytest

from src.metrics_lib.core.samples import Sample

START_MS = 1_735_689_600_000  # 2025-01-01T00:00:00Z
MINUTE_MS = 60_000


# ---------------------------------------------------------------------------
# Synthetic data generators
# ---------------------------------------------------------------------------


def _make_timestamps(
    n: int, step_ms: int = MINUTE_MS, start_ms: int = START_MS
) -> np.ndarray:
    """Ascending epoch-millisecond timestamps, one every *step_ms*."""
    return start_ms + np.arange(n, dtype=np.int64) * step_ms


def _to_samples(values, timestamps) -> list[Sample]:
    return [Sample(timestamp=int(t), value=float(v)) for t, v in zip(timestamps, values)]


def _random_walk_samples(
    n: int = 300,
    start_value: float = 50.0,
    volatility: float = 1.0,
    step_ms: int = MINUTE_MS,
    seed: int = 42,
    clip: tuple[float, float] | None = (0.0, 100.0),
) -> list[Sample]:
    """Random-walk metric (defaults look like a CPU % series)."""
    rng = np.random.default_rng(seed)
    values = start_value + np.cumsum(rng.normal(0, volatility, n))
    if clip is not None:
        values = np.clip(values, *clip)
    return _to_samples(values, _make_timestamps(n, step_ms))


def _trending_samples(
    n: int = 200,
    start_value: float = 10.0,
    slope_per_sample: float = 0.5,
    noise: float = 0.1,
    step_ms: int = MINUTE_MS,
    seed: int = 123,
) -> list[Sample]:
    """Clearly trending series (positive slope by default)."""
    rng = np.random.default_rng(seed)
    values = start_value + slope_per_sample * np.arange(n) + rng.normal(0, noise, n)
    return _to_samples(values, _make_timestamps(n, step_ms))


def _flat_samples(n: int = 50, value: float = 42.0, step_ms: int = MINUTE_MS) -> list[Sample]:
    """Constant series."""
    return _to_samples(np.full(n, value), _make_timestamps(n, step_ms))


def _spiky_samples(
    n: int = 200,
    base: float = 20.0,
    noise: float = 1.0,
    spikes: dict[int, float] | None = None,
    seed: int = 7,
) -> list[Sample]:
    """Noisy flat series with large spikes injected at the given indices."""
    rng = np.random.default_rng(seed)
    values = base + rng.normal(0, noise, n)
    for index, height in (spikes or {100: 25.0}).items():
        values[index] = base + height
    return _to_samples(values, _make_timestamps(n))


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def walk_samples() -> list[Sample]:
    """Generic 300-sample random walk, 1-minute spacing."""
    return _random_walk_samples(n=300, seed=42)


@pytest.fixture()
def trending_samples() -> list[Sample]:
    """200-sample upward trend."""
    return _trending_samples()


@pytest.fixture()
def flat_samples() -> list[Sample]:
    """50 identical values."""
    return _flat_samples()


@pytest.fixture()
def spiky_samples() -> list[Sample]:
    """200 noisy samples with one large spike at index 100."""
    return _spiky_samples()


@pytest.fixture()
def short_samples() -> list[Sample]:
    """10 samples: below most indicator warm-up windows."""
    return _random_walk_samples(n=10, seed=11)


@pytest.fixture()
def sample_frame() -> pd.DataFrame:
    """DataFrame with a UTC DatetimeIndex and a ``value`` column."""
    idx = pd.date_range("2025-01-01", periods=20, freq="1min", tz="UTC")
    return pd.DataFrame({"value": np.linspace(10.0, 29.0, 20)}, index=idx)
