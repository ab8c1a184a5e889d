"""
Technical indicator engine.

Every indicator takes a flat numeric series (raw metric values or candle
closes) and returns a float array of the same length.  Positions inside an
indicator's warm-up window are ``NaN``; a series shorter than the warm-up
yields an all-``NaN`` array, never an exception.

Indicators:
  - SMA(n), EMA(n) (seeded with the SMA of the first n values)
  - RSI(14) with Wilder smoothing
  - MACD(12, 26, 9)
  - Stochastic %K / %D (14, 3, 3)
  - Williams %R (14)
  - ROC (12)
  - Bollinger Bands (20, 2σ population)
  - ATR (14) with Wilder smoothing (candles only)

Degenerate arithmetic has defined fallbacks instead of inf/NaN:
  - RSI: zero average loss → 100
  - Stochastic: zero high-low range → 50
  - Williams %R: zero range → -50
  - ROC: zero past value → 0

Usage:
    from src.metrics_lib.analysis.indicators import compute_indicator_bundle

    bundle = compute_indicator_bundle(values, timestamps)
    latest_rsi = bundle.rsi[-1]
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger("metrics.indicators")

DEFAULT_RSI_PERIOD = 14
DEFAULT_MACD_FAST = 12
DEFAULT_MACD_SLOW = 26
DEFAULT_MACD_SIGNAL = 9
DEFAULT_STOCH_PERIOD = 14
DEFAULT_STOCH_SMOOTH_K = 3
DEFAULT_STOCH_SMOOTH_D = 3
DEFAULT_WILLIAMS_PERIOD = 14
DEFAULT_ROC_PERIOD = 12
DEFAULT_BB_PERIOD = 20
DEFAULT_BB_STD = 2.0
DEFAULT_ATR_PERIOD = 14

RSI_ZERO_LOSS = 100.0
STOCH_ZERO_RANGE = 50.0
WILLIAMS_ZERO_RANGE = -50.0


def _as_array(values) -> np.ndarray:
    return np.asarray(values, dtype=float).reshape(-1)


def _nan(n: int) -> np.ndarray:
    return np.full(n, np.nan)


# ---------------------------------------------------------------------------
# Moving averages
# ---------------------------------------------------------------------------


def sma(values, period: int) -> np.ndarray:
    """Simple Moving Average of the trailing ``period`` values.

    A window containing an undefined (NaN) value is itself undefined.
    """
    arr = _as_array(values)
    if period < 1 or len(arr) < period:
        return _nan(len(arr))
    return pd.Series(arr).rolling(window=period, min_periods=period).mean().to_numpy()


def ema(values, period: int) -> np.ndarray:
    """Exponential Moving Average seeded with the SMA of the first ``period``.

    ema[period-1] = mean(values[:period])
    ema[i]        = (values[i] - ema[i-1]) * 2/(period+1) + ema[i-1]
    """
    arr = _as_array(values)
    n = len(arr)
    out = _nan(n)
    if period < 1 or n < period:
        return out

    multiplier = 2.0 / (period + 1)
    out[period - 1] = float(np.mean(arr[:period]))
    for i in range(period, n):
        out[i] = (arr[i] - out[i - 1]) * multiplier + out[i - 1]
    return out


# ---------------------------------------------------------------------------
# Momentum oscillators
# ---------------------------------------------------------------------------


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return RSI_ZERO_LOSS
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


def rsi(values, period: int = DEFAULT_RSI_PERIOD) -> np.ndarray:
    """Relative Strength Index with Wilder's smoothing.

    The first value (index ``period``) uses the plain average gain/loss of
    the first ``period`` deltas; after that
    ``avg = (avg * (period - 1) + current) / period``.
    """
    arr = _as_array(values)
    n = len(arr)
    out = _nan(n)
    if period < 1 or n < period + 1:
        return out

    deltas = np.diff(arr)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))
    out[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period + 1, n):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        out[i] = _rsi_value(avg_gain, avg_loss)

    return out


@dataclass
class MACDResult:
    macd_line: np.ndarray
    signal_line: np.ndarray
    histogram: np.ndarray


def macd(
    values,
    fast: int = DEFAULT_MACD_FAST,
    slow: int = DEFAULT_MACD_SLOW,
    signal: int = DEFAULT_MACD_SIGNAL,
) -> MACDResult:
    """MACD line, signal line and histogram.

    The signal line is an EMA of the MACD line seeded with the mean of the
    first ``signal`` defined MACD values.
    """
    arr = _as_array(values)
    macd_line = ema(arr, fast) - ema(arr, slow)

    signal_line = _nan(len(arr))
    multiplier = 2.0 / (signal + 1)
    seed_sum = 0.0
    count = 0
    prev = math.nan

    for i, value in enumerate(macd_line):
        if math.isnan(value):
            continue
        if count < signal:
            seed_sum += value
            count += 1
            if count == signal:
                prev = seed_sum / signal
                signal_line[i] = prev
        else:
            prev = (value - prev) * multiplier + prev
            signal_line[i] = prev

    return MACDResult(
        macd_line=macd_line,
        signal_line=signal_line,
        histogram=macd_line - signal_line,
    )


def _rolling_extremes(
    close: np.ndarray,
    high: Optional[np.ndarray],
    low: Optional[np.ndarray],
    period: int,
) -> tuple[np.ndarray, np.ndarray]:
    hi = close if high is None else _as_array(high)
    lo = close if low is None else _as_array(low)
    highest = pd.Series(hi).rolling(window=period, min_periods=period).max().to_numpy()
    lowest = pd.Series(lo).rolling(window=period, min_periods=period).min().to_numpy()
    return highest, lowest


@dataclass
class StochasticResult:
    k: np.ndarray
    d: np.ndarray


def stochastic(
    close,
    period: int = DEFAULT_STOCH_PERIOD,
    smooth_k: int = DEFAULT_STOCH_SMOOTH_K,
    smooth_d: int = DEFAULT_STOCH_SMOOTH_D,
    high=None,
    low=None,
) -> StochasticResult:
    """Stochastic oscillator.

    raw %K = (close - lowest low) / (highest high - lowest low) * 100, or 50
    on a zero range.  %K is the ``smooth_k`` SMA of raw %K and %D the
    ``smooth_d`` SMA of %K.  Without ``high``/``low`` the close series is
    used for both.
    """
    arr = _as_array(close)
    n = len(arr)
    if period < 1 or n < period:
        return StochasticResult(k=_nan(n), d=_nan(n))

    highest, lowest = _rolling_extremes(arr, high, low, period)
    span = highest - lowest

    raw_k = _nan(n)
    valid = ~np.isnan(span)
    flat = valid & (span == 0)
    ranged = valid & (span != 0)
    raw_k[flat] = STOCH_ZERO_RANGE
    raw_k[ranged] = (arr[ranged] - lowest[ranged]) / span[ranged] * 100.0

    k = sma(raw_k, smooth_k)
    d = sma(k, smooth_d)
    return StochasticResult(k=k, d=d)


def williams_r(
    close,
    period: int = DEFAULT_WILLIAMS_PERIOD,
    high=None,
    low=None,
) -> np.ndarray:
    """Williams %R in [-100, 0]; -50 on a zero range."""
    arr = _as_array(close)
    n = len(arr)
    out = _nan(n)
    if period < 1 or n < period:
        return out

    highest, lowest = _rolling_extremes(arr, high, low, period)
    span = highest - lowest

    valid = ~np.isnan(span)
    flat = valid & (span == 0)
    ranged = valid & (span != 0)
    out[flat] = WILLIAMS_ZERO_RANGE
    out[ranged] = (highest[ranged] - arr[ranged]) / span[ranged] * -100.0
    return out


def roc(values, period: int = DEFAULT_ROC_PERIOD) -> np.ndarray:
    """Rate of Change in percent over ``period`` steps; 0 when the past value is 0."""
    arr = _as_array(values)
    n = len(arr)
    out = _nan(n)
    if period < 1 or n <= period:
        return out

    current = arr[period:]
    past = arr[:-period]
    with np.errstate(divide="ignore", invalid="ignore"):
        change = np.where(past == 0, 0.0, (current - past) / past * 100.0)
    out[period:] = change
    return out


# ---------------------------------------------------------------------------
# Volatility
# ---------------------------------------------------------------------------


@dataclass
class BollingerBands:
    upper: np.ndarray
    middle: np.ndarray
    lower: np.ndarray


def bollinger_bands(
    values,
    period: int = DEFAULT_BB_PERIOD,
    num_std: float = DEFAULT_BB_STD,
) -> BollingerBands:
    """SMA middle band ± ``num_std`` population standard deviations."""
    arr = _as_array(values)
    n = len(arr)
    if period < 1 or n < period:
        return BollingerBands(upper=_nan(n), middle=_nan(n), lower=_nan(n))

    rolling = pd.Series(arr).rolling(window=period, min_periods=period)
    middle = rolling.mean().to_numpy()
    std = rolling.std(ddof=0).to_numpy()
    return BollingerBands(
        upper=middle + num_std * std,
        middle=middle,
        lower=middle - num_std * std,
    )


def true_range(high, low, close) -> np.ndarray:
    """True Range; the first bar has no previous close and uses high - low."""
    hi = _as_array(high)
    lo = _as_array(low)
    cl = _as_array(close)
    n = len(cl)
    if n == 0:
        return np.array([], dtype=float)

    tr = np.empty(n)
    tr[0] = hi[0] - lo[0]
    if n > 1:
        prev_close = cl[:-1]
        tr[1:] = np.maximum.reduce(
            [
                hi[1:] - lo[1:],
                np.abs(hi[1:] - prev_close),
                np.abs(lo[1:] - prev_close),
            ]
        )
    return tr


def atr(high, low, close, period: int = DEFAULT_ATR_PERIOD) -> np.ndarray:
    """Average True Range with Wilder's smoothing.

    The first ATR sits at index ``period`` and is the mean of TR[1..period]
    (the first bar's TR is excluded); afterwards
    ``ATR[i] = (ATR[i-1] * (period - 1) + TR[i]) / period``.
    """
    cl = _as_array(close)
    n = len(cl)
    out = _nan(n)
    if period < 1 or n <= period:
        return out

    tr = true_range(high, low, cl)
    out[period] = float(np.mean(tr[1 : period + 1]))
    for i in range(period + 1, n):
        out[i] = (out[i - 1] * (period - 1) + tr[i]) / period
    return out


# ---------------------------------------------------------------------------
# Bundles
# ---------------------------------------------------------------------------


@dataclass
class IndicatorBundle:
    """Index-aligned indicator arrays for one input series.

    ``bollinger`` and ``atr`` are present for candle bundles; the raw-series
    bundle carries Bollinger Bands too but never ATR (no high/low).
    """

    timestamps: np.ndarray
    sma7: np.ndarray
    sma20: np.ndarray
    sma25: np.ndarray
    sma99: np.ndarray
    ema12: np.ndarray
    ema26: np.ndarray
    rsi: np.ndarray
    macd: MACDResult
    stochastic: StochasticResult
    williams_r: np.ndarray
    roc: np.ndarray
    bollinger: Optional[BollingerBands] = None
    atr: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return len(self.timestamps)


def _base_bundle(
    closes: np.ndarray,
    timestamps: np.ndarray,
    high: Optional[np.ndarray] = None,
    low: Optional[np.ndarray] = None,
) -> IndicatorBundle:
    return IndicatorBundle(
        timestamps=timestamps,
        sma7=sma(closes, 7),
        sma20=sma(closes, 20),
        sma25=sma(closes, 25),
        sma99=sma(closes, 99),
        ema12=ema(closes, 12),
        ema26=ema(closes, 26),
        rsi=rsi(closes),
        macd=macd(closes),
        stochastic=stochastic(closes, high=high, low=low),
        williams_r=williams_r(closes, high=high, low=low),
        roc=roc(closes),
        bollinger=bollinger_bands(closes),
    )


def compute_indicator_bundle(values, timestamps) -> IndicatorBundle:
    """All line-chart indicators for a raw value series."""
    closes = _as_array(values)
    stamps = np.asarray(timestamps, dtype=np.int64).reshape(-1)
    if len(stamps) != len(closes):
        logger.warning(
            "indicator bundle: %d values but %d timestamps; truncating",
            len(closes),
            len(stamps),
        )
        size = min(len(stamps), len(closes))
        closes, stamps = closes[:size], stamps[:size]
    return _base_bundle(closes, stamps)


def compute_candle_indicator_bundle(candles: Sequence) -> IndicatorBundle:
    """All indicators over candle closes, plus ATR from the candle ranges.

    Stochastic and Williams %R take their extremes from candle highs/lows.
    """
    stamps = np.array([c.timestamp for c in candles], dtype=np.int64)
    closes = np.array([c.close for c in candles], dtype=float)
    highs = np.array([c.high for c in candles], dtype=float)
    lows = np.array([c.low for c in candles], dtype=float)

    bundle = _base_bundle(closes, stamps, high=highs, low=lows)
    bundle.atr = atr(highs, lows, closes)
    return bundle


def series_points(timestamps, values) -> list[tuple[int, float]]:
    """``(timestamp, value)`` pairs with undefined warm-up positions removed."""
    return [
        (int(t), float(v))
        for t, v in zip(timestamps, values)
        if v is not None and not math.isnan(v)
    ]
