"""
OHLC aggregation and the Heiken-Ashi transform.

Raw samples are bucketed into fixed-width periods:

    bucket_start = floor(epoch_ms / period_ms) * period_ms

Within a bucket ``open`` is the chronologically first value, ``close`` the
last, ``high`` / ``low`` the max / min.  Buckets come out in ascending order
and empty buckets are never emitted (no gap filling).

Heiken-Ashi candles are computed strictly in order because every candle
depends on the previous one:

    ha_close = (open + high + low + close) / 4
    ha_open  = open[0] for the first candle, else (ha_open[i-1] + ha_close[i-1]) / 2
    ha_high  = max(high, ha_open, ha_close)
    ha_low   = min(low, ha_open, ha_close)

Usage:
    from src.metrics_lib.analysis.candles import aggregate_ohlc, heiken_ashi

    candles = aggregate_ohlc(samples, period_minutes=5)
    ha = heiken_ashi(candles)
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from src.metrics_lib.analysis.anomalies import Anomaly, Severity
from src.metrics_lib.analysis.statistics import StatisticalAnalysis
from src.metrics_lib.core.samples import Sample, sample_arrays, to_epoch_ms

logger = logging.getLogger("metrics.candles")

MS_PER_MINUTE = 60 * 1000


@dataclass(frozen=True)
class Candle:
    timestamp: int  # bucket start, epoch ms
    open: float
    high: float
    low: float
    close: float
    sample_count: int = 1
    period_minutes: int = 0
    mean: Optional[float] = None
    is_anomaly: bool = False
    anomaly_severity: Optional[Severity] = None

    @property
    def is_green(self) -> bool:
        return self.close >= self.open


@dataclass(frozen=True)
class HeikenAshiCandle(Candle):
    """Smoothed candle; metadata is carried over from the source candle."""


def _anomalous_indices(anomalies: Optional[list[Anomaly]], times: np.ndarray) -> dict:
    if not anomalies:
        return {}
    by_time = {}
    for i, t in enumerate(times):
        by_time.setdefault(int(t), i)

    flagged = {}
    for anomaly in anomalies:
        index = anomaly.index
        if index < 0:
            index = by_time.get(to_epoch_ms(anomaly.timestamp), -1)
        if index >= 0:
            flagged.setdefault(index, anomaly.severity)
    return flagged


def aggregate_ohlc(
    samples: list[Sample],
    period_minutes: int,
    stats: Optional[StatisticalAnalysis] = None,
    anomalies: Optional[list[Anomaly]] = None,
) -> list[Candle]:
    """Bucket samples into OHLC candles of ``period_minutes``.

    Args:
        samples: Validated samples in any order.
        period_minutes: Bucket width, must be positive.
        stats: Optional statistics of the same sample list; used to record
            the local baseline at each bucket's closing sample.
        anomalies: Optional anomalies of the same sample list; a candle is
            anomalous when any of its samples is.

    Returns:
        Candles in ascending bucket order; empty for empty input or a
        non-positive period.
    """
    if not samples or period_minutes is None or period_minutes < 1:
        return []

    period_ms = int(period_minutes) * MS_PER_MINUTE
    times, values = sample_arrays(samples)

    df = pd.DataFrame(
        {"ts": times, "value": values, "idx": np.arange(len(values))}
    ).sort_values("ts", kind="stable")
    df["bucket"] = (df["ts"] // period_ms) * period_ms

    grouped = df.groupby("bucket", sort=True).agg(
        open=("value", "first"),
        high=("value", "max"),
        low=("value", "min"),
        close=("value", "last"),
        count=("value", "size"),
        last_idx=("idx", "last"),
    )

    flagged = _anomalous_indices(anomalies, times)
    members = df.groupby("bucket", sort=True)["idx"].apply(list) if flagged else None

    candles = []
    for bucket, row in grouped.iterrows():
        severity = None
        if members is not None:
            for idx in members.loc[bucket]:
                if idx in flagged:
                    severity = flagged[idx]
                    break

        baseline = None
        if stats is not None:
            baseline = stats.baseline_at(int(row["last_idx"]))

        candles.append(
            Candle(
                timestamp=int(bucket),
                open=float(row["open"]),
                high=float(row["high"]),
                low=float(row["low"]),
                close=float(row["close"]),
                sample_count=int(row["count"]),
                period_minutes=int(period_minutes),
                mean=baseline,
                is_anomaly=severity is not None,
                anomaly_severity=severity,
            )
        )

    logger.debug(
        "ohlc: %d samples -> %d candles (%d min)",
        len(samples),
        len(candles),
        period_minutes,
    )
    return candles


def heiken_ashi(candles: list[Candle]) -> list[HeikenAshiCandle]:
    """Transform candles to Heiken-Ashi candles, in chronological order."""
    result: list[HeikenAshiCandle] = []
    prev_open = prev_close = 0.0

    for i, c in enumerate(candles):
        ha_close = (c.open + c.high + c.low + c.close) / 4
        ha_open = c.open if i == 0 else (prev_open + prev_close) / 2
        result.append(
            HeikenAshiCandle(
                timestamp=c.timestamp,
                open=ha_open,
                high=max(c.high, ha_open, ha_close),
                low=min(c.low, ha_open, ha_close),
                close=ha_close,
                sample_count=c.sample_count,
                period_minutes=c.period_minutes,
                mean=c.mean,
                is_anomaly=c.is_anomaly,
                anomaly_severity=c.anomaly_severity,
            )
        )
        prev_open, prev_close = ha_open, ha_close

    return result


def candles_to_dataframe(candles: list[Candle]) -> pd.DataFrame:
    """OHLC DataFrame indexed by bucket start (UTC)."""
    columns = ["Open", "High", "Low", "Close", "Samples"]
    if not candles:
        return pd.DataFrame(columns=pd.Index(columns))

    return pd.DataFrame(
        {
            "Open": [c.open for c in candles],
            "High": [c.high for c in candles],
            "Low": [c.low for c in candles],
            "Close": [c.close for c in candles],
            "Samples": [c.sample_count for c in candles],
        },
        index=pd.to_datetime([c.timestamp for c in candles], unit="ms", utc=True),
    )
