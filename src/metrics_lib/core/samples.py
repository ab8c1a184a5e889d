"""
Raw metric samples and the validation boundary.

Every analysis module consumes a list of ``Sample`` records.  Samples arrive
from the data-fetch layer in whatever shape it has (dict rows, DataFrames,
epoch millis or ISO-8601 strings), so this module owns the conversion to a
single representation and the filtering of values no later stage can use.

Validation rules:
  - Non-finite values (NaN, ±inf) are dropped for every unit
  - Percentage units (``%``, ``percent``, ``percentage``) additionally drop
    anything outside [0, 100]
  - Timestamps that cannot be parsed are dropped
  - Everything else passes through unchanged, in the original order

Usage:
    from src.metrics_lib.core.samples import samples_from_records, validate_samples

    samples = samples_from_records(rows)
    clean = validate_samples(samples, unit="%")
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Union

import numpy as np
import pandas as pd

logger = logging.getLogger("metrics.samples")

Timestamp = Union[int, float, str, datetime, pd.Timestamp]

PERCENT_UNITS = frozenset({"%", "percent", "percentage"})

PERCENT_MIN = 0.0
PERCENT_MAX = 100.0

MS_PER_HOUR = 60 * 60 * 1000


@dataclass(frozen=True)
class Sample:
    """A single ``{timestamp, value}`` observation of a metric."""

    timestamp: Timestamp
    value: float

    @property
    def epoch_ms(self) -> int:
        return to_epoch_ms(self.timestamp)


def to_epoch_ms(ts: Timestamp) -> int:
    """Convert a timestamp to integer epoch milliseconds.

    Numbers are taken as epoch millis already.  Strings, ``datetime`` and
    ``pandas.Timestamp`` values are parsed by pandas; naive values are UTC.

    Raises:
        ValueError: if the value cannot be interpreted as an instant.
    """
    if isinstance(ts, bool):
        raise ValueError(f"not a timestamp: {ts!r}")
    if isinstance(ts, (int, np.integer)):
        return int(ts)
    if isinstance(ts, (float, np.floating)):
        if not math.isfinite(ts):
            raise ValueError(f"not a timestamp: {ts!r}")
        return int(ts)

    try:
        stamp = pd.Timestamp(ts)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"not a timestamp: {ts!r}") from exc
    if stamp is pd.NaT:
        raise ValueError(f"not a timestamp: {ts!r}")
    if stamp.tzinfo is None:
        stamp = stamp.tz_localize("UTC")
    return int(stamp.value // 1_000_000)


def is_percentage_unit(unit: str | None) -> bool:
    return (unit or "").strip().lower() in PERCENT_UNITS


def _is_valid_timestamp(ts: Timestamp) -> bool:
    try:
        to_epoch_ms(ts)
    except ValueError:
        return False
    return True


def validate_samples(samples: Iterable[Sample], unit: str | None = None) -> list[Sample]:
    """Filter a raw sample list down to values the analysis can use.

    Never raises; an empty input yields an empty output.  The returned list
    is freshly allocated and keeps the input order.
    """
    percentage = is_percentage_unit(unit)
    valid: list[Sample] = []
    dropped_values = 0
    dropped_timestamps = 0

    for sample in samples or []:
        try:
            value = float(sample.value)
        except (TypeError, ValueError):
            dropped_values += 1
            continue

        if not math.isfinite(value):
            dropped_values += 1
            continue
        if percentage and (value < PERCENT_MIN or value > PERCENT_MAX):
            dropped_values += 1
            continue
        if not _is_valid_timestamp(sample.timestamp):
            dropped_timestamps += 1
            continue

        valid.append(Sample(timestamp=sample.timestamp, value=value))

    if dropped_values or dropped_timestamps:
        logger.warning(
            "Dropped %d invalid values and %d unparseable timestamps (unit=%r)",
            dropped_values,
            dropped_timestamps,
            unit,
        )

    return valid


# ---------------------------------------------------------------------------
# Builders for the shapes the data layer hands us
# ---------------------------------------------------------------------------


def samples_from_records(records: Iterable[Mapping[str, Any]]) -> list[Sample]:
    """Build samples from ``{"timestamp": ..., "value": ...}`` mappings.

    Rows missing either key are skipped.  Values are not validated here;
    run the result through ``validate_samples``.
    """
    samples = []
    for row in records or []:
        if "timestamp" not in row or "value" not in row:
            continue
        value = row["value"]
        try:
            value = float(value)
        except (TypeError, ValueError):
            value = float("nan")
        samples.append(Sample(timestamp=row["timestamp"], value=value))
    return samples


def samples_from_dataframe(
    df: pd.DataFrame,
    timestamp_col: str | None = None,
    value_col: str = "value",
) -> list[Sample]:
    """Build samples from a DataFrame.

    When ``timestamp_col`` is ``None`` the index is used as the timestamp.
    """
    if df is None or df.empty or value_col not in df.columns:
        return []

    stamps = df.index if timestamp_col is None else df[timestamp_col]
    values = pd.to_numeric(df[value_col], errors="coerce")
    return [
        Sample(timestamp=ts, value=float(v)) for ts, v in zip(stamps, values)
    ]


def sample_arrays(samples: list[Sample]) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(epoch_ms, values)`` arrays for an already-validated list."""
    times = np.array([s.epoch_ms for s in samples], dtype=np.int64)
    values = np.array([s.value for s in samples], dtype=float)
    return times, values
