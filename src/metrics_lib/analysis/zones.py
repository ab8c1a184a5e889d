"""
Chart point preparation: deviation-zone classification.

Each sample is placed in one of four mutually exclusive zones by its
distance from the local baseline:

    GREEN   within ±1σ
    YELLOW  between ±1σ and ±2σ
    ORANGE  between ±2σ and ±3σ
    RED     beyond ±3σ

The renderer draws one coloured line per zone from the ``value_<zone>``
slots, so every point fills exactly one slot.  When the zone changes
between consecutive points a duplicate *transition point* is inserted
before the new point with the value in both the old and the new slot,
otherwise the coloured segments would leave a gap.  Transition points are
never marked as anomalies.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from src.metrics_lib.analysis.anomalies import Anomaly, Severity
from src.metrics_lib.analysis.statistics import StatisticalAnalysis
from src.metrics_lib.core.samples import Sample, Timestamp, to_epoch_ms

logger = logging.getLogger("metrics.zones")


class Zone(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    ORANGE = "orange"
    RED = "red"

    @property
    def color(self) -> str:
        return ZONE_COLORS[self]


ZONE_COLORS = {
    Zone.GREEN: "#10b981",
    Zone.YELLOW: "#eab308",
    Zone.ORANGE: "#f97316",
    Zone.RED: "#ef4444",
}


@dataclass(frozen=True)
class ChartPoint:
    timestamp: Timestamp
    value: float
    mean: float
    band1_upper: float
    band1_lower: float
    band2_upper: float
    band2_lower: float
    band3_upper: float
    band3_lower: float
    zone: Zone
    value_green: Optional[float] = None
    value_yellow: Optional[float] = None
    value_orange: Optional[float] = None
    value_red: Optional[float] = None
    is_anomaly: bool = False
    anomaly_severity: Optional[Severity] = None
    is_transition: bool = False

    @property
    def zone_color(self) -> str:
        return self.zone.color


def classify_zone(value: float, bands: dict[str, float]) -> Zone:
    """Zone for ``value`` given the band dict from ``bands_at``."""
    if value > bands["band3_upper"] or value < bands["band3_lower"]:
        return Zone.RED
    if value > bands["band2_upper"] or value < bands["band2_lower"]:
        return Zone.ORANGE
    if value > bands["band1_upper"] or value < bands["band1_lower"]:
        return Zone.YELLOW
    return Zone.GREEN


def _zone_slot(zone: Zone) -> str:
    return f"value_{zone.value}"


def _anomaly_lookup(anomalies: Optional[list[Anomaly]]) -> dict:
    lookup: dict = {}
    for anomaly in anomalies or []:
        if anomaly.index >= 0:
            lookup[("idx", anomaly.index)] = anomaly
        lookup.setdefault(("ts", to_epoch_ms(anomaly.timestamp)), anomaly)
    return lookup


def prepare_chart_data(
    samples: list[Sample],
    stats: Optional[StatisticalAnalysis],
    anomalies: Optional[list[Anomaly]] = None,
) -> list[ChartPoint]:
    """Annotate samples with bands, zone slots and anomaly flags.

    Returns an empty list when there are no samples or no statistics.
    """
    if not samples or stats is None:
        return []

    lookup = _anomaly_lookup(anomalies)
    points: list[ChartPoint] = []

    for index, sample in enumerate(samples):
        bands = stats.bands_at(index)
        zone = classify_zone(sample.value, bands)
        anomaly = lookup.get(("idx", index)) or lookup.get(("ts", sample.epoch_ms))

        points.append(
            ChartPoint(
                timestamp=sample.timestamp,
                value=sample.value,
                mean=stats.baseline_at(index),
                zone=zone,
                is_anomaly=anomaly is not None,
                anomaly_severity=anomaly.severity if anomaly else None,
                **bands,
                **{_zone_slot(zone): sample.value},
            )
        )

    result: list[ChartPoint] = []
    for i, current in enumerate(points):
        if i > 0 and points[i - 1].zone != current.zone:
            result.append(
                replace(
                    current,
                    is_anomaly=False,
                    anomaly_severity=None,
                    is_transition=True,
                    **{_zone_slot(points[i - 1].zone): current.value},
                )
            )
        result.append(current)

    logger.debug(
        "chart points: %d samples -> %d points", len(samples), len(result)
    )
    return result
