"""
Anomaly detection against the local statistical baseline.

A sample is anomalous when its distance from the local baseline exceeds two
local standard deviations.  "Local" follows the statistics policy: the
moving average at that index when moving averaging is on, the rolling σ at
that index in dynamic band mode, otherwise the global mean / σ.

Severity tiers (deviation d = |value - baseline| / σ):
    d <= 2          not an anomaly
    2   < d <= 2.5  minor
    2.5 < d <= 3    moderate
    d > 3           severe
"""

import logging
import math
from dataclasses import dataclass
from typing import Literal, Optional

from src.metrics_lib.analysis.statistics import StatisticalAnalysis
from src.metrics_lib.core.samples import Sample, Timestamp

logger = logging.getLogger("metrics.anomalies")

Severity = Literal["minor", "moderate", "severe"]

ANOMALY_SIGMA = 2.0
MODERATE_SIGMA = 2.5
SEVERE_SIGMA = 3.0


@dataclass(frozen=True)
class Anomaly:
    timestamp: Timestamp
    value: float
    deviations_from_mean: float
    severity: Severity
    index: int = -1


def classify_severity(deviations: float) -> Optional[Severity]:
    """Map a σ-distance to a severity tier, or ``None`` if not anomalous."""
    if not deviations > ANOMALY_SIGMA:
        return None
    if deviations > SEVERE_SIGMA:
        return "severe"
    if deviations > MODERATE_SIGMA:
        return "moderate"
    return "minor"


def deviation_at(value: float, stats: StatisticalAnalysis, index: int) -> float:
    """σ-distance of ``value`` from the local baseline at ``index``.

    A zero (or undefined) local σ means every value in scope sits on the
    baseline, so the distance is reported as 0 rather than dividing by zero.
    """
    sigma = stats.sigma_at(index)
    if not sigma > 0 or not math.isfinite(sigma):
        return 0.0
    return abs(value - stats.baseline_at(index)) / sigma


def detect_anomalies(
    samples: list[Sample],
    stats: Optional[StatisticalAnalysis],
) -> list[Anomaly]:
    """Return the anomalous samples with their severity.

    The input list is not modified.  ``stats`` must have been computed from
    the same sample list (index alignment).
    """
    if not samples or stats is None:
        return []

    anomalies = []
    for index, sample in enumerate(samples):
        deviations = deviation_at(sample.value, stats, index)
        severity = classify_severity(deviations)
        if severity is None:
            continue
        anomalies.append(
            Anomaly(
                timestamp=sample.timestamp,
                value=sample.value,
                deviations_from_mean=deviations,
                severity=severity,
                index=index,
            )
        )

    if anomalies:
        logger.debug(
            "anomalies: %d of %d samples (%d severe)",
            len(anomalies),
            len(samples),
            sum(1 for a in anomalies if a.severity == "severe"),
        )
    return anomalies


def filter_anomalies(
    anomalies: list[Anomaly],
    severity_filter: Literal["all", "severe"] = "all",
) -> list[Anomaly]:
    """Apply the display filter: everything, or severe anomalies only."""
    if severity_filter == "severe":
        return [a for a in anomalies if a.severity == "severe"]
    return list(anomalies)
