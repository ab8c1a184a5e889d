"""
End-to-end analysis of one metric series.

    raw samples ─► validate ─► sort ─► statistics ─► anomalies ─► chart points
                                   └─► OHLC candles ─► Heiken-Ashi
                                   └─► indicator bundles ─► confluence alerts

Every stage is a pure function of its inputs and is recomputed from scratch
on each call.  Empty or fully invalid input produces an empty bundle
(``stats is None``, empty lists), never an exception.

Usage:
    from src.metrics_lib.analysis.pipeline import analyze_metric, bundle_to_dict

    bundle = analyze_metric(rows, unit="%", config={"averagingMode": "moving"})
    payload = bundle_to_dict(bundle)
"""

import logging
import math
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Union

import numpy as np
import pandas as pd

from src.metrics_lib.analysis.anomalies import Anomaly, detect_anomalies, filter_anomalies
from src.metrics_lib.analysis.candles import (
    Candle,
    HeikenAshiCandle,
    aggregate_ohlc,
    heiken_ashi,
)
from src.metrics_lib.analysis.confluence import ConfluenceAlert, ConfluenceCorrelator
from src.metrics_lib.analysis.indicators import (
    IndicatorBundle,
    compute_candle_indicator_bundle,
    compute_indicator_bundle,
)
from src.metrics_lib.analysis.statistics import StatisticalAnalysis, calculate_stats
from src.metrics_lib.analysis.zones import ChartPoint, prepare_chart_data
from src.metrics_lib.core.config import AnalysisConfig, load_config
from src.metrics_lib.core.samples import (
    Sample,
    sample_arrays,
    samples_from_records,
    validate_samples,
)

logger = logging.getLogger("metrics.pipeline")


@dataclass
class MetricsBundle:
    """Everything the renderer needs for one metric chart."""

    unit: str
    config: AnalysisConfig
    samples: list[Sample] = field(default_factory=list)
    stats: Optional[StatisticalAnalysis] = None
    chart_points: list[ChartPoint] = field(default_factory=list)
    anomalies: list[Anomaly] = field(default_factory=list)
    visible_anomalies: list[Anomaly] = field(default_factory=list)
    candles: list[Candle] = field(default_factory=list)
    heiken_ashi: list[HeikenAshiCandle] = field(default_factory=list)
    indicators: Optional[IndicatorBundle] = None
    candle_indicators: Optional[IndicatorBundle] = None
    alerts: list[ConfluenceAlert] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.samples

    @property
    def display_candles(self) -> list[Candle]:
        """Candles for the configured display type (empty for line charts)."""
        if self.config.display_type == "heiken-ashi":
            return list(self.heiken_ashi)
        if self.config.display_type == "candlestick":
            return list(self.candles)
        return []


def _coerce_samples(raw: Iterable[Union[Sample, Mapping[str, Any]]]) -> list[Sample]:
    items = list(raw or [])
    if items and isinstance(items[0], Mapping):
        return samples_from_records(items)
    return items


def analyze_metric(
    samples: Iterable[Union[Sample, Mapping[str, Any]]],
    unit: str = "",
    config: Union[AnalysisConfig, Mapping[str, Any], None] = None,
) -> MetricsBundle:
    """Run the full analysis for one metric.

    Args:
        samples: ``Sample`` records or ``{"timestamp", "value"}`` mappings,
            in any order.
        unit: Metric unit; percentage units get the [0, 100] filter.
        config: ``AnalysisConfig`` or a raw preference bag.

    Returns:
        A ``MetricsBundle``; empty when no sample survives validation.
    """
    cfg = load_config(config)
    valid = validate_samples(_coerce_samples(samples), unit)
    bundle = MetricsBundle(unit=unit, config=cfg)
    if not valid:
        logger.debug("analyze_metric: no valid samples (unit=%r)", unit)
        return bundle

    # Python's sort is stable, so equal timestamps keep arrival order
    valid.sort(key=lambda s: s.epoch_ms)
    bundle.samples = valid

    stats = calculate_stats(
        valid,
        averaging_mode=cfg.averaging_mode,
        window_size=cfg.window_size,
        band_mode=cfg.band_mode,
    )
    bundle.stats = stats
    bundle.anomalies = detect_anomalies(valid, stats)
    bundle.visible_anomalies = filter_anomalies(
        bundle.anomalies, cfg.anomaly_severity_filter
    )
    bundle.chart_points = prepare_chart_data(valid, stats, bundle.visible_anomalies)

    bundle.candles = aggregate_ohlc(
        valid,
        cfg.candlestick_period_minutes,
        stats=stats,
        anomalies=bundle.visible_anomalies,
    )
    bundle.heiken_ashi = heiken_ashi(bundle.candles)

    times, values = sample_arrays(valid)
    bundle.indicators = compute_indicator_bundle(values, times)
    if bundle.candles:
        bundle.candle_indicators = compute_candle_indicator_bundle(bundle.candles)

    target = bundle.candle_indicators if cfg.uses_candles else bundle.indicators
    bundle.alerts = ConfluenceCorrelator(cfg.active_indicators).evaluate(target)

    logger.debug(
        "analyze_metric: %d samples, %d anomalies, %d candles, %d alerts",
        len(valid),
        len(bundle.anomalies),
        len(bundle.candles),
        len(bundle.alerts),
    )
    return bundle


# ---------------------------------------------------------------------------
# JSON conversion
# ---------------------------------------------------------------------------


def _jsonable(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if obj is None or isinstance(obj, (bool, str, int)):
        return obj
    if isinstance(obj, float):
        return obj if math.isfinite(obj) else None
    if isinstance(obj, np.ndarray):
        return [_jsonable(v) for v in obj.tolist()]
    if isinstance(obj, np.generic):
        return _jsonable(obj.item())
    if isinstance(obj, (pd.Timestamp, datetime)):
        return obj.isoformat()
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: _jsonable(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, Mapping):
        return {str(k): _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (set, frozenset)):
        return sorted(_jsonable(v) for v in obj)
    if isinstance(obj, (list, tuple)):
        return [_jsonable(v) for v in obj]
    return str(obj)


def bundle_to_dict(bundle: MetricsBundle) -> dict[str, Any]:
    """JSON-safe dict of a bundle; undefined numbers (NaN, inf) become ``None``."""
    payload = {
        f.name: _jsonable(getattr(bundle, f.name))
        for f in fields(bundle)
        if f.name != "config"
    }
    payload["config"] = _jsonable(bundle.config.model_dump(by_alias=True))
    return payload
