"""
metrics_lib — statistical and technical analysis core for infrastructure
metric charts.

Turns a raw ``{timestamp, value}`` series into everything a chart renderer
needs: validated samples, descriptive statistics and deviation bands, zone
annotated chart points, anomalies, OHLC / Heiken-Ashi candles, technical
indicators, confluence alerts, and the zoom viewport state.

Sub-packages:
    core      samples, configuration, logging
    analysis  statistics, anomalies, zones, indicators, candles, confluence,
              pipeline
    viewport  zoom state machine, eased transitions

Usage:
    from src.metrics_lib import analyze_metric, bundle_to_dict

    bundle = analyze_metric(rows, unit="%", config={"displayType": "candlestick"})
"""

from src.metrics_lib.analysis.pipeline import MetricsBundle, analyze_metric, bundle_to_dict
from src.metrics_lib.core.config import AnalysisConfig, load_config
from src.metrics_lib.core.samples import Sample, validate_samples
from src.metrics_lib.viewport.animation import ViewportManager
from src.metrics_lib.viewport.zoom import ZoomDomain, ZoomState

__all__ = [
    "AnalysisConfig",
    "MetricsBundle",
    "Sample",
    "ViewportManager",
    "ZoomDomain",
    "ZoomState",
    "analyze_metric",
    "bundle_to_dict",
    "load_config",
    "validate_samples",
]
