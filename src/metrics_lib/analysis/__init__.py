"""
metrics_lib.analysis — statistics, anomaly detection, zone classification,
technical indicators, OHLC candles, confluence alerts and the end-to-end
pipeline.
"""

from src.metrics_lib.analysis.anomalies import (
    Anomaly,
    classify_severity,
    detect_anomalies,
    filter_anomalies,
)
from src.metrics_lib.analysis.candles import (
    Candle,
    HeikenAshiCandle,
    aggregate_ohlc,
    candles_to_dataframe,
    heiken_ashi,
)
from src.metrics_lib.analysis.confluence import (
    ConfluenceAlert,
    ConfluenceCorrelator,
    IndicatorSignal,
    alerts_to_dataframe,
    analyze_confluence,
    build_alerts,
    confluence_summary,
    detect_indicator_signals,
)
from src.metrics_lib.analysis.indicators import (
    BollingerBands,
    IndicatorBundle,
    MACDResult,
    StochasticResult,
    atr,
    bollinger_bands,
    compute_candle_indicator_bundle,
    compute_indicator_bundle,
    ema,
    macd,
    roc,
    rsi,
    series_points,
    sma,
    stochastic,
    williams_r,
)
from src.metrics_lib.analysis.pipeline import MetricsBundle, analyze_metric, bundle_to_dict
from src.metrics_lib.analysis.statistics import (
    StatisticalAnalysis,
    calculate_moving_average,
    calculate_rolling_std,
    calculate_stats,
    format_rate_of_change,
)
from src.metrics_lib.analysis.zones import ChartPoint, Zone, classify_zone, prepare_chart_data

__all__ = [
    # anomalies
    "Anomaly",
    "classify_severity",
    "detect_anomalies",
    "filter_anomalies",
    # candles
    "Candle",
    "HeikenAshiCandle",
    "aggregate_ohlc",
    "candles_to_dataframe",
    "heiken_ashi",
    # confluence
    "ConfluenceAlert",
    "ConfluenceCorrelator",
    "IndicatorSignal",
    "alerts_to_dataframe",
    "analyze_confluence",
    "build_alerts",
    "confluence_summary",
    "detect_indicator_signals",
    # indicators
    "BollingerBands",
    "IndicatorBundle",
    "MACDResult",
    "StochasticResult",
    "atr",
    "bollinger_bands",
    "compute_candle_indicator_bundle",
    "compute_indicator_bundle",
    "ema",
    "macd",
    "roc",
    "rsi",
    "series_points",
    "sma",
    "stochastic",
    "williams_r",
    # pipeline
    "MetricsBundle",
    "analyze_metric",
    "bundle_to_dict",
    # statistics
    "StatisticalAnalysis",
    "calculate_moving_average",
    "calculate_rolling_std",
    "calculate_stats",
    "format_rate_of_change",
    # zones
    "ChartPoint",
    "Zone",
    "classify_zone",
    "prepare_chart_data",
]
