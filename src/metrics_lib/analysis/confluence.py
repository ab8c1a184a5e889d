"""
Indicator confluence alerts.

Looks at the latest index of an indicator bundle, collects the signals each
active indicator is giving, and raises an alert when several indicators
agree on the same condition:

  - overbought / oversold    RSI, Stochastic, Williams %R tiers
  - bullish / bearish        MACD and Stochastic crossovers, MACD strong
                             momentum, ROC beyond 2x its recent mean |ROC|
  - volatility_spike         ATR at 1.5x its trailing-20 average

Severity policy per signal type:
    1 signal, not extreme   discarded
    1 extreme signal        medium
    2 signals               medium
    3 signals               high
    4+ signals              critical

Alerts are returned most severe first.

Usage:
    from src.metrics_lib.analysis.confluence import (
        ConfluenceCorrelator,
        analyze_confluence,
        confluence_summary,
    )

    alerts = analyze_confluence(bundle, {"rsi", "stochastic", "macd"})
    for alert in alerts:
        print(alert.severity, alert.title)
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, Mapping, Optional, Union

import numpy as np
import pandas as pd

from src.metrics_lib.analysis.indicators import IndicatorBundle
from src.metrics_lib.core.config import normalize_indicator_name

logger = logging.getLogger("metrics.confluence")

AlertSeverity = Literal["low", "medium", "high", "critical"]
AlertType = Literal["overbought", "oversold", "bullish", "bearish", "volatility_spike"]

ALERT_TYPES: tuple[AlertType, ...] = (
    "overbought",
    "oversold",
    "bullish",
    "bearish",
    "volatility_spike",
)

SEVERITY_ORDER = {"critical": 4, "high": 3, "medium": 2, "low": 1}


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

RSI_EXTREME_OVERBOUGHT = 80
RSI_OVERBOUGHT = 70
RSI_OVERSOLD = 30
RSI_EXTREME_OVERSOLD = 20

STOCH_EXTREME_OVERBOUGHT = 90
STOCH_OVERBOUGHT = 80
STOCH_OVERSOLD = 20
STOCH_EXTREME_OVERSOLD = 10
STOCH_CROSS_OVERSOLD_ZONE = 30  # bullish cross only counts below this %K
STOCH_CROSS_OVERBOUGHT_ZONE = 70  # bearish cross only counts above this %K

WILLIAMS_EXTREME_OVERBOUGHT = -10
WILLIAMS_OVERBOUGHT = -20
WILLIAMS_OVERSOLD = -80
WILLIAMS_EXTREME_OVERSOLD = -90

MACD_MOMENTUM_RATIO = 0.5  # |histogram| vs |previous MACD line|

ROC_LOOKBACK = 20
ROC_SIGNIFICANCE = 2.0  # multiple of mean |ROC|

ATR_LOOKBACK = 20
ATR_SPIKE_RATIO = 1.5

# Severity counts
CONFLUENCE_MEDIUM = 2
CONFLUENCE_HIGH = 3
CONFLUENCE_CRITICAL = 4


@dataclass
class IndicatorSignal:
    indicator: str
    type: AlertType
    value: float
    threshold: float
    description: str


@dataclass
class ConfluenceAlert:
    severity: AlertSeverity
    type: AlertType
    count: int
    signals: list[IndicatorSignal] = field(default_factory=list)
    title: str = ""
    description: str = ""

    @property
    def indicators(self) -> list[str]:
        return [s.indicator for s in self.signals]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _at(series: Optional[np.ndarray], index: int) -> Optional[float]:
    """Value at ``index``, or ``None`` when missing or undefined (NaN)."""
    if series is None or index < 0 or index >= len(series):
        return None
    value = float(series[index])
    return None if math.isnan(value) else value


def _normalize_active(active: Union[Mapping[str, bool], Iterable[str], None]) -> set[str]:
    if active is None:
        return set()
    if isinstance(active, Mapping):
        active = [name for name, enabled in active.items() if enabled]
    elif isinstance(active, str):
        active = [active]
    return {normalize_indicator_name(name) for name in active}


def is_extreme(signal: IndicatorSignal) -> bool:
    """True when an oscillator reading sits in its extreme tier."""
    v = signal.value
    if signal.indicator == "RSI":
        return v >= RSI_EXTREME_OVERBOUGHT or v <= RSI_EXTREME_OVERSOLD
    if signal.indicator == "Stochastic":
        return v >= STOCH_EXTREME_OVERBOUGHT or v <= STOCH_EXTREME_OVERSOLD
    if signal.indicator == "Williams %R":
        return v >= WILLIAMS_EXTREME_OVERBOUGHT or v <= WILLIAMS_EXTREME_OVERSOLD
    return False


# ---------------------------------------------------------------------------
# Per-indicator signal detection
# ---------------------------------------------------------------------------


def _rsi_signals(bundle: IndicatorBundle, index: int) -> list[IndicatorSignal]:
    rsi = _at(bundle.rsi, index)
    if rsi is None:
        return []

    if rsi >= RSI_EXTREME_OVERBOUGHT:
        kind, threshold, label = "overbought", RSI_EXTREME_OVERBOUGHT, "extreme overbought"
    elif rsi >= RSI_OVERBOUGHT:
        kind, threshold, label = "overbought", RSI_OVERBOUGHT, "overbought"
    elif rsi <= RSI_EXTREME_OVERSOLD:
        kind, threshold, label = "oversold", RSI_EXTREME_OVERSOLD, "extreme oversold"
    elif rsi <= RSI_OVERSOLD:
        kind, threshold, label = "oversold", RSI_OVERSOLD, "oversold"
    else:
        return []

    return [
        IndicatorSignal(
            indicator="RSI",
            type=kind,
            value=rsi,
            threshold=threshold,
            description=f"RSI at {rsi:.1f} ({label})",
        )
    ]


def _stochastic_signals(bundle: IndicatorBundle, index: int) -> list[IndicatorSignal]:
    k = _at(bundle.stochastic.k, index)
    d = _at(bundle.stochastic.d, index)
    if k is None or d is None:
        return []

    signals = []
    high, low = max(k, d), min(k, d)
    tier = None
    if high >= STOCH_EXTREME_OVERBOUGHT:
        tier = ("overbought", high, STOCH_EXTREME_OVERBOUGHT, "extreme overbought")
    elif high >= STOCH_OVERBOUGHT:
        tier = ("overbought", high, STOCH_OVERBOUGHT, "overbought")
    elif low <= STOCH_EXTREME_OVERSOLD:
        tier = ("oversold", low, STOCH_EXTREME_OVERSOLD, "extreme oversold")
    elif low <= STOCH_OVERSOLD:
        tier = ("oversold", low, STOCH_OVERSOLD, "oversold")

    if tier is not None:
        kind, value, threshold, label = tier
        signals.append(
            IndicatorSignal(
                indicator="Stochastic",
                type=kind,
                value=value,
                threshold=threshold,
                description=f"Stochastic at {value:.1f} ({label})",
            )
        )

    prev_k = _at(bundle.stochastic.k, index - 1)
    prev_d = _at(bundle.stochastic.d, index - 1)
    if prev_k is None or prev_d is None:
        return signals

    if prev_k <= prev_d and k > d and k < STOCH_CROSS_OVERSOLD_ZONE:
        signals.append(
            IndicatorSignal(
                indicator="Stochastic",
                type="bullish",
                value=k,
                threshold=STOCH_CROSS_OVERSOLD_ZONE,
                description="Stochastic bullish crossover in oversold zone",
            )
        )
    elif prev_k >= prev_d and k < d and k > STOCH_CROSS_OVERBOUGHT_ZONE:
        signals.append(
            IndicatorSignal(
                indicator="Stochastic",
                type="bearish",
                value=k,
                threshold=STOCH_CROSS_OVERBOUGHT_ZONE,
                description="Stochastic bearish crossover in overbought zone",
            )
        )
    return signals


def _williams_signals(bundle: IndicatorBundle, index: int) -> list[IndicatorSignal]:
    wr = _at(bundle.williams_r, index)
    if wr is None:
        return []

    if wr >= WILLIAMS_EXTREME_OVERBOUGHT:
        kind, threshold, label = "overbought", WILLIAMS_EXTREME_OVERBOUGHT, "extreme overbought"
    elif wr >= WILLIAMS_OVERBOUGHT:
        kind, threshold, label = "overbought", WILLIAMS_OVERBOUGHT, "overbought"
    elif wr <= WILLIAMS_EXTREME_OVERSOLD:
        kind, threshold, label = "oversold", WILLIAMS_EXTREME_OVERSOLD, "extreme oversold"
    elif wr <= WILLIAMS_OVERSOLD:
        kind, threshold, label = "oversold", WILLIAMS_OVERSOLD, "oversold"
    else:
        return []

    return [
        IndicatorSignal(
            indicator="Williams %R",
            type=kind,
            value=wr,
            threshold=threshold,
            description=f"Williams %R at {wr:.1f} ({label})",
        )
    ]


def _macd_signals(bundle: IndicatorBundle, index: int) -> list[IndicatorSignal]:
    line = _at(bundle.macd.macd_line, index)
    signal = _at(bundle.macd.signal_line, index)
    hist = _at(bundle.macd.histogram, index)
    prev_line = _at(bundle.macd.macd_line, index - 1)
    prev_signal = _at(bundle.macd.signal_line, index - 1)
    if None in (line, signal, hist, prev_line, prev_signal):
        return []

    if prev_line <= prev_signal and line > signal:
        kind, text = "bullish", "MACD bullish crossover (momentum shift up)"
    elif prev_line >= prev_signal and line < signal:
        kind, text = "bearish", "MACD bearish crossover (momentum shift down)"
    elif hist > 0 and abs(hist) > abs(prev_line) * MACD_MOMENTUM_RATIO:
        kind, text = "bullish", "MACD strong bullish momentum"
    elif hist < 0 and abs(hist) > abs(prev_line) * MACD_MOMENTUM_RATIO:
        kind, text = "bearish", "MACD strong bearish momentum"
    else:
        return []

    return [
        IndicatorSignal(
            indicator="MACD", type=kind, value=hist, threshold=0.0, description=text
        )
    ]


def _roc_signals(bundle: IndicatorBundle, index: int) -> list[IndicatorSignal]:
    roc = _at(bundle.roc, index)
    if roc is None:
        return []

    recent = np.asarray(bundle.roc[max(0, index - ROC_LOOKBACK) : index + 1], dtype=float)
    recent = recent[~np.isnan(recent)]
    if len(recent) == 0:
        return []

    threshold = float(np.mean(np.abs(recent))) * ROC_SIGNIFICANCE
    if not abs(roc) > threshold:
        return []

    direction = "strong upward" if roc > 0 else "strong downward"
    return [
        IndicatorSignal(
            indicator="ROC",
            type="bullish" if roc > 0 else "bearish",
            value=roc,
            threshold=threshold,
            description=f"ROC at {roc:.1f}% ({direction} momentum)",
        )
    ]


def _atr_signals(bundle: IndicatorBundle, index: int) -> list[IndicatorSignal]:
    current = _at(bundle.atr, index)
    if current is None or index < ATR_LOOKBACK:
        return []

    recent = np.asarray(bundle.atr[index - ATR_LOOKBACK : index + 1], dtype=float)
    recent = recent[~np.isnan(recent)]
    if len(recent) == 0:
        return []

    average = float(np.mean(recent))
    threshold = average * ATR_SPIKE_RATIO
    if not current >= threshold or average <= 0:
        return []

    above = (current / average - 1) * 100
    return [
        IndicatorSignal(
            indicator="ATR",
            type="volatility_spike",
            value=current,
            threshold=threshold,
            description=f"ATR at {current:.1f} (volatility spike, {above:.0f}% above average)",
        )
    ]


_DETECTORS = {
    "rsi": _rsi_signals,
    "stochastic": _stochastic_signals,
    "williams_r": _williams_signals,
    "macd": _macd_signals,
    "roc": _roc_signals,
    "atr": _atr_signals,
}


def detect_indicator_signals(
    bundle: IndicatorBundle,
    index: int,
    active: Union[Mapping[str, bool], Iterable[str], None],
) -> list[IndicatorSignal]:
    """Signals the active indicators give at ``index``.

    Indicators that are inactive, missing from the bundle (ATR on a raw
    series) or undefined at ``index`` contribute nothing.
    """
    if bundle is None or index < 0 or index >= len(bundle):
        return []

    names = _normalize_active(active)
    signals: list[IndicatorSignal] = []
    for name, detector in _DETECTORS.items():
        if name in names:
            signals.extend(detector(bundle, index))
    return signals


# ---------------------------------------------------------------------------
# Grouping and severity
# ---------------------------------------------------------------------------


_TITLES = {
    "overbought": ("Overbought Condition", "showing overbought"),
    "oversold": ("Oversold Condition", "showing oversold"),
    "bullish": ("Bullish Signal", "showing bullish momentum"),
    "bearish": ("Bearish Signal", "showing bearish momentum"),
}


def _severity(count: int, extreme: bool) -> Optional[AlertSeverity]:
    if count >= CONFLUENCE_CRITICAL:
        return "critical"
    if count == CONFLUENCE_HIGH:
        return "high"
    if count == CONFLUENCE_MEDIUM:
        return "medium"
    if count == 1 and extreme:
        return "medium"
    return None


def _describe(kind: AlertType, signals: list[IndicatorSignal]) -> tuple[str, str]:
    count = len(signals)
    if kind == "volatility_spike":
        return "Volatility Spike Detected", signals[0].description

    title, verb = _TITLES[kind]
    if count > 1:
        names = ", ".join(s.indicator for s in signals)
        return f"Confluence Alert: {title}", f"{count} indicators {verb}: {names}"
    return title, signals[0].description


def build_alerts(signals: list[IndicatorSignal]) -> list[ConfluenceAlert]:
    """Group signals by type and turn each group into an alert.

    Returns alerts sorted most severe first; single non-extreme signals are
    dropped.
    """
    grouped: dict[str, list[IndicatorSignal]] = {kind: [] for kind in ALERT_TYPES}
    for signal in signals:
        grouped[signal.type].append(signal)

    alerts = []
    for kind in ALERT_TYPES:
        group = grouped[kind]
        if not group:
            continue
        severity = _severity(len(group), any(is_extreme(s) for s in group))
        if severity is None:
            continue
        title, description = _describe(kind, group)
        alerts.append(
            ConfluenceAlert(
                severity=severity,
                type=kind,
                count=len(group),
                signals=group,
                title=title,
                description=description,
            )
        )

    alerts.sort(key=lambda a: SEVERITY_ORDER[a.severity], reverse=True)
    return alerts


class ConfluenceCorrelator:
    """Evaluates confluence on the latest index of an indicator bundle.

    Usage:
        correlator = ConfluenceCorrelator()
        alerts = correlator.evaluate(bundle, {"rsi", "stochastic"})
    """

    def __init__(self, active_indicators: Union[Mapping[str, bool], Iterable[str], None] = None):
        self.active_indicators = _normalize_active(active_indicators)

    def evaluate(
        self,
        bundle: Optional[IndicatorBundle],
        active: Union[Mapping[str, bool], Iterable[str], None] = None,
    ) -> list[ConfluenceAlert]:
        """Run detection and grouping.

        Args:
            bundle: Raw or candle indicator bundle.
            active: Indicator names to consult; defaults to the set given
                at construction.

        Returns:
            Alerts sorted most severe first; empty when the bundle is
            missing or empty.
        """
        if bundle is None or len(bundle) == 0:
            return []

        names = self.active_indicators if active is None else _normalize_active(active)
        latest = len(bundle) - 1
        signals = detect_indicator_signals(bundle, latest, names)
        if not signals:
            return []

        alerts = build_alerts(signals)
        if alerts:
            logger.debug(
                "confluence: %d signals -> %s",
                len(signals),
                ", ".join(f"{a.type}:{a.severity}" for a in alerts),
            )
        return alerts


def analyze_confluence(
    bundle: Optional[IndicatorBundle],
    active: Union[Mapping[str, bool], Iterable[str], None],
) -> list[ConfluenceAlert]:
    """Convenience wrapper around ``ConfluenceCorrelator().evaluate``."""
    return ConfluenceCorrelator().evaluate(bundle, active if active is not None else ())


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def confluence_summary(alerts: list[ConfluenceAlert]) -> str:
    """One-line summary of the alert list."""
    if not alerts:
        return "No confluence alerts"
    return "; ".join(f"{a.severity.upper()}: {a.title}" for a in alerts)


def alerts_to_dataframe(alerts: list[ConfluenceAlert]) -> pd.DataFrame:
    """Display table with one row per alert."""
    columns = ["Severity", "Type", "Count", "Indicators", "Title", "Description"]
    emoji_map = {"critical": "🔴", "high": "🟠", "medium": "🟡", "low": "⚪"}

    rows: list[dict[str, Any]] = [
        {
            "Severity": f"{a.severity.upper()} {emoji_map.get(a.severity, '')}",
            "Type": a.type,
            "Count": a.count,
            "Indicators": ", ".join(a.indicators),
            "Title": a.title,
            "Description": a.description,
        }
        for a in alerts
    ]

    if not rows:
        return pd.DataFrame(columns=pd.Index(columns))
    return pd.DataFrame(rows, columns=columns)
