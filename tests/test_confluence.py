"""
Unit tests for indicator confluence alerts.

Tests cover:
  - detect_indicator_signals(): per-indicator tiers, crossovers, ROC / ATR
    spikes, inactive and undefined indicators
  - build_alerts(): grouping, severity policy, wording, ordering
  - ConfluenceCorrelator.evaluate() / analyze_confluence(): latest index
  - confluence_summary() / alerts_to_dataframe(): formatting
"""

import numpy as np
import pandas as pd
import pytest

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
    compute_indicator_bundle,
)

N = 30
LAST = N - 1


def _nan() -> np.ndarray:
    return np.full(N, np.nan)


def _bundle(with_atr: bool = False) -> IndicatorBundle:
    """All-undefined bundle; tests fill in the positions they need."""
    return IndicatorBundle(
        timestamps=np.arange(N, dtype=np.int64) * 60_000,
        sma7=_nan(),
        sma20=_nan(),
        sma25=_nan(),
        sma99=_nan(),
        ema12=_nan(),
        ema26=_nan(),
        rsi=_nan(),
        macd=MACDResult(macd_line=_nan(), signal_line=_nan(), histogram=_nan()),
        stochastic=StochasticResult(k=_nan(), d=_nan()),
        williams_r=_nan(),
        roc=_nan(),
        bollinger=BollingerBands(upper=_nan(), middle=_nan(), lower=_nan()),
        atr=_nan() if with_atr else None,
    )


ALL = {"rsi", "stochastic", "williams_r", "macd", "roc", "atr"}


def _signal(indicator: str, kind: str, value: float) -> IndicatorSignal:
    return IndicatorSignal(
        indicator=indicator, type=kind, value=value, threshold=0.0, description=indicator
    )


# ═══════════════════════════════════════════════════════════════════════════
# Signal detection
# ═══════════════════════════════════════════════════════════════════════════


class TestRSISignals:
    @pytest.mark.parametrize(
        "value,kind,threshold",
        [(85.0, "overbought", 80), (72.0, "overbought", 70), (15.0, "oversold", 20), (25.0, "oversold", 30)],
    )
    def test_tiers(self, value, kind, threshold):
        b = _bundle()
        b.rsi[LAST] = value
        (signal,) = detect_indicator_signals(b, LAST, {"rsi"})
        assert signal.type == kind
        assert signal.threshold == threshold

    def test_neutral_gives_nothing(self):
        b = _bundle()
        b.rsi[LAST] = 50.0
        assert detect_indicator_signals(b, LAST, {"rsi"}) == []

    def test_description(self):
        b = _bundle()
        b.rsi[LAST] = 85.04
        (signal,) = detect_indicator_signals(b, LAST, {"rsi"})
        assert signal.description == "RSI at 85.0 (extreme overbought)"


class TestStochasticSignals:
    def test_uses_max_of_k_d_for_overbought(self):
        b = _bundle()
        b.stochastic.k[LAST] = 75.0
        b.stochastic.d[LAST] = 92.0
        (signal,) = detect_indicator_signals(b, LAST, {"stochastic"})
        assert signal.type == "overbought"
        assert signal.value == 92.0
        assert signal.threshold == 90

    def test_bullish_cross_in_oversold_zone(self):
        b = _bundle()
        b.stochastic.k[LAST - 1], b.stochastic.d[LAST - 1] = 20.0, 22.0
        b.stochastic.k[LAST], b.stochastic.d[LAST] = 25.0, 23.0
        signals = detect_indicator_signals(b, LAST, {"stochastic"})
        assert [s.type for s in signals] == ["bullish"]

    def test_cross_outside_zone_ignored(self):
        b = _bundle()
        b.stochastic.k[LAST - 1], b.stochastic.d[LAST - 1] = 50.0, 52.0
        b.stochastic.k[LAST], b.stochastic.d[LAST] = 55.0, 53.0
        assert detect_indicator_signals(b, LAST, {"stochastic"}) == []

    def test_bearish_cross_in_overbought_zone(self):
        b = _bundle()
        b.stochastic.k[LAST - 1], b.stochastic.d[LAST - 1] = 78.0, 76.0
        b.stochastic.k[LAST], b.stochastic.d[LAST] = 74.0, 76.0
        signals = detect_indicator_signals(b, LAST, {"stochastic"})
        assert [s.type for s in signals] == ["bearish"]


class TestWilliamsSignals:
    @pytest.mark.parametrize(
        "value,kind",
        [(-5.0, "overbought"), (-15.0, "overbought"), (-95.0, "oversold"), (-85.0, "oversold")],
    )
    def test_tiers(self, value, kind):
        b = _bundle()
        b.williams_r[LAST] = value
        (signal,) = detect_indicator_signals(b, LAST, {"williams_r"})
        assert signal.type == kind
        assert signal.indicator == "Williams %R"


class TestMACDSignals:
    def _set(self, b, prev_line, prev_sig, line, sig):
        b.macd.macd_line[LAST - 1], b.macd.signal_line[LAST - 1] = prev_line, prev_sig
        b.macd.macd_line[LAST], b.macd.signal_line[LAST] = line, sig
        b.macd.histogram[LAST - 1] = prev_line - prev_sig
        b.macd.histogram[LAST] = line - sig

    def test_bullish_crossover(self):
        b = _bundle()
        self._set(b, -0.1, 0.0, 0.1, 0.0)
        (signal,) = detect_indicator_signals(b, LAST, {"macd"})
        assert signal.type == "bullish"
        assert "crossover" in signal.description

    def test_bearish_crossover(self):
        b = _bundle()
        self._set(b, 0.1, 0.0, -0.1, 0.0)
        (signal,) = detect_indicator_signals(b, LAST, {"macd"})
        assert signal.type == "bearish"

    def test_strong_momentum(self):
        b = _bundle()
        self._set(b, 1.0, 0.5, 2.0, 1.0)  # hist 1.0 > 0.5 × |1.0|
        (signal,) = detect_indicator_signals(b, LAST, {"macd"})
        assert signal.type == "bullish"
        assert signal.description == "MACD strong bullish momentum"

    def test_weak_momentum_ignored(self):
        b = _bundle()
        self._set(b, 10.0, 9.0, 10.0, 9.5)  # hist 0.5 < 5.0
        assert detect_indicator_signals(b, LAST, {"macd"}) == []


class TestROCAndATRSignals:
    def test_roc_spike(self):
        b = _bundle()
        b.roc[:] = 1.0
        b.roc[LAST] = 10.0
        (signal,) = detect_indicator_signals(b, LAST, {"roc"})
        assert signal.type == "bullish"
        assert signal.value == 10.0

    def test_roc_steady_is_quiet(self):
        b = _bundle()
        b.roc[:] = 1.0
        assert detect_indicator_signals(b, LAST, {"roc"}) == []

    def test_atr_spike(self):
        b = _bundle(with_atr=True)
        b.atr[:] = 1.0
        b.atr[LAST] = 3.0
        (signal,) = detect_indicator_signals(b, LAST, {"atr"})
        assert signal.type == "volatility_spike"

    def test_atr_needs_lookback(self):
        b = _bundle(with_atr=True)
        b.atr[:] = 1.0
        b.atr[10] = 9.0
        assert detect_indicator_signals(b, 10, {"atr"}) == []

    def test_atr_absent_on_raw_bundle(self):
        assert detect_indicator_signals(_bundle(), LAST, ALL) == []


class TestDetectionGuards:
    def test_inactive_indicators_ignored(self):
        b = _bundle()
        b.rsi[LAST] = 10.0
        assert detect_indicator_signals(b, LAST, {"stochastic"}) == []

    def test_active_mapping_and_aliases(self):
        b = _bundle()
        b.williams_r[LAST] = -95.0
        signals = detect_indicator_signals(b, LAST, {"williamsR": True, "rsi": False})
        assert len(signals) == 1

    def test_out_of_range_index(self):
        assert detect_indicator_signals(_bundle(), N, ALL) == []
        assert detect_indicator_signals(_bundle(), -1, ALL) == []


# ═══════════════════════════════════════════════════════════════════════════
# Grouping and severity
# ═══════════════════════════════════════════════════════════════════════════


class TestBuildAlerts:
    def test_two_ordinary_oversold_is_medium(self):
        b = _bundle()
        b.rsi[LAST] = 25.0
        b.stochastic.k[LAST] = 15.0
        b.stochastic.d[LAST] = 18.0
        alerts = analyze_confluence(b, {"rsi", "stochastic"})
        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.type == "oversold"
        assert alert.severity == "medium"
        assert alert.count == 2
        assert alert.title == "Confluence Alert: Oversold Condition"
        assert alert.description == "2 indicators showing oversold: RSI, Stochastic"

    def test_four_bullish_is_critical(self):
        signals = [
            _signal("MACD", "bullish", 0.2),
            _signal("ROC", "bullish", 8.0),
            _signal("Stochastic", "bullish", 25.0),
            _signal("RSI", "bullish", 50.0),
        ]
        (alert,) = build_alerts(signals)
        assert alert.severity == "critical"
        assert alert.count == 4

    def test_three_is_high(self):
        signals = [_signal("RSI", "overbought", 72.0)] * 3
        assert build_alerts(signals)[0].severity == "high"

    def test_single_ordinary_discarded(self):
        assert build_alerts([_signal("RSI", "oversold", 25.0)]) == []

    def test_single_extreme_is_medium(self):
        (alert,) = build_alerts([_signal("RSI", "oversold", 15.0)])
        assert alert.severity == "medium"
        assert alert.title == "Oversold Condition"
        assert alert.description == "RSI"

    def test_single_volatility_spike_discarded(self):
        assert build_alerts([_signal("ATR", "volatility_spike", 3.0)]) == []

    def test_volatility_title(self):
        signals = [_signal("ATR", "volatility_spike", 3.0)] * 2
        assert build_alerts(signals)[0].title == "Volatility Spike Detected"

    def test_sorted_by_severity(self):
        signals = (
            [_signal("RSI", "oversold", 25.0)] * 2
            + [_signal("MACD", "bullish", 1.0)] * 4
            + [_signal("RSI", "overbought", 72.0)] * 3
        )
        severities = [a.severity for a in build_alerts(signals)]
        assert severities == ["critical", "high", "medium"]


# ═══════════════════════════════════════════════════════════════════════════
# Correlator
# ═══════════════════════════════════════════════════════════════════════════


class TestConfluenceCorrelator:
    def test_evaluates_latest_index_only(self):
        b = _bundle()
        b.rsi[LAST - 1] = 5.0
        b.stochastic.k[LAST - 1] = 5.0
        b.stochastic.d[LAST - 1] = 5.0
        assert ConfluenceCorrelator(ALL).evaluate(b) == []

    def test_active_override(self):
        b = _bundle()
        b.rsi[LAST] = 10.0
        correlator = ConfluenceCorrelator({"macd"})
        assert correlator.evaluate(b) == []
        assert len(correlator.evaluate(b, {"rsi"})) == 1

    def test_empty_and_none(self):
        assert ConfluenceCorrelator(ALL).evaluate(None) == []
        empty = compute_indicator_bundle([], [])
        assert analyze_confluence(empty, ALL) == []

    def test_real_bundle_runs(self):
        rng = np.random.default_rng(5)
        values = 50 + np.cumsum(rng.normal(0, 1, 200))
        bundle = compute_indicator_bundle(values, np.arange(200) * 60_000)
        alerts = analyze_confluence(bundle, ALL)
        assert all(isinstance(a, ConfluenceAlert) for a in alerts)


class TestFormatting:
    def test_summary(self):
        assert confluence_summary([]) == "No confluence alerts"
        (alert,) = build_alerts([_signal("RSI", "oversold", 15.0)])
        assert confluence_summary([alert]) == "MEDIUM: Oversold Condition"

    def test_dataframe(self):
        alerts = build_alerts([_signal("RSI", "oversold", 25.0), _signal("Stochastic", "oversold", 15.0)])
        df = alerts_to_dataframe(alerts)
        assert isinstance(df, pd.DataFrame)
        assert len(df) == 1
        assert df.iloc[0]["Indicators"] == "RSI, Stochastic"
        assert df.iloc[0]["Count"] == 2

    def test_empty_dataframe(self):
        df = alerts_to_dataframe([])
        assert df.empty
        assert "Severity" in df.columns
