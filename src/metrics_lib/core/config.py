"""
Configuration bag for the metrics analytics core.

The charting front-end persists user display preferences (averaging mode,
band mode, candle period, chosen indicators, lookback window) and hands the
deserialized bag to the pipeline.  ``AnalysisConfig`` validates it; keys may
be snake_case or the camelCase the preference store writes.

Defaults can be tuned per deployment through environment variables:

    METRICS_WINDOW_SIZE             moving-average window (default 20)
    METRICS_CANDLE_PERIOD_MINUTES   candle bucket width (default 5)
    METRICS_LOOKBACK_HOURS          initial lookback preset (default 24)
    METRICS_ANIMATION_MS            zoom transition duration (default 200)

Usage:
    from src.metrics_lib.core.config import load_config

    config = load_config({"averagingMode": "moving", "windowSize": 10})
"""

import logging
import os
from typing import Any, Iterable, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger("metrics.config")

# Lookback presets offered by the window selector (hours)
LOOKBACK_PRESETS_HOURS: tuple[int, ...] = (1, 4, 12, 24, 48, 168)

DEFAULT_WINDOW_SIZE = int(os.getenv("METRICS_WINDOW_SIZE", "20"))
DEFAULT_CANDLE_PERIOD_MINUTES = int(os.getenv("METRICS_CANDLE_PERIOD_MINUTES", "5"))
DEFAULT_LOOKBACK_HOURS = int(os.getenv("METRICS_LOOKBACK_HOURS", "24"))
DEFAULT_ANIMATION_MS = float(os.getenv("METRICS_ANIMATION_MS", "200"))

# Indicator names the confluence correlator and renderer understand
INDICATOR_NAMES = frozenset(
    {
        "sma7",
        "sma20",
        "sma25",
        "sma99",
        "ema12",
        "ema26",
        "bollinger",
        "rsi",
        "macd",
        "stochastic",
        "williams_r",
        "roc",
        "atr",
    }
)

# Names the front-end has historically used for the same indicators
INDICATOR_ALIASES = {
    "bb": "bollinger",
    "williamsr": "williams_r",
    "williams%r": "williams_r",
}

DEFAULT_ACTIVE_INDICATORS = frozenset({"sma20", "bollinger"})


def normalize_indicator_name(name: str) -> str:
    key = name.strip().lower()
    return INDICATOR_ALIASES.get(key, key)


class AnalysisConfig(BaseModel):
    """Validated configuration for one ``analyze_metric`` call."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    averaging_mode: Literal["simple", "moving"] = "simple"
    window_size: int = Field(DEFAULT_WINDOW_SIZE, ge=1)
    band_mode: Literal["fixed", "dynamic"] = "fixed"
    candlestick_period_minutes: int = Field(DEFAULT_CANDLE_PERIOD_MINUTES, ge=1)
    active_indicators: frozenset[str] = DEFAULT_ACTIVE_INDICATORS
    selected_lookback_hours: int = DEFAULT_LOOKBACK_HOURS
    display_type: Literal["line", "candlestick", "heiken-ashi"] = "line"
    anomaly_severity_filter: Literal["all", "severe"] = "all"

    @field_validator("active_indicators", mode="before")
    @classmethod
    def _normalize_indicators(cls, value: Any) -> frozenset[str]:
        # The store serializes either a list of names or a {name: bool} map
        if value is None:
            return frozenset()
        if isinstance(value, Mapping):
            value = [name for name, enabled in value.items() if enabled]
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, Iterable):
            raise ValueError(f"active indicators must be names, got {type(value).__name__}")
        value = list(value)
        if not all(isinstance(v, str) for v in value):
            raise ValueError("active indicator names must be strings")

        names = {normalize_indicator_name(v) for v in value}
        unknown = names - INDICATOR_NAMES
        if unknown:
            # Stale names from an older front-end must not reset the whole bag
            logger.warning("Ignoring unknown indicators: %s", ", ".join(sorted(unknown)))
        return frozenset(names & INDICATOR_NAMES)

    @field_validator("selected_lookback_hours")
    @classmethod
    def _check_preset(cls, value: int) -> int:
        if value not in LOOKBACK_PRESETS_HOURS:
            raise ValueError(
                f"lookback must be one of {LOOKBACK_PRESETS_HOURS}, got {value}"
            )
        return value

    @property
    def uses_candles(self) -> bool:
        return self.display_type in ("candlestick", "heiken-ashi")


def load_config(raw: Optional[Mapping[str, Any]] = None) -> AnalysisConfig:
    """Build an ``AnalysisConfig`` from a deserialized preference bag.

    An invalid bag is logged and replaced by the defaults so a stale or
    corrupted stored preference never breaks a render.
    """
    if raw is None:
        return AnalysisConfig()
    if isinstance(raw, AnalysisConfig):
        return raw
    if not isinstance(raw, Mapping):
        logger.warning(
            "Rejected analysis config, using defaults: expected a mapping, got %s",
            type(raw).__name__,
        )
        return AnalysisConfig()
    try:
        return AnalysisConfig.model_validate(dict(raw))
    except ValidationError as exc:
        logger.warning(
            "Rejected analysis config, using defaults: %d error(s): %s",
            exc.error_count(),
            "; ".join(err["msg"] for err in exc.errors()),
        )
        return AnalysisConfig()
