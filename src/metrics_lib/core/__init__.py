"""
metrics_lib.core — samples, configuration and logging shared by every
analysis module.
"""

from src.metrics_lib.core.config import (
    LOOKBACK_PRESETS_HOURS,
    AnalysisConfig,
    load_config,
)
from src.metrics_lib.core.logging_config import get_logger, setup_logging
from src.metrics_lib.core.samples import (
    Sample,
    is_percentage_unit,
    samples_from_dataframe,
    samples_from_records,
    to_epoch_ms,
    validate_samples,
)

__all__ = [
    # config
    "LOOKBACK_PRESETS_HOURS",
    "AnalysisConfig",
    "load_config",
    # logging
    "get_logger",
    "setup_logging",
    # samples
    "Sample",
    "is_percentage_unit",
    "samples_from_dataframe",
    "samples_from_records",
    "to_epoch_ms",
    "validate_samples",
]
