"""
Command-line harness for the metrics analytics pipeline.

Reads a JSON file of samples (a list of ``{"timestamp", "value"}`` objects,
or ``{"unit": ..., "samples": [...]}``), runs ``analyze_metric`` and prints
the render-ready bundle as JSON, or a short text summary.

Usage:
    python -m src.metrics_lib samples.json --unit %
    python -m src.metrics_lib samples.json --config prefs.json --summary
    cat samples.json | metrics-analytics - --output bundle.json

Exit codes:
    0 — analysis ran (an empty bundle is still a success)
    2 — input or config file could not be read or parsed
"""

import argparse
import json
import sys
from typing import Any, Optional

from src.metrics_lib.analysis.confluence import confluence_summary
from src.metrics_lib.analysis.pipeline import MetricsBundle, analyze_metric, bundle_to_dict
from src.metrics_lib.analysis.statistics import format_rate_of_change
from src.metrics_lib.core.logging_config import get_logger, setup_logging

logger = get_logger("metrics.cli")


def _read_json(path: str) -> Any:
    if path == "-":
        return json.load(sys.stdin)
    with open(path) as f:
        return json.load(f)


def _summary_lines(bundle: MetricsBundle) -> list[str]:
    stats = bundle.stats
    if stats is None:
        return [f"No analysable samples ({len(bundle.samples)} valid)"]

    unit = bundle.unit
    severe = sum(1 for a in bundle.anomalies if a.severity == "severe")
    return [
        f"Samples:    {len(bundle.samples)}",
        f"Mean:       {stats.mean:.2f} {unit}  (σ {stats.std_dev:.2f})",
        f"Range:      {stats.min:.2f} – {stats.max:.2f} {unit}",
        f"Trend:      {stats.trend}  {format_rate_of_change(stats.rate_of_change, unit)}",
        f"Anomalies:  {len(bundle.anomalies)} ({severe} severe)",
        f"Candles:    {len(bundle.candles)} x {bundle.config.candlestick_period_minutes}m",
        f"Confluence: {confluence_summary(bundle.alerts)}",
    ]


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Statistical and technical analysis of a metric time series",
    )
    parser.add_argument(
        "samples",
        help="JSON file with the samples ('-' reads stdin)",
    )
    parser.add_argument(
        "--unit",
        default=None,
        help="Metric unit; percentage units ('%%') drop values outside [0, 100]",
    )
    parser.add_argument(
        "--config",
        default="",
        help="JSON file with the analysis configuration (camelCase or snake_case keys)",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print a short text summary instead of the JSON bundle",
    )
    parser.add_argument(
        "--output",
        default="",
        help="Write the JSON bundle to this file instead of stdout",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: LOG_LEVEL env var or INFO)",
    )
    args = parser.parse_args(argv)

    setup_logging(service="metrics-cli", level=args.log_level)

    try:
        payload = _read_json(args.samples)
        raw_config = _read_json(args.config) if args.config else None
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("input_unreadable", error=str(exc))
        return 2

    unit = args.unit
    samples = payload
    if isinstance(payload, dict):
        samples = payload.get("samples", [])
        if unit is None:
            unit = payload.get("unit")

    bundle = analyze_metric(samples, unit or "", raw_config)
    logger.info(
        "analysis_complete",
        samples=len(bundle.samples),
        anomalies=len(bundle.anomalies),
        candles=len(bundle.candles),
        alerts=len(bundle.alerts),
    )

    if args.summary:
        print("\n".join(_summary_lines(bundle)))
        return 0

    text = json.dumps(bundle_to_dict(bundle), indent=2)
    if args.output:
        with open(args.output, "w") as f:
            f.write(text)
    else:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
