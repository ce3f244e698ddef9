"""audiencesync — Metrics Aggregator.

Reduces insight records to account-wide totals and derived ratios:
CTR, CPC, CPM, CPA. Values keep full float precision; rounding is left to
whoever displays them.
"""

from typing import Any, Iterable

from audiencesync.core.logging import get_logger
from audiencesync.models.pipeline_models import InsightRecord, MetricsSummary

logger = get_logger("analyzer.metrics")

CONVERSION_ACTIONS = ("purchase", "lead", "complete_registration")


def _safe_float(value: Any) -> float:
    """Safely convert a value to float."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _safe_int(value: Any) -> int:
    """Integer part of a numeric value or numeric string; 0 otherwise."""
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _conversions(record: InsightRecord) -> int:
    """Value of the first conversion-type action, if any."""
    actions = record.metrics.get("actions")
    if not isinstance(actions, list):
        return 0
    for action in actions:
        if isinstance(action, dict) and action.get("action_type") in CONVERSION_ACTIONS:
            return _safe_int(action.get("value", 0))
    return 0


def summarize(records: Iterable[InsightRecord]) -> MetricsSummary:
    spend = 0.0
    impressions = 0
    clicks = 0
    conversions = 0
    count = 0

    for record in records:
        spend += _safe_float(record.metrics.get("spend"))
        impressions += _safe_int(record.metrics.get("impressions"))
        clicks += _safe_int(record.metrics.get("clicks"))
        conversions += _conversions(record)
        count += 1

    summary = MetricsSummary(
        total_spend=spend,
        total_impressions=impressions,
        total_clicks=clicks,
        total_conversions=conversions,
        avg_ctr=(clicks / impressions * 100) if impressions > 0 else 0.0,
        avg_cpc=(spend / clicks) if clicks > 0 else 0.0,
        avg_cpm=(spend / impressions * 1000) if impressions > 0 else 0.0,
        avg_cpa=(spend / conversions) if conversions > 0 else 0.0,
    )
    logger.info(f"Summarized {count} records: spend={spend} conversions={conversions}")
    return summary
