"""Tier evaluation and verdict aggregation."""

from repro_check.verdict.aggregator import AggregatorState, VerdictAggregator
from repro_check.verdict.models import (
    STATUS_NOT_REPRODUCIBLE,
    STATUS_REPRODUCIBLE,
    TIER_CRITICAL,
    TIER_FILES,
    TIER_MODULES,
    FileComparison,
    ReproStatus,
    TierResult,
    VerdictRecord,
)
from repro_check.verdict.tiers import (
    TierOutcome,
    compare_file,
    run_container_tier,
    run_critical_tier,
    run_fileset_tier,
)

__all__ = [
    "AggregatorState",
    "VerdictAggregator",
    "STATUS_REPRODUCIBLE",
    "STATUS_NOT_REPRODUCIBLE",
    "TIER_CRITICAL",
    "TIER_MODULES",
    "TIER_FILES",
    "FileComparison",
    "ReproStatus",
    "TierResult",
    "VerdictRecord",
    "TierOutcome",
    "compare_file",
    "run_critical_tier",
    "run_container_tier",
    "run_fileset_tier",
]
