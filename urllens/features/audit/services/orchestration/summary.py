import math
from collections import Counter
from typing import Sequence

from urllens.features.audit.schemas.audit import AuditSummary, ProtectionCount
from urllens.features.audit.schemas.score import AuditResult, Recommendation

BEST_ENTRY_POINT_MIN_SCORE = 80
MAX_BEST_ENTRY_POINTS = 5


def build_audit_summary(results: Sequence[AuditResult]) -> AuditSummary:
    """Aggregate statistics over a finished batch. Averages count accessible results only."""
    accessible = [result for result in results if result.outcome.accessible]

    average_score = 0
    if accessible:
        # Half-up rounding, not Python's banker's rounding
        average_score = math.floor(sum(result.total for result in accessible) / len(accessible) + 0.5)

    best_entry_points = sorted(
        (result for result in accessible if result.total >= BEST_ENTRY_POINT_MIN_SCORE),
        key=lambda result: result.total,
        reverse=True,
    )[:MAX_BEST_ENTRY_POINTS]

    by_status = Counter(result.outcome.http_status for result in results)

    recommendation_breakdown = {recommendation.value: 0 for recommendation in Recommendation}
    for result in results:
        recommendation_breakdown[result.recommendation.value] += 1

    protections = Counter(
        vendor.value for result in results for vendor in result.outcome.vendors
    )

    return AuditSummary(
        total_urls=len(results),
        accessible_count=len(accessible),
        blocked_count=len(results) - len(accessible),
        average_score=average_score,
        js_required_count=sum(1 for result in results if result.outcome.js_required),
        best_entry_points=best_entry_points,
        by_status=dict(by_status),
        recommendation_breakdown=recommendation_breakdown,
        common_protections=[
            ProtectionCount(name=name, count=count) for name, count in protections.most_common()
        ],
    )
