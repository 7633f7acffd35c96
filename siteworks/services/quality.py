"""
Quality Scoring — 0..10 work-package and project quality scores.

Penalties apply only beyond each threshold:
    inspection pass rate < 90   → (90 - rate) * 0.40
    defect rate          > 5    → (rate - 5)  * 0.35
    rework percentage    > 10   → (pct - 10)  * 0.25

Missing metric fields count as 0. A work package without ``quality_metrics``
scores 0 and is left out of the project average.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum

from siteworks.services.progress import as_number, round_half_up, work_packages

BASE_SCORE = 10
MIN_SCORE = 0
MAX_SCORE = 10

INSPECTION_PASS_THRESHOLD = 90
INSPECTION_PASS_WEIGHT = 0.40
DEFECT_RATE_THRESHOLD = 5
DEFECT_RATE_WEIGHT = 0.35
REWORK_THRESHOLD = 10
REWORK_WEIGHT = 0.25

IMPROVING_MIN_SCORE = 8
STABLE_MIN_SCORE = 6


class QualityTrend(str, Enum):
    """Band of the current quality score.

    The labels describe the absolute score only; no earlier score is compared.
    """
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


def _quality_metrics(work_package) -> Mapping | None:
    if not isinstance(work_package, Mapping):
        return None
    metrics = work_package.get("quality_metrics")
    return metrics if isinstance(metrics, Mapping) else None


def calculate_workpackage_quality_score(work_package) -> int:
    metrics = _quality_metrics(work_package)
    if metrics is None:
        return 0

    inspection_pass_rate = as_number(metrics.get("inspection_pass_rate"))
    defect_rate = as_number(metrics.get("defect_rate"))
    rework_percentage = as_number(metrics.get("rework_percentage"))

    score = BASE_SCORE
    if inspection_pass_rate < INSPECTION_PASS_THRESHOLD:
        score -= (INSPECTION_PASS_THRESHOLD - inspection_pass_rate) * INSPECTION_PASS_WEIGHT
    if defect_rate > DEFECT_RATE_THRESHOLD:
        score -= (defect_rate - DEFECT_RATE_THRESHOLD) * DEFECT_RATE_WEIGHT
    if rework_percentage > REWORK_THRESHOLD:
        score -= (rework_percentage - REWORK_THRESHOLD) * REWORK_WEIGHT

    return max(MIN_SCORE, min(MAX_SCORE, round_half_up(score)))


def calculate_quality_score(project) -> int:
    """Average of positive work-package scores that carry quality metrics."""
    scores = []
    for wp in work_packages(project):
        if _quality_metrics(wp) is None:
            continue
        wp_score = calculate_workpackage_quality_score(wp)
        if wp_score > 0:
            scores.append(wp_score)
    if not scores:
        return 0
    return round_half_up(sum(scores) / len(scores))


def classify_quality_score(score) -> QualityTrend:
    score = as_number(score)
    if score >= IMPROVING_MIN_SCORE:
        return QualityTrend.IMPROVING
    if score >= STABLE_MIN_SCORE:
        return QualityTrend.STABLE
    return QualityTrend.DECLINING


def get_quality_trend(project) -> str:
    return classify_quality_score(calculate_quality_score(project)).value
