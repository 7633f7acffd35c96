"""
Project Analytics — schedule/cost indices, risk level, health and priority.

Pure functions over the plain project record produced by ``Project.to_tree()``.
Like the progress and quality engines, nothing here raises for missing or
malformed fields; absent values fall back to neutral defaults.

Usage:
    from siteworks.services.project_analytics import build_project_metrics
    metrics = build_project_metrics(project.to_tree())
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, timedelta

from siteworks.services.progress import (
    as_number,
    calculate_project_progress,
    calculate_workpackage_progress,
    progress_rag,
    round_half_up,
    work_packages,
)
from siteworks.services.quality import (
    calculate_quality_score,
    calculate_workpackage_quality_score,
    classify_quality_score,
)
from siteworks.utils.dates import parse_date

RISK_LEVEL_THRESHOLDS = (
    (15, "critical"),
    (10, "high"),
    (5, "medium"),
)
HIGH_RISK_LEVELS = {"high", "critical"}
CLOSED_STATUSES = {"closed"}
COMPLETED_MILESTONE = "completed"

HEALTH_WEIGHTS = {
    "progress": 0.30,
    "quality": 0.25,
    "risk": 0.20,
    "financial": 0.15,
    "schedule": 0.10,
}

PRIORITY_SCORES = {"low": 1, "medium": 2, "high": 3, "critical": 4}
RISK_LEVEL_SCORES = {"low": 0, "medium": 5, "high": 10, "critical": 15}


def _get(record, key, default=None):
    if isinstance(record, Mapping):
        return record.get(key, default)
    return default


def _list(record, key) -> list[Mapping]:
    items = _get(record, key)
    if not isinstance(items, (list, tuple)):
        return []
    return [i for i in items if isinstance(i, Mapping)]


# ═════════════════════════════════════════════════════════════════════════════
# Performance indices
# ═════════════════════════════════════════════════════════════════════════════

def schedule_performance_index(project) -> float:
    """SPI = actual quantity progress / planned progress (1.0 when nothing is planned)."""
    planned = as_number(_get(project, "planned_progress"))
    if planned == 0:
        return 1.0
    return calculate_project_progress(project) / planned


def cost_performance_index(project) -> float:
    """CPI = estimated budget / actual spend (1.0 when either side is unknown)."""
    planned_cost = as_number(_get(project, "estimated_budget"))
    actual_cost = as_number(_get(project, "actual_budget"))
    if planned_cost == 0 or actual_cost == 0:
        return 1.0
    return planned_cost / actual_cost


def _index_band(index: float) -> int:
    if index >= 1.0:
        return 100
    if index >= 0.9:
        return 80
    if index >= 0.8:
        return 60
    if index >= 0.7:
        return 40
    return 20


# ═════════════════════════════════════════════════════════════════════════════
# Risk
# ═════════════════════════════════════════════════════════════════════════════

def risk_weight(level) -> int:
    return {"high": 5, "medium": 3}.get(level, 1)


def _is_open(item) -> bool:
    return _get(item, "status") not in CLOSED_STATUSES


def _band_risk_score(score: float) -> str:
    for floor, level in RISK_LEVEL_THRESHOLDS:
        if score >= floor:
            return level
    return "low"


def risk_level_for(probability, impact) -> str:
    """Level of a single risk from its probability and impact ratings."""
    return _band_risk_score(risk_weight(probability) * risk_weight(impact))


def calculate_project_risk_level(risks) -> str:
    """Average probability×impact over open risks, banded into low..critical."""
    active = [r for r in (risks or []) if isinstance(r, Mapping) and _is_open(r)]
    if not active:
        return "low"
    average = sum(
        risk_weight(r.get("probability")) * risk_weight(r.get("impact")) for r in active
    ) / len(active)
    return _band_risk_score(average)


def get_high_risk_items(risks) -> list[Mapping]:
    return [
        r for r in (risks or [])
        if isinstance(r, Mapping) and _is_open(r) and r.get("risk_level") in HIGH_RISK_LEVELS
    ]


def _risk_health_score(risks) -> float:
    active = [r for r in (risks or []) if isinstance(r, Mapping) and _is_open(r)]
    if not active:
        return 100.0
    high = len(get_high_risk_items(active))
    return max(0.0, 100.0 - (high / len(active)) * 100.0)


# ═════════════════════════════════════════════════════════════════════════════
# Milestones
# ═════════════════════════════════════════════════════════════════════════════

def _dated_open_milestones(milestones) -> list[tuple[date, Mapping]]:
    rows = []
    for m in milestones or []:
        if not isinstance(m, Mapping) or m.get("status") == COMPLETED_MILESTONE:
            continue
        target = parse_date(m.get("target_date"))
        if target is None:
            continue
        rows.append((target, m))
    rows.sort(key=lambda row: row[0])
    return rows


def get_upcoming_milestones(milestones, today: date | None = None, horizon_days: int = 30) -> list[Mapping]:
    """Open milestones due between today and today + horizon, soonest first."""
    today = today or date.today()
    horizon = today + timedelta(days=horizon_days)
    return [m for target, m in _dated_open_milestones(milestones) if today <= target <= horizon]


def get_overdue_milestones(milestones, today: date | None = None) -> list[Mapping]:
    today = today or date.today()
    return [m for target, m in _dated_open_milestones(milestones) if target < today]


# ═════════════════════════════════════════════════════════════════════════════
# Health, trend, priority
# ═════════════════════════════════════════════════════════════════════════════

def calculate_project_health_score(project) -> int:
    """Weighted 0-100 health: progress 30, quality 25, risk 20, finance 15, schedule 10."""
    components = {
        "progress": min(100.0, calculate_project_progress(project) * 1.2),
        "quality": calculate_quality_score(project) * 10.0,
        "risk": _risk_health_score(_list(project, "risks")),
        "financial": float(_index_band(cost_performance_index(project))),
        "schedule": float(_index_band(schedule_performance_index(project))),
    }
    total = sum(components[k] * w for k, w in HEALTH_WEIGHTS.items())
    max_total = sum(100.0 * w for w in HEALTH_WEIGHTS.values())
    return round_half_up(total / max_total * 100)


def analyze_project_status_trend(project) -> dict:
    """Count positive vs negative signals across progress, quality, risk and cost."""
    indicators: list[str] = []
    positive = 0
    negative = 0

    progress = calculate_project_progress(project)
    if progress >= 80:
        indicators.append("Progress on track")
        positive += 1
    elif progress < 50:
        indicators.append("Progress behind")
        negative += 1

    quality = calculate_quality_score(project)
    if quality >= 8:
        indicators.append("Quality good")
        positive += 1
    elif quality < 6:
        indicators.append("Quality needs improvement")
        negative += 1

    high_risks = get_high_risk_items(_list(project, "risks"))
    if not high_risks:
        indicators.append("Risks under control")
        positive += 1
    else:
        indicators.append(f"{len(high_risks)} high-risk item(s) open")
        negative += 1

    cpi = cost_performance_index(project)
    if cpi >= 1.0:
        indicators.append("Cost under control")
        positive += 1
    elif cpi < 0.9:
        indicators.append("Cost overrun")
        negative += 1

    if positive > negative:
        trend = "improving"
    elif positive < negative:
        trend = "declining"
    else:
        trend = "stable"
    return {"trend": trend, "indicators": indicators}


def calculate_project_priority_score(project) -> int:
    score = PRIORITY_SCORES.get(_get(project, "priority"), PRIORITY_SCORES["medium"]) * 10
    score += RISK_LEVEL_SCORES.get(calculate_project_risk_level(_list(project, "risks")), 0)

    progress = calculate_project_progress(project)
    if progress < 30:
        score += 10
    elif progress < 60:
        score += 5

    health = calculate_project_health_score(project)
    if health < 50:
        score += 8
    elif health < 70:
        score += 4
    return score


def build_project_metrics(project, today: date | None = None) -> dict:
    """Summary document for dashboards and the ``/metrics`` endpoint."""
    progress = calculate_project_progress(project)
    quality = calculate_quality_score(project)
    risks = _list(project, "risks")
    milestones = _list(project, "milestones")
    return {
        "project_id": _get(project, "id"),
        "progress": progress,
        "progress_rag": progress_rag(progress),
        "work_packages": [
            {
                "id": _get(wp, "id"),
                "name": _get(wp, "name"),
                "progress": calculate_workpackage_progress(wp),
                "quality_score": calculate_workpackage_quality_score(wp),
            }
            for wp in work_packages(project)
        ],
        "quality_score": quality,
        "quality_trend": classify_quality_score(quality).value,
        "schedule_performance_index": round(schedule_performance_index(project), 2),
        "cost_performance_index": round(cost_performance_index(project), 2),
        "risk_level": calculate_project_risk_level(risks),
        "high_risk_count": len(get_high_risk_items(risks)),
        "upcoming_milestones": len(get_upcoming_milestones(milestones, today=today)),
        "overdue_milestones": len(get_overdue_milestones(milestones, today=today)),
        "health_score": calculate_project_health_score(project),
        "status_trend": analyze_project_status_trend(project),
        "priority_score": calculate_project_priority_score(project),
    }
