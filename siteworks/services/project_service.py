"""Project tree CRUD service: projects, work packages, sub-work-packages, risks, milestones.

Every mutation returns ``(obj, err)`` where ``err`` is ``{"error": str, "status": int}``.
Services flush; the calling blueprint owns the commit.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone

from siteworks.models import db
from siteworks.models.project import (
    MILESTONE_STATUSES,
    PRIORITIES,
    PROJECT_STATUSES,
    RISK_RATINGS,
    RISK_STATUSES,
    WORK_PACKAGE_STATUSES,
    Project,
    ProjectMilestone,
    ProjectRisk,
    SubWorkPackage,
    WorkPackage,
)
from siteworks.services.project_analytics import build_project_metrics, risk_level_for
from siteworks.utils.dates import parse_date

QUALITY_FIELDS = ("inspection_pass_rate", "defect_rate", "rework_percentage")


def _err(message: str, status: int = 400) -> dict:
    return {"error": message, "status": status}


def _text(data: dict, key: str, default: str = "") -> str:
    return str(data.get(key, default) or default).strip()


def _number(data: dict, key: str, *, allow_none: bool = False):
    """Read a non-negative finite number. Returns (value, error_message)."""
    value = data.get(key)
    if value is None:
        if allow_none:
            return None, None
        return 0, None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return None, f"{key} must be a number"
    if value < 0:
        return None, f"{key} must be >= 0"
    return value, None


def _choice(data: dict, key: str, allowed: set, default: str):
    value = _text(data, key, default).lower()
    if value not in allowed:
        return None, f"{key} must be one of {sorted(allowed)}"
    return value, None


def _apply_numbers(obj, data: dict, keys, *, allow_none: bool = False):
    for key in keys:
        if key not in data:
            continue
        value, msg = _number(data, key, allow_none=allow_none)
        if msg:
            return _err(msg)
        setattr(obj, key, value)
    return None


def _apply_choices(obj, data: dict, choices: dict):
    for key, allowed in choices.items():
        if key not in data:
            continue
        value, msg = _choice(data, key, allowed, getattr(obj, key) or "")
        if msg:
            return _err(msg)
        setattr(obj, key, value)
    return None


# ═════════════════════════════════════════════════════════════════════════════
# Projects
# ═════════════════════════════════════════════════════════════════════════════

def list_projects(*, status: str | None = None, owner_uid: str | None = None):
    """Query of projects, newest first. Returned unevaluated for pagination."""
    query = Project.query
    if status:
        query = query.filter(Project.status == status)
    if owner_uid:
        query = query.filter(Project.owner_uid == owner_uid)
    return query.order_by(Project.created_at.desc(), Project.id.desc())


def create_project(*, data: dict, owner_uid: str | None = None) -> tuple[Project | None, dict | None]:
    name = _text(data, "name")
    if not name:
        return None, _err("name is required")

    project = Project(
        name=name,
        code=_text(data, "code").upper() or None,
        description=_text(data, "description"),
        owner_uid=data.get("owner_uid") or owner_uid,
        start_date=parse_date(data.get("start_date")),
        end_date=parse_date(data.get("end_date")),
        status="planning",
        priority="medium",
    )
    err = _apply_choices(project, data, {"status": PROJECT_STATUSES, "priority": PRIORITIES})
    if err:
        return None, err
    err = _apply_numbers(project, data, ("planned_progress", "estimated_budget", "actual_budget"))
    if err:
        return None, err
    if project.planned_progress is not None and project.planned_progress > 100:
        return None, _err("planned_progress must be <= 100")
    if project.start_date and project.end_date and project.end_date < project.start_date:
        return None, _err("end_date must not be before start_date")

    db.session.add(project)
    db.session.flush()
    return project, None


def update_project(*, project: Project, data: dict) -> tuple[Project | None, dict | None]:
    if "name" in data:
        name = _text(data, "name")
        if not name:
            return None, _err("name cannot be empty")
        project.name = name
    if "code" in data:
        project.code = _text(data, "code").upper() or None
    if "description" in data:
        project.description = _text(data, "description")
    if "owner_uid" in data:
        project.owner_uid = data.get("owner_uid") or None
    for key in ("start_date", "end_date"):
        if key in data:
            setattr(project, key, parse_date(data.get(key)))

    err = _apply_choices(project, data, {"status": PROJECT_STATUSES, "priority": PRIORITIES})
    if err:
        return None, err
    err = _apply_numbers(project, data, ("planned_progress", "estimated_budget", "actual_budget"))
    if err:
        return None, err
    if project.planned_progress is not None and project.planned_progress > 100:
        return None, _err("planned_progress must be <= 100")
    if project.start_date and project.end_date and project.end_date < project.start_date:
        return None, _err("end_date must not be before start_date")

    db.session.flush()
    return project, None


def delete_project(project: Project) -> None:
    db.session.delete(project)
    db.session.flush()


def get_project_tree(project: Project) -> dict:
    return project.to_tree()


def get_project_metrics(project: Project, today=None) -> dict:
    return build_project_metrics(project.to_tree(), today=today)


# ═════════════════════════════════════════════════════════════════════════════
# Work packages
# ═════════════════════════════════════════════════════════════════════════════

def _next_position(siblings) -> int:
    return max((s.position or 0 for s in siblings), default=-1) + 1


def create_work_package(*, project: Project, data: dict) -> tuple[WorkPackage | None, dict | None]:
    name = _text(data, "name")
    if not name:
        return None, _err("name is required")

    next_position = _next_position(project.work_packages)
    wp = WorkPackage(
        project=project,
        name=name,
        description=_text(data, "description"),
        status="planning",
    )
    err = _apply_choices(wp, data, {"status": WORK_PACKAGE_STATUSES})
    if err:
        return None, err
    position, msg = _number(data, "position", allow_none=True)
    if msg:
        return None, _err(msg)
    wp.position = int(position) if position is not None else next_position

    err = _apply_numbers(wp, data, QUALITY_FIELDS, allow_none=True)
    if err:
        return None, err
    metrics = data.get("quality_metrics")
    if isinstance(metrics, dict):
        err = _apply_numbers(wp, metrics, QUALITY_FIELDS, allow_none=True)
        if err:
            return None, err

    db.session.add(wp)
    db.session.flush()
    return wp, None


def update_work_package(*, work_package: WorkPackage, data: dict) -> tuple[WorkPackage | None, dict | None]:
    if "name" in data:
        name = _text(data, "name")
        if not name:
            return None, _err("name cannot be empty")
        work_package.name = name
    if "description" in data:
        work_package.description = _text(data, "description")
    err = _apply_choices(work_package, data, {"status": WORK_PACKAGE_STATUSES})
    if err:
        return None, err
    if "position" in data:
        position, msg = _number(data, "position")
        if msg:
            return None, _err(msg)
        work_package.position = int(position)

    err = _apply_numbers(work_package, data, QUALITY_FIELDS, allow_none=True)
    if err:
        return None, err
    if "quality_metrics" in data:
        metrics = data.get("quality_metrics")
        if metrics is None:
            for key in QUALITY_FIELDS:
                setattr(work_package, key, None)
        elif isinstance(metrics, dict):
            err = _apply_numbers(work_package, metrics, QUALITY_FIELDS, allow_none=True)
            if err:
                return None, err
        else:
            return None, _err("quality_metrics must be an object or null")

    db.session.flush()
    return work_package, None


def delete_work_package(work_package: WorkPackage) -> None:
    db.session.delete(work_package)
    db.session.flush()


# ═════════════════════════════════════════════════════════════════════════════
# Sub-work-packages
# ═════════════════════════════════════════════════════════════════════════════

def create_sub_work_package(
    *, work_package: WorkPackage, data: dict,
) -> tuple[SubWorkPackage | None, dict | None]:
    name = _text(data, "name")
    if not name:
        return None, _err("name is required")

    next_position = _next_position(work_package.sub_work_packages)
    sub = SubWorkPackage(work_package=work_package, name=name, unit=_text(data, "unit"))
    err = _apply_numbers(sub, data, ("estimated_quantity", "actual_quantity"))
    if err:
        return None, err
    position, msg = _number(data, "position", allow_none=True)
    if msg:
        return None, _err(msg)
    sub.position = int(position) if position is not None else next_position

    db.session.add(sub)
    db.session.flush()
    return sub, None


def update_sub_work_package(*, sub: SubWorkPackage, data: dict) -> tuple[SubWorkPackage | None, dict | None]:
    """Actual quantity may exceed the estimate (rework / over-completion)."""
    if "name" in data:
        name = _text(data, "name")
        if not name:
            return None, _err("name cannot be empty")
        sub.name = name
    if "unit" in data:
        sub.unit = _text(data, "unit")
    err = _apply_numbers(sub, data, ("estimated_quantity", "actual_quantity", "position"))
    if err:
        return None, err
    sub.position = int(sub.position or 0)

    db.session.flush()
    return sub, None


def delete_sub_work_package(sub: SubWorkPackage) -> None:
    db.session.delete(sub)
    db.session.flush()


# ═════════════════════════════════════════════════════════════════════════════
# Risks
# ═════════════════════════════════════════════════════════════════════════════

_RISK_CHOICES = {"probability": RISK_RATINGS, "impact": RISK_RATINGS, "status": RISK_STATUSES}


def create_risk(*, project: Project, data: dict) -> tuple[ProjectRisk | None, dict | None]:
    title = _text(data, "title")
    if not title:
        return None, _err("title is required")

    risk = ProjectRisk(
        project=project,
        title=title,
        description=_text(data, "description"),
        mitigation=_text(data, "mitigation"),
        owner_uid=data.get("owner_uid"),
        probability="medium",
        impact="medium",
        status="open",
    )
    err = _apply_choices(risk, data, _RISK_CHOICES)
    if err:
        return None, err
    risk.risk_level = risk_level_for(risk.probability, risk.impact)

    db.session.add(risk)
    db.session.flush()
    return risk, None


def update_risk(*, risk: ProjectRisk, data: dict) -> tuple[ProjectRisk | None, dict | None]:
    if "title" in data:
        title = _text(data, "title")
        if not title:
            return None, _err("title cannot be empty")
        risk.title = title
    for key in ("description", "mitigation"):
        if key in data:
            setattr(risk, key, _text(data, key))
    if "owner_uid" in data:
        risk.owner_uid = data.get("owner_uid") or None

    err = _apply_choices(risk, data, _RISK_CHOICES)
    if err:
        return None, err
    risk.risk_level = risk_level_for(risk.probability, risk.impact)

    db.session.flush()
    return risk, None


def delete_risk(risk: ProjectRisk) -> None:
    db.session.delete(risk)
    db.session.flush()


# ═════════════════════════════════════════════════════════════════════════════
# Milestones
# ═════════════════════════════════════════════════════════════════════════════

def create_milestone(*, project: Project, data: dict) -> tuple[ProjectMilestone | None, dict | None]:
    name = _text(data, "name")
    if not name:
        return None, _err("name is required")
    target_date = parse_date(data.get("target_date"))
    if data.get("target_date") and target_date is None:
        return None, _err("target_date must be YYYY-MM-DD or DD.MM.YYYY")

    milestone = ProjectMilestone(project=project, name=name, target_date=target_date, status="planned")
    err = _apply_choices(milestone, data, {"status": MILESTONE_STATUSES})
    if err:
        return None, err

    db.session.add(milestone)
    db.session.flush()
    return milestone, None


def update_milestone(
    *, milestone: ProjectMilestone, data: dict,
) -> tuple[ProjectMilestone | None, dict | None]:
    if "name" in data:
        name = _text(data, "name")
        if not name:
            return None, _err("name cannot be empty")
        milestone.name = name
    if "target_date" in data:
        target_date = parse_date(data.get("target_date"))
        if data.get("target_date") and target_date is None:
            return None, _err("target_date must be YYYY-MM-DD or DD.MM.YYYY")
        milestone.target_date = target_date

    err = _apply_choices(milestone, data, {"status": MILESTONE_STATUSES})
    if err:
        return None, err
    if milestone.status == "completed" and milestone.completed_at is None:
        milestone.completed_at = datetime.now(timezone.utc)
    elif milestone.status != "completed":
        milestone.completed_at = None

    db.session.flush()
    return milestone, None


def delete_milestone(milestone: ProjectMilestone) -> None:
    db.session.delete(milestone)
    db.session.flush()
