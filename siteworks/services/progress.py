"""
Quantity Progress Engine — quantity-weighted completion percentages.

Works on plain records (dicts) shaped like ``Project.to_tree()``:

    project = {
        "work_packages": [
            {"sub_work_packages": [
                {"estimated_quantity": 100, "actual_quantity": 40},
                ...
            ]},
        ],
    }

Rules:
  - A sub-work-package whose estimated quantity is zero, negative, missing or
    non-numeric is excluded from both numerator and denominator.
  - Actual quantity may exceed the estimate (rework / over-completion).
  - A zero denominator yields 0, never an error.
  - Rounding is half-up, so 2.5 → 3.

Usage:
    from siteworks.services.progress import calculate_project_progress
    pct = calculate_project_progress(project.to_tree())
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping


def as_number(value) -> float:
    """Return ``value`` when it is a finite int/float, otherwise 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return value


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _children(record, key: str) -> list:
    if not isinstance(record, Mapping):
        return []
    items = record.get(key)
    if not isinstance(items, Iterable) or isinstance(items, (str, bytes, Mapping)):
        return []
    return [item for item in items if isinstance(item, Mapping)]


def sub_work_packages(work_package) -> list[Mapping]:
    return _children(work_package, "sub_work_packages")


def work_packages(project) -> list[Mapping]:
    return _children(project, "work_packages")


def summarize_quantities(subs: Iterable[Mapping]) -> tuple[float, float]:
    """Sum (estimated, actual) over sub-work-packages with a positive estimate."""
    total_estimated = 0
    total_actual = 0
    for sub in subs:
        estimated = as_number(sub.get("estimated_quantity"))
        if estimated > 0:
            total_estimated += estimated
            total_actual += as_number(sub.get("actual_quantity"))
    return total_estimated, total_actual


def calculate_progress(completed, total) -> int:
    """Percentage of ``completed`` over ``total``; 0 when total is 0."""
    completed = as_number(completed)
    total = as_number(total)
    if total == 0:
        return 0
    return round_half_up(completed / total * 100)


def calculate_workpackage_progress(work_package) -> int:
    total_estimated, total_actual = summarize_quantities(sub_work_packages(work_package))
    return calculate_progress(total_actual, total_estimated)


def calculate_project_progress(project) -> int:
    """Single weighted rollup over every sub-work-package of every work package.

    Not an average of per-work-package percentages: large work packages
    weigh proportionally more.
    """
    all_subs = [sub for wp in work_packages(project) for sub in sub_work_packages(wp)]
    total_estimated, total_actual = summarize_quantities(all_subs)
    return calculate_progress(total_actual, total_estimated)


def progress_rag(percent) -> str:
    """Colour band used by progress bars."""
    percent = as_number(percent)
    if percent >= 80:
        return "green"
    if percent >= 60:
        return "amber"
    if percent >= 40:
        return "orange"
    return "red"
