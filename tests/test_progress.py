"""
Quantity progress engine tests.
"""

import math

import pytest

from siteworks.services.progress import (
    as_number,
    calculate_progress,
    calculate_project_progress,
    calculate_workpackage_progress,
    progress_rag,
    round_half_up,
)


def _wp(*pairs):
    return {"sub_work_packages": [{"estimated_quantity": e, "actual_quantity": a} for e, a in pairs]}


class TestCalculateProgress:
    def test_zero_denominator(self):
        assert calculate_progress(5, 0) == 0
        assert calculate_progress(0, 0) == 0

    def test_basic_ratio(self):
        assert calculate_progress(40, 100) == 40
        assert calculate_progress(1, 3) == 33

    def test_rounds_half_up(self):
        assert calculate_progress(1, 40) == 3       # 2.5
        assert calculate_progress(1, 8) == 13       # 12.5

    def test_over_completion_not_capped(self):
        assert calculate_progress(150, 100) == 150

    @pytest.mark.parametrize("bad", [None, "10", True, math.nan, math.inf, [1]])
    def test_non_numeric_inputs_count_as_zero(self, bad):
        assert calculate_progress(bad, 10) == 0
        assert calculate_progress(10, bad) == 0


class TestWorkpackageProgress:
    def test_empty_work_package(self):
        assert calculate_workpackage_progress({"sub_work_packages": []}) == 0
        assert calculate_workpackage_progress({}) == 0
        assert calculate_workpackage_progress(None) == 0

    def test_unestimated_items_excluded(self):
        assert calculate_workpackage_progress(_wp((0, 100), (10, 5))) == 50

    def test_negative_and_missing_estimates_excluded(self):
        wp = _wp((-5, 100), (None, 7), (20, 10))
        assert calculate_workpackage_progress(wp) == 50

    def test_missing_actual_counts_as_zero(self):
        wp = {"sub_work_packages": [{"estimated_quantity": 10}, {"estimated_quantity": 10, "actual_quantity": 10}]}
        assert calculate_workpackage_progress(wp) == 50

    def test_malformed_children_ignored(self):
        wp = {"sub_work_packages": ["junk", 3, {"estimated_quantity": 4, "actual_quantity": 1}]}
        assert calculate_workpackage_progress(wp) == 25


class TestProjectProgress:
    def test_weighted_rollup_not_simple_average(self):
        project = {"work_packages": [_wp((100, 100)), _wp((10, 0))]}
        assert calculate_project_progress(project) == 91

    def test_project_without_work_packages(self):
        assert calculate_project_progress({"work_packages": []}) == 0
        assert calculate_project_progress({}) == 0

    def test_work_packages_not_a_list(self):
        assert calculate_project_progress({"work_packages": "oops"}) == 0


class TestHelpers:
    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(2.4999) == 2
        assert round_half_up(0.5) == 1

    def test_as_number(self):
        assert as_number(3) == 3
        assert as_number(2.5) == 2.5
        assert as_number(False) == 0
        assert as_number("3") == 0

    @pytest.mark.parametrize("pct, band", [(95, "green"), (80, "green"), (65, "amber"), (45, "orange"), (10, "red")])
    def test_progress_rag(self, pct, band):
        assert progress_rag(pct) == band
