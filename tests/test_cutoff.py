"""Tests for the cutoff evaluator."""

import pytest

from placement_api.services.cutoff import CutoffRule, Verdict, compute_percentage, evaluate


class TestPercentageCutoff:
    """percentage rules compare marks/total*100 with the threshold."""

    @pytest.mark.parametrize("marks,total,threshold,expected", [
        (65, 100, 60, Verdict.QUALIFIED),
        (40, 100, 60, Verdict.NOT_QUALIFIED),
        (60, 100, 60, Verdict.QUALIFIED),
        (59.99, 100, 60, Verdict.NOT_QUALIFIED),
        (35, 50, 60, Verdict.QUALIFIED),
        (0, 100, 0, Verdict.QUALIFIED),
    ])
    def test_threshold(self, marks, total, threshold, expected):
        rule = CutoffRule(kind="percentage", threshold=threshold, total_marks=total)
        assert evaluate(marks, total, rule) is expected

    def test_zero_total_is_pending(self):
        rule = CutoffRule(kind="percentage", threshold=60)
        assert evaluate(10, 0, rule) is Verdict.PENDING

    def test_missing_total_is_pending(self):
        rule = CutoffRule(kind="percentage", threshold=60)
        assert evaluate(10, None, rule) is Verdict.PENDING

    def test_missing_threshold_is_zero(self):
        rule = CutoffRule(kind="percentage", threshold=None)
        assert evaluate(0, 100, rule) is Verdict.QUALIFIED


class TestMarksCutoff:
    """marks rules compare absolute marks."""

    def test_at_threshold_qualifies(self):
        rule = CutoffRule(kind="marks", threshold=30)
        assert evaluate(30, 50, rule) is Verdict.QUALIFIED

    def test_below_threshold(self):
        rule = CutoffRule(kind="marks", threshold=30)
        assert evaluate(29.5, 50, rule) is Verdict.NOT_QUALIFIED

    def test_total_is_ignored(self):
        rule = CutoffRule(kind="marks", threshold=30)
        assert evaluate(35, 0, rule) is Verdict.QUALIFIED


class TestNoCutoff:
    @pytest.mark.parametrize("marks", [0, 50, 100])
    def test_always_pending(self, marks):
        assert evaluate(marks, 100, CutoffRule(kind="none", threshold=50)) is Verdict.PENDING


class TestComputePercentage:
    def test_value(self):
        assert compute_percentage(45, 50) == pytest.approx(90.0)

    @pytest.mark.parametrize("marks,total", [(10, 0), (10, None), (None, 100), (10, -5)])
    def test_undefined(self, marks, total):
        assert compute_percentage(marks, total) is None


def test_unknown_kind_rejected():
    with pytest.raises(ValueError):
        evaluate(10, 100, CutoffRule(kind="grade"))
