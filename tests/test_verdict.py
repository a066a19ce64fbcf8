"""Tests for verdict evaluation and repetition display names."""
import logging

import pytest
from percent_pass.accounting import MinimumPassContext, PercentPassContext
from percent_pass.naming import display_name
from percent_pass.plans import MinimumPlan, PercentPlan
from percent_pass.verdict import (
    INCONCLUSIVE,
    PASSED,
    Verdict,
    VerdictStatus,
    combine,
    evaluate,
    evaluate_minimum,
    evaluate_percent,
)


def percent_context(execution_count: int, pass_percent: float, failures: int,
                    invocations: int | None = None) -> PercentPassContext:
    context = PercentPassContext(PercentPlan(execution_count, pass_percent))
    _record(context, failures, invocations)
    return context


def minimum_context(execution_count: int, pass_minimum: int, failures: int,
                    invocations: int | None = None) -> MinimumPassContext:
    context = MinimumPassContext(MinimumPlan(execution_count, pass_minimum))
    _record(context, failures, invocations)
    return context


def _record(context, failures: int, invocations: int | None) -> None:  # noqa: ANN001
    if invocations is None:
        invocations = context.plan.execution_count
    for i in range(invocations):
        context.record_invocation_started()
        if i < failures:
            context.record_failure()


def test_percent_passes_at_boundary():
    """3 failures out of 10 is exactly 70%, which meets a 70% threshold."""
    context = percent_context(10, 70.0, failures=3)
    assert context.success_percent() == 70.0
    assert evaluate(context) == PASSED


def test_percent_fails_below_threshold():
    """4 failures out of 10 is 60%, below a 70% threshold."""
    verdict = evaluate(percent_context(10, 70.0, failures=4))
    assert verdict.status is VerdictStatus.FAILED
    assert "Expected: 70.0%  Received: 60.0%" in verdict.message
    assert "percentage policy" in verdict.message


def test_percent_message_for_integer_threshold():
    """Integer thresholds are reported as percentages like float ones."""
    verdict = evaluate(percent_context(10, 70, failures=4))
    assert "Expected: 70.0%  Received: 60.0%" in verdict.message


def test_percent_threshold_just_below_achieved_passes():
    assert evaluate(percent_context(10, 69.9, failures=3)).passed


def test_full_percent_requires_zero_failures():
    """pass_percent=100.0 fails on a single failure."""
    assert evaluate(percent_context(5, 100.0, failures=0)).passed
    assert evaluate(percent_context(5, 100.0, failures=1)).failed


def test_minimum_passes_at_boundary():
    """2 failures out of 5 leaves exactly 3 successes, which meets a minimum of 3."""
    context = minimum_context(5, 3, failures=2)
    assert context.success_count() == 3
    assert evaluate(context) == PASSED


def test_minimum_fails_below_threshold():
    verdict = evaluate(minimum_context(5, 3, failures=3))
    assert verdict.failed
    assert "Expected: 3  Received: 2" in verdict.message
    assert "minimum policy" in verdict.message
    assert "%" not in verdict.message


def test_inconclusive_before_all_invocations():
    """Asking for a verdict after 4 of 10 invocations is never a pass or a fail."""
    for failures in (0, 2, 4):
        verdict = evaluate(percent_context(10, 70.0, failures=failures, invocations=4))
        assert verdict is INCONCLUSIVE
        assert not verdict.passed
        assert not verdict.failed

    assert evaluate_minimum(minimum_context(10, 7, failures=4, invocations=4)).inconclusive
    assert evaluate_percent(percent_context(10, 70.0, failures=0, invocations=0)).inconclusive


def test_evaluate_rejects_unknown_context():
    with pytest.raises(TypeError):
        evaluate(object())  # type: ignore[arg-type]


def test_evaluate_logs_result(caplog: pytest.LogCaptureFixture):
    """Completed evaluations are logged with the observed value."""
    with caplog.at_level(logging.INFO, logger="percent_pass.verdict"):
        evaluate(percent_context(10, 70.0, failures=4), "Percent test_x")
        evaluate(minimum_context(5, 3, failures=2), "Minimum test_x")
    assert "Percent test_x: 60.0% success in 10 invocations" in caplog.text
    assert "Minimum test_x: 3 successes in 5 invocations" in caplog.text


def test_combine():
    """Every policy must pass; a failure from either policy fails the test."""
    failure = Verdict.failure("too few")
    assert combine([PASSED, PASSED]) == PASSED
    assert combine([PASSED, failure]) == failure
    assert combine([failure, INCONCLUSIVE]).failed
    assert combine([PASSED, INCONCLUSIVE]) is INCONCLUSIVE

    both = combine([Verdict.failure("percent"), Verdict.failure("minimum")])
    assert both.message == "percent\nminimum"


def test_combine_is_order_independent():
    failure = Verdict.failure("too few")
    assert combine([failure, PASSED]) == combine([PASSED, failure])


@pytest.mark.parametrize(
    ("index", "total", "name", "expected"),
    [
        (1, 10, None, "invocation 1 of 10"),
        (10, 10, None, "invocation 10 of 10"),
        (3, 5, "test_flaky", "test_flaky (invocation 3 of 5)"),
    ],
)
def test_display_name(index: int, total: int, name: str | None, expected: str):
    assert display_name(index, total, name) == expected


@pytest.mark.parametrize(("index", "total"), [(0, 10), (11, 10)])
def test_display_name_rejects_out_of_range(index: int, total: int):
    with pytest.raises(ValueError, match="index"):
        display_name(index, total)
