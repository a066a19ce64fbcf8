"""
Verdicts for repeated tests.

A verdict is only reached once every planned repetition has been counted.
Until then the evaluator answers INCONCLUSIVE, which tells the driver to
tolerate the current repetition's failure and keep going. An aborted run never
gets past INCONCLUSIVE, so it is never mistaken for a pass or a fail.
"""
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from percent_pass.accounting import (
    AccountingContext,
    MinimumPassContext,
    PercentPassContext,
)

logger = logging.getLogger(__name__)

_FAILURE_HEADER = "Too few test invocations succeeded without an error"


class VerdictStatus(Enum):
    INCONCLUSIVE = "inconclusive"
    PASSED = "passed"
    FAILED = "failed"


@dataclass(frozen=True)
class Verdict:
    """
    Outcome of evaluating a repeated test case.

    `message` is only set for FAILED verdicts and states the policy, the
    expected threshold and the observed value.
    """

    status: VerdictStatus
    message: str | None = None

    @classmethod
    def failure(cls, message: str) -> "Verdict":
        return cls(VerdictStatus.FAILED, message)

    @property
    def passed(self) -> bool:
        return self.status is VerdictStatus.PASSED

    @property
    def failed(self) -> bool:
        return self.status is VerdictStatus.FAILED

    @property
    def inconclusive(self) -> bool:
        return self.status is VerdictStatus.INCONCLUSIVE


INCONCLUSIVE = Verdict(VerdictStatus.INCONCLUSIVE)
PASSED = Verdict(VerdictStatus.PASSED)


def _failure_message(policy: str, expected: str, received: str) -> str:
    return (
        f"{_FAILURE_HEADER} ({policy} policy).\n"
        f"  Expected: {expected}  Received: {received}"
    )


def evaluate_percent(context: PercentPassContext, label: str = "") -> Verdict:
    """Compare the success percentage of a finished run with the plan's pass_percent."""
    if not context.has_invoked_all():
        return INCONCLUSIVE

    received = context.success_percent()
    expected = context.plan.pass_percent
    logger.info(
        "%s: %s%% success in %d invocations",
        label, received, context.plan.execution_count,
    )
    if received < expected:
        return Verdict.failure(
            _failure_message("percentage", f"{float(expected)}%", f"{received}%"),
        )
    return PASSED


def evaluate_minimum(context: MinimumPassContext, label: str = "") -> Verdict:
    """Compare the success count of a finished run with the plan's pass_minimum."""
    if not context.has_invoked_all():
        return INCONCLUSIVE

    received = context.success_count()
    expected = context.plan.pass_minimum
    logger.info(
        "%s: %d successes in %d invocations",
        label, received, context.plan.execution_count,
    )
    if received < expected:
        return Verdict.failure(
            _failure_message("minimum", str(expected), str(received)),
        )
    return PASSED


def evaluate(context: AccountingContext, label: str = "") -> Verdict:
    """
    Evaluate one accounting context.

    Args:
        context: The context to evaluate
        label: Name used to identify the context in log records

    Returns:
        INCONCLUSIVE while repetitions are outstanding, otherwise PASSED or a
        FAILED verdict carrying the expected and received values.
    """
    if isinstance(context, PercentPassContext):
        return evaluate_percent(context, label)
    if isinstance(context, MinimumPassContext):
        return evaluate_minimum(context, label)
    raise TypeError(f"Unsupported accounting context: {context!r}")


def combine(verdicts: Iterable[Verdict]) -> Verdict:
    """
    Merge the verdicts of the policies attached to one test case.

    Every policy must pass. A failure from any policy fails the case; otherwise an
    outstanding policy leaves the case inconclusive.
    """
    verdicts = list(verdicts)
    failures = [v.message for v in verdicts if v.failed]
    if failures:
        return Verdict.failure("\n".join(failures))
    if any(v.inconclusive for v in verdicts):
        return INCONCLUSIVE
    return PASSED
