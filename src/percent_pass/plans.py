"""
Execution plans for repeated tests.

A plan states how many times a test body must run and what share of those runs
has to succeed. Plans are immutable and validated when they are created, so a
malformed declaration is reported before the first repetition starts.
"""
from dataclasses import dataclass
from enum import Enum

from percent_pass.errors import ConfigurationError


class PolicyKind(Enum):
    """The acceptance policy a plan applies."""

    PERCENT = "Percent"
    MINIMUM = "Minimum"


def _check_integer(field: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(
            f"{field} must be an integer (received {value!r})",
        )


def _check_execution_count(execution_count: int) -> None:
    _check_integer("execution_count", execution_count)
    if execution_count <= 1:
        raise ConfigurationError(
            f"execution_count must be greater than 1 (received {execution_count})",
        )


@dataclass(frozen=True)
class PercentPlan:
    """
    Run a test `execution_count` times and require `pass_percent` percent to succeed.

    Args:
        execution_count: Number of repetitions (> 1)
        pass_percent: Required success percentage (0.0 < pass_percent <= 100.0)
    """

    execution_count: int
    pass_percent: float

    policy = PolicyKind.PERCENT

    def __post_init__(self) -> None:
        _check_execution_count(self.execution_count)
        if isinstance(self.pass_percent, bool) or not isinstance(self.pass_percent, int | float):
            raise ConfigurationError(
                f"pass_percent must be a number (received {self.pass_percent!r})",
            )
        # NaN fails this comparison too
        if not self.pass_percent > 0.0:
            raise ConfigurationError(
                f"pass_percent must be > 0.0 (received {self.pass_percent})",
            )
        if self.pass_percent > 100.0:
            raise ConfigurationError(
                f"pass_percent must be <= 100.0 (received {self.pass_percent})",
            )


@dataclass(frozen=True)
class MinimumPlan:
    """
    Run a test `execution_count` times and require at least `pass_minimum` successes.

    Args:
        execution_count: Number of repetitions (> 1)
        pass_minimum: Required number of successful repetitions
            (1 < pass_minimum <= execution_count)
    """

    execution_count: int
    pass_minimum: int

    policy = PolicyKind.MINIMUM

    def __post_init__(self) -> None:
        _check_execution_count(self.execution_count)
        _check_integer("pass_minimum", self.pass_minimum)
        if self.pass_minimum <= 1:
            raise ConfigurationError(
                f"pass_minimum must be greater than 1 (received {self.pass_minimum})",
            )
        if self.pass_minimum > self.execution_count:
            raise ConfigurationError(
                f"pass_minimum must be less than or equal to {self.execution_count} "
                f"(received {self.pass_minimum})",
            )


ExecutionPlan = PercentPlan | MinimumPlan
