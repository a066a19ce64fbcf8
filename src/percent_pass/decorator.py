"""Decorators for repeated tests with a pass threshold."""
import pytest


def percent_passing(
    execution_count: int = 10,
    pass_percent: float = 100.0,
) -> pytest.MarkDecorator:
    """
    Mark a test to be executed several times and pass on a success percentage.

    Args:
        execution_count: Number of times to run the test (must be greater than 1)
        pass_percent: Minimum percentage of runs that must succeed (0.0 < p <= 100.0)
    """
    return pytest.mark.percent_passing(
        execution_count=execution_count,
        pass_percent=pass_percent,
    )


def minimum_passing(
    execution_count: int = 10,
    pass_minimum: int = 2,
) -> pytest.MarkDecorator:
    """
    Mark a test to be executed several times and pass on a minimum number of successes.

    Args:
        execution_count: Number of times to run the test (must be greater than 1)
        pass_minimum: Minimum number of runs that must succeed
            (1 < pass_minimum <= execution_count)
    """
    return pytest.mark.minimum_passing(
        execution_count=execution_count,
        pass_minimum=pass_minimum,
    )
