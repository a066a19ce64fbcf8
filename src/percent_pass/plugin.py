"""
Pytest plugin for running flaky tests against a pass threshold.

A test marked with `percent_passing` or `minimum_passing` is executed a fixed number
of times. Individual failures are tolerated while repetitions are outstanding;
once every repetition has run, the test passes if enough of them succeeded:

- `percent_passing(execution_count, pass_percent)`: at least `pass_percent` percent
  of the repetitions must succeed
- `minimum_passing(execution_count, pass_minimum)`: at least `pass_minimum`
  repetitions must succeed

Both markers may be applied to the same test; each is then judged independently
and both must pass.

Repetitions run sequentially, in the same test item, so fixtures are set up once
and shared by all repetitions. Coroutine tests are driven on a fresh event loop
per repetition.
"""
import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

import pytest

from percent_pass.accounting import AccountingContext, ContextKey, ContextRegistry
from percent_pass.errors import ConfigurationError
from percent_pass.naming import display_name
from percent_pass.plans import ExecutionPlan, MinimumPlan, PercentPlan
from percent_pass.verdict import INCONCLUSIVE, Verdict, combine, evaluate

logger = logging.getLogger(__name__)

# Results of every repeated test in the session, for the terminal summary
# Key: test nodeid, Value: statistics for that test
_test_results = {}

_registry_key = pytest.StashKey[ContextRegistry]()

# Errors that count as an ordinary failure of one repetition. Anything else
# (skips, imperative xfails, exits, keyboard interrupts) aborts the whole run.
_REPETITION_FAILURES = (Exception, pytest.fail.Exception)


def _is_repetition_failure(error: BaseException) -> bool:
    # XFailed subclasses Failed
    return isinstance(error, _REPETITION_FAILURES) and not isinstance(
        error, pytest.xfail.Exception,
    )


_MARKERS = {
    "percent_passing": PercentPlan,
    "minimum_passing": MinimumPlan,
}


@dataclass
class PercentPassStats:
    """
    Statistics of one repeated test, kept for the terminal summary.

    `verdict` stays INCONCLUSIVE if the run was aborted before every planned
    repetition had completed.
    """

    planned_runs: int
    total_runs: int = 0
    failures: list[dict[str, object]] = field(default_factory=list)
    verdict: Verdict = INCONCLUSIVE

    @property
    def successful_runs(self) -> int:
        return self.total_runs - len(self.failures)

    @property
    def success_rate(self) -> float:
        """Percentage of completed runs that succeeded, 0.0 before any run completes."""
        if self.total_runs == 0:
            return 0.0
        return 100.0 * self.successful_runs / self.total_runs


def pytest_configure(config: pytest.Config) -> None:
    """Register the markers and create the session's context registry."""
    config.addinivalue_line(
        "markers",
        "percent_passing(execution_count, pass_percent): run the test execution_count "
        "times and pass if at least pass_percent percent of the runs succeed",
    )
    config.addinivalue_line(
        "markers",
        "minimum_passing(execution_count, pass_minimum): run the test execution_count "
        "times and pass if at least pass_minimum runs succeed",
    )
    config.stash[_registry_key] = ContextRegistry()


def pytest_unconfigure(config: pytest.Config) -> None:
    """Drop the session's contexts and results."""
    registry = config.stash.get(_registry_key, None)
    if registry is not None:
        registry.clear()
        del config.stash[_registry_key]
    _test_results.clear()


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add the --disable-percent-pass flag to run marked tests only once."""
    parser.addoption(
        "--disable-percent-pass",
        action="store_true",
        help="Run tests marked with percent_passing or minimum_passing a single time",
    )


def get_registry(config: pytest.Config) -> ContextRegistry:
    """Return the context registry of the session, creating it if needed."""
    return config.stash.setdefault(_registry_key, ContextRegistry())


def plan_from_marker(marker: pytest.Mark) -> ExecutionPlan:
    """
    Build the execution plan declared by a `percent_passing` or `minimum_passing` mark.

    Raises:
        ConfigurationError: If the mark's arguments do not describe a valid plan.
    """
    plan_type = _MARKERS[marker.name]
    try:
        return plan_type(*marker.args, **marker.kwargs)
    except TypeError as e:
        raise ConfigurationError(f"Invalid arguments for {marker.name}: {e}") from e


def plans_from_item(item: pytest.Item) -> list[ExecutionPlan]:
    """
    Build the execution plans declared on a test item.

    When both policies are declared they must agree on the execution count,
    since every repetition is counted by both.
    """
    plans = [
        plan_from_marker(marker)
        for name in _MARKERS
        if (marker := item.get_closest_marker(name)) is not None
    ]
    counts = {plan.execution_count for plan in plans}
    if len(counts) > 1:
        raise ConfigurationError(
            "percent_passing and minimum_passing must use the same execution_count "
            f"(received {sorted(counts)})",
        )
    return plans


def register_contexts(
    registry: ContextRegistry,
    test_id: str,
    plans: list[ExecutionPlan],
) -> dict[ContextKey, AccountingContext]:
    """
    Register one accounting context per plan for the given test.

    If any registration fails, the contexts registered before it are discarded
    again and the error propagates.
    """
    contexts = {}
    try:
        for plan in plans:
            key = ContextKey(test_id, plan.policy)
            contexts[key] = registry.register(key, plan)
    except Exception:
        for key in contexts:
            registry.discard(key)
        raise
    return contexts


def on_invocation_start(contexts: dict[ContextKey, AccountingContext]) -> None:
    for context in contexts.values():
        context.record_invocation_started()


def on_invocation_failure(contexts: dict[ContextKey, AccountingContext]) -> None:
    for context in contexts.values():
        context.record_failure()


def on_invocation_complete(
    contexts: dict[ContextKey, AccountingContext],
    error: BaseException | None = None,
) -> Verdict:
    """
    Ask for the verdict of a test after one of its repetitions completed.

    Returns INCONCLUSIVE while repetitions are outstanding, in which case a
    failure of the repetition (`error`) must not fail the test.
    """
    verdict = combine(evaluate(context, str(key)) for key, context in contexts.items())
    if verdict.inconclusive and error is not None:
        logger.debug(
            "%s: tolerating failure while invocations are outstanding: %r",
            ", ".join(str(key) for key in contexts), error,
        )
    return verdict


def run_test_function(testfunction: Callable, funcargs: dict[str, object]) -> object:
    """
    Execute a test function once, handling both sync and async functions.

    Coroutine functions, and sync functions that return an awaitable, are run to
    completion on a new event loop that is closed afterwards.
    """
    result = testfunction(**funcargs)
    if not inspect.isawaitable(result):
        return result

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(result)
    finally:
        loop.close()
        asyncio.set_event_loop(None)


def _invoke_once(
    testfunction: Callable,
    funcargs: dict[str, object],
    contexts: dict[ContextKey, AccountingContext],
) -> None:
    on_invocation_start(contexts)
    try:
        run_test_function(testfunction, funcargs)
    except BaseException as e:
        if _is_repetition_failure(e):
            on_invocation_failure(contexts)
        raise


def run_repeated_test(
    testfunction: Callable,
    funcargs: dict[str, object],
    contexts: dict[ContextKey, AccountingContext],
    stats: PercentPassStats,
    name: str | None = None,
) -> Verdict:
    """
    Run a test body once per planned repetition and judge the outcome.

    Args:
        testfunction: The test function to execute (can be sync or async)
        funcargs: Arguments to pass to the test function
        contexts: The registered accounting contexts of the test
        stats: Statistics object to track test results
        name: Name of the test, used in log records and failure samples

    Returns:
        The final verdict, which is PASSED when this function returns normally

    Raises:
        AssertionError: If the pass threshold of any policy was not met.
        BaseException: Whatever aborted a repetition (skip, xfail, exit, interrupt) is
            re-raised after the run is recorded as inconclusive.
    """
    last_error = None
    verdict = INCONCLUSIVE
    for index in range(1, stats.planned_runs + 1):
        label = display_name(index, stats.planned_runs, name)
        error = None
        try:
            _invoke_once(testfunction, funcargs, contexts)
        except BaseException as e:
            if not _is_repetition_failure(e):
                logger.error(
                    "%s: aborted after %d of %d invocations, no verdict",
                    name, stats.total_runs, stats.planned_runs,
                )
                stats.verdict = INCONCLUSIVE
                raise
            error = last_error = e
            stats.failures.append({
                "error": str(e),
                "type": type(e).__name__,
                "context": {"invocation": label},
            })
        stats.total_runs += 1
        verdict = on_invocation_complete(contexts, error)

    stats.verdict = verdict
    if verdict.failed:
        raise AssertionError(verdict.message) from last_error
    return verdict


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """
    Execute tests marked with `percent_passing` or `minimum_passing` repeatedly.

    Returns:
        True if we handled the test, None to let pytest handle it normally
    """
    if not any(pyfuncitem.get_closest_marker(name) for name in _MARKERS):
        return None

    # Run the test normally (just once)
    if pyfuncitem.config.getoption("--disable-percent-pass", False):
        return None

    plans = plans_from_item(pyfuncitem)
    registry = get_registry(pyfuncitem.config)
    contexts = register_contexts(registry, pyfuncitem.nodeid, plans)

    stats = PercentPassStats(planned_runs=plans[0].execution_count)
    _test_results[pyfuncitem.nodeid] = stats

    testfunction = pyfuncitem.obj
    # Filter arguments to only pass those the function accepts
    sig = inspect.signature(testfunction)
    actual_argnames = set(sig.parameters.keys())
    funcargs = {name: arg for name, arg in pyfuncitem.funcargs.items() if name in actual_argnames}

    try:
        run_repeated_test(testfunction, funcargs, contexts, stats, name=pyfuncitem.name)
    finally:
        for key in contexts:
            registry.discard(key)

    return True  # Signal to pytest that we handled the test execution


@pytest.hookimpl(trylast=True)
def pytest_terminal_summary(terminalreporter) -> None:  # noqa: ANN001
    """
    Add the results of repeated tests to the pytest terminal output.

    For each test this shows the verdict, the success rate, the run counts and
    up to three failure samples.
    """
    if not _test_results:
        return

    terminalreporter.write_sep("=", "Percent Pass Results")
    for nodeid, stats in _test_results.items():
        terminalreporter.write_line(f"\n{nodeid}:")
        terminalreporter.write_line(f"  Verdict: {stats.verdict.status.name}")
        terminalreporter.write_line(f"  Success rate: {stats.success_rate:.1f}%")
        terminalreporter.write_line(
            f"  Runs: {stats.total_runs} of {stats.planned_runs}, "
            f"Successes: {stats.successful_runs}, Failures: {len(stats.failures)}",
        )
        if stats.failures:
            terminalreporter.write_line("  Failure samples:")
            for i, failure in enumerate(stats.failures[:3]):
                terminalreporter.write_line(
                    f"    {i+1}. {failure['context']['invocation']}: "
                    f"{failure['type']}: {failure['error']}",
                )
            if len(stats.failures) > 3:
                terminalreporter.write_line(f"    ... and {len(stats.failures) - 3} more")
