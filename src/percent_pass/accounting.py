"""
Invocation accounting for repeated tests.

Each repeated test case gets one context per policy it declares. The driver
reports every repetition it starts and every repetition that fails; the context
only counts. Deciding whether the counts are good enough is left to
`percent_pass.verdict`.

Contexts are not synchronized. Repetitions are expected to be reported by a
single caller, one at a time.
"""
from dataclasses import dataclass

from percent_pass.errors import DuplicateRegistrationError
from percent_pass.naming import display_name
from percent_pass.plans import ExecutionPlan, MinimumPlan, PercentPlan, PolicyKind


@dataclass(frozen=True)
class ContextKey:
    """Identifies the accounting context of one test case under one policy."""

    test_id: str
    policy: PolicyKind

    def __str__(self) -> str:
        return f"{self.policy.value} {self.test_id}"


class AccountingContext:
    """Invocation and failure counters for one test case against one plan."""

    def __init__(self, plan: ExecutionPlan) -> None:
        self.plan = plan
        self.invocations = 0
        self.failures = 0

    @property
    def policy(self) -> PolicyKind:
        return self.plan.policy

    def record_invocation_started(self) -> None:
        """Count a repetition that is about to run its test body."""
        self.invocations += 1

    def record_failure(self) -> None:
        """Count a failure of the repetition most recently started."""
        self.failures += 1

    def has_invoked_all(self) -> bool:
        return self.invocations == self.plan.execution_count

    def display_name(self, index: int, name: str | None = None) -> str:
        return display_name(index, self.plan.execution_count, name)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(plan={self.plan!r}, "
            f"invocations={self.invocations}, failures={self.failures})"
        )


class PercentPassContext(AccountingContext):
    """Accounting against a `PercentPlan`."""

    plan: PercentPlan

    def success_percent(self) -> float:
        """
        Percentage of repetitions that succeeded.

        The numerator assumes every planned repetition runs while the denominator
        is the number of repetitions observed so far. The value is therefore only
        meaningful once `has_invoked_all()` is true.
        """
        success = self.plan.execution_count - self.failures
        return 100.0 * success / self.invocations


class MinimumPassContext(AccountingContext):
    """Accounting against a `MinimumPlan`."""

    plan: MinimumPlan

    def success_count(self) -> int:
        """Number of successful repetitions, projected over the whole plan."""
        return self.plan.execution_count - self.failures


_CONTEXT_TYPES: dict[PolicyKind, type[AccountingContext]] = {
    PolicyKind.PERCENT: PercentPassContext,
    PolicyKind.MINIMUM: MinimumPassContext,
}


class ContextRegistry:
    """
    The accounting contexts of a test session, keyed by test case and policy.

    The host creates one registry when the session starts and clears it when the
    session ends. A key can hold at most one context at a time.
    """

    def __init__(self) -> None:
        self._contexts: dict[ContextKey, AccountingContext] = {}

    def register(self, key: ContextKey, plan: ExecutionPlan) -> AccountingContext:
        """
        Create the accounting context for `key`.

        Raises:
            DuplicateRegistrationError: If a context is already registered for `key`.
            ValueError: If the plan's policy does not match the key's policy.
        """
        if key in self._contexts:
            raise DuplicateRegistrationError(f"Context {key} already registered")
        if plan.policy is not key.policy:
            raise ValueError(
                f"Cannot register a {plan.policy.value} plan under key {key}",
            )
        context = _CONTEXT_TYPES[key.policy](plan)
        self._contexts[key] = context
        return context

    def lookup(self, key: ContextKey) -> AccountingContext | None:
        return self._contexts.get(key)

    def discard(self, key: ContextKey) -> None:
        self._contexts.pop(key, None)

    def clear(self) -> None:
        self._contexts.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._contexts

    def __len__(self) -> int:
        return len(self._contexts)
