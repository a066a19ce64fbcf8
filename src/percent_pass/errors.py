"""Exceptions raised by the percent-pass plugin."""


class PercentPassError(Exception):
    """Base class for all percent-pass errors."""


class ConfigurationError(PercentPassError, ValueError):
    """
    An execution plan was declared with invalid values.

    Raised once, when the plan is created, before any repetition of the test runs.
    """


class DuplicateRegistrationError(PercentPassError, RuntimeError):
    """A second accounting context was registered for the same test case and policy."""
