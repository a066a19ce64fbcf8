"""Display names for individual repetitions."""


def display_name(index: int, total: int, name: str | None = None) -> str:
    """
    Label one repetition of a repeated test.

    Args:
        index: 1-based index of the repetition
        total: Number of planned repetitions
        name: Optional name of the test case to prefix the label with

    Returns:
        "invocation 3 of 10", or "test_x (invocation 3 of 10)" when a name is given
    """
    if not 1 <= index <= total:
        raise ValueError(f"index must be between 1 and {total}, got {index}")
    label = f"invocation {index} of {total}"
    if name:
        return f"{name} ({label})"
    return label
