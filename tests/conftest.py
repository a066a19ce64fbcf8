"""Test fixtures and configuration for pytest plugin tests."""
import pytest
import tempfile
from pathlib import Path

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)

@pytest.fixture
def example_test_dir(temp_dir: Path):
    """
    Create a directory to run example test files in.

    The directory gets its own pytest.ini so that pytest runs started there use it
    as rootdir instead of picking up this project's configuration.
    """
    (temp_dir / "pytest.ini").write_text("[pytest]\n")
    return temp_dir
