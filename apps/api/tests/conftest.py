"""
pytest configuration (fixtures).

Why this file exists
--------------------
pytest automatically discovers fixtures in a file named `conftest.py`.
We use it to share common test setup across the API tests.

Key concept for this project:
-----------------------------
The demo API records ids seen by background tasks in a module-level list.
That means tests can accidentally affect each other unless we reset state.
"""

import pytest

from apps.api.routes import trace


@pytest.fixture(autouse=True)
def _reset_background_ids_before_each_test() -> None:
    """Reset the background-task observations before each test."""

    trace.BACKGROUND_SEEN.clear()
