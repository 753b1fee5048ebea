"""
pytest configuration (fixtures).

Key concept for this test suite:
--------------------------------
Synchronous tests all run in the main thread's context. `enter_with()` mutates
that context, so a test that forgets to clear would leak its id into the next
test. We clear the process-wide store after every test to keep tests independent.
"""

import pytest

from rtracer.store import PropagationStore
from rtracer.tracer import get_store


@pytest.fixture(autouse=True)
def _clear_default_store():
    yield
    get_store().enter_with(None)


@pytest.fixture
def store() -> PropagationStore:
    """A private store, so tests never depend on the process-wide one."""

    return PropagationStore("test-store")
