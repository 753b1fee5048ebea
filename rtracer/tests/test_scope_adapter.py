"""
Generator-style adapter tests (`with request_scope(...)`).
"""

import asyncio

import pytest

from rtracer import current_id
from rtracer.adapters import request_scope


class FakeRequest:
    def __init__(self, headers=None):
        self.headers = headers or {}


def test_binds_inside_block_and_clears_after() -> None:
    with request_scope(FakeRequest()) as request_id:
        assert current_id() == request_id
        assert len(request_id) > 0

    assert current_id() is None


def test_uses_header_from_request() -> None:
    with request_scope(FakeRequest({"X-Request-Id": "abc"}), use_header=True) as request_id:
        assert request_id == "abc"
        assert current_id() == "abc"


def test_explicit_headers_override_request_headers() -> None:
    with request_scope(FakeRequest({"X-Request-Id": "ignored"}), headers={"X-Request-Id": "explicit"}, use_header=True):
        assert current_id() == "explicit"


def test_clears_on_exception() -> None:
    with pytest.raises(KeyError):
        with request_scope(FakeRequest()):
            raise KeyError("missing")

    assert current_id() is None


@pytest.mark.asyncio
async def test_value_survives_suspension_inside_block() -> None:
    async def handle(request):
        with request_scope(request, use_header=True):
            await asyncio.sleep(0.005)
            return current_id()

    results = await asyncio.gather(
        handle(FakeRequest({"X-Request-Id": "one"})),
        handle(FakeRequest({"X-Request-Id": "two"})),
    )

    assert results == ["one", "two"]
