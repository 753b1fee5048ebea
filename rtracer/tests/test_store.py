"""
Propagation store tests.

These tests verify:
- reads outside any scope return None
- run() binds for synchronous, nested and asynchronous extents
- concurrent logical executions never observe each other's value
- failures pass through and the previous value is restored
"""

import asyncio
import random
import threading

import pytest

from rtracer.store import ExecutionHandle, PropagationStore


def test_get_returns_none_outside_any_scope(store: PropagationStore) -> None:
    assert store.get() is None


def test_run_binds_value_for_the_call(store: PropagationStore) -> None:
    assert store.run("abc", store.get) == "abc"
    assert store.get() is None


def test_run_passes_arguments_and_returns_result(store: PropagationStore) -> None:
    def handler(a, b, *, c):
        return (a, b, c, store.get())

    assert store.run(42, handler, 1, 2, c=3) == (1, 2, 3, 42)


def test_run_accepts_structured_values(store: PropagationStore) -> None:
    value = {"tenant": "acme", "id": 7}
    assert store.run(value, store.get) is value


def test_nested_run_reverts_to_outer_value(store: PropagationStore) -> None:
    seen = []

    def inner():
        seen.append(store.get())

    def outer():
        seen.append(store.get())
        store.run("b", inner)
        seen.append(store.get())

    store.run("a", outer)
    assert seen == ["a", "b", "a"]
    assert store.get() is None


def test_failure_propagates_and_value_is_not_leaked(store: PropagationStore) -> None:
    def boom():
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        store.run("v", boom)
    assert store.get() is None


def test_enter_with_sets_and_clears_current_execution(store: PropagationStore) -> None:
    def handler():
        store.enter_with("x")
        first = store.get()
        store.enter_with(None)
        return first, store.get()

    assert store.run("outer", handler) == ("x", None)
    assert store.get() is None


def test_enter_with_inside_run_does_not_escape_the_run(store: PropagationStore) -> None:
    store.run("a", lambda: store.enter_with("changed"))
    assert store.get() is None


def test_stores_are_independent() -> None:
    first = PropagationStore("first")
    second = PropagationStore("second")

    def read_both():
        return first.get(), second.get()

    assert first.run(1, read_both) == (1, None)


def test_handle_reenters_captured_value(store: PropagationStore) -> None:
    handle = store.run("captured", ExecutionHandle.capture)

    assert store.get() is None
    assert handle.run(store.get) == "captured"
    assert handle.bind(store.get)() == "captured"


def test_handle_can_be_reentered_while_already_entered(store: PropagationStore) -> None:
    handle = store.run("v", store.capture)

    def nested():
        return handle.run(store.get)

    assert handle.run(nested) == "v"


def test_bound_callable_keeps_value_on_another_thread(store: PropagationStore) -> None:
    seen = []
    bound = store.run("threaded", lambda: ExecutionHandle.capture().bind(lambda: seen.append(store.get())))

    worker = threading.Thread(target=bound)
    worker.start()
    worker.join()

    assert seen == ["threaded"]


def test_bound_callable_runs_on_two_threads_at_once(store: PropagationStore) -> None:
    both_inside = threading.Barrier(2, timeout=5)
    seen = []
    errors = []

    def read():
        both_inside.wait()
        seen.append(store.get())

    bound = store.run("shared", lambda: ExecutionHandle.capture().bind(read))

    def worker():
        try:
            bound()
        except Exception as exc:  # collected for the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert seen == ["shared", "shared"]


@pytest.mark.asyncio
async def test_async_function_sees_value_after_suspension(store: PropagationStore) -> None:
    async def handler():
        await asyncio.sleep(0)
        return store.get()

    assert await store.run(42, handler) == 42
    assert store.get() is None


@pytest.mark.asyncio
async def test_nested_async_runs_restore_outer_value(store: PropagationStore) -> None:
    async def inner():
        await asyncio.sleep(0)
        return store.get()

    async def outer():
        inner_value = await store.run("b", inner)
        await asyncio.sleep(0)
        return inner_value, store.get()

    assert await store.run("a", outer) == ("b", "a")


@pytest.mark.asyncio
async def test_async_failure_propagates_and_restores(store: PropagationStore) -> None:
    async def boom():
        await asyncio.sleep(0)
        raise RuntimeError("rejected")

    store.enter_with("outer")
    with pytest.raises(RuntimeError, match="rejected"):
        await store.run("inner", boom)
    assert store.get() == "outer"


@pytest.mark.asyncio
async def test_timer_callback_sees_value_after_run_returned(store: PropagationStore) -> None:
    loop = asyncio.get_running_loop()
    fired: asyncio.Future = loop.create_future()

    store.run("timer", lambda: loop.call_later(0.01, lambda: fired.set_result(store.get())))

    assert store.get() is None
    assert await fired == "timer"


@pytest.mark.asyncio
async def test_future_done_callback_sees_value(store: PropagationStore) -> None:
    loop = asyncio.get_running_loop()
    source: asyncio.Future = loop.create_future()
    seen: asyncio.Future = loop.create_future()

    store.run("continuation", lambda: source.add_done_callback(lambda _: seen.set_result(store.get())))
    loop.call_soon(source.set_result, None)

    assert await seen == "continuation"


@pytest.mark.asyncio
async def test_task_created_inside_run_is_returned_unmodified(store: PropagationStore) -> None:
    async def read_later():
        await asyncio.sleep(0.01)
        return store.get()

    task = store.run("task", lambda: asyncio.ensure_future(read_later()))

    assert isinstance(task, asyncio.Task)
    assert await task == "task"


@pytest.mark.asyncio
async def test_thread_hop_keeps_value(store: PropagationStore) -> None:
    async def handler():
        return await asyncio.to_thread(store.get)

    assert await store.run("hop", handler) == "hop"


@pytest.mark.asyncio
async def test_enter_with_is_isolated_between_sibling_tasks(store: PropagationStore) -> None:
    started = asyncio.Event()

    async def first():
        store.enter_with("first")
        started.set()
        await asyncio.sleep(0.01)
        return store.get()

    async def second():
        await started.wait()
        return store.get()

    assert await asyncio.gather(first(), second()) == ["first", None]


@pytest.mark.asyncio
async def test_enter_with_propagates_to_tasks_spawned_afterwards(store: PropagationStore) -> None:
    async def child():
        await asyncio.sleep(0)
        return store.get()

    async def handler():
        store.enter_with("entered")
        return await asyncio.create_task(child())

    assert await asyncio.create_task(handler()) == "entered"


@pytest.mark.asyncio
async def test_two_overlapping_runs_observe_only_their_own_value(store: PropagationStore) -> None:
    loop = asyncio.get_running_loop()
    first: asyncio.Future = loop.create_future()
    second: asyncio.Future = loop.create_future()

    # the first run's timer fires last
    store.run("v1", lambda: loop.call_later(0.02, lambda: first.set_result(store.get())))
    store.run("v2", lambda: loop.call_later(0.0, lambda: second.set_result(store.get())))

    assert await asyncio.gather(first, second) == ["v1", "v2"]


@pytest.mark.asyncio
async def test_concurrent_runs_with_random_delays_stay_isolated(store: PropagationStore) -> None:
    rng = random.Random(1234)

    async def request(value):
        seen = []
        for _ in range(5):
            await asyncio.sleep(rng.random() / 200)
            seen.append(store.get())
        return seen

    async def run_request(value):
        return value, await store.run(value, request, value)

    results = await asyncio.gather(*(run_request(i) for i in range(50)))

    for value, seen in results:
        assert seen == [value] * 5
    assert store.get() is None
