import asyncio

import pytest

from menu_modifiers.utils.debounce import TrailingDebouncer


@pytest.mark.anyio
async def test_only_last_job_runs():
    debouncer = TrailingDebouncer(0.01)
    calls = []

    def job(value):
        async def run():
            calls.append(value)
            return value

        return run

    futures = [debouncer.call("g-1", job(value)) for value in range(3)]
    results = await asyncio.gather(*futures)

    assert calls == [2]
    assert results == [2, 2, 2]
    assert not debouncer.pending("g-1")


@pytest.mark.anyio
async def test_keys_are_independent():
    debouncer = TrailingDebouncer(0.01)
    calls = []

    async def first():
        calls.append("g-1")

    async def second():
        calls.append("g-2")

    await asyncio.gather(debouncer.call("g-1", first), debouncer.call("g-2", second))

    assert sorted(calls) == ["g-1", "g-2"]


@pytest.mark.anyio
async def test_flush_runs_pending_job_now():
    debouncer = TrailingDebouncer(60)
    calls = []

    async def job():
        calls.append("sent")
        return "sent"

    future = debouncer.call("g-1", job)
    await debouncer.flush()

    assert calls == ["sent"]
    assert future.result() == "sent"


@pytest.mark.anyio
async def test_failure_is_set_on_future():
    debouncer = TrailingDebouncer(0.01)

    async def job():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await debouncer.call("g-1", job)
