import asyncio
from typing import Any, Awaitable, Callable, Hashable

Job = Callable[[], Awaitable[Any]]


class TrailingDebouncer:
    """Coalesce repeated calls per key; only the last job runs after ``delay`` of quiet.

    Every caller for the same key within one window receives the same future,
    resolved with the result of the job that finally ran.
    """

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self._timers: dict[Hashable, asyncio.Task] = {}
        self._futures: dict[Hashable, asyncio.Future] = {}
        self._jobs: dict[Hashable, Job] = {}

    def call(self, key: Hashable, job: Job) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

        future = self._futures.get(key)
        if future is None or future.done():
            future = loop.create_future()
            self._futures[key] = future

        self._jobs[key] = job
        self._timers[key] = loop.create_task(self._fire(key))
        return future

    def pending(self, key: Hashable) -> bool:
        return key in self._timers

    async def flush(self) -> None:
        """Run every pending job now instead of waiting for its window."""
        for key in list(self._timers):
            self._timers.pop(key).cancel()
            await self._run(key)

    async def _fire(self, key: Hashable) -> None:
        await asyncio.sleep(self.delay)
        self._timers.pop(key, None)
        await self._run(key)

    async def _run(self, key: Hashable) -> None:
        job = self._jobs.pop(key)
        future = self._futures.pop(key)
        try:
            result = await job()
        except Exception as e:
            if not future.done():
                future.set_exception(e)
        else:
            if not future.done():
                future.set_result(result)
