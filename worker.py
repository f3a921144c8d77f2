# worker.py - background prefetch with bounded concurrency
import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Iterable, Optional

import cache
import config
from resolver import resolve_play
from scraper import parse_episodes

logger = logging.getLogger("worker")


class Prefetcher:
    """
    Runs prefetch jobs in the background, at most `max_concurrent` at a time.

    Jobs waiting for a permit are woken in the order they asked for one; a
    released permit is handed straight to the oldest waiter. Targets already in
    cache are skipped before they ever ask for a permit.
    """

    def __init__(self, max_concurrent: int = config.MAX_CONCURRENT_PREFETCH,
                 max_queued: int = config.PREFETCH_MAX_QUEUED):
        self.max_concurrent = max_concurrent
        self.max_queued = max_queued
        self.active = 0
        self._waiters = deque()
        self._tasks = set()

    # ---------- admission ----------

    async def _acquire(self) -> bool:
        if self.active < self.max_concurrent and not self._waiters:
            self.active += 1
            return True
        if self.max_queued and len(self._waiters) >= self.max_queued:
            return False

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # permit was already handed over, pass it on
                self._release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise
        return True

    def _release(self):
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self.active -= 1

    async def run(self, job: Callable[[], Awaitable], label: str = "task") -> bool:
        """Run one job under a permit. Errors are logged, never raised."""
        if not await self._acquire():
            logger.warning(f"Prefetch queue full ({self.max_queued}), dropping {label}")
            return False
        try:
            await job()
        except Exception as e:
            logger.error(f"Prefetch {label} failed: {e}")
        finally:
            self._release()
        return True

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def submit(self, job: Callable[[], Awaitable], label: str = "task") -> asyncio.Task:
        return self._spawn(self.run(job, label))

    # ---------- targets ----------

    async def _prefetch_detail(self, detail_url: str):
        key = cache.make_key("detail", detail_url)
        if await cache.get_cached(key) is not None:
            return

        async def job():
            logger.info(f"🔄 Prefetching detail {detail_url}")
            detail = await parse_episodes(detail_url)
            episodes = detail.get("episodes") or []
            if episodes:
                await cache.set_cached(key, detail, cache.TTL["detail"])
                for ep in episodes[:config.DETAIL_EPISODE_PREFETCH]:
                    self.enqueue_play(ep["link"])

        await self.run(job, f"detail {detail_url}")

    async def _prefetch_play(self, play_url: str):
        key = cache.make_key("play", play_url)
        if await cache.get_cached(key) is not None:
            return

        async def job():
            logger.info(f"🔄 Prefetching play {play_url}")
            info = await resolve_play(play_url)
            if info.get("stream_url"):
                await cache.set_cached(key, info, cache.TTL["play"])

        await self.run(job, f"play {play_url}")

    def enqueue_detail(self, detail_url: str) -> Optional[asyncio.Task]:
        if not detail_url:
            return None
        return self._spawn(self._prefetch_detail(detail_url))

    def enqueue_play(self, play_url: str) -> Optional[asyncio.Task]:
        if not play_url:
            return None
        return self._spawn(self._prefetch_play(play_url))

    def enqueue(self, detail_urls: Iterable[str] = (), play_urls: Iterable[str] = ()) -> int:
        queued = 0
        for url in list(detail_urls or [])[:config.MAX_BULK_DETAIL]:
            if self.enqueue_detail(url):
                queued += 1
        for url in list(play_urls or [])[:config.MAX_BULK_PLAY]:
            if self.enqueue_play(url):
                queued += 1
        return queued

    def enqueue_next_episodes(self, detail_url: str, play_url: str) -> asyncio.Task:
        return self._spawn(self.prefetch_next_episodes(detail_url, play_url))

    async def prefetch_next_episodes(self, detail_url: str, play_url: str) -> int:
        """Warm the episodes after `play_url` using the cached episode list of `detail_url`."""
        try:
            detail = await cache.get_cached(cache.make_key("detail", detail_url))
            episodes = (detail or {}).get("episodes") or []
            links = [ep.get("link") for ep in episodes]
            if play_url not in links:
                return 0
            index = links.index(play_url)
            upcoming = links[index + 1:index + 1 + config.NEXT_EPISODE_PREFETCH]
            if upcoming:
                logger.info(f"🔮 Prefetching {len(upcoming)} upcoming episodes")
            for link in upcoming:
                self.enqueue_play(link)
            return len(upcoming)
        except Exception as e:
            logger.error(f"Next-episode prefetch failed: {e}")
            return 0

    # ---------- introspection ----------

    def stats(self) -> dict:
        return {"active": self.active, "queued": sum(1 for w in self._waiters if not w.done())}

    async def wait_idle(self):
        """Wait until every spawned task, including cascades, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self):
        """Cancel queued and running prefetches and wait for them to unwind."""
        while self._tasks:
            tasks = list(self._tasks)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Prefetcher stopped")
