# auto_scraper.py - periodic refresh of home and category listings
import asyncio
import logging

import cache
import config
from scraper import get_category_list, get_home_recommend
from worker import Prefetcher

logger = logging.getLogger("auto_scraper")


class AutoRefresher:
    def __init__(self, prefetcher: Prefetcher):
        self.prefetcher = prefetcher
        self.running = False
        self._tasks = []

    async def refresh_home(self) -> int:
        """Re-fetch home sections, cache them and warm the top items' details."""
        logger.info("📡 Refreshing home")
        try:
            sections = await get_home_recommend()
            if not sections:
                return 0
            await cache.set_cached(cache.make_key("home", "recommend"), sections, cache.TTL["home"])
            logger.info(f"✅ Home refreshed, {len(sections)} sections")

            items = [item for s in sections for item in s.get("items", [])]
            for item in items[:config.HOME_REFRESH_ITEMS]:
                if item.get("detail_url"):
                    await asyncio.sleep(config.PREFETCH_DELAY)
                    self.prefetcher.enqueue_detail(item["detail_url"])
            return len(sections)
        except Exception as e:
            logger.error(f"❌ Home refresh failed: {e}")
            return 0

    async def refresh_categories(self) -> int:
        """Re-fetch the first pages of every category; only page one cascades."""
        logger.info("📡 Refreshing categories")
        refreshed = 0
        for category in config.CATEGORIES:
            for page in range(1, config.CATEGORY_REFRESH_PAGES + 1):
                try:
                    result = await get_category_list(category, page)
                    items = result.get("items") or []
                    if items:
                        key = cache.make_key("category", {"type": category, "page": page})
                        await cache.set_cached(key, result, cache.TTL["category"])
                        refreshed += 1
                        logger.info(f"✅ {category} page {page}: {len(items)} items")

                        if page == 1:
                            for item in items[:config.CATEGORY_PREFETCH_ITEMS]:
                                if item.get("detail_url"):
                                    await asyncio.sleep(config.PREFETCH_DELAY)
                                    self.prefetcher.enqueue_detail(item["detail_url"])

                    await asyncio.sleep(config.PAGE_DELAY)
                except Exception as e:
                    logger.error(f"❌ {category} page {page} refresh failed: {e}")
        logger.info(f"Category refresh done, {refreshed} pages cached")
        return refreshed

    async def _warm_up(self):
        await asyncio.sleep(config.STARTUP_DELAY)
        await self.refresh_home()
        await self.refresh_categories()

    async def _every(self, interval: float, job):
        while self.running:
            await asyncio.sleep(interval)
            try:
                await job()
            except Exception as e:
                logger.exception(f"Refresh loop error: {e}")

    def start(self):
        if self.running:
            return
        self.running = True
        self._tasks = [
            asyncio.create_task(self._warm_up()),
            asyncio.create_task(self._every(config.HOME_REFRESH_INTERVAL, self.refresh_home)),
            asyncio.create_task(self._every(config.CATEGORY_REFRESH_INTERVAL, self.refresh_categories)),
        ]
        logger.info(f"🕐 Refresh jobs started: home every {config.HOME_REFRESH_INTERVAL}s, "
                    f"categories every {config.CATEGORY_REFRESH_INTERVAL}s")

    def stop(self):
        self.running = False
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        logger.info("Refresh jobs stopped")

    async def close(self):
        """Stop the loops and wait until they have unwound."""
        tasks = list(self._tasks)
        self.stop()
        await asyncio.gather(*tasks, return_exceptions=True)
