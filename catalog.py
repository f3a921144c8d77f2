# catalog.py - cached catalog operations with prefetch cascades
import logging
from typing import List, Optional

import cache
import config
import scraper
from models import CatalogSection, CategoryPage, Detail, PlayResolution, empty_category, empty_detail, empty_play
from resolver import resolve_play
from worker import Prefetcher

logger = logging.getLogger("catalog")


class Catalog:
    """Entry points used by the API. Lookups never raise; failures give empty shapes."""

    def __init__(self, prefetcher: Prefetcher):
        self.prefetcher = prefetcher

    def _prefetch_items(self, items, limit=None):
        for item in items[:limit]:
            if item.get("detail_url"):
                self.prefetcher.enqueue_detail(item["detail_url"])

    async def home(self) -> List[CatalogSection]:
        try:
            sections = await cache.with_cache(cache.make_key("home", "recommend"), cache.TTL["home"],
                                              scraper.get_home_recommend)
            items = [item for s in sections or [] for item in s.get("items", [])]
            self._prefetch_items(items, config.HOME_PREFETCH_ITEMS)
            return sections or []
        except Exception as e:
            logger.error(f"Home failed: {e}")
            return []

    async def category(self, category: str = "tv", page: int = 1) -> CategoryPage:
        try:
            key = cache.make_key("category", {"type": category, "page": page})
            result = await cache.with_cache(
                key, cache.TTL["category"],
                lambda: scraper.get_category_list(category, page),
                cacheable=lambda r: bool(r and r.get("items")),
            )
            self._prefetch_items(result.get("items") or [], config.CATEGORY_PREFETCH_ITEMS)
            return result
        except Exception as e:
            logger.error(f"Category {category} page {page} failed: {e}")
            return empty_category()

    async def search(self, keyword: str) -> list:
        try:
            results = await cache.with_cache(cache.make_key("search", keyword), cache.TTL["search"],
                                             lambda: scraper.search(keyword))
            if results:
                logger.info(f"🚀 Prefetching {len(results)} search results")
                self._prefetch_items(results)
            return results or []
        except Exception as e:
            logger.error(f"Search '{keyword}' failed: {e}")
            return []

    async def detail(self, detail_url: str) -> Detail:
        try:
            detail = await cache.with_cache(
                cache.make_key("detail", detail_url), cache.TTL["detail"],
                lambda: scraper.parse_episodes(detail_url),
                cacheable=lambda d: bool(d and d.get("episodes")),
            )
            episodes = detail.get("episodes") or []
            if episodes:
                logger.info(f"🚀 Prefetching {len(episodes)} episode streams")
            for ep in episodes:
                self.prefetcher.enqueue_play(ep.get("link"))
            return detail
        except Exception as e:
            logger.error(f"Detail {detail_url} failed: {e}")
            return empty_detail()

    async def play(self, play_url: str, detail_url: Optional[str] = None) -> PlayResolution:
        try:
            info = await cache.with_cache(
                cache.make_key("play", play_url), cache.TTL["play"],
                lambda: resolve_play(play_url),
                cacheable=lambda r: bool(r and r.get("stream_url")),
            )
            if detail_url:
                self.prefetcher.enqueue_next_episodes(detail_url, play_url)
            return info
        except Exception as e:
            logger.error(f"Play {play_url} failed: {e}")
            return empty_play()

    def prefetch(self, detail_urls=(), play_urls=()) -> int:
        return self.prefetcher.enqueue(detail_urls, play_urls)

    async def clear_cache(self, prefix: Optional[str] = None) -> int:
        if prefix and prefix not in cache.PREFIXES:
            raise ValueError(f"unknown cache prefix: {prefix}")
        prefixes = [prefix] if prefix else cache.PREFIXES
        removed = 0
        for p in prefixes:
            removed += await cache.clear_by_prefix(p)
        return removed

    async def cache_stats(self) -> dict:
        stats = await cache.get_stats()
        stats["prefetch"] = self.prefetcher.stats()
        return stats
