"""
Unit tests for the cached catalog operations and their prefetch cascades.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import cache
import catalog
import scraper
from catalog import Catalog
from worker import Prefetcher

DETAIL_URL = "https://ccios.cc/ccvod/1.html"
PLAY_URL = "https://ccios.cc/ccplay/1-1-1.html"


def items(n):
    return [{"title": f"T{i}", "cover": "", "detail_url": f"https://ccios.cc/ccvod/{i}.html", "note": ""}
            for i in range(n)]


@pytest.fixture
def prefetcher():
    return MagicMock(spec=Prefetcher)


@pytest.fixture
def service(prefetcher):
    return Catalog(prefetcher)


@pytest.mark.unit
class TestHome:
    @pytest.mark.asyncio
    async def test_miss_fetches_caches_and_cascades(self, fake_redis, service, prefetcher):
        sections = [{"title": "A", "items": items(8)}, {"title": "B", "items": items(8)}]
        with patch.object(scraper, "get_home_recommend", AsyncMock(return_value=sections)):
            assert await service.home() == sections

        assert await cache.get_cached("ccios:home:recommend") == sections
        assert prefetcher.enqueue_detail.call_count == 10

    @pytest.mark.asyncio
    async def test_hit_does_not_scrape(self, fake_redis, service):
        await cache.set_cached("ccios:home:recommend", [{"title": "A", "items": []}], 60)
        fetch = AsyncMock()
        with patch.object(scraper, "get_home_recommend", fetch):
            assert await service.home() == [{"title": "A", "items": []}]
        fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_gives_empty_list(self, fake_redis, service):
        with patch.object(scraper, "get_home_recommend", AsyncMock(side_effect=RuntimeError("boom"))):
            assert await service.home() == []


@pytest.mark.unit
class TestCategory:
    @pytest.mark.asyncio
    async def test_cached_under_sorted_key_and_cascades_five(self, fake_redis, service, prefetcher):
        page = {"items": items(9), "page": 2, "total_pages": 5, "has_more": True}
        with patch.object(scraper, "get_category_list", AsyncMock(return_value=page)) as listing:
            assert await service.category("movie", 2) == page

        listing.assert_awaited_once_with("movie", 2)
        assert await cache.get_cached("ccios:category:page=2&type=movie") == page
        assert prefetcher.enqueue_detail.call_count == 5

    @pytest.mark.asyncio
    async def test_empty_page_not_cached(self, fake_redis, service):
        empty = {"items": [], "page": 1, "total_pages": 1, "has_more": False}
        with patch.object(scraper, "get_category_list", AsyncMock(return_value=empty)):
            assert await service.category("tv", 1) == empty
        assert fake_redis.store == {}


@pytest.mark.unit
class TestSearch:
    @pytest.mark.asyncio
    async def test_every_result_is_prefetched(self, fake_redis, service, prefetcher):
        results = items(7)
        with patch.object(scraper, "search", AsyncMock(return_value=results)):
            assert await service.search("show") == results

        assert await cache.get_cached("ccios:search:show") == results
        assert prefetcher.enqueue_detail.call_count == 7


@pytest.mark.unit
class TestDetail:
    @pytest.mark.asyncio
    async def test_episodes_are_prefetched(self, fake_redis, service, prefetcher):
        eps = [{"name": str(i), "link": f"https://ccios.cc/ccplay/1-1-{i}.html"} for i in range(4)]
        detail = {"info": {"title": "T"}, "episodes": eps, "sources": [], "detail_url": DETAIL_URL}
        with patch.object(scraper, "parse_episodes", AsyncMock(return_value=detail)):
            assert await service.detail(DETAIL_URL) == detail

        assert await cache.get_cached(f"ccios:detail:{DETAIL_URL}") == detail
        assert [c.args[0] for c in prefetcher.enqueue_play.call_args_list] == [e["link"] for e in eps]

    @pytest.mark.asyncio
    async def test_detail_without_episodes_not_cached(self, fake_redis, service):
        detail = {"info": {"title": "T"}, "episodes": [], "sources": []}
        with patch.object(scraper, "parse_episodes", AsyncMock(return_value=detail)):
            assert await service.detail(DETAIL_URL) == detail
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_failure_gives_empty_detail(self, no_redis, service):
        with patch.object(scraper, "parse_episodes", AsyncMock(side_effect=RuntimeError("boom"))):
            assert await service.detail(DETAIL_URL) == {"info": None, "episodes": [], "sources": []}


@pytest.mark.unit
class TestPlay:
    @pytest.mark.asyncio
    async def test_resolution_cached_and_next_episodes_triggered(self, fake_redis, service, prefetcher):
        info = {"stream_url": "https://cdn.example/a.m3u8", "sources": []}
        with patch.object(catalog, "resolve_play", AsyncMock(return_value=info)):
            assert await service.play(PLAY_URL, DETAIL_URL) == info

        assert await cache.get_cached(f"ccios:play:{PLAY_URL}") == info
        prefetcher.enqueue_next_episodes.assert_called_once_with(DETAIL_URL, PLAY_URL)

    @pytest.mark.asyncio
    async def test_unresolved_play_not_cached(self, fake_redis, service, prefetcher):
        info = {"stream_url": None, "sources": [{"name": "A", "stream_url": None}]}
        with patch.object(catalog, "resolve_play", AsyncMock(return_value=info)):
            assert await service.play(PLAY_URL) == info

        assert fake_redis.store == {}
        prefetcher.enqueue_next_episodes.assert_not_called()


@pytest.mark.unit
class TestAdmin:
    @pytest.mark.asyncio
    async def test_clear_all_and_one_prefix(self, fake_redis, service):
        for prefix in cache.PREFIXES:
            await cache.set_cached(cache.make_key(prefix, "x"), [1], 60)

        assert await service.clear_cache("play") == 1
        assert await service.clear_cache() == 4
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_stats_include_prefetch_counters(self, fake_redis, service, prefetcher):
        prefetcher.stats.return_value = {"active": 2, "queued": 7}
        stats = await service.cache_stats()
        assert stats["connected"] is True
        assert stats["prefetch"] == {"active": 2, "queued": 7}

    def test_prefetch_delegates(self, service, prefetcher):
        prefetcher.enqueue.return_value = 3
        assert service.prefetch(["a"], ["b", "c"]) == 3
        prefetcher.enqueue.assert_called_once_with(["a"], ["b", "c"])

    @pytest.mark.asyncio
    async def test_unknown_prefix_rejected(self, fake_redis, service):
        await cache.set_cached(cache.make_key("detail", "x"), [1], 60)

        for prefix in ("*", "detail:*", "other"):
            with pytest.raises(ValueError):
                await service.clear_cache(prefix)

        assert list(fake_redis.store) == ["ccios:detail:x"]
