"""
Shared fixtures: an in-memory stand-in for the redis.asyncio client and a
page table that replaces HTTP fetches.
"""

import asyncio
import fnmatch
import time

import aiohttp
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

import cache


class FakeRedis:
    """The subset of redis.asyncio.Redis used by the cache module."""

    def __init__(self):
        self.store = {}
        self.expiry = {}

    def _alive(self, key):
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.store.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.store

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key) if self._alive(key) else None

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.expiry[key] = time.monotonic() + ttl
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed

    async def scan_iter(self, match="*", count=None):
        for key in list(self.store):
            if self._alive(key) and fnmatch.fnmatchcase(key, match):
                yield key

    async def info(self, section=None):
        return {"used_memory_human": "1.05M"}

    async def aclose(self):
        pass


class BrokenRedis(FakeRedis):
    async def _fail(self, *args, **kwargs):
        raise RedisConnectionError("connection refused")

    get = setex = delete = info = _fail

    async def scan_iter(self, match="*", count=None):
        raise RedisConnectionError("connection refused")
        yield


class FlakyRedis(FakeRedis):
    """Refuses connections until `up` is set, like a store started after the app."""

    def __init__(self):
        super().__init__()
        self.up = False

    async def ping(self):
        if not self.up:
            raise RedisConnectionError("connection refused")
        return True


@pytest.fixture
def fake_redis(monkeypatch):
    client = FakeRedis()
    monkeypatch.setattr(cache, "_redis", client)
    monkeypatch.setattr(cache, "_connected", True)
    return client


@pytest.fixture
def broken_redis(monkeypatch):
    client = BrokenRedis()
    monkeypatch.setattr(cache, "_redis", client)
    monkeypatch.setattr(cache, "_connected", True)
    return client


@pytest.fixture
def no_redis(monkeypatch):
    monkeypatch.setattr(cache, "_redis", None)
    monkeypatch.setattr(cache, "_connected", False)


@pytest.fixture
def pages():
    """
    Build a drop-in for `fetch_html` from a {url: html} table.

    Unknown urls and Exception values raise, like a failed request.
    """
    def build(table, calls=None):
        async def fetch(session, url, params=None):
            if calls is not None:
                calls.append(url)
            await asyncio.sleep(0)
            value = table.get(url)
            if value is None:
                raise aiohttp.ClientConnectionError(f"no route to {url}")
            if isinstance(value, Exception):
                raise value
            return value, url
        return fetch
    return build


async def settle(rounds: int = 10):
    """Let every ready task run until it blocks."""
    for _ in range(rounds):
        await asyncio.sleep(0)
