# server.py
import logging
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

import cache
import config
from auto_scraper import AutoRefresher
from catalog import Catalog
from models import empty_detail, empty_play
from worker import Prefetcher

logger = logging.getLogger("server")
logging.basicConfig(level=logging.INFO)

# --- App ---
app = FastAPI()

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

prefetcher = Prefetcher()
catalog = Catalog(prefetcher)
refresher = AutoRefresher(prefetcher)


class PrefetchRequest(BaseModel):
    detail_urls: List[str] = []
    play_urls: List[str] = []


class ClearRequest(BaseModel):
    prefix: Optional[str] = None


# ------------------- API -------------------

@app.get("/api/home")
async def home():
    return {"data": await catalog.home()}


@app.get("/api/category")
async def category(type: str = Query("tv"), page: int = Query(1)):
    return await catalog.category(type or "tv", max(page, 1))


@app.get("/api/search")
async def search(keyword: Optional[str] = Query(None)):
    if not keyword:
        return {"error": "keyword is required", "data": []}
    return {"data": await catalog.search(keyword)}


@app.get("/api/detail")
async def detail(url: Optional[str] = Query(None)):
    if not url:
        return {"error": "url is required", **empty_detail()}
    return await catalog.detail(url)


@app.get("/api/play")
async def play(url: Optional[str] = Query(None), detail_url: Optional[str] = Query(None)):
    if not url:
        return {"error": "url is required", **empty_play()}
    return await catalog.play(url, detail_url)


@app.post("/api/prefetch")
async def prefetch(body: PrefetchRequest):
    queued = catalog.prefetch(body.detail_urls, body.play_urls)
    return {"success": True, "queued": queued}


@app.post("/api/cache/clear")
async def clear_cache(body: ClearRequest):
    try:
        removed = await catalog.clear_cache(body.prefix)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "prefix": body.prefix or "all", "removed": removed}


@app.get("/api/cache/stats")
async def cache_stats():
    return await catalog.cache_stats()


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "redis": "connected" if cache.is_connected() else "disconnected",
        "prefetch": prefetcher.stats(),
    }


@app.on_event("startup")
async def startup_event():
    await cache.init_redis()
    logger.info("Starting refresh jobs...")
    refresher.start()


@app.on_event("shutdown")
async def shutdown_event():
    await refresher.close()
    await prefetcher.close()
    await cache.close_redis()


# ------------------- Main -------------------
if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
