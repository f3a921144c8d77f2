# scraper.py - page fetching and content extraction for the catalog site
import asyncio
import copy
import logging
import re
from typing import List, Optional, Tuple
from urllib.parse import urljoin

import aiohttp
from bs4 import BeautifulSoup

import config
from models import (CatalogItem, CatalogSection, CategoryPage, Detail, DetailInfo,
                    Episode, SourceLine, empty_category, empty_detail)

logger = logging.getLogger("scraper")
logging.basicConfig(level=logging.INFO)

PLAY_PATH = "/ccplay/"
DETAIL_PATH = "/ccvod/"
PAGE_NUMBER_RE = re.compile(r"-----(\d+)\.html")
SECTION_DECORATION_RE = re.compile(r"NEW|更多.*$")

POPULAR_SECTION = "热门推荐"
PLAY_NOW = "立即播放"
DEFAULT_LINE = "默认线路"
BACKUP_LINE = "备用线路"
UNKNOWN_TITLE = "未知标题"
INFO_LABEL = "信息"


def absolute_url(link: Optional[str]) -> str:
    if not link:
        return ""
    link = link.strip()
    if link.startswith("http"):
        return link
    if link.startswith("//"):
        return f"https:{link}"
    return urljoin(config.BASE_URL + "/", link)


def new_session() -> aiohttp.ClientSession:
    timeout = aiohttp.ClientTimeout(total=config.REQUEST_TIMEOUT)
    return aiohttp.ClientSession(headers=config.HEADERS, timeout=timeout)


async def fetch_html(session: aiohttp.ClientSession, url: str, params=None) -> Tuple[str, str]:
    """GET a page. Returns (text, absolute url). Raises on network or HTTP errors."""
    target = absolute_url(url)
    async with session.get(target, params=params, allow_redirects=True,
                           max_redirects=config.MAX_REDIRECTS) as resp:
        resp.raise_for_status()
        text = await resp.text(errors="replace")
    return text, target


# ------------------- helpers -------------------

def _text(el) -> str:
    return el.get_text().strip() if el is not None else ""


def _text_all(el, selector: str) -> str:
    return "".join(e.get_text() for e in el.select(selector)).strip()


def _attr(el, name: str) -> Optional[str]:
    if el is None:
        return None
    value = el.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    return value or None


def _img_src(el) -> Optional[str]:
    img = el.select_one("img") if el is not None else None
    return _attr(img, "data-src") or _attr(img, "src")


def _own_text(el) -> str:
    """Text of the element with every child element stripped."""
    return "".join(el.find_all(string=True, recursive=False)).strip()


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _dedupe(items: List[CatalogItem]) -> List[CatalogItem]:
    seen = set()
    unique = []
    for item in items:
        if item["detail_url"] in seen:
            continue
        seen.add(item["detail_url"])
        unique.append(item)
    return unique


def _is_title(title: Optional[str]) -> bool:
    return bool(title) and config.BRAND_MARKER not in title and len(title) > 1


# ------------------- listings -------------------

def parse_home(html: str) -> List[CatalogSection]:
    soup = BeautifulSoup(html, "html.parser")
    sections = []

    for block in soup.select(".block"):
        heading = _text(block.select_one(".a-tit h2")) or _text(block.select_one("h2"))
        if not heading or any(m in heading for m in config.SKIP_SECTION_MARKERS):
            continue

        items = []
        for el in block.select(".a-con-inner"):
            link_el = el.select_one(".pic a")
            link = _attr(link_el, "href")
            title = (_attr(link_el, "title") or _text_all(el, ".s1 a")).strip()
            if link and title and config.BRAND_MARKER not in title:
                items.append({
                    "title": title,
                    "cover": absolute_url(_img_src(el)),
                    "detail_url": absolute_url(link),
                    "note": _text_all(el, ".s4"),
                })

        if items:
            sections.append({
                "title": SECTION_DECORATION_RE.sub("", heading).strip(),
                "items": items[:12],
            })

    if sections:
        return sections

    # Layout drift: scan every anchor into the detail space
    items = []
    for a in soup.select(f'a[href*="{DETAIL_PATH}"]'):
        link = _attr(a, "href")
        title = (_attr(a, "title") or _text(a)).strip()
        cover = _img_src(a)
        if link and _is_title(title) and cover:
            items.append({
                "title": title,
                "cover": absolute_url(cover),
                "detail_url": absolute_url(link),
                "note": "",
            })
    items = _dedupe(items)
    if items:
        logger.warning("Home blocks not found, using flat anchor scan")
        sections.append({"title": POPULAR_SECTION, "items": items[:20]})
    return sections


def parse_category(html: str, page: int = 1) -> CategoryPage:
    soup = BeautifulSoup(html, "html.parser")
    items = []

    for el in soup.select(".a-con-inner, .module-item, .vod-list li"):
        link_el = el.select_one("a")
        link = _attr(link_el, "href")
        title = (_attr(link_el, "title")
                 or _text_all(el, ".s1 a, .video-name")
                 or _text(link_el)).strip()
        if link and _is_title(title):
            items.append({
                "title": title,
                "cover": absolute_url(_img_src(el)),
                "detail_url": absolute_url(link),
                "note": _text_all(el, ".s4, .pic-text, .video-note"),
                "rating": _text_all(el, ".s3"),
            })

    total_pages = 1
    for a in soup.select(".page-link a, .pagination a, .page a"):
        label = re.match(r"\d+", _text(a))
        if label:
            total_pages = max(total_pages, int(label.group()))
        from_href = PAGE_NUMBER_RE.search(_attr(a, "href") or "")
        if from_href:
            total_pages = max(total_pages, int(from_href.group(1)))

    return {
        "items": _dedupe(items),
        "page": page,
        "total_pages": total_pages,
        "has_more": page < total_pages,
    }


def parse_search(html: str) -> List[CatalogItem]:
    soup = BeautifulSoup(html, "html.parser")
    results = []
    for el in soup.select(".search-con ul li"):
        link_el = el.select_one(".info p a")
        link = _attr(link_el, "href")
        title = _text(link_el)
        if link and title:
            cover_el = el.select_one(".pic img")
            results.append({
                "title": title,
                "cover": absolute_url(_attr(cover_el, "data-src") or _attr(cover_el, "src")),
                "detail_url": absolute_url(link),
            })
    return _dedupe(results)


# ------------------- detail -------------------

def parse_meta_info(soup: BeautifulSoup, fallback_title: str = "") -> DetailInfo:
    """Build detail info from <title> and <meta> tags only."""
    raw_title = _text(soup.select_one("title"))
    title = fallback_title or raw_title
    bracket = re.search(r"《(.+?)》", raw_title)
    if bracket:
        title = bracket.group(1)
    elif "-" in raw_title:
        title = raw_title.split("-")[0].strip()

    description = _attr(soup.select_one('meta[name="description"]'), "content") or ""
    cover = _attr(soup.select_one('meta[property="og:image"]'), "content")
    keywords = _attr(soup.select_one('meta[name="keywords"]'), "content") or ""
    tags = [k.strip() for k in keywords.split(",")]
    tags = [t for t in tags if t and t != config.BRAND][:8]

    return {
        "title": title or fallback_title or UNKNOWN_TITLE,
        "cover": absolute_url(cover),
        "description": _collapse(description),
        "tags": tags,
        "extra": [],
    }


def parse_detail_info(soup: BeautifulSoup) -> DetailInfo:
    heading = _text(soup.select_one("h1, h2, .title, .name, .vodh h2"))
    if not heading or heading == config.BRAND:
        return parse_meta_info(soup)

    cover = _attr(soup.select_one("img[data-src], .lazyload, .detail-poster img, .pic img"), "data-src")
    if not cover:
        cover = _attr(soup.select_one("img[data-original]"), "data-original")
    if not cover:
        cover = _attr(soup.select_one("img"), "src")

    description = _collapse(_text(soup.select_one(
        ".detail-desc, .desc, .content-desc, .vod-content, .sketch, .module-info-introduction-content"
    )))

    tags = []
    for a in soup.select(".detail-tags a, .tags a, .data a"):
        tag = _text(a)
        if tag and tag != config.BRAND and tag not in tags:
            tags.append(tag)

    extra = []
    for el in soup.select(".detail-info li, .data span, .data h4, .vodh p"):
        label = _text(el.select_one("span, em")) or _attr(el, "class")
        value = _own_text(el)
        if value:
            extra.append({"label": label or INFO_LABEL, "value": value})

    return {
        "title": heading,
        "cover": absolute_url(cover),
        "description": description,
        "tags": tags[:8],
        "extra": extra[:6],
    }


def parse_episode_anchors(html: str) -> List[Episode]:
    soup = BeautifulSoup(html, "html.parser")
    episodes = []
    for a in soup.select(".jisu a"):
        link = _attr(a, "href")
        name = _text(a)
        if link and name:
            episodes.append({"name": name, "link": absolute_url(link)})

    if not episodes:
        fallback = _attr(soup.select_one(f'a[href^="{PLAY_PATH}"]'), "href")
        if fallback:
            episodes.append({"name": PLAY_NOW, "link": absolute_url(fallback)})
    return episodes


def parse_source_links(html: str, play_url: str) -> List[SourceLine]:
    """Mirror lines of a play page, deduplicated by page url, in page order."""
    soup = BeautifulSoup(html, "html.parser")
    sources = []
    seen = set()

    for a in soup.select(".xianlu a"):
        label = copy.copy(a)
        for badge in label.select("small"):
            badge.decompose()
        name = label.get_text().strip() or BACKUP_LINE
        href = _attr(a, "href") or ""
        is_placeholder = not href or href == "javascript:;"
        is_active = "active" in (a.get("class") or []) or is_placeholder
        page_url = absolute_url(play_url if is_placeholder else href)
        if not page_url or page_url in seen:
            continue
        seen.add(page_url)
        sources.append({"name": name, "page_url": page_url, "is_active": is_active})

    if not sources:
        sources.append({"name": DEFAULT_LINE, "page_url": absolute_url(play_url), "is_active": True})
    return sources


# ------------------- operations -------------------

async def get_home_recommend() -> List[CatalogSection]:
    try:
        async with new_session() as session:
            html, _ = await fetch_html(session, config.BASE_URL)
        sections = parse_home(html)
        logger.info(f"Home: {len(sections)} sections")
        return sections
    except Exception as e:
        logger.error(f"Home fetch failed: {e}")
        return []


async def get_category_list(category: str, page: int = 1) -> CategoryPage:
    if category not in config.CATEGORIES:
        category = "tv"
    page = max(int(page or 1), 1)
    suffix = str(page) if page > 1 else ""
    url = f"{config.BASE_URL}/cclist/{category}-----{suffix}.html"
    try:
        async with new_session() as session:
            html, _ = await fetch_html(session, url)
        return parse_category(html, page)
    except Exception as e:
        logger.error(f"Category {category} page {page} failed: {e}")
        return empty_category()


async def search(keyword: str) -> List[CatalogItem]:
    url = f"{config.BASE_URL}/search/-------------.html"
    try:
        async with new_session() as session:
            html, _ = await fetch_html(session, url, params={"wd": keyword})
        return parse_search(html)
    except Exception as e:
        logger.error(f"Search '{keyword}' failed: {e}")
        return []


async def _source_episodes(session, source: SourceLine, play_url: str, play_html: str):
    try:
        html = play_html
        if source["page_url"] != play_url:
            html, _ = await fetch_html(session, source["page_url"])
        return {**source, "episodes": parse_episode_anchors(html)}, html
    except Exception as e:
        logger.debug(f"Line {source['page_url']} failed: {e}")
        return {**source, "episodes": []}, None


async def parse_episodes(detail_url: str) -> Detail:
    """Detail info plus the episode list of every mirror line.

    If the detail page cannot be fetched the info is rebuilt from the first
    play page's metadata.
    """
    try:
        async with new_session() as session:
            info = None
            first_play = None
            try:
                detail_html, _ = await fetch_html(session, detail_url)
            except Exception as e:
                logger.warning(f"Detail fetch failed, falling back to play page: {e}")
                detail_html = None

            if detail_html:
                soup = BeautifulSoup(detail_html, "html.parser")
                info = parse_detail_info(soup)
                first_play = _attr(soup.select_one(f'a[href^="{PLAY_PATH}"]'), "href")

            if not first_play:
                guess = re.search(r"(\d+)", detail_url)
                if guess:
                    first_play = f"{PLAY_PATH}{guess.group(1)}-1-1.html"

            if not first_play:
                return {"info": info, "episodes": [], "sources": [], "detail_url": absolute_url(detail_url)}

            play_url = absolute_url(first_play)
            play_html, _ = await fetch_html(session, play_url)
            lines = parse_source_links(play_html, play_url)
            results = await asyncio.gather(*[
                _source_episodes(session, line, play_url, play_html) for line in lines
            ])

        if info is None:
            html = next((h for _, h in results if h), play_html)
            info = parse_meta_info(BeautifulSoup(html, "html.parser"))

        sources = [line for line, _ in results]
        episodes = next((s["episodes"] for s in sources if s["episodes"]), [])
        return {"info": info, "episodes": episodes, "sources": sources,
                "detail_url": absolute_url(detail_url)}
    except Exception as e:
        logger.error(f"Episode list failed for {detail_url}: {e}")
        return empty_detail()
