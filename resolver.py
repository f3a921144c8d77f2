# resolver.py - turn a play page into a playable stream url
import asyncio
import json
import logging
import re
from typing import Optional
from urllib.parse import urlparse

from models import PlayResolution, SourceLine, empty_play
from scraper import fetch_html, new_session, parse_source_links

logger = logging.getLogger("resolver")

PLAYER_JSON_PATTERNS = [
    re.compile(r"var player_aaaa\s*=\s*({.*?})</script>", re.S),
    re.compile(r"var player_aaaa\s*=\s*({.*?});", re.S),
]
URL_FIELD_RE = re.compile(r'"url":"(.*?)"')


def extract_video_url(html: str) -> Optional[str]:
    """Raw stream reference embedded in a play page's player config."""
    video_url = None
    for pattern in PLAYER_JSON_PATTERNS:
        match = pattern.search(html)
        if not match:
            continue
        try:
            video_url = json.loads(match.group(1)).get("url")
        except (ValueError, AttributeError) as e:
            logger.debug(f"Player config is not JSON: {e}")
        break

    if not video_url:
        match = URL_FIELD_RE.search(html)
        if match:
            video_url = match.group(1).replace("\\", "")

    return video_url or None


def pick_manifest_candidate(content: str) -> Optional[str]:
    """Nested playlist referenced by a master m3u8, or None for a leaf playlist."""
    lines = [line.strip() for line in content.split("\n")]

    # Best rendition: the line right after a stream-info tag
    for line, next_line in zip(lines, lines[1:]):
        if line.startswith("#EXT-X-STREAM-INF") and next_line and not next_line.startswith("#"):
            if ".m3u8" in next_line or ".ts" not in next_line:
                return next_line

    for line in reversed(lines):
        if line and not line.startswith("#") and ".m3u8" in line:
            return line

    return None


def join_manifest_url(base_url: str, candidate: str) -> str:
    if candidate.startswith("http"):
        return candidate
    parsed = urlparse(base_url)
    if candidate.startswith("/"):
        return f"{parsed.scheme}://{parsed.netloc}{candidate}"
    return f"{base_url[:base_url.rfind('/')]}/{candidate}"


async def resolve_m3u8(session, url: str) -> str:
    try:
        content, _ = await fetch_html(session, url)
        if "#EXTM3U" not in content:
            return url
        candidate = pick_manifest_candidate(content)
        if not candidate:
            return url
        return join_manifest_url(url, candidate)
    except Exception as e:
        logger.warning(f"m3u8 resolution failed for {url}: {e}")
        return url


async def resolve_source(session, source: SourceLine, play_url: str, play_html: str) -> SourceLine:
    """Resolve one mirror. A failure only nulls this mirror's urls."""
    try:
        html = play_html
        if source["page_url"] != play_url:
            html, _ = await fetch_html(session, source["page_url"])

        raw_url = extract_video_url(html)
        stream_url = raw_url
        if stream_url and stream_url.endswith(".m3u8"):
            stream_url = await resolve_m3u8(session, stream_url)
        return {**source, "raw_url": raw_url, "stream_url": stream_url}
    except Exception as e:
        logger.debug(f"Line {source['name']} ({source['page_url']}) failed: {e}")
        return {**source, "raw_url": None, "stream_url": None}


def pick_primary(sources) -> Optional[str]:
    for src in sources:
        if src.get("stream_url") and src.get("is_active"):
            return src["stream_url"]
    for src in sources:
        if src.get("stream_url"):
            return src["stream_url"]
    return None


async def resolve_play(play_url: str) -> PlayResolution:
    """
    Resolve every mirror line of a play page in parallel.
    - output keeps the page order of the lines, not completion order
    - primary is the first active line with a stream, else the first with a stream
    """
    try:
        async with new_session() as session:
            html, final_url = await fetch_html(session, play_url)
            lines = parse_source_links(html, final_url)
            sources = await asyncio.gather(*[
                resolve_source(session, line, final_url, html) for line in lines
            ])
        sources = list(sources)
        primary = pick_primary(sources)
        logger.info(f"Play {play_url}: {sum(1 for s in sources if s['stream_url'])}/{len(sources)} lines resolved")
        return {"stream_url": primary, "sources": sources}
    except Exception as e:
        logger.error(f"Play page failed: {play_url}: {e}")
        return empty_play()
