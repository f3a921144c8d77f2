# models.py - shapes of the payloads stored in cache and returned by the API
from typing import List, Optional, TypedDict


class CatalogItem(TypedDict, total=False):
    title: str
    cover: str
    detail_url: str
    note: str
    rating: str


class CatalogSection(TypedDict):
    title: str
    items: List[CatalogItem]


class CategoryPage(TypedDict):
    items: List[CatalogItem]
    page: int
    total_pages: int
    has_more: bool


class ExtraFact(TypedDict):
    label: str
    value: str


class DetailInfo(TypedDict):
    title: str
    cover: str
    description: str
    tags: List[str]
    extra: List[ExtraFact]


class Episode(TypedDict):
    name: str
    link: str


class SourceLine(TypedDict, total=False):
    name: str
    page_url: str
    is_active: bool
    # detail context
    episodes: List[Episode]
    # play context
    raw_url: Optional[str]
    stream_url: Optional[str]


class Detail(TypedDict, total=False):
    info: Optional[DetailInfo]
    episodes: List[Episode]
    sources: List[SourceLine]
    detail_url: str


class PlayResolution(TypedDict):
    stream_url: Optional[str]
    sources: List[SourceLine]


def empty_category(page: int = 1) -> CategoryPage:
    return {"items": [], "page": page, "total_pages": 1, "has_more": False}


def empty_detail() -> Detail:
    return {"info": None, "episodes": [], "sources": []}


def empty_play() -> PlayResolution:
    return {"stream_url": None, "sources": []}
