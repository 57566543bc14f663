"""Detection of URLs that consume crawl budget without earning clicks."""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel

from searchmind.domain.models.search_data import UrlMetric

MIN_CRAWL_FREQUENCY = 2.0
MAX_PRIORITY_SCORE = 0.3
ARCHIVE_AGE_YEARS = 2


class WastePattern(str, Enum):
    PAGINATION = "PAGINATION"
    FACETED = "FACETED"
    FILTER = "FILTER"
    OLD_ARCHIVE = "OLD_ARCHIVE"
    AUTHOR = "AUTHOR"
    OTHER = "OTHER"


class CrawlWasteFinding(BaseModel):
    url: str
    crawl_frequency: float
    seo_priority_score: float
    pattern: WastePattern
    crawl_budget_pct: float


_PAGINATION = re.compile(r"(/page/\d+)|([?&](page|p|pg)=\d+)", re.IGNORECASE)
_FACETED = re.compile(r"[?&][^=&]+=[^&]*&[^=&]+=", re.IGNORECASE)
_FILTER = re.compile(r"[?&](filter|sort|order|orderby|color|size|price|brand)[^=]*=", re.IGNORECASE)
_DATED = re.compile(r"/((?:19|20)\d{2})(?:/(\d{1,2}))?(?:/|$)")
_AUTHOR = re.compile(r"/(author|authors|writer|profile)/", re.IGNORECASE)


def _is_old_archive(url: str, now: datetime) -> bool:
    match = _DATED.search(url)
    if not match:
        return False
    year = int(match.group(1))
    month = int(match.group(2)) if match.group(2) else 12
    if not 1 <= month <= 12:
        month = 12
    age_months = (now.year - year) * 12 + (now.month - month)
    return age_months > ARCHIVE_AGE_YEARS * 12


def classify_url_pattern(url: str, now: Optional[datetime] = None) -> WastePattern:
    now = now or datetime.now(timezone.utc)
    if _PAGINATION.search(url):
        return WastePattern.PAGINATION
    if _FACETED.search(url):
        return WastePattern.FACETED
    if _FILTER.search(url):
        return WastePattern.FILTER
    if _is_old_archive(url, now):
        return WastePattern.OLD_ARCHIVE
    if _AUTHOR.search(url):
        return WastePattern.AUTHOR
    return WastePattern.OTHER


def detect_crawl_waste(metrics: Iterable[UrlMetric], now: Optional[datetime] = None) -> List[CrawlWasteFinding]:
    """Frequently crawled, never clicked, low priority URLs"""
    findings = []
    for metric in metrics:
        if metric.crawl_frequency <= MIN_CRAWL_FREQUENCY:
            continue
        if metric.clicks_90d != 0 or metric.seo_priority_score >= MAX_PRIORITY_SCORE:
            continue
        findings.append(CrawlWasteFinding(
            url=metric.url,
            crawl_frequency=metric.crawl_frequency,
            seo_priority_score=metric.seo_priority_score,
            pattern=classify_url_pattern(metric.url, now),
            crawl_budget_pct=round(metric.crawl_frequency / 100 * 100, 1),
        ))
    findings.sort(key=lambda f: f.crawl_frequency, reverse=True)
    return findings
