"""SEO priority score (SPS): a weighted blend of five normalized signals in [0, 1]."""

import math
from datetime import datetime, timezone
from typing import Optional

WEIGHTS = {
    "traffic": 0.35,
    "conversion": 0.25,
    "crawl_efficiency": 0.20,
    "internal_links": 0.15,
    "freshness": 0.05,
}

MAX_LOG_CLICKS = math.log10(10000)
MAX_CTR = 0.25
MAX_CRAWL_FREQUENCY = 30
MAX_LOG_LINKS = math.log10(100)
MAX_FRESHNESS_DAYS = 30


def _log_ratio(value: float, max_log: float) -> float:
    if value <= 0:
        return 0.0
    return min(max(0.0, math.log10(value)) / max_log, 1.0)


def freshness_score(last_crawled: Optional[datetime], now: Optional[datetime] = None) -> float:
    if last_crawled is None:
        return 0.0
    now = now or datetime.now(timezone.utc)
    if last_crawled.tzinfo is None:
        last_crawled = last_crawled.replace(tzinfo=timezone.utc)
    days = max(0, (now - last_crawled).days)
    if days >= MAX_FRESHNESS_DAYS:
        return 0.0
    return 1.0 - days / MAX_FRESHNESS_DAYS


def calculate_priority_score(
    clicks: float,
    ctr: float,
    crawl_frequency: float,
    internal_links: float,
    last_crawled: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> float:
    traffic = _log_ratio(clicks, MAX_LOG_CLICKS)
    conversion = min(max(ctr, 0.0) / MAX_CTR, 1.0)
    crawl = min(max(crawl_frequency, 0.0) / MAX_CRAWL_FREQUENCY, 1.0)
    links = _log_ratio(internal_links, MAX_LOG_LINKS)
    freshness = freshness_score(last_crawled, now)

    score = (
        traffic * WEIGHTS["traffic"]
        + conversion * WEIGHTS["conversion"]
        + crawl * WEIGHTS["crawl_efficiency"]
        + links * WEIGHTS["internal_links"]
        + freshness * WEIGHTS["freshness"]
    )
    return round(score, 3)
