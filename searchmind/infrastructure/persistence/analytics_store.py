from typing import Dict, List, Optional, Tuple
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from enum import Enum
import asyncio

import structlog
from pydantic import BaseModel

from searchmind.domain.models.search_data import (
    PropertyRecord,
    RankingObservation,
    SearchAnalyticsRow,
    UrlMetric,
)
from searchmind.domain.scoring.priority import calculate_priority_score
from searchmind.domain.scoring.velocity import VelocitySignal, analyze_ranking_velocity

logger = structlog.get_logger(__name__)

MAX_ANALYTICS_DAYS = 90
MAX_ANALYTICS_ROWS = 5000
PRIORITY_WINDOW_DAYS = 30

RowKey = Tuple[date, str, str, str, str]


class VelocitySort(str, Enum):
    DROP = "DROP"
    RISE = "RISE"
    VOLATILE = "VOLATILE"


class PropertySummary(BaseModel):
    url: str
    total_clicks: int
    declining_pages: int


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _movement(signal: VelocitySignal) -> float:
    return signal.velocity_30d if signal.velocity_30d is not None else signal.velocity_7d


class AnalyticsStore:
    """Search Console rows, URL metrics and properties held in process memory"""

    def __init__(self):
        self.properties: Dict[str, PropertyRecord] = {}
        self.rows: Dict[str, Dict[RowKey, SearchAnalyticsRow]] = defaultdict(dict)
        self.url_metric_index: Dict[str, Dict[str, UrlMetric]] = defaultdict(dict)
        self._lock = asyncio.Lock()

    async def register_property(self, record: PropertyRecord) -> PropertyRecord:
        async with self._lock:
            self.properties[record.id] = record
        logger.info("Property registered", property_id=record.id, site_url=record.site_url)
        return record

    async def get_property(self, property_id: str) -> Optional[PropertyRecord]:
        async with self._lock:
            return self.properties.get(property_id)

    async def list_properties(self) -> List[PropertyRecord]:
        async with self._lock:
            return list(self.properties.values())

    async def bulk_upsert_analytics(self, rows: List[SearchAnalyticsRow]) -> int:
        """Insert or replace rows keyed by (date, query, page, country, device)"""
        async with self._lock:
            for row in rows:
                key = (row.date, row.query, row.page, row.country, row.device)
                self.rows[row.property_id][key] = row
        return len(rows)

    async def query_analytics(
        self,
        property_id: str,
        url: Optional[str] = None,
        query: Optional[str] = None,
        days: int = 30,
        limit: int = MAX_ANALYTICS_ROWS,
        today: Optional[date] = None,
    ) -> List[SearchAnalyticsRow]:
        """Daily rows for the property over the last ``days`` days, newest first"""
        days = max(1, min(days, MAX_ANALYTICS_DAYS))
        limit = max(1, min(limit, MAX_ANALYTICS_ROWS))
        start = (today or _today()) - timedelta(days=days)

        async with self._lock:
            matching = [
                row for row in self.rows.get(property_id, {}).values()
                if row.date >= start
                and (url is None or row.page == url)
                and (query is None or row.query == query)
            ]
        matching.sort(key=lambda r: r.date, reverse=True)
        return matching[:limit]

    async def ranking_history(self, property_id: str) -> List[RankingObservation]:
        """Impression-weighted daily position per (query, page)"""
        async with self._lock:
            rows = list(self.rows.get(property_id, {}).values())

        buckets: Dict[Tuple[str, str, date], List[float]] = defaultdict(lambda: [0.0, 0.0])
        for row in rows:
            bucket = buckets[(row.query, row.page, row.date)]
            bucket[0] += row.position * row.impressions
            bucket[1] += row.impressions

        history = []
        for (query, page, day), (weighted, impressions) in buckets.items():
            if impressions == 0:
                continue
            history.append(RankingObservation(query=query, page=page, date=day, position=weighted / impressions))
        return history

    async def ranking_velocity(
        self,
        property_id: str,
        sort: VelocitySort = VelocitySort.DROP,
        limit: int = 20,
    ) -> List[VelocitySignal]:
        signals = analyze_ranking_velocity(await self.ranking_history(property_id))
        if sort == VelocitySort.RISE:
            signals.sort(key=_movement)
        elif sort == VelocitySort.VOLATILE:
            signals.sort(key=lambda s: abs(_movement(s)), reverse=True)
        else:
            signals.sort(key=_movement, reverse=True)
        return signals[:limit]

    async def upsert_url_metric(self, metric: UrlMetric) -> UrlMetric:
        async with self._lock:
            self.url_metric_index[metric.property_id][metric.url] = metric
        return metric

    async def url_metrics(
        self,
        property_id: str,
        min_score: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[UrlMetric]:
        """URL metrics ordered by priority score, highest first"""
        async with self._lock:
            metrics = [
                m for m in self.url_metric_index.get(property_id, {}).values()
                if min_score is None or m.seo_priority_score >= min_score
            ]
        metrics.sort(key=lambda m: m.seo_priority_score, reverse=True)
        return metrics[:limit] if limit else metrics

    async def score_url_priorities(self, property_id: str, today: Optional[date] = None) -> int:
        """Recompute every known URL's priority score from recent clicks, CTR, crawl and link data"""
        today = today or _today()
        window_start = today - timedelta(days=PRIORITY_WINDOW_DAYS)
        clicks_90d_start = today - timedelta(days=MAX_ANALYTICS_DAYS)

        async with self._lock:
            rows = list(self.rows.get(property_id, {}).values())
            existing = dict(self.url_metric_index.get(property_id, {}))

        clicks_30d: Dict[str, int] = defaultdict(int)
        clicks_90d: Dict[str, int] = defaultdict(int)
        ctr_values: Dict[str, List[float]] = defaultdict(list)
        for row in rows:
            if row.date >= clicks_90d_start:
                clicks_90d[row.page] += row.clicks
            if row.date >= window_start:
                clicks_30d[row.page] += row.clicks
                ctr_values[row.page].append(row.ctr)

        now = datetime.now(timezone.utc)
        updated = {}
        for url in set(clicks_90d) | set(existing):
            current = existing.get(url) or UrlMetric(property_id=property_id, url=url)
            ctrs = ctr_values.get(url, [])
            ctr = sum(ctrs) / len(ctrs) if ctrs else 0.0
            score = calculate_priority_score(
                clicks=clicks_30d.get(url, 0),
                ctr=ctr,
                crawl_frequency=current.crawl_frequency or 1,
                internal_links=current.internal_links or 1,
                last_crawled=current.last_crawled,
                now=now,
            )
            updated[url] = current.model_copy(update={
                "clicks_30d": clicks_30d.get(url, 0),
                "clicks_90d": clicks_90d.get(url, 0),
                "ctr": ctr,
                "seo_priority_score": score,
            })

        async with self._lock:
            self.url_metric_index[property_id].update(updated)
        logger.info("URL priorities scored", property_id=property_id, url_count=len(updated))
        return len(updated)

    async def property_summary(self, property_id: str, today: Optional[date] = None) -> Optional[PropertySummary]:
        prop = await self.get_property(property_id)
        if prop is None:
            return None

        start = (today or _today()) - timedelta(days=PRIORITY_WINDOW_DAYS)
        async with self._lock:
            total_clicks = sum(r.clicks for r in self.rows.get(property_id, {}).values() if r.date >= start)
        signals = analyze_ranking_velocity(await self.ranking_history(property_id))
        declining = sum(1 for s in signals if s.velocity_7d > 0)
        return PropertySummary(
            url=prop.site_url,
            total_clicks=total_clicks,
            declining_pages=declining,
        )
