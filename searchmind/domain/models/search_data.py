from typing import Optional
from pydantic import BaseModel, Field
from datetime import date, datetime


class PropertyRecord(BaseModel):
    """A Search Console property under analysis"""
    id: str
    site_url: str = Field(description="Search Console site URL, e.g. sc-domain:example.com")
    user_id: Optional[str] = Field(None, description="Owner whose credentials access the property")


class SearchAnalyticsRow(BaseModel):
    """One day of performance for a query/page/country/device"""
    property_id: str
    date: date
    query: str
    page: str
    country: str = "unknown"
    device: str = "DESKTOP"
    clicks: int = Field(0, ge=0)
    impressions: int = Field(0, ge=0)
    ctr: float = Field(0.0, ge=0.0)
    position: float = Field(0.0, ge=0.0)


class QueryPagePerformance(BaseModel):
    """Performance of a (query, page) pair aggregated over a window"""
    query: str
    page: str
    clicks: int = 0
    impressions: int = 0
    ctr: float = 0.0
    position: float = 0.0


class RankingObservation(BaseModel):
    """Daily position of a (query, page) pair"""
    query: str
    page: str
    date: date
    position: float


class UrlMetric(BaseModel):
    """Crawl, link and priority metrics for a URL"""
    property_id: str
    url: str
    clicks_30d: int = 0
    clicks_90d: int = 0
    ctr: float = 0.0
    crawl_frequency: float = Field(0.0, ge=0.0, description="Crawls per day")
    internal_links: int = Field(0, ge=0)
    last_crawled: Optional[datetime] = None
    indexing_state: str = "UNKNOWN"
    seo_priority_score: float = Field(0.5, ge=0.0, le=1.0)
