from typing import Any, Dict, List, Optional
from pydantic import BaseModel
from datetime import date, timedelta
import time

import structlog

from searchmind.domain.models.search_data import SearchAnalyticsRow
from searchmind.infrastructure.gsc.search_console_client import DEFAULT_DIMENSIONS, SearchConsoleClient
from searchmind.infrastructure.observability.logging import metrics
from searchmind.infrastructure.persistence.analytics_store import AnalyticsStore

logger = structlog.get_logger(__name__)


class SyncResult(BaseModel):
    """Outcome of one property sync"""
    property_id: str
    rows: int = 0
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    success: bool = True
    error: Optional[str] = None


def to_analytics_row(property_id: str, row: Dict[str, Any]) -> SearchAnalyticsRow:
    """Map a Search Console row keyed by DEFAULT_DIMENSIONS onto the store's row"""
    keys = dict(zip(DEFAULT_DIMENSIONS, row.get("keys", [])))
    return SearchAnalyticsRow(
        property_id=property_id,
        date=keys["date"],
        query=keys.get("query", ""),
        page=keys.get("page", ""),
        country=keys.get("country") or "unknown",
        device=keys.get("device") or "DESKTOP",
        clicks=int(row.get("clicks", 0)),
        impressions=int(row.get("impressions", 0)),
        ctr=float(row.get("ctr", 0.0)),
        position=float(row.get("position", 0.0)),
    )


class DataSyncJob:
    """Pulls recent search analytics for a property into the analytics store"""

    def __init__(
        self,
        analytics_store: AnalyticsStore,
        search_console: SearchConsoleClient,
        window_days: int = 3,
        lag_days: int = 3,
    ):
        self.analytics_store = analytics_store
        self.search_console = search_console
        self.window_days = window_days
        self.lag_days = lag_days

    async def run(
        self,
        property_id: str,
        days: Optional[int] = None,
        lag_days: Optional[int] = None,
        today: Optional[date] = None,
    ) -> SyncResult:
        """Sync the window ending ``lag_days`` ago; failures are reported, not raised"""
        today = today or date.today()
        end_date = today - timedelta(days=self.lag_days if lag_days is None else lag_days)
        start_date = end_date - timedelta(days=self.window_days if days is None else days)
        result = SyncResult(property_id=property_id, start_date=start_date, end_date=end_date)
        start_time = time.time()

        try:
            prop = await self.analytics_store.get_property(property_id)
            if prop is None:
                raise LookupError(f"Unknown property '{property_id}'")
            if not prop.user_id:
                raise LookupError(f"Property '{property_id}' has no owner credentials")

            raw_rows = await self.search_console.fetch_search_analytics(
                prop.user_id,
                prop.site_url,
                start_date.isoformat(),
                end_date.isoformat(),
                DEFAULT_DIMENSIONS,
            )
            rows = [to_analytics_row(property_id, raw) for raw in raw_rows]
            result.rows = await self.analytics_store.bulk_upsert_analytics(rows)
            scored = await self.analytics_store.score_url_priorities(property_id, today=today)

            logger.info(
                "Property synced",
                property_id=property_id,
                rows=result.rows,
                urls_scored=scored,
                start_date=start_date.isoformat(),
                end_date=end_date.isoformat(),
            )
        except Exception as e:
            logger.error("Property sync failed", property_id=property_id, error=str(e))
            metrics.increment_counter("sync.failures")
            result.success = False
            result.error = str(e)
        finally:
            metrics.record_latency("sync.property", (time.time() - start_time) * 1000)

        return result

    async def run_all(self, today: Optional[date] = None) -> List[SyncResult]:
        """Sync every registered property in turn"""
        results = []
        for prop in await self.analytics_store.list_properties():
            results.append(await self.run(prop.id, today=today))
        return results
