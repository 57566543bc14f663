from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote
import time

import httpx
import structlog
from tenacity import AsyncRetrying, RetryError, retry_if_exception, stop_after_attempt, wait_exponential

from searchmind.domain.errors import SearchConsoleError
from searchmind.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)

WEBMASTERS_BASE = "https://www.googleapis.com/webmasters/v3"
INSPECTION_URL = "https://searchconsole.googleapis.com/v1/urlInspection/index:inspect"
ROW_LIMIT = 25000
DEFAULT_DIMENSIONS = ["date", "query", "page", "country", "device"]

TokenProvider = Callable[[str], Awaitable[str]]


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429 or exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


class SearchConsoleClient:
    """Google Search Console REST client with retrying requests"""

    def __init__(
        self,
        token_provider: TokenProvider,
        http_client: Optional[httpx.AsyncClient] = None,
        max_attempts: int = 3,
    ):
        self.token_provider = token_provider
        self.http_client = http_client or httpx.AsyncClient(timeout=30)
        self.max_attempts = max_attempts

    async def aclose(self) -> None:
        await self.http_client.aclose()

    async def list_sites(self, user_id: str) -> List[Dict[str, Any]]:
        data = await self._request(user_id, "GET", f"{WEBMASTERS_BASE}/sites")
        return data.get("siteEntry", [])

    async def fetch_search_analytics(
        self,
        user_id: str,
        site_url: str,
        start_date: str,
        end_date: str,
        dimensions: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch every row for the date range, paging by ROW_LIMIT"""
        url = f"{WEBMASTERS_BASE}/sites/{quote(site_url, safe='')}/searchAnalytics/query"
        rows: List[Dict[str, Any]] = []
        start_row = 0
        while True:
            body = {
                "startDate": start_date,
                "endDate": end_date,
                "dimensions": dimensions or DEFAULT_DIMENSIONS,
                "rowLimit": ROW_LIMIT,
                "startRow": start_row,
            }
            data = await self._request(user_id, "POST", url, json=body)
            page = data.get("rows", [])
            rows.extend(page)
            if len(page) < ROW_LIMIT:
                break
            start_row += ROW_LIMIT

        logger.info("Fetched search analytics", site_url=site_url, rows=len(rows), start_date=start_date, end_date=end_date)
        return rows

    async def inspect_url(self, user_id: str, site_url: str, url: str) -> Dict[str, Any]:
        body = {"inspectionUrl": url, "siteUrl": site_url}
        data = await self._request(user_id, "POST", INSPECTION_URL, json=body)
        return data.get("inspectionResult", {})

    async def _request(self, user_id: str, method: str, url: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        start_time = time.time()
        token = await self.token_provider(user_id)
        headers = {"Authorization": f"Bearer {token}"}

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=0.5),
                retry=retry_if_exception(_is_retryable),
            ):
                with attempt:
                    response = await self.http_client.request(method, url, headers=headers, json=json)
                    response.raise_for_status()
        except RetryError as e:
            raise self._wrap(e.last_attempt.exception()) from e
        except httpx.HTTPError as e:
            raise self._wrap(e) from e
        finally:
            metrics.record_latency("gsc.request", (time.time() - start_time) * 1000)

        return response.json()

    def _wrap(self, exc: Optional[BaseException]) -> SearchConsoleError:
        if isinstance(exc, httpx.HTTPStatusError):
            return SearchConsoleError(
                f"Search Console request failed with {exc.response.status_code}",
                status_code=exc.response.status_code,
            )
        return SearchConsoleError(f"Search Console request failed: {exc}")
