import asyncio
import json
from datetime import date

import httpx

from searchmind.domain.models.search_data import PropertyRecord, SearchAnalyticsRow, UrlMetric
from searchmind.domain.sync.data_sync import DataSyncJob, to_analytics_row
from searchmind.infrastructure.gsc.search_console_client import SearchConsoleClient
from searchmind.infrastructure.persistence.analytics_store import AnalyticsStore

TODAY = date(2024, 6, 10)

ROWS = [
    {"keys": ["2024-06-05", "seo audit", "https://example.com/audit", "usa", "MOBILE"],
     "clicks": 12, "impressions": 300, "ctr": 0.04, "position": 4.2},
    {"keys": ["2024-06-06", "seo audit", "https://example.com/audit", "usa", "MOBILE"],
     "clicks": 8, "impressions": 250, "ctr": 0.032, "position": 4.8},
]


async def token_provider(user_id):
    return "token"


def make_job(handler):
    store = AnalyticsStore()
    client = SearchConsoleClient(
        token_provider,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        max_attempts=1,
    )
    return DataSyncJob(store, client), store


def test_to_analytics_row_maps_dimension_keys():
    row = to_analytics_row("prop-1", {"keys": ["2024-06-05", "q", "https://example.com/"], "clicks": 3, "impressions": 10})
    assert row.date == date(2024, 6, 5)
    assert (row.query, row.page) == ("q", "https://example.com/")
    assert (row.country, row.device) == ("unknown", "DESKTOP")
    assert row.clicks == 3
    assert row.ctr == 0.0


def test_sync_upserts_rows_and_scores_urls():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"rows": ROWS})

    async def run():
        job, store = make_job(handler)
        await store.register_property(PropertyRecord(id="prop-1", site_url="https://example.com/", user_id="user-1"))
        result = await job.run("prop-1", today=TODAY)
        return result, await store.url_metrics("prop-1")

    result, url_metrics = asyncio.run(run())

    assert result.success
    assert result.rows == 2
    assert (result.start_date, result.end_date) == (date(2024, 6, 4), date(2024, 6, 7))
    assert json.loads(requests[0].content)["startDate"] == "2024-06-04"
    assert [m.url for m in url_metrics] == ["https://example.com/audit"]
    assert url_metrics[0].clicks_30d == 20


def test_window_can_be_overridden():
    async def run():
        job, store = make_job(lambda request: httpx.Response(200, json={}))
        await store.register_property(PropertyRecord(id="prop-1", site_url="https://example.com/", user_id="user-1"))
        return await job.run("prop-1", days=30, lag_days=0, today=TODAY)

    result = asyncio.run(run())
    assert (result.start_date, result.end_date) == (date(2024, 5, 11), TODAY)
    assert result.rows == 0


def test_unknown_property_is_reported_not_raised():
    job, _ = make_job(lambda request: httpx.Response(200, json={}))
    result = asyncio.run(job.run("missing", today=TODAY))
    assert not result.success
    assert result.error == "Unknown property 'missing'"


def test_fetch_errors_are_captured_per_property():
    def handler(request):
        return httpx.Response(403)

    async def run():
        job, store = make_job(handler)
        await store.register_property(PropertyRecord(id="prop-1", site_url="https://a.example/", user_id="user-1"))
        await store.register_property(PropertyRecord(id="prop-2", site_url="https://b.example/"))
        return await job.run_all(today=TODAY)

    first, second = asyncio.run(run())
    assert first.error == "Search Console request failed with 403"
    assert second.error == "Property 'prop-2' has no owner credentials"


class TestAnalyticsStore:
    @staticmethod
    def row(day, clicks, page="https://example.com/a", query="q"):
        return SearchAnalyticsRow(property_id="prop-1", date=day, query=query, page=page, clicks=clicks, impressions=100)

    def test_upsert_replaces_rows_with_the_same_key(self):
        async def run():
            store = AnalyticsStore()
            await store.bulk_upsert_analytics([self.row(date(2024, 6, 5), 3)])
            await store.bulk_upsert_analytics([self.row(date(2024, 6, 5), 7), self.row(date(2024, 6, 6), 1)])
            return await store.query_analytics("prop-1", today=TODAY)

        rows = asyncio.run(run())
        assert [(r.date.day, r.clicks) for r in rows] == [(6, 1), (5, 7)]

    def test_query_filters_by_page_and_window(self):
        async def run():
            store = AnalyticsStore()
            await store.bulk_upsert_analytics([
                self.row(date(2024, 6, 5), 3),
                self.row(date(2024, 6, 5), 4, page="https://example.com/b"),
                self.row(date(2024, 3, 1), 9),
            ])
            return await store.query_analytics("prop-1", url="https://example.com/a", days=30, today=TODAY)

        rows = asyncio.run(run())
        assert [r.clicks for r in rows] == [3]

    def test_url_metrics_are_ordered_by_priority(self):
        async def run():
            store = AnalyticsStore()
            for url, score in [("/low", 0.2), ("/high", 0.9), ("/mid", 0.6)]:
                await store.upsert_url_metric(UrlMetric(property_id="prop-1", url=url, seo_priority_score=score))
            return await store.url_metrics("prop-1", min_score=0.5)

        assert [m.url for m in asyncio.run(run())] == ["/high", "/mid"]
