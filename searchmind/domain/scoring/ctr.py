"""CTR anomaly detection against an expected click-through curve."""

import math
from collections import defaultdict
from enum import Enum
from typing import Dict, Iterable, List, Tuple

from pydantic import BaseModel

from searchmind.domain.models.search_data import QueryPagePerformance, SearchAnalyticsRow

# Expected CTR for organic ranks 1-20
EXPECTED_CTR_BY_RANK: Dict[int, float] = {
    1: 0.317,
    2: 0.247,
    3: 0.185,
    4: 0.136,
    5: 0.095,
    6: 0.062,
    7: 0.042,
    8: 0.031,
    9: 0.028,
    10: 0.025,
    11: 0.020,
    12: 0.018,
    13: 0.016,
    14: 0.014,
    15: 0.012,
    16: 0.010,
    17: 0.008,
    18: 0.007,
    19: 0.005,
    20: 0.004,
}
DEFAULT_EXPECTED_CTR = 0.003

MIN_IMPRESSIONS = 100
ANOMALY_THRESHOLD = 0.20


class AnomalyClassification(str, Enum):
    TITLE_META_ISSUE = "TITLE_META_ISSUE"
    RANK_RELEVANCE_ISSUE = "RANK_RELEVANCE_ISSUE"
    SERP_FEATURE_OPPORTUNITY = "SERP_FEATURE_OPPORTUNITY"
    NORMAL_VARIATION = "NORMAL_VARIATION"


class Severity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class CtrAnomaly(BaseModel):
    query: str
    page: str
    impressions: int
    position: float
    observed_ctr: float
    expected_ctr: float
    deviation: float
    classification: AnomalyClassification
    severity: Severity
    impact: int


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero"""
    return int(math.floor(abs(value) + 0.5)) * (1 if value >= 0 else -1)


def expected_ctr(position: float) -> float:
    rank = max(1, round_half_up(position))
    return EXPECTED_CTR_BY_RANK.get(rank, DEFAULT_EXPECTED_CTR)


def raw_ctr_deviation(observed_ctr: float, position: float) -> float:
    """Relative deviation of observed CTR from the expected CTR at this rank"""
    expected = expected_ctr(position)
    return (observed_ctr - expected) / expected


def ctr_deviation(observed_ctr: float, position: float) -> float:
    """Deviation as reported, rounded to 4 decimals"""
    return round(raw_ctr_deviation(observed_ctr, position), 4)


def classify_ctr_anomaly(deviation: float, position: float, observed_ctr: float) -> AnomalyClassification:
    if deviation < -ANOMALY_THRESHOLD:
        if position < 5 and observed_ctr < 0.03:
            return AnomalyClassification.TITLE_META_ISSUE
        return AnomalyClassification.RANK_RELEVANCE_ISSUE
    if deviation > ANOMALY_THRESHOLD:
        return AnomalyClassification.SERP_FEATURE_OPPORTUNITY
    return AnomalyClassification.NORMAL_VARIATION


def ctr_severity(deviation: float) -> Severity:
    magnitude = abs(deviation)
    if magnitude > 0.50:
        return Severity.HIGH
    if magnitude > 0.30:
        return Severity.MEDIUM
    return Severity.LOW


def aggregate_rows(rows: Iterable[SearchAnalyticsRow]) -> List[QueryPagePerformance]:
    """Collapse daily rows into per (query, page) totals with weighted position"""
    totals: Dict[Tuple[str, str], Dict[str, float]] = defaultdict(
        lambda: {"clicks": 0, "impressions": 0, "weighted_position": 0.0}
    )
    for row in rows:
        bucket = totals[(row.query, row.page)]
        bucket["clicks"] += row.clicks
        bucket["impressions"] += row.impressions
        bucket["weighted_position"] += row.position * row.impressions

    aggregated = []
    for (query, page), bucket in totals.items():
        impressions = int(bucket["impressions"])
        aggregated.append(QueryPagePerformance(
            query=query,
            page=page,
            clicks=int(bucket["clicks"]),
            impressions=impressions,
            ctr=bucket["clicks"] / impressions if impressions else 0.0,
            position=bucket["weighted_position"] / impressions if impressions else 0.0,
        ))
    return aggregated


def detect_ctr_anomalies(rows: Iterable[QueryPagePerformance]) -> List[CtrAnomaly]:
    """Flag (query, page) pairs whose CTR deviates more than 20% from expectation"""
    anomalies = []
    for row in rows:
        if row.impressions < MIN_IMPRESSIONS:
            continue
        # Thresholds apply to the exact deviation; the rounded one is reported
        raw = raw_ctr_deviation(row.ctr, row.position)
        if abs(raw) <= ANOMALY_THRESHOLD:
            continue
        deviation = round(raw, 4)
        expected = expected_ctr(row.position)
        anomalies.append(CtrAnomaly(
            query=row.query,
            page=row.page,
            impressions=row.impressions,
            position=row.position,
            observed_ctr=row.ctr,
            expected_ctr=expected,
            deviation=deviation,
            classification=classify_ctr_anomaly(raw, row.position, row.ctr),
            severity=ctr_severity(raw),
            impact=round_half_up(row.impressions * abs(deviation) * expected),
        ))
    anomalies.sort(key=lambda a: a.impact, reverse=True)
    return anomalies
