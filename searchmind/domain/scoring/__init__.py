"""
Deterministic search-performance scoring used by the analytic agents.
"""

from searchmind.domain.scoring.ctr import (
    AnomalyClassification,
    CtrAnomaly,
    Severity,
    aggregate_rows,
    classify_ctr_anomaly,
    ctr_severity,
    detect_ctr_anomalies,
    expected_ctr,
)
from searchmind.domain.scoring.velocity import (
    VelocityClass,
    VelocitySignal,
    analyze_ranking_velocity,
    calculate_velocity,
    classify_velocity,
)
from searchmind.domain.scoring.striking_distance import (
    Difficulty,
    StrikingDistanceOpportunity,
    find_striking_distance,
)
from searchmind.domain.scoring.crawl_waste import CrawlWasteFinding, WastePattern, detect_crawl_waste
from searchmind.domain.scoring.priority import calculate_priority_score

__all__ = [
    "AnomalyClassification",
    "CtrAnomaly",
    "Severity",
    "aggregate_rows",
    "classify_ctr_anomaly",
    "ctr_severity",
    "detect_ctr_anomalies",
    "expected_ctr",
    "VelocityClass",
    "VelocitySignal",
    "analyze_ranking_velocity",
    "calculate_velocity",
    "classify_velocity",
    "Difficulty",
    "StrikingDistanceOpportunity",
    "find_striking_distance",
    "CrawlWasteFinding",
    "WastePattern",
    "detect_crawl_waste",
    "calculate_priority_score",
]
