from enum import Enum
from typing import Iterable, List

from pydantic import BaseModel

from searchmind.domain.models.search_data import QueryPagePerformance
from searchmind.domain.scoring.ctr import expected_ctr, round_half_up

MIN_RANK = 7
MAX_RANK = 20
MIN_IMPRESSIONS = 100
TARGET_RANK = 5


class Difficulty(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


DIFFICULTY_DIVISOR = {
    Difficulty.LOW: 1,
    Difficulty.MEDIUM: 2,
    Difficulty.HIGH: 3,
}


class StrikingDistanceOpportunity(BaseModel):
    query: str
    page: str
    position: float
    impressions: int
    observed_ctr: float
    traffic_potential: int
    difficulty: Difficulty
    priority_score: float


def estimate_difficulty(position: float, query: str) -> Difficulty:
    if position <= 10:
        return Difficulty.LOW
    if position <= 15 or len(query.split()) <= 6:
        return Difficulty.MEDIUM
    return Difficulty.HIGH


def find_striking_distance(rows: Iterable[QueryPagePerformance]) -> List[StrikingDistanceOpportunity]:
    """Queries ranked 7-20 that could gain clicks by reaching the top five"""
    target_ctr = expected_ctr(TARGET_RANK)
    opportunities = []
    for row in rows:
        if not MIN_RANK <= row.position <= MAX_RANK or row.impressions < MIN_IMPRESSIONS:
            continue
        traffic_potential = round_half_up(row.impressions * (target_ctr - row.ctr))
        difficulty = estimate_difficulty(row.position, row.query)
        opportunities.append(StrikingDistanceOpportunity(
            query=row.query,
            page=row.page,
            position=row.position,
            impressions=row.impressions,
            observed_ctr=row.ctr,
            traffic_potential=traffic_potential,
            difficulty=difficulty,
            priority_score=traffic_potential / DIFFICULTY_DIVISOR[difficulty],
        ))
    opportunities.sort(key=lambda o: o.priority_score, reverse=True)
    return opportunities
