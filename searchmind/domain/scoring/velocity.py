"""Ranking velocity: average positions gained or lost per day.

Lower positions are better, so a negative velocity is an improvement and a
positive velocity is a decline.
"""

from collections import defaultdict
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from searchmind.domain.models.search_data import RankingObservation

RAPID_DECLINE_THRESHOLD = 0.5
MOMENTUM_BUILD_THRESHOLD = -0.3
MIN_OBSERVATIONS = 8


class VelocityClass(str, Enum):
    RAPID_DECLINE = "RAPID_DECLINE"
    MOMENTUM_BUILD = "MOMENTUM_BUILD"
    DECLINE = "DECLINE"
    IMPROVEMENT = "IMPROVEMENT"
    STABLE = "STABLE"


class VelocitySignal(BaseModel):
    query: str
    page: str
    current_position: float
    velocity_7d: float
    velocity_30d: Optional[float] = None
    classification: VelocityClass
    alert: bool


def raw_velocity(current_position: float, previous_position: float, days: int) -> float:
    if days == 0:
        return 0.0
    return (current_position - previous_position) / days


def calculate_velocity(current_position: float, previous_position: float, days: int) -> float:
    """Velocity rounded to 4 decimals.

    Movements under 0.00005 positions per day round to 0.0 (or -0.0); classify
    with ``raw_velocity`` so they still count as a decline or an improvement.
    """
    return round(raw_velocity(current_position, previous_position, days), 4)


def classify_velocity(velocity: float) -> VelocityClass:
    if velocity > RAPID_DECLINE_THRESHOLD:
        return VelocityClass.RAPID_DECLINE
    if velocity < MOMENTUM_BUILD_THRESHOLD:
        return VelocityClass.MOMENTUM_BUILD
    if velocity > 0:
        return VelocityClass.DECLINE
    if velocity < 0:
        return VelocityClass.IMPROVEMENT
    return VelocityClass.STABLE


def is_alert(classification: VelocityClass) -> bool:
    return classification in (VelocityClass.RAPID_DECLINE, VelocityClass.MOMENTUM_BUILD)


def analyze_ranking_velocity(observations: Iterable[RankingObservation]) -> List[VelocitySignal]:
    """Compute velocity signals per (query, page) from daily position history"""
    history: Dict[Tuple[str, str], List[RankingObservation]] = defaultdict(list)
    for observation in observations:
        history[(observation.query, observation.page)].append(observation)

    signals = []
    for (query, page), series in history.items():
        if len(series) < MIN_OBSERVATIONS:
            continue
        series.sort(key=lambda o: o.date, reverse=True)
        current = series[0].position
        raw_7d = raw_velocity(current, series[7].position, 7)
        velocity_7d = round(raw_7d, 4)
        velocity_30d = None
        if len(series) > 30:
            velocity_30d = calculate_velocity(current, series[30].position, 30)

        classification = classify_velocity(raw_7d)
        signals.append(VelocitySignal(
            query=query,
            page=page,
            current_position=current,
            velocity_7d=velocity_7d,
            velocity_30d=velocity_30d,
            classification=classification,
            alert=is_alert(classification),
        ))
    return signals
