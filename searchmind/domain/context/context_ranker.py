from typing import Optional, Sequence
from datetime import datetime, timedelta, timezone

import numpy as np

SIMILARITY_WEIGHT = 0.8
RECENCY_WEIGHT = 0.2
RECENCY_HORIZON = timedelta(days=30)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either is empty, zero or mismatched"""
    if len(a) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def recency_factor(created_at: datetime, now: Optional[datetime] = None) -> float:
    """Linear decay from 1.0 for a brand new record to 0.0 at thirty days"""
    now = now or datetime.now(timezone.utc)
    age = now - created_at
    return min(1.0, max(0.0, 1.0 - age / RECENCY_HORIZON))


def hybrid_score(similarity: float, recency: float) -> float:
    return SIMILARITY_WEIGHT * similarity + RECENCY_WEIGHT * recency
