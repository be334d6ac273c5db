import math
from typing import Sequence

import numpy as np

EARTH_RADIUS_KM = 6371.0


class DimensionMismatchError(ValueError):
    """Raised when two vectors of different length are compared."""


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity clamped to [0, 1].

    Opposite-direction vectors count as "no similarity", so negative values
    are floored at 0.  A zero vector on either side also yields 0.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(
            f"Cannot compare vectors of length {len(a)} and {len(b)}"
        )
    vec_a = np.asarray(a, dtype=float)
    vec_b = np.asarray(b, dtype=float)
    norm = float(np.linalg.norm(vec_a) * np.linalg.norm(vec_b))
    if norm == 0.0:
        return 0.0
    similarity = float(np.dot(vec_a, vec_b)) / norm
    return max(0.0, min(1.0, similarity))


def haversine_distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two lat/lng points in kilometres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    h = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def gaussian_closeness(a: float, b: float, scale: float) -> float:
    """exp(-(|a - b| / scale)^2): 1.0 for equal values, decaying smoothly."""
    if scale <= 0:
        raise ValueError(f"scale must be positive, got {scale}")
    return math.exp(-((abs(a - b) / scale) ** 2))
