"""
Workmate — Per-dimension compatibility scorers.

Each scorer compares a *subject* (side A) with a *candidate* (side B) on one
dimension and returns a value in [0, 1].  Scores are computed from the
subject's perspective and are not guaranteed to be symmetric.

Dimensions
----------
  age              mutual age-range fit, falling back to raw age gap
  interests        semantic similarity of the interest lists
  availability     Jaccard index of available weekly hour slots
  occupation       semantic similarity of occupation + description
  work_date_ratio  Gaussian closeness of the task/social ratio
  location         great-circle distance against the tighter radius
  work_style       Gaussian closeness of chat ratio and interaction level

Missing profile fields never raise: every scorer has a neutral default.
The two embedding-backed scorers also fall back to their neutral default
when the embedding backend fails or exceeds its deadline.
"""

from __future__ import annotations

import asyncio
import math
from typing import Any

import structlog

from app.config import get_settings
from app.schemas.match import HOURS_PER_WEEK, AgePreference, UserMatchProfile
from app.services.embedding_service import EmbeddingBackendError
from app.utils.similarity import (
    cosine_similarity,
    gaussian_closeness,
    haversine_distance_km,
)

logger = structlog.get_logger("workmate.scoring_service")

# ──────────────────────────────────────────────────────────────────────────────
# Constants
# ──────────────────────────────────────────────────────────────────────────────

_AGE_MISSING = 0.3
_AGE_DEFAULT_SPREAD = 5
_AGE_MUTUAL = 1.0
_AGE_ONE_WAY = 0.7

_INTERESTS_BOTH_EMPTY = 0.5
_INTERESTS_ONE_EMPTY = 0.2
_INTERESTS_FLOOR = 0.3
# (exclusive lower bound on cosine similarity, score)
_INTERESTS_BUCKETS: tuple[tuple[float, float], ...] = (
    (0.7, 1.0),
    (0.5, 0.85),
    (0.3, 0.7),
    (0.15, 0.55),
)

_MIN_ACTIONABLE_OVERLAP = 3

_OCCUPATION_MISSING = 0.5
_OCCUPATION_FLOOR = 0.3
_OCCUPATION_BUCKETS: tuple[tuple[float, float], ...] = (
    (0.6, 1.0),
    (0.4, 0.8),
    (0.2, 0.6),
)

_RATIO_DEFAULT = 50.0
_RATIO_SCALE = 25.0

_LOCATION_MISSING = 0.3
_DEFAULT_MAX_DISTANCE_KM = 50.0
_LOCATION_DECAY = 3.0

_WORK_STYLE_MISSING = 0.5
_WORK_STYLE_CHAT_WEIGHT = 0.6
_WORK_STYLE_INTERACTION_WEIGHT = 0.4


class ScoringService:
    """Compute the seven compatibility sub-scores for a subject/candidate pair.

    Parameters
    ----------
    embedder:
        A ``TextEmbedder`` (anything with ``async embed(text)``).
    embedding_timeout:
        Per-call deadline in seconds for embedding lookups; defaults to
        ``EMBEDDING_TIMEOUT_SECONDS``.
    """

    def __init__(self, embedder: Any, embedding_timeout: float | None = None) -> None:
        self.embedder = embedder
        if embedding_timeout is None:
            embedding_timeout = get_settings().EMBEDDING_TIMEOUT_SECONDS
        self.embedding_timeout = embedding_timeout

    async def score_all(
        self, subject: UserMatchProfile, candidate: UserMatchProfile
    ) -> dict[str, float]:
        """Return the full breakdown keyed by dimension name."""
        interests, occupation = await asyncio.gather(
            self.score_interests(subject, candidate),
            self.score_occupation(subject, candidate),
        )
        return {
            "age": self.score_age(subject, candidate),
            "interests": interests,
            "availability": self.score_availability(subject, candidate),
            "occupation": occupation,
            "work_date_ratio": self.score_work_date_ratio(subject, candidate),
            "location": self.score_location(subject, candidate),
            "work_style": self.score_work_style(subject, candidate),
        }

    # ── Age ──────────────────────────────────────────────────────────────

    def score_age(self, a: UserMatchProfile, b: UserMatchProfile) -> float:
        if a.age is None or b.age is None:
            return _AGE_MISSING

        range_a = self._acceptable_ages(a)
        range_b = self._acceptable_ages(b)
        a_accepts_b = range_a.contains(b.age)
        b_accepts_a = range_b.contains(a.age)

        if a_accepts_b and b_accepts_a:
            return _AGE_MUTUAL
        if a_accepts_b or b_accepts_a:
            return _AGE_ONE_WAY

        gap = abs(a.age - b.age)
        if gap <= 5:
            return 0.8
        if gap <= 10:
            return 0.5
        return 0.2

    @staticmethod
    def _acceptable_ages(user: UserMatchProfile) -> AgePreference:
        if user.age_preference is not None:
            return user.age_preference
        return AgePreference(
            min=user.age - _AGE_DEFAULT_SPREAD,
            max=user.age + _AGE_DEFAULT_SPREAD,
        )

    # ── Interests ────────────────────────────────────────────────────────

    async def score_interests(self, a: UserMatchProfile, b: UserMatchProfile) -> float:
        text_a = self._interests_text(a)
        text_b = self._interests_text(b)
        if not text_a and not text_b:
            return _INTERESTS_BOTH_EMPTY
        if not text_a or not text_b:
            return _INTERESTS_ONE_EMPTY

        similarity = await self._semantic_similarity(text_a, text_b, "interests")
        if similarity is None:
            return _INTERESTS_BOTH_EMPTY

        for threshold, score in _INTERESTS_BUCKETS:
            if similarity > threshold:
                return score
        return max(similarity, _INTERESTS_FLOOR)

    @staticmethod
    def _interests_text(user: UserMatchProfile) -> str:
        # Sorted so that equal sets always produce the same cache key
        cleaned = sorted({i.strip() for i in user.interests if i and i.strip()})
        return ", ".join(cleaned)

    # ── Availability ─────────────────────────────────────────────────────

    def score_availability(self, a: UserMatchProfile, b: UserMatchProfile) -> float:
        slots_a = self._available_slots(a)
        slots_b = self._available_slots(b)
        if slots_a is None or slots_b is None:
            return 0.0

        union = slots_a | slots_b
        if not union:
            return 0.0
        overlap = slots_a & slots_b
        jaccard = len(overlap) / len(union)
        if len(overlap) < _MIN_ACTIONABLE_OVERLAP:
            jaccard *= 0.5
        return jaccard

    @staticmethod
    def _available_slots(user: UserMatchProfile) -> set[int] | None:
        if user.availability is None or len(user.availability) != HOURS_PER_WEEK:
            return None
        return {i for i, value in enumerate(user.availability) if value and value > 0}

    # ── Occupation ───────────────────────────────────────────────────────

    async def score_occupation(self, a: UserMatchProfile, b: UserMatchProfile) -> float:
        text_a = self._occupation_text(a)
        text_b = self._occupation_text(b)
        if not text_a or not text_b:
            return _OCCUPATION_MISSING

        similarity = await self._semantic_similarity(text_a, text_b, "occupation")
        if similarity is None:
            return _OCCUPATION_MISSING

        for threshold, score in _OCCUPATION_BUCKETS:
            if similarity > threshold:
                return score
        return _OCCUPATION_FLOOR

    @staticmethod
    def _occupation_text(user: UserMatchProfile) -> str:
        return f"{user.occupation or ''} {user.occupation_description or ''}".strip().lower()

    # ── Work / social ratio ──────────────────────────────────────────────

    def score_work_date_ratio(self, a: UserMatchProfile, b: UserMatchProfile) -> float:
        ratio_a = a.work_date_ratio if a.work_date_ratio is not None else _RATIO_DEFAULT
        ratio_b = b.work_date_ratio if b.work_date_ratio is not None else _RATIO_DEFAULT
        return gaussian_closeness(ratio_a, ratio_b, _RATIO_SCALE)

    # ── Location ─────────────────────────────────────────────────────────

    def score_location(self, a: UserMatchProfile, b: UserMatchProfile) -> float:
        if a.location is None or b.location is None:
            return _LOCATION_MISSING

        distance = haversine_distance_km(
            a.location.lat, a.location.lng, b.location.lat, b.location.lng
        )
        max_dist = min(self._radius(a), self._radius(b))
        if distance > max_dist:
            return 0.0
        return math.exp(-_LOCATION_DECAY * (distance / max_dist) ** 2)

    @staticmethod
    def _radius(user: UserMatchProfile) -> float:
        if user.max_distance_km is None or user.max_distance_km <= 0:
            return _DEFAULT_MAX_DISTANCE_KM
        return user.max_distance_km

    # ── Work style ───────────────────────────────────────────────────────

    def score_work_style(self, a: UserMatchProfile, b: UserMatchProfile) -> float:
        if a.work_vibe is None or b.work_vibe is None:
            return _WORK_STYLE_MISSING
        chat = gaussian_closeness(
            a.work_vibe.work_chat_ratio, b.work_vibe.work_chat_ratio, _RATIO_SCALE
        )
        interaction = gaussian_closeness(
            a.work_vibe.interaction_level, b.work_vibe.interaction_level, _RATIO_SCALE
        )
        return chat * _WORK_STYLE_CHAT_WEIGHT + interaction * _WORK_STYLE_INTERACTION_WEIGHT

    # ── Embedding helper ─────────────────────────────────────────────────

    async def _semantic_similarity(
        self, text_a: str, text_b: str, dimension: str
    ) -> float | None:
        """Cosine similarity of two texts, or None if the backend failed.

        A length mismatch between the two vectors is a programming error and
        propagates as ``DimensionMismatchError``.
        """
        try:
            vec_a, vec_b = await asyncio.wait_for(
                asyncio.gather(self.embedder.embed(text_a), self.embedder.embed(text_b)),
                timeout=self.embedding_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "embedding_timeout",
                dimension=dimension,
                timeout=self.embedding_timeout,
            )
            return None
        except EmbeddingBackendError as exc:
            logger.warning("embedding_unavailable", dimension=dimension, error=str(exc))
            return None
        return cosine_similarity(vec_a, vec_b)
