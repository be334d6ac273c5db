"""Shared pytest fixtures for Workmate tests."""
import asyncio
import hashlib
import math
from datetime import datetime, timezone

import numpy as np
import pytest

from app.models.user import User
from app.schemas.match import (
    HOURS_PER_WEEK,
    AgePreference,
    GeoPoint,
    UserMatchProfile,
    WorkVibe,
)
from app.services.embedding_service import EmbeddingCache, TextEmbedder

FAKE_DIM = 16


class FakeSentenceModel:
    """Deterministic bag-of-words stand-in for a sentence-transformers model."""

    def __init__(self, dim: int = FAKE_DIM):
        self.dim = dim
        self.calls: list[str] = []

    def encode(self, text, normalize_embeddings=True):
        self.calls.append(text)
        vec = np.zeros(self.dim)
        for token in text.lower().replace(",", " ").split():
            h = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16)
            vec[h % self.dim] += 1.0
        return vec


class StubEmbedder:
    """Embedder returning preset vectors; unknown text raises KeyError."""

    def __init__(self, vectors: dict, delay: float = 0.0):
        self.vectors = vectors
        self.delay = delay
        self.calls: list[str] = []

    async def embed(self, text):
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.vectors[text]


def unit_pair(similarity: float) -> tuple[tuple, tuple]:
    """Two 2-D unit vectors whose cosine similarity is ``similarity``."""
    return (1.0, 0.0), (similarity, math.sqrt(1.0 - similarity ** 2))


def office_hours(start: int = 9, end: int = 17, days: int = 5) -> list[float]:
    """Weekly availability with the given hours set on the first ``days`` days."""
    slots = [0.0] * HOURS_PER_WEEK
    for day in range(days):
        for hour in range(start, end):
            slots[day * 24 + hour] = 1.0
    return slots


def make_profile(uid: str, **overrides) -> UserMatchProfile:
    """A fully populated profile; override or null out fields per test."""
    fields = {
        "uid": uid,
        "display_name": uid.title(),
        "age": 28,
        "age_preference": AgePreference(min=24, max=34),
        "interests": {"hiking", "coffee", "python"},
        "availability": office_hours(),
        "occupation": "Software Engineer",
        "occupation_description": "Builds web applications",
        "work_date_ratio": 60.0,
        "location": GeoPoint(lat=10.7769, lng=106.7009),
        "max_distance_km": 20.0,
        "work_vibe": WorkVibe(work_chat_ratio=30.0, interaction_level=40.0),
    }
    fields.update(overrides)
    return UserMatchProfile(**fields)


@pytest.fixture
def fake_model():
    return FakeSentenceModel()


@pytest.fixture
def text_embedder(fake_model):
    return TextEmbedder(
        model_name="fake-model",
        dimension=FAKE_DIM,
        cache=EmbeddingCache(capacity=64),
        model_factory=lambda name: fake_model,
        max_retries=1,
    )


@pytest.fixture
def subject():
    return make_profile("subject")


def make_user_row(uid: str = "u1", **overrides):
    """A stored ``User`` row with every profile column populated."""
    fields = dict(
        id=uid,
        email=f"{uid}@example.com",
        display_name=uid.upper(),
        age=31,
        age_pref_min=27,
        age_pref_max=38,
        interests=["climbing", "jazz"],
        availability=office_hours(),
        occupation="Nurse",
        occupation_description="ICU night shifts",
        work_date_ratio=40.0,
        latitude=21.0285,
        longitude=105.8542,
        max_distance_km=15.0,
        work_chat_ratio=20.0,
        interaction_level=70.0,
        created_at=datetime(2026, 1, 5, tzinfo=timezone.utc),
        updated_at=None,
        is_active=True,
    )
    fields.update(overrides)
    return User(**fields)
