from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

HOURS_PER_WEEK = 168

DIMENSIONS: tuple[str, ...] = (
    "age",
    "interests",
    "availability",
    "occupation",
    "work_date_ratio",
    "location",
    "work_style",
)


class AgePreference(BaseModel):
    min: int
    max: int

    def contains(self, age: int) -> bool:
        return self.min <= age <= self.max


class GeoPoint(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)


class WorkVibe(BaseModel):
    work_chat_ratio: float = Field(ge=0.0, le=100.0)
    interaction_level: float = Field(ge=0.0, le=100.0)


class UserMatchProfile(BaseModel):
    """Read-only view of a user as seen by the matching engine."""

    uid: str
    display_name: Optional[str] = None
    age: Optional[int] = None
    age_preference: Optional[AgePreference] = None
    interests: set[str] = Field(default_factory=set)
    # One slot per hour of the week, Monday 00:00 first
    availability: Optional[list[float]] = None
    occupation: Optional[str] = None
    occupation_description: Optional[str] = None
    work_date_ratio: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    location: Optional[GeoPoint] = None
    max_distance_km: Optional[float] = None
    work_vibe: Optional[WorkVibe] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ConnectionRecord(BaseModel):
    """An established mutual connection; the pair is never re-ranked."""

    user_a: str
    user_b: str

    def involves(self, uid: str) -> bool:
        return uid in (self.user_a, self.user_b)

    def other(self, uid: str) -> Optional[str]:
        if uid == self.user_a:
            return self.user_b
        if uid == self.user_b:
            return self.user_a
        return None


class ExclusionRecord(BaseModel):
    """A temporary cooldown after an unsuccessful pairing attempt."""

    user_a: str
    user_b: str
    expires_at: datetime
    level: int = Field(default=1, ge=1)

    @field_validator("expires_at")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        return v if v.tzinfo is not None else v.replace(tzinfo=timezone.utc)

    def other(self, uid: str) -> Optional[str]:
        if uid == self.user_a:
            return self.user_b
        if uid == self.user_b:
            return self.user_a
        return None

    def is_active(self, now: datetime) -> bool:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return self.expires_at > now


class CompatibilityLabel(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"


class MatchScore(BaseModel):
    candidate: UserMatchProfile
    total_score: int = Field(ge=0, le=100)
    compatibility_label: CompatibilityLabel
    breakdown: dict[str, float]


class FindMatchesResponse(BaseModel):
    subject_id: str
    limit: int
    candidate_count: int
    failed_count: int = 0
    matches: list[MatchScore]
