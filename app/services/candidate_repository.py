"""
Workmate — Storage adapter for ranking requests.

Loads the subject, the candidate pool and the subject's connection and
exclusion records, and maps ORM rows onto the engine's read-only
``UserMatchProfile`` view.  Pair tables are queried with the subject in
either column.

Stored values are not trusted: a field that fails validation (a latitude
of 95, a ratio of 150) is logged and dropped, so the scorers fall back to
their neutral default for that field instead of losing the whole user.

Also the single writer of exclusion windows (``record_pass``), so the
read and write sides of the ``exclusions`` table live together.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.match import Connection, Exclusion
from app.models.user import User
from app.schemas.match import ConnectionRecord, ExclusionRecord, UserMatchProfile
from app.services.candidate_filter import next_exclusion

logger = structlog.get_logger("workmate.candidate_repository")


def _pair(*fields: Any, keys: tuple[str, str]) -> dict[str, Any] | None:
    """Nested value object as a dict, or None unless both halves are stored."""
    if any(f is None for f in fields):
        return None
    return dict(zip(keys, fields))


def to_match_profile(user: User) -> UserMatchProfile:
    """Map a ``User`` row to the engine's profile view.

    Invalid fields are reset to their defaults (``None`` or an empty set)
    and reported with a ``profile_fields_invalid`` warning.
    """
    fields: dict[str, Any] = {
        "uid": user.id,
        "display_name": user.display_name,
        "age": user.age,
        "age_preference": _pair(user.age_pref_min, user.age_pref_max, keys=("min", "max")),
        "interests": user.interests or [],
        "availability": user.availability,
        "occupation": user.occupation,
        "occupation_description": user.occupation_description,
        "work_date_ratio": user.work_date_ratio,
        "location": _pair(user.latitude, user.longitude, keys=("lat", "lng")),
        "max_distance_km": user.max_distance_km,
        "work_vibe": _pair(
            user.work_chat_ratio,
            user.interaction_level,
            keys=("work_chat_ratio", "interaction_level"),
        ),
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }
    try:
        return UserMatchProfile(**fields)
    except ValidationError as exc:
        invalid = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
        if "uid" in invalid:
            raise
        logger.warning("profile_fields_invalid", user_id=user.id, fields=invalid)
        for name in invalid:
            fields.pop(name, None)
        return UserMatchProfile(**fields)


class CandidateRepository:
    """Queries backing the ``/match`` endpoints."""

    def __init__(self, db_session: AsyncSession) -> None:
        self.db = db_session

    async def get_profile(self, user_id: str) -> UserMatchProfile | None:
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            return None
        return to_match_profile(user)

    async def list_candidates(self) -> list[UserMatchProfile]:
        """All active users, in a stable (id) order."""
        result = await self.db.execute(
            select(User).where(User.is_active.is_(True)).order_by(User.id)
        )
        return [to_match_profile(user) for user in result.scalars().all()]

    async def get_connections(self, user_id: str) -> list[ConnectionRecord]:
        result = await self.db.execute(
            select(Connection).where(
                or_(Connection.user_a_id == user_id, Connection.user_b_id == user_id)
            )
        )
        return [
            ConnectionRecord(user_a=c.user_a_id, user_b=c.user_b_id)
            for c in result.scalars().all()
        ]

    async def get_exclusions(self, user_id: str) -> list[ExclusionRecord]:
        result = await self.db.execute(
            select(Exclusion).where(
                or_(Exclusion.user_a_id == user_id, Exclusion.user_b_id == user_id)
            )
        )
        return [_to_exclusion_record(e) for e in result.scalars().all()]

    async def record_pass(
        self, user_id: str, candidate_id: str, now: datetime | None = None
    ) -> ExclusionRecord:
        """Open (or escalate) the exclusion window after ``user_id`` passes on
        ``candidate_id``.

        The pair is stored in sorted order so that one row exists per pair
        whichever user passed.  A previous row, expired or not, raises the
        escalation level.
        """
        user_a, user_b = sorted((user_id, candidate_id))
        result = await self.db.execute(
            select(Exclusion).where(
                Exclusion.user_a_id == user_a, Exclusion.user_b_id == user_b
            )
        )
        row = result.scalar_one_or_none()
        previous = _to_exclusion_record(row) if row is not None else None

        record = next_exclusion(user_a, user_b, previous=previous, now=now)
        if row is None:
            row = Exclusion(user_a_id=user_a, user_b_id=user_b)
            self.db.add(row)
        row.level = record.level
        row.expires_at = record.expires_at
        await self.db.flush()
        return record


def _to_exclusion_record(row: Exclusion) -> ExclusionRecord:
    return ExclusionRecord(
        user_a=row.user_a_id,
        user_b=row.user_b_id,
        expires_at=row.expires_at,
        level=row.level,
    )
