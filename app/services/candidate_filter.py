"""
Workmate — Candidate eligibility filter.

Removes from a candidate pool everyone the subject must not be shown:

  * the subject themself,
  * users already connected with the subject,
  * users whose exclusion window with the subject has not yet expired.

Pair records are unordered, so the subject may appear on either side.
Expired exclusion records are simply ignored.

Also owns the escalation policy for new exclusion windows: each repeat of
an undone pairing doubles the cooldown (2, 4, 8, 16, 32 days by default).
``CandidateRepository.record_pass`` applies it when a user passes on a
candidate.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable

import structlog

from app.config import get_settings
from app.schemas.match import ConnectionRecord, ExclusionRecord, UserMatchProfile

logger = structlog.get_logger("workmate.candidate_filter")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CandidateFilter:
    """Filter a candidate pool down to users eligible for ranking."""

    def filter(
        self,
        subject_id: str,
        candidates: Iterable[UserMatchProfile],
        connections: Iterable[ConnectionRecord] = (),
        exclusions: Iterable[ExclusionRecord] = (),
        now: datetime | None = None,
    ) -> list[UserMatchProfile]:
        now = now or _utcnow()

        connected = {
            other
            for record in connections
            if (other := record.other(subject_id)) is not None
        }
        cooling_down = {
            other
            for record in exclusions
            if record.is_active(now)
            and (other := record.other(subject_id)) is not None
        }

        eligible: list[UserMatchProfile] = []
        dropped = {"self": 0, "connected": 0, "excluded": 0}
        for candidate in candidates:
            if candidate.uid == subject_id:
                dropped["self"] += 1
            elif candidate.uid in connected:
                dropped["connected"] += 1
            elif candidate.uid in cooling_down:
                dropped["excluded"] += 1
            else:
                eligible.append(candidate)

        logger.debug(
            "candidates_filtered",
            subject_id=subject_id,
            eligible=len(eligible),
            **{f"dropped_{reason}": n for reason, n in dropped.items()},
        )
        return eligible


def next_exclusion(
    user_a: str,
    user_b: str,
    previous: ExclusionRecord | None = None,
    now: datetime | None = None,
) -> ExclusionRecord:
    """Build the exclusion window that follows an undone pairing.

    The level starts at 1 and grows by one per repeat up to
    ``EXCLUSION_MAX_LEVEL``; the window lasts ``EXCLUSION_BASE_DAYS ** level``
    days from ``now``.
    """
    settings = get_settings()
    now = now or _utcnow()
    level = 1 if previous is None else min(previous.level + 1, settings.EXCLUSION_MAX_LEVEL)
    expires_at = now + timedelta(days=settings.EXCLUSION_BASE_DAYS ** level)

    logger.info(
        "exclusion_window_created",
        user_a=user_a,
        user_b=user_b,
        level=level,
        expires_at=expires_at.isoformat(),
    )
    return ExclusionRecord(user_a=user_a, user_b=user_b, expires_at=expires_at, level=level)
