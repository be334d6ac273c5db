"""
Workmate — Candidate ranking engine.

Orchestrates a ranking request:

  1. Filter  — drop the subject, existing connections and users inside an
               active exclusion window (``CandidateFilter``).
  2. Score   — compute every surviving candidate's sub-scores concurrently
               (``ScoringService``) and aggregate them (``Aggregator``).
  3. Rank    — sort by total score, descending, and truncate to ``limit``.

Failures are isolated per candidate: a candidate whose scoring raises is
logged and left out of the ranking instead of failing the whole batch
(unless ``strict`` is enabled, which re-raises for development and tests).

Ordering: ``sorted`` is stable, so candidates with equal totals keep the
order in which they appeared in the candidate pool.  Completion order of
the concurrent scoring tasks never affects the result.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

import structlog

from app.config import get_settings
from app.schemas.match import (
    ConnectionRecord,
    ExclusionRecord,
    MatchScore,
    UserMatchProfile,
)
from app.services.aggregator import Aggregator
from app.services.candidate_filter import CandidateFilter
from app.services.scoring_service import ScoringService

logger = structlog.get_logger("workmate.matching_service")


@dataclass
class RankingResult:
    """Ranked matches plus the bookkeeping the API reports."""

    matches: list[MatchScore] = field(default_factory=list)
    candidate_count: int = 0
    failed_count: int = 0


class MatchingService:
    """Rank a candidate pool by compatibility with a subject user.

    Dependencies are injected at construction so that the service can be
    tested with fakes and shared through FastAPI's dependency graph.

    Parameters
    ----------
    scoring_service:
        ``ScoringService`` producing per-dimension breakdowns.
    aggregator:
        ``Aggregator`` turning a breakdown into a total and a label;
        built from settings when omitted.
    candidate_filter:
        ``CandidateFilter``; a default instance when omitted.
    default_limit:
        Limit used when the caller's limit is missing or invalid.
    strict:
        Re-raise per-candidate scoring errors instead of isolating them.
    """

    def __init__(
        self,
        scoring_service: ScoringService,
        aggregator: Aggregator | None = None,
        candidate_filter: CandidateFilter | None = None,
        default_limit: int | None = None,
        strict: bool | None = None,
    ) -> None:
        settings = get_settings()
        self.scoring_service = scoring_service
        self.aggregator = aggregator or Aggregator.from_settings(settings)
        self.candidate_filter = candidate_filter or CandidateFilter()
        self.default_limit: int = default_limit or settings.MATCH_DEFAULT_LIMIT
        self.strict: bool = settings.STRICT_SCORING if strict is None else strict

        logger.info(
            "matching_service_initialised",
            weights=self.aggregator.weights.as_dict(),
            default_limit=self.default_limit,
            strict=self.strict,
        )

    # ── Public API ────────────────────────────────────────────────────────

    async def rank(
        self,
        subject: UserMatchProfile,
        candidates: Iterable[UserMatchProfile],
        limit: Any = None,
        connections: Iterable[ConnectionRecord] = (),
        exclusions: Iterable[ExclusionRecord] = (),
        now: datetime | None = None,
    ) -> RankingResult:
        """Rank the pool and report how many candidates were scored or failed.

        Parameters
        ----------
        subject:
            The user the ranking is computed for.
        candidates:
            The candidate pool; may include the subject and ineligible users.
        limit:
            Positive integer cap on the result length.  Anything else
            (``None``, zero, negatives, non-numeric values) means the default.
        connections, exclusions:
            The subject's connection and exclusion records.
        now:
            Reference time for exclusion expiry; defaults to the current UTC time.
        """
        log = logger.bind(subject_id=subject.uid)
        effective_limit = self.normalise_limit(limit)

        eligible = self.candidate_filter.filter(
            subject.uid, candidates, connections, exclusions, now=now
        )
        log.info(
            "find_matches_start",
            eligible=len(eligible),
            limit=effective_limit,
        )

        outcomes = await asyncio.gather(
            *(self.calculate_match_score(subject, c) for c in eligible),
            return_exceptions=True,
        )

        scored: list[MatchScore] = []
        failed = 0
        for candidate, outcome in zip(eligible, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError) or self.strict:
                    raise outcome
                failed += 1
                log.warning(
                    "candidate_scoring_failed",
                    candidate_id=candidate.uid,
                    error_type=type(outcome).__name__,
                    error=str(outcome),
                )
                continue
            scored.append(outcome)

        ranked = sorted(scored, key=lambda m: -m.total_score)[:effective_limit]

        log.info(
            "find_matches_complete",
            scored=len(scored),
            failed=failed,
            returned=len(ranked),
            top_score=ranked[0].total_score if ranked else None,
        )
        return RankingResult(ranked, failed_count=failed, candidate_count=len(eligible))

    async def find_matches(
        self,
        subject: UserMatchProfile,
        candidates: Iterable[UserMatchProfile],
        limit: Any = None,
        connections: Iterable[ConnectionRecord] = (),
        exclusions: Iterable[ExclusionRecord] = (),
        now: datetime | None = None,
    ) -> list[MatchScore]:
        """Return at most ``limit`` candidates, best first.  See :meth:`rank`."""
        result = await self.rank(
            subject, candidates, limit, connections, exclusions, now=now
        )
        return result.matches

    async def calculate_match_score(
        self,
        subject: UserMatchProfile,
        candidate: UserMatchProfile,
    ) -> MatchScore:
        """Score one candidate from the subject's point of view."""
        breakdown = await self.scoring_service.score_all(subject, candidate)
        total = self.aggregator.total_score(breakdown)
        label = self.aggregator.label(total)

        logger.debug(
            "match_score_calculated",
            subject_id=subject.uid,
            candidate_id=candidate.uid,
            total_score=total,
            label=label.value,
            breakdown={k: round(v, 4) for k, v in breakdown.items()},
        )
        return MatchScore(
            candidate=candidate,
            total_score=total,
            compatibility_label=label,
            breakdown=breakdown,
        )

    def normalise_limit(self, limit: Any) -> int:
        """Coerce a caller-supplied limit to a positive int or the default."""
        if limit is None or isinstance(limit, bool):
            return self.default_limit
        if isinstance(limit, str):
            try:
                limit = int(limit.strip())
            except ValueError:
                return self.default_limit
        if isinstance(limit, float):
            if not math.isfinite(limit):
                return self.default_limit
            limit = int(limit)
        if not isinstance(limit, int) or limit <= 0:
            return self.default_limit
        return limit
