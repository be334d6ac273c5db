"""
Workmate — Matching API

Endpoints for ranking candidate co-workers for a user, scoring a
single pair on demand, and passing on a candidate.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_db
from app.schemas.match import (
    ExclusionRecord,
    FindMatchesResponse,
    MatchScore,
    UserMatchProfile,
)
from app.services.candidate_repository import CandidateRepository
from app.services.embedding_service import TextEmbedder
from app.services.matching_service import MatchingService
from app.services.scoring_service import ScoringService

logger = structlog.get_logger("workmate.api.matching")

router = APIRouter()

# ── Service singletons ────────────────────────────────────────────────────────

_text_embedder: TextEmbedder | None = None
_matching_service: MatchingService | None = None


def get_text_embedder() -> TextEmbedder:
    global _text_embedder
    if _text_embedder is None:
        _text_embedder = TextEmbedder()
    return _text_embedder


def get_matching_service() -> MatchingService:
    global _matching_service
    if _matching_service is None:
        _matching_service = MatchingService(
            scoring_service=ScoringService(get_text_embedder())
        )
    return _matching_service


def get_candidate_repository(db: AsyncSession = Depends(get_db)) -> CandidateRepository:
    return CandidateRepository(db)


# ──────────────────────────────────────────────────────────────────────────────
# GET /find/{user_id}: Ranked candidates for a user
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/find/{user_id}",
    response_model=FindMatchesResponse,
    summary="Rank compatible candidates for a user",
)
async def find_matches(
    user_id: str,
    limit: Optional[str] = Query(
        None, description="Positive integer; anything else uses the default"
    ),
    repository: CandidateRepository = Depends(get_candidate_repository),
    service: MatchingService = Depends(get_matching_service),
) -> FindMatchesResponse:
    """Return the best-scoring eligible candidates for ``user_id``.

    Existing connections and users inside an active exclusion window are
    never returned.  Candidates whose scoring fails are left out, so the
    list may be shorter than ``limit``.
    """
    log = logger.bind(user_id=user_id)
    log.info("find_matches_request", limit=limit)

    try:
        subject = await repository.get_profile(user_id)
    except SQLAlchemyError:
        log.exception("subject_unavailable")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="User profile is temporarily unavailable.",
        )
    if subject is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found.",
        )

    try:
        candidates = await repository.list_candidates()
        connections = await repository.get_connections(user_id)
        exclusions = await repository.get_exclusions(user_id)
    except SQLAlchemyError:
        log.exception("candidate_pool_unavailable")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Candidate pool is temporarily unavailable.",
        )

    effective_limit = min(service.normalise_limit(limit), get_settings().MATCH_MAX_LIMIT)
    result = await service.rank(
        subject,
        candidates,
        effective_limit,
        connections=connections,
        exclusions=exclusions,
    )

    log.info(
        "find_matches_response",
        returned=len(result.matches),
        failed=result.failed_count,
    )
    return FindMatchesResponse(
        subject_id=user_id,
        limit=effective_limit,
        candidate_count=result.candidate_count,
        failed_count=result.failed_count,
        matches=result.matches,
    )


# ──────────────────────────────────────────────────────────────────────────────
# GET /score/{user_id}/{candidate_id}: Score a single pair
# ──────────────────────────────────────────────────────────────────────────────

async def _load_pair(
    repository: CandidateRepository, user_id: str, candidate_id: str
) -> tuple[UserMatchProfile, UserMatchProfile]:
    """Load both users of a pair, mapping storage failures to HTTP errors."""
    if user_id == candidate_id:
        raise HTTPException(
            status_code=422,
            detail="A user cannot be paired with themself.",
        )
    try:
        subject = await repository.get_profile(user_id)
        candidate = await repository.get_profile(candidate_id)
    except SQLAlchemyError:
        logger.exception("pair_unavailable", user_id=user_id, candidate_id=candidate_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="User profiles are temporarily unavailable.",
        )
    for uid, profile in ((user_id, subject), (candidate_id, candidate)):
        if profile is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"User {uid} not found.",
            )
    return subject, candidate


@router.get(
    "/score/{user_id}/{candidate_id}",
    response_model=MatchScore,
    summary="Score one candidate from a user's point of view",
)
async def score_pair(
    user_id: str,
    candidate_id: str,
    repository: CandidateRepository = Depends(get_candidate_repository),
    service: MatchingService = Depends(get_matching_service),
) -> MatchScore:
    """Compute the compatibility breakdown of ``candidate_id`` as seen by
    ``user_id``.  Scores are directional: swapping the ids may differ."""
    subject, candidate = await _load_pair(repository, user_id, candidate_id)
    return await service.calculate_match_score(subject, candidate)


# ──────────────────────────────────────────────────────────────────────────────
# POST /pass/{user_id}/{candidate_id}: Hide a candidate for a cooldown window
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/pass/{user_id}/{candidate_id}",
    response_model=ExclusionRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Pass on a candidate; repeats lengthen the cooldown",
)
async def pass_candidate(
    user_id: str,
    candidate_id: str,
    repository: CandidateRepository = Depends(get_candidate_repository),
) -> ExclusionRecord:
    await _load_pair(repository, user_id, candidate_id)
    try:
        record = await repository.record_pass(user_id, candidate_id)
    except SQLAlchemyError:
        logger.exception("exclusion_write_failed", user_id=user_id, candidate_id=candidate_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not record the pass.",
        )
    logger.info(
        "candidate_passed",
        user_id=user_id,
        candidate_id=candidate_id,
        level=record.level,
    )
    return record
