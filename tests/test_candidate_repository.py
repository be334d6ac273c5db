"""Unit tests for the storage adapter (ORM row -> profile mapping, pass writes)."""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.models.match import Connection, Exclusion
from app.services.candidate_repository import CandidateRepository, to_match_profile
from conftest import make_user_row

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _session_returning(rows):
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    result.scalar_one_or_none.return_value = rows[0] if rows else None
    session = MagicMock()
    session.execute = AsyncMock(return_value=result)
    session.flush = AsyncMock()
    return session


class TestToMatchProfile:
    def test_maps_all_fields(self):
        profile = to_match_profile(make_user_row())
        assert profile.uid == "u1"
        assert profile.age_preference.min == 27
        assert profile.age_preference.max == 38
        assert profile.interests == {"climbing", "jazz"}
        assert profile.location.lat == pytest.approx(21.0285)
        assert profile.work_vibe.interaction_level == 70.0
        assert profile.occupation_description == "ICU night shifts"

    def test_partial_pairs_become_none(self):
        profile = to_match_profile(
            make_user_row(age_pref_max=None, longitude=None, interaction_level=None, interests=None)
        )
        assert profile.age_preference is None
        assert profile.location is None
        assert profile.work_vibe is None
        assert profile.interests == set()

    def test_out_of_range_latitude_drops_only_location(self):
        profile = to_match_profile(make_user_row(latitude=95.0))
        assert profile.location is None
        assert profile.work_date_ratio == 40.0
        assert profile.work_vibe is not None

    def test_out_of_range_ratio_drops_only_ratio(self):
        profile = to_match_profile(make_user_row(work_date_ratio=150.0))
        assert profile.work_date_ratio is None
        assert profile.location is not None

    def test_several_bad_fields_at_once(self):
        profile = to_match_profile(
            make_user_row(work_chat_ratio=-10.0, availability=["mornings"], interests=[None])
        )
        assert profile.work_vibe is None
        assert profile.availability is None
        assert profile.interests == set()
        assert profile.age == 31


class TestCandidateRepository:
    @pytest.mark.asyncio
    async def test_get_profile_missing(self):
        repo = CandidateRepository(_session_returning([]))
        assert await repo.get_profile("ghost") is None

    @pytest.mark.asyncio
    async def test_get_profile_with_bad_field(self):
        repo = CandidateRepository(_session_returning([make_user_row("amy", work_date_ratio=150.0)]))
        profile = await repo.get_profile("amy")
        assert profile.uid == "amy"
        assert profile.work_date_ratio is None

    @pytest.mark.asyncio
    async def test_list_candidates_keeps_rows_with_bad_fields(self):
        rows = [
            make_user_row("amy"),
            make_user_row("bad", latitude=95.0),
            make_user_row("ben"),
        ]
        repo = CandidateRepository(_session_returning(rows))
        profiles = await repo.list_candidates()
        assert [p.uid for p in profiles] == ["amy", "bad", "ben"]
        assert profiles[1].location is None

    @pytest.mark.asyncio
    async def test_pair_records(self):
        expires = datetime(2026, 2, 1, tzinfo=timezone.utc)
        connections = [Connection(user_a_id="amy", user_b_id="u1")]
        exclusions = [Exclusion(user_a_id="u1", user_b_id="ben", level=2, expires_at=expires)]

        repo = CandidateRepository(_session_returning(connections))
        (connection,) = await repo.get_connections("u1")
        assert connection.other("u1") == "amy"

        repo = CandidateRepository(_session_returning(exclusions))
        (exclusion,) = await repo.get_exclusions("u1")
        assert exclusion.other("u1") == "ben"
        assert exclusion.level == 2
        assert exclusion.expires_at == expires


class TestRecordPass:
    """Writing exclusion windows when a user passes on a candidate."""

    @pytest.mark.asyncio
    async def test_first_pass_creates_sorted_pair(self):
        session = _session_returning([])
        record = await CandidateRepository(session).record_pass("zoe", "amy", now=NOW)

        assert (record.user_a, record.user_b) == ("amy", "zoe")
        assert record.level == 1
        assert record.expires_at == NOW + timedelta(days=2)
        (row,), _ = session.add.call_args
        assert isinstance(row, Exclusion)
        assert (row.user_a_id, row.user_b_id, row.level) == ("amy", "zoe", 1)
        session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_repeat_pass_escalates_existing_row(self):
        existing = Exclusion(
            user_a_id="amy", user_b_id="zoe", level=2, expires_at=NOW - timedelta(days=1)
        )
        session = _session_returning([existing])
        record = await CandidateRepository(session).record_pass("amy", "zoe", now=NOW)

        assert record.level == 3
        assert existing.level == 3
        assert existing.expires_at == NOW + timedelta(days=8)
        session.add.assert_not_called()
