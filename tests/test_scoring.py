"""
Tests for the popularity scorer.

Properties are checked with hypothesis across vote counts and ages.
"""

import math
from datetime import datetime, timedelta

import pytest
from hypothesis import given, strategies as st
from sqlalchemy import literal_column

from picfeed.models import Picture
from picfeed.ranking.scoring import (
    age_term,
    composite_score,
    popularity_score,
    vote_order,
)

counts = st.integers(min_value=0, max_value=1_000_000)
moments = st.datetimes(min_value=datetime(2021, 1, 1), max_value=datetime(2035, 1, 1))


class TestVoteOrder:
    def test_zero_margin(self):
        assert vote_order(0, 0) == 0.0
        assert vote_order(7, 7) == 0.0

    def test_log_damped(self):
        assert vote_order(9, 0) == pytest.approx(1.0)
        assert vote_order(99, 0) == pytest.approx(2.0)
        assert vote_order(0, 9) == pytest.approx(-1.0)

    def test_single_vote_margin_is_not_zero(self):
        assert vote_order(1, 0) == pytest.approx(math.log10(2))
        assert vote_order(0, 1) == pytest.approx(-math.log10(2))


class TestPopularityScore:
    @given(likes=counts, dislikes=counts, created_at=moments)
    def test_non_decreasing_in_likes(self, likes, dislikes, created_at):
        assert popularity_score(likes + 1, dislikes, created_at) >= popularity_score(
            likes, dislikes, created_at
        )

    @given(likes=counts, dislikes=counts, created_at=moments)
    def test_non_increasing_in_dislikes(self, likes, dislikes, created_at):
        assert popularity_score(likes, dislikes + 1, created_at) <= popularity_score(
            likes, dislikes, created_at
        )

    @given(
        likes=counts,
        dislikes=counts,
        created_at=moments,
        newer_by=st.timedeltas(min_value=timedelta(0), max_value=timedelta(days=365)),
    )
    def test_newer_ranks_at_or_above_older_with_equal_votes(
        self, likes, dislikes, created_at, newer_by
    ):
        older = popularity_score(likes, dislikes, created_at)
        newer = popularity_score(likes, dislikes, created_at + newer_by)
        assert newer >= older

    @given(
        margin_up=st.integers(min_value=1, max_value=10_000),
        margin_down=st.integers(min_value=1, max_value=10_000),
        base_votes=st.integers(min_value=0, max_value=10_000),
        created_at=moments,
        skew=st.timedeltas(min_value=timedelta(hours=-6), max_value=timedelta(hours=6)),
    )
    def test_disliked_never_outranks_liked_of_similar_age(
        self, margin_up, margin_down, base_votes, created_at, skew
    ):
        liked = popularity_score(base_votes + margin_up, base_votes, created_at)
        disliked = popularity_score(base_votes, base_votes + margin_down, created_at + skew)
        assert disliked < liked

    @given(likes=counts, dislikes=counts, created_at=moments)
    def test_never_negative(self, likes, dislikes, created_at):
        assert popularity_score(likes, dislikes, created_at) >= 0.0

    def test_older_content_needs_growing_margin(self):
        now = datetime(2026, 10, 19)
        fresh = popularity_score(0, 0, now)
        day_old = datetime(2026, 10, 18)
        # one day = 86400 / 45000 ≈ 1.92 decades of margin
        assert popularity_score(10, 0, day_old) < fresh
        assert popularity_score(100, 0, day_old) > fresh

    def test_epoch_and_decay_override(self):
        epoch = datetime(2026, 1, 1)
        assert age_term(epoch + timedelta(seconds=100), epoch=epoch, decay_seconds=50) == 2.0
        assert popularity_score(
            0, 0, epoch + timedelta(seconds=100), epoch=epoch, decay_seconds=50, base=1.0
        ) == pytest.approx(3.0)


class TestCompositeScore:
    def test_no_overlap_keeps_popularity(self):
        assert composite_score(10.0, 0.0) == 10.0

    def test_full_window_of_one_tag(self):
        assert composite_score(8.0, 15 * 2.25) == pytest.approx(278.0)

    def test_builds_sql_ordering_expression(self):
        sql = str(composite_score(Picture.popularity_score, literal_column("boost")))
        assert "pictures.popularity_score *" in sql
        assert "+ boost" in sql
