"""
Ranking core: vote ledger, popularity scorer, tag affinity, seen set, feed.

Everything here takes an AsyncSession and raises `picfeed.errors` types;
the HTTP layer in `picfeed.routers` only maps requests onto these calls.
"""
from picfeed.ranking.affinity import get_affinity_weights, record_like
from picfeed.ranking.feed import count_pictures, get_feed, get_global_listing
from picfeed.ranking.scoring import composite_score, popularity_score
from picfeed.ranking.seen import exclude, mark_seen, reset_seen
from picfeed.ranking.votes import list_votes, set_vote

__all__ = [
    "composite_score",
    "count_pictures",
    "exclude",
    "get_affinity_weights",
    "get_feed",
    "get_global_listing",
    "list_votes",
    "mark_seen",
    "popularity_score",
    "record_like",
    "reset_seen",
    "set_vote",
]
