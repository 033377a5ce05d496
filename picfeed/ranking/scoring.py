"""
Popularity scoring — pure functions, no I/O.

Score formula:
  margin   = likes - dislikes
  order    = sign(margin) * log10(1 + |margin|)
  age_term = (created_at - score_epoch) / score_decay_seconds
  score    = max(0, score_base + order + age_term)

Seen from any fixed instant, age_term is a constant shared by every picture
minus age / score_decay_seconds, so the relative order decays with age while
the stored value never goes stale between votes: an older picture needs a
logarithmically growing vote margin to keep up with newer content.

The floor at zero keeps scores non-negative, so the feed's multiplicative
affinity boost can amplify a score but never flip its sign.
"""
import math
from datetime import datetime
from typing import Optional

from picfeed.config import settings


def vote_order(likes: int, dislikes: int) -> float:
    """Signed, log-damped vote margin."""
    margin = likes - dislikes
    if margin == 0:
        return 0.0
    return math.copysign(math.log10(1 + abs(margin)), margin)


def age_term(
    created_at: datetime,
    epoch: Optional[datetime] = None,
    decay_seconds: Optional[float] = None,
) -> float:
    epoch = epoch or settings.score_epoch
    decay_seconds = decay_seconds or settings.score_decay_seconds
    return (created_at - epoch).total_seconds() / decay_seconds


def popularity_score(
    likes: int,
    dislikes: int,
    created_at: datetime,
    *,
    epoch: Optional[datetime] = None,
    decay_seconds: Optional[float] = None,
    base: Optional[float] = None,
) -> float:
    """
    Compute a picture's popularity score from its current counters.

    O(1) in the counters; never re-reads vote history.
    """
    base = settings.score_base if base is None else base
    raw = base + vote_order(likes, dislikes) + age_term(created_at, epoch, decay_seconds)
    return round(max(0.0, raw), 7)


def composite_score(popularity, affinity_boost):
    """
    Popularity amplified by the account's tag affinity; boost 0 leaves it unchanged.

    Works on plain floats and on SQL column expressions alike; the feed ranker
    passes columns so the ordering happens in the database.
    """
    return popularity * (1.0 + affinity_boost)
