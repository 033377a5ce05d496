"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.
"""
import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Polarity(str, enum.Enum):
    like = "like"
    dislike = "dislike"


class VoteState(str, enum.Enum):
    none = "none"
    like = "like"
    dislike = "dislike"


class ListingMode(str, enum.Enum):
    popularity = "popularity"
    newest = "newest"
    most_liked = "most-liked"


# ──────────────────────────── Accounts ────────────────────────────────────

class AccountCreate(BaseModel):
    nickname: str = Field(..., min_length=3, max_length=40)


class AccountResponse(BaseModel):
    account_id: str
    nickname: str
    created_at: datetime

    class Config:
        from_attributes = True


# ──────────────────────────── Pictures ────────────────────────────────────

class PictureCreate(BaseModel):
    account_id: str
    name: str = Field(..., min_length=4, max_length=25)
    description: Optional[str] = Field(None, max_length=400)
    # Issued by the storage service after upload
    url: str = Field(..., max_length=500)
    tags: list[str] = []

    @field_validator("tags")
    @classmethod
    def _tag_length(cls, tags: list[str]) -> list[str]:
        for tag in tags:
            if len(tag.strip()) > 25:
                raise ValueError(f"tag '{tag}' is longer than 25 characters")
        return tags


class PictureUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=4, max_length=25)
    description: Optional[str] = Field(None, max_length=400)
    url: Optional[str] = Field(None, max_length=500)
    tags: Optional[list[str]] = None


class PictureSummary(BaseModel):
    """A picture as returned by feeds and listings."""
    picture_id: str
    account_id: str
    name: str
    description: Optional[str]
    url: str
    created_at: datetime
    tags: list[str]
    likes: int
    dislikes: int
    # Composite score in the personalised feed, popularity score elsewhere
    score: float


# ──────────────────────────── Votes ───────────────────────────────────────

class VoteRequest(BaseModel):
    account_id: str


class VoteSetRequest(BaseModel):
    account_id: str
    polarity: str


class VoteResult(BaseModel):
    picture_id: str
    state: VoteState
    likes: int
    dislikes: int
    popularity_score: float


class VoteResponse(BaseModel):
    account_id: str
    picture_id: str
    polarity: Polarity
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ──────────────────────────── Feed / listings ─────────────────────────────

class FeedResponse(BaseModel):
    account_id: str
    pictures: list[PictureSummary]


class ListingResponse(BaseModel):
    mode: ListingMode
    skip: int
    take: int
    total: int
    pictures: list[PictureSummary]


class AffinityResponse(BaseModel):
    account_id: str
    weights: dict[str, float]


class SeenResetResponse(BaseModel):
    account_id: str
    removed: int
