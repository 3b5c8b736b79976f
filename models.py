from pydantic import BaseModel, ConfigDict, field_validator
from typing import Optional, Dict, Any, List
import re
from config import (RANK_NAME_MIN_LENGTH, RANK_NAME_MAX_LENGTH, RANK_COLOR_MAX_LENGTH,
                   RANK_ICON_MAX_LENGTH)


HEX_COLOR = re.compile(r'^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$')


def _check_name(v: str) -> str:
    v = v.strip()
    if len(v) < RANK_NAME_MIN_LENGTH or len(v) > RANK_NAME_MAX_LENGTH:
        raise ValueError(f'Rank name must be {RANK_NAME_MIN_LENGTH}-{RANK_NAME_MAX_LENGTH} characters')
    return v


def _check_min_posts(v: int) -> int:
    if v < 0:
        raise ValueError('Minimum posts must be zero or greater')
    return v


def _check_color(v: str) -> str:
    if len(v) > RANK_COLOR_MAX_LENGTH:
        raise ValueError(f'Color must be less than {RANK_COLOR_MAX_LENGTH} characters')
    return v


def _check_icon(v: str) -> str:
    if len(v) > RANK_ICON_MAX_LENGTH:
        raise ValueError(f'Icon must be less than {RANK_ICON_MAX_LENGTH} characters')
    return v


class RankDefinition(BaseModel):
    """One tier of the rank ladder"""
    model_config = ConfigDict(frozen=True)

    name: str
    min_posts: int
    color: str
    icon: str

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return _check_name(v)

    @field_validator('min_posts')
    @classmethod
    def validate_min_posts(cls, v):
        return _check_min_posts(v)

    @field_validator('color')
    @classmethod
    def validate_color(cls, v):
        return _check_color(v)

    @field_validator('icon')
    @classmethod
    def validate_icon(cls, v):
        return _check_icon(v)


class RankWithCount(RankDefinition):
    user_count: int = 0


class RankProgress(BaseModel):
    current: RankDefinition
    next: Optional[RankDefinition] = None
    progress: int
    posts_to_next_rank: int


class FormattedRank(BaseModel):
    name: str
    color: str
    icon: str
    min_posts: int
    badge: str


class RankListResponse(BaseModel):
    ranks: List[RankDefinition]


class RankCountListResponse(BaseModel):
    ranks: List[RankWithCount]


class UserRankResponse(BaseModel):
    user_id: int
    username: str
    post_count: int
    rank: RankProgress
    badge: FormattedRank


class RankCreate(BaseModel):
    name: str
    min_posts: int
    color: str
    icon: str
    is_active: bool = True

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return _check_name(v)

    @field_validator('min_posts')
    @classmethod
    def validate_min_posts(cls, v):
        return _check_min_posts(v)

    @field_validator('color')
    @classmethod
    def validate_color(cls, v):
        if not HEX_COLOR.match(v):
            raise ValueError('Color must be a hex code like #4CAF50')
        return v

    @field_validator('icon')
    @classmethod
    def validate_icon(cls, v):
        return _check_icon(v)


class RankUpdate(BaseModel):
    name: Optional[str] = None
    min_posts: Optional[int] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return v if v is None else _check_name(v)

    @field_validator('min_posts')
    @classmethod
    def validate_min_posts(cls, v):
        return v if v is None else _check_min_posts(v)

    @field_validator('color')
    @classmethod
    def validate_color(cls, v):
        if v is not None and not HEX_COLOR.match(v):
            raise ValueError('Color must be a hex code like #4CAF50')
        return v

    @field_validator('icon')
    @classmethod
    def validate_icon(cls, v):
        return v if v is None else _check_icon(v)


class RankRecord(BaseModel):
    """Stored rank row, including inactive ones"""
    rank_id: int
    name: str
    min_posts: int
    color: str
    icon: str
    is_active: bool
    created_at: float
    updated_at: float


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
