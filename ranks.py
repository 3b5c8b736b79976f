"""User ranks derived from post counts.

A rank table is an ordered ladder of ``RankDefinition`` tiers. The resolver
reads active tiers from a rank store, keeps them in a per-instance cache for
``RANKS_CACHE_TTL`` seconds, and falls back to ``DEFAULT_RANKS`` when the
store has nothing usable.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Protocol, Tuple

from config import RANKS_CACHE_TTL
from exceptions import InvalidPostCountError, RankTableError
from models import FormattedRank, RankDefinition, RankProgress, RankWithCount


logger = logging.getLogger(__name__)

RankTable = Tuple[RankDefinition, ...]

DEFAULT_RANKS: RankTable = (
    RankDefinition(name="New Member", min_posts=0, color="#888888", icon="🌱"),
    RankDefinition(name="Member", min_posts=10, color="#4CAF50", icon="👤"),
    RankDefinition(name="Active Member", min_posts=50, color="#2196F3", icon="⭐"),
    RankDefinition(name="Senior Member", min_posts=100, color="#9C27B0", icon="🌟"),
    RankDefinition(name="Expert", min_posts=250, color="#FF9800", icon="🏆"),
    RankDefinition(name="Veteran", min_posts=500, color="#F44336", icon="💎"),
    RankDefinition(name="Legend", min_posts=1000, color="#FFD700", icon="👑"),
)


class RankStore(Protocol):
    async def list_active_ranks(self) -> List[dict]: ...

    async def count_users_in_post_range(self, min_posts: int, max_posts_exclusive: Optional[int] = None) -> int: ...


def validate_rank_table(ranks: Iterable[RankDefinition]) -> RankTable:
    """Check a ladder is non-empty, starts at 0, strictly ascends and has unique names."""
    table = tuple(ranks)
    if not table:
        raise RankTableError("Rank table is empty")
    if table[0].min_posts != 0:
        raise RankTableError(f"First rank must start at 0 posts, got {table[0].min_posts}")

    seen = set()
    previous = None
    for rank in table:
        if rank.name in seen:
            raise RankTableError(f"Duplicate rank name: {rank.name}")
        seen.add(rank.name)
        if previous is not None and rank.min_posts <= previous.min_posts:
            raise RankTableError(
                f"Rank {rank.name!r} ({rank.min_posts}) must need more posts than {previous.name!r} ({previous.min_posts})"
            )
        previous = rank
    return table


def validate_active_rows(rows: Iterable[dict]) -> RankTable:
    """Validate the ladder formed by the active rows of a rank listing, in threshold order."""
    active = sorted((row for row in rows if row.get("is_active", True)), key=lambda row: row["min_posts"])
    return validate_rank_table(RankDefinition.model_validate(row) for row in active)


class StoreStatus(Enum):
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(frozen=True)
class StoreResult:
    status: StoreStatus
    ranks: RankTable = ()
    error: Optional[Exception] = None


async def fetch_rank_table(store: RankStore) -> StoreResult:
    """Query the store and classify the outcome instead of raising."""
    try:
        rows = await store.list_active_ranks()
    except Exception as e:
        return StoreResult(StoreStatus.FAILED, error=e)

    if not rows:
        return StoreResult(StoreStatus.EMPTY)

    try:
        table = validate_rank_table(RankDefinition.model_validate(row) for row in rows)
    except ValueError as e:
        return StoreResult(StoreStatus.FAILED, error=e)
    return StoreResult(StoreStatus.OK, ranks=table)


@dataclass
class RankCache:
    ranks: Optional[RankTable] = None
    expires_at: float = 0.0

    def get(self, now: float) -> Optional[RankTable]:
        if self.ranks is not None and now < self.expires_at:
            return self.ranks
        return None

    def set(self, ranks: RankTable, now: float, ttl: float):
        self.ranks = ranks
        self.expires_at = now + ttl

    def clear(self):
        self.ranks = None
        self.expires_at = 0.0


def check_post_count(post_count) -> int:
    # bool is an int subclass but never a post count
    if isinstance(post_count, bool) or not isinstance(post_count, int):
        raise InvalidPostCountError(f"Post count must be an integer, got {post_count!r}")
    return post_count


def _percent(part: int, whole: int) -> int:
    """Round 100 * part / whole half-up using integer arithmetic."""
    return (200 * part + whole) // (2 * whole)


class RankResolver:
    def __init__(self, store: RankStore, ttl: float = RANKS_CACHE_TTL,
                 clock: Callable[[], float] = time.time, cache: Optional[RankCache] = None):
        self.store = store
        self.ttl = ttl
        self.clock = clock
        self.cache = cache if cache is not None else RankCache()

    async def get_rank_table(self) -> RankTable:
        now = self.clock()
        cached = self.cache.get(now)
        if cached is not None:
            return cached

        result = await fetch_rank_table(self.store)
        if result.status is StoreStatus.OK:
            table = result.ranks
        else:
            if result.status is StoreStatus.FAILED:
                logger.warning("Rank store unavailable, using default ranks: %s", result.error)
            else:
                logger.info("No active ranks in store, using default ranks")
            table = DEFAULT_RANKS

        self.cache.set(table, now, self.ttl)
        return table

    def clear_cache(self):
        self.cache.clear()

    async def resolve_rank(self, post_count: int) -> RankDefinition:
        """Highest rank whose threshold the post count meets."""
        post_count = check_post_count(post_count)
        ranks = await self.get_rank_table()

        result = ranks[0]
        for rank in ranks:
            if post_count >= rank.min_posts:
                result = rank
            else:
                break
        return result

    async def resolve_rank_with_progress(self, post_count: int) -> RankProgress:
        post_count = check_post_count(post_count)
        ranks = await self.get_rank_table()

        current = ranks[0]
        next_rank = ranks[1] if len(ranks) > 1 else None
        for i, rank in enumerate(ranks):
            if post_count >= rank.min_posts:
                current = rank
                next_rank = ranks[i + 1] if i + 1 < len(ranks) else None
            else:
                break

        if next_rank is None:
            return RankProgress(current=current, next=None, progress=100, posts_to_next_rank=0)

        posts_in_range = post_count - current.min_posts
        range_size = next_rank.min_posts - current.min_posts
        progress = min(100, max(0, _percent(posts_in_range, range_size)))
        return RankProgress(
            current=current,
            next=next_rank,
            progress=progress,
            posts_to_next_rank=next_rank.min_posts - post_count,
        )

    async def resolve_ranks_with_user_counts(self) -> List[RankWithCount]:
        ranks = await self.get_rank_table()
        ranks_with_counts = []

        for i, rank in enumerate(ranks):
            upper = ranks[i + 1].min_posts if i + 1 < len(ranks) else None
            try:
                count = await self.store.count_users_in_post_range(rank.min_posts, upper)
            except Exception as e:
                logger.warning("Could not count users for rank %r: %s", rank.name, e)
                count = 0
            ranks_with_counts.append(RankWithCount(**rank.model_dump(), user_count=count))

        return ranks_with_counts


def format_for_display(rank: Optional[RankDefinition]) -> Optional[FormattedRank]:
    if rank is None:
        return None
    return FormattedRank(
        name=rank.name,
        color=rank.color,
        icon=rank.icon,
        min_posts=rank.min_posts,
        badge=f"{rank.icon} {rank.name}",
    )
