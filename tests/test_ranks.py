"""
Rank resolution, progress, caching and formatting.
"""
import pytest

from config import RANKS_CACHE_TTL
from exceptions import InvalidPostCountError, RankTableError
from models import RankDefinition
from ranks import (DEFAULT_RANKS, RankResolver, StoreStatus, fetch_rank_table,
                   format_for_display, validate_active_rows, validate_rank_table)
from fakes import FakeRankStore


CUSTOM_RANKS = [
    {"name": "Lurker", "min_posts": 0, "color": "#111111", "icon": "👀"},
    {"name": "Poster", "min_posts": 5, "color": "#222222", "icon": "✍"},
    {"name": "Regular", "min_posts": 20, "color": "#333333", "icon": "🔥"},
]


class TestResolveRank:
    """Rank lookup against the default ladder."""

    @pytest.mark.parametrize("post_count, expected", [
        (0, "New Member"),
        (9, "New Member"),
        (10, "Member"),
        (50, "Active Member"),
        (99, "Active Member"),
        (100, "Senior Member"),
        (250, "Expert"),
        (500, "Veteran"),
        (1000, "Legend"),
        (10000, "Legend"),
    ])
    async def test_resolves_expected_rank(self, resolver, post_count, expected):
        rank = await resolver.resolve_rank(post_count)
        assert rank.name == expected

    async def test_new_member_starts_at_zero(self, resolver):
        rank = await resolver.resolve_rank(0)
        assert rank.min_posts == 0

    async def test_resolved_rank_is_highest_qualifying(self, resolver):
        for post_count in range(0, 1200, 7):
            rank = await resolver.resolve_rank(post_count)
            assert rank.min_posts <= post_count
            assert not [r for r in DEFAULT_RANKS if rank.min_posts < r.min_posts <= post_count]

    async def test_negative_post_count_clamps_to_lowest_rank(self, resolver):
        rank = await resolver.resolve_rank(-5)
        assert rank.name == "New Member"

    @pytest.mark.parametrize("bad", ["10", 10.5, None, True])
    async def test_rejects_non_integer_post_count(self, resolver, bad):
        with pytest.raises(InvalidPostCountError):
            await resolver.resolve_rank(bad)


class TestResolveRankWithProgress:

    async def test_mid_rank(self, resolver):
        result = await resolver.resolve_rank_with_progress(75)
        assert result.current.name == "Active Member"
        assert result.next.name == "Senior Member"
        assert result.posts_to_next_rank == 25
        assert result.progress == 50

    async def test_zero_progress_at_rank_start(self, resolver):
        result = await resolver.resolve_rank_with_progress(50)
        assert result.current.name == "Active Member"
        assert result.progress == 0

    async def test_top_rank(self, resolver):
        result = await resolver.resolve_rank_with_progress(1000)
        assert result.current.name == "Legend"
        assert result.next is None
        assert result.progress == 100
        assert result.posts_to_next_rank == 0

    async def test_new_member(self, resolver):
        result = await resolver.resolve_rank_with_progress(5)
        assert result.current.name == "New Member"
        assert result.next.name == "Member"
        assert result.posts_to_next_rank == 5
        assert 0 < result.progress < 100

    async def test_zero_posts(self, resolver):
        result = await resolver.resolve_rank_with_progress(0)
        assert result.current.name == "New Member"
        assert result.next.name == "Member"
        assert result.posts_to_next_rank == 10
        assert result.progress == 0

    async def test_rounds_half_up(self, clock):
        store = FakeRankStore([
            {"name": "A", "min_posts": 0, "color": "#000", "icon": "a"},
            {"name": "B", "min_posts": 8, "color": "#000", "icon": "b"},
        ])
        result = await RankResolver(store, clock=clock).resolve_rank_with_progress(1)
        # 1/8 = 12.5%
        assert result.progress == 13

    async def test_one_short_of_next_rank(self, resolver):
        result = await resolver.resolve_rank_with_progress(99)
        assert result.current.name == "Active Member"
        assert result.progress == 98
        assert result.posts_to_next_rank == 1

    async def test_negative_post_count_stays_in_bounds(self, resolver):
        result = await resolver.resolve_rank_with_progress(-3)
        assert result.current.name == "New Member"
        assert result.next.name == "Member"
        assert result.progress == 0
        assert result.posts_to_next_rank == 13

    async def test_progress_always_within_bounds(self, resolver):
        for post_count in range(0, 1100, 3):
            result = await resolver.resolve_rank_with_progress(post_count)
            assert 0 <= result.progress <= 100
            assert result.posts_to_next_rank >= 0


class TestRankTable:

    async def test_falls_back_to_defaults_when_store_fails(self, resolver, failing_store):
        table = await resolver.get_rank_table()
        assert table == DEFAULT_RANKS
        assert failing_store.list_calls == 1

    async def test_falls_back_to_defaults_when_store_empty(self, clock):
        store = FakeRankStore()
        table = await RankResolver(store, clock=clock).get_rank_table()
        assert table == DEFAULT_RANKS

    async def test_uses_store_ranks(self, clock):
        store = FakeRankStore(CUSTOM_RANKS)
        resolver = RankResolver(store, clock=clock)
        table = await resolver.get_rank_table()
        assert [r.name for r in table] == ["Lurker", "Poster", "Regular"]
        assert (await resolver.resolve_rank(7)).name == "Poster"

    async def test_invalid_store_table_falls_back_to_defaults(self, clock):
        store = FakeRankStore([
            {"name": "Poster", "min_posts": 5, "color": "#222222", "icon": "✍"},
        ])
        table = await RankResolver(store, clock=clock).get_rank_table()
        assert table == DEFAULT_RANKS

    async def test_default_table_ascends_with_unique_names(self):
        thresholds = [r.min_posts for r in DEFAULT_RANKS]
        assert thresholds[0] == 0
        assert all(a < b for a, b in zip(thresholds, thresholds[1:]))
        names = [r.name for r in DEFAULT_RANKS]
        assert len(set(names)) == len(names) == 7


class TestCache:

    async def test_cached_table_skips_store(self, resolver, failing_store):
        await resolver.get_rank_table()
        await resolver.get_rank_table()
        await resolver.resolve_rank(10)
        assert failing_store.list_calls == 1

    async def test_clear_cache_forces_refetch(self, resolver, failing_store):
        await resolver.get_rank_table()
        resolver.clear_cache()
        await resolver.get_rank_table()
        assert failing_store.list_calls == 2

    async def test_cache_expires_after_ttl(self, resolver, failing_store, clock):
        await resolver.get_rank_table()
        clock.advance(RANKS_CACHE_TTL - 1)
        await resolver.get_rank_table()
        assert failing_store.list_calls == 1

        clock.advance(1)
        await resolver.get_rank_table()
        assert failing_store.list_calls == 2

    async def test_refetch_picks_up_store_changes(self, clock):
        store = FakeRankStore()
        resolver = RankResolver(store, clock=clock)
        assert await resolver.get_rank_table() == DEFAULT_RANKS

        store.ranks = CUSTOM_RANKS
        assert await resolver.get_rank_table() == DEFAULT_RANKS

        resolver.clear_cache()
        table = await resolver.get_rank_table()
        assert table[0].name == "Lurker"

    async def test_resolvers_do_not_share_cache(self, clock):
        first = FakeRankStore(CUSTOM_RANKS)
        second = FakeRankStore()
        await RankResolver(first, clock=clock).get_rank_table()
        table = await RankResolver(second, clock=clock).get_rank_table()
        assert table == DEFAULT_RANKS
        assert second.list_calls == 1


class TestUserCounts:

    async def test_counts_each_tier_over_half_open_ranges(self, clock):
        store = FakeRankStore(CUSTOM_RANKS, user_counts={0: 4, 5: 2, 20: 1})
        ranks = await RankResolver(store, clock=clock).resolve_ranks_with_user_counts()

        assert [(r.name, r.user_count) for r in ranks] == [("Lurker", 4), ("Poster", 2), ("Regular", 1)]
        assert store.count_calls == [(0, 5), (5, 20), (20, None)]

    async def test_failed_tier_counts_as_zero(self, clock):
        store = FakeRankStore(CUSTOM_RANKS, user_counts={0: 4, 5: 2, 20: 1})
        store.fail_count_for = {5}
        ranks = await RankResolver(store, clock=clock).resolve_ranks_with_user_counts()
        assert [r.user_count for r in ranks] == [4, 0, 1]

    async def test_counts_with_default_ranks_when_store_missing(self, resolver):
        ranks = await resolver.resolve_ranks_with_user_counts()
        assert len(ranks) == len(DEFAULT_RANKS)
        assert all(r.user_count == 0 for r in ranks)


class TestFormatForDisplay:

    def test_none(self):
        assert format_for_display(None) is None

    def test_badge(self):
        rank = RankDefinition(name="Test", color="#000", icon="⭐", min_posts=10)
        formatted = format_for_display(rank)
        assert formatted.badge == "⭐ Test"
        assert formatted.color == "#000"
        assert formatted.min_posts == 10


class TestValidateRankTable:

    def _rank(self, name, min_posts):
        return RankDefinition(name=name, min_posts=min_posts, color="#000", icon="*")

    def test_accepts_default_table(self):
        assert validate_rank_table(DEFAULT_RANKS) == DEFAULT_RANKS

    def test_rejects_empty(self):
        with pytest.raises(RankTableError):
            validate_rank_table([])

    def test_rejects_missing_zero_tier(self):
        with pytest.raises(RankTableError):
            validate_rank_table([self._rank("A", 1)])

    def test_rejects_equal_thresholds(self):
        with pytest.raises(RankTableError):
            validate_rank_table([self._rank("A", 0), self._rank("B", 10), self._rank("C", 10)])

    def test_rejects_duplicate_names(self):
        with pytest.raises(RankTableError):
            validate_rank_table([self._rank("A", 0), self._rank("A", 10)])


class TestFetchRankTable:

    async def test_failed(self, failing_store):
        result = await fetch_rank_table(failing_store)
        assert result.status is StoreStatus.FAILED
        assert isinstance(result.error, RuntimeError)

    async def test_empty(self):
        result = await fetch_rank_table(FakeRankStore())
        assert result.status is StoreStatus.EMPTY
        assert result.ranks == ()

    async def test_ok(self):
        result = await fetch_rank_table(FakeRankStore(CUSTOM_RANKS))
        assert result.status is StoreStatus.OK
        assert len(result.ranks) == 3

    async def test_malformed_rows_are_failures(self):
        result = await fetch_rank_table(FakeRankStore([{"name": "Broken", "min_posts": -1}]))
        assert result.status is StoreStatus.FAILED


class TestValidateActiveRows:

    def test_orders_and_skips_inactive(self):
        rows = [dict(row, is_active=True) for row in reversed(CUSTOM_RANKS)]
        rows.append({"name": "Ghost", "min_posts": 5, "color": "#000", "icon": "x", "is_active": False})
        table = validate_active_rows(rows)
        assert [r.name for r in table] == ["Lurker", "Poster", "Regular"]

    def test_rejects_repeated_threshold(self):
        rows = CUSTOM_RANKS + [{"name": "Clash", "min_posts": 5, "color": "#000", "icon": "x"}]
        with pytest.raises(RankTableError):
            validate_active_rows(rows)

    def test_rejects_ladder_without_zero_tier(self):
        rows = [dict(CUSTOM_RANKS[0], is_active=False)] + CUSTOM_RANKS[1:]
        with pytest.raises(RankTableError):
            validate_active_rows(rows)
