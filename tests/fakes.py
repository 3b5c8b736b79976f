"""
Test doubles shared by the rank tests.
"""


class FakeRankStore:
    """In-memory rank store that records calls and can be told to fail."""

    def __init__(self, ranks=None, user_counts=None):
        self.ranks = list(ranks or [])
        self.user_counts = dict(user_counts or {})
        self.fail_list = False
        self.fail_count_for = set()
        self.list_calls = 0
        self.count_calls = []

    async def list_active_ranks(self):
        self.list_calls += 1
        if self.fail_list:
            raise RuntimeError("no such table: user_ranks")
        return [dict(rank) for rank in self.ranks]

    async def count_users_in_post_range(self, min_posts, max_posts_exclusive=None):
        self.count_calls.append((min_posts, max_posts_exclusive))
        if min_posts in self.fail_count_for:
            raise RuntimeError("count failed")
        return self.user_counts.get(min_posts, 0)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

