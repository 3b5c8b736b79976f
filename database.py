import aiosqlite
import logging
from typing import List, Dict, Optional, Any, Iterable
from datetime import datetime, timezone


logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS user_ranks (
    rank_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    min_posts INTEGER NOT NULL DEFAULT 0,
    color TEXT NOT NULL,
    icon TEXT NOT NULL,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_user_ranks_active_min_posts
    ON user_ranks (is_active, min_posts);

CREATE TABLE IF NOT EXISTS users (
    user_id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE,
    post_count INTEGER NOT NULL DEFAULT 0,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    is_admin BOOLEAN NOT NULL DEFAULT FALSE,
    is_banned BOOLEAN NOT NULL DEFAULT FALSE,
    join_date REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_users_active_post_count
    ON users (is_active, post_count);
"""

RANK_UPDATE_FIELDS = ("name", "min_posts", "color", "icon", "is_active")


def timestamp() -> float:
    return datetime.now(timezone.utc).timestamp()


class DatabaseManager:
    """aiosqlite-backed store for rank definitions and user post counts"""

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def execute_query(self, query: str, params: tuple = (), fetch_one: bool = False):
        async with aiosqlite.connect(self.db_path) as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.cursor()
            await cursor.execute(query, params)

            # Commit if this is a write operation (INSERT, UPDATE, DELETE)
            if query.strip().upper().startswith(('INSERT', 'UPDATE', 'DELETE')):
                await conn.commit()

            if fetch_one:
                result = await cursor.fetchone()
            else:
                result = await cursor.fetchall()
            await cursor.close()
            return result

    async def execute_insert(self, query: str, params: tuple = ()) -> int:
        async with aiosqlite.connect(self.db_path) as conn:
            cursor = await conn.cursor()
            await cursor.execute(query, params)
            await conn.commit()
            lastrowid = cursor.lastrowid
            await cursor.close()
            return lastrowid  # type: ignore

    async def init_schema(self):
        """Create tables and indexes if they do not exist"""
        async with aiosqlite.connect(self.db_path) as conn:
            await conn.executescript(SCHEMA)
            await conn.commit()
        logger.info("Schema ready at %s", self.db_path)

    # ------------------------------------------------------------------
    # Ranks

    async def list_active_ranks(self) -> List[Dict]:
        """Active rank rows, ascending by min_posts"""
        rows = await self.execute_query("""
            SELECT name, min_posts, color, icon
            FROM user_ranks
            WHERE is_active = TRUE
            ORDER BY min_posts ASC
        """)
        return [dict(row) for row in rows]

    async def list_all_ranks(self) -> List[Dict]:
        rows = await self.execute_query("SELECT * FROM user_ranks ORDER BY min_posts ASC, rank_id ASC")
        return [dict(row) for row in rows]

    async def get_rank_by_id(self, rank_id: int) -> Optional[Dict]:
        rank = await self.execute_query(
            "SELECT * FROM user_ranks WHERE rank_id = ?",
            (rank_id,),
            fetch_one=True
        )
        return dict(rank) if rank else None

    async def create_rank(self, name: str, min_posts: int, color: str, icon: str, is_active: bool = True) -> int:
        """Insert a rank row; raises sqlite3.IntegrityError on a duplicate name"""
        current_time = timestamp()
        return await self.execute_insert("""
            INSERT INTO user_ranks (name, min_posts, color, icon, is_active, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (name, min_posts, color, icon, is_active, current_time, current_time))

    async def update_rank(self, rank_id: int, update_fields: Dict[str, Any]):
        """Update rank fields"""
        field_updates = []
        values = []

        for field, value in update_fields.items():
            if field not in RANK_UPDATE_FIELDS:
                raise ValueError(f"Cannot update rank field: {field}")
            field_updates.append(f"{field} = ?")
            values.append(value)

        if not field_updates:
            return

        values.extend([timestamp(), rank_id])

        await self.execute_query(
            f"UPDATE user_ranks SET {', '.join(field_updates)}, updated_at = ? WHERE rank_id = ?",
            tuple(values)
        )

    async def deactivate_rank(self, rank_id: int):
        await self.update_rank(rank_id, {"is_active": False})

    async def seed_default_ranks(self, ranks: Iterable[Any]) -> int:
        """Insert the given ranks if no rank rows exist yet"""
        existing = await self.execute_query("SELECT COUNT(*) AS total FROM user_ranks", fetch_one=True)
        if existing["total"]:
            return 0

        inserted = 0
        for rank in ranks:
            await self.create_rank(rank.name, rank.min_posts, rank.color, rank.icon)
            inserted += 1
        logger.info("Seeded %d default ranks", inserted)
        return inserted

    # ------------------------------------------------------------------
    # Users

    async def count_users_in_post_range(self, min_posts: int, max_posts_exclusive: Optional[int] = None) -> int:
        """Count active users with min_posts <= post_count < max_posts_exclusive"""
        if max_posts_exclusive is None:
            row = await self.execute_query("""
                SELECT COUNT(*) AS total FROM users
                WHERE is_active = TRUE AND post_count >= ?
            """, (min_posts,), fetch_one=True)
        else:
            row = await self.execute_query("""
                SELECT COUNT(*) AS total FROM users
                WHERE is_active = TRUE AND post_count >= ? AND post_count < ?
            """, (min_posts, max_posts_exclusive), fetch_one=True)
        return row["total"]

    async def create_user(self, username: str, post_count: int = 0, is_admin: bool = False) -> int:
        return await self.execute_insert("""
            INSERT INTO users (username, post_count, is_admin, join_date)
            VALUES (?, ?, ?, ?)
        """, (username, post_count, is_admin, timestamp()))

    async def get_user_by_id(self, user_id: int) -> Optional[Dict]:
        user = await self.execute_query(
            "SELECT * FROM users WHERE user_id = ?",
            (user_id,),
            fetch_one=True
        )
        return dict(user) if user else None

    async def get_user_post_count(self, user_id: int) -> Optional[int]:
        row = await self.execute_query(
            "SELECT post_count FROM users WHERE user_id = ?",
            (user_id,),
            fetch_one=True
        )
        return row["post_count"] if row else None

    async def set_user_post_count(self, user_id: int, post_count: int):
        await self.execute_query(
            "UPDATE users SET post_count = ? WHERE user_id = ?",
            (post_count, user_id)
        )

    async def set_user_active(self, user_id: int, is_active: bool):
        await self.execute_query(
            "UPDATE users SET is_active = ? WHERE user_id = ?",
            (is_active, user_id)
        )
