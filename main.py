#!/usr/bin/env python3
"""
Rank ladder maintenance commands.

Usage:
  python main.py init-db                         # Create tables and seed default ranks
  python main.py show-ranks                      # Print the active rank ladder
  python main.py rank <post_count>               # Show the rank and progress for a post count
  python main.py counts                          # Show how many users hold each rank
  python main.py add-user <username> <posts> [--admin]
  python main.py set-posts <user_id> <posts>
  python main.py admin-token <user_id>           # Issue a bearer token for the admin endpoints
"""
import asyncio
import sys
from config import DB_PATH, SECRET_KEY
from database import DatabaseManager
from ranks import DEFAULT_RANKS, RankResolver, format_for_display
from security import SecurityManager


def print_usage():
    print(__doc__.strip())


def parse_int(value: str, label: str) -> int:
    try:
        return int(value)
    except ValueError:
        print(f"{label} must be an integer, got {value!r}")
        sys.exit(2)


async def run(args: list) -> int:
    db = DatabaseManager(DB_PATH)
    resolver = RankResolver(db)
    command = args[0]

    if command == "init-db":
        await db.init_schema()
        inserted = await db.seed_default_ranks(DEFAULT_RANKS)
        print(f"Database ready at {DB_PATH} ({inserted} ranks seeded)")

    elif command == "show-ranks":
        for rank in await resolver.get_rank_table():
            print(f"{rank.min_posts:>6}+  {format_for_display(rank).badge}  {rank.color}")

    elif command == "rank" and len(args) == 2:
        info = await resolver.resolve_rank_with_progress(parse_int(args[1], "post_count"))
        print(f"Current: {format_for_display(info.current).badge}")
        if info.next:
            print(f"Next:    {format_for_display(info.next).badge} in {info.posts_to_next_rank} posts ({info.progress}%)")
        else:
            print("Top rank reached")

    elif command == "counts":
        for rank in await resolver.resolve_ranks_with_user_counts():
            print(f"{rank.icon} {rank.name:<16} {rank.user_count}")

    elif command == "add-user" and len(args) in (3, 4):
        is_admin = len(args) == 4 and args[3] == "--admin"
        user_id = await db.create_user(args[1], parse_int(args[2], "posts"), is_admin=is_admin)
        print(f"Created user {args[1]} (ID: {user_id}){' [ADMIN]' if is_admin else ''}")

    elif command == "set-posts" and len(args) == 3:
        user_id = parse_int(args[1], "user_id")
        if not await db.get_user_by_id(user_id):
            print(f"User {user_id} not found")
            return 1
        await db.set_user_post_count(user_id, parse_int(args[2], "posts"))
        print(f"User {user_id} now has {args[2]} posts")

    elif command == "admin-token" and len(args) == 2:
        user = await db.get_user_by_id(parse_int(args[1], "user_id"))
        if not user or not user["is_admin"]:
            print("User not found or not an admin")
            return 1
        print(SecurityManager(secret_key=SECRET_KEY).create_access_token({"sub": str(user["user_id"])}))

    else:
        print_usage()
        return 2

    return 0


def main():
    if len(sys.argv) < 2:
        print_usage()
        sys.exit(2)
    sys.exit(asyncio.run(run(sys.argv[1:])))


if __name__ == "__main__":
    main()
