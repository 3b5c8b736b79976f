"""
Pytest configuration and fixtures for rank tests.
"""
import pytest
from fastapi.testclient import TestClient

import app as app_module
from database import DatabaseManager
from ranks import DEFAULT_RANKS, RankResolver
from fakes import FakeClock, FakeRankStore


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def failing_store():
    """A store whose rank table is missing, so defaults are served."""
    store = FakeRankStore()
    store.fail_list = True
    return store


@pytest.fixture
def resolver(failing_store, clock):
    return RankResolver(failing_store, clock=clock)


@pytest.fixture
async def store(tmp_path):
    db = DatabaseManager(str(tmp_path / "forum.db"))
    await db.init_schema()
    return db


@pytest.fixture
async def seeded_store(store):
    await store.seed_default_ranks(DEFAULT_RANKS)
    return store


@pytest.fixture
def db_resolver(seeded_store):
    return RankResolver(seeded_store)


@pytest.fixture
def client(seeded_store, db_resolver):
    app_module.app.dependency_overrides[app_module.get_db] = lambda: seeded_store
    app_module.app.dependency_overrides[app_module.get_rank_resolver] = lambda: db_resolver
    yield TestClient(app_module.app, base_url="http://localhost")
    app_module.app.dependency_overrides.clear()


@pytest.fixture
async def admin_headers(seeded_store):
    user_id = await seeded_store.create_user("admin", post_count=1200, is_admin=True)
    token = app_module.security_manager.create_access_token({"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def member_headers(seeded_store):
    user_id = await seeded_store.create_user("member", post_count=3)
    token = app_module.security_manager.create_access_token({"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def veteran_id(seeded_store):
    return await seeded_store.create_user("veteran", post_count=640)
