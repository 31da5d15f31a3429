"""Shared test fixtures."""

from types import SimpleNamespace

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from eventide.domain import character, game as game_mod
from eventide.domain.narrative import NarrativeLog
from eventide.infra.db import get_db
from eventide.main import app
from eventide.models.db_models import Base, User

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_engine):
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def _override_get_db():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def narrative_log():
    return NarrativeLog(capture_timeout=0.05)


@pytest_asyncio.fixture
async def table(db_session, narrative_log):
    """A game with a GM, a player, and three characters.

    ``hero`` and ``ally`` belong to the player; ``foe`` is a GM-run NPC.
    """
    db = db_session
    gm = User(username="gm")
    player = User(username="player")
    db.add_all([gm, player])
    await db.flush()

    game = await game_mod.create_game(db, "Eventide", gm.id)
    await game_mod.join_game(db, game.id, player.id, role="PL")

    hero = await character.create_character(
        db, game.id, "Hero", owner_user_id=player.id,
        abilities={"acro": 3, "phys": 2}, resolve=20, power=5,
    )
    ally = await character.create_character(
        db, game.id, "Ally", owner_user_id=player.id, resolve=15,
    )
    foe = await character.create_character(
        db, game.id, "Foe", abilities={"acro": 1, "phys": 4}, resolve=12,
    )
    return SimpleNamespace(
        db=db, log=narrative_log, gm=gm, player=player, game=game,
        hero=hero, ally=ally, foe=foe,
    )


async def register_user(client: AsyncClient, username: str = "TestUser") -> dict:
    """Register a user and return dict with user_id, api_key, headers."""
    resp = await client.post("/api/auth/register", json={"username": username})
    assert resp.status_code == 200
    data = resp.json()
    return {
        "user_id": data["user_id"],
        "api_key": data["api_key"],
        "access_token": data["access_token"],
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
    }
