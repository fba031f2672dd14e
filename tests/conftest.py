import copy
import random
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from armory.bootstrap import Armory, build_armory
from armory.models.db import Base

SAMPLE_CATALOG: dict[str, Any] = {
    "version": "1.0",
    "weapons": [
        {
            "name": "Pistol",
            "set": "Core",
            "deck_type": "Starting",
            "category": "Ranged",
            "default_count": 2,
            "abilities": {"kill_noise": True, "dual": True},
            "ranged": {
                "range_min": 0,
                "range_max": 1,
                "dice": 1,
                "accuracy": 4,
                "damage": 1,
                "ammo_type": "Bullets",
            },
        },
        {
            "name": "Crowbar",
            "set": "Core",
            "deck_type": "Starting",
            "category": "Melee",
            "default_count": 2,
            "abilities": {"open_door": True},
            "melee": {"range": 0, "dice": 1, "accuracy": 4, "damage": 1},
        },
        {
            "name": "Fire Axe",
            "set": "Core",
            "deck_type": "Starting",
            "category": "Melee",
            "default_count": 1,
            "abilities": {"open_door": True, "door_noise": True},
            "melee": {"range": 0, "dice": 1, "accuracy": 4, "damage": 2},
        },
        {
            "name": "Shotgun",
            "set": "Core",
            "deck_type": "Regular",
            "category": "Ranged",
            "default_count": 2,
            "ranged": {
                "range_min": 0,
                "range_max": 1,
                "dice": 2,
                "accuracy": 4,
                "damage": 2,
                "ammo_type": "Shells",
            },
        },
        {
            "name": "Chainsaw",
            "set": "Core",
            "deck_type": "Regular",
            "category": "Melee",
            "default_count": 1,
            "melee": {"range": 0, "dice": 5, "accuracy": 5, "damage": 3},
        },
        {
            "name": "Katana",
            "set": "Core",
            "deck_type": "Regular",
            "category": "Melee",
            "default_count": 1,
            "melee": {"range": 0, "dice": 2, "accuracy": 4, "damage": 1},
        },
        {
            "name": "Gunblade",
            "set": "Angry Neighbors",
            "deck_type": "Ultrared",
            "category": "Dual",
            "default_count": 1,
            "melee": {"range": 0, "dice": 2, "accuracy": 3, "damage": 2},
            "ranged": {
                "range_min": 0,
                "range_max": 1,
                "dice": 2,
                "accuracy": 4,
                "damage": 1,
                "ammo_type": "Bullets",
            },
        },
    ],
}


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def sample_catalog() -> dict[str, Any]:
    """A fresh copy of the sample catalog document, safe to mutate."""
    return copy.deepcopy(SAMPLE_CATALOG)


@pytest.fixture
def armory(session: AsyncSession) -> Armory:
    """All components wired to the test session with a seeded RNG."""
    return build_armory(session, rng=random.Random(1234))


@pytest.fixture
async def seeded_armory(armory: Armory, sample_catalog: dict[str, Any]) -> Armory:
    """Armory with the sample catalog imported and committed."""
    await armory.importer.ingest_catalog(sample_catalog)
    return armory
