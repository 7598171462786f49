"""
Shared fixtures: a file-backed SQLite database per test, a controllable
clock, and a seeded roadmap.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from learnforge.config import EnforcementConfig
from learnforge.db import Roadmap, RoadmapStep, init_db, sqlite_url
from learnforge.engine import EnforcementEngine

USER = "learner-1"
OTHER_USER = "learner-2"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass
class SeededRoadmap:
    roadmap_id: int
    step_ids: list[int]
    step_titles: list[str]


@pytest_asyncio.fixture
async def db(tmp_path):
    database = await init_db(sqlite_url(tmp_path / "enforcement.db"))
    yield database
    await database.dispose()


@pytest_asyncio.fixture
async def session(db):
    async with db.session() as s:
        yield s


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def config():
    return EnforcementConfig()


@pytest.fixture
def engine(session, config, clock):
    return EnforcementEngine(session, config, clock)


async def seed_roadmap(session, user_id=USER, subject="Python", titles=None) -> SeededRoadmap:
    titles = titles or ["Variables", "Control Flow", "Functions", "Classes"]
    roadmap = Roadmap(user_id=user_id, title=f"{subject} Basics", subject=subject)
    roadmap.steps = [
        RoadmapStep(
            position=i,
            title=title,
            description=f"Learn about {title.lower()}.",
            duration=20 + i * 5,
            status="CURRENT" if i == 0 else "LOCKED",
        )
        for i, title in enumerate(titles)
    ]
    session.add(roadmap)
    await session.commit()
    return SeededRoadmap(
        roadmap_id=roadmap.id,
        step_ids=[step.id for step in roadmap.steps],
        step_titles=list(titles),
    )


@pytest_asyncio.fixture
async def roadmap(session):
    return await seed_roadmap(session)
