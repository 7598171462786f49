"""
Roadmap step lookups used by the enforcement components.

Steps are loaded with their roadmap eagerly; async sessions cannot lazy-load.
"""

from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from learnforge.db.models import RoadmapStep

DEFAULT_SUBJECT = "General"


async def load_step(session: AsyncSession, step_id: int) -> Optional[RoadmapStep]:
    result = await session.execute(
        select(RoadmapStep)
        .where(RoadmapStep.id == step_id)
        .options(selectinload(RoadmapStep.roadmap))
    )
    return result.scalar_one_or_none()


async def load_steps(session: AsyncSession, step_ids: Iterable[int]) -> dict[int, RoadmapStep]:
    """Fetch many steps in one query, keyed by id."""
    ids = list(set(step_ids))
    if not ids:
        return {}
    result = await session.execute(select(RoadmapStep).where(RoadmapStep.id.in_(ids)))
    return {step.id: step for step in result.scalars().all()}


def step_subject(step: RoadmapStep) -> str:
    return (step.roadmap.subject if step.roadmap else None) or DEFAULT_SUBJECT
