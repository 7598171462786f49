"""
Learner Identity Tracker
========================

Maintains the per-user LearnerIdentity aggregate: totals, streaks, and the
archetype label unlocked after enough completed missions.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from learnforge.db.connection import transaction
from learnforge.db.models import LearnerIdentity, utc_now
from learnforge.policy import ARCHETYPE_UNLOCK_MISSIONS, determine_archetype

logger = logging.getLogger(__name__)


def archetype_for(identity: LearnerIdentity) -> str:
    return determine_archetype(
        completed=identity.total_missions_completed,
        failed=identity.total_missions_failed,
        skipped=identity.total_missions_skipped,
        longest_streak=identity.longest_streak,
    )


class IdentityTracker:
    """Get-or-create and event updates for LearnerIdentity."""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utc_now):
        self.session = session
        self.clock = clock

    async def _find(self, user_id: str) -> Optional[LearnerIdentity]:
        result = await self.session.execute(
            select(LearnerIdentity).where(LearnerIdentity.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def load_identity(self, user_id: str) -> LearnerIdentity:
        """Fetch the identity, creating it inside the current transaction if absent."""
        identity = await self._find(user_id)
        if identity is not None:
            return identity

        try:
            async with self.session.begin_nested():
                identity = LearnerIdentity(
                    user_id=user_id,
                    total_missions_completed=0,
                    total_missions_failed=0,
                    total_missions_skipped=0,
                    current_streak=0,
                    longest_streak=0,
                    days_since_last_mission=0,
                    created_at=self.clock(),
                )
                self.session.add(identity)
        except IntegrityError:
            # Created concurrently by another request
            identity = await self._find(user_id)
            if identity is None:
                raise
        return identity

    async def get_identity(self, user_id: str) -> LearnerIdentity:
        async with transaction(self.session):
            return await self.load_identity(user_id)

    async def stage_success(self, user_id: str) -> LearnerIdentity:
        """
        Count a completed mission, extend the streak, maybe unlock the archetype.

        The archetype is judged on the counters after this mission is counted,
        so the unlocking mission itself (and the streak it extends) is part of
        the profile. Judging the pre-increment counters would unlock on the
        tenth success but describe only the first nine.
        """
        identity = await self.load_identity(user_id)
        now = self.clock()

        identity.total_missions_completed += 1
        identity.current_streak += 1
        identity.longest_streak = max(identity.longest_streak, identity.current_streak)
        identity.last_mission_at = now
        identity.days_since_last_mission = 0

        if identity.archetype is None and identity.total_missions_completed >= ARCHETYPE_UNLOCK_MISSIONS:
            identity.archetype = archetype_for(identity)
            identity.archetype_unlocked_at = now
            logger.info("Archetype unlocked for %s: %s", user_id, identity.archetype)

        await self.session.flush()
        return identity

    async def stage_skip(self, user_id: str) -> LearnerIdentity:
        identity = await self.load_identity(user_id)
        identity.total_missions_skipped += 1
        await self.session.flush()
        return identity

    async def stage_failure(self, user_id: str) -> LearnerIdentity:
        identity = await self.load_identity(user_id)
        identity.total_missions_failed += 1
        await self.session.flush()
        return identity
