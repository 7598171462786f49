"""
Enforcement Action Log
======================

Append-only record of every consequence applied to a learner. Surfaces
read the unresolved entries; the only mutations flip the acknowledged
and resolved flags.
"""

import logging
from typing import Any, Callable, Optional
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from learnforge.db.connection import transaction
from learnforge.db.models import EnforcementAction, utc_now
from learnforge.policy import ConsequenceType

logger = logging.getLogger(__name__)


class ActionLog:
    """Reads and writes EnforcementAction rows for one session."""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utc_now):
        self.session = session
        self.clock = clock

    async def stage_action(
        self,
        user_id: str,
        trigger_type: str,
        action_type: ConsequenceType,
        authority_message: Optional[str] = None,
        trigger_id: Optional[Any] = None,
        action_data: Optional[dict] = None,
    ) -> EnforcementAction:
        """Add an action to the current transaction without committing."""
        action = EnforcementAction(
            user_id=user_id,
            trigger_type=trigger_type,
            trigger_id=str(trigger_id) if trigger_id is not None else None,
            action_type=action_type.value,
            action_data=action_data or {},
            authority_message=authority_message,
            created_at=self.clock(),
        )
        self.session.add(action)
        await self.session.flush()
        return action

    async def log_action(
        self,
        user_id: str,
        trigger_type: str,
        action_type: ConsequenceType,
        authority_message: Optional[str] = None,
        trigger_id: Optional[Any] = None,
        action_data: Optional[dict] = None,
    ) -> EnforcementAction:
        """Record a standalone action and commit it."""
        async with transaction(self.session):
            action = await self.stage_action(
                user_id, trigger_type, action_type, authority_message, trigger_id, action_data
            )
        logger.info("Logged %s action for user %s (%s)", action.action_type, user_id, trigger_type)
        return action

    async def get_pending_actions(self, user_id: str) -> list[EnforcementAction]:
        """Unresolved actions, newest first."""
        result = await self.session.execute(
            select(EnforcementAction)
            .where(EnforcementAction.user_id == user_id, EnforcementAction.resolved == False)
            .order_by(EnforcementAction.created_at.desc(), EnforcementAction.id.desc())
        )
        return list(result.scalars().all())

    async def _owned(self, user_id: str, action_id: int) -> Optional[EnforcementAction]:
        action = await self.session.get(EnforcementAction, action_id)
        if action is None or action.user_id != user_id:
            return None
        return action

    async def acknowledge_action(self, user_id: str, action_id: int) -> bool:
        """Mark an action as seen. False if it does not exist or is not the user's."""
        action = await self._owned(user_id, action_id)
        if action is None:
            logger.warning("Acknowledge rejected for action %s (user %s)", action_id, user_id)
            return False

        async with transaction(self.session):
            action.acknowledged = True
            action.acknowledged_at = self.clock()
        return True

    async def resolve_action(self, user_id: str, action_id: int) -> bool:
        """Mark an action's consequence as served."""
        action = await self._owned(user_id, action_id)
        if action is None:
            logger.warning("Resolve rejected for action %s (user %s)", action_id, user_id)
            return False

        async with transaction(self.session):
            action.resolved = True
            action.resolved_at = self.clock()
        return True
