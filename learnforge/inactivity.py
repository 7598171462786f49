"""
Inactivity Detector
===================

Run when a learner returns (e.g. on login). Records how long they were
away and, past the consequence threshold, breaks the streak and books
the lost days as study debt.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from learnforge.actions import ActionLog
from learnforge.config import EnforcementConfig
from learnforge.db.connection import transaction
from learnforge.db.models import ensure_utc
from learnforge.identity import IdentityTracker
from learnforge.ledger import StudyDebtLedger
from learnforge.messaging import AuthorityResponse, Tone
from learnforge.policy import ConsequenceType, DebtSource, days_between, streak_debt_minutes

logger = logging.getLogger(__name__)


class InactivityDetector:

    def __init__(
        self,
        session: AsyncSession,
        config: EnforcementConfig,
        ledger: StudyDebtLedger,
        actions: ActionLog,
        identity: IdentityTracker,
    ):
        self.session = session
        self.config = config
        self.ledger = ledger
        self.actions = actions
        self.identity = identity

    async def check_inactivity(self, user_id: str) -> Optional[AuthorityResponse]:
        """
        Update days-since-last-mission and apply the inactivity ladder.

        Returns:
            A warning between the warning and consequence thresholds, a
            consequence (or neutral, if there was no streak to lose) past
            the consequence threshold, otherwise None.
        """
        async with transaction(self.session):
            identity = await self.identity.load_identity(user_id)
            if identity.last_mission_at is None:
                return None

            days_since = days_between(ensure_utc(identity.last_mission_at), self.ledger.clock())
            identity.days_since_last_mission = days_since

            if days_since < self.config.inactivity_warning_days:
                return None

            if days_since < self.config.inactivity_consequence_days:
                return AuthorityResponse(
                    f"{days_since} days away. Your streak is at risk. One session today saves it.",
                    Tone.WARNING,
                )

            lost_streak = identity.current_streak
            if lost_streak == 0:
                return AuthorityResponse(f"{days_since} days away. Let's get back on track.", Tone.NEUTRAL)

            message = f"Your {lost_streak}-day streak is gone. Rebuilding starts now."
            identity.current_streak = 0

            await self.ledger.stage_debt(
                user_id,
                DebtSource.BROKEN_STREAK,
                title=f"Streak broken: {lost_streak} days lost",
                debt_minutes=streak_debt_minutes(lost_streak, self.config),
            )
            await self.actions.stage_action(
                user_id,
                trigger_type="inactivity",
                action_type=ConsequenceType.STREAK_RESET,
                authority_message=message,
                action_data={"days_since": days_since, "lost_streak": lost_streak},
            )

        logger.info("Streak reset for %s after %d days away (lost %d)", user_id, days_since, lost_streak)
        return AuthorityResponse(
            message,
            Tone.CONSEQUENCE,
            action_required="Complete one mission to start a new streak.",
        )
