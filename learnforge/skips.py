"""
Skip Evaluator
==============

Decides whether a learner may skip a roadmap step and what it costs.

Evaluating and recording are separate so the caller can show the
consequence and ask for confirmation before anything is written:

    decision = await evaluator.evaluate_skip(user_id, roadmap_id, step_id, SkipReason.TOO_HARD)
    if decision.allowed and user_confirms(decision.message):
        await evaluator.record_skip(user_id, roadmap_id, step_id, SkipReason.TOO_HARD, decision)
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from learnforge.actions import ActionLog
from learnforge.config import EnforcementConfig
from learnforge.db.connection import transaction
from learnforge.db.models import MissionAttempt, SkipRecord
from learnforge.errors import SkipNotAllowedError
from learnforge.identity import IdentityTracker
from learnforge.ledger import StudyDebtLedger
from learnforge.policy import (
    ConsequenceType,
    DebtSource,
    SkipDecision,
    SkipReason,
    StepStatus,
    decide_skip,
)
from learnforge.roadmaps import load_step

logger = logging.getLogger(__name__)

STEP_NOT_FOUND_MESSAGE = "Step not found."


class SkipEvaluator:
    """Evaluates and records skips against the escalating skip ladder."""

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

    async def count_skips(self, user_id: str, roadmap_id: int) -> int:
        result = await self.session.execute(
            select(func.count(SkipRecord.id))
            .where(SkipRecord.user_id == user_id, SkipRecord.roadmap_id == roadmap_id)
        )
        return result.scalar_one()

    async def count_attempts(self, user_id: str, step_id: int) -> int:
        result = await self.session.execute(
            select(func.count(MissionAttempt.id))
            .where(MissionAttempt.user_id == user_id, MissionAttempt.step_id == step_id)
        )
        return result.scalar_one()

    async def evaluate_skip(
        self,
        user_id: str,
        roadmap_id: int,
        step_id: int,
        reason: SkipReason,
        explanation: Optional[str] = None,
    ) -> SkipDecision:
        """
        Decide whether the skip is allowed and what consequence attaches.

        Reads only; nothing is written until record_skip().
        """
        step = await load_step(self.session, step_id)
        if step is None or step.roadmap_id != roadmap_id:
            return SkipDecision(allowed=False, message=STEP_NOT_FOUND_MESSAGE)

        prior_skips = await self.count_skips(user_id, roadmap_id)
        prior_attempts = await self.count_attempts(user_id, step_id)

        return decide_skip(reason, prior_skips, prior_attempts, self.config)

    async def record_skip(
        self,
        user_id: str,
        roadmap_id: int,
        step_id: int,
        reason: SkipReason,
        decision: SkipDecision,
        explanation: Optional[str] = None,
    ) -> SkipRecord:
        """
        Persist the skip and apply its consequences in one transaction:
        the skip record, any debt, the step's SKIPPED status, the action
        log entry, and the learner's skip counter.
        """
        if not decision.allowed:
            raise SkipNotAllowedError(decision.message)

        async with transaction(self.session):
            step = await load_step(self.session, step_id)
            step_title = step.title if step is not None else f"step {step_id}"

            record = SkipRecord(
                user_id=user_id,
                roadmap_id=roadmap_id,
                step_id=step_id,
                reason=reason.value,
                user_explanation=explanation,
                consequence_type=decision.consequence.value if decision.consequence else None,
                consequence_applied=decision.consequence is not None,
                consequence_data={"debt_minutes": decision.debt_minutes} if decision.debt_minutes else {},
                requires_remediation=decision.requires_remediation,
                remediation_completed=False,
                created_at=self.ledger.clock(),
            )
            self.session.add(record)
            await self.session.flush()

            if decision.debt_minutes:
                await self.ledger.stage_debt(
                    user_id,
                    DebtSource.INCOMPLETE_GOAL,
                    title=f"Skipped: {step_title}",
                    debt_minutes=decision.debt_minutes,
                )

            if step is not None:
                step.status = StepStatus.SKIPPED.value

            await self.actions.stage_action(
                user_id,
                trigger_type="skip",
                trigger_id=record.id,
                action_type=decision.consequence or ConsequenceType.WARNING,
                authority_message=decision.message,
            )

            await self.identity.stage_skip(user_id)

        logger.info(
            "Skip recorded for %s on step %s (%s, consequence=%s)",
            user_id, step_id, reason.value,
            decision.consequence.value if decision.consequence else None,
        )
        return record
