"""
Failure Handler
===============

Records mission attempts and escalates repeated failure: weak-spot
tracking, study debt, remediation and slowdown actions.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from learnforge.actions import ActionLog
from learnforge.config import EnforcementConfig
from learnforge.db.connection import transaction
from learnforge.db.models import MissionAttempt, RoadmapStep, WeakSpot
from learnforge.identity import IdentityTracker
from learnforge.ledger import StudyDebtLedger
from learnforge.policy import (
    AttemptResult,
    ConsequenceType,
    DebtSource,
    WeakSpotStatus,
    failure_consequences,
    needs_remediation,
    severity_after_failure,
)
from learnforge.roadmaps import load_step, step_subject

logger = logging.getLogger(__name__)


@dataclass
class AttemptData:
    """What the caller knows about an attempt."""
    minutes_spent: int
    minimum_time_met: bool = False
    proof_type: Optional[str] = None
    proof_data: Optional[dict[str, Any]] = None
    proof_validated: bool = False
    difficulty_rating: Optional[int] = None
    confidence_level: Optional[float] = None
    failure_reason: Optional[str] = None


class FailureHandler:
    """Appends MissionAttempts and applies the failure escalation policy."""

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

    @property
    def clock(self):
        return self.ledger.clock

    async def count_attempts(self, user_id: str, step_id: int) -> int:
        result = await self.session.execute(
            select(func.count(MissionAttempt.id))
            .where(MissionAttempt.user_id == user_id, MissionAttempt.step_id == step_id)
        )
        return result.scalar_one()

    async def record_attempt(
        self,
        user_id: str,
        step_id: int,
        result: AttemptResult,
        data: AttemptData,
    ) -> MissionAttempt:
        """
        Append an attempt and apply its consequences in one transaction.

        Args:
            user_id: Authenticated learner
            step_id: Roadmap step attempted
            result: SUCCESS or FAILED
            data: Time, proof and self-assessment details

        Returns:
            The stored MissionAttempt
        """
        async with transaction(self.session):
            prior_attempts = await self.count_attempts(user_id, step_id)
            now = self.clock()

            attempt = MissionAttempt(
                user_id=user_id,
                step_id=step_id,
                attempt_number=prior_attempts + 1,
                result=result.value,
                minutes_spent=data.minutes_spent,
                minimum_time_met=data.minimum_time_met,
                proof_type=data.proof_type,
                proof_data=data.proof_data,
                proof_validated=data.proof_validated,
                difficulty_rating=data.difficulty_rating,
                confidence_level=data.confidence_level,
                failure_reason=data.failure_reason,
                needs_remediation=needs_remediation(result, prior_attempts, self.config),
                started_at=now,
                completed_at=now if result == AttemptResult.SUCCESS else None,
            )
            self.session.add(attempt)
            await self.session.flush()

            if result == AttemptResult.FAILED:
                await self.identity.stage_failure(user_id)
                await self._handle_failure(user_id, step_id, attempt.attempt_number)
            else:
                await self.identity.stage_success(user_id)

        logger.info(
            "Attempt %d recorded for %s on step %s: %s",
            attempt.attempt_number, user_id, step_id, result.value,
        )
        return attempt

    async def _handle_failure(self, user_id: str, step_id: int, attempt_number: int) -> None:
        step = await load_step(self.session, step_id)
        if step is None:
            return

        subject = step_subject(step)
        topic = step.title
        await self.upsert_weak_spot(user_id, step, subject, topic, attempt_number)

        for consequence in failure_consequences(attempt_number, self.config):
            if consequence == ConsequenceType.REMEDIATION:
                await self.ledger.stage_debt(
                    user_id,
                    DebtSource.INCOMPLETE_GOAL,
                    title=f"Failed: {topic}",
                    debt_minutes=self.config.failure_debt_minutes,
                    subject=subject,
                )
                await self.actions.stage_action(
                    user_id,
                    trigger_type="failure",
                    trigger_id=step_id,
                    action_type=ConsequenceType.REMEDIATION,
                    authority_message=f'{attempt_number} failed attempts on "{topic}". Remediation required.',
                )
            elif consequence == ConsequenceType.SLOWDOWN:
                await self.actions.stage_action(
                    user_id,
                    trigger_type="repeated_failure",
                    trigger_id=step_id,
                    action_type=ConsequenceType.SLOWDOWN,
                    authority_message="Your pace is being adjusted. Depth over speed.",
                )

    async def _find_weak_spot(self, user_id: str, subject: str, topic: str) -> Optional[WeakSpot]:
        result = await self.session.execute(
            select(WeakSpot).where(
                WeakSpot.user_id == user_id,
                WeakSpot.subject == subject,
                WeakSpot.topic == topic,
            )
        )
        return result.scalar_one_or_none()

    async def upsert_weak_spot(
        self,
        user_id: str,
        step: RoadmapStep,
        subject: str,
        topic: str,
        attempt_number: int,
    ) -> WeakSpot:
        """
        Find-or-create the (user, subject, topic) weak spot and record the failure.

        The unique constraint on the key decides races: if a concurrent
        request inserted first, the insert is rolled back to its savepoint
        and the existing row is updated instead.
        """
        now = self.clock()
        spot = await self._find_weak_spot(user_id, subject, topic)

        if spot is None:
            try:
                async with self.session.begin_nested():
                    spot = WeakSpot(
                        user_id=user_id,
                        subject=subject,
                        topic=topic,
                        failed_attempts=1,
                        severity=1,
                        status=WeakSpotStatus.ACTIVE.value,
                        source_step_id=step.id,
                        source_roadmap_id=step.roadmap_id,
                        last_failed_at=now,
                        remediation_count=0,
                        created_at=now,
                    )
                    self.session.add(spot)
                logger.info("Weak spot opened for %s: %s / %s", user_id, subject, topic)
                return spot
            except IntegrityError:
                spot = await self._find_weak_spot(user_id, subject, topic)
                if spot is None:
                    raise

        spot.failed_attempts += 1
        spot.last_failed_at = now
        spot.severity = severity_after_failure(spot.severity, attempt_number)
        spot.status = WeakSpotStatus.ACTIVE.value
        await self.session.flush()

        logger.info(
            "Weak spot updated for %s: %s / %s (severity %d)",
            user_id, subject, topic, spot.severity,
        )
        return spot
