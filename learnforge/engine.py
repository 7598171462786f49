"""
Enforcement Engine
==================

Request-scoped facade over the enforcement components. One engine wraps
one AsyncSession; create a new one per request or unit of work.

Usage:
    db = await init_db(get_database_url())
    async with db.session() as session:
        engine = create_enforcement_engine(session)

        decision = await engine.evaluate_skip(user_id, roadmap_id, step_id, SkipReason.TOO_HARD)
        if decision.allowed:
            await engine.record_skip(user_id, roadmap_id, step_id, SkipReason.TOO_HARD, decision)

        message = await engine.check_inactivity(user_id)
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from learnforge.actions import ActionLog
from learnforge.completion import CompletionValidation, CompletionValidator
from learnforge.config import EnforcementConfig
from learnforge.db.models import (
    EnforcementAction,
    LearnerIdentity,
    MissionAttempt,
    SkipRecord,
    StudyDebt,
    utc_now,
)
from learnforge.failures import AttemptData, FailureHandler
from learnforge.identity import IdentityTracker
from learnforge.inactivity import InactivityDetector
from learnforge.ledger import DebtSummary, StudyDebtLedger
from learnforge.messaging import AuthorityResponse, MessageContext, get_authority_message
from learnforge.policy import AttemptResult, ConsequenceType, DebtSource, SkipDecision, SkipReason
from learnforge.proof import Proof
from learnforge.remediation import (
    MissionRef,
    RemediationCheck,
    RemediationEngine,
    RemediationResult,
    WeakSpotSummary,
)
from learnforge.skips import SkipEvaluator


@dataclass
class UserEnforcementState:
    """Snapshot of a learner's standing."""
    identity: LearnerIdentity
    pending_actions: list[EnforcementAction] = field(default_factory=list)
    active_debt_minutes: int = 0
    skip_count: int = 0
    failure_count: int = 0
    streak_at_risk: bool = False


class EnforcementEngine:
    """Wires the enforcement components to a shared session, config and clock."""

    def __init__(
        self,
        session: AsyncSession,
        config: Optional[EnforcementConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.config = config or EnforcementConfig()
        self.clock = clock

        self.actions = ActionLog(session, clock)
        self.ledger = StudyDebtLedger(session, self.config, clock)
        self.identity = IdentityTracker(session, clock)
        self.skips = SkipEvaluator(session, self.config, self.ledger, self.actions, self.identity)
        self.completion = CompletionValidator(session, self.config)
        self.failures = FailureHandler(session, self.config, self.ledger, self.actions, self.identity)
        self.remediation = RemediationEngine(session, self.config, clock)
        self.inactivity = InactivityDetector(session, self.config, self.ledger, self.actions, self.identity)

    # -------------------------------------------------------------------------
    # Skips, completion, attempts
    # -------------------------------------------------------------------------

    async def evaluate_skip(
        self,
        user_id: str,
        roadmap_id: int,
        step_id: int,
        reason: SkipReason,
        explanation: Optional[str] = None,
    ) -> SkipDecision:
        return await self.skips.evaluate_skip(user_id, roadmap_id, step_id, reason, explanation)

    async def record_skip(
        self,
        user_id: str,
        roadmap_id: int,
        step_id: int,
        reason: SkipReason,
        decision: SkipDecision,
        explanation: Optional[str] = None,
    ) -> SkipRecord:
        return await self.skips.record_skip(user_id, roadmap_id, step_id, reason, decision, explanation)

    async def validate_completion(
        self,
        user_id: str,
        step_id: int,
        minutes_spent: int,
        proof: Optional[Proof] = None,
    ) -> CompletionValidation:
        return await self.completion.validate_completion(user_id, step_id, minutes_spent, proof)

    async def record_attempt(
        self,
        user_id: str,
        step_id: int,
        result: AttemptResult,
        data: AttemptData,
    ) -> MissionAttempt:
        return await self.failures.record_attempt(user_id, step_id, result, data)

    # -------------------------------------------------------------------------
    # Study debt
    # -------------------------------------------------------------------------

    async def add_study_debt(
        self,
        user_id: str,
        source: DebtSource,
        title: str,
        debt_minutes: int,
        subject: Optional[str] = None,
        description: Optional[str] = None,
    ) -> StudyDebt:
        return await self.ledger.add_study_debt(user_id, source, title, debt_minutes, subject, description)

    async def get_study_debt(self, user_id: str) -> DebtSummary:
        return await self.ledger.get_study_debt(user_id)

    async def list_debts(self, user_id: str, include_completed: bool = False) -> list[StudyDebt]:
        return await self.ledger.list_debts(user_id, include_completed)

    async def pay_study_debt(self, user_id: str, minutes_studied: int) -> int:
        return await self.ledger.pay_study_debt(user_id, minutes_studied)

    # -------------------------------------------------------------------------
    # Identity and inactivity
    # -------------------------------------------------------------------------

    async def get_identity(self, user_id: str) -> LearnerIdentity:
        return await self.identity.get_identity(user_id)

    async def check_inactivity(self, user_id: str) -> Optional[AuthorityResponse]:
        return await self.inactivity.check_inactivity(user_id)

    # -------------------------------------------------------------------------
    # Remediation
    # -------------------------------------------------------------------------

    async def check_remediation_required(self, user_id: str) -> RemediationCheck:
        return await self.remediation.check_remediation_required(user_id)

    async def submit_remediation(
        self,
        user_id: str,
        mission: Union[MissionRef, str],
        proof: Proof,
    ) -> RemediationResult:
        return await self.remediation.submit_remediation(user_id, mission, proof)

    async def get_weak_spots(self, user_id: str) -> WeakSpotSummary:
        return await self.remediation.get_weak_spots(user_id)

    async def resolve_weak_spot(self, user_id: str, weak_spot_id: int) -> bool:
        return await self.remediation.resolve_weak_spot(user_id, weak_spot_id)

    async def reactivate_if_needed(self, user_id: str, subject: str, topic: str) -> bool:
        return await self.remediation.reactivate_if_needed(user_id, subject, topic)

    # -------------------------------------------------------------------------
    # Action log
    # -------------------------------------------------------------------------

    async def log_action(
        self,
        user_id: str,
        trigger_type: str,
        action_type: ConsequenceType,
        authority_message: Optional[str] = None,
        trigger_id: Optional[Any] = None,
        action_data: Optional[dict] = None,
    ) -> EnforcementAction:
        return await self.actions.log_action(
            user_id, trigger_type, action_type, authority_message, trigger_id, action_data
        )

    async def get_pending_actions(self, user_id: str) -> list[EnforcementAction]:
        return await self.actions.get_pending_actions(user_id)

    async def acknowledge_action(self, user_id: str, action_id: int) -> bool:
        return await self.actions.acknowledge_action(user_id, action_id)

    async def resolve_action(self, user_id: str, action_id: int) -> bool:
        return await self.actions.resolve_action(user_id, action_id)

    # -------------------------------------------------------------------------
    # State and messaging
    # -------------------------------------------------------------------------

    async def get_user_state(self, user_id: str) -> UserEnforcementState:
        """Identity, open actions, debt and recent skip/failure counts."""
        identity = await self.get_identity(user_id)
        pending = await self.get_pending_actions(user_id)
        debt = await self.get_study_debt(user_id)

        since = self.clock() - timedelta(days=self.config.recent_window_days)
        skip_count = (await self.session.execute(
            select(func.count(SkipRecord.id))
            .where(SkipRecord.user_id == user_id, SkipRecord.created_at >= since)
        )).scalar_one()
        failure_count = (await self.session.execute(
            select(func.count(MissionAttempt.id))
            .where(
                MissionAttempt.user_id == user_id,
                MissionAttempt.result == AttemptResult.FAILED.value,
                MissionAttempt.started_at >= since,
            )
        )).scalar_one()

        return UserEnforcementState(
            identity=identity,
            pending_actions=pending,
            active_debt_minutes=debt.total,
            skip_count=skip_count,
            failure_count=failure_count,
            streak_at_risk=identity.days_since_last_mission >= self.config.inactivity_warning_days,
        )

    @staticmethod
    def get_authority_message(
        context: Union[MessageContext, str],
        data: Optional[Mapping[str, Any]] = None,
    ) -> AuthorityResponse:
        return get_authority_message(context, data)


def create_enforcement_engine(
    session: AsyncSession,
    config: Optional[EnforcementConfig] = None,
    clock: Callable[[], datetime] = utc_now,
) -> EnforcementEngine:
    """Create an engine, loading config from the environment when none is given."""
    return EnforcementEngine(session, config or EnforcementConfig.load(), clock)
