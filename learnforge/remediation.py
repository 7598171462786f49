"""
Remediation Engine
==================

Builds remediation missions from active weak spots and pending skip
remediations, and evaluates the proof submitted against them.

Missions are identified by a MissionRef, a tagged reference to the
underlying WeakSpot or SkipRecord. The string token form (`ws-12`,
`skip-7`) only exists at the boundary:

    ref = MissionRef.from_token("ws-12")
    result = await engine.submit_remediation(user_id, ref, proof)
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Union

from sqlalchemy import case, select
from sqlalchemy.ext.asyncio import AsyncSession

from learnforge.config import EnforcementConfig
from learnforge.db.connection import transaction
from learnforge.db.models import RoadmapStep, SkipRecord, WeakSpot, utc_now
from learnforge.errors import InvalidMissionError
from learnforge.policy import (
    ProofType,
    WeakSpotStatus,
    clamp_severity,
    remediation_directive,
    remediation_requirement,
)
from learnforge.proof import (
    Proof,
    ProofCheck,
    sanitize_user_input,
    validate_explanation_quality,
    validate_practice_submission,
    validate_quiz_score,
)
from learnforge.roadmaps import load_steps

logger = logging.getLogger(__name__)

MAX_WEAK_SPOT_MISSIONS = 3
MAX_SKIP_MISSIONS = 3
MIN_REMEDIATION_SEVERITY = 2
DEFAULT_SKIP_MISSION_MINUTES = 15

NOT_OWNED_FEEDBACK = "Invalid mission. This remediation does not belong to you."
ALREADY_DONE_FEEDBACK = "This remediation is already complete."

# SQLite INTEGER primary keys are signed 64-bit
MAX_RECORD_ID = 2**63 - 1
_RECORD_ID = re.compile(r"[0-9]+")


# =============================================================================
# Mission references
# =============================================================================

class MissionKind(Enum):
    WEAK_SPOT = "ws"
    SKIP = "skip"


@dataclass(frozen=True)
class MissionRef:
    """Which record a remediation mission targets."""
    kind: MissionKind
    record_id: int

    def to_token(self) -> str:
        return f"{self.kind.value}-{self.record_id}"

    @classmethod
    def from_token(cls, token: str) -> "MissionRef":
        """Decode `ws-<id>` or `skip-<id>`. Raises InvalidMissionError otherwise."""
        prefix, sep, raw_id = (token or "").partition("-")
        if not sep or not _RECORD_ID.fullmatch(raw_id):
            raise InvalidMissionError(token)
        try:
            kind = MissionKind(prefix)
            record_id = int(raw_id)
        except ValueError:
            raise InvalidMissionError(token) from None
        if record_id > MAX_RECORD_ID:
            raise InvalidMissionError(token)
        return cls(kind, record_id)

    def __str__(self) -> str:
        return self.to_token()


# =============================================================================
# Mission and result types
# =============================================================================

class MissionType(Enum):
    SKILL_GAP = "SKILL_GAP"
    CONCEPT_REVIEW = "CONCEPT_REVIEW"


@dataclass
class RemediationCriteria:
    type: str  # score, completion, quality
    description: str
    threshold: Optional[int] = None

    def to_dict(self) -> dict:
        return {"type": self.type, "threshold": self.threshold, "description": self.description}


@dataclass
class LinkedWeakSpot:
    id: int
    topic: str
    failed_attempts: int

    def to_dict(self) -> dict:
        return {"id": self.id, "topic": self.topic, "failed_attempts": self.failed_attempts}


@dataclass
class RemediationMission:
    """A mandatory or optional task that closes a knowledge gap."""
    ref: MissionRef
    type: MissionType
    title: str
    directive: str
    context: str
    estimated_minutes: int
    proof_required: ProofType
    criteria: RemediationCriteria
    mandatory: bool
    linked_weak_spot: Optional[LinkedWeakSpot] = None

    @property
    def id(self) -> str:
        return self.ref.to_token()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "directive": self.directive,
            "context": self.context,
            "estimated_minutes": self.estimated_minutes,
            "proof_required": self.proof_required.value,
            "criteria": self.criteria.to_dict(),
            "linked_weak_spot": self.linked_weak_spot.to_dict() if self.linked_weak_spot else None,
            "mandatory": self.mandatory,
        }


@dataclass
class RemediationCheck:
    required: bool
    message: str
    missions: list[RemediationMission] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "required": self.required,
            "message": self.message,
            "missions": [m.to_dict() for m in self.missions],
        }


@dataclass
class RemediationResult:
    mission_id: str
    passed: bool
    feedback: str
    weak_spot_resolved: bool = False

    def to_dict(self) -> dict:
        return {
            "mission_id": self.mission_id,
            "passed": self.passed,
            "feedback": self.feedback,
            "weak_spot_resolved": self.weak_spot_resolved,
        }


@dataclass
class WeakSpotSummary:
    active: list[WeakSpot] = field(default_factory=list)
    remediated: list[WeakSpot] = field(default_factory=list)
    resolved: list[WeakSpot] = field(default_factory=list)


# =============================================================================
# Mission construction
# =============================================================================

def _criteria_for(proof: ProofType, threshold: Optional[int]) -> RemediationCriteria:
    if proof == ProofType.QUIZ:
        return RemediationCriteria("score", f"Score at least {threshold}% on assessment questions.", threshold)
    elif proof == ProofType.PRACTICE:
        return RemediationCriteria("completion", "Complete all practice problems correctly.", threshold)
    return RemediationCriteria(
        "quality",
        "Explain the concept in your own words with enough depth to show understanding.",
        threshold,
    )


def _weak_spot_context(spot: WeakSpot) -> str:
    if spot.remediation_count > 0:
        return (
            f"Remediation attempt #{spot.remediation_count + 1}. Previous approach unsuccessful. "
            "Recommended: use alternative explanations, different examples, "
            "or teach the concept to verify understanding."
        )
    return (
        "Remediation targets specific knowledge gaps. "
        "Depth of understanding is prioritized over completion speed."
    )


def weak_spot_mission(spot: WeakSpot) -> RemediationMission:
    requirement = remediation_requirement(spot.severity)
    return RemediationMission(
        ref=MissionRef(MissionKind.WEAK_SPOT, spot.id),
        type=MissionType.SKILL_GAP,
        title=f"Master: {spot.topic}",
        directive=remediation_directive(spot.topic, spot.failed_attempts),
        context=_weak_spot_context(spot),
        estimated_minutes=requirement.estimated_minutes,
        proof_required=requirement.proof_required,
        criteria=_criteria_for(requirement.proof_required, requirement.threshold),
        mandatory=requirement.mandatory,
        linked_weak_spot=LinkedWeakSpot(spot.id, spot.topic, spot.failed_attempts),
    )


def skip_mission(record: SkipRecord, step: RoadmapStep) -> RemediationMission:
    return RemediationMission(
        ref=MissionRef(MissionKind.SKIP, record.id),
        type=MissionType.CONCEPT_REVIEW,
        title=f"Review: {step.title}",
        directive=(
            f'You skipped "{step.title}". Before moving forward, '
            "demonstrate understanding of this concept."
        ),
        context=step.description or "",
        estimated_minutes=step.duration or DEFAULT_SKIP_MISSION_MINUTES,
        proof_required=ProofType.EXPLANATION,
        criteria=RemediationCriteria(
            "quality", "Explain the key concepts in your own words without looking at notes."
        ),
        mandatory=True,
    )


# =============================================================================
# Engine
# =============================================================================

class RemediationEngine:
    """Lists, evaluates and closes remediation missions for one session."""

    def __init__(
        self,
        session: AsyncSession,
        config: EnforcementConfig,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.config = config
        self.clock = clock

    async def check_remediation_required(self, user_id: str) -> RemediationCheck:
        """
        Collect the missions blocking further progress.

        Up to three active weak spots (severity 2 and up, worst first) and
        up to three pending skip remediations. Skipped steps are fetched in
        a single query.
        """
        result = await self.session.execute(
            select(WeakSpot)
            .where(
                WeakSpot.user_id == user_id,
                WeakSpot.status == WeakSpotStatus.ACTIVE.value,
                WeakSpot.severity >= MIN_REMEDIATION_SEVERITY,
            )
            .order_by(WeakSpot.severity.desc(), WeakSpot.id.asc())
            .limit(MAX_WEAK_SPOT_MISSIONS)
        )
        weak_spots = list(result.scalars().all())

        result = await self.session.execute(
            select(SkipRecord)
            .where(
                SkipRecord.user_id == user_id,
                SkipRecord.requires_remediation == True,
                SkipRecord.remediation_completed == False,
            )
            .order_by(SkipRecord.created_at.asc(), SkipRecord.id.asc())
            .limit(MAX_SKIP_MISSIONS)
        )
        pending_skips = list(result.scalars().all())

        if not weak_spots and not pending_skips:
            return RemediationCheck(
                required=False,
                message="No remediation required. Continue with your roadmap.",
            )

        missions = [weak_spot_mission(spot) for spot in weak_spots]

        steps = await load_steps(self.session, (r.step_id for r in pending_skips))
        for record in pending_skips:
            step = steps.get(record.step_id)
            if step is not None:
                missions.append(skip_mission(record, step))

        return RemediationCheck(
            required=True,
            missions=missions,
            message=f"{len(missions)} remediation mission(s) required before continuing.",
        )

    def evaluate_proof(self, proof: Proof) -> tuple[ProofCheck, str]:
        """Score proof by its own type. Returns the check and feedback text."""
        content = sanitize_user_input(proof.content)

        if proof.type == ProofType.QUIZ:
            check = validate_quiz_score(proof.score, self.config.remediation_quiz_score)
            success = f"{proof.score:g}% - Threshold met. This topic is now resolved." if check.valid else ""
            fallback = "Quiz score below threshold."
        elif proof.type == ProofType.PRACTICE:
            check = validate_practice_submission(content)
            success = "Practice completed. The concept should be clearer now."
            fallback = "Practice submission insufficient."
        else:
            check = validate_explanation_quality(
                content,
                min_length=self.config.min_explanation_length,
                min_words=self.config.min_explanation_words,
                min_unique_words=self.config.min_explanation_unique_words,
            )
            success = "Explanation accepted. Understanding demonstrated."
            fallback = "Explanation insufficient."

        if check.valid:
            return check, success
        return check, check.reason or fallback

    async def _owned_target(
        self, user_id: str, ref: MissionRef
    ) -> Optional[Union[WeakSpot, SkipRecord]]:
        if not 0 <= ref.record_id <= MAX_RECORD_ID:
            return None
        model = WeakSpot if ref.kind == MissionKind.WEAK_SPOT else SkipRecord
        target = await self.session.get(model, ref.record_id)
        if target is None or target.user_id != user_id:
            return None
        return target

    async def submit_remediation(
        self,
        user_id: str,
        mission: Union[MissionRef, str],
        proof: Proof,
    ) -> RemediationResult:
        """
        Evaluate proof for a remediation mission and record the outcome.

        Ownership is checked before the proof is looked at; a mission that
        does not exist or belongs to another user is rejected with no writes.

        Args:
            user_id: Authenticated learner
            mission: MissionRef, or its token form
            proof: Submitted evidence

        Returns:
            RemediationResult
        """
        if isinstance(mission, str):
            try:
                mission = MissionRef.from_token(mission)
            except InvalidMissionError as e:
                logger.warning("Rejected remediation for %s: %s", user_id, e)
                return RemediationResult(mission_id=e.token, passed=False, feedback=NOT_OWNED_FEEDBACK)

        mission_id = mission.to_token()

        target = await self._owned_target(user_id, mission)
        if target is None:
            logger.warning("Unauthorized remediation attempt by %s on %s", user_id, mission_id)
            return RemediationResult(mission_id=mission_id, passed=False, feedback=NOT_OWNED_FEEDBACK)

        if isinstance(target, WeakSpot):
            closed = target.status != WeakSpotStatus.ACTIVE.value
        else:
            closed = not target.requires_remediation or target.remediation_completed
        if closed:
            return RemediationResult(mission_id=mission_id, passed=False, feedback=ALREADY_DONE_FEEDBACK)

        check, feedback = self.evaluate_proof(proof)
        now = self.clock()
        weak_spot_resolved = False

        async with transaction(self.session):
            if isinstance(target, WeakSpot):
                target.remediation_count += 1
                if check.valid:
                    target.status = WeakSpotStatus.REMEDIATED.value
                    target.last_remediated_at = now
                    weak_spot_resolved = True
                else:
                    target.severity = clamp_severity(target.severity + 1)
            elif check.valid:
                target.remediation_completed = True
                target.resolved_at = now

        if check.valid:
            logger.info("Remediation completed by %s on %s", user_id, mission_id)
        else:
            logger.info("Remediation failed by %s on %s", user_id, mission_id)

        return RemediationResult(
            mission_id=mission_id,
            passed=check.valid,
            feedback=feedback,
            weak_spot_resolved=weak_spot_resolved,
        )

    async def get_weak_spots(self, user_id: str) -> WeakSpotSummary:
        status_order = case(
            (WeakSpot.status == WeakSpotStatus.ACTIVE.value, 0),
            (WeakSpot.status == WeakSpotStatus.REMEDIATED.value, 1),
            else_=2,
        )
        result = await self.session.execute(
            select(WeakSpot)
            .where(WeakSpot.user_id == user_id)
            .order_by(status_order, WeakSpot.severity.desc(), WeakSpot.last_failed_at.desc())
        )

        summary = WeakSpotSummary()
        buckets = {
            WeakSpotStatus.ACTIVE.value: summary.active,
            WeakSpotStatus.REMEDIATED.value: summary.remediated,
            WeakSpotStatus.RESOLVED.value: summary.resolved,
        }
        for spot in result.scalars().all():
            buckets[spot.status].append(spot)
        return summary

    async def resolve_weak_spot(self, user_id: str, weak_spot_id: int) -> bool:
        """Confirm mastery. False if the weak spot is missing or not the user's."""
        spot = await self.session.get(WeakSpot, weak_spot_id)
        if spot is None or spot.user_id != user_id:
            logger.warning("Resolve rejected for weak spot %s (user %s)", weak_spot_id, user_id)
            return False

        async with transaction(self.session):
            spot.status = WeakSpotStatus.RESOLVED.value
            spot.resolved_at = self.clock()
        return True

    async def reactivate_if_needed(self, user_id: str, subject: str, topic: str) -> bool:
        """Put a REMEDIATED weak spot back in play after a new failure on its topic."""
        result = await self.session.execute(
            select(WeakSpot).where(
                WeakSpot.user_id == user_id,
                WeakSpot.subject == subject,
                WeakSpot.topic == topic,
            )
        )
        spot = result.scalar_one_or_none()
        if spot is None or spot.status != WeakSpotStatus.REMEDIATED.value:
            return False

        async with transaction(self.session):
            spot.status = WeakSpotStatus.ACTIVE.value
            spot.failed_attempts += 1
            spot.last_failed_at = self.clock()
            spot.severity = clamp_severity(spot.severity + 1)

        logger.info("Weak spot reactivated for %s: %s / %s", user_id, subject, topic)
        return True
