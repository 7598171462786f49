"""
Enforcement Policy
==================

Pure threshold tables for the enforcement engine. Nothing here touches
the database; callers pass in counts and get back decisions.

Usage:
    from learnforge.policy import decide_skip, SkipReason

    decision = decide_skip(
        reason=SkipReason.TOO_HARD,
        prior_skips=1,
        prior_attempts=2,
        config=EnforcementConfig(),
    )
    decision.consequence   # ConsequenceType.DEBT_ADDED
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Optional

from learnforge.config import EnforcementConfig


class SkipReason(Enum):
    """Why the learner wants to skip a step."""
    ALREADY_KNOW = "ALREADY_KNOW"
    TOO_HARD = "TOO_HARD"
    NOT_INTERESTED = "NOT_INTERESTED"
    OTHER = "OTHER"


class ConsequenceType(Enum):
    """Consequences the engine can attach to a learner event."""
    WARNING = "WARNING"
    PROOF_REQUIRED = "PROOF_REQUIRED"
    DEBT_ADDED = "DEBT_ADDED"
    REMEDIATION = "REMEDIATION"
    SLOWDOWN = "SLOWDOWN"
    STREAK_RESET = "STREAK_RESET"


class AttemptResult(Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class WeakSpotStatus(Enum):
    ACTIVE = "ACTIVE"
    REMEDIATED = "REMEDIATED"
    RESOLVED = "RESOLVED"


class DebtSource(Enum):
    MISSED_SESSION = "MISSED_SESSION"
    BROKEN_STREAK = "BROKEN_STREAK"
    INCOMPLETE_GOAL = "INCOMPLETE_GOAL"
    SELF_ADDED = "SELF_ADDED"


class DebtStatus(Enum):
    QUEUED = "QUEUED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class ProofType(Enum):
    EXPLANATION = "explanation"
    QUIZ = "quiz"
    PRACTICE = "practice"


class StepStatus(Enum):
    LOCKED = "LOCKED"
    CURRENT = "CURRENT"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"


OPEN_DEBT_STATUSES = (DebtStatus.QUEUED.value, DebtStatus.IN_PROGRESS.value)

MAX_SEVERITY = 5
MIN_SEVERITY = 1
ARCHETYPE_UNLOCK_MISSIONS = 10

ARCHETYPE_METHODICAL_MASTER = "The Methodical Master"
ARCHETYPE_STEADY_CLIMBER = "The Steady Climber"
ARCHETYPE_RESILIENT_LEARNER = "The Resilient Learner"
ARCHETYPE_CURIOUS_EXPLORER = "The Curious Explorer"


# =============================================================================
# Skips
# =============================================================================

@dataclass
class SkipDecision:
    """Outcome of evaluating a skip request."""
    allowed: bool
    message: str
    consequence: Optional[ConsequenceType] = None
    debt_minutes: Optional[int] = None
    requires_remediation: bool = False

    def to_dict(self) -> dict:
        result = asdict(self)
        result["consequence"] = self.consequence.value if self.consequence else None
        return result


def decide_skip(
    reason: SkipReason,
    prior_skips: int,
    prior_attempts: int,
    config: EnforcementConfig,
) -> SkipDecision:
    """
    Apply the skip ladder.

    Args:
        reason: Why the learner is skipping
        prior_skips: Skips already recorded on this roadmap (excluding this one)
        prior_attempts: Attempts already recorded on this step
        config: Thresholds

    Returns:
        SkipDecision
    """
    if prior_attempts == 0 and reason != SkipReason.ALREADY_KNOW:
        return SkipDecision(
            allowed=False,
            message="You must attempt this step before skipping. No shortcuts.",
        )

    if reason == SkipReason.ALREADY_KNOW:
        return SkipDecision(
            allowed=True,
            consequence=ConsequenceType.PROOF_REQUIRED,
            message="Prove it. Pass a quick assessment on this topic to skip.",
        )

    skip_number = prior_skips + 1

    if skip_number < config.skip_warning_threshold:
        return SkipDecision(
            allowed=True,
            message="First skip noted. Patterns are tracked. This topic will return later.",
        )

    if skip_number < config.skip_consequence_threshold:
        return SkipDecision(
            allowed=True,
            consequence=ConsequenceType.DEBT_ADDED,
            message=f"Skip accepted. {config.skip_debt_minutes} minutes added to your study debt.",
            debt_minutes=config.skip_debt_minutes,
        )

    return SkipDecision(
        allowed=True,
        consequence=ConsequenceType.REMEDIATION,
        message=(
            f"Pattern detected: {skip_number} skips. "
            "You'll need to complete remediation before moving forward."
        ),
        debt_minutes=config.skip_debt_minutes * 2,
        requires_remediation=True,
    )


# =============================================================================
# Failures
# =============================================================================

def needs_remediation(result: AttemptResult, prior_attempts: int, config: EnforcementConfig) -> bool:
    """A failed attempt needs remediation once enough attempts came before it."""
    return result == AttemptResult.FAILED and prior_attempts >= config.failures_before_remediation


def failure_consequences(attempt_number: int, config: EnforcementConfig) -> list[ConsequenceType]:
    """Consequences triggered by the Nth failed attempt on a step."""
    consequences = []
    if attempt_number >= config.failures_before_remediation:
        consequences.append(ConsequenceType.REMEDIATION)
    if attempt_number >= config.failures_before_slowdown:
        consequences.append(ConsequenceType.SLOWDOWN)
    return consequences


def clamp_severity(severity: int) -> int:
    return max(MIN_SEVERITY, min(MAX_SEVERITY, severity))


def severity_after_failure(current: int, attempt_number: int) -> int:
    """Severity tracks the attempt number but never drops."""
    return clamp_severity(max(current, attempt_number))


# =============================================================================
# Study debt
# =============================================================================

def debt_priority(source: DebtSource) -> int:
    """Broken-streak debt is paid first (0); everything else is normal (1)."""
    return 0 if source == DebtSource.BROKEN_STREAK else 1


def progress_percent(paid_minutes: int, debt_minutes: int) -> float:
    if debt_minutes <= 0:
        return 100.0
    return (paid_minutes / debt_minutes) * 100


def streak_debt_minutes(streak: int, config: EnforcementConfig) -> int:
    """Minutes owed for a lost streak, capped."""
    return min(streak * config.streak_debt_minutes_per_day, config.streak_debt_cap_minutes)


# =============================================================================
# Identity
# =============================================================================

def determine_archetype(completed: int, failed: int, skipped: int, longest_streak: int) -> str:
    """Categorize a learner from accumulated counters. First match wins."""
    completion_rate = completed / ((completed + failed + skipped) or 1)

    if completion_rate >= 0.9 and longest_streak >= 7:
        return ARCHETYPE_METHODICAL_MASTER
    elif completion_rate >= 0.8:
        return ARCHETYPE_STEADY_CLIMBER
    elif failed > skipped:
        return ARCHETYPE_RESILIENT_LEARNER
    else:
        return ARCHETYPE_CURIOUS_EXPLORER


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed, floored."""
    return int((later - earlier).total_seconds() // 86400)


# =============================================================================
# Remediation
# =============================================================================

@dataclass(frozen=True)
class RemediationRequirement:
    """What a weak-spot remediation mission demands at a given severity."""
    proof_required: ProofType
    threshold: Optional[int]
    estimated_minutes: int
    mandatory: bool


def remediation_requirement(severity: int) -> RemediationRequirement:
    """Higher severity means more rigorous proof."""
    if severity >= 4:
        proof, threshold = ProofType.QUIZ, 90
    elif severity >= 2:
        proof, threshold = ProofType.PRACTICE, 80
    else:
        proof, threshold = ProofType.EXPLANATION, None

    return RemediationRequirement(
        proof_required=proof,
        threshold=threshold,
        estimated_minutes=15 + severity * 5,
        mandatory=severity >= 3,
    )


def remediation_directive(topic: str, failed_attempts: int) -> str:
    if failed_attempts >= 4:
        return (
            f"{topic}: {failed_attempts} unsuccessful attempts recorded. "
            "Focused review required before proceeding."
        )
    elif failed_attempts >= 2:
        return f"{topic}: {failed_attempts} unsuccessful attempts. Alternative approach recommended."
    else:
        return f"{topic}: Reinforcement required."
