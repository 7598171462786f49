"""
Database Models for LearnForge
==============================

SQLAlchemy models for the enforcement core: learner identity, skips,
mission attempts, weak spots, study debt and the enforcement action log.

Roadmap and RoadmapStep belong to the roadmap service. The enforcement
core only reads them, apart from flipping a step to SKIPPED.
"""

from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from sqlalchemy import (
    String, Integer, Float, DateTime, ForeignKey, JSON, Text, Boolean, UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


# =============================================================================
# Roadmap Tables (owned by the roadmap service)
# =============================================================================

class Roadmap(Base):
    """A learning roadmap; only the subject matters to enforcement."""
    __tablename__ = "roadmaps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    title: Mapped[str] = mapped_column(String(255))
    subject: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    steps: Mapped[List["RoadmapStep"]] = relationship(back_populates="roadmap")


class RoadmapStep(Base):
    """A single step inside a roadmap."""
    __tablename__ = "roadmap_steps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    roadmap_id: Mapped[int] = mapped_column(ForeignKey("roadmaps.id"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, default="")
    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # minutes
    status: Mapped[str] = mapped_column(String(20), default="LOCKED")  # LOCKED, CURRENT, COMPLETED, SKIPPED

    roadmap: Mapped["Roadmap"] = relationship(back_populates="steps")


# =============================================================================
# Enforcement Tables
# =============================================================================

class LearnerIdentity(Base):
    """
    Per-user aggregate fed by every success, skip, failure and inactivity check.
    Created lazily on first access; never deleted.
    """
    __tablename__ = "learner_identities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)

    total_missions_completed: Mapped[int] = mapped_column(Integer, default=0)
    total_missions_failed: Mapped[int] = mapped_column(Integer, default=0)
    total_missions_skipped: Mapped[int] = mapped_column(Integer, default=0)

    # Invariant: longest_streak >= current_streak
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)
    last_mission_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    days_since_last_mission: Mapped[int] = mapped_column(Integer, default=0)

    # Set at most once
    archetype: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    archetype_unlocked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class SkipRecord(Base):
    """One row per skip action."""
    __tablename__ = "skip_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    roadmap_id: Mapped[int] = mapped_column(Integer, index=True)
    step_id: Mapped[int] = mapped_column(Integer, index=True)

    reason: Mapped[str] = mapped_column(String(30))  # SkipReason value
    user_explanation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    consequence_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)  # ConsequenceType value
    consequence_applied: Mapped[bool] = mapped_column(Boolean, default=False)
    consequence_data: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)

    requires_remediation: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    remediation_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)


class MissionAttempt(Base):
    """Append-only attempt history per (user, step)."""
    __tablename__ = "mission_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    step_id: Mapped[int] = mapped_column(Integer, index=True)
    attempt_number: Mapped[int] = mapped_column(Integer)  # 1-based per (user, step)

    result: Mapped[str] = mapped_column(String(20), index=True)  # SUCCESS, FAILED
    minutes_spent: Mapped[int] = mapped_column(Integer, default=0)
    minimum_time_met: Mapped[bool] = mapped_column(Boolean, default=False)

    proof_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    proof_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    proof_validated: Mapped[bool] = mapped_column(Boolean, default=False)

    difficulty_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    confidence_level: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    needs_remediation: Mapped[bool] = mapped_column(Boolean, default=False)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class WeakSpot(Base):
    """
    A topic the learner keeps failing, unique per (user, subject, topic).

    Status moves ACTIVE -> REMEDIATED on a passed remediation, back to
    ACTIVE on a later failure, and to RESOLVED only on confirmed mastery.
    """
    __tablename__ = "weak_spots"
    __table_args__ = (
        UniqueConstraint("user_id", "subject", "topic", name="uq_weak_spot_user_subject_topic"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    subject: Mapped[str] = mapped_column(String(100))
    topic: Mapped[str] = mapped_column(String(255))

    failed_attempts: Mapped[int] = mapped_column(Integer, default=1)
    severity: Mapped[int] = mapped_column(Integer, default=1)  # 1-5
    status: Mapped[str] = mapped_column(String(20), default="ACTIVE", index=True)  # WeakSpotStatus value

    source_step_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    source_roadmap_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    last_failed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    last_remediated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    remediation_count: Mapped[int] = mapped_column(Integer, default=0)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class StudyDebt(Base):
    """
    Minutes of study owed. Terminal state is COMPLETED; rows are kept for audit.
    Invariant: 0 <= paid_minutes <= debt_minutes
    """
    __tablename__ = "study_debts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)

    source: Mapped[str] = mapped_column(String(30))  # DebtSource value
    status: Mapped[str] = mapped_column(String(20), default="QUEUED", index=True)  # DebtStatus value
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    debt_minutes: Mapped[int] = mapped_column(Integer)
    paid_minutes: Mapped[int] = mapped_column(Integer, default=0)
    progress_percent: Mapped[float] = mapped_column(Float, default=0.0)
    subject: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=1)  # 0 = highest

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)

    @property
    def outstanding_minutes(self) -> int:
        return self.debt_minutes - self.paid_minutes


class EnforcementAction(Base):
    """
    Audit log of consequences applied to a learner.
    Only the acknowledged/resolved flags change after creation.
    """
    __tablename__ = "enforcement_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)

    trigger_type: Mapped[str] = mapped_column(String(30))  # skip, failure, repeated_failure, inactivity
    trigger_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    action_type: Mapped[str] = mapped_column(String(30))  # ConsequenceType value
    action_data: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    authority_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    acknowledged: Mapped[bool] = mapped_column(Boolean, default=False)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
