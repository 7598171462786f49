"""
Tests for the Skip Evaluator
============================

Tests for skips.py - evaluating and recording skips on a roadmap.
"""

import pytest
from sqlalchemy import func, select

from learnforge.db import EnforcementAction, RoadmapStep, SkipRecord, StudyDebt
from learnforge.errors import SkipNotAllowedError
from learnforge.failures import AttemptData
from learnforge.policy import AttemptResult, ConsequenceType, SkipDecision, SkipReason, StepStatus

from conftest import USER, seed_roadmap


async def _attempt(engine, step_id):
    await engine.record_attempt(USER, step_id, AttemptResult.FAILED, AttemptData(minutes_spent=5))


async def _skip(engine, roadmap, index, reason=SkipReason.TOO_HARD):
    step_id = roadmap.step_ids[index]
    decision = await engine.evaluate_skip(USER, roadmap.roadmap_id, step_id, reason)
    record = await engine.record_skip(USER, roadmap.roadmap_id, step_id, reason, decision)
    return decision, record


async def _count(session, model):
    return (await session.execute(select(func.count(model.id)))).scalar_one()


# =============================================================================
# Evaluation Tests
# =============================================================================

class TestEvaluateSkip:

    @pytest.mark.asyncio
    async def test_unattempted_step_rejected(self, engine, roadmap):
        decision = await engine.evaluate_skip(USER, roadmap.roadmap_id, roadmap.step_ids[0], SkipReason.TOO_HARD)

        assert decision.allowed is False
        assert decision.message == "You must attempt this step before skipping. No shortcuts."

    @pytest.mark.asyncio
    async def test_already_know_needs_no_attempt(self, engine, roadmap):
        decision = await engine.evaluate_skip(
            USER, roadmap.roadmap_id, roadmap.step_ids[0], SkipReason.ALREADY_KNOW
        )

        assert decision.allowed is True
        assert decision.consequence == ConsequenceType.PROOF_REQUIRED

    @pytest.mark.asyncio
    async def test_missing_step(self, engine, roadmap):
        decision = await engine.evaluate_skip(USER, roadmap.roadmap_id, 9999, SkipReason.ALREADY_KNOW)

        assert decision.allowed is False
        assert decision.message == "Step not found."

    @pytest.mark.asyncio
    async def test_step_from_another_roadmap(self, engine, session, roadmap):
        other = await seed_roadmap(session, subject="Rust", titles=["Ownership"])
        decision = await engine.evaluate_skip(
            USER, roadmap.roadmap_id, other.step_ids[0], SkipReason.ALREADY_KNOW
        )

        assert decision.allowed is False
        assert decision.message == "Step not found."

    @pytest.mark.asyncio
    async def test_evaluation_writes_nothing(self, engine, session, roadmap):
        await _attempt(engine, roadmap.step_ids[0])
        await engine.evaluate_skip(USER, roadmap.roadmap_id, roadmap.step_ids[0], SkipReason.TOO_HARD)

        assert await _count(session, SkipRecord) == 0


# =============================================================================
# Recording Tests
# =============================================================================

class TestRecordSkip:

    @pytest.mark.asyncio
    async def test_skip_ladder(self, engine, session, roadmap):
        for step_id in roadmap.step_ids[:3]:
            await _attempt(engine, step_id)

        first, first_record = await _skip(engine, roadmap, 0)
        second, _ = await _skip(engine, roadmap, 1)
        third, third_record = await _skip(engine, roadmap, 2)

        assert first.consequence is None
        assert first_record.consequence_applied is False
        assert first_record.requires_remediation is False

        assert second.consequence == ConsequenceType.DEBT_ADDED
        assert second.debt_minutes == 10

        assert third.consequence == ConsequenceType.REMEDIATION
        assert third.debt_minutes == 20
        assert third_record.requires_remediation is True
        assert third_record.consequence_data == {"debt_minutes": 20}

        debts = (await session.execute(select(StudyDebt).order_by(StudyDebt.id))).scalars().all()
        assert [d.debt_minutes for d in debts] == [10, 20]
        assert debts[0].title == "Skipped: Control Flow"

        actions = (await session.execute(
            select(EnforcementAction).order_by(EnforcementAction.id)
        )).scalars().all()
        assert [a.action_type for a in actions] == ["WARNING", "DEBT_ADDED", "REMEDIATION"]
        assert all(a.trigger_type == "skip" for a in actions)
        assert actions[2].trigger_id == str(third_record.id)

        identity = await engine.get_identity(USER)
        assert identity.total_missions_skipped == 3

    @pytest.mark.asyncio
    async def test_step_marked_skipped(self, engine, session, roadmap):
        await _attempt(engine, roadmap.step_ids[0])
        await _skip(engine, roadmap, 0)

        step = await session.get(RoadmapStep, roadmap.step_ids[0])
        assert step.status == StepStatus.SKIPPED.value

    @pytest.mark.asyncio
    async def test_explanation_stored(self, engine, roadmap):
        await _attempt(engine, roadmap.step_ids[0])
        step_id = roadmap.step_ids[0]
        decision = await engine.evaluate_skip(USER, roadmap.roadmap_id, step_id, SkipReason.OTHER)
        record = await engine.record_skip(
            USER, roadmap.roadmap_id, step_id, SkipReason.OTHER, decision, explanation="Covered at work"
        )

        assert record.reason == "OTHER"
        assert record.user_explanation == "Covered at work"

    @pytest.mark.asyncio
    async def test_already_know_records_proof_requirement(self, engine, session, roadmap):
        decision, record = await _skip(engine, roadmap, 0, reason=SkipReason.ALREADY_KNOW)

        assert record.consequence_type == "PROOF_REQUIRED"
        assert await _count(session, StudyDebt) == 0
        actions = await engine.get_pending_actions(USER)
        assert [a.action_type for a in actions] == ["PROOF_REQUIRED"]

    @pytest.mark.asyncio
    async def test_disallowed_decision_raises(self, engine, session, roadmap):
        step_id = roadmap.step_ids[0]
        decision = await engine.evaluate_skip(USER, roadmap.roadmap_id, step_id, SkipReason.TOO_HARD)

        with pytest.raises(SkipNotAllowedError):
            await engine.record_skip(USER, roadmap.roadmap_id, step_id, SkipReason.TOO_HARD, decision)

        assert await _count(session, SkipRecord) == 0
        assert await _count(session, EnforcementAction) == 0

    @pytest.mark.asyncio
    async def test_failure_rolls_back_whole_skip(self, engine, db, roadmap, monkeypatch):
        step_id = roadmap.step_ids[1]
        decision = SkipDecision(
            allowed=True,
            message="Skip recorded. 10 minutes added to your study debt.",
            consequence=ConsequenceType.DEBT_ADDED,
            debt_minutes=10,
        )

        async def broken_counter(user_id):
            raise RuntimeError("write failed")

        monkeypatch.setattr(engine.identity, "stage_skip", broken_counter)

        with pytest.raises(RuntimeError, match="write failed"):
            await engine.record_skip(USER, roadmap.roadmap_id, step_id, SkipReason.TOO_HARD, decision)

        async with db.session() as fresh:
            assert await _count(fresh, SkipRecord) == 0
            assert await _count(fresh, StudyDebt) == 0
            assert await _count(fresh, EnforcementAction) == 0
            step = await fresh.get(RoadmapStep, step_id)
            assert step.status == "LOCKED"

    @pytest.mark.asyncio
    async def test_skips_counted_per_roadmap(self, engine, session, roadmap):
        other = await seed_roadmap(session, subject="Rust", titles=["Ownership", "Borrowing"])
        await _attempt(engine, roadmap.step_ids[0])
        await _attempt(engine, other.step_ids[0])

        await _skip(engine, roadmap, 0)
        decision, _ = await _skip(engine, other, 0)

        assert decision.consequence is None
