"""
Tests for the Study-Debt Ledger
===============================

Tests for ledger.py - debt creation and greedy payment allocation.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from learnforge import ledger as ledger_module
from learnforge.db import StudyDebt, ensure_utc
from learnforge.policy import DebtSource, DebtStatus, progress_percent

from conftest import OTHER_USER, USER


async def _seed_debts(engine, clock):
    """Three debts created a minute apart: normal, broken-streak, normal."""
    first = await engine.add_study_debt(USER, DebtSource.INCOMPLETE_GOAL, "Skipped: Loops", 10)
    clock.advance(minutes=1)
    streak = await engine.add_study_debt(USER, DebtSource.BROKEN_STREAK, "Streak broken: 4 days lost", 20)
    clock.advance(minutes=1)
    last = await engine.add_study_debt(USER, DebtSource.SELF_ADDED, "Extra review", 10)
    return first, streak, last


# =============================================================================
# Creation Tests
# =============================================================================

class TestAddStudyDebt:

    @pytest.mark.asyncio
    async def test_debt_fields(self, engine, clock, config):
        debt = await engine.add_study_debt(USER, DebtSource.SELF_ADDED, "Extra review", 30, subject="Python")

        assert debt.id is not None
        assert debt.status == DebtStatus.QUEUED.value
        assert debt.paid_minutes == 0
        assert debt.priority == 1
        assert debt.subject == "Python"
        assert ensure_utc(debt.expires_at) == clock() + timedelta(days=config.debt_expiry_days)

    @pytest.mark.asyncio
    async def test_broken_streak_priority(self, engine):
        debt = await engine.add_study_debt(USER, DebtSource.BROKEN_STREAK, "Streak broken", 10)
        assert debt.priority == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("minutes", [0, -5])
    async def test_non_positive_minutes_rejected(self, engine, minutes):
        with pytest.raises(ValueError):
            await engine.add_study_debt(USER, DebtSource.SELF_ADDED, "Nothing", minutes)
        assert await engine.list_debts(USER) == []

    @pytest.mark.asyncio
    async def test_summary_counts_only_open_debts(self, engine, clock):
        await _seed_debts(engine, clock)
        await engine.add_study_debt(OTHER_USER, DebtSource.SELF_ADDED, "Not mine", 99)

        summary = await engine.get_study_debt(USER)
        assert summary.total == 40
        assert summary.items == 3


# =============================================================================
# Payment Tests
# =============================================================================

class TestPayStudyDebt:

    @pytest.mark.asyncio
    async def test_zero_payment_changes_nothing(self, engine, clock):
        await _seed_debts(engine, clock)

        assert await engine.pay_study_debt(USER, 0) == 0
        debts = await engine.list_debts(USER)
        assert all(d.paid_minutes == 0 and d.status == DebtStatus.QUEUED.value for d in debts)
        assert all(d.started_at is None for d in debts)

    @pytest.mark.asyncio
    async def test_full_payment_completes_everything(self, engine, clock):
        await _seed_debts(engine, clock)

        cleared = await engine.pay_study_debt(USER, 100)

        assert cleared == 3
        debts = await engine.list_debts(USER, include_completed=True)
        assert len(debts) == 3
        for debt in debts:
            assert debt.status == DebtStatus.COMPLETED.value
            assert debt.paid_minutes == debt.debt_minutes
            assert debt.progress_percent == 100
            assert debt.completed_at is not None
        assert (await engine.get_study_debt(USER)).total == 0

    @pytest.mark.asyncio
    async def test_partial_payment_drains_priority_then_oldest(self, engine, clock):
        first, streak, last = await _seed_debts(engine, clock)

        cleared = await engine.pay_study_debt(USER, 25)

        assert cleared == 1
        assert streak.status == DebtStatus.COMPLETED.value
        assert streak.paid_minutes == 20
        assert first.status == DebtStatus.IN_PROGRESS.value
        assert first.paid_minutes == 5
        assert first.progress_percent == 50
        assert last.status == DebtStatus.QUEUED.value
        assert last.paid_minutes == 0

    @pytest.mark.asyncio
    async def test_payments_accumulate(self, engine, clock):
        first, streak, last = await _seed_debts(engine, clock)

        await engine.pay_study_debt(USER, 15)
        await engine.pay_study_debt(USER, 10)

        assert streak.status == DebtStatus.COMPLETED.value
        assert first.paid_minutes == 5
        assert (await engine.get_study_debt(USER)).total == 15

    @pytest.mark.asyncio
    async def test_payment_without_debt(self, engine):
        assert await engine.pay_study_debt(USER, 30) == 0

    @pytest.mark.asyncio
    async def test_other_users_debt_untouched(self, engine, clock):
        await _seed_debts(engine, clock)
        theirs = await engine.add_study_debt(OTHER_USER, DebtSource.SELF_ADDED, "Not mine", 10)

        await engine.pay_study_debt(USER, 100)

        assert theirs.paid_minutes == 0
        assert theirs.status == DebtStatus.QUEUED.value

    @pytest.mark.asyncio
    async def test_failed_payment_rolls_back_every_debt(self, engine, clock, db, monkeypatch):
        await _seed_debts(engine, clock)
        calls = []

        def flaky_progress(paid, total):
            calls.append(paid)
            if len(calls) == 2:
                raise RuntimeError("write failed")
            return progress_percent(paid, total)

        monkeypatch.setattr(ledger_module, "progress_percent", flaky_progress)

        with pytest.raises(RuntimeError, match="write failed"):
            await engine.pay_study_debt(USER, 35)

        async with db.session() as fresh:
            debts = (await fresh.execute(select(StudyDebt).order_by(StudyDebt.id))).scalars().all()

        assert [d.paid_minutes for d in debts] == [0, 0, 0]
        assert {d.status for d in debts} == {DebtStatus.QUEUED.value}
        assert all(d.started_at is None for d in debts)


class TestListDebts:

    @pytest.mark.asyncio
    async def test_payment_order(self, engine, clock):
        first, streak, last = await _seed_debts(engine, clock)
        assert [d.id for d in await engine.list_debts(USER)] == [streak.id, first.id, last.id]

    @pytest.mark.asyncio
    async def test_completed_debts_trail(self, engine, clock):
        first, streak, last = await _seed_debts(engine, clock)
        await engine.pay_study_debt(USER, 20)

        assert [d.id for d in await engine.list_debts(USER)] == [first.id, last.id]
        assert [d.id for d in await engine.list_debts(USER, include_completed=True)] == [
            first.id, last.id, streak.id,
        ]
