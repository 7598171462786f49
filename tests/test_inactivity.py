"""
Tests for the Inactivity Detector
=================================
"""

import pytest
from sqlalchemy import select

from learnforge.db import EnforcementAction, StudyDebt
from learnforge.failures import AttemptData
from learnforge.messaging import Tone
from learnforge.policy import AttemptResult, DebtSource

from conftest import USER


async def _build_streak(engine, roadmap, length):
    for _ in range(length):
        await engine.record_attempt(
            USER, roadmap.step_ids[0], AttemptResult.SUCCESS, AttemptData(minutes_spent=15)
        )


async def _debts(session):
    return (await session.execute(select(StudyDebt))).scalars().all()


class TestCheckInactivity:

    @pytest.mark.asyncio
    async def test_new_learner_is_ignored(self, engine, session):
        assert await engine.check_inactivity(USER) is None
        assert await _debts(session) == []

    @pytest.mark.asyncio
    async def test_recent_activity_no_message(self, engine, roadmap, clock):
        await _build_streak(engine, roadmap, 2)
        clock.advance(days=2, hours=23)

        assert await engine.check_inactivity(USER) is None
        assert (await engine.get_identity(USER)).days_since_last_mission == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days", [3, 6])
    async def test_warning_window(self, engine, session, roadmap, clock, days):
        await _build_streak(engine, roadmap, 4)
        clock.advance(days=days)

        response = await engine.check_inactivity(USER)

        assert response.tone == Tone.WARNING
        assert response.message.startswith(f"{days} days away.")
        identity = await engine.get_identity(USER)
        assert identity.current_streak == 4
        assert identity.days_since_last_mission == days
        assert await _debts(session) == []

    @pytest.mark.asyncio
    async def test_streak_reset_after_ten_days(self, engine, session, roadmap, clock):
        await _build_streak(engine, roadmap, 5)
        clock.advance(days=10)

        response = await engine.check_inactivity(USER)

        assert response.tone == Tone.CONSEQUENCE
        assert "5-day streak" in response.message
        assert response.action_required == "Complete one mission to start a new streak."

        identity = await engine.get_identity(USER)
        assert identity.current_streak == 0
        assert identity.longest_streak == 5
        assert identity.days_since_last_mission == 10

        debts = await _debts(session)
        assert len(debts) == 1
        assert debts[0].debt_minutes == 25
        assert debts[0].source == DebtSource.BROKEN_STREAK.value
        assert debts[0].title == "Streak broken: 5 days lost"
        assert debts[0].priority == 0

        actions = (await session.execute(select(EnforcementAction))).scalars().all()
        assert [a.action_type for a in actions] == ["STREAK_RESET"]
        assert actions[0].trigger_type == "inactivity"

    @pytest.mark.asyncio
    async def test_exactly_seven_days_is_consequence(self, engine, roadmap, clock):
        await _build_streak(engine, roadmap, 2)
        clock.advance(days=7)

        response = await engine.check_inactivity(USER)
        assert response.tone == Tone.CONSEQUENCE

    @pytest.mark.asyncio
    async def test_streak_debt_capped(self, engine, session, roadmap, clock):
        await _build_streak(engine, roadmap, 15)
        clock.advance(days=8)

        await engine.check_inactivity(USER)

        debts = await _debts(session)
        assert [d.debt_minutes for d in debts] == [60]

    @pytest.mark.asyncio
    async def test_no_streak_to_lose(self, engine, session, roadmap, clock):
        await _build_streak(engine, roadmap, 3)
        clock.advance(days=9)
        await engine.check_inactivity(USER)

        clock.advance(days=1)
        response = await engine.check_inactivity(USER)

        assert response.tone == Tone.NEUTRAL
        assert response.message == "10 days away. Let's get back on track."
        assert len(await _debts(session)) == 1
