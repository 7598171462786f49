"""
Tests for the Enforcement Engine facade
=======================================

User state, the action log and engine construction.
"""

import pytest

from learnforge.config import EnforcementConfig
from learnforge.engine import EnforcementEngine, create_enforcement_engine
from learnforge.failures import AttemptData
from learnforge.messaging import MessageContext, Tone
from learnforge.policy import AttemptResult, ConsequenceType, DebtSource, SkipReason

from conftest import OTHER_USER, USER


async def _fail(engine, step_id, times=1):
    for _ in range(times):
        await engine.record_attempt(USER, step_id, AttemptResult.FAILED, AttemptData(minutes_spent=10))


# =============================================================================
# User State Tests
# =============================================================================

class TestGetUserState:

    @pytest.mark.asyncio
    async def test_fresh_learner(self, engine):
        state = await engine.get_user_state(USER)

        assert state.identity.user_id == USER
        assert state.pending_actions == []
        assert state.active_debt_minutes == 0
        assert state.skip_count == 0
        assert state.failure_count == 0
        assert state.streak_at_risk is False

    @pytest.mark.asyncio
    async def test_counts_and_debt(self, engine, roadmap):
        await _fail(engine, roadmap.step_ids[0], times=2)
        decision = await engine.evaluate_skip(USER, roadmap.roadmap_id, roadmap.step_ids[0], SkipReason.TOO_HARD)
        await engine.record_skip(USER, roadmap.roadmap_id, roadmap.step_ids[0], SkipReason.TOO_HARD, decision)

        state = await engine.get_user_state(USER)

        assert state.failure_count == 2
        assert state.skip_count == 1
        assert state.active_debt_minutes == 15
        assert [a.action_type for a in state.pending_actions] == ["WARNING", "REMEDIATION"]

    @pytest.mark.asyncio
    async def test_counts_cover_recent_window(self, engine, roadmap, clock):
        await _fail(engine, roadmap.step_ids[0])
        clock.advance(days=31)
        await _fail(engine, roadmap.step_ids[1])

        state = await engine.get_user_state(USER)
        assert state.failure_count == 1

    @pytest.mark.asyncio
    async def test_streak_at_risk(self, engine, roadmap, clock):
        await engine.record_attempt(USER, roadmap.step_ids[0], AttemptResult.SUCCESS, AttemptData(minutes_spent=10))
        clock.advance(days=4)
        await engine.check_inactivity(USER)

        assert (await engine.get_user_state(USER)).streak_at_risk is True


# =============================================================================
# Action Log Tests
# =============================================================================

class TestActionLog:

    @pytest.mark.asyncio
    async def test_pending_actions_newest_first(self, engine, roadmap, clock):
        await _fail(engine, roadmap.step_ids[0], times=2)
        clock.advance(minutes=5)
        await _fail(engine, roadmap.step_ids[0])

        actions = await engine.get_pending_actions(USER)
        assert len(actions) == 2
        assert actions[0].created_at > actions[1].created_at

    @pytest.mark.asyncio
    async def test_acknowledge_and_resolve(self, engine, roadmap, clock):
        await _fail(engine, roadmap.step_ids[0], times=2)
        action = (await engine.get_pending_actions(USER))[0]

        assert await engine.acknowledge_action(USER, action.id) is True
        assert action.acknowledged is True
        assert action.acknowledged_at == clock()
        assert len(await engine.get_pending_actions(USER)) == 1

        assert await engine.resolve_action(USER, action.id) is True
        assert action.resolved is True
        assert await engine.get_pending_actions(USER) == []

    @pytest.mark.asyncio
    async def test_log_action_commits(self, engine, clock):
        action = await engine.log_action(
            USER, "manual", ConsequenceType.WARNING, "Check in with your mentor.", action_data={"note": "review"}
        )

        assert action.id is not None
        assert action.created_at == clock()
        pending = await engine.get_pending_actions(USER)
        assert [a.id for a in pending] == [action.id]
        assert pending[0].action_data == {"note": "review"}

    @pytest.mark.asyncio
    async def test_mutations_check_ownership(self, engine, roadmap):
        await _fail(engine, roadmap.step_ids[0], times=2)
        action = (await engine.get_pending_actions(USER))[0]

        assert await engine.acknowledge_action(OTHER_USER, action.id) is False
        assert await engine.resolve_action(OTHER_USER, action.id) is False
        assert await engine.resolve_action(USER, 9999) is False
        assert action.acknowledged is False
        assert action.resolved is False


# =============================================================================
# Construction Tests
# =============================================================================

class TestEngineConstruction:

    @pytest.mark.asyncio
    async def test_default_config(self, session):
        engine = EnforcementEngine(session)
        assert engine.config == EnforcementConfig()

    @pytest.mark.asyncio
    async def test_factory_loads_environment(self, session, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("LEARNFORGE_SKIP_DEBT_MINUTES", "7")

        engine = create_enforcement_engine(session)
        assert engine.config.skip_debt_minutes == 7
        assert engine.ledger.config is engine.config

    @pytest.mark.asyncio
    async def test_custom_config_flows_through(self, session, clock, roadmap):
        engine = EnforcementEngine(session, EnforcementConfig(failure_debt_minutes=40), clock)
        await _fail(engine, roadmap.step_ids[0], times=2)

        assert (await engine.get_study_debt(USER)).total == 40

    @pytest.mark.asyncio
    async def test_self_added_debt(self, engine):
        await engine.add_study_debt(USER, DebtSource.SELF_ADDED, "Weekend review", 45)
        assert (await engine.get_study_debt(USER)).items == 1

    def test_authority_message_passthrough(self):
        response = EnforcementEngine.get_authority_message(MessageContext.DEBT, {"debt_minutes": 90})
        assert response.tone == Tone.CONSEQUENCE
