"""Tests for system modes and agent gating."""

import pytest

from decision_engine.core.errors import AgentDisabledError, DecisionEngineError
from decision_engine.core.modes import (
    ALL_AGENTS,
    ModeState,
    assert_agent_enabled,
    default_mode_loader,
    mode_state_for,
)


class TestModeStateFor:
    def test_production_enables_everything(self) -> None:
        state = mode_state_for("production")
        assert state.guardrails_preset == "balanced"
        assert all(state.is_enabled(a) for a in ALL_AGENTS)

    def test_sandbox_uses_aggressive(self) -> None:
        assert mode_state_for("sandbox").guardrails_preset == "aggressive"

    def test_fire_drill_defaults(self) -> None:
        state = mode_state_for("fire_drill")
        assert state.is_fire_drill
        assert state.guardrails_preset == "conservative"
        assert state.is_enabled("MATCH")
        assert state.is_enabled("SHORTLIST")
        assert not state.is_enabled("CONFIDENCE")
        assert not state.is_enabled("EXPLAIN")

    def test_fire_drill_blocks_even_when_listed(self) -> None:
        state = mode_state_for("fire_drill", agents_enabled=list(ALL_AGENTS))
        assert not state.is_enabled("CONFIDENCE")
        assert not state.is_enabled("EXPLAIN")

    def test_explicit_agent_list(self) -> None:
        state = mode_state_for("production", agents_enabled=["MATCH"])
        assert state.is_enabled("MATCH")
        assert not state.is_enabled("SHORTLIST")

    def test_explicit_preset(self) -> None:
        assert mode_state_for("pilot", guardrails_preset="conservative").guardrails_preset == "conservative"


class TestAssertAgentEnabled:
    def test_enabled_agent_passes(self) -> None:
        assert_agent_enabled(ModeState(), "EXPLAIN")

    def test_disabled_agent_raises(self) -> None:
        with pytest.raises(AgentDisabledError, match="'EXPLAIN' is disabled.*'fire_drill'") as exc:
            assert_agent_enabled(mode_state_for("fire_drill"), "EXPLAIN")
        assert exc.value.agent == "EXPLAIN"
        assert exc.value.mode == "fire_drill"
        assert isinstance(exc.value, DecisionEngineError)


async def test_default_mode_loader_is_production() -> None:
    state = await default_mode_loader("any-tenant")
    assert state.mode == "production"
    assert not state.is_fire_drill
