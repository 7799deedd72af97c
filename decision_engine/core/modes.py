"""Tenant system modes and the agents each mode allows.

Fire drill disables narration (confidence reasons, explain polish) and the
recommendation loop; pilot keeps everything on but caps auto-tuning
confidence. The pure engines only read a ``ModeState``; loading it is the
caller's job.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from decision_engine.core.errors import AgentDisabledError

logger = logging.getLogger(__name__)

SystemModeName = Literal["pilot", "production", "sandbox", "fire_drill"]

AGENT_MATCH = "MATCH"
AGENT_CONFIDENCE = "CONFIDENCE"
AGENT_SHORTLIST = "SHORTLIST"
AGENT_EXPLAIN = "EXPLAIN"

ALL_AGENTS = (AGENT_MATCH, AGENT_CONFIDENCE, AGENT_SHORTLIST, AGENT_EXPLAIN)

# Agents a fire drill always switches off, regardless of per-tenant flags.
_FIRE_DRILL_BLOCKED = frozenset({AGENT_CONFIDENCE, AGENT_EXPLAIN})

_MODE_DEFAULTS: dict[str, tuple[str, tuple[str, ...]]] = {
    "pilot": ("balanced", ALL_AGENTS),
    "production": ("balanced", ALL_AGENTS),
    "sandbox": ("aggressive", ALL_AGENTS),
    "fire_drill": ("conservative", (AGENT_MATCH, AGENT_SHORTLIST)),
}


class ModeState(BaseModel):
    """Resolved system mode for one tenant."""

    model_config = ConfigDict(frozen=True)

    mode: SystemModeName = "production"
    guardrails_preset: str = "balanced"
    agents_enabled: tuple[str, ...] = Field(default=ALL_AGENTS)

    @property
    def is_fire_drill(self) -> bool:
        return self.mode == "fire_drill"

    def is_enabled(self, agent: str) -> bool:
        if self.is_fire_drill and agent in _FIRE_DRILL_BLOCKED:
            return False
        return agent in self.agents_enabled


ModeLoader = Callable[[str], Awaitable[ModeState]]


def mode_state_for(
    mode: SystemModeName,
    *,
    guardrails_preset: str | None = None,
    agents_enabled: list[str] | None = None,
) -> ModeState:
    """Build a ModeState from a mode name, filling preset/agents from mode defaults."""
    default_preset, default_agents = _MODE_DEFAULTS[mode]
    return ModeState(
        mode=mode,
        guardrails_preset=guardrails_preset or default_preset,
        agents_enabled=tuple(agents_enabled) if agents_enabled is not None else default_agents,
    )


def assert_agent_enabled(state: ModeState, agent: str) -> None:
    """Reject an action the tenant's mode forbids.

    Callers use this when they insist on a disabled agent; the engines
    themselves just return emptier payloads.
    """
    if not state.is_enabled(agent):
        logger.info("Blocked %s agent: tenant is in %s mode", agent, state.mode)
        raise AgentDisabledError(agent, state.mode)


async def default_mode_loader(tenant_id: str) -> ModeState:
    """Mode loader used when no collaborator is injected: production, all agents."""
    return mode_state_for("production")
