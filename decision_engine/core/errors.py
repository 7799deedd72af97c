"""Exception types raised by the decision engine.

The compute functions degrade to emptier payloads instead of raising; these
exist for the caller-side gates and for the telemetry readers.
"""


class DecisionEngineError(Exception):
    """Base class for all decision engine errors."""


class AgentDisabledError(DecisionEngineError):
    """A caller asked for an agent that the tenant's system mode forbids."""

    def __init__(self, agent: str, mode: str) -> None:
        self.agent = agent
        self.mode = mode
        super().__init__(f"Agent '{agent}' is disabled while tenant is in '{mode}' mode")


class TelemetryUnavailableError(DecisionEngineError):
    """The backing telemetry store is structurally missing (e.g. no table)."""
