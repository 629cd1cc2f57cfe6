"""HTTP API for Agent Oracle."""

from agent_oracle.api.events import EventBus, EventType, OracleEvent

__all__ = ["EventBus", "EventType", "OracleEvent"]
