"""Fetching, consensus and request coordination."""

from agent_oracle.manager.agents import (
    DEFAULT_AGENTS,
    AgentConfig,
    OracleAgent,
    build_default_agents,
)
from agent_oracle.manager.answer_cache import AnswerCache
from agent_oracle.manager.consensus import (
    AgentAnswer,
    ConsensusEngine,
    ConsensusResult,
    compute_consensus,
)
from agent_oracle.manager.coordinator import RequestCoordinator
from agent_oracle.manager.fetcher import FallbackFetcher
from agent_oracle.manager.task_manager import ManagedTask, TaskManager, TaskState

__all__ = [
    "AgentAnswer",
    "AgentConfig",
    "AnswerCache",
    "build_default_agents",
    "compute_consensus",
    "ConsensusEngine",
    "ConsensusResult",
    "DEFAULT_AGENTS",
    "FallbackFetcher",
    "ManagedTask",
    "OracleAgent",
    "RequestCoordinator",
    "TaskManager",
    "TaskState",
]
