"""Median consensus and outlier classification."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

DEFAULT_TOLERANCE = 0.05


@dataclass(frozen=True)
class AgentAnswer:
    """One agent's value as input to consensus."""

    agent_id: str
    value: float


@dataclass(frozen=True)
class ConsensusResult:
    """Median of a set of answers and which answers agree with it.

    Attributes:
        median: The consensus value.
        threshold: Allowed absolute deviation from the median.
        classification: agent_id -> True if within threshold (consensus),
            False if outside (outlier).
    """

    median: float
    threshold: float
    classification: dict[str, bool] = field(default_factory=dict)

    @property
    def outliers(self) -> list[str]:
        return [agent_id for agent_id, ok in self.classification.items() if not ok]


class ConsensusEngine:
    """Computes consensus over agent answers.

    The median is ``sorted(values)[n // 2]``, so for an even count it is the
    upper of the two middle values rather than their mean. An answer agrees
    when ``|value - median| <= |median| * tolerance``; with a zero median only
    exact zeros agree.
    """

    def __init__(self, tolerance: float = DEFAULT_TOLERANCE) -> None:
        if tolerance < 0:
            raise ValueError("tolerance must be non-negative")
        self.tolerance = tolerance

    def compute(self, answers: Iterable[AgentAnswer]) -> ConsensusResult:
        answers = list(answers)
        if not answers:
            raise ValueError("Consensus requires at least one answer")

        values = sorted(a.value for a in answers)
        median = values[len(values) // 2]
        threshold = abs(median) * self.tolerance

        classification = {
            a.agent_id: abs(a.value - median) <= threshold for a in answers
        }
        return ConsensusResult(
            median=median,
            threshold=threshold,
            classification=classification,
        )


def compute_consensus(
    answers: Iterable[AgentAnswer],
    tolerance: float = DEFAULT_TOLERANCE,
) -> ConsensusResult:
    """Module-level shortcut for ``ConsensusEngine(tolerance).compute()``."""
    return ConsensusEngine(tolerance).compute(answers)
