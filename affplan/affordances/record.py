#!/usr/bin/env python3
"""
Affordance Record

The statistical unit of the affordance model: a (precondition, goal) pair
with two count tables over the known action set.

- active_optimal_counts[a]: times the affordance was active while `a` was optimal
- total_optimal_counts[a]: times `a` was optimal overall

The relevance probability is the unsmoothed maximum likelihood estimate
active / total. No Laplace or Dirichlet smoothing is applied, so a zero total
count is an undefined probability that callers must handle.
"""

from typing import Any, Dict, Mapping, Sequence, Union

from ..mdp.core import ActionKey, GroundedAction

ActionLike = Union[GroundedAction, ActionKey]


class UndefinedProbabilityError(ZeroDivisionError):
    """Raised when a probability has a zero-count denominator"""
    pass


def as_action_key(action: ActionLike) -> ActionKey:
    if isinstance(action, ActionKey):
        return action
    return action.key


class AffordanceRecord:
    """Precondition/goal pair with per-action optimality counts"""

    def __init__(self, precondition: Any, goal: Any, actions: Sequence[GroundedAction]):
        self.precondition = precondition
        self.goal = goal

        # Known action set, insertion ordered
        self.actions: Dict[ActionKey, GroundedAction] = {}
        for action in actions:
            self.actions.setdefault(action.key, action)

        self.active_optimal_counts: Dict[ActionKey, int] = {key: 0 for key in self.actions}
        self.total_optimal_counts: Dict[ActionKey, int] = {key: 0 for key in self.actions}

    @classmethod
    def from_counts(cls, precondition: Any, goal: Any, actions: Sequence[GroundedAction],
                    active_counts: Mapping[ActionLike, int],
                    total_counts: Mapping[ActionLike, int]) -> "AffordanceRecord":
        """Build a record with preset counts; both tables must cover exactly the action set"""
        record = cls(precondition, goal, actions)

        active = {as_action_key(a): int(c) for a, c in active_counts.items()}
        total = {as_action_key(a): int(c) for a, c in total_counts.items()}
        known = set(record.actions)
        if set(active) != known or set(total) != known:
            raise ValueError("Count tables must have exactly the record's action set as keys")

        for key in record.actions:
            if active[key] < 0 or total[key] < 0:
                raise ValueError(f"Negative count for action {key}")
            if active[key] > total[key]:
                raise ValueError(
                    f"Active-optimal count exceeds total-optimal count for {key}: "
                    f"{active[key]} > {total[key]}")
            record.active_optimal_counts[key] = active[key]
            record.total_optimal_counts[key] = total[key]

        return record

    @property
    def num_activations(self) -> int:
        """Number of times this affordance was active while some action was optimal"""
        return sum(self.active_optimal_counts.values())

    def relevance_probability(self, action: ActionLike) -> float:
        """P(affordance active | action optimal), unsmoothed"""
        key = as_action_key(action)
        total = self.total_optimal_counts[key]
        if total == 0:
            raise UndefinedProbabilityError(f"Action {key} has a total-optimal count of zero")
        return self.active_optimal_counts[key] / total

    def increment_active_optimal(self, action: ActionLike):
        self.active_optimal_counts[as_action_key(action)] += 1

    def increment_total_optimal(self, action: ActionLike):
        self.total_optimal_counts[as_action_key(action)] += 1

    def record_optimal(self, action: ActionLike, active: bool):
        """Record one observation of `action` being optimal, with this affordance active or not"""
        self.increment_total_optimal(action)
        if active:
            self.increment_active_optimal(action)

    def __str__(self) -> str:
        return f"{self.precondition},{self.goal}"

    def __repr__(self) -> str:
        return f"AffordanceRecord({self.precondition}, {self.goal}, actions={len(self.actions)})"
