#!/usr/bin/env python3
"""
Affordance Pruning Controller

Combines the evidence of every registered affordance into a posterior
probability that each action is optimal in a state, then derives a pruned
action set for the planners.

Posterior per action a (affordances assumed conditionally independent given
optimality):

    prior(a)    = total(a) / sum_a' total(a')
    positive(a) = prod_d  P(d active | a optimal)      if d active, else 1 - P(...)
    negative(a) = prod_d  P(d active | a not optimal)  if d active, else 1 - P(...)
    posterior   = positive * prior / (positive * prior + negative * (1 - prior))

The designated prior reads one delegate's totals; actions that delegate does
not know take their prior from the totals summed over all delegates.

Selection policies:
- THRESHOLD: keep a iff posterior(a) > threshold_numerator / |actions|
- EXPERT_UNION: keep a iff posterior(a) > 0
- SAMPLE: keep a iff posterior(a) exceeds an independent uniform draw

An empty selection falls back to the full action set, so planners always have
at least one legal move.

Authors: AffPlan Research Team
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..mdp.core import ActionKey, GroundedAction
from ..mdp.value_function import ActionSetProvider
from .delegate import DEFAULT_EXPERT_TOTAL_COUNT, AffordanceDelegate

logger = logging.getLogger(__name__)

# Numerator of the hard threshold; divided by the number of known actions it
# keeps every action whose posterior beats 20% of the uniform probability.
DEFAULT_THRESHOLD_NUMERATOR = 0.2


class SelectionPolicy(Enum):
    """How the posterior is turned into an action subset"""
    THRESHOLD = "threshold"
    EXPERT_UNION = "expert_union"
    SAMPLE = "sample"


class PriorStrategy(Enum):
    """Where the prior over action optimality comes from"""
    DESIGNATED = "designated"  # one delegate's total table stands in for the global visitation counts
    AGGREGATE = "aggregate"    # total tables summed across all delegates


@dataclass
class PruningConfig:
    """Configuration for affordance action pruning"""
    selection_policy: SelectionPolicy = SelectionPolicy.SAMPLE
    threshold_numerator: float = DEFAULT_THRESHOLD_NUMERATOR
    expert_total_count: int = DEFAULT_EXPERT_TOTAL_COUNT
    prior_strategy: PriorStrategy = PriorStrategy.DESIGNATED
    designated_prior_index: int = 0
    seed: Optional[int] = None

    def __post_init__(self):
        self.selection_policy = SelectionPolicy(self.selection_policy)
        self.prior_strategy = PriorStrategy(self.prior_strategy)
        if self.threshold_numerator < 0:
            raise ValueError(f"threshold_numerator must be non-negative, got {self.threshold_numerator}")
        if self.designated_prior_index < 0:
            raise ValueError(f"designated_prior_index must be non-negative, got {self.designated_prior_index}")


class AffordancePruningController(ActionSetProvider):
    """Posterior engine and action-set provider backed by a list of affordance delegates"""

    def __init__(self, delegates: Sequence[AffordanceDelegate], config: Optional[PruningConfig] = None,
                 rng: Optional[np.random.Generator] = None):
        if not delegates:
            raise ValueError("AffordancePruningController requires at least one affordance delegate")

        self.config = config or PruningConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)

        self.delegates: List[AffordanceDelegate] = []
        self.union_actions: Dict[ActionKey, GroundedAction] = {}
        self.hard_threshold = 0.0
        self.current_goal: Any = None
        self.revision = 0
        self._warned_inconsistent_totals = False

        for delegate in delegates:
            self.register_delegate(delegate)

        logger.info(f"Initialized {self.__class__.__name__} with {len(self.delegates)} affordances, "
                    f"{len(self.union_actions)} actions, policy={self.config.selection_policy.value}")

    # --- Registration and goal handling ---

    def set_current_goal(self, goal: Any):
        """Propagate the planner's goal description to every delegate"""
        if goal != self.current_goal:
            self.revision += 1
        self.current_goal = goal
        for delegate in self.delegates:
            delegate.set_current_goal(goal)

    def register_delegate(self, delegate: AffordanceDelegate):
        """Add a delegate (idempotent) and extend the union action set with its actions"""
        if not delegate.record.actions:
            raise ValueError(f"Affordance {delegate} has an empty action set")

        if delegate not in self.delegates:
            self.delegates.append(delegate)
            if self.current_goal is not None:
                delegate.set_current_goal(self.current_goal)
            self.revision += 1

        for key, action in delegate.record.actions.items():
            self.union_actions.setdefault(key, action)

        self.hard_threshold = self.config.threshold_numerator / len(self.union_actions)

    def unregister_delegate(self, delegate: AffordanceDelegate):
        """Remove a delegate; the union action set keeps every action seen so far"""
        if delegate in self.delegates:
            self.delegates.remove(delegate)
            self.revision += 1

    @property
    def all_actions(self) -> List[GroundedAction]:
        return list(self.union_actions.values())

    # --- Posterior ---

    def shared_totals_consistent(self) -> bool:
        """True iff every delegate carries the same total-optimal count table"""
        if not self.delegates:
            return True
        reference = self.delegates[0].total_optimal_counts
        return all(d.total_optimal_counts == reference for d in self.delegates[1:])

    def _count_matrices(self, keys: List[ActionKey]):
        """Stack the delegates' count tables into (delegates x actions) arrays"""
        n_delegates, n_actions = len(self.delegates), len(keys)
        active = np.zeros((n_delegates, n_actions))
        total = np.zeros((n_delegates, n_actions))
        known = np.zeros((n_delegates, n_actions), dtype=bool)
        active_sums = np.zeros((n_delegates, 1))
        total_sums = np.zeros((n_delegates, 1))

        for i, delegate in enumerate(self.delegates):
            active_counts = delegate.active_optimal_counts
            total_counts = delegate.total_optimal_counts
            for j, key in enumerate(keys):
                if key in active_counts:
                    known[i, j] = True
                    active[i, j] = active_counts[key]
                    total[i, j] = total_counts[key]
            active_sums[i, 0] = sum(active_counts.values())
            total_sums[i, 0] = sum(total_counts.values())

        return active, total, known, active_sums, total_sums

    @staticmethod
    def _prior_from_counts(counts: np.ndarray, visited: float) -> np.ndarray:
        if visited == 0:
            logger.debug("No visitation counts available, using a uniform prior")
            return np.full(counts.shape[0], 1.0 / counts.shape[0])
        return counts / visited

    def _compute_prior(self, total: np.ndarray, known: np.ndarray, total_sums: np.ndarray) -> np.ndarray:
        aggregate = self._prior_from_counts(total.sum(axis=0), float(total_sums.sum()))
        if self.config.prior_strategy == PriorStrategy.AGGREGATE:
            return aggregate

        index = self.config.designated_prior_index
        if index >= len(self.delegates):
            raise ValueError(f"designated_prior_index {index} out of range for "
                             f"{len(self.delegates)} delegates")
        if not self._warned_inconsistent_totals and not self.shared_totals_consistent():
            logger.warning("Affordances carry different total-optimal count tables; the prior "
                           f"uses only delegate {index} ({self.delegates[index]})")
            self._warned_inconsistent_totals = True

        prior = self._prior_from_counts(total[index], float(total_sums[index, 0]))

        # The designated table says nothing about actions it does not know
        unknown = ~known[index]
        if unknown.any():
            logger.debug(f"{int(unknown.sum())} actions unknown to delegate {index}; "
                         f"their prior comes from the aggregate totals")
            prior = np.where(unknown, aggregate, prior)
        return prior

    @staticmethod
    def _likelihood(numerator: np.ndarray, denominator: np.ndarray, defined: np.ndarray,
                    active_flags: np.ndarray) -> np.ndarray:
        """
        Product over delegates of P(active | hypothesis), complemented for
        inactive delegates. Undefined ratios contribute a neutral factor of 1.
        """
        ratio = np.divide(numerator, denominator, out=np.zeros_like(numerator), where=defined)
        factors = np.where(active_flags[:, None], ratio, 1.0 - ratio)
        factors = np.where(defined, factors, 1.0)
        return factors.prod(axis=0)

    def compute_posterior(self, state: Any) -> Dict[ActionKey, float]:
        """P(action optimal | affordance activations in state) for every known action"""
        keys = list(self.union_actions)
        if not self.delegates:
            return {key: 0.0 for key in keys}

        active, total, known, active_sums, total_sums = self._count_matrices(keys)
        active_flags = np.array([d.is_active(state) for d in self.delegates], dtype=bool)

        positive_defined = known & (total > 0)
        positive = self._likelihood(active, total, positive_defined, active_flags)

        not_optimal_active = active_sums - active
        not_optimal_total = total_sums - total
        negative_defined = known & (not_optimal_total > 0)
        negative = self._likelihood(not_optimal_active, not_optimal_total, negative_defined, active_flags)

        undefined = int((known & ~positive_defined).sum() + (known & ~negative_defined).sum())
        if undefined:
            logger.debug(f"{undefined} affordance probabilities undefined (zero counts), treated as neutral")

        prior = self._compute_prior(total, known, total_sums)
        numerator = positive * prior
        denominator = numerator + negative * (1.0 - prior)
        posterior = np.divide(numerator, denominator, out=prior.copy(), where=denominator > 0)

        return dict(zip(keys, posterior.tolist()))

    # --- Pruning ---

    def get_pruned_actions_for_state(self, state: Any) -> List[GroundedAction]:
        """Return the non-empty, union-ordered list of actions the affordances deem relevant"""
        if not self.delegates:
            return self.all_actions

        posterior = self.compute_posterior(state)
        policy = self.config.selection_policy

        if policy == SelectionPolicy.THRESHOLD:
            selected = [key for key, p in posterior.items() if p > self.hard_threshold]
        elif policy == SelectionPolicy.EXPERT_UNION:
            selected = [key for key, p in posterior.items() if p > 0.0]
        else:
            draws = self.rng.random(len(posterior))
            selected = [key for (key, p), draw in zip(posterior.items(), draws) if p > draw]

        if not selected:
            logger.debug(f"Affordances pruned every action in {state!r}; using the full action set")
            return self.all_actions

        return [self.union_actions[key] for key in selected]

    def get_actions(self, state: Any) -> List[GroundedAction]:
        return self.get_pruned_actions_for_state(state)
