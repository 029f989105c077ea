#!/usr/bin/env python3
"""
Bounded Real-Time Dynamic Programming

BRTDP (McMahan, Likhachev & Gordon, 2005) keeps a lower and an upper bound
on the value function. Rollouts act greedily on the upper bound, sample the
next state in proportion to P(s'|s,a) times its bound gap, end early once the
expected gap is below max_diff, and are backed up in reverse. Planning ends
when the initial state's gap is below max_diff or the rollout cap is hit.

Both bounds are backed up over the action provider's action set, so the
affordance controller prunes BRTDP the same way it prunes RTDP.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import numpy as np

from ..mdp.core import Domain, GroundedAction, RewardFunction, StateHashFactory, TerminalFunction
from ..mdp.value_function import ActionSetProvider, ValueFunctionPlanner, select_max_q

logger = logging.getLogger(__name__)


@dataclass
class BoundedRTDPConfig:
    """Configuration for bounded RTDP"""
    gamma: float = 0.99
    lower_value_init: float = -100.0
    upper_value_init: float = 0.0
    max_diff: float = 0.01
    max_rollouts: int = 1000   # -1 for no limit
    max_depth: int = 100

    def __post_init__(self):
        if self.lower_value_init > self.upper_value_init:
            raise ValueError("lower_value_init must not exceed upper_value_init")
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be positive, got {self.max_depth}")


class BoundedRTDP(ValueFunctionPlanner):
    """BRTDP; the planner's own value table is the lower bound"""

    def __init__(self, domain: Domain, reward_function: RewardFunction, terminal_function: TerminalFunction,
                 config: Optional[BoundedRTDPConfig] = None, hashing_factory: Optional[StateHashFactory] = None,
                 action_provider: Optional[ActionSetProvider] = None, rng: Optional[np.random.Generator] = None):
        self.config = config or BoundedRTDPConfig()
        super().__init__(domain, reward_function, terminal_function, self.config.gamma,
                         hashing_factory=hashing_factory, action_provider=action_provider,
                         value_init=self.config.lower_value_init, rng=rng)

        self.upper = ValueFunctionPlanner(domain, reward_function, terminal_function, self.config.gamma,
                                          hashing_factory=self.hashing_factory,
                                          action_provider=self.action_provider,
                                          value_init=self.config.upper_value_init, rng=self.rng)
        self.num_rollouts = 0

    @property
    def total_bellman_updates(self) -> int:
        return self.bellman_updates + self.upper.bellman_updates

    def gap(self, state: Any) -> float:
        return self.upper.value(state) - self.value(state)

    def _backup_bounds(self, state: Any, actions: List[GroundedAction]) -> GroundedAction:
        """Back up both bounds over actions and return the upper-bound greedy action"""
        transitions = self.action_transitions(state, actions)
        self.bellman_update_from(state, transitions)

        upper_qs = self.upper.q_values(state, actions)
        action = select_max_q(upper_qs, self.rng).action
        self.upper.bellman_update_from(state, transitions)
        return action

    def _select_next_state(self, state: Any, action: GroundedAction) -> Tuple[Optional[Any], float]:
        """Sample a successor weighted by probability times bound gap; returns (state, expected gap)"""
        outcomes = action.transitions(state)
        # Bounds initialised off the true value can cross; a crossed gap carries no weight
        weights = np.array([tp.probability * max(self.gap(tp.state), 0.0) for tp in outcomes], dtype=float)
        expected_gap = float(weights.sum())
        if expected_gap <= 0.0:
            return None, 0.0

        index = self.rng.choice(len(outcomes), p=weights / expected_gap)
        return outcomes[index].state, expected_gap

    def run_rollout(self, initial_state: Any) -> int:
        """Run one rollout with a reverse backup pass; returns its length"""
        trajectory = []
        state = initial_state

        while not self.terminal_function(state) and len(trajectory) < self.config.max_depth:
            trajectory.append(state)
            action = self._backup_bounds(state, self.available_actions(state))

            next_state, expected_gap = self._select_next_state(state, action)
            if next_state is None or expected_gap < self.config.max_diff:
                break
            state = next_state

        for visited in reversed(trajectory):
            self._backup_bounds(visited, self.available_actions(visited))

        self.num_rollouts += 1
        return len(trajectory)

    def plan_from_state(self, initial_state: Any) -> int:
        """
        Run rollouts until the initial state's bound gap is below max_diff.

        Returns:
            number of Bellman backups performed (both bounds counted)
        """
        start_updates = self.total_bellman_updates
        rollouts = 0

        while self.config.max_rollouts < 0 or rollouts < self.config.max_rollouts:
            if self.gap(initial_state) < self.config.max_diff:
                break
            length = self.run_rollout(initial_state)
            rollouts += 1
            logger.debug(f"Rollout {rollouts}: {length} states, gap={self.gap(initial_state):.6f}")

        backups = self.total_bellman_updates - start_updates
        logger.info(f"BRTDP finished after {rollouts} rollouts, initial gap={self.gap(initial_state):.6f}, "
                    f"{backups} backups")
        return backups
