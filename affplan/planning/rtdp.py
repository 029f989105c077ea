#!/usr/bin/env python3
"""
Real-Time Dynamic Programming

Trial-based RTDP (Barto, Bradtke & Singh, 1995). Each rollout starts in the
initial state; at every step the current state's action set is taken from the
action provider (affordance pruning when a controller is supplied), an action
is chosen greedily over Q with random tie-breaking, the state is backed up
over the same action set and the action is executed.

Planning stops after a number of consecutive rollouts whose largest value
change stays below max_delta, or when the rollout cap is reached. An
optimistic value initialisation is needed for optimality guarantees.

Authors: AffPlan Research Team
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

import numpy as np

from ..mdp.core import Domain, RewardFunction, StateHashFactory, TerminalFunction
from ..mdp.value_function import ActionSetProvider, GreedyQPolicy, ValueFunctionPlanner

logger = logging.getLogger(__name__)


@dataclass
class RTDPConfig:
    """Configuration for RTDP"""
    gamma: float = 0.99
    value_init: float = 0.0
    num_rollouts: int = 1000
    max_delta: float = 1e-3
    max_depth: int = 100
    min_rollouts_for_convergence: int = 1  # consecutive small-delta rollouts required to stop

    def __post_init__(self):
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be positive, got {self.max_depth}")
        if self.min_rollouts_for_convergence < 1:
            raise ValueError("min_rollouts_for_convergence must be at least 1")


class RTDP(ValueFunctionPlanner):
    """Rollout-based asynchronous value iteration"""

    def __init__(self, domain: Domain, reward_function: RewardFunction, terminal_function: TerminalFunction,
                 config: Optional[RTDPConfig] = None, hashing_factory: Optional[StateHashFactory] = None,
                 action_provider: Optional[ActionSetProvider] = None, rng: Optional[np.random.Generator] = None):
        self.config = config or RTDPConfig()
        super().__init__(domain, reward_function, terminal_function, self.config.gamma,
                         hashing_factory=hashing_factory, action_provider=action_provider,
                         value_init=self.config.value_init, rng=rng)

        self.rollout_policy = GreedyQPolicy(self, self.action_provider, self.rng)
        self.rollout_lengths: List[int] = []
        self.converged = False

    def run_rollout(self, initial_state: Any) -> float:
        """Run one rollout; returns the largest value change it produced"""
        state = initial_state
        steps = 0
        delta = 0.0

        while not self.terminal_function(state) and steps < self.config.max_depth:
            actions = self.available_actions(state)
            action = self.rollout_policy.get_action(state, actions)

            current = self.value(state)
            updated = self.bellman_update(state, actions)
            delta = max(delta, abs(updated - current))

            state = action.execute_in(state, self.rng)
            steps += 1

        self.rollout_lengths.append(steps)
        return delta

    def plan_from_state(self, initial_state: Any) -> int:
        """
        Run rollouts from initial_state until convergence or the rollout cap.

        Returns:
            number of Bellman backups performed
        """
        start_updates = self.bellman_updates
        consecutive_small_deltas = 0
        self.converged = False

        for i in range(self.config.num_rollouts):
            delta = self.run_rollout(initial_state)
            logger.debug(f"Rollout {i}: {self.rollout_lengths[-1]} steps, delta={delta:.6f}")

            if delta < self.config.max_delta:
                consecutive_small_deltas += 1
                if consecutive_small_deltas >= self.config.min_rollouts_for_convergence:
                    self.converged = True
                    break
            else:
                consecutive_small_deltas = 0

        backups = self.bellman_updates - start_updates
        logger.info(f"RTDP finished after {len(self.rollout_lengths)} rollouts "
                    f"({'converged' if self.converged else 'rollout cap reached'}), {backups} backups")
        return backups
