#!/usr/bin/env python3
"""
Reachability-Based Value Iteration

Asynchronous value iteration over the state space reachable from an initial
state. The reachable set is discovered by breadth-first expansion using the
action provider's (possibly affordance-pruned) action set, and every pass
backs each discovered state up over that same action set.

With transition caching enabled (the default) the backups reuse the exact
pruned action lists used during discovery, so the discovered state set is
closed under the pruned transitions even when pruning is stochastic (sample
policy). Cached lists are tagged with the provider revision; a new goal
invalidates them and requires a new reachability pass.

Authors: AffPlan Research Team
"""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Hashable, List, Optional, Set

import numpy as np

from ..mdp.core import Domain, GroundedAction, RewardFunction, StateHashFactory, TerminalFunction
from ..mdp.value_function import ActionSetProvider, ActionTransitions, ValueFunctionPlanner

logger = logging.getLogger(__name__)


class PlannerUsageError(RuntimeError):
    """Raised when a planner operation is invoked out of order"""
    pass


class PlannerStatus(Enum):
    UNINITIALIZED = "uninitialized"
    REACHABILITY_DISCOVERED = "reachability_discovered"
    ITERATING = "iterating"
    CONVERGED = "converged"
    ITERATION_CAP_REACHED = "iteration_cap_reached"


@dataclass
class ValueIterationConfig:
    """Configuration for reachability-based value iteration"""
    gamma: float = 0.99
    max_delta: float = 1e-3            # stop when the largest value change of a pass is below this
    max_iterations: int = 1000
    value_init: float = 0.0
    stop_reachability_from_terminal_states: bool = True
    use_cached_transitions: bool = True


class ReachabilityValueIteration(ValueFunctionPlanner):
    """Value iteration restricted to the states reachable under the provided action sets"""

    def __init__(self, domain: Domain, reward_function: RewardFunction, terminal_function: TerminalFunction,
                 config: Optional[ValueIterationConfig] = None, hashing_factory: Optional[StateHashFactory] = None,
                 action_provider: Optional[ActionSetProvider] = None, rng: Optional[np.random.Generator] = None):
        self.config = config or ValueIterationConfig()
        super().__init__(domain, reward_function, terminal_function, self.config.gamma,
                         hashing_factory=hashing_factory, action_provider=action_provider,
                         value_init=self.config.value_init, rng=rng)

        self.states: Dict[Hashable, Any] = {}
        self.transition_cache: Dict[Hashable, List[ActionTransitions]] = {}
        self.found_reachable_states = False
        self.status = PlannerStatus.UNINITIALIZED
        self.passes = 0
        self._cache_revision = self.action_provider.revision

    def _check_provider_revision(self):
        """Drop cached pruning and the reachable set if the provider's answers may have changed"""
        revision = self.action_provider.revision
        if revision == self._cache_revision:
            return

        if self.found_reachable_states:
            logger.info("Action provider changed (e.g. new goal); cached transitions invalidated")
        self.transition_cache.clear()
        self.states.clear()
        self.found_reachable_states = False
        self.status = PlannerStatus.UNINITIALIZED
        self._cache_revision = revision

    def get_action_transitions(self, state: Any) -> List[ActionTransitions]:
        """Transitions of every provided action in state, cached when caching is enabled"""
        key = self.state_key(state)
        transitions = self.transition_cache.get(key)
        if transitions is None:
            transitions = self.action_transitions(state, self.available_actions(state))
            if self.config.use_cached_transitions:
                self.transition_cache[key] = transitions
        return transitions

    def discover_reachable_states(self, initial_state: Any) -> bool:
        """
        Breadth-first discovery of the states reachable from initial_state.

        Returns:
            False if initial_state was already discovered (nothing new), True otherwise
        """
        self._check_provider_revision()

        initial_key = self.state_key(initial_state)
        if self.found_reachable_states and initial_key in self.states:
            return False

        logger.debug("Starting reachability analysis")

        open_list = deque([initial_state])
        opened: Set[Hashable] = {initial_key}

        while open_list:
            state = open_list.popleft()
            key = self.state_key(state)
            if key in self.states:
                continue

            self.states[key] = state

            if self.config.stop_reachability_from_terminal_states and self.terminal_function(state):
                continue

            for _, transitions in self.get_action_transitions(state):
                for tp in transitions:
                    successor_key = self.state_key(tp.state)
                    if successor_key not in opened and successor_key not in self.states:
                        opened.add(successor_key)
                        open_list.append(tp.state)

        self.found_reachable_states = True
        self.status = PlannerStatus.REACHABILITY_DISCOVERED
        logger.info(f"Finished reachability analysis; # states: {len(self.states)}")
        return True

    def run_backups(self) -> int:
        """
        Full Bellman passes over the discovered states until the maximum value
        change drops below max_delta or max_iterations passes are done.

        Returns:
            number of Bellman backups performed
        """
        self._check_provider_revision()
        if not self.found_reachable_states:
            raise PlannerUsageError("Cannot run value iteration until the reachable states have been found; "
                                    "call discover_reachable_states or plan_from_state first")

        self.status = PlannerStatus.ITERATING
        backups = 0
        delta = float('inf')

        for i in range(self.config.max_iterations):
            delta = 0.0
            for state in self.states.values():
                current = self.value(state)
                if self.terminal_function(state):
                    updated = self.bellman_update_from(state, [])
                else:
                    updated = self.bellman_update_from(state, self.get_action_transitions(state))
                backups += 1
                delta = max(delta, abs(updated - current))

            self.passes = i + 1
            logger.debug(f"Pass {self.passes}: delta={delta:.6f}")
            if delta < self.config.max_delta:
                self.status = PlannerStatus.CONVERGED
                break
        else:
            self.status = PlannerStatus.ITERATION_CAP_REACHED

        logger.info(f"Value iteration {self.status.value} after {self.passes} passes, "
                    f"{backups} backups, final delta={delta:.6f}")
        return backups

    def plan_from_state(self, initial_state: Any) -> int:
        """Discover reachable states and run value iteration; returns the backups performed"""
        discovered = self.discover_reachable_states(initial_state)
        if not discovered and self.status in (PlannerStatus.CONVERGED, PlannerStatus.ITERATION_CAP_REACHED):
            return 0
        return self.run_backups()

    def discovered_states(self) -> List[Any]:
        return list(self.states.values())

    def successors(self, state: Any) -> Set[Hashable]:
        """Keys of every successor of state under its (cached) provided actions"""
        return {self.state_key(tp.state)
                for _, transitions in self.get_action_transitions(state)
                for tp in transitions}

    def policy(self) -> Dict[Hashable, GroundedAction]:
        """Greedy action for every discovered non-terminal state"""
        greedy = {}
        for key, state in self.states.items():
            if self.terminal_function(state):
                continue
            actions = [action for action, _ in self.get_action_transitions(state)]
            greedy[key] = self.greedy_action(state, actions)
        return greedy
