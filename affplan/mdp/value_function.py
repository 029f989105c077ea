#!/usr/bin/env python3
"""
Value Function Planning Base

Shared Bellman-backup machinery for the dynamic programming planners. The
action set considered in a state is supplied by an injectable
ActionSetProvider, so affordance pruning is a strategy object rather than a
planner subclass.

Authors: AffPlan Research Team
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple

import numpy as np

from .core import (
    Domain, GroundedAction, IdentityHashFactory, RewardFunction, StateHashFactory,
    TerminalFunction, TransitionProbability
)

logger = logging.getLogger(__name__)

ActionTransitions = Tuple[GroundedAction, List[TransitionProbability]]


@dataclass
class QValue:
    """Q-value of an action in a state"""
    state: Any
    action: GroundedAction
    q: float


class ActionSetProvider(ABC):
    """
    Strategy deciding which actions a planner considers in a state.

    `revision` changes whenever the provider's answers may change for the
    same state (e.g. a new goal), so planners can invalidate caches.
    """

    revision: int = 0

    @abstractmethod
    def get_actions(self, state: Any) -> List[GroundedAction]:
        """Return the non-empty list of actions to consider in state"""
        pass


class FullActionSetProvider(ActionSetProvider):
    """Identity provider: every applicable grounding of every domain action"""

    def __init__(self, domain: Domain):
        self.domain = domain

    def get_actions(self, state: Any) -> List[GroundedAction]:
        return self.domain.all_grounded_actions(state)


class ValueFunctionPlanner:
    """Tabular value function with Bellman backups restricted to a provided action set"""

    def __init__(self, domain: Domain, reward_function: RewardFunction, terminal_function: TerminalFunction,
                 gamma: float, hashing_factory: Optional[StateHashFactory] = None,
                 action_provider: Optional[ActionSetProvider] = None, value_init: float = 0.0,
                 rng: Optional[np.random.Generator] = None):
        if not 0.0 <= gamma <= 1.0:
            raise ValueError(f"Discount factor must be in [0, 1], got {gamma}")

        self.domain = domain
        self.reward_function = reward_function
        self.terminal_function = terminal_function
        self.gamma = gamma
        self.hashing_factory = hashing_factory or IdentityHashFactory()
        self.action_provider = action_provider or FullActionSetProvider(domain)
        self.value_init = value_init
        self.rng = rng if rng is not None else np.random.default_rng()

        self.values: Dict[Hashable, float] = {}
        self.bellman_updates = 0

    def state_key(self, state: Any) -> Hashable:
        return self.hashing_factory.hash_state(state)

    def value(self, state: Any) -> float:
        """Current value estimate; terminal states are worth 0"""
        if self.terminal_function(state):
            return 0.0
        return self.values.get(self.state_key(state), self.value_init)

    def available_actions(self, state: Any) -> List[GroundedAction]:
        return self.action_provider.get_actions(state)

    def action_transitions(self, state: Any, actions: Sequence[GroundedAction]) -> List[ActionTransitions]:
        return [(action, action.transitions(state)) for action in actions]

    def q_from_transitions(self, state: Any, action: GroundedAction,
                           transitions: Sequence[TransitionProbability]) -> float:
        q = 0.0
        for tp in transitions:
            reward = self.reward_function(state, action, tp.state)
            q += tp.probability * (reward + self.gamma * self.value(tp.state))
        return q

    def q_values(self, state: Any, actions: Optional[Sequence[GroundedAction]] = None) -> List[QValue]:
        if actions is None:
            actions = self.available_actions(state)
        return [QValue(state, action, self.q_from_transitions(state, action, transitions))
                for action, transitions in self.action_transitions(state, actions)]

    def bellman_update_from(self, state: Any, action_transitions: Sequence[ActionTransitions]) -> float:
        """Back up state from precomputed (action, transitions) pairs and return its new value"""
        self.bellman_updates += 1
        key = self.state_key(state)

        if self.terminal_function(state):
            self.values[key] = 0.0
            return 0.0

        if not action_transitions:
            raise ValueError(f"No actions available for backup in state {state!r}")

        max_q = max(self.q_from_transitions(state, action, transitions)
                    for action, transitions in action_transitions)
        self.values[key] = max_q
        return max_q

    def bellman_update(self, state: Any, actions: Optional[Sequence[GroundedAction]] = None) -> float:
        """Bellman backup of state over actions (provider actions by default)"""
        if actions is None:
            actions = self.available_actions(state)
        return self.bellman_update_from(state, self.action_transitions(state, actions))

    def greedy_action(self, state: Any, actions: Optional[Sequence[GroundedAction]] = None) -> GroundedAction:
        return select_max_q(self.q_values(state, actions), self.rng).action

    def reset_values(self):
        self.values.clear()
        self.bellman_updates = 0


def select_max_q(q_values: Sequence[QValue], rng: np.random.Generator) -> QValue:
    """Return a maximum Q entry, breaking ties uniformly at random"""
    if not q_values:
        raise ValueError("Cannot select an action from an empty Q-value list")

    best = max(q.q for q in q_values)
    candidates = [q for q in q_values if q.q == best]
    return candidates[rng.integers(len(candidates))]


class GreedyQPolicy:
    """Greedy policy over a planner's Q-values, restricted to the provider's action set"""

    def __init__(self, planner: ValueFunctionPlanner, action_provider: Optional[ActionSetProvider] = None,
                 rng: Optional[np.random.Generator] = None):
        self.planner = planner
        self.action_provider = action_provider or planner.action_provider
        self.rng = rng if rng is not None else planner.rng

    def get_action(self, state: Any, actions: Optional[Sequence[GroundedAction]] = None) -> GroundedAction:
        """Greedy action in state; `actions` skips the provider query when already known"""
        if actions is None:
            actions = self.action_provider.get_actions(state)
        return select_max_q(self.planner.q_values(state, actions), self.rng).action
