#!/usr/bin/env python3
"""
MDP Domain Primitives for Affordance-Aware Planning

Minimal object model the planners and the affordance layer are written
against: actions and their groundings, propositional functions used as
preconditions and goal descriptions, transition outcomes and state hashing.

Key Components:
- ActionKey: canonical value-equality identity for grounded actions
- Action / GroundedAction: parameterised actions and concrete bindings
- PropositionalFunction / PFAtom: predicates evaluated in a state
- Domain: registry resolving action and predicate names
- StateHashFactory: canonical keys for deduplicating states

Authors: AffPlan Research Team
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

# Prefix marking an unbound (free) variable in a parameter list
FREE_VARIABLE_PREFIX = "?"

RewardFunction = Callable[[Any, "GroundedAction", Any], float]
TerminalFunction = Callable[[Any], bool]


def make_free_variables(parameter_classes: Sequence[str]) -> Tuple[str, ...]:
    """Build free variable names ('?' + first letter of the class) for each parameter class"""
    return tuple(f"{FREE_VARIABLE_PREFIX}{object_class[0]}" for object_class in parameter_classes)


@dataclass(frozen=True)
class ActionKey:
    """Canonical identity of a grounded action: action name plus parameter bindings"""
    name: str
    parameters: Tuple[str, ...] = ()

    @classmethod
    def of(cls, name: str, bindings: Union[Sequence[str], Mapping[str, str], None] = None) -> "ActionKey":
        """
        Build a key from positional bindings or a parameter->value mapping.

        Positional bindings keep their order (the position is the binding);
        mapping bindings are sorted by parameter name.
        """
        if bindings is None:
            return cls(name, ())
        if isinstance(bindings, Mapping):
            return cls(name, tuple(str(bindings[p]) for p in sorted(bindings)))
        return cls(name, tuple(str(b) for b in bindings))

    def __str__(self) -> str:
        if not self.parameters:
            return self.name
        return f"{self.name}({', '.join(self.parameters)})"


@dataclass(frozen=True)
class TransitionProbability:
    """One outcome of an action: successor state and its probability"""
    state: Any
    probability: float


class Action:
    """Base class for primitive and temporally extended actions"""

    def __init__(self, name: str, parameter_classes: Optional[Sequence[str]] = None):
        self.name = name
        self.parameter_classes = tuple(parameter_classes or ())

    def is_applicable(self, state: Any, parameters: Tuple[str, ...]) -> bool:
        return True

    def transitions(self, state: Any, parameters: Tuple[str, ...]) -> List[TransitionProbability]:
        """Outcome distribution of applying this action in state"""
        raise NotImplementedError(f"Action {self.name} does not define its transition dynamics")

    def groundings(self, state: Any) -> List["GroundedAction"]:
        """All groundings of this action in state (free-variable grounding by default)"""
        parameters = make_free_variables(self.parameter_classes)
        if not self.is_applicable(state, parameters):
            return []
        return [GroundedAction(self, parameters)]

    def execute_in(self, state: Any, parameters: Tuple[str, ...], rng: np.random.Generator) -> Any:
        """Sample a successor state from the outcome distribution"""
        outcomes = self.transitions(state, parameters)
        if len(outcomes) == 1:
            return outcomes[0].state

        probabilities = np.array([tp.probability for tp in outcomes], dtype=float)
        index = rng.choice(len(outcomes), p=probabilities / probabilities.sum())
        return outcomes[index].state

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"


class FunctionAction(Action):
    """Action whose dynamics are given by a plain function"""

    def __init__(self, name: str, transition_fn: Callable[[Any, Tuple[str, ...]], List[TransitionProbability]],
                 parameter_classes: Optional[Sequence[str]] = None,
                 applicable_fn: Optional[Callable[[Any, Tuple[str, ...]], bool]] = None):
        super().__init__(name, parameter_classes)
        self.transition_fn = transition_fn
        self.applicable_fn = applicable_fn

    def is_applicable(self, state: Any, parameters: Tuple[str, ...]) -> bool:
        if self.applicable_fn is None:
            return True
        return self.applicable_fn(state, parameters)

    def transitions(self, state: Any, parameters: Tuple[str, ...]) -> List[TransitionProbability]:
        return self.transition_fn(state, parameters)


class GroundedAction:
    """An action bound to concrete (or free) parameters"""

    __slots__ = ("action", "parameters", "key")

    def __init__(self, action: Action, parameters: Sequence[str] = ()):
        self.action = action
        self.parameters = tuple(parameters)
        self.key = ActionKey(action.name, self.parameters)

    @property
    def name(self) -> str:
        return self.action.name

    def transitions(self, state: Any) -> List[TransitionProbability]:
        return self.action.transitions(state, self.parameters)

    def execute_in(self, state: Any, rng: np.random.Generator) -> Any:
        return self.action.execute_in(state, self.parameters, rng)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GroundedAction):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        return str(self.key)

    def __repr__(self) -> str:
        return f"GroundedAction({self.key})"


class PropositionalFunction:
    """Named boolean predicate over a state and a parameter binding"""

    def __init__(self, name: str, predicate: Callable[[Any, Tuple[str, ...]], bool],
                 parameter_classes: Optional[Sequence[str]] = None):
        self.name = name
        self.predicate = predicate
        self.parameter_classes = tuple(parameter_classes or ())

    def is_true(self, state: Any, parameters: Tuple[str, ...]) -> bool:
        return bool(self.predicate(state, parameters))

    def __repr__(self) -> str:
        return f"PropositionalFunction({self.name!r})"


class PFAtom:
    """
    Logical expression consisting of a single grounded propositional function.

    Equality is structural (function name and parameters), which is what goal
    matching between the planner and the affordances relies on.
    """

    def __init__(self, function: PropositionalFunction, parameters: Optional[Sequence[str]] = None):
        self.function = function
        if parameters is None:
            parameters = make_free_variables(function.parameter_classes)
        self.parameters = tuple(parameters)

    def evaluate(self, state: Any) -> bool:
        return self.function.is_true(state, self.parameters)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PFAtom):
            return NotImplemented
        return self.function.name == other.function.name and self.parameters == other.parameters

    def __hash__(self) -> int:
        return hash((self.function.name, self.parameters))

    def __str__(self) -> str:
        return self.function.name

    def __repr__(self) -> str:
        return f"PFAtom({self.function.name}{list(self.parameters)})"


class Domain:
    """Registry of the actions and propositional functions of a planning domain"""

    def __init__(self, name: str = "domain"):
        self.name = name
        self.actions: Dict[str, Action] = {}
        self.propositional_functions: Dict[str, PropositionalFunction] = {}

    def add_action(self, action: Action) -> Action:
        self.actions[action.name] = action
        return action

    def get_action(self, name: str) -> Optional[Action]:
        return self.actions.get(name)

    def add_propositional_function(self, function: PropositionalFunction) -> PropositionalFunction:
        self.propositional_functions[function.name] = function
        return function

    def get_propositional_function(self, name: str) -> Optional[PropositionalFunction]:
        return self.propositional_functions.get(name)

    def all_grounded_actions(self, state: Any) -> List[GroundedAction]:
        """Every applicable grounding of every registered action, in registration order"""
        grounded = []
        for action in self.actions.values():
            grounded.extend(action.groundings(state))
        return grounded


class StateHashFactory:
    """Produces the canonical key used to deduplicate states"""

    def hash_state(self, state: Any) -> Hashable:
        raise NotImplementedError


class IdentityHashFactory(StateHashFactory):
    """States are their own keys (states must be hashable values)"""

    def hash_state(self, state: Any) -> Hashable:
        return state


class FunctionHashFactory(StateHashFactory):
    """Keys computed by a user supplied function"""

    def __init__(self, key_fn: Callable[[Any], Hashable]):
        self.key_fn = key_fn

    def hash_state(self, state: Any) -> Hashable:
        return self.key_fn(state)
