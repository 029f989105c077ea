"""
MDP primitives and the value-function planning base shared by all planners.
"""

from .core import (
    ActionKey,
    Action,
    FunctionAction,
    GroundedAction,
    TransitionProbability,
    PropositionalFunction,
    PFAtom,
    Domain,
    StateHashFactory,
    IdentityHashFactory,
    FunctionHashFactory,
    make_free_variables
)
from .value_function import (
    QValue,
    ActionSetProvider,
    FullActionSetProvider,
    ValueFunctionPlanner,
    GreedyQPolicy,
    select_max_q
)

__all__ = [
    'ActionKey',
    'Action',
    'FunctionAction',
    'GroundedAction',
    'TransitionProbability',
    'PropositionalFunction',
    'PFAtom',
    'Domain',
    'StateHashFactory',
    'IdentityHashFactory',
    'FunctionHashFactory',
    'make_free_variables',
    'QValue',
    'ActionSetProvider',
    'FullActionSetProvider',
    'ValueFunctionPlanner',
    'GreedyQPolicy',
    'select_max_q'
]
