"""
Affordance Module for Action Pruning

Learned affordances predict, for a goal and a state-dependent precondition,
which actions are likely optimal. This module holds the count-based model and
the controller that turns affordance evidence into pruned action sets:

- AffordanceRecord: (precondition, goal) pair with per-action count tables
- AffordanceDelegate: goal gating, activation testing and text persistence
- AffordancePruningController: posterior computation and action selection
- KnowledgeBase: multi-record knowledge base files
"""

from .record import (
    AffordanceRecord,
    UndefinedProbabilityError,
    as_action_key
)
from .delegate import (
    AffordanceDelegate,
    AffordanceLoadError,
    DEFAULT_EXPERT_TOTAL_COUNT,
    RECORD_SENTINEL
)
from .controller import (
    AffordancePruningController,
    PruningConfig,
    SelectionPolicy,
    PriorStrategy,
    DEFAULT_THRESHOLD_NUMERATOR
)
from .knowledge_base import KnowledgeBase, split_records

__all__ = [
    'AffordanceRecord',
    'UndefinedProbabilityError',
    'as_action_key',
    'AffordanceDelegate',
    'AffordanceLoadError',
    'DEFAULT_EXPERT_TOTAL_COUNT',
    'RECORD_SENTINEL',
    'AffordancePruningController',
    'PruningConfig',
    'SelectionPolicy',
    'PriorStrategy',
    'DEFAULT_THRESHOLD_NUMERATOR',
    'KnowledgeBase',
    'split_records'
]
