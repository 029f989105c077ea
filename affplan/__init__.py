"""
AffPlan: Affordance-Aware Planning

Prunes the action space of MDP planners with learned affordances:
- Count-based affordance model and posterior pruning controller
- Reachability value iteration, RTDP and bounded RTDP with pluggable action sets
- Grid world example domain and planner benchmark
"""

__version__ = "1.0.0"
__author__ = "AffPlan Research Team"

from .affordances import (
    AffordanceRecord,
    AffordanceDelegate,
    AffordancePruningController,
    PruningConfig,
    SelectionPolicy,
    PriorStrategy,
    KnowledgeBase
)
from .planning import (
    ReachabilityValueIteration,
    ValueIterationConfig,
    RTDP,
    RTDPConfig,
    BoundedRTDP,
    BoundedRTDPConfig
)

__all__ = [
    'AffordanceRecord',
    'AffordanceDelegate',
    'AffordancePruningController',
    'PruningConfig',
    'SelectionPolicy',
    'PriorStrategy',
    'KnowledgeBase',
    'ReachabilityValueIteration',
    'ValueIterationConfig',
    'RTDP',
    'RTDPConfig',
    'BoundedRTDP',
    'BoundedRTDPConfig'
]
