"""
Dynamic programming planners consuming pruned action sets.

All planners take an `action_provider`; pass an AffordancePruningController
for affordance-aware planning, or leave the default full action set.
"""

from .value_iteration import (
    ReachabilityValueIteration,
    ValueIterationConfig,
    PlannerStatus,
    PlannerUsageError
)
from .rtdp import RTDP, RTDPConfig
from .bounded_rtdp import BoundedRTDP, BoundedRTDPConfig

__all__ = [
    'ReachabilityValueIteration',
    'ValueIterationConfig',
    'PlannerStatus',
    'PlannerUsageError',
    'RTDP',
    'RTDPConfig',
    'BoundedRTDP',
    'BoundedRTDPConfig'
]
