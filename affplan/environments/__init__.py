"""
Example planning domains.
"""

from .grid_world import (
    GridState,
    GridWorld,
    make_grid_world,
    make_directional_affordances,
    DIRECTIONS
)

__all__ = [
    'GridState',
    'GridWorld',
    'make_grid_world',
    'make_directional_affordances',
    'DIRECTIONS'
]
