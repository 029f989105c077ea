#!/usr/bin/env python3
"""
Grid World Planning Domain

Small stochastic navigation domain for exercising the planners and the
affordance controller.

State: agent cell (x, y)
Actions: north, south, east, west, plus distractor actions that leave the
         agent in place (they are never optimal, which is what affordances
         should learn to prune)
Reward: -1 per step
Terminal: the goal cell

Propositional functions: atGoal (the goal description) and goalNorth,
goalSouth, goalEast, goalWest (used as affordance preconditions).
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from ..affordances.delegate import AffordanceDelegate
from ..affordances.record import AffordanceRecord
from ..mdp.core import (
    Domain, FunctionAction, GroundedAction, PFAtom, PropositionalFunction, TransitionProbability
)

logger = logging.getLogger(__name__)

DIRECTIONS: Dict[str, Tuple[int, int]] = {
    'north': (0, 1),
    'south': (0, -1),
    'east': (1, 0),
    'west': (-1, 0),
}

OPPOSITE = {'north': 'south', 'south': 'north', 'east': 'west', 'west': 'east'}

# Precondition predicate name for each movement direction
DIRECTION_PRECONDITIONS = {
    'north': 'goalNorth',
    'south': 'goalSouth',
    'east': 'goalEast',
    'west': 'goalWest',
}

DEFAULT_DISTRACTORS = ('noop', 'search')


@dataclass(frozen=True)
class GridState:
    """Agent position"""
    x: int
    y: int


@dataclass
class GridWorld:
    """A grid world instance: domain plus reward, terminal function and start state"""
    domain: Domain
    width: int
    height: int
    goal_cell: Tuple[int, int]
    initial_state: GridState
    goal: PFAtom
    slip_probability: float = 0.0
    walls: FrozenSet[Tuple[int, int]] = field(default_factory=frozenset)
    distractors: Tuple[str, ...] = DEFAULT_DISTRACTORS

    def reward_function(self, state: GridState, action: GroundedAction, next_state: GridState) -> float:
        return -1.0

    def terminal_function(self, state: GridState) -> bool:
        return (state.x, state.y) == self.goal_cell

    def all_states(self) -> List[GridState]:
        return [GridState(x, y) for x in range(self.width) for y in range(self.height)
                if (x, y) not in self.walls]

    def all_actions(self) -> List[GroundedAction]:
        return [GroundedAction(action) for action in self.domain.actions.values()]


def make_grid_world(width: int = 5, height: int = 5, goal: Optional[Tuple[int, int]] = None,
                    start: Tuple[int, int] = (0, 0), slip_probability: float = 0.0,
                    walls: Optional[Iterable[Tuple[int, int]]] = None,
                    distractors: Sequence[str] = DEFAULT_DISTRACTORS) -> GridWorld:
    """
    Build a grid world.

    Args:
        width, height: grid size
        goal: goal cell (defaults to the top-right corner)
        start: initial agent cell
        slip_probability: probability mass spread evenly over the three
            unintended directions of a movement action
        walls: blocked cells
        distractors: names of self-loop actions
    """
    if width < 1 or height < 1:
        raise ValueError(f"Grid dimensions must be positive, got {width}x{height}")
    if not 0.0 <= slip_probability < 1.0:
        raise ValueError(f"slip_probability must be in [0, 1), got {slip_probability}")

    goal = goal if goal is not None else (width - 1, height - 1)
    walls = frozenset(walls or ())
    for name, cell in (('goal', goal), ('start', start)):
        if not (0 <= cell[0] < width and 0 <= cell[1] < height) or cell in walls:
            raise ValueError(f"Invalid {name} cell {cell}")

    def move(state: GridState, direction: str) -> GridState:
        dx, dy = DIRECTIONS[direction]
        x, y = state.x + dx, state.y + dy
        if not (0 <= x < width and 0 <= y < height) or (x, y) in walls:
            return state
        return GridState(x, y)

    def movement_transitions(direction: str):
        def transitions(state: GridState, parameters) -> List[TransitionProbability]:
            if slip_probability == 0.0:
                return [TransitionProbability(move(state, direction), 1.0)]

            outcomes: Dict[GridState, float] = {}
            slip = slip_probability / (len(DIRECTIONS) - 1)
            for other in DIRECTIONS:
                p = 1.0 - slip_probability if other == direction else slip
                successor = move(state, other)
                outcomes[successor] = outcomes.get(successor, 0.0) + p
            return [TransitionProbability(s, p) for s, p in outcomes.items()]
        return transitions

    def stay(state: GridState, parameters) -> List[TransitionProbability]:
        return [TransitionProbability(state, 1.0)]

    domain = Domain("grid_world")
    for direction in DIRECTIONS:
        domain.add_action(FunctionAction(direction, movement_transitions(direction)))
    for name in distractors:
        domain.add_action(FunctionAction(name, stay))

    gx, gy = goal
    predicates = {
        'atGoal': lambda s, p: (s.x, s.y) == (gx, gy),
        'goalNorth': lambda s, p: gy > s.y,
        'goalSouth': lambda s, p: gy < s.y,
        'goalEast': lambda s, p: gx > s.x,
        'goalWest': lambda s, p: gx < s.x,
    }
    for name, predicate in predicates.items():
        domain.add_propositional_function(PropositionalFunction(name, predicate))

    world = GridWorld(
        domain=domain,
        width=width,
        height=height,
        goal_cell=goal,
        initial_state=GridState(*start),
        goal=PFAtom(domain.get_propositional_function('atGoal')),
        slip_probability=slip_probability,
        walls=walls,
        distractors=tuple(distractors)
    )

    logger.info(f"Created {width}x{height} grid world, goal={goal}, slip={slip_probability}, "
                f"{len(walls)} walls, {len(domain.actions)} actions")
    return world


def make_directional_affordances(world: GridWorld, relevant: int = 95, cross: int = 45,
                                 total: int = 100) -> List[AffordanceDelegate]:
    """
    Hand-authored affordances "goal lies <direction>" for the grid world.

    Every delegate shares one total-optimal table: each movement action was
    optimal `total` times and distractors never were. Moving towards the goal
    direction was optimal with the affordance active `relevant` times, the two
    perpendicular moves `cross` times, the opposite move never.
    """
    actions = world.all_actions()
    shared_totals = {a.key: (total if a.name in DIRECTIONS else 0) for a in actions}

    delegates = []
    for direction, precondition_name in DIRECTION_PRECONDITIONS.items():
        active_counts = {}
        for action in actions:
            if action.name == direction:
                active_counts[action.key] = relevant
            elif action.name in DIRECTIONS and action.name != OPPOSITE[direction]:
                active_counts[action.key] = cross
            else:
                active_counts[action.key] = 0

        precondition = PFAtom(world.domain.get_propositional_function(precondition_name))
        record = AffordanceRecord.from_counts(precondition, world.goal, actions, active_counts, shared_totals)
        delegates.append(AffordanceDelegate(record))

    return delegates
