#!/usr/bin/env python3
"""
Affordance Delegate

Wraps an AffordanceRecord with goal gating and state-conditioned activation,
and owns the persisted text form of a single affordance:

    <preconditionName>,<goalName>
    <actionName>,<activeOptimalCount>,<totalOptimalCount>
    ...
    ===

A legacy `---` line may separate the action counts from a section of
action-set sizes; that section is skipped.

Authors: AffPlan Research Team
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from ..mdp.core import Action, Domain, GroundedAction, PFAtom, make_free_variables
from .record import ActionLike, AffordanceRecord

logger = logging.getLogger(__name__)

RECORD_SENTINEL = "==="
SECTION_SEPARATOR = "---"

# Hand-authored expert affordances carry no trustworthy visitation totals, so
# every action gets this total-optimal count when a delegate is loaded in
# expert mode.
DEFAULT_EXPERT_TOTAL_COUNT = 900


class AffordanceLoadError(ValueError):
    """Raised when a persisted affordance cannot be parsed or resolved"""
    pass


class AffordanceDelegate:
    """Goal-gated, state-conditioned view of one affordance record"""

    def __init__(self, record: AffordanceRecord, expert: bool = False):
        self.record = record
        self.expert = expert
        self.goal_active = False

    def set_current_goal(self, goal: Any):
        self.goal_active = goal == self.record.goal

    def is_active(self, state: Any) -> bool:
        """True iff the goal matches and the precondition holds in state"""
        return self.goal_active and bool(self.record.precondition.evaluate(state))

    def probability_action_relevant(self, action: ActionLike) -> float:
        return self.record.relevance_probability(action)

    @property
    def active_optimal_counts(self) -> Dict:
        return self.record.active_optimal_counts

    @property
    def total_optimal_counts(self) -> Dict:
        return self.record.total_optimal_counts

    @classmethod
    def load(cls, domain: Domain, extended_actions: Optional[Mapping[str, Action]], text: str,
             expert: bool = False,
             expert_total_count: int = DEFAULT_EXPERT_TOTAL_COUNT) -> "AffordanceDelegate":
        """
        Parse a single persisted affordance.

        Args:
            domain: domain resolving primitive actions and propositional functions
            extended_actions: name -> action map for temporally extended actions
                (options, macro-actions) the domain does not know about
            text: the record text, terminated by the `===` sentinel
            expert: load as an expert affordance (totals overridden)
            expert_total_count: total-optimal count used in expert mode
        """
        extended_actions = extended_actions or {}
        precondition = None
        goal = None
        actions: List[GroundedAction] = []
        active_counts = {}
        total_counts = {}
        reading_counts = True
        terminated = False

        for line_number, raw_line in enumerate(text.splitlines(), start=1):
            line = raw_line.strip()
            if not line:
                continue

            if line == RECORD_SENTINEL:
                terminated = True
                break

            if line == SECTION_SEPARATOR:
                reading_counts = False
                continue

            if precondition is None:
                precondition, goal = cls._parse_header(domain, line, line_number)
                continue

            if not reading_counts:
                continue

            action, active, total = cls._parse_count_line(
                domain, extended_actions, line, line_number, expert, expert_total_count)
            if action.key in active_counts:
                raise AffordanceLoadError(f"Line {line_number}: duplicate action '{action.name}'")

            actions.append(action)
            active_counts[action.key] = active
            total_counts[action.key] = total

        if precondition is None:
            raise AffordanceLoadError("Affordance record has no header line")
        if not terminated:
            raise AffordanceLoadError(f"Affordance record '{precondition},{goal}' is missing the "
                                      f"'{RECORD_SENTINEL}' terminator")
        if not actions:
            raise AffordanceLoadError(f"Affordance record '{precondition},{goal}' has no action counts")

        try:
            record = AffordanceRecord.from_counts(precondition, goal, actions, active_counts, total_counts)
        except ValueError as e:
            raise AffordanceLoadError(f"Affordance record '{precondition},{goal}': {e}") from e

        return cls(record, expert=expert)

    @staticmethod
    def _parse_header(domain: Domain, line: str, line_number: int):
        fields = [f.strip() for f in line.split(",")]
        if len(fields) != 2 or not all(fields):
            raise AffordanceLoadError(f"Line {line_number}: malformed header '{line}', "
                                      f"expected '<precondition>,<goal>'")

        atoms = []
        for name in fields:
            function = domain.get_propositional_function(name)
            if function is None:
                raise AffordanceLoadError(f"Line {line_number}: unknown propositional function '{name}'")
            atoms.append(PFAtom(function, make_free_variables(function.parameter_classes)))

        return atoms[0], atoms[1]

    @staticmethod
    def _parse_count_line(domain: Domain, extended_actions: Mapping[str, Action], line: str,
                          line_number: int, expert: bool, expert_total_count: int):
        fields = [f.strip() for f in line.split(",")]
        expected = (2, 3) if expert else (3,)
        if len(fields) not in expected:
            raise AffordanceLoadError(f"Line {line_number}: malformed action line '{line}', "
                                      f"expected '<action>,<activeCount>,<totalCount>'")

        name = fields[0]
        action = domain.get_action(name)
        if action is None:
            action = extended_actions.get(name)
        if action is None:
            raise AffordanceLoadError(f"Line {line_number}: unknown action '{name}'")

        try:
            active = int(fields[1])
            total = expert_total_count if expert else int(fields[2])
        except ValueError as e:
            raise AffordanceLoadError(f"Line {line_number}: non-integer count in '{line}'") from e

        grounded = GroundedAction(action, make_free_variables(action.parameter_classes))
        return grounded, active, total

    def to_text(self) -> str:
        """Serialize to the persisted record format"""
        record = self.record
        lines = [f"{record.precondition},{record.goal}"]
        for key, action in record.actions.items():
            lines.append(f"{action.name},{record.active_optimal_counts[key]},{record.total_optimal_counts[key]}")
        lines.append(RECORD_SENTINEL)
        return "\n".join(lines) + "\n"

    def __str__(self) -> str:
        return f"[{self.record.precondition},{self.record.goal}]"

    def __repr__(self) -> str:
        return f"AffordanceDelegate({self.record.precondition}, {self.record.goal}, expert={self.expert})"
