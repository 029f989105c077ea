#!/usr/bin/env python3
"""Test affordance records, delegates, persistence and knowledge bases"""

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '.'))

import pytest

from affplan.affordances import (
    AffordanceDelegate, AffordanceLoadError, AffordanceRecord, KnowledgeBase,
    UndefinedProbabilityError, DEFAULT_EXPERT_TOTAL_COUNT, split_records
)
from affplan.environments.grid_world import make_grid_world
from affplan.mdp.core import (
    ActionKey, Domain, FunctionAction, GroundedAction, PFAtom, PropositionalFunction, TransitionProbability
)


def stay(state, parameters):
    return [TransitionProbability(state, 1.0)]


def make_domain():
    """Two-action domain with a precondition 'lit' (state == 'on') and a goal 'done'"""
    domain = Domain("test")
    domain.add_action(FunctionAction("A", stay))
    domain.add_action(FunctionAction("B", stay))
    domain.add_propositional_function(PropositionalFunction("lit", lambda s, p: s == "on"))
    domain.add_propositional_function(PropositionalFunction("done", lambda s, p: False))
    domain.add_propositional_function(PropositionalFunction("other", lambda s, p: False))
    return domain


def make_record(domain, active=(9, 1), total=(10, 10)):
    actions = [GroundedAction(domain.get_action("A")), GroundedAction(domain.get_action("B"))]
    precondition = PFAtom(domain.get_propositional_function("lit"))
    goal = PFAtom(domain.get_propositional_function("done"))
    return AffordanceRecord.from_counts(
        precondition, goal, actions,
        {a.key: c for a, c in zip(actions, active)},
        {a.key: c for a, c in zip(actions, total)}
    )


RECORD_TEXT = """lit,done
A,9,10
B,1,10
===
"""


def test_action_key_canonical_form():
    """Keys compare by value; mapping bindings are sorted by parameter name"""
    assert ActionKey.of("move", ["b1", "t1"]) == ActionKey("move", ("b1", "t1"))
    assert ActionKey.of("move", {"to": "t1", "block": "b1"}) == ActionKey("move", ("b1", "t1"))
    assert ActionKey.of("move", ["t1", "b1"]) != ActionKey.of("move", ["b1", "t1"])

    domain = make_domain()
    first = GroundedAction(domain.get_action("A"))
    second = GroundedAction(domain.get_action("A"))
    assert first is not second
    assert first == second
    assert len({first.key: 1, second.key: 2}) == 1


def test_relevance_probability_is_mle():
    """relevance_probability == active / total without smoothing"""
    domain = make_domain()
    record = make_record(domain, active=(9, 1), total=(10, 10))

    assert record.relevance_probability(ActionKey("A")) == pytest.approx(0.9)
    assert record.relevance_probability(ActionKey("B")) == pytest.approx(0.1)
    assert record.num_activations == 10

    record = make_record(domain, active=(3, 0), total=(7, 4))
    assert record.relevance_probability(ActionKey("A")) == 3 / 7
    assert record.relevance_probability(ActionKey("B")) == 0.0


def test_relevance_probability_zero_total_raises():
    domain = make_domain()
    record = make_record(domain, active=(0, 0), total=(0, 5))

    with pytest.raises(UndefinedProbabilityError):
        record.relevance_probability(ActionKey("A"))
    with pytest.raises(ZeroDivisionError):
        record.relevance_probability(ActionKey("A"))


def test_fresh_record_counts_start_at_zero_and_increment():
    domain = make_domain()
    actions = [GroundedAction(domain.get_action("A")), GroundedAction(domain.get_action("B"))]
    record = AffordanceRecord(PFAtom(domain.get_propositional_function("lit")),
                              PFAtom(domain.get_propositional_function("done")), actions)

    assert record.active_optimal_counts == {ActionKey("A"): 0, ActionKey("B"): 0}
    assert set(record.active_optimal_counts) == set(record.total_optimal_counts)

    record.record_optimal(actions[0], active=True)
    record.record_optimal(actions[0], active=False)
    record.increment_total_optimal(actions[1])

    assert record.active_optimal_counts[ActionKey("A")] == 1
    assert record.total_optimal_counts[ActionKey("A")] == 2
    assert record.total_optimal_counts[ActionKey("B")] == 1
    assert record.relevance_probability(actions[0]) == 0.5


def test_from_counts_validates_invariants():
    domain = make_domain()
    with pytest.raises(ValueError):
        make_record(domain, active=(11, 1), total=(10, 10))
    with pytest.raises(ValueError):
        make_record(domain, active=(-1, 1), total=(10, 10))

    actions = [GroundedAction(domain.get_action("A")), GroundedAction(domain.get_action("B"))]
    with pytest.raises(ValueError):
        AffordanceRecord.from_counts(None, None, actions, {ActionKey("A"): 1}, {ActionKey("A"): 1})


def test_delegate_goal_gating():
    """A delegate is active only when its goal matches and the precondition holds"""
    domain = make_domain()
    delegate = AffordanceDelegate(make_record(domain))

    assert not delegate.is_active("on")

    delegate.set_current_goal(PFAtom(domain.get_propositional_function("done")))
    assert delegate.goal_active
    assert delegate.is_active("on")
    assert not delegate.is_active("off")

    delegate.set_current_goal(PFAtom(domain.get_propositional_function("other")))
    assert not delegate.goal_active
    assert not delegate.is_active("on")


def test_delegate_skips_precondition_when_goal_inactive():
    def explode(state, parameters):
        raise AssertionError("precondition evaluated for an inactive goal")

    domain = make_domain()
    domain.add_propositional_function(PropositionalFunction("fragile", explode))
    record = make_record(domain)
    record.precondition = PFAtom(domain.get_propositional_function("fragile"))

    delegate = AffordanceDelegate(record)
    delegate.set_current_goal(PFAtom(domain.get_propositional_function("other")))
    assert delegate.is_active("on") is False


def test_load_parses_header_and_counts():
    domain = make_domain()
    delegate = AffordanceDelegate.load(domain, {}, RECORD_TEXT, expert=False)

    assert str(delegate.record.precondition) == "lit"
    assert delegate.record.goal == PFAtom(domain.get_propositional_function("done"))
    assert delegate.active_optimal_counts == {ActionKey("A"): 9, ActionKey("B"): 1}
    assert delegate.total_optimal_counts == {ActionKey("A"): 10, ActionKey("B"): 10}
    assert delegate.probability_action_relevant(ActionKey("A")) == pytest.approx(0.9)
    assert not delegate.expert


def test_load_skips_legacy_section_and_blank_lines():
    domain = make_domain()
    text = "\nlit,done\n\nA,2,4\nB,0,3\n---\n6\n2\n===\n"
    delegate = AffordanceDelegate.load(domain, None, text)

    assert delegate.active_optimal_counts == {ActionKey("A"): 2, ActionKey("B"): 0}
    assert delegate.total_optimal_counts == {ActionKey("A"): 4, ActionKey("B"): 3}


def test_load_resolves_extended_actions():
    """Names unknown to the domain are looked up in the temporally extended action map"""
    domain = make_domain()
    option = FunctionAction("goToDoor", stay, parameter_classes=["agent", "door"])
    text = "lit,done\nA,1,2\ngoToDoor,3,4\n===\n"

    delegate = AffordanceDelegate.load(domain, {"goToDoor": option}, text)

    key = ActionKey("goToDoor", ("?a", "?d"))
    assert delegate.active_optimal_counts[key] == 3
    assert delegate.record.actions[key].action is option


@pytest.mark.parametrize("text", [
    "lit,done\nC,1,2\n===\n",          # unknown action
    "lit\nA,1,2\n===\n",               # header with one field
    "lit,missing\nA,1,2\n===\n",       # unknown goal predicate
    "lit,done\nA,one,2\n===\n",        # non-integer count
    "lit,done\nA,1\n===\n",            # missing total
    "lit,done\nA,3,2\n===\n",          # active exceeds total
    "lit,done\nA,1,2\nA,1,2\n===\n",   # duplicate action
    "lit,done\nA,1,2\n",               # missing sentinel
    "lit,done\n===\n",                 # no actions
    "",                                # no header
])
def test_load_errors_are_fatal(text):
    with pytest.raises(AffordanceLoadError):
        AffordanceDelegate.load(make_domain(), {}, text)


def test_expert_load_overrides_total_counts():
    domain = make_domain()
    text = "lit,done\nA,5\nB,0,3\n===\n"
    delegate = AffordanceDelegate.load(domain, {}, text, expert=True)

    assert delegate.expert
    assert delegate.total_optimal_counts == {ActionKey("A"): DEFAULT_EXPERT_TOTAL_COUNT,
                                             ActionKey("B"): DEFAULT_EXPERT_TOTAL_COUNT}
    assert delegate.active_optimal_counts[ActionKey("A")] == 5

    custom = AffordanceDelegate.load(domain, {}, text, expert=True, expert_total_count=50)
    assert custom.total_optimal_counts[ActionKey("B")] == 50


@pytest.mark.parametrize("active,total", [
    ((0, 0), (0, 0)),
    ((9, 1), (10, 10)),
    ((1234, 7), (5000, 7)),
])
def test_round_trip_reproduces_counts(active, total):
    domain = make_domain()
    saved = AffordanceDelegate(make_record(domain, active=active, total=total))

    reloaded = AffordanceDelegate.load(domain, {}, saved.to_text())

    assert reloaded.active_optimal_counts == saved.active_optimal_counts
    assert reloaded.total_optimal_counts == saved.total_optimal_counts
    assert reloaded.record.precondition == saved.record.precondition
    assert reloaded.record.goal == saved.record.goal


def test_to_text_format():
    domain = make_domain()
    delegate = AffordanceDelegate(make_record(domain))
    assert delegate.to_text() == RECORD_TEXT
    assert str(delegate) == "[lit,done]"


def test_split_records():
    text = RECORD_TEXT + "\n" + RECORD_TEXT.replace("9", "4")
    records = list(split_records(text))
    assert len(records) == 2
    assert records[1].strip().endswith("===")


def test_knowledge_base_file_round_trip(tmp_path):
    world = make_grid_world(5, 5)
    kb_path = os.path.join(os.path.dirname(__file__), 'knowledge_bases', 'grid_world.kb')

    kb = KnowledgeBase.load(kb_path, world.domain)
    assert len(kb) == 4
    assert [str(d.record.precondition) for d in kb] == ['goalNorth', 'goalSouth', 'goalEast', 'goalWest']
    assert len(kb.make_controller().all_actions) == 6

    out_path = str(tmp_path / 'saved' / 'kb.txt')
    kb.save(out_path)
    reloaded = KnowledgeBase.load(out_path, world.domain)

    for before, after in zip(kb, reloaded):
        assert before.active_optimal_counts == after.active_optimal_counts
        assert before.total_optimal_counts == after.total_optimal_counts


def test_knowledge_base_bad_record_fails_whole_load(tmp_path):
    world = make_grid_world(5, 5)
    text = "goalNorth,atGoal\nnorth,1,2\n===\ngoalEast,atGoal\nteleport,1,2\n===\n"

    with pytest.raises(AffordanceLoadError):
        KnowledgeBase.from_text(text, world.domain)
    with pytest.raises(FileNotFoundError):
        KnowledgeBase.load(str(tmp_path / 'missing.kb'), world.domain)
