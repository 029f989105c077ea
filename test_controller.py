#!/usr/bin/env python3
"""Test the affordance pruning controller's posterior and selection policies"""

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '.'))

import numpy as np
import pytest

from affplan.affordances import (
    AffordanceDelegate, AffordancePruningController, AffordanceRecord, PriorStrategy,
    PruningConfig, SelectionPolicy
)
from affplan.environments.grid_world import GridState, make_directional_affordances, make_grid_world
from affplan.mdp.core import (
    ActionKey, Domain, FunctionAction, GroundedAction, PFAtom, PropositionalFunction, TransitionProbability
)
from affplan.utils import make_rng


def stay(state, parameters):
    return [TransitionProbability(state, 1.0)]


class FixedDraws:
    """Random source whose uniform draws are all the same value"""

    def __init__(self, value):
        self.value = value

    def random(self, size):
        return np.full(size, self.value)


def make_domain(action_names=("A", "B")):
    domain = Domain("test")
    for name in action_names:
        domain.add_action(FunctionAction(name, stay))
    domain.add_propositional_function(PropositionalFunction("lit", lambda s, p: s == "on"))
    domain.add_propositional_function(PropositionalFunction("done", lambda s, p: False))
    domain.add_propositional_function(PropositionalFunction("other", lambda s, p: False))
    return domain


def make_delegate(domain, active, total):
    """Delegate over the domain's actions with counts given as name -> count"""
    actions = [GroundedAction(domain.get_action(name)) for name in active]
    record = AffordanceRecord.from_counts(
        PFAtom(domain.get_propositional_function("lit")),
        PFAtom(domain.get_propositional_function("done")),
        actions,
        {ActionKey(name): count for name, count in active.items()},
        {ActionKey(name): count for name, count in total.items()}
    )
    return AffordanceDelegate(record)


def make_controller(domain, delegates, policy=SelectionPolicy.THRESHOLD, rng=None, **config):
    controller = AffordancePruningController(
        delegates, PruningConfig(selection_policy=policy, **config), rng=rng or make_rng(0))
    controller.set_current_goal(PFAtom(domain.get_propositional_function("done")))
    return controller


def names(actions):
    return [a.name for a in actions]


def test_two_action_scenario():
    """A: 9/10, B: 1/10, delegate active, uniform prior -> threshold keeps A only"""
    domain = make_domain()
    delegate = make_delegate(domain, {"A": 9, "B": 1}, {"A": 10, "B": 10})
    controller = make_controller(domain, [delegate])

    assert delegate.is_active("on")
    assert delegate.probability_action_relevant(ActionKey("A")) == pytest.approx(0.9)
    assert delegate.probability_action_relevant(ActionKey("B")) == pytest.approx(0.1)
    assert controller.hard_threshold == pytest.approx(0.1)

    posterior = controller.compute_posterior("on")
    assert posterior[ActionKey("A")] == pytest.approx(0.9)
    assert posterior[ActionKey("B")] == pytest.approx(0.1)
    assert posterior[ActionKey("A")] > posterior[ActionKey("B")]

    assert names(controller.get_pruned_actions_for_state("on")) == ["A"]


def test_posterior_with_inactive_delegate():
    """Inactive delegate complements the likelihoods"""
    domain = make_domain()
    delegate = make_delegate(domain, {"A": 9, "B": 1}, {"A": 10, "B": 10})
    controller = make_controller(domain, [delegate])

    posterior = controller.compute_posterior("off")
    # positive(A) = 0.1, negative(A) = 1 - 1/10 = 0.9
    assert posterior[ActionKey("A")] == pytest.approx(0.1)
    assert posterior[ActionKey("B")] == pytest.approx(0.9)
    assert names(controller.get_pruned_actions_for_state("off")) == ["B"]


def test_zero_delegates_rejected():
    with pytest.raises(ValueError):
        AffordancePruningController([])


def test_delegate_with_no_actions_rejected():
    domain = make_domain()
    record = AffordanceRecord(PFAtom(domain.get_propositional_function("lit")),
                              PFAtom(domain.get_propositional_function("done")), [])
    with pytest.raises(ValueError):
        AffordancePruningController([AffordanceDelegate(record)])


def test_unregistering_every_delegate_degrades_to_full_set():
    domain = make_domain()
    delegate = make_delegate(domain, {"A": 9, "B": 1}, {"A": 10, "B": 10})
    controller = make_controller(domain, [delegate])

    controller.unregister_delegate(delegate)

    assert controller.delegates == []
    assert names(controller.get_pruned_actions_for_state("on")) == ["A", "B"]


def test_register_is_idempotent_and_extends_union():
    domain = make_domain(("A", "B", "C"))
    first = make_delegate(domain, {"A": 9, "B": 1}, {"A": 10, "B": 10})
    controller = make_controller(domain, [first])
    revision = controller.revision

    controller.register_delegate(first)
    assert len(controller.delegates) == 1
    assert controller.revision == revision

    second = make_delegate(domain, {"A": 1, "B": 1, "C": 2}, {"A": 10, "B": 10, "C": 5})
    controller.register_delegate(second)

    assert len(controller.delegates) == 2
    assert names(controller.all_actions) == ["A", "B", "C"]
    assert controller.hard_threshold == pytest.approx(0.2 / 3)
    assert second.goal_active


def test_goal_change_bumps_revision():
    domain = make_domain()
    controller = make_controller(domain, [make_delegate(domain, {"A": 9, "B": 1}, {"A": 10, "B": 10})])
    revision = controller.revision

    controller.set_current_goal(PFAtom(domain.get_propositional_function("done")))
    assert controller.revision == revision

    controller.set_current_goal(PFAtom(domain.get_propositional_function("other")))
    assert controller.revision == revision + 1
    assert not controller.delegates[0].goal_active


def test_empty_selection_falls_back_to_full_set():
    domain = make_domain()
    delegate = make_delegate(domain, {"A": 9, "B": 1}, {"A": 10, "B": 10})

    strict = make_controller(domain, [delegate], threshold_numerator=10.0)
    assert names(strict.get_pruned_actions_for_state("on")) == ["A", "B"]

    unlucky = make_controller(domain, [delegate], policy=SelectionPolicy.SAMPLE, rng=FixedDraws(0.999))
    assert names(unlucky.get_pruned_actions_for_state("on")) == ["A", "B"]


def test_sample_policy_compares_posterior_with_draws():
    domain = make_domain()
    delegate = make_delegate(domain, {"A": 9, "B": 1}, {"A": 10, "B": 10})

    controller = make_controller(domain, [delegate], policy=SelectionPolicy.SAMPLE, rng=FixedDraws(0.5))
    assert names(controller.get_pruned_actions_for_state("on")) == ["A"]

    controller = make_controller(domain, [delegate], policy=SelectionPolicy.SAMPLE, rng=FixedDraws(0.05))
    assert names(controller.get_pruned_actions_for_state("on")) == ["A", "B"]


def test_sample_policy_reproducible_with_seed():
    world = make_grid_world(6, 6)
    states = world.all_states()

    def run(seed):
        controller = AffordancePruningController(
            make_directional_affordances(world), PruningConfig(selection_policy=SelectionPolicy.SAMPLE),
            rng=make_rng(seed))
        controller.set_current_goal(world.goal)
        return [names(controller.get_pruned_actions_for_state(s)) for s in states]

    assert run(3) == run(3)


def test_seed_in_config_seeds_default_rng():
    domain = make_domain()
    delegate = make_delegate(domain, {"A": 5, "B": 5}, {"A": 10, "B": 10})

    def run():
        controller = AffordancePruningController(
            [delegate], PruningConfig(selection_policy=SelectionPolicy.SAMPLE, seed=11))
        controller.set_current_goal(PFAtom(domain.get_propositional_function("done")))
        return [names(controller.get_pruned_actions_for_state("on")) for _ in range(20)]

    assert run() == run()


@pytest.mark.parametrize("policy", list(SelectionPolicy))
def test_pruned_set_never_empty(policy):
    world = make_grid_world(6, 6, goal=(3, 2))
    controller = AffordancePruningController(
        make_directional_affordances(world), PruningConfig(selection_policy=policy), rng=make_rng(1))
    controller.set_current_goal(world.goal)

    for state in world.all_states():
        for _ in range(3):
            assert len(controller.get_pruned_actions_for_state(state)) > 0


def test_threshold_results_exceed_hard_threshold_and_expert_superset():
    world = make_grid_world(6, 6, goal=(3, 2))
    delegates = make_directional_affordances(world)
    threshold = AffordancePruningController(delegates, PruningConfig(selection_policy=SelectionPolicy.THRESHOLD))
    expert = AffordancePruningController(delegates, PruningConfig(selection_policy=SelectionPolicy.EXPERT_UNION))
    for controller in (threshold, expert):
        controller.set_current_goal(world.goal)

    for state in world.all_states():
        posterior = threshold.compute_posterior(state)
        kept = threshold.get_pruned_actions_for_state(state)
        if len(kept) < len(threshold.all_actions):
            assert all(posterior[a.key] > threshold.hard_threshold for a in kept)
            assert set(kept) <= set(expert.get_pruned_actions_for_state(state))


def test_grid_world_threshold_pruning_keeps_goal_directions():
    world = make_grid_world(5, 5, goal=(4, 4))
    controller = AffordancePruningController(
        make_directional_affordances(world), PruningConfig(selection_policy=SelectionPolicy.THRESHOLD))
    controller.set_current_goal(world.goal)

    assert names(controller.get_pruned_actions_for_state(GridState(0, 0))) == ["north", "east"]
    assert names(controller.get_pruned_actions_for_state(GridState(4, 0))) == ["north", "east", "west"]


def test_posterior_is_finite_with_zero_counts():
    """Zero totals must not turn into NaN or infinity"""
    domain = make_domain(("A", "B", "C"))
    delegate = make_delegate(domain, {"A": 4, "B": 0, "C": 0}, {"A": 5, "B": 5, "C": 0})
    controller = make_controller(domain, [delegate], policy=SelectionPolicy.EXPERT_UNION)

    for state in ("on", "off"):
        posterior = controller.compute_posterior(state)
        assert all(np.isfinite(p) for p in posterior.values())
        assert posterior[ActionKey("C")] == 0.0


def test_no_evidence_delegate_is_neutral():
    """A delegate whose counts are all zero leaves the posterior unchanged"""
    domain = make_domain()
    informed = make_delegate(domain, {"A": 9, "B": 1}, {"A": 10, "B": 10})
    empty = make_delegate(domain, {"A": 0, "B": 0}, {"A": 0, "B": 0})

    alone = make_controller(domain, [informed]).compute_posterior("on")
    combined = make_controller(domain, [informed, empty]).compute_posterior("on")

    for key in alone:
        assert combined[key] == pytest.approx(alone[key])


def test_all_zero_counts_use_uniform_prior():
    domain = make_domain()
    empty = make_delegate(domain, {"A": 0, "B": 0}, {"A": 0, "B": 0})
    controller = make_controller(domain, [empty])

    posterior = controller.compute_posterior("on")
    assert posterior == {ActionKey("A"): pytest.approx(0.5), ActionKey("B"): pytest.approx(0.5)}


def test_prior_strategies_differ_when_totals_differ():
    """The designated prior reads one delegate's totals; aggregate pools every delegate"""
    domain = make_domain()
    first = make_delegate(domain, {"A": 9, "B": 1}, {"A": 10, "B": 10})
    second = make_delegate(domain, {"A": 1, "B": 1}, {"A": 30, "B": 2})

    designated = make_controller(domain, [first, second], prior_strategy=PriorStrategy.DESIGNATED)
    aggregate = make_controller(domain, [first, second], prior_strategy=PriorStrategy.AGGREGATE)
    second_designated = make_controller(domain, [first, second], designated_prior_index=1)

    assert not designated.shared_totals_consistent()

    d = designated.compute_posterior("on")[ActionKey("A")]
    a = aggregate.compute_posterior("on")[ActionKey("A")]
    s = second_designated.compute_posterior("on")[ActionKey("A")]
    assert d != pytest.approx(a)
    assert d != pytest.approx(s)


@pytest.mark.parametrize("policy", [SelectionPolicy.EXPERT_UNION, SelectionPolicy.THRESHOLD])
def test_action_unknown_to_designated_delegate_can_be_selected(policy):
    """The designated prior falls back to the aggregate totals for actions it does not know"""
    domain = make_domain(("A", "B", "C"))
    first = make_delegate(domain, {"A": 5, "B": 5}, {"A": 10, "B": 10})
    second = make_delegate(domain, {"A": 1, "B": 1, "C": 99}, {"A": 10, "B": 10, "C": 100})
    controller = make_controller(domain, [first, second], policy=policy)

    posterior = controller.compute_posterior("on")

    # aggregate prior for C is 100 / 140
    assert posterior[ActionKey("C")] > 0.9
    assert "C" in names(controller.get_pruned_actions_for_state("on"))


def test_prior_strategies_agree_on_shared_totals():
    domain = make_domain()
    first = make_delegate(domain, {"A": 9, "B": 1}, {"A": 10, "B": 30})
    second = make_delegate(domain, {"A": 2, "B": 6}, {"A": 10, "B": 30})

    designated = make_controller(domain, [first, second], prior_strategy=PriorStrategy.DESIGNATED)
    aggregate = make_controller(domain, [first, second], prior_strategy=PriorStrategy.AGGREGATE)

    assert designated.shared_totals_consistent()
    for state in ("on", "off"):
        d = designated.compute_posterior(state)
        a = aggregate.compute_posterior(state)
        for key in d:
            assert d[key] == pytest.approx(a[key])


def test_config_accepts_strings():
    config = PruningConfig(selection_policy="expert_union", prior_strategy="aggregate")
    assert config.selection_policy is SelectionPolicy.EXPERT_UNION
    assert config.prior_strategy is PriorStrategy.AGGREGATE

    with pytest.raises(ValueError):
        PruningConfig(selection_policy="greedy")
    with pytest.raises(ValueError):
        PruningConfig(threshold_numerator=-1.0)
