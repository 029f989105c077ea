#!/usr/bin/env python3
"""
AffPlan Planner Benchmark

Compares the planners with and without affordance pruning on a grid world:
1. Full action set (baseline)
2. Threshold pruning
3. Expert-union pruning
4. Sampled pruning

Measures Bellman backups, wall time and the value found for the initial state.
"""

import os
import time
import logging
import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .affordances.controller import AffordancePruningController, PruningConfig, SelectionPolicy
from .affordances.delegate import AffordanceDelegate
from .environments.grid_world import GridWorld
from .mdp.value_function import ActionSetProvider
from .planning.bounded_rtdp import BoundedRTDP, BoundedRTDPConfig
from .planning.rtdp import RTDP, RTDPConfig
from .planning.value_iteration import ReachabilityValueIteration, ValueIterationConfig
from .utils import make_rng

logger = logging.getLogger(__name__)

PLANNERS = ('vi', 'rtdp', 'brtdp')
BASELINE = 'none'


@dataclass
class ExperimentConfig:
    """Configuration for a planning experiment"""
    experiment_name: str = 'grid_world_affordances'

    # Environment
    width: int = 8
    height: int = 8
    slip_probability: float = 0.1

    # Planners and pruning
    planners: List[str] = field(default_factory=lambda: list(PLANNERS))
    policies: List[str] = field(default_factory=lambda: [BASELINE] + [p.value for p in SelectionPolicy])
    knowledge_base: Optional[str] = None
    expert: bool = False
    threshold_numerator: float = 0.2
    prior_strategy: str = 'designated'

    # Planner parameters
    gamma: float = 0.99
    max_delta: float = 1e-3
    max_iterations: int = 1000
    num_rollouts: int = 500
    max_depth: int = 100
    min_rollouts_for_convergence: int = 5

    # System
    repeats: int = 1
    seed: int = 42
    output_dir: str = 'benchmark_results'

    def __post_init__(self):
        for planner in self.planners:
            if planner not in PLANNERS:
                raise ValueError(f"Unknown planner: {planner}")
        valid_policies = {BASELINE} | {p.value for p in SelectionPolicy}
        for policy in self.policies:
            if policy not in valid_policies:
                raise ValueError(f"Unknown pruning policy: {policy}")


class PlannerBenchmark:
    """Runs planners on one grid world under different action-set providers"""

    def __init__(self, world: GridWorld, delegates: List[AffordanceDelegate], config: ExperimentConfig):
        self.world = world
        self.delegates = delegates
        self.config = config
        self.results: List[Dict[str, Any]] = []

        os.makedirs(config.output_dir, exist_ok=True)

    def make_provider(self, policy: str, rng: np.random.Generator) -> Optional[ActionSetProvider]:
        if policy == BASELINE:
            return None

        pruning_config = PruningConfig(
            selection_policy=SelectionPolicy(policy),
            threshold_numerator=self.config.threshold_numerator,
            prior_strategy=self.config.prior_strategy
        )
        controller = AffordancePruningController(self.delegates, config=pruning_config, rng=rng)
        controller.set_current_goal(self.world.goal)
        return controller

    def make_planner(self, planner: str, provider: Optional[ActionSetProvider], rng: np.random.Generator):
        world, cfg = self.world, self.config
        common = dict(action_provider=provider, rng=rng)

        if planner == 'vi':
            vi_config = ValueIterationConfig(gamma=cfg.gamma, max_delta=cfg.max_delta,
                                             max_iterations=cfg.max_iterations)
            return ReachabilityValueIteration(world.domain, world.reward_function, world.terminal_function,
                                              config=vi_config, **common)
        if planner == 'rtdp':
            rtdp_config = RTDPConfig(gamma=cfg.gamma, num_rollouts=cfg.num_rollouts, max_delta=cfg.max_delta,
                                     max_depth=cfg.max_depth,
                                     min_rollouts_for_convergence=cfg.min_rollouts_for_convergence)
            return RTDP(world.domain, world.reward_function, world.terminal_function, config=rtdp_config, **common)

        lower = -1.0 / (1.0 - cfg.gamma) if cfg.gamma < 1.0 else -float(cfg.max_depth)
        brtdp_config = BoundedRTDPConfig(gamma=cfg.gamma, lower_value_init=lower, upper_value_init=0.0,
                                         max_diff=cfg.max_delta, max_rollouts=cfg.num_rollouts,
                                         max_depth=cfg.max_depth)
        return BoundedRTDP(world.domain, world.reward_function, world.terminal_function,
                           config=brtdp_config, **common)

    def run_planner(self, planner: str, policy: str, seed: int) -> Dict[str, Any]:
        """Plan once and collect metrics"""
        logger.info(f"Running {planner} with pruning={policy}, seed={seed}")

        rng = make_rng(seed)
        provider = self.make_provider(policy, rng)
        instance = self.make_planner(planner, provider, rng)

        start_time = time.time()
        backups = instance.plan_from_state(self.world.initial_state)
        wall_time = time.time() - start_time

        metrics = {
            'planner': planner,
            'pruning': policy,
            'seed': seed,
            'backups': backups,
            'wall_time': wall_time,
            'initial_value': instance.value(self.world.initial_state),
        }
        if isinstance(instance, ReachabilityValueIteration):
            metrics['states'] = len(instance.states)
            metrics['passes'] = instance.passes
        return metrics

    def run_comparison(self) -> pd.DataFrame:
        """Run every configured planner/pruning combination"""
        for repeat in range(self.config.repeats):
            seed = self.config.seed + repeat
            for planner in self.config.planners:
                for policy in self.config.policies:
                    result = self.run_planner(planner, policy, seed)
                    result['repeat'] = repeat
                    self.results.append(result)

        return pd.DataFrame(self.results)

    @staticmethod
    def summarize(df: pd.DataFrame) -> pd.DataFrame:
        """Average metrics per planner and pruning policy"""
        return df.groupby(['planner', 'pruning'])[['backups', 'wall_time', 'initial_value']].mean().reset_index()

    def save_results(self, df: pd.DataFrame) -> str:
        path = os.path.join(self.config.output_dir, f"{self.config.experiment_name}_results.csv")
        df.to_csv(path, index=False)
        logger.info(f"Benchmark results saved to {path}")
        return path

    def plot(self, df: pd.DataFrame, save_path: str):
        """Bar chart of mean backups per planner and pruning policy"""
        summary = self.summarize(df)
        pivot = summary.pivot(index='planner', columns='pruning', values='backups')

        fig, ax = plt.subplots(figsize=(10, 6))
        pivot.plot(kind='bar', ax=ax)
        ax.set_xlabel('Planner')
        ax.set_ylabel('Bellman backups')
        ax.set_title('Bellman Backups with and without Affordance Pruning')
        plt.tight_layout()
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)

        logger.info(f"Benchmark plot saved to {save_path}")
