#!/usr/bin/env python3
"""
Main Planning Script for Affordance-Aware Planners

This script provides a command-line interface for running value iteration,
RTDP and bounded RTDP on a grid world with and without affordance pruning,
and for comparing the number of Bellman backups they need.

Usage:
    python plan_agent.py --planner vi rtdp --policy none threshold
    python plan_agent.py --config configs/grid_world.yaml
    python plan_agent.py --kb knowledge_bases/grid_world.kb --plot backups.png
"""

import argparse
import os
import sys
import logging

# Add project root to path
sys.path.append(os.path.dirname(__file__))

from affplan.affordances.knowledge_base import KnowledgeBase
from affplan.affordances.controller import SelectionPolicy
from affplan.benchmark import BASELINE, PLANNERS, ExperimentConfig, PlannerBenchmark
from affplan.environments.grid_world import make_directional_affordances, make_grid_world
from affplan.utils import load_experiment_config, save_experiment_config, set_global_seeds, setup_logging

logger = logging.getLogger(__name__)


def parse_arguments():
    """Parse command line arguments"""

    parser = argparse.ArgumentParser(
        description="Plan in a grid world with affordance-pruned action sets",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument('--config', type=str, default=None,
                        help='Path to experiment configuration file (YAML or JSON)')
    parser.add_argument('--experiment_name', type=str, default='grid_world_affordances',
                        help='Experiment name')

    # Planners and pruning
    parser.add_argument('--planner', nargs='+', choices=list(PLANNERS), default=list(PLANNERS),
                        help='Planners to run')
    parser.add_argument('--policy', nargs='+', choices=[BASELINE] + [p.value for p in SelectionPolicy],
                        default=[BASELINE, SelectionPolicy.THRESHOLD.value],
                        help='Pruning policies (none = full action set)')
    parser.add_argument('--kb', type=str, default=None,
                        help='Affordance knowledge base file (defaults to built-in directional affordances)')
    parser.add_argument('--expert', action='store_true',
                        help='Load the knowledge base as expert affordances')

    # Environment
    parser.add_argument('--width', type=int, default=8, help='Grid width')
    parser.add_argument('--height', type=int, default=8, help='Grid height')
    parser.add_argument('--slip', type=float, default=0.1, help='Slip probability')

    # System
    parser.add_argument('--seed', type=int, default=42, help='Random seed for reproducibility')
    parser.add_argument('--repeats', type=int, default=1, help='Repetitions per configuration')
    parser.add_argument('--output_dir', type=str, default='benchmark_results',
                        help='Output directory for results')
    parser.add_argument('--plot', type=str, default=None, help='Save a backup-count bar chart here')
    parser.add_argument('--log_file', type=str, default=None, help='Also log to this file')
    parser.add_argument('--verbose', type=int, default=1, choices=[0, 1, 2],
                        help='Verbosity level')

    return parser.parse_args()


def create_experiment_config(args) -> ExperimentConfig:
    """Create experiment configuration from arguments"""

    return ExperimentConfig(
        experiment_name=args.experiment_name,
        width=args.width,
        height=args.height,
        slip_probability=args.slip,
        planners=args.planner,
        policies=args.policy,
        knowledge_base=args.kb,
        expert=args.expert,
        repeats=args.repeats,
        seed=args.seed,
        output_dir=args.output_dir
    )


def main():
    """Main function"""

    args = parse_arguments()

    log_level = logging.DEBUG if args.verbose >= 2 else logging.INFO
    if args.verbose == 0:
        log_level = logging.WARNING
    setup_logging(args.log_file, log_level)

    logger.info("Affordance-aware planning started")
    logger.info(f"Arguments: {vars(args)}")

    try:
        if args.config:
            logger.info(f"Loading configuration from: {args.config}")
            config = ExperimentConfig(**load_experiment_config(args.config))
        else:
            config = create_experiment_config(args)

        set_global_seeds(config.seed)

        config_save_path = os.path.join(config.output_dir, config.experiment_name, "config")
        save_experiment_config(config.__dict__, config_save_path)

        world = make_grid_world(config.width, config.height, slip_probability=config.slip_probability)
        if config.knowledge_base:
            kb = KnowledgeBase.load(config.knowledge_base, world.domain, expert=config.expert)
            delegates = kb.delegates
        else:
            delegates = make_directional_affordances(world)

        benchmark = PlannerBenchmark(world, delegates, config)
        results = benchmark.run_comparison()
        benchmark.save_results(results)

        summary = PlannerBenchmark.summarize(results)
        logger.info(f"Summary:\n{summary.to_string(index=False)}")

        if args.plot:
            benchmark.plot(results, args.plot)

        logger.info("All operations completed successfully!")

    except Exception as e:
        logger.error(f"Error during execution: {e}")
        raise


if __name__ == '__main__':
    main()
