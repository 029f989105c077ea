#!/usr/bin/env python3
"""
Experiment Utilities for AffPlan

Helper functions for logging setup, experiment configuration files and
reproducible random number generation.
"""

import os
import json
import yaml
import random
import logging
import numpy as np
from enum import Enum
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Experiment file extension -> parser
CONFIG_READERS = {
    '.json': json.load,
    '.yaml': yaml.safe_load,
    '.yml': yaml.safe_load,
}


def setup_logging(log_file: Optional[str] = None, level: int = logging.INFO):
    """Setup logging to the console and, optionally, a log file"""

    handlers = [logging.StreamHandler()]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    if log_file:
        logger.info(f"Logging setup complete: {log_file}")


def _to_serializable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _to_serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_serializable(v) for v in value]
    return value


def save_experiment_config(config: Dict[str, Any], save_path: str):
    """Save experiment configuration as JSON and YAML"""

    directory = os.path.dirname(save_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    config = _to_serializable(config)
    base_path, ext = os.path.splitext(save_path)
    if ext not in ('.json', '.yaml', '.yml'):
        base_path = save_path

    json_path = f"{base_path}.json"
    with open(json_path, 'w') as f:
        json.dump(config, f, indent=2)

    # YAML copy for readability
    yaml_path = f"{base_path}.yaml"
    with open(yaml_path, 'w') as f:
        yaml.dump(config, f, default_flow_style=False, indent=2)

    logger.info(f"Experiment config saved to {json_path} and {yaml_path}")


def load_experiment_config(config_path: str) -> Dict[str, Any]:
    """
    Read the ExperimentConfig fields stored in a planning experiment file.

    An empty file yields no overrides; anything other than a field mapping is
    rejected before it reaches the dataclass.
    """
    extension = os.path.splitext(config_path)[1]
    reader = CONFIG_READERS.get(extension)
    if reader is None:
        raise ValueError(f"Experiment file {config_path} must end in one of {sorted(CONFIG_READERS)}")
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"No experiment file at {config_path}")

    with open(config_path, 'r') as f:
        fields = reader(f)
    if fields is None:
        fields = {}
    if not isinstance(fields, dict):
        raise ValueError(f"Experiment file {config_path} holds a {type(fields).__name__}, "
                         f"expected a mapping of experiment fields")

    logger.info(f"Read {len(fields)} experiment fields from {config_path}")
    return fields


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """Create the injectable random source used for sampling and tie-breaking"""
    return np.random.default_rng(seed)


def set_global_seeds(seed: int):
    """Set global random seeds for reproducibility"""

    random.seed(seed)
    np.random.seed(seed)

    logger.info(f"Global seeds set to {seed}")
