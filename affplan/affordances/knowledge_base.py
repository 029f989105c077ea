"""
Affordance Knowledge Base

A knowledge base file is a sequence of persisted affordance records, each
terminated by the `===` sentinel line.
"""

import logging
import os
from typing import Iterator, List, Mapping, Optional

import numpy as np

from ..mdp.core import Action, Domain
from .controller import AffordancePruningController, PruningConfig
from .delegate import DEFAULT_EXPERT_TOTAL_COUNT, RECORD_SENTINEL, AffordanceDelegate

logger = logging.getLogger(__name__)


def split_records(text: str) -> Iterator[str]:
    """Yield the text of every record (sentinel included); trailing blank text is ignored"""
    chunk: List[str] = []
    for line in text.splitlines():
        chunk.append(line)
        if line.strip() == RECORD_SENTINEL:
            yield "\n".join(chunk) + "\n"
            chunk = []

    # An unterminated trailing record is passed on so the loader reports it
    if any(line.strip() for line in chunk):
        yield "\n".join(chunk) + "\n"


class KnowledgeBase:
    """Ordered collection of affordance delegates with file persistence"""

    def __init__(self, delegates: Optional[List[AffordanceDelegate]] = None):
        self.delegates: List[AffordanceDelegate] = list(delegates or [])

    def add(self, delegate: AffordanceDelegate):
        self.delegates.append(delegate)

    def __len__(self) -> int:
        return len(self.delegates)

    def __iter__(self) -> Iterator[AffordanceDelegate]:
        return iter(self.delegates)

    @classmethod
    def from_text(cls, text: str, domain: Domain, extended_actions: Optional[Mapping[str, Action]] = None,
                  expert: bool = False, expert_total_count: int = DEFAULT_EXPERT_TOTAL_COUNT) -> "KnowledgeBase":
        delegates = [
            AffordanceDelegate.load(domain, extended_actions, record_text, expert=expert,
                                    expert_total_count=expert_total_count)
            for record_text in split_records(text)
        ]
        return cls(delegates)

    @classmethod
    def load(cls, path: str, domain: Domain, extended_actions: Optional[Mapping[str, Action]] = None,
             expert: bool = False, expert_total_count: int = DEFAULT_EXPERT_TOTAL_COUNT) -> "KnowledgeBase":
        """Load every record of a knowledge base file; any bad record fails the whole load"""
        if not os.path.exists(path):
            raise FileNotFoundError(f"Knowledge base file not found: {path}")

        with open(path, 'r') as f:
            kb = cls.from_text(f.read(), domain, extended_actions, expert, expert_total_count)

        logger.info(f"Loaded {len(kb)} affordances from {path}")
        return kb

    def to_text(self) -> str:
        return "".join(delegate.to_text() for delegate in self.delegates)

    def save(self, path: str):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(path, 'w') as f:
            f.write(self.to_text())

        logger.info(f"Saved {len(self)} affordances to {path}")

    def make_controller(self, config: Optional[PruningConfig] = None,
                        rng: Optional[np.random.Generator] = None) -> AffordancePruningController:
        return AffordancePruningController(self.delegates, config=config, rng=rng)
