"""Backward prerequisite chains over an index's transitions."""

from __future__ import annotations

import logging
from typing import List, Optional, Set

from .indexer import SearchIndex
from .models import ChainResult

logger = logging.getLogger(__name__)

INITIAL_STATE = "initial"


def _predecessor(index: SearchIndex, state_id: str) -> Optional[str]:
    # first incoming edge by insertion order; other predecessors are ignored
    for transition in index.transitions:
        if transition.to_state == state_id:
            return transition.from_state
    return None


def _walk_back(index: SearchIndex, target: str) -> List[str]:
    steps = [target]
    visited: Set[str] = {target}
    current = target
    while True:
        previous = _predecessor(index, current)
        if not previous or previous == INITIAL_STATE or previous in visited:
            break
        visited.add(previous)
        steps.insert(0, previous)
        current = previous
    return steps


def chain_for(index: SearchIndex, target_state_id: str) -> Optional[ChainResult]:
    """Return the path of states leading to *target_state_id*.

    Returns None for an unknown state.  Results are memoized on the index
    snapshot, so a rebuilt index starts with an empty cache.
    """
    if target_state_id not in index.by_state:
        return None
    cached = index.chain_cache.get(target_state_id)
    if cached is not None:
        logger.debug("Chain cache hit for %s", target_state_id)
        return cached
    result = ChainResult(status=target_state_id, steps=tuple(_walk_back(index, target_state_id)))
    index.chain_cache[target_state_id] = result
    return result
