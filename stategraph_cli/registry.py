"""Name resolution for transition targets that use aliases."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from .models import DiscoveryResult

logger = logging.getLogger(__name__)

_CLASS_SUFFIXES = ("Implications", "Implication", "State", "Status")


def short_name(class_name: str) -> str:
    """``AcceptedBookingImplications`` -> ``acceptedbooking``."""
    name = class_name
    for suffix in _CLASS_SUFFIXES:
        if name.endswith(suffix) and len(name) > len(suffix):
            name = name[: -len(suffix)]
    return name.lower()


class StateRegistry:
    """Maps every known spelling of a state to its canonical state id.

    Built from a discovery result: each state's own id, its xstate id, its
    class name and a short form of the class name all resolve to the state's
    status.  Explicit ``mappings`` (alias -> status) are applied last and win.
    """

    def __init__(self, mappings: Optional[Dict[str, str]] = None, case_sensitive: bool = False) -> None:
        self.case_sensitive = case_sensitive
        self._mappings = dict(mappings or {})
        self._aliases: Dict[str, str] = {}

    def _key(self, name: str) -> str:
        return name if self.case_sensitive else name.lower()

    def register(self, alias: str, canonical: str, overwrite: bool = False) -> None:
        if not alias:
            return
        key = self._key(alias)
        existing = self._aliases.get(key)
        if existing is not None and existing != canonical and not overwrite:
            logger.debug("Alias %s already maps to %s, not %s", alias, existing, canonical)
            return
        self._aliases[key] = canonical

    def build(self, discovery: DiscoveryResult) -> "StateRegistry":
        self._aliases.clear()
        for implication in discovery.implications:
            canonical = implication.status
            if not canonical:
                continue
            self.register(canonical, canonical, overwrite=True)
        for implication in discovery.implications:
            canonical = implication.status
            if not canonical:
                continue
            xstate_id = implication.metadata.get("xstateId")
            if isinstance(xstate_id, str):
                self.register(xstate_id, canonical)
            if implication.class_name:
                self.register(implication.class_name, canonical)
                self.register(short_name(implication.class_name), canonical)
        for alias, canonical in self._mappings.items():
            self.register(alias, canonical, overwrite=True)
        logger.debug("State registry holds %d aliases", len(self._aliases))
        return self

    def resolve(self, name: Optional[str]) -> Optional[str]:
        """Canonical state id for *name*, or None when unknown."""
        if not isinstance(name, str) or not name:
            return None
        return self._aliases.get(self._key(name))

    def aliases_for(self, canonical: str) -> List[str]:
        return sorted(alias for alias, target in self._aliases.items() if target == canonical)

    def states(self) -> Iterable[str]:
        return sorted(set(self._aliases.values()))

    def __len__(self) -> int:
        return len(self._aliases)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.resolve(name) is not None
