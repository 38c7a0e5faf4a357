"""Structural checks over a project's state graph.

The analyzer runs a fixed list of independent rules over the discovery
manifest (not the search index).  Each rule decides whether it applies to a
state and returns zero or more :class:`~stategraph_cli.issues.Issue` records.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from .config import EXPECTED_PLATFORMS, TERMINAL_KEYWORDS
from .issues import AnalysisResult, AnalysisSummary, Issue, IssueSeverity, IssueType, Suggestion
from .models import DiscoveredFile, DiscoveryResult
from .registry import StateRegistry

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.5
MAX_TARGET_SUGGESTIONS = 3

# keys describing a screen entry rather than validating it
_SCREEN_BOOKKEEPING = {"description", "name", "originalName", "index"}


# ===================================================================
# String similarity
# ===================================================================

def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """``(len(longer) - edit distance) / len(longer)``, case-insensitive."""
    a, b = a.lower(), b.lower()
    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    return (longer - levenshtein(a, b)) / longer


def similar_states(name: str, candidates: Sequence[str], limit: int = MAX_TARGET_SUGGESTIONS) -> List[str]:
    scored = [(similarity(name, c), c) for c in candidates]
    ranked = sorted((s for s in scored if s[0] >= SIMILARITY_THRESHOLD), key=lambda s: (-s[0], s[1]))
    return [c for _, c in ranked[:limit]]


# ===================================================================
# Context
# ===================================================================

@dataclass
class AnalysisContext:
    implications: List[DiscoveredFile]
    transitions: List[Dict[str, Any]]
    registry: StateRegistry
    expected_platforms: Tuple[str, ...]
    terminal_keywords: Tuple[str, ...]
    state_ids: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.state_ids:
            self.state_ids = frozenset(i.status for i in self.implications if i.status)

    def outgoing(self, state_name: str) -> List[Dict[str, Any]]:
        return [t for t in self.transitions if t.get("from") == state_name]

    def incoming(self, state_name: str) -> List[Dict[str, Any]]:
        found = []
        for transition in self.transitions:
            target = transition.get("to")
            if not isinstance(target, str):
                continue
            if (self.registry.resolve(target) or target) == state_name:
                found.append(transition)
        return found

    def is_terminal(self, state: DiscoveredFile) -> bool:
        if state.metadata.get("terminal") is True:
            return True
        names = [state.state_name.lower(), (state.class_name or "").lower()]
        return any(keyword in name for name in names for keyword in self.terminal_keywords)


def _populated(value: Any) -> bool:
    return value not in (None, "", [], {}, False)


# ===================================================================
# Rules
# ===================================================================

class Rule(ABC):
    """One structural check."""

    name: str = ""

    @abstractmethod
    def applies_to(self, state: DiscoveredFile) -> bool:
        ...

    @abstractmethod
    def analyze(self, state: DiscoveredFile, context: AnalysisContext) -> List[Issue]:
        ...


class BrokenTransitionRule(Rule):
    name = "broken-transition"

    def applies_to(self, state: DiscoveredFile) -> bool:
        return state.has_xstate_config

    def analyze(self, state: DiscoveredFile, context: AnalysisContext) -> List[Issue]:
        issues = []
        known = sorted(context.state_ids)
        seen_events = set()
        for transition in context.outgoing(state.state_name):
            target = transition.get("to")
            event = transition.get("event", "")
            # later variants of an event share the first variant's edge
            if event in seen_events:
                continue
            seen_events.add(event)
            if not isinstance(target, str) or target in context.state_ids:
                continue
            candidates = similar_states(target, known)
            issues.append(Issue(
                severity=IssueSeverity.ERROR,
                type=IssueType.BROKEN_TRANSITION,
                state_name=state.state_name,
                title=f"Missing Target State: {event}",
                message=(
                    f'Transition "{event}" from "{state.state_name}" points to '
                    f'"{target}", which is not a known state.'
                ),
                suggestions=[
                    Suggestion(
                        action="fix-target",
                        title="Fix the transition target",
                        description=(
                            f"Did you mean: {', '.join(candidates)}?"
                            if candidates else "No similar state names found."
                        ),
                        data={"event": event, "current_target": target, "possible_targets": candidates},
                    ),
                    Suggestion(
                        action="create-state",
                        title=f'Create state "{target}"',
                        description="Add an implication file for the missing state.",
                        auto_fixable=True,
                        data={"state": target},
                    ),
                    Suggestion(
                        action="remove-transition",
                        title=f'Remove transition "{event}"',
                        auto_fixable=True,
                        data={"event": event},
                    ),
                ],
                affected_fields=[f"xstateConfig.on.{event}"],
                location=state.path,
                details={"event": event, "target": target},
            ))
        return issues


class IsolatedStateRule(Rule):
    name = "isolated-state"

    def applies_to(self, state: DiscoveredFile) -> bool:
        return state.has_xstate_config

    def analyze(self, state: DiscoveredFile, context: AnalysisContext) -> List[Issue]:
        name = state.state_name
        incoming = context.incoming(name)
        outgoing = context.outgoing(name)
        if incoming:
            return []

        if not outgoing:
            terminal = context.is_terminal(state)
            return [Issue(
                severity=IssueSeverity.WARNING if terminal else IssueSeverity.ERROR,
                type=IssueType.ISOLATED_STATE,
                state_name=name,
                title="Isolated Terminal State" if terminal else "Completely Isolated State",
                message=f'State "{name}" has no incoming or outgoing transitions.',
                suggestions=[
                    Suggestion(
                        action="add-incoming-transition",
                        title="Add a transition into this state",
                        description="Another state should declare a transition targeting it.",
                        data={"target_state": name},
                    ),
                    Suggestion(
                        action="delete-state",
                        title="Delete the state",
                        description="Remove the implication if the state is no longer used.",
                        data={"state": name},
                    ),
                ],
                location=state.path,
                details={"incoming": 0, "outgoing": 0, "terminal": terminal},
            )]

        if state.metadata.get("initial") is True:
            return []
        return [Issue(
            severity=IssueSeverity.WARNING,
            type=IssueType.ISOLATED_STATE,
            state_name=name,
            title="Unreachable State",
            message=(
                f'State "{name}" has {len(outgoing)} outgoing transition(s) '
                "but nothing transitions into it."
            ),
            suggestions=[
                Suggestion(
                    action="add-incoming-transition",
                    title="Add a transition into this state",
                    data={"target_state": name},
                ),
                Suggestion(
                    action="mark-initial",
                    title="Mark as the initial state",
                    description="Set meta.initial = true if this is where the machine starts.",
                    auto_fixable=True,
                    data={"addToMeta": {"initial": True}},
                ),
            ],
            location=state.path,
            details={"incoming": 0, "outgoing": len(outgoing)},
        )]


class MissingTransitionsRule(Rule):
    name = "missing-transitions"

    def applies_to(self, state: DiscoveredFile) -> bool:
        return state.has_xstate_config

    def analyze(self, state: DiscoveredFile, context: AnalysisContext) -> List[Issue]:
        name = state.state_name
        if context.outgoing(name) or context.is_terminal(state):
            return []
        return [Issue(
            severity=IssueSeverity.WARNING,
            type=IssueType.MISSING_TRANSITIONS,
            state_name=name,
            title="No Outgoing Transitions",
            message=f'State "{name}" has no outgoing transitions and is not marked terminal.',
            suggestions=[
                Suggestion(
                    action="add-transition",
                    title="Add an outgoing transition",
                    data={"from_state": name},
                ),
                Suggestion(
                    action="mark-terminal",
                    title="Mark as a terminal state",
                    description="Set meta.terminal = true if the flow ends here.",
                    auto_fixable=True,
                    data={"addToMeta": {"terminal": True}},
                ),
            ],
            affected_fields=["xstateConfig.on"],
            location=state.path,
        )]


class MissingUICoverageRule(Rule):
    name = "missing-ui-coverage"

    def applies_to(self, state: DiscoveredFile) -> bool:
        return state.has_xstate_config

    def analyze(self, state: DiscoveredFile, context: AnalysisContext) -> List[Issue]:
        name = state.state_name
        if not state.has_mirrors_on:
            return [Issue(
                severity=IssueSeverity.WARNING,
                type=IssueType.MISSING_UI_COVERAGE,
                state_name=name,
                title="No UI Validation",
                message=f'State "{name}" declares no mirrorsOn UI validation.',
                suggestions=[
                    Suggestion(
                        action="add-mirrors-on",
                        title="Add a mirrorsOn block",
                        data={"platforms": list(context.expected_platforms)},
                    ),
                    Suggestion(
                        action="copy-from-similar",
                        title="Copy UI validation from a similar state",
                    ),
                ],
                affected_fields=["mirrorsOn"],
                location=state.path,
            )]

        coverage = state.ui_coverage
        platforms = coverage.get("platforms")
        platforms = platforms if isinstance(platforms, dict) else {}
        if not coverage.get("total"):
            return [Issue(
                severity=IssueSeverity.INFO,
                type=IssueType.INCOMPLETE_UI_COVERAGE,
                state_name=name,
                title="Empty UI Validation",
                message=f'State "{name}" has a mirrorsOn block with no screens.',
                suggestions=[
                    Suggestion(
                        action="add-platform-coverage",
                        title="Add screens to mirrorsOn.UI",
                        data={"platforms": list(context.expected_platforms)},
                    ),
                ],
                affected_fields=["mirrorsOn.UI"],
                location=state.path,
            )]

        missing = [p for p in context.expected_platforms if p not in platforms]
        if not missing or len(missing) == len(context.expected_platforms):
            return []
        return [Issue(
            severity=IssueSeverity.INFO,
            type=IssueType.INCOMPLETE_UI_COVERAGE,
            state_name=name,
            title="Incomplete Platform Coverage",
            message=f'State "{name}" has no UI validation for: {", ".join(missing)}.',
            suggestions=[
                Suggestion(
                    action="add-missing-platforms",
                    title="Add the missing platforms",
                    data={"missing_platforms": missing},
                ),
            ],
            affected_fields=[f"mirrorsOn.UI.{p}" for p in missing],
            location=state.path,
            details={"missing_platforms": missing, "covered_platforms": sorted(platforms)},
        )]


class EmptyInheritanceRule(Rule):
    name = "empty-inheritance"

    def applies_to(self, state: DiscoveredFile) -> bool:
        return True

    def analyze(self, state: DiscoveredFile, context: AnalysisContext) -> List[Issue]:
        issues = []
        platforms = state.ui_coverage.get("platforms")
        for platform, data in (platforms.items() if isinstance(platforms, dict) else []):
            screens = data.get("screens") if isinstance(data, dict) else None
            for screen in screens if isinstance(screens, list) else []:
                if not isinstance(screen, dict) or not self._only_description(screen):
                    continue
                screen_name = screen.get("name", "")
                issues.append(Issue(
                    severity=IssueSeverity.INFO,
                    type=IssueType.EMPTY_INHERITANCE,
                    state_name=state.state_name,
                    title="Minimal Override",
                    message=(
                        f'Screen "{screen_name}" on {platform} only sets a description; '
                        "it adds no visible or hidden elements."
                    ),
                    suggestions=[
                        Suggestion(
                            action="add-overrides",
                            title="Add state-specific visible/hidden elements",
                        ),
                        Suggestion(
                            action="use-base-directly",
                            title="Use the base screen definition directly",
                        ),
                    ],
                    affected_fields=[f"mirrorsOn.UI.{platform}.{screen_name}"],
                    location=state.path,
                    details={"platform": platform, "screen": screen_name},
                ))
        return issues

    @staticmethod
    def _only_description(screen: Dict[str, Any]) -> bool:
        description = screen.get("description")
        if not isinstance(description, str) or not description.strip():
            return False
        return not any(
            _populated(value)
            for key, value in screen.items()
            if key not in _SCREEN_BOOKKEEPING
        )


RULES: Tuple[type, ...] = (
    BrokenTransitionRule,
    IsolatedStateRule,
    MissingTransitionsRule,
    MissingUICoverageRule,
    EmptyInheritanceRule,
)


# ===================================================================
# Analyzer
# ===================================================================

class ProjectAnalyzer:
    """Run every rule over every applicable state, in a stable order."""

    def __init__(
        self,
        expected_platforms: Optional[Sequence[str]] = None,
        terminal_keywords: Optional[Sequence[str]] = None,
    ) -> None:
        self.expected_platforms = tuple(expected_platforms if expected_platforms is not None else EXPECTED_PLATFORMS)
        self.terminal_keywords = tuple(
            k.lower() for k in (terminal_keywords if terminal_keywords is not None else TERMINAL_KEYWORDS)
        )
        self.rules: List[Rule] = [rule() for rule in RULES]

    def analyze(self, discovery: DiscoveryResult, registry: Optional[StateRegistry] = None) -> AnalysisResult:
        if registry is None:
            raise ValueError("analyze() requires a name-resolution registry")

        context = AnalysisContext(
            implications=discovery.implications,
            transitions=discovery.transitions,
            registry=registry,
            expected_platforms=self.expected_platforms,
            terminal_keywords=self.terminal_keywords,
        )
        issues: List[Issue] = []
        for rule in self.rules:
            for state in discovery.implications:
                if not rule.applies_to(state):
                    continue
                try:
                    issues.extend(rule.analyze(state, context))
                except (AttributeError, KeyError, TypeError) as exc:
                    logger.warning("Rule %s failed on %s: %s", rule.name, state.path, exc)

        summary = AnalysisSummary.from_issues(issues)
        logger.info(
            "Analysis found %d issues (%d errors, %d warnings, %d info)",
            summary.total_issues, summary.error_count, summary.warning_count, summary.info_count,
        )
        return AnalysisResult(
            project_path=discovery.project_path,
            total_implications=len(discovery.implications),
            issues=issues,
            summary=summary,
        )
