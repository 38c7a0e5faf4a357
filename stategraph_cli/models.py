"""Core data models shared by extraction, indexing, search and analysis."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


# ===================================================================
# Extraction
# ===================================================================

class ParseQuality(str, Enum):
    """Which extraction tier produced a result (best first)."""

    LITERAL = "literal"
    REGEX = "regex"
    NONE = "none"

    @property
    def rank(self) -> int:
        return _QUALITY_RANK[self]


_QUALITY_RANK = {ParseQuality.LITERAL: 0, ParseQuality.REGEX: 1, ParseQuality.NONE: 2}


@dataclass
class TransitionSpec:
    """One outgoing transition variant as declared in ``xstateConfig.on``."""

    event: str
    target: str
    platforms: List[str] = field(default_factory=list)
    description: str = ""
    step_descriptions: List[str] = field(default_factory=list)


@dataclass
class ExtractionResult:
    """Best-effort structured record recovered from one implication file."""

    meta: Dict[str, Any] = field(default_factory=dict)
    transitions: List[TransitionSpec] = field(default_factory=list)
    ui_validation: Dict[str, Dict[str, List[Dict[str, Any]]]] = field(default_factory=dict)
    parse_quality: ParseQuality = ParseQuality.NONE
    class_name: Optional[str] = None
    xstate_id: Optional[str] = None
    has_xstate_config: bool = False
    has_mirrors_on: bool = False

    @property
    def status(self) -> Optional[str]:
        value = self.meta.get("status")
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None


# ===================================================================
# Discovery manifest
# ===================================================================

@dataclass
class DiscoveredFile:
    """A candidate implication file plus the coarse metadata discovery saw."""

    path: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def class_name(self) -> Optional[str]:
        return self.metadata.get("className") or None

    @property
    def status(self) -> Optional[str]:
        value = self.metadata.get("status")
        return value if isinstance(value, str) and value else None

    @property
    def state_name(self) -> str:
        """Status when known, class name otherwise."""
        return self.status or self.class_name or self.path

    @property
    def has_xstate_config(self) -> bool:
        return bool(self.metadata.get("hasXStateConfig"))

    @property
    def has_mirrors_on(self) -> bool:
        return bool(self.metadata.get("hasMirrorsOn"))

    @property
    def ui_coverage(self) -> Dict[str, Any]:
        coverage = self.metadata.get("uiCoverage")
        return coverage if isinstance(coverage, dict) else {}


@dataclass
class DiscoveryResult:
    """Manifest of implication files found under one project root."""

    project_path: str
    implications: List[DiscoveredFile] = field(default_factory=list)
    transitions: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)
    generated_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectPath": self.project_path,
            "generatedAt": self.generated_at,
            "files": {
                "implications": [
                    {"path": item.path, "metadata": item.metadata}
                    for item in self.implications
                ],
            },
            "transitions": self.transitions,
            "errors": self.errors,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiscoveryResult":
        files = data.get("files") or {}
        implications = [
            DiscoveredFile(path=str(item.get("path", "")), metadata=dict(item.get("metadata") or {}))
            for item in files.get("implications") or []
            if isinstance(item, dict)
        ]
        return cls(
            project_path=str(data.get("projectPath", "")),
            implications=implications,
            transitions=[t for t in data.get("transitions") or [] if isinstance(t, dict)],
            errors=list(data.get("errors") or []),
            generated_at=str(data.get("generatedAt", "")),
        )


# ===================================================================
# Index documents
# ===================================================================

@dataclass(frozen=True)
class StateDocument:
    id: str
    text: str
    status_label: str
    platform: str
    entity: str
    source_file: str
    class_name: str = ""
    required_fields: Tuple[str, ...] = ()
    transition_count: int = 0

    doc_type = "state"
    label = ""
    description = ""
    field = ""


@dataclass(frozen=True)
class TransitionDocument:
    id: str
    text: str
    event: str
    from_state: str
    to_state: str
    platforms: Tuple[str, ...] = ()
    description: str = ""
    source_file: str = ""

    doc_type = "transition"
    label = ""
    field = ""


@dataclass(frozen=True)
class ValidationDocument:
    id: str
    text: str
    state: str
    platform: str
    screen: str
    block_id: Optional[str] = None
    label: str = ""
    has_conditions: bool = False
    description: str = ""
    block_type: str = ""
    source_file: str = ""

    doc_type = "validation"
    field = ""


@dataclass(frozen=True)
class ConditionDocument:
    id: str
    text: str
    state: str
    block_id: str
    screen: str
    platform: str
    field: str
    operator: str = "equals"
    value: Any = None
    source_file: str = ""

    doc_type = "condition"
    label = ""
    description = ""


@dataclass(frozen=True)
class SetupDocument:
    """How a test reaches ``state``: one ``meta.setup`` entry."""

    id: str
    text: str
    state: str
    status_label: str
    platform: str
    previous_status: str = "initial"
    test_file: str = ""
    action_name: str = ""
    source_file: str = ""

    doc_type = "setup"
    label = ""
    description = ""
    field = ""


Document = Union[StateDocument, TransitionDocument, ValidationDocument, ConditionDocument, SetupDocument]


def document_to_dict(doc: Document) -> Dict[str, Any]:
    """Serialise a document, tagging it with its type."""
    data = asdict(doc)
    data["type"] = doc.doc_type
    return data


# ===================================================================
# Query results
# ===================================================================

@dataclass
class ScoredDocument:
    document: Document
    score: float
    match_type: str = "text"

    @property
    def id(self) -> str:
        return self.document.id


@dataclass(frozen=True)
class ChainResult:
    """Ordered prerequisite path ending at ``status``."""

    status: str
    steps: Tuple[str, ...]

    @property
    def length(self) -> int:
        return len(self.steps)


@dataclass
class StateDetails:
    state: StateDocument
    outgoing: List[TransitionDocument] = field(default_factory=list)
    incoming: List[TransitionDocument] = field(default_factory=list)
    validations: List[ValidationDocument] = field(default_factory=list)
    conditions: List[ConditionDocument] = field(default_factory=list)
    setups: List[SetupDocument] = field(default_factory=list)


@dataclass
class ImpactReport:
    """What depends on a state: who leads into it and what checks it owns."""

    state: str
    dependent_states: List[str]
    affected_transitions: List[TransitionDocument]
    affected_validations: List[ValidationDocument]

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "dependentStates": len(self.dependent_states),
            "affectedTransitions": len(self.affected_transitions),
            "affectedValidations": len(self.affected_validations),
        }


@dataclass
class BuildStats:
    files_seen: int = 0
    files_indexed: int = 0
    files_skipped: int = 0
    errors: int = 0
    degraded: int = 0
    elapsed_ms: float = 0.0
    states: int = 0
    transitions: int = 0
    validations: int = 0
    conditions: int = 0
    setups: int = 0
    tickets: int = 0
    fields: int = 0
    events: int = 0
    terms: int = 0
    error_files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
