"""Build a searchable index from discovered implication files.

One build turns every implication into typed documents (states,
transitions, UI validations, field conditions, setup routes), lookup
tables keyed by field, ticket and event, and an inverted term index.
A finished :class:`SearchIndex` is treated as a read-only snapshot;
rebuilding produces a new object rather than patching an old one.
"""

from __future__ import annotations

import json
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from .extractor import extract
from .models import (
    BuildStats,
    ChainResult,
    ConditionDocument,
    DiscoveredFile,
    DiscoveryResult,
    Document,
    ExtractionResult,
    ParseQuality,
    SetupDocument,
    StateDocument,
    TransitionDocument,
    TransitionSpec,
    ValidationDocument,
)

logger = logging.getLogger(__name__)

TEXT_SEPARATOR = " | "
TICKET_RE = re.compile(r"[A-Z]+-\d+")

_COLLECTIONS = {
    "state": "states",
    "transition": "transitions",
    "validation": "validations",
    "condition": "conditions",
    "setup": "setups",
}


# ===================================================================
# Text helpers
# ===================================================================

def tokenize(text: Optional[str]) -> List[str]:
    """Lower-case, split on ``_ - .`` and whitespace, drop 1-char tokens."""
    if not text:
        return []
    lowered = re.sub(r"[_\-.]", " ", text.lower())
    lowered = re.sub(r"[^a-z0-9\s]", "", lowered)
    return [token for token in lowered.split() if len(token) >= 2]


def humanize(name: str) -> str:
    """``pending_booking`` / ``pendingBooking`` -> ``Pending Booking``."""
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", name.replace("_", " "))
    return " ".join(word[:1].upper() + word[1:] for word in spaced.split())


def split_camel(name: str) -> str:
    return re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", name).lower()


def extract_ticket_ids(label: Optional[str]) -> List[str]:
    """Ticket ids (``SC-13092``) in *label*, de-duplicated in order."""
    if not label:
        return []
    return list(dict.fromkeys(TICKET_RE.findall(label)))


def _join(parts: Iterable[Any]) -> str:
    return TEXT_SEPARATOR.join(str(part) for part in parts if part)


def _format_value(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


# ===================================================================
# SearchIndex
# ===================================================================

@dataclass
class SearchIndex:
    """Aggregate root holding one build's documents and lookup tables."""

    project_path: str
    states: List[StateDocument] = field(default_factory=list)
    transitions: List[TransitionDocument] = field(default_factory=list)
    validations: List[ValidationDocument] = field(default_factory=list)
    conditions: List[ConditionDocument] = field(default_factory=list)
    setups: List[SetupDocument] = field(default_factory=list)
    by_state: Dict[str, StateDocument] = field(default_factory=dict)
    by_field: Dict[str, List[ConditionDocument]] = field(default_factory=dict)
    by_ticket: Dict[str, List[ValidationDocument]] = field(default_factory=dict)
    by_event: Dict[str, List[TransitionDocument]] = field(default_factory=dict)
    inverted_index: Dict[str, Set[str]] = field(default_factory=dict)
    documents: Dict[str, Document] = field(default_factory=dict)
    chain_cache: Dict[str, ChainResult] = field(default_factory=dict)
    built_at: float = field(default_factory=time.time)
    stats: BuildStats = field(default_factory=BuildStats)

    def get(self, doc_id: str) -> Optional[Document]:
        return self.documents.get(doc_id)

    def collection(self, doc_type: str) -> List[Document]:
        return getattr(self, _COLLECTIONS[doc_type])

    def add(self, doc: Document) -> bool:
        """Insert *doc* unless its id is already taken; first one wins."""
        if doc.id in self.documents:
            logger.debug("Dropping duplicate %s document %s", doc.doc_type, doc.id)
            return False
        self.documents[doc.id] = doc
        self.collection(doc.doc_type).append(doc)
        if isinstance(doc, StateDocument):
            self.by_state[doc.id] = doc
        for term in set(tokenize(doc.text) + tokenize(doc.id) + tokenize(doc.label) + tokenize(doc.field)):
            self.inverted_index.setdefault(term, set()).add(doc.id)
        return True

    def outgoing(self, state_id: str) -> List[TransitionDocument]:
        return [t for t in self.transitions if t.from_state == state_id]

    def incoming(self, state_id: str) -> List[TransitionDocument]:
        return [t for t in self.transitions if t.to_state == state_id]

    @property
    def counts(self) -> Dict[str, int]:
        return {
            "states": len(self.states),
            "transitions": len(self.transitions),
            "validations": len(self.validations),
            "conditions": len(self.conditions),
            "setups": len(self.setups),
        }


# ===================================================================
# Document builders
# ===================================================================

def _state_document(status: str, extraction: ExtractionResult, discovered: DiscoveredFile, events: int) -> StateDocument:
    meta = extraction.meta
    label = _str(meta.get("statusLabel")) or humanize(status)
    required = meta.get("requiredFields")
    required_fields = tuple(f for f in required if isinstance(f, str)) if isinstance(required, list) else ()
    requires = meta.get("requires")
    text = _join([
        label,
        status,
        status.replace("_", " "),
        _str(meta.get("description")),
        _str(meta.get("platform")),
        _str(meta.get("entity")),
        f"requires: {json.dumps(requires, sort_keys=True)}" if isinstance(requires, dict) and requires else "",
        f"fields: {' '.join(required_fields)}" if required_fields else "",
    ])
    return StateDocument(
        id=status,
        text=text,
        status_label=label,
        platform=_str(meta.get("platform")) or "unknown",
        entity=_str(meta.get("entity")),
        source_file=discovered.path,
        class_name=extraction.class_name or discovered.class_name or "",
        required_fields=required_fields,
        transition_count=events,
    )


def _group_transitions(specs: List[TransitionSpec]) -> Dict[str, List[TransitionSpec]]:
    grouped: Dict[str, List[TransitionSpec]] = {}
    for spec in specs:
        grouped.setdefault(spec.event, []).append(spec)
    return grouped


def _transition_document(status: str, event: str, variants: List[TransitionSpec], source_file: str) -> TransitionDocument:
    # multi-platform variants share one edge: first target, every platform
    first = variants[0]
    platforms = tuple(dict.fromkeys(p for v in variants for p in v.platforms))
    description = next((v.description for v in variants if v.description), "")
    steps = [s for v in variants for s in v.step_descriptions]
    text = _join([
        event,
        event.replace("_", " "),
        f"from {status}",
        f"to {first.target}",
        description,
        *steps,
        f"platform: {' '.join(platforms)}" if platforms else "",
    ])
    return TransitionDocument(
        id=f"{status}.{event}",
        text=text,
        event=event,
        from_state=status,
        to_state=first.target,
        platforms=platforms,
        description=description,
        source_file=source_file,
    )


def _condition_checks(block: Dict[str, Any]) -> List[Dict[str, Any]]:
    conditions = block.get("conditions")
    groups = conditions.get("blocks") if isinstance(conditions, dict) else None
    checks: List[Dict[str, Any]] = []
    for group in groups if isinstance(groups, list) else []:
        data = group.get("data") if isinstance(group, dict) else None
        raw = data.get("checks") if isinstance(data, dict) else None
        checks.extend(c for c in (raw if isinstance(raw, list) else []) if isinstance(c, dict))
    return checks


def _has_condition_groups(entry: Dict[str, Any]) -> bool:
    conditions = entry.get("conditions")
    return isinstance(conditions, dict) and bool(conditions.get("blocks"))


class _IndexBuilder:
    """Accumulates documents for one build."""

    def __init__(self, index: SearchIndex) -> None:
        self.index = index

    def add_file(self, discovered: DiscoveredFile, extraction: ExtractionResult) -> bool:
        status = extraction.status or discovered.status
        if not status:
            logger.debug("No status in %s; skipping", discovered.path)
            return False

        grouped = _group_transitions(extraction.transitions)
        state = _state_document(status, extraction, discovered, len(grouped))
        if not self.index.add(state):
            existing = self.index.documents[status]
            logger.warning(
                "State %s in %s clashes with %s %s from %s; skipping",
                status, discovered.path, existing.doc_type, existing.id, existing.source_file,
            )
            return False

        for event, variants in grouped.items():
            self.add_transition(_transition_document(status, event, variants, discovered.path))

        setup = extraction.meta.get("setup")
        for entry in setup if isinstance(setup, list) else []:
            if isinstance(entry, dict):
                self.add_setup(state, entry, discovered.path)

        for platform, screens in extraction.ui_validation.items():
            for screen, definitions in screens.items():
                for definition in definitions:
                    self.add_screen(status, platform, screen, definition, discovered.path)
        return True

    def add_setup(self, state: StateDocument, entry: Dict[str, Any], source_file: str) -> None:
        # observers watch a state without driving the app into it
        if entry.get("isObserver") or entry.get("mode") == "observer":
            return
        previous = _str(entry.get("previousStatus")) or "initial"
        platform = _str(entry.get("platform")) or "unknown"
        action = _str(entry.get("actionName"))
        self.index.add(SetupDocument(
            id=f"{state.id}.setup.{previous}",
            text=_join([
                f"How to reach {state.status_label} from {previous} via {platform}",
                split_camel(action),
            ]),
            state=state.id,
            status_label=state.status_label,
            platform=platform,
            previous_status=previous,
            test_file=_str(entry.get("testFile")),
            action_name=action,
            source_file=source_file,
        ))

    def add_transition(self, doc: TransitionDocument) -> None:
        if self.index.add(doc):
            self.index.by_event.setdefault(doc.event.upper(), []).append(doc)

    def add_screen(self, status: str, platform: str, screen: str, definition: Dict[str, Any], source_file: str) -> None:
        screen_id = f"{status}.{platform}.{screen}"
        description = _str(definition.get("description"))
        visible = [v for v in definition.get("visible") or [] if isinstance(v, str)]
        hidden = [h for h in definition.get("hidden") or [] if isinstance(h, str)]
        self.index.add(ValidationDocument(
            id=screen_id,
            text=_join([
                screen,
                split_camel(screen),
                platform,
                description,
                f"visible: {' '.join(visible)}" if visible else "",
                f"hidden: {' '.join(hidden)}" if hidden else "",
            ]),
            state=status,
            platform=platform,
            screen=screen,
            has_conditions=_has_condition_groups(definition),
            description=description,
            source_file=source_file,
        ))

        blocks = definition.get("blocks")
        for block in blocks if isinstance(blocks, list) else []:
            if isinstance(block, dict) and isinstance(block.get("id"), str) and block["id"]:
                self.add_block(status, platform, screen, screen_id, description, block, source_file)

    def add_block(
        self,
        status: str,
        platform: str,
        screen: str,
        screen_id: str,
        screen_description: str,
        block: Dict[str, Any],
        source_file: str,
    ) -> None:
        block_id = block["id"]
        label = _str(block.get("label"))
        block_type = _str(block.get("type"))
        checks = _condition_checks(block)
        check_texts = [
            f"{c['field']} {_str(c.get('operator')) or 'equals'} {_format_value(c.get('value'))}"
            if "value" in c else f"{c['field']} {_str(c.get('operator')) or 'equals'}"
            for c in checks if isinstance(c.get("field"), str)
        ]
        doc = ValidationDocument(
            id=f"{screen_id}.{block_id}",
            text=_join([label, screen, screen_description, block_type, *check_texts]),
            state=status,
            platform=platform,
            screen=screen,
            block_id=block_id,
            label=label,
            has_conditions=_has_condition_groups(block),
            description=screen_description,
            block_type=block_type,
            source_file=source_file,
        )
        if not self.index.add(doc):
            return
        for ticket in extract_ticket_ids(label):
            self.index.by_ticket.setdefault(ticket.upper(), []).append(doc)

        for position, check in enumerate(checks):
            field_path = check.get("field")
            if not isinstance(field_path, str) or not field_path:
                continue
            check_id = _str(check.get("id")) or f"chk_{position}"
            operator = _str(check.get("operator")) or "equals"
            value = check.get("value")
            condition = ConditionDocument(
                id=f"{doc.id}.{check_id}",
                text=_join([
                    field_path,
                    field_path.replace(".", " "),
                    operator,
                    _format_value(value) if "value" in check else "",
                    label,
                ]),
                state=status,
                block_id=block_id,
                screen=screen,
                platform=platform,
                field=field_path,
                operator=operator,
                value=value,
                source_file=source_file,
            )
            if self.index.add(condition):
                self.register_field(condition)

    def register_field(self, condition: ConditionDocument) -> None:
        full = condition.field.lower()
        last = full.rsplit(".", 1)[-1]
        for key in dict.fromkeys((last, full)):
            self.index.by_field.setdefault(key, []).append(condition)

    def add_manifest_transition(self, raw: Dict[str, Any]) -> None:
        source, target, event = raw.get("from"), raw.get("to"), raw.get("event")
        if not all(isinstance(v, str) and v for v in (source, target, event)):
            return
        if f"{source}.{event}" in self.index.documents:
            return
        platforms = raw.get("platforms")
        self.add_transition(TransitionDocument(
            id=f"{source}.{event}",
            text=_join([event, event.replace("_", " "), f"from {source}", f"to {target}"]),
            event=event,
            from_state=source,
            to_state=target,
            platforms=tuple(p for p in platforms if isinstance(p, str)) if isinstance(platforms, list) else (),
            source_file=_str(raw.get("file")),
        ))


# ===================================================================
# Build entry point
# ===================================================================

SourceReader = Callable[[str], str]


def _read_file(root: Path, rel_path: str) -> str:
    return (root / rel_path).read_text(encoding="utf-8", errors="ignore")


def _extract_one(reader: SourceReader, discovered: DiscoveredFile) -> Tuple[Optional[ExtractionResult], Optional[str]]:
    try:
        return extract(reader(discovered.path)), None
    except Exception as exc:
        return None, str(exc)


def build_search_index(
    manifest: DiscoveryResult,
    project_root: Path,
    read_source: Optional[SourceReader] = None,
    max_workers: Optional[int] = None,
) -> SearchIndex:
    """Build a fresh :class:`SearchIndex` for every file in *manifest*.

    Args:
        manifest: Discovery result naming the implication files.
        project_root: Root the manifest paths are relative to.
        read_source: Optional ``path -> source`` callable; defaults to
            reading from disk under *project_root*.
        max_workers: Run per-file extraction on a thread pool of this size.
            Results are merged in manifest order either way.
    """
    started = time.perf_counter()
    index = SearchIndex(project_path=str(project_root))
    reader = read_source or partial(_read_file, Path(project_root))
    files = list(manifest.implications)
    stats = index.stats
    stats.files_seen = len(files)

    worker = partial(_extract_one, reader)
    if max_workers and max_workers > 1 and len(files) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            extracted = list(pool.map(worker, files))
    else:
        extracted = [worker(f) for f in files]

    builder = _IndexBuilder(index)
    for discovered, (extraction, error) in zip(files, extracted):
        if extraction is None:
            logger.warning("Failed to extract %s: %s", discovered.path, error)
            stats.errors += 1
            stats.error_files.append(discovered.path)
            continue
        if extraction.parse_quality is not ParseQuality.LITERAL:
            logger.warning(
                "Degraded extraction for %s (tier: %s)",
                discovered.path, extraction.parse_quality.value,
            )
            stats.degraded += 1
        try:
            added = builder.add_file(discovered, extraction)
        except Exception as exc:
            logger.warning("Failed to index %s: %s", discovered.path, exc)
            stats.errors += 1
            stats.error_files.append(discovered.path)
            continue
        if added:
            stats.files_indexed += 1
        else:
            stats.files_skipped += 1

    for raw in manifest.transitions:
        builder.add_manifest_transition(raw)

    stats.states = len(index.states)
    stats.transitions = len(index.transitions)
    stats.validations = len(index.validations)
    stats.conditions = len(index.conditions)
    stats.setups = len(index.setups)
    stats.tickets = len(index.by_ticket)
    stats.fields = len(index.by_field)
    stats.events = len(index.by_event)
    stats.terms = len(index.inverted_index)
    stats.elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    logger.info(
        "Indexed %d states, %d transitions, %d validations, %d conditions in %.1f ms",
        stats.states, stats.transitions, stats.validations, stats.conditions, stats.elapsed_ms,
    )
    return index
