"""Read-only queries over a built :class:`~stategraph_cli.indexer.SearchIndex`."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .indexer import SearchIndex, tokenize
from .models import (
    ConditionDocument,
    Document,
    ImpactReport,
    ScoredDocument,
    StateDetails,
    TransitionDocument,
    ValidationDocument,
)

logger = logging.getLogger(__name__)

TICKET_QUERY_RE = re.compile(r"^[A-Za-z]+-\d+$")
TICKET_SCORE = 100.0

DEFAULT_TYPES = ("states", "transitions", "validations", "conditions", "setups")
_TYPE_ALIASES = {
    "state": "state", "states": "state",
    "transition": "transition", "transitions": "transition",
    "validation": "validation", "validations": "validation",
    "condition": "condition", "conditions": "condition",
    "setup": "setup", "setups": "setup",
}
_TYPE_BOOST = {"validation": 1.1, "condition": 1.2}


def _resolve_types(types: Optional[Iterable[str]]) -> List[str]:
    resolved: List[str] = []
    for name in types or DEFAULT_TYPES:
        doc_type = _TYPE_ALIASES.get(name.strip().lower())
        if doc_type is None:
            raise ValueError(f"Unknown document type: {name!r}")
        if doc_type not in resolved:
            resolved.append(doc_type)
    return resolved


def _candidates(index: SearchIndex, terms: Sequence[str]) -> Set[str]:
    candidates: Set[str] = set()
    for term in terms:
        candidates |= index.inverted_index.get(term, set())
    # partial words: a query term prefixing an index term or the other way round
    for indexed_term, doc_ids in index.inverted_index.items():
        if any(indexed_term.startswith(t) or t.startswith(indexed_term) for t in terms):
            candidates |= doc_ids
    return candidates


def score_document(doc: Document, terms: Sequence[str], query: str) -> float:
    """Relevance of *doc* for the tokenized *terms* of *query*."""
    text = doc.text.lower()
    doc_id = doc.id.lower()
    label = doc.label.lower()
    description = doc.description.lower()
    field = doc.field.lower()

    score = 0.0
    for term in terms:
        if term in text:
            score += 10
            if re.search(rf"\b{re.escape(term)}\b", text):
                score += 5
        if term in doc_id:
            score += 12
        if label and term in label:
            score += 8
        if description and term in description:
            score += 6
        if field and term in field:
            score += 15

    if query.lower() in text:
        score *= 1.5
    score *= _TYPE_BOOST.get(doc.doc_type, 1.0)
    return round(score, 2)


def search(
    index: SearchIndex,
    query: str,
    types: Optional[Iterable[str]] = None,
    limit: int = 20,
    min_score: float = 3,
) -> List[ScoredDocument]:
    """Rank documents for *query*.

    A query that is exactly a known ticket id (``SC-13092``) returns that
    ticket's validations at score 100 and skips text scoring.  Otherwise
    results are sorted by score (descending) then id, and truncated to
    *limit*.
    """
    query = (query or "").strip()
    if not query:
        return []

    if TICKET_QUERY_RE.match(query):
        hits = index.by_ticket.get(query.upper())
        if hits:
            return [ScoredDocument(doc, TICKET_SCORE, "ticket") for doc in hits]

    terms = tokenize(query)
    if not terms:
        return []

    candidates = _candidates(index, terms)
    results: List[ScoredDocument] = []
    for doc_type in _resolve_types(types):
        for doc in index.collection(doc_type):
            if candidates and doc.id not in candidates:
                continue
            score = score_document(doc, terms, query)
            if score >= min_score:
                results.append(ScoredDocument(doc, score))

    results.sort(key=lambda r: (-r.score, r.document.id))
    logger.debug("Query %r matched %d documents", query, len(results))
    return results[:limit]


# ===================================================================
# Exact lookups
# ===================================================================

def find_by_condition(index: SearchIndex, field_pattern: str) -> List[ConditionDocument]:
    """Conditions whose field key or full path contains *field_pattern*."""
    pattern = (field_pattern or "").strip().lower()
    if not pattern:
        return []
    found: Dict[str, ConditionDocument] = {}
    for key in sorted(index.by_field):
        if pattern in key:
            for condition in index.by_field[key]:
                found.setdefault(condition.id, condition)
    for condition in index.conditions:
        if pattern in condition.field.lower():
            found.setdefault(condition.id, condition)
    return list(found.values())


def find_by_ticket(index: SearchIndex, ticket_id: str) -> List[ValidationDocument]:
    return list(index.by_ticket.get((ticket_id or "").strip().upper(), []))


def find_by_event(index: SearchIndex, event: str) -> List[TransitionDocument]:
    return list(index.by_event.get((event or "").strip().upper(), []))


def get_state_details(index: SearchIndex, state_id: str) -> Optional[StateDetails]:
    state = index.by_state.get(state_id)
    if state is None:
        return None
    return StateDetails(
        state=state,
        outgoing=index.outgoing(state_id),
        incoming=index.incoming(state_id),
        validations=[v for v in index.validations if v.state == state_id],
        conditions=[c for c in index.conditions if c.state == state_id],
        setups=[s for s in index.setups if s.state == state_id],
    )


def suggest(index: SearchIndex, prefix: str, limit: int = 10) -> List[str]:
    """Autocomplete over state ids, labels, events, field keys and tickets."""
    needle = (prefix or "").strip().lower()
    if len(needle) < 2:
        return []
    pool: List[str] = []
    pool.extend(index.by_state)
    pool.extend(s.status_label for s in index.states)
    pool.extend(index.by_event)
    pool.extend(index.by_field)
    pool.extend(index.by_ticket)
    matches = [item for item in dict.fromkeys(pool) if item and needle in item.lower()]
    return matches[:limit]


def impact(index: SearchIndex, state_id: str) -> Optional[ImpactReport]:
    """Which states lead into *state_id*, and what checks hang off it."""
    if state_id not in index.by_state:
        return None
    incoming = index.incoming(state_id)
    outgoing = index.outgoing(state_id)
    return ImpactReport(
        state=state_id,
        dependent_states=list(dict.fromkeys(t.from_state for t in incoming)),
        affected_transitions=incoming + outgoing,
        affected_validations=[v for v in index.validations if v.state == state_id],
    )
