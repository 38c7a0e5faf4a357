"""Tiered extraction of state metadata from implication source files.

Implication files are hand-written classes whose ``xstateConfig`` and
``mirrorsOn`` literals mix plain data with live code.  Extraction tries
progressively weaker strategies:

1. locate the literal's declaration,
2. cut out the balanced literal text,
3. strip runtime-only values and parse the rest as static data,
4. fall back to targeted regexes for the handful of fields callers need.

:func:`extract` never raises for bad input; ``parse_quality`` reports which
tier produced the result.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from .errors import LiteralSyntaxError
from .literal import decode_string, evaluate_literal, scan_balanced, split_top_level
from .models import ExtractionResult, ParseQuality, TransitionSpec

logger = logging.getLogger(__name__)

XSTATE_CONFIG = "xstateConfig"
MIRRORS_ON = "mirrorsOn"

META_STRING_FIELDS = ("status", "statusLabel", "platform", "entity", "description")

_CLASS_RE = re.compile(r"\bclass\s+([A-Za-z_$][\w$]*)")
_KEY_RE = re.compile(r"\s*(?:(['\"])(.*?)\1|([A-Za-z_$][\w$]*))\s*:(?!:)", re.S)
_STRING_VALUE_RE = re.compile(r"\s*(['\"`])((?:\\.|(?!\1)[^\\])*)\1\s*", re.S)
_STRING_ITEM_RE = re.compile(r"(['\"`])((?:\\.|(?!\1)[^\\])*)\1", re.S)
_LEADING_COMMENTS_RE = re.compile(r"^(?:\s*(?://[^\n]*|/\*.*?\*/))+", re.S)


def _declaration_re(name: str) -> "re.Pattern[str]":
    return re.compile(
        rf"(?:^|[^\w$])(?:static\s+)?{name}\s*(?:=(?![=>])|:)\s*(?=\{{)",
        re.M,
    )


_DECLARATIONS = {
    XSTATE_CONFIG: _declaration_re(XSTATE_CONFIG),
    MIRRORS_ON: _declaration_re(MIRRORS_ON),
}


# ===================================================================
# Public API
# ===================================================================

def locate_literal(source: str, name: str) -> Optional[str]:
    """Return the balanced literal text declared as *name*, if any."""
    pattern = _DECLARATIONS.get(name) or _declaration_re(re.escape(name))
    for match in pattern.finditer(source):
        brace = source.find("{", match.end())
        literal = scan_balanced(source, brace)
        if literal is not None:
            return literal
    return None


def extract(source: str) -> ExtractionResult:
    """Recover ``meta``, transitions and UI validation from *source*."""
    result = ExtractionResult(class_name=_class_name(source))
    qualities: List[ParseQuality] = []

    xstate_text = locate_literal(source, XSTATE_CONFIG)
    if xstate_text is not None:
        result.has_xstate_config = True
        config = _evaluate(xstate_text, XSTATE_CONFIG)
        if config is not None:
            _apply_xstate(result, config)
            qualities.append(ParseQuality.LITERAL)
        else:
            _guarded(_apply_xstate_regex, result, xstate_text)
            qualities.append(ParseQuality.REGEX)

    mirrors_text = locate_literal(source, MIRRORS_ON)
    if mirrors_text is not None:
        result.has_mirrors_on = True
        config = _evaluate(mirrors_text, MIRRORS_ON)
        if config is not None:
            result.ui_validation = normalize_ui(config.get("UI"))
            qualities.append(ParseQuality.LITERAL)
        else:
            _guarded(_apply_mirrors_regex, result, mirrors_text)
            qualities.append(ParseQuality.REGEX)

    if qualities:
        result.parse_quality = max(qualities, key=lambda q: q.rank)
    return result


# ===================================================================
# Tier 3: static evaluation
# ===================================================================

def _evaluate(text: str, name: str) -> Optional[Dict[str, Any]]:
    try:
        value = evaluate_literal(text)
    except (LiteralSyntaxError, RecursionError, OverflowError) as exc:
        logger.debug("Static evaluation of %s failed: %s", name, exc)
        return None
    if not isinstance(value, dict):
        logger.debug("%s is not an object literal", name)
        return None
    return value


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _apply_xstate(result: ExtractionResult, config: Dict[str, Any]) -> None:
    result.meta = dict(_as_dict(config.get("meta")))
    xstate_id = config.get("id")
    if isinstance(xstate_id, str) and xstate_id:
        result.xstate_id = xstate_id
    result.transitions = normalize_transitions(_as_dict(config.get("on")))


def normalize_transitions(on: Dict[str, Any]) -> List[TransitionSpec]:
    """Flatten an ``on`` table into one spec per transition variant."""
    specs: List[TransitionSpec] = []
    for event, value in on.items():
        variants = value if isinstance(value, list) else [value]
        for variant in variants:
            spec = _transition_from_value(str(event), variant)
            if spec is not None:
                specs.append(spec)
    return specs


def _transition_from_value(event: str, value: Any) -> Optional[TransitionSpec]:
    if isinstance(value, str):
        return TransitionSpec(event=event, target=value) if value else None
    if not isinstance(value, dict):
        return None
    target = value.get("target")
    if not isinstance(target, str) or not target:
        return None
    meta = _as_dict(value.get("meta"))
    details = _as_dict(value.get("actionDetails"))
    description = details.get("description") or meta.get("description") or value.get("description") or ""
    steps = details.get("steps")
    step_descriptions = [
        step["description"]
        for step in (steps if isinstance(steps, list) else [])
        if isinstance(step, dict) and isinstance(step.get("description"), str)
    ]
    return TransitionSpec(
        event=event,
        target=target,
        platforms=_transition_platforms(value, meta, details),
        description=description if isinstance(description, str) else "",
        step_descriptions=step_descriptions,
    )


def _transition_platforms(value: Dict[str, Any], meta: Dict[str, Any], details: Dict[str, Any]) -> List[str]:
    for raw in (value.get("platforms"), meta.get("platform"), details.get("platform")):
        if isinstance(raw, list):
            return [p for p in raw if isinstance(p, str)]
        if isinstance(raw, str) and raw:
            return [raw]
    return []


def normalize_ui(ui: Any) -> Dict[str, Dict[str, List[Dict[str, Any]]]]:
    """Coerce a ``mirrorsOn.UI`` tree to platform -> screen -> [definition]."""
    normalized: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
    for platform, screens in _as_dict(ui).items():
        if not isinstance(screens, dict):
            continue
        normalized[platform] = {}
        for screen, definitions in screens.items():
            items = definitions if isinstance(definitions, list) else [definitions]
            normalized[platform][screen] = [d for d in items if isinstance(d, dict)]
    return normalized


# ===================================================================
# Tier 4: regex fallback
# ===================================================================

def _guarded(func, result: ExtractionResult, text: str) -> None:
    try:
        func(result, text)
    except Exception as exc:
        logger.warning("Regex fallback %s stopped early: %s", func.__name__, exc)


def _string_field(text: str, key: str) -> Optional[str]:
    match = re.search(
        rf"(?<![\w$]){re.escape(key)}\s*:\s*(['\"`])((?:\\.|(?!\1)[^\\])*)\1",
        text,
        re.S,
    )
    return decode_string(match.group(2)) if match else None


def _string_value(text: str) -> Optional[str]:
    match = _STRING_VALUE_RE.fullmatch(text)
    return decode_string(match.group(2)) if match else None


def _string_list(text: str, key: str) -> List[str]:
    match = re.search(rf"(?<![\w$]){re.escape(key)}\s*:\s*\[([^\]]*)\]", text)
    if not match:
        return []
    return [decode_string(m.group(2)) for m in _STRING_ITEM_RE.finditer(match.group(1))]


def _string_items(entries: Dict[str, str], text: str, key: str) -> List[str]:
    if not entries:
        return _string_list(text, key)
    value = entries.get(key, "")
    if not value.startswith("["):
        return []
    return [decode_string(m.group(2)) for m in _STRING_ITEM_RE.finditer(value)]


def _object_entries(text: str) -> Dict[str, str]:
    """Map each top-level key of an object literal to its raw value text."""
    text = text.strip()
    if not (text.startswith("{") and text.endswith("}")):
        return {}
    entries: Dict[str, str] = {}
    for piece in split_top_level(text[1:-1]):
        match = _KEY_RE.match(_LEADING_COMMENTS_RE.sub("", piece))
        if match is None:
            continue
        key = match.group(2) if match.group(1) else match.group(3)
        entries[key] = piece[match.end():].strip()
    return entries


def _array_items(text: str) -> List[str]:
    text = text.strip()
    if not (text.startswith("[") and text.endswith("]")):
        return []
    return split_top_level(text[1:-1])


def _bracketed_after(text: str, key: str) -> List[Tuple[int, str]]:
    """Every ``key: [ ... ]`` array literal in *text*, with its offset."""
    found = []
    for match in re.finditer(rf"(?<![\w$]){re.escape(key)}\s*:\s*(?=\[)", text):
        literal = scan_balanced(text, match.end())
        if literal is not None:
            found.append((match.end(), literal))
    return found


def _apply_xstate_regex(result: ExtractionResult, text: str) -> None:
    entries = _object_entries(text)
    meta_text = entries.get("meta", text)
    result.meta = {}
    for key in META_STRING_FIELDS:
        value = _string_field(meta_text, key)
        if value is not None:
            result.meta[key] = value
    if "id" in entries:
        result.xstate_id = _string_value(entries["id"])

    specs: List[TransitionSpec] = []
    for event, value_text in _object_entries(entries.get("on", "")).items():
        target = _string_value(value_text)
        if target:
            specs.append(TransitionSpec(event=event, target=target))
            continue
        platforms = _string_list(value_text, "platforms")
        for match in re.finditer(r"(?<![\w$])target\s*:\s*(['\"`])((?:\\.|(?!\1)[^\\])*)\1", value_text):
            specs.append(TransitionSpec(
                event=event,
                target=decode_string(match.group(2)),
                platforms=list(platforms),
            ))
    result.transitions = specs


def _apply_mirrors_regex(result: ExtractionResult, text: str) -> None:
    ui: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
    for platform, screens_text in _object_entries(_object_entries(text).get("UI", "")).items():
        screens: Dict[str, List[Dict[str, Any]]] = {}
        for screen, definition_text in _object_entries(screens_text).items():
            if definition_text.startswith("["):
                items = _array_items(definition_text)
            else:
                items = [definition_text]
            screens[screen] = [_screen_definition_regex(item) for item in items]
        ui[platform] = screens
    result.ui_validation = ui


def _screen_definition_regex(text: str) -> Dict[str, Any]:
    # wrapped definitions (helper calls) have no top-level entries; scan them whole
    entries = _object_entries(text)
    if entries:
        description = _string_value(entries.get("description", ""))
    else:
        description = _string_field(text, "description")

    definition: Dict[str, Any] = {
        "description": description or "",
        "visible": _string_items(entries, text, "visible"),
        "hidden": _string_items(entries, text, "hidden"),
    }

    blocks_text = entries.get("blocks")
    if blocks_text is None:
        arrays = _bracketed_after(text, "blocks")
        blocks_text = arrays[0][1] if arrays else ""
    blocks = [_block_regex(item) for item in _array_items(blocks_text)]
    definition["blocks"] = [block for block in blocks if block.get("id")]
    return definition


def _block_regex(text: str) -> Dict[str, Any]:
    entries = _object_entries(text)

    def pick(key: str) -> Optional[str]:
        if key in entries:
            return _string_value(entries[key])
        return _string_field(text, key)

    block: Dict[str, Any] = {"id": pick("id"), "label": pick("label") or "", "type": pick("type") or ""}
    checks: List[Dict[str, Any]] = []
    for _, array_text in _bracketed_after(entries.get("conditions", text), "checks"):
        for item in _array_items(array_text):
            check_entries = _object_entries(item)
            field_name = _string_value(check_entries.get("field", "")) or _string_field(item, "field")
            if not field_name:
                continue
            check: Dict[str, Any] = {"field": field_name}
            for key in ("id", "operator"):
                value = _string_value(check_entries[key]) if key in check_entries else None
                if value:
                    check[key] = value
            checks.append(check)
    if checks:
        block["conditions"] = {"blocks": [{"data": {"checks": checks}}]}
    return block


def _class_name(source: str) -> Optional[str]:
    names = _CLASS_RE.findall(source)
    for name in names:
        if name.endswith("Implications"):
            return name
    return names[0] if names else None
