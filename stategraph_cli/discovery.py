"""Crawl a project for implication files and build the discovery manifest."""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .config import SKIP_DIRS, SOURCE_EXTENSIONS
from .extractor import extract
from .models import DiscoveredFile, DiscoveryResult, ExtractionResult

logger = logging.getLogger(__name__)

_IMPLICATION_CLASS_RE = re.compile(r"\bclass\s+\w+Implications\b")


def looks_like_implication(source: str) -> bool:
    return (
        "xstateConfig" in source
        or "mirrorsOn" in source
        or _IMPLICATION_CLASS_RE.search(source) is not None
    )


def iter_source_files(root: Path) -> List[Path]:
    files = [
        path
        for path in root.rglob("*")
        if path.suffix in SOURCE_EXTENSIONS
        and path.is_file()
        and not any(part in SKIP_DIRS for part in path.relative_to(root).parts)
    ]
    return sorted(files)


def ui_coverage(ui_validation: Dict[str, Dict[str, List[Dict[str, Any]]]]) -> Dict[str, Any]:
    """Summarise a UI tree as ``{total, platforms: {name: {screens, total}}}``."""
    platforms: Dict[str, Any] = {}
    total = 0
    for platform, screens in ui_validation.items():
        entries: List[Dict[str, Any]] = []
        for screen, definitions in screens.items():
            if not definitions:
                entries.append({"name": screen})
            for position, definition in enumerate(definitions):
                entries.append({**definition, "name": screen, "index": position})
        platforms[platform] = {"name": platform, "screens": entries, "total": len(entries)}
        total += len(entries)
    return {"total": total, "platforms": platforms}


def implication_metadata(extraction: ExtractionResult) -> Dict[str, Any]:
    meta = extraction.meta
    return {
        "className": extraction.class_name,
        "status": extraction.status,
        "statusLabel": meta.get("statusLabel") if isinstance(meta.get("statusLabel"), str) else None,
        "xstateId": extraction.xstate_id,
        "hasXStateConfig": extraction.has_xstate_config,
        "hasMirrorsOn": extraction.has_mirrors_on,
        "parseQuality": extraction.parse_quality.value,
        "terminal": meta.get("terminal") is True,
        "initial": meta.get("initial") is True,
        "xstateConfig": {"id": extraction.xstate_id, "meta": meta},
        "mirrorsOn": {"UI": extraction.ui_validation},
        "uiCoverage": ui_coverage(extraction.ui_validation),
    }


def _inspect(path: Path) -> Tuple[Optional[ExtractionResult], Optional[str]]:
    try:
        source = path.read_text(encoding="utf-8", errors="ignore")
    except OSError as exc:
        return None, str(exc)
    if not looks_like_implication(source):
        return None, None
    try:
        return extract(source), None
    except Exception as exc:
        return None, str(exc)


def discover_project(project_root: Path, max_workers: Optional[int] = None) -> DiscoveryResult:
    """Find implication files under *project_root* and extract their metadata."""
    root = Path(project_root).resolve()
    result = DiscoveryResult(project_path=str(root))
    paths = iter_source_files(root)

    if max_workers and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            inspected = list(pool.map(_inspect, paths))
    else:
        inspected = [_inspect(p) for p in paths]

    for path, (extraction, error) in zip(paths, inspected):
        rel_path = path.relative_to(root).as_posix()
        if error is not None:
            logger.warning("Failed to inspect %s: %s", rel_path, error)
            result.errors.append({"file": rel_path, "error": error})
            continue
        if extraction is None:
            continue
        metadata = implication_metadata(extraction)
        result.implications.append(DiscoveredFile(path=rel_path, metadata=metadata))
        source_state = extraction.status or extraction.class_name
        if not source_state:
            continue
        for spec in extraction.transitions:
            result.transitions.append({
                "from": source_state,
                "to": spec.target,
                "event": spec.event,
                "platforms": list(spec.platforms),
                "file": rel_path,
            })

    logger.info(
        "Discovered %d implications and %d transitions under %s",
        len(result.implications), len(result.transitions), root,
    )
    return result
