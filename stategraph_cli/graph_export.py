"""State graph export to Graphviz DOT and a standalone HTML page."""

from __future__ import annotations

import html
from pathlib import Path
from typing import Dict, List

from .indexer import SearchIndex


def _graph(index: SearchIndex, focus: str = "") -> Dict[str, List[dict]]:
    nodes = {
        state.id: {"id": state.id, "label": state.status_label, "title": state.source_file, "dangling": False}
        for state in index.states
    }
    edges = [
        {"src": t.from_state, "dst": t.to_state, "event": t.event}
        for t in index.transitions
    ]
    # targets with no implication file still get a node
    for edge in edges:
        for end in (edge["src"], edge["dst"]):
            if end not in nodes:
                nodes[end] = {"id": end, "label": end, "title": "undefined state", "dangling": True}
    selected = _focused_subgraph(nodes, edges, focus)
    return {
        "nodes": [nodes[node_id] for node_id in selected["nodes"]],
        "edges": selected["edges"],
    }


def export_dot(index: SearchIndex, output_file: Path, focus: str = "") -> None:
    graph = _graph(index, focus)

    lines = ["digraph StateGraph {", "  rankdir=LR;", "  node [shape=box];"]
    for node in graph["nodes"]:
        style = ', style=dashed, color="red"' if node["dangling"] else ""
        lines.append(f'  "{_esc(node["id"])}" [label="{_esc(node["label"])}"{style}];')
    for edge in graph["edges"]:
        lines.append(
            f'  "{_esc(edge["src"])}" -> "{_esc(edge["dst"])}" [label="{_esc(edge["event"])}"];'
        )
    lines.append("}")
    output_file.write_text("\n".join(lines), encoding="utf-8")


def export_html(index: SearchIndex, output_file: Path, focus: str = "") -> None:
    """Render each state with its outgoing transitions as a static page."""
    graph = _graph(index, focus)
    title = html.escape(f"StateGraph: {Path(index.project_path).name}")

    outgoing: Dict[str, List[dict]] = {}
    for edge in graph["edges"]:
        outgoing.setdefault(edge["src"], []).append(edge)

    rows = []
    for node in graph["nodes"]:
        css = ' class="dangling"' if node["dangling"] else ""
        items = "".join(
            f'<li>{html.escape(e["event"])} &rarr; <a href="#{html.escape(e["dst"], quote=True)}">'
            f'{html.escape(e["dst"])}</a></li>'
            for e in outgoing.get(node["id"], [])
        )
        rows.append(
            f'    <section id="{html.escape(node["id"], quote=True)}" data-state="{html.escape(node["id"], quote=True)}"{css}>\n'
            f'      <h2>{html.escape(node["label"])} <small>{html.escape(node["id"])}</small></h2>\n'
            f'      <p class="file">{html.escape(node["title"])}</p>\n'
            f'      <ul>{items or "<li><em>no outgoing transitions</em></li>"}</ul>\n'
            "    </section>"
        )

    doc = "\n".join([
        "<!doctype html>",
        "<html>",
        "<head>",
        '  <meta charset="utf-8" />',
        f"  <title>{title}</title>",
        "  <style>",
        "    body { font-family: system-ui, sans-serif; margin: 24px; }",
        "    section { border-left: 4px solid #4a7; padding: 4px 12px; margin-bottom: 14px; }",
        "    section.dangling { border-color: #c33; }",
        "    .file { color: #777; font-size: 0.85em; margin: 0; }",
        "    small { color: #999; font-weight: normal; }",
        "  </style>",
        "</head>",
        "<body>",
        f"  <h1>{title}</h1>",
        f"  <p>{len(graph['nodes'])} states, {len(graph['edges'])} transitions</p>",
        "  <main>",
        *rows,
        "  </main>",
        "</body>",
        "</html>",
        "",
    ])
    output_file.write_text(doc, encoding="utf-8")


def _focused_subgraph(nodes: Dict[str, dict], edges: List[dict], focus: str) -> Dict[str, List]:
    if not focus:
        return {"nodes": sorted(nodes), "edges": edges}

    needle = focus.lower()
    focus_ids = {
        node_id
        for node_id, node in nodes.items()
        if needle in node_id.lower() or needle in node["label"].lower()
    }
    if not focus_ids:
        return {"nodes": sorted(nodes), "edges": edges}

    edge_subset = [e for e in edges if e["src"] in focus_ids or e["dst"] in focus_ids]
    node_subset = set(focus_ids)
    for e in edge_subset:
        node_subset.update((e["src"], e["dst"]))
    return {"nodes": sorted(node_subset), "edges": edge_subset}


def _esc(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
