"""Mermaid flowchart rendering of process steps."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Literal

from orgflow.models.department import DEFAULT_DEPARTMENT_COLOR
from orgflow.schemas.department import DepartmentRead
from orgflow.schemas.process import ProcessStep
from orgflow.services.colors import HEX_COLOR_PATTERN
from orgflow.services.normalizers import (
    normalize_branch_target,
    normalize_department_id,
    normalize_name_key,
)

CLUSTER_STYLE_TEXT_COLOR = "#0f172a"
CLUSTER_FILL_OPACITY = 0.18
MAX_LABEL_LINE_LENGTH = 18

NODE_STROKE_DEFAULT = "#0f172a"
TERMINAL_NODE_FILL = "#f8fafc"
NODE_FILL = "#ffffff"

DEFAULT_STEP_TYPE_LABELS: dict[str, str] = {
    "start": "Début",
    "action": "Action",
    "decision": "Décision",
    "finish": "Fin",
}

_WHITESPACE = re.compile(r"\s+")


def escape_html(value: str) -> str:
    # Ampersand first so the entities below are not escaped twice
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def wrap_step_label(value: str) -> list[str]:
    """Greedy word-wrap of a node label into lines of at most 18 characters.

    Words longer than a line are cut into 18-character chunks; the last
    chunk stays open so following words can join it.
    """
    source = value.strip() or "Step"
    lines: list[str] = []
    current = ""

    for word in _WHITESPACE.split(source):
        tentative = f"{current} {word}" if current else word
        if len(tentative) <= MAX_LABEL_LINE_LENGTH:
            current = tentative
            continue
        if current:
            lines.append(current)
        if len(word) > MAX_LABEL_LINE_LENGTH:
            chunks = [
                word[i : i + MAX_LABEL_LINE_LENGTH]
                for i in range(0, len(word), MAX_LABEL_LINE_LENGTH)
            ]
            lines.extend(chunks[:-1])
            current = chunks[-1]
        else:
            current = word

    if current:
        lines.append(current)
    return lines


def format_department_cluster_label(value: str) -> str:
    base = value.strip() or "Department"
    return escape_html(base).replace("&quot;", '\\"')


def get_cluster_style_declaration(cluster_id: str, color: str) -> str:
    normalized = color if HEX_COLOR_PATTERN.match(color or "") else DEFAULT_DEPARTMENT_COLOR
    return (
        f"style {cluster_id} fill:{normalized},stroke:{normalized},"
        f"color:{CLUSTER_STYLE_TEXT_COLOR},stroke-width:2px,"
        f"fill-opacity:{CLUSTER_FILL_OPACITY};"
    )


@dataclass
class _Cluster:
    label: str
    color: str
    nodes: list[str] = field(default_factory=list)


def _node_declaration(node_id: str, step_type: str, label: str) -> str:
    if step_type == "action":
        return f'{node_id}["{label}"]'
    if step_type == "decision":
        return f'{node_id}{{"{label}"}}'
    return f'{node_id}(("{label}"))'


def _edge(source_id: str, target_index: int, label: str | None = None) -> str:
    if label:
        return f"{source_id} -- {label} --> S{target_index}"
    return f"{source_id} --> S{target_index}"


def _connections(steps: Sequence[ProcessStep]) -> list[str]:
    index_by_id = {step.id: index for index, step in enumerate(steps)}
    connections: list[str] = []

    for index, step in enumerate(steps):
        node_id = f"S{index}"
        default_next = index + 1 if index + 1 < len(steps) else None

        if step.type != "decision":
            if default_next is not None:
                connections.append(_edge(node_id, default_next))
            continue

        yes_target = normalize_branch_target(step.yes_target_id)
        no_target = normalize_branch_target(step.no_target_id)
        if yes_target is None and no_target is None:
            if default_next is not None:
                connections.append(_edge(node_id, default_next))
            continue

        yes_index = index_by_id.get(yes_target, default_next) if yes_target else default_next
        no_index = index_by_id.get(no_target, default_next) if no_target else default_next
        if yes_index is not None and yes_index == no_index:
            connections.append(_edge(node_id, yes_index, "Oui/Non"))
            continue
        if yes_index is not None:
            connections.append(_edge(node_id, yes_index, "Oui"))
        if no_index is not None:
            connections.append(_edge(node_id, no_index, "Non"))

    return connections


def build_process_diagram(
    steps: Sequence[ProcessStep],
    departments: Sequence[DepartmentRead],
    direction: Literal["TD", "LR"] = "TD",
    show_departments: bool = True,
    step_type_labels: Mapping[str, str] | None = None,
) -> str:
    """Render a full ``flowchart`` definition for a step list.

    Nodes are named ``S<index>``. When ``show_departments`` is set, nodes
    are grouped into one subgraph per department, matched by department id
    or by draft department name.
    """
    declaration = f"flowchart {direction}"
    if not steps:
        return declaration

    type_labels = step_type_labels or DEFAULT_STEP_TYPE_LABELS
    clusters_by_id: dict[str, tuple[str, DepartmentRead]] = {}
    clusters_by_name: dict[str, tuple[str, DepartmentRead]] = {}
    role_colors: dict[str, str] = {}
    for index, department in enumerate(departments):
        entry = (f"cluster_{index}", department)
        clusters_by_id[str(department.id)] = entry
        key = normalize_name_key(department.name)
        if key:
            clusters_by_name[key] = entry
        for role in department.roles:
            role_colors[str(role.id)] = role.color

    clusters: dict[str, _Cluster] = {}
    ungrouped: list[str] = []
    node_styles: list[str] = []

    for index, step in enumerate(steps):
        node_id = f"S{index}"
        display_label = step.label.strip() or type_labels.get(step.type, step.type)
        label = "<br/>".join(escape_html(line) for line in wrap_step_label(display_label))

        entry = None
        if show_departments:
            department_id = normalize_department_id(step.department_id)
            draft_key = normalize_name_key(step.draft_department_name)
            if department_id:
                entry = clusters_by_id.get(department_id)
            elif draft_key:
                entry = clusters_by_name.get(draft_key)

        role_color = role_colors.get(step.role_id) if step.role_id else None
        department_color = entry[1].color if entry else None
        stroke = role_color or department_color or NODE_STROKE_DEFAULT
        fill = TERMINAL_NODE_FILL if step.type in ("start", "finish") else NODE_FILL
        node_styles.append(
            f"style {node_id} fill:{fill},stroke:{stroke},color:#0f172a,stroke-width:2px;"
        )

        node = _node_declaration(node_id, step.type, label)
        if entry is None:
            ungrouped.append(node)
            continue
        cluster_id, department = entry
        cluster = clusters.setdefault(cluster_id, _Cluster(department.name, department.color))
        cluster.nodes.append(node)

    cluster_direction = "TB" if direction == "TD" else direction
    cluster_lines: list[str] = []
    for cluster_id, cluster in clusters.items():
        cluster_lines.append(
            f'subgraph {cluster_id}["{format_department_cluster_label(cluster.label)}"]'
        )
        cluster_lines.append(f"  direction {cluster_direction}")
        cluster_lines.extend(f"  {node}" for node in cluster.nodes)
        cluster_lines.append("end")
        cluster_lines.append(get_cluster_style_declaration(cluster_id, cluster.color))

    return "\n".join(
        [declaration, *ungrouped, *cluster_lines, *_connections(steps), *node_styles]
    )
