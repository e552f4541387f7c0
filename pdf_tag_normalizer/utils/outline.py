"""Human-readable outline of a structure tree, one element per line."""

from __future__ import annotations

from typing import List, Mapping, Optional

from pdf_tag_normalizer.structure_tree import StructureTree

DISPLAY_COLUMN_WIDTH = 40
INDENT = "  "


def _role_text(tree: StructureTree, node_id: int) -> str:
    raw = tree.node(node_id).role
    effective = tree.effective_role(node_id)
    if effective != raw:
        return f"{effective} (mapped from {raw})"
    return raw


def _format_line(text: str, comment: Optional[str]) -> str:
    if not comment:
        return text
    padding = " " * (DISPLAY_COLUMN_WIDTH - len(text)) if len(text) < DISPLAY_COLUMN_WIDTH else "  "
    return f"{text}{padding}; {comment}"


def render_outline(tree: StructureTree, annotations: Optional[Mapping[int, str]] = None) -> List[str]:
    """
    Render the element hierarchy as indented ``- Role`` lines.

    Content leaves are not shown. An annotation for a node is appended after
    padding the line to column 40.

    Args:
        tree: Structure tree to render
        annotations: Optional node id -> comment

    Returns:
        Lines in reading order
    """
    annotations = annotations or {}
    lines: List[str] = []
    stack = [(child, 0) for child in reversed(tree.element_children(tree.root_id))]
    while stack:
        node_id, depth = stack.pop()
        text = f"{INDENT * depth}- {_role_text(tree, node_id)}"
        lines.append(_format_line(text, annotations.get(node_id)))
        stack.extend((child, depth + 1) for child in reversed(tree.element_children(node_id)))
    return lines

