"""
Structure Tree Model
In-memory arena of tag tree nodes addressed by stable integer ids.

Parent/child relationships are stored as ids on the nodes, and every mutation
goes through ``StructureTree`` so the single-parent / acyclic invariant is
enforced in one place instead of at each rewrite site.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from pdf_tag_normalizer.pdf_structure_standards import (
    clean_role,
    heading_level,
    resolve_role,
)

logger = logging.getLogger(__name__)

ROOT_ROLE = "StructTreeRoot"


class TreeConsistencyError(RuntimeError):
    """The tag tree no longer satisfies the single-parent / acyclic invariant."""


@dataclass
class StructureNode:
    """
    One structure element, or one content leaf when ``role`` is None.

    Attributes:
        node_id: Stable arena id
        role: Raw structure type without the leading '/', None for content leaves
        parent: Id of the holding node, None for the root and detached nodes
        children: Child ids in reading order
        attributes: Distinguishing keys of the element (Lang, Alt, ActualText, ...)
        content: MCID, MCR or OBJR object for content leaves
        page: Effective page of the node when it was loaded
        source: pikepdf object the node was loaded from (None when synthetic)
        synthetic: True for nodes created by a rewrite
    """
    node_id: int
    role: Optional[str] = None
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)
    attributes: Dict[str, Any] = field(default_factory=dict)
    content: Any = None
    page: Any = None
    source: Any = None
    synthetic: bool = False
    loaded_role: Optional[str] = None
    loaded_parent: Optional[int] = None
    loaded_children: Optional[Tuple[int, ...]] = None

    @property
    def is_content(self) -> bool:
        return self.role is None


class StructureTree:
    """Arena of ``StructureNode`` objects rooted at a synthetic StructTreeRoot node."""

    def __init__(self, role_map: Optional[Mapping[str, str]] = None, root_source: Any = None):
        self.role_map: Dict[str, str] = dict(role_map or {})
        self._nodes: Dict[int, StructureNode] = {}
        self._next_id = 0
        root = self._new_node(ROOT_ROLE, source=root_source)
        self.root_id = root.node_id

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _new_node(self, role: Optional[str], **kwargs) -> StructureNode:
        node = StructureNode(node_id=self._next_id, role=role, **kwargs)
        self._nodes[node.node_id] = node
        self._next_id += 1
        return node

    def add_element(
        self,
        role: str,
        parent_id: int,
        index: Optional[int] = None,
        attributes: Optional[Mapping[str, Any]] = None,
        source: Any = None,
        page: Any = None,
        synthetic: bool = False,
    ) -> int:
        """Create a structure element and attach it under ``parent_id``."""
        node = self._new_node(
            clean_role(role),
            attributes=dict(attributes or {}),
            source=source,
            page=page,
            synthetic=synthetic,
        )
        self.insert_child(parent_id, node.node_id, index)
        return node.node_id

    def add_content(
        self,
        content: Any,
        parent_id: int,
        index: Optional[int] = None,
        page: Any = None,
    ) -> int:
        """Create a content leaf (marked content or object reference) under ``parent_id``."""
        node = self._new_node(None, content=content, page=page)
        self.insert_child(parent_id, node.node_id, index)
        return node.node_id

    def mark_loaded(self) -> None:
        """Snapshot role/parent/children so commit can tell which nodes changed."""
        for node in self._nodes.values():
            node.loaded_role = node.role
            node.loaded_parent = node.parent
            node.loaded_children = tuple(node.children)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def node(self, node_id: int) -> StructureNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise KeyError(f"No structure node with id {node_id}") from None

    def children(self, node_id: int) -> Tuple[int, ...]:
        return tuple(self.node(node_id).children)

    def element_children(self, node_id: int) -> List[int]:
        return [child for child in self.node(node_id).children if not self._nodes[child].is_content]

    def parent(self, node_id: int) -> Optional[int]:
        return self.node(node_id).parent

    def is_content(self, node_id: int) -> bool:
        return self.node(node_id).is_content

    def effective_role(self, node_id: int) -> Optional[str]:
        """Role after RoleMap resolution; None for content leaves."""
        return resolve_role(self.node(node_id).role, self.role_map)

    def heading_level(self, node_id: int) -> Optional[int]:
        return heading_level(self.effective_role(node_id))

    def index_in_parent(self, node_id: int) -> int:
        parent_id = self.parent(node_id)
        if parent_id is None:
            raise TreeConsistencyError(f"Node {node_id} has no parent")
        return self._nodes[parent_id].children.index(node_id)

    def ancestors(self, node_id: int) -> Iterator[int]:
        """Yield the ancestors of a node, nearest first, ending with the root."""
        current = self.parent(node_id)
        steps = 0
        while current is not None:
            yield current
            current = self._nodes[current].parent
            steps += 1
            if steps > len(self._nodes):
                raise TreeConsistencyError(f"Cycle detected above node {node_id}")

    def is_ancestor(self, ancestor_id: int, node_id: int) -> bool:
        return any(candidate == ancestor_id for candidate in self.ancestors(node_id))

    def walk(self, start: Optional[int] = None) -> Iterator[int]:
        """Pre-order traversal (document reading order), including ``start``."""
        stack = [self.root_id if start is None else start]
        while stack:
            node_id = stack.pop()
            yield node_id
            stack.extend(reversed(self._nodes[node_id].children))

    def elements(self) -> Iterator[int]:
        """Structure elements in reading order, excluding the root."""
        for node_id in self.walk():
            if node_id != self.root_id and not self._nodes[node_id].is_content:
                yield node_id

    def content_leaves(self, start: Optional[int] = None) -> List[Any]:
        """Content references under ``start`` in reading order."""
        return [self._nodes[node_id].content for node_id in self.walk(start) if self._nodes[node_id].is_content]

    def describe(self, node_id: int) -> str:
        """Short human-readable label such as ``LI [obj 12]`` or ``H3 (mapped from Heading3)``."""
        node = self.node(node_id)
        if node.is_content:
            content = node.content
            if isinstance(content, int):
                return f"MCID {content}"
            return "content"
        role = self.effective_role(node_id)
        label = role if role == node.role else f"{role} (mapped from {node.role})"
        objgen = getattr(node.source, "objgen", (0, 0))
        if objgen and objgen[0]:
            return f"{label} [obj {objgen[0]}]"
        return label

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def insert_child(self, parent_id: int, child_id: int, index: Optional[int] = None) -> None:
        """Attach a detached node under ``parent_id`` at ``index`` (append when None)."""
        parent = self.node(parent_id)
        child = self.node(child_id)
        if parent.is_content:
            raise TreeConsistencyError(f"Cannot add children to content leaf {parent_id}")
        if child_id == self.root_id:
            raise TreeConsistencyError("The root cannot be attached under another node")
        if child.parent is not None:
            raise TreeConsistencyError(
                f"Node {child_id} is already held by {child.parent}; detach it first"
            )
        if child_id == parent_id or self.is_ancestor(child_id, parent_id):
            raise TreeConsistencyError(f"Attaching {child_id} under {parent_id} would create a cycle")

        if index is None:
            parent.children.append(child_id)
        else:
            if index < 0 or index > len(parent.children):
                raise IndexError(f"Index {index} out of range for node {parent_id}")
            parent.children.insert(index, child_id)
        child.parent = parent_id

    def remove_child(self, parent_id: int, child_id: int) -> int:
        """Detach ``child_id`` from ``parent_id``; returns the slot it occupied."""
        parent = self.node(parent_id)
        child = self.node(child_id)
        if child.parent != parent_id:
            raise TreeConsistencyError(f"Node {child_id} is not a child of {parent_id}")
        index = parent.children.index(child_id)
        del parent.children[index]
        child.parent = None
        return index

    def set_role(self, node_id: int, role: str) -> str:
        """Replace the role of an element; returns the previous raw role."""
        node = self.node(node_id)
        if node.is_content or node_id == self.root_id:
            raise TreeConsistencyError(f"Node {node_id} has no role to replace")
        previous = node.role
        node.role = clean_role(role)
        return previous

    def move(self, node_id: int, new_parent_id: int, index: Optional[int] = None) -> None:
        """
        Move a subtree to a new parent.

        ``index`` is interpreted after the node has been detached, so moving
        within the same parent works as "remove, then insert at index".
        """
        if node_id == new_parent_id or self.is_ancestor(node_id, new_parent_id):
            raise TreeConsistencyError(f"Cannot move {node_id} into its own subtree")
        old_parent = self.parent(node_id)
        if old_parent is None:
            raise TreeConsistencyError(f"Node {node_id} is detached")
        self.remove_child(old_parent, node_id)
        self.insert_child(new_parent_id, node_id, index)

    def unwrap(self, node_id: int) -> List[int]:
        """Replace a node with its children in the parent's child sequence and discard it."""
        if node_id == self.root_id:
            raise TreeConsistencyError("The root cannot be unwrapped")
        node = self.node(node_id)
        parent_id = node.parent
        if parent_id is None:
            raise TreeConsistencyError(f"Node {node_id} is detached")

        promoted = list(node.children)
        index = self.remove_child(parent_id, node_id)
        parent = self._nodes[parent_id]
        parent.children[index:index] = promoted
        for child_id in promoted:
            self._nodes[child_id].parent = parent_id
        node.children = []
        del self._nodes[node_id]
        return promoted

    def wrap(
        self,
        parent_id: int,
        start: int,
        end: int,
        role: str,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """Wrap ``children[start:end]`` of ``parent_id`` in a new synthetic element."""
        parent = self.node(parent_id)
        if parent.is_content:
            raise TreeConsistencyError(f"Content leaf {parent_id} has no children to wrap")
        if not 0 <= start < end <= len(parent.children):
            raise IndexError(f"Invalid child range [{start}:{end}] for node {parent_id}")

        wrapped = parent.children[start:end]
        wrapper = self._new_node(
            clean_role(role),
            attributes=dict(attributes or {}),
            synthetic=True,
            parent=parent_id,
            children=list(wrapped),
        )
        parent.children[start:end] = [wrapper.node_id]
        for child_id in wrapped:
            self._nodes[child_id].parent = wrapper.node_id
        return wrapper.node_id

    # ------------------------------------------------------------------
    # Invariant
    # ------------------------------------------------------------------

    def check_consistency(self) -> None:
        """
        Verify the single-parent / acyclic invariant over the whole arena.

        Raises:
            TreeConsistencyError: on a dangling id, a parent pointer that does not
                match its holder, a node held twice, a cycle, or a node that is
                no longer reachable from the root.
        """
        root = self._nodes.get(self.root_id)
        if root is None or root.parent is not None:
            raise TreeConsistencyError("Root node is missing or has a parent")

        seen = set()
        stack = [self.root_id]
        while stack:
            node_id = stack.pop()
            if node_id in seen:
                raise TreeConsistencyError(f"Node {node_id} is reachable twice (shared or cyclic)")
            seen.add(node_id)
            node = self._nodes[node_id]
            if node.is_content and node.children:
                raise TreeConsistencyError(f"Content leaf {node_id} has children")
            for child_id in node.children:
                child = self._nodes.get(child_id)
                if child is None:
                    raise TreeConsistencyError(f"Node {node_id} holds unknown child {child_id}")
                if child.parent != node_id:
                    raise TreeConsistencyError(
                        f"Node {child_id} is held by {node_id} but points to {child.parent}"
                    )
                stack.append(child_id)

        orphaned = set(self._nodes) - seen
        if orphaned:
            raise TreeConsistencyError(f"Nodes not reachable from the root: {sorted(orphaned)}")
        logger.debug(f"[StructureTree] Consistency check passed for {len(seen)} nodes")
