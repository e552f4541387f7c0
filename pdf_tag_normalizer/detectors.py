"""
Violation Detectors
Side-effect-free rule checks over a StructureTree.

Each detector yields ``Finding`` objects lazily while walking the tree and never
mutates it, so running a detector twice on the same tree yields the same findings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from pdf_tag_normalizer.pdf_structure_standards import (
    DEFAULT_GROUPING_ROLES,
    DISTINGUISHING_ATTRIBUTES,
    LIST,
    LIST_BODY,
    LIST_EXTRA_CHILDREN,
    LIST_ITEM,
    LIST_LABEL,
    ROOT_CONTAINER_ROLES,
    SECTIONING_ROLES,
    is_standard_type,
)
from pdf_tag_normalizer.structure_tree import StructureTree


class FindingKind(str, Enum):
    MALFORMED_LIST = "malformed-list"
    HEADING_SKIP = "heading-skip"
    HEADING_MISNEST = "heading-misnest"
    REDUNDANT_STRUCTURE = "redundant-structure"
    MISPLACED_LIST_PART = "misplaced-list-part"
    EXTRA_TITLE_HEADING = "extra-title-heading"
    ROOT_CONTAINER = "root-container"
    UNKNOWN_ROLE = "unknown-role"


@dataclass(frozen=True)
class Finding:
    """
    One detected violation.

    Identity across passes is ``(kind, node_id)``; ``related`` and ``detail``
    carry what the rewriter needs to re-validate the finding.
    """
    kind: FindingKind
    node_id: int
    description: str
    related: Tuple[int, ...] = ()
    detail: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> Tuple[FindingKind, int]:
        return (self.kind, self.node_id)


class Detector:
    """Base class for rule checks. Subclasses set ``kinds`` and implement ``detect``."""

    name = "detector"
    kinds: Tuple[FindingKind, ...] = ()

    def detect(self, tree: StructureTree) -> Iterator[Finding]:
        raise NotImplementedError


def _role_label(tree: StructureTree, node_id: int) -> str:
    if tree.is_content(node_id):
        return "content"
    return tree.effective_role(node_id) or "?"


def list_item_roles(tree: StructureTree, item_id: int) -> List[str]:
    """Effective roles of an LI's children, with 'content' for marked-content leaves."""
    return [_role_label(tree, child) for child in tree.children(item_id)]


def is_well_formed_list_item(roles: List[str]) -> bool:
    """True when the roles are a non-empty subsequence of (Lbl, LBody)."""
    return roles in ([LIST_LABEL], [LIST_BODY], [LIST_LABEL, LIST_BODY])


def is_list_child_allowed(tree: StructureTree, node_id: int) -> bool:
    if tree.is_content(node_id):
        return False
    role = tree.effective_role(node_id)
    return role == LIST_ITEM or role in LIST_EXTRA_CHILDREN


class ListStructureDetector(Detector):
    """
    Every child of an L must be an LI (or Caption); every LI's children must be
    a subsequence of (Lbl, LBody).
    """

    name = "list-structure"
    kinds = (FindingKind.MALFORMED_LIST,)

    def detect(self, tree: StructureTree) -> Iterator[Finding]:
        for list_id in tree.elements():
            if tree.effective_role(list_id) != LIST:
                continue
            for child_id in tree.children(list_id):
                if not is_list_child_allowed(tree, child_id):
                    yield Finding(
                        kind=FindingKind.MALFORMED_LIST,
                        node_id=child_id,
                        description=f"{_role_label(tree, child_id)} directly inside L",
                        related=(list_id,),
                        detail={"stray": True},
                    )
                    continue
                if tree.effective_role(child_id) != LIST_ITEM:
                    continue
                roles = list_item_roles(tree, child_id)
                if not is_well_formed_list_item(roles):
                    shape = "+".join(roles) if roles else "nothing"
                    yield Finding(
                        kind=FindingKind.MALFORMED_LIST,
                        node_id=child_id,
                        description=f"LI contains {shape}",
                        related=(list_id,),
                        detail={"stray": False, "roles": tuple(roles)},
                    )


def conflicting_heading_ancestor(tree: StructureTree, node_id: int) -> Optional[int]:
    """
    Nearest ancestor heading whose level is equal to or greater than the
    node's own (H3 holding an H2, H2 holding an H2) with no sectioning element
    in between, or None.
    """
    level = tree.heading_level(node_id)
    if level is None:
        return None
    for ancestor_id in tree.ancestors(node_id):
        if ancestor_id == tree.root_id:
            return None
        if tree.effective_role(ancestor_id) in SECTIONING_ROLES:
            return None
        ancestor_level = tree.heading_level(ancestor_id)
        if ancestor_level is not None and ancestor_level >= level:
            return ancestor_id
    return None


class HeadingHierarchyDetector(Detector):
    """Reading-order heading checks: level skips, heading-in-heading, extra H1s."""

    name = "heading-hierarchy"
    kinds = (
        FindingKind.HEADING_SKIP,
        FindingKind.HEADING_MISNEST,
        FindingKind.EXTRA_TITLE_HEADING,
    )

    def __init__(self, single_title_heading: bool = False):
        self.single_title_heading = single_title_heading

    def detect(self, tree: StructureTree) -> Iterator[Finding]:
        previous_level = 0
        seen_title = False
        for node_id in tree.elements():
            level = tree.heading_level(node_id)
            if level is None:
                continue

            if level > previous_level + 1:
                target = previous_level + 1
                reason = "first heading" if previous_level == 0 else f"follows H{previous_level}"
                yield Finding(
                    kind=FindingKind.HEADING_SKIP,
                    node_id=node_id,
                    description=f"H{level} skips a level ({reason})",
                    detail={"level": level, "target": target},
                )
            elif level == 1 and seen_title and self.single_title_heading:
                yield Finding(
                    kind=FindingKind.EXTRA_TITLE_HEADING,
                    node_id=node_id,
                    description="additional H1 after the document title",
                    detail={"level": level},
                )

            ancestor_id = conflicting_heading_ancestor(tree, node_id)
            if ancestor_id is not None:
                yield Finding(
                    kind=FindingKind.HEADING_MISNEST,
                    node_id=node_id,
                    description=f"H{level} nested inside H{tree.heading_level(ancestor_id)}",
                    related=(ancestor_id,),
                )

            seen_title = seen_title or level == 1
            previous_level = level


def has_distinguishing_attributes(tree: StructureTree, node_id: int) -> bool:
    return any(key in DISTINGUISHING_ATTRIBUTES for key in tree.node(node_id).attributes)


def is_redundant_grouping(tree: StructureTree, node_id: int, grouping_roles: Iterable[str]) -> bool:
    """A grouping element whose only child is an element and which carries no attributes of its own."""
    node = tree.node(node_id)
    if node.is_content or node_id == tree.root_id or node.role not in grouping_roles:
        return False
    if len(node.children) != 1 or tree.is_content(node.children[0]):
        return False
    return not has_distinguishing_attributes(tree, node_id)


class RedundantGroupingDetector(Detector):
    """Single-child grouping elements (Div, NonStruct) that add no semantics."""

    name = "redundant-structure"
    kinds = (FindingKind.REDUNDANT_STRUCTURE,)

    def __init__(self, grouping_roles: Optional[FrozenSet[str]] = None):
        self.grouping_roles = frozenset(grouping_roles or DEFAULT_GROUPING_ROLES)

    def detect(self, tree: StructureTree) -> Iterator[Finding]:
        for node_id in tree.elements():
            if is_redundant_grouping(tree, node_id, self.grouping_roles):
                child_id = tree.children(node_id)[0]
                yield Finding(
                    kind=FindingKind.REDUNDANT_STRUCTURE,
                    node_id=node_id,
                    description=f"{tree.node(node_id).role} only wraps {_role_label(tree, child_id)}",
                    related=(child_id,),
                )


def is_misplaced_list_part(tree: StructureTree, node_id: int) -> bool:
    if tree.is_content(node_id) or tree.effective_role(node_id) not in (LIST_LABEL, LIST_BODY):
        return False
    parent_id = tree.parent(node_id)
    if parent_id is None or parent_id == tree.root_id:
        return True
    return tree.effective_role(parent_id) not in (LIST_ITEM, LIST)


class MisplacedListPartDetector(Detector):
    """Lbl or LBody outside of any list item."""

    name = "misplaced-list-part"
    kinds = (FindingKind.MISPLACED_LIST_PART,)

    def detect(self, tree: StructureTree) -> Iterator[Finding]:
        for node_id in tree.elements():
            if is_misplaced_list_part(tree, node_id):
                parent_id = tree.parent(node_id)
                parent_label = "the structure root" if parent_id == tree.root_id else _role_label(tree, parent_id)
                yield Finding(
                    kind=FindingKind.MISPLACED_LIST_PART,
                    node_id=node_id,
                    description=f"unexpected {tree.effective_role(node_id)} inside {parent_label}",
                )


def single_root_container(tree: StructureTree) -> Optional[int]:
    """The sole top-level element when it is a Sect/Part/Art standing in for Document."""
    top_level = tree.element_children(tree.root_id)
    if len(top_level) != 1:
        return None
    candidate = top_level[0]
    role = tree.effective_role(candidate)
    if role in ROOT_CONTAINER_ROLES:
        return candidate
    return None


class RootContainerDetector(Detector):
    """A single top-level Sect, Part or Art where Document is expected."""

    name = "root-container"
    kinds = (FindingKind.ROOT_CONTAINER,)

    def detect(self, tree: StructureTree) -> Iterator[Finding]:
        candidate = single_root_container(tree)
        if candidate is not None:
            yield Finding(
                kind=FindingKind.ROOT_CONTAINER,
                node_id=candidate,
                description=f"top-level {tree.effective_role(candidate)} instead of Document",
            )


def is_unknown_role(tree: StructureTree, node_id: int) -> bool:
    """An element whose role is not standard and does not resolve to one through the RoleMap."""
    if tree.is_content(node_id) or node_id == tree.root_id:
        return False
    return not is_standard_type(tree.effective_role(node_id) or "")


class UnknownRoleDetector(Detector):
    name = "unknown-role"
    kinds = (FindingKind.UNKNOWN_ROLE,)

    def detect(self, tree: StructureTree) -> Iterator[Finding]:
        for node_id in tree.elements():
            if is_unknown_role(tree, node_id):
                yield Finding(
                    kind=FindingKind.UNKNOWN_ROLE,
                    node_id=node_id,
                    description=f"unexpected tag: {tree.node(node_id).role}",
                )


def default_detectors(single_title_heading: bool = False, grouping_roles=None) -> List[Detector]:
    return [
        RootContainerDetector(),
        ListStructureDetector(),
        MisplacedListPartDetector(),
        HeadingHierarchyDetector(single_title_heading=single_title_heading),
        RedundantGroupingDetector(grouping_roles=grouping_roles),
        UnknownRoleDetector(),
    ]
