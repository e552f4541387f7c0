"""
Rewriters
Turn findings into tree mutations (changes) or warnings.

Every rewriter re-validates its finding against the current tree before acting:
an earlier rewrite in the same pass may already have fixed or removed the node,
in which case the finding is stale and the rewriter returns None.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from pdf_tag_normalizer.detectors import (
    Finding,
    FindingKind,
    conflicting_heading_ancestor,
    is_list_child_allowed,
    is_misplaced_list_part,
    is_redundant_grouping,
    is_unknown_role,
    is_well_formed_list_item,
    list_item_roles,
    single_root_container,
)
from pdf_tag_normalizer.pdf_structure_standards import (
    DEFAULT_GROUPING_ROLES,
    DOCUMENT,
    LIST,
    LIST_BODY,
    LIST_ITEM,
    LIST_ITEM_BODY_ROLES,
    LIST_LABEL,
    heading_role,
)
from pdf_tag_normalizer.structure_tree import StructureTree


CHANGE = "change"
WARNING = "warning"


@dataclass
class RewriteResult:
    outcome: str
    node_id: int
    description: str

    @classmethod
    def change(cls, node_id: int, description: str) -> "RewriteResult":
        return cls(CHANGE, node_id, description)

    @classmethod
    def warning(cls, node_id: int, description: str) -> "RewriteResult":
        return cls(WARNING, node_id, description)

    @property
    def is_change(self) -> bool:
        return self.outcome == CHANGE


class Rewriter:
    """Base class; ``kinds`` lists the finding kinds this rewriter owns."""

    kinds: Tuple[FindingKind, ...] = ()

    def rewrite(self, tree: StructureTree, finding: Finding) -> Optional[RewriteResult]:
        raise NotImplementedError


def _content_runs(indices: List[int]) -> List[Tuple[int, int]]:
    """Group sorted child indices into maximal contiguous [start, end) runs."""
    runs: List[Tuple[int, int]] = []
    for index in indices:
        if runs and runs[-1][1] == index:
            runs[-1] = (runs[-1][0], index + 1)
        else:
            runs.append((index, index + 1))
    return runs


class ListRewriter(Rewriter):
    kinds = (FindingKind.MALFORMED_LIST,)

    def __init__(self, grouping_roles: Optional[Iterable[str]] = None):
        self.grouping_roles: FrozenSet[str] = frozenset(grouping_roles or DEFAULT_GROUPING_ROLES)

    def rewrite(self, tree: StructureTree, finding: Finding) -> Optional[RewriteResult]:
        node_id = finding.node_id
        if node_id not in tree:
            return None
        parent_id = tree.parent(node_id)
        if parent_id is None or tree.effective_role(parent_id) != LIST:
            return None
        if not is_list_child_allowed(tree, node_id):
            return self._fix_stray_child(tree, parent_id, node_id)
        if tree.effective_role(node_id) == LIST_ITEM:
            return self._fix_list_item(tree, node_id)
        return None

    def _fix_stray_child(self, tree: StructureTree, list_id: int, node_id: int) -> RewriteResult:
        label = tree.describe(node_id)
        index = tree.index_in_parent(node_id)
        role = None if tree.is_content(node_id) else tree.effective_role(node_id)

        if role in self.grouping_roles and self._holds_list_items(tree, node_id):
            if not all(is_list_child_allowed(tree, child_id) for child_id in tree.children(node_id)):
                return RewriteResult.warning(node_id, f"{label}: {role} inside L mixes list items with other content")
            tree.unwrap(node_id)
            return RewriteResult.change(node_id, f"{label}: unwrapped {role} so its list items sit directly in L")

        if role is None or role in LIST_ITEM_BODY_ROLES:
            item_id = tree.wrap(list_id, index, index + 1, LIST_ITEM)
            tree.wrap(item_id, 0, 1, LIST_BODY)
            return RewriteResult.change(node_id, f"{label}: wrapped stray content of L in LI > LBody")

        if role == LIST_BODY:
            tree.wrap(list_id, index, index + 1, LIST_ITEM)
            return RewriteResult.change(node_id, f"{label}: wrapped stray LBody in LI")

        if role == LIST_LABEL:
            siblings = tree.children(list_id)
            end = index + 1
            if end < len(siblings) and not tree.is_content(siblings[end]) \
                    and tree.effective_role(siblings[end]) == LIST_BODY:
                tree.wrap(list_id, index, end + 1, LIST_ITEM)
                return RewriteResult.change(node_id, f"{label}: wrapped stray Lbl+LBody in LI")
            tree.wrap(list_id, index, end, LIST_ITEM)
            return RewriteResult.change(node_id, f"{label}: wrapped stray Lbl in LI")

        return RewriteResult.warning(node_id, f"{label}: unexpected {role} inside L")

    @staticmethod
    def _holds_list_items(tree: StructureTree, node_id: int) -> bool:
        return any(
            not tree.is_content(child_id) and tree.effective_role(child_id) == LIST_ITEM
            for child_id in tree.children(node_id)
        )

    def _fix_list_item(self, tree: StructureTree, item_id: int) -> Optional[RewriteResult]:
        roles = list_item_roles(tree, item_id)
        if is_well_formed_list_item(roles):
            return None

        label = tree.describe(item_id)
        children = tree.children(item_id)
        if not roles:
            return RewriteResult.warning(item_id, f"{label}: empty LI")

        labels = [i for i, role in enumerate(roles) if role == LIST_LABEL]
        bodies = [i for i, role in enumerate(roles) if role == LIST_BODY]
        if len(labels) > 1 or len(bodies) > 1:
            return RewriteResult.warning(item_id, f"{label}: duplicate Lbl/LBody ({'+'.join(roles)})")

        others = [i for i, role in enumerate(roles) if role not in (LIST_LABEL, LIST_BODY)]
        if not others:
            if roles == [LIST_BODY, LIST_LABEL]:
                tree.move(children[1], item_id, 0)
                return RewriteResult.change(item_id, f"{label}: moved Lbl before LBody")
            return RewriteResult.warning(item_id, f"{label}: unexpected children {'+'.join(roles)}")

        runs = _content_runs(others)
        if len(runs) > 1:
            return RewriteResult.warning(
                item_id, f"{label}: {len(runs)} separate content runs ({'+'.join(roles)}), cannot decide which belongs in LBody"
            )

        start, end = runs[0]
        if labels and labels[0] != 0:
            return RewriteResult.warning(item_id, f"{label}: unexpected children {'+'.join(roles)}")
        lead = 1 if labels else 0
        run_ids = list(children[start:end])

        if not bodies:
            if start == lead and end == len(roles):
                tree.wrap(item_id, start, end, LIST_BODY)
                return RewriteResult.change(item_id, f"{label}: wrapped {'+'.join(roles[start:end])} in LBody")
            return RewriteResult.warning(item_id, f"{label}: unexpected children {'+'.join(roles)}")

        body_index = bodies[0]
        body_id = children[body_index]

        if not labels and (start, end) == (0, 1) and body_index == 1 and roles[0] == 'P':
            tree.set_role(run_ids[0], LIST_LABEL)
            return RewriteResult.change(item_id, f"{label}: converted P+LBody to Lbl+LBody")

        if body_index == lead and start == body_index + 1 and end == len(roles):
            for child_id in run_ids:
                tree.move(child_id, body_id)
            return RewriteResult.change(item_id, f"{label}: moved trailing {'+'.join(roles[start:end])} into LBody")

        if start == lead and end == body_index:
            for offset, child_id in enumerate(run_ids):
                tree.move(child_id, body_id, offset)
            return RewriteResult.change(item_id, f"{label}: moved leading {'+'.join(roles[start:end])} into LBody")

        return RewriteResult.warning(item_id, f"{label}: unexpected children {'+'.join(roles)}")


def _on_edge(tree: StructureTree, ancestor_id: int, node_id: int, trailing: bool) -> bool:
    """True when every step from ``ancestor_id`` down to ``node_id`` is the first (or last) child."""
    current = node_id
    while current != ancestor_id:
        parent_id = tree.parent(current)
        siblings = tree.children(parent_id)
        edge = siblings[-1] if trailing else siblings[0]
        if edge != current:
            return False
        current = parent_id
    return True


def _remove_emptied_wrappers(tree: StructureTree, start_id: int, stop_id: int) -> List[str]:
    """Drop elements between ``start_id`` and ``stop_id`` (exclusive) left without children."""
    removed: List[str] = []
    current = start_id
    while current != stop_id and not tree.children(current):
        parent_id = tree.parent(current)
        removed.append(tree.effective_role(current))
        tree.unwrap(current)
        current = parent_id
    return removed


class HeadingRewriter(Rewriter):
    kinds = (
        FindingKind.HEADING_SKIP,
        FindingKind.HEADING_MISNEST,
        FindingKind.EXTRA_TITLE_HEADING,
    )

    def rewrite(self, tree: StructureTree, finding: Finding) -> Optional[RewriteResult]:
        if finding.node_id not in tree:
            return None
        if finding.kind == FindingKind.HEADING_SKIP:
            return self._fix_skip(tree, finding)
        if finding.kind == FindingKind.HEADING_MISNEST:
            return self._fix_misnest(tree, finding)
        if finding.kind == FindingKind.EXTRA_TITLE_HEADING:
            return self._fix_extra_title(tree, finding)
        return None

    def _fix_skip(self, tree: StructureTree, finding: Finding) -> Optional[RewriteResult]:
        level = tree.heading_level(finding.node_id)
        target = finding.detail.get("target")
        if level is None or level != finding.detail.get("level") or target is None or target >= level:
            return None
        label = tree.describe(finding.node_id)
        tree.set_role(finding.node_id, heading_role(target))
        return RewriteResult.change(finding.node_id, f"{label}: changed H{level} to H{target}")

    def _fix_misnest(self, tree: StructureTree, finding: Finding) -> Optional[RewriteResult]:
        node_id = finding.node_id
        ancestor_id = conflicting_heading_ancestor(tree, node_id)
        if ancestor_id is None or ancestor_id not in finding.related:
            return None

        label = tree.describe(node_id)
        ancestor_label = tree.describe(ancestor_id)
        holder_id = tree.parent(ancestor_id)
        old_parent_id = tree.parent(node_id)
        if _on_edge(tree, ancestor_id, node_id, trailing=True):
            tree.move(node_id, holder_id, tree.index_in_parent(ancestor_id) + 1)
            description = f"{label}: moved out of {ancestor_label} to follow it"
        elif _on_edge(tree, ancestor_id, node_id, trailing=False):
            tree.move(node_id, holder_id, tree.index_in_parent(ancestor_id))
            description = f"{label}: moved out of {ancestor_label} to precede it"
        else:
            return RewriteResult.warning(node_id, f"{label}: nested inside {ancestor_label} mid-content")

        removed = _remove_emptied_wrappers(tree, old_parent_id, ancestor_id)
        if removed:
            description += f" (removed empty {', '.join(removed)})"
        return RewriteResult.change(node_id, description)

    def _fix_extra_title(self, tree: StructureTree, finding: Finding) -> Optional[RewriteResult]:
        node_id = finding.node_id
        if tree.heading_level(node_id) != 1:
            return None
        first_title = next((candidate for candidate in tree.elements() if tree.heading_level(candidate) == 1), None)
        if first_title == node_id:
            return None
        label = tree.describe(node_id)
        tree.set_role(node_id, heading_role(2))
        return RewriteResult.change(node_id, f"{label}: changed extra H1 to H2")


class RedundancyRewriter(Rewriter):
    kinds = (FindingKind.REDUNDANT_STRUCTURE,)

    def __init__(self, grouping_roles: Optional[Iterable[str]] = None):
        self.grouping_roles: FrozenSet[str] = frozenset(grouping_roles or DEFAULT_GROUPING_ROLES)

    def rewrite(self, tree: StructureTree, finding: Finding) -> Optional[RewriteResult]:
        node_id = finding.node_id
        if node_id not in tree or not is_redundant_grouping(tree, node_id, self.grouping_roles):
            return None
        label = tree.describe(node_id)
        child_label = tree.describe(tree.children(node_id)[0])
        tree.unwrap(node_id)
        return RewriteResult.change(node_id, f"{label}: removed redundant wrapper around {child_label}")


class MisplacedListPartRewriter(Rewriter):
    kinds = (FindingKind.MISPLACED_LIST_PART,)

    def rewrite(self, tree: StructureTree, finding: Finding) -> Optional[RewriteResult]:
        node_id = finding.node_id
        if node_id not in tree or not is_misplaced_list_part(tree, node_id):
            return None
        return RewriteResult.warning(node_id, f"{tree.describe(node_id)}: {finding.description}")


class RootContainerRewriter(Rewriter):
    kinds = (FindingKind.ROOT_CONTAINER,)

    def rewrite(self, tree: StructureTree, finding: Finding) -> Optional[RewriteResult]:
        node_id = finding.node_id
        if node_id not in tree or single_root_container(tree) != node_id:
            return None
        label = tree.describe(node_id)
        tree.set_role(node_id, DOCUMENT)
        return RewriteResult.change(node_id, f"{label}: changed top-level container to Document")


class UnknownRoleRewriter(Rewriter):
    kinds = (FindingKind.UNKNOWN_ROLE,)

    def rewrite(self, tree: StructureTree, finding: Finding) -> Optional[RewriteResult]:
        node_id = finding.node_id
        if node_id not in tree or not is_unknown_role(tree, node_id):
            return None
        return RewriteResult.warning(node_id, f"{tree.describe(node_id)}: {finding.description}")


def default_rewriters(grouping_roles=None) -> List[Rewriter]:
    return [
        RootContainerRewriter(),
        ListRewriter(grouping_roles=grouping_roles),
        MisplacedListPartRewriter(),
        HeadingRewriter(),
        RedundancyRewriter(grouping_roles=grouping_roles),
        UnknownRoleRewriter(),
    ]


def rewriters_by_kind(rewriters: Iterable[Rewriter]) -> Dict[FindingKind, Rewriter]:
    """Index rewriters by the finding kinds they own; a later rewriter overrides an earlier one."""
    index: Dict[FindingKind, Rewriter] = {}
    for rewriter in rewriters:
        for kind in rewriter.kinds:
            index[kind] = rewriter
    return index
