"""
Structure I/O
Loads a pikepdf StructTreeRoot into a StructureTree and commits the tree back.

Commit preserves object identity: unchanged structure elements keep their
dictionaries, and only the keys that a rewrite actually touched (/K, /S, /P)
are written.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pikepdf
from pikepdf import Array, Dictionary, Name, String

from pdf_tag_normalizer.pdf_structure_standards import (
    DISTINGUISHING_ATTRIBUTES,
    clean_role,
    role_map_from_dictionary,
)
from pdf_tag_normalizer.structure_tree import StructureNode, StructureTree

logger = logging.getLogger(__name__)

# Element keys copied into StructureNode.attributes
_LOADED_ATTRIBUTES = tuple(sorted(DISTINGUISHING_ATTRIBUTES)) + ('T',)


def _is_dictionary(obj) -> bool:
    return isinstance(obj, Dictionary)


def _is_struct_elem(obj) -> bool:
    return _is_dictionary(obj) and "/S" in obj


def _is_content_reference(obj) -> bool:
    if isinstance(obj, int) and not isinstance(obj, bool):
        return True
    if _is_dictionary(obj):
        return obj.get("/Type") in (Name("/MCR"), Name("/OBJR"))
    return False


def _same_object(first, second) -> bool:
    """Identity comparison for pikepdf objects (objgen for indirect ones)."""
    if first is None or second is None:
        return first is None and second is None
    first_objgen = getattr(first, "objgen", (0, 0))
    second_objgen = getattr(second, "objgen", (0, 0))
    if first_objgen != (0, 0) or second_objgen != (0, 0):
        return first_objgen == second_objgen
    return first == second


def _kids_of(obj) -> List[Any]:
    kids = obj.get("/K")
    if kids is None:
        return []
    if isinstance(kids, Array):
        return list(kids)
    return [kids]


def load_structure_tree(pdf: pikepdf.Pdf) -> Optional[StructureTree]:
    """
    Build a StructureTree from the document's StructTreeRoot.

    Args:
        pdf: Open pikepdf document

    Returns:
        The loaded tree, or None when the document has no StructTreeRoot
    """
    struct_root = pdf.Root.get("/StructTreeRoot")
    if struct_root is None:
        logger.info("[StructureIO] Document has no StructTreeRoot")
        return None

    tree = StructureTree(
        role_map=role_map_from_dictionary(struct_root.get("/RoleMap")),
        root_source=struct_root,
    )

    visited = set()
    if getattr(struct_root, "objgen", (0, 0)) != (0, 0):
        visited.add(struct_root.objgen)

    # Explicit stack keeps deep trees from hitting the recursion limit.
    stack: List[Tuple[Any, int, Any]] = [
        (kid, tree.root_id, None) for kid in reversed(_kids_of(struct_root))
    ]
    skipped = 0
    while stack:
        kid, parent_id, inherited_page = stack.pop()

        if _is_content_reference(kid):
            page = inherited_page
            if _is_dictionary(kid) and kid.get("/Pg") is not None:
                page = kid.get("/Pg")
            tree.add_content(kid, parent_id, page=page)
            continue

        if not _is_struct_elem(kid):
            skipped += 1
            continue

        objgen = getattr(kid, "objgen", (0, 0))
        if objgen != (0, 0):
            if objgen in visited:
                logger.warning(f"[StructureIO] Structure element {objgen[0]} is referenced more than once; ignoring repeat")
                continue
            visited.add(objgen)

        page = kid.get("/Pg") if kid.get("/Pg") is not None else inherited_page
        attributes = {
            key: kid.get(f"/{key}")
            for key in _LOADED_ATTRIBUTES
            if f"/{key}" in kid
        }
        node_id = tree.add_element(
            clean_role(kid.get("/S")),
            parent_id,
            attributes=attributes,
            source=kid,
            page=page,
        )
        for child in reversed(_kids_of(kid)):
            stack.append((child, node_id, page))

    if skipped:
        logger.debug(f"[StructureIO] Skipped {skipped} unrecognized /K entries")

    tree.mark_loaded()
    logger.debug(f"[StructureIO] Loaded structure tree with {len(tree)} nodes")
    return tree


class _ParentTreeIndex:
    """Flattened view of the ParentTree number tree (key -> value holder)."""

    def __init__(self, parent_tree):
        self._entries: Dict[int, Tuple[Any, int]] = {}
        if parent_tree is not None:
            self._collect(parent_tree)

    def _collect(self, root) -> None:
        stack = [root]
        seen = set()
        while stack:
            node = stack.pop()
            objgen = getattr(node, "objgen", (0, 0))
            if objgen != (0, 0):
                if objgen in seen:
                    continue
                seen.add(objgen)
            nums = node.get("/Nums")
            if nums is not None:
                for index in range(0, len(nums) - 1, 2):
                    self._entries[int(nums[index])] = (nums, index + 1)
            kids = node.get("/Kids")
            if kids is not None:
                stack.extend(kids)

    def value(self, key: int):
        location = self._entries.get(key)
        if location is None:
            return None
        nums, index = location
        return nums[index]

    def replace(self, key: int, value) -> bool:
        location = self._entries.get(key)
        if location is None:
            return False
        nums, index = location
        nums[index] = value
        return True


class _CommitContext:
    """Per-commit bookkeeping shared by the commit passes."""

    def __init__(self, pdf: pikepdf.Pdf, tree: StructureTree):
        self.pdf = pdf
        self.tree = tree
        self.holder_pages: Dict[int, Any] = {}
        self.reindirected = set()
        self.stale_holders = set()
        self.written = 0


def _children_changed(node: StructureNode) -> bool:
    return node.synthetic or node.loaded_children is None or tuple(node.children) != node.loaded_children


def _parent_changed(node: StructureNode) -> bool:
    return node.synthetic or node.parent != node.loaded_parent


def _prepare_elements(context: _CommitContext) -> None:
    """Create synthetic dictionaries and rewrite /S, /P and /Pg in reading order."""
    tree = context.tree
    root = tree.node(tree.root_id)
    context.holder_pages[tree.root_id] = None

    for node_id in tree.walk():
        if node_id == tree.root_id:
            continue
        node = tree.node(node_id)
        if node.is_content:
            continue

        parent_node = tree.node(node.parent)
        parent_source = parent_node.source if parent_node.source is not None else root.source
        parent_page = context.holder_pages.get(node.parent)

        if node.synthetic and node.source is None:
            node.source = context.pdf.make_indirect(
                Dictionary({
                    "/Type": Name("/StructElem"),
                    "/S": Name(f"/{node.role}"),
                    "/P": parent_source,
                })
            )
            context.written += 1
        else:
            if not node.source.is_indirect and (_parent_changed(node) or _children_changed(node)):
                node.source = context.pdf.make_indirect(node.source)
                context.reindirected.add(node_id)
                context.stale_holders.add(node.parent)
            if node.role != node.loaded_role:
                node.source[Name("/S")] = Name(f"/{node.role}")
                context.written += 1
            if _parent_changed(node) or node.parent in context.reindirected:
                node.source[Name("/P")] = parent_source
                context.written += 1

        own_page = node.source.get("/Pg")
        if own_page is None and node.page is not None and not _same_object(node.page, parent_page):
            if not node.synthetic and _parent_changed(node):
                node.source[Name("/Pg")] = node.page
                own_page = node.page
        context.holder_pages[node_id] = own_page if own_page is not None else parent_page


def _content_entry(context: _CommitContext, leaf: StructureNode, holder_id: int):
    content = leaf.content
    holder_page = context.holder_pages.get(holder_id)
    if isinstance(content, int):
        if leaf.page is None or _same_object(leaf.page, holder_page):
            return content
        return Dictionary({
            "/Type": Name("/MCR"),
            "/Pg": leaf.page,
            "/MCID": content,
        })
    if content.get("/Pg") is None and leaf.page is not None and not _same_object(leaf.page, holder_page):
        content[Name("/Pg")] = leaf.page
    return content


def _rewrite_kids(context: _CommitContext) -> None:
    tree = context.tree
    for node_id in tree.walk():
        node = tree.node(node_id)
        if node.is_content:
            continue
        if not (
            _children_changed(node)
            or node_id in context.reindirected
            or node_id in context.stale_holders
        ):
            continue

        entries = []
        for child_id in node.children:
            child = tree.node(child_id)
            if child.is_content:
                entries.append(_content_entry(context, child, node_id))
            else:
                entries.append(child.source)

        if node_id == tree.root_id:
            node.source[Name("/K")] = Array(entries)
        elif not entries:
            if "/K" in node.source:
                del node.source[Name("/K")]
        elif len(entries) == 1:
            node.source[Name("/K")] = entries[0]
        else:
            node.source[Name("/K")] = Array(entries)
        context.written += 1


def _repoint_parent_tree(context: _CommitContext) -> int:
    """Point ParentTree entries of moved content at their new holders."""
    tree = context.tree
    root_source = tree.node(tree.root_id).source
    index = _ParentTreeIndex(root_source.get("/ParentTree"))
    repointed = 0

    for node_id in tree.walk():
        leaf = tree.node(node_id)
        if not leaf.is_content or leaf.parent == leaf.loaded_parent:
            continue
        holder = tree.node(leaf.parent).source
        content = leaf.content

        if isinstance(content, int) or (_is_dictionary(content) and content.get("/Type") == Name("/MCR")):
            mcid = content if isinstance(content, int) else content.get("/MCID")
            page = leaf.page
            if page is None or mcid is None:
                continue
            key = page.get("/StructParents")
            if key is None:
                continue
            entry = index.value(int(key))
            if isinstance(entry, Array) and 0 <= int(mcid) < len(entry):
                entry[int(mcid)] = holder
                repointed += 1
        elif _is_dictionary(content):
            annotation = content.get("/Obj")
            key = annotation.get("/StructParent") if annotation is not None else None
            if key is not None and index.replace(int(key), holder):
                repointed += 1
    return repointed


def commit_structure_tree(
    pdf: pikepdf.Pdf,
    tree: StructureTree,
    markers: Optional[Mapping[int, str]] = None,
) -> int:
    """
    Write the tree back into the document's structure objects.

    Args:
        pdf: Document the tree was loaded from
        tree: Mutated structure tree
        markers: Optional node id -> /T text for elements that need attention;
            an existing /T is never overwritten

    Returns:
        Number of object writes performed
    """
    context = _CommitContext(pdf, tree)
    _prepare_elements(context)
    _rewrite_kids(context)
    repointed = _repoint_parent_tree(context)

    marked = 0
    for node_id, text in (markers or {}).items():
        if node_id not in tree or tree.is_content(node_id) or node_id == tree.root_id:
            continue
        source = tree.node(node_id).source
        if source is None or "/T" in source:
            continue
        source[Name("/T")] = String(text)
        marked += 1

    tree.mark_loaded()
    logger.debug(
        f"[StructureIO] Commit wrote {context.written} entries, "
        f"re-pointed {repointed} ParentTree entries, marked {marked} elements"
    )
    return context.written + repointed + marked
