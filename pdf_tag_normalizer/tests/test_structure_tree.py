import pytest

from pdf_tag_normalizer.structure_tree import StructureTree, TreeConsistencyError
from pdf_tag_normalizer.tests.utils.structure_builders import build_tree, find_role, tree_shape


def _document_tree():
    return build_tree([
        ("Document", [
            ("H1", [0]),
            ("Div", [("P", [1])]),
            ("P", [2]),
        ]),
    ])


def test_walk_is_reading_order():
    tree = _document_tree()
    roles = [tree.node(node_id).role for node_id in tree.elements()]
    assert roles == ["Document", "H1", "Div", "P", "P"]
    assert tree.content_leaves() == [0, 1, 2]


def test_wrap_groups_children_under_synthetic_element():
    tree = _document_tree()
    document = find_role(tree, "Document")

    wrapper = tree.wrap(document, 1, 3, "Sect")

    assert tree.node(wrapper).synthetic
    assert tree.parent(wrapper) == document
    assert tree_shape(tree) == [
        ("Document", [("H1", [0]), ("Sect", [("Div", [("P", [1])]), ("P", [2])])]),
    ]
    tree.check_consistency()


def test_unwrap_promotes_children_into_parent_slot():
    tree = _document_tree()
    div = find_role(tree, "Div")

    promoted = tree.unwrap(div)

    assert div not in tree
    assert [tree.node(node_id).role for node_id in promoted] == ["P"]
    assert tree_shape(tree) == [("Document", [("H1", [0]), ("P", [1]), ("P", [2])])]
    tree.check_consistency()


def test_move_within_same_parent_reorders():
    tree = build_tree([("LI", [("LBody", [0]), ("Lbl", [1])])])
    item = find_role(tree, "LI")
    label = find_role(tree, "Lbl")

    tree.move(label, item, 0)

    assert tree_shape(tree) == [("LI", [("Lbl", [1]), ("LBody", [0])])]
    assert tree.index_in_parent(label) == 0


def test_move_into_own_subtree_is_rejected():
    tree = _document_tree()
    document = find_role(tree, "Document")
    div = find_role(tree, "Div")

    with pytest.raises(TreeConsistencyError):
        tree.move(document, div)
    with pytest.raises(TreeConsistencyError):
        tree.move(div, div)


def test_insert_child_requires_detached_node():
    tree = _document_tree()
    paragraph = find_role(tree, "P", 1)
    heading = find_role(tree, "H1")

    with pytest.raises(TreeConsistencyError):
        tree.insert_child(heading, paragraph)

    tree.remove_child(tree.parent(paragraph), paragraph)
    tree.insert_child(heading, paragraph, 0)
    assert tree.parent(paragraph) == heading


def test_content_leaves_cannot_hold_children():
    tree = _document_tree()
    leaf = tree.children(find_role(tree, "H1"))[0]
    stray = tree.add_element("Span", tree.root_id)
    tree.remove_child(tree.root_id, stray)

    with pytest.raises(TreeConsistencyError):
        tree.insert_child(leaf, stray)


def test_set_role_returns_previous_role():
    tree = _document_tree()
    heading = find_role(tree, "H1")

    assert tree.set_role(heading, "/H2") == "H1"
    assert tree.node(heading).role == "H2"
    assert tree.heading_level(heading) == 2


def test_effective_role_and_describe_follow_role_map():
    tree = build_tree([("Heading2", [0])], role_map={"Heading2": "H2"})
    heading = find_role(tree, "Heading2")

    assert tree.effective_role(heading) == "H2"
    assert tree.heading_level(heading) == 2
    assert tree.describe(heading) == "H2 (mapped from Heading2)"
    assert tree.describe(tree.children(heading)[0]) == "MCID 0"


def test_ancestors_nearest_first():
    tree = _document_tree()
    paragraph = find_role(tree, "P")
    div = find_role(tree, "Div")
    document = find_role(tree, "Document")

    assert list(tree.ancestors(paragraph)) == [div, document, tree.root_id]
    assert tree.is_ancestor(document, paragraph)
    assert not tree.is_ancestor(paragraph, document)


def test_check_consistency_detects_mismatched_parent_pointer():
    tree = _document_tree()
    paragraph = find_role(tree, "P", 1)
    tree.node(paragraph).parent = find_role(tree, "H1")

    with pytest.raises(TreeConsistencyError):
        tree.check_consistency()


def test_check_consistency_detects_shared_child():
    tree = _document_tree()
    paragraph = find_role(tree, "P", 1)
    tree.node(find_role(tree, "H1")).children.append(paragraph)

    with pytest.raises(TreeConsistencyError):
        tree.check_consistency()


def test_check_consistency_detects_orphans():
    tree = StructureTree()
    orphan = tree.add_element("P", tree.root_id)
    tree.node(tree.root_id).children.remove(orphan)
    tree.node(orphan).parent = None

    with pytest.raises(TreeConsistencyError, match="not reachable"):
        tree.check_consistency()
