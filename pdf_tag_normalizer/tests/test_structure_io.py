import pikepdf
from pikepdf import Name

from pdf_tag_normalizer.structure_io import commit_structure_tree, load_structure_tree
from pdf_tag_normalizer.tests.utils.structure_builders import (
    build_tagged_pdf,
    build_untagged_pdf,
    find_role,
    pdf_shape,
    struct_kids,
    tree_shape,
)


def test_untagged_document_loads_as_none(tmp_path):
    with pikepdf.open(build_untagged_pdf(tmp_path)) as pdf:
        assert load_structure_tree(pdf) is None


def test_load_mirrors_struct_tree_root(tmp_path):
    path = build_tagged_pdf(
        tmp_path,
        [("Document", [("Heading1", [0]), ("L", [("LI", [("Lbl", [1]), ("LBody", [2])])])], {"Lang": "en-US"})],
        role_map={"Heading1": "H1"},
    )

    with pikepdf.open(path) as pdf:
        tree = load_structure_tree(pdf)

        assert tree_shape(tree) == [
            ("Document", [("Heading1", [0]), ("L", [("LI", [("Lbl", [1]), ("LBody", [2])])])]),
        ]
        heading = find_role(tree, "Heading1")
        assert tree.effective_role(heading) == "H1"
        document = find_role(tree, "Document")
        assert str(tree.node(document).attributes["Lang"]) == "en-US"
        assert tree.node(document).source.objgen == struct_kids(pdf.Root.StructTreeRoot)[0].objgen
        tree.check_consistency()


def test_commit_without_changes_keeps_objects(tmp_path):
    path = build_tagged_pdf(tmp_path, [("Document", [("P", [0]), ("P", [1])])])

    with pikepdf.open(path) as pdf:
        document = struct_kids(pdf.Root.StructTreeRoot)[0]
        original_kids = [kid.objgen for kid in struct_kids(document)]

        tree = load_structure_tree(pdf)
        commit_structure_tree(pdf, tree)

        document_after = struct_kids(pdf.Root.StructTreeRoot)[0]
        assert document_after.objgen == document.objgen
        assert [kid.objgen for kid in struct_kids(document_after)] == original_kids


def test_commit_preserves_identity_and_creates_synthetic_elements(tmp_path):
    path = build_tagged_pdf(tmp_path, [("Document", [("H1", [0]), ("L", [("P", [1])])])])

    with pikepdf.open(path) as pdf:
        tree = load_structure_tree(pdf)
        heading_obj = tree.node(find_role(tree, "H1")).source
        paragraph_obj = tree.node(find_role(tree, "P")).source
        list_id = find_role(tree, "L")

        item = tree.wrap(list_id, 0, 1, "LI")
        body = tree.wrap(item, 0, 1, "LBody")
        commit_structure_tree(pdf, tree)

        assert pdf_shape(pdf) == [("Document", [("H1", [0]), ("L", [("LI", [("LBody", [("P", [1])])])])])]
        assert tree.node(find_role(tree, "H1")).source.objgen == heading_obj.objgen

        body_obj = tree.node(body).source
        item_obj = tree.node(item).source
        assert body_obj.is_indirect and item_obj.is_indirect
        assert body_obj.Type == Name("/StructElem")
        assert paragraph_obj.P.objgen == body_obj.objgen
        assert body_obj.P.objgen == item_obj.objgen
        assert item_obj.P.objgen == tree.node(list_id).source.objgen


def test_commit_writes_role_changes(tmp_path):
    path = build_tagged_pdf(tmp_path, [("Sect", [("H3", [0])])])

    with pikepdf.open(path) as pdf:
        tree = load_structure_tree(pdf)
        tree.set_role(find_role(tree, "Sect"), "Document")
        tree.set_role(find_role(tree, "H3"), "H1")
        commit_structure_tree(pdf, tree)

        assert pdf_shape(pdf) == [("Document", [("H1", [0])])]


def test_moved_mcid_becomes_marked_content_reference_on_other_page(tmp_path):
    path = build_tagged_pdf(
        tmp_path,
        [("L", [("LI", [("LBody", [("P", [0])], {"page": 0}), 0], {"page": 1})])],
        page_count=2,
    )

    with pikepdf.open(path) as pdf:
        tree = load_structure_tree(pdf)
        item = find_role(tree, "LI")
        body = find_role(tree, "LBody")
        leaf = tree.children(item)[1]

        tree.move(leaf, body)
        commit_structure_tree(pdf, tree)

        body_obj = tree.node(body).source
        kids = struct_kids(body_obj)
        assert len(kids) == 2
        mcr = kids[1]
        assert mcr.Type == Name("/MCR")
        assert int(mcr.MCID) == 0
        assert mcr.Pg.objgen == pdf.pages[1].obj.objgen
        assert pdf_shape(pdf) == [("L", [("LI", [("LBody", [("P", [0]), 0])])])]


def test_moved_content_is_repointed_in_parent_tree(tmp_path):
    path = build_tagged_pdf(
        tmp_path,
        [("L", [("LI", [("LBody", [("P", [0])]), 1])])],
    )

    with pikepdf.open(path) as pdf:
        tree = load_structure_tree(pdf)
        item = find_role(tree, "LI")
        body = find_role(tree, "LBody")
        tree.move(tree.children(item)[1], body)
        commit_structure_tree(pdf, tree)

        nums = pdf.Root.StructTreeRoot.ParentTree.Nums
        page_entries = nums[1]
        assert page_entries[1].objgen == tree.node(body).source.objgen
        assert page_entries[0].objgen == tree.node(find_role(tree, "P")).source.objgen
        # Same page: the MCID stays a bare integer
        assert struct_kids(tree.node(body).source)[1] == 1


def test_markers_never_overwrite_existing_title(tmp_path):
    path = build_tagged_pdf(
        tmp_path,
        [("Document", [("Sect", [("P", [0])], {"T": "Chapter 1"}), ("P", [1])])],
    )

    with pikepdf.open(path) as pdf:
        tree = load_structure_tree(pdf)
        section = find_role(tree, "Sect")
        paragraph = find_role(tree, "P", 1)
        commit_structure_tree(pdf, tree, markers={section: "attention needed", paragraph: "check me"})

        assert str(tree.node(section).source.T) == "Chapter 1"
        assert str(tree.node(paragraph).source.T) == "check me"


def test_unwrap_repoints_promoted_child(tmp_path):
    path = build_tagged_pdf(tmp_path, [("Document", [("Div", [("P", [0])]), ("P", [1])])])

    with pikepdf.open(path) as pdf:
        tree = load_structure_tree(pdf)
        document = find_role(tree, "Document")
        tree.unwrap(find_role(tree, "Div"))
        commit_structure_tree(pdf, tree)

        assert pdf_shape(pdf) == [("Document", [("P", [0]), ("P", [1])])]
        first = struct_kids(tree.node(document).source)[0]
        assert first.P.objgen == tree.node(document).source.objgen

    reopened_path = tmp_path / "reopened.pdf"
    with pikepdf.open(path) as pdf:
        tree = load_structure_tree(pdf)
        tree.unwrap(find_role(tree, "Div"))
        commit_structure_tree(pdf, tree)
        pdf.save(reopened_path)

    with pikepdf.open(reopened_path) as pdf:
        assert pdf_shape(pdf) == [("Document", [("P", [0]), ("P", [1])])]
