from pdf_tag_normalizer.tests.utils.structure_builders import build_tree, find_role
from pdf_tag_normalizer.utils.outline import render_outline


def test_outline_indents_and_pads_comments():
    tree = build_tree(
        [("Document", [("Heading1", [0]), ("L", [("LI", [("LBody", [1]), ("Lbl", [2])])])])],
        role_map={"Heading1": "H1"},
    )
    item = find_role(tree, "LI")

    lines = render_outline(tree, {item: "moved Lbl before LBody"})

    assert lines[0] == "- Document"
    assert lines[1] == "  - H1 (mapped from Heading1)"
    assert lines[2] == "  - L"
    assert lines[3] == "    - LI" + " " * 32 + "; moved Lbl before LBody"
    assert lines[4:] == ["      - LBody", "      - Lbl"]


def test_long_lines_use_minimum_spacing():
    tree = build_tree([("AVeryLongCustomStructureTypeNameForTesting", [0])])
    node = find_role(tree, "AVeryLongCustomStructureTypeNameForTesting")

    (line,) = render_outline(tree, {node: "note"})

    assert line == "- AVeryLongCustomStructureTypeNameForTesting  ; note"

