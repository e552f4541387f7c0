import pytest

from pdf_tag_normalizer.detectors import (
    FindingKind,
    HeadingHierarchyDetector,
    ListStructureDetector,
    MisplacedListPartDetector,
    RedundantGroupingDetector,
    RootContainerDetector,
    UnknownRoleDetector,
)
from pdf_tag_normalizer.tests.utils.structure_builders import build_tree, find_role


def _kinds(findings):
    return [(finding.kind, finding.node_id) for finding in findings]


class TestListStructureDetector:
    def test_well_formed_lists_have_no_findings(self):
        tree = build_tree([
            ("L", [
                ("Caption", [0]),
                ("LI", [("Lbl", [1]), ("LBody", [2])]),
                ("LI", [("LBody", [3])]),
                ("LI", [("Lbl", [4])]),
            ]),
        ])
        assert list(ListStructureDetector().detect(tree)) == []

    def test_stray_children_are_reported_on_the_child(self):
        tree = build_tree([("L", [("P", [0]), 1, ("LI", [("LBody", [2])])])])
        findings = list(ListStructureDetector().detect(tree))

        list_id = find_role(tree, "L")
        assert [finding.node_id for finding in findings] == [find_role(tree, "P"), tree.children(list_id)[1]]
        assert all(finding.related == (list_id,) for finding in findings)
        assert findings[0].description == "P directly inside L"

    @pytest.mark.parametrize(
        "kids",
        [
            [("LBody", [0]), ("Lbl", [1])],
            [("P", [0])],
            [("Lbl", [0]), ("Lbl", [1]), ("LBody", [2])],
            [],
            [0],
        ],
    )
    def test_malformed_items_are_reported_on_the_item(self, kids):
        tree = build_tree([("L", [("LI", kids)])])
        findings = list(ListStructureDetector().detect(tree))

        assert _kinds(findings) == [(FindingKind.MALFORMED_LIST, find_role(tree, "LI"))]

    def test_mapped_roles_are_resolved(self):
        tree = build_tree(
            [("List", [("Item", [("Label", [0]), ("Body", [1])])])],
            role_map={"List": "L", "Item": "LI", "Label": "Lbl", "Body": "LBody"},
        )
        assert list(ListStructureDetector().detect(tree)) == []


class TestHeadingHierarchyDetector:
    def test_skip_targets_previous_level_plus_one(self):
        tree = build_tree([("Document", [("H1", [0]), ("H3", [1]), ("H5", [2])])])
        findings = list(HeadingHierarchyDetector().detect(tree))

        assert [finding.kind for finding in findings] == [FindingKind.HEADING_SKIP, FindingKind.HEADING_SKIP]
        assert [finding.detail["target"] for finding in findings] == [2, 4]

    def test_first_heading_must_be_level_one(self):
        tree = build_tree([("Document", [("H2", [0])])])
        (finding,) = HeadingHierarchyDetector().detect(tree)

        assert finding.kind == FindingKind.HEADING_SKIP
        assert finding.detail == {"level": 2, "target": 1}

    def test_heading_inside_a_higher_numbered_heading_is_misnest(self):
        tree = build_tree([("Document", [("H1", [0]), ("H2", [1]), ("H3", [2, ("H2", [3])])])])
        findings = list(HeadingHierarchyDetector().detect(tree))

        assert _kinds(findings) == [(FindingKind.HEADING_MISNEST, find_role(tree, "H2", 1))]
        assert findings[0].related == (find_role(tree, "H3"),)

    def test_subheading_inside_its_parent_heading_is_allowed(self):
        tree = build_tree([("Document", [("H1", [0, ("H2", [1])])])])
        assert list(HeadingHierarchyDetector().detect(tree)) == []

    def test_sectioning_element_breaks_the_nesting(self):
        tree = build_tree([("Document", [("H1", [0]), ("H2", [1, ("Sect", [("H2", [2])])])])])
        assert list(HeadingHierarchyDetector().detect(tree)) == []

    def test_equal_ranked_ancestor_is_a_conflict(self):
        tree = build_tree([("Document", [("H1", [0]), ("H2", [1, ("H2", [2])])])])
        findings = list(HeadingHierarchyDetector().detect(tree))
        assert [finding.kind for finding in findings] == [FindingKind.HEADING_MISNEST]

    def test_extra_title_only_when_enabled(self):
        tree = build_tree([("Document", [("H1", [0]), ("H1", [1])])])

        assert list(HeadingHierarchyDetector().detect(tree)) == []
        findings = list(HeadingHierarchyDetector(single_title_heading=True).detect(tree))
        assert _kinds(findings) == [(FindingKind.EXTRA_TITLE_HEADING, find_role(tree, "H1", 1))]

    def test_detection_is_repeatable(self):
        tree = build_tree([("Document", [("H2", [0]), ("H1", [1, ("H1", [2])])])])
        detector = HeadingHierarchyDetector()
        assert list(detector.detect(tree)) == list(detector.detect(tree))


class TestRedundantGroupingDetector:
    def test_single_element_child_is_redundant(self):
        tree = build_tree([("Document", [("Div", [("P", [0])]), ("NonStruct", [("Table", [1])])])])
        findings = list(RedundantGroupingDetector().detect(tree))

        assert [finding.node_id for finding in findings] == [find_role(tree, "Div"), find_role(tree, "NonStruct")]

    @pytest.mark.parametrize(
        "node",
        [
            ("Div", [("P", [0])], {"Lang": "fr"}),
            ("Div", [("P", [0]), ("P", [1])]),
            ("Div", [0]),
            ("Sect", [("P", [0])]),
        ],
    )
    def test_meaningful_groups_are_kept(self, node):
        tree = build_tree([("Document", [node])])
        assert list(RedundantGroupingDetector().detect(tree)) == []

    def test_custom_role_mapped_to_div_is_not_flattened(self):
        tree = build_tree([("Document", [("Box", [("P", [0])])])], role_map={"Box": "Div"})
        assert list(RedundantGroupingDetector().detect(tree)) == []

    def test_grouping_roles_are_configurable(self):
        tree = build_tree([("Document", [("Sect", [("P", [0])])])])
        findings = list(RedundantGroupingDetector(grouping_roles=frozenset({"Sect"})).detect(tree))
        assert [finding.node_id for finding in findings] == [find_role(tree, "Sect")]


def test_misplaced_list_parts_outside_items():
    tree = build_tree([("Document", [("Lbl", [0]), ("Div", [("LBody", [1]), ("P", [2])])])])
    findings = list(MisplacedListPartDetector().detect(tree))

    assert [finding.node_id for finding in findings] == [find_role(tree, "Lbl"), find_role(tree, "LBody")]
    assert findings[0].description == "unexpected Lbl inside Document"


def test_root_container_only_for_single_top_level_section():
    single = build_tree([("Sect", [("P", [0])])])
    (finding,) = RootContainerDetector().detect(single)
    assert finding.kind == FindingKind.ROOT_CONTAINER
    assert finding.node_id == find_role(single, "Sect")

    two = build_tree([("Sect", [("P", [0])]), ("Sect", [("P", [1])])])
    assert list(RootContainerDetector().detect(two)) == []

    document = build_tree([("Document", [("P", [0])])])
    assert list(RootContainerDetector().detect(document)) == []


def test_unknown_roles_are_reported_unless_mapped():
    tree = build_tree(
        [("Document", [("FancyPara", [0]), ("Heading1", [1]), ("Loop", [2])])],
        role_map={"Heading1": "H1", "Loop": "Other", "Other": "Loop"},
    )
    findings = list(UnknownRoleDetector().detect(tree))

    assert _kinds(findings) == [
        (FindingKind.UNKNOWN_ROLE, find_role(tree, "FancyPara")),
        (FindingKind.UNKNOWN_ROLE, find_role(tree, "Loop")),
    ]
    assert findings[0].description == "unexpected tag: FancyPara"
