from typing import List

import pytest

from zamm.models.child_group import (
    GroupedView,
    GroupLeaf,
    GroupList,
    GroupMap,
    ViewGroup,
    dump_group_value,
    iter_view,
    parse_group_tree,
    referenced_ids,
)
from zamm.models.node import Implementation, NodeBase, Project, Specification, is_implementation
from zamm.services.grouping import build_view, organized_children
from zamm.services.node_service import NodeService


def _spec(node_id: str) -> Specification:
    return Specification(id=node_id, title=f"Spec {node_id}", content="body")


def _ids(items: List) -> List[str]:
    return [item.id for item in items]


def test_parse_group_tree_builds_tagged_union() -> None:
    tree = parse_group_tree({"Core": ["id1", {"Inner": "id2"}], "Solo": "id3"})

    assert tree == GroupMap(
        (
            ("Core", GroupList((GroupLeaf("id1"), GroupMap((("Inner", GroupLeaf("id2")),))))),
            ("Solo", GroupLeaf("id3")),
        )
    )
    assert tree.labels() == ["Core", "Solo"]
    assert referenced_ids(tree) == ["id1", "id2", "id3"]
    assert dump_group_value(tree) == {"Core": ["id1", {"Inner": "id2"}], "Solo": "id3"}


@pytest.mark.parametrize("raw", [["id1"], "id1", {"Core": 3}, {"Core": ""}])
def test_parse_group_tree_rejects_malformed(raw) -> None:
    with pytest.raises(ValueError):
        parse_group_tree(raw)


def test_build_view_core_group_and_ungrouped() -> None:
    parent = Specification(
        id="p", title="Parent", content="body", child_groups={"Core": ["id1", "id2"]}
    )
    children = [_spec("id1"), _spec("id2"), _spec("id3")]

    view = build_view(parent, children, "Children")

    assert [group.label for group in view.groups] == ["Core"]
    assert _ids(view.groups[0].items) == ["id1", "id2"]
    assert _ids(view.ungrouped) == ["id3"]
    assert _ids(view.all_nodes()) == ["id1", "id2", "id3"]


def test_build_view_drops_dangling_and_duplicate_references() -> None:
    parent = Specification(
        id="p",
        title="Parent",
        content="body",
        child_groups={"A": ["gone", "id2"], "B": ["id2", "id1"], "Empty": ["gone"]},
    )
    children = [_spec("id1"), _spec("id2")]

    view = build_view(parent, children)

    assert [group.label for group in view.groups] == ["A", "B"]
    assert _ids(view.groups[0].items) == ["id2"]
    assert _ids(view.groups[1].items) == ["id1"]
    assert view.ungrouped == []


def test_build_view_top_level_leaf_becomes_single_node_group() -> None:
    parent = Specification(id="p", title="Parent", content="body", child_groups={"Main": "id1"})

    view = build_view(parent, [_spec("id1"), _spec("id2")])

    assert view.groups[0].label == "Main"
    assert _ids(view.groups[0].items) == ["id1"]
    assert _ids(view.ungrouped) == ["id2"]


def test_build_view_nested_groups_keep_persisted_order() -> None:
    parent = Specification(
        id="p",
        title="Parent",
        content="body",
        child_groups={"Outer": {"Second": "id2", "First": ["id3", "id1"]}},
    )

    view = build_view(parent, [_spec("id1"), _spec("id2"), _spec("id3")])

    outer = view.groups[0]
    assert [item.label for item in outer.items] == ["Second", "First"]
    assert _ids(view.all_nodes()) == ["id2", "id3", "id1"]


def test_regroup_moves_only_ungrouped_matches() -> None:
    impl_a = Implementation(id="a", title="Impl A", content="x")
    impl_b = Implementation(id="b", title="Impl B", content="x")
    impl_grouped = Implementation(id="g", title="Impl G", content="x")
    spec = _spec("s")
    view = GroupedView(
        groups=[ViewGroup("Pinned", [impl_grouped])],
        ungrouped=[impl_a, spec, impl_b],
    )

    moved = view.regroup("Implementations", is_implementation)

    assert _ids(moved) == ["a", "b"]
    assert _ids(view.ungrouped) == ["s"]
    assert _ids(view.groups[0].items) == ["g"]
    assert [group.label for group in view.extracted] == ["Implementations"]
    assert _ids(view.all_nodes()) == ["a", "b", "g", "s"]


def test_regroup_without_matches_is_noop() -> None:
    view = GroupedView(ungrouped=[_spec("s")])

    assert view.regroup("Implementations", is_implementation) == []
    assert view.extracted == []


def test_iter_view_wraps_ungrouped_only_when_labelled() -> None:
    unlabelled = GroupedView(ungrouped=[_spec("s")])
    labelled = GroupedView(ungrouped=[_spec("s")], ungrouped_label="Children")

    assert [(event.kind, event.depth) for event in iter_view(unlabelled)] == [("node", 0)]
    assert [(event.kind, event.depth) for event in iter_view(labelled)] == [
        ("start", 0),
        ("node", 1),
        ("end", 0),
    ]


def test_view_index_helpers() -> None:
    view = GroupedView(groups=[ViewGroup("G", [_spec("a")])], ungrouped=[_spec("b")])

    assert view.size() == 2
    assert view.node_at(1).id == "b"
    assert view.node_at(2) is None
    assert view.node_at(-1) is None
    assert view.index_of("a") == 0
    assert view.index_of("missing") == -1
    assert not view.is_empty()
    assert GroupedView().is_empty()


def test_organized_children_regroups_project_implementations(
    nodes: NodeService, settings
) -> None:
    project = nodes.create_node("project", "Project", "body")
    impl = nodes.create_node("implementation", "Python impl", "body", repo_url="git@x")
    spec = nodes.create_node("specification", "Requirement", "body")
    for child in (impl, spec):
        nodes.add_child(child_id=child.id, parent_id=project.id)

    view = organized_children(nodes, nodes.get_node(project.id), settings)

    assert [group.label for group in view.extracted] == ["Implementations"]
    assert _ids(view.extracted[0].items) == [impl.id]
    assert _ids(view.ungrouped) == [spec.id]
    assert view.ungrouped_label == "Children"


def test_organized_children_leaves_specification_children_alone(
    nodes: NodeService, settings
) -> None:
    parent = nodes.create_node("specification", "Parent", "body")
    impl = nodes.create_node("implementation", "Impl", "body")
    nodes.add_child(child_id=impl.id, parent_id=parent.id)

    view = organized_children(nodes, nodes.get_node(parent.id), settings)

    assert view.extracted == []
    assert _ids(view.ungrouped) == [impl.id]


def test_node_models_accept_group_tree_instances() -> None:
    tree = GroupMap((("Core", GroupLeaf("x")),))
    node: NodeBase = Project(title="P", content="c", child_groups=tree)

    assert node.child_groups == tree
    assert node.frontmatter()["child_groups"] == {"Core": "x"}
