import json
from pathlib import Path

import frontmatter
import pytest

from zamm.errors import InconsistencyError, NotFoundError, StorageError, ValidationError
from zamm.models.link import CommitLink, NodeLink
from zamm.models.node import Implementation, Specification
from zamm.services.storage import FileStorage


def test_initialize_storage_creates_layout(storage: FileStorage) -> None:
    base = storage.base_dir

    assert (base / "nodes").is_dir()
    assert (base / "spec-links.csv").read_text().startswith("from_spec_id,to_spec_id,link_label")
    assert (base / "commit-links.csv").read_text().startswith("spec_id,commit_id,repo_path,link_label")
    assert (base / "node-files.csv").read_text().startswith("node_id,file_path")
    assert json.loads((base / "project_metadata.json").read_text()) == {"root_spec_id": None}


def test_node_file_round_trip(storage: FileStorage) -> None:
    node = Implementation(
        title="Python impl",
        content="Uses typer.\n\nSecond paragraph.",
        slug="python-impl",
        repo_url="https://example.com/repo.git",
        child_groups={"Core": ["b", "a"]},
    )

    storage.create_node(node)
    loaded = storage.get_node(node.id)

    assert loaded == node
    assert storage.relative_node_path(node.id) == f".zamm/nodes/{node.id}.md"

    post = frontmatter.load(storage.get_node_file_path(node.id))
    assert post.metadata["type"] == "implementation"
    assert list(post.metadata["child_groups"]["Core"]) == ["b", "a"]
    assert post.content.startswith("# Python impl")
    assert "title" not in post.metadata


def test_create_node_rejects_duplicate_identity(storage: FileStorage) -> None:
    node = Specification(title="A", content="b")
    storage.create_node(node)

    with pytest.raises(ValidationError):
        storage.create_node(node)


def test_create_node_rejects_path_like_identity(storage: FileStorage) -> None:
    with pytest.raises(ValidationError):
        storage.create_node(Specification(id="../escape", title="A", content="b"))


def test_get_missing_node_raises_not_found(storage: FileStorage) -> None:
    with pytest.raises(NotFoundError):
        storage.get_node("missing")


def test_child_links_section_is_stripped_and_preserved(storage: FileStorage) -> None:
    node = Specification(title="Parent", content="Body text.")
    storage.create_node(node)
    section = "\n---\n\n## Child Specifications\n\n- [Child](child.md)\n"

    storage.write_node_with_children(node, section)
    assert storage.get_node(node.id).content == "Body text."

    node.content = "Edited body."
    storage.update_node(node)

    raw = storage.get_node_file_path(node.id).read_text()
    assert "- [Child](child.md)" in raw
    assert storage.get_node(node.id).content == "Edited body."


def test_horizontal_rule_in_content_is_kept(storage: FileStorage) -> None:
    node = Specification(title="Rules", content="Above\n\n---\n\nBelow")
    storage.create_node(node)

    assert storage.get_node(node.id).content == "Above\n\n---\n\nBelow"


def test_list_nodes_skips_unreadable_files(storage: FileStorage) -> None:
    good = storage.create_node(Specification(title="Good", content="ok"))
    bad = storage.create_node(Specification(title="Bad", content="ok"))
    storage.get_node_file_path(bad.id).write_text("---\nid: [unclosed\n---\n# Bad\n")

    assert [node.id for node in storage.list_nodes()] == [good.id]


def test_node_and_commit_link_tables(storage: FileStorage) -> None:
    storage.add_node_link(NodeLink(child_id="c", parent_id="p"))
    storage.add_commit_link(CommitLink(node_id="c", commit_hash="abc123", repo_path="."))

    assert storage.list_node_links() == [NodeLink(child_id="c", parent_id="p", label="child")]
    assert storage.list_commit_links()[0].label == "implements"

    storage.remove_node_link(child_id="c", parent_id="p")
    assert storage.list_node_links() == []
    with pytest.raises(NotFoundError):
        storage.remove_node_link(child_id="c", parent_id="p")
    with pytest.raises(NotFoundError):
        storage.remove_commit_link("c", "other", ".")


def test_move_node_file_updates_pointer(storage: FileStorage) -> None:
    node = storage.create_node(Specification(title="Move me", content="x"))
    old_path = storage.get_node_file_path(node.id)

    result = storage.move_node_file(node.id, "documentation/move-me.md")

    assert result.moved
    assert not old_path.exists()
    assert (storage.project_root / "documentation/move-me.md").exists()
    assert storage.relative_node_path(node.id) == "documentation/move-me.md"
    assert not (storage.base_dir / "organize-journal.json").exists()

    again = storage.move_node_file(node.id, "documentation/move-me.md")
    assert not again.moved


def test_move_node_file_refuses_occupied_target(storage: FileStorage) -> None:
    first = storage.create_node(Specification(title="First", content="x"))
    second = storage.create_node(Specification(title="Second", content="x"))
    storage.move_node_file(first.id, "documentation/same.md")

    with pytest.raises(StorageError):
        storage.move_node_file(second.id, "documentation/same.md")
    assert storage.get_node(second.id).title == "Second"


def test_move_prunes_empty_directories(storage: FileStorage) -> None:
    node = storage.create_node(Specification(title="Deep", content="x"))
    storage.move_node_file(node.id, "documentation/a/b/deep.md")

    storage.move_node_file(node.id, "documentation/deep.md")

    assert not (storage.project_root / "documentation/a").exists()
    assert (storage.project_root / "documentation").is_dir()


def test_recover_pending_move_finishes_repoint(storage: FileStorage) -> None:
    node = storage.create_node(Specification(title="Crash", content="x"))
    source = storage.relative_node_path(node.id)
    target = "documentation/crash.md"
    target_path: Path = storage.project_root / target
    target_path.parent.mkdir(parents=True)
    storage.get_node_file_path(node.id).rename(target_path)
    (storage.base_dir / "organize-journal.json").write_text(
        json.dumps({"node_id": node.id, "source": source, "target": target})
    )

    assert storage.recover_pending_move() == node.id
    assert storage.relative_node_path(node.id) == target
    assert not (storage.base_dir / "organize-journal.json").exists()


def test_recover_pending_move_discards_unstarted_move(storage: FileStorage) -> None:
    node = storage.create_node(Specification(title="Never moved", content="x"))
    (storage.base_dir / "organize-journal.json").write_text(
        json.dumps(
            {
                "node_id": node.id,
                "source": storage.relative_node_path(node.id),
                "target": "documentation/never-moved.md",
            }
        )
    )

    assert storage.recover_pending_move() is None
    assert storage.relative_node_path(node.id) == f".zamm/nodes/{node.id}.md"


def test_recover_pending_move_with_lost_file(storage: FileStorage) -> None:
    (storage.base_dir / "organize-journal.json").write_text(
        json.dumps({"node_id": "x", "source": "gone.md", "target": "documentation/gone.md"})
    )

    with pytest.raises(InconsistencyError):
        storage.recover_pending_move()


def test_move_with_missing_source_raises_inconsistency(storage: FileStorage) -> None:
    node = storage.create_node(Specification(title="Vanish", content="x"))
    storage.get_node_file_path(node.id).unlink()

    with pytest.raises(InconsistencyError):
        storage.move_node_file(node.id, "documentation/vanish.md")


def test_move_keeps_journal_when_pointer_update_fails(storage: FileStorage, monkeypatch) -> None:
    node = storage.create_node(Specification(title="Half moved", content="x"))
    source = storage.relative_node_path(node.id)

    def failing_update(node_id: str, relative_path: str) -> None:
        raise StorageError("node-files.csv is read-only")

    monkeypatch.setattr(storage, "update_node_file_path", failing_update)

    with pytest.raises(InconsistencyError):
        storage.move_node_file(node.id, "documentation/half-moved.md")

    assert (storage.project_root / "documentation/half-moved.md").exists()
    assert not (storage.project_root / source).exists()
    assert (storage.base_dir / "organize-journal.json").exists()
    assert storage.relative_node_path(node.id) == source

    monkeypatch.undo()
    assert storage.recover_pending_move() == node.id
    assert storage.relative_node_path(node.id) == "documentation/half-moved.md"
    assert storage.get_node(node.id).title == "Half moved"
    assert not (storage.base_dir / "organize-journal.json").exists()


@pytest.mark.parametrize(
    "journal",
    [
        "{not json",
        json.dumps({"node_id": "x"}),
        json.dumps({"node_id": "x", "source": "", "target": "documentation/x.md"}),
    ],
)
def test_recover_pending_move_rejects_malformed_journal(storage: FileStorage, journal: str) -> None:
    (storage.base_dir / "organize-journal.json").write_text(journal)

    with pytest.raises(InconsistencyError):
        storage.recover_pending_move()


def test_update_node_with_corrupt_frontmatter_logs_warning(
    storage: FileStorage, caplog
) -> None:
    node = storage.create_node(Specification(title="Corrupt", content="x"))
    path = storage.get_node_file_path(node.id)
    path.write_text("---\nid: [unclosed\n---\n# Corrupt\n")

    with caplog.at_level("WARNING", logger="zamm.services.storage"):
        storage.update_node(node)

    assert "Dropping child links section" in caplog.text
    assert storage.get_node(node.id).title == "Corrupt"


def test_file_owner_of_unparseable_file_is_none(storage: FileStorage, tmp_path: Path) -> None:
    garbage = tmp_path / "garbage.md"
    garbage.write_text("---\nid: [unclosed\n---\nbody\n")
    plain = tmp_path / "plain.md"
    plain.write_text("no frontmatter here\n")

    assert storage.file_owner(garbage) is None
    assert storage.file_owner(plain) is None
    assert storage.file_owner(tmp_path / "missing.md") is None


def test_recache_tracks_untracked_node_files(storage: FileStorage) -> None:
    tracked = storage.create_node(Specification(title="Tracked", content="x"))
    lost = storage.create_node(Specification(title="Lost", content="x"))
    storage.remove_node_file_path(lost.id)
    (storage.base_dir / "nodes" / "stray.md").write_text("not a node\n")
    assert [node.id for node in storage.list_nodes()] == [tracked.id]

    added = storage.recache()

    assert added == [(lost.id, f".zamm/nodes/{lost.id}.md")]
    assert {node.id for node in storage.list_nodes()} == {tracked.id, lost.id}
    assert storage.recache() == []
