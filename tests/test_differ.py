"""Tests for folder_sync.differ module."""

import logging

import pytest

from folder_sync.differ import diff
from folder_sync.errors import UnreadableReferenceError
from folder_sync.models import (
    ContentSource,
    CopyOrUpdate,
    CreateDirectory,
    Delete,
    EntryKind,
    FileRecord,
    Move,
    Snapshot,
    SourceOrigin,
    parent_path,
)


def _from_reference(path, content):
    return CopyOrUpdate(ContentSource(SourceOrigin.REFERENCE, path, f"digest-{content}"), path)


def _from_target(source, dest, content):
    return CopyOrUpdate(ContentSource(SourceOrigin.TARGET, source, f"digest-{content}"), dest)


def _simulate(target, operations):
    """Apply operations to an in-memory tree, checking each step is valid."""
    tree = {path: (record.kind, record.digest) for path, record in target.items()}

    def parent_ok(path):
        parent = parent_path(path)
        return parent is None or tree.get(parent, (None,))[0] is EntryKind.DIRECTORY

    for op in operations:
        if isinstance(op, CreateDirectory):
            assert op.path not in tree and parent_ok(op.path), op
            tree[op.path] = (EntryKind.DIRECTORY, None)
        elif isinstance(op, Move):
            assert tree.get(op.from_path) == (EntryKind.FILE, op.digest), op
            assert parent_ok(op.to_path) and op.to_path not in tree, op
            tree[op.to_path] = tree.pop(op.from_path)
        elif isinstance(op, CopyOrUpdate):
            if op.source.origin is SourceOrigin.TARGET:
                assert tree.get(op.source.path) == (EntryKind.FILE, op.source.digest), op
            assert parent_ok(op.destination_path), op
            assert tree.get(op.destination_path, (None,))[0] is not EntryKind.DIRECTORY, op
            tree[op.destination_path] = (EntryKind.FILE, op.source.digest)
        elif isinstance(op, Delete):
            assert tree[op.path][0] is op.kind, op
            assert not any(p.startswith(op.path + "/") for p in tree), op
            del tree[op.path]
    return tree


def _expected(reference):
    return {path: (record.kind, record.digest) for path, record in reference.items()}


SCENARIOS = {
    "identical": ({"a.txt": "A", "d/b.txt": "B"}, {"a.txt": "A", "d/b.txt": "B"}),
    "empty_target": ({"a.txt": "A", "d/b.txt": "B", "d/e": None}, {}),
    "empty_reference": ({}, {"a.txt": "A", "d/b.txt": "B"}),
    "rename": ({"a.txt": "X"}, {"c.txt": "X"}),
    "move_into_new_dir": ({"new/deep/f.bin": "F"}, {"old/f.bin": "F"}),
    "swap": ({"a": "1", "b": "2"}, {"a": "2", "b": "1"}),
    "duplicates": ({"a": "X", "b": "X", "c": "X"}, {"z": "X"}),
    "file_becomes_dir": ({"p/a.txt": "A", "p/b.txt": "P"}, {"p": "P"}),
    "dir_becomes_file": ({"p": "A"}, {"p/a.txt": "A", "p/q/r": "R"}),
    "nested_conflicts": ({"x/y": "Y", "x/z/w": "W"}, {"x/y/w": "W", "x/z": "Y"}),
    "mixed": (
        {"keep": "K", "docs/readme": "R", "docs/new": "N", "m.txt": "M", "u.txt": "U2"},
        {"keep": "K", "docs/readme": "old", "old.txt": "M", "u.txt": "U1", "junk/x": "J"},
    ),
}


class TestDiffBasics:
    """Tests for trivial diffs."""

    def test_identical_is_empty(self, make_snapshot):
        snapshot = make_snapshot({"a.txt": "A", "d/b.txt": "B", "e": None})
        assert diff(snapshot, snapshot) == []

    def test_equal_trees_with_different_labels(self, make_snapshot):
        layout = {"a.txt": "A", "d/b.txt": "B"}
        assert diff(make_snapshot(layout, "reference"), make_snapshot(layout, "target")) == []

    def test_against_empty_target(self, make_snapshot):
        reference = make_snapshot({"a.txt": "A", "d/b.txt": "B", "d/e": None})
        operations = diff(reference, Snapshot.empty())
        assert len(operations) == len(reference)
        assert not any(isinstance(op, Delete) for op in operations)

    def test_against_empty_reference(self, make_snapshot):
        target = make_snapshot({"a.txt": "A", "d/b.txt": "B"}, "target")
        operations = diff(Snapshot.empty("reference"), target)
        assert len(operations) == len(target)
        assert all(isinstance(op, Delete) for op in operations)

    def test_parents_created_before_children(self, make_snapshot):
        reference = make_snapshot({"a/b/c": None})
        assert diff(reference, Snapshot.empty()) == [
            CreateDirectory("a"),
            CreateDirectory("a/b"),
            CreateDirectory("a/b/c"),
        ]

    def test_changed_content_updates_in_place(self, make_snapshot):
        operations = diff(make_snapshot({"a.txt": "new"}), make_snapshot({"a.txt": "old"}))
        assert operations == [_from_reference("a.txt", "new")]


class TestMoves:
    """Tests for move detection."""

    def test_rename_is_single_move(self, make_snapshot):
        operations = diff(make_snapshot({"a.txt": "X"}), make_snapshot({"c.txt": "X"}))
        assert operations == [Move("c.txt", "a.txt", "digest-X")]

    def test_rename_alongside_unchanged_file(self, make_snapshot):
        reference = make_snapshot({"a.txt": "X", "b.txt": "Y"})
        target = make_snapshot({"b.txt": "Y", "c.txt": "X"}, "target")
        assert diff(reference, target) == [Move("c.txt", "a.txt", "digest-X")]

    def test_removed_directory(self, make_snapshot):
        operations = diff(Snapshot.empty("reference"), make_snapshot({"dir/f.txt": "F"}))
        assert operations == [Delete("dir/f.txt"), Delete("dir", EntryKind.DIRECTORY)]

    def test_earliest_source_wins(self, make_snapshot):
        operations = diff(make_snapshot({"a.txt": "X"}), make_snapshot({"b.txt": "X", "c.txt": "X"}))
        assert operations == [Move("b.txt", "a.txt", "digest-X"), Delete("c.txt")]

    def test_source_used_once(self, make_snapshot):
        operations = diff(make_snapshot({"a.txt": "X", "b.txt": "X"}), make_snapshot({"c.txt": "X"}))
        assert operations == [
            Move("c.txt", "a.txt", "digest-X"),
            _from_target("a.txt", "b.txt", "X"),
        ]

    def test_move_into_new_directory(self, make_snapshot):
        operations = diff(make_snapshot({"new/f.bin": "F"}), make_snapshot({"old/f.bin": "F"}))
        assert operations == [
            CreateDirectory("new"),
            Move("old/f.bin", "new/f.bin", "digest-F"),
            Delete("old", EntryKind.DIRECTORY),
        ]

    def test_unreadable_target_file_not_a_move_source(self, make_snapshot):
        target = make_snapshot({"junk": "J"}, "target", unreadable={"junk"})
        operations = diff(make_snapshot({"a.txt": "J"}), target)
        assert operations == [_from_reference("a.txt", "J"), Delete("junk")]


class TestOrdering:
    """Tests for operation ordering."""

    def test_block_order(self, make_snapshot):
        reference = make_snapshot({"new/f.txt": "N", "m.txt": "M", "u.txt": "U2"})
        target = make_snapshot({"old.txt": "M", "u.txt": "U1", "junk/x": "J"}, "target")
        assert diff(reference, target) == [
            CreateDirectory("new"),
            Move("old.txt", "m.txt", "digest-M"),
            _from_reference("new/f.txt", "N"),
            _from_reference("u.txt", "U2"),
            Delete("junk/x"),
            Delete("junk", EntryKind.DIRECTORY),
        ]

    def test_writes_precede_deletes(self, make_snapshot):
        reference, target = SCENARIOS["mixed"]
        operations = diff(make_snapshot(reference), make_snapshot(target, "target"))
        kinds = [isinstance(op, Delete) for op in operations]
        assert kinds == sorted(kinds)

    def test_deletes_deepest_first(self, make_snapshot):
        target = make_snapshot({"a/b/c/d.txt": "D", "a/e.txt": "E", "z.txt": "Z"}, "target")
        operations = diff(Snapshot.empty("reference"), target)
        assert [op.path for op in operations] == [
            "a/b/c/d.txt", "a/b/c", "a/b", "a/e.txt", "a", "z.txt",
        ]

    def test_deterministic(self, make_snapshot):
        reference, target = SCENARIOS["mixed"]
        first = diff(make_snapshot(reference), make_snapshot(target, "target"))
        second = diff(make_snapshot(reference), make_snapshot(target, "target"))
        assert first == second


class TestLocalSources:
    """Tests for copies sourced from content already in the target."""

    def test_copy_from_unchanged_file(self, make_snapshot):
        operations = diff(make_snapshot({"a.txt": "X", "b.txt": "X"}), make_snapshot({"a.txt": "X"}))
        assert operations == [_from_target("a.txt", "b.txt", "X")]

    def test_copy_from_surplus_file_before_delete(self, make_snapshot):
        reference = make_snapshot({"a.txt": "X"})
        target = make_snapshot({"a.txt": "old", "dup1": "X", "dup2": "X"}, "target")
        assert diff(reference, target) == [
            _from_target("dup1", "a.txt", "X"),
            Delete("dup1"),
            Delete("dup2"),
        ]

    def test_copy_from_earlier_copy(self, make_snapshot):
        operations = diff(make_snapshot({"a": "X", "b": "X"}), Snapshot.empty())
        assert operations == [_from_reference("a", "X"), _from_target("a", "b", "X")]


class TestKindConflicts:
    """Tests for paths that change between file and directory."""

    def test_file_becomes_directory(self, make_snapshot):
        reference = make_snapshot({"p/a.txt": "A"})
        target = make_snapshot({"p": "P"}, "target")
        assert diff(reference, target) == [
            Delete("p"),
            CreateDirectory("p"),
            _from_reference("p/a.txt", "A"),
        ]

    def test_directory_becomes_file(self, make_snapshot):
        reference = make_snapshot({"p": "P"})
        target = make_snapshot({"p/a.txt": "A"}, "target")
        assert diff(reference, target) == [
            Delete("p/a.txt"),
            Delete("p", EntryKind.DIRECTORY),
            _from_reference("p", "P"),
        ]

    def test_move_from_outside_into_conflict(self, make_snapshot):
        reference = make_snapshot({"p": "A"})
        target = make_snapshot({"p": None, "q.txt": "A"}, "target")
        assert diff(reference, target) == [
            Delete("p", EntryKind.DIRECTORY),
            Move("q.txt", "p", "digest-A"),
        ]

    def test_no_move_within_conflict(self, make_snapshot):
        reference = make_snapshot({"p": "A"})
        target = make_snapshot({"p/x": "A"}, "target")
        assert diff(reference, target) == [
            Delete("p/x"),
            Delete("p", EntryKind.DIRECTORY),
            _from_reference("p", "A"),
        ]


class TestUnreadable:
    """Tests for unreadable entries."""

    def test_unreadable_reference_rejected(self, make_snapshot):
        reference = make_snapshot({"ok": "A", "bad": "B"}, unreadable={"bad"})
        with pytest.raises(UnreadableReferenceError) as exc_info:
            diff(reference, Snapshot.empty())
        assert exc_info.value.paths == ["bad"]
        assert "bad" in str(exc_info.value)

    def test_unreadable_target_file_rewritten(self, make_snapshot):
        target = make_snapshot({"a.txt": "X"}, "target", unreadable={"a.txt"})
        assert diff(make_snapshot({"a.txt": "X"}), target) == [_from_reference("a.txt", "X")]

    def test_unreadable_target_directory_left_alone(self, make_snapshot):
        target = Snapshot.from_records(
            [FileRecord("d", EntryKind.DIRECTORY, error="Permission denied")], "target"
        )
        assert diff(make_snapshot({"d": None}), target) == []


@pytest.mark.parametrize("name", sorted(SCENARIOS))
def test_applying_diff_reproduces_reference(name, make_snapshot):
    reference_layout, target_layout = SCENARIOS[name]
    reference = make_snapshot(reference_layout)
    target = make_snapshot(target_layout, "target")
    operations = diff(reference, target)
    assert _simulate(target, operations) == _expected(reference)


@pytest.mark.parametrize("name", sorted(SCENARIOS))
def test_no_operation_touches_a_path_twice_as_destination(name, make_snapshot):
    reference_layout, target_layout = SCENARIOS[name]
    operations = diff(make_snapshot(reference_layout),
                      make_snapshot(target_layout, "target"))
    destinations = [op.path for op in operations if not isinstance(op, Delete)]
    assert len(destinations) == len(set(destinations))


def test_diff_logs_summary(make_snapshot, caplog):
    reference = make_snapshot({"a.txt": "A", "b.txt": "B"})
    target = make_snapshot({"c.txt": "A"}, "target")
    with caplog.at_level(logging.INFO, logger="folder_sync.differ"):
        diff(reference, target)
    messages = [r.getMessage() for r in caplog.records]
    assert any(
        m.startswith("Diff produced 2 operations (1 moves, 0 kind conflicts) in ") for m in messages
    )
