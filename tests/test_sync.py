"""Tests for folder_sync.sync module."""

from unittest.mock import patch

import pytest

from folder_sync import state
from folder_sync.errors import CorruptStateError, IoError, UnreadableReferenceError
from folder_sync.hasher import compute_file_hash
from folder_sync.models import Move
from folder_sync.sync import SyncPlan, capture_reference, diff_against_state


class TestCaptureReference:
    """Tests for capture_reference function."""

    def test_capture_writes_state(self, sample_tree, state_path):
        result = capture_reference(sample_tree, state_path)

        assert result.ok
        assert state_path.exists()
        loaded = state.load(state_path)
        assert loaded == result.snapshot
        assert loaded.root_label == "reference"

    def test_capture_replaces_previous_state(self, make_tree, state_path):
        capture_reference(make_tree("one", {"a.txt": "A"}), state_path)
        capture_reference(make_tree("two", {"b.txt": "B"}), state_path)
        assert list(state.load(state_path)) == ["b.txt"]

    def test_capture_saves_unreadable_entries(self, make_tree, state_path):
        root = make_tree("reference", {"ok.txt": "ok", "bad.txt": "bad"})
        real_hash = compute_file_hash

        def flaky_hash(path, chunk_size=65536):
            if path.name == "bad.txt":
                raise PermissionError(13, "Permission denied")
            return real_hash(path, chunk_size)

        with patch("folder_sync.hasher.compute_file_hash", side_effect=flaky_hash):
            result = capture_reference(root, state_path)

        assert not result.ok
        assert state.load(state_path)["bad.txt"].unreadable


class TestDiffAgainstState:
    """Tests for diff_against_state function."""

    def test_in_sync(self, sample_tree, state_path):
        capture_reference(sample_tree, state_path)
        plan = diff_against_state(sample_tree, state_path)

        assert isinstance(plan, SyncPlan)
        assert plan.operations == []
        assert plan.in_sync

    def test_detects_rename(self, make_tree, state_path):
        reference = make_tree("reference", {"a.txt": "payload"})
        target = make_tree("target", {"c.txt": "payload"})
        capture_reference(reference, state_path)

        plan = diff_against_state(target, state_path)
        digest = compute_file_hash(reference / "a.txt")
        assert plan.operations == [Move("c.txt", "a.txt", digest)]
        assert plan.ok
        assert not plan.in_sync
        assert plan.target.root_label == "target"

    def test_missing_state(self, make_tree, temp_dir):
        with pytest.raises(IoError):
            diff_against_state(make_tree("target", {}), temp_dir / "missing.fss")

    def test_corrupt_state_aborts_before_scan(self, make_tree, state_path):
        state_path.write_bytes(b"not a state file at all, sorry")
        with patch("folder_sync.sync.scan_tree") as mock_scan:
            with pytest.raises(CorruptStateError):
                diff_against_state(make_tree("target", {}), state_path)
        mock_scan.assert_not_called()

    def test_unreadable_reference_aborts_before_scan(self, make_snapshot, make_tree, state_path):
        state.save(make_snapshot({"a.txt": "A"}, unreadable={"a.txt"}), state_path)
        with patch("folder_sync.sync.scan_tree") as mock_scan:
            with pytest.raises(UnreadableReferenceError):
                diff_against_state(make_tree("target", {}), state_path)
        mock_scan.assert_not_called()

    def test_target_errors_reported(self, make_tree, state_path):
        capture_reference(make_tree("reference", {"a.txt": "A"}), state_path)
        target = make_tree("target", {"a.txt": "A"})

        with patch("folder_sync.hasher.compute_file_hash",
                   side_effect=PermissionError(13, "Permission denied")):
            plan = diff_against_state(target, state_path)

        assert not plan.ok
        assert [e.relative_path for e in plan.errors] == ["a.txt"]
        assert len(plan.operations) == 1
