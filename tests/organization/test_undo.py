"""Tests for the undo engine."""

import pytest

from wardex.core.errors import LockTimeout
from wardex.organization.mover import MoveExecutor
from wardex.organization.transaction import OperationOutcome, TransactionLog
from wardex.organization.undo import UndoEngine, UndoStatus


@pytest.fixture
def log(tmp_path) -> TransactionLog:
    return TransactionLog(tmp_path / ".undo_log.jsonl", lock_timeout=0.3)


@pytest.fixture
def moved(tmp_path, log):
    """Move three files into dest/ and record each move."""

    def _move(*names):
        executor = MoveExecutor()
        inbox = tmp_path / "inbox"
        inbox.mkdir(exist_ok=True)
        results = []
        for name in names:
            source = inbox / name
            source.write_text(name)
            result = executor.move(source, tmp_path / "dest")
            log.append(
                source_path=result.source_path,
                destination_path=result.destination_path,
                is_directory=result.is_directory,
            )
            results.append(result)
        return results

    return _move


class TestUndo:
    """Test reverting recorded moves."""

    def test_no_log(self, log):
        summary = UndoEngine(log).undo()

        assert summary.no_log_found
        assert summary.reverted == 0

    def test_undo_most_recent(self, tmp_path, log, moved):
        """Test undo(1) reverts only the last move."""
        moved("a.txt", "b.txt")

        summary = UndoEngine(log).undo(1)

        assert summary.reverted == 1
        assert summary.restored_paths == [tmp_path / "inbox" / "b.txt"]
        assert (tmp_path / "inbox" / "b.txt").exists()
        assert (tmp_path / "dest" / "a.txt").exists()
        outcomes = [op.outcome for op in log.read_operations()]
        assert outcomes == [OperationOutcome.APPLIED, OperationOutcome.REVERTED]

    def test_repeated_undo_reverts_different_operations(self, tmp_path, log, moved):
        """Test a second undo(1) never repeats the first."""
        moved("a.txt", "b.txt")
        engine = UndoEngine(log)

        first = engine.undo(1)
        second = engine.undo(1)
        third = engine.undo(1)

        assert first.items[0].operation_id == 2
        assert second.items[0].operation_id == 1
        assert third.nothing_to_undo
        assert (tmp_path / "inbox" / "a.txt").exists()
        assert not list((tmp_path / "dest").iterdir())

    def test_undo_count(self, log, moved):
        moved("a.txt", "b.txt", "c.txt")

        summary = UndoEngine(log).undo(2)

        assert [item.operation_id for item in summary.items] == [3, 2]
        assert log.get_statistics()["applied"] == 1

    def test_invalid_count(self, log, moved):
        moved("a.txt")

        with pytest.raises(ValueError):
            UndoEngine(log).undo(0)

    def test_undo_by_id(self, tmp_path, log, moved):
        moved("a.txt", "b.txt")

        summary = UndoEngine(log).undo(operation_id=1)

        assert summary.reverted == 1
        assert (tmp_path / "inbox" / "a.txt").exists()
        assert (tmp_path / "dest" / "b.txt").exists()

    def test_undo_by_id_twice(self, log, moved):
        """Test an already reverted operation is reported, not moved."""
        moved("a.txt")
        engine = UndoEngine(log)
        engine.undo(operation_id=1)

        summary = engine.undo(operation_id=1)

        assert summary.reverted == 0
        assert "already reverted" in summary.errors[0]

    def test_unknown_id(self, log, moved):
        moved("a.txt")

        summary = UndoEngine(log).undo(operation_id=42)

        assert summary.errors == ["Operation 42 not found"]


class TestConflicts:
    """Test entries that changed after they were moved."""

    def test_missing_destination_is_conflict(self, tmp_path, log, moved):
        """Test a deleted entry is reported and the batch continues."""
        moved("a.txt", "b.txt")
        (tmp_path / "dest" / "b.txt").unlink()

        summary = UndoEngine(log).undo(2)

        assert summary.conflicted == 1
        assert summary.reverted == 1
        assert summary.items[0].status == UndoStatus.CONFLICT
        assert (tmp_path / "inbox" / "a.txt").exists()
        # Conflicted operations stay applied
        assert log.get(2).outcome == OperationOutcome.APPLIED

    def test_replaced_by_directory_is_conflict(self, tmp_path, log, moved):
        moved("a.txt")
        destination = tmp_path / "dest" / "a.txt"
        destination.unlink()
        destination.mkdir()

        summary = UndoEngine(log).undo(1)

        assert summary.conflicted == 1
        assert "now a directory" in summary.items[0].reason

    def test_occupied_origin_gets_suffix(self, tmp_path, log, moved):
        """Test undo never overwrites a new file at the original location."""
        moved("a.txt")
        (tmp_path / "inbox" / "a.txt").write_text("newer")

        summary = UndoEngine(log).undo(1)

        assert summary.reverted == 1
        assert summary.restored_paths == [tmp_path / "inbox" / "a (1).txt"]
        assert (tmp_path / "inbox" / "a.txt").read_text() == "newer"
        assert log.get(1).restored_path == tmp_path / "inbox" / "a (1).txt"

    def test_lock_held_elsewhere(self, log, moved):
        moved("a.txt")
        other = TransactionLog(log.log_path)

        with other.locked():
            with pytest.raises(LockTimeout):
                UndoEngine(log).undo(1)
