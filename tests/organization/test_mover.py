"""Tests for the move executor."""

import errno
import os
from pathlib import Path

import pytest

from wardex.core.errors import MoveIOError
from wardex.organization import mover
from wardex.organization.mover import MoveExecutor, MoveStatus, collision_name


def _cross_device(*args, **kwargs):
    raise OSError(errno.EXDEV, "Invalid cross-device link")


class TestCollisionName:
    """Test suffix placement."""

    @pytest.mark.parametrize(
        "name, counter, is_directory, expected",
        [
            ("report.pdf", 1, False, "report (1).pdf"),
            ("ctf.tar.gz", 2, False, "ctf (2).tar.gz"),
            ("README", 1, False, "README (1)"),
            ("notes.v2", 3, True, "notes.v2 (3)"),
        ],
    )
    def test_collision_name(self, name, counter, is_directory, expected):
        assert collision_name(name, counter, is_directory) == expected


class TestMove:
    """Test same-device moves."""

    def test_move_creates_destination(self, tmp_path):
        """Test missing destination directories are created."""
        source = tmp_path / "report.pdf"
        source.write_text("pdf")
        destination = tmp_path / "docs" / "2024"

        result = MoveExecutor().move(source, destination, category="docs")

        assert result.status == MoveStatus.MOVED
        assert result.destination_path == destination / "report.pdf"
        assert result.size_bytes == 3
        assert not result.used_copy_fallback
        assert not source.exists()
        assert (destination / "report.pdf").read_text() == "pdf"

    def test_collisions_are_suffixed(self, tmp_path):
        """Test existing names are never overwritten."""
        destination = tmp_path / "docs"
        destination.mkdir()
        (destination / "report.pdf").write_text("original")
        (destination / "report (1).pdf").write_text("first copy")
        source = tmp_path / "report.pdf"
        source.write_text("new")

        result = MoveExecutor().move(source, destination)

        assert result.destination_path == destination / "report (2).pdf"
        assert result.collision_suffix == " (2)"
        assert (destination / "report.pdf").read_text() == "original"
        assert (destination / "report (2).pdf").read_text() == "new"

    def test_directory_collision(self, tmp_path):
        """Test directories get the suffix after the full name."""
        destination = tmp_path / "archives"
        (destination / "project.old").mkdir(parents=True)
        source = tmp_path / "project.old"
        source.mkdir()
        (source / "file.txt").write_text("x")

        result = MoveExecutor().move(source, destination)

        assert result.is_directory
        assert result.destination_path == destination / "project.old (1)"
        assert (destination / "project.old (1)" / "file.txt").exists()

    def test_vanished_source_is_skipped(self, tmp_path):
        """Test a source deleted after scanning is skipped."""
        result = MoveExecutor().move(tmp_path / "gone.txt", tmp_path / "dest")

        assert result.status == MoveStatus.SKIPPED
        assert result.reason == "source no longer exists"
        assert not (tmp_path / "dest").exists()

    def test_same_location_is_skipped(self, tmp_path):
        """Test moving an entry onto itself is a no-op."""
        source = tmp_path / "a.txt"
        source.write_text("a")

        result = MoveExecutor().move(source, tmp_path)

        assert result.status == MoveStatus.SKIPPED
        assert source.exists()

    def test_unwritable_destination(self, tmp_path):
        """Test a destination that cannot be created fails the entry."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        source = tmp_path / "a.txt"
        source.write_text("a")

        result = MoveExecutor().move(source, blocker / "sub")

        assert result.status == MoveStatus.FAILED
        assert "Failed to create destination directory" in result.reason
        assert source.exists()

    def test_rename_error_fails_entry(self, tmp_path, monkeypatch):
        """Test errors other than cross-device are reported."""

        def denied(*args, **kwargs):
            raise PermissionError(errno.EACCES, "Permission denied")

        monkeypatch.setattr(mover.os, "rename", denied)
        source = tmp_path / "a.txt"
        source.write_text("a")

        result = MoveExecutor().move(source, tmp_path / "dest")

        assert result.status == MoveStatus.FAILED
        assert source.exists()

    def test_too_many_collisions(self, tmp_path, monkeypatch):
        """Test collision search gives up after the attempt limit."""
        monkeypatch.setattr(mover, "MAX_COLLISION_ATTEMPTS", 2)
        destination = tmp_path / "dest"
        destination.mkdir()
        for name in ("a.txt", "a (1).txt", "a (2).txt"):
            (destination / name).write_text("taken")

        with pytest.raises(MoveIOError):
            MoveExecutor().resolve_collision(destination / "a.txt")


class TestDryRun:
    """Test dry-run planning."""

    def test_dry_run_touches_nothing(self, tmp_path):
        """Test no file or directory is created or moved."""
        source = tmp_path / "a.txt"
        source.write_text("a")
        destination = tmp_path / "dest"

        result = MoveExecutor(dry_run=True).move(source, destination)

        assert result.status == MoveStatus.MOVED
        assert result.dry_run
        assert result.destination_path == destination / "a.txt"
        assert source.exists()
        assert not destination.exists()

    def test_dry_run_reserves_planned_names(self, tmp_path):
        """Test two planned moves to the same name get distinct paths."""
        first = tmp_path / "one" / "a.txt"
        second = tmp_path / "two" / "a.txt"
        for path in (first, second):
            path.parent.mkdir()
            path.write_text("a")
        executor = MoveExecutor(dry_run=True)

        planned = [executor.move(p, tmp_path / "dest") for p in (first, second)]

        assert planned[0].destination_path == tmp_path / "dest" / "a.txt"
        assert planned[1].destination_path == tmp_path / "dest" / "a (1).txt"


class TestCrossDevice:
    """Test the copy, verify and delete fallback."""

    def test_copy_fallback(self, tmp_path, monkeypatch):
        """Test EXDEV falls back to copy and removes the source."""
        monkeypatch.setattr(mover.os, "rename", _cross_device)
        source = tmp_path / "tree"
        (source / "sub").mkdir(parents=True)
        (source / "sub" / "file.bin").write_bytes(b"12345")

        result = MoveExecutor().move(source, tmp_path / "dest")

        assert result.status == MoveStatus.MOVED
        assert result.used_copy_fallback
        assert not source.exists()
        assert (tmp_path / "dest" / "tree" / "sub" / "file.bin").read_bytes() == (
            b"12345"
        )

    def test_size_mismatch_discards_copy(self, tmp_path, monkeypatch):
        """Test a short copy is removed and the source kept."""
        monkeypatch.setattr(mover.os, "rename", _cross_device)
        sizes = iter([5, 5, 3])
        monkeypatch.setattr(mover, "tree_size", lambda path: next(sizes))
        source = tmp_path / "a.bin"
        source.write_bytes(b"12345")

        result = MoveExecutor().move(source, tmp_path / "dest")

        assert result.status == MoveStatus.FAILED
        assert "Size mismatch" in result.reason
        assert source.exists()
        assert not (tmp_path / "dest" / "a.bin").exists()

    def test_source_removal_failure_keeps_both(self, tmp_path, monkeypatch):
        """Test the verified copy survives when the source cannot be deleted."""
        monkeypatch.setattr(mover.os, "rename", _cross_device)

        def undeletable(self, source: Path, target: Path) -> None:
            raise MoveIOError(f"Copied to {target} but could not remove {source}")

        monkeypatch.setattr(MoveExecutor, "_remove_source", undeletable)
        source = tmp_path / "a.bin"
        source.write_bytes(b"12345")

        result = MoveExecutor().move(source, tmp_path / "dest")

        assert result.status == MoveStatus.FAILED
        assert source.exists()
        assert (tmp_path / "dest" / "a.bin").exists()

    def test_symlink_is_moved_not_followed(self, tmp_path, monkeypatch):
        """Test symlinks are copied as links."""
        monkeypatch.setattr(mover.os, "rename", _cross_device)
        real = tmp_path / "real.txt"
        real.write_text("data")
        link = tmp_path / "link.txt"
        link.symlink_to(real)

        result = MoveExecutor().move(link, tmp_path / "dest")

        assert result.status == MoveStatus.MOVED
        assert os.path.islink(tmp_path / "dest" / "link.txt")
        assert real.exists()
