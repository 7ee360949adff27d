"""
Pytest configuration and fixtures for wardex tests.

Every test gets its own workspace under tmp_path; WX_ environment variables
from the developer's shell are removed so they cannot leak into settings.
"""

import os
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, Dict, List

import pytest

from wardex.core.config import WardexSettings
from wardex.organization.organizer import Organizer


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Strip WX_ variables and point state/config lookups into tmp_path."""
    for key in list(os.environ):
        if key.startswith("WX_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("WX_STATE_FILE", str(tmp_path / "state" / "state.json"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))


@pytest.fixture
def workspace(tmp_path) -> Path:
    """Workspace with an empty inbox."""
    ws = tmp_path / "workspace"
    (ws / "0_Inbox").mkdir(parents=True)
    return ws


@pytest.fixture
def settings(workspace) -> WardexSettings:
    """Settings with a single PDF rule and a short lock timeout."""
    return WardexSettings(
        paths={"workspace": workspace},
        rules={"clean": [{"pattern": r".*\.pdf$", "target": "resources/Documents"}]},
        lock_timeout=1.0,
    )


@pytest.fixture
def inbox(settings) -> Path:
    return settings.resolve_path("inbox")


@pytest.fixture
def organizer(settings) -> Organizer:
    return Organizer(settings)


@pytest.fixture
def make_zip(tmp_path) -> Callable[..., Path]:
    """Build a zip archive with the given member names."""

    def _make(name: str, members: List[str], directory: Path = tmp_path) -> Path:
        path = directory / name
        with zipfile.ZipFile(path, "w") as archive:
            for member in members:
                archive.writestr(member, f"content of {member}")
        return path

    return _make


@pytest.fixture
def make_tar(tmp_path) -> Callable[..., Path]:
    """Build a (optionally gzipped) tar archive with the given member names."""

    def _make(
        name: str,
        members: Dict[str, bytes],
        directory: Path = tmp_path,
        mode: str = "w:gz",
    ) -> Path:
        staging = tmp_path / f"staging-{name}"
        staging.mkdir()
        path = directory / name
        with tarfile.open(path, mode) as archive:
            for member, data in members.items():
                source = staging / member.replace("/", "_")
                source.write_bytes(data)
                archive.add(source, arcname=member)
        return path

    return _make


@pytest.fixture
def make_undecodable_zip(make_zip) -> Callable[..., Path]:
    """Zip whose member name is flagged UTF-8 but holds invalid bytes."""

    def _make(name: str) -> Path:
        path = make_zip(name, ["éxploit.bin"])
        data = path.read_bytes()
        # Same length, so local header and central directory stay consistent
        path.write_bytes(data.replace("é".encode("utf-8"), b"\xff\xfe"))
        return path

    return _make
