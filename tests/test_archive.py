"""Tests for the image tar assembler."""

from __future__ import annotations

import tarfile
from pathlib import Path

import pytest

from pullkit_builtin.images.archive import CONFIG_ENTRY_NAME, ImageArchive, layer_entry_name


def _blob(tmp_path: Path, name: str, data: bytes) -> Path:
    path = tmp_path / name
    path.write_bytes(data)
    return path


def test_layer_entry_name_is_filesystem_safe() -> None:
    assert layer_entry_name("sha256:ab12") == "layer-sha256_ab12.tar.gz"


def test_finalize_publishes_entries_in_order(tmp_path: Path) -> None:
    destination = tmp_path / "out" / "image.tar"
    with ImageArchive.begin(destination) as archive:
        archive.add_entry(layer_entry_name("sha256:1"), _blob(tmp_path, "one", b"first"))
        archive.add_entry(layer_entry_name("sha256:2"), _blob(tmp_path, "two", b"second"))
        archive.add_entry(CONFIG_ENTRY_NAME, _blob(tmp_path, "cfg", b"{}"))
        assert not destination.exists()

    with tarfile.open(destination) as tar:
        assert tar.getnames() == ["layer-sha256_1.tar.gz", "layer-sha256_2.tar.gz", "config.json"]
        assert tar.extractfile("config.json").read() == b"{}"
    assert not (tmp_path / "out" / "image.tar.part").exists()


def test_exception_aborts_the_archive(tmp_path: Path) -> None:
    destination = tmp_path / "image.tar"
    with pytest.raises(RuntimeError):
        with ImageArchive.begin(destination) as archive:
            archive.add_entry("a", _blob(tmp_path, "a", b"a"))
            raise RuntimeError("config fetch failed")
    assert not destination.exists()
    assert not (tmp_path / "image.tar.part").exists()


def test_duplicate_entries_are_rejected(tmp_path: Path) -> None:
    archive = ImageArchive.begin(tmp_path / "image.tar")
    blob = _blob(tmp_path, "a", b"a")
    archive.add_entry("a", blob)
    with pytest.raises(ValueError):
        archive.add_entry("a", blob)
    archive.abort()
    assert not archive.is_open


def test_closed_archive_refuses_entries(tmp_path: Path) -> None:
    archive = ImageArchive(tmp_path / "image.tar")
    with pytest.raises(RuntimeError):
        archive.add_entry("a", _blob(tmp_path, "a", b"a"))
