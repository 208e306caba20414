"""Tests for zip extraction and the scratch store."""

import zipfile
from pathlib import Path

import pytest

from slidestack.errors import ArchiveOpenError
from slidestack.io.archive import ScratchStore, extract, extract_to_store, open_archive

from conftest import corrupt_member, png_bytes, zip_bytes


@pytest.fixture
def five_members():
    return {f"img{i}.png": png_bytes(color=(i * 40, 0, 0, 255)) for i in range(5)}


def test_extract_yields_all_members(five_members):
    entries = list(extract(zip_bytes(five_members)))
    assert [name for name, _ in entries] == list(five_members)
    assert entries[0][1] == five_members["img0.png"]


def test_extract_skips_corrupted_member(five_members, caplog):
    archive = corrupt_member(zip_bytes(five_members), "img2.png")
    entries = list(extract(archive))

    assert len(entries) == 4
    assert "img2.png" not in [name for name, _ in entries]
    assert "Skipping unreadable archive member img2.png" in caplog.text


def test_extract_corrupt_archive_yields_nothing(caplog):
    assert list(extract(b"this is not a zip archive")) == []
    assert "Could not open archive" in caplog.text


def test_open_archive_raises_for_garbage():
    with pytest.raises(ArchiveOpenError):
        open_archive(b"PK\x03\x04 truncated")


def test_extract_skips_directories_and_hidden_members():
    archive = zip_bytes({
        "photos/": b"",
        "photos/a.png": png_bytes(),
        "__MACOSX/photos/._a.png": b"resource fork",
        ".DS_Store": b"finder",
        "photos/.thumb.png": png_bytes(),
    })
    assert [name for name, _ in extract(archive)] == ["photos/a.png"]


def test_extract_deflated_members():
    archive = zip_bytes({"a.png": png_bytes(), "b.png": png_bytes()}, compression=zipfile.ZIP_DEFLATED)
    assert len(list(extract(archive))) == 2


def test_scratch_store_avoids_collisions():
    with ScratchStore() as store:
        first = store.write("left/cover.png", b"one")
        second = store.write("right/cover.png", b"two")
        assert first != second
        assert first.parent == second.parent == store.root
        assert first.name.endswith("cover.png")
        assert first.read_bytes() == b"one"
        assert second.read_bytes() == b"two"
        root = store.root
    assert not root.exists()


def test_extract_to_store(tmp_path: Path, five_members):
    archive_path = tmp_path / "bundle.zip"
    archive_path.write_bytes(corrupt_member(zip_bytes(five_members), "img4.png"))

    with ScratchStore() as store:
        written = extract_to_store(archive_path, store)
        assert [name for name, _ in written] == ["img0.png", "img1.png", "img2.png", "img3.png"]
        assert all(path.exists() for _, path in written)


def test_extract_to_store_skips_failed_writes(tmp_path: Path, five_members, monkeypatch):
    archive_path = tmp_path / "bundle.zip"
    archive_path.write_bytes(zip_bytes(five_members))
    store = ScratchStore()
    real_write = store.write

    def flaky_write(name, data):
        if name == "img1.png":
            raise OSError("disk full")
        return real_write(name, data)

    monkeypatch.setattr(store, "write", flaky_write)
    try:
        written = extract_to_store(archive_path, store)
    finally:
        store.close()
    assert len(written) == 4
    assert "img1.png" not in [name for name, _ in written]


def test_extract_to_store_missing_archive(tmp_path: Path):
    with ScratchStore() as store:
        with pytest.raises(OSError):
            extract_to_store(tmp_path / "missing.zip", store)
