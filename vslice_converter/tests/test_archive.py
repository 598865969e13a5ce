import io
import zipfile

import pytest

from vslice_converter.archive import (
    decode_archive,
    encode_archive,
    expand_archive_entries,
    find_first_archive,
)
from vslice_converter.errors import ArchiveExtractionError
from vslice_converter.intake import InputFile


def _build_zip(entries: dict[str, bytes], directories: tuple[str, ...] = ()) -> bytes:
    payload = io.BytesIO()
    with zipfile.ZipFile(payload, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
        for directory in directories:
            archive.writestr(zipfile.ZipInfo(directory), b"")
        for name, content in entries.items():
            archive.writestr(name, content)
    return payload.getvalue()


def test_decode_archive_skips_directory_entries():
    content = _build_zip(
        {"songs/a.ogg": b"OggS", "data/b.json": b"{}", "images/c.png": b"\x89PNG"},
        directories=("songs/",),
    )

    decoded = decode_archive(content)

    assert [name for name, _ in decoded.entries] == ["songs/a.ogg", "data/b.json", "images/c.png"]
    assert decoded.entries[0][1] == b"OggS"
    assert decoded.warnings == []


def test_decode_archive_supports_stored_entries():
    payload = io.BytesIO()
    with zipfile.ZipFile(payload, mode="w", compression=zipfile.ZIP_STORED) as archive:
        archive.writestr("plain.json", b'{"song": "Stored"}')

    decoded = decode_archive(payload.getvalue())

    assert decoded.entries == [("plain.json", b'{"song": "Stored"}')]


def test_decode_archive_rejects_non_zip_bytes():
    with pytest.raises(ArchiveExtractionError) as excinfo:
        decode_archive(b"definitely not a zip")

    assert excinfo.value.message == "Failed to extract ZIP file."


def test_decode_archive_rejects_corrupt_member():
    content = bytearray(_build_zip({"data/chart.json": b'{"song": "Corrupt"}' * 20}))
    # Flip a byte inside the compressed payload, right after the local header.
    header_end = 30 + len("data/chart.json")
    content[header_end + 2] ^= 0xFF

    with pytest.raises(ArchiveExtractionError):
        decode_archive(bytes(content))


def test_decode_archive_blocks_unsafe_paths():
    content = _build_zip({"../escape.ogg": b"OggS", "safe.ogg": b"OggS"})

    decoded = decode_archive(content)

    assert [name for name, _ in decoded.entries] == ["safe.ogg"]
    assert any("unsafe" in warning for warning in decoded.warnings)


def test_decode_archive_skips_oversized_entries():
    content = _build_zip({"big.ogg": b"x" * 64, "small.ogg": b"x"})

    decoded = decode_archive(content, max_entry_size_bytes=16)

    assert [name for name, _ in decoded.entries] == ["small.ogg"]
    assert any("oversized" in warning for warning in decoded.warnings)


def test_decode_archive_enforces_total_size_limit():
    content = _build_zip({"a.ogg": b"x" * 40, "b.ogg": b"x" * 40})

    with pytest.raises(ArchiveExtractionError) as excinfo:
        decode_archive(content, max_total_bytes=64)

    assert any("total uncompressed size" in warning for warning in excinfo.value.warnings)


def test_expand_replaces_archive_with_entries_in_place():
    archive_file = InputFile.from_bytes("pack.zip", b"ignored")
    before = InputFile.from_bytes("intro.ogg", b"OggS")
    after = InputFile.from_bytes("cover.png", b"\x89PNG")
    decoded = decode_archive(
        _build_zip(
            {"songs/a.ogg": b"OggS", "data/b.json": b"{}", "images/c.png": b"\x89PNG"},
            directories=("songs/",),
        )
    )

    expanded, warnings = expand_archive_entries((before, archive_file, after), archive_file, decoded)

    assert [file.name for file in expanded] == [
        "intro.ogg",
        "songs/a.ogg",
        "data/b.json",
        "images/c.png",
        "cover.png",
    ]
    assert archive_file not in expanded
    assert warnings == []


def test_expand_only_first_archive_and_drops_other_archives():
    first = InputFile.from_bytes("first.zip", b"")
    second = InputFile.from_bytes("second.ZIP", b"")
    decoded = decode_archive(_build_zip({"inner.zip": b"PK", "data/b.json": b"{}"}))

    assert find_first_archive([InputFile.from_bytes("a.ogg", b""), first, second]) is first

    expanded, warnings = expand_archive_entries((first, second), first, decoded)

    assert [file.name for file in expanded] == ["data/b.json"]
    assert not any(file.name.lower().endswith(".zip") for file in expanded)
    assert len(warnings) == 2


def test_find_first_archive_returns_none_without_archive():
    assert find_first_archive([InputFile.from_bytes("a.ogg", b"")]) is None


def test_encode_archive_round_trips_bytes_and_text():
    content = encode_archive([("songs/a.ogg", b"\x00\x01OggS"), ("data/b.json", '{\n  "x": 1\n}')])

    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        assert archive.namelist() == ["songs/a.ogg", "data/b.json"]
        assert archive.read("songs/a.ogg") == b"\x00\x01OggS"
        assert archive.read("data/b.json").decode("utf-8") == '{\n  "x": 1\n}'


def test_encode_archive_last_write_wins_for_duplicate_paths():
    content = encode_archive([("data/a.json", "first"), ("songs/x.ogg", b"x"), ("data/a.json", "second")])

    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        assert archive.namelist() == ["data/a.json", "songs/x.ogg"]
        assert archive.read("data/a.json") == b"second"
