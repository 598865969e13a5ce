import asyncio
import io
import json
import zipfile

from vslice_converter.charts import transform_chart_files
from vslice_converter.classification import classify_files
from vslice_converter.intake import InputFile
from vslice_converter.packaging import build_package, collect_package_entries, entry_path


def _package(files, *, root=""):
    bucketed = classify_files(files)
    outcomes = asyncio.run(transform_chart_files(bucketed.data))
    entries = asyncio.run(collect_package_entries(bucketed, outcomes, root=root))
    return entries, build_package(entries)


def test_entry_path_with_and_without_root():
    assert entry_path("songs", "a.ogg") == "songs/a.ogg"
    assert entry_path("data", "x/b.json", root="vslice_mod") == "vslice_mod/data/x/b.json"


def test_non_chart_files_keep_their_bytes():
    audio = b"OggS\x00\x02\xffbinary"
    entries, content = _package([InputFile.from_bytes("track.ogg", audio)])

    assert [entry.path for entry in entries] == ["songs/track.ogg"]
    assert entries[0].converted is False
    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        assert archive.read("songs/track.ogg") == audio


def test_failed_charts_are_skipped():
    entries, _ = _package(
        [
            InputFile.from_bytes("bad.json", b"{broken"),
            InputFile.from_bytes("good.json", b'{"song": "Good"}'),
        ]
    )

    assert [entry.path for entry in entries] == ["data/good.json"]
    assert entries[0].converted is True


def test_chart_in_two_buckets_is_written_converted_twice():
    chart = InputFile.from_bytes("mod/images/meta.json", b'{"song": "Twice"}')
    entries, content = _package([chart])

    assert [entry.path for entry in entries] == ["data/mod/images/meta.json", "images/mod/images/meta.json"]
    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        for name in archive.namelist():
            assert json.loads(archive.read(name))["metadata"]["name"] == "Twice"


def test_non_json_data_file_passes_through():
    sidecar = InputFile.from_bytes("mod/data/events.txt", b"raw events")
    entries, content = _package([sidecar])

    assert [entry.path for entry in entries] == ["data/mod/data/events.txt"]
    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        assert archive.read("data/mod/data/events.txt") == b"raw events"


def test_buckets_are_written_songs_data_images():
    entries, _ = _package(
        [
            InputFile.from_bytes("c.png", b"\x89PNG"),
            InputFile.from_bytes("b.json", b"{}"),
            InputFile.from_bytes("a.ogg", b"OggS"),
        ],
        root="vslice_mod",
    )

    assert [entry.path for entry in entries] == [
        "vslice_mod/songs/a.ogg",
        "vslice_mod/data/b.json",
        "vslice_mod/images/c.png",
    ]
