from __future__ import annotations

import io
import os
import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest
from conftest import FakeS3Client

from rxiv_ingest.data.meca import (
    extract_archive,
    parse_manifest,
    read_remote_manifest,
)
from rxiv_ingest.data.store import ObjectStoreClient
from rxiv_ingest.errors import ErrorKind, ExtractionError

MecaFactory = Callable[..., bytes]


def _write(tmp_path: Path, payload: bytes, name: str = "paper.meca") -> Path:
    path = tmp_path / name
    path.write_bytes(payload)
    return path


def test_manifest_locates_article_xml(meca_bytes: MecaFactory) -> None:
    with zipfile.ZipFile(io.BytesIO(meca_bytes())) as archive:
        manifest = parse_manifest(archive.read("manifest.xml"))

    assert [item.item_type for item in manifest.items] == ["article", "supplement"]
    assert manifest.items[0].title == "Main manuscript"
    assert manifest.items[0].instances[0].media_type == "application/pdf"
    assert manifest.jats_href() == "content/574321.xml"


def test_manifest_skips_directives_and_normalizes_backslashes() -> None:
    manifest = parse_manifest(
        """<manifest xmlns:xlink="http://www.w3.org/1999/xlink">
          <item type="article">
            <instance media-type="application/xml" xlink:href="directives.xml"/>
            <instance media-type="application/xml" xlink:href="content\\123.xml"/>
          </item>
        </manifest>"""
    )

    assert manifest.jats_href() == "content/123.xml"


def test_selective_extraction_writes_only_manifest_and_jats(
    tmp_path: Path, meca_bytes: MecaFactory
) -> None:
    archive_path = _write(tmp_path, meca_bytes(padding=b"%PDF" * 100))
    scratch = tmp_path / "scratch"

    extracted = extract_archive(archive_path, scratch)

    assert extracted.selective
    assert extracted.jats_path == (scratch / "content" / "574321.xml").resolve()
    assert extracted.jats_path.read_text(encoding="utf-8").startswith("<?xml")
    written = sorted(path.relative_to(scratch).as_posix() for path in scratch.rglob("*.*"))
    assert written == ["content/574321.xml", "manifest.xml"]


def test_full_extraction_writes_every_member(tmp_path: Path, meca_bytes: MecaFactory) -> None:
    archive_path = _write(tmp_path, meca_bytes(padding=b"%PDF" * 100))
    scratch = tmp_path / "scratch"

    extracted = extract_archive(archive_path, scratch, selective=False)

    assert not extracted.selective
    assert (scratch / "content" / "574321.pdf").exists()
    assert (scratch / "directives.xml").exists()
    assert extracted.jats_path.exists()


def test_backslash_member_names_are_found(tmp_path: Path, meca_bytes: MecaFactory) -> None:
    archive_path = _write(tmp_path, meca_bytes(jats_href="content\\574321.xml"))

    extracted = extract_archive(archive_path, tmp_path / "scratch")

    assert extracted.jats_path.name == "574321.xml"
    assert extracted.jats_path.exists()


def test_missing_manifest_raises(tmp_path: Path, meca_bytes: MecaFactory) -> None:
    archive_path = _write(tmp_path, meca_bytes(include_manifest=False))

    with pytest.raises(ExtractionError, match="Manifest") as excinfo:
        extract_archive(archive_path, tmp_path / "scratch")

    assert excinfo.value.kind is ErrorKind.EXTRACTION


def test_manifest_pointing_at_missing_member_raises(
    tmp_path: Path, meca_bytes: MecaFactory
) -> None:
    archive_path = _write(tmp_path, meca_bytes(include_jats=False))

    with pytest.raises(ExtractionError, match="JATS"):
        extract_archive(archive_path, tmp_path / "scratch")


def test_not_a_zip_raises(tmp_path: Path) -> None:
    archive_path = _write(tmp_path, b"definitely not a zip")

    with pytest.raises(ExtractionError):
        extract_archive(archive_path, tmp_path / "scratch")


def test_members_escaping_scratch_dir_are_rejected(
    tmp_path: Path, meca_bytes: MecaFactory
) -> None:
    archive_path = _write(tmp_path, meca_bytes(jats_href="../../evil.xml"))

    with pytest.raises(ExtractionError, match="escapes"):
        extract_archive(archive_path, tmp_path / "scratch")
    assert not (tmp_path / "evil.xml").exists()


def _remote_archive(fake_s3: FakeS3Client, meca_bytes: MecaFactory) -> tuple[str, bytes]:
    key = "Current_Content/January_2024/remote.meca"
    payload = meca_bytes(padding=os.urandom(64 * 1024))
    fake_s3.objects[key] = payload
    with zipfile.ZipFile(io.BytesIO(payload)) as archive:
        return key, archive.read("manifest.xml")


def test_remote_manifest_is_read_from_the_tail(
    store: ObjectStoreClient, fake_s3: FakeS3Client, meca_bytes: MecaFactory
) -> None:
    key, expected = _remote_archive(fake_s3, meca_bytes)

    manifest = read_remote_manifest(store, key, initial_chunk=64)

    assert manifest == expected
    ranges = [call["Range"] for call in fake_s3.calls_to("get_object")]
    size = len(fake_s3.objects[key])
    assert ranges[0] == f"bytes={size - 64}-{size - 1}"
    assert len(ranges) > 1
    starts = [int(value.removeprefix("bytes=").split("-")[0]) for value in ranges]
    assert starts == sorted(starts, reverse=True)
    assert starts[-1] > 0


def test_remote_manifest_falls_back_to_full_download(
    store: ObjectStoreClient, fake_s3: FakeS3Client, meca_bytes: MecaFactory
) -> None:
    key, expected = _remote_archive(fake_s3, meca_bytes)

    manifest = read_remote_manifest(store, key, initial_chunk=16, max_attempts=2)

    assert manifest == expected
    calls = fake_s3.calls_to("get_object")
    assert len(calls) == 3
    assert "Range" not in calls[-1]


def test_remote_archive_without_manifest(
    store: ObjectStoreClient, fake_s3: FakeS3Client, meca_bytes: MecaFactory
) -> None:
    fake_s3.objects["x.meca"] = meca_bytes(include_manifest=False)

    with pytest.raises(ExtractionError, match="Manifest not found"):
        read_remote_manifest(store, "x.meca")
