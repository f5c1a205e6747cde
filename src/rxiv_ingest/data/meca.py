"""Read MECA archives: the manifest and the JATS manuscript it points to.

A MECA file is a zip whose ``manifest.xml`` lists items (article, figures,
supplements, ...) and for each item one or more instances with a media type and an
archive-relative ``href``.
"""

from __future__ import annotations

import io
import logging
import shutil
import xml.etree.ElementTree as ET
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from ..errors import ExtractionError
from ..utils.xmltree import Element, find_all, find_first, parse_xml, text_content
from .store import ObjectStoreClient

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.xml"
ARTICLE_ITEM_TYPE = "article"
XML_MEDIA_TYPE = "application/xml"
EXCLUDED_HREF_MARKERS = ("manifest", "directives")

INITIAL_TAIL_BYTES = 1024 * 1024
MAX_TAIL_ATTEMPTS = 8
_COPY_BUFFER = 1024 * 1024


@dataclass(slots=True)
class ManifestInstance:
    media_type: str
    href: str


@dataclass(slots=True)
class ManifestItem:
    item_id: str
    item_type: str
    title: str
    instances: list[ManifestInstance] = field(default_factory=list)


@dataclass(slots=True)
class Manifest:
    items: list[ManifestItem]

    def jats_href(self) -> str | None:
        """Archive path of the manuscript XML, using ``/`` separators.

        The first XML instance of the first ``article`` item wins; manifest and
        directives files are never the manuscript.
        """

        for item in self.items:
            if item.item_type != ARTICLE_ITEM_TYPE:
                continue
            for instance in item.instances:
                href = instance.href.replace("\\", "/")
                if (
                    instance.media_type == XML_MEDIA_TYPE
                    and href.endswith(".xml")
                    and not any(marker in href for marker in EXCLUDED_HREF_MARKERS)
                ):
                    return href
        return None


@dataclass(slots=True)
class ExtractedArchive:
    """Files written for one archive; ``scratch_dir`` is owned by the caller."""

    scratch_dir: Path
    manifest_path: Path
    jats_path: Path
    selective: bool


def _manifest_from_tree(root: Element) -> Manifest:
    manifest = root if root.name == "manifest" else find_first(root, "manifest")
    if manifest is None:
        raise ExtractionError("Manifest element not found")
    items = []
    for node in find_all(manifest, "item"):
        title_node = find_first(node, "title")
        items.append(
            ManifestItem(
                item_id=node.get("id") or "",
                item_type=node.get("type") or "",
                title=text_content(title_node).strip() if title_node is not None else "",
                instances=[
                    ManifestInstance(
                        media_type=instance.get("media-type") or "",
                        href=instance.get("href") or "",
                    )
                    for instance in find_all(node, "instance")
                ],
            )
        )
    return Manifest(items=items)


def parse_manifest(content: str | bytes) -> Manifest:
    try:
        root = parse_xml(content)
    except ET.ParseError as exc:
        raise ExtractionError(f"Could not parse {MANIFEST_NAME}: {exc}") from exc
    return _manifest_from_tree(root)


def _open_archive(archive_path: Path) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(archive_path)
    except (zipfile.BadZipFile, OSError) as exc:
        raise ExtractionError(f"Not a readable MECA archive: {archive_path}: {exc}") from exc


def _member_name(archive: zipfile.ZipFile, href: str) -> str | None:
    names = set(archive.namelist())
    for candidate in (href, href.replace("/", "\\")):
        if candidate in names:
            return candidate
    return None


def _safe_target(scratch_dir: Path, relative: str) -> Path:
    target = (scratch_dir / PurePosixPath(relative.replace("\\", "/"))).resolve()
    if not target.is_relative_to(scratch_dir.resolve()):
        raise ExtractionError(f"Archive member escapes the extraction directory: {relative}")
    return target


def _copy_member(archive: zipfile.ZipFile, member: str, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    with archive.open(member) as source, target.open("wb") as sink:
        shutil.copyfileobj(source, sink, _COPY_BUFFER)


def _verify(path: Path, description: str) -> Path:
    if not path.is_file():
        raise ExtractionError(f"{description} was not extracted successfully to: {path}")
    return path


def extract_selective(archive_path: Path, scratch_dir: Path) -> ExtractedArchive:
    """Write only ``manifest.xml`` and the manuscript XML into *scratch_dir*."""

    scratch_dir.mkdir(parents=True, exist_ok=True)
    with _open_archive(archive_path) as archive:
        manifest_member = _member_name(archive, MANIFEST_NAME)
        if manifest_member is None:
            raise ExtractionError(f"Manifest not found in MECA file {archive_path.name}")
        manifest_path = scratch_dir / MANIFEST_NAME
        _copy_member(archive, manifest_member, manifest_path)

        manifest = parse_manifest(manifest_path.read_bytes())
        href = manifest.jats_href()
        if href is None:
            raise ExtractionError("No JATS XML file found in manifest")
        member = _member_name(archive, href)
        if member is None:
            raise ExtractionError(f"Could not extract JATS file: {href}")
        jats_path = _safe_target(scratch_dir, href)
        _copy_member(archive, member, jats_path)

    logger.debug("Selectively extracted %s from %s", href, archive_path.name)
    return ExtractedArchive(
        scratch_dir=scratch_dir,
        manifest_path=manifest_path,
        jats_path=_verify(jats_path, "JATS file"),
        selective=True,
    )


def extract_full(archive_path: Path, scratch_dir: Path) -> ExtractedArchive:
    """Decompress every member of the archive into *scratch_dir*, streaming each one."""

    scratch_dir.mkdir(parents=True, exist_ok=True)
    with _open_archive(archive_path) as archive:
        for info in archive.infolist():
            target = _safe_target(scratch_dir, info.filename)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            _copy_member(archive, info.filename, target)

    manifest_path = _verify(scratch_dir / MANIFEST_NAME, "Manifest")
    manifest = parse_manifest(manifest_path.read_bytes())
    href = manifest.jats_href()
    if href is None:
        raise ExtractionError("No JATS XML file found in manifest")
    logger.debug("Fully extracted %s", archive_path.name)
    return ExtractedArchive(
        scratch_dir=scratch_dir,
        manifest_path=manifest_path,
        jats_path=_verify(_safe_target(scratch_dir, href), "JATS file"),
        selective=False,
    )


def extract_archive(
    archive_path: Path, scratch_dir: Path, *, selective: bool = True
) -> ExtractedArchive:
    if selective:
        return extract_selective(archive_path, scratch_dir)
    return extract_full(archive_path, scratch_dir)


def _manifest_from_zip_bytes(payload: bytes) -> bytes:
    with zipfile.ZipFile(io.BytesIO(payload)) as archive:
        member = _member_name(archive, MANIFEST_NAME)
        if member is None:
            raise KeyError(MANIFEST_NAME)
        return archive.read(member)


def read_remote_manifest(
    store: ObjectStoreClient,
    key: str,
    *,
    initial_chunk: int = INITIAL_TAIL_BYTES,
    max_attempts: int = MAX_TAIL_ATTEMPTS,
) -> bytes:
    """Fetch ``manifest.xml`` from a remote archive without downloading all of it.

    The zip central directory sits at the end of the file, and MECA packagers write
    the manifest close to it. Read the tail, try to open it as a zip, and double the
    range while the zip is incomplete. After *max_attempts* reads, or once the range
    spans the whole object, download the complete object instead.
    """

    size = store.head(key).size
    chunk = min(initial_chunk, size)
    attempt = 0
    while attempt < max_attempts and 0 < chunk < size:
        attempt += 1
        start = size - chunk
        payload = store.get_range(key, start, size - 1)
        try:
            manifest = _manifest_from_zip_bytes(payload)
        except KeyError:
            raise ExtractionError(f"Manifest not found in MECA file {key}") from None
        except (zipfile.BadZipFile, ValueError, EOFError, OSError):
            logger.debug("Tail of %d bytes of %s is not a complete zip; doubling", chunk, key)
            chunk = min(chunk * 2, size)
            continue
        logger.info("Read manifest of %s from the last %d of %d bytes", key, chunk, size)
        return manifest

    logger.info("Falling back to a full download of %s (%d bytes)", key, size)
    payload = store.get_bytes(key)
    try:
        return _manifest_from_zip_bytes(payload)
    except KeyError:
        raise ExtractionError(f"Manifest not found in MECA file {key}") from None
    except zipfile.BadZipFile as exc:
        raise ExtractionError(f"Not a readable MECA archive: {key}: {exc}") from exc


__all__ = [
    "ExtractedArchive",
    "MANIFEST_NAME",
    "Manifest",
    "ManifestInstance",
    "ManifestItem",
    "extract_archive",
    "extract_full",
    "extract_selective",
    "parse_manifest",
    "read_remote_manifest",
]
