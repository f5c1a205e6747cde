from __future__ import annotations

import io
import json
import sys
import threading
import zipfile
from collections.abc import Callable, Iterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
import pytest
import respx
from botocore.exceptions import ClientError

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
for path in (SRC_PATH, PROJECT_ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from rxiv_ingest.config import CatalogConfig, StoreConfig  # noqa: E402
from rxiv_ingest.data.catalog import CatalogClient  # noqa: E402
from rxiv_ingest.data.store import ObjectStoreClient  # noqa: E402

CATALOG_URL = "https://catalog.test"
LAST_MODIFIED = datetime(2024, 2, 1, 12, 0, tzinfo=timezone.utc)

MANIFEST_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<manifest xmlns="https://manuscriptexchange.org/schema/manifest"
          xmlns:xlink="http://www.w3.org/1999/xlink" manifest-version="1">
  <item id="a1" type="article">
    <title>Main manuscript</title>
    <instance media-type="application/pdf" xlink:href="content/{stem}.pdf"/>
    <instance media-type="application/xml" xlink:href="{jats_href}"/>
  </item>
  <item id="s1" type="supplement">
    <instance media-type="application/xml" xlink:href="content/supplements/{stem}-s1.xml"/>
  </item>
</manifest>
"""

JATS_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<article xmlns:xlink="http://www.w3.org/1999/xlink" article-type="article">
  <front>
    <article-meta>
      <article-id pub-id-type="doi">{doi}</article-id>
      <article-version>{version}</article-version>
      <title-group><article-title>{title}</article-title></title-group>
      <history>
        <date date-type="received"><day>05</day><month>01</month><year>2024</year></date>
        <date date-type="accepted"><day>9</day><month>1</month><year>2024</year></date>
      </history>
    </article-meta>
  </front>
  <body><p>Funded by the Bill &amp; Melinda Gates Foundation.</p></body>
</article>
"""


def build_jats(doi: str, *, version: str = "1.1", title: str = "A preprint") -> str:
    return JATS_TEMPLATE.format(doi=doi, version=version, title=title)


def build_meca_bytes(
    doi: str = "10.1101/2024.01.05.574321",
    *,
    stem: str = "574321",
    version: str = "1.1",
    title: str = "A preprint",
    jats: str | None = None,
    jats_href: str | None = None,
    include_manifest: bool = True,
    include_jats: bool = True,
    padding: bytes = b"",
) -> bytes:
    """Build a MECA-shaped zip. *padding* is stored first, uncompressed."""

    href = jats_href or f"content/{stem}.xml"
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        if padding:
            archive.writestr(f"content/{stem}.pdf", padding, compress_type=zipfile.ZIP_STORED)
        if include_jats:
            archive.writestr(
                href,
                jats if jats is not None else build_jats(doi, version=version, title=title),
                compress_type=zipfile.ZIP_DEFLATED,
            )
        archive.writestr("directives.xml", "<directives/>")
        if include_manifest:
            archive.writestr(
                "manifest.xml",
                MANIFEST_TEMPLATE.format(stem=stem, jats_href=href),
                compress_type=zipfile.ZIP_DEFLATED,
            )
    return buffer.getvalue()


def _client_error(code: str, status: int, operation: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client methods the store uses."""

    def __init__(self, objects: dict[str, bytes] | None = None) -> None:
        self.objects: dict[str, bytes] = dict(objects or {})
        self.sizes: dict[str, int] = {}
        self.failing_downloads: set[str] = set()
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def _record(self, name: str, kwargs: dict[str, Any]) -> None:
        with self._lock:
            self.calls.append((name, kwargs))

    def calls_to(self, name: str) -> list[dict[str, Any]]:
        return [kwargs for call, kwargs in self.calls if call == name]

    def _size(self, key: str) -> int:
        return self.sizes.get(key, len(self.objects[key]))

    def list_objects_v2(self, **kwargs: Any) -> dict[str, Any]:
        self._record("list_objects_v2", kwargs)
        prefix = kwargs.get("Prefix", "")
        keys = sorted(key for key in self.objects if key.startswith(prefix))
        delimiter = kwargs.get("Delimiter")
        if delimiter:
            folders = sorted(
                {
                    prefix + key[len(prefix) :].split(delimiter)[0] + delimiter
                    for key in keys
                    if delimiter in key[len(prefix) :]
                }
            )
            return {"CommonPrefixes": [{"Prefix": folder} for folder in folders]}

        start = int(kwargs.get("ContinuationToken") or 0)
        max_keys = int(kwargs.get("MaxKeys", 1000))
        page = keys[start : start + max_keys]
        response: dict[str, Any] = {
            "KeyCount": len(page),
            "Contents": [
                {"Key": key, "Size": self._size(key), "LastModified": LAST_MODIFIED} for key in page
            ],
        }
        if start + max_keys < len(keys):
            response["IsTruncated"] = True
            response["NextContinuationToken"] = str(start + max_keys)
        return response

    def head_object(self, **kwargs: Any) -> dict[str, Any]:
        self._record("head_object", kwargs)
        key = kwargs["Key"]
        if key not in self.objects:
            raise _client_error("404", 404, "HeadObject")
        return {
            "ContentLength": self._size(key),
            "ContentType": "application/zip",
            "LastModified": LAST_MODIFIED,
        }

    def get_object(self, **kwargs: Any) -> dict[str, Any]:
        self._record("get_object", kwargs)
        key = kwargs["Key"]
        if key not in self.objects:
            raise _client_error("NoSuchKey", 404, "GetObject")
        data = self.objects[key]
        byte_range = kwargs.get("Range")
        if byte_range:
            start, end = byte_range.removeprefix("bytes=").split("-")
            data = data[int(start) : int(end) + 1]
        return {"Body": io.BytesIO(data), "ContentLength": len(data)}

    def download_file(
        self, bucket: str, key: str, filename: str, ExtraArgs: dict[str, Any] | None = None
    ) -> None:
        self._record("download_file", {"Bucket": bucket, "Key": key, "ExtraArgs": ExtraArgs})
        if key in self.failing_downloads or key not in self.objects:
            raise _client_error("NoSuchKey", 404, "GetObject")
        Path(filename).write_bytes(self.objects[key])


class FakeCatalogService:
    """Stateful catalog behind respx routes: registrations persist across calls."""

    def __init__(self) -> None:
        self.works: dict[tuple[str, int], dict[str, Any]] = {}
        self.by_key: dict[str, dict[str, Any]] = {}
        self.posted: list[dict[str, Any]] = []
        self.fail_bulk = False
        self.bulk_body: Any = None
        self.fail_register: set[str] = set()
        self.router: respx.MockRouter | None = None
        self._lock = threading.Lock()

    def preload(
        self, s3_key: str, batch: str, *, doi: str = "10.1101/000000", version: int = 1
    ) -> None:
        record = {"doi": doi, "version": version, "batch": batch, "s3Key": s3_key}
        self.works[(doi, version)] = record
        self.by_key[s3_key] = record

    def handle_list(self, request: httpx.Request) -> httpx.Response:
        if self.fail_bulk:
            return httpx.Response(500, json={"error": "Internal server error"})
        if self.bulk_body is not None:
            return httpx.Response(200, json=self.bulk_body)
        params = request.url.params
        limit = int(params.get("limit", "100"))
        offset = int(params.get("offset", "0"))
        with self._lock:
            files = sorted(self.by_key.values(), key=lambda record: record["s3Key"])
        page = files[offset : offset + limit]
        has_more = offset + limit < len(files)
        return httpx.Response(
            200,
            json={
                "month": params.get("month"),
                "files": page,
                "pagination": {
                    "total": len(files),
                    "limit": limit,
                    "offset": offset,
                    "hasMore": has_more,
                    "nextOffset": offset + limit if has_more else None,
                },
            },
        )

    def handle_lookup(self, request: httpx.Request) -> httpx.Response:
        key = request.url.params.get("key", "")
        with self._lock:
            record = self.by_key.get(key)
        if record is None:
            return httpx.Response(404, json={"error": "Work not found", "s3Key": key})
        return httpx.Response(200, json=record)

    def handle_register(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if payload["s3Key"] in self.fail_register:
            return httpx.Response(500, json={"error": "Internal server error"})
        identity = (payload["doi"], payload["version"])
        with self._lock:
            self.posted.append(payload)
            if identity in self.works:
                return httpx.Response(409, json={"error": "Work already exists"})
            self.works[identity] = payload
            self.by_key[payload["s3Key"]] = payload
        return httpx.Response(201, json={"id": len(self.works), **payload})

    def install(self, router: respx.MockRouter) -> None:
        self.router = router
        healthy = httpx.Response(200, json={"ok": True})
        router.get(f"{CATALOG_URL}/health").mock(return_value=healthy)
        router.get(f"{CATALOG_URL}/v1/bucket/list").mock(side_effect=self.handle_list)
        router.get(f"{CATALOG_URL}/v1/bucket").mock(side_effect=self.handle_lookup)
        router.post(f"{CATALOG_URL}/v1/works").mock(side_effect=self.handle_register)


@pytest.fixture
def meca_bytes() -> Callable[..., bytes]:
    return build_meca_bytes


@pytest.fixture
def jats_text() -> Callable[..., str]:
    return build_jats


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def store(fake_s3: FakeS3Client) -> ObjectStoreClient:
    return ObjectStoreClient(StoreConfig(), client=fake_s3)


@pytest.fixture
def catalog_service() -> Iterator[FakeCatalogService]:
    service = FakeCatalogService()
    with respx.mock(assert_all_called=False) as router:
        service.install(router)
        yield service


@pytest.fixture
def catalog(catalog_service: FakeCatalogService) -> Iterator[CatalogClient]:
    client = CatalogClient(CatalogConfig(api_url=CATALOG_URL, api_key="secret-key"))
    yield client
    client.close()
