from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeS3Client

from rxiv_ingest.config import StoreConfig
from rxiv_ingest.data.store import ObjectStoreClient
from rxiv_ingest.errors import ErrorKind, TransportError


def test_requester_pays_is_attached_to_every_request(
    fake_s3: FakeS3Client, tmp_path: Path
) -> None:
    fake_s3.objects["Current_Content/January_2024/a.meca"] = b"0123456789"
    store = ObjectStoreClient(StoreConfig(), client=fake_s3)

    store.list_page("Current_Content/January_2024/")
    store.head("Current_Content/January_2024/a.meca")
    store.get_range("Current_Content/January_2024/a.meca", 2, 4)
    store.download("Current_Content/January_2024/a.meca", tmp_path / "a.meca")

    for name in ("list_objects_v2", "head_object", "get_object"):
        assert all(call["RequestPayer"] == "requester" for call in fake_s3.calls_to(name))
        assert all(call["Bucket"] == "biorxiv-src-monthly" for call in fake_s3.calls_to(name))
    download = fake_s3.calls_to("download_file")[0]
    assert download["ExtraArgs"] == {"RequestPayer": "requester"}


def test_requester_pays_can_be_disabled(fake_s3: FakeS3Client) -> None:
    store = ObjectStoreClient(StoreConfig(requester_pays=False, bucket="mirror"), client=fake_s3)

    store.list_page("Back_Content/")

    call = fake_s3.calls_to("list_objects_v2")[0]
    assert "RequestPayer" not in call
    assert call["Bucket"] == "mirror"


def test_ranged_read_is_inclusive(store: ObjectStoreClient, fake_s3: FakeS3Client) -> None:
    fake_s3.objects["k"] = b"0123456789"

    assert store.get_range("k", 7, 9) == b"789"
    assert fake_s3.calls_to("get_object")[0]["Range"] == "bytes=7-9"
    assert store.get_bytes("k") == b"0123456789"
    assert store.head("k").size == 10


def test_list_page_reports_continuation(store: ObjectStoreClient, fake_s3: FakeS3Client) -> None:
    for index in range(3):
        fake_s3.objects[f"p/{index}.meca"] = b"x"

    first = store.list_page("p/", max_keys=2)
    second = store.list_page("p/", continuation_token=first.next_token, max_keys=2)

    assert [obj.key for obj in first.objects] == ["p/0.meca", "p/1.meca"]
    assert first.next_token == "2"
    assert [obj.key for obj in second.objects] == ["p/2.meca"]
    assert second.next_token is None


def test_client_errors_become_transport_errors(store: ObjectStoreClient) -> None:
    with pytest.raises(TransportError) as excinfo:
        store.head("missing.meca")

    assert excinfo.value.status_code == 404
    assert excinfo.value.kind is ErrorKind.TRANSPORT


def test_download_replaces_partial_file(
    store: ObjectStoreClient, fake_s3: FakeS3Client, tmp_path: Path
) -> None:
    fake_s3.objects["a.meca"] = b"payload"
    target = tmp_path / "out" / "a.meca"

    store.download("a.meca", target)

    assert target.read_bytes() == b"payload"
    assert not (tmp_path / "out" / "a.meca.download").exists()


def test_list_folders_strips_prefix(store: ObjectStoreClient, fake_s3: FakeS3Client) -> None:
    fake_s3.objects["Back_Content/Batch_02/x.meca"] = b"x"
    fake_s3.objects["Back_Content/Batch_01/y.meca"] = b"y"

    assert store.list_folders("Back_Content/") == ["Batch_01", "Batch_02"]
