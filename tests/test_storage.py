"""Tests for the filesystem bucket/object store."""

from __future__ import annotations

import io
import os
import re

import pytest

from gateway.errors import (
    BucketAlreadyExists,
    BucketNotFound,
    InvalidBucketName,
    InvalidObjectKey,
    ObjectNotFound,
)
from gateway import storage
from gateway.storage import LocalObjectStore, generate_object_key, is_valid_bucket_name


def read_back(store: LocalObjectStore, bucket: str, key: str) -> bytes:
    with store.open_object(bucket, key) as f:
        return f.read()


class TestBucketNames:
    @pytest.mark.parametrize("name", ["a", "photos", "my-bucket", "b2", "0-0", "abc-123-def"])
    def test_valid_names(self, name: str) -> None:
        assert is_valid_bucket_name(name)

    @pytest.mark.parametrize(
        "name", ["", "Photos", "-lead", "trail-", "-", "under_score", "dot.name", "sp ace", "../x", "ünï"]
    )
    def test_invalid_names(self, name: str) -> None:
        assert not is_valid_bucket_name(name)


class TestBuckets:
    def test_create_once_then_conflict(self, store: LocalObjectStore) -> None:
        bucket = store.create_bucket("photos")
        assert bucket.name == "photos"
        assert bucket.file_count == 0

        with pytest.raises(BucketAlreadyExists):
            store.create_bucket("photos")

    @pytest.mark.parametrize("name", ["", "UPPER", "-x", "x-", "a/b", "a_b"])
    def test_invalid_name_creates_nothing(self, store: LocalObjectStore, name: str) -> None:
        before = sorted(os.listdir(store.root))

        with pytest.raises(InvalidBucketName):
            store.create_bucket(name)

        assert sorted(os.listdir(store.root)) == before

    def test_list_buckets_aggregates_files(self, store: LocalObjectStore) -> None:
        store.create_bucket("empty")
        store.put_object("docs", io.BytesIO(b"12345"), "a.txt")
        store.put_object("docs", io.BytesIO(b"678"), "b.txt")

        buckets = {b.name: b for b in store.list_buckets()}

        assert set(buckets) == {"empty", "docs"}
        assert buckets["docs"].size == 8
        assert buckets["docs"].file_count == 2
        assert buckets["empty"].size == 0

    def test_list_buckets_skips_plain_files_in_root(self, store: LocalObjectStore) -> None:
        (store.root / "stray.txt").write_bytes(b"x")
        store.create_bucket("real")

        assert [b.name for b in store.list_buckets()] == ["real"]

    def test_delete_bucket_removes_contents(self, store: LocalObjectStore) -> None:
        store.put_object("gone", io.BytesIO(b"data"), "f.bin")

        store.delete_bucket("gone")

        assert not (store.root / "gone").exists()
        assert store.list_buckets() == []

    def test_delete_missing_bucket(self, store: LocalObjectStore) -> None:
        store.create_bucket("keep")

        with pytest.raises(BucketNotFound):
            store.delete_bucket("nope")

        assert [b.name for b in store.list_buckets()] == ["keep"]

    def test_list_objects_missing_bucket(self, store: LocalObjectStore) -> None:
        with pytest.raises(BucketNotFound):
            store.list_objects("nope")


class TestObjects:
    def test_key_format(self) -> None:
        key = generate_object_key("report.pdf")
        assert re.fullmatch(r"\d+-\d+-report\.pdf", key)

    def test_key_strips_directories_from_original_name(self) -> None:
        assert generate_object_key("../../etc/passwd").endswith("-passwd")
        assert generate_object_key("C:\\temp\\x.txt").endswith("-x.txt")
        assert generate_object_key("").endswith("-upload.bin")

    def test_same_name_twice_gives_two_objects(self, store: LocalObjectStore) -> None:
        first = store.put_object("b", io.BytesIO(b"one"), "same.txt")
        second = store.put_object("b", io.BytesIO(b"two"), "same.txt")

        assert first.name != second.name
        assert first.original_name == second.original_name == "same.txt"
        assert read_back(store, "b", first.name) == b"one"
        assert read_back(store, "b", second.name) == b"two"

        store.delete_object("b", first.name)

        with pytest.raises(ObjectNotFound):
            store.open_object("b", first.name)
        assert read_back(store, "b", second.name) == b"two"

    @pytest.mark.parametrize("size", [0, 1, 1024 * 1024 + 7])
    def test_roundtrip(self, store: LocalObjectStore, size: int) -> None:
        data = os.urandom(size)

        stored = store.put_object("bin", io.BytesIO(data), "blob.bin")

        assert stored.size == size
        assert read_back(store, "bin", stored.name) == data
        assert store.stat_object("bin", stored.name).size == size

    def test_upload_creates_missing_bucket(self, store: LocalObjectStore) -> None:
        store.put_object("fresh", io.BytesIO(b"x"), "x")
        assert (store.root / "fresh").is_dir()

    def test_upload_to_invalid_bucket(self, store: LocalObjectStore) -> None:
        with pytest.raises(InvalidBucketName):
            store.put_object("Bad_Bucket", io.BytesIO(b"x"), "x")

    def test_list_objects(self, store: LocalObjectStore) -> None:
        a = store.put_object("docs", io.BytesIO(b"aa"), "a.txt")

        files = store.list_objects("docs")

        assert [f.name for f in files] == [a.name]
        assert files[0].bucket == "docs"
        assert files[0].size == 2

    def test_missing_object(self, store: LocalObjectStore) -> None:
        store.create_bucket("docs")

        with pytest.raises(ObjectNotFound):
            store.stat_object("docs", "nope")
        with pytest.raises(ObjectNotFound):
            store.open_object("docs", "nope")

    def test_missing_bucket_reads_as_missing_object(self, store: LocalObjectStore) -> None:
        with pytest.raises(ObjectNotFound):
            store.open_object("elsewhere", "o1")

    def test_delete_missing_object_leaves_store_unchanged(self, store: LocalObjectStore) -> None:
        kept = store.put_object("docs", io.BytesIO(b"keep"), "k.txt")

        with pytest.raises(ObjectNotFound):
            store.delete_object("docs", "nope")

        assert [f.name for f in store.list_objects("docs")] == [kept.name]

    @pytest.mark.parametrize("key", ["", ".", "..", "a/b", "..\\x"])
    def test_unsafe_keys_rejected(self, store: LocalObjectStore, key: str) -> None:
        store.create_bucket("docs")

        with pytest.raises(InvalidObjectKey):
            store.open_object("docs", key)

    def test_open_handle_survives_delete(self, store: LocalObjectStore) -> None:
        stored = store.put_object("docs", io.BytesIO(b"still here"), "a.txt")

        with store.open_object("docs", stored.name) as f:
            store.delete_object("docs", stored.name)
            assert f.read() == b"still here"

        with pytest.raises(ObjectNotFound):
            store.open_object("docs", stored.name)

    def test_key_collision_draws_a_new_key(self, store: LocalObjectStore, monkeypatch) -> None:
        existing = store.put_object("docs", io.BytesIO(b"original"), "a.txt")
        keys = iter([existing.name, "1-2-a.txt"])
        monkeypatch.setattr(storage, "generate_object_key", lambda name: next(keys))

        stored = store.put_object("docs", io.BytesIO(b"newcomer"), "a.txt")

        assert stored.name == "1-2-a.txt"
        assert read_back(store, "docs", existing.name) == b"original"
        assert read_back(store, "docs", stored.name) == b"newcomer"
