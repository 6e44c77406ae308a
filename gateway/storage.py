"""Filesystem backed bucket/object store for a single node.

Layout: ``{root}/{bucket}/{object_key}``. Buckets are plain directories and
every aggregate (size, file count) is computed by scanning, nothing is
cached. All methods are blocking; the HTTP layer runs them in the
threadpool.
"""

import logging
import os
import re
import secrets
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, List, Union

from gateway.errors import (
    BucketAlreadyExists,
    BucketNotFound,
    InvalidBucketName,
    InvalidObjectKey,
    ObjectNotFound,
    StorageIOError,
)
from gateway.models import Bucket, ObjectInfo, UploadedFile

logger = logging.getLogger(__name__)

BUCKET_NAME_RE = re.compile(r"^[a-z0-9-]+$")
DEFAULT_UPLOAD_NAME = "upload.bin"
COPY_CHUNK_SIZE = 1024 * 1024


def is_valid_bucket_name(name: str) -> bool:
    return bool(name) and bool(BUCKET_NAME_RE.match(name)) and not name.startswith("-") and not name.endswith("-")


def _timestamp(st: os.stat_result, created: bool) -> datetime:
    if created:
        # st_birthtime only exists on some platforms
        ts = getattr(st, "st_birthtime", st.st_ctime)
    else:
        ts = st.st_mtime
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _clean_original_name(original_name: str) -> str:
    name = os.path.basename((original_name or "").replace("\\", "/"))
    if name in ("", ".", ".."):
        return DEFAULT_UPLOAD_NAME
    return name


def generate_object_key(original_name: str) -> str:
    """ms timestamp + random 32 bit value + original name.

    Two uploads of the same name in the same millisecond still differ in
    the random part.
    """
    millis = int(time.time() * 1000)
    return f"{millis}-{secrets.randbits(32)}-{_clean_original_name(original_name)}"


class LocalObjectStore:
    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        os.makedirs(self.root, exist_ok=True)

    # --- Paths ---

    def _bucket_dir(self, bucket: str) -> Path:
        if not is_valid_bucket_name(bucket):
            raise InvalidBucketName(bucket)
        return self.root / bucket

    def _object_file(self, bucket: str, key: str) -> Path:
        if not key or key in (".", "..") or "/" in key or "\\" in key or "\x00" in key:
            raise InvalidObjectKey(key)
        return self._bucket_dir(bucket) / key

    # --- Buckets ---

    def create_bucket(self, name: str) -> Bucket:
        bucket_dir = self._bucket_dir(name)
        try:
            os.mkdir(bucket_dir)
        except FileExistsError:
            raise BucketAlreadyExists(name)
        except OSError as e:
            logger.error("Failed to create bucket %s: %s", name, e)
            raise StorageIOError("failed to create bucket", e)
        logger.info("Created bucket %s", name)
        return self._describe_bucket(name, bucket_dir)

    def delete_bucket(self, name: str) -> None:
        bucket_dir = self._bucket_dir(name)
        if not bucket_dir.is_dir():
            raise BucketNotFound(name)
        try:
            shutil.rmtree(bucket_dir)
        except FileNotFoundError:
            raise BucketNotFound(name)
        except OSError as e:
            logger.error("Failed to delete bucket %s: %s", name, e)
            raise StorageIOError("failed to delete bucket", e)
        logger.info("Deleted bucket %s", name)

    def list_buckets(self) -> List[Bucket]:
        try:
            entries = sorted(os.scandir(self.root), key=lambda e: e.name)
        except OSError as e:
            raise StorageIOError("unable to read the bucket directory", e)

        buckets = []
        for entry in entries:
            if not entry.is_dir():
                continue
            try:
                buckets.append(self._describe_bucket(entry.name, Path(entry.path)))
            except OSError:
                # bucket removed while we were scanning it
                continue
        return buckets

    def _describe_bucket(self, name: str, bucket_dir: Path) -> Bucket:
        st = bucket_dir.stat()
        size = 0
        count = 0
        with os.scandir(bucket_dir) as it:
            for f in it:
                if f.is_file():
                    size += f.stat().st_size
                    count += 1
        return Bucket(
            name=name,
            size=size,
            created=_timestamp(st, created=True),
            modified=_timestamp(st, created=False),
            file_count=count,
        )

    # --- Objects ---

    def list_objects(self, bucket: str) -> List[ObjectInfo]:
        bucket_dir = self._bucket_dir(bucket)
        if not bucket_dir.is_dir():
            raise BucketNotFound(bucket)
        files = []
        try:
            with os.scandir(bucket_dir) as it:
                for entry in it:
                    if not entry.is_file():
                        continue
                    st = entry.stat()
                    files.append(ObjectInfo(
                        name=entry.name,
                        size=st.st_size,
                        created=_timestamp(st, created=True),
                        modified=_timestamp(st, created=False),
                        bucket=bucket,
                    ))
        except OSError as e:
            raise StorageIOError("unable to read the file directory", e)
        files.sort(key=lambda f: f.name)
        return files

    def put_object(self, bucket: str, payload: BinaryIO, original_name: str) -> UploadedFile:
        """
        Streams payload into a freshly keyed file in the bucket.
        The bucket directory is created if missing. Uploads never overwrite:
        the file is opened in exclusive mode and a new key is drawn on the
        (very unlikely) collision.
        """
        bucket_dir = self._bucket_dir(bucket)
        try:
            os.makedirs(bucket_dir, exist_ok=True)
        except OSError as e:
            raise StorageIOError("failed to create bucket", e)

        while True:
            key = generate_object_key(original_name)
            path = bucket_dir / key
            try:
                out = open(path, "xb")
            except FileExistsError:
                continue
            except OSError as e:
                raise StorageIOError("failed to save file", e)
            break

        try:
            with out:
                shutil.copyfileobj(payload, out, COPY_CHUNK_SIZE)
        except OSError as e:
            logger.error("Failed to write %s/%s: %s", bucket, key, e)
            try:
                os.remove(path)
            except OSError:
                logger.warning("Partial file left behind at %s", path)
            raise StorageIOError("failed to save file", e)

        size = path.stat().st_size
        logger.info("Stored %s/%s (%d bytes)", bucket, key, size)
        return UploadedFile(
            name=key,
            original_name=_clean_original_name(original_name),
            size=size,
            path=str(path),
            bucket=bucket,
        )

    def open_object(self, bucket: str, key: str) -> BinaryIO:
        """Opens the object for reading.

        The caller owns the handle. An open handle keeps reading fine if
        the object is deleted meanwhile (POSIX unlink semantics).
        """
        path = self._object_file(bucket, key)
        try:
            return open(path, "rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise ObjectNotFound(bucket, key)
        except OSError as e:
            logger.error("Failed to open %s/%s: %s", bucket, key, e)
            raise StorageIOError("failed to open file", e)

    def stat_object(self, bucket: str, key: str) -> ObjectInfo:
        path = self._object_file(bucket, key)
        try:
            st = path.stat()
        except OSError:
            raise ObjectNotFound(bucket, key)
        if not path.is_file():
            raise ObjectNotFound(bucket, key)
        return ObjectInfo(
            name=key,
            size=st.st_size,
            created=_timestamp(st, created=True),
            modified=_timestamp(st, created=False),
            bucket=bucket,
        )

    def delete_object(self, bucket: str, key: str) -> None:
        path = self._object_file(bucket, key)
        if not path.is_file():
            raise ObjectNotFound(bucket, key)
        try:
            os.remove(path)
        except FileNotFoundError:
            raise ObjectNotFound(bucket, key)
        except OSError as e:
            logger.error("Failed to delete %s/%s: %s", bucket, key, e)
            raise StorageIOError(f"failed to delete file: {e}", e)
        logger.info("Deleted %s/%s", bucket, key)
