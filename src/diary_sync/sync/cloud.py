"""Cloud replica: one object per date (``YYYY-MM-DD.txt``) in an S3 bucket.

``CloudReplica`` talks to the bucket through the small ``ObjectStore``
protocol; ``S3ObjectStore`` is the boto3 implementation.  Object listings
are held in a ``KeyCache`` shared by the import and export steps of a pass
so the bucket is listed once per pass rather than once per step.
"""

from __future__ import annotations

import datetime as dt
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from diary_sync.errors import DataIntegrityError, ParseError, TransportError
from diary_sync.file_handler import entry_filename, parse_entry_filename
from diary_sync.retry import transport_retry
from diary_sync.store.entries import EntryStore
from diary_sync.store.models import as_utc, utcnow

from .models import SyncAction, SyncResult
from .staleness import Freshness, compare_copies

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


@dataclass(frozen=True)
class ObjectInfo:
    """Listing metadata for one object."""

    key: str
    size: int
    last_modified: dt.datetime


class ObjectStore(Protocol):
    def list_objects(self, bucket: str) -> list[ObjectInfo]: ...

    def download_text(
        self, bucket: str, key: str
    ) -> tuple[str, dt.datetime] | None: ...

    def upload_text(self, text: str, bucket: str, key: str) -> None: ...


# ------------------------------------------------------------------
# boto3 implementation
# ------------------------------------------------------------------


class S3ObjectStore:
    """``ObjectStore`` backed by boto3.

    The client is created on first use so constructing the store never
    touches credentials or the network.

    Args:
        region_name: AWS region for the client.
        client: Pre-built S3 client (tests, custom endpoints).
    """

    def __init__(self, region_name: str | None = None, client=None) -> None:
        self._region_name = region_name
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("s3", region_name=self._region_name)
        return self._client

    @transport_retry()
    def list_objects(self, bucket: str) -> list[ObjectInfo]:
        """Every object in *bucket*, following pagination."""
        objects: list[ObjectInfo] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket):
                for obj in page.get("Contents", []):
                    objects.append(
                        ObjectInfo(
                            key=obj["Key"],
                            size=int(obj["Size"]),
                            last_modified=as_utc(obj["LastModified"]),
                        )
                    )
        except (BotoCoreError, ClientError) as exc:
            raise TransportError(f"Cannot list bucket {bucket}: {exc}") from exc
        return objects

    @transport_retry()
    def download_text(
        self, bucket: str, key: str
    ) -> tuple[str, dt.datetime] | None:
        """Body and last-modified time of *key*, or ``None`` if it is gone."""
        try:
            resp = self.client.get_object(Bucket=bucket, Key=key)
            body = resp["Body"].read()
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _MISSING_KEY_CODES:
                return None
            raise TransportError(f"Cannot download {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise TransportError(f"Cannot download {key}: {exc}") from exc
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(f"Object {key} is not UTF-8: {exc}") from exc
        return text, as_utc(resp["LastModified"])

    @transport_retry()
    def upload_text(self, text: str, bucket: str, key: str) -> None:
        try:
            self.client.put_object(
                Bucket=bucket, Key=key, Body=text.encode("utf-8")
            )
        except (BotoCoreError, ClientError) as exc:
            raise TransportError(f"Cannot upload {key}: {exc}") from exc


# ------------------------------------------------------------------
# Key cache
# ------------------------------------------------------------------


class KeyCache:
    """Date-indexed bucket listing with an expiry.

    Args:
        max_age: Seconds after which a listing is no longer served.
        clock: Returns the current aware UTC time.
    """

    def __init__(
        self, max_age: float, clock: Callable[[], dt.datetime] = utcnow
    ) -> None:
        self._max_age = max_age
        self._clock = clock
        self._lock = threading.Lock()
        self._objects: dict[dt.date, ObjectInfo] = {}
        self._filled_at: dt.datetime | None = None

    def fill(self, objects: list[ObjectInfo]) -> dict[dt.date, ObjectInfo]:
        """Replace the listing.  Keys that are not dated files are skipped."""
        by_date: dict[dt.date, ObjectInfo] = {}
        for obj in objects:
            try:
                by_date[parse_entry_filename(obj.key)] = obj
            except ParseError as exc:
                logger.warning("Skipping object %s: %s", obj.key, exc)
        with self._lock:
            self._objects = by_date
            self._filled_at = self._clock()
        return dict(by_date)

    def fresh(self) -> dict[dt.date, ObjectInfo] | None:
        """The listing if it is younger than ``max_age``, else ``None``."""
        with self._lock:
            if self._filled_at is None:
                return None
            age = (self._clock() - self._filled_at).total_seconds()
            if age > self._max_age:
                return None
            return dict(self._objects)

    def invalidate(self) -> None:
        with self._lock:
            self._objects = {}
            self._filled_at = None


# ------------------------------------------------------------------
# Replica adapter
# ------------------------------------------------------------------


class CloudReplica:
    """Mirror the canonical store to and from an object store bucket.

    Args:
        store: Object store client.
        bucket: Bucket name.
        entries: Canonical store.
        time_buffer: Staleness tolerance in seconds.  The key cache
            lifetime is five times this.
        key_cache: Listing cache (one is created if omitted).
    """

    def __init__(
        self,
        store: ObjectStore,
        bucket: str,
        entries: EntryStore,
        time_buffer: float = 60.0,
        key_cache: KeyCache | None = None,
    ) -> None:
        self._store = store
        self.bucket = bucket
        self._entries = entries
        self._time_buffer = time_buffer
        self.key_cache = key_cache or KeyCache(5 * time_buffer)

    def _refresh(self) -> dict[dt.date, ObjectInfo]:
        return self.key_cache.fill(self._store.list_objects(self.bucket))

    def import_from_cloud(self) -> list[SyncResult]:
        """Upsert every object judged newer than its entry.

        The bucket is always re-listed.  Empty objects are skipped.
        """
        existing = self._entries.list_modified()
        objects = self._refresh()
        results: list[SyncResult] = []

        for diary_date, obj in sorted(objects.items()):
            if obj.size <= 0:
                continue
            if diary_date in existing:
                entry = self._entries.get(diary_date)
                if entry is not None and compare_copies(
                    entry.last_modified,
                    entry.size,
                    obj.last_modified,
                    obj.size,
                    self._time_buffer,
                ) is not Freshness.REMOTE_NEWER:
                    continue

            try:
                downloaded = self.download_entry(diary_date)
            except ParseError as exc:
                logger.warning("Skipping object %s: %s", obj.key, exc)
                continue
            if downloaded is None:
                continue
            text, modified = downloaded
            session = self._entries.upsert(
                diary_date, text, last_modified=modified
            )
            logger.debug(
                "import cloud date %s lines %d", diary_date, text.count("\n")
            )
            results.append(
                SyncResult(
                    action=SyncAction.CLOUD_IMPORT,
                    key=diary_date.isoformat(),
                    conflict_session=session,
                )
            )
        return results

    def export_to_cloud(self) -> list[SyncResult]:
        """Upload every entry judged newer than its object, or missing one.

        Reuses the listing from this pass's import when it is still fresh,
        and invalidates it afterwards.
        """
        objects = self.key_cache.fresh()
        if objects is None:
            objects = self._refresh()
        self.key_cache.invalidate()

        results: list[SyncResult] = []
        for diary_date, modified in sorted(self._entries.list_modified().items()):
            obj = objects.get(diary_date)
            if obj is not None:
                entry = self._entries.get(diary_date)
                if entry is None or compare_copies(
                    entry.last_modified,
                    entry.size,
                    obj.last_modified,
                    obj.size,
                    self._time_buffer,
                ) is not Freshness.LOCAL_NEWER:
                    continue
            result = self.upload_entry(diary_date)
            if result is not None:
                results.append(result)
        return results

    def upload_entry(self, diary_date: dt.date) -> SyncResult | None:
        """Upload the entry for *diary_date*.  Blank entries are never uploaded."""
        entry = self._entries.get(diary_date)
        if entry is None or not entry.text.strip():
            return None
        self._store.upload_text(
            entry.text, self.bucket, entry_filename(diary_date)
        )
        logger.debug(
            "export cloud date %s lines %d",
            diary_date,
            entry.text.count("\n"),
        )
        return SyncResult(
            action=SyncAction.CLOUD_EXPORT, key=diary_date.isoformat()
        )

    def download_entry(
        self, diary_date: dt.date
    ) -> tuple[str, dt.datetime] | None:
        """Text and modification time of the object for *diary_date*.

        Returns ``None`` for a missing or blank object.
        """
        downloaded = self._store.download_text(
            self.bucket, entry_filename(diary_date)
        )
        if downloaded is None or not downloaded[0].strip():
            return None
        return downloaded

    def validate(self) -> list[tuple[dt.date, int, int]]:
        """List ``(date, object_size, entry_size)`` for every size mismatch.

        Raises:
            DataIntegrityError: If the bucket holds a date the canonical
                store does not know.
        """
        mismatches: list[tuple[dt.date, int, int]] = []
        for diary_date, obj in sorted(self._refresh().items()):
            entry = self._entries.get(diary_date)
            if entry is None:
                raise DataIntegrityError(
                    f"Object {obj.key} has no stored entry for {diary_date}"
                )
            if entry.size != obj.size:
                mismatches.append((diary_date, obj.size, entry.size))
        return mismatches
