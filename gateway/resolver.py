"""Turns a local miss into a peer redirect or a not-found.

    Start -> LocalHit
    Start -> DirectoryLookup -> NotFound | Redirected

One call to the local store, at most one directory lookup, no retries.
The resolver never proxies bytes and never checks that the peer still
has the object; it issues exactly one redirect and lets the client
follow it.
"""

import enum
import logging
from dataclasses import dataclass
from typing import BinaryIO, Callable, Optional, Union
from urllib.parse import quote

from starlette.concurrency import run_in_threadpool

from gateway.directory import LocationDirectory
from gateway.errors import ObjectNotFound
from gateway.models import NodeDescriptor, ObjectInfo
from gateway.storage import LocalObjectStore

logger = logging.getLogger(__name__)


class Outcome(enum.Enum):
    LOCAL_HIT = "local_hit"
    REDIRECTED = "redirected"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Resolution:
    outcome: Outcome
    bucket: str
    key: str
    # LOCAL_HIT: the open_object handle or the stat_object result
    local: Optional[Union[BinaryIO, ObjectInfo]] = None
    # REDIRECTED
    owner: Optional[NodeDescriptor] = None
    url: Optional[str] = None


def peer_object_url(owner: NodeDescriptor, bucket: str, key: str) -> str:
    return (
        f"http://{owner.host}:{owner.port}"
        f"/api/buckets/{quote(bucket, safe='')}/files/{quote(key, safe='')}"
    )


class RedirectResolver:
    def __init__(self, objects: LocalObjectStore, directory: LocationDirectory, self_node: NodeDescriptor):
        self.objects = objects
        self.directory = directory
        self.self_node = self_node

    async def resolve(self, bucket: str, key: str) -> Resolution:
        """Resolve a download. LocalHit carries an open binary handle the caller must close."""
        return await self._resolve(bucket, key, self.objects.open_object, "")

    async def resolve_info(self, bucket: str, key: str) -> Resolution:
        """Resolve a stat. LocalHit carries the ObjectInfo; redirects go to the peer's /info."""
        return await self._resolve(bucket, key, self.objects.stat_object, "/info")

    async def _resolve(self, bucket: str, key: str, fetch: Callable, suffix: str) -> Resolution:
        try:
            local = await run_in_threadpool(fetch, bucket, key)
        except ObjectNotFound:
            pass
        else:
            return Resolution(Outcome.LOCAL_HIT, bucket, key, local=local)

        owner = await self.directory.lookup(bucket, key)
        if owner is None:
            return Resolution(Outcome.NOT_FOUND, bucket, key)

        if owner.same_endpoint(self.self_node):
            # Our own pointer but no local file: the object was deleted
            # after the pointer was read or the forget failed. Redirecting
            # would send the client back here forever.
            logger.warning(
                "Stale self pointer for %s/%s (owner %s); answering not found",
                bucket, key, owner.id,
            )
            return Resolution(Outcome.NOT_FOUND, bucket, key, owner=owner)

        url = peer_object_url(owner, bucket, key) + suffix
        logger.info("Redirecting %s/%s to %s (%s)", bucket, key, owner.id, url)
        return Resolution(Outcome.REDIRECTED, bucket, key, owner=owner, url=url)
