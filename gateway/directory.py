"""Location directory: which node holds the bytes of ``(bucket, key)``.

Pointers are advisory. A present pointer may be stale and a missing one
does not prove the object is gone. Nothing in here raises on a
coordination failure: lookups degrade to ``None`` and writes return a
failed ``BestEffort`` for the caller to log.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from gateway.coordination import CoordinationStore
from gateway.errors import CoordinationUnavailable
from gateway.models import BestEffort, NodeDescriptor

logger = logging.getLogger(__name__)


def pointer_key(bucket: str, key: str) -> str:
    return f"{bucket}:{key}"


class LocationDirectory:
    def __init__(self, store: CoordinationStore):
        self.store = store

    async def record(self, bucket: str, key: str, owner: NodeDescriptor) -> BestEffort:
        """Point (bucket, key) at owner. Last writer wins."""
        try:
            await self.store.set(pointer_key(bucket, key), owner.to_json())
        except CoordinationUnavailable as e:
            return BestEffort.failure("record", e)
        return BestEffort.success("record")

    async def lookup(self, bucket: str, key: str) -> Optional[NodeDescriptor]:
        try:
            raw = await self.store.get(pointer_key(bucket, key))
        except CoordinationUnavailable as e:
            logger.warning("Location lookup for %s/%s failed: %s", bucket, key, e)
            return None
        if raw is None:
            return None
        try:
            return NodeDescriptor.from_json(raw)
        except ValidationError:
            logger.warning("Ignoring unparsable location pointer for %s/%s: %r", bucket, key, raw)
            return None

    async def forget(self, bucket: str, key: str) -> BestEffort:
        try:
            await self.store.delete(pointer_key(bucket, key))
        except CoordinationUnavailable as e:
            # leaves a dangling pointer behind
            return BestEffort.failure("forget", e)
        return BestEffort.success("forget")
