import logging
from typing import List

from pydantic import ValidationError

from gateway.coordination import CoordinationStore
from gateway.errors import CoordinationUnavailable
from gateway.models import BestEffort, NodeDescriptor

logger = logging.getLogger(__name__)

NODES_SET = "nodes"


class NodeRegistry:
    """Shared set of known nodes, for discovery and listing only.

    The redirect path never consults it: location pointers embed their
    owner directly. Entries are never removed, and equal descriptors
    collapse because they serialize to the same set member.
    """

    def __init__(self, store: CoordinationStore):
        self.store = store

    async def register(self, descriptor: NodeDescriptor) -> BestEffort:
        try:
            await self.store.set_add(NODES_SET, descriptor.to_json())
        except CoordinationUnavailable as e:
            return BestEffort.failure("register", e)
        logger.info("Registered node %s at %s:%s", descriptor.id, descriptor.host, descriptor.port)
        return BestEffort.success("register")

    async def list(self) -> List[NodeDescriptor]:
        try:
            members = await self.store.set_members(NODES_SET)
        except CoordinationUnavailable as e:
            logger.warning("Could not list nodes: %s", e)
            return []

        nodes = set()
        for raw in members:
            try:
                nodes.add(NodeDescriptor.from_json(raw))
            except ValidationError:
                logger.warning("Skipping unparsable node entry: %r", raw)
        return sorted(nodes, key=lambda n: (n.id, n.host, n.port))
