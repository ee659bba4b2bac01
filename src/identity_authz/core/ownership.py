"""
Ownership Translation

Default capability translator: extends a capability's resource list with
the owners of the named resources, so a principal that owns resource R can
satisfy checks written against R. Owners of owners (e.g. the owner of a group
that owns R) are followed up to ``max_depth`` levels.
"""

import logging
from typing import Mapping, Optional

from ..data.repos.identity import IdentityRepository
from .capability import Capability

logger = logging.getLogger(__name__)


class OwnershipTranslator:
    """Appends resource owners to a capability's resource list"""

    def __init__(self, store: IdentityRepository, max_depth: int = 4):
        self.store = store
        self.max_depth = max_depth

    async def __call__(
        self,
        capability: Capability,
        known_owners: Optional[Mapping[str, str]] = None
    ) -> Capability:
        if capability.resources is None:
            return capability

        known_owners = known_owners or {}
        resources = list(capability.resources)
        frontier = list(resources)
        for _ in range(self.max_depth):
            pending = [r for r in dict.fromkeys(frontier) if r not in known_owners]
            owners = dict(await self.store.find_owners(pending)) if pending else {}
            owners.update({r: known_owners[r] for r in frontier if r in known_owners})

            current, frontier = frontier, []
            for resource in dict.fromkeys(current):
                owner = owners.get(resource)
                if owner and owner not in resources:
                    resources.append(owner)
                    frontier.append(owner)
            if not frontier:
                break

        if len(resources) != len(capability.resources):
            logger.debug(f"Ownership translation: {capability.permission} {capability.resources} -> {resources}")
        return capability.with_resources(resources)
