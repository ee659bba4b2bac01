"""
Bootstrap Loader for the Identity Service

Inserts the identities listed in configuration (``identity.identities``)
at service startup, under full trust.

Each entry is an identity document; its ``sysResourceRole`` key, if any,
becomes the identity's initial resource-role grants. Identities that already
exist are left untouched, so loading is safe to repeat on every start.
"""

import copy
import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional

from ..errors import DuplicateError
from .auth.principal import FULL_TRUST

if TYPE_CHECKING:
    from .identity_service import IdentityService

logger = logging.getLogger(__name__)


async def load_bootstrap_identities(
    service: "IdentityService",
    identities: Optional[Iterable[Dict[str, Any]]] = None
) -> Dict[str, int]:
    """
    Insert bootstrap identities.

    Args:
        service: Identity service to insert into
        identities: Identity documents (default: the service configuration's)

    Returns:
        Dict with counts of inserted and already existing identities
    """
    if identities is None:
        identities = service.config.identity.identities

    results = {"inserted": 0, "existing": 0}
    for entry in identities:
        identity = copy.deepcopy(dict(entry))
        roles = identity.pop("sysResourceRole", [])
        try:
            await service.insert(FULL_TRUST, identity, {"sysResourceRole": roles})
            results["inserted"] += 1
        except DuplicateError:
            logger.debug(f"Bootstrap identity already exists: {identity.get('id')}")
            results["existing"] += 1

    logger.info(f"Bootstrap complete: {results}")
    return results


def get_default_bootstrap_identities(admin_id: str, role: str = "identity.admin") -> list:
    """
    Get a minimal bootstrap identity list: one administrator.

    Used when no configured identities are available.
    """
    return [
        {
            "id": admin_id,
            "type": "Person",
            "label": "Administrator",
            "sysResourceRole": [{"sysRole": role}],
        }
    ]
