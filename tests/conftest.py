"""Shared fixtures for identity service tests"""

from typing import Optional

import pytest

from config.schema import ServiceConfig
from identity_authz.core.identity_service import create_service
from identity_authz.core.permissions import PERM_ADMIN, PERM_REGULAR

REGULAR = "regular"
ADMIN = "admin"
READER = "reader"


def make_config(roles: Optional[dict] = None, role_base_url: str = "", **identity) -> ServiceConfig:
    """Service config with the "regular" and "admin" test roles plus any extra roles"""
    return ServiceConfig.from_dict({
        "identity": identity,
        "permission": {
            "role_base_url": role_base_url,
            "roles": {
                REGULAR: [str(p) for p in PERM_REGULAR],
                ADMIN: [str(p) for p in PERM_ADMIN],
                **(roles or {}),
            },
        },
    })


def self_role(role: str = REGULAR) -> dict:
    """Meta granting a role over the identity itself"""
    return {"sysResourceRole": [{"sysRole": role, "generateResource": "id"}]}


@pytest.fixture
def config():
    return make_config(roles={READER: ["IDENTITY_ACCESS"]})


@pytest.fixture
def service(config):
    """Identity service over an in-memory store"""
    return create_service(config)
