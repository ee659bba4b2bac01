"""
Identity Attribute Schema

JSON schema for identity attributes, validated with jsonschema. The base
schema only requires ``id``; deployments extend it from configuration.
"""

import copy
import logging
from typing import Any, Dict, Optional

from jsonschema import Draft202012Validator

from ..errors import ValidationError

logger = logging.getLogger(__name__)

IDENTITY_SCHEMA: Dict[str, Any] = {
    "title": "Identity",
    "type": "object",
    "required": ["id"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "owner": {"type": "string"},
        "type": {
            "anyOf": [
                {"type": "string"},
                {"type": "array", "items": {"type": "string"}},
            ]
        },
        "memberOf": {
            "type": "array",
            "items": {"type": "string"},
            "uniqueItems": True,
        },
    },
    "additionalProperties": True,
}


def _deep_merge(base: Dict[str, Any], extend: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in extend.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        elif isinstance(value, list) and isinstance(merged.get(key), list) and key == "required":
            merged[key] = list(dict.fromkeys(merged[key] + value))
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def identity_schema(extend: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Get the identity schema, optionally deep-merged with an extension"""
    if extend:
        return _deep_merge(IDENTITY_SCHEMA, extend)
    return copy.deepcopy(IDENTITY_SCHEMA)


class IdentitySchemaValidator:
    """Validates identity documents against the (extended) identity schema"""

    def __init__(self, extend: Optional[Dict[str, Any]] = None):
        self.schema = identity_schema(extend)
        Draft202012Validator.check_schema(self.schema)
        self._validator = Draft202012Validator(self.schema)

    def validate(self, document: Dict[str, Any]) -> None:
        """
        Raises:
            ValidationError: listing every schema violation
        """
        errors = sorted(self._validator.iter_errors(document), key=lambda e: list(e.path))
        if errors:
            messages = [
                f"{'/'.join(str(p) for p in error.path) or '<root>'}: {error.message}"
                for error in errors
            ]
            logger.warning(f"Identity {document.get('id')} failed schema validation: {messages}")
            raise ValidationError(
                "Identity failed schema validation.",
                {"id": document.get("id"), "errors": messages}
            )
