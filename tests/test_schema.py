"""
Test Identity Attribute Schema
"""

import pytest

from identity_authz.core.schema import IDENTITY_SCHEMA, IdentitySchemaValidator, identity_schema
from identity_authz.errors import ValidationError


class TestIdentitySchema:
    """Test base schema and configured extensions"""

    def test_minimal_identity_valid(self):
        IdentitySchemaValidator().validate({"id": "urn:identity:alice"})

    def test_id_required(self):
        with pytest.raises(ValidationError) as exc_info:
            IdentitySchemaValidator().validate({"label": "nobody"})
        assert any("id" in message for message in exc_info.value.details["errors"])

    def test_member_of_unique(self):
        with pytest.raises(ValidationError):
            IdentitySchemaValidator().validate({"id": "urn:a", "memberOf": ["g", "g"]})

    def test_extension_merged(self):
        schema = identity_schema({"required": ["type"], "properties": {"email": {"type": "string"}}})

        assert schema["required"] == ["id", "type"]
        assert "memberOf" in schema["properties"]
        assert "email" in schema["properties"]
        # base schema untouched
        assert "email" not in IDENTITY_SCHEMA["properties"]

    def test_extension_enforced(self):
        validator = IdentitySchemaValidator({"required": ["type"]})
        with pytest.raises(ValidationError):
            validator.validate({"id": "urn:a"})
        validator.validate({"id": "urn:a", "type": "Person"})

    def test_all_errors_reported(self):
        validator = IdentitySchemaValidator({"properties": {"email": {"type": "string"}}})
        with pytest.raises(ValidationError) as exc_info:
            validator.validate({"id": 1, "email": 2})
        assert len(exc_info.value.details["errors"]) == 2
