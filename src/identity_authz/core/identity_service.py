"""
Identity Service

Record mutator for identities. Every operation:
- builds a per-call AuthorizationContext for the acting principal
- checks the operation's permission (ownership-translated)
- runs the capability validators that apply
- writes through a single sequence-gated conditional update

Mutations are never retried here; a caller that gets InvalidState must
re-read the record and resubmit.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pydantic

from config.schema import ServiceConfig
from ..data.models.identity import (
    Identity,
    IdentityRecord,
    IdentityStatus,
    Meta,
    ResourceRole,
)
from ..data.repos.identity import IdentityRepository
from ..errors import (
    InvalidState,
    NotFound,
    NotSupported,
    ValidationError,
)
from .auth.policy import PermissionOracle
from .auth.principal import CapabilitySet, Principal
from .capability import CapabilityExpander, resolve_generated_resources
from .context import AuthorizationContext
from .hooks import HookRegistry, InsertEvent
from .ownership import OwnershipTranslator
from .permissions import IdentityPermission
from .roles import RoleCatalog, RoleLookup, StaticRoleCatalog, default_roles
from .schema import IdentitySchemaValidator
from .validators import (
    ensure_membership_valid,
    validate_capability_delegation,
    validate_capability_revocation,
)

logger = logging.getLogger(__name__)

RoleInput = Union[ResourceRole, Dict[str, Any]]

# Attributes update() never changes
IMMUTABLE_FIELDS = ("id",)

STORE_TYPES = ("memory", "table")


def _to_roles(roles: Iterable[RoleInput]) -> List[ResourceRole]:
    try:
        return [
            r if isinstance(r, ResourceRole) else ResourceRole.model_validate(r)
            for r in roles
        ]
    except pydantic.ValidationError as e:
        raise ValidationError("Invalid resource role.", {"errors": e.errors()}) from e


def _to_identity(data: Mapping[str, Any]) -> Identity:
    try:
        return Identity.model_validate(dict(data))
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Invalid identity.", {"id": data.get("id"), "errors": e.errors()}
        ) from e


def merge_roles(
    current: Iterable[ResourceRole],
    add: Iterable[ResourceRole] = (),
    remove: Iterable[ResourceRole] = (),
    delegator: Optional[str] = None
) -> List[ResourceRole]:
    """
    Apply role additions and removals to a stored grant list.

    Grants are keyed by role id. An added grant merges its resources into an
    existing grant for the same role (a grant without resource restriction
    stays unrestricted); otherwise it is appended, stamped with the delegator.
    A removed grant takes its resources out of the matching grant, dropping
    the grant once no resource is left. A removed grant without a resource
    list drops the whole grant.

    Raises:
        ValidationError: a removal names a grant that is not held, or
            resources the held grant does not restrict to
    """
    roles = list(current)

    def find(sys_role: str) -> Optional[int]:
        for index, role in enumerate(roles):
            if role.sys_role == sys_role:
                return index
        return None

    for role in add:
        index = find(role.sys_role)
        if index is None:
            if role.delegator is None and delegator is not None:
                role = role.model_copy(update={"delegator": delegator})
            roles.append(role)
            continue
        existing = roles[index]
        if existing.resource is None or role.resource is None:
            resources = None
        else:
            resources = list(dict.fromkeys(existing.resource + role.resource))
        roles[index] = existing.model_copy(update={"resource": resources})

    for role in remove:
        index = find(role.sys_role)
        if index is None:
            raise ValidationError(
                "Cannot remove a grant the identity does not hold.",
                {"sysRole": role.sys_role}
            )
        existing = roles[index]
        if role.resource is None:
            del roles[index]
            continue
        if existing.resource is None:
            raise ValidationError(
                "Cannot remove resources from an unrestricted grant; remove the grant itself.",
                {"sysRole": role.sys_role, "resource": role.resource}
            )
        missing = [r for r in role.resource if r not in existing.resource]
        if missing:
            raise ValidationError(
                "Grant does not cover the resources to remove.",
                {"sysRole": role.sys_role, "resource": missing}
            )
        remaining = [r for r in existing.resource if r not in role.resource]
        if remaining:
            roles[index] = existing.model_copy(update={"resource": remaining})
        else:
            del roles[index]

    return roles


def diff_roles(
    current: Iterable[ResourceRole],
    desired: Iterable[ResourceRole]
) -> Tuple[List[ResourceRole], List[ResourceRole]]:
    """
    Compare two grant lists keyed by role id.

    Returns:
        (added, removed): grants, narrowed to the differing resources, that
        replacing ``current`` with ``desired`` would grant and revoke
    """
    held = {r.sys_role: r for r in current}
    wanted = {r.sys_role: r for r in desired}
    added: List[ResourceRole] = []
    removed: List[ResourceRole] = []

    for sys_role, role in wanted.items():
        existing = held.get(sys_role)
        if existing is None:
            added.append(role)
        elif role.resource is None:
            if existing.resource is not None:
                added.append(role)
        elif existing.resource is None:
            removed.append(existing)
            added.append(role)
        else:
            granted = [r for r in role.resource if r not in existing.resource]
            revoked = [r for r in existing.resource if r not in role.resource]
            if granted:
                added.append(role.model_copy(update={"resource": granted}))
            if revoked:
                removed.append(existing.model_copy(update={"resource": revoked}))

    removed.extend(role for sys_role, role in held.items() if sys_role not in wanted)
    return added, removed


class IdentityService:
    """
    Identity record mutator.

    Usage:
        service = create_service(config)
        principal = await service.resolve_principal(actor_id)
        record = await service.insert(principal, {"id": ..., "owner": ...})
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[IdentityRepository] = None,
        catalog: Optional[RoleCatalog] = None,
        hooks: Optional[HookRegistry] = None,
        expander: Optional[CapabilityExpander] = None,
        oracle: Optional[PermissionOracle] = None,
        schema: Optional[IdentitySchemaValidator] = None
    ):
        self.config = config or ServiceConfig()
        self.store = store or IdentityRepository()
        self.catalog = catalog or StaticRoleCatalog(
            self.config.role_definitions() or default_roles()
        )
        self.hooks = hooks or HookRegistry()
        self.oracle = oracle or PermissionOracle()
        self.schema = schema or IdentitySchemaValidator(self.config.identity.schema)

        if expander is None:
            expander = CapabilityExpander()
            expander.register_translator(
                OwnershipTranslator(self.store, self.config.permission.ownership_depth)
            )
        self.expander = expander

    async def context(self, principal: Principal) -> AuthorizationContext:
        """Build the authorization context for one call"""
        return await AuthorizationContext.create(
            principal,
            self.catalog,
            self.expander,
            self.oracle,
            role_base_url=self.config.permission.role_base_url,
        )

    # =========================================================================
    # PRINCIPALS AND PERMISSIONS
    # =========================================================================

    async def resolve_principal(self, actor_id: str) -> CapabilitySet:
        """
        Resolve an identity id into the principal it acts as.

        A deleted identity resolves to a principal holding no grants.

        Raises:
            NotFound: identity does not exist
        """
        record = await self.store.get(actor_id)
        if record is None:
            raise NotFound("Identity not found.", {"id": actor_id})
        if record.meta.status == IdentityStatus.DELETED:
            logger.warning(f"Deleted identity {actor_id} resolved with no grants")
            return CapabilitySet(holder=actor_id)
        return CapabilitySet.from_roles(actor_id, record.meta.sys_resource_role)

    async def check_permission(
        self,
        principal: Principal,
        permission: str,
        resource: Optional[Union[str, List[str]]] = None,
        translate: bool = True
    ) -> None:
        """
        Check a permission for a principal, optionally over resources.

        Raises:
            PermissionDenied
        """
        if isinstance(resource, str):
            resource = [resource]
        context = await self.context(principal)
        await context.check(permission, resource, translate=translate)

    # =========================================================================
    # READS
    # =========================================================================

    async def exists(self, principal: Principal, identity_id: str) -> bool:
        """Check whether an identity record exists (any status)"""
        context = await self.context(principal)
        await context.check(IdentityPermission.ACCESS, [identity_id], translate=True)
        return await self.store.get(identity_id) is not None

    async def get(
        self,
        principal: Principal,
        identity_id: str,
        active: bool = False
    ) -> Tuple[Identity, Meta]:
        """
        Get an identity and its meta.

        Role ids in the returned meta are qualified with the role base URL.

        Args:
            principal: Acting principal
            identity_id: Identity to read
            active: Treat deleted identities as missing

        Raises:
            PermissionDenied, NotFound
        """
        context = await self.context(principal)
        await context.check(IdentityPermission.ACCESS, [identity_id], translate=True)

        record = await self.store.get(identity_id)
        if record is None or (active and record.meta.status != IdentityStatus.ACTIVE):
            raise NotFound("Identity not found.", {"id": identity_id})
        return record.identity, self._qualify_roles(record.meta, context.lookup)

    async def get_all(
        self,
        principal: Principal,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Tuple[Identity, Meta]]:
        """
        List identities matching dotted-path filters.

        Requires IDENTITY_ACCESS over any resource.
        """
        context = await self.context(principal)
        await context.check(IdentityPermission.ACCESS)

        records = await self.store.find(filters, limit=limit, offset=offset)
        return [
            (record.identity, self._qualify_roles(record.meta, context.lookup))
            for record in records
        ]

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def insert(
        self,
        principal: Principal,
        identity: Union[Identity, Dict[str, Any]],
        meta: Optional[Union[Meta, Dict[str, Any]]] = None
    ) -> IdentityRecord:
        """
        Insert a new identity.

        The configured identity defaults are applied under the given
        attributes. Resource roles with ``generateResource: "id"`` are bound
        to the new identity before delegation is validated.

        Raises:
            PermissionDenied, NotAllowed, NotSupported, ValidationError, DuplicateError
        """
        data = identity.to_dict() if isinstance(identity, Identity) else copy.deepcopy(dict(identity))
        identity = _to_identity({**copy.deepcopy(self.config.identity.defaults), **data})
        if meta is None:
            meta = Meta()
        elif not isinstance(meta, Meta):
            try:
                meta = Meta.model_validate(meta)
            except pydantic.ValidationError as e:
                raise ValidationError("Invalid identity meta.", {"id": identity.id, "errors": e.errors()}) from e

        known_owners = {identity.id: identity.owner} if identity.owner else {}
        context = await self.context(principal)
        await context.check(
            IdentityPermission.INSERT, [identity.id], translate=True, known_owners=known_owners
        )

        event = InsertEvent(
            actor=principal,
            identity=identity.model_copy(deep=True),
            meta=meta.model_copy(deep=True),
        )
        await self.hooks.run_pre_insert(event)
        identity, meta = event.identity, event.meta
        # a pre-insert hook may have set or changed the owner
        known_owners = {identity.id: identity.owner} if identity.owner else {}

        roles = resolve_generated_resources(meta.sys_resource_role, identity.id)
        roles = self._normalize_roles(roles, context.lookup)

        self.schema.validate(identity.to_dict())
        await ensure_membership_valid(context, identity, self.store, known_owners)
        await validate_capability_delegation(context, roles, known_owners)

        now = datetime.now(timezone.utc)
        record = IdentityRecord.create(identity, Meta(
            status=meta.status,
            sequence=0,
            sys_resource_role=roles,
            created=now,
            updated=now,
        ))
        record = await self.store.insert(record)
        logger.info(f"Inserted identity {identity.id} by {context.holder or 'full trust'}")

        event.identity = record.identity
        event.meta = record.meta
        await self.hooks.run_post_insert(event)
        return record

    async def update(
        self,
        principal: Principal,
        identity_id: str,
        patch: Mapping[str, Any],
        sequence: int
    ) -> IdentityRecord:
        """
        Apply a merge patch to an identity's attributes.

        Keys in ``patch`` are set, keys mapped to None are removed. Only
        attributes on the configured allow-list may change, ``id`` never, and
        changing ``owner`` additionally requires IDENTITY_META_UPDATE. Groups
        newly added to ``memberOf`` are validated.

        Raises:
            NotFound, InvalidState, PermissionDenied, ValidationError, NotAllowed
        """
        record = await self._load(identity_id, sequence)
        context = await self.context(principal)
        await context.check(IdentityPermission.UPDATE, [identity_id], translate=True)

        self._check_patch(identity_id, patch)
        current = record.identity.to_dict()
        data = copy.deepcopy(current)
        for key, value in patch.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = copy.deepcopy(value)
        updated = _to_identity(data)

        if updated.owner != record.identity.owner:
            await context.check(IdentityPermission.META_UPDATE, [identity_id], translate=True)

        document = updated.to_dict()
        self.schema.validate(document)

        joined = [g for g in updated.member_of if g not in record.identity.member_of]
        if joined:
            await ensure_membership_valid(
                context, updated.model_copy(update={"member_of": joined}), self.store
            )

        await self._write(record, sequence, {"identity": document})
        logger.info(f"Updated identity {identity_id} ({', '.join(patch)}) by {context.holder or 'full trust'}")
        return await self._reload(identity_id)

    async def set_status(
        self,
        principal: Principal,
        identity_id: str,
        status: Union[IdentityStatus, str],
        sequence: int
    ) -> IdentityRecord:
        """
        Set an identity's status (active or deleted).

        Raises:
            NotFound, InvalidState, PermissionDenied, ValidationError
        """
        try:
            status = IdentityStatus(status)
        except ValueError as e:
            raise ValidationError("Invalid identity status.", {"id": identity_id, "status": status}) from e

        record = await self._load(identity_id, sequence)
        context = await self.context(principal)
        await context.check(IdentityPermission.META_UPDATE, [identity_id], translate=True)

        await self._write(record, sequence, {"meta.status": status.value})
        logger.info(f"Set identity {identity_id} status to {status.value} by {context.holder or 'full trust'}")
        return await self._reload(identity_id)

    async def update_roles(
        self,
        principal: Principal,
        identity_id: str,
        add: Iterable[RoleInput] = (),
        remove: Iterable[RoleInput] = (),
        sequence: int = 0
    ) -> IdentityRecord:
        """
        Add and remove resource-role grants on an identity.

        Added grants must pass delegation validation, removed grants
        revocation validation. A call that delegates and revokes nothing
        requires IDENTITY_META_UPDATE over the identity. The write always
        bumps the sequence, even when nothing changes.

        Raises:
            NotFound, InvalidState, PermissionDenied, NotSupported, ValidationError
        """
        record = await self._load(identity_id, sequence)
        context = await self.context(principal)

        add = resolve_generated_resources(_to_roles(add), identity_id)
        add = self._normalize_roles(add, context.lookup)
        remove = self._normalize_roles(_to_roles(remove), context.lookup)

        await validate_capability_delegation(context, add)
        await validate_capability_revocation(context, identity_id, remove)
        if not self._grants_or_revokes(context, add, remove):
            await context.check(IdentityPermission.META_UPDATE, [identity_id], translate=True)

        roles = merge_roles(record.meta.sys_resource_role, add, remove, delegator=context.holder)
        await self._write(record, sequence, {
            "meta.sysResourceRole": [r.to_dict() for r in roles]
        })
        logger.info(
            f"Updated roles of identity {identity_id} (+{len(add)}/-{len(remove)}) "
            f"by {context.holder or 'full trust'}"
        )
        return await self._reload(identity_id)

    async def set_roles(
        self,
        principal: Principal,
        identity_id: str,
        roles: Iterable[RoleInput],
        sequence: int
    ) -> IdentityRecord:
        """
        Replace an identity's whole grant list.

        Requires IDENTITY_META_UPDATE over the identity. Grants (or
        resources) the new list adds must pass delegation validation, those
        it drops revocation validation.

        Raises:
            NotFound, InvalidState, PermissionDenied, NotSupported, ValidationError
        """
        record = await self._load(identity_id, sequence)
        context = await self.context(principal)
        await context.check(IdentityPermission.META_UPDATE, [identity_id], translate=True)

        roles = resolve_generated_resources(_to_roles(roles), identity_id)
        roles = merge_roles([], add=self._normalize_roles(roles, context.lookup))

        held = {r.sys_role for r in record.meta.sys_resource_role}
        added, removed = diff_roles(record.meta.sys_resource_role, roles)
        await validate_capability_delegation(context, added)
        await validate_capability_revocation(context, identity_id, removed)

        if context.holder is not None:
            roles = [
                r.model_copy(update={"delegator": context.holder})
                if r.sys_role not in held and r.delegator is None else r
                for r in roles
            ]
        await self._write(record, sequence, {
            "meta.sysResourceRole": [r.to_dict() for r in roles]
        })
        logger.info(
            f"Set roles of identity {identity_id} ({len(roles)} grants, "
            f"+{len(added)}/-{len(removed)}) by {context.holder or 'full trust'}"
        )
        return await self._reload(identity_id)

    async def update_role(
        self,
        principal: Principal,
        identity_id: str,
        sys_role: str,
        resource_id: Optional[str],
        operation: str,
        sequence: int
    ) -> IdentityRecord:
        """
        Add or remove one resource on one grant.

        Args:
            operation: "add" or "remove"

        Raises:
            NotSupported: unknown operation
        """
        role = {"sysRole": sys_role}
        if resource_id is not None:
            role["resource"] = [resource_id]
        if operation == "add":
            return await self.update_roles(principal, identity_id, add=[role], sequence=sequence)
        if operation == "remove":
            return await self.update_roles(principal, identity_id, remove=[role], sequence=sequence)
        raise NotSupported("Unknown role operation.", {"operation": operation})

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _load(self, identity_id: str, sequence: int) -> IdentityRecord:
        record = await self.store.get(identity_id)
        if record is None:
            raise NotFound("Identity not found.", {"id": identity_id})
        if record.meta.sequence != sequence:
            logger.warning(
                f"Sequence conflict on {identity_id}: expected {sequence}, stored {record.meta.sequence}"
            )
            raise InvalidState(
                "Record sequence does not match.",
                {"id": identity_id, "sequence": sequence, "expected": record.meta.sequence}
            )
        return record

    async def _reload(self, identity_id: str) -> IdentityRecord:
        record = await self.store.get(identity_id)
        if record is None:
            raise NotFound("Identity not found.", {"id": identity_id})
        return record

    async def _write(self, record: IdentityRecord, sequence: int, changes: Dict[str, Any]) -> None:
        matched = await self.store.conditional_update(record.id, sequence, changes)
        if matched == 0:
            logger.warning(f"Lost update race on {record.identity.id} at sequence {sequence}")
            raise InvalidState(
                "Could not update identity; record changed concurrently.",
                {"id": record.identity.id, "sequence": sequence}
            )

    def _check_patch(self, identity_id: str, patch: Mapping[str, Any]) -> None:
        for key in IMMUTABLE_FIELDS:
            if key in patch and patch[key] != identity_id:
                raise ValidationError("Identity attribute is immutable.", {"id": identity_id, "field": key})

        allowed = self.config.identity.fields
        if allowed is None:
            return
        rejected = [key for key in patch if key not in allowed and key not in IMMUTABLE_FIELDS]
        if rejected:
            raise ValidationError(
                "Identity attributes may not be updated.",
                {"id": identity_id, "fields": rejected}
            )

    @staticmethod
    def _grants_or_revokes(
        context: AuthorizationContext,
        add: List[ResourceRole],
        remove: List[ResourceRole]
    ) -> bool:
        """Whether a role change delegates or revokes at least one capability"""
        if context.full_trust:
            return True
        if any(role.resource is None or role.resource for role in remove):
            return True
        return bool(context.expander.expand(add, context.lookup))

    @staticmethod
    def _normalize_roles(roles: Iterable[ResourceRole], lookup: RoleLookup) -> List[ResourceRole]:
        """Store role ids without the role base URL"""
        return [
            r.model_copy(update={"sys_role": lookup.normalize(r.sys_role)})
            for r in roles
        ]

    @staticmethod
    def _qualify_roles(meta: Meta, lookup: RoleLookup) -> Meta:
        return meta.model_copy(update={
            "sys_resource_role": [
                r.model_copy(update={"sys_role": lookup.qualify(r.sys_role)})
                for r in meta.sys_resource_role
            ]
        })


def create_service(
    config: Optional[ServiceConfig] = None,
    client: Optional[Any] = None,
    catalog: Optional[RoleCatalog] = None,
    hooks: Optional[HookRegistry] = None
) -> IdentityService:
    """
    Create an identity service from configuration.

    ``store.type`` selects the record store: "memory" keeps records in
    process, "table" writes through the given table client.

    Args:
        config: Service configuration (defaults when omitted)
        client: Table client for a "table" store
        catalog: Role catalog (roles from configuration when omitted)
        hooks: Insert hooks

    Raises:
        NotSupported: unknown store type, or a client that does not match it
    """
    config = config or ServiceConfig()
    store_type = config.store.type
    if store_type not in STORE_TYPES:
        raise NotSupported("Unknown store type.", {"type": store_type, "supported": list(STORE_TYPES)})
    if store_type == "table" and client is None:
        raise NotSupported("Table store requires a client.", {"type": store_type})
    if store_type == "memory" and client is not None:
        raise NotSupported("Memory store does not take a client.", {"type": store_type})

    logger.info(f"Creating identity service {config.id} with {store_type} store")
    return IdentityService(
        config=config,
        store=IdentityRepository(client),
        catalog=catalog,
        hooks=hooks,
    )
