"""Shared helpers for the registry storages: attributes, account membership and role bindings."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from kiosk.config_types import Account
from kiosk.meta import GroupVersionResource, ObjectMeta, RBAC_GROUP_VERSION, RoleBinding, RoleRef
from kiosk.rbac import GROUP_PREFIX, USER_PREFIX, Attributes, UserInfo, convert_subject

DEFAULT_CLUSTER_ROLE = "admin"

_NAME_DESCRIPTION = (
    "Name must be unique within a namespace. It is required when creating resources, "
    "although some resources may allow a client to request the generation of an "
    "appropriate name automatically. Cannot be updated."
)
_CREATED_DESCRIPTION = (
    "CreationTimestamp is a timestamp representing the server time when this object "
    "was created. It is represented in RFC3339 form and is in UTC."
)


@dataclass
class TableColumn:
    """Describes one column of a table view."""

    name: str
    type: str
    format: str = ""
    description: str = ""


@dataclass
class TableRow:
    """One row of a table view and the object it shows."""

    cells: list[Any] = field(default_factory=list)
    object: Any = None


@dataclass
class Table:
    """A tabular view of one object or a list of objects."""

    column_definitions: list[TableColumn] = field(default_factory=list)
    rows: list[TableRow] = field(default_factory=list)
    resource_version: str = ""
    continue_token: str = ""
    remaining_item_count: int | None = None


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _format_timestamp(timestamp: datetime | None) -> str:
    """Render a timestamp as RFC 3339 in UTC; a missing one is the zero time."""
    if timestamp is None:
        return "0001-01-01T00:00:00Z"
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def change_attributes_resource(
    attributes: Attributes, resource: GroupVersionResource, namespace: str
) -> Attributes:
    """Copy request attributes, retargeting them at another resource and namespace."""
    return Attributes(
        user=attributes.user,
        verb=attributes.verb,
        name=attributes.name,
        namespace=namespace,
        api_group=resource.group,
        api_version=resource.version,
        resource=resource.resource,
        subresource=attributes.subresource,
        resource_request=attributes.resource_request,
        path=attributes.path,
    )


def is_user_part_of_account(user: UserInfo, account: Account) -> bool:
    """Whether the user, or one of its groups, is a subject of the account."""
    keys = {USER_PREFIX + user.name} | {GROUP_PREFIX + group for group in user.groups}
    return any(convert_subject("", subject) in keys for subject in account.spec.subjects)


def forbidden_message(attributes: Attributes) -> str:
    """A human readable explanation of why a request was refused."""
    username = attributes.user.name if attributes.user is not None else ""
    if not attributes.resource_request:
        return f"User {_quote(username)} cannot {attributes.verb} path {_quote(attributes.path)}"

    resource = attributes.resource
    if attributes.subresource:
        resource = f"{resource}/{attributes.subresource}"

    prefix = (
        f"User {_quote(username)} cannot {attributes.verb} resource {_quote(resource)} "
        f"in API group {_quote(attributes.api_group)}"
    )
    if attributes.namespace:
        return f"{prefix} in the namespace {_quote(attributes.namespace)}"
    return f"{prefix} at the cluster scope"


def get_cluster_role_for(account: Account) -> str:
    """The cluster role spaces of this account are bound to."""
    cluster_role = account.spec.space.cluster_role
    return DEFAULT_CLUSTER_ROLE if cluster_role is None else cluster_role


def create_role_binding(client: Any, namespace: str, owner: Account) -> RoleBinding | None:
    """Bind the account's subjects to its cluster role in ``namespace``.

    Returns the created binding, or None when the account has no cluster role.
    """
    cluster_role = get_cluster_role_for(owner)
    if not cluster_role:
        return None

    owner_reference = {
        "apiVersion": str(type(owner).GROUP_VERSION),
        "kind": type(owner).KIND,
        "name": owner.metadata.name,
        "uid": owner.metadata.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }
    role_binding = RoleBinding(
        metadata=ObjectMeta(
            generate_name=owner.metadata.name + "-",
            namespace=namespace,
            owner_references=[owner_reference],
        ),
        role_ref=RoleRef(api_group=RBAC_GROUP_VERSION.group, kind="ClusterRole", name=cluster_role),
        subjects=list(owner.spec.subjects),
    )
    client.create(role_binding)
    return role_binding