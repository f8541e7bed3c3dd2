"""Core API machinery types: group versions, object metadata and RBAC objects."""

import copy
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar


@dataclass(frozen=True)
class GroupVersionKind:
    """A kind within an API group version."""

    group: str
    version: str
    kind: str


@dataclass(frozen=True)
class GroupVersionResource:
    """A resource within an API group version."""

    group: str
    version: str
    resource: str


@dataclass(frozen=True)
class GroupVersion:
    """An API group together with one of its versions."""

    group: str
    version: str

    def with_kind(self, kind: str) -> GroupVersionKind:
        return GroupVersionKind(self.group, self.version, kind)

    def with_resource(self, resource: str) -> GroupVersionResource:
        return GroupVersionResource(self.group, self.version, resource)

    def __str__(self) -> str:
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"


CONFIG_GROUP_VERSION = GroupVersion("config.kiosk.sh", "v1alpha1")
TENANCY_GROUP_VERSION = GroupVersion("tenancy.kiosk.sh", "v1alpha1")
CORE_GROUP_VERSION = GroupVersion("", "v1")
RBAC_GROUP_NAME = "rbac.authorization.k8s.io"
RBAC_GROUP_VERSION = GroupVersion(RBAC_GROUP_NAME, "v1")

USER_KIND = "User"
GROUP_KIND = "Group"
SERVICE_ACCOUNT_KIND = "ServiceAccount"


@dataclass
class ObjectMeta:
    """Metadata every stored object carries."""

    name: str = ""
    generate_name: str = ""
    namespace: str = ""
    uid: str = ""
    resource_version: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    creation_timestamp: datetime | None = None
    owner_references: list[dict] = field(default_factory=list)
    finalizers: list[str] = field(default_factory=list)

    def deep_copy(self) -> "ObjectMeta":
        return copy.deepcopy(self)


@dataclass
class Subject:
    """A user, group or service account that a binding refers to."""

    kind: str = ""
    name: str = ""
    api_group: str = ""
    namespace: str = ""


@dataclass
class RoleRef:
    """Reference from a binding to a role or cluster role."""

    api_group: str = RBAC_GROUP_NAME
    kind: str = ""
    name: str = ""


@dataclass
class PolicyRule:
    """One permission rule of a role."""

    verbs: list[str] = field(default_factory=list)
    api_groups: list[str] = field(default_factory=list)
    resources: list[str] = field(default_factory=list)
    resource_names: list[str] = field(default_factory=list)
    non_resource_urls: list[str] = field(default_factory=list)


@dataclass
class Role:
    """A namespaced set of policy rules."""

    KIND: ClassVar[str] = "Role"
    GROUP_VERSION: ClassVar[GroupVersion] = RBAC_GROUP_VERSION

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    rules: list[PolicyRule] = field(default_factory=list)


@dataclass
class ClusterRole:
    """A cluster-wide set of policy rules."""

    KIND: ClassVar[str] = "ClusterRole"
    GROUP_VERSION: ClassVar[GroupVersion] = RBAC_GROUP_VERSION

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    rules: list[PolicyRule] = field(default_factory=list)


@dataclass
class RoleBinding:
    """Grants a role within one namespace to a list of subjects."""

    KIND: ClassVar[str] = "RoleBinding"
    GROUP_VERSION: ClassVar[GroupVersion] = RBAC_GROUP_VERSION

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    subjects: list[Subject] = field(default_factory=list)
    role_ref: RoleRef = field(default_factory=RoleRef)


@dataclass
class ClusterRoleBinding:
    """Grants a cluster role cluster-wide to a list of subjects."""

    KIND: ClassVar[str] = "ClusterRoleBinding"
    GROUP_VERSION: ClassVar[GroupVersion] = RBAC_GROUP_VERSION

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    subjects: list[Subject] = field(default_factory=list)
    role_ref: RoleRef = field(default_factory=RoleRef)


@dataclass
class Namespace:
    """A cluster namespace."""

    KIND: ClassVar[str] = "Namespace"
    GROUP_VERSION: ClassVar[GroupVersion] = CORE_GROUP_VERSION

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    finalizers: list[str] = field(default_factory=list)
    phase: str = ""

    def deep_copy(self) -> "Namespace":
        return copy.deepcopy(self)


class Scope(str, enum.Enum):
    """Whether a resource lives in a namespace or in the cluster."""

    CLUSTER = "Cluster"
    NAMESPACED = "Namespaced"


@dataclass(frozen=True)
class TypeDefinition:
    """Describes a custom resource type to register."""

    gvk: GroupVersionKind
    singular: str
    plural: str
    scope: Scope


TYPE_DEFINITIONS: tuple[TypeDefinition, ...] = (
    TypeDefinition(CONFIG_GROUP_VERSION.with_kind("Account"), "account", "accounts", Scope.CLUSTER),
    TypeDefinition(
        CONFIG_GROUP_VERSION.with_kind("AccountQuota"), "accountquota", "accountquotas", Scope.CLUSTER
    ),
    TypeDefinition(CONFIG_GROUP_VERSION.with_kind("Template"), "template", "templates", Scope.CLUSTER),
    TypeDefinition(
        CONFIG_GROUP_VERSION.with_kind("TemplateInstance"),
        "templateinstance",
        "templateinstances",
        Scope.NAMESPACED,
    ),
)