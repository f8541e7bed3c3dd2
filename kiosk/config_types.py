"""Configuration resources: accounts, account quotas, templates and template instances."""

import copy
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar

from kiosk.meta import CONFIG_GROUP_VERSION, GroupVersion, ObjectMeta, Subject

TEMPLATE_INSTANCE_NO_OWNER_ANNOTATION = "templateinstance.config.kiosk.sh/no-owner"


@dataclass
class AccountNamespaceStatus:
    """Status of one namespace owned by an account."""

    name: str = ""


@dataclass
class AccountStatus:
    """Observed state of an account."""

    namespaces: list[AccountNamespaceStatus] = field(default_factory=list)


@dataclass
class AccountSpaceTemplate:
    """Default metadata a newly created space receives."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)


@dataclass
class TemplateInstanceParameter:
    """A parameter value handed to a template."""

    name: str = ""
    value: str = ""


@dataclass
class TemplateInstanceSpec:
    """Desired state of a template instance."""

    template: str = ""
    sync: bool = False
    parameters: list[TemplateInstanceParameter] = field(default_factory=list)


@dataclass
class AccountTemplateInstanceTemplate:
    """A template instance that is created in every new space of an account."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: TemplateInstanceSpec = field(default_factory=TemplateInstanceSpec)


@dataclass
class AccountSpace:
    """How spaces owned by an account are created and limited."""

    cluster_role: str | None = None
    limit: int | None = None
    template_instances: list[AccountTemplateInstanceTemplate] = field(default_factory=list)
    space_template: AccountSpaceTemplate = field(default_factory=AccountSpaceTemplate)


@dataclass
class AccountSpec:
    """Desired state of an account."""

    space: AccountSpace = field(default_factory=AccountSpace)
    subjects: list[Subject] = field(default_factory=list)


def _format_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _meta_to_dict(meta: ObjectMeta) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in (
        ("name", meta.name),
        ("generateName", meta.generate_name),
        ("namespace", meta.namespace),
        ("uid", meta.uid),
        ("resourceVersion", meta.resource_version),
    ):
        if value:
            out[key] = value
    if meta.creation_timestamp is not None:
        out["creationTimestamp"] = _format_time(meta.creation_timestamp)
    if meta.labels:
        out["labels"] = dict(meta.labels)
    if meta.annotations:
        out["annotations"] = dict(meta.annotations)
    if meta.owner_references:
        out["ownerReferences"] = copy.deepcopy(meta.owner_references)
    if meta.finalizers:
        out["finalizers"] = list(meta.finalizers)
    return out


def _meta_from_dict(data: dict[str, Any] | None) -> ObjectMeta:
    data = data or {}
    timestamp = data.get("creationTimestamp")
    return ObjectMeta(
        name=data.get("name", ""),
        generate_name=data.get("generateName", ""),
        namespace=data.get("namespace", ""),
        uid=data.get("uid", ""),
        resource_version=data.get("resourceVersion", ""),
        labels=dict(data.get("labels") or {}),
        annotations=dict(data.get("annotations") or {}),
        creation_timestamp=_parse_time(timestamp) if timestamp else None,
        owner_references=copy.deepcopy(data.get("ownerReferences") or []),
        finalizers=list(data.get("finalizers") or []),
    )


def _subject_to_dict(subject: Subject) -> dict[str, Any]:
    out: dict[str, Any] = {"kind": subject.kind}
    if subject.api_group:
        out["apiGroup"] = subject.api_group
    out["name"] = subject.name
    if subject.namespace:
        out["namespace"] = subject.namespace
    return out


def _subject_from_dict(data: dict[str, Any]) -> Subject:
    return Subject(
        kind=data.get("kind", ""),
        name=data.get("name", ""),
        api_group=data.get("apiGroup", ""),
        namespace=data.get("namespace", ""),
    )


def _instance_spec_to_dict(spec: TemplateInstanceSpec) -> dict[str, Any]:
    out: dict[str, Any] = {"template": spec.template}
    if spec.sync:
        out["sync"] = True
    if spec.parameters:
        out["parameters"] = [
            {k: v for k, v in (("name", p.name), ("value", p.value)) if v} for p in spec.parameters
        ]
    return out


def _instance_spec_from_dict(data: dict[str, Any] | None) -> TemplateInstanceSpec:
    data = data or {}
    return TemplateInstanceSpec(
        template=data.get("template", ""),
        sync=bool(data.get("sync", False)),
        parameters=[
            TemplateInstanceParameter(name=p.get("name", ""), value=p.get("value", ""))
            for p in data.get("parameters") or []
        ],
    )


def _space_to_dict(space: AccountSpace) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if space.cluster_role is not None:
        out["clusterRole"] = space.cluster_role
    if space.limit is not None:
        out["limit"] = space.limit
    if space.template_instances:
        out["templateInstances"] = [
            {"metadata": _meta_to_dict(t.metadata), "spec": _instance_spec_to_dict(t.spec)}
            for t in space.template_instances
        ]
    out["spaceTemplate"] = {"metadata": _meta_to_dict(space.space_template.metadata)}
    return out


def _space_from_dict(data: dict[str, Any] | None) -> AccountSpace:
    data = data or {}
    return AccountSpace(
        cluster_role=data.get("clusterRole"),
        limit=data.get("limit"),
        template_instances=[
            AccountTemplateInstanceTemplate(
                metadata=_meta_from_dict(t.get("metadata")),
                spec=_instance_spec_from_dict(t.get("spec")),
            )
            for t in data.get("templateInstances") or []
        ],
        space_template=AccountSpaceTemplate(
            metadata=_meta_from_dict((data.get("spaceTemplate") or {}).get("metadata"))
        ),
    )


@dataclass
class Account:
    """A group of subjects that may own spaces."""

    KIND: ClassVar[str] = "Account"
    GROUP_VERSION: ClassVar[GroupVersion] = CONFIG_GROUP_VERSION

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: AccountSpec = field(default_factory=AccountSpec)
    status: AccountStatus = field(default_factory=AccountStatus)

    def to_dict(self) -> dict[str, Any]:
        """Serialise into the JSON wire form of the resource."""
        spec: dict[str, Any] = {"space": _space_to_dict(self.spec.space)}
        if self.spec.subjects:
            spec["subjects"] = [_subject_to_dict(s) for s in self.spec.subjects]
        status: dict[str, Any] = {}
        if self.status.namespaces:
            status["namespaces"] = [
                {"name": n.name} if n.name else {} for n in self.status.namespaces
            ]
        return {
            "apiVersion": str(self.GROUP_VERSION),
            "kind": self.KIND,
            "metadata": _meta_to_dict(self.metadata),
            "spec": spec,
            "status": status,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Account":
        """Build an account from its JSON wire form."""
        spec = data.get("spec") or {}
        status = data.get("status") or {}
        return cls(
            metadata=_meta_from_dict(data.get("metadata")),
            spec=AccountSpec(
                space=_space_from_dict(spec.get("space")),
                subjects=[_subject_from_dict(s) for s in spec.get("subjects") or []],
            ),
            status=AccountStatus(
                namespaces=[
                    AccountNamespaceStatus(name=n.get("name", ""))
                    for n in status.get("namespaces") or []
                ]
            ),
        )

    def deep_copy(self) -> "Account":
        return copy.deepcopy(self)


@dataclass
class AccountList:
    """A list of accounts."""

    items: list[Account] = field(default_factory=list)
    resource_version: str = ""
    continue_token: str = ""
    remaining_item_count: int | None = None


@dataclass
class ScopedResourceSelectorRequirement:
    """A scope selector expression of a resource quota."""

    scope_name: str = ""
    operator: str = ""
    values: list[str] = field(default_factory=list)


@dataclass
class ScopeSelector:
    """Selects the scopes a resource quota applies to."""

    match_expressions: list[ScopedResourceSelectorRequirement] = field(default_factory=list)


@dataclass
class ResourceQuotaSpec:
    """Hard limits, scopes and scope selector of a resource quota."""

    hard: dict[str, str] = field(default_factory=dict)
    scopes: list[str] = field(default_factory=list)
    scope_selector: ScopeSelector | None = None


@dataclass
class ResourceQuotaStatus:
    """Enforced hard limits and current usage."""

    hard: dict[str, str] = field(default_factory=dict)
    used: dict[str, str] = field(default_factory=dict)


@dataclass
class AccountQuotaSpec:
    """Desired state of an account quota."""

    account: str = ""
    quota: ResourceQuotaSpec = field(default_factory=ResourceQuotaSpec)


@dataclass
class AccountQuotaStatusByNamespace:
    """Usage of an account quota within one namespace."""

    namespace: str = ""
    status: ResourceQuotaStatus = field(default_factory=ResourceQuotaStatus)


@dataclass
class AccountQuotaStatus:
    """Observed total and per-namespace usage of an account quota."""

    total: ResourceQuotaStatus = field(default_factory=ResourceQuotaStatus)
    namespaces: list[AccountQuotaStatusByNamespace] = field(default_factory=list)


@dataclass
class AccountQuota:
    """A resource quota that spans all spaces of an account."""

    KIND: ClassVar[str] = "AccountQuota"
    GROUP_VERSION: ClassVar[GroupVersion] = CONFIG_GROUP_VERSION

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: AccountQuotaSpec = field(default_factory=AccountQuotaSpec)
    status: AccountQuotaStatus = field(default_factory=AccountQuotaStatus)


@dataclass
class TemplateParameter:
    """A parameter a template accepts."""

    name: str = ""
    value: str = ""
    required: bool = False
    validation: str = ""


@dataclass
class HelmSecretRef:
    """Reference to a key of a secret."""

    key: str = ""
    name: str = ""
    namespace: str = ""


@dataclass
class HelmChartRepository:
    """A helm repository to load a chart from."""

    name: str = ""
    version: str = ""
    repo_url: str = ""
    username: HelmSecretRef | None = None
    password: HelmSecretRef | None = None


@dataclass
class HelmChart:
    """Where to find a helm chart."""

    repository: HelmChartRepository | None = None


@dataclass
class HelmSetValue:
    """A name=value pair passed to helm template."""

    name: str = ""
    value: str = ""
    force_string: bool = False


@dataclass
class HelmConfiguration:
    """Helm deployment configuration of a template."""

    release_name: str = ""
    set_values: list[HelmSetValue] = field(default_factory=list)
    values: str = ""
    chart: HelmChart = field(default_factory=HelmChart)


@dataclass
class TemplateResources:
    """Manifests and helm configuration a template deploys."""

    manifests: list[dict[str, Any]] = field(default_factory=list)
    helm: HelmConfiguration | None = None


@dataclass
class Template:
    """A reusable set of resources to deploy into spaces."""

    KIND: ClassVar[str] = "Template"
    GROUP_VERSION: ClassVar[GroupVersion] = CONFIG_GROUP_VERSION

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    resources: TemplateResources = field(default_factory=TemplateResources)
    parameters: list[TemplateParameter] = field(default_factory=list)


class TemplateInstanceDeploymentStatus(str, enum.Enum):
    """Deployment state of a template instance."""

    DEPLOYED = "Deployed"
    FAILED = "Failed"
    PENDING = ""


@dataclass
class TemplateInstanceStatus:
    """Observed state of a template instance."""

    status: TemplateInstanceDeploymentStatus = TemplateInstanceDeploymentStatus.PENDING
    message: str = ""
    reason: str = ""
    template_resource_version: str = ""
    template_manifests: str = ""
    last_applied_at: datetime | None = None


@dataclass
class TemplateInstance:
    """A template deployed into one namespace."""

    KIND: ClassVar[str] = "TemplateInstance"
    GROUP_VERSION: ClassVar[GroupVersion] = CONFIG_GROUP_VERSION

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: TemplateInstanceSpec = field(default_factory=TemplateInstanceSpec)
    status: TemplateInstanceStatus = field(default_factory=TemplateInstanceStatus)