import pytest

from kiosk.config_types import Account
from kiosk.filter import FilteredLister, ListOptions
from kiosk.meta import (
    CORE_GROUP_VERSION,
    RBAC_GROUP_NAME,
    TENANCY_GROUP_VERSION,
    USER_KIND,
    ClusterRole,
    ClusterRoleBinding,
    Namespace,
    ObjectMeta,
    PolicyRule,
    RoleRef,
    Subject,
)
from kiosk.rbac import Attributes, Decision, RBACAuthorizer, RequestContext, UserInfo
from kiosk.store import ApiError, LabelSelector, MemoryClient


def _binding():
    return ClusterRoleBinding(
        metadata=ObjectMeta(name="test"),
        subjects=[Subject(kind=USER_KIND, name="foo", api_group=RBAC_GROUP_NAME)],
        role_ref=RoleRef(kind="ClusterRole", name="test"),
    )


def _request(resource="spaces"):
    info = Attributes(
        verb="list",
        resource_request=True,
        api_group=TENANCY_GROUP_VERSION.group,
        api_version=TENANCY_GROUP_VERSION.version,
        resource=resource,
        path="/apis/" + str(TENANCY_GROUP_VERSION),
    )
    return RequestContext(user=UserInfo(name="foo"), request_info=info)


def _namespaces_client():
    return MemoryClient(
        Namespace(metadata=ObjectMeta(name="test3", labels={"testlabel": "test"})),
        Namespace(metadata=ObjectMeta(name="test")),
        Namespace(metadata=ObjectMeta(name="test2", labels={"testlabel": "test"})),
    )


NAMESPACES = CORE_GROUP_VERSION.with_resource("namespaces")


def test_list_is_empty_without_permissions():
    client = _namespaces_client()
    lister = FilteredLister(client, RBACAuthorizer(client, list_all=True))
    assert lister.list(_request(), Namespace, NAMESPACES, ListOptions()) == []


def test_list_spaces_filtered_by_resource_names():
    client = _namespaces_client()
    client.create(
        ClusterRole(
            metadata=ObjectMeta(name="test"),
            rules=[
                PolicyRule(
                    verbs=["*"], api_groups=["*"], resources=["*"],
                    resource_names=["test", "test2"], non_resource_urls=["*"],
                )
            ],
        )
    )
    client.create(_binding())
    lister = FilteredLister(client, RBACAuthorizer(client, list_all=True))

    names = [n.metadata.name for n in lister.list(_request(), Namespace, NAMESPACES)]
    assert names == ["test", "test2"]

    selected = lister.list(
        _request(), Namespace, NAMESPACES, ListOptions(label_selector=LabelSelector.parse("testlabel=test"))
    )
    assert [n.metadata.name for n in selected] == ["test2"]


def test_list_accounts_filtered_by_resource_names():
    client = MemoryClient(
        Account(metadata=ObjectMeta(name="test")),
        Account(metadata=ObjectMeta(name="test2", labels={"testlabel": "test"})),
        Account(metadata=ObjectMeta(name="test3", labels={"testlabel": "test"})),
        ClusterRole(
            metadata=ObjectMeta(name="test"),
            rules=[
                PolicyRule(
                    verbs=["*"], api_groups=[TENANCY_GROUP_VERSION.group], resources=["*"],
                    resource_names=["test", "test2"], non_resource_urls=["*"],
                )
            ],
        ),
    )
    lister = FilteredLister(client, RBACAuthorizer(client, list_all=True))
    accounts = TENANCY_GROUP_VERSION.with_resource("accounts")
    assert lister.list(_request("accounts"), Account, accounts) == []

    client.create(_binding())
    assert len(lister.list(_request("accounts"), Account, accounts)) == 2
    selected = lister.list(
        _request("accounts"), Account, accounts,
        ListOptions(label_selector=LabelSelector.parse("testlabel=test")),
    )
    assert [a.metadata.name for a in selected] == ["test2"]


class _RecordingAuthorizer:
    def __init__(self):
        self.seen = []

    def authorize(self, attributes):
        self.seen.append(attributes)
        return Decision.ALLOW, ""


def test_namespaces_are_checked_with_their_own_name_as_namespace():
    client = _namespaces_client()
    authorizer = _RecordingAuthorizer()
    request = _request()
    result = FilteredLister(client, authorizer).list(request, Namespace, NAMESPACES)
    assert len(result) == 3
    for attributes in authorizer.seen:
        assert attributes.namespace == attributes.name
        assert attributes.verb == "get"
        assert attributes.resource == "namespaces"
        assert attributes.path == request.request_info.path + "/" + attributes.name


def test_list_requires_request_info():
    client = _namespaces_client()
    lister = FilteredLister(client, _RecordingAuthorizer())
    with pytest.raises(ApiError):
        lister.list(RequestContext(user=UserInfo(name="foo")), Namespace, NAMESPACES)