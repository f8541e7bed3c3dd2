from datetime import datetime, timezone

import pytest

from kiosk.config_types import Account as ConfigAccount
from kiosk.config_types import (
    AccountNamespaceStatus,
    AccountSpace,
    AccountSpec,
    AccountStatus,
)
from kiosk.filter import ListOptions
from kiosk.meta import (
    RBAC_GROUP_NAME,
    TENANCY_GROUP_VERSION,
    ClusterRole,
    ClusterRoleBinding,
    ObjectMeta,
    PolicyRule,
    RoleRef,
    Subject,
)
from kiosk.rbac import Attributes, RequestContext, UserInfo
from kiosk.registry.account_rest import (
    AccountREST,
    convert_config_account,
    convert_tenancy_account,
)
from kiosk.store import (
    AlreadyExistsError,
    ConflictError,
    LabelSelector,
    MemoryClient,
    NotFoundError,
)
from kiosk.tenancy_types import Account, AccountList


def _cluster_binding():
    return ClusterRoleBinding(
        metadata=ObjectMeta(name="test"),
        subjects=[Subject(kind="User", name="foo", api_group=RBAC_GROUP_NAME)],
        role_ref=RoleRef(name="test", kind="ClusterRole", api_group=RBAC_GROUP_NAME),
    )


def _request(verb="list", name=""):
    return RequestContext(
        user=UserInfo(name="foo"),
        request_info=Attributes(
            resource_request=True,
            path="/apis/" + TENANCY_GROUP_VERSION.group + "/" + TENANCY_GROUP_VERSION.version,
            verb=verb,
            api_group=TENANCY_GROUP_VERSION.group,
            api_version=TENANCY_GROUP_VERSION.version,
            resource="accounts",
            name=name,
        ),
    )


def _user_request():
    return RequestContext(user=UserInfo(name="foo"))


def _two_accounts():
    return MemoryClient(
        ConfigAccount(metadata=ObjectMeta(name="test")),
        ConfigAccount(metadata=ObjectMeta(name="test2")),
    )


def test_basic():
    storage = AccountREST(MemoryClient(), MemoryClient())
    assert storage.namespace_scoped() is False
    assert storage.new() == Account()
    assert storage.new_list() == AccountList()


def test_get_account():
    client = MemoryClient(ConfigAccount(metadata=ObjectMeta(name="test")))
    storage = AccountREST(client, client)
    account = storage.get(_user_request(), "test")
    assert isinstance(account, Account)
    assert account.metadata.name == "test"


def test_get_missing_account():
    client = MemoryClient()
    storage = AccountREST(client, client)
    with pytest.raises(NotFoundError) as info:
        storage.get(_user_request(), "missing")
    assert info.value.resource == "accounts.tenancy.kiosk.sh"
    assert info.value.name == "missing"


def test_list_account():
    client = MemoryClient(
        ConfigAccount(metadata=ObjectMeta(name="test")),
        ConfigAccount(metadata=ObjectMeta(name="test2", labels={"testlabel": "test"})),
        ConfigAccount(metadata=ObjectMeta(name="test3", labels={"testlabel": "test"})),
        ClusterRole(
            metadata=ObjectMeta(name="test", uid="123"),
            rules=[
                PolicyRule(
                    verbs=["*"],
                    api_groups=[TENANCY_GROUP_VERSION.group],
                    resources=["*"],
                    resource_names=["test", "test2"],
                    non_resource_urls=["*"],
                )
            ],
        ),
    )
    storage = AccountREST(client, client, list_all=True)
    request = _request("list")

    accounts = storage.list(request, ListOptions())
    assert accounts.items == []

    client.create(_cluster_binding())
    accounts = storage.list(request, ListOptions())
    assert [a.metadata.name for a in accounts.items] == ["test", "test2"]

    selector = LabelSelector.parse("testlabel=test")
    accounts = storage.list(request, ListOptions(label_selector=selector))
    assert [a.metadata.name for a in accounts.items] == ["test2"]


def test_create_account():
    client = _two_accounts()
    storage = AccountREST(client, client)
    validated = []

    created = storage.create(
        _user_request(), Account(metadata=ObjectMeta(name="test3")), validated.append
    )
    assert created.metadata.name == "test3"
    assert len(validated) == 1
    assert client.get(ConfigAccount, "test3").metadata.name == "test3"

    with pytest.raises(AlreadyExistsError):
        storage.create(_user_request(), Account(metadata=ObjectMeta(name="test3")), validated.append)


def test_create_rejects_other_types():
    client = MemoryClient()
    storage = AccountREST(client, client)
    with pytest.raises(TypeError):
        storage.create(_user_request(), ConfigAccount(metadata=ObjectMeta(name="x")))


def test_create_validation_error_stops_create():
    client = MemoryClient()
    storage = AccountREST(client, client)

    def reject(obj):
        raise ValueError("rejected")

    with pytest.raises(ValueError, match="rejected"):
        storage.create(_user_request(), Account(metadata=ObjectMeta(name="x")), reject)
    assert client.list(ConfigAccount) == []


def test_account_update():
    client = _two_accounts()
    storage = AccountREST(client, client)
    old = client.get(ConfigAccount, "test")

    new_account = Account(
        metadata=ObjectMeta(
            name="test", resource_version=old.metadata.resource_version, labels={"Updated": "true"}
        )
    )
    seen = []
    result, updated = storage.update(
        _user_request(),
        "test",
        lambda current: new_account,
        None,
        lambda new, previous: seen.append((new, previous)),
        False,
    )
    assert updated is True
    assert result.metadata.labels["Updated"] == "true"
    assert client.get(ConfigAccount, "test").metadata.labels == {"Updated": "true"}
    assert seen[0][1].metadata.name == "test"


def test_account_delete():
    client = _two_accounts()
    storage = AccountREST(client, client)
    validated = []
    deleted_account, deleted = storage.delete(_user_request(), "test", validated.append)
    assert deleted is True
    assert deleted_account.metadata.name == "test"
    assert validated[0].metadata.name == "test"
    with pytest.raises(NotFoundError):
        client.get(ConfigAccount, "test")
    with pytest.raises(NotFoundError):
        storage.delete(_user_request(), "test")


def test_convert_round_trip():
    original = ConfigAccount(
        metadata=ObjectMeta(name="acc", labels={"a": "b"}),
        spec=AccountSpec(
            subjects=[Subject(kind="User", name="foo", api_group=RBAC_GROUP_NAME)],
            space=AccountSpace(limit=2, cluster_role="edit"),
        ),
        status=AccountStatus(namespaces=[AccountNamespaceStatus(name="ns1")]),
    )
    tenancy = convert_config_account(original)
    assert tenancy.metadata.name == "acc"
    assert tenancy.spec.space.limit == 2
    assert convert_tenancy_account(tenancy) == original

    tenancy.metadata.labels["a"] = "changed"
    assert original.metadata.labels["a"] == "b"


def test_convert_to_table():
    storage = AccountREST(MemoryClient(), MemoryClient())
    account = Account(
        metadata=ObjectMeta(
            name="acc",
            resource_version="7",
            creation_timestamp=datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        ),
        status=AccountStatus(namespaces=[AccountNamespaceStatus(name="a"), AccountNamespaceStatus(name="b")]),
    )
    table = storage.convert_to_table(account)
    assert [c.name for c in table.column_definitions] == ["Name", "Spaces", "Created At"]
    assert table.rows[0].cells == ["acc", 2, "2020-01-02T03:04:05Z"]
    assert table.rows[0].object is account
    assert table.resource_version == "7"

    listed = storage.convert_to_table(AccountList(items=[account, account]), no_headers=True)
    assert len(listed.rows) == 2
    assert listed.column_definitions == []

    with pytest.raises(TypeError):
        storage.convert_to_table(AccountList(items=["not an account"]))