from kiosk.config_types import AccountNamespaceStatus, AccountSpec, AccountStatus
from kiosk.meta import GroupVersionKind, ObjectMeta, Subject
from kiosk.tenancy_types import Account, AccountList, Space, SpaceList, SpaceSpec, SpaceStatus


def test_account_group_version():
    account = Account()
    assert str(account.GROUP_VERSION) == "tenancy.kiosk.sh/v1alpha1"
    assert account.GROUP_VERSION.with_kind(account.KIND) == GroupVersionKind(
        "tenancy.kiosk.sh", "v1alpha1", "Account"
    )
    assert Space().KIND == "Space"


def test_account_deep_copy_is_independent():
    account = Account(
        metadata=ObjectMeta(name="test"),
        spec=AccountSpec(subjects=[Subject(kind="User", name="foo")]),
        status=AccountStatus(namespaces=[AccountNamespaceStatus(name="test")]),
    )
    cpy = account.deep_copy()
    assert cpy == account
    cpy.spec.subjects[0].name = "bar"
    cpy.status.namespaces.clear()
    assert account.spec.subjects[0].name == "foo"
    assert len(account.status.namespaces) == 1


def test_space_deep_copy_is_independent():
    space = Space(
        metadata=ObjectMeta(name="test3", labels={"a": "b"}),
        spec=SpaceSpec(account="test", finalizers=["kubernetes"]),
        status=SpaceStatus(phase="Active"),
    )
    cpy = space.deep_copy()
    assert cpy == space
    cpy.spec.finalizers.append("x")
    cpy.metadata.labels["a"] = "c"
    assert space.spec.finalizers == ["kubernetes"]
    assert space.metadata.labels == {"a": "b"}


def test_space_defaults():
    space = Space()
    assert space.spec.account == ""
    assert space.spec.finalizers == []
    assert space.status.phase == ""


def test_lists_start_empty_and_do_not_share_items():
    first = SpaceList()
    second = SpaceList()
    first.items.append(Space(metadata=ObjectMeta(name="test")))
    assert second.items == []
    accounts = AccountList()
    assert accounts.items == []
    assert accounts.remaining_item_count is None