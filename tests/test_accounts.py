import pytest

from kiosk.config_types import (
    Account,
    AccountNamespaceStatus,
    AccountQuota,
    AccountQuotaSpec,
    AccountSpace,
    AccountSpaceTemplate,
    AccountSpec,
    AccountStatus,
    ResourceQuotaSpec,
)
from kiosk.meta import RBAC_GROUP_NAME, ObjectMeta, Subject
from kiosk.validation.accounts import (
    SPACE_LABEL_ACCOUNT,
    validate_account,
    validate_account_quota,
    validate_account_quota_spec,
    validate_account_quota_update,
    validate_account_space_template,
    validate_account_update,
    validate_role_binding_subject,
)
from kiosk.validation.resource_quota import ErrorType, FieldPath


def _account(subject_name="test", namespace="test", labels=None, resource_version="",
             status=None):
    return Account(
        metadata=ObjectMeta(name="test", resource_version=resource_version),
        spec=AccountSpec(
            space=AccountSpace(
                space_template=AccountSpaceTemplate(metadata=ObjectMeta(labels=labels or {}))
            ),
            subjects=[Subject(kind="ServiceAccount", name=subject_name, namespace=namespace)],
        ),
        status=status or AccountStatus(),
    )


CASES = [
    pytest.param(_account(namespace=""), None, False, id="Invalid account"),
    pytest.param(_account(labels={SPACE_LABEL_ACCOUNT: "fake"}), None, False,
                 id="Invalid account space template"),
    pytest.param(_account(labels={"fake": "test"}), None, True, id="Valid account space template"),
    pytest.param(_account(), None, True, id="Valid account"),
    pytest.param(
        _account(resource_version="12345"),
        _account(resource_version="12345",
                 status=AccountStatus(namespaces=[AccountNamespaceStatus(name="test")])),
        False,
        id="Invalid update",
    ),
    pytest.param(
        _account(resource_version="12345", labels={SPACE_LABEL_ACCOUNT: "fake"}),
        _account(subject_name="testfabian", resource_version="12345"),
        False,
        id="Invalid account space template update",
    ),
    pytest.param(
        _account(resource_version="12345"),
        _account(subject_name="testfabian", resource_version="12345", labels={"fake": "test"}),
        True,
        id="Valid account space template update",
    ),
    pytest.param(
        _account(resource_version="12345"),
        _account(subject_name="testfabian", resource_version="12345"),
        True,
        id="Valid update",
    ),
]


@pytest.mark.parametrize("new,old,valid", CASES)
def test_account_validation(new, old, valid):
    errors = validate_account_update(new, old) if old is not None else validate_account(new)
    assert (len(errors) == 0) == valid


def test_missing_service_account_namespace_is_required():
    errors = validate_account(_account(namespace=""))
    assert [(e.type, e.field) for e in errors] == [
        (ErrorType.REQUIRED, str(FieldPath("spec.subjects").index(0).child("namespace")))
    ]


def test_status_change_reports_status_field():
    old = _account(status=AccountStatus(namespaces=[AccountNamespaceStatus(name="test")]))
    errors = validate_account_update(_account(), old)
    assert [e.field for e in errors] == ["status"]
    assert errors[0].bad_value == old.status


def test_space_template_label_error_path():
    template = AccountSpaceTemplate(metadata=ObjectMeta(labels={SPACE_LABEL_ACCOUNT: "fake"}))
    errors = validate_account_space_template(template, FieldPath("spec.space"))
    assert [(e.type, e.field) for e in errors] == [
        (ErrorType.REQUIRED, str(FieldPath("spec.space").child("metadata")))
    ]
    empty = AccountSpaceTemplate(metadata=ObjectMeta(labels={SPACE_LABEL_ACCOUNT: ""}))
    assert validate_account_space_template(empty, FieldPath("spec.space")) == []


def test_subject_user_and_group_need_rbac_group():
    path = FieldPath("subjects").index(0)
    ok = Subject(kind="User", name="foo", api_group=RBAC_GROUP_NAME)
    assert validate_role_binding_subject(ok, False, path) == []
    bad = validate_role_binding_subject(Subject(kind="Group", name="devs"), False, path)
    assert [(e.type, e.field) for e in bad] == [
        (ErrorType.NOT_SUPPORTED, str(path.child("apiGroup")))
    ]


def test_subject_unknown_kind_and_missing_name():
    path = FieldPath("subjects").index(1)
    errors = validate_role_binding_subject(Subject(kind="Robot"), True, path)
    assert [(e.type, e.field) for e in errors] == [
        (ErrorType.REQUIRED, str(path.child("name"))),
        (ErrorType.NOT_SUPPORTED, str(path.child("kind"))),
    ]


def test_service_account_subject_rules():
    path = FieldPath("subjects").index(0)
    bad_name = validate_role_binding_subject(
        Subject(kind="ServiceAccount", name="Bad_Name", namespace="ns"), False, path
    )
    assert [e.bad_value for e in bad_name] == ["Bad_Name"]
    with_group = validate_role_binding_subject(
        Subject(kind="ServiceAccount", name="sa", api_group="x", namespace="ns"), False, path
    )
    assert [e.type for e in with_group] == [ErrorType.NOT_SUPPORTED]
    namespaced = validate_role_binding_subject(
        Subject(kind="ServiceAccount", name="sa"), True, path
    )
    assert namespaced == []


def _quota(account, hard=None):
    return AccountQuota(
        metadata=ObjectMeta(name="q"),
        spec=AccountQuotaSpec(account=account, quota=ResourceQuotaSpec(hard=hard or {})),
    )


def test_account_quota_validation():
    assert validate_account_quota(_quota("a", {"pods": "10"})) == []
    errors = validate_account_quota(_quota("a", {"pods": "1.5"}))
    assert [e.field for e in errors] == [str(FieldPath("spec", "quota", "hard").key("pods"))]
    assert validate_account_quota_spec(AccountQuotaSpec(account="a")) == []


def test_account_quota_update_account_is_immutable():
    errors = validate_account_quota_update(_quota("b"), _quota("a"))
    assert [(e.field, e.bad_value) for e in errors] == [(str(FieldPath("spec", "account")), "b")]
    assert validate_account_quota_update(_quota("a"), _quota("a")) == []