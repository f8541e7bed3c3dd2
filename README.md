# kiosk

An in-memory model of a multi-tenant cluster. **Accounts** group users,
groups and service accounts; they own **spaces** (namespaces), may be
limited in how many spaces they create, and can have **template instances**
created in every new space. Access is decided by an RBAC authorizer that
evaluates roles, cluster roles and their bindings.

The package has no dependencies outside the standard library.

## Modules

| Module | Contents |
| --- | --- |
| `kiosk.meta` | `GroupVersion`, `GroupVersionKind`, `GroupVersionResource`, `ObjectMeta`, `Subject`, `RoleRef`, `PolicyRule`, `Role`, `ClusterRole`, `RoleBinding`, `ClusterRoleBinding`, `Namespace`, `Scope`, `TypeDefinition` and `TYPE_DEFINITIONS` |
| `kiosk.config_types` | `Account` (with `to_dict`, `from_dict`, `deep_copy`), `AccountQuota`, `Template`, `TemplateInstance` and their parts |
| `kiosk.tenancy_types` | The user-facing `Account`, `AccountList`, `Space` and `SpaceList` |
| `kiosk.validation.resource_quota` | `FieldPath`, `FieldError`, `ErrorType`, `parse_quantity`, `is_qualified_name` and resource-quota validation |
| `kiosk.validation.accounts` | `validate_account`, `validate_account_update`, `validate_role_binding_subject`, `validate_account_space_template`, `validate_account_quota`, `validate_account_quota_update` |
| `kiosk.validation.templates` | `validate_template_instance`, `validate_template_instance_update`, `validate_space`, `validate_space_update` |
| `kiosk.store` | `MemoryClient`, `LabelSelector` and the API errors (`NotFoundError`, `AlreadyExistsError`, `ConflictError`, `ForbiddenError`, `BadRequestError`, `InvalidError`) |
| `kiosk.rbac` | `RBACAuthorizer`, `DefaultRuleResolver`, `Attributes`, `UserInfo`, `RequestContext`, `Decision`, `rule_allows`, `convert_subject` |
| `kiosk.filter` | `FilteredLister` and `ListOptions` |
| `kiosk.registry.helpers` | `change_attributes_resource`, `is_user_part_of_account`, `forbidden_message`, `get_cluster_role_for`, `create_role_binding`, and the `Table` types |
| `kiosk.registry.account_rest` | `AccountREST`, `convert_config_account`, `convert_tenancy_account` |
| `kiosk.registry.space_rest` | `SpaceREST`, `convert_space`, `convert_namespace` |

## Validation

Validators return a list of `FieldError` values; an empty list means the
object is valid.

```python
from kiosk.config_types import Account, AccountSpec
from kiosk.meta import ObjectMeta, Subject
from kiosk.validation.accounts import validate_account

account = Account(
    metadata=ObjectMeta(name="team-a"),
    spec=AccountSpec(
        subjects=[Subject(kind="ServiceAccount", name="builder", namespace="ci")],
    ),
)
assert validate_account(account) == []
```

A subject without a name, a service account subject without a namespace or
with an API group, a user or group subject whose API group is not
`rbac.authorization.k8s.io`, an unknown subject kind, and a space template
that sets the `kiosk.sh/account` label are reported as errors.
`validate_account_update` also rejects any change to the account status;
`validate_account_quota_update` and `validate_template_instance_update`
reject a change to the account and to the template they refer to.

Resource quantities such as `500m`, `2Gi` or `1e3` are read by
`parse_quantity`, which returns a `Decimal`.

## Label selectors

```python
from kiosk.store import LabelSelector

selector = LabelSelector.parse("testlabel=test")
assert selector.matches({"testlabel": "test"})
assert not selector.matches({"other": "value"})
```

`=`, `==`, `!=`, `in (...)`, `notin (...)`, `key` and `!key` are understood.

## Storage and authorization

`MemoryClient` holds objects and answers `get`, `list`, `create`, `update`,
`patch` and `delete`. Missing objects raise `NotFoundError`, duplicates
raise `AlreadyExistsError`, and an update with a stale resource version
raises `ConflictError`. Objects with only `generate_name` set get a random
name suffix.

`RBACAuthorizer` reads bindings and roles from such a client. With
`list_all=True` it looks at every binding; otherwise it lists bindings
through a `bySubjects` field index, which must be registered with
`MemoryClient.add_index`.

```python
from kiosk.meta import (
    RBAC_GROUP_NAME, ClusterRole, ClusterRoleBinding, ObjectMeta, PolicyRule, RoleRef, Subject,
)
from kiosk.rbac import Attributes, Decision, RBACAuthorizer, UserInfo
from kiosk.store import MemoryClient

client = MemoryClient(
    ClusterRole(
        metadata=ObjectMeta(name="viewer"),
        rules=[PolicyRule(verbs=["get"], api_groups=[""], resources=["namespaces"])],
    ),
    ClusterRoleBinding(
        metadata=ObjectMeta(name="viewer-alice"),
        subjects=[Subject(kind="User", name="alice", api_group=RBAC_GROUP_NAME)],
        role_ref=RoleRef(kind="ClusterRole", name="viewer"),
    ),
)
authorizer = RBACAuthorizer(client, list_all=True)
decision, reason = authorizer.authorize(
    Attributes(user=UserInfo(name="alice"), verb="get", resource="namespaces", resource_request=True)
)
assert decision is Decision.ALLOW
```

## Account and space storages

`AccountREST` and `SpaceREST` take the client the authorizer reads from and
the client objects are stored in (they may be the same), and requests as a
`RequestContext` holding the user and the request `Attributes`.

- `list` returns only the objects the user may `get`, sorted by name, and
  honours a `ListOptions.label_selector`.
- `SpaceREST.get` answers `NotFoundError` for a space the user may not see;
  `SpaceREST.update` and `SpaceREST.delete` raise `ForbiddenError` when the
  user lacks the rights. `AccountREST` performs no authorization check on
  `get`, `create`, `update` or `delete`.
- `SpaceREST.create` without an account needs the right to create the
  namespace, otherwise it raises `BadRequestError`. With an account, a user
  who is not a subject of it needs that right too, otherwise
  `ForbiddenError`. It then enforces the account's space limit, applies the
  account's space template labels and annotations, creates the account's
  template instances, waits until they are deployed (up to a minute,
  checking every `poll_interval` seconds), binds the account's subjects to
  its cluster role (`admin` unless set) in the new namespace, and removes
  the namespace on failure.
- `convert_to_table` renders an object or list as a `Table`.

## What this package does not do

- It serves no HTTP API and offers no command line; the storages are
  called directly from Python.
- It keeps everything in memory; nothing is persisted.
- It does not watch objects for changes.
- It does not render or deploy templates and does not compute account
  quota usage. A space created for an account with template instances
  waits for something else to set those instances' status to `Deployed`.

## Running the tests

```
pip install -e .[test]
pytest
```