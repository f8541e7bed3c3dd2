"""Role based access control: resolving bindings to rules and authorizing requests."""

import dataclasses
import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from kiosk.meta import (
    GROUP_KIND,
    SERVICE_ACCOUNT_KIND,
    USER_KIND,
    ClusterRole,
    ClusterRoleBinding,
    PolicyRule,
    Role,
    RoleBinding,
    RoleRef,
    Subject,
)
from kiosk.store import ApiError

logger = logging.getLogger(__name__)

INDEX_BY_SUBJECTS = "bySubjects"
USER_PREFIX = "user:"
GROUP_PREFIX = "group:"
SERVICE_ACCOUNT_USERNAME_PREFIX = "system:serviceaccount:"

_RESOLVE_ERRORS = (ApiError, ValueError)


@dataclass
class UserInfo:
    """The authenticated user of a request."""

    name: str = ""
    uid: str = ""
    groups: list[str] = field(default_factory=list)
    extra: dict[str, list[str]] = field(default_factory=dict)


class Decision(enum.Enum):
    """Outcome of an authorization check."""

    DENY = 0
    ALLOW = 1
    NO_OPINION = 2


@dataclass
class Attributes:
    """What a request wants to do, as seen by an authorizer."""

    user: UserInfo | None = None
    verb: str = ""
    namespace: str = ""
    name: str = ""
    api_group: str = ""
    api_version: str = ""
    resource: str = ""
    subresource: str = ""
    resource_request: bool = False
    path: str = ""


@dataclass
class RequestContext:
    """The user and request information of one API request."""

    user: UserInfo | None = None
    request_info: Attributes | None = None

    def authorizer_attributes(self) -> Attributes:
        """Combine the user and request information into authorizer attributes."""
        info = self.request_info
        if info is None:
            raise ApiError("no RequestInfo found in the context")
        attributes = Attributes(
            user=self.user, verb=info.verb, path=info.path, resource_request=info.resource_request
        )
        if info.resource_request:
            attributes.api_group = info.api_group
            attributes.api_version = info.api_version
            attributes.resource = info.resource
            attributes.subresource = info.subresource
            attributes.namespace = info.namespace
            attributes.name = info.name
        return attributes


Visitor = Callable[[str | None, PolicyRule | None, Exception | None], bool]


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def make_service_account_username(namespace: str, name: str) -> str:
    """The user name a service account authenticates as."""
    return f"{SERVICE_ACCOUNT_USERNAME_PREFIX}{namespace}:{name}"


def describe_subject(subject: Subject, binding_namespace: str) -> str:
    """A human readable description of a binding subject."""
    if subject.kind == SERVICE_ACCOUNT_KIND:
        namespace = subject.namespace or binding_namespace
        return f"{subject.kind} {_quote(subject.name + '/' + namespace)}"
    return f"{subject.kind} {_quote(subject.name)}"


def _describe_cluster_role_binding(binding: ClusterRoleBinding, subject: Subject) -> str:
    return (
        f"ClusterRoleBinding {_quote(binding.metadata.name)} of {binding.role_ref.kind} "
        f"{_quote(binding.role_ref.name)} to {describe_subject(subject, '')}"
    )


def _describe_role_binding(binding: RoleBinding, subject: Subject) -> str:
    namespace = binding.metadata.namespace
    return (
        f"RoleBinding {_quote(binding.metadata.name + '/' + namespace)} of {binding.role_ref.kind} "
        f"{_quote(binding.role_ref.name)} to {describe_subject(subject, namespace)}"
    )


def _applies_to_user(user: UserInfo, subject: Subject, namespace: str) -> bool:
    if subject.kind == USER_KIND:
        return user.name == subject.name
    if subject.kind == GROUP_KIND:
        return subject.name in user.groups
    if subject.kind == SERVICE_ACCOUNT_KIND:
        sa_namespace = subject.namespace or namespace
        if not sa_namespace:
            return False
        return user.name == make_service_account_username(sa_namespace, subject.name)
    return False


def applies_to(user: UserInfo, subjects: list[Subject], namespace: str) -> int | None:
    """The index of the first subject that applies to the user, or None."""
    return next(
        (i for i, subject in enumerate(subjects) if _applies_to_user(user, subject, namespace)),
        None,
    )


def convert_subject(namespace: str, subject: Subject) -> str:
    """A unique id string for a subject, or an empty string if it has none."""
    if subject.kind == USER_KIND:
        return USER_PREFIX + subject.name
    if subject.kind == GROUP_KIND:
        return GROUP_PREFIX + subject.name
    if subject.kind == SERVICE_ACCOUNT_KIND:
        sa_namespace = subject.namespace or namespace
        if not sa_namespace:
            return ""
        return USER_PREFIX + make_service_account_username(sa_namespace, subject.name)
    return ""


def _subject_keys(user: UserInfo) -> list[str]:
    return [USER_PREFIX + user.name] + [GROUP_PREFIX + group for group in user.groups]


class DefaultRuleResolver:
    """Finds the policy rules that bindings grant to a user."""

    def __init__(self, client: Any, list_all: bool = False) -> None:
        self.client = client
        self.list_all = list_all

    def _list_bindings(self, kind: type, user: UserInfo, namespace: str) -> list[Any]:
        if self.list_all:
            return self.client.list(kind, namespace=namespace)
        bindings: list[Any] = []
        for key in _subject_keys(user):
            bindings.extend(
                self.client.list(kind, namespace=namespace, matching_fields={INDEX_BY_SUBJECTS: key})
            )
        return bindings

    def _visit_bindings(
        self,
        kind: type,
        user: UserInfo,
        namespace: str,
        describe: Callable[[Any, Subject], str],
        visitor: Visitor,
    ) -> bool:
        try:
            bindings = self._list_bindings(kind, user, namespace)
        except _RESOLVE_ERRORS as err:
            return visitor(None, None, err)
        for binding in bindings:
            index = applies_to(user, binding.subjects, namespace)
            if index is None:
                continue
            try:
                rules = self.get_role_reference_rules(binding.role_ref, namespace)
            except _RESOLVE_ERRORS as err:
                if not visitor(None, None, err):
                    return False
                continue
            source = describe(binding, binding.subjects[index])
            for rule in rules:
                if not visitor(source, rule, None):
                    return False
        return True

    def visit_rules_for(self, user: UserInfo, namespace: str, visitor: Visitor) -> None:
        """Call ``visitor`` for every rule granted to ``user``; stop when it returns False."""
        if not self._visit_bindings(
            ClusterRoleBinding, user, "", _describe_cluster_role_binding, visitor
        ):
            return
        if namespace:
            self._visit_bindings(RoleBinding, user, namespace, _describe_role_binding, visitor)

    def get_role_reference_rules(self, role_ref: RoleRef, binding_namespace: str) -> list[PolicyRule]:
        """The rules of the role or cluster role a binding refers to."""
        if role_ref.kind == "Role":
            return self.client.get(Role, role_ref.name, binding_namespace).rules
        if role_ref.kind == "ClusterRole":
            return self.client.get(ClusterRole, role_ref.name).rules
        raise ValueError(f"unsupported role reference kind: {_quote(role_ref.kind)}")


def _verb_matches(rule: PolicyRule, verb: str) -> bool:
    return any(v == "*" or v == verb for v in rule.verbs)


def _api_group_matches(rule: PolicyRule, group: str) -> bool:
    return any(g == "*" or g == group for g in rule.api_groups)


def _resource_matches(rule: PolicyRule, combined: str, subresource: str) -> bool:
    for resource in rule.resources:
        if resource == "*" or resource == combined:
            return True
        if subresource and resource == "*/" + subresource:
            return True
    return False


def _resource_name_matches(rule: PolicyRule, name: str) -> bool:
    return not rule.resource_names or name in rule.resource_names


def _non_resource_url_matches(rule: PolicyRule, path: str) -> bool:
    for url in rule.non_resource_urls:
        if url == "*" or url == path:
            return True
        if url.endswith("*") and path.startswith(url[:-1]):
            return True
    return False


def rule_allows(attributes: Attributes, rule: PolicyRule) -> bool:
    """Whether a single rule permits the request."""
    if attributes.resource_request:
        combined = attributes.resource
        if attributes.subresource:
            combined = f"{attributes.resource}/{attributes.subresource}"
        return (
            _verb_matches(rule, attributes.verb)
            and _api_group_matches(rule, attributes.api_group)
            and _resource_matches(rule, combined, attributes.subresource)
            and _resource_name_matches(rule, attributes.name)
        )
    return _verb_matches(rule, attributes.verb) and _non_resource_url_matches(rule, attributes.path)


def _aggregate(errors: Iterable[Exception]) -> str:
    messages = list(dict.fromkeys(str(err) for err in errors))
    if len(messages) == 1:
        return messages[0]
    return "[" + ", ".join(messages) + "]"


def _describe_denial(attributes: Attributes) -> str:
    if attributes.resource_request:
        operation = f'"{attributes.verb}" resource "{attributes.resource}'
        if attributes.api_group:
            operation += "." + attributes.api_group
        if attributes.subresource:
            operation += "/" + attributes.subresource
        operation += '"'
        if attributes.name:
            operation += f' named "{attributes.name}"'
    else:
        operation = f"{_quote(attributes.verb)} nonResourceURL {_quote(attributes.path)}"
    scope = f"in namespace {_quote(attributes.namespace)}" if attributes.namespace else "cluster-wide"
    user = attributes.user or UserInfo()
    return f"RBAC DENY: user {_quote(user.name)} groups {user.groups!r} cannot {operation} {scope}"


class RBACAuthorizer:
    """Allows a request when any rule granted to its user permits it."""

    def __init__(self, client: Any, list_all: bool = False) -> None:
        self.rule_resolver = DefaultRuleResolver(client, list_all)

    def authorize(self, attributes: Attributes) -> tuple[Decision, str]:
        """Return the decision and a reason for it."""
        allowed_by: list[str] = []
        errors: list[Exception] = []

        def visit(source: str | None, rule: PolicyRule | None, err: Exception | None) -> bool:
            if rule is not None and rule_allows(attributes, rule):
                allowed_by.append(source or "")
                return False
            if err is not None:
                errors.append(err)
            return True

        user = attributes.user or UserInfo()
        self.rule_resolver.visit_rules_for(user, attributes.namespace, visit)
        if allowed_by:
            return Decision.ALLOW, f"RBAC: allowed by {allowed_by[0]}"

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(_describe_denial(dataclasses.replace(attributes, user=user)))

        reason = f"RBAC: {_aggregate(errors)}" if errors else ""
        return Decision.NO_OPINION, reason