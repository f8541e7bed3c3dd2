"""Field errors, resource quantities and validation of resource quota specifications."""

import enum
import re
from dataclasses import dataclass
from decimal import ROUND_UP, Decimal, localcontext
from typing import Any, Iterable

from kiosk.config_types import ResourceQuotaSpec

IS_NEGATIVE_ERROR_MSG = "must be greater than or equal to 0"
IS_INVALID_QUOTA_RESOURCE = "must be a standard resource for quota"
IS_NOT_INTEGER_ERROR_MSG = "must be an integer"
FIELD_IMMUTABLE_ERROR_MSG = "field is immutable"

DEFAULT_RESOURCE_REQUESTS_PREFIX = "requests."
RESOURCE_DEFAULT_NAMESPACE_PREFIX = "kubernetes.io/"
RESOURCE_HUGE_PAGES_PREFIX = "hugepages-"
RESOURCE_REQUESTS_HUGE_PAGES_PREFIX = "requests.hugepages-"

SCOPE_TERMINATING = "Terminating"
SCOPE_NOT_TERMINATING = "NotTerminating"
SCOPE_BEST_EFFORT = "BestEffort"
SCOPE_NOT_BEST_EFFORT = "NotBestEffort"
SCOPE_PRIORITY_CLASS = "PriorityClass"

OPERATOR_IN = "In"
OPERATOR_NOT_IN = "NotIn"
OPERATOR_EXISTS = "Exists"
OPERATOR_DOES_NOT_EXIST = "DoesNotExist"


class ErrorType(str, enum.Enum):
    """The kind of problem a field error reports."""

    REQUIRED = "Required value"
    INVALID = "Invalid value"
    NOT_SUPPORTED = "Unsupported value"
    INTERNAL = "Internal error"


class FieldPath:
    """An immutable path to a field of an object, such as ``spec.quota.hard[cpu]``."""

    def __init__(self, *names: str) -> None:
        self._parts: tuple[tuple[bool, str], ...] = tuple((False, name) for name in names)

    def _extend(self, subscript: bool, text: str) -> "FieldPath":
        path = FieldPath()
        path._parts = self._parts + ((subscript, text),)
        return path

    def child(self, name: str) -> "FieldPath":
        return self._extend(False, name)

    def index(self, index: int) -> "FieldPath":
        return self._extend(True, str(index))

    def key(self, key: str) -> "FieldPath":
        return self._extend(True, key)

    def __str__(self) -> str:
        out = ""
        for subscript, text in self._parts:
            if subscript:
                out += f"[{text}]"
            elif out:
                out += "." + text
            else:
                out = text
        return out

    def __repr__(self) -> str:
        return f"FieldPath({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldPath):
            return NotImplemented
        return self._parts == other._parts

    def __hash__(self) -> int:
        return hash(self._parts)


@dataclass
class FieldError:
    """A validation problem found at one field."""

    type: ErrorType
    field: str
    bad_value: Any = None
    detail: str = ""

    def __str__(self) -> str:
        body = self.type.value
        if self.type not in (ErrorType.REQUIRED, ErrorType.INTERNAL):
            body += f": {self.bad_value!r}"
        if self.detail:
            body += f": {self.detail}"
        return f"{self.field}: {body}"


def _invalid(path: FieldPath, value: Any, detail: str) -> FieldError:
    return FieldError(ErrorType.INVALID, str(path), value, detail)


def _required(path: FieldPath, detail: str = "") -> FieldError:
    return FieldError(ErrorType.REQUIRED, str(path), None, detail)


# --- quantities -----------------------------------------------------------

_QUANTITY = re.compile(
    r"([+-]?)(\d+(?:\.\d*)?|\.\d+)(?:(Ki|Mi|Gi|Ti|Pi|Ei)|([numkMGTPE])|([eE][+-]?\d+))?"
)
_BINARY_EXPONENTS = {"Ki": 10, "Mi": 20, "Gi": 30, "Ti": 40, "Pi": 50, "Ei": 60}
_DECIMAL_EXPONENTS = {"n": -9, "u": -6, "m": -3, "k": 3, "M": 6, "G": 9, "T": 12, "P": 15, "E": 18}


def parse_quantity(value: "str | int | Decimal") -> Decimal:
    """Parse a resource quantity such as ``500m``, ``2Gi`` or ``1e3`` into a number."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    match = _QUANTITY.fullmatch(value)
    if match is None:
        raise ValueError(f"invalid quantity {value!r}")
    sign, digits, binary, decimal, exponent = match.groups()
    with localcontext() as ctx:
        ctx.prec = 60
        number = Decimal(sign + digits)
        if binary:
            number = number * (Decimal(2) ** _BINARY_EXPONENTS[binary])
        elif decimal:
            number = number.scaleb(_DECIMAL_EXPONENTS[decimal])
        elif exponent:
            number = number.scaleb(int(exponent[1:]))
        return +number


# --- names ----------------------------------------------------------------

_QUALIFIED_NAME_FMT = "([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]"
_QUALIFIED_NAME_RE = re.compile(_QUALIFIED_NAME_FMT)
_QUALIFIED_NAME_ERR_MSG = (
    "must consist of alphanumeric characters, '-', '_' or '.', "
    "and must start and end with an alphanumeric character"
)
_QUALIFIED_NAME_MAX_LENGTH = 63

_DNS1123_LABEL_FMT = "[a-z0-9]([-a-z0-9]*[a-z0-9])?"
_DNS1123_SUBDOMAIN_FMT = _DNS1123_LABEL_FMT + "(\\." + _DNS1123_LABEL_FMT + ")*"
_DNS1123_SUBDOMAIN_RE = re.compile(_DNS1123_SUBDOMAIN_FMT)
_DNS1123_SUBDOMAIN_ERR_MSG = (
    "a lowercase RFC 1123 subdomain must consist of lower case alphanumeric characters, "
    "'-' or '.', and must start and end with an alphanumeric character"
)
_DNS1123_SUBDOMAIN_MAX_LENGTH = 253


def _regex_error(msg: str, fmt: str, *examples: str) -> str:
    if not examples:
        return f"{msg} (regex used for validation is '{fmt}')"
    shown = " or ".join(f"'{example}', " for example in examples)
    return f"{msg} (e.g. {shown}regex used for validation is '{fmt}')"


def _max_len_error(length: int) -> str:
    return f"must be no more than {length} characters"


def _dns1123_subdomain_errors(value: str) -> list[str]:
    """Messages describing why a value is not a DNS-1123 subdomain."""
    errors = []
    if len(value) > _DNS1123_SUBDOMAIN_MAX_LENGTH:
        errors.append(_max_len_error(_DNS1123_SUBDOMAIN_MAX_LENGTH))
    if not _DNS1123_SUBDOMAIN_RE.fullmatch(value):
        errors.append(
            _regex_error(_DNS1123_SUBDOMAIN_ERR_MSG, _DNS1123_SUBDOMAIN_FMT, "example.com")
        )
    return errors


def is_qualified_name(value: str) -> list[str]:
    """Return why a value is not a qualified name; an empty list if it is one."""
    errors: list[str] = []
    parts = value.split("/")
    if len(parts) == 1:
        name = parts[0]
    elif len(parts) == 2:
        prefix, name = parts
        if not prefix:
            errors.append("prefix part must be non-empty")
        else:
            errors.extend("prefix part " + msg for msg in _dns1123_subdomain_errors(prefix))
    else:
        return [
            "a qualified name "
            + _regex_error(_QUALIFIED_NAME_ERR_MSG, _QUALIFIED_NAME_FMT, "MyName", "my.name", "123-abc")
            + " with an optional DNS subdomain prefix and '/' (e.g. 'example.com/MyName')"
        ]
    if not name:
        errors.append("name part must be non-empty")
    elif len(name) > _QUALIFIED_NAME_MAX_LENGTH:
        errors.append("name part " + _max_len_error(_QUALIFIED_NAME_MAX_LENGTH))
    if not _QUALIFIED_NAME_RE.fullmatch(name):
        errors.append(
            "name part "
            + _regex_error(_QUALIFIED_NAME_ERR_MSG, _QUALIFIED_NAME_FMT, "MyName", "my.name", "123-abc")
        )
    return errors


def validate_immutable_field(new_value: Any, old_value: Any, fld_path: FieldPath) -> list[FieldError]:
    """Report an error if a field that may not change has changed."""
    if new_value != old_value:
        return [_invalid(fld_path, new_value, FIELD_IMMUTABLE_ERROR_MSG)]
    return []


# --- resource sets --------------------------------------------------------

_STANDARD_RESOURCES = frozenset({
    "cpu", "memory", "ephemeral-storage",
    "requests.cpu", "requests.memory", "requests.ephemeral-storage",
    "limits.cpu", "limits.memory", "limits.ephemeral-storage",
    "pods", "resourcequotas", "services", "replicationcontrollers", "secrets", "configmaps",
    "persistentvolumeclaims", "storage", "requests.storage",
    "services.nodeports", "services.loadbalancers",
})

_STANDARD_QUOTA_RESOURCES = frozenset({
    "cpu", "memory", "ephemeral-storage",
    "requests.cpu", "requests.memory", "requests.storage", "requests.ephemeral-storage",
    "limits.cpu", "limits.memory", "limits.ephemeral-storage",
    "pods", "resourcequotas", "services", "replicationcontrollers", "secrets",
    "persistentvolumeclaims", "configmaps", "services.nodeports", "services.loadbalancers",
})

_INTEGER_RESOURCES = frozenset({
    "pods", "resourcequotas", "services", "replicationcontrollers", "secrets", "configmaps",
    "persistentvolumeclaims", "services.nodeports", "services.loadbalancers",
})

_STANDARD_RESOURCE_QUOTA_SCOPES = frozenset({
    SCOPE_TERMINATING, SCOPE_NOT_TERMINATING, SCOPE_BEST_EFFORT, SCOPE_NOT_BEST_EFFORT,
    SCOPE_PRIORITY_CLASS,
})

_POD_OBJECT_COUNT_QUOTA_RESOURCES = frozenset({"pods"})
_POD_COMPUTE_QUOTA_RESOURCES = frozenset({
    "cpu", "memory", "limits.cpu", "limits.memory", "requests.cpu", "requests.memory",
})

_INVALID_SCOPE_PAIRS = (
    frozenset({SCOPE_BEST_EFFORT, SCOPE_NOT_BEST_EFFORT}),
    frozenset({SCOPE_TERMINATING, SCOPE_NOT_TERMINATING}),
)


def is_standard_resource_name(name: str) -> bool:
    """Whether the resource is known to the system."""
    return name in _STANDARD_RESOURCES or is_quota_huge_page_resource_name(name)


def is_standard_quota_resource_name(name: str) -> bool:
    """Whether the resource is known to the quota tracking system."""
    return name in _STANDARD_QUOTA_RESOURCES or is_quota_huge_page_resource_name(name)


def is_quota_huge_page_resource_name(name: str) -> bool:
    """Whether the resource name carries a quota-related huge page prefix."""
    return name.startswith(RESOURCE_HUGE_PAGES_PREFIX) or name.startswith(
        RESOURCE_REQUESTS_HUGE_PAGES_PREFIX
    )


def is_integer_resource_name(name: str) -> bool:
    """Whether the resource is measured in whole numbers."""
    return name in _INTEGER_RESOURCES or is_extended_resource_name(name)


def is_extended_resource_name(name: str) -> bool:
    """Whether the name is a qualified resource outside the default namespace."""
    if is_native_resource(name) or name.startswith(DEFAULT_RESOURCE_REQUESTS_PREFIX):
        return False
    return not is_qualified_name(DEFAULT_RESOURCE_REQUESTS_PREFIX + name)


def is_native_resource(name: str) -> bool:
    """Whether the resource name lives in the ``kubernetes.io/`` namespace."""
    return "/" not in name or RESOURCE_DEFAULT_NAMESPACE_PREFIX in name


def is_standard_resource_quota_scope(scope: str) -> bool:
    """Whether the scope is a standard value."""
    return scope in _STANDARD_RESOURCE_QUOTA_SCOPES


def is_resource_quota_scope_valid_for_resource(scope: str, resource: str) -> bool:
    """Whether the resource may be limited under the given scope."""
    if scope in (SCOPE_TERMINATING, SCOPE_NOT_TERMINATING, SCOPE_NOT_BEST_EFFORT, SCOPE_PRIORITY_CLASS):
        return resource in _POD_OBJECT_COUNT_QUOTA_RESOURCES or resource in _POD_COMPUTE_QUOTA_RESOURCES
    if scope == SCOPE_BEST_EFFORT:
        return resource in _POD_OBJECT_COUNT_QUOTA_RESOURCES
    return True


# --- validation -----------------------------------------------------------


def validate_resource_quota_spec(spec: ResourceQuotaSpec, fld: FieldPath) -> list[FieldError]:
    """Validate hard limits, scopes and the scope selector of a quota."""
    errors: list[FieldError] = []
    hard_path = fld.child("hard")
    for name, quantity in spec.hard.items():
        res_path = hard_path.key(name)
        errors.extend(validate_resource_quota_resource_name(name, res_path))
        errors.extend(validate_resource_quantity_value(name, quantity, res_path))
    errors.extend(_validate_resource_quota_scopes(spec, fld))
    errors.extend(_validate_scope_selector(spec, fld))
    return errors


def _conflicting_scopes(scopes: Iterable[str], path: FieldPath, bad_value: Any) -> list[FieldError]:
    present = set(scopes)
    return [
        _invalid(path, bad_value, "conflicting scopes")
        for pair in _INVALID_SCOPE_PAIRS
        if pair <= present
    ]


def _unsupported_for_resources(scope: str, hard_limits: list[str]) -> int:
    return sum(
        1
        for name in hard_limits
        if is_standard_quota_resource_name(name)
        and not is_resource_quota_scope_valid_for_resource(scope, name)
    )


def _validate_resource_quota_scopes(spec: ResourceQuotaSpec, fld: FieldPath) -> list[FieldError]:
    if not spec.scopes:
        return []
    hard_limits = sorted(set(spec.hard))
    path = fld.child("scopes")
    errors: list[FieldError] = []
    for scope in spec.scopes:
        if not is_standard_resource_quota_scope(scope):
            errors.append(_invalid(path, list(spec.scopes), "unsupported scope"))
        errors.extend(
            _invalid(path, list(spec.scopes), "unsupported scope applied to resource")
            for _ in range(_unsupported_for_resources(scope, hard_limits))
        )
    errors.extend(_conflicting_scopes(spec.scopes, path, list(spec.scopes)))
    return errors


def _validate_scope_selector(spec: ResourceQuotaSpec, fld: FieldPath) -> list[FieldError]:
    if spec.scope_selector is None:
        return []
    return _validate_scoped_resource_selector_requirement(spec, fld.child("scopeSelector"))


def _validate_scoped_resource_selector_requirement(
    spec: ResourceQuotaSpec, fld: FieldPath
) -> list[FieldError]:
    selector = spec.scope_selector
    assert selector is not None
    hard_limits = sorted(set(spec.hard))
    path = fld.child("matchExpressions")
    errors: list[FieldError] = []
    for req in selector.match_expressions:
        if not is_standard_resource_quota_scope(req.scope_name):
            errors.append(_invalid(path.child("scopeName"), req.scope_name, "unsupported scope"))
        errors.extend(
            _invalid(path, selector, "unsupported scope applied to resource")
            for _ in range(_unsupported_for_resources(req.scope_name, hard_limits))
        )
        if req.scope_name in (
            SCOPE_BEST_EFFORT, SCOPE_NOT_BEST_EFFORT, SCOPE_TERMINATING, SCOPE_NOT_TERMINATING
        ) and req.operator != OPERATOR_EXISTS:
            errors.append(
                _invalid(
                    path.child("operator"),
                    req.operator,
                    "must be 'Exist' only operator when scope is any of "
                    "ResourceQuotaScopeTerminating, ResourceQuotaScopeNotTerminating, "
                    "ResourceQuotaScopeBestEffort and ResourceQuotaScopeNotBestEffort",
                )
            )
        if req.operator in (OPERATOR_IN, OPERATOR_NOT_IN):
            if not req.values:
                errors.append(
                    _required(
                        path.child("values"),
                        "must be at least one value when `operator` is 'In' or 'NotIn' "
                        "for scope selector",
                    )
                )
        elif req.operator in (OPERATOR_EXISTS, OPERATOR_DOES_NOT_EXIST):
            if req.values:
                errors.append(
                    _invalid(
                        path.child("values"),
                        list(req.values),
                        "must be no value when `operator` is 'Exist' or 'DoesNotExist' "
                        "for scope selector",
                    )
                )
        else:
            errors.append(
                _invalid(path.child("operator"), req.operator, "not a valid selector operator")
            )
    scope_names = [req.scope_name for req in selector.match_expressions]
    errors.extend(_conflicting_scopes(scope_names, path, list(spec.scopes)))
    return errors


def validate_resource_quota_resource_name(value: str, fld_path: FieldPath) -> list[FieldError]:
    """Validate a resource name that may appear in a resource quota."""
    errors = _validate_resource_name(value, fld_path)
    if "/" not in value and not is_standard_quota_resource_name(value):
        errors.append(_invalid(fld_path, value, IS_INVALID_QUOTA_RESOURCE))
    return errors


def _validate_resource_name(value: str, fld_path: FieldPath) -> list[FieldError]:
    errors = [_invalid(fld_path, value, msg) for msg in is_qualified_name(value)]
    if errors:
        return errors
    if "/" not in value and not is_standard_resource_name(value):
        errors.append(
            _invalid(fld_path, value, "must be a standard resource type or fully qualified")
        )
    return errors


def validate_resource_quantity_value(
    resource: str, value: "str | int | Decimal", fld_path: FieldPath
) -> list[FieldError]:
    """Check that a quantity is valid for the resource it limits."""
    errors = validate_nonnegative_quantity(value, fld_path)
    if is_integer_resource_name(resource):
        with localcontext() as ctx:
            ctx.prec = 60
            milli = (parse_quantity(value) * 1000).to_integral_value(rounding=ROUND_UP)
            if milli % 1000 != 0:
                errors.append(_invalid(fld_path, value, IS_NOT_INTEGER_ERROR_MSG))
    return errors


def validate_nonnegative_quantity(value: "str | int | Decimal", fld_path: FieldPath) -> list[FieldError]:
    """Check that a quantity is not negative."""
    if parse_quantity(value) < 0:
        return [_invalid(fld_path, str(value), IS_NEGATIVE_ERROR_MSG)]
    return []