"""API error types, label selectors and an in-memory object store with a client interface."""

import copy
import itertools
import random
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

_NAME_SUFFIX_ALPHABET = "bcdfghjklmnpqrstvwxz2456789"
_NAME_SUFFIX_LENGTH = 5


class ApiError(Exception):
    """An error reported by the API, carrying an HTTP status code and a reason."""

    code = 500
    reason = "InternalError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ApiError):
    """The requested object does not exist."""

    code = 404
    reason = "NotFound"

    def __init__(self, resource: str, name: str) -> None:
        super().__init__(f'{resource} "{name}" not found')
        self.resource = resource
        self.name = name


class AlreadyExistsError(ApiError):
    """An object with the same name already exists."""

    code = 409
    reason = "AlreadyExists"

    def __init__(self, resource: str, name: str) -> None:
        super().__init__(f'{resource} "{name}" already exists')
        self.resource = resource
        self.name = name


class ConflictError(ApiError):
    """The object was changed since it was read."""

    code = 409
    reason = "Conflict"

    def __init__(self, resource: str, name: str, detail: str) -> None:
        super().__init__(f'Operation cannot be fulfilled on {resource} "{name}": {detail}')
        self.resource = resource
        self.name = name


class ForbiddenError(ApiError):
    """The user may not perform the operation."""

    code = 403
    reason = "Forbidden"

    def __init__(self, resource: str, name: str, detail: str) -> None:
        super().__init__(f'{resource} "{name}" is forbidden: {detail}')
        self.resource = resource
        self.name = name


class BadRequestError(ApiError):
    """The request itself is malformed."""

    code = 400
    reason = "BadRequest"


class InvalidError(ApiError):
    """The object failed validation."""

    code = 422
    reason = "Invalid"

    def __init__(self, kind: str, name: str, errors: Iterable[Any]) -> None:
        self.errors = list(errors)
        message = f'{kind} "{name}" is invalid'
        if len(self.errors) == 1:
            message += f": {self.errors[0]}"
        elif self.errors:
            message += ": [" + ", ".join(str(e) for e in self.errors) + "]"
        super().__init__(message)
        self.kind = kind
        self.name = name


# --- label selectors ------------------------------------------------------

_KEY = r"[A-Za-z0-9][-A-Za-z0-9_./]*"
_SET_RE = re.compile(rf"({_KEY})\s+(in|notin)\s+\((.*)\)")
_NOT_EXISTS_RE = re.compile(rf"!\s*({_KEY})")
_EQUALITY_RE = re.compile(rf"({_KEY})\s*(==|!=|=)\s*([-A-Za-z0-9_.]*)")
_EXISTS_RE = re.compile(_KEY)


@dataclass(frozen=True)
class _Requirement:
    key: str
    operator: str
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        value = labels.get(self.key)
        if self.operator in ("=", "in"):
            return present and value in self.values
        if self.operator in ("!=", "notin"):
            return not present or value not in self.values
        if self.operator == "exists":
            return present
        return not present


def _split_requirements(text: str) -> list[str]:
    parts: list[str] = []
    current = ""
    depth = 0
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += ch
    parts.append(current)
    return parts


@dataclass(frozen=True)
class LabelSelector:
    """A set of requirements on object labels; an empty selector matches everything."""

    requirements: tuple[_Requirement, ...] = ()

    @classmethod
    def parse(cls, text: str) -> "LabelSelector":
        """Parse a selector such as ``a=b,c!=d,e in (x,y),!f``."""
        if not text.strip():
            return cls()
        requirements = []
        for part in _split_requirements(text):
            part = part.strip()
            if match := _SET_RE.fullmatch(part):
                values = tuple(v.strip() for v in match.group(3).split(",") if v.strip())
                if not values:
                    raise ValueError(f"invalid label selector {text!r}: empty value set")
                requirements.append(_Requirement(match.group(1), match.group(2), values))
            elif match := _NOT_EXISTS_RE.fullmatch(part):
                requirements.append(_Requirement(match.group(1), "!"))
            elif match := _EQUALITY_RE.fullmatch(part):
                operator = "!=" if match.group(2) == "!=" else "="
                requirements.append(_Requirement(match.group(1), operator, (match.group(3),)))
            elif _EXISTS_RE.fullmatch(part):
                requirements.append(_Requirement(part, "exists"))
            else:
                raise ValueError(f"invalid label selector {text!r}")
        return cls(tuple(requirements))

    def matches(self, labels: Mapping[str, str]) -> bool:
        return all(req.matches(labels) for req in self.requirements)


# --- store ----------------------------------------------------------------


def _resource_of(kind: type) -> str:
    plural = kind.KIND.lower() + "s"
    group = kind.GROUP_VERSION.group
    return f"{plural}.{group}" if group else plural


class MemoryClient:
    """An in-memory object store with get, list, create, update, patch and delete."""

    def __init__(self, *args: Any) -> None:
        self._objects: dict[tuple[type, str, str], Any] = {}
        self._indexes: dict[tuple[type, str], Callable[[Any], Iterable[str]]] = {}
        self._versions = itertools.count(1)
        for obj in args:
            self.create(obj)

    def add_index(self, kind: type, name: str, extractor: Callable[[Any], Iterable[str]]) -> None:
        """Register a field index usable through ``matching_fields`` when listing ``kind``."""
        self._indexes[(kind, name)] = extractor

    @staticmethod
    def _key(obj: Any) -> tuple[type, str, str]:
        return (type(obj), obj.metadata.namespace, obj.metadata.name)

    def get(self, kind: type, name: str, namespace: str = "") -> Any:
        try:
            return copy.deepcopy(self._objects[(kind, namespace, name)])
        except KeyError:
            raise NotFoundError(_resource_of(kind), name) from None

    def list(
        self,
        kind: type,
        namespace: str = "",
        label_selector: LabelSelector | None = None,
        matching_labels: Mapping[str, str] | None = None,
        matching_fields: Mapping[str, str] | None = None,
    ) -> list[Any]:
        """List objects of a kind; an empty namespace lists across all namespaces."""
        field_filters = []
        for field_name, value in (matching_fields or {}).items():
            extractor = self._indexes.get((kind, field_name))
            if extractor is None:
                raise ValueError(f"no index {field_name!r} registered for {kind.KIND}")
            field_filters.append((extractor, value))

        ordered = sorted(self._objects.items(), key=lambda item: (item[0][1], item[0][2]))
        result = []
        for (obj_kind, obj_namespace, _), obj in ordered:
            if obj_kind is not kind:
                continue
            if namespace and obj_namespace != namespace:
                continue
            labels = obj.metadata.labels
            if label_selector is not None and not label_selector.matches(labels):
                continue
            if matching_labels and any(labels.get(k) != v for k, v in matching_labels.items()):
                continue
            if any(value not in list(extractor(obj)) for extractor, value in field_filters):
                continue
            result.append(copy.deepcopy(obj))
        return result

    def _generate_name(self, obj: Any) -> str:
        prefix = obj.metadata.generate_name
        while True:
            suffix = "".join(random.choices(_NAME_SUFFIX_ALPHABET, k=_NAME_SUFFIX_LENGTH))
            candidate = prefix + suffix
            if (type(obj), obj.metadata.namespace, candidate) not in self._objects:
                return candidate

    def _store(self, obj: Any, existing: Any | None) -> None:
        meta = obj.metadata
        if existing is not None:
            meta.uid = meta.uid or existing.metadata.uid
            if meta.creation_timestamp is None:
                meta.creation_timestamp = existing.metadata.creation_timestamp
        meta.uid = meta.uid or str(uuid.uuid4())
        if meta.creation_timestamp is None:
            meta.creation_timestamp = datetime.now(timezone.utc).replace(microsecond=0)
        meta.resource_version = str(next(self._versions))
        self._objects[self._key(obj)] = copy.deepcopy(obj)

    def create(self, obj: Any) -> None:
        """Store a new object, filling in its name, uid, timestamp and resource version."""
        meta = obj.metadata
        if not meta.name:
            if not meta.generate_name:
                raise InvalidError(
                    obj.KIND, "", ["metadata.name: Required value: name or generateName is required"]
                )
            meta.name = self._generate_name(obj)
        if self._key(obj) in self._objects:
            raise AlreadyExistsError(_resource_of(type(obj)), meta.name)
        self._store(obj, None)

    def update(self, obj: Any) -> None:
        """Replace a stored object; a set resource version must match the stored one."""
        key = self._key(obj)
        existing = self._objects.get(key)
        if existing is None:
            raise NotFoundError(_resource_of(type(obj)), obj.metadata.name)
        version = obj.metadata.resource_version
        if version and version != existing.metadata.resource_version:
            raise ConflictError(
                _resource_of(type(obj)),
                obj.metadata.name,
                "the object has been modified; please apply your changes to the latest version "
                "and try again",
            )
        self._store(obj, existing)

    def patch(self, obj: Any) -> None:
        """Apply the state of ``obj`` to the stored object regardless of its version."""
        existing = self._objects.get(self._key(obj))
        if existing is None:
            raise NotFoundError(_resource_of(type(obj)), obj.metadata.name)
        self._store(obj, existing)

    def delete(self, obj: Any) -> None:
        try:
            del self._objects[self._key(obj)]
        except KeyError:
            raise NotFoundError(_resource_of(type(obj)), obj.metadata.name) from None