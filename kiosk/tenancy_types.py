"""Tenancy resources exposed to users: accounts and spaces."""

import copy
from dataclasses import dataclass, field
from typing import ClassVar

from kiosk.config_types import AccountSpec, AccountStatus
from kiosk.meta import TENANCY_GROUP_VERSION, GroupVersion, ObjectMeta


@dataclass
class Account:
    """The user-facing view of an account."""

    KIND: ClassVar[str] = "Account"
    GROUP_VERSION: ClassVar[GroupVersion] = TENANCY_GROUP_VERSION

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: AccountSpec = field(default_factory=AccountSpec)
    status: AccountStatus = field(default_factory=AccountStatus)

    def deep_copy(self) -> "Account":
        return copy.deepcopy(self)


@dataclass
class AccountList:
    """A list of tenancy accounts."""

    items: list[Account] = field(default_factory=list)
    resource_version: str = ""
    continue_token: str = ""
    remaining_item_count: int | None = None


@dataclass
class SpaceSpec:
    """Desired state of a space."""

    account: str = ""
    finalizers: list[str] = field(default_factory=list)


@dataclass
class SpaceStatus:
    """Observed state of a space."""

    phase: str = ""


@dataclass
class Space:
    """A namespace as seen through its owning account."""

    KIND: ClassVar[str] = "Space"
    GROUP_VERSION: ClassVar[GroupVersion] = TENANCY_GROUP_VERSION

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: SpaceSpec = field(default_factory=SpaceSpec)
    status: SpaceStatus = field(default_factory=SpaceStatus)

    def deep_copy(self) -> "Space":
        return copy.deepcopy(self)


@dataclass
class SpaceList:
    """A list of spaces."""

    items: list[Space] = field(default_factory=list)
    resource_version: str = ""
    continue_token: str = ""
    remaining_item_count: int | None = None