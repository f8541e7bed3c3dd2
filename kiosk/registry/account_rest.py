"""The account storage: tenancy accounts backed by stored config accounts."""

import copy
from typing import Any, Callable

from kiosk.config_types import Account as ConfigAccount
from kiosk.filter import FilteredLister, ListOptions
from kiosk.meta import TENANCY_GROUP_VERSION
from kiosk.rbac import RBACAuthorizer, RequestContext
from kiosk.registry.helpers import (
    _CREATED_DESCRIPTION,
    _NAME_DESCRIPTION,
    Table,
    TableColumn,
    TableRow,
    _format_timestamp,
)
from kiosk.store import NotFoundError
from kiosk.tenancy_types import Account, AccountList

_ACCOUNTS_RESOURCE = "accounts." + TENANCY_GROUP_VERSION.group


def convert_config_account(config_account: ConfigAccount) -> Account:
    """Turn a stored config account into a tenancy account."""
    return Account(
        metadata=config_account.metadata.deep_copy(),
        spec=copy.deepcopy(config_account.spec),
        status=copy.deepcopy(config_account.status),
    )


def convert_tenancy_account(account: Account) -> ConfigAccount:
    """Turn a tenancy account into a config account ready to store."""
    return ConfigAccount(
        metadata=account.metadata.deep_copy(),
        spec=copy.deepcopy(account.spec),
        status=copy.deepcopy(account.status),
    )


class AccountREST:
    """Serves tenancy accounts, showing users only the accounts they may get."""

    def __init__(self, cached_client: Any, uncached_client: Any, list_all: bool = False) -> None:
        self._client = uncached_client
        self._authorizer = RBACAuthorizer(cached_client, list_all)
        self._filter = FilteredLister(uncached_client, self._authorizer)

    def namespace_scoped(self) -> bool:
        return False

    def new(self) -> Account:
        return Account()

    def new_list(self) -> AccountList:
        return AccountList()

    def convert_to_table(self, obj: Account | AccountList, no_headers: bool = False) -> Table:
        """Render an account or a list of accounts as a table."""
        table = Table()
        if isinstance(obj, AccountList):
            items = obj.items
        else:
            items = [obj]
        for item in items:
            if not isinstance(item, Account):
                raise TypeError(f"cannot convert to account: {item!r}")
            table.rows.append(
                TableRow(
                    cells=[
                        item.metadata.name,
                        len(item.status.namespaces),
                        _format_timestamp(item.metadata.creation_timestamp),
                    ],
                    object=item,
                )
            )
        if isinstance(obj, AccountList):
            table.resource_version = obj.resource_version
            table.continue_token = obj.continue_token
            table.remaining_item_count = obj.remaining_item_count
        else:
            table.resource_version = obj.metadata.resource_version
        if not no_headers:
            table.column_definitions = [
                TableColumn("Name", "string", "name", _NAME_DESCRIPTION),
                TableColumn("Spaces", "integer", "", "The number of spaces this account owns"),
                TableColumn("Created At", "date", "", _CREATED_DESCRIPTION),
            ]
        return table

    def list(self, request: RequestContext, options: ListOptions | None = None) -> AccountList:
        """The accounts the requesting user may get, sorted by name."""
        config_accounts = self._filter.list(
            request, ConfigAccount, TENANCY_GROUP_VERSION.with_resource("accounts"), options
        )
        return AccountList(items=[convert_config_account(a) for a in config_accounts])

    def get(self, request: RequestContext, name: str) -> Account:
        try:
            config_account = self._client.get(ConfigAccount, name)
        except NotFoundError:
            raise NotFoundError(_ACCOUNTS_RESOURCE, name) from None
        return convert_config_account(config_account)

    def create(
        self,
        request: RequestContext,
        obj: Account,
        create_validation: Callable[[Any], None] | None = None,
    ) -> Account:
        if not isinstance(obj, Account):
            raise TypeError(f"not an account: {obj!r}")
        if create_validation is not None:
            create_validation(obj)
        config_account = convert_tenancy_account(obj)
        self._client.create(config_account)
        return convert_config_account(config_account)

    def update(
        self,
        request: RequestContext,
        name: str,
        updater: Callable[[Account], Any],
        create_validation: Callable[[Any], None] | None = None,
        update_validation: Callable[[Any, Any], None] | None = None,
        force_allow_create: bool = False,
    ) -> tuple[Account, bool]:
        """Apply ``updater`` to the current account and store the result."""
        old = self.get(request, name)
        new = updater(old)
        if not isinstance(new, Account):
            raise TypeError("new object is not an account")
        if update_validation is not None:
            update_validation(new, old)
        self._client.update(convert_tenancy_account(new))
        return new, True

    def delete(
        self,
        request: RequestContext,
        name: str,
        delete_validation: Callable[[Any], None] | None = None,
    ) -> tuple[Account, bool]:
        config_account = self._client.get(ConfigAccount, name)
        account = convert_config_account(config_account)
        if delete_validation is not None:
            delete_validation(account)
        self._client.delete(config_account)
        return convert_config_account(config_account), True