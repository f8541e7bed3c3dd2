"""The space storage: tenancy spaces backed by namespaces."""

import copy
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable

from kiosk.config_types import Account as ConfigAccount
from kiosk.config_types import TemplateInstance
from kiosk.filter import FilteredLister, ListOptions
from kiosk.meta import CORE_GROUP_VERSION, TENANCY_GROUP_VERSION, Namespace
from kiosk.rbac import Attributes, Decision, RBACAuthorizer, RequestContext, UserInfo
from kiosk.registry.helpers import (
    _CREATED_DESCRIPTION,
    _NAME_DESCRIPTION,
    Table,
    TableColumn,
    TableRow,
    _format_timestamp,
    change_attributes_resource,
    create_role_binding,
    forbidden_message,
    is_user_part_of_account,
)
from kiosk.store import BadRequestError, ForbiddenError, InvalidError, NotFoundError
from kiosk.tenancy_types import Space, SpaceList, SpaceSpec, SpaceStatus
from kiosk.validation.accounts import SPACE_LABEL_ACCOUNT
from kiosk.validation.templates import validate_space

logger = logging.getLogger(__name__)

SPACE_ANNOTATION_INITIALIZING = "kiosk.sh/initializing"

_SPACES_RESOURCE = "spaces." + TENANCY_GROUP_VERSION.group
_SPACE_RESOURCE = "space." + TENANCY_GROUP_VERSION.group
_NAMESPACES = CORE_GROUP_VERSION.with_resource("namespaces")

_TEMPLATE_INSTANCE_TIMEOUT = 60.0
_ACCESS_TIMEOUT = 5.0

_STATUS_PENDING = ""
_STATUS_FAILED = "Failed"


def convert_space(space: Space) -> Namespace:
    """Turn a space into the namespace that stores it."""
    metadata = space.metadata.deep_copy()
    if metadata.labels is None:
        metadata.labels = {}
    if metadata.annotations is None:
        metadata.annotations = {}
    metadata.labels[SPACE_LABEL_ACCOUNT] = space.spec.account
    return Namespace(
        metadata=metadata,
        finalizers=list(space.spec.finalizers),
        phase=space.status.phase,
    )


def convert_namespace(namespace: Namespace) -> Space:
    """Turn a namespace into the space it represents."""
    metadata = namespace.metadata.deep_copy()
    if metadata.labels is None:
        metadata.labels = {}
    account = metadata.labels.pop(SPACE_LABEL_ACCOUNT, "")
    return Space(
        metadata=metadata,
        spec=SpaceSpec(account=account, finalizers=list(namespace.finalizers)),
        status=SpaceStatus(phase=namespace.phase),
    )


def _poll(interval: float, timeout: float, condition: Callable[[], bool]) -> None:
    """Check ``condition`` now and every ``interval`` seconds until it holds or time runs out."""
    deadline = time.monotonic() + timeout
    while True:
        if condition():
            return
        if time.monotonic() >= deadline:
            raise TimeoutError("timed out waiting for the condition")
        time.sleep(interval)


def _status_value(status: Any) -> Any:
    return getattr(status, "value", status)


class SpaceREST:
    """Serves spaces, showing users only the namespaces they may get."""

    def __init__(
        self,
        cached_client: Any,
        uncached_client: Any,
        list_all: bool = False,
        poll_interval: float = 1.0,
    ) -> None:
        self._client = uncached_client
        self._authorizer = RBACAuthorizer(cached_client, list_all)
        self._filter = FilteredLister(uncached_client, self._authorizer)
        self._poll_interval = poll_interval

    def namespace_scoped(self) -> bool:
        return False

    def new(self) -> Space:
        return Space()

    def new_list(self) -> SpaceList:
        return SpaceList()

    def convert_to_table(self, obj: Space | SpaceList, no_headers: bool = False) -> Table:
        """Render a space or a list of spaces as a table."""
        table = Table()
        items = obj.items if isinstance(obj, SpaceList) else [obj]
        for item in items:
            if not isinstance(item, Space):
                raise TypeError(f"cannot convert to space: {item!r}")
            table.rows.append(
                TableRow(
                    cells=[
                        item.metadata.name,
                        item.spec.account,
                        _format_timestamp(item.metadata.creation_timestamp),
                    ],
                    object=item,
                )
            )
        if isinstance(obj, SpaceList):
            table.resource_version = getattr(obj, "resource_version", "")
            table.continue_token = getattr(obj, "continue_token", "")
            table.remaining_item_count = getattr(obj, "remaining_item_count", None)
        else:
            table.resource_version = obj.metadata.resource_version
        if not no_headers:
            table.column_definitions = [
                TableColumn("Name", "string", "name", _NAME_DESCRIPTION),
                TableColumn("Owner", "string", "", "The account that owns this space"),
                TableColumn("Created At", "date", "", _CREATED_DESCRIPTION),
            ]
        return table

    def list(self, request: RequestContext, options: ListOptions | None = None) -> SpaceList:
        """The spaces the requesting user may get, sorted by name."""
        namespaces = self._filter.list(request, Namespace, _NAMESPACES, options)
        return SpaceList(items=[convert_namespace(n) for n in namespaces])

    def _allowed(self, attributes: Attributes, name: str) -> bool:
        decision, _ = self._authorizer.authorize(
            change_attributes_resource(attributes, _NAMESPACES, name)
        )
        return decision is Decision.ALLOW

    def get(self, request: RequestContext, name: str) -> Space:
        attributes = request.authorizer_attributes()
        if not self._allowed(attributes, name):
            raise NotFoundError(_SPACE_RESOURCE, name)
        try:
            namespace = self._client.get(Namespace, name)
        except NotFoundError:
            raise NotFoundError(_SPACES_RESOURCE, name) from None
        return convert_namespace(namespace)

    def create(
        self,
        request: RequestContext,
        obj: Space,
        create_validation: Callable[[Any], None] | None = None,
    ) -> Space:
        """Create a space, initializing it for its account when it has one."""
        if request.user is None:
            raise ValueError("couldn't find user in request")
        if not isinstance(obj, Space):
            raise TypeError(f"not a space: {obj!r}")
        space = obj

        space.metadata.creation_timestamp = datetime.now(timezone.utc).replace(microsecond=0)
        space.metadata.uid = ""
        errors = validate_space(space)
        if errors:
            raise InvalidError("Space", space.metadata.name, errors)
        if create_validation is not None:
            create_validation(space)

        attributes = request.authorizer_attributes()
        account: ConfigAccount | None = None
        if not space.spec.account:
            if not self._allowed(attributes, space.metadata.name):
                raise BadRequestError("spec.account is required")
        else:
            account = self._client.get(ConfigAccount, space.spec.account)
            if not is_user_part_of_account(request.user, account):
                if not self._allowed(attributes, space.metadata.name):
                    raise ForbiddenError(
                        _SPACE_RESOURCE, space.metadata.name, forbidden_message(attributes)
                    )

        if account is not None:
            self._apply_account(space, account)

        username = attributes.user.name if attributes.user is not None else ""
        logger.info("create space %s for user %s", space.metadata.name, username)

        namespace = convert_space(space)
        if account is not None:
            namespace.metadata.annotations[SPACE_ANNOTATION_INITIALIZING] = "true"
            try:
                self._client.create(namespace)
            except Exception as err:
                logger.info(
                    "error creating namespace %s for user %s: %s",
                    namespace.metadata.name, username, err,
                )
                raise

            logger.info("initialize space %s for user %s", namespace.metadata.name, username)
            try:
                self._initialize_space(namespace, account)
            except Exception as err:
                try:
                    self._client.delete(namespace)
                except Exception as delete_err:
                    logger.info(
                        "error deleting namespace %s after creation: %s",
                        namespace.metadata.name, delete_err,
                    )
                logger.info(
                    "error initializing space %s for user %s: %s",
                    namespace.metadata.name, username, err,
                )
                raise

            try:
                self._wait_for_access(attributes.user or UserInfo(), namespace)
            except Exception as err:
                logger.info(
                    "error waiting for access to namespace %s for user %s: %s",
                    namespace.metadata.name, username, err,
                )
        else:
            self._client.create(namespace)

        logger.info("successfully created space %s for user %s", namespace.metadata.name, username)
        return convert_namespace(namespace)

    def _apply_account(self, space: Space, account: ConfigAccount) -> None:
        """Enforce the account's space limit and apply its space template."""
        limit = account.spec.space.limit
        if limit is not None:
            owned = self._client.list(
                Namespace, matching_labels={SPACE_LABEL_ACCOUNT: account.metadata.name}
            )
            if len(owned) >= limit:
                raise ForbiddenError(
                    _SPACES_RESOURCE,
                    space.metadata.name,
                    f"space limit of {limit} reached for account {account.metadata.name}",
                )

        template = account.spec.space.space_template.metadata
        if template.labels:
            if space.metadata.labels is None:
                space.metadata.labels = {}
            space.metadata.labels.update(template.labels)
        if template.annotations:
            if space.metadata.annotations is None:
                space.metadata.annotations = {}
            space.metadata.annotations.update(template.annotations)

    def _wait_for_access(self, user: UserInfo, namespace: Namespace) -> None:
        attributes = Attributes(
            user=user,
            verb="get",
            namespace=namespace.metadata.name,
            api_group=CORE_GROUP_VERSION.group,
            api_version=CORE_GROUP_VERSION.version,
            resource="namespaces",
            name=namespace.metadata.name,
            resource_request=True,
        )
        _poll(
            self._poll_interval,
            _ACCESS_TIMEOUT,
            lambda: self._authorizer.authorize(attributes)[0] is Decision.ALLOW,
        )

    def _initialize_space(self, namespace: Namespace, account: ConfigAccount) -> None:
        """Deploy the account's template instances, bind its role and finish initialization."""
        created: list[TemplateInstance] = []
        for inst_spec in account.spec.space.template_instances:
            if not inst_spec.spec.template:
                continue
            instance = TemplateInstance(
                metadata=inst_spec.metadata.deep_copy(),
                spec=copy.deepcopy(inst_spec.spec),
            )
            instance.metadata.namespace = namespace.metadata.name
            if not instance.metadata.name and not instance.metadata.generate_name:
                instance.metadata.generate_name = inst_spec.spec.template + "-"
            self._client.create(instance)
            created.append(instance)

        def deployed() -> bool:
            existing = {
                inst.metadata.name: inst
                for inst in self._client.list(TemplateInstance, namespace=namespace.metadata.name)
            }
            for inst in created:
                real = existing.get(inst.metadata.name)
                if real is None:
                    return False
                status = _status_value(real.status.status)
                if status == _STATUS_PENDING:
                    return False
                if status == _STATUS_FAILED:
                    raise RuntimeError(
                        f"TemplateInstance '{real.metadata.name}' failed with "
                        f"{real.status.reason}: {real.status.message}"
                    )
            return True

        _poll(self._poll_interval, _TEMPLATE_INSTANCE_TIMEOUT, deployed)

        create_role_binding(self._client, namespace.metadata.name, account)

        namespace.metadata.annotations.pop(SPACE_ANNOTATION_INITIALIZING, None)
        self._client.patch(namespace)

    def update(
        self,
        request: RequestContext,
        name: str,
        updater: Callable[[Space], Any],
        create_validation: Callable[[Any], None] | None = None,
        update_validation: Callable[[Any, Any], None] | None = None,
        force_allow_create: bool = False,
    ) -> tuple[Space, bool]:
        """Apply ``updater`` to the current space and store the result."""
        attributes = request.authorizer_attributes()
        if not self._allowed(attributes, name):
            raise ForbiddenError(_SPACE_RESOURCE, name, forbidden_message(attributes))

        old = self.get(request, name)
        new = updater(old)
        if not isinstance(new, Space):
            raise TypeError("new object is not a space")
        if update_validation is not None:
            update_validation(new, old)

        namespace = convert_space(new)
        self._client.update(namespace)
        return convert_namespace(namespace), True

    def delete(
        self,
        request: RequestContext,
        name: str,
        delete_validation: Callable[[Any], None] | None = None,
    ) -> tuple[Space, bool]:
        attributes = request.authorizer_attributes()
        if not self._allowed(attributes, name):
            raise ForbiddenError(_SPACE_RESOURCE, name, forbidden_message(attributes))

        namespace = self._client.get(Namespace, name)
        if delete_validation is not None:
            delete_validation(convert_namespace(namespace))
        self._client.delete(namespace)
        return convert_namespace(namespace), True