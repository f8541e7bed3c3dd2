"""Listing objects filtered down to those the requesting user may get."""

import dataclasses
from dataclasses import dataclass, field
from typing import Any

from kiosk.meta import CORE_GROUP_VERSION, GroupVersionResource
from kiosk.rbac import Attributes, Decision, RequestContext
from kiosk.store import LabelSelector


@dataclass
class ListOptions:
    """Selectors narrowing a list request."""

    label_selector: LabelSelector | None = None
    field_selector: dict[str, str] = field(default_factory=dict)


class FilteredLister:
    """Lists objects and keeps only those the user is authorized to get."""

    def __init__(self, client: Any, authorizer: Any) -> None:
        self._client = client
        self._authorizer = authorizer

    def list(
        self,
        request: RequestContext,
        kind: type,
        resource: GroupVersionResource,
        options: ListOptions | None = None,
    ) -> list[Any]:
        """Return the permitted objects of ``kind``, sorted by name."""
        request_attributes = request.authorizer_attributes()
        options = options or ListOptions()
        objects = self._client.list(
            kind,
            namespace=request_attributes.namespace,
            label_selector=options.label_selector,
            matching_fields=options.field_selector or None,
        )
        if not objects:
            return []

        name_as_namespace = (
            resource.group == CORE_GROUP_VERSION.group
            and resource.version == CORE_GROUP_VERSION.version
            and resource.resource == "namespaces"
        )
        # Shared across iterations: a namespace picked up from one object carries over.
        attributes = Attributes(
            user=request_attributes.user,
            verb="get",
            namespace=request_attributes.namespace,
            api_group=resource.group,
            api_version=resource.version,
            resource=resource.resource,
            subresource=request_attributes.subresource,
            resource_request=request_attributes.resource_request,
            path=request_attributes.path,
        )

        allowed = []
        for obj in objects:
            meta = obj.metadata
            attributes.name = meta.name
            if name_as_namespace:
                attributes.namespace = meta.name
            elif meta.namespace:
                attributes.namespace = meta.namespace
            attributes.path = f"{request_attributes.path}/{meta.name}"
            decision, _ = self._authorizer.authorize(dataclasses.replace(attributes))
            if decision is Decision.ALLOW:
                allowed.append(obj)

        allowed.sort(key=lambda o: o.metadata.name)
        return allowed