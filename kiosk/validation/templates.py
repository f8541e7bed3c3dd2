"""Validation of template instances and spaces."""

from kiosk.config_types import TemplateInstance
from kiosk.tenancy_types import Space
from kiosk.validation.resource_quota import FieldError, FieldPath, validate_immutable_field


def validate_template_instance(template_instance: TemplateInstance) -> list[FieldError]:
    """Template instances have no required fields beyond their schema."""
    return []


def validate_template_instance_update(
    new_template_instance: TemplateInstance, old_template_instance: TemplateInstance
) -> list[FieldError]:
    """The template a template instance refers to may not change."""
    return validate_immutable_field(
        new_template_instance.spec.template,
        old_template_instance.spec.template,
        FieldPath("spec", "template"),
    )


def validate_space(space: Space) -> list[FieldError]:
    """Spaces have no required fields beyond their schema."""
    return []


def validate_space_update(new_space: Space, old_space: Space) -> list[FieldError]:
    """Validate the new state of an updated space."""
    return validate_space(new_space)