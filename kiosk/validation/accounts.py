"""Validation of accounts and account quotas."""

from kiosk.config_types import Account, AccountQuota, AccountQuotaSpec, AccountSpace, AccountSpaceTemplate
from kiosk.meta import GROUP_KIND, RBAC_GROUP_NAME, SERVICE_ACCOUNT_KIND, USER_KIND, Subject
from kiosk.validation.resource_quota import (
    FIELD_IMMUTABLE_ERROR_MSG,
    ErrorType,
    FieldError,
    FieldPath,
    _dns1123_subdomain_errors,
    validate_immutable_field,
    validate_resource_quota_spec,
)

SPACE_LABEL_ACCOUNT = "kiosk.sh/account"


def _not_supported(path: FieldPath, value: str, valid: list[str]) -> FieldError:
    detail = "supported values: " + ", ".join(f'"{v}"' for v in valid)
    return FieldError(ErrorType.NOT_SUPPORTED, str(path), value, detail)


def _validate_subjects(subjects: list[Subject]) -> list[FieldError]:
    path = FieldPath("spec.subjects")
    errors: list[FieldError] = []
    for i, subject in enumerate(subjects):
        errors.extend(validate_role_binding_subject(subject, False, path.index(i)))
    return errors


def _validate_space(space: AccountSpace) -> list[FieldError]:
    return validate_account_space_template(space.space_template, FieldPath("spec.space"))


def validate_account(account: Account) -> list[FieldError]:
    """Check the subjects and space settings of an account."""
    return _validate_subjects(account.spec.subjects) + _validate_space(account.spec.space)


def validate_account_update(new_account: Account, old_account: Account) -> list[FieldError]:
    """Check an account update; the status may not change."""
    errors = validate_account(new_account)
    if new_account.status != old_account.status:
        errors.append(
            FieldError(
                ErrorType.INVALID, str(FieldPath("status")), old_account.status,
                FIELD_IMMUTABLE_ERROR_MSG,
            )
        )
    errors.extend(_validate_subjects(new_account.spec.subjects))
    errors.extend(_validate_space(new_account.spec.space))
    return errors


def validate_role_binding_subject(
    subject: Subject, is_namespaced: bool, fld_path: FieldPath
) -> list[FieldError]:
    """Validate one subject of a binding or account."""
    errors: list[FieldError] = []
    name_path = fld_path.child("name")
    if not subject.name:
        errors.append(FieldError(ErrorType.REQUIRED, str(name_path)))

    if subject.kind == SERVICE_ACCOUNT_KIND:
        if subject.name:
            errors.extend(
                FieldError(ErrorType.INVALID, str(name_path), subject.name, msg)
                for msg in _dns1123_subdomain_errors(subject.name)
            )
        if subject.api_group:
            errors.append(_not_supported(fld_path.child("apiGroup"), subject.api_group, [""]))
        if not is_namespaced and not subject.namespace:
            errors.append(FieldError(ErrorType.REQUIRED, str(fld_path.child("namespace"))))
    elif subject.kind in (USER_KIND, GROUP_KIND):
        if subject.api_group != RBAC_GROUP_NAME:
            errors.append(
                _not_supported(fld_path.child("apiGroup"), subject.api_group, [RBAC_GROUP_NAME])
            )
    else:
        errors.append(
            _not_supported(
                fld_path.child("kind"), subject.kind, [SERVICE_ACCOUNT_KIND, USER_KIND, GROUP_KIND]
            )
        )
    return errors


def validate_account_space_template(
    space_template: AccountSpaceTemplate, fld_path: FieldPath
) -> list[FieldError]:
    """A space template may not preset the owning account label."""
    if space_template.metadata.labels.get(SPACE_LABEL_ACCOUNT, ""):
        return [FieldError(ErrorType.REQUIRED, str(fld_path.child("metadata")))]
    return []


def validate_account_quota(account_quota: AccountQuota) -> list[FieldError]:
    """Check the quota definition of an account quota."""
    return validate_account_quota_spec(account_quota.spec)


def validate_account_quota_update(
    new_account_quota: AccountQuota, old_account_quota: AccountQuota
) -> list[FieldError]:
    """Check an account quota update; the account may not change."""
    errors = validate_immutable_field(
        new_account_quota.spec.account,
        old_account_quota.spec.account,
        FieldPath("spec", "account"),
    )
    errors.extend(validate_account_quota_spec(new_account_quota.spec))
    return errors


def validate_account_quota_spec(spec: AccountQuotaSpec) -> list[FieldError]:
    """Validate the resource quota part of an account quota spec."""
    return validate_resource_quota_spec(spec.quota, FieldPath("spec", "quota"))