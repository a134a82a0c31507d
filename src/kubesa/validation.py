"""Client side validation of desired ServiceAccounts."""

import re

from kubesa.exceptions import ValidationError
from kubesa.models import ManagedObject

# Kubernetes DNS subdomain name validation (RFC 1123)
_DNS_SUBDOMAIN_MAX_LENGTH = 253
_DNS_SUBDOMAIN_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$"

# Namespaces are DNS labels (RFC 1123)
_DNS_LABEL_MAX_LENGTH = 63
_DNS_LABEL_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"

# Room left for the random suffix the server appends to generateName
_GENERATE_NAME_SUFFIX_LENGTH = 5


def validate_k8s_name(name: str) -> bool | str:
    """Validate a Kubernetes resource name (DNS subdomain).

    Args:
        name: The name to validate.

    Returns:
        True if valid, or an error message string if invalid.

    """
    if not name:
        return "Name cannot be empty"
    if len(name) > _DNS_SUBDOMAIN_MAX_LENGTH:
        return f"Name must be {_DNS_SUBDOMAIN_MAX_LENGTH} characters or less"
    if not re.match(_DNS_SUBDOMAIN_PATTERN, name):
        return "Name must consist of lowercase alphanumeric characters, '-' or '.', and must start and end with an alphanumeric character"
    return True


def validate_namespace(namespace: str) -> bool | str:
    """Validate a namespace name (DNS label).

    Returns:
        True if valid, or an error message string if invalid.

    """
    if not namespace:
        return "Namespace cannot be empty"
    if len(namespace) > _DNS_LABEL_MAX_LENGTH:
        return f"Namespace must be {_DNS_LABEL_MAX_LENGTH} characters or less"
    if not re.match(_DNS_LABEL_PATTERN, namespace):
        return "Namespace must consist of lowercase alphanumeric characters or '-', and must start and end with an alphanumeric character"
    return True


def validate_generate_name(prefix: str) -> bool | str:
    """Validate a generateName prefix.

    The prefix may end with '-' since the server appends a random suffix.

    Returns:
        True if valid, or an error message string if invalid.

    """
    if not prefix:
        return "generateName cannot be empty"
    if len(prefix) > _DNS_SUBDOMAIN_MAX_LENGTH - _GENERATE_NAME_SUFFIX_LENGTH:
        return f"generateName must be {_DNS_SUBDOMAIN_MAX_LENGTH - _GENERATE_NAME_SUFFIX_LENGTH} characters or less"
    result = validate_k8s_name(prefix.rstrip("-") or "-")
    if result is not True:
        return f"generateName is invalid: {result}"
    return True


def validate_desired(desired: ManagedObject) -> None:
    """Check a desired ServiceAccount before it is sent to the API server.

    Args:
        desired: The desired state.

    Raises:
        ValidationError: If exactly one of name and generateName is not set,
            or a name does not follow Kubernetes naming rules.

    """
    identity = desired.display_name if (desired.name or desired.generate_name) else desired.namespace
    if bool(desired.name) == bool(desired.generate_name):
        raise ValidationError("Exactly one of name and generateName must be set", identity=identity)

    checks = [validate_namespace(desired.namespace)]
    if desired.name:
        checks.append(validate_k8s_name(desired.name))
    else:
        checks.append(validate_generate_name(desired.generate_name or ""))
    checks.extend(validate_k8s_name(name) for name in desired.declared_secrets)
    checks.extend(validate_k8s_name(name) for name in desired.declared_image_pull_secrets)

    problems = [check for check in checks if check is not True]
    if problems:
        raise ValidationError("; ".join(str(p) for p in problems), identity=identity)
