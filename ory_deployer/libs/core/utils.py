"""
Core Utilities

Common utility functions used across the Ory deployer.
"""

import base64
import re
import secrets
import urllib3
from typing import Iterable, Optional

from .constants import ErrorMessages, SecretConstants
from .exceptions import ClusterError, ConfigurationError

MASK = "***MASKED***"


def disable_ssl_warnings() -> None:
    """Disable SSL warnings when --skip-tls is used"""
    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)


def generate_secret(length: int = SecretConstants.DEFAULT_LENGTH) -> str:
    """
    Generate a random secret safe for shell, YAML and helm --set quoting.

    Equivalent to ``openssl rand -base64 32 | tr -d "=+/" | cut -c1-32``.
    Nothing is stored: every call returns a fresh value.

    Args:
        length: Number of characters to return

    Returns:
        str: Random alphanumeric string of the requested length
    """
    if length <= 0:
        raise ConfigurationError(f"Secret length must be positive, got {length}")

    value = ""
    while len(value) < length:
        raw = base64.b64encode(secrets.token_bytes(SecretConstants.RANDOM_BYTES)).decode("ascii")
        value += raw.translate(str.maketrans("", "", SecretConstants.STRIPPED_CHARACTERS))
    return value[:length]


def validate_namespace(namespace: str) -> bool:
    """
    Validate if the provided string is a valid Kubernetes namespace.

    Args:
        namespace: Kubernetes namespace to validate

    Returns:
        bool: True if valid namespace

    Raises:
        ConfigurationError: If namespace is invalid
    """
    if not namespace or not isinstance(namespace, str):
        raise ConfigurationError("Namespace cannot be empty")

    # Must be lowercase alphanumeric with hyphens, max 63 chars
    if not re.match(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?$', namespace):
        raise ConfigurationError(f"Invalid Kubernetes namespace format: {namespace}")

    if len(namespace) > 63:
        raise ConfigurationError(f"Namespace too long (max 63 chars): {namespace}")

    return True


def validate_database_name(name: str) -> bool:
    """
    Validate a database name, which is also the PostgreSQL role name and the
    prefix of its credentials secret.

    Raises:
        ConfigurationError: If the name is invalid
    """
    if not name or not isinstance(name, str):
        raise ConfigurationError("Database name cannot be empty")

    # Unquoted SQL identifier that is also valid in a secret name
    if not re.match(r'^[a-z][a-z0-9]*$', name):
        raise ConfigurationError(
            f"Invalid database name: {name} (lowercase letters and digits, starting with a letter)"
        )

    if len(name) > 63:
        raise ConfigurationError(f"Database name too long (max 63 chars): {name}")

    return True


def validate_helm_duration(duration: str) -> bool:
    """
    Validate a Helm --timeout duration such as ``5m``, ``300s`` or ``1h30m``.

    Raises:
        ConfigurationError: If the duration is not in Go duration format
    """
    if not duration or not isinstance(duration, str):
        raise ConfigurationError("Timeout cannot be empty")

    if not re.match(r'^([0-9]+(\.[0-9]+)?(ns|us|ms|s|m|h))+$', duration):
        raise ConfigurationError(f"Invalid timeout '{duration}': expected a duration like 5m or 300s")

    return True


def validate_url(url: str) -> bool:
    """
    Validate an http(s) URL.

    Raises:
        ConfigurationError: If URL is invalid
    """
    if not url or not isinstance(url, str):
        raise ConfigurationError("URL cannot be empty")

    if not re.match(r'^https?:\/\/[a-zA-Z0-9.-]+(?:\:[0-9]+)?(?:\/.*)?$', url):
        raise ConfigurationError(f"Invalid URL format: {url}")

    return True


def mask_sensitive_info(text: str, values: Optional[Iterable[str]] = None) -> str:
    """
    Mask sensitive information in text for logging and debug output.

    Args:
        text: Text to mask
        values: Literal secret values to replace

    Returns:
        Text with sensitive information masked
    """
    if not text:
        return text

    masked_text = text
    for value in values or []:
        if value:
            masked_text = masked_text.replace(value, MASK)

    # Passwords embedded in connection strings
    masked_text = re.sub(r'(://[^:/@\s]+:)[^@\s]+@', rf'\1{MASK}@', masked_text)

    # Bearer tokens
    masked_text = re.sub(r'Bearer [A-Za-z0-9+/=_.-]+', f'Bearer {MASK}', masked_text)

    # PASSWORD '...' clauses in SQL
    masked_text = re.sub(r"PASSWORD '[^']*'", f"PASSWORD '{MASK}'", masked_text)

    return masked_text


def handle_api_error(error: Exception, context: str) -> None:
    """
    Translate a Kubernetes API exception into a ClusterError

    Args:
        error: The caught exception (ApiException or other)
        context: What the tool was doing when the call failed

    Raises:
        ClusterError: Always
    """
    status = getattr(error, "status", None)

    if status == 401:
        raise ClusterError(f"{context}: {ErrorMessages.UNAUTHORIZED}", status=status)
    if status == 403:
        raise ClusterError(f"{context}: {ErrorMessages.FORBIDDEN}", status=status)

    reason = getattr(error, "reason", None) or str(error)
    raise ClusterError(f"{context}: {reason}", status=status)
