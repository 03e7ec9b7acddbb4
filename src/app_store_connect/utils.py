"""
Utility functions for app-store-connect-cli.

This module provides helper functions for input validation and for
flattening JSON:API documents returned by App Store Connect.
"""

import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .exceptions import AppStoreConnectError, ValidationError


def validate_app_id(app_id: str) -> str:
    """
    Validate an App Store app ID.

    Args:
        app_id: The app ID to validate

    Returns:
        The validated app ID as a string

    Raises:
        ValidationError: If the app ID is invalid
    """
    if not app_id:
        raise ValidationError("App ID cannot be empty")

    app_id_str = str(app_id).strip()

    # App IDs are numeric Apple IDs
    if not app_id_str.isdigit():
        raise ValidationError(f"App ID must be numeric, got: {app_id_str}")

    return app_id_str


def validate_locale(locale: str) -> str:
    """
    Validate a locale string.

    Args:
        locale: The locale to validate (e.g., 'en-US', 'fr-FR', 'zh-Hans', 'ja')

    Returns:
        The validated locale string

    Raises:
        ValidationError: If the locale is invalid
    """
    if not locale:
        raise ValidationError("Locale cannot be empty")

    locale = locale.strip()

    # App Store Connect uses both bare languages (ja) and regional/script forms
    if not re.match(r"^[a-z]{2,3}(-[A-Za-z]{2,4})?(-[A-Z]{2})?$", locale):
        raise ValidationError(
            f"Invalid locale format. Expected format: 'en-US', got: {locale}"
        )

    return locale


def validate_version_string(version: str) -> str:
    """
    Validate an app version string.

    Args:
        version: The version string to validate

    Returns:
        The validated version string

    Raises:
        ValidationError: If the version string is invalid
    """
    if not version:
        raise ValidationError("Version string cannot be empty")

    version = version.strip()

    # Basic semantic versioning pattern: X.Y.Z
    if not re.match(r"^\d+(\.\d+){0,2}$", version):
        raise ValidationError(
            f"Invalid version format. Expected format: 'X.Y.Z', got: {version}"
        )

    return version


def validate_length(field: str, value: Optional[str], max_length: int) -> None:
    """Raise ValidationError when ``value`` exceeds ``max_length`` characters."""
    if value is not None and len(value) > max_length:
        raise ValidationError(
            f"{field} too long ({len(value)} chars). Maximum is {max_length} characters."
        )


def truncate_string(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate a string to a maximum length.

    Args:
        text: The text to truncate
        max_length: Maximum length allowed
        suffix: Suffix to append if truncated

    Returns:
        Truncated string
    """
    if not text or len(text) <= max_length:
        return text

    return text[: max_length - len(suffix)] + suffix


def chunk_list(items: List[Any], chunk_size: int) -> List[List[Any]]:
    """
    Split a list into chunks of specified size.

    Args:
        items: List to chunk
        chunk_size: Size of each chunk

    Returns:
        List of chunks
    """
    if chunk_size <= 0:
        raise ValidationError("Chunk size must be positive")

    return [items[i : i + chunk_size] for i in range(0, len(items), chunk_size)]


def dig(data: Any, *keys: Any, default: Any = None) -> Any:
    """Walk nested dicts/lists, returning ``default`` on the first miss."""
    current = data
    for key in keys:
        if isinstance(current, dict):
            current = current.get(key)
        elif isinstance(current, list) and isinstance(key, int):
            current = current[key] if -len(current) <= key < len(current) else None
        else:
            return default
        if current is None:
            return default
    return current


def flatten(resource: Optional[Dict[str, Any]], fields: Dict[str, str]) -> Optional[Dict[str, Any]]:
    """
    Reshape a JSON:API resource into a flat dict.

    Args:
        resource: Resource object with ``id`` and ``attributes``
        fields: Output key -> attribute name (nested attributes as ``a.b``)

    Returns:
        ``{"id": ..., <key>: <attribute value>, ...}``, or None for no resource
    """
    if not resource:
        return None
    flat = {"id": resource.get("id")}
    for key, attribute in fields.items():
        flat[key] = dig(resource, "attributes", *attribute.split("."))
    return flat


def compact(**attributes: Any) -> Dict[str, Any]:
    """Drop ``None`` values so PATCH bodies only carry fields being changed."""
    return {key: value for key, value in attributes.items() if value is not None}


def resource_ref(resource_type: str, resource_id: str) -> Dict[str, str]:
    return {"type": resource_type, "id": resource_id}


def relationship_ids(resource: Dict[str, Any], name: str) -> List[str]:
    """IDs referenced by a to-one or to-many relationship."""
    data = dig(resource, "relationships", name, "data")
    if data is None:
        return []
    if isinstance(data, dict):
        return [data["id"]]
    return [item["id"] for item in data]


def find_included(
    document: Dict[str, Any],
    resource_id: Optional[str],
    resource_type: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Look up a resource in a document's ``included`` side-array."""
    if resource_id is None:
        return None
    for item in document.get("included") or []:
        if item.get("id") != resource_id:
            continue
        if resource_type is None or item.get("type") == resource_type:
            return item
    return None


def included_of_type(document: Dict[str, Any], resource_type: str) -> List[Dict[str, Any]]:
    return [item for item in document.get("included") or [] if item.get("type") == resource_type]


def first_successful(
    candidates: Sequence[Callable[[], Any]],
    errors: Iterable[type] = (AppStoreConnectError,),
) -> Any:
    """
    Try candidate operations in order and return the first result.

    Args:
        candidates: Zero-argument callables, most preferred first
        errors: Exception types that move on to the next candidate

    Returns:
        The first candidate's return value that did not raise

    Raises:
        The last candidate's error when every candidate fails
    """
    if not candidates:
        raise ValidationError("No candidate operations given")

    catch = tuple(errors)
    last_error: Optional[BaseException] = None
    for candidate in candidates:
        try:
            return candidate()
        except catch as e:
            last_error = e
    raise last_error
