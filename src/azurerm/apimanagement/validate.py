"""Field validators for API Management identifiers.

Each validator takes (value, key) and returns (warnings, errors).
"""

from __future__ import annotations

import re

_RESOURCE_GROUP_RE = re.compile(r"^[-\w._()]+$")
_SERVICE_NAME_RE = re.compile(r"^[a-zA-Z](?:[a-zA-Z0-9-]{0,48}[a-zA-Z0-9])?$")
_API_NAME_RE = re.compile(r"^[^*#&+:<>?]+$")


def resource_group_name(value: object, key: str) -> tuple[list[str], list[str]]:
    errors: list[str] = []
    if not isinstance(value, str):
        return [], [f"expected type of {key!r} to be string"]

    if len(value) == 0:
        errors.append(f"{key!r} cannot be blank")
    if len(value) > 90:
        errors.append(f"{key!r} may not exceed 90 characters in length")
    if value.endswith("."):
        errors.append(f"{key!r} may not end with a period")
    # Empty strings already reported above
    if value and not _RESOURCE_GROUP_RE.match(value):
        errors.append(
            f"{key!r} may only contain alphanumeric characters, dash, underscores, "
            "parentheses and periods"
        )
    return [], errors


def api_management_service_name(value: object, key: str) -> tuple[list[str], list[str]]:
    if not isinstance(value, str):
        return [], [f"expected type of {key!r} to be string"]
    if not _SERVICE_NAME_RE.match(value):
        return [], [
            f"{key!r} must be between 1 and 50 characters in length and contains "
            "only letters, numbers or hyphens."
        ]
    return [], []


def api_management_api_name(value: object, key: str) -> tuple[list[str], list[str]]:
    if not isinstance(value, str):
        return [], [f"expected type of {key!r} to be string"]
    if not _API_NAME_RE.match(value):
        return [], [f"{key!r} is invalid. Must not contain any of: *#&+:<>?"]
    return [], []
