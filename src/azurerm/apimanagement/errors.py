"""Errors raised by the API policy resource."""

from __future__ import annotations


class ApiPolicyError(Exception):
    """Base exception for API policy reconciliation failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ApiPolicyError):
    """Configuration is invalid; raised before any network call."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or [message]


class ImportAsExistsError(ApiPolicyError):
    """The remote resource already exists and must be imported first."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"A resource with the ID {resource_id!r} already exists - to be managed "
            "this resource needs to be imported into the State. Please see the "
            f"resource documentation for {resource_type!r} for more information."
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class IdParseError(ValueError):
    """A resource identifier could not be parsed."""

    pass
