"""Typed failures raised by the account and tool report services."""
from typing import Dict, Optional


class ToolIndexError(Exception):
    """Base class for expected, typed service failures."""

    status_code = 500

    def to_dict(self) -> dict:
        return {"error": str(self) or self.__class__.__name__}


class ValidationError(ToolIndexError):
    """Bad or missing field input, carried as a field -> message mapping."""

    status_code = 400

    def __init__(self, errors: Dict[str, str], message: str = "Please fix all errors before submitting"):
        super().__init__(message)
        self.errors = dict(errors)

    def to_dict(self) -> dict:
        return {"error": str(self), "errors": self.errors}


class AuthorizationError(ToolIndexError):
    """Caller does not own (or may not see) the requested resource."""

    status_code = 403


class NotFoundError(ToolIndexError):
    status_code = 404


class StorageError(ToolIndexError):
    """Object upload or delete failure."""

    status_code = 502

    def __init__(self, message: str, object_name: Optional[str] = None):
        super().__init__(message)
        self.object_name = object_name

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.object_name:
            payload["object"] = self.object_name
        return payload


class PersistenceError(ToolIndexError):
    """Record insert/update/delete failure surfaced from the database layer."""

    status_code = 500
