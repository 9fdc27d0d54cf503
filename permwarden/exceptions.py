"""Custom exception hierarchy for permwarden.

Provides structured error types that the API error handler translates
into consistent JSON responses.  The rule engine and the list builder
never raise; these errors come from the session and the data sources.
"""

from __future__ import annotations


class PermwardenError(Exception):
    """Base exception for all permwarden errors."""

    status_code: int = 500
    error_type: str = "internal_error"

    def __init__(self, message: str = "An internal error occurred") -> None:
        self.message = message
        super().__init__(message)


class FetchFailure(PermwardenError):
    """Permission data or the viewer's access level could not be fetched.

    Covers an unreachable subject, a viewer without read access, and
    transport failures alike; the only recovery is a fresh load.
    """

    status_code = 502
    error_type = "fetch_failure"


class DatasetValidationError(PermwardenError):
    """Raw permission data failed validation at the deserialization boundary."""

    status_code = 422
    error_type = "dataset_validation_error"


class PermissionNotFoundError(PermwardenError):
    """Requested permission key is not part of the loaded dataset."""

    status_code = 404
    error_type = "permission_not_found"


class EditNotAllowedError(PermwardenError):
    """The viewer may not make the requested edit."""

    status_code = 403
    error_type = "edit_not_allowed"


class SessionNotReadyError(PermwardenError):
    """An edit was requested before permission data finished loading."""

    status_code = 409
    error_type = "session_not_ready"
