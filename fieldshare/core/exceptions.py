"""
Error taxonomy for the field sharing core.

Routers translate these into HTTP responses (see fieldshare.main);
the core itself never retries or swallows them.
"""

from typing import List, Optional


class FieldShareError(Exception):
    """Base class for every domain error raised by the core."""
    code: str = "FIELDSHARE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class GeometryError(FieldShareError):
    """Malformed or degenerate geometry; the message names the defect."""
    code = "INVALID_GEOMETRY"


class OverlapConflict(FieldShareError):
    """Candidate boundary conflicts with one or more existing fields."""
    code = "FIELD_OVERLAP"

    def __init__(self, field_names: List[str]):
        self.field_names = list(field_names)
        super().__init__(
            "Field boundaries cannot overlap with existing fields: "
            + ", ".join(self.field_names)
        )


class FieldNotFound(FieldShareError):
    code = "FIELD_NOT_FOUND"

    def __init__(self, field_id: Optional[str] = None):
        self.field_id = field_id
        super().__init__("Field not found")


class PermissionNotFoundOrUnauthorized(FieldShareError):
    """
    Raised for unknown permission ids AND for callers who do not own the
    permission. The message is identical in both cases so callers cannot
    tell whether another user's row exists.
    """
    code = "PERMISSION_NOT_FOUND"

    def __init__(self):
        super().__init__("Access request not found or not authorized")


class ServiceProviderAccessNotFoundOrUnauthorized(FieldShareError):
    code = "PROVIDER_ACCESS_NOT_FOUND"

    def __init__(self):
        super().__init__("Service provider access not found or not authorized")


class InvalidTransition(FieldShareError):
    code = "INVALID_TRANSITION"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move permission from '{current}' to '{target}'")


class PermissionRequestError(FieldShareError):
    code = "INVALID_ACCESS_REQUEST"


class AdjacencyComputationPartialFailure(FieldShareError):
    """One candidate failed during an adjacency recompute; logged and skipped."""
    code = "ADJACENCY_PARTIAL_FAILURE"

    def __init__(self, field_id: str, candidate_id: str, cause: Exception):
        self.field_id = field_id
        self.candidate_id = candidate_id
        self.cause = cause
        super().__init__(f"Adjacency between {field_id} and {candidate_id} could not be computed: {cause}")


class UserAlreadyExists(FieldShareError):
    code = "USER_ALREADY_EXISTS"

    def __init__(self, phone_number: str):
        self.phone_number = phone_number
        super().__init__("Phone number already registered")
