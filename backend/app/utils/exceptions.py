"""
Custom exception classes for the art review service.
"""

from typing import Optional, List


class ArtReviewException(Exception):
    """Base exception for all art review errors."""

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(self.message)


class NotFoundError(ArtReviewException):
    """Raised when an art, version, request or other record does not exist."""

    def __init__(self, entity: str, identifier, detail: Optional[str] = None):
        super().__init__(f"{entity} not found: {identifier}", detail)
        self.entity = entity
        self.identifier = identifier


class ConflictError(ArtReviewException):
    """Raised when concurrent writers race for the same unique slot."""


class InvalidStateError(ArtReviewException):
    """Raised on an illegal state transition."""


class InvalidInputError(ArtReviewException):
    """Raised when a payload is structurally invalid."""

    def __init__(self, message: str, field: Optional[str] = None, detail: Optional[str] = None):
        if field:
            message = f"Invalid value for field '{field}': {message}"
        super().__init__(message, detail)
        self.field = field


class LinkUnavailableError(ArtReviewException):
    """Base for every share-link rejection.

    Clients only ever see the generic message; the subclass is kept for logs
    and tests.
    """

    public_message = "Link unavailable"


class InvalidTokenError(LinkUnavailableError):
    """Raised when no shared link matches the token."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__("Share token does not exist", detail)


class ExpiredLinkError(LinkUnavailableError):
    """Raised when the shared link is past its expiry."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__("Share link has expired", detail)


class ScopeMismatchError(LinkUnavailableError):
    """Raised when the shared link is scoped to a different subject."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__("Share link does not grant access to this art", detail)


class ForbiddenError(ArtReviewException):
    """Raised when a capability does not permit the requested action."""


class UnauthenticatedError(ArtReviewException):
    """Raised when an operation requires a session and none exists."""

    def __init__(self, message: str = "Authentication required", detail: Optional[str] = None):
        super().__init__(message, detail)


class NotAuthorizedApproverError(ArtReviewException):
    """Raised when an approver is neither required nor a valid guest."""

    def __init__(self, approver_ref, detail: Optional[str] = None):
        super().__init__(f"Approver {approver_ref} is not authorized for this request", detail)
        self.approver_ref = approver_ref


class RequestClosedError(ArtReviewException):
    """Raised when deciding on an approval request that has already resolved."""

    def __init__(self, request_id, detail: Optional[str] = None):
        super().__init__(f"Approval request {request_id} is closed", detail)
        self.request_id = request_id


class StorageError(ArtReviewException):
    """Raised when blob storage I/O fails.

    During ingestion the error also reports whether compensation removed every
    blob uploaded by the failed attempt.
    """

    def __init__(
        self,
        message: str,
        detail: Optional[str] = None,
        cleanup_complete: Optional[bool] = None,
        orphaned_paths: Optional[List[str]] = None,
    ):
        super().__init__(f"Storage error: {message}", detail)
        self.cleanup_complete = cleanup_complete
        self.orphaned_paths = orphaned_paths or []


class BlobExistsError(StorageError):
    """Raised when writing to a path that already holds a blob."""

    def __init__(self, path: str):
        super().__init__(f"blob already exists at {path}")
        self.path = path
