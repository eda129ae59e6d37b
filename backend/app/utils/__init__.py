"""
Utility modules for the art review service.
"""

from .exceptions import (
    ArtReviewException,
    NotFoundError,
    ConflictError,
    InvalidStateError,
    InvalidInputError,
    LinkUnavailableError,
    InvalidTokenError,
    ExpiredLinkError,
    ScopeMismatchError,
    ForbiddenError,
    UnauthenticatedError,
    NotAuthorizedApproverError,
    RequestClosedError,
    StorageError,
    BlobExistsError,
)

__all__ = [
    "ArtReviewException",
    "NotFoundError",
    "ConflictError",
    "InvalidStateError",
    "InvalidInputError",
    "LinkUnavailableError",
    "InvalidTokenError",
    "ExpiredLinkError",
    "ScopeMismatchError",
    "ForbiddenError",
    "UnauthenticatedError",
    "NotAuthorizedApproverError",
    "RequestClosedError",
    "StorageError",
    "BlobExistsError",
]
