"""
Database models for the art review service.
"""

from .user import User
from .project import Project
from .guest import GuestIdentity, ParticipantKind
from .art import Art, ArtVersion, ArtFile, VersionStatus, FileKind
from .approval import ApprovalRequest, ApprovalDecision, ApprovalOverride, QuorumRule, Decision
from .feedback import FeedbackItem, FeedbackReply, FeedbackKind, FeedbackStatus
from .shared_link import SharedLink, SubjectType

__all__ = [
    "User",
    "Project",
    "GuestIdentity",
    "ParticipantKind",
    "Art",
    "ArtVersion",
    "ArtFile",
    "VersionStatus",
    "FileKind",
    "ApprovalRequest",
    "ApprovalDecision",
    "ApprovalOverride",
    "QuorumRule",
    "Decision",
    "FeedbackItem",
    "FeedbackReply",
    "FeedbackKind",
    "FeedbackStatus",
    "SharedLink",
    "SubjectType",
]
