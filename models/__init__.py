"""models/__init__.py"""
from models.issues import Issue, IssueCategory, IssueStage, Severity
from models.profiles import (
    CollisionPolicy,
    Dialect,
    ProfileError,
    SourceMode,
    SourceProfile,
    TargetProfile,
    parse_profile_string,
)
from models.schema import (
    Audit,
    CheckConstraint,
    Column,
    Conv,
    Expression,
    ForeignKey,
    Index,
    IndexKey,
    MappingConfidence,
    SortOrder,
    Table,
    TypeDescriptor,
    VerificationStatus,
)

__all__ = [
    "Audit",
    "CheckConstraint",
    "CollisionPolicy",
    "Column",
    "Conv",
    "Dialect",
    "Expression",
    "ForeignKey",
    "Index",
    "IndexKey",
    "Issue",
    "IssueCategory",
    "IssueStage",
    "MappingConfidence",
    "ProfileError",
    "Severity",
    "SortOrder",
    "SourceMode",
    "SourceProfile",
    "Table",
    "TargetProfile",
    "TypeDescriptor",
    "VerificationStatus",
    "parse_profile_string",
]
