"""Domain layer - 外部依存なしのドメインモデルとインターフェース定義"""

from mineaction.domain.errors import (
    AuthFailure,
    DuplicateRoleError,
    MineActionError,
    NotFoundError,
    PartialFailure,
    PermissionDenied,
    UploadFailedError,
    WriteFailedError,
)
from mineaction.domain.models import (
    Action,
    ActionComment,
    ActionEvidence,
    ActionFilters,
    ActionPriority,
    ActionStatus,
    Activity,
    ActivityType,
    Actor,
    AuditAction,
    AuditEntityType,
    AuditLog,
    EvidenceType,
    FieldChange,
    Identity,
    Project,
    ProjectRole,
    ProjectStatus,
    ProjectType,
    ProjectUser,
    RoleDefinition,
    RouteAccess,
    ShiftType,
    UserRecord,
)
from mineaction.domain.ports import (
    ActionRepository,
    ActivityRepository,
    AuditLogRepository,
    BlobStorage,
    IdentityProvider,
    ProjectRepository,
    RecordExporter,
    RoleRepository,
    UserRepository,
)

__all__ = [
    # Models
    "Identity",
    "Actor",
    "UserRecord",
    "RoleDefinition",
    "RouteAccess",
    "Project",
    "ProjectUser",
    "ProjectRole",
    "ProjectStatus",
    "ProjectType",
    "Activity",
    "ActivityType",
    "ShiftType",
    "Action",
    "ActionComment",
    "ActionEvidence",
    "ActionFilters",
    "ActionPriority",
    "ActionStatus",
    "EvidenceType",
    "AuditLog",
    "AuditAction",
    "AuditEntityType",
    "FieldChange",
    # Errors
    "MineActionError",
    "AuthFailure",
    "PermissionDenied",
    "NotFoundError",
    "WriteFailedError",
    "UploadFailedError",
    "DuplicateRoleError",
    "PartialFailure",
    # Ports
    "IdentityProvider",
    "UserRepository",
    "RoleRepository",
    "ProjectRepository",
    "ActivityRepository",
    "ActionRepository",
    "AuditLogRepository",
    "BlobStorage",
    "RecordExporter",
]
