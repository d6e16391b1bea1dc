"""WorkPulse Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .audit import ActivityLogEntry, ArchivedTask, AuditLogEntry
from .enums import (
    CLOSED_STATES,
    SYSTEM_ACTOR,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    AuditOperation,
    ErrorCode,
    ExtensionStatus,
    Priority,
    RecalcReason,
    TaskStatus,
    VerificationStatus,
    validate_transition,
)
from .extension import TaskExtension
from .results import (
    OperationResult,
    OverdueSweepResult,
    RecalcBatchResult,
    ValidationResult,
)
from .score import (
    DEFAULT_SCORING_CONFIG,
    DoubleCountingAudit,
    DoubleCountingRisk,
    RollingAverages,
    ScoreRecalcRequest,
    ScoreResult,
    ScoreSnapshot,
    ScoringConfig,
)
from .task import (
    Task,
    completion_timestamp,
    effective_due_date,
    ensure_utc,
    iso_utc,
    relevant_date,
    utc_date,
    utc_now,
)

__all__ = [
    # 枚举
    "TaskStatus",
    "Priority",
    "VerificationStatus",
    "ExtensionStatus",
    "RecalcReason",
    "AuditOperation",
    "ErrorCode",
    "SYSTEM_ACTOR",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "CLOSED_STATES",
    "validate_transition",
    # Task
    "Task",
    "effective_due_date",
    "completion_timestamp",
    "relevant_date",
    "ensure_utc",
    "iso_utc",
    "utc_date",
    "utc_now",
    # Extension
    "TaskExtension",
    # 日志
    "AuditLogEntry",
    "ActivityLogEntry",
    "ArchivedTask",
    # 评分
    "ScoringConfig",
    "DEFAULT_SCORING_CONFIG",
    "ScoreResult",
    "ScoreSnapshot",
    "ScoreRecalcRequest",
    "RollingAverages",
    "DoubleCountingRisk",
    "DoubleCountingAudit",
    # 结果
    "ValidationResult",
    "OperationResult",
    "OverdueSweepResult",
    "RecalcBatchResult",
]
