"""枚举定义 -- 任务状态机、优先级、核验状态、延期状态、重算原因

包含 TaskStatus 状态机、VALID_TRANSITIONS 合法流转映射和 TERMINAL_STATES 终态集合。
状态图固定，不支持自定义工作流。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Task 状态机"""

    NOT_STARTED = "not_started"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"
    PENDING_REVIEW = "pending_review"
    REVISION_REQUESTED = "revision_requested"
    OVERDUE = "overdue"


# 合法状态流转（有向图，无通用回退边）
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.NOT_STARTED: {TaskStatus.ASSIGNED, TaskStatus.CANCELLED},
    TaskStatus.ASSIGNED: {
        TaskStatus.IN_PROGRESS,
        TaskStatus.CANCELLED,
        TaskStatus.ON_HOLD,
    },
    TaskStatus.IN_PROGRESS: {
        TaskStatus.COMPLETED,
        TaskStatus.BLOCKED,
        TaskStatus.ON_HOLD,
        TaskStatus.PENDING_REVIEW,
        TaskStatus.OVERDUE,
    },
    TaskStatus.BLOCKED: {TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED},
    # 已完成只能被打回修改
    TaskStatus.COMPLETED: {TaskStatus.REVISION_REQUESTED},
    # 终态不可再流转
    TaskStatus.CANCELLED: set(),
    TaskStatus.ON_HOLD: {
        TaskStatus.IN_PROGRESS,
        TaskStatus.ASSIGNED,
        TaskStatus.CANCELLED,
    },
    TaskStatus.PENDING_REVIEW: {
        TaskStatus.COMPLETED,
        TaskStatus.REVISION_REQUESTED,
    },
    TaskStatus.REVISION_REQUESTED: {TaskStatus.IN_PROGRESS},
    # 逾期恢复需要已批准的延期或说明理由
    TaskStatus.OVERDUE: {TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED},
}

TERMINAL_STATES: set[TaskStatus] = {TaskStatus.CANCELLED}

# 逾期扫描与延期申请均跳过的"已关闭"状态
CLOSED_STATES: set[TaskStatus] = {TaskStatus.COMPLETED, TaskStatus.CANCELLED}


class Priority(StrEnum):
    """任务优先级"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class VerificationStatus(StrEnum):
    """完成结果核验状态"""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ExtensionStatus(StrEnum):
    """延期申请状态 -- pending 只能单向流转一次"""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RecalcReason(StrEnum):
    """评分重算触发原因"""

    TASK_UPDATE = "task_update"
    TASK_DELETION = "task_deletion"
    TASK_REASSIGNMENT = "task_reassignment"
    PRIORITY_CHANGE = "priority_change"
    BACKDATED_COMPLETION = "backdated_completion"
    MANUAL = "manual"


class AuditOperation(StrEnum):
    """审计日志操作类型"""

    CREATE = "create"
    STATUS_CHANGE = "status_change"
    REASSIGNMENT = "reassignment"
    DELETION = "deletion"
    EXTENSION_REQUEST = "extension_request"
    EXTENSION_APPROVAL = "extension_approval"
    EXTENSION_REJECTION = "extension_rejection"
    PRIORITY_CHANGE = "priority_change"
    VERIFICATION = "verification"


class ErrorCode(StrEnum):
    """错误分类 -- 调用方可据此区分失败原因"""

    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    VALIDATION_FAILED = "validation_failed"
    REQUIRES_FORCE = "requires_force"
    DEPENDENCY_UNAVAILABLE = "dependency_unavailable"


# 系统自动操作的 actor 标识
SYSTEM_ACTOR = "system"


def validate_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """验证状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed
