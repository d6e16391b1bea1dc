"""任务业务规则 -- 状态流转与变更校验

所有校验器均为纯函数：只读取传入的 task 与显式参数，不访问存储、不抛出异常，
返回 ValidationResult（可同时合法且带警告）。
依赖当前时间的校验器接受可选 now 参数，便于确定性测试。
"""

from datetime import datetime
from typing import Any

from ulid import ULID

from .config import BACKDATE_WARNING_DAYS
from .models.audit import AuditLogEntry
from .models.enums import (
    CLOSED_STATES,
    AuditOperation,
    ErrorCode,
    Priority,
    TaskStatus,
    validate_transition,
)
from .models.extension import TaskExtension
from .models.results import ValidationResult
from .models.task import Task, effective_due_date, ensure_utc, utc_date, utc_now

_MIN_RESUMPTION_REASON_LENGTH = 10
_MIN_EXTENSION_REASON_LENGTH = 20
_MIN_ESCALATION_REASON_LENGTH = 10

_HIGH_PRIORITIES = {Priority.HIGH, Priority.CRITICAL}
_LOW_PRIORITIES = {Priority.LOW, Priority.MEDIUM}


def validate_status_transition(
    from_status: TaskStatus,
    to_status: TaskStatus,
) -> ValidationResult:
    """校验状态流转是否在状态图内"""
    if not validate_transition(from_status, to_status):
        return ValidationResult(
            valid=False,
            error=f"Invalid status transition from '{from_status}' to '{to_status}'",
            error_code=ErrorCode.INVALID_TRANSITION,
        )
    return ValidationResult.ok()


def validate_completion(task: Task) -> ValidationResult:
    """校验任务能否标记为完成"""
    errors: list[str] = []
    warnings: list[str] = []

    if not task.assigned_to:
        errors.append("Cannot complete task without assignees")

    if task.status == TaskStatus.CANCELLED:
        errors.append("Cannot complete a cancelled task")

    # 逾期完成且无已批准延期
    if task.status == TaskStatus.OVERDUE and task.final_target_date is None:
        warnings.append("Completing overdue task without approved extension")

    return ValidationResult.from_checks(errors, warnings)


def is_task_overdue(task: Task, now: datetime | None = None) -> bool:
    """判断任务是否已逾期

    按 UTC 日历日比较（午夜归一化），当前日期严格晚于有效截止日期才算逾期。
    """
    if task.due_date is None:
        return False
    if task.status in CLOSED_STATES:
        return False

    due = effective_due_date(task)
    current = ensure_utc(now) if now is not None else utc_now()
    return utc_date(current) > utc_date(due)


def validate_overdue_status(task: Task, now: datetime | None = None) -> ValidationResult:
    """校验任务能否被标记为逾期"""
    if task.due_date is None:
        return ValidationResult.from_checks(
            ["Cannot mark task as overdue without a due date"]
        )

    if task.status in CLOSED_STATES:
        return ValidationResult.from_checks(
            ["Cannot mark completed or cancelled tasks as overdue"]
        )

    if not is_task_overdue(task, now):
        return ValidationResult.from_checks(
            ["Cannot mark task as overdue before due date"]
        )

    return ValidationResult.ok()


def validate_overdue_resumption(
    task: Task,
    extension: TaskExtension | None = None,
    reason: str | None = None,
) -> ValidationResult:
    """校验逾期任务能否恢复执行

    仅对 overdue 状态生效：需要已批准的延期，或长度超过 10 的说明理由。
    """
    if task.status != TaskStatus.OVERDUE:
        return ValidationResult.ok()

    has_approved_extension = extension is not None and extension.is_approved
    has_reason = reason is not None and len(reason.strip()) > _MIN_RESUMPTION_REASON_LENGTH

    if not has_approved_extension and not has_reason:
        return ValidationResult.from_checks(
            [
                "Cannot resume overdue task without an approved extension "
                "or valid reason (min 10 characters)"
            ]
        )

    return ValidationResult.ok()


def validate_reassignment(
    task: Task,
    new_assignees: list[str],
    reassigned_by: str,
) -> ValidationResult:
    """校验任务重新分配"""
    errors: list[str] = []
    warnings: list[str] = []

    if not new_assignees:
        errors.append("Must assign task to at least one user")

    if task.status == TaskStatus.COMPLETED:
        errors.append("Cannot reassign completed tasks. Create a new task instead.")

    if task.status == TaskStatus.CANCELLED:
        errors.append("Cannot reassign cancelled tasks")

    # 进行中的任务存在交接风险
    if task.status in (TaskStatus.IN_PROGRESS, TaskStatus.PENDING_REVIEW):
        warnings.append("Reassigning task with in-progress work. Ensure proper handoff.")

    if new_assignees and set(new_assignees) == set(task.assigned_to):
        warnings.append("Assignees are the same as current assignees")

    return ValidationResult.from_checks(errors, warnings)


def validate_deletion(task: Task) -> ValidationResult:
    """校验任务删除 -- 始终合法，但警告需要调用方显式 force"""
    warnings: list[str] = []

    if task.status == TaskStatus.COMPLETED:
        warnings.append(
            "Deleting completed task will affect historical performance metrics"
        )

    if task.kra_id:
        warnings.append(
            f"Task is linked to KRA {task.kra_id}. This may affect KRA progress."
        )

    return ValidationResult.ok(warnings)


def validate_backdating(
    task: Task,
    proposed_completion_date: datetime,
    now: datetime | None = None,
) -> ValidationResult:
    """校验回填完成时间，防止通过回填操纵评分"""
    errors: list[str] = []
    warnings: list[str] = []

    current = ensure_utc(now) if now is not None else utc_now()
    proposed = ensure_utc(proposed_completion_date)

    if proposed < task.created_at:
        errors.append("Cannot complete task before it was created")

    if proposed > current:
        errors.append("Cannot set completion date in the future")

    days_diff = (current - proposed).days
    if days_diff > BACKDATE_WARNING_DAYS:
        warnings.append(
            f"Backdating completion by {days_diff} days. "
            "This may affect performance reports."
        )

    # 逾期任务回填到截止日期之前，会在评分中显示为按时完成
    if (
        task.due_date is not None
        and proposed < task.due_date
        and task.status == TaskStatus.OVERDUE
    ):
        warnings.append("Backdating to before due date will show task as completed on time")

    return ValidationResult.from_checks(errors, warnings)


def validate_extension_request(
    task: Task,
    requested_due_date: datetime,
    reason: str,
) -> ValidationResult:
    """校验延期申请"""
    errors: list[str] = []

    if task.due_date is None:
        errors.append("Cannot request extension for task without due date")

    current_due = effective_due_date(task)
    if current_due is not None and ensure_utc(requested_due_date) <= current_due:
        errors.append("Requested due date must be after current due date")

    if not reason or len(reason.strip()) < _MIN_EXTENSION_REASON_LENGTH:
        errors.append("Extension reason must be at least 20 characters")

    if task.status in CLOSED_STATES:
        errors.append("Cannot extend completed or cancelled tasks")

    return ValidationResult.from_checks(errors)


def validate_priority_change(
    task: Task,
    new_priority: Priority,
    reason: str | None = None,
) -> ValidationResult:
    """校验优先级调整 -- 始终合法，仅给出警告"""
    warnings: list[str] = []

    if new_priority == Priority.CRITICAL and task.priority != Priority.CRITICAL:
        if not reason or len(reason.strip()) < _MIN_ESCALATION_REASON_LENGTH:
            warnings.append("Escalating to critical priority should include a reason")

    if (
        task.status == TaskStatus.OVERDUE
        and task.priority in _HIGH_PRIORITIES
        and new_priority in _LOW_PRIORITIES
    ):
        warnings.append("Downgrading priority of overdue task may delay resolution")

    return ValidationResult.ok(warnings)


def build_audit_entry(
    operation: AuditOperation,
    task: Task,
    user_id: str,
    changes: dict[str, Any],
    timestamp: datetime | None = None,
) -> AuditLogEntry:
    """生成审计日志条目（含变更前完整快照）"""
    return AuditLogEntry(
        audit_id=str(ULID()),
        entity_type="task",
        entity_id=task.task_id,
        operation=operation,
        user_id=user_id,
        timestamp=timestamp or utc_now(),
        changes=changes,
        previous_state=task.audit_snapshot(),
    )
