"""TaskOperationService -- 任务变更编排

每个写操作遵循同一流程：
1. 读取任务（不存在或已软删除 -> NotFound）
2. 运行业务规则校验，失败即短路
3. 构建字段增量
4. 单个 WriteBatch 原子写入：任务更新 + 审计日志 + 活动日志
5. 返回 OperationResult
6. 提交后尽力而为地入队评分重算（入队失败不影响主操作）

业务规则失败在内部以 WorkPulseError 短路，于服务边界统一转换为
OperationResult；存储异常记录日志后以通用信息返回 DependencyUnavailable。
"""

from collections.abc import Awaitable, Callable
from datetime import datetime
from functools import partial
from typing import Any

import aiosqlite
import structlog
from pydantic import ValidationError
from ulid import ULID

from ..config import (
    TASK_NUMBER_PREFIX,
    TASK_NUMBER_WIDTH,
    OperationsSettings,
    load_settings,
)
from ..errors import (
    STORE_UNAVAILABLE_MESSAGE,
    DependencyUnavailableError,
    InvalidTransitionError,
    NotFoundError,
    RequiresForceError,
    ValidationFailedError,
    WorkPulseError,
)
from ..models.audit import ActivityLogEntry
from ..models.enums import (
    SYSTEM_ACTOR,
    AuditOperation,
    ErrorCode,
    ExtensionStatus,
    Priority,
    RecalcReason,
    TaskStatus,
    VerificationStatus,
)
from ..models.extension import TaskExtension
from ..models.results import OperationResult, OverdueSweepResult, ValidationResult
from ..models.task import Task, effective_due_date, ensure_utc, utc_now
from ..store import AuditSink, StoreGroup, UserDirectory
from ..validation import (
    build_audit_entry,
    is_task_overdue,
    validate_backdating,
    validate_completion,
    validate_deletion,
    validate_extension_request,
    validate_overdue_resumption,
    validate_priority_change,
    validate_reassignment,
    validate_status_transition,
)
from .score_service import ScoreService

log = structlog.get_logger()

# 任务编号计数器名
TASK_COUNTER = "tasks"

# 逾期扫描中每个任务占用的写操作数（任务更新 + 活动日志）
_OVERDUE_OPS_PER_TASK = 2


def _fmt_day(value: datetime) -> str:
    return f"{ensure_utc(value):%a %b %d %Y}"


def _require(result: ValidationResult, warnings: list[str]) -> None:
    """校验失败时抛出对应异常；合法时收集警告"""
    warnings.extend(result.warnings)
    if result.valid:
        return
    if result.error_code == ErrorCode.INVALID_TRANSITION:
        raise InvalidTransitionError(result.error or "Invalid status transition", warnings)
    raise ValidationFailedError(result.error or "Validation failed", warnings)


class TaskOperationService:
    """任务变更编排服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        score_service: ScoreService,
        user_directory: UserDirectory | None = None,
        settings: OperationsSettings | None = None,
        audit_sink: AuditSink | None = None,
    ) -> None:
        self._stores = store_group
        self._scores = score_service
        self._users = user_directory or store_group.user_store
        # 审计写入在 WriteBatch 内执行，需与任务写入共享同一连接
        self._audit = audit_sink or store_group.audit_store
        self._settings = settings or load_settings()

    # ============================================================
    # 服务边界
    # ============================================================

    async def _guarded(
        self,
        operation: str,
        body: Callable[[], Awaitable[OperationResult]],
        **context: Any,
    ) -> OperationResult:
        """执行操作体，将异常转换为 OperationResult"""
        try:
            return await body()
        except WorkPulseError as e:
            log.info(
                "task_operation_rejected",
                operation=operation,
                error_code=str(e.code),
                error=e.message,
                **context,
            )
            return OperationResult(
                success=False,
                error=e.message,
                error_code=e.code,
                warnings=e.warnings,
                **{k: v for k, v in context.items() if k in ("task_id", "extension_id")},
            )
        except (aiosqlite.Error, OSError) as e:
            # 底层原因只写日志
            log.error(
                "task_operation_store_failed",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e),
                **context,
            )
            return OperationResult(
                success=False,
                error=STORE_UNAVAILABLE_MESSAGE,
                error_code=ErrorCode.DEPENDENCY_UNAVAILABLE,
            )

    async def _load_task(self, task_id: str) -> Task:
        task = await self._stores.task_store.get_task(task_id)
        if task is None or task.deleted:
            raise NotFoundError("Task not found")
        return task

    async def _check_users(self, user_ids: list[str]) -> None:
        try:
            missing = await self._users.find_missing(user_ids)
        except (aiosqlite.Error, OSError) as e:
            raise DependencyUnavailableError(STORE_UNAVAILABLE_MESSAGE, original_error=e) from e
        if missing:
            raise ValidationFailedError(f"Invalid assignee IDs: {', '.join(missing)}")

    @staticmethod
    def _apply(task: Task, delta: dict[str, Any]) -> Task:
        try:
            return task.apply(delta)
        except ValidationError as e:
            errors = "; ".join(err["msg"] for err in e.errors())
            raise ValidationFailedError(errors) from e

    @staticmethod
    def _activity(
        task_id: str,
        user_id: str,
        action: str,
        details: str,
        timestamp: datetime,
        metadata: dict[str, Any] | None = None,
    ) -> ActivityLogEntry:
        return ActivityLogEntry(
            activity_id=str(ULID()),
            task_id=task_id,
            user_id=user_id,
            action=action,
            details=details,
            metadata=metadata or {},
            timestamp=timestamp,
        )

    async def _commit_task_change(
        self,
        before: Task,
        after: Task,
        operation: AuditOperation,
        user_id: str,
        changes: dict[str, Any],
        activity: ActivityLogEntry,
        extra_ops: list[Callable[[], Awaitable[None]]] | None = None,
    ) -> None:
        """任务更新 + 审计 + 活动日志（+ 附加写操作）原子提交"""
        audit = build_audit_entry(operation, before, user_id, changes, activity.timestamp)
        batch = self._stores.batch()
        batch.add(partial(self._stores.task_store.save_task, after))
        for op in extra_ops or []:
            batch.add(op)
        batch.add(partial(self._audit.append_audit_log, audit))
        batch.add(partial(self._audit.append_activity, activity))
        await batch.commit()

    # ============================================================
    # 查询
    # ============================================================

    async def get_task(self, task_id: str) -> Task | None:
        """查询任务，软删除任务视为不存在"""
        task = await self._stores.task_store.get_task(task_id)
        if task is None or task.deleted:
            return None
        return task

    async def list_extensions(
        self,
        task_id: str | None = None,
        status: ExtensionStatus | None = None,
    ) -> list[TaskExtension]:
        return await self._stores.extension_store.list_extensions(
            task_id=task_id,
            status=status.value if status else None,
        )

    async def get_activity_log(self, task_id: str) -> list[ActivityLogEntry]:
        return await self._stores.audit_store.get_activity_log(task_id)

    # ============================================================
    # 创建 / 核验
    # ============================================================

    async def create_task(
        self,
        title: str,
        created_by: str,
        *,
        description: str = "",
        assigned_to: list[str] | None = None,
        due_date: datetime | None = None,
        priority: Priority = Priority.MEDIUM,
        kra_id: str | None = None,
    ) -> OperationResult:
        """创建任务并分配顺序编号（T-0001）

        编号分配、任务插入、审计与活动日志在同一事务内完成，锁冲突时重试。
        """

        async def body() -> OperationResult:
            if not title or not title.strip():
                raise ValidationFailedError("Task title is required")
            assignees = list(dict.fromkeys(assigned_to or []))
            if assignees:
                await self._check_users(assignees)

            now = utc_now()
            task_id = str(ULID())

            async def _insert(_conn: aiosqlite.Connection) -> Task:
                number = await self._stores.counter_store.next_value(TASK_COUNTER)
                task = Task(
                    task_id=task_id,
                    task_number=f"{TASK_NUMBER_PREFIX}{number:0{TASK_NUMBER_WIDTH}d}",
                    title=title.strip(),
                    description=description,
                    status=TaskStatus.ASSIGNED if assignees else TaskStatus.NOT_STARTED,
                    priority=priority,
                    assigned_to=assignees,
                    due_date=due_date,
                    kra_id=kra_id,
                    created_at=now,
                    updated_at=now,
                    created_by=created_by,
                )
                await self._stores.task_store.create_task(task)
                await self._audit.append_audit_log(
                    build_audit_entry(
                        AuditOperation.CREATE,
                        task,
                        created_by,
                        {"task_number": task.task_number, "assigned_to": assignees},
                        now,
                    )
                )
                await self._audit.append_activity(
                    self._activity(
                        task_id,
                        created_by,
                        "created",
                        f"Task {task.task_number} created",
                        now,
                    )
                )
                return task

            task = await self._stores.transaction(
                _insert, max_retries=self._settings.counter_retries
            )
            log.info(
                "task_created",
                task_id=task.task_id,
                task_number=task.task_number,
                created_by=created_by,
            )
            return OperationResult(
                success=True,
                task_id=task.task_id,
                task_number=task.task_number,
            )

        return await self._guarded("create_task", body, created_by=created_by)

    async def verify_task(
        self,
        task_id: str,
        status: VerificationStatus,
        verified_by: str,
        note: str | None = None,
    ) -> OperationResult:
        """核验已完成任务（verified / rejected），影响质量分"""

        async def body() -> OperationResult:
            if status == VerificationStatus.PENDING:
                raise ValidationFailedError("Verification status must be verified or rejected")
            task = await self._load_task(task_id)
            if task.status != TaskStatus.COMPLETED:
                raise ValidationFailedError("Only completed tasks can be verified")

            now = utc_now()
            delta = {
                "verification_status": status,
                "verified_at": now,
                "verified_by": verified_by,
                "verification_note": note,
                "updated_at": now,
            }
            updated = self._apply(task, delta)
            if status == VerificationStatus.VERIFIED:
                action, details = "verified", "Task completion verified"
            else:
                action = "verification_rejected"
                details = f"Task completion rejected: {note or 'No reason provided'}"
            await self._commit_task_change(
                task,
                updated,
                AuditOperation.VERIFICATION,
                verified_by,
                {"verification_status": str(status), "note": note},
                self._activity(task_id, verified_by, action, details, now),
            )
            await self._scores.queue_for_users(
                updated.assigned_to, RecalcReason.TASK_UPDATE, task_id, verified_by
            )
            return OperationResult(success=True, task_id=task_id)

        return await self._guarded("verify_task", body, task_id=task_id)

    # ============================================================
    # 状态流转
    # ============================================================

    async def update_task_status(
        self,
        task_id: str,
        new_status: TaskStatus,
        user_id: str,
        *,
        reason: str | None = None,
        extension_id: str | None = None,
        completed_at: datetime | None = None,
        now: datetime | None = None,
    ) -> OperationResult:
        """变更任务状态

        Args:
            task_id: 任务 ID
            new_status: 目标状态
            user_id: 操作者
            reason: 逾期恢复说明
            extension_id: 逾期恢复所依据的延期申请
            completed_at: 显式完成时间（回填），需通过回填校验
            now: 当前时间，None 时取当前 UTC 时间
        """

        async def body() -> OperationResult:
            current = ensure_utc(now) if now is not None else utc_now()
            task = await self._load_task(task_id)
            old_status = task.status
            warnings: list[str] = []

            _require(validate_status_transition(old_status, new_status), warnings)

            delta: dict[str, Any] = {"status": new_status, "updated_at": current}

            if new_status == TaskStatus.COMPLETED:
                _require(validate_completion(task), warnings)
                if completed_at is not None:
                    _require(validate_backdating(task, completed_at, current), warnings)
                delta["completed_at"] = ensure_utc(completed_at) if completed_at else current
                delta["completed_by"] = user_id
                if task.verification_status in (None, VerificationStatus.REJECTED):
                    delta["verification_status"] = VerificationStatus.PENDING

            if old_status == TaskStatus.OVERDUE and new_status == TaskStatus.IN_PROGRESS:
                extension = None
                if extension_id is not None:
                    extension = await self._stores.extension_store.get_extension(extension_id)
                    if extension is None:
                        raise NotFoundError("Extension request not found", warnings)
                    if extension.task_id != task_id:
                        raise ValidationFailedError(
                            "Extension request does not belong to this task", warnings
                        )
                _require(validate_overdue_resumption(task, extension, reason), warnings)
                delta["overdue_resumption_reason"] = reason
                delta["overdue_resumed_at"] = current
                delta["overdue_resumed_by"] = user_id

            updated = self._apply(task, delta)
            metadata: dict[str, Any] = {
                "reason": reason,
                "extension_id": extension_id,
                "completed_at": completed_at.isoformat() if completed_at else None,
            }
            await self._commit_task_change(
                task,
                updated,
                AuditOperation.STATUS_CHANGE,
                user_id,
                {"from": str(old_status), "to": str(new_status), **metadata},
                self._activity(
                    task_id,
                    user_id,
                    "status_changed",
                    f"Status changed from {old_status} to {new_status}",
                    current,
                    metadata={k: v for k, v in metadata.items() if v is not None},
                ),
            )
            log.info(
                "task_status_changed",
                task_id=task_id,
                from_status=str(old_status),
                to_status=str(new_status),
                user_id=user_id,
            )

            recalc_reason = (
                RecalcReason.BACKDATED_COMPLETION
                if completed_at is not None and new_status == TaskStatus.COMPLETED
                else RecalcReason.TASK_UPDATE
            )
            await self._scores.queue_for_users(updated.assigned_to, recalc_reason, task_id, user_id)
            return OperationResult(success=True, warnings=warnings, task_id=task_id)

        return await self._guarded("update_task_status", body, task_id=task_id)

    # ============================================================
    # 重新分配 / 删除 / 优先级
    # ============================================================

    async def reassign_task(
        self,
        task_id: str,
        new_assignees: list[str],
        reassigned_by: str,
        reason: str | None = None,
    ) -> OperationResult:
        """重新分配负责人；成功后为新旧负责人并集入队重算"""

        async def body() -> OperationResult:
            task = await self._load_task(task_id)
            assignees = list(dict.fromkeys(new_assignees))
            warnings: list[str] = []
            _require(validate_reassignment(task, assignees, reassigned_by), warnings)
            await self._check_users(assignees)

            now = utc_now()
            old_assignees = list(task.assigned_to)
            updated = self._apply(
                task,
                {
                    "assigned_to": assignees,
                    "reassigned_at": now,
                    "reassigned_by": reassigned_by,
                    "reassignment_reason": reason,
                    "updated_at": now,
                },
            )
            await self._commit_task_change(
                task,
                updated,
                AuditOperation.REASSIGNMENT,
                reassigned_by,
                {"from": old_assignees, "to": assignees, "reason": reason},
                self._activity(
                    task_id,
                    reassigned_by,
                    "reassigned",
                    f"Reassigned from {', '.join(old_assignees) or 'nobody'} "
                    f"to {', '.join(assignees)}",
                    now,
                    metadata={"reason": reason} if reason else None,
                ),
            )
            log.info("task_reassigned", task_id=task_id, reassigned_by=reassigned_by)

            await self._scores.queue_for_users(
                old_assignees + assignees,
                RecalcReason.TASK_REASSIGNMENT,
                task_id,
                reassigned_by,
            )
            return OperationResult(success=True, warnings=warnings, task_id=task_id)

        return await self._guarded("reassign_task", body, task_id=task_id)

    async def delete_task(
        self,
        task_id: str,
        deleted_by: str,
        force: bool = False,
    ) -> OperationResult:
        """软删除任务

        有警告时必须 force=True；删除前的文档原样归档。
        已完成任务删除后为其负责人入队重算。
        """

        async def body() -> OperationResult:
            task = await self._load_task(task_id)
            validation = validate_deletion(task)
            if not force and validation.warnings:
                raise RequiresForceError(
                    "Deletion requires force=true due to warnings",
                    validation.warnings,
                )

            now = utc_now()
            updated = self._apply(
                task,
                {"deleted": True, "deleted_at": now, "deleted_by": deleted_by, "updated_at": now},
            )
            await self._commit_task_change(
                task,
                updated,
                AuditOperation.DELETION,
                deleted_by,
                {"archived": True, "force": force},
                self._activity(task_id, deleted_by, "deleted", "Task deleted", now),
                extra_ops=[
                    partial(self._stores.task_store.archive_task, task, deleted_by, now),
                ],
            )
            log.info("task_deleted", task_id=task_id, deleted_by=deleted_by, force=force)

            if task.status == TaskStatus.COMPLETED:
                await self._scores.queue_for_users(
                    task.assigned_to, RecalcReason.TASK_DELETION, task_id, deleted_by
                )
            return OperationResult(success=True, warnings=validation.warnings, task_id=task_id)

        return await self._guarded("delete_task", body, task_id=task_id)

    async def change_priority(
        self,
        task_id: str,
        new_priority: Priority,
        changed_by: str,
        reason: str | None = None,
    ) -> OperationResult:
        """调整优先级；始终入队重算（priority_change）"""

        async def body() -> OperationResult:
            task = await self._load_task(task_id)
            warnings: list[str] = []
            _require(validate_priority_change(task, new_priority, reason), warnings)

            now = utc_now()
            old_priority = task.priority
            updated = self._apply(
                task,
                {
                    "priority": new_priority,
                    "priority_changed_at": now,
                    "priority_changed_by": changed_by,
                    "priority_change_reason": reason,
                    "updated_at": now,
                },
            )
            await self._commit_task_change(
                task,
                updated,
                AuditOperation.PRIORITY_CHANGE,
                changed_by,
                {"from": str(old_priority), "to": str(new_priority), "reason": reason},
                self._activity(
                    task_id,
                    changed_by,
                    "priority_changed",
                    f"Priority changed from {old_priority} to {new_priority}",
                    now,
                ),
            )

            await self._scores.queue_for_users(
                updated.assigned_to, RecalcReason.PRIORITY_CHANGE, task_id, changed_by
            )
            return OperationResult(success=True, warnings=warnings, task_id=task_id)

        return await self._guarded("change_priority", body, task_id=task_id)

    # ============================================================
    # 延期
    # ============================================================

    async def request_extension(
        self,
        task_id: str,
        requested_by: str,
        requested_due_date: datetime,
        reason: str,
        requested_by_name: str = "",
    ) -> OperationResult:
        """提交延期申请（pending）"""

        async def body() -> OperationResult:
            task = await self._load_task(task_id)
            _require(validate_extension_request(task, requested_due_date, reason), [])

            now = utc_now()
            current_due = effective_due_date(task)
            extension = TaskExtension(
                extension_id=str(ULID()),
                task_id=task_id,
                requested_by=requested_by,
                requested_by_name=requested_by_name,
                reason=reason.strip(),
                current_due_date=current_due,
                requested_due_date=requested_due_date,
                created_at=now,
            )
            audit = build_audit_entry(
                AuditOperation.EXTENSION_REQUEST,
                task,
                requested_by,
                {
                    "extension_id": extension.extension_id,
                    "requested_due_date": extension.requested_due_date.isoformat(),
                },
                now,
            )
            activity = self._activity(
                task_id,
                requested_by,
                "extension_requested",
                f"Extension requested: {_fmt_day(current_due)} -> "
                f"{_fmt_day(extension.requested_due_date)}",
                now,
                metadata={"extension_id": extension.extension_id},
            )

            batch = self._stores.batch()
            batch.add(partial(self._stores.extension_store.create_extension, extension))
            batch.add(partial(self._audit.append_audit_log, audit))
            batch.add(partial(self._audit.append_activity, activity))
            await batch.commit()

            log.info(
                "extension_requested",
                task_id=task_id,
                extension_id=extension.extension_id,
                requested_by=requested_by,
            )
            return OperationResult(
                success=True,
                task_id=task_id,
                extension_id=extension.extension_id,
            )

        return await self._guarded("request_extension", body, task_id=task_id)

    async def process_extension_request(
        self,
        extension_id: str,
        approved_by: str,
        approved: bool,
        rejection_reason: str | None = None,
        approved_by_name: str = "",
    ) -> OperationResult:
        """审批延期申请

        批准时写入 final_target_date；任务处于 overdue 时在同一原子写入中恢复为 in_progress。
        """

        async def body() -> OperationResult:
            extension = await self._stores.extension_store.get_extension(extension_id)
            if extension is None:
                raise NotFoundError("Extension request not found")
            if extension.is_decided:
                raise ValidationFailedError(
                    f"Extension request has already been {extension.status}"
                )
            task = await self._load_task(extension.task_id)

            now = utc_now()
            decided = extension.model_copy(
                update={
                    "status": ExtensionStatus.APPROVED if approved else ExtensionStatus.REJECTED,
                    "approved_by": approved_by,
                    "approved_by_name": approved_by_name,
                    "decided_at": now,
                    "rejection_reason": None if approved else rejection_reason,
                }
            )

            if approved:
                delta: dict[str, Any] = {
                    "final_target_date": extension.requested_due_date,
                    "extension_approved_at": now,
                    "extension_approved_by": approved_by,
                    "updated_at": now,
                }
                if task.status == TaskStatus.OVERDUE:
                    delta["status"] = TaskStatus.IN_PROGRESS
                    delta["overdue_resumed_at"] = now
                    delta["overdue_resumed_by"] = approved_by
                updated = self._apply(task, delta)
                operation = AuditOperation.EXTENSION_APPROVAL
                action = "extension_approved"
                details = (
                    f"Extension approved: new due date {_fmt_day(extension.requested_due_date)}"
                )
            else:
                updated = task
                operation = AuditOperation.EXTENSION_REJECTION
                action = "extension_rejected"
                details = f"Extension rejected: {rejection_reason or 'No reason provided'}"

            activity = self._activity(
                task.task_id,
                approved_by,
                action,
                details,
                now,
                metadata={"extension_id": extension_id},
            )
            changes = {
                "extension_id": extension_id,
                "approved": approved,
                "rejection_reason": rejection_reason,
                "status": str(updated.status),
            }
            await self._commit_task_change(
                task,
                updated,
                operation,
                approved_by,
                changes,
                activity,
                extra_ops=[partial(self._stores.extension_store.save_extension, decided)],
            )
            log.info(
                "extension_processed",
                extension_id=extension_id,
                task_id=task.task_id,
                approved=approved,
            )

            if approved:
                await self._scores.queue_for_users(
                    updated.assigned_to, RecalcReason.TASK_UPDATE, task.task_id, approved_by
                )
            return OperationResult(
                success=True,
                task_id=task.task_id,
                extension_id=extension_id,
            )

        return await self._guarded(
            "process_extension_request", body, extension_id=extension_id
        )

    # ============================================================
    # 逾期扫描（cron）
    # ============================================================

    async def auto_mark_overdue_tasks(
        self,
        now: datetime | None = None,
        max_batch_size: int | None = None,
    ) -> OverdueSweepResult:
        """扫描未关闭任务并标记逾期

        写操作按 max_batch_size 分块提交，每块独立提交：后续块失败不回滚已提交的块。
        单个任务失败记录到 errors，扫描继续。status != overdue 的判断使重复运行无副作用。

        Raises:
            ValueError: max_batch_size 容纳不下一个任务的写操作
        """
        limit = self._settings.max_batch_size if max_batch_size is None else max_batch_size
        if limit < _OVERDUE_OPS_PER_TASK:
            raise ValueError(f"max_batch_size must be at least {_OVERDUE_OPS_PER_TASK}")
        current = ensure_utc(now) if now is not None else utc_now()
        tasks_per_chunk = limit // _OVERDUE_OPS_PER_TASK

        try:
            open_tasks = await self._stores.task_store.list_open_tasks()
        except (aiosqlite.Error, OSError) as e:
            log.error("overdue_sweep_fetch_failed", error_type=type(e).__name__, error=str(e))
            return OverdueSweepResult(success=False, errors=[STORE_UNAVAILABLE_MESSAGE])

        errors: list[str] = []
        pending: list[tuple[Task, ActivityLogEntry]] = []
        for task in open_tasks:
            if task.status == TaskStatus.OVERDUE or not is_task_overdue(task, current):
                continue
            try:
                # 系统扫描不受用户状态图约束，任何未关闭状态均可直接转为 overdue
                updated = self._apply(
                    task,
                    {
                        "status": TaskStatus.OVERDUE,
                        "marked_overdue_at": current,
                        "updated_at": current,
                    },
                )
            except ValidationFailedError as e:
                errors.append(f"Task {task.task_id}: {e.message}")
                continue
            activity = self._activity(
                task.task_id,
                SYSTEM_ACTOR,
                "auto_marked_overdue",
                "Task automatically marked as overdue by system",
                current,
                metadata={"previous_status": str(task.status)},
            )
            pending.append((updated, activity))

        marked = 0
        for start in range(0, len(pending), tasks_per_chunk):
            chunk = pending[start : start + tasks_per_chunk]
            batch = self._stores.batch()
            for updated, activity in chunk:
                batch.add(partial(self._stores.task_store.save_task, updated))
                batch.add(partial(self._audit.append_activity, activity))
            try:
                await batch.commit()
            except (aiosqlite.Error, OSError) as e:
                log.error(
                    "overdue_chunk_commit_failed",
                    chunk_size=len(chunk),
                    error_type=type(e).__name__,
                    error=str(e),
                )
                errors.extend(
                    f"Task {updated.task_id}: {STORE_UNAVAILABLE_MESSAGE}" for updated, _ in chunk
                )
                continue
            marked += len(chunk)

        log.info("overdue_sweep_completed", marked=marked, failed=len(errors))
        return OverdueSweepResult(success=True, marked_count=marked, errors=errors)
