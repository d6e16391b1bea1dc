"""Task Domain Model

任务以完整文档形式持久化；可选字段显式声明，
"有效截止日期" 等默认值推导集中在具名 helper 中。
"""

from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from .enums import Priority, TaskStatus, VerificationStatus


def ensure_utc(value: datetime) -> datetime:
    """将 naive datetime 视为 UTC，aware datetime 转换到 UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)


def iso_utc(value: datetime) -> str:
    """存储用 ISO 字符串（固定微秒精度，字典序即时间序）"""
    return ensure_utc(value).isoformat(timespec="microseconds")


def utc_date(value: datetime) -> date:
    """取 UTC 日历日期（午夜归一化）"""
    return ensure_utc(value).date()


class Task(BaseModel):
    """Task 数据模型

    不变量：
    - status == completed 时 assigned_to 非空
    - final_target_date 存在时必须晚于 due_date
    """

    task_id: str = Field(description="唯一标识，ULID 格式")
    task_number: str | None = Field(default=None, description="人类可读编号，如 T-0001")
    title: str = Field(description="任务标题")
    description: str = Field(default="", description="任务描述")
    status: TaskStatus = Field(default=TaskStatus.NOT_STARTED, description="当前状态")
    priority: Priority = Field(default=Priority.MEDIUM, description="优先级")
    assigned_to: list[str] = Field(default_factory=list, description="负责人 ID 集合")
    due_date: datetime | None = Field(default=None, description="原始截止时间")
    final_target_date: datetime | None = Field(
        default=None,
        description="延期批准后的截止时间，存在时即为有效截止时间",
    )
    progress: int = Field(default=0, ge=0, le=100, description="完成进度")
    verification_status: VerificationStatus | None = Field(default=None)
    kra_id: str | None = Field(default=None, description="关联 KRA，用于对齐度评分")

    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    created_by: str | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)
    completed_by: str | None = Field(default=None)

    # 逾期恢复
    overdue_resumption_reason: str | None = Field(default=None)
    overdue_resumed_at: datetime | None = Field(default=None)
    overdue_resumed_by: str | None = Field(default=None)
    marked_overdue_at: datetime | None = Field(default=None)

    # 重新分配
    reassigned_at: datetime | None = Field(default=None)
    reassigned_by: str | None = Field(default=None)
    reassignment_reason: str | None = Field(default=None)

    # 优先级调整
    priority_changed_at: datetime | None = Field(default=None)
    priority_changed_by: str | None = Field(default=None)
    priority_change_reason: str | None = Field(default=None)

    # 延期审批
    extension_approved_at: datetime | None = Field(default=None)
    extension_approved_by: str | None = Field(default=None)

    # 核验
    verified_at: datetime | None = Field(default=None)
    verified_by: str | None = Field(default=None)
    verification_note: str | None = Field(default=None)

    # 软删除
    deleted: bool = Field(default=False)
    deleted_at: datetime | None = Field(default=None)
    deleted_by: str | None = Field(default=None)

    @field_validator(
        "due_date",
        "final_target_date",
        "created_at",
        "updated_at",
        "completed_at",
        "overdue_resumed_at",
        "marked_overdue_at",
        "reassigned_at",
        "priority_changed_at",
        "extension_approved_at",
        "verified_at",
        "deleted_at",
    )
    @classmethod
    def _normalize_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    @model_validator(mode="after")
    def _check_invariants(self) -> "Task":
        if self.status == TaskStatus.COMPLETED and not self.assigned_to:
            raise ValueError("completed task must have at least one assignee")
        if (
            self.final_target_date is not None
            and self.due_date is not None
            and self.final_target_date <= self.due_date
        ):
            raise ValueError("final_target_date must be later than due_date")
        return self

    def apply(self, delta: dict[str, Any]) -> "Task":
        """应用字段增量，返回新的 Task（不修改原对象）

        重新走一遍模型校验，增量违反不变量时抛出 pydantic.ValidationError。
        """
        return Task.model_validate({**self.model_dump(), **delta})

    def audit_snapshot(self) -> dict[str, Any]:
        """审计用的完整文档快照（JSON 兼容）"""
        return self.model_dump(mode="json")


def effective_due_date(task: Task) -> datetime | None:
    """有效截止时间：已批准延期优先，否则原始截止时间"""
    return task.final_target_date or task.due_date


def completion_timestamp(task: Task) -> datetime | None:
    """完成时间：completed_at 缺失时退回 updated_at"""
    return task.completed_at or task.updated_at


def relevant_date(task: Task) -> datetime | None:
    """评分周期归属日期：completed_at → updated_at → created_at"""
    return task.completed_at or task.updated_at or task.created_at
