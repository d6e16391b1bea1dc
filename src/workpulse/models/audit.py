"""审计与活动日志模型

两类日志均为 append-only：只允许插入，不允许更新或删除。
- AuditLogEntry: 结构化审计记录（变更前完整快照 + 变更内容）
- ActivityLogEntry: 任务内人类可读的操作记录
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import AuditOperation


class AuditLogEntry(BaseModel):
    """审计日志条目"""

    audit_id: str = Field(description="唯一标识，ULID 格式")
    entity_type: str = Field(default="task", description="实体类型")
    entity_id: str = Field(description="实体 ID")
    operation: AuditOperation = Field(description="操作类型")
    user_id: str = Field(description="操作者")
    timestamp: datetime = Field(description="操作时间")
    changes: dict[str, Any] = Field(default_factory=dict, description="变更内容")
    previous_state: dict[str, Any] = Field(
        default_factory=dict,
        description="变更前文档快照",
    )


class ActivityLogEntry(BaseModel):
    """任务活动日志条目"""

    activity_id: str = Field(description="唯一标识，ULID 格式")
    task_id: str = Field(description="关联的 Task ID")
    user_id: str = Field(description="操作者，系统操作为 system")
    action: str = Field(description="动作标识，如 status_changed")
    details: str = Field(description="人类可读描述")
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(description="操作时间")


class ArchivedTask(BaseModel):
    """软删除前的任务归档（原样保存文档，便于恢复与审计）"""

    task_id: str
    body: dict[str, Any] = Field(description="删除前的任务文档")
    deleted_by: str
    deleted_at: datetime
    deletion_reason: str = Field(default="user_requested")
