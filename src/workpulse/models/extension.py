"""TaskExtension Domain Model

延期申请以 pending 创建，只能单向流转一次到 approved 或 rejected。
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .enums import ExtensionStatus
from .task import ensure_utc


class TaskExtension(BaseModel):
    """延期申请"""

    extension_id: str = Field(description="唯一标识，ULID 格式")
    task_id: str = Field(description="关联的 Task ID")
    requested_by: str = Field(description="申请人")
    requested_by_name: str = Field(default="", description="申请人显示名")
    reason: str = Field(description="申请理由")
    current_due_date: datetime = Field(description="申请时的有效截止时间")
    requested_due_date: datetime = Field(description="申请的新截止时间")
    status: ExtensionStatus = Field(default=ExtensionStatus.PENDING)
    approved_by: str | None = Field(default=None, description="审批人（批准或驳回）")
    approved_by_name: str | None = Field(default=None)
    decided_at: datetime | None = Field(default=None, description="审批时间")
    rejection_reason: str | None = Field(default=None)
    created_at: datetime = Field(description="申请时间")

    @field_validator("current_due_date", "requested_due_date", "decided_at", "created_at")
    @classmethod
    def _normalize_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    @property
    def is_approved(self) -> bool:
        return self.status == ExtensionStatus.APPROVED

    @property
    def is_decided(self) -> bool:
        return self.status != ExtensionStatus.PENDING
