"""评分相关模型

- ScoringConfig: 四项权重配置（百分比），未持久化时使用默认值
- ScoreResult: 单用户单周期的临时计算结果
- ScoreSnapshot: 按 (user_id, 周期起止日期) 键控的历史快照，version 单调递增
- ScoreRecalcRequest: 重算队列条目
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .enums import RecalcReason
from .task import ensure_utc


class ScoringConfig(BaseModel):
    """评分权重配置

    四项权重概念上合计 100；不等于 100 时公式仍可计算（总分会被裁剪到 [0, 100]）。
    """

    completion_weight: float = Field(default=40, ge=0, le=100)
    timeliness_weight: float = Field(default=30, ge=0, le=100)
    quality_weight: float = Field(default=20, ge=0, le=100)
    kra_alignment_weight: float = Field(default=10, ge=0, le=100)
    updated_at: datetime | None = Field(default=None)
    updated_by: str = Field(default="system")

    @property
    def total_weight(self) -> float:
        return (
            self.completion_weight
            + self.timeliness_weight
            + self.quality_weight
            + self.kra_alignment_weight
        )


# 未配置时的默认权重：完成率 40 / 及时率 30 / 质量 20 / KRA 对齐 10
DEFAULT_SCORING_CONFIG = ScoringConfig()


class ScoreResult(BaseModel):
    """单用户单周期评分结果（不直接持久化，作为快照输入）"""

    user_id: str
    overall_score: int = Field(ge=0, le=100)
    completion_score: int = Field(ge=0, le=100)
    timeliness_score: int = Field(ge=0, le=100)
    quality_score: int = Field(ge=0, le=100)
    kra_alignment_score: int = Field(ge=0, le=100)
    task_count: int = Field(ge=0)
    completed_count: int = Field(ge=0)
    on_time_count: int = Field(ge=0)
    calculated_at: datetime
    period_start: datetime
    period_end: datetime

    @field_validator("calculated_at", "period_start", "period_end")
    @classmethod
    def _normalize_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ScoreSnapshot(ScoreResult):
    """评分历史快照

    同一 (user_id, period) 重复写入时原地更新并 version + 1，
    使重算幂等（最新值生效）且保留可审计的版本计数。
    """

    snapshot_id: str
    version: int = Field(ge=1)
    created_at: datetime
    updated_at: datetime


class ScoreRecalcRequest(BaseModel):
    """评分重算请求（队列条目）"""

    request_id: str = Field(description="唯一标识，ULID 格式")
    user_id: str
    reason: RecalcReason
    task_id: str | None = Field(default=None)
    triggered_by: str
    created_at: datetime


class RollingAverages(BaseModel):
    """滚动窗口总分（7/30/90 天）"""

    user_id: str
    avg_7_day: int
    avg_30_day: int
    avg_90_day: int


class DoubleCountingRisk(BaseModel):
    """多负责人任务 -- 每位负责人独立计分同一任务"""

    task_id: str
    assignee_count: int
    assignees: list[str]


class DoubleCountingAudit(BaseModel):
    """重复计分风险审计结果"""

    risky_tasks: list[DoubleCountingRisk] = Field(default_factory=list)
    total_risk: int = 0
