"""评分引擎 -- 纯函数，无状态

所有函数只依赖传入的任务列表、user_id 与权重配置。
组件分只统计 assigned_to 包含该用户的任务（按负责人独立计分）。
"""

import math
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from .models.enums import TaskStatus, VerificationStatus
from .models.score import ScoreResult, ScoringConfig
from .models.task import (
    Task,
    completion_timestamp,
    effective_due_date,
    ensure_utc,
    relevant_date,
    utc_date,
)

# 质量分：已核验 / 被驳回或返工 / 待核验
QUALITY_VERIFIED = 100
QUALITY_REJECTED = 40
QUALITY_PENDING = 80


def round_half_up(value: float) -> int:
    """四舍五入（.5 向上），与内置 round 的银行家舍入不同"""
    return int(math.floor(value + 0.5))


def _percentage(part: int, whole: int) -> int:
    if whole == 0:
        return 0
    return round_half_up(100 * part / whole)


def user_tasks(tasks: Iterable[Task], user_id: str) -> list[Task]:
    """筛选 assigned_to 包含该用户的任务"""
    return [t for t in tasks if user_id in t.assigned_to]


def completed_tasks(tasks: Iterable[Task]) -> list[Task]:
    return [t for t in tasks if t.status == TaskStatus.COMPLETED]


def is_completed_on_time(task: Task) -> bool:
    """按时完成判断

    无截止时间视为按时；完成时间与有效截止时间按 UTC 日历日比较，
    与逾期检测使用同一粒度。
    """
    due = effective_due_date(task)
    if due is None:
        return True
    completed = completion_timestamp(task)
    if completed is None:
        return True
    return utc_date(completed) <= utc_date(due)


def calculate_completion_score(tasks: Sequence[Task], user_id: str) -> int:
    """完成率分（0-100）"""
    mine = user_tasks(tasks, user_id)
    return _percentage(len(completed_tasks(mine)), len(mine))


def calculate_timeliness_score(tasks: Sequence[Task], user_id: str) -> int:
    """及时率分（0-100），无已完成任务时为 0"""
    done = completed_tasks(user_tasks(tasks, user_id))
    on_time = [t for t in done if is_completed_on_time(t)]
    return _percentage(len(on_time), len(done))


def _quality_points(task: Task) -> int:
    if task.verification_status == VerificationStatus.VERIFIED:
        return QUALITY_VERIFIED
    if (
        task.verification_status == VerificationStatus.REJECTED
        or task.status == TaskStatus.REVISION_REQUESTED
    ):
        return QUALITY_REJECTED
    return QUALITY_PENDING


def calculate_quality_score(tasks: Sequence[Task], user_id: str) -> int:
    """质量分（0-100），无已完成任务时为 0"""
    done = completed_tasks(user_tasks(tasks, user_id))
    if not done:
        return 0
    total = sum(_quality_points(t) for t in done)
    return round_half_up(total / len(done))


def calculate_kra_alignment_score(tasks: Sequence[Task], user_id: str) -> int:
    """KRA 对齐度分（0-100）"""
    mine = user_tasks(tasks, user_id)
    aligned = [t for t in mine if t.kra_id]
    return _percentage(len(aligned), len(mine))


def calculate_overall_score(
    completion: int,
    timeliness: int,
    quality: int,
    kra_alignment: int,
    config: ScoringConfig,
) -> int:
    """加权总分 = round(clip(Σ 分项 · 权重 / 100, 0, 100))"""
    weighted = (
        completion * config.completion_weight / 100
        + timeliness * config.timeliness_weight / 100
        + quality * config.quality_weight / 100
        + kra_alignment * config.kra_alignment_weight / 100
    )
    return round_half_up(min(max(weighted, 0.0), 100.0))


def in_period(task: Task, start: datetime, end: datetime) -> bool:
    """任务的评分归属日期是否落在 [start, end] 内（精确时间比较）"""
    when = relevant_date(task)
    if when is None:
        return False
    return ensure_utc(start) <= when <= ensure_utc(end)


def compute_score(
    tasks: Sequence[Task],
    user_id: str,
    start: datetime,
    end: datetime,
    config: ScoringConfig,
    calculated_at: datetime,
) -> ScoreResult:
    """计算单用户单周期评分

    Args:
        tasks: 候选任务（调用方已排除软删除任务）
        user_id: 被评分用户
        start: 周期开始（含）
        end: 周期结束（含）
        config: 权重配置
        calculated_at: 计算时间

    Returns:
        ScoreResult
    """
    period_tasks = [t for t in tasks if in_period(t, start, end)]
    mine = user_tasks(period_tasks, user_id)
    done = completed_tasks(mine)

    completion = calculate_completion_score(period_tasks, user_id)
    timeliness = calculate_timeliness_score(period_tasks, user_id)
    quality = calculate_quality_score(period_tasks, user_id)
    kra_alignment = calculate_kra_alignment_score(period_tasks, user_id)

    return ScoreResult(
        user_id=user_id,
        overall_score=calculate_overall_score(
            completion, timeliness, quality, kra_alignment, config
        ),
        completion_score=completion,
        timeliness_score=timeliness,
        quality_score=quality,
        kra_alignment_score=kra_alignment,
        task_count=len(mine),
        completed_count=len(done),
        on_time_count=sum(1 for t in done if is_completed_on_time(t)),
        calculated_at=calculated_at,
        period_start=start,
        period_end=end,
    )


def iso_week_window(now: datetime) -> tuple[datetime, datetime]:
    """包含 now 的 ISO 周（周一 00:00 UTC 至周日 23:59:59.999999 UTC）"""
    current = ensure_utc(now)
    monday = current.replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(
        days=current.weekday()
    )
    return monday, monday + timedelta(days=7) - timedelta(microseconds=1)


def find_multi_assignee_tasks(
    tasks: Iterable[Task],
    start: datetime,
    end: datetime,
) -> list[Task]:
    """周期内负责人多于一人的任务（同一任务被每位负责人独立计分）"""
    return [
        t for t in tasks if in_period(t, start, end) and len(set(t.assigned_to)) > 1
    ]
