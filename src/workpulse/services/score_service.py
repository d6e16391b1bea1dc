"""ScoreService -- 评分计算、快照与重算队列

- 评分计算：加载权重配置 + 用户任务，调用纯函数评分引擎
- 快照：按 (user_id, 周期起止日期) 键控，重复写入原地更新并 version + 1
- 重算队列：任务变更后入队（尽力而为），cron 作业批量消费
"""

from datetime import datetime, timedelta

import aiosqlite
import structlog
from ulid import ULID

from ..config import ROLLING_WINDOWS_DAYS, OperationsSettings, load_settings
from ..errors import STORE_UNAVAILABLE_MESSAGE
from ..models.enums import RecalcReason
from ..models.results import RecalcBatchResult
from ..models.score import (
    DEFAULT_SCORING_CONFIG,
    DoubleCountingAudit,
    DoubleCountingRisk,
    RollingAverages,
    ScoreRecalcRequest,
    ScoreResult,
    ScoreSnapshot,
    ScoringConfig,
)
from ..models.task import ensure_utc, utc_now
from ..scoring import compute_score, find_multi_assignee_tasks, iso_week_window
from ..store import StoreGroup

log = structlog.get_logger()


def snapshot_key(user_id: str, period_start: datetime, period_end: datetime) -> str:
    """快照主键：{user_id}_{开始日期}_{结束日期}（UTC 日期）"""
    start = ensure_utc(period_start)
    end = ensure_utc(period_end)
    return f"{user_id}_{start:%Y-%m-%d}_{end:%Y-%m-%d}"


class ScoreService:
    """评分服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        settings: OperationsSettings | None = None,
    ) -> None:
        self._stores = store_group
        self._settings = settings or load_settings()

    # ============================================================
    # 权重配置
    # ============================================================

    async def load_scoring_config(self) -> ScoringConfig:
        """读取已保存的权重配置，未配置时返回默认值 40/30/20/10"""
        config = await self._stores.score_store.get_scoring_config()
        return config or DEFAULT_SCORING_CONFIG

    async def update_scoring_config(
        self,
        config: ScoringConfig,
        updated_by: str,
    ) -> ScoringConfig:
        """保存权重配置

        权重合计不为 100 时仍保存，仅记录警告。
        """
        saved = config.model_copy(update={"updated_at": utc_now(), "updated_by": updated_by})
        if saved.total_weight != 100:
            log.warning(
                "scoring_weights_not_normalized",
                total_weight=saved.total_weight,
                updated_by=updated_by,
            )
        batch = self._stores.batch()
        batch.add(lambda: self._stores.score_store.save_scoring_config(saved))
        await batch.commit()
        log.info("scoring_config_updated", updated_by=updated_by)
        return saved

    # ============================================================
    # 评分计算
    # ============================================================

    async def calculate_user_score(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        config: ScoringConfig | None = None,
        now: datetime | None = None,
    ) -> ScoreResult:
        """计算用户在 [start, end] 周期内的评分

        Args:
            user_id: 被评分用户
            start: 周期开始（含）
            end: 周期结束（含）
            config: 权重配置，None 时读取已保存配置
            now: 计算时间，None 时取当前 UTC 时间
        """
        if config is None:
            config = await self.load_scoring_config()
        tasks = await self._stores.task_store.list_tasks_for_user(user_id)
        return compute_score(
            tasks,
            user_id,
            ensure_utc(start),
            ensure_utc(end),
            config,
            calculated_at=now or utc_now(),
        )

    async def calculate_rolling_averages(
        self,
        user_id: str,
        now: datetime | None = None,
    ) -> RollingAverages:
        """7/30/90 天滚动窗口总分"""
        current = ensure_utc(now) if now is not None else utc_now()
        config = await self.load_scoring_config()

        averages: list[int] = []
        for days in ROLLING_WINDOWS_DAYS:
            result = await self.calculate_user_score(
                user_id,
                current - timedelta(days=days),
                current,
                config=config,
                now=current,
            )
            averages.append(result.overall_score)

        avg_7, avg_30, avg_90 = averages
        return RollingAverages(
            user_id=user_id,
            avg_7_day=avg_7,
            avg_30_day=avg_30,
            avg_90_day=avg_90,
        )

    async def audit_double_counting_risk(
        self,
        start: datetime,
        end: datetime,
    ) -> DoubleCountingAudit:
        """列出周期内多负责人任务（每位负责人都会独立计入同一任务）"""
        tasks = await self._stores.task_store.list_tasks()
        risky = [
            DoubleCountingRisk(
                task_id=t.task_id,
                assignee_count=len(set(t.assigned_to)),
                assignees=list(t.assigned_to),
            )
            for t in find_multi_assignee_tasks(tasks, ensure_utc(start), ensure_utc(end))
        ]
        return DoubleCountingAudit(risky_tasks=risky, total_risk=len(risky))

    # ============================================================
    # 快照
    # ============================================================

    async def store_score_snapshot(self, result: ScoreResult) -> ScoreSnapshot:
        """写入评分快照（同键原地更新，version + 1）"""

        async def _body(_conn: aiosqlite.Connection) -> ScoreSnapshot:
            return await self._upsert_snapshot(result)

        snapshot = await self._stores.transaction(
            _body, max_retries=self._settings.counter_retries
        )
        log.debug(
            "score_snapshot_stored",
            snapshot_id=snapshot.snapshot_id,
            version=snapshot.version,
        )
        return snapshot

    async def get_score_history(self, user_id: str, limit: int = 12) -> list[ScoreSnapshot]:
        """评分历史，按周期开始时间倒序"""
        return await self._stores.score_store.list_snapshots_for_user(user_id, limit)

    async def _upsert_snapshot(self, result: ScoreResult) -> ScoreSnapshot:
        """读-改-写快照，需在事务体内调用"""
        snapshot_id = snapshot_key(result.user_id, result.period_start, result.period_end)
        store = self._stores.score_store
        existing = await store.get_snapshot(snapshot_id)
        now = utc_now()

        if existing is None:
            snapshot = ScoreSnapshot(
                **result.model_dump(),
                snapshot_id=snapshot_id,
                version=1,
                created_at=now,
                updated_at=now,
            )
        else:
            snapshot = ScoreSnapshot(
                **result.model_dump(),
                snapshot_id=snapshot_id,
                version=existing.version + 1,
                created_at=existing.created_at,
                updated_at=now,
            )
        await store.upsert_snapshot(snapshot)
        return snapshot

    # ============================================================
    # 重算队列
    # ============================================================

    async def queue_score_recalculation(
        self,
        user_id: str,
        reason: RecalcReason,
        task_id: str | None,
        triggered_by: str,
    ) -> None:
        """追加重算请求

        入队失败只记录日志，不影响已提交的主操作。
        """
        request = ScoreRecalcRequest(
            request_id=str(ULID()),
            user_id=user_id,
            reason=reason,
            task_id=task_id,
            triggered_by=triggered_by,
            created_at=utc_now(),
        )
        try:
            batch = self._stores.batch()
            batch.add(lambda: self._stores.queue_store.enqueue(request))
            await batch.commit()
        except (aiosqlite.Error, OSError) as e:
            log.error(
                "score_recalc_enqueue_failed",
                user_id=user_id,
                reason=str(reason),
                task_id=task_id,
                error_type=type(e).__name__,
                error=str(e),
            )

    async def queue_for_users(
        self,
        user_ids: list[str],
        reason: RecalcReason,
        task_id: str | None,
        triggered_by: str,
    ) -> None:
        """为多个用户入队（去重，保持顺序）"""
        for user_id in dict.fromkeys(user_ids):
            await self.queue_score_recalculation(user_id, reason, task_id, triggered_by)

    async def process_recalculation_queue(
        self,
        batch_size: int | None = None,
        now: datetime | None = None,
    ) -> RecalcBatchResult:
        """批量消费重算队列（cron 作业入口）

        按 created_at、request_id 顺序取出最多 batch_size 条请求，
        逐条重算当前 ISO 周评分并写入快照，成功后删除请求。
        单条失败记录到 errors，不中断批处理；失败的请求保留在队列中。
        存储故障的底层原因只写日志，errors 中返回通用信息。

        Raises:
            ValueError: batch_size 小于 1
        """
        limit = self._settings.recalc_batch_size if batch_size is None else batch_size
        if limit < 1:
            raise ValueError("batch_size must be at least 1")
        current = ensure_utc(now) if now is not None else utc_now()
        week_start, week_end = iso_week_window(current)

        try:
            config = await self.load_scoring_config()
            requests = await self._stores.queue_store.list_pending(limit)
        except (aiosqlite.Error, OSError) as e:
            log.error("recalc_queue_fetch_failed", error_type=type(e).__name__, error=str(e))
            return RecalcBatchResult(
                success=False, processed=0, errors=[STORE_UNAVAILABLE_MESSAGE]
            )

        processed = 0
        errors: list[str] = []
        for request in requests:
            try:
                result = await self.calculate_user_score(
                    request.user_id, week_start, week_end, config=config, now=current
                )
                await self._stores.transaction(
                    self._snapshot_and_consume(result, request.request_id),
                    max_retries=self._settings.counter_retries,
                )
                processed += 1
            except (aiosqlite.Error, OSError) as e:
                log.warning(
                    "recalc_request_failed",
                    request_id=request.request_id,
                    user_id=request.user_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                errors.append(f"Request {request.request_id}: {STORE_UNAVAILABLE_MESSAGE}")
            except ValueError as e:
                # 任务数据无法评分，原因可直接返回
                log.warning(
                    "recalc_request_failed",
                    request_id=request.request_id,
                    user_id=request.user_id,
                    error_type=type(e).__name__,
                )
                errors.append(f"Request {request.request_id}: {e}")

        log.info(
            "recalc_queue_processed",
            fetched=len(requests),
            processed=processed,
            failed=len(errors),
        )
        return RecalcBatchResult(success=True, processed=processed, errors=errors)

    def _snapshot_and_consume(self, result: ScoreResult, request_id: str):
        """快照写入与请求删除在同一事务内完成"""

        async def _body(_conn: aiosqlite.Connection) -> ScoreSnapshot:
            snapshot = await self._upsert_snapshot(result)
            await self._stores.queue_store.delete(request_id)
            return snapshot

        return _body
