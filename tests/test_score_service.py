"""ScoreService 集成测试

测试内容：
1. 快照版本单调递增，值以最后一次写入为准
2. 重算队列 FIFO 消费、同用户请求折叠为一个快照
3. 权重配置读写与评分历史
4. 滚动平均与多负责人审计
"""

import asyncio
from datetime import UTC, datetime, timedelta

import aiosqlite
import pytest
from ulid import ULID

from workpulse.errors import STORE_UNAVAILABLE_MESSAGE
from workpulse.models import (
    RecalcReason,
    ScoreRecalcRequest,
    ScoreResult,
    ScoringConfig,
    TaskStatus,
    VerificationStatus,
)
from workpulse.services import ScoreService, snapshot_key
from workpulse.store import create_store_group

WEEK_START = datetime(2024, 1, 15, tzinfo=UTC)
WEEK_END = datetime(2024, 1, 21, 23, 59, 59, 999999, tzinfo=UTC)


def _result(user_id: str, overall: int) -> ScoreResult:
    return ScoreResult(
        user_id=user_id,
        overall_score=overall,
        completion_score=overall,
        timeliness_score=overall,
        quality_score=overall,
        kra_alignment_score=overall,
        task_count=1,
        completed_count=1,
        on_time_count=1,
        calculated_at=WEEK_END,
        period_start=WEEK_START,
        period_end=WEEK_END,
    )


class TestSnapshots:
    async def test_snapshot_key(self):
        assert snapshot_key("alice", WEEK_START, WEEK_END) == "alice_2024-01-15_2024-01-21"

    async def test_version_increments_and_last_write_wins(self, score_service, store_group):
        first = await score_service.store_score_snapshot(_result("alice", 70))
        second = await score_service.store_score_snapshot(_result("alice", 70))
        third = await score_service.store_score_snapshot(_result("alice", 55))

        assert (first.version, second.version, third.version) == (1, 2, 3)
        stored = await store_group.score_store.get_snapshot(first.snapshot_id)
        assert stored.version == 3
        assert stored.overall_score == 55
        assert stored.created_at == first.created_at

    async def test_versions_monotonic_across_connections(self, tmp_path, settings):
        """两个进程交替写同一快照，版本号不丢失"""
        db_path = str(tmp_path / "shared.db")
        first = await create_store_group(db_path)
        second = await create_store_group(db_path)
        try:
            services = [
                ScoreService(first, settings=settings),
                ScoreService(second, settings=settings),
            ]
            snapshots = await asyncio.gather(
                *(
                    svc.store_score_snapshot(_result("alice", 60))
                    for _ in range(5)
                    for svc in services
                )
            )
            stored = await first.score_store.get_snapshot(snapshots[0].snapshot_id)
        finally:
            await first.close()
            await second.close()

        assert sorted(s.version for s in snapshots) == list(range(1, 11))
        assert stored.version == 10

    async def test_history_newest_period_first(self, score_service):
        older = _result("alice", 40).model_copy(
            update={
                "period_start": WEEK_START - timedelta(days=7),
                "period_end": WEEK_END - timedelta(days=7),
            }
        )
        await score_service.store_score_snapshot(older)
        await score_service.store_score_snapshot(_result("alice", 80))
        await score_service.store_score_snapshot(_result("bob", 10))

        history = await score_service.get_score_history("alice")
        assert [s.overall_score for s in history] == [80, 40]
        assert len(await score_service.get_score_history("alice", limit=1)) == 1


class TestScoringConfig:
    async def test_default_when_not_stored(self, score_service):
        config = await score_service.load_scoring_config()
        assert config.completion_weight == 40
        assert config.kra_alignment_weight == 10

    async def test_update_persists(self, score_service):
        custom = ScoringConfig(
            completion_weight=30,
            timeliness_weight=30,
            quality_weight=30,
            kra_alignment_weight=10,
        )
        saved = await score_service.update_scoring_config(custom, "admin")
        assert saved.updated_by == "admin"
        assert saved.updated_at is not None

        loaded = await score_service.load_scoring_config()
        assert loaded.completion_weight == 30
        assert loaded.updated_by == "admin"


class TestCalculateUserScore:
    async def test_excludes_deleted_and_unassigned(self, score_service, seed_task):
        done_at = datetime(2024, 1, 16, 10, 0, tzinfo=UTC)
        await seed_task(
            status=TaskStatus.COMPLETED,
            completed_at=done_at,
            updated_at=done_at,
            verification_status=VerificationStatus.VERIFIED,
            kra_id="KRA-1",
        )
        await seed_task(
            status=TaskStatus.COMPLETED,
            completed_at=done_at,
            updated_at=done_at,
            deleted=True,
        )
        await seed_task(assigned_to=["bob"], updated_at=done_at)

        result = await score_service.calculate_user_score(
            "alice", WEEK_START, WEEK_END, now=WEEK_END
        )
        assert result.task_count == 1
        assert result.overall_score == 100

    async def test_uses_stored_weights(self, score_service, seed_task):
        done_at = datetime(2024, 1, 16, 10, 0, tzinfo=UTC)
        # 已完成、按时、待核验、无 KRA：100 / 100 / 80 / 0
        await seed_task(status=TaskStatus.COMPLETED, completed_at=done_at, updated_at=done_at)
        await score_service.update_scoring_config(
            ScoringConfig(
                completion_weight=50,
                timeliness_weight=50,
                quality_weight=0,
                kra_alignment_weight=0,
            ),
            "admin",
        )
        result = await score_service.calculate_user_score("alice", WEEK_START, WEEK_END)
        assert result.overall_score == 100
        assert result.quality_score == 80


class TestRecalculationQueue:
    async def _enqueue(self, store_group, user_id: str, created_at: datetime) -> None:
        await store_group.queue_store.enqueue(
            ScoreRecalcRequest(
                request_id=str(ULID()),
                user_id=user_id,
                reason=RecalcReason.MANUAL,
                triggered_by="admin",
                created_at=created_at,
            )
        )
        await store_group.conn.commit()

    async def test_drain_removes_entries_and_collapses_duplicates(
        self, score_service, store_group
    ):
        base = datetime(2024, 1, 16, tzinfo=UTC)
        await self._enqueue(store_group, "alice", base)
        await self._enqueue(store_group, "bob", base + timedelta(minutes=1))
        await self._enqueue(store_group, "alice", base + timedelta(minutes=2))

        result = await score_service.process_recalculation_queue(
            now=datetime(2024, 1, 17, 12, 0, tzinfo=UTC)
        )

        assert result.success
        assert result.processed == 3
        assert result.errors == []
        assert await store_group.queue_store.count() == 0

        alice = await store_group.score_store.get_snapshot(
            snapshot_key("alice", WEEK_START, WEEK_END)
        )
        bob = await store_group.score_store.get_snapshot(
            snapshot_key("bob", WEEK_START, WEEK_END)
        )
        assert alice.version == 2
        assert bob.version == 1

    async def test_batch_size_limits_fifo(self, score_service, store_group):
        base = datetime(2024, 1, 16, tzinfo=UTC)
        for i, user in enumerate(["alice", "bob", "carol"]):
            await self._enqueue(store_group, user, base + timedelta(minutes=i))

        result = await score_service.process_recalculation_queue(
            batch_size=2, now=datetime(2024, 1, 17, tzinfo=UTC)
        )
        assert result.processed == 2
        remaining = await store_group.queue_store.list_pending(10)
        assert [r.user_id for r in remaining] == ["carol"]

    async def test_failed_request_kept_and_reported(
        self, score_service, store_group, monkeypatch
    ):
        base = datetime(2024, 1, 16, tzinfo=UTC)
        await self._enqueue(store_group, "alice", base)
        await self._enqueue(store_group, "bob", base + timedelta(minutes=1))

        original = score_service.calculate_user_score

        async def flaky(user_id, *args, **kwargs):
            if user_id == "alice":
                raise ValueError("corrupt task document")
            return await original(user_id, *args, **kwargs)

        monkeypatch.setattr(score_service, "calculate_user_score", flaky)
        result = await score_service.process_recalculation_queue(
            now=datetime(2024, 1, 17, tzinfo=UTC)
        )

        assert result.success
        assert result.processed == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Request ")
        assert "corrupt task document" in result.errors[0]
        remaining = await store_group.queue_store.list_pending(10)
        assert [r.user_id for r in remaining] == ["alice"]

    async def test_store_failure_reported_generically(
        self, score_service, store_group, monkeypatch
    ):
        """存储故障：快照与出队一起回滚，errors 不含底层原因"""
        await self._enqueue(store_group, "alice", datetime(2024, 1, 16, tzinfo=UTC))

        async def broken_delete(request_id):
            raise aiosqlite.OperationalError("disk I/O error")

        monkeypatch.setattr(store_group.queue_store, "delete", broken_delete)
        result = await score_service.process_recalculation_queue(
            now=datetime(2024, 1, 17, tzinfo=UTC)
        )
        monkeypatch.undo()

        assert result.processed == 0
        assert len(result.errors) == 1
        assert result.errors[0].endswith(STORE_UNAVAILABLE_MESSAGE)
        assert "disk I/O" not in result.errors[0]
        assert await store_group.queue_store.count() == 1
        assert (
            await store_group.score_store.get_snapshot(
                snapshot_key("alice", WEEK_START, WEEK_END)
            )
            is None
        )

    async def test_zero_batch_size_rejected(self, score_service):
        with pytest.raises(ValueError, match="at least 1"):
            await score_service.process_recalculation_queue(batch_size=0)

    async def test_status_change_feeds_queue(self, service, score_service, seed_task):
        """任务完成 -> 入队 -> 队列消费生成快照"""
        task = await seed_task()
        await service.update_task_status(task.task_id, TaskStatus.COMPLETED, "alice")

        result = await score_service.process_recalculation_queue()
        assert result.processed == 1
        history = await score_service.get_score_history("alice")
        assert len(history) == 1
        assert history[0].completed_count == 1


class TestRollingAndAudit:
    async def test_rolling_averages(self, score_service, seed_task):
        now = datetime(2024, 3, 31, tzinfo=UTC)
        recent = now - timedelta(days=3)
        await seed_task(
            status=TaskStatus.COMPLETED,
            created_at=now - timedelta(days=100),
            completed_at=recent,
            updated_at=recent,
            verification_status=VerificationStatus.VERIFIED,
            kra_id="KRA-1",
        )
        await seed_task(
            created_at=now - timedelta(days=100),
            updated_at=now - timedelta(days=20),
        )

        averages = await score_service.calculate_rolling_averages("alice", now=now)
        assert averages.avg_7_day == 100
        # 30/90 天窗口多一个未完成、无 KRA 的任务：50 / 100 / 100 / 50 -> 75
        assert averages.avg_30_day == 75
        assert averages.avg_90_day == 75

    async def test_double_counting_audit(self, score_service, seed_task):
        when = datetime(2024, 1, 16, tzinfo=UTC)
        shared = await seed_task(assigned_to=["alice", "bob"], updated_at=when)
        await seed_task(updated_at=when)
        await seed_task(assigned_to=["alice", "carol"], updated_at=when, deleted=True)

        audit = await score_service.audit_double_counting_risk(WEEK_START, WEEK_END)
        assert audit.total_risk == 1
        assert audit.risky_tasks[0].task_id == shared.task_id
        assert audit.risky_tasks[0].assignee_count == 2
