"""逾期扫描测试

测试内容：
1. 只标记已过有效截止日期的未关闭任务
2. 重复运行无副作用
3. 按 max_batch_size 分块提交，失败块不影响已提交块
"""

from datetime import UTC, datetime

import aiosqlite
import pytest

from workpulse.errors import STORE_UNAVAILABLE_MESSAGE
from workpulse.models import SYSTEM_ACTOR, TaskStatus

DUE = datetime(2024, 1, 10, tzinfo=UTC)
CHECK_AT = datetime(2024, 1, 12, 8, 0, tzinfo=UTC)


class TestAutoMarkOverdue:
    async def test_marks_only_past_due_open_tasks(self, service, seed_task):
        past_due = await seed_task(due_date=DUE)
        extended = await seed_task(
            due_date=DUE,
            final_target_date=datetime(2024, 1, 15, tzinfo=UTC),
        )
        completed = await seed_task(status=TaskStatus.COMPLETED, due_date=DUE)
        no_due = await seed_task()
        blocked = await seed_task(status=TaskStatus.BLOCKED, due_date=DUE)

        result = await service.auto_mark_overdue_tasks(now=CHECK_AT)

        assert result.success
        assert result.marked_count == 2
        assert result.errors == []
        assert (await service.get_task(past_due.task_id)).status == TaskStatus.OVERDUE
        assert (await service.get_task(blocked.task_id)).status == TaskStatus.OVERDUE
        assert (await service.get_task(extended.task_id)).status == TaskStatus.IN_PROGRESS
        assert (await service.get_task(completed.task_id)).status == TaskStatus.COMPLETED
        assert (await service.get_task(no_due.task_id)).status == TaskStatus.IN_PROGRESS

    async def test_records_system_activity(self, service, seed_task):
        task = await seed_task(due_date=DUE)
        await service.auto_mark_overdue_tasks(now=CHECK_AT)

        updated = await service.get_task(task.task_id)
        assert updated.marked_overdue_at == CHECK_AT
        activity = await service.get_activity_log(task.task_id)
        assert activity[-1].user_id == SYSTEM_ACTOR
        assert activity[-1].action == "auto_marked_overdue"
        assert activity[-1].metadata == {"previous_status": "in_progress"}

    async def test_second_run_is_noop(self, service, seed_task):
        await seed_task(due_date=DUE)
        first = await service.auto_mark_overdue_tasks(now=CHECK_AT)
        second = await service.auto_mark_overdue_tasks(now=CHECK_AT)
        assert first.marked_count == 1
        assert second.marked_count == 0

    async def test_deleted_tasks_skipped(self, service, seed_task, store_group):
        task = await seed_task(due_date=DUE, deleted=True)
        result = await service.auto_mark_overdue_tasks(now=CHECK_AT)
        assert result.marked_count == 0
        assert result.errors == []
        stored = await store_group.task_store.get_task(task.task_id)
        assert stored.status == TaskStatus.IN_PROGRESS

    async def test_chunked_commits(self, service, seed_task, store_group, monkeypatch):
        """max_batch_size=4 -> 每块 2 个任务，5 个任务分 3 块提交"""
        for _ in range(5):
            await seed_task(due_date=DUE)

        commits = []
        original_commit = store_group.conn.commit

        async def counting_commit():
            commits.append(1)
            await original_commit()

        monkeypatch.setattr(store_group.conn, "commit", counting_commit)
        result = await service.auto_mark_overdue_tasks(now=CHECK_AT, max_batch_size=4)

        assert result.marked_count == 5
        assert len(commits) == 3

    async def test_failed_chunk_does_not_roll_back_earlier_chunks(
        self, service, seed_task, store_group, monkeypatch
    ):
        tasks = [await seed_task(due_date=DUE) for _ in range(4)]

        original_save = store_group.task_store.save_task
        calls = []

        async def flaky_save(task):
            calls.append(task.task_id)
            # 第二块（第 3 个任务起）写入失败
            if len(calls) == 3:
                raise aiosqlite.OperationalError("disk I/O error")
            await original_save(task)

        monkeypatch.setattr(store_group.task_store, "save_task", flaky_save)
        result = await service.auto_mark_overdue_tasks(now=CHECK_AT, max_batch_size=4)
        monkeypatch.undo()

        assert result.success
        assert result.marked_count == 2
        assert len(result.errors) == 2
        assert all(e.startswith("Task ") for e in result.errors)
        assert all(e.endswith(STORE_UNAVAILABLE_MESSAGE) for e in result.errors)
        assert not any("disk I/O" in e for e in result.errors)

        statuses = [(await service.get_task(t.task_id)).status for t in tasks]
        assert statuses.count(TaskStatus.OVERDUE) == 2
        assert statuses.count(TaskStatus.IN_PROGRESS) == 2

    @pytest.mark.parametrize("max_batch_size", [0, 1])
    async def test_batch_size_below_one_task_rejected(self, service, seed_task, max_batch_size):
        task = await seed_task(due_date=DUE)
        with pytest.raises(ValueError, match="at least 2"):
            await service.auto_mark_overdue_tasks(now=CHECK_AT, max_batch_size=max_batch_size)
        assert (await service.get_task(task.task_id)).status == TaskStatus.IN_PROGRESS

    async def test_minimum_batch_commits_one_task_per_chunk(
        self, service, seed_task, store_group, monkeypatch
    ):
        for _ in range(3):
            await seed_task(due_date=DUE)

        commits = []
        original_commit = store_group.conn.commit

        async def counting_commit():
            commits.append(1)
            await original_commit()

        monkeypatch.setattr(store_group.conn, "commit", counting_commit)
        result = await service.auto_mark_overdue_tasks(now=CHECK_AT, max_batch_size=2)

        assert result.marked_count == 3
        assert len(commits) == 3
