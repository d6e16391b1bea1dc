"""存储与事务单元测试

测试内容：
1. WriteBatch 原子提交与整体回滚
2. run_in_transaction 锁冲突重试
3. 顺序编号计数器
4. 各 Store 查询行为
"""

import asyncio
import sqlite3
from datetime import UTC, datetime
from functools import partial

import pytest

from workpulse.models import (
    ActivityLogEntry,
    RecalcReason,
    ScoreRecalcRequest,
    TaskStatus,
)
from workpulse.store import create_store_group, run_in_transaction, verify_wal_mode


class TestWriteBatch:
    async def test_batch_commits_all_ops(self, store_group, make_task):
        task = make_task()
        activity = ActivityLogEntry(
            activity_id="act-1",
            task_id=task.task_id,
            user_id="alice",
            action="created",
            details="Task created",
            timestamp=datetime(2024, 1, 1, tzinfo=UTC),
        )
        batch = store_group.batch()
        batch.add(partial(store_group.task_store.create_task, task))
        batch.add(partial(store_group.audit_store.append_activity, activity))
        assert len(batch) == 2
        await batch.commit()

        assert await store_group.task_store.get_task(task.task_id) == task
        log = await store_group.audit_store.get_activity_log(task.task_id)
        assert [e.activity_id for e in log] == ["act-1"]

    async def test_batch_rolls_back_on_failure(self, store_group, make_task):
        """任一写操作失败时整体回滚"""
        task = make_task()

        async def _boom() -> None:
            raise sqlite3.OperationalError("disk I/O error")

        batch = store_group.batch()
        batch.add(partial(store_group.task_store.create_task, task))
        batch.add(_boom)
        with pytest.raises(sqlite3.OperationalError):
            await batch.commit()

        assert await store_group.task_store.get_task(task.task_id) is None

    async def test_empty_batch_is_noop(self, store_group):
        await store_group.batch().commit()


class TestRunInTransaction:
    async def test_retries_on_lock_conflict(self, store_group):
        attempts = []

        async def _body(conn):
            attempts.append(1)
            if len(attempts) < 3:
                raise sqlite3.OperationalError("database is locked")
            return await store_group.counter_store.next_value("retry")

        value = await run_in_transaction(
            store_group.conn, store_group.write_lock, _body, max_retries=3
        )
        assert value == 1
        assert len(attempts) == 3

    async def test_gives_up_after_max_retries(self, store_group):
        async def _body(conn):
            raise sqlite3.OperationalError("database is busy")

        with pytest.raises(sqlite3.OperationalError):
            await store_group.transaction(_body, max_retries=2)

    async def test_other_errors_not_retried(self, store_group):
        attempts = []

        async def _body(conn):
            attempts.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await store_group.transaction(_body)
        assert len(attempts) == 1


class TestCounter:
    async def test_sequential_values(self, store_group):
        values = []
        for _ in range(3):
            values.append(
                await store_group.transaction(
                    lambda conn: store_group.counter_store.next_value("tasks")
                )
            )
        assert values == [1, 2, 3]
        assert await store_group.counter_store.current_value("tasks") == 3

    async def test_rollback_does_not_consume_value(self, store_group):
        async def _body(conn):
            await store_group.counter_store.next_value("tasks")
            raise ValueError("abort")

        with pytest.raises(ValueError):
            await store_group.transaction(_body)
        assert await store_group.counter_store.current_value("tasks") == 0


class TestCrossConnection:
    """两个 StoreGroup 共享同一数据库文件（如 API 进程与 cron 进程）"""

    async def test_other_connection_cannot_write_inside_transaction(self, tmp_path):
        db_path = str(tmp_path / "shared.db")
        first = await create_store_group(db_path)
        second = await create_store_group(db_path)
        await second.conn.execute("PRAGMA busy_timeout = 0;")
        try:

            async def _next(group):
                return await group.transaction(
                    lambda conn: group.counter_store.next_value("tasks"), max_retries=1
                )

            async def _body(conn):
                value = await first.counter_store.next_value("tasks")
                # 第一个连接持有写锁期间，第二个连接的计数器事务必须冲突
                with pytest.raises(sqlite3.OperationalError):
                    await _next(second)
                return value

            assert await first.transaction(_body) == 1
            assert await _next(second) == 2
            assert await first.counter_store.current_value("tasks") == 2
        finally:
            await first.close()
            await second.close()

    async def test_concurrent_counters_never_duplicate(self, tmp_path):
        db_path = str(tmp_path / "shared.db")
        first = await create_store_group(db_path)
        second = await create_store_group(db_path)
        try:

            async def _next(group):
                return await group.transaction(
                    lambda conn: group.counter_store.next_value("tasks"), max_retries=5
                )

            values = await asyncio.gather(
                *(_next(group) for _ in range(10) for group in (first, second))
            )
        finally:
            await first.close()
            await second.close()

        assert sorted(values) == list(range(1, 21))


class TestTaskStoreQueries:
    async def test_wal_mode_enabled(self, store_group):
        assert await verify_wal_mode(store_group.conn) is True

    async def test_list_open_tasks_excludes_closed_and_deleted(self, store_group, seed_task):
        open_task = await seed_task()
        await seed_task(status=TaskStatus.COMPLETED)
        await seed_task(status=TaskStatus.CANCELLED)
        await seed_task(deleted=True)

        open_tasks = await store_group.task_store.list_open_tasks()
        assert [t.task_id for t in open_tasks] == [open_task.task_id]

        all_tasks = await store_group.task_store.list_tasks(include_deleted=True)
        assert len(all_tasks) == 4
        assert len(await store_group.task_store.list_tasks()) == 3

    async def test_list_tasks_for_user_uses_assignee_membership(
        self, store_group, seed_task
    ):
        shared = await seed_task(assigned_to=["alice", "bob"])
        await seed_task(assigned_to=["carol"])

        bob_tasks = await store_group.task_store.list_tasks_for_user("bob")
        assert [t.task_id for t in bob_tasks] == [shared.task_id]

    async def test_user_directory_find_missing(self, store_group):
        await store_group.user_store.add_user("alice")
        await store_group.conn.commit()
        missing = await store_group.user_store.find_missing(["alice", "ghost", "ghost"])
        assert missing == ["ghost"]


class TestQueueStore:
    async def test_fifo_order(self, store_group):
        for i, user in enumerate(["alice", "bob", "carol"]):
            await store_group.queue_store.enqueue(
                ScoreRecalcRequest(
                    request_id=f"req-{i}",
                    user_id=user,
                    reason=RecalcReason.MANUAL,
                    triggered_by="admin",
                    created_at=datetime(2024, 1, 1, 10 - i, tzinfo=UTC),
                )
            )
        await store_group.conn.commit()

        pending = await store_group.queue_store.list_pending(2)
        assert [r.user_id for r in pending] == ["carol", "bob"]
        assert await store_group.queue_store.count() == 3
