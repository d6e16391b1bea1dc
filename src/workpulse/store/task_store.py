"""TaskStore SQLite 实现

任务整体以 JSON 文档保存在 body 列；status / deleted / assigned_to 冗余为普通列供查询。
写入方法不自动提交事务，需由调用方（WriteBatch / run_in_transaction）管理事务。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.audit import ArchivedTask
from ..models.enums import CLOSED_STATES
from ..models.task import Task, iso_utc


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task) -> None:
        """插入任务记录"""
        await self._conn.execute(
            """
            INSERT INTO tasks (task_id, task_number, status, deleted, assigned_to,
                               created_at, updated_at, body)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            self._to_row(task),
        )

    async def save_task(self, task: Task) -> None:
        """整体覆盖写入任务文档"""
        task_id, task_number, status, deleted, assigned_to, _, updated_at, body = (
            self._to_row(task)
        )
        await self._conn.execute(
            """
            UPDATE tasks
            SET task_number = ?, status = ?, deleted = ?, assigned_to = ?,
                updated_at = ?, body = ?
            WHERE task_id = ?
            """,
            (task_number, status, deleted, assigned_to, updated_at, body, task_id),
        )

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务（含软删除任务）"""
        cursor = await self._conn.execute(
            "SELECT body FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return Task.model_validate_json(row[0])

    async def list_tasks(
        self,
        status: str | None = None,
        include_deleted: bool = False,
    ) -> list[Task]:
        """查询任务列表，按 created_at 正序"""
        clauses: list[str] = []
        params: list = []
        if status:
            clauses.append("status = ?")
            params.append(status)
        if not include_deleted:
            clauses.append("deleted = 0")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cursor = await self._conn.execute(
            f"SELECT body FROM tasks {where} ORDER BY created_at ASC, task_id ASC",
            params,
        )
        rows = await cursor.fetchall()
        return [Task.model_validate_json(row[0]) for row in rows]

    async def list_open_tasks(self) -> list[Task]:
        """未删除且未关闭（非 completed/cancelled）的任务"""
        closed = sorted(s.value for s in CLOSED_STATES)
        placeholders = ", ".join("?" for _ in closed)
        cursor = await self._conn.execute(
            f"""
            SELECT body FROM tasks
            WHERE deleted = 0 AND status NOT IN ({placeholders})
            ORDER BY created_at ASC, task_id ASC
            """,
            closed,
        )
        rows = await cursor.fetchall()
        return [Task.model_validate_json(row[0]) for row in rows]

    async def list_tasks_for_user(self, user_id: str) -> list[Task]:
        """assigned_to 包含该用户的未删除任务"""
        cursor = await self._conn.execute(
            """
            SELECT body FROM tasks
            WHERE deleted = 0
              AND EXISTS (SELECT 1 FROM json_each(tasks.assigned_to) WHERE value = ?)
            ORDER BY created_at ASC, task_id ASC
            """,
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [Task.model_validate_json(row[0]) for row in rows]

    async def archive_task(
        self,
        task: Task,
        deleted_by: str,
        deleted_at: datetime,
        deletion_reason: str = "user_requested",
    ) -> None:
        """将删除前的任务文档原样归档"""
        await self._conn.execute(
            """
            INSERT OR REPLACE INTO deleted_tasks (task_id, deleted_by, deleted_at,
                                                  deletion_reason, body)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                task.task_id,
                deleted_by,
                iso_utc(deleted_at),
                deletion_reason,
                task.model_dump_json(),
            ),
        )

    async def get_archived_task(self, task_id: str) -> ArchivedTask | None:
        """查询归档的任务"""
        cursor = await self._conn.execute(
            """
            SELECT task_id, deleted_by, deleted_at, deletion_reason, body
            FROM deleted_tasks WHERE task_id = ?
            """,
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return ArchivedTask(
            task_id=row[0],
            deleted_by=row[1],
            deleted_at=datetime.fromisoformat(row[2]),
            deletion_reason=row[3],
            body=json.loads(row[4]),
        )

    @staticmethod
    def _to_row(task: Task) -> tuple:
        return (
            task.task_id,
            task.task_number,
            task.status.value,
            1 if task.deleted else 0,
            json.dumps(sorted(set(task.assigned_to)), ensure_ascii=False),
            iso_utc(task.created_at),
            iso_utc(task.updated_at),
            task.model_dump_json(),
        )
