"""ExtensionStore SQLite 实现

写入方法不自动提交事务，需由调用方管理事务。
"""

import aiosqlite

from ..models.extension import TaskExtension
from ..models.task import iso_utc


class SqliteExtensionStore:
    """TaskExtension 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_extension(self, extension: TaskExtension) -> None:
        """插入延期申请"""
        await self._conn.execute(
            """
            INSERT INTO task_extensions (extension_id, task_id, status, created_at, body)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                extension.extension_id,
                extension.task_id,
                extension.status.value,
                iso_utc(extension.created_at),
                extension.model_dump_json(),
            ),
        )

    async def save_extension(self, extension: TaskExtension) -> None:
        """覆盖写入延期申请（审批结果）"""
        await self._conn.execute(
            """
            UPDATE task_extensions SET status = ?, body = ?
            WHERE extension_id = ?
            """,
            (
                extension.status.value,
                extension.model_dump_json(),
                extension.extension_id,
            ),
        )

    async def get_extension(self, extension_id: str) -> TaskExtension | None:
        cursor = await self._conn.execute(
            "SELECT body FROM task_extensions WHERE extension_id = ?",
            (extension_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return TaskExtension.model_validate_json(row[0])

    async def list_extensions(
        self,
        task_id: str | None = None,
        status: str | None = None,
    ) -> list[TaskExtension]:
        """查询延期申请，按申请时间正序"""
        clauses: list[str] = []
        params: list = []
        if task_id:
            clauses.append("task_id = ?")
            params.append(task_id)
        if status:
            clauses.append("status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cursor = await self._conn.execute(
            f"SELECT body FROM task_extensions {where} ORDER BY created_at ASC",
            params,
        )
        rows = await cursor.fetchall()
        return [TaskExtension.model_validate_json(row[0]) for row in rows]
