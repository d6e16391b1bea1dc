"""评分重算队列 SQLite 实现

FIFO：按 created_at、request_id（ULID 时间有序）出队。
写入方法不自动提交事务，需由调用方管理事务。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import RecalcReason
from ..models.score import ScoreRecalcRequest
from ..models.task import iso_utc


class SqliteRecalcQueueStore:
    """ScoreRecalcRequest 队列的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def enqueue(self, request: ScoreRecalcRequest) -> None:
        await self._conn.execute(
            """
            INSERT INTO score_recalc_queue (request_id, user_id, reason, task_id,
                                            triggered_by, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                request.request_id,
                request.user_id,
                request.reason.value,
                request.task_id,
                request.triggered_by,
                iso_utc(request.created_at),
            ),
        )

    async def list_pending(self, limit: int) -> list[ScoreRecalcRequest]:
        """取最早的 limit 条待处理请求"""
        cursor = await self._conn.execute(
            """
            SELECT request_id, user_id, reason, task_id, triggered_by, created_at
            FROM score_recalc_queue
            ORDER BY created_at ASC, request_id ASC
            LIMIT ?
            """,
            (limit,),
        )
        rows = await cursor.fetchall()
        return [
            ScoreRecalcRequest(
                request_id=row[0],
                user_id=row[1],
                reason=RecalcReason(row[2]),
                task_id=row[3],
                triggered_by=row[4],
                created_at=datetime.fromisoformat(row[5]),
            )
            for row in rows
        ]

    async def delete(self, request_id: str) -> None:
        await self._conn.execute(
            "DELETE FROM score_recalc_queue WHERE request_id = ?",
            (request_id,),
        )

    async def count(self) -> int:
        cursor = await self._conn.execute("SELECT COUNT(*) FROM score_recalc_queue")
        row = await cursor.fetchone()
        return int(row[0]) if row else 0
