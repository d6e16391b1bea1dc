"""AuditStore SQLite 实现

审计日志与活动日志均 append-only：只允许插入，不允许更新或删除。
注意：写入方法不自动提交事务，需由调用方管理事务。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.audit import ActivityLogEntry, AuditLogEntry
from ..models.enums import AuditOperation
from ..models.task import iso_utc


class SqliteAuditStore:
    """审计 / 活动日志的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_audit_log(self, entry: AuditLogEntry) -> None:
        """追加审计日志"""
        dumped = entry.model_dump(mode="json")
        await self._conn.execute(
            """
            INSERT INTO audit_logs (audit_id, entity_type, entity_id, operation,
                                    user_id, ts, changes, previous_state)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.audit_id,
                entry.entity_type,
                entry.entity_id,
                entry.operation.value,
                entry.user_id,
                iso_utc(entry.timestamp),
                json.dumps(dumped["changes"], ensure_ascii=False),
                json.dumps(dumped["previous_state"], ensure_ascii=False),
            ),
        )

    async def append_activity(self, entry: ActivityLogEntry) -> None:
        """追加任务活动日志"""
        dumped = entry.model_dump(mode="json")
        await self._conn.execute(
            """
            INSERT INTO activity_logs (activity_id, task_id, user_id, action,
                                       details, metadata, ts)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.activity_id,
                entry.task_id,
                entry.user_id,
                entry.action,
                entry.details,
                json.dumps(dumped["metadata"], ensure_ascii=False),
                iso_utc(entry.timestamp),
            ),
        )

    async def get_audit_logs(self, entity_id: str) -> list[AuditLogEntry]:
        """查询实体的审计日志，按时间正序"""
        cursor = await self._conn.execute(
            """
            SELECT audit_id, entity_type, entity_id, operation, user_id, ts,
                   changes, previous_state
            FROM audit_logs WHERE entity_id = ? ORDER BY ts ASC, audit_id ASC
            """,
            (entity_id,),
        )
        rows = await cursor.fetchall()
        return [
            AuditLogEntry(
                audit_id=row[0],
                entity_type=row[1],
                entity_id=row[2],
                operation=AuditOperation(row[3]),
                user_id=row[4],
                timestamp=datetime.fromisoformat(row[5]),
                changes=json.loads(row[6]) if row[6] else {},
                previous_state=json.loads(row[7]) if row[7] else {},
            )
            for row in rows
        ]

    async def get_activity_log(self, task_id: str) -> list[ActivityLogEntry]:
        """查询任务活动日志，按时间正序"""
        cursor = await self._conn.execute(
            """
            SELECT activity_id, task_id, user_id, action, details, metadata, ts
            FROM activity_logs WHERE task_id = ? ORDER BY ts ASC, activity_id ASC
            """,
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [
            ActivityLogEntry(
                activity_id=row[0],
                task_id=row[1],
                user_id=row[2],
                action=row[3],
                details=row[4],
                metadata=json.loads(row[5]) if row[5] else {},
                timestamp=datetime.fromisoformat(row[6]),
            )
            for row in rows
        ]
