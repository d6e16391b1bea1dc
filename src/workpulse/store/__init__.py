"""WorkPulse Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import aiosqlite

from .audit_store import SqliteAuditStore
from .counter_store import SqliteCounterStore
from .extension_store import SqliteExtensionStore
from .protocols import AuditSink, UserDirectory
from .queue_store import SqliteRecalcQueueStore
from .score_store import SqliteScoreStore
from .sqlite_init import init_db, verify_wal_mode
from .task_store import SqliteTaskStore
from .transaction import WriteBatch, run_in_transaction
from .user_store import SqliteUserStore

T = TypeVar("T")


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接与写锁"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.write_lock = asyncio.Lock()
        self.task_store = SqliteTaskStore(conn)
        self.extension_store = SqliteExtensionStore(conn)
        self.audit_store = SqliteAuditStore(conn)
        self.score_store = SqliteScoreStore(conn)
        self.queue_store = SqliteRecalcQueueStore(conn)
        self.user_store = SqliteUserStore(conn)
        self.counter_store = SqliteCounterStore(conn)

    def batch(self) -> WriteBatch:
        """新建原子写入批次"""
        return WriteBatch(self.conn, self.write_lock)

    async def transaction(
        self,
        fn: Callable[[aiosqlite.Connection], Awaitable[T]],
        max_retries: int = 3,
    ) -> T:
        """读-改-写事务"""
        return await run_in_transaction(self.conn, self.write_lock, fn, max_retries)

    async def close(self) -> None:
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteExtensionStore",
    "SqliteAuditStore",
    "SqliteScoreStore",
    "SqliteRecalcQueueStore",
    "SqliteUserStore",
    "SqliteCounterStore",
    "UserDirectory",
    "AuditSink",
    "WriteBatch",
    "run_in_transaction",
    "init_db",
    "verify_wal_mode",
]
