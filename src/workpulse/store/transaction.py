"""原子写入封装

- WriteBatch: 收集多文档变更，commit 时在同一 SQLite 事务内一次性落盘，
  失败则整体回滚（不会出现部分生效的逻辑操作）。
- run_in_transaction: 读-改-写事务（计数器、快照版本），以 BEGIN IMMEDIATE 开启，
  锁冲突时自动重试。

两者都持有 StoreGroup 的写锁，保证共享连接上的逻辑操作不交错；
跨连接（跨进程）的串行化由 SQLite 写锁保证。
"""

import asyncio
import sqlite3
from collections.abc import Awaitable, Callable
from typing import TypeVar

import aiosqlite
import structlog

log = structlog.get_logger()

T = TypeVar("T")

WriteOp = Callable[[], Awaitable[None]]


class WriteBatch:
    """原子批量写入

    用法：
        batch = store_group.batch()
        batch.add(partial(task_store.save_task, task))
        batch.add(partial(audit_store.append_audit_log, entry))
        await batch.commit()
    """

    def __init__(self, conn: aiosqlite.Connection, lock: asyncio.Lock) -> None:
        self._conn = conn
        self._lock = lock
        self._ops: list[WriteOp] = []

    def add(self, op: WriteOp) -> None:
        """追加一个写操作（尚未执行）"""
        self._ops.append(op)

    def __len__(self) -> int:
        return len(self._ops)

    async def commit(self) -> None:
        """在同一事务内执行全部写操作并提交

        Raises:
            Exception: 任一写操作或提交失败时回滚并原样抛出
        """
        ops, self._ops = self._ops, []
        if not ops:
            return
        async with self._lock:
            try:
                for op in ops:
                    await op()
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise


def _is_lock_conflict(error: Exception) -> bool:
    if not isinstance(error, sqlite3.OperationalError):
        return False
    text = str(error).lower()
    return "locked" in text or "busy" in text


async def run_in_transaction(
    conn: aiosqlite.Connection,
    lock: asyncio.Lock,
    fn: Callable[[aiosqlite.Connection], Awaitable[T]],
    max_retries: int = 3,
) -> T:
    """在单个事务内执行读-改-写，锁冲突时重试

    Args:
        conn: 数据库连接
        lock: StoreGroup 写锁
        fn: 事务体，接收连接，可读取自身未提交的写入
        max_retries: 最大尝试次数

    Returns:
        fn 的返回值
    """
    for attempt in range(1, max_retries + 1):
        async with lock:
            try:
                # 读之前先取得数据库写锁，其他连接的并发写入在此处以 busy/locked 冲突出现
                if not conn.in_transaction:
                    await conn.execute("BEGIN IMMEDIATE")
                result = await fn(conn)
                await conn.commit()
                return result
            except Exception as e:
                await conn.rollback()
                if not (_is_lock_conflict(e) and attempt < max_retries):
                    raise
                log.warning(
                    "transaction_conflict_retry",
                    attempt=attempt,
                    error_type=type(e).__name__,
                )
        # 释放锁后退避重试
        await asyncio.sleep(0.05 * attempt)

    raise RuntimeError("transaction failed after retries")
