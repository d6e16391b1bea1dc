"""顺序编号计数器

必须在 run_in_transaction 的事务体内调用：读-自增-写在同一事务内完成，
调用方在同一事务中可读到自己的写入。
"""

import aiosqlite


class SqliteCounterStore:
    """共享计数器文档的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def next_value(self, name: str) -> int:
        """计数器自增并返回新值（首次使用时从 1 开始）

        自增在单条语句内完成，随后读回本事务内的写入。
        """
        await self._conn.execute(
            """
            INSERT INTO counters (name, value) VALUES (?, 1)
            ON CONFLICT(name) DO UPDATE SET value = value + 1
            """,
            (name,),
        )
        return await self.current_value(name)

    async def current_value(self, name: str) -> int:
        cursor = await self._conn.execute(
            "SELECT value FROM counters WHERE name = ?",
            (name,),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0
