"""身份目录 SQLite 实现 -- 仅提供用户存在性查询"""

from collections.abc import Iterable

import aiosqlite

from ..models.task import iso_utc, utc_now


class SqliteUserStore:
    """UserDirectory 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def add_user(self, user_id: str, display_name: str = "") -> None:
        """登记用户（不自动提交）"""
        await self._conn.execute(
            """
            INSERT OR IGNORE INTO users (user_id, display_name, created_at)
            VALUES (?, ?, ?)
            """,
            (user_id, display_name, iso_utc(utc_now())),
        )

    async def find_missing(self, user_ids: Iterable[str]) -> list[str]:
        """返回不存在的用户 ID（保持输入顺序，去重）"""
        wanted = list(dict.fromkeys(user_ids))
        if not wanted:
            return []
        placeholders = ", ".join("?" for _ in wanted)
        cursor = await self._conn.execute(
            f"SELECT user_id FROM users WHERE user_id IN ({placeholders})",
            wanted,
        )
        found = {row[0] for row in await cursor.fetchall()}
        return [uid for uid in wanted if uid not in found]
