"""ScoreStore SQLite 实现 -- 评分快照 + 权重配置

写入方法不自动提交事务，需由调用方管理事务。
"""

import aiosqlite

from ..models.score import ScoreSnapshot, ScoringConfig
from ..models.task import iso_utc

_SCORING_CONFIG_ID = "scoring"


class SqliteScoreStore:
    """评分快照与权重配置的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get_snapshot(self, snapshot_id: str) -> ScoreSnapshot | None:
        cursor = await self._conn.execute(
            "SELECT body FROM score_snapshots WHERE snapshot_id = ?",
            (snapshot_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return ScoreSnapshot.model_validate_json(row[0])

    async def upsert_snapshot(self, snapshot: ScoreSnapshot) -> None:
        """写入快照（同 snapshot_id 覆盖）"""
        await self._conn.execute(
            """
            INSERT INTO score_snapshots (snapshot_id, user_id, period_start,
                                         period_end, version, body)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(snapshot_id) DO UPDATE SET
                version = excluded.version,
                body = excluded.body
            """,
            (
                snapshot.snapshot_id,
                snapshot.user_id,
                iso_utc(snapshot.period_start),
                iso_utc(snapshot.period_end),
                snapshot.version,
                snapshot.model_dump_json(),
            ),
        )

    async def list_snapshots_for_user(
        self,
        user_id: str,
        limit: int = 12,
    ) -> list[ScoreSnapshot]:
        """查询用户的评分快照，按周期开始时间倒序"""
        cursor = await self._conn.execute(
            """
            SELECT body FROM score_snapshots
            WHERE user_id = ?
            ORDER BY period_start DESC
            LIMIT ?
            """,
            (user_id, limit),
        )
        rows = await cursor.fetchall()
        return [ScoreSnapshot.model_validate_json(row[0]) for row in rows]

    async def get_scoring_config(self) -> ScoringConfig | None:
        """查询已保存的权重配置，未配置时返回 None"""
        cursor = await self._conn.execute(
            "SELECT body FROM scoring_config WHERE config_id = ?",
            (_SCORING_CONFIG_ID,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return ScoringConfig.model_validate_json(row[0])

    async def save_scoring_config(self, config: ScoringConfig) -> None:
        await self._conn.execute(
            """
            INSERT INTO scoring_config (config_id, body) VALUES (?, ?)
            ON CONFLICT(config_id) DO UPDATE SET body = excluded.body
            """,
            (_SCORING_CONFIG_ID, config.model_dump_json()),
        )
