"""SQLite 数据库初始化

PRAGMA 配置 + 表 DDL + 索引创建。
任务与延期以 JSON 文档（body 列）保存，检索用字段冗余为普通列。
"""

import aiosqlite

# tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id      TEXT PRIMARY KEY,
    task_number  TEXT,
    status       TEXT NOT NULL,
    deleted      INTEGER NOT NULL DEFAULT 0,
    assigned_to  TEXT NOT NULL DEFAULT '[]',
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    body         TEXT NOT NULL
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status_deleted ON tasks(status, deleted);",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_number ON tasks(task_number) "
    "WHERE task_number IS NOT NULL;",
]

# 软删除归档
_DELETED_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS deleted_tasks (
    task_id          TEXT PRIMARY KEY,
    deleted_by       TEXT NOT NULL,
    deleted_at       TEXT NOT NULL,
    deletion_reason  TEXT NOT NULL DEFAULT 'user_requested',
    body             TEXT NOT NULL
);
"""

# task_extensions 表 DDL
_EXTENSIONS_DDL = """
CREATE TABLE IF NOT EXISTS task_extensions (
    extension_id  TEXT PRIMARY KEY,
    task_id       TEXT NOT NULL,
    status        TEXT NOT NULL DEFAULT 'pending',
    created_at    TEXT NOT NULL,
    body          TEXT NOT NULL,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id)
);
"""

_EXTENSIONS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_extensions_task ON task_extensions(task_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_extensions_status ON task_extensions(status);",
]

# 审计日志（append-only）
_AUDIT_LOGS_DDL = """
CREATE TABLE IF NOT EXISTS audit_logs (
    audit_id        TEXT PRIMARY KEY,
    entity_type     TEXT NOT NULL,
    entity_id       TEXT NOT NULL,
    operation       TEXT NOT NULL,
    user_id         TEXT NOT NULL,
    ts              TEXT NOT NULL,
    changes         TEXT NOT NULL DEFAULT '{}',
    previous_state  TEXT NOT NULL DEFAULT '{}'
);
"""

# 任务活动日志（append-only）
_ACTIVITY_LOGS_DDL = """
CREATE TABLE IF NOT EXISTS activity_logs (
    activity_id  TEXT PRIMARY KEY,
    task_id      TEXT NOT NULL,
    user_id      TEXT NOT NULL,
    action       TEXT NOT NULL,
    details      TEXT NOT NULL DEFAULT '',
    metadata     TEXT NOT NULL DEFAULT '{}',
    ts           TEXT NOT NULL
);
"""

_LOG_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_audit_entity ON audit_logs(entity_id, ts);",
    "CREATE INDEX IF NOT EXISTS idx_activity_task ON activity_logs(task_id, ts);",
]

# 评分快照：(user_id, period) 唯一
_SCORE_SNAPSHOTS_DDL = """
CREATE TABLE IF NOT EXISTS score_snapshots (
    snapshot_id   TEXT PRIMARY KEY,
    user_id       TEXT NOT NULL,
    period_start  TEXT NOT NULL,
    period_end    TEXT NOT NULL,
    version       INTEGER NOT NULL DEFAULT 1,
    body          TEXT NOT NULL
);
"""

# 评分重算队列
_RECALC_QUEUE_DDL = """
CREATE TABLE IF NOT EXISTS score_recalc_queue (
    request_id    TEXT PRIMARY KEY,
    user_id       TEXT NOT NULL,
    reason        TEXT NOT NULL,
    task_id       TEXT,
    triggered_by  TEXT NOT NULL,
    created_at    TEXT NOT NULL
);
"""

_SCORE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_snapshots_user ON score_snapshots(user_id, period_start DESC);",
    "CREATE INDEX IF NOT EXISTS idx_recalc_created ON score_recalc_queue(created_at, request_id);",
]

# 评分权重配置（单行）
_SCORING_CONFIG_DDL = """
CREATE TABLE IF NOT EXISTS scoring_config (
    config_id  TEXT PRIMARY KEY,
    body       TEXT NOT NULL
);
"""

# 顺序编号计数器
_COUNTERS_DDL = """
CREATE TABLE IF NOT EXISTS counters (
    name   TEXT PRIMARY KEY,
    value  INTEGER NOT NULL DEFAULT 0
);
"""

# 身份目录（仅用于存在性校验）
_USERS_DDL = """
CREATE TABLE IF NOT EXISTS users (
    user_id       TEXT PRIMARY KEY,
    display_name  TEXT NOT NULL DEFAULT '',
    created_at    TEXT NOT NULL
);
"""


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    for ddl in (
        _TASKS_DDL,
        _DELETED_TASKS_DDL,
        _EXTENSIONS_DDL,
        _AUDIT_LOGS_DDL,
        _ACTIVITY_LOGS_DDL,
        _SCORE_SNAPSHOTS_DDL,
        _RECALC_QUEUE_DDL,
        _SCORING_CONFIG_DDL,
        _COUNTERS_DDL,
        _USERS_DDL,
    ):
        await conn.execute(ddl)

    for idx_sql in _TASKS_INDEXES + _EXTENSIONS_INDEXES + _LOG_INDEXES + _SCORE_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效"""
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
