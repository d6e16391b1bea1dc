"""CLI 入口模块 -- python -m workpulse <command>

支持的命令：
  init-db                          初始化数据库（建表 + 索引）
  mark-overdue                     扫描并标记逾期任务
  process-recalc-queue [batch_size]  消费评分重算队列

mark-overdue 与 process-recalc-queue 供 cron 定时调用，重复运行无副作用。
"""

import asyncio
import sys

from .config import get_db_path, load_settings
from .logging_config import setup_logging

_USAGE = [
    "用法: python -m workpulse <command>",
    "命令:",
    "  init-db                            初始化数据库",
    "  mark-overdue                       扫描并标记逾期任务",
    "  process-recalc-queue [batch_size]  消费评分重算队列",
]


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("\n".join(_USAGE))
        sys.exit(1)

    setup_logging()
    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_database())
    elif command == "mark-overdue":
        exit_code = asyncio.run(mark_overdue())
        sys.exit(exit_code)
    elif command == "process-recalc-queue":
        batch_size = None
        if len(sys.argv) > 2:
            try:
                batch_size = int(sys.argv[2])
            except ValueError:
                print(f"batch_size 必须为正整数: {sys.argv[2]}")
                sys.exit(1)
            if batch_size < 1:
                print(f"batch_size 必须为正整数: {sys.argv[2]}")
                sys.exit(1)
        exit_code = asyncio.run(process_recalc_queue(batch_size))
        sys.exit(exit_code)
    else:
        print(f"未知命令: {command}")
        print("可用命令: init-db, mark-overdue, process-recalc-queue")
        sys.exit(1)


async def init_database() -> None:
    """创建数据库文件并初始化表结构"""
    from .store import create_store_group, verify_wal_mode

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    try:
        wal = await verify_wal_mode(store_group.conn)
        print(f"初始化完成，WAL 模式: {'开启' if wal else '未开启'}")
    finally:
        await store_group.close()


async def mark_overdue() -> int:
    """执行逾期扫描，有失败任务时返回非零退出码"""
    from .services import ScoreService, TaskOperationService
    from .store import create_store_group

    settings = load_settings()
    store_group = await create_store_group(get_db_path())
    try:
        service = TaskOperationService(
            store_group,
            ScoreService(store_group, settings=settings),
            settings=settings,
        )
        result = await service.auto_mark_overdue_tasks()
    finally:
        await store_group.close()

    print(f"标记逾期 {result.marked_count} 个任务，失败 {len(result.errors)} 个")
    for error in result.errors:
        print(f"  - {error}")
    return 0 if result.success and not result.errors else 2


async def process_recalc_queue(batch_size: int | None = None) -> int:
    """消费评分重算队列，有失败请求时返回非零退出码"""
    from .services import ScoreService
    from .store import create_store_group

    settings = load_settings()
    store_group = await create_store_group(get_db_path())
    try:
        service = ScoreService(store_group, settings=settings)
        result = await service.process_recalculation_queue(batch_size)
        remaining = await store_group.queue_store.count()
    finally:
        await store_group.close()

    print(f"处理 {result.processed} 条重算请求，失败 {len(result.errors)} 条，剩余 {remaining} 条")
    for error in result.errors:
        print(f"  - {error}")
    return 0 if result.success and not result.errors else 2


if __name__ == "__main__":
    main()
