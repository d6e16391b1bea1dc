"""WorkPulse 测试配置 -- 共享 fixture"""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from ulid import ULID

from workpulse.config import OperationsSettings
from workpulse.models import Task, TaskStatus
from workpulse.services import ScoreService, TaskOperationService
from workpulse.store import StoreGroup, create_store_group

# 固定的测试基准时间（周三）
NOW = datetime(2024, 1, 17, 12, 0, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings() -> OperationsSettings:
    return OperationsSettings()


@pytest_asyncio.fixture
async def store_group(tmp_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """已初始化的临时数据库 Store 组"""
    group = await create_store_group(str(tmp_path / "workpulse_test.db"))
    yield group
    await group.close()


@pytest_asyncio.fixture
async def score_service(store_group: StoreGroup, settings: OperationsSettings) -> ScoreService:
    return ScoreService(store_group, settings=settings)


@pytest_asyncio.fixture
async def service(
    store_group: StoreGroup,
    score_service: ScoreService,
    settings: OperationsSettings,
) -> TaskOperationService:
    """TaskOperationService，预先登记 alice / bob / carol 三个用户"""
    for user_id in ("alice", "bob", "carol"):
        await store_group.user_store.add_user(user_id, user_id.title())
    await store_group.conn.commit()
    return TaskOperationService(store_group, score_service, settings=settings)


@pytest.fixture
def make_task() -> Callable[..., Task]:
    """构造 Task（默认：in_progress、负责人 alice、创建于 2024-01-01）"""

    def _make(**overrides) -> Task:
        created = overrides.pop("created_at", datetime(2024, 1, 1, 9, 0, tzinfo=UTC))
        fields = {
            "task_id": str(ULID()),
            "title": "季度报告",
            "status": TaskStatus.IN_PROGRESS,
            "assigned_to": ["alice"],
            "created_at": created,
            "updated_at": overrides.pop("updated_at", created),
        }
        fields.update(overrides)
        return Task(**fields)

    return _make


@pytest_asyncio.fixture
async def seed_task(
    store_group: StoreGroup,
    make_task: Callable[..., Task],
) -> Callable[..., object]:
    """构造并直接写入 Task（绕过编排服务，便于构造任意状态）"""

    async def _seed(**overrides) -> Task:
        task = make_task(**overrides)
        await store_group.task_store.create_task(task)
        await store_group.conn.commit()
        return task

    return _seed
