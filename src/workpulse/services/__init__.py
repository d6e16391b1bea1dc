"""WorkPulse Services -- 任务编排与评分服务"""

from .score_service import ScoreService, snapshot_key
from .task_operations import TaskOperationService

__all__ = [
    "ScoreService",
    "TaskOperationService",
    "snapshot_key",
]
