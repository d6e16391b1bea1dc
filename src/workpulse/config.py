"""配置模块 -- 可通过环境变量覆盖

包含数据库路径与批处理作业的可调参数。
"""

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("WORKPULSE_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "WORKPULSE_DB_PATH",
        str(_get_base_dir() / "sqlite" / "workpulse.db"),
    )


# 任务编号前缀与补零位数（T-0001）
TASK_NUMBER_PREFIX: str = "T-"
TASK_NUMBER_WIDTH: int = 4

# 回填完成时间超过该天数时给出警告
BACKDATE_WARNING_DAYS: int = 7

# 滚动平均窗口（天）
ROLLING_WINDOWS_DAYS: tuple[int, int, int] = (7, 30, 90)


class OperationsSettings(BaseModel):
    """批处理作业配置

    环境变量:
        WORKPULSE_MAX_BATCH_SIZE: 单次原子提交的最大写操作数（默认 400）
        WORKPULSE_RECALC_BATCH_SIZE: 每次处理的重算请求数（默认 50）
        WORKPULSE_COUNTER_RETRIES: 计数器事务冲突重试次数（默认 3）
    """

    max_batch_size: int = Field(
        default=400,
        ge=2,
        description="单批写操作上限，低于存储后端的单事务上限",
    )
    recalc_batch_size: int = Field(default=50, ge=1, description="重算队列单次处理数量")
    counter_retries: int = Field(default=3, ge=1, description="计数器事务重试次数")


_ENV_MAPPING: dict[str, str] = {
    "WORKPULSE_MAX_BATCH_SIZE": "max_batch_size",
    "WORKPULSE_RECALC_BATCH_SIZE": "recalc_batch_size",
    "WORKPULSE_COUNTER_RETRIES": "counter_retries",
}


def load_settings() -> OperationsSettings:
    """从环境变量加载批处理配置

    无法解析或越界的值逐字段校验，记录警告并回退到默认值，不阻塞启动。
    """
    kwargs: dict = {}
    defaults = OperationsSettings()

    for env_var, field_name in _ENV_MAPPING.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            candidate = int(val)
            OperationsSettings.model_validate({field_name: candidate})
        except (ValueError, ValidationError):
            log.warning(
                "invalid_settings_value",
                env_var=env_var,
                value=val,
                fallback=getattr(defaults, field_name),
            )
            continue
        kwargs[field_name] = candidate

    return OperationsSettings(**kwargs)
