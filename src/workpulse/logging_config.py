"""structlog 配置模块

dev 模式：pretty print 可读输出
json 模式：结构化 JSON 输出（cron / 批处理作业）
"""

import logging
import os

import structlog

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


def _select_renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """初始化 structlog 配置

    显式参数优先，其次读取环境变量：
    - WORKPULSE_LOG_FORMAT: "json" 或 "dev"（默认）
    - WORKPULSE_LOG_LEVEL: 标准日志级别名（默认 INFO），非法值回退 INFO
    """
    log_format = log_format or os.environ.get("WORKPULSE_LOG_FORMAT", "dev")
    log_level = log_level or os.environ.get("WORKPULSE_LOG_LEVEL", "INFO")

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # 标准库 logging 统一走 structlog 渲染
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=_select_renderer(log_format),
        foreign_pre_chain=_SHARED_PROCESSORS,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    # aiosqlite 的 DEBUG 日志过于嘈杂
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
