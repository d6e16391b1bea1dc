"""协作方接口 -- 服务层只依赖这些 Protocol，便于替换实现与测试注入"""

from collections.abc import Iterable
from typing import Protocol

from ..models.audit import ActivityLogEntry, AuditLogEntry


class UserDirectory(Protocol):
    """身份目录：仅回答用户是否存在"""

    async def find_missing(self, user_ids: Iterable[str]) -> list[str]:
        """返回不存在的用户 ID"""
        ...


class AuditSink(Protocol):
    """审计 / 活动日志写入端（append-only）"""

    async def append_audit_log(self, entry: AuditLogEntry) -> None: ...

    async def append_activity(self, entry: ActivityLogEntry) -> None: ...
