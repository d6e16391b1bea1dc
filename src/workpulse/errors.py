"""WorkPulse 异常体系

服务层内部以异常短路，在服务边界统一转换为 OperationResult；
校验器本身从不抛出异常。
"""

from .models.enums import ErrorCode

# 存储不可用时返回给调用方的通用信息
STORE_UNAVAILABLE_MESSAGE = "Storage temporarily unavailable, please retry"


class WorkPulseError(Exception):
    """WorkPulse 基础异常"""

    code: ErrorCode = ErrorCode.VALIDATION_FAILED

    def __init__(self, message: str, warnings: list[str] | None = None) -> None:
        """
        Args:
            message: 返回给调用方的错误描述
            warnings: 随错误一并返回的警告
        """
        super().__init__(message)
        self.message = message
        self.warnings = list(warnings or [])


class NotFoundError(WorkPulseError):
    """实体不存在（或已软删除）"""

    code = ErrorCode.NOT_FOUND


class InvalidTransitionError(WorkPulseError):
    """状态流转不在合法状态图内"""

    code = ErrorCode.INVALID_TRANSITION


class ValidationFailedError(WorkPulseError):
    """业务规则校验失败"""

    code = ErrorCode.VALIDATION_FAILED


class RequiresForceError(WorkPulseError):
    """操作合法但带警告，需要显式 force 才能继续"""

    code = ErrorCode.REQUIRES_FORCE


class DependencyUnavailableError(WorkPulseError):
    """协作方（存储、身份查询）不可用

    底层原因只记录到日志，不暴露给调用方。
    """

    code = ErrorCode.DEPENDENCY_UNAVAILABLE

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.original_error = original_error
