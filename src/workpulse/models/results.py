"""结构化结果类型

校验器与服务层均返回结果对象，不通过异常传递业务规则失败。
"""

from pydantic import BaseModel, Field

from .enums import ErrorCode


class ValidationResult(BaseModel):
    """校验结果 -- 可同时合法且带警告；error 存在即不合法"""

    valid: bool
    error: str | None = None
    error_code: ErrorCode | None = None
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def ok(cls, warnings: list[str] | None = None) -> "ValidationResult":
        return cls(valid=True, warnings=list(warnings or []))

    @classmethod
    def from_checks(
        cls,
        errors: list[str],
        warnings: list[str] | None = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_FAILED,
    ) -> "ValidationResult":
        """多条规则同时失败时以 "; " 拼接错误信息"""
        if errors:
            return cls(
                valid=False,
                error="; ".join(errors),
                error_code=error_code,
                warnings=list(warnings or []),
            )
        return cls.ok(warnings)


class OperationResult(BaseModel):
    """任务操作结果"""

    success: bool
    error: str | None = None
    error_code: ErrorCode | None = None
    warnings: list[str] = Field(default_factory=list)
    task_id: str | None = None
    task_number: str | None = None
    extension_id: str | None = None


class OverdueSweepResult(BaseModel):
    """逾期扫描结果"""

    success: bool
    marked_count: int = 0
    errors: list[str] = Field(default_factory=list)


class RecalcBatchResult(BaseModel):
    """重算队列批处理结果"""

    success: bool
    processed: int = 0
    errors: list[str] = Field(default_factory=list)
