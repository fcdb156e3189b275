"""命令行客户端的错误类型。

每一轮对话或每条命令内的失败都以 BusinessError 子类抛出，由引擎或命令循环
捕获后提示用户，会话本身继续可用。

流式帧解析失败（ParseFailure）与 finish_reason 结束信号（ProtocolEnd）
只在流式消费者内部处理，不会以异常形式抛出。
"""

from typing import Any, Dict


class BusinessError(Exception):
    """错误基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_WRITE_ERROR"、"MISSING_API_KEY"）。
        message: 展示给用户的错误信息。
        http_status: 来自远端 API 的状态码；本地错误沿用 400。
        extra: 写入日志的补充字段（例如 chat_id、path）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)

    def log_fields(self) -> Dict[str, Any]:
        """结构化日志字段，配合 logger.warning(..., extra={"extra": ...}) 使用。"""

        return {"code": self.code, "http_status": self.http_status, **self.extra}


class NetworkError(BusinessError):
    """连接失败、DNS 错误、超时等传输层失败。"""


class ApiError(BusinessError):
    """API 返回非 200 状态码、非 JSON 响应或无法解析的 JSON 时抛出。"""


class ValidationError(BusinessError):
    """命令参数、会话选项或配置不合法。"""


class StoreError(BusinessError):
    """SQLite 存储错误。

    code 为 "STORE_INIT_ERROR" 时表示建表失败，命令行入口会直接退出进程。
    """
