"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 HTTP 边界做统一捕获与错误响应。

错误按来源分为三类：
- 请求错误（ValidationError）：请求体无法解析或结构不符。
- 配置错误（ConfigurationError）：缺少 API 密钥、Provider 未注册等。
- 上游错误（NetworkError / ApiError / RateLimitError）：Provider 调用失败。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_API_KEY"）。
        message: 可读错误信息，会原样写入响应的 details 字段。
        http_status: 开启状态码细分时使用的 HTTP 状态码。
        extra: 其他补充字段（例如 provider、上游状态码等）。
    """

    default_status = 500

    def __init__(self, code: str, message: str, http_status: int | None = None, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status or self.default_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """请求体解析或结构校验失败。"""

    default_status = 400


class ConfigurationError(BusinessError):
    """服务端配置缺失或无效。"""

    default_status = 500


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""

    default_status = 502


class ApiError(BusinessError):
    """Provider 返回非 2xx（429 除外）或无法使用的结果时抛出。"""

    default_status = 502


class RateLimitError(BusinessError):
    """Provider 限流错误，本服务不做重试。"""

    default_status = 429
