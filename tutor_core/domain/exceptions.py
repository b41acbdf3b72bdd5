"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
便于在编排层或 API 层做统一捕获与用户提示。
Provider 相关的异常额外携带 kind（ErrorKind），编排器据此记录失败原因。
"""

from typing import Optional

from tutor_core.domain.models import ErrorKind


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "RATE_LIMIT"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider 等）。
    """

    kind: Optional[ErrorKind] = None

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、DNS 错误等。"""

    kind = ErrorKind.NETWORK_FAILURE


class ApiError(BusinessError):
    """第三方 API 返回非 2xx（且非鉴权/限流）错误时抛出，按网络失败处理。"""

    kind = ErrorKind.NETWORK_FAILURE


class AuthenticationError(BusinessError):
    """凭证缺失或被 Provider 拒绝（401/403）。"""

    kind = ErrorKind.UNAUTHENTICATED


class RateLimitError(BusinessError):
    """Provider 限流错误。单次请求内不做重试，由编排器切换下一个 Provider。"""

    kind = ErrorKind.RATE_LIMITED


class ProviderTimeoutError(BusinessError):
    kind = ErrorKind.TIMEOUT


class MalformedResponseError(BusinessError):
    """Provider 返回了无法解析为文本的内容。"""

    kind = ErrorKind.MALFORMED_RESPONSE


class AllProvidersExhaustedError(BusinessError):
    """所有 Provider 失败且本地兜底不可用。"""

    kind = ErrorKind.ALL_PROVIDERS_EXHAUSTED


class ValidationError(BusinessError):
    """参数、入站请求或配置校验失败。"""


class RequestCancelledError(BusinessError):
    """调用方取消了本次请求。"""
