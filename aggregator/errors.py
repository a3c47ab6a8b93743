"""
errors.py - 采集异常体系
FetchError（网络 / 超时 / 非 2xx）可重试；ParseError、ConfigurationError 不重试
"""
from typing import Optional


class CrawlerError(Exception):
    """采集异常基类，携带出错时的请求参数"""

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        params: Optional[dict] = None,
        source_type: str = "",
    ):
        super().__init__(message)
        self.message = message
        self.params = dict(params or {})
        self.source_type = source_type

    def __str__(self) -> str:
        return self.message


class FetchError(CrawlerError):
    """网络传输失败或远端返回非 2xx"""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        params: Optional[dict] = None,
        source_type: str = "",
    ):
        super().__init__(message, params=params, source_type=source_type)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        # 4xx 为客户端错误，重试无意义；408 / 429 例外
        if self.status_code is None:
            return True
        if 400 <= self.status_code < 500:
            return self.status_code in (408, 429)
        return True


class FetchTimeoutError(FetchError):
    """请求超过配置的超时时间"""


class ParseError(CrawlerError):
    """负载结构与预期不符"""


class ConfigurationError(CrawlerError):
    """配置缺失或非法，在任何网络请求之前抛出"""
