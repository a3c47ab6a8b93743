"""
http_client.py - 采集器共用的 HTTP 客户端
统一超时、User-Agent，并将 requests 异常转换为 FetchError / ParseError / ConfigurationError
"""
import logging
from typing import Optional

import requests

from aggregator.errors import ConfigurationError, FetchError, FetchTimeoutError, ParseError

logger = logging.getLogger(__name__)

USER_AGENT = "AI-News-Crawler/1.0 (https://github.com/echoVic/aidayhot)"

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/json;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


class HttpClient:
    """requests.Session 的薄封装"""

    def __init__(
        self,
        timeout: float = 30.0,
        headers: Optional[dict] = None,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = float(timeout)
        self.headers = {**DEFAULT_HEADERS, **(headers or {})}
        self.session = session or requests.Session()

    def get(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None):
        ctx = {"url": url, **(params or {})}
        try:
            resp = self.session.get(
                url,
                params=params,
                headers={**self.headers, **(headers or {})},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.Timeout as e:
            raise FetchTimeoutError(
                f"请求超时（{self.timeout:.0f}s）: {url}", params=ctx
            ) from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise FetchError(
                f"HTTP {status}: {url}", status_code=status, params=ctx
            ) from e
        except (
            requests.exceptions.InvalidURL,
            requests.exceptions.MissingSchema,
            requests.exceptions.InvalidSchema,
        ) as e:
            # 地址本身不合法，重试无意义
            raise ConfigurationError(f"请求地址不合法 '{url}': {e}", params=ctx) from e
        except requests.RequestException as e:
            raise FetchError(f"请求失败 {url}: {e}", params=ctx) from e
        logger.debug(f"GET {url} -> {resp.status_code}")
        return resp

    def get_text(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None) -> str:
        return self.get(url, params=params, headers=headers).text

    def get_bytes(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None) -> bytes:
        return self.get(url, params=params, headers=headers).content

    def get_json(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None):
        resp = self.get(url, params=params, headers=headers)
        try:
            return resp.json()
        except ValueError as e:
            raise ParseError(f"响应不是合法 JSON: {url}", params={"url": url, **(params or {})}) from e
