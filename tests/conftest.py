import json
from datetime import datetime, timezone
from pathlib import Path

import pytest
import requests

from aggregator.config import SourceConfig
from aggregator.fetchers.base_fetcher import NormalizedRecord, SourceType
from aggregator.fetchers.http_client import HttpClient
from aggregator.processors.checksum import checksum

FIXTURES = Path(__file__).parent / "fixtures"


class FakeResponse:
    def __init__(self, status_code=200, content=b"", json_data=None):
        self.status_code = status_code
        self.content = content if json_data is None else json.dumps(json_data).encode("utf-8")
        self._json = json_data

    @property
    def text(self):
        return self.content.decode("utf-8")

    def json(self):
        if self._json is None:
            return json.loads(self.text)
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    """按顺序返回预设响应；元素为异常时抛出"""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        if not self.responses:
            raise AssertionError(f"unexpected request: {url}")
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp


class FakeClock:
    """可控时钟：sleep 只推进时间"""

    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def load_fixture(name, mode="rb"):
    with open(FIXTURES / name, mode) as f:
        return f.read()


def make_http(*responses):
    session = FakeSession(responses)
    return HttpClient(timeout=5, session=session), session


def make_config(source_type=SourceType.ARXIV, **kwargs):
    kwargs.setdefault("delay_ms", 0)
    return SourceConfig(source_type=source_type, **kwargs)


def make_record(title="Title", summary="Summary", url="https://example.com/a", **kwargs):
    now = datetime.now(timezone.utc)
    fields = dict(
        id=kwargs.pop("id", title),
        title=title,
        summary=summary,
        url=url,
        source_type=kwargs.pop("source_type", SourceType.RSS),
        checksum=kwargs.pop("checksum", checksum(title + summary)),
        published_at=kwargs.pop("published_at", now),
        updated_at=kwargs.pop("updated_at", now),
    )
    fields.update(kwargs)
    return NormalizedRecord(**fields)


@pytest.fixture
def clock():
    return FakeClock()
