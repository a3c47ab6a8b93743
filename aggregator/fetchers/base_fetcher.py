"""
base_fetcher.py - 采集器接口与统一数据格式
每个数据源实现 fetch()（取原始负载）与 parse()（转换为 NormalizedRecord 列表）
限流与重试由 RequestPolicy 组合提供，不放在采集器内部
"""
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, List, Optional

from aggregator.fetchers.http_client import HttpClient

if TYPE_CHECKING:
    from aggregator.config import SourceConfig


class SourceType(str, Enum):
    """数据源类型"""
    ARXIV = "arxiv"
    GITHUB = "github"
    RSS = "rss"
    PAPERS_WITH_CODE = "paperswithcode"
    STACKOVERFLOW = "stackoverflow"

    @classmethod
    def parse(cls, value: str) -> "SourceType":
        """兼容 papers-with-code / papers_with_code 等写法"""
        key = (value or "").strip().lower().replace("-", "").replace("_", "")
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"未知数据源: {value}")


class CrawlState(str, Enum):
    """单个数据源一次采集的状态"""
    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class FetchParams:
    """单次请求参数"""
    query: str = ""
    start: int = 0
    max_results: int = 10
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None
    label: str = ""                           # 可读名称（分类名 / Feed 名）
    category: str = ""
    extra: dict = field(default_factory=dict) # 数据源特有参数（org / user / tag 等）

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v not in (None, "", {})}


@dataclass
class NormalizedRecord:
    """统一数据条目格式"""
    id: str                                   # 源 ID（如 arXiv 编号）或生成的指纹
    title: str
    summary: str                              # 纯文本摘要 / 描述
    url: str                                  # 主链接
    source_type: SourceType
    checksum: str                             # 内容指纹，用于幂等 upsert
    published_at: datetime
    updated_at: datetime
    authors: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    links: dict = field(default_factory=dict) # 其它链接，按角色区分（pdf / abstract / code）
    source: str = ""                          # 数据源名称（如 "arXiv cs.AI"）
    category: str = ""
    synthetic: bool = False                   # 模拟数据标记
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["source_type"] = self.source_type.value
        d["published_at"] = self.published_at.isoformat()
        d["updated_at"] = self.updated_at.isoformat()
        return d


@dataclass
class CrawlResult:
    """单个数据源一次采集的结果"""
    source_type: SourceType
    success: bool
    query: str = ""
    params: List[dict] = field(default_factory=list)
    records: List[NormalizedRecord] = field(default_factory=list)
    crawled_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None
    state: CrawlState = CrawlState.IDLE
    failed_queries: List[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    @property
    def papers(self) -> List[NormalizedRecord]:
        return self.records

    def to_dict(self) -> dict:
        return {
            "source_type": self.source_type.value,
            "success": self.success,
            "query": self.query,
            "params": self.params,
            "records": [r.to_dict() for r in self.records],
            "crawled_at": self.crawled_at.isoformat(),
            "error": self.error,
            "state": self.state.value,
            "failed_queries": self.failed_queries,
            "metadata": self.metadata,
        }


class BaseFetcher(ABC):
    """采集器接口"""

    source_type: SourceType
    has_quota_api = False                     # 是否实现了 check_quota

    def __init__(self, config: "SourceConfig", http: Optional[HttpClient] = None):
        self.config = config
        self.http = http or HttpClient(timeout=config.timeout)

    @abstractmethod
    def fetch(self, params: FetchParams) -> Any:
        """
        发起网络请求，返回原始负载（XML / JSON / Feed 文档）
        :raises FetchError: 网络失败、超时或非 2xx
        """

    @abstractmethod
    def parse(
        self,
        payload: Any,
        params: FetchParams,
        fetched_at: Optional[datetime] = None,
    ) -> List[NormalizedRecord]:
        """
        将原始负载转换为 NormalizedRecord 列表
        :param fetched_at: 抓取时间，缺失的日期字段以此兜底
        :raises ParseError: 负载结构不符合预期
        """

    def response_info(self, payload: Any) -> dict:
        """
        从原始负载中提取响应级信息（总条数 / 剩余配额等），写入 CrawlResult.metadata
        无可提取信息时返回空字典
        """
        return {}

    def check_quota(self) -> Optional[dict]:
        """查询远端剩余额度；数据源不提供时返回 None"""
        return None

    def default_queries(self) -> List[FetchParams]:
        """未在配置中指定 queries 时使用的默认查询"""
        return [FetchParams()]

    def is_enabled(self) -> bool:
        return self.config.enabled
