"""
registry.py - 数据源类型 → 采集器类
"""
from typing import Dict, Optional

from aggregator.config import SourceConfig

from .arxiv_fetcher import ArxivFetcher
from .base_fetcher import BaseFetcher, SourceType
from .github_fetcher import GitHubFetcher
from .http_client import HttpClient
from .pwc_fetcher import PapersWithCodeFetcher
from .rss_fetcher import RSSFetcher
from .stackoverflow_fetcher import StackOverflowFetcher

FETCHER_CLASSES = {
    SourceType.ARXIV: ArxivFetcher,
    SourceType.GITHUB: GitHubFetcher,
    SourceType.RSS: RSSFetcher,
    SourceType.PAPERS_WITH_CODE: PapersWithCodeFetcher,
    SourceType.STACKOVERFLOW: StackOverflowFetcher,
}


def build_fetchers(
    source_configs: Dict[SourceType, SourceConfig],
    http: Optional[HttpClient] = None,
) -> Dict[SourceType, BaseFetcher]:
    """为每个已配置的数据源创建采集器；传入 http 时所有采集器共用同一客户端"""
    return {
        source_type: FETCHER_CLASSES[source_type](cfg, http=http)
        for source_type, cfg in source_configs.items()
    }
