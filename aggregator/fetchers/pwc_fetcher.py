"""
pwc_fetcher.py - Papers with Code 采集器
官方 API 已下线，两种模式二选一（同一次运行中不混用）：
  - feed: 社区维护的 RSS 镜像，走 RSS 解析；查询词不是 URL 时拉取默认镜像并按关键词过滤
  - mock: 按查询词生成确定性的合成数据，仅用于开发调试，每条记录 synthetic=True
指纹规则：title + abstract
"""
import hashlib
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from aggregator.processors.checksum import checksum, generate_id

from .base_fetcher import BaseFetcher, FetchParams, NormalizedRecord, SourceType
from .rss_fetcher import parse_feed_document

logger = logging.getLogger(__name__)

FEED_URL = "https://us-east1-ml-feeds.cloudfunctions.net/pwc/latest"
SITE_URL = "https://paperswithcode.com"

DEFAULT_QUERIES = ["machine learning", "deep learning", "artificial intelligence"]

MOCK_TOPICS = ["Transformer", "BERT", "GPT", "ResNet", "Vision Transformer"]
MOCK_VENUES = ["NeurIPS", "ICLR", "ICML", "AAAI", "CVPR"]
MOCK_AUTHORS = ["John Smith", "Alice Johnson", "Bob Chen", "Carol Zhang"]
MOCK_MAX = 5


def _seed(query: str) -> int:
    return int(hashlib.sha256(query.encode("utf-8")).hexdigest()[:16], 16)


def _keyword(params: FetchParams) -> str:
    """feed 模式下非 URL 的查询词视为关键词"""
    query = (params.query or "").strip()
    return "" if query.startswith("http") else query


class PapersWithCodeFetcher(BaseFetcher):
    """Papers with Code 采集器（feed / mock）"""

    source_type = SourceType.PAPERS_WITH_CODE

    @property
    def mode(self) -> str:
        return self.config.mode

    def default_queries(self) -> List[FetchParams]:
        if self.mode == "mock":
            return [FetchParams(query=q, label=q) for q in DEFAULT_QUERIES]
        return [FetchParams(query=FEED_URL, label="Papers with Code")]

    def fetch(self, params: FetchParams):
        if self.mode == "mock":
            logger.info(f"[PapersWithCode] mock 模式，生成合成数据: {params.query}")
            return {"query": params.query or DEFAULT_QUERIES[0], "count": params.max_results}
        keyword = _keyword(params)
        url = FEED_URL if keyword or not params.query else params.query
        if keyword:
            logger.warning(f"[PapersWithCode] 查询词 '{keyword}' 不是 Feed URL，拉取默认镜像并按关键词过滤")
        logger.info(f"[PapersWithCode] 拉取 RSS 镜像: {url}")
        return self.http.get_bytes(url)

    def parse(
        self,
        payload,
        params: FetchParams,
        fetched_at: Optional[datetime] = None,
    ) -> List[NormalizedRecord]:
        fetched_at = fetched_at or datetime.now(timezone.utc)
        if self.mode == "mock":
            records = self.generate_mock(payload["query"], payload["count"])
        else:
            records = parse_feed_document(
                payload,
                source_type=self.source_type,
                params=params,
                fetched_at=fetched_at,
                default_category="论文",
            )
            for r in records:
                if not r.links.get("paper"):
                    r.links["paper"] = r.url
            keyword = _keyword(params).lower()
            if keyword:
                records = [r for r in records if keyword in f"{r.title} {r.summary}".lower()]
                for r in records:
                    r.extra["feed_url"] = FEED_URL
                    r.extra["keyword"] = keyword
        logger.info(f"[PapersWithCode] 解析 {len(records)} 篇论文（{self.mode}）")
        return records

    def generate_mock(self, query: str, count: int) -> List[NormalizedRecord]:
        """同一查询词总是生成同样的一批记录"""
        rng = random.Random(_seed(query))
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        records = []
        for i in range(max(0, min(count, MOCK_MAX))):
            topic = MOCK_TOPICS[(rng.randrange(len(MOCK_TOPICS)) + i) % len(MOCK_TOPICS)]
            venue = rng.choice(MOCK_VENUES)
            authors = []
            for _ in range(rng.randint(1, 3)):
                name = rng.choice(MOCK_AUTHORS)
                if name not in authors:
                    authors.append(name)

            title = f"{topic} for {query}: A Comprehensive Study ({i + 1})"
            abstract = f"This paper presents a novel approach to {query} using {topic} architecture."
            published = base + timedelta(days=rng.randrange(365))
            has_code = rng.random() > 0.3
            url = f"{SITE_URL}/paper/{'-'.join(title.lower().split())}"

            links = {"paper": url, "pdf": "https://arxiv.org/pdf/example.pdf"}
            if has_code:
                links["code"] = f"https://github.com/example/{topic.lower().replace(' ', '-')}"

            records.append(
                NormalizedRecord(
                    id=generate_id(title),
                    title=title,
                    summary=abstract,
                    url=url,
                    source_type=self.source_type,
                    checksum=checksum(title + abstract),
                    published_at=published,
                    updated_at=published,
                    authors=authors,
                    tags=[f"{query} Task", topic],
                    links=links,
                    source="Papers with Code (mock)",
                    category="论文",
                    synthetic=True,
                    extra={
                        "venue": venue,
                        "datasets": ["ImageNet"],
                        "methods": [topic],
                        "stars": rng.randint(100, 1099) if has_code else None,
                        "framework": "PyTorch" if has_code else None,
                    },
                )
            )
        return records
