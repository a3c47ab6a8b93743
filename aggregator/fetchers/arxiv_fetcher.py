"""
arxiv_fetcher.py - arXiv 论文采集器
通过 arXiv API（Atom）按分类 / 关键词 / 作者检索论文
指纹规则：title + summary（清理空白后）
"""
import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

import feedparser

from aggregator.errors import ParseError
from aggregator.processors.checksum import checksum, generate_id
from aggregator.processors.normalizer import (
    clean_text,
    ensure_list,
    first_present,
    names_of,
    parse_datetime,
    select_link,
)

from .base_fetcher import BaseFetcher, FetchParams, NormalizedRecord, SourceType

logger = logging.getLogger(__name__)

# 分类 → 中文名称
CATEGORY_NAMES = {
    "cat:cs.AI": "人工智能",
    "cat:cs.LG": "机器学习",
    "cat:cs.CL": "自然语言处理",
    "cat:cs.CV": "计算机视觉",
    "cat:cs.NE": "神经网络",
    "cat:cs.CR": "密码学与安全",
    "cat:cs.DB": "数据库",
    "cat:cs.IR": "信息检索",
    "cat:cs.RO": "机器人学",
    "cat:stat.ML": "统计机器学习",
}

DEFAULT_QUERIES = ["cat:cs.AI", "cat:cs.LG", "cat:cs.CL", "cat:cs.CV", "cat:cs.NE"]

_ARXIV_ID_RE = re.compile(r"abs/(.+?)(?:v\d+)?$")
_TOTAL_RESULTS_RE = re.compile(rb"<opensearch:totalResults[^>]*>\s*(\d+)\s*<")


def extract_arxiv_id(url: str) -> str:
    """http://arxiv.org/abs/2401.01234v2 → 2401.01234"""
    m = _ARXIV_ID_RE.search(url or "")
    return m.group(1) if m else ""


def category_name(query: str) -> str:
    return CATEGORY_NAMES.get(query, query)


class ArxivFetcher(BaseFetcher):
    """arXiv 论文采集器"""

    source_type = SourceType.ARXIV
    API_URL = "http://export.arxiv.org/api/query"

    def default_queries(self) -> List[FetchParams]:
        return [
            FetchParams(query=q, label=category_name(q), category=category_name(q))
            for q in DEFAULT_QUERIES
        ]

    @staticmethod
    def search_params(keywords: str, max_results: int = 30) -> FetchParams:
        """关键词检索"""
        return FetchParams(query=f"all:{keywords}", max_results=max_results)

    @staticmethod
    def author_params(author: str, max_results: int = 50) -> FetchParams:
        """按作者检索"""
        return FetchParams(query=f'au:"{author}"', max_results=max_results)

    def fetch(self, params: FetchParams) -> bytes:
        query = params.query or DEFAULT_QUERIES[0]
        logger.info(f"[arXiv] 请求论文: {query}，数量: {params.max_results}")
        return self.http.get_bytes(
            self.API_URL,
            params={
                "search_query": query,
                "start": params.start,
                "max_results": params.max_results,
                "sortBy": params.sort_by or "submittedDate",
                "sortOrder": params.sort_order or "descending",
            },
        )

    def parse(
        self,
        payload,
        params: FetchParams,
        fetched_at: Optional[datetime] = None,
    ) -> List[NormalizedRecord]:
        fetched_at = fetched_at or datetime.now(timezone.utc)
        feed = feedparser.parse(payload)
        if not feed.get("version") and not feed.get("entries"):
            raise ParseError(
                "arXiv 响应缺少 feed 根元素",
                params=params.to_dict(),
                source_type=self.source_type.value,
            )

        entries = ensure_list(feed.get("entries"))
        if entries and "/api/errors" in (entries[0].get("id") or ""):
            raise ParseError(
                f"arXiv API 返回错误: {clean_text(entries[0].get('summary'))}",
                params=params.to_dict(),
                source_type=self.source_type.value,
            )

        label = params.label or category_name(params.query)
        records = [self._parse_entry(e, label, fetched_at) for e in entries]

        total = feed.get("feed", {}).get("opensearch_totalresults")
        logger.info(f"[arXiv] {label}: 解析 {len(records)} 篇论文（总计 {total or len(records)}）")
        return records

    def response_info(self, payload) -> dict:
        """opensearch:totalResults → total_results"""
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        m = _TOTAL_RESULTS_RE.search(payload or b"")
        return {"total_results": int(m.group(1))} if m else {}

    def _parse_entry(self, entry, label: str, fetched_at: datetime) -> NormalizedRecord:
        entry_id = entry.get("id", "") or ""
        title = clean_text(entry.get("title"))
        summary = clean_text(entry.get("summary"))

        authors = names_of(first_present(entry.get("authors"), entry.get("author")))
        categories = names_of(entry.get("tags"), key="term")
        primary = first_present(entry.get("arxiv_primary_category"))
        primary_term = ""
        for p in ensure_list(primary):
            primary_term = p.get("term", "") if isinstance(p, dict) else str(p)
            break

        links = ensure_list(entry.get("links"))
        abstract_url = select_link(links, "alternate") or entry_id
        pdf_url = select_link(links, "pdf")

        arxiv_id = extract_arxiv_id(entry_id)
        published = parse_datetime(
            first_present(entry.get("published_parsed"), entry.get("published")), fetched_at
        )
        updated = parse_datetime(
            first_present(entry.get("updated_parsed"), entry.get("updated")), published
        )

        return NormalizedRecord(
            id=arxiv_id or generate_id(entry_id),
            title=title,
            summary=summary,
            url=abstract_url,
            source_type=self.source_type,
            checksum=checksum(title + summary),
            published_at=published,
            updated_at=updated,
            authors=authors,
            tags=categories,
            links={"abstract": abstract_url, "pdf": pdf_url},
            source=f"arXiv {label}".strip(),
            category=label,
            extra={
                "arxiv_id": arxiv_id,
                "primary_category": primary_term or (categories[0] if categories else ""),
                "doi": entry.get("arxiv_doi"),
                "journal_ref": entry.get("arxiv_journal_ref"),
                "comment": entry.get("arxiv_comment"),
            },
        )
