"""
stackoverflow_fetcher.py - Stack Overflow 问题采集器
Stack Exchange API 2.3：按标签列出问题（/questions）、全文搜索（/search/advanced）
或获取某个问题的回答（/questions/{id}/answers）
requests 会自动处理 gzip 响应
指纹规则：title + body（纯文本）；回答没有标题，以 "Answer {answer_id}" 代替
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from aggregator.errors import ParseError
from aggregator.processors.checksum import checksum
from aggregator.processors.normalizer import (
    ensure_list,
    parse_datetime,
    strip_html,
    truncate,
)

from .base_fetcher import BaseFetcher, FetchParams, NormalizedRecord, SourceType

logger = logging.getLogger(__name__)

DEFAULT_TAGS = [
    "machine-learning",
    "tensorflow",
    "pytorch",
    "artificial-intelligence",
    "deep-learning",
]

EXCERPT_LENGTH = 200


class StackOverflowFetcher(BaseFetcher):
    """Stack Overflow 问题采集器"""

    source_type = SourceType.STACKOVERFLOW
    has_quota_api = True
    BASE_URL = "https://api.stackexchange.com/2.3"
    SITE = "stackoverflow"

    def default_queries(self) -> List[FetchParams]:
        return [FetchParams(query=tag, label=tag) for tag in DEFAULT_TAGS]

    @staticmethod
    def answers_params(question_id, max_results: int = 10) -> FetchParams:
        """获取某个问题的回答（按票数排序）"""
        return FetchParams(
            query=str(question_id),
            max_results=max_results,
            label=f"answers:{question_id}",
            extra={"question_id": question_id},
        )

    def _base_query(self) -> dict:
        query = {"site": self.SITE}
        key = self.config.options.get("key")
        if key:
            query["key"] = key
        return query

    def fetch(self, params: FetchParams):
        query = {
            **self._base_query(),
            "pagesize": min(max(1, params.max_results), 100),
            "filter": "withbody",
        }

        question_id = params.extra.get("question_id")
        if question_id:
            query.update(sort=params.sort_by or "votes", order=params.sort_order or "desc")
            path = f"/questions/{question_id}/answers"
            logger.info(f"[StackOverflow] 获取问题 {question_id} 的回答")
        elif params.extra.get("search"):
            query.update(q=params.query, sort=params.sort_by or "relevance", order=params.sort_order or "desc")
            path = "/search/advanced"
            logger.info(f"[StackOverflow] 搜索问题: {params.query}")
        else:
            query.update(
                tagged=params.query or DEFAULT_TAGS[0],
                sort=params.sort_by or "activity",
                order=params.sort_order or "desc",
            )
            path = "/questions"
            logger.info(f"[StackOverflow] 获取标签问题: {query['tagged']}")
        return self.http.get_json(f"{self.BASE_URL}{path}", params=query)

    def check_quota(self) -> dict:
        """/info 接口返回的配额上限与剩余量"""
        payload = self.http.get_json(f"{self.BASE_URL}/info", params=self._base_query())
        if not isinstance(payload, dict) or "quota_remaining" not in payload:
            raise ParseError("Stack Exchange /info 响应缺少配额字段", source_type=self.source_type.value)
        quota = {"quota_max": payload.get("quota_max", 0), "quota_remaining": payload["quota_remaining"]}
        logger.info(f"[StackOverflow] 配额 {quota['quota_remaining']}/{quota['quota_max']}")
        return quota

    def response_info(self, payload) -> dict:
        if not isinstance(payload, dict):
            return {}
        return {k: payload[k] for k in ("quota_remaining", "quota_max", "has_more") if k in payload}

    def parse(
        self,
        payload,
        params: FetchParams,
        fetched_at: Optional[datetime] = None,
    ) -> List[NormalizedRecord]:
        fetched_at = fetched_at or datetime.now(timezone.utc)
        if not isinstance(payload, dict) or "items" not in payload:
            message = payload.get("error_message", "") if isinstance(payload, dict) else ""
            raise ParseError(
                f"Stack Exchange 响应缺少 items: {message}",
                params=params.to_dict(),
                source_type=self.source_type.value,
            )

        items = [item for item in ensure_list(payload.get("items")) if isinstance(item, dict)]
        if params.extra.get("question_id"):
            records = [self._parse_answer(item, params, fetched_at) for item in items]
            kind = "个回答"
        else:
            records = [self._parse_question(item, params, fetched_at) for item in items]
            kind = "个问题"
        quota = payload.get("quota_remaining")
        logger.info(f"[StackOverflow] {params.query}: 解析 {len(records)} {kind}，剩余配额 {quota}")
        return records

    def _parse_question(self, item: dict, params: FetchParams, fetched_at: datetime) -> NormalizedRecord:
        title = strip_html(item.get("title"))
        body = strip_html(item.get("body"))
        owner = item.get("owner") or {}
        created = parse_datetime(item.get("creation_date"), fetched_at)
        updated = parse_datetime(item.get("last_activity_date"), created)

        return NormalizedRecord(
            id=str(item.get("question_id", "")),
            title=title,
            summary=truncate(body, EXCERPT_LENGTH),
            url=item.get("link", ""),
            source_type=self.source_type,
            checksum=checksum(title + body),
            published_at=created,
            updated_at=updated,
            authors=[owner["display_name"]] if owner.get("display_name") else [],
            tags=[str(t) for t in ensure_list(item.get("tags"))],
            links={"question": item.get("link", "")},
            source="Stack Overflow",
            category=params.category or "技术问答",
            extra={
                "score": item.get("score", 0),
                "views": item.get("view_count", 0),
                "answers": item.get("answer_count", 0),
                "is_answered": item.get("is_answered", False),
                "has_accepted_answer": bool(item.get("accepted_answer_id")),
                "owner_reputation": owner.get("reputation", 0),
            },
        )

    def _parse_answer(self, item: dict, params: FetchParams, fetched_at: datetime) -> NormalizedRecord:
        answer_id = item.get("answer_id", "")
        question_id = item.get("question_id") or params.extra.get("question_id")
        title = strip_html(item.get("title")) or f"Answer {answer_id}"
        body = strip_html(item.get("body"))
        owner = item.get("owner") or {}
        created = parse_datetime(item.get("creation_date"), fetched_at)
        updated = parse_datetime(item.get("last_activity_date"), created)
        url = item.get("link") or f"https://stackoverflow.com/a/{answer_id}"

        return NormalizedRecord(
            id=str(answer_id),
            title=title,
            summary=truncate(body, EXCERPT_LENGTH),
            url=url,
            source_type=self.source_type,
            checksum=checksum(title + body),
            published_at=created,
            updated_at=updated,
            authors=[owner["display_name"]] if owner.get("display_name") else [],
            links={"answer": url, "question": f"https://stackoverflow.com/questions/{question_id}"},
            source="Stack Overflow",
            category=params.category or "技术问答",
            extra={
                "answer_id": answer_id,
                "question_id": question_id,
                "score": item.get("score", 0),
                "is_accepted": item.get("is_accepted", False),
                "owner_reputation": owner.get("reputation", 0),
            },
        )
