"""
filter.py - 记录过滤规则
  - 标题和 URL 不能为空
  - 发布时间不能晚于当前时间 1 小时以上
  - 指定 since 时，丢弃更早发布的记录
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from aggregator.fetchers.base_fetcher import NormalizedRecord

logger = logging.getLogger(__name__)

FUTURE_TOLERANCE = timedelta(hours=1)


class RecordFilter:
    """记录过滤器"""

    def __init__(self, since: Optional[datetime] = None, now: Optional[datetime] = None):
        self.since = since
        self.now = now

    def filter(self, records: List[NormalizedRecord]) -> List[NormalizedRecord]:
        """返回通过全部规则的记录"""
        now = self.now or datetime.now(timezone.utc)
        kept = [r for r in records if self._passes(r, now)]
        if len(kept) < len(records):
            logger.info(f"过滤：{len(records)} → {len(kept)} 条")
        return kept

    def _passes(self, record: NormalizedRecord, now: datetime) -> bool:
        if not record.title.strip() or not record.url.strip():
            return False
        if record.published_at > now + FUTURE_TOLERANCE:
            return False
        if self.since is not None and record.published_at < self.since:
            return False
        return True
