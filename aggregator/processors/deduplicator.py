"""
deduplicator.py - 去重模块
基于内容指纹（checksum）去除重复条目（跨运行 + 批内去重）
指纹不含抓取时间，同一内容在不同时间抓取仍判定为重复
"""
import logging
from typing import Iterable, List, Optional

from aggregator.fetchers.base_fetcher import NormalizedRecord

logger = logging.getLogger(__name__)


class Deduplicator:
    """去重器"""

    def __init__(self, existing_checksums: Optional[Iterable[str]] = None):
        self.existing_checksums = set(existing_checksums or ())

    def deduplicate(self, records: List[NormalizedRecord]) -> List[NormalizedRecord]:
        """去除已存储或本批次重复的条目，保留首次出现的顺序"""
        seen = set(self.existing_checksums)
        result = []
        for record in records:
            key = record.checksum or record.id
            if key in seen:
                continue
            seen.add(key)
            result.append(record)
        if len(result) < len(records):
            logger.info(f"去重：{len(records)} → {len(result)} 条")
        return result
