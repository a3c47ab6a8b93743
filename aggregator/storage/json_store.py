"""
json_store.py - JSON 文件存储模块
负责读写 data/records.json、data/last_run.json、data/archive/YYYY-MM.json

存储策略：
  - records.json：按内容指纹 upsert，同一内容重复采集只更新，不新增
  - archive/YYYY-MM.json：追加式，每次运行将新增条目追加到当月文件
  - 标题截断到 1000 字符、摘要截断到 5000 字符后再写入
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from aggregator.fetchers.base_fetcher import NormalizedRecord

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 1000
SUMMARY_MAX_LENGTH = 5000


class JsonStore:
    """JSON 文件存储管理器"""

    def __init__(self, data_dir: str = "data"):
        self.data_dir = Path(data_dir)
        self.records_path = self.data_dir / "records.json"
        self.last_run_path = self.data_dir / "last_run.json"
        self.archive_dir = self.data_dir / "archive"

    def is_cold_start(self) -> bool:
        """判断是否首次运行（无历史数据）"""
        return not self.records_path.exists()

    def get_last_run_time(self) -> Optional[datetime]:
        """获取上次运行时间，用于增量采集"""
        if not self.last_run_path.exists():
            return None
        data = json.loads(self.last_run_path.read_text(encoding="utf-8"))
        return datetime.fromisoformat(data["last_run_at"])

    def update_last_run_time(self, when: Optional[datetime] = None) -> None:
        """更新上次运行时间"""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        when = when or datetime.now(timezone.utc)
        self.last_run_path.write_text(
            json.dumps({"last_run_at": when.isoformat()}, ensure_ascii=False),
            encoding="utf-8",
        )

    def load_records(self) -> List[dict]:
        """加载已存储的记录（原始 dict 列表）"""
        if not self.records_path.exists():
            return []
        try:
            data = json.loads(self.records_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"records.json 无法解析，按空库处理: {e}")
            return []
        return data.get("records", [])

    def existing_checksums(self) -> set:
        """已存储的所有内容指纹，用于去重"""
        return {self._key(d) for d in self.load_records()}

    def upsert(self, records: List[NormalizedRecord]) -> Dict[str, int]:
        """
        按 checksum（缺失时按 id）写入：
        - 已存在：覆盖内容字段，保留首次入库时间
        - 不存在：新增，并追加到当月归档
        :return: {"inserted": 新增条数, "updated": 更新条数}
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)
        now = datetime.now(timezone.utc)

        stored = {self._key(d): d for d in self.load_records()}
        inserted, updated = [], 0
        for record in records:
            d = self._to_dict(record)
            key = self._key(d)
            if key in stored:
                d["stored_at"] = stored[key].get("stored_at", now.isoformat())
                d["updated_in_store_at"] = now.isoformat()
                stored[key] = d
                updated += 1
            else:
                d["stored_at"] = now.isoformat()
                stored[key] = d
                inserted.append(d)

        merged = sorted(stored.values(), key=lambda x: x.get("published_at", ""), reverse=True)
        payload = {
            "generated_at": now.isoformat(),
            "total": len(merged),
            "records": merged,
        }
        self.records_path.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2, default=str),
            encoding="utf-8",
        )

        if inserted:
            archive_path = self.archive_dir / f"{now.strftime('%Y-%m')}.json"
            self._append_to_monthly_archive(archive_path, inserted, now)

        logger.info(f"存储：新增 {len(inserted)} 条，更新 {updated} 条，共 {len(merged)} 条")
        return {"inserted": len(inserted), "updated": updated}

    def _append_to_monthly_archive(self, archive_path: Path, new_items: list, now: datetime) -> None:
        """将新条目追加到月度归档文件，按指纹去重"""
        self.archive_dir.mkdir(parents=True, exist_ok=True)
        all_items = []
        if archive_path.exists():
            try:
                all_items = json.loads(archive_path.read_text(encoding="utf-8")).get("items", [])
            except json.JSONDecodeError as e:
                logger.warning(f"归档文件 {archive_path.name} 无法解析，重新生成: {e}")

        existing = {self._key(i) for i in all_items}
        all_items.extend(i for i in new_items if self._key(i) not in existing)

        payload = {
            "month": now.strftime("%Y-%m"),
            "last_updated": now.isoformat(),
            "total": len(all_items),
            "items": all_items,
        }
        archive_path.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2, default=str),
            encoding="utf-8",
        )

    @staticmethod
    def _key(d: dict) -> str:
        return d.get("checksum") or d.get("id", "")

    @staticmethod
    def _to_dict(record: NormalizedRecord) -> dict:
        d = record.to_dict()
        d["title"] = d["title"][:TITLE_MAX_LENGTH]
        d["summary"] = d["summary"][:SUMMARY_MAX_LENGTH]
        return d
