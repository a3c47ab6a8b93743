"""
config.py - 配置加载
读取 config/settings.yaml + .env，构建每个数据源的 SourceConfig
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv

from aggregator.errors import ConfigurationError
from aggregator.fetchers.base_fetcher import FetchParams, SourceType

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/settings.yaml"

# 各数据源默认值（结果数 / 限流阈值）
SOURCE_DEFAULTS: Dict[SourceType, dict] = {
    SourceType.ARXIV: {
        "max_results": 20, "requests_per_minute": 20, "requests_per_hour": 1000,
        "sort_by": "submittedDate", "sort_order": "descending",
    },
    SourceType.GITHUB: {
        "max_results": 15, "requests_per_minute": 10, "requests_per_hour": 60,
        "sort_by": "updated", "sort_order": "desc",
    },
    SourceType.RSS: {
        "max_results": 60, "timeout_ms": 15000,
    },
    SourceType.PAPERS_WITH_CODE: {
        "max_results": 10, "mode": "feed",
    },
    SourceType.STACKOVERFLOW: {
        "max_results": 5, "timeout_ms": 6000,
        "sort_by": "activity", "sort_order": "desc",
    },
}


@dataclass
class SourceConfig:
    """单个数据源的采集配置"""
    source_type: SourceType
    enabled: bool = True
    max_results: int = 10
    timeout_ms: int = 10000
    max_retries: int = 3
    delay_ms: int = 1000
    backoff: str = "exponential"              # exponential / fixed
    requests_per_minute: Optional[int] = None
    requests_per_hour: Optional[int] = None
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None
    mode: str = "live"
    queries: List[dict] = field(default_factory=list)
    options: dict = field(default_factory=dict)

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def delay(self) -> float:
        return self.delay_ms / 1000.0

    def validate(self) -> None:
        """配置校验，不合法时抛出 ConfigurationError"""
        ctx = {"source_type": self.source_type.value}
        if self.delay_ms < 0:
            raise ConfigurationError("delay_ms 不能为负数", params=ctx)
        if self.max_retries < 0:
            raise ConfigurationError("max_retries 不能为负数", params=ctx)
        if self.timeout_ms <= 0:
            raise ConfigurationError("timeout_ms 必须为正数", params=ctx)
        if self.max_results <= 0:
            raise ConfigurationError("max_results 必须为正数", params=ctx)
        if self.backoff not in ("exponential", "fixed"):
            raise ConfigurationError(f"未知退避策略: {self.backoff}", params=ctx)
        for name in ("requests_per_minute", "requests_per_hour"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f"{name} 必须为正数", params=ctx)
        if self.source_type == SourceType.PAPERS_WITH_CODE and self.mode not in ("feed", "mock"):
            raise ConfigurationError(f"Papers with Code 模式非法: {self.mode}", params=ctx)
        if self.source_type == SourceType.RSS:
            for q in self.queries:
                if not (q.get("url") or q.get("query")):
                    raise ConfigurationError(
                        f"RSS 订阅源缺少 url: {q.get('name') or q}", params={**ctx, **q}
                    )

    def query_params(self) -> List[FetchParams]:
        """将 queries 配置转换为 FetchParams 列表"""
        out = []
        for q in self.queries:
            q = dict(q)
            out.append(
                FetchParams(
                    query=str(q.pop("query", None) or q.pop("url", "") or ""),
                    start=int(q.pop("start", 0) or 0),
                    max_results=int(q.pop("max_results", self.max_results)),
                    sort_by=q.pop("sort_by", self.sort_by),
                    sort_order=q.pop("sort_order", self.sort_order),
                    label=str(q.pop("name", q.pop("label", "")) or ""),
                    category=str(q.pop("category", "") or ""),
                    extra=q,
                )
            )
        return out


def load_config(path: str = DEFAULT_CONFIG_PATH) -> dict:
    """加载 settings.yaml + .env，返回合并后的配置字典"""
    load_dotenv()
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise ConfigurationError(f"未找到配置文件: {cfg_path}")
    with open(cfg_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}
    config["github_token"] = os.getenv("GITHUB_TOKEN", "")
    config["stackexchange_key"] = os.getenv("STACKEXCHANGE_KEY", "")
    return config


def build_source_configs(config: dict) -> Dict[SourceType, SourceConfig]:
    """
    根据 sources 配置段构建各数据源的 SourceConfig
    未出现在配置中的数据源按默认值启用
    """
    sources = config.get("sources", {}) or {}
    defaults = config.get("defaults", {}) or {}
    raw_by_type: Dict[SourceType, dict] = {}
    for key, raw in sources.items():
        try:
            source_type = SourceType.parse(key)
        except ValueError as e:
            raise ConfigurationError(str(e), params={"source": key}) from e
        raw_by_type[source_type] = raw or {}

    result: Dict[SourceType, SourceConfig] = {}
    for source_type in SourceType:
        raw = raw_by_type.get(source_type, {})
        # 优先级：数据源配置 > defaults 段 > 内置默认值
        merged = {**SOURCE_DEFAULTS[source_type], **defaults, **raw}
        options = dict(merged.pop("options", {}) or {})
        feeds = merged.pop("feeds", None)
        queries = merged.pop("queries", None) or feeds or []

        if source_type == SourceType.GITHUB and config.get("github_token"):
            options["token"] = config["github_token"]
            # 认证后 GitHub 限额更高
            if "requests_per_minute" not in raw and "requests_per_minute" not in defaults:
                merged["requests_per_minute"] = 60
            if "requests_per_hour" not in raw and "requests_per_hour" not in defaults:
                merged["requests_per_hour"] = 5000
        if source_type == SourceType.STACKOVERFLOW and config.get("stackexchange_key"):
            options["key"] = config["stackexchange_key"]

        known = set(SourceConfig.__dataclass_fields__) - {"source_type", "queries", "options"}
        unknown = set(merged) - known
        if unknown:
            logger.warning(f"{source_type.value} 存在未识别的配置项: {sorted(unknown)}")
        result[source_type] = SourceConfig(
            source_type=source_type,
            queries=list(queries),
            options=options,
            **{k: v for k, v in merged.items() if k in known},
        )
    return result
