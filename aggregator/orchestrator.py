"""
orchestrator.py - 采集编排器
按顺序运行各数据源：fetch（限流 + 重试）→ parse → 时间窗口过滤
单个查询 / 数据源失败只记录，不中断整批采集
"""
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Union

from aggregator.config import SourceConfig
from aggregator.errors import ConfigurationError, CrawlerError
from aggregator.fetchers.base_fetcher import (
    BaseFetcher,
    CrawlResult,
    CrawlState,
    FetchParams,
    NormalizedRecord,
    SourceType,
)
from aggregator.fetchers.request_policy import RequestPolicy

logger = logging.getLogger(__name__)


@dataclass
class CrawlReport:
    """一批采集的汇总结果"""
    results: List[CrawlResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    @property
    def total_records(self) -> int:
        return sum(len(r.records) for r in self.results)

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds()

    def records(self) -> List[NormalizedRecord]:
        """所有记录，按数据源顺序"""
        out = []
        for r in self.results:
            out.extend(r.records)
        return out

    def summary(self) -> dict:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "total_records": self.total_records,
            "duration_seconds": round(self.duration_seconds, 2),
            "sources": {
                r.source_type.value: {
                    "success": r.success,
                    "records": len(r.records),
                    "error": r.error,
                    "failed_queries": r.failed_queries,
                }
                for r in self.results
            },
        }


class CrawlOrchestrator:
    """采集编排器，每个数据源持有一个 RequestPolicy（限流计数只在本进程内有效）"""

    def __init__(
        self,
        fetchers: Dict[SourceType, BaseFetcher],
        source_configs: Dict[SourceType, SourceConfig],
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.fetchers = fetchers
        self.source_configs = source_configs
        self._sleep = sleep
        self.policies: Dict[SourceType, RequestPolicy] = {
            st: RequestPolicy.from_config(cfg, clock=clock, sleep=sleep)
            for st, cfg in source_configs.items()
        }

    # ─────────────────────────────────────────
    # 批量 / 单源运行
    # ─────────────────────────────────────────

    def run_all(
        self,
        sources: Optional[Iterable[Union[str, SourceType]]] = None,
        since: Optional[datetime] = None,
    ) -> CrawlReport:
        """
        运行所有启用的数据源（或 sources 指定的子集）
        :param since: 只保留此时间之后发布的记录
        """
        if sources is None:
            selected = [st for st in SourceType if st in self.fetchers and self.fetchers[st].is_enabled()]
        else:
            selected = [s if isinstance(s, SourceType) else SourceType.parse(s) for s in sources]

        report = CrawlReport()
        logger.info(f"开始采集 {len(selected)} 个数据源: {[s.value for s in selected]}")
        for i, source_type in enumerate(selected):
            if i > 0:
                cfg = self.source_configs.get(source_type)
                if cfg and cfg.delay > 0:
                    self._sleep(cfg.delay)
            try:
                result = self.run_source(source_type, since=since)
            except Exception as e:
                logger.exception(f"[{source_type.value}] 采集异常: {e}")
                result = CrawlResult(
                    source_type=source_type, success=False, error=str(e), state=CrawlState.FAILED
                )
            report.results.append(result)

        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"采集结束：{report.succeeded}/{report.attempted} 个数据源成功，"
            f"共 {report.total_records} 条，耗时 {report.duration_seconds:.1f}s"
        )
        return report

    def run_source(
        self,
        source_type: Union[str, SourceType],
        params: Optional[Union[FetchParams, List[FetchParams]]] = None,
        since: Optional[datetime] = None,
    ) -> CrawlResult:
        """
        运行单个数据源
        :param params: 显式请求参数；为空时使用配置中的 queries 或采集器默认查询
        """
        if not isinstance(source_type, SourceType):
            source_type = SourceType.parse(source_type)
        name = source_type.value
        fetcher = self.fetchers.get(source_type)
        cfg = self.source_configs.get(source_type)
        if fetcher is None or cfg is None:
            return self._failed(source_type, f"数据源未配置: {name}")

        try:
            cfg.validate()
        except ConfigurationError as e:
            logger.error(f"[{name}] 配置错误: {e}")
            return self._failed(source_type, str(e))

        queries, limit = self._plan(fetcher, cfg, params)
        result = CrawlResult(
            source_type=source_type,
            success=False,
            query=", ".join(q.query or q.label for q in queries),
            params=[q.to_dict() for q in queries],
        )
        policy = self.policies[source_type]
        attempts_before = policy.total_attempts
        errors: List[str] = []
        records: List[NormalizedRecord] = []
        responses: List[dict] = []
        dropped = 0

        logger.info(f"[{name}] 开始采集，{len(queries)} 个查询，上限 {limit} 条")
        for i, q in enumerate(queries):
            if i > 0 and cfg.delay > 0:
                self._sleep(cfg.delay)
            self._transition(result, CrawlState.FETCHING, q)
            fetched_at = datetime.now(timezone.utc)
            try:
                payload = policy.execute(lambda q=q: fetcher.fetch(q), params=q.to_dict())
                self._transition(result, CrawlState.PARSING, q)
                parsed = fetcher.parse(payload, q, fetched_at=fetched_at)
                info = fetcher.response_info(payload)
            except CrawlerError as e:
                e.source_type = e.source_type or name
                errors.append(str(e))
                result.failed_queries.append(q.query or q.label)
                logger.warning(f"[{name}] 查询失败 {q.query or q.label}: {e}")
                continue

            if info:
                responses.append({"query": q.query or q.label, **info})
            if since is not None:
                kept = [r for r in parsed if r.published_at >= since]
                dropped += len(parsed) - len(kept)
                parsed = kept
            records.extend(parsed)

        result.records = records[:limit]
        result.crawled_at = datetime.now(timezone.utc)
        result.metadata = {
            "queries": len(queries),
            "attempts": policy.total_attempts - attempts_before,
            "dropped_before_since": dropped,
            "rate_limit": policy.limiter.remaining(),
        }
        if responses:
            result.metadata["responses"] = responses
        if errors:
            result.metadata["errors"] = errors

        if queries and len(errors) == len(queries):
            result.success = False
            result.error = "; ".join(errors)
            self._transition(result, CrawlState.FAILED)
            logger.error(f"[{name}] 采集失败: {result.error}")
        else:
            result.success = True
            self._transition(result, CrawlState.SUCCEEDED)
            logger.info(
                f"[{name}] 采集完成：{len(result.records)} 条"
                + (f"，{len(errors)} 个查询失败" if errors else "")
            )
        return result

    def check_health(self, remote: bool = False) -> Dict[str, dict]:
        """
        各数据源配置是否合法、当前限流窗口剩余额度
        :param remote: 为 True 时额外向已启用的数据源查询远端配额（GitHub rate_limit / Stack Exchange quota）
        """
        health = {}
        for source_type, cfg in self.source_configs.items():
            entry = {"enabled": cfg.enabled, "valid": True, "error": None}
            try:
                cfg.validate()
            except ConfigurationError as e:
                entry.update(valid=False, error=str(e))
            policy = self.policies[source_type]
            fetcher = self.fetchers.get(source_type)
            quota_api = fetcher is not None and fetcher.has_quota_api
            if remote and quota_api and cfg.enabled and entry["valid"]:
                try:
                    entry["quota"] = policy.execute(fetcher.check_quota, params={"check": "quota"})
                except CrawlerError as e:
                    logger.warning(f"[{source_type.value}] 配额查询失败: {e}")
                    entry["quota_error"] = str(e)
            entry["rate_limit"] = policy.limiter.remaining()
            entry["requests"] = policy.limiter.request_count
            health[source_type.value] = entry
        return health

    # ─────────────────────────────────────────
    # 内部
    # ─────────────────────────────────────────

    def _plan(self, fetcher: BaseFetcher, cfg: SourceConfig, params):
        """确定查询列表与总条数上限"""
        if params is not None:
            queries = params if isinstance(params, list) else [params]
            return queries, sum(q.max_results for q in queries)

        configured = cfg.query_params()
        queries = configured or fetcher.default_queries()
        per_query = math.ceil(cfg.max_results / len(queries)) if queries else cfg.max_results
        for q in queries:
            q.max_results = min(q.max_results, per_query) if configured else per_query
            q.sort_by = q.sort_by or cfg.sort_by
            q.sort_order = q.sort_order or cfg.sort_order
        return queries, cfg.max_results

    @staticmethod
    def _transition(result: CrawlResult, state: CrawlState, params: Optional[FetchParams] = None) -> None:
        logger.debug(
            f"[{result.source_type.value}] {result.state.value} → {state.value}"
            + (f" ({params.query or params.label})" if params else "")
        )
        result.state = state

    def _failed(self, source_type: SourceType, message: str) -> CrawlResult:
        return CrawlResult(
            source_type=source_type, success=False, error=message, state=CrawlState.FAILED
        )
