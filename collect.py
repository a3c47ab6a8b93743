"""
collect.py - AI 资讯采集入口
用法：
  python collect.py                                   # 运行所有启用的数据源
  python collect.py --sources arxiv,github            # 只运行指定数据源
  python collect.py --source arxiv --query "cat:cs.AI" --max-results 5
  python collect.py --hours-back 24 --dry-run         # 只保留最近 24 小时，不写入存储
  python collect.py --full                            # 忽略上次运行时间，全量采集
  python collect.py --health                          # 检查配置与远端配额
"""
import argparse
import json
import logging
import logging.handlers
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from aggregator.config import DEFAULT_CONFIG_PATH, build_source_configs, load_config
from aggregator.errors import ConfigurationError
from aggregator.fetchers.base_fetcher import FetchParams, SourceType
from aggregator.fetchers.registry import build_fetchers
from aggregator.orchestrator import CrawlOrchestrator, CrawlReport
from aggregator.processors.deduplicator import Deduplicator
from aggregator.processors.filter import RecordFilter
from aggregator.storage.json_store import JsonStore

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, log_dir: str = "data") -> None:
    """日志配置：同时输出到控制台和文件"""
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.handlers.RotatingFileHandler(
                f"{log_dir}/run.log", maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
            ),
            logging.StreamHandler(sys.stdout),
        ],
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="AI 资讯多源采集")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="配置文件路径")
    parser.add_argument("--sources", help="逗号分隔的数据源列表，如 arxiv,github")
    parser.add_argument("--source", help="单独运行一个数据源（配合 --query 等参数）")
    parser.add_argument("--query", help="查询词 / 分类 / Feed URL")
    parser.add_argument("--max-results", type=int, help="最大结果数")
    parser.add_argument("--start", type=int, help="起始偏移")
    parser.add_argument("--sort-by", help="排序字段")
    parser.add_argument("--sort-order", help="排序方向")
    parser.add_argument("--hours-back", type=float, help="只保留最近 N 小时发布的内容")
    parser.add_argument("--full", action="store_true", help="全量采集，不按上次运行时间过滤")
    parser.add_argument("--health", action="store_true", help="输出各数据源配置与配额状态后退出")
    parser.add_argument("--dry-run", action="store_true", help="只采集，不写入存储")
    parser.add_argument("--verbose", action="store_true", help="输出 DEBUG 日志")
    return parser.parse_args(argv)


def resolve_since(args: argparse.Namespace, store: JsonStore) -> Optional[datetime]:
    """
    时间窗口：--hours-back 优先；否则非首次运行时从上次运行时间增量采集
    --full 关闭增量
    """
    if args.hours_back:
        since = datetime.now(timezone.utc) - timedelta(hours=args.hours_back)
        print(f"[WINDOW] 只保留 {since.isoformat()} 之后发布的内容")
        return since
    if args.full or store.is_cold_start():
        return None
    since = store.get_last_run_time()
    if since is not None:
        print(f"[WINDOW] 增量采集，上次运行于 {since.isoformat()}")
    return since


def explicit_params(args: argparse.Namespace, cfg) -> Optional[FetchParams]:
    """命令行给出任一请求参数时，构建单源的显式 FetchParams"""
    given = (args.query, args.max_results, args.start, args.sort_by, args.sort_order)
    if all(v is None for v in given):
        return None
    return FetchParams(
        query=args.query or "",
        start=args.start or 0,
        max_results=args.max_results or cfg.max_results,
        sort_by=args.sort_by or cfg.sort_by,
        sort_order=args.sort_order or cfg.sort_order,
    )


def run_pipeline(args: argparse.Namespace, config: dict) -> CrawlReport:
    """
    采集 → 过滤 → 去重 → 存储
    :return: 采集报告（records 为去重前的全部记录）
    """
    source_configs = build_source_configs(config)
    orchestrator = CrawlOrchestrator(build_fetchers(source_configs), source_configs)
    store = JsonStore(config.get("output", {}).get("data_dir", "data"))
    since = resolve_since(args, store)

    # 1. 采集（单个数据源失败不影响整体）
    if args.source:
        source_type = SourceType.parse(args.source)
        params = explicit_params(args, source_configs[source_type])
        report = CrawlReport()
        report.results.append(orchestrator.run_source(source_type, params=params, since=since))
        report.finished_at = datetime.now(timezone.utc)
    else:
        sources = [s.strip() for s in args.sources.split(",") if s.strip()] if args.sources else None
        report = orchestrator.run_all(sources=sources, since=since)

    for r in report.results:
        status = f"{len(r.records)} 条" if r.success else f"失败 - {r.error}"
        print(f"[FETCH] {r.source_type.value}: {status}")

    # 2. 过滤 + 批内去重
    raw = report.records()
    records = Deduplicator().deduplicate(RecordFilter(since=since).filter(raw))
    print(f"[PROCESS] 原始 {len(raw)} 条 → 过滤去重后 {len(records)} 条")

    if args.dry_run:
        fresh = Deduplicator(store.existing_checksums()).deduplicate(records)
        print(f"[DRY-RUN] 其中 {len(fresh)} 条为新内容，未写入存储")
        return report

    # 3. 存储（已存在的内容按指纹更新）
    stats = store.upsert(records)
    store.update_last_run_time()
    print(f"[STORE] 新增 {stats['inserted']} 条，更新 {stats['updated']} 条")
    return report


def run_health(config: dict) -> dict:
    """配置校验 + 限流窗口 + 远端配额"""
    source_configs = build_source_configs(config)
    orchestrator = CrawlOrchestrator(build_fetchers(source_configs), source_configs)
    health = orchestrator.check_health(remote=True)
    print(json.dumps(health, ensure_ascii=False, indent=2, default=str))
    return health


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = load_config(args.config)
        if args.health:
            health = run_health(config)
            return 0 if all(h["valid"] for h in health.values()) else 1
        report = run_pipeline(args, config)
    except (ConfigurationError, ValueError) as e:
        print(f"[错误] {e}")
        logger.error(f"配置错误: {e}")
        return 1

    summary = report.summary()
    print(
        f"[DONE] 数据源 {summary['succeeded']}/{summary['attempted']} 成功，"
        f"共 {summary['total_records']} 条，耗时 {summary['duration_seconds']}s"
    )
    if report.total_records == 0:
        print("[错误] 没有任何数据源采集到内容")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
