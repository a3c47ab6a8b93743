"""
github_fetcher.py - GitHub 仓库采集器
支持的查询：仓库搜索（默认）、组织 / 用户仓库列表、单个仓库详情（README / 最近提交 / 最新发布）
指纹规则：full_name + description
"""
import base64
import binascii
import logging
from datetime import datetime, timezone
from typing import List, Optional

from aggregator.errors import FetchError, ParseError
from aggregator.processors.checksum import checksum, generate_id
from aggregator.processors.normalizer import (
    clean_text,
    ensure_list,
    first_present,
    parse_datetime,
    truncate,
)

from .base_fetcher import BaseFetcher, FetchParams, NormalizedRecord, SourceType

logger = logging.getLogger(__name__)

DEFAULT_QUERIES = [
    "artificial intelligence",
    "machine learning",
    "deep learning",
    "large language model",
]

README_LENGTH = 5000
COMMIT_COUNT = 5


class GitHubFetcher(BaseFetcher):
    """GitHub 仓库采集器"""

    source_type = SourceType.GITHUB
    has_quota_api = True
    BASE_URL = "https://api.github.com"

    def _headers(self) -> dict:
        headers = {"Accept": "application/vnd.github.v3+json"}
        token = self.config.options.get("token", "")
        if token:
            headers["Authorization"] = f"token {token}"
        return headers

    def _get(self, path: str, params: Optional[dict] = None):
        return self.http.get_json(f"{self.BASE_URL}{path}", params=params, headers=self._headers())

    def default_queries(self) -> List[FetchParams]:
        min_stars = self.config.options.get("min_stars", 100)
        return [
            FetchParams(query=f"{q} stars:>{min_stars}", label=q, category="GitHub项目")
            for q in DEFAULT_QUERIES
        ]

    @staticmethod
    def details_params(owner: str, repo: str) -> FetchParams:
        """单个仓库详情"""
        return FetchParams(query=f"{owner}/{repo}", max_results=1, extra={"repo": f"{owner}/{repo}"})

    def fetch(self, params: FetchParams):
        per_page = min(max(1, params.max_results), 100)
        if params.extra.get("repo"):
            return self.fetch_details(params.extra["repo"])

        org = params.extra.get("org")
        user = params.extra.get("user")
        if org or user:
            path = f"/orgs/{org}/repos" if org else f"/users/{user}/repos"
            logger.info(f"[GitHub] 获取仓库列表: {path}")
            return self._get(path, {"sort": "updated", "direction": "desc", "per_page": per_page})

        query = params.query or DEFAULT_QUERIES[0]
        since = params.extra.get("pushed_since")
        if since:
            query = f"{query} pushed:>={since}"
        logger.info(f"[GitHub] 搜索仓库: {query}")
        return self._get(
            "/search/repositories",
            {
                "q": query,
                "sort": params.sort_by or "updated",
                "order": params.sort_order or "desc",
                "per_page": per_page,
            },
        )

    def fetch_details(self, full_name: str) -> dict:
        """
        仓库详情：仓库信息必须成功；README、最近提交、最新发布各自可缺失
        :param full_name: owner/repo
        """
        logger.info(f"[GitHub] 获取仓库详情: {full_name}")
        details = {"repository": self._get(f"/repos/{full_name}")}
        details["readme"] = self._optional(full_name, "README", self._fetch_readme)
        details["latest_commits"] = self._optional(full_name, "最近提交", self._fetch_commits) or []
        details["latest_release"] = self._optional(full_name, "最新发布", self._fetch_release)
        return details

    def _optional(self, full_name: str, what: str, fetch):
        try:
            return fetch(full_name)
        except (FetchError, ParseError) as e:
            logger.warning(f"[GitHub] 无法获取 {full_name} 的{what}: {e}")
            return None

    def _fetch_readme(self, full_name: str) -> str:
        data = self._get(f"/repos/{full_name}/readme")
        try:
            text = base64.b64decode(data.get("content", "")).decode("utf-8", errors="replace")
        except (binascii.Error, AttributeError) as e:
            raise ParseError(f"README 内容无法解码: {e}", params={"repo": full_name}) from e
        return truncate(text, README_LENGTH)

    def _fetch_commits(self, full_name: str) -> List[dict]:
        commits = self._get(f"/repos/{full_name}/commits", {"per_page": COMMIT_COUNT})
        out = []
        for c in ensure_list(commits)[:COMMIT_COUNT]:
            commit = c.get("commit") or {}
            author = commit.get("author") or {}
            out.append({
                "sha": c.get("sha", ""),
                "message": commit.get("message", ""),
                "author": author.get("name", ""),
                "date": author.get("date"),
                "url": c.get("html_url", ""),
            })
        return out

    def _fetch_release(self, full_name: str) -> dict:
        release = self._get(f"/repos/{full_name}/releases/latest")
        return {
            "tag_name": release.get("tag_name", ""),
            "name": release.get("name") or "",
            "body": release.get("body") or "",
            "published_at": release.get("published_at"),
            "url": release.get("html_url", ""),
        }

    def check_rate_limit(self) -> dict:
        """/rate_limit 原始响应（不计入 GitHub 限额）"""
        return self._get("/rate_limit")

    def check_quota(self) -> dict:
        data = self.check_rate_limit()
        resources = data.get("resources") or {}
        core = resources.get("core") or data.get("rate") or {}
        search = resources.get("search") or {}
        quota = {
            "limit": core.get("limit", 0),
            "remaining": core.get("remaining", 0),
            "reset": core.get("reset"),
            "search_remaining": search.get("remaining"),
        }
        logger.info(f"[GitHub] 剩余额度 {quota['remaining']}/{quota['limit']}")
        return quota

    def response_info(self, payload) -> dict:
        if isinstance(payload, dict) and "total_count" in payload:
            return {
                "total_count": payload["total_count"],
                "incomplete_results": payload.get("incomplete_results", False),
            }
        return {}

    def parse(
        self,
        payload,
        params: FetchParams,
        fetched_at: Optional[datetime] = None,
    ) -> List[NormalizedRecord]:
        fetched_at = fetched_at or datetime.now(timezone.utc)
        if isinstance(payload, dict) and "repository" in payload:
            return [self._parse_details(payload, params, fetched_at)]
        if isinstance(payload, dict):
            if "items" not in payload:
                raise ParseError(
                    f"GitHub 搜索响应缺少 items: {payload.get('message', '')}",
                    params=params.to_dict(),
                    source_type=self.source_type.value,
                )
            repos = ensure_list(payload.get("items"))
            total = payload.get("total_count", len(repos))
        elif isinstance(payload, list):
            repos, total = payload, len(payload)
        else:
            raise ParseError(
                f"GitHub 响应类型异常: {type(payload).__name__}",
                params=params.to_dict(),
                source_type=self.source_type.value,
            )

        records = [self._parse_repo(r, params, fetched_at) for r in repos if isinstance(r, dict)]
        logger.info(f"[GitHub] 解析 {len(records)} 个仓库（总计 {total}）")
        return records

    def _parse_details(self, payload: dict, params: FetchParams, fetched_at: datetime) -> NormalizedRecord:
        repo = payload["repository"]
        if not isinstance(repo, dict) or not repo.get("full_name"):
            raise ParseError(
                "GitHub 仓库详情缺少 full_name",
                params=params.to_dict(),
                source_type=self.source_type.value,
            )
        record = self._parse_repo(repo, params, fetched_at)
        record.extra.update(
            watchers=repo.get("watchers_count", 0),
            default_branch=repo.get("default_branch") or "main",
            clone_url=repo.get("clone_url", ""),
            latest_commits=payload.get("latest_commits") or [],
        )
        if payload.get("readme") is not None:
            record.extra["readme"] = payload["readme"]
        if payload.get("latest_release") is not None:
            record.extra["latest_release"] = payload["latest_release"]
        return record

    def _parse_repo(self, repo: dict, params: FetchParams, fetched_at: datetime) -> NormalizedRecord:
        full_name = repo.get("full_name") or repo.get("name") or ""
        summary = clean_text(repo.get("description"))
        url = repo.get("html_url", "")
        owner = repo.get("owner") or {}
        created = parse_datetime(repo.get("created_at"), fetched_at)
        updated = parse_datetime(first_present(repo.get("updated_at"), repo.get("pushed_at")), created)

        links = {"repository": url}
        if repo.get("homepage"):
            links["homepage"] = repo["homepage"]

        return NormalizedRecord(
            id=generate_id(url or full_name),
            title=full_name,
            summary=summary,
            url=url,
            source_type=self.source_type,
            checksum=checksum(full_name + summary),
            published_at=created,
            updated_at=updated,
            authors=[owner["login"]] if owner.get("login") else [],
            tags=[str(t) for t in ensure_list(repo.get("topics"))],
            links=links,
            source="GitHub",
            category=params.category or "GitHub项目",
            extra={
                "repo_id": repo.get("id"),
                "language": repo.get("language") or "",
                "stars": repo.get("stargazers_count", 0),
                "forks": repo.get("forks_count", 0),
                "open_issues": repo.get("open_issues_count", 0),
                "license": (repo.get("license") or {}).get("name"),
                "pushed_at": repo.get("pushed_at"),
                "archived": repo.get("archived", False),
                "fork": repo.get("fork", False),
            },
        )
