"""
normalizer.py - 字段规范化工具
各数据源解析器共用：标量/列表统一、HTML 清理、日期解析、链接选择
"""
import html
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


def ensure_list(value: Any) -> list:
    """
    统一为列表：None → []，标量 / dict → [value]，list / tuple → list
    某些 XML 转换只有一个元素时会返回标量而非列表，这里统一处理
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def clean_text(text: Optional[str]) -> str:
    """合并连续空白并去除首尾空白"""
    if not text:
        return ""
    return _WS_RE.sub(" ", str(text)).strip()


def strip_html(text: Optional[str]) -> str:
    """去除 HTML 标签并解码实体，得到纯文本"""
    if not text:
        return ""
    no_tags = _TAG_RE.sub(" ", str(text))
    return clean_text(html.unescape(no_tags))


def truncate(text: str, max_length: int, suffix: str = "...") -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - len(suffix)].rstrip() + suffix


def to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_datetime(value: Any, default: Optional[datetime] = None) -> datetime:
    """
    解析各种来源的日期：datetime / struct_time / Unix 时间戳 / 字符串
    无法解析或缺失时返回 default（默认为当前时间），不抛异常
    """
    fallback = default or datetime.now(timezone.utc)
    if value is None or value == "":
        return fallback
    try:
        if isinstance(value, datetime):
            return to_utc(value)
        if isinstance(value, time.struct_time):
            return datetime(*value[:6], tzinfo=timezone.utc)
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        return to_utc(date_parser.parse(str(value)))
    except (ValueError, OverflowError, TypeError) as e:
        logger.debug(f"日期解析失败 {value!r}: {e}")
        return fallback


def first_present(*values: Any) -> Any:
    """返回第一个非空值"""
    for v in values:
        if v not in (None, "", [], {}):
            return v
    return None


def names_of(values: Iterable[Any], key: str = "name") -> List[str]:
    """从 [{name: ...}] 或 [str] 中取出字符串列表，保持顺序，不去重"""
    out = []
    for v in ensure_list(values):
        if isinstance(v, dict):
            v = v.get(key)
        v = clean_text(v)
        if v:
            out.append(v)
    return out


def select_link(links: Any, role: Optional[str] = None, href_key: str = "href") -> str:
    """
    从链接列表中选出指定角色的链接
    role 依次匹配 title / rel / type；链接都没有角色标记时退回第一条（或唯一一条）
    """
    items = ensure_list(links)
    if not items:
        return ""
    if role:
        for link in items:
            if isinstance(link, dict) and role in (link.get("title"), link.get("rel"), link.get("type")):
                return link.get(href_key, "") or ""
        has_roles = any(
            isinstance(link, dict) and (link.get("title") or link.get("rel")) for link in items
        )
        if has_roles:
            return ""
    head = items[0]
    return (head.get(href_key, "") if isinstance(head, dict) else str(head)) or ""
