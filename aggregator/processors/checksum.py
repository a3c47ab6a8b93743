"""
checksum.py - 内容指纹
checksum() 只依赖传入文本，与抓取时间无关，重复抓取同一条目得到相同指纹
"""
import hashlib


def checksum(text: str) -> str:
    """SHA-256 十六进制摘要（64 字符）"""
    return hashlib.sha256((text or "").encode("utf-8")).hexdigest()


def generate_id(text: str) -> str:
    """无源 ID 时使用的短 ID（MD5 十六进制）"""
    return hashlib.md5((text or "").encode("utf-8")).hexdigest()
