"""
工具函数模块
"""

import math
import secrets
from typing import List, Optional, Sequence
from urllib.parse import urlsplit

from pydantic import AnyUrl, TypeAdapter, ValidationError

from .errors import InvalidURLError
from .models import Tick

_url_adapter = TypeAdapter(AnyUrl)


def display_name(url: str, name: Optional[str] = None) -> str:
    """
    网站显示名称

    优先使用 name；否则取 URL 的主机名并去掉 "www." 前缀；
    URL 无法解析出主机名时原样返回 URL。
    """
    if name and name.strip():
        return name.strip()
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return url
    if not host:
        return url
    if host.startswith("www."):
        host = host[len("www."):]
    return host


def validate_url(url: Optional[str]) -> str:
    """
    校验待添加的 URL

    Returns:
        去除首尾空白后的 URL

    Raises:
        InvalidURLError: URL 为空或不是合法的绝对 URL
    """
    url = (url or "").strip()
    if not url:
        raise InvalidURLError("URL is required")
    try:
        _url_adapter.validate_python(url)
    except ValidationError as e:
        raise InvalidURLError("Please enter a valid URL") from e
    return url


def recent_slice(ticks: Sequence[Tick], limit: int = 100) -> List[Tick]:
    """按 created_at 稳定排序后取最近 limit 条"""
    if limit <= 0:
        return []
    ordered = sorted(ticks, key=lambda t: t.created_at)
    return ordered[-limit:]


def round_half_up(value: float, ndigits: int = 0) -> float:
    """四舍五入（0.5 进位，不使用银行家舍入）"""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def generate_token(length: int = 32) -> str:
    """
    生成随机 API Token

    Args:
        length: Token 字节数

    Returns:
        URL 安全的随机字符串
    """
    return secrets.token_urlsafe(length)


if __name__ == "__main__":
    # 生成一个新的 Token，写入 config.yaml 的 api.tokens
    print("Generated Token:")
    print(generate_token())
