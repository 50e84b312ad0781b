"""URL 工具."""

from urllib.parse import urlsplit

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg")


def is_valid_url(url: str) -> bool:
    """是否为 http(s) URL."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def normalize_url(url: str) -> str:
    """规范化 Feed URL：去除首尾空白和路径末尾的斜杠."""
    url = url.strip()
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    trailing = not parts.query and not parts.fragment
    if trailing and parts.path not in ("", "/") and parts.path.endswith("/"):
        parts = parts._replace(path=parts.path.rstrip("/"))
    if not parts.path:
        parts = parts._replace(path="/")
    return parts.geturl()


def base_url(url: str) -> str:
    """提取 scheme://host 部分，解析失败时原样返回."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url
    return f"{parts.scheme}://{parts.netloc}"


def is_image_url(url: str | None) -> bool:
    """根据扩展名判断 URL 是否指向图片."""
    if not url:
        return False
    lowered = url.lower()
    return any(ext in lowered for ext in IMAGE_EXTENSIONS)
