"""HTML 解析工具."""

import re

from bs4 import BeautifulSoup


def html_to_text(html: str) -> str:
    """
    将 HTML 转换为纯文本.

    Args:
        html: HTML 内容

    Returns:
        提取的纯文本内容
    """
    if not html:
        return ""

    # 纯文本无需解析
    if "<" not in html and "&" not in html:
        return html.strip()

    soup = BeautifulSoup(html, "lxml")

    # 移除 script 和 style 标签
    for element in soup(["script", "style"]):
        element.decompose()

    text = soup.get_text(separator=" ")

    # 合并空白
    text = re.sub(r"\s+", " ", text)

    return text.strip()


def extract_first_image(html: str) -> str | None:
    """
    提取 HTML 中的第一张图片 URL.

    Args:
        html: HTML 内容

    Returns:
        图片 URL 或 None
    """
    if not html or "<img" not in html.lower():
        return None

    soup = BeautifulSoup(html, "lxml")
    for img in soup.find_all("img"):
        src = img.get("src")
        # 确保是字符串
        if isinstance(src, list):
            src = src[0] if src else None
        if src:
            return src

    return None
