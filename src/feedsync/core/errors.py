"""同步相关异常."""


class FeedError(Exception):
    """单个 Feed 抓取或解析失败，在该 Feed 内部恢复."""


class FetchError(FeedError):
    """网络请求失败：连接错误、超时、重定向过多或非 2xx 响应."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FormatError(FeedError):
    """响应内容无法解析为任何支持的 Feed 格式."""


class CycleError(Exception):
    """同步周期级别的失败（例如存储不可用），只中止当前周期."""
