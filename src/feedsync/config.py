"""应用配置管理."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """应用配置（环境变量）."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 数据库配置
    database_url: str = "sqlite+aiosqlite:///./feedsync.db"

    # 同步配置
    sync_enabled: bool = True
    sync_interval_ms: int = 900_000  # 15 分钟
    initial_sync_delay_seconds: int = 10
    max_items_per_feed: int = 50
    retention_days: int = 30

    # 抓取配置
    fetch_timeout_ms: int = 10_000
    max_redirects: int = 5
    max_concurrent_fetches: int = 3
    user_agent: str = "FeedSync-RSS-Reader/1.0"

    @property
    def sync_interval_seconds(self) -> float:
        """同步间隔（秒）."""
        return self.sync_interval_ms / 1000

    @property
    def fetch_timeout_seconds(self) -> float:
        """抓取超时（秒）."""
        return self.fetch_timeout_ms / 1000


@lru_cache
def get_settings() -> Settings:
    """获取应用配置（带缓存）."""
    return Settings()
