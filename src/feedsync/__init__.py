"""FeedSync - RSS / Atom / JSON Feed 订阅同步服务."""

__version__ = "0.1.0"
