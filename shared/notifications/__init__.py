from .notifier import OrderNotifier, HttpOrderNotifier, LoggingOrderNotifier, build_notifier

__all__ = ["OrderNotifier", "HttpOrderNotifier", "LoggingOrderNotifier", "build_notifier"]
