from .feed import ViolationFeed
from .notifier import HttpWebhookNotifier, LogNotifier, Notifier, create_notifier, event_payload
from .overlay import DisplaySurface, OverlayRenderer
from .sinks import CsvSink, JsonlSink, ViolationSinks

__all__ = [
    "CsvSink",
    "DisplaySurface",
    "HttpWebhookNotifier",
    "JsonlSink",
    "LogNotifier",
    "Notifier",
    "OverlayRenderer",
    "ViolationFeed",
    "ViolationSinks",
    "create_notifier",
    "event_payload",
]
