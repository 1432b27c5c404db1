# External collaborators: website directory, visit store, notifier
from .websites import WebsiteDirectory, InMemoryWebsiteDirectory, SqlWebsiteDirectory
from .storage import VisitStore, InMemoryVisitStore, SqlVisitStore
from .notifier import VisitNotifier, InMemoryNotifier, RedisNotifier

__all__ = [
    "WebsiteDirectory",
    "InMemoryWebsiteDirectory",
    "SqlWebsiteDirectory",
    "VisitStore",
    "InMemoryVisitStore",
    "SqlVisitStore",
    "VisitNotifier",
    "InMemoryNotifier",
    "RedisNotifier",
]
