from bisna.services.entity_service import EntityService, ServiceContexts
from bisna.services.notification import NotificationService, Observer

__all__ = [
    "EntityService",
    "ServiceContexts",
    "NotificationService",
    "Observer"
]
